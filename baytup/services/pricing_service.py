"""Booking pricing service.

BUSINESS RULES:
- Guests pay an 8% service fee on top of nights + cleaning
- Hosts pay a 3% commission on nights + cleaning
- Platform revenue = guest service fee + host commission
- The guest fee is rounded up so the total is collectable in the
  currency's collection unit (whole dinars for DZD)
- Taxes are not collected (always 0)
- All amounts are integers in the settlement currency's minor unit
"""

from dataclasses import asdict, dataclass
from decimal import ROUND_HALF_UP, Decimal

from baytup.config import settings


def percent_of(amount: int, rate: Decimal) -> int:
    """Apply a fractional rate to a minor-unit amount, rounding half up."""
    return int((Decimal(amount) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class BookingPricing:
    """Price breakdown frozen onto a booking at creation."""

    base_price: int
    nights: int
    subtotal: int
    cleaning_fee: int
    guest_service_fee: int
    host_commission: int
    taxes: int
    total_amount: int
    host_payout: int
    currency: str

    @property
    def platform_revenue(self) -> int:
        return self.guest_service_fee + self.host_commission

    def to_dict(self) -> dict:
        return asdict(self)


class PricingService:
    """Service for calculating booking amounts, fees and host payout."""

    def __init__(
        self,
        guest_service_fee_rate: Decimal | None = None,
        host_commission_rate: Decimal | None = None,
    ) -> None:
        self.guest_service_fee_rate = guest_service_fee_rate or settings.guest_service_fee_rate
        self.host_commission_rate = host_commission_rate or settings.host_commission_rate

    def calculate_guest_service_fee(self, base_amount: int) -> int:
        return percent_of(base_amount, self.guest_service_fee_rate)

    def calculate_host_commission(self, base_amount: int) -> int:
        return percent_of(base_amount, self.host_commission_rate)

    def calculate_booking_amounts(
        self,
        base_price: int,
        nights: int,
        cleaning_fee: int = 0,
        currency: str = "DZD",
    ) -> BookingPricing:
        """Calculate all booking amounts including fees and host payout.

        - subtotal = base_price x nights
        - total_amount = subtotal + cleaning_fee + guest_service_fee, a whole
          number of collection units
        - host_payout = subtotal + cleaning_fee - host_commission

        Args:
            base_price: Price per night in minor units
            nights: Number of nights
            cleaning_fee: One-time cleaning fee in minor units
            currency: Settlement currency

        Returns:
            BookingPricing: All calculated amounts
        """
        subtotal = base_price * nights
        base_amount = subtotal + cleaning_fee

        guest_service_fee = self.calculate_guest_service_fee(base_amount)
        unit = settings.collection_units.get(currency, 1)
        shortfall = -(base_amount + guest_service_fee) % unit
        guest_service_fee += shortfall
        host_commission = self.calculate_host_commission(base_amount)

        return BookingPricing(
            base_price=base_price,
            nights=nights,
            subtotal=subtotal,
            cleaning_fee=cleaning_fee,
            guest_service_fee=guest_service_fee,
            host_commission=host_commission,
            taxes=0,
            total_amount=base_amount + guest_service_fee,
            host_payout=base_amount - host_commission,
            currency=currency,
        )


pricing_service = PricingService()
