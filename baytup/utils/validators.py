"""Bank account validation utilities (Algerian payout rails)."""

import re

RIB_PATTERN = re.compile(r"^\d{20}$")
SWIFT_PATTERN = re.compile(r"^[A-Z]{6}[A-Z0-9]{2}([A-Z0-9]{3})?$")


def normalize_account_number(value: str) -> str:
    """Strip spaces and dashes people paste from bank statements."""
    return re.sub(r"[\s\-]", "", value or "")


def validate_rib(rib: str) -> bool:
    """Validate an Algerian RIB.

    RIB format: 20 digits (bank code, branch, account, key),
    spaces and dashes ignored.

    Args:
        rib: RIB to validate

    Returns:
        bool: True if valid RIB format
    """
    return bool(RIB_PATTERN.match(normalize_account_number(rib)))


def validate_swift(swift: str) -> bool:
    """Validate a SWIFT/BIC code (8 or 11 characters)."""
    return bool(SWIFT_PATTERN.match((swift or "").replace(" ", "").upper()))


def validate_iban(iban: str) -> bool:
    """Validate IBAN shape: country code, check digits, up to 30 alphanumerics."""
    cleaned = iban.replace(" ", "").upper()

    if not 15 <= len(cleaned) <= 34:
        return False
    if not (cleaned[:2].isalpha() and cleaned[2:4].isdigit()):
        return False

    return cleaned[4:].isalnum()
