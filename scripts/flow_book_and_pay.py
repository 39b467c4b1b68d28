#!/usr/bin/env python3
"""
Booking flow script: request, approve, pay by bank transfer, stay, complete.

DO NOT ADD BUSINESS LOGIC HERE.
This script only orchestrates API calls.
All rules live in the backend.

Usage:
    python scripts/flow_book_and_pay.py --listing-id <UUID> --start 2026-04-01 --end 2026-04-04 \
        --guest-token $GUEST_TOKEN --host-token $HOST_TOKEN
    python scripts/flow_book_and_pay.py ... --cancel   # cancel as guest after paying

Check-in is only accepted from the start date on; use today's date as
--start to run the stay steps.

Flow:
    1. Create booking (guest)
    2. Approve booking (host)
    3. Confirm bank transfer received (host)
    4. Check-in / check-out (host)
    5. Confirm completion (guest and host)
"""

import argparse
import json
import sys

import httpx

BASE_URL = "http://localhost:8000"


def api_request(token: str, method: str, endpoint: str, data: dict | None = None) -> dict:
    """Make authenticated API request."""
    headers = {"Authorization": f"Bearer {token}"}
    url = f"{BASE_URL}/api/v1{endpoint}"

    if method == "GET":
        response = httpx.get(url, headers=headers, timeout=10.0, follow_redirects=True)
    elif method == "POST":
        response = httpx.post(url, headers=headers, json=data or {}, timeout=10.0, follow_redirects=True)
    else:
        raise ValueError(f"Unknown method: {method}")

    return {"status": response.status_code, "data": response.json() if response.text else {}}


def print_step(step: int, title: str):
    """Print step header."""
    print(f"\n{'='*60}")
    print(f"STEP {step}: {title}")
    print("="*60)


def check(result: dict, fields: list[str] | None = None) -> dict:
    """Print the result and stop the flow on an error response."""
    if result["status"] >= 400:
        print(f"ERROR ({result['status']}): {json.dumps(result['data'], indent=2)}")
        sys.exit(1)

    print(f"Status: {result['status']}")
    data = result["data"]
    if fields:
        data = {k: data.get(k) for k in fields if k in data}
    print(json.dumps(data, indent=2))
    return result["data"]


BOOKING_FIELDS = ["booking_number", "status", "payment_status", "total_amount", "host_payout"]


def main():
    parser = argparse.ArgumentParser(description="Booking flow with a manual payment")
    parser.add_argument("--listing-id", required=True, help="Listing UUID")
    parser.add_argument("--start", required=True, help="First night (YYYY-MM-DD)")
    parser.add_argument("--end", required=True, help="Departure date (YYYY-MM-DD)")
    parser.add_argument("--guest-token", required=True)
    parser.add_argument("--host-token", required=True)
    parser.add_argument("--adults", type=int, default=2, help="Number of adults")
    parser.add_argument("--cancel", action="store_true", help="Cancel as guest after paying")
    args = parser.parse_args()
    guest, host = args.guest_token, args.host_token

    print_step(1, "Create booking")
    booking = check(
        api_request(guest, "POST", "/bookings/", {
            "listing_id": args.listing_id,
            "start_date": args.start,
            "end_date": args.end,
            "adults": args.adults,
            "payment_method": "bank_transfer",
        }),
        BOOKING_FIELDS,
    )
    booking_id = booking["id"]

    if booking["status"] == "pending":
        print_step(2, "Approve booking (host)")
        check(api_request(host, "POST", f"/bookings/{booking_id}/approve"), BOOKING_FIELDS)

    print_step(3, "Confirm bank transfer received (host)")
    check(
        api_request(host, "POST", f"/bookings/{booking_id}/confirm-payment", {
            "reference": "demo-transfer",
        }),
        BOOKING_FIELDS,
    )

    if args.cancel:
        print_step(4, "Refund preview and cancel (guest)")
        check(api_request(guest, "POST", f"/bookings/{booking_id}/refund-preview"))
        check(
            api_request(guest, "POST", f"/bookings/{booking_id}/cancel", {
                "reason": "change_of_plans",
            }),
            BOOKING_FIELDS + ["refund_amount"],
        )
        return

    print_step(4, "Check-in and check-out (host)")
    check(api_request(host, "POST", f"/bookings/{booking_id}/check-in", {}), BOOKING_FIELDS)
    check(api_request(host, "POST", f"/bookings/{booking_id}/check-out", {}), BOOKING_FIELDS)

    print_step(5, "Confirm completion (guest, then host)")
    check(api_request(guest, "POST", f"/bookings/{booking_id}/confirm-completion"), BOOKING_FIELDS)
    final = check(
        api_request(host, "POST", f"/bookings/{booking_id}/confirm-completion"),
        BOOKING_FIELDS + ["completed_at"],
    )

    print("\n" + "="*60)
    print("FULL FLOW COMPLETE")
    print("="*60)
    print(f"Booking:     {final['booking_number']}")
    print(f"Total Paid:  {final['total_amount']:,} minor units")
    print(f"Host Payout: {final['host_payout']:,} minor units")


if __name__ == "__main__":
    main()
