# Overview: Integer minor-unit money helpers (all amounts are cents).

from __future__ import annotations


# Maximum price: 9,999,999.99 (999,999,999 cents)
# This prevents database overflow issues and nonsensical prices
MAX_PRICE_CENTS = 999_999_999

BPS_DENOMINATOR = 10_000


def apply_rate_bps(amount_cents: int, rate_bps: int) -> int:
    """
    amount * rate, rounded half-up to a whole cent.

    Integer arithmetic only; rounding happens exactly once per call.
    """
    if amount_cents < 0:
        return -apply_rate_bps(-amount_cents, rate_bps)
    return (amount_cents * rate_bps + BPS_DENOMINATOR // 2) // BPS_DENOMINATOR


def format_cents(amount_cents: int) -> str:
    """Render cents as a 2-place decimal string ("-12.50")."""
    sign = "-" if amount_cents < 0 else ""
    whole, frac = divmod(abs(amount_cents), 100)
    return f"{sign}{whole}.{frac:02d}"
