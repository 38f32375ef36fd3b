import pytest

from shopledger.money import apply_rate_bps, format_cents


@pytest.mark.parametrize(
    "amount,bps,expected",
    [
        (100000, 800, 8000),
        (24000, 800, 1920),
        (12345, 800, 988),
        (7, 800, 1),
        (6, 800, 0),
        (10, 500, 1),  # exactly half a cent rounds up
        (0, 800, 0),
    ],
)
def test_apply_rate_bps(amount, bps, expected):
    assert apply_rate_bps(amount, bps) == expected


@pytest.mark.parametrize(
    "cents,text",
    [(0, "0.00"), (5, "0.05"), (25920, "259.20"), (-1250, "-12.50")],
)
def test_format_cents(cents, text):
    assert format_cents(cents) == text
