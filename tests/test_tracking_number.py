import pytest

from trackpool.utils.tracking_number import (
    format_tracking_number,
    is_valid_tracking_number,
    normalize_tracking_number,
)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("9405536207565275376438", "9405536207565275376438"),
        ("9405 5362 0756 5275 3764 38", "9405536207565275376438"),
        ("9405-5362-0756-5275-3764-38", "9405536207565275376438"),
        ("  94055362075652753764\t", "94055362075652753764"),
        ("bad", ""),
        ("\uff19" * 22, ""),
        (None, ""),
    ],
)
def test_normalize_strips_non_digits(raw, expected):
    assert normalize_tracking_number(raw) == expected


@pytest.mark.parametrize(
    "number, expected",
    [
        ("94055362075652753764", True),
        ("940553620756527537643", True),
        ("9405536207565275376438", True),
        ("9405536207565275376", False),
        ("94055362075652753764380", False),
        ("", False),
        ("\uff19" * 22, False),
        ("\u0669" * 20, False),
    ],
)
def test_length_bounds(number, expected):
    assert is_valid_tracking_number(number) is expected


def test_format_groups_22_digit_numbers():
    assert format_tracking_number("9405536207565275376438") == "9405 5362 0756 5275 3764 38"


def test_format_leaves_other_lengths_alone():
    assert format_tracking_number("94055362075652753764") == "94055362075652753764"
    assert format_tracking_number("1234567890") == "1234567890"
