import pytest

from models import InvalidFilterError, PriceFilter, PriceRange
from price_filters import parse_price_filter, round_to_nice

PRICES = [899, 900, 901, 1000, 1199, 1200, 1201]


def _brute_force(pf, prices):
    if pf.mode == "under":
        return [p for p in prices if p < pf.value]
    if pf.mode == "over":
        return [p for p in prices if p > pf.value]
    return [p for p in prices if pf.value <= p <= pf.max_value]


def test_none_passes_through():
    assert parse_price_filter(None) is None


def test_under_and_over_are_exclusive():
    under = parse_price_filter(PriceFilter("under", 900))
    over = parse_price_filter(PriceFilter("over", 1200))
    assert under == PriceRange(max=900.0)
    assert over == PriceRange(min=1200.0)
    assert not under.contains(900)
    assert not over.contains(1200)


def test_between_is_inclusive():
    rng = parse_price_filter({"mode": "between", "value": 900, "max_value": 1200})
    assert rng.min_inclusive and rng.max_inclusive
    assert rng.contains(900) and rng.contains(1200)
    assert not rng.contains(1201)


def test_range_matches_brute_force_scan():
    for pf in (PriceFilter("under", 1000), PriceFilter("over", 900), PriceFilter("between", 900, 1200)):
        rng = parse_price_filter(pf)
        assert [p for p in PRICES if rng.contains(p)] == _brute_force(pf, PRICES)


def test_legacy_filter_key_is_accepted():
    rng = parse_price_filter({"filter": "under", "value": "1,500"})
    assert rng.max == 1500.0


@pytest.mark.parametrize(
    "payload",
    [
        {"mode": "between", "value": 900},
        {"mode": "around", "value": 900},
        {"mode": "under", "value": "cheap"},
        {"mode": "between", "value": 1200, "max_value": 900},
    ],
)
def test_malformed_filters_raise(payload):
    with pytest.raises(InvalidFilterError):
        parse_price_filter(payload)


def test_round_to_nice_rent_steps():
    assert round_to_nice(925, "rent") == 950
    assert round_to_nice(1049, "rent") == 1000
    assert round_to_nice(1050, "rent") == 1100
    assert round_to_nice(6200, "rent") == 6000


def test_round_to_nice_sale_steps():
    assert round_to_nice(84000, "sale") == 80000
    assert round_to_nice(275000, "sale") == 300000
    assert round_to_nice(1260000, "sale") == 1300000
