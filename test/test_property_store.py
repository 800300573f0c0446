import json

import pytest

from conftest import KB, LEEDS, listing
from models import ExactFilters, PriceRange, PropertyRecord
from property_store import DataFrameStore, haversine_km, sort_records

FILTERS = [
    ExactFilters(),
    ExactFilters(beds=2, city="Leeds"),
    ExactFilters(has_nearby_station=False),
    ExactFilters(streets=("Park Row", "Boar Lane")),
    ExactFilters(postcode="ls1"),
    ExactFilters(price_range=PriceRange(max=1000.0)),
    ExactFilters(price_range=PriceRange(min=1000.0, max=1200.0, min_inclusive=True, max_inclusive=True)),
    ExactFilters(require_coordinates=True),
]


@pytest.fixture
def rows():
    return [
        listing(0, price=900),
        listing(1, price=1000, beds=1, has_nearby_station=False),
        listing(2, price=1200, street_address="Boar Lane", postcode="LS2 7AB"),
        listing(3, price=1500, city="York", postcode="YO1 7HH", latitude=None, longitude=None),
        listing(4, price=1000, street_address="Kirkgate", pets_allowed=True),
    ]


def test_store_agrees_with_brute_force_scan(make_store, rows):
    store = make_store(rows)
    records = [PropertyRecord.from_payload(r) for r in rows]
    for f in FILTERS:
        expected = sorted(r.id for r in records if f.matches(r))
        assert store.count_matching(KB, f) == len(expected)
        assert sorted(r.id for r in store.fetch_matching(KB, f)) == expected


def test_knowledge_bases_are_isolated(make_store, rows):
    store = make_store(rows)
    assert store.count_matching("other", ExactFilters()) == 0
    assert store.distinct_values("other", "city", ExactFilters()) == []


def test_distinct_values(make_store, rows):
    store = make_store(rows)
    assert store.distinct_values(KB, "city", ExactFilters()) == ["Leeds", "York"]
    assert store.distinct_values(KB, "street_address", ExactFilters(city="Leeds")) == [
        "Park Row",
        "Boar Lane",
        "Kirkgate",
    ]
    with pytest.raises(ValueError):
        store.distinct_values(KB, "price", ExactFilters())


def test_radius_sets_distance(make_store, rows):
    store = make_store(rows)
    found = store.fetch_matching(KB, ExactFilters(center=LEEDS, radius_km=1.0), order_by="distance")
    assert {r.id for r in found} == {"p0", "p1", "p2", "p4"}
    assert all(r.distance_km == 0.0 for r in found)


def test_fetch_limit_and_order(make_store, rows):
    store = make_store(rows)
    found = store.fetch_matching(KB, ExactFilters(), limit=2)
    assert [r.id for r in found] == ["p4", "p3"]


def test_sort_records_puts_missing_dates_last():
    recs = [
        PropertyRecord.from_payload(listing(0, added_on=None)),
        PropertyRecord.from_payload(listing(1, added_on="2024-01-01")),
        PropertyRecord.from_payload(listing(2, added_on="2024-03-01T08:30:00")),
    ]
    assert [r.id for r in sort_records(recs, "added_on")] == ["p2", "p1", "p0"]


def test_haversine_leeds_to_york():
    assert haversine_km(53.7997, -1.5492, 53.9590, -1.0815) == pytest.approx(35.6, abs=1.0)


def test_from_jsonl_skips_malformed_lines(tmp_path):
    path = tmp_path / "listings.jsonl"
    lines = [json.dumps(listing(0)), "{not json", "", json.dumps(listing(1, city="York"))]
    path.write_text("\n".join(lines), encoding="utf-8")
    store = DataFrameStore.from_jsonl(str(path), knowledge_base_id=KB)
    assert store.count_matching(KB, ExactFilters()) == 2
    assert store.count_matching(KB, ExactFilters(city="York")) == 1


def test_record_requires_price_and_transaction_type():
    with pytest.raises(ValueError):
        PropertyRecord.from_payload({"id": "x", "transaction_type": "rent"})
    with pytest.raises(ValueError):
        PropertyRecord.from_payload({"id": "x", "price": 900})
