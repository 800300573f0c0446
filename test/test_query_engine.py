import json

import pytest

from conftest import BRISTOL, KB, FakeGeocoder, listing
from models import FilterSpec, InvalidFilterError, PriceFilter
from query_engine import (
    RETURN_ALL,
    RETURN_NARROWED,
    PropertyQueryEngine,
    available_filters,
    decide,
    query_properties,
)


def test_end_to_end_narrowing_scenario(make_store):
    store = make_store([listing(i, price=p) for i, p in enumerate([900, 1000, 1100, 1200, 5000])])
    resp = query_properties(KB, {}, store)
    assert resp.total_count == 5
    assert resp.properties == []
    prices = [r for r in resp.refinements if r.filter_name == "price"]
    assert [r.filter_value for r in prices] == [
        PriceFilter("under", 1000),
        PriceFilter("between", 1000, 1200),
        PriceFilter("over", 1200),
    ]
    assert sum(r.result_count for r in prices) == 5


def test_small_result_set_is_returned_directly(make_store):
    store = make_store([listing(i, price=900 + i * 100) for i in range(3)])
    resp = query_properties(KB, {}, store)
    assert resp.total_count == 3
    assert len(resp.properties) == 3


def test_results_are_newest_first(make_store):
    store = make_store([listing(i) for i in range(3)])
    resp = query_properties(KB, {}, store)
    assert [p.id for p in resp.properties] == ["p2", "p1", "p0"]


def test_include_all_returns_everything_with_refinements(make_store):
    store = make_store([listing(i, price=900 + i * 100) for i in range(6)])
    resp = query_properties(KB, {"include_all": True}, store)
    assert len(resp.properties) == 6
    assert any(r.result_count < 6 for r in resp.refinements)


def test_narrowing_guarantee(make_store):
    rows = [listing(i, beds=1 + i % 3, price=800 + i * 50) for i in range(9)]
    resp = query_properties(KB, {"transaction_type": "rent"}, make_store(rows))
    assert resp.total_count == 9
    assert resp.properties == []
    assert any(r.result_count < 9 for r in resp.refinements)
    assert all(r.filter_name != "transaction_type" for r in resp.refinements)


def test_indistinguishable_records_fall_back_to_all(make_store):
    store = make_store([listing(i) for i in range(5)])
    resp = query_properties(KB, {}, store)
    assert resp.total_count == 5
    assert len(resp.properties) == 5


def test_street_fallback_narrows_otherwise_identical_listings(make_store):
    rows = [listing(i, street_address="Park Row" if i < 2 else "Boar Lane") for i in range(4)]
    resp = query_properties(KB, {}, make_store(rows))
    assert resp.properties == []
    streets = {(r.filter_value, r.result_count) for r in resp.refinements if r.filter_name == "street_address"}
    assert streets == {("Park Row", 2), ("Boar Lane", 2)}


def test_empty_knowledge_base(make_store):
    resp = query_properties("other-kb", {"beds": 2}, make_store([listing(0)]))
    assert resp.to_dict() == {"properties": [], "totalCount": 0, "refinements": []}


def test_city_typo_resolves(city_store):
    resp = query_properties(KB, {"city": "Leds"}, city_store)
    assert resp.total_count == 4
    assert resp.properties == []
    assert all(r.filter_name != "city" for r in resp.refinements)


def test_unknown_city_lists_available_cities(city_store):
    resp = query_properties(KB, {"city": "Zzzqq"}, city_store)
    assert resp.properties == []
    assert resp.total_count == 0
    assert [(r.filter_name, r.filter_value, r.result_count) for r in resp.refinements] == [
        ("city", "Leeds", 4),
        ("city", "Bristol", 2),
    ]


def test_unknown_district_suggestions_are_scoped_to_city(city_store):
    resp = query_properties(KB, {"city": "Bristol", "district": "Headingley"}, city_store)
    assert resp.total_count == 0
    assert [(r.filter_value, r.result_count) for r in resp.refinements] == [("Clifton", 2)]


def test_street_filter_and_miss(city_store):
    resp = query_properties(KB, {"street": "Whiteladies Rd"}, city_store)
    assert resp.total_count == 2
    assert all(p.street_address == "Whiteladies Road" for p in resp.properties)

    resp = query_properties(KB, {"street": "Qqqxx"}, city_store)
    assert resp.total_count == 0
    assert {r.filter_value for r in resp.refinements} == {"Park Row", "Whiteladies Road"}
    assert all(r.filter_name == "street_address" for r in resp.refinements)


def test_street_that_matches_several_streets_still_narrows(make_store):
    rows = [listing(i, street_address="Craig House Gardens" if i < 3 else "Portland Gardens") for i in range(6)]
    resp = query_properties(KB, {"street": "Gardens"}, make_store(rows))
    assert resp.total_count == 6
    assert resp.properties == []
    streets = {(r.filter_value, r.result_count) for r in resp.refinements if r.filter_name == "street_address"}
    assert streets == {("Craig House Gardens", 3), ("Portland Gardens", 3)}


def test_street_suggestion_can_be_fed_back(make_store):
    rows = [listing(i, street_address="Craig House Gardens" if i < 3 else "Portland Gardens") for i in range(6)]
    store = make_store(rows)
    first = query_properties(KB, {"street": "Gardens"}, store)
    pick = next(r for r in first.refinements if r.filter_name == "street_address")
    resp = query_properties(KB, {pick.filter_name: pick.filter_value}, store)
    assert resp.total_count == 3
    assert {p.street_address for p in resp.properties} == {pick.filter_value}


def test_postcode_is_case_and_space_insensitive(city_store):
    resp = query_properties(KB, {"postcode": "bs82"}, city_store)
    assert resp.total_count == 2


def test_price_filter_applied(city_store):
    resp = query_properties(KB, {"price": {"mode": "under", "value": 1100}}, city_store)
    # 900, 1000 in Leeds plus both Bristol listings at 1000
    assert resp.total_count == 4
    assert all(r.filter_name != "price" for r in resp.refinements)


def test_location_radius_search_sorted_by_distance(make_store, leeds_geocoder):
    rows = [
        listing(0, latitude=53.85, longitude=-1.60),
        listing(1),
        listing(2, city="Bristol", latitude=BRISTOL[0], longitude=BRISTOL[1]),
    ]
    resp = query_properties(KB, {"location": "Leeds"}, make_store(rows), geocoder=leeds_geocoder)
    assert resp.total_count == 2
    assert [p.id for p in resp.properties] == ["p1", "p0"]
    assert resp.properties[0].distance_km == 0.0
    assert 0 < resp.properties[1].distance_km < 25


def test_location_radius_is_honoured(make_store, leeds_geocoder):
    rows = [listing(0), listing(1, latitude=53.95, longitude=-1.08)]
    store = make_store(rows)
    resp = query_properties(KB, {"location": "Leeds", "location_radius_km": 5}, store, geocoder=leeds_geocoder)
    assert [p.id for p in resp.properties] == ["p0"]


def test_location_falls_back_when_geocoder_fails(city_store):
    geocoder = FakeGeocoder(exc=TimeoutError("slow"))
    resp = query_properties(KB, {"location": "Bristol"}, city_store, geocoder=geocoder)
    assert resp.total_count == 2
    assert {p.city for p in resp.properties} == {"Bristol"}


def test_unresolvable_location_degrades_to_city_refinements(city_store):
    resp = query_properties(KB, {"location": "Zzzqq"}, city_store)
    assert resp.total_count == 0
    assert [r.filter_value for r in resp.refinements] == ["Leeds", "Bristol"]


def test_location_ignored_when_city_given(city_store, leeds_geocoder):
    resp = query_properties(KB, {"city": "Bristol", "location": "Leeds"}, city_store, geocoder=leeds_geocoder)
    assert resp.total_count == 2
    assert leeds_geocoder.calls == []


def test_invalid_price_filter_raises(city_store):
    with pytest.raises(InvalidFilterError):
        query_properties(KB, {"price": {"mode": "between", "value": 900}}, city_store)


def test_invalid_transaction_type_raises(city_store):
    with pytest.raises(InvalidFilterError):
        query_properties(KB, {"transaction_type": "lease"}, city_store)


@pytest.mark.parametrize(
    "filters",
    [
        {"beds": "two"},
        {"baths": 1.7},
        {"beds": True},
        {"beds": "2 or 3"},
        {"has_nearby_station": "maybe"},
        {"has_nearby_station": 2},
        {"include_all": "perhaps"},
    ],
)
def test_invalid_numeric_and_flag_filters_raise(city_store, filters):
    with pytest.raises(InvalidFilterError):
        query_properties(KB, filters, city_store)


def test_clean_numeric_and_flag_filters_parse():
    spec = FilterSpec.from_dict({"beds": "2", "baths": 1.0, "has_nearby_station": "no", "include_all": "true"})
    assert spec.beds == 2
    assert spec.baths == 1
    assert spec.has_nearby_station is False
    assert spec.include_all is True


def test_accepts_filter_spec_instance(city_store):
    resp = query_properties(KB, FilterSpec(city="Bristol"), city_store)
    assert resp.total_count == 2


def test_decide_rules():
    assert decide(10, [], include_all=True) == RETURN_ALL
    assert decide(3, [], include_all=False) == RETURN_ALL
    assert decide(0, [], include_all=False) == RETURN_ALL


def test_available_filters(city_store):
    out = available_filters(KB, city_store)
    assert out["city"] == ["Leeds", "Bristol"]
    assert out["transaction_type"] == ["rent"]


def test_query_log_written(tmp_path, city_store):
    path = tmp_path / "debug" / "query_log.jsonl"
    engine = PropertyQueryEngine(city_store, query_log_path=str(path))
    engine.query_properties(KB, {"city": "Leeds"})
    entry = json.loads(path.read_text(encoding="utf-8").strip())
    assert entry["knowledge_base_id"] == KB
    assert entry["decision"] == RETURN_NARROWED
    assert entry["resolutions"][0]["values"] == ["Leeds"]
