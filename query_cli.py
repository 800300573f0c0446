import argparse
import json
import sys
from typing import Any, Dict

from geocoding import GoogleGeocoder
from models import ExactFilters, InvalidFilterError
from property_store import DataFrameStore
from qdrant_store import QdrantStore
from query_engine import PropertyQueryEngine
from response_text import format_response_text


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one structured property query against a listings file.")
    parser.add_argument("--in-file", default=None, help="Listings file (.jsonl or .parquet).")
    parser.add_argument(
        "--store",
        choices=["file", "qdrant"],
        default="file",
        help="Query the listings file in memory, or the Qdrant collection (loading --in-file into it first if given).",
    )
    parser.add_argument("--kb", default="default", help="Knowledge base id to query.")
    parser.add_argument("--beds", type=int, default=None)
    parser.add_argument("--baths", type=int, default=None)
    parser.add_argument("--transaction-type", choices=["rent", "sale"], default=None)
    parser.add_argument("--property-type", default=None)
    parser.add_argument("--furnished-type", default=None)
    parser.add_argument("--nearby-station", choices=["yes", "no"], default=None)
    parser.add_argument("--price-under", type=float, default=None)
    parser.add_argument("--price-over", type=float, default=None)
    parser.add_argument("--price-between", type=float, nargs=2, metavar=("MIN", "MAX"), default=None)
    parser.add_argument("--city", default=None)
    parser.add_argument("--district", default=None)
    parser.add_argument("--county", default=None)
    parser.add_argument("--street", default=None)
    parser.add_argument("--postcode", default=None)
    parser.add_argument("--location", default=None, help="Free-text place; geocoded when an API key is set.")
    parser.add_argument("--radius-km", type=float, default=None)
    parser.add_argument("--include-all", action="store_true")
    parser.add_argument("--json", action="store_true", help="Print the structured response instead of text.")
    return parser.parse_args(argv)


def filters_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    filters: Dict[str, Any] = {
        "beds": args.beds,
        "baths": args.baths,
        "transaction_type": args.transaction_type,
        "property_type": args.property_type,
        "furnished_type": args.furnished_type,
        "city": args.city,
        "district": args.district,
        "county": args.county,
        "street": args.street,
        "postcode": args.postcode,
        "location": args.location,
        "location_radius_km": args.radius_km,
        "include_all": args.include_all,
    }
    if args.nearby_station is not None:
        filters["has_nearby_station"] = args.nearby_station == "yes"
    if args.price_between:
        filters["price"] = {"mode": "between", "value": args.price_between[0], "max_value": args.price_between[1]}
    elif args.price_under is not None:
        filters["price"] = {"mode": "under", "value": args.price_under}
    elif args.price_over is not None:
        filters["price"] = {"mode": "over", "value": args.price_over}
    return {k: v for k, v in filters.items() if v is not None}


def load_file_store(path: str, knowledge_base_id: str) -> DataFrameStore:
    if path.lower().endswith(".parquet"):
        return DataFrameStore.from_parquet(path, knowledge_base_id=knowledge_base_id)
    return DataFrameStore.from_jsonl(path, knowledge_base_id=knowledge_base_id)


def load_store(args: argparse.Namespace):
    if args.store == "file":
        if not args.in_file:
            raise SystemExit("--in-file is required with --store file")
        return load_file_store(args.in_file, args.kb)

    store = QdrantStore()
    if args.in_file:
        records = load_file_store(args.in_file, args.kb).fetch_matching(args.kb, ExactFilters())
        store.upsert_properties(args.kb, records)
    return store


def main(argv=None) -> int:
    args = parse_args(argv)
    store = load_store(args)
    engine = PropertyQueryEngine(store, geocoder=GoogleGeocoder())
    try:
        response = engine.query_properties(args.kb, filters_from_args(args))
    except InvalidFilterError as e:
        print(f"Invalid filters: {e}", file=sys.stderr)
        return 2
    if args.json:
        print(json.dumps(response.to_dict(), ensure_ascii=False, indent=2, default=str))
    else:
        print(format_response_text(response))
    return 0


if __name__ == "__main__":
    sys.exit(main())
