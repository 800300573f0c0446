from typing import Any, List, Optional

from helpers import format_money
from models import PriceFilter, PropertyRecord, QueryResponse, RefinementSuggestion

NOT_SPECIFIED = "Not specified"


def _or_unspecified(v: Any) -> str:
    if v is None or v == "":
        return NOT_SPECIFIED
    return str(v)


def _yes_no(v: Optional[bool], unknown: str = "No") -> str:
    if v is None:
        return unknown
    return "Yes" if v else "No"


def _filter_label(name: str) -> str:
    return " ".join(w[:1].upper() + w[1:] for w in name.split("_"))


def _refinement_value(value: Any) -> str:
    if isinstance(value, PriceFilter):
        if value.mode == "under":
            return f"under {format_money(value.value)}"
        if value.mode == "over":
            return f"over {format_money(value.value)}"
        return f"{format_money(value.value)} - {format_money(value.max_value)}"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        return f'"{value}"'
    return str(value)


def format_property(index: int, prop: PropertyRecord) -> List[str]:
    lines = [
        f"Property {index}:",
        f"Beds: {_or_unspecified(prop.beds)}",
        f"Baths: {_or_unspecified(prop.baths)}",
        f"Price: {format_money(prop.price)}",
        f"Property Type: {_or_unspecified(prop.property_type)}",
        f"Property Subtype: {_or_unspecified(prop.property_subtype)}",
        f"Title: {_or_unspecified(prop.title)}",
        f"Transaction Type: {_or_unspecified(prop.transaction_type)}",
        f"Full Address: {_or_unspecified(prop.full_address)}",
        f"City: {_or_unspecified(prop.city)}",
        f"Furnished Type: {_or_unspecified(prop.furnished_type)}",
        f"Has Nearby Station: {_yes_no(prop.has_nearby_station)}",
        f"Has Online Viewing: {_yes_no(prop.has_online_viewing)}",
        f"Pets Allowed: {_yes_no(prop.pets_allowed, unknown=NOT_SPECIFIED)}",
        f"Description: {_or_unspecified(prop.description)}",
    ]
    if prop.distance_km is not None:
        lines.append(f"Distance: {prop.distance_km} km")
    return lines


def format_refinement(r: RefinementSuggestion) -> str:
    noun = "result" if r.result_count == 1 else "results"
    return f"{_filter_label(r.filter_name)} {_refinement_value(r.filter_value)}: {r.result_count} {noun}"


def format_response_text(response: QueryResponse) -> str:
    """Plain-text rendering read back to the voice assistant."""
    lines = [f"PROPERTIES (Total: {response.total_count})", "---", ""]
    for i, prop in enumerate(response.properties, start=1):
        lines.extend(format_property(i, prop))
        lines.append("")

    lines.append("REFINEMENTS")
    lines.append("---")
    if not response.refinements:
        lines.append("No refinements available")
    else:
        lines.extend(format_refinement(r) for r in response.refinements)
    return "\n".join(lines)
