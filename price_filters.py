from typing import Any, Optional

from helpers import round_half_up
from models import InvalidFilterError, PriceFilter, PriceRange


def parse_price_filter(price_filter: Optional[Any]) -> Optional[PriceRange]:
    """
    Convert a PriceFilter into the numeric range every store applies.

    under   -> price <  value
    over    -> price >  value
    between -> value <= price <= max_value
    """
    if price_filter is None:
        return None
    if not isinstance(price_filter, PriceFilter):
        price_filter = PriceFilter.from_dict(price_filter)

    mode = price_filter.mode
    if mode == "under":
        return PriceRange(max=float(price_filter.value))
    if mode == "over":
        return PriceRange(min=float(price_filter.value))
    if mode == "between":
        if price_filter.max_value is None:
            raise InvalidFilterError('max_value is required when filter is "between"')
        return PriceRange(
            min=float(price_filter.value),
            max=float(price_filter.max_value),
            min_inclusive=True,
            max_inclusive=True,
        )
    raise InvalidFilterError(f"Invalid price filter: {mode!r}")


def round_to_nice(value: float, transaction_type: str) -> float:
    if transaction_type == "rent":
        # rents are typically £500-£5000 pcm
        if value < 1000:
            return round_half_up(value, 50)
        if value < 5000:
            return round_half_up(value, 100)
        return round_half_up(value, 500)
    if value < 100000:
        return round_half_up(value, 10000)
    if value < 1000000:
        return round_half_up(value, 50000)
    return round_half_up(value, 100000)
