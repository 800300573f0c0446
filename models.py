from dataclasses import asdict, dataclass, field, fields, replace
from typing import Any, Dict, List, Optional, Tuple, Union

from helpers import (
    _norm_postcode,
    _opt_text,
    _safe_text,
    _to_bool,
    _to_float,
    _to_int,
    _to_timestamp_text,
)

PRICE_MODES = ("under", "over", "between")
TRANSACTION_TYPES = ("rent", "sale")


class InvalidFilterError(ValueError):
    """Caller supplied a malformed filter; raised before any matching runs."""


@dataclass(frozen=True)
class PriceFilter:
    mode: str
    value: float
    max_value: Optional[float] = None

    def __post_init__(self):
        if self.mode not in PRICE_MODES:
            raise InvalidFilterError(f"Invalid price filter: {self.mode!r}")
        if _to_float(self.value) is None:
            raise InvalidFilterError(f"price value must be numeric, got {self.value!r}")
        if self.mode == "between":
            if self.max_value is None:
                raise InvalidFilterError('max_value is required when filter is "between"')
            if _to_float(self.max_value) is None:
                raise InvalidFilterError(f"price max_value must be numeric, got {self.max_value!r}")
            if float(self.max_value) < float(self.value):
                raise InvalidFilterError(
                    f"price max_value ({self.max_value}) must be >= value ({self.value})"
                )

    @classmethod
    def from_dict(cls, obj: Any) -> "PriceFilter":
        if isinstance(obj, PriceFilter):
            return obj
        if not isinstance(obj, dict):
            raise InvalidFilterError(f"price must be an object, got {type(obj).__name__}")
        mode = _safe_text(obj.get("mode") or obj.get("filter")).lower()
        value = _to_float(obj.get("value"))
        max_value = _to_float(obj.get("max_value"))
        if value is None:
            raise InvalidFilterError(f"price value must be numeric, got {obj.get('value')!r}")
        return cls(mode=mode, value=value, max_value=max_value)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"mode": self.mode, "value": _plain_number(self.value)}
        if self.mode == "between":
            out["max_value"] = _plain_number(self.max_value)
        return out


@dataclass(frozen=True)
class PriceRange:
    min: Optional[float] = None
    max: Optional[float] = None
    min_inclusive: bool = False
    max_inclusive: bool = False

    def contains(self, price: Any) -> bool:
        p = _to_float(price)
        if p is None:
            return False
        if self.min is not None:
            if p < self.min or (p == self.min and not self.min_inclusive):
                return False
        if self.max is not None:
            if p > self.max or (p == self.max and not self.max_inclusive):
                return False
        return True


@dataclass(frozen=True)
class BoundingBox:
    min_lat: float
    min_lon: float
    max_lat: float
    max_lon: float

    @classmethod
    def from_text(cls, text: str) -> "BoundingBox":
        parts = [p.strip() for p in str(text).split(",")]
        if len(parts) != 4:
            raise ValueError(f"bounding box needs min_lat,min_lon,max_lat,max_lon, got {text!r}")
        min_lat, min_lon, max_lat, max_lon = (float(p) for p in parts)
        return cls(min_lat=min_lat, min_lon=min_lon, max_lat=max_lat, max_lon=max_lon)

    def contains(self, latitude: float, longitude: float) -> bool:
        return self.min_lat <= latitude <= self.max_lat and self.min_lon <= longitude <= self.max_lon


@dataclass(frozen=True)
class GeocodingResult:
    latitude: float
    longitude: float
    formatted_address: str
    place_id: Optional[str] = None


@dataclass
class FilterSpec:
    beds: Optional[int] = None
    baths: Optional[int] = None
    price: Optional[PriceFilter] = None
    transaction_type: Optional[str] = None
    property_type: Optional[str] = None
    furnished_type: Optional[str] = None
    has_nearby_station: Optional[bool] = None
    city: Optional[str] = None
    district: Optional[str] = None
    county: Optional[str] = None
    street: Optional[str] = None
    postcode: Optional[str] = None
    location: Optional[str] = None
    location_radius_km: Optional[float] = None
    include_all: bool = False

    @classmethod
    def from_dict(cls, obj: Optional[Dict[str, Any]]) -> "FilterSpec":
        obj = obj or {}
        if not isinstance(obj, dict):
            raise InvalidFilterError(f"filters must be an object, got {type(obj).__name__}")

        price = None
        if obj.get("price") is not None:
            price = PriceFilter.from_dict(obj.get("price"))

        ttype = _opt_text(obj.get("transaction_type"))
        if ttype is not None:
            ttype = ttype.lower()
            if ttype not in TRANSACTION_TYPES:
                raise InvalidFilterError(f"transaction_type must be rent or sale, got {ttype!r}")

        radius = None
        if obj.get("location_radius_km") is not None:
            radius = _to_float(obj.get("location_radius_km"))
            if radius is None or radius <= 0:
                raise InvalidFilterError(
                    f"location_radius_km must be a positive number, got {obj.get('location_radius_km')!r}"
                )

        return cls(
            beds=_filter_int(obj, "beds"),
            baths=_filter_int(obj, "baths"),
            price=price,
            transaction_type=ttype,
            property_type=_opt_text(obj.get("property_type")),
            furnished_type=_opt_text(obj.get("furnished_type")),
            has_nearby_station=_filter_bool(obj, "has_nearby_station"),
            city=_opt_text(obj.get("city")),
            district=_opt_text(obj.get("district")),
            county=_opt_text(obj.get("county")),
            street=_opt_text(obj.get("street") or obj.get("street_address")),
            postcode=_opt_text(obj.get("postcode")),
            location=_opt_text(obj.get("location")),
            location_radius_km=radius,
            include_all=bool(_filter_bool(obj, "include_all")),
        )

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            v = getattr(self, f.name)
            if v is None:
                continue
            out[f.name] = v.to_dict() if isinstance(v, PriceFilter) else v
        return out


@dataclass(frozen=True)
class ExactFilters:
    """Fully resolved filters in the form every property store understands."""

    beds: Optional[int] = None
    baths: Optional[int] = None
    transaction_type: Optional[str] = None
    property_type: Optional[str] = None
    furnished_type: Optional[str] = None
    has_nearby_station: Optional[bool] = None
    city: Optional[str] = None
    district: Optional[str] = None
    county: Optional[str] = None
    streets: Tuple[str, ...] = ()
    postcode: Optional[str] = None
    price_range: Optional[PriceRange] = None
    center: Optional[Tuple[float, float]] = None
    radius_km: Optional[float] = None
    require_coordinates: bool = False

    EQUALITY_FIELDS = (
        "beds",
        "baths",
        "transaction_type",
        "property_type",
        "furnished_type",
        "has_nearby_station",
        "city",
        "district",
        "county",
    )

    def with_values(self, **kwargs) -> "ExactFilters":
        return replace(self, **kwargs)

    def equality_items(self) -> List[Tuple[str, Any]]:
        return [(name, getattr(self, name)) for name in self.EQUALITY_FIELDS if getattr(self, name) is not None]

    def matches(self, record: "PropertyRecord") -> bool:
        # Distance is the store's concern; this covers every other condition.
        for name, value in self.equality_items():
            if getattr(record, name) != value:
                return False
        if self.streets and record.street_address not in self.streets:
            return False
        if self.postcode and _norm_postcode(self.postcode) not in _norm_postcode(record.postcode):
            return False
        if self.price_range is not None and not self.price_range.contains(record.price):
            return False
        if self.require_coordinates and not record.has_coordinates:
            return False
        return True


@dataclass
class PropertyRecord:
    id: str
    transaction_type: str
    price: float
    beds: Optional[int] = None
    baths: Optional[int] = None
    property_type: Optional[str] = None
    property_subtype: Optional[str] = None
    furnished_type: Optional[str] = None
    has_nearby_station: Optional[bool] = None
    has_online_viewing: Optional[bool] = None
    pets_allowed: Optional[bool] = None
    street_address: Optional[str] = None
    city: Optional[str] = None
    district: Optional[str] = None
    county: Optional[str] = None
    postcode: Optional[str] = None
    full_address: Optional[str] = None
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    added_on: Optional[str] = None
    scraped_at: Optional[str] = None
    url: Optional[str] = None
    title: Optional[str] = None
    description: Optional[str] = None
    original_data: Dict[str, Any] = field(default_factory=dict)
    distance_km: Optional[float] = None

    @property
    def has_coordinates(self) -> bool:
        return self.latitude is not None and self.longitude is not None

    @classmethod
    def from_payload(cls, obj: Dict[str, Any]) -> "PropertyRecord":
        price = _to_float(obj.get("price"))
        ttype = _safe_text(obj.get("transaction_type")).lower()
        if price is None or not ttype:
            raise ValueError(
                f"property record {obj.get('id')!r} is missing price or transaction_type"
            )
        original = obj.get("original_data")
        return cls(
            id=_safe_text(obj.get("id")),
            transaction_type=ttype,
            price=price,
            beds=_to_int(obj.get("beds")),
            baths=_to_int(obj.get("baths")),
            property_type=_opt_text(obj.get("property_type")),
            property_subtype=_opt_text(obj.get("property_subtype")),
            furnished_type=_opt_text(obj.get("furnished_type")),
            has_nearby_station=_to_bool(obj.get("has_nearby_station")),
            has_online_viewing=_to_bool(obj.get("has_online_viewing")),
            pets_allowed=_to_bool(obj.get("pets_allowed")),
            street_address=_opt_text(obj.get("street_address")),
            city=_opt_text(obj.get("city")),
            district=_opt_text(obj.get("district")),
            county=_opt_text(obj.get("county")),
            postcode=_opt_text(obj.get("postcode")),
            full_address=_opt_text(obj.get("full_address")),
            latitude=_to_float(obj.get("latitude")),
            longitude=_to_float(obj.get("longitude")),
            added_on=_to_timestamp_text(obj.get("added_on")),
            scraped_at=_to_timestamp_text(obj.get("scraped_at")),
            url=_opt_text(obj.get("url")),
            title=_opt_text(obj.get("title")),
            description=_opt_text(obj.get("description")),
            original_data=dict(original) if isinstance(original, dict) else {},
            distance_km=_to_float(obj.get("distance_km")),
        )

    def to_dict(self) -> Dict[str, Any]:
        out = asdict(self)
        if self.distance_km is None:
            out.pop("distance_km")
        return out


FilterValue = Union[str, int, float, bool, PriceFilter]


@dataclass(frozen=True)
class RefinementSuggestion:
    filter_name: str
    filter_value: FilterValue
    result_count: int

    def to_dict(self) -> Dict[str, Any]:
        value = self.filter_value
        if isinstance(value, PriceFilter):
            value = value.to_dict()
        return {
            "filterName": self.filter_name,
            "filterValue": value,
            "resultCount": int(self.result_count),
        }


@dataclass
class QueryResponse:
    properties: List[PropertyRecord] = field(default_factory=list)
    total_count: int = 0
    refinements: List[RefinementSuggestion] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "properties": [p.to_dict() for p in self.properties],
            "totalCount": int(self.total_count),
            "refinements": [r.to_dict() for r in self.refinements],
        }


def _plain_number(v: Any) -> Any:
    f = _to_float(v)
    if f is not None and f.is_integer():
        return int(f)
    return f


def _filter_int(obj: Dict[str, Any], key: str) -> Optional[int]:
    v = obj.get(key)
    if v is None:
        return None
    f = None
    if isinstance(v, str):
        try:
            f = float(v.strip())
        except ValueError:
            f = None
    elif not isinstance(v, bool):
        f = _to_float(v)
    if f is None or not f.is_integer():
        raise InvalidFilterError(f"{key} must be a whole number, got {v!r}")
    return int(f)


def _filter_bool(obj: Dict[str, Any], key: str) -> Optional[bool]:
    v = obj.get(key)
    if v is None:
        return None
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)) and v in (0, 1):
        return bool(v)
    b = _to_bool(v) if isinstance(v, str) else None
    if b is not None:
        return b
    raise InvalidFilterError(f"{key} must be true or false, got {v!r}")


@dataclass
class Resolution:
    """Outcome of resolving one free-text location input."""

    dimension: str
    query: str
    status: str  # matched | no_match | degraded
    values: List[str] = field(default_factory=list)
    stage: Optional[str] = None
    center: Optional[Tuple[float, float]] = None
    formatted_address: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.status == "matched"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
