from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Set, Tuple, Union

from geocoding import default_bounds
from location_matcher import CATEGORICAL_DIMENSIONS, LocationMatcher
from log import append_query_log_entry, log_message
from models import (
    BoundingBox,
    ExactFilters,
    FilterSpec,
    PropertyRecord,
    QueryResponse,
    RefinementSuggestion,
    Resolution,
)
from price_filters import parse_price_filter
from refinements import (
    generate_refinements,
    location_suggestions,
    similar_street_suggestions,
)
from settings import (
    DEFAULT_ORDER_BY,
    DEFAULT_RADIUS_KM,
    ENABLE_QUERY_LOG,
    QUERY_LOG_PATH,
    RESULT_CAP,
)

RETURN_ALL = "RETURN_ALL"
RETURN_EMPTY_WITH_REFINEMENTS = "RETURN_EMPTY_WITH_REFINEMENTS"
RETURN_NARROWED = "RETURN_NARROWED"


class PropertyQueryEngine:
    """
    Structured property search for a voice assistant.

    Free-text location inputs are resolved to exact values first, the store is
    counted once, and the result policy decides whether to hand back listings or
    refinement suggestions:

      - a location that matches nothing  -> no listings, suggestions for that dimension
      - include_all                      -> every listing
      - total <= result_cap              -> every listing
      - some suggestion narrows the set  -> no listings, suggestions
      - otherwise                        -> every listing
    """

    def __init__(
        self,
        store,
        geocoder=None,
        bounds: Optional[BoundingBox] = None,
        result_cap: int = RESULT_CAP,
        default_radius_km: float = DEFAULT_RADIUS_KM,
        order_by: str = DEFAULT_ORDER_BY,
        query_log_path: Optional[str] = None,
    ):
        self.store = store
        self.matcher = LocationMatcher(store, geocoder=geocoder, bounds=bounds or default_bounds())
        self.result_cap = int(result_cap)
        self.default_radius_km = float(default_radius_km)
        self.order_by = order_by
        if query_log_path is None and ENABLE_QUERY_LOG:
            query_log_path = QUERY_LOG_PATH
        self.query_log_path = query_log_path

    def query_properties(
        self,
        knowledge_base_id: str,
        filters: Union[FilterSpec, Dict[str, Any], None] = None,
    ) -> QueryResponse:
        spec = filters if isinstance(filters, FilterSpec) else FilterSpec.from_dict(filters)
        log_message("INFO", f"[{knowledge_base_id}] query filters={spec.to_dict()}")

        resolutions: List[Resolution] = []
        response, decision = self._run(knowledge_base_id, spec, resolutions)

        log_message(
            "INFO",
            f"[{knowledge_base_id}] decision={decision} total={response.total_count} "
            f"returned={len(response.properties)} refinements={len(response.refinements)}",
        )
        if self.query_log_path:
            append_query_log_entry(
                self.query_log_path,
                {
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "knowledge_base_id": knowledge_base_id,
                    "filters": spec.to_dict(),
                    "resolutions": [r.to_dict() for r in resolutions],
                    "decision": decision,
                    "response": response.to_dict(),
                },
            )
        return response

    def _run(
        self,
        knowledge_base_id: str,
        spec: FilterSpec,
        resolutions: List[Resolution],
    ) -> Tuple[QueryResponse, str]:
        exact = ExactFilters(
            beds=spec.beds,
            baths=spec.baths,
            transaction_type=spec.transaction_type,
            property_type=spec.property_type,
            furnished_type=spec.furnished_type,
            has_nearby_station=spec.has_nearby_station,
            postcode=spec.postcode,
            price_range=parse_price_filter(spec.price),
        )
        order_by = self.order_by

        # city -> district -> county, each scoped by the ones before it
        location_scope = ExactFilters()
        for dim in CATEGORICAL_DIMENSIONS:
            text = getattr(spec, dim)
            if not text:
                continue
            res = self.matcher.resolve_categorical(knowledge_base_id, dim, text, location_scope)
            resolutions.append(res)
            if not res.matched:
                return self._location_miss(knowledge_base_id, dim, location_scope), RETURN_EMPTY_WITH_REFINEMENTS
            location_scope = location_scope.with_values(**{dim: res.values[0]})
        exact = exact.with_values(city=location_scope.city, district=location_scope.district, county=location_scope.county)

        has_decomposed = any([spec.city, spec.district, spec.county, spec.street])
        if spec.location and has_decomposed:
            log_message("DEBUG", f"location {spec.location!r} ignored, decomposed location fields given")
        elif spec.location:
            radius = spec.location_radius_km or self.default_radius_km
            res = self.matcher.resolve_general(knowledge_base_id, spec.location, exact)
            resolutions.append(res)
            if res.matched:
                exact = exact.with_values(center=res.center, radius_km=radius)
                order_by = "distance"
            else:
                city_res = self.matcher.resolve_categorical(knowledge_base_id, "city", res.query, ExactFilters())
                resolutions.append(city_res)
                if not city_res.matched:
                    return self._location_miss(knowledge_base_id, "city", ExactFilters()), RETURN_EMPTY_WITH_REFINEMENTS
                exact = exact.with_values(city=city_res.values[0])

        if spec.street:
            res = self.matcher.resolve_street(knowledge_base_id, spec.street, exact)
            resolutions.append(res)
            if not res.matched:
                pool = self.store.fetch_matching(knowledge_base_id, exact)
                refinements = similar_street_suggestions(pool, spec.street)
                return QueryResponse(properties=[], total_count=0, refinements=refinements), RETURN_EMPTY_WITH_REFINEMENTS
            exact = exact.with_values(streets=tuple(res.values))

        total = self.store.count_matching(knowledge_base_id, exact)
        log_message("INFO", f"[{knowledge_base_id}] exact-match count={total}")
        records: List[PropertyRecord] = []
        if total > 0:
            records = self.store.fetch_matching(knowledge_base_id, exact, order_by=order_by)

        refinements = generate_refinements(
            records,
            applied_dimensions(exact, spec),
            total,
            transaction_type=exact.transaction_type,
        )
        decision = decide(total, refinements, spec.include_all, self.result_cap)
        properties = [] if decision == RETURN_NARROWED else records
        return QueryResponse(properties=properties, total_count=total, refinements=refinements), decision

    def _location_miss(self, knowledge_base_id: str, dimension: str, scope: ExactFilters) -> QueryResponse:
        pool = self.store.fetch_matching(knowledge_base_id, scope)
        return QueryResponse(properties=[], total_count=0, refinements=location_suggestions(pool, dimension))

    def available_filters(self, knowledge_base_id: str) -> Dict[str, List[Any]]:
        """Every value a caller could filter on, grouped by filter name."""
        response = self.query_properties(knowledge_base_id, FilterSpec(include_all=True))
        out: Dict[str, List[Any]] = {}
        for r in response.refinements:
            value = r.to_dict()["filterValue"]
            out.setdefault(r.filter_name, []).append(value)
        return out


def applied_dimensions(exact: ExactFilters, spec: FilterSpec) -> Set[str]:
    applied = {name for name, _ in exact.equality_items()}
    if spec.price is not None:
        applied.add("price")
    # several matched streets still split the set
    if len(exact.streets) == 1:
        applied.add("street_address")
    return applied


def decide(total: int, refinements: List[RefinementSuggestion], include_all: bool, result_cap: int = RESULT_CAP) -> str:
    if include_all:
        return RETURN_ALL
    if total <= result_cap:
        return RETURN_ALL
    if any(r.result_count < total for r in refinements):
        return RETURN_NARROWED
    return RETURN_ALL


def query_properties(
    knowledge_base_id: str,
    filters: Union[FilterSpec, Dict[str, Any], None],
    store,
    geocoder=None,
    bounds: Optional[BoundingBox] = None,
) -> QueryResponse:
    return PropertyQueryEngine(store, geocoder=geocoder, bounds=bounds).query_properties(knowledge_base_id, filters)


def available_filters(knowledge_base_id: str, store) -> Dict[str, List[Any]]:
    return PropertyQueryEngine(store).available_filters(knowledge_base_id)
