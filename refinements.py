"""
Refinement suggestions: which single extra filter would narrow the current result set.

Dimensions are visited in a fixed priority order and only those the caller has not
already filtered on are considered:

    transaction_type, beds, baths, city, district, county, price,
    property_type, furnished_type, has_nearby_station

If none of those splits the set, distinct street addresses are offered instead.
"""

import math
from typing import Iterable, List, Optional, Sequence, Set

import pandas as pd

from helpers import _norm_match_text
from models import PriceFilter, PropertyRecord, RefinementSuggestion
from price_filters import round_to_nice
from settings import STREET_PHONETIC_SCORE, STREET_REFINEMENT_LIMIT
from similarity import phonetic_match, similarity

DIMENSION_ORDER = (
    "transaction_type",
    "beds",
    "baths",
    "city",
    "district",
    "county",
    "price",
    "property_type",
    "furnished_type",
    "has_nearby_station",
)
NUMERIC_DIMENSIONS = ("beds", "baths")
COUNT_SORTED_DIMENSIONS = ("city", "district", "county", "property_type", "furnished_type")


def _records_frame(records: Sequence[PropertyRecord]) -> pd.DataFrame:
    cols = list(DIMENSION_ORDER) + ["street_address"]
    cols.remove("price")
    rows = [{**{c: getattr(r, c) for c in cols}, "price": r.price} for r in records]
    return pd.DataFrame(rows, columns=cols + ["price"])


def _group_counts(series: pd.Series) -> pd.Series:
    """Counts per non-null value, in first-seen order."""
    s = series.dropna()
    if s.empty:
        return pd.Series(dtype="int64")
    return s.groupby(s, sort=False).size()


def _by_count(counts: pd.Series) -> pd.Series:
    return counts.sort_values(ascending=False, kind="stable")


def _plain(v):
    if hasattr(v, "item"):
        v = v.item()
    if isinstance(v, float) and v.is_integer():
        return int(v)
    return v


def _categorical(name: str, series: pd.Series) -> List[RefinementSuggestion]:
    counts = _group_counts(series)
    if counts.empty:
        return []
    if name in NUMERIC_DIMENSIONS:
        counts = counts.sort_index(kind="stable")
    elif name == "has_nearby_station":
        ordered = [(True, int(counts.get(True, 0))), (False, int(counts.get(False, 0)))]
        return [RefinementSuggestion(name, v, c) for v, c in ordered if c > 0]
    elif name in COUNT_SORTED_DIMENSIONS:
        counts = _by_count(counts)
    return [RefinementSuggestion(name, _plain(v), int(c)) for v, c in counts.items() if c > 0]


def effective_transaction_type(records: Sequence[PropertyRecord], applied: Optional[str]) -> Optional[str]:
    if applied:
        return applied
    types = {r.transaction_type for r in records if r.transaction_type}
    if len(types) == 1:
        return types.pop()
    return None


def price_suggestions(prices: Iterable[float], transaction_type: str) -> List[RefinementSuggestion]:
    """Split prices at the 33rd and 66th percentiles, rounded to a readable step."""
    values = sorted(float(p) for p in prices if p is not None and not math.isnan(float(p)))
    n = len(values)
    if n == 0 or values[-1] <= values[0]:
        return []

    t1 = values[int(n * 0.33)]
    t2 = values[int(n * 0.66)]
    r1 = round_to_nice(t1, transaction_type)
    r2 = round_to_nice(t2, transaction_type)
    if r1 == r2 and any(p > r1 for p in values):
        r2 = float(math.ceil(t2))

    if r1 < r2:
        buckets = [
            (PriceFilter("under", r1), sum(1 for p in values if p < r1)),
            (PriceFilter("between", r1, r2), sum(1 for p in values if r1 <= p <= r2)),
            (PriceFilter("over", r2), sum(1 for p in values if p > r2)),
        ]
    else:
        buckets = [
            (PriceFilter("under", r1), sum(1 for p in values if p < r1)),
            (PriceFilter("over", r1), sum(1 for p in values if p > r1)),
        ]
    return [RefinementSuggestion("price", pf, c) for pf, c in buckets if c > 0]


def street_suggestions(records: Sequence[PropertyRecord], total_count: int) -> List[RefinementSuggestion]:
    counts = _by_count(_group_counts(_records_frame(records)["street_address"]))
    return [
        RefinementSuggestion("street_address", v, int(c))
        for v, c in counts.items()
        if 0 < c < total_count
    ]


def generate_refinements(
    records: Sequence[PropertyRecord],
    applied: Set[str],
    total_count: int,
    transaction_type: Optional[str] = None,
) -> List[RefinementSuggestion]:
    if not records or total_count <= 0:
        return []

    df = _records_frame(records)
    out: List[RefinementSuggestion] = []
    for name in DIMENSION_ORDER:
        if name in applied:
            continue
        if name == "price":
            ttype = effective_transaction_type(records, transaction_type)
            if ttype is not None:
                out.extend(price_suggestions(df["price"].tolist(), ttype))
            continue
        out.extend(_categorical(name, df[name]))

    narrowing = any(s.result_count < total_count for s in out)
    if not narrowing and total_count > 1 and "street_address" not in applied:
        out.extend(street_suggestions(records, total_count))
    return out


def location_suggestions(records: Sequence[PropertyRecord], dimension: str) -> List[RefinementSuggestion]:
    """Every value of ``dimension`` present in ``records``, most frequent first."""
    counts = _by_count(_group_counts(pd.Series([getattr(r, dimension) for r in records], dtype="object")))
    return [RefinementSuggestion(dimension, v, int(c)) for v, c in counts.items() if c > 0]


def similar_street_suggestions(
    records: Sequence[PropertyRecord],
    search: str,
    limit: int = STREET_REFINEMENT_LIMIT,
) -> List[RefinementSuggestion]:
    """Closest streets to an unmatched search, ranked by similarity then frequency."""
    counts = _group_counts(pd.Series([r.street_address for r in records], dtype="object"))
    needle = _norm_match_text(search)
    ranked = []
    for street, c in counts.items():
        score = similarity(needle, _norm_match_text(street))
        if phonetic_match(search, street):
            score = max(score, STREET_PHONETIC_SCORE)
        ranked.append((score, int(c), street))
    ranked.sort(key=lambda x: (-x[0], -x[1]))
    return [RefinementSuggestion("street_address", street, c) for _, c, street in ranked[: max(0, int(limit))]]
