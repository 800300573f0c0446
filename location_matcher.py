"""
Free-text location resolution.

Every mode walks an ordered list of stages and stops at the first one that
produces a candidate:

    categorical (city/district/county): exact -> substring -> fuzzy      (best candidate)
    street:                             exact -> substring -> fuzzy -> phonetic (all tied candidates)
    general location:                   geocode -> address ladder (similarity > 0.7) -> degrade to city

A miss is returned as a ``Resolution`` with status ``no_match``; it is never raised.
"""

from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from geocoding import default_bounds, geocode_within_bounds
from helpers import _norm_match_text
from log import log_message
from models import BoundingBox, ExactFilters, PropertyRecord, Resolution
from settings import (
    CATEGORICAL_MIN_SIMILARITY,
    GENERAL_LOCATION_MIN_SIMILARITY,
    LOCATION_SAMPLE_LIMIT,
    STREET_MIN_SIMILARITY,
)
from similarity import phonetic_match, similarity

CATEGORICAL_DIMENSIONS = ("city", "district", "county")
ADDRESS_FIELDS = ("street_address", "full_address", "district", "city")
PHONETIC_SCORE = 0.75

Scored = List[Tuple[str, float]]
Stage = Tuple[str, Callable[[str, Sequence[str]], Scored]]


@dataclass
class LadderMatch:
    stage: str
    candidates: Scored

    @property
    def values(self) -> List[str]:
        return [v for v, _ in self.candidates]


def _exact(search: str, candidates: Sequence[str]) -> Scored:
    needle = _norm_match_text(search)
    return [(c, 1.0) for c in candidates if _norm_match_text(c) == needle]


def _substring(search: str, candidates: Sequence[str]) -> Scored:
    needle = _norm_match_text(search)
    if not needle:
        return []
    out: Scored = []
    for c in candidates:
        value = _norm_match_text(c)
        if not value:
            continue
        if needle in value or value in needle:
            out.append((c, min(len(needle), len(value)) / max(len(needle), len(value))))
    return out


def _fuzzy(threshold: float, strict: bool = False) -> Callable[[str, Sequence[str]], Scored]:
    def stage(search: str, candidates: Sequence[str]) -> Scored:
        needle = _norm_match_text(search)
        out: Scored = []
        for c in candidates:
            score = similarity(needle, _norm_match_text(c))
            if score > threshold or (not strict and score == threshold):
                out.append((c, score))
        return out

    return stage


def _phonetic(search: str, candidates: Sequence[str]) -> Scored:
    return [(c, PHONETIC_SCORE) for c in candidates if phonetic_match(search, c)]


def categorical_stages(threshold: float = CATEGORICAL_MIN_SIMILARITY) -> List[Stage]:
    return [("exact", _exact), ("substring", _substring), ("fuzzy", _fuzzy(threshold))]


def street_stages(threshold: float = STREET_MIN_SIMILARITY) -> List[Stage]:
    return [("exact", _exact), ("substring", _substring), ("fuzzy", _fuzzy(threshold)), ("phonetic", _phonetic)]


def general_stages(threshold: float = GENERAL_LOCATION_MIN_SIMILARITY) -> List[Stage]:
    return [
        ("exact", _exact),
        ("substring", _substring),
        ("fuzzy", _fuzzy(threshold, strict=True)),
        ("phonetic", _phonetic),
    ]


def run_ladder(search: str, candidates: Sequence[str], stages: Sequence[Stage], keep_all: bool) -> Optional[LadderMatch]:
    uniq = list(dict.fromkeys(c for c in candidates if _norm_match_text(c)))
    if not _norm_match_text(search) or not uniq:
        return None
    for name, stage in stages:
        scored = stage(search, uniq)
        if not scored:
            continue
        ranked = sorted(scored, key=lambda x: -x[1])
        if not keep_all:
            ranked = ranked[:1]
        return LadderMatch(stage=name, candidates=ranked)
    return None


def match_categorical(search: str, candidates: Sequence[str]) -> Optional[LadderMatch]:
    return run_ladder(search, candidates, categorical_stages(), keep_all=False)


def match_streets(search: str, candidates: Sequence[str]) -> Optional[LadderMatch]:
    return run_ladder(search, candidates, street_stages(), keep_all=True)


def _centroid(records: Sequence[PropertyRecord]) -> Optional[Tuple[float, float]]:
    pts = [(r.latitude, r.longitude) for r in records if r.has_coordinates]
    if not pts:
        return None
    return (
        sum(p[0] for p in pts) / len(pts),
        sum(p[1] for p in pts) / len(pts),
    )


class LocationMatcher:
    def __init__(self, store, geocoder=None, bounds: Optional[BoundingBox] = None,
                 sample_limit: int = LOCATION_SAMPLE_LIMIT):
        self.store = store
        self.geocoder = geocoder
        self.bounds = bounds or default_bounds()
        self.sample_limit = sample_limit

    def resolve_categorical(self, knowledge_base_id: str, dimension: str, text: str,
                            scope: ExactFilters) -> Resolution:
        if dimension not in CATEGORICAL_DIMENSIONS:
            raise ValueError(f"not a categorical location dimension: {dimension}")
        candidates = self.store.distinct_values(knowledge_base_id, dimension, scope)
        m = match_categorical(text, candidates)
        if m is None:
            log_message("WARN", f"No match found for {dimension}: {text}")
            return Resolution(dimension=dimension, query=text, status="no_match")
        log_message("INFO", f"Fuzzy matched {dimension} {text!r} to {m.values[0]!r} ({m.stage})")
        return Resolution(dimension=dimension, query=text, status="matched", values=m.values, stage=m.stage)

    def resolve_street(self, knowledge_base_id: str, text: str, scope: ExactFilters) -> Resolution:
        candidates = self.store.distinct_values(knowledge_base_id, "street_address", scope)
        m = match_streets(text, candidates)
        if m is None:
            log_message("WARN", f"No match found for street: {text}")
            return Resolution(dimension="street", query=text, status="no_match")
        if len(m.values) == 1:
            log_message("INFO", f"Fuzzy/phonetic matched street {text!r} to {m.values[0]!r} ({m.stage})")
        else:
            log_message(
                "INFO",
                f"Fuzzy/phonetic matched street {text!r} to {len(m.values)} streets: {', '.join(m.values)} ({m.stage})",
            )
        return Resolution(dimension="street", query=text, status="matched", values=m.values, stage=m.stage)

    def resolve_general(self, knowledge_base_id: str, text: str, scope: ExactFilters) -> Resolution:
        geo = geocode_within_bounds(self.geocoder, text, self.bounds)
        if geo is not None:
            log_message("INFO", f"Geocoded location {text!r} to {geo.formatted_address} ({geo.latitude}, {geo.longitude})")
            return Resolution(
                dimension="location",
                query=text,
                status="matched",
                stage="geocode",
                center=(geo.latitude, geo.longitude),
                formatted_address=geo.formatted_address,
            )

        fallback = self._match_address_sample(knowledge_base_id, text, scope)
        if fallback is not None:
            return fallback

        log_message("WARN", f"Could not resolve location {text!r}; degrading to city filter")
        return Resolution(dimension="city", query=text, status="degraded", values=[text])

    def _match_address_sample(self, knowledge_base_id: str, text: str, scope: ExactFilters) -> Optional[Resolution]:
        sample = self.store.fetch_matching(
            knowledge_base_id,
            scope.with_values(require_coordinates=True),
            limit=self.sample_limit,
        )
        by_value: Dict[str, List[PropertyRecord]] = {}
        for rec in sample:
            for name in ADDRESS_FIELDS:
                v = getattr(rec, name)
                if v:
                    by_value.setdefault(v, []).append(rec)

        m = run_ladder(text, list(by_value.keys()), general_stages(), keep_all=True)
        if m is None:
            return None

        matched: Dict[str, PropertyRecord] = {}
        for v in m.values:
            for rec in by_value[v]:
                matched[rec.id] = rec
        center = _centroid(list(matched.values()))
        if center is None:
            return None
        log_message(
            "INFO",
            f"Matched location {text!r} against {len(matched)} sampled addresses ({m.stage}), centre={center}",
        )
        return Resolution(
            dimension="location",
            query=text,
            status="matched",
            values=m.values,
            stage=f"address_{m.stage}",
            center=center,
        )
