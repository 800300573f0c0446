"""Property store collaborators.

The query engine only needs three read operations, all honouring the same
exact-match semantics (see ``ExactFilters``):

    count_matching(knowledge_base_id, filters) -> int
    fetch_matching(knowledge_base_id, filters, order_by="added_on", limit=None) -> [PropertyRecord]
    distinct_values(knowledge_base_id, dimension, filters) -> [str]

``DataFrameStore`` keeps a knowledge base in a pandas DataFrame; ``QdrantStore``
(qdrant_store.py) reads a Qdrant collection.
"""

import json
import os
from dataclasses import fields
from typing import Any, Dict, Iterable, List, Optional, Protocol

import numpy as np
import pandas as pd

from helpers import _norm_postcode
from log import log_message
from models import ExactFilters, PropertyRecord

EARTH_RADIUS_KM = 6371.0088

RECORD_COLUMNS = [f.name for f in fields(PropertyRecord)]
DIMENSION_COLUMNS = {
    "transaction_type",
    "beds",
    "baths",
    "property_type",
    "furnished_type",
    "has_nearby_station",
    "street_address",
    "full_address",
    "city",
    "district",
    "county",
    "postcode",
}


class PropertyStore(Protocol):
    def count_matching(self, knowledge_base_id: str, filters: ExactFilters) -> int:
        ...

    def fetch_matching(
        self,
        knowledge_base_id: str,
        filters: ExactFilters,
        order_by: str = "added_on",
        limit: Optional[int] = None,
    ) -> List[PropertyRecord]:
        ...

    def distinct_values(self, knowledge_base_id: str, dimension: str, filters: ExactFilters) -> List[str]:
        ...


def haversine_km(lat1, lon1, lat2, lon2):
    lat1, lon1, lat2, lon2 = map(np.radians, (lat1, lon1, lat2, lon2))
    dlat = lat2 - lat1
    dlon = lon2 - lon1
    a = np.sin(dlat / 2.0) ** 2 + np.cos(lat1) * np.cos(lat2) * np.sin(dlon / 2.0) ** 2
    return 2.0 * EARTH_RADIUS_KM * np.arcsin(np.sqrt(a))


def sort_records(records: List[PropertyRecord], order_by: str) -> List[PropertyRecord]:
    """Nearest first for ``distance``; otherwise newest first on the timestamp column."""
    if order_by == "distance":
        return sorted(
            records,
            key=lambda r: (r.distance_km is None, r.distance_km if r.distance_km is not None else 0.0),
        )
    keys = pd.to_datetime(
        pd.Series([getattr(r, order_by, None) for r in records], dtype="object"),
        errors="coerce",
        utc=True,
        format="ISO8601",
    )
    order = sorted(
        range(len(records)),
        key=lambda i: (pd.isna(keys.iloc[i]), -keys.iloc[i].value if not pd.isna(keys.iloc[i]) else 0),
    )
    return [records[i] for i in order]


class DataFrameStore:
    """In-memory store; one DataFrame row per property, keyed by ``knowledge_base_id``."""

    def __init__(self, df: Optional[pd.DataFrame] = None):
        if df is None:
            df = pd.DataFrame(columns=["knowledge_base_id"] + RECORD_COLUMNS)
        for col in ["knowledge_base_id"] + RECORD_COLUMNS:
            if col not in df.columns:
                df[col] = None
        self.df = df.reset_index(drop=True)
        self.df["price"] = pd.to_numeric(self.df["price"], errors="coerce")
        self.df["latitude"] = pd.to_numeric(self.df["latitude"], errors="coerce")
        self.df["longitude"] = pd.to_numeric(self.df["longitude"], errors="coerce")

    @classmethod
    def from_records(
        cls,
        records: Iterable[Any],
        knowledge_base_id: Optional[str] = None,
    ) -> "DataFrameStore":
        rows: List[Dict[str, Any]] = []
        for i, r in enumerate(records):
            if isinstance(r, PropertyRecord):
                row = r.to_dict()
                kb = knowledge_base_id
            else:
                raw = dict(r)
                kb = raw.get("knowledge_base_id") or knowledge_base_id
                raw.setdefault("id", str(i))
                row = PropertyRecord.from_payload(raw).to_dict()
            row.pop("distance_km", None)
            row["knowledge_base_id"] = kb
            rows.append(row)
        df = pd.DataFrame(rows, columns=["knowledge_base_id"] + RECORD_COLUMNS)
        return cls(df)

    @classmethod
    def from_jsonl(cls, path: str, knowledge_base_id: Optional[str] = None) -> "DataFrameStore":
        rows: List[Dict[str, Any]] = []
        with open(path, "r", encoding="utf-8") as f:
            for line_no, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    rows.append(json.loads(line))
                except json.JSONDecodeError as e:
                    log_message("WARN", f"skipping malformed line {line_no} in {path}: {e}")
        log_message("INFO", f"loaded {len(rows)} properties from {path}")
        return cls.from_records(rows, knowledge_base_id=knowledge_base_id)

    @classmethod
    def from_parquet(cls, path: str, knowledge_base_id: Optional[str] = None) -> "DataFrameStore":
        if not os.path.exists(path):
            raise FileNotFoundError(f"Missing property file: {path}")
        raw = pd.read_parquet(path)
        log_message("INFO", f"loaded {len(raw)} properties from {path}")
        return cls.from_records(raw.to_dict(orient="records"), knowledge_base_id=knowledge_base_id)

    def _mask(self, knowledge_base_id: str, filters: ExactFilters) -> pd.Series:
        df = self.df
        mask = df["knowledge_base_id"] == knowledge_base_id
        for name, value in filters.equality_items():
            mask &= df[name] == value
        if filters.streets:
            mask &= df["street_address"].isin(list(filters.streets))
        if filters.postcode:
            needle = _norm_postcode(filters.postcode)
            mask &= df["postcode"].map(_norm_postcode).str.contains(needle, regex=False)
        pr = filters.price_range
        if pr is not None:
            price = df["price"]
            if pr.min is not None:
                mask &= (price >= pr.min) if pr.min_inclusive else (price > pr.min)
            if pr.max is not None:
                mask &= (price <= pr.max) if pr.max_inclusive else (price < pr.max)
        if filters.require_coordinates or filters.center is not None:
            mask &= df["latitude"].notna() & df["longitude"].notna()
        if filters.center is not None and filters.radius_km is not None:
            mask &= self._distances(filters) <= filters.radius_km
        return mask.fillna(False).astype(bool)

    def _distances(self, filters: ExactFilters) -> pd.Series:
        lat, lon = filters.center
        return pd.Series(
            haversine_km(lat, lon, self.df["latitude"].to_numpy(dtype=float), self.df["longitude"].to_numpy(dtype=float)),
            index=self.df.index,
        )

    def count_matching(self, knowledge_base_id: str, filters: ExactFilters) -> int:
        return int(self._mask(knowledge_base_id, filters).sum())

    def fetch_matching(
        self,
        knowledge_base_id: str,
        filters: ExactFilters,
        order_by: str = "added_on",
        limit: Optional[int] = None,
    ) -> List[PropertyRecord]:
        mask = self._mask(knowledge_base_id, filters)
        sub = self.df[mask]
        distances = self._distances(filters)[mask] if filters.center is not None else None

        records: List[PropertyRecord] = []
        for idx, row in sub.iterrows():
            payload = {k: row[k] for k in RECORD_COLUMNS}
            rec = PropertyRecord.from_payload(payload)
            if distances is not None:
                rec.distance_km = round(float(distances.loc[idx]), 2)
            records.append(rec)

        records = sort_records(records, order_by)
        if limit is not None:
            records = records[: max(0, int(limit))]
        return records

    def distinct_values(self, knowledge_base_id: str, dimension: str, filters: ExactFilters) -> List[str]:
        if dimension not in DIMENSION_COLUMNS:
            raise ValueError(f"unknown property dimension: {dimension}")
        col = self.df.loc[self._mask(knowledge_base_id, filters), dimension]
        out: List[str] = []
        seen = set()
        for v in col.dropna().tolist():
            s = str(v).strip()
            if not s or s in seen:
                continue
            seen.add(s)
            out.append(s)
        return out
