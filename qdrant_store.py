import uuid
from typing import Any, Dict, Iterable, Iterator, List, Optional

from qdrant_client import QdrantClient, models

from helpers import _norm_postcode
from log import log_message
from models import ExactFilters, PropertyRecord
from property_store import DIMENSION_COLUMNS, RECORD_COLUMNS, haversine_km, sort_records
from settings import (
    QDRANT_COLLECTION,
    QDRANT_LOCAL_PATH,
    QDRANT_SCROLL_BATCH,
    QDRANT_URL,
)


def load_qdrant_client() -> QdrantClient:
    if QDRANT_URL:
        client = QdrantClient(url=QDRANT_URL)
    else:
        client = QdrantClient(path=QDRANT_LOCAL_PATH)
    return client


def build_qdrant_filter(knowledge_base_id: str, filters: ExactFilters) -> models.Filter:
    must: List[Any] = [
        models.FieldCondition(key="knowledge_base_id", match=models.MatchValue(value=knowledge_base_id))
    ]
    must_not: List[Any] = []

    for name, value in filters.equality_items():
        must.append(models.FieldCondition(key=name, match=models.MatchValue(value=value)))

    if filters.streets:
        must.append(
            models.FieldCondition(key="street_address", match=models.MatchAny(any=list(filters.streets)))
        )

    if filters.postcode:
        # postcode_key holds the lowercased, space-free postcode; MatchText is a substring test
        # on unindexed fields.
        must.append(
            models.FieldCondition(key="postcode_key", match=models.MatchText(text=_norm_postcode(filters.postcode)))
        )

    pr = filters.price_range
    if pr is not None:
        rng: Dict[str, float] = {}
        if pr.min is not None:
            rng["gte" if pr.min_inclusive else "gt"] = pr.min
        if pr.max is not None:
            rng["lte" if pr.max_inclusive else "lt"] = pr.max
        must.append(models.FieldCondition(key="price", range=models.Range(**rng)))

    if filters.center is not None and filters.radius_km is not None:
        lat, lon = filters.center
        must.append(
            models.FieldCondition(
                key="location",
                geo_radius=models.GeoRadius(
                    center=models.GeoPoint(lat=lat, lon=lon),
                    radius=float(filters.radius_km) * 1000.0,
                ),
            )
        )
    elif filters.require_coordinates:
        must_not.append(models.IsEmptyCondition(is_empty=models.PayloadField(key="location")))
        must_not.append(models.IsNullCondition(is_null=models.PayloadField(key="location")))

    return models.Filter(must=must, must_not=must_not or None)


def record_to_payload(record: PropertyRecord, knowledge_base_id: str) -> Dict[str, Any]:
    payload = record.to_dict()
    payload.pop("distance_km", None)
    payload["knowledge_base_id"] = knowledge_base_id
    payload["postcode_key"] = _norm_postcode(record.postcode) or None
    if record.has_coordinates:
        payload["location"] = {"lat": record.latitude, "lon": record.longitude}
    return payload


def point_id(knowledge_base_id: str, record_id: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"{knowledge_base_id}/{record_id}"))


class QdrantStore:
    """Property store backed by a payload-only Qdrant collection."""

    def __init__(
        self,
        client: Optional[QdrantClient] = None,
        collection: str = QDRANT_COLLECTION,
        scroll_batch: int = QDRANT_SCROLL_BATCH,
    ):
        self.client = client if client is not None else load_qdrant_client()
        self.collection = collection
        self.scroll_batch = scroll_batch

    def ensure_collection(self) -> None:
        if self.client.collection_exists(self.collection):
            return
        self.client.create_collection(collection_name=self.collection, vectors_config={})
        for key, schema in (
            ("knowledge_base_id", models.PayloadSchemaType.KEYWORD),
            ("location", models.PayloadSchemaType.GEO),
            ("price", models.PayloadSchemaType.FLOAT),
        ):
            self.client.create_payload_index(
                collection_name=self.collection,
                field_name=key,
                field_schema=schema,
            )
        log_message("INFO", f"created qdrant collection={self.collection}")

    def upsert_properties(self, knowledge_base_id: str, records: Iterable[PropertyRecord]) -> int:
        self.ensure_collection()
        batch: List[models.PointStruct] = []
        total = 0
        for rec in records:
            batch.append(
                models.PointStruct(
                    id=point_id(knowledge_base_id, rec.id),
                    vector={},
                    payload=record_to_payload(rec, knowledge_base_id),
                )
            )
            if len(batch) >= self.scroll_batch:
                self.client.upsert(collection_name=self.collection, points=batch)
                total += len(batch)
                batch = []
        if batch:
            self.client.upsert(collection_name=self.collection, points=batch)
            total += len(batch)
        log_message("INFO", f"upserted {total} properties into {self.collection} kb={knowledge_base_id}")
        return total

    def _scroll(self, qfilter: models.Filter, with_payload: Any = True) -> Iterator[Any]:
        offset = None
        while True:
            points, offset = self.client.scroll(
                collection_name=self.collection,
                scroll_filter=qfilter,
                limit=self.scroll_batch,
                offset=offset,
                with_payload=with_payload,
                with_vectors=False,
            )
            for p in points or []:
                yield p
            if offset is None:
                break

    def count_matching(self, knowledge_base_id: str, filters: ExactFilters) -> int:
        qfilter = build_qdrant_filter(knowledge_base_id, filters)
        resp = self.client.count(
            collection_name=self.collection,
            count_filter=qfilter,
            exact=True,
        )
        return int(resp.count)

    def fetch_matching(
        self,
        knowledge_base_id: str,
        filters: ExactFilters,
        order_by: str = "added_on",
        limit: Optional[int] = None,
    ) -> List[PropertyRecord]:
        qfilter = build_qdrant_filter(knowledge_base_id, filters)
        records: List[PropertyRecord] = []
        for p in self._scroll(qfilter):
            payload = dict(p.payload or {})
            rec = PropertyRecord.from_payload({k: payload.get(k) for k in RECORD_COLUMNS})
            if filters.center is not None and rec.has_coordinates:
                lat, lon = filters.center
                rec.distance_km = round(float(haversine_km(lat, lon, rec.latitude, rec.longitude)), 2)
            records.append(rec)
        records = sort_records(records, order_by)
        if limit is not None:
            records = records[: max(0, int(limit))]
        return records

    def distinct_values(self, knowledge_base_id: str, dimension: str, filters: ExactFilters) -> List[str]:
        if dimension not in DIMENSION_COLUMNS:
            raise ValueError(f"unknown property dimension: {dimension}")
        qfilter = build_qdrant_filter(knowledge_base_id, filters)
        out: List[str] = []
        seen = set()
        for p in self._scroll(qfilter, with_payload=[dimension]):
            v = (p.payload or {}).get(dimension)
            if v is None:
                continue
            s = str(v).strip()
            if not s or s in seen:
                continue
            seen.add(s)
            out.append(s)
        return out
