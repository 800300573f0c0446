import json
import os
from typing import Any, Dict, List

LOG_LEVEL = os.environ.get("ESTATE_LOG_LEVEL", "INFO").strip().upper()
QUERY_LOG_DETAIL = os.environ.get("ESTATE_QUERY_LOG_DETAIL", "summary").strip().lower()
QUERY_LOG_MAX_PROPERTIES = int(os.environ.get("ESTATE_QUERY_LOG_MAX_PROPERTIES", "3"))
QUERY_LOG_MAX_REFINEMENTS = int(os.environ.get("ESTATE_QUERY_LOG_MAX_REFINEMENTS", "12"))

_LOG_LEVEL_ORDER = {"ERROR": 40, "WARN": 30, "INFO": 20, "DEBUG": 10}


def _should_log(level: str) -> bool:
    current = _LOG_LEVEL_ORDER.get(LOG_LEVEL, 20)
    target = _LOG_LEVEL_ORDER.get(level.upper(), 20)
    return target >= current


def log_message(level: str, msg: str) -> None:
    lvl = level.upper()
    if _should_log(lvl):
        print(f"[{lvl}] {msg}")


def _compact_property_list(items: List[Dict[str, Any]], max_items: int) -> List[Dict[str, Any]]:
    out: List[Dict[str, Any]] = []
    for x in (items or [])[:max_items]:
        out.append(
            {
                "id": x.get("id"),
                "price": x.get("price"),
                "beds": x.get("beds"),
                "city": x.get("city"),
                "street_address": x.get("street_address"),
                "distance_km": x.get("distance_km"),
            }
        )
    return out


def append_query_log_entry(path: str, obj: Dict[str, Any]) -> None:
    try:
        payload = obj
        if QUERY_LOG_DETAIL != "full":
            response = obj.get("response", {}) if isinstance(obj, dict) else {}
            payload = {
                "timestamp": obj.get("timestamp"),
                "knowledge_base_id": obj.get("knowledge_base_id"),
                "filters": obj.get("filters"),
                "resolutions": obj.get("resolutions"),
                "decision": obj.get("decision"),
                "total_count": response.get("totalCount"),
                "properties": _compact_property_list(
                    response.get("properties") or [],
                    QUERY_LOG_MAX_PROPERTIES,
                ),
                "refinements": (response.get("refinements") or [])[:QUERY_LOG_MAX_REFINEMENTS],
            }
        append_jsonl(path, payload, "query log")
    except Exception as e:
        log_message("WARN", f"failed to build query log entry: {e}")


def append_jsonl(path: str, obj: Dict[str, Any], log_name: str) -> None:
    try:
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "a", encoding="utf-8") as f:
            f.write(json.dumps(obj, ensure_ascii=False, default=str) + "\n")
    except Exception as e:
        log_message("WARN", f"failed to write {log_name}: {e}")
