import math
import re
from datetime import date, datetime
from typing import Any, Optional

import pandas as pd


def _safe_text(v: Any) -> str:
    if v is None:
        return ""
    if isinstance(v, float) and math.isnan(v):
        return ""
    s = str(v).strip()
    if s.lower() in ("", "nan", "none", "null", "ask agent"):
        return ""
    return s


def _opt_text(v: Any) -> Optional[str]:
    s = _safe_text(v)
    return s or None


def _norm_match_text(v: Any) -> str:
    """Lowercase and collapse whitespace; the form every matching stage compares."""
    s = _safe_text(v).lower()
    return re.sub(r"\s+", " ", s).strip()


def _to_float(v: Any) -> Optional[float]:
    try:
        if v is None or isinstance(v, bool):
            return None
        if isinstance(v, (int, float)):
            return None if math.isnan(float(v)) else float(v)
        s = re.sub(r"[^\d\.\-]", "", str(v))
        if not s:
            return None
        return float(s)
    except Exception:
        return None


def _to_int(v: Any) -> Optional[int]:
    f = _to_float(v)
    if f is None:
        return None
    return int(f)


def _to_bool(v: Any) -> Optional[bool]:
    if v is None:
        return None
    if isinstance(v, bool):
        return v
    if isinstance(v, (int, float)):
        if isinstance(v, float) and math.isnan(v):
            return None
        return bool(v)
    s = _safe_text(v).lower()
    if s in {"true", "yes", "y", "1"}:
        return True
    if s in {"false", "no", "n", "0"}:
        return False
    return None


def _to_timestamp_text(v: Any) -> Optional[str]:
    if v is None:
        return None
    if isinstance(v, (datetime, date)):
        return v.isoformat()
    s = _safe_text(v)
    if not s:
        return None
    dt = pd.to_datetime(s, errors="coerce")
    if pd.isna(dt):
        return s
    return dt.isoformat()


def round_half_up(value: float, step: float) -> float:
    return math.floor(value / step + 0.5) * step


def format_money(v: Any) -> str:
    f = _to_float(v)
    if f is None:
        return "Not specified"
    if float(f).is_integer():
        return f"£{int(f):,}"
    return f"£{f:,.2f}"


def _norm_postcode(v: Any) -> str:
    return re.sub(r"\s+", "", _safe_text(v).lower())
