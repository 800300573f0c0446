"""String similarity kernel shared by the location and street matchers.

Edit distance and the Soundex-style phonetic code are the only notions of
"close enough" used anywhere in the engine, so every matcher agrees on them.
"""

import re
from typing import Dict

_SOUNDEX_DIGITS: Dict[str, str] = {}
for _letters, _digit in (
    ("BFPV", "1"),
    ("CGJKQSXZ", "2"),
    ("DT", "3"),
    ("L", "4"),
    ("MN", "5"),
    ("R", "6"),
):
    for _ch in _letters:
        _SOUNDEX_DIGITS[_ch] = _digit


def edit_distance(a: str, b: str) -> int:
    s1 = (a or "").lower()
    s2 = (b or "").lower()
    if s1 == s2:
        return 0
    if not s1:
        return len(s2)
    if not s2:
        return len(s1)

    prev = list(range(len(s2) + 1))
    for i, c1 in enumerate(s1, start=1):
        cur = [i] + [0] * len(s2)
        for j, c2 in enumerate(s2, start=1):
            if c1 == c2:
                cur[j] = prev[j - 1]
            else:
                cur[j] = min(prev[j - 1], cur[j - 1], prev[j]) + 1
        prev = cur
    return prev[-1]


def similarity(a: str, b: str) -> float:
    a = a or ""
    b = b or ""
    max_len = max(len(a), len(b))
    if max_len == 0:
        return 1.0
    return 1.0 - edit_distance(a, b) / max_len


def phonetic_code(s: str) -> str:
    cleaned = re.sub(r"[^A-Z]", "", (s or "").upper())
    if not cleaned:
        return ""

    code = cleaned[0]
    prev = _SOUNDEX_DIGITS.get(cleaned[0], "")
    for ch in cleaned[1:]:
        if len(code) >= 4:
            break
        digit = _SOUNDEX_DIGITS.get(ch, "")
        # vowels, H, W, Y carry no digit
        if not digit:
            continue
        if digit != prev:
            code += digit
            prev = digit
    return (code + "000")[:4]


def phonetic_match(a: str, b: str) -> bool:
    code_a = phonetic_code(a)
    return code_a != "" and code_a == phonetic_code(b)
