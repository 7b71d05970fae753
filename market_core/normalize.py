from __future__ import annotations

import math
import numbers
import re
from typing import Dict, Optional


_COUNTRY_ALIASES: Dict[str, str] = {
    "u.s.": "United States",
    "us": "United States",
    "usa": "United States",
    "united states of america": "United States",
    "united states": "United States",
    "u.k.": "United Kingdom",
    "uk": "United Kingdom",
    "united kingdom": "United Kingdom",
    "united kingdom of great britain and northern ireland": "United Kingdom",
    "viet nam": "Vietnam",
    "czechia": "Czech Republic",
    "holland": "Netherlands",
    "korea, rep.": "South Korea",
    "republic of korea": "South Korea",
    "korea (republic of)": "South Korea",
    "korea, dem. people's rep.": "North Korea",
    "korea, democratic people's republic of": "North Korea",
    "russian federation": "Russia",
    "people's republic of china": "China",
    "mainland china": "China",
    "china, mainland": "China",
    "prc": "China",
    "taiwan, province of china": "Taiwan",
    "taiwan (province of china)": "Taiwan",
    "chinese taipei": "Taiwan",
    "republic of the philippines": "Philippines",
}

_SEGMENT_ALIASES: Dict[str, str] = {
    "printing services": "Printing services",
    "printing service provider": "Printing services",
    "system manufacturer": "Printer sales & servicing",
    "systems manufacturer": "Printer sales & servicing",
    "printer sales & servicing": "Printer sales & servicing",
    "materials": "Materials",
    "material": "Materials",
    "material provider": "Materials",
    "materials provider": "Materials",
    "software": "Software",
    "total": "Total",
}

TOTAL_SEGMENT = "Total"

_NUMBER_NOISE = re.compile(r"[$,\s]")
_WHITESPACE = re.compile(r"\s+")


def _clean_text(value: object) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    s = str(value).strip()
    return s or None


def _title_words(s: str) -> str:
    return " ".join(w.capitalize() for w in s.split(" "))


def normalize_country(value: object) -> Optional[str]:
    """Canonical display form for a free-text country name.

    Blank input gives None. A leading "The " is dropped, known variants map
    through the alias table, anything else is title-cased word by word.
    Applying it twice gives the same result as applying it once.
    """
    s = _clean_text(value)
    if s is None:
        return None
    if s.lower().startswith("the "):
        return normalize_country(s[4:])
    alias = _COUNTRY_ALIASES.get(s.lower())
    if alias is not None:
        return alias
    return _title_words(s)


def _segment_key(value: str) -> str:
    return _WHITESPACE.sub(" ", value.replace("\u00a0", " ").lower()).strip()


def canonical_segment(value: object) -> Optional[str]:
    s = _clean_text(value)
    if s is None:
        return None
    return _SEGMENT_ALIASES.get(_segment_key(s), s)


def to_number(value: object) -> float:
    """Coerce a loosely typed field to a float, using 0.0 for anything unusable."""
    if value is None or isinstance(value, bool):
        return float(value or 0)
    if isinstance(value, numbers.Number):
        try:
            out = float(value)  # type: ignore[arg-type]
        except (TypeError, ValueError):
            return 0.0
        return out if math.isfinite(out) else 0.0
    s = _NUMBER_NOISE.sub("", str(value))
    if not s:
        return 0.0
    try:
        out = float(s)
    except ValueError:
        return 0.0
    return out if math.isfinite(out) else 0.0


def to_int_or_none(value: object) -> Optional[int]:
    if value is None:
        return None
    try:
        out = float(str(value).strip())
    except ValueError:
        return None
    if not math.isfinite(out):
        return None
    return int(out)
