"""Case and diacritic insensitive label matching for localized UI strings.

Every mapping from free-text game labels to semantic identifiers (resource
field type, building type, troop row) goes through this module, so the
keyword tables can change without touching the state machines using them.
"""

from __future__ import annotations

import re
import unicodedata

from dorfbot.models.fields import FieldType

WHITESPACE_RE = re.compile(r"\s+")

FIELD_KEYWORDS: dict[FieldType, tuple[str, ...]] = {
    FieldType.WOOD: ("lenador", "wood", "bosque", "holzfaller"),
    FieldType.CLAY: ("barrera", "barro", "clay", "arcilla", "lehm"),
    FieldType.IRON: ("hierro", "iron", "mina", "eisen"),
    FieldType.CROP: ("granja", "crop", "cereal", "getreide"),
}

BUILDING_KEYWORDS: dict[str, tuple[str, ...]] = {
    "barracks": ("cuartel", "cuarteles", "barracks"),
    "stable": ("establo", "estable", "stable"),
    "workshop": ("taller", "taller de asedio", "workshop"),
    "residence": ("residencia", "palacio", "residence", "palace"),
    "rallyPoint": ("plaza de reuniones", "plaza de reunion", "rally point", "assembly point"),
}

BUILDING_GIDS: dict[str, tuple[int, ...]] = {
    "barracks": (19,),
    "stable": (20,),
    "workshop": (21,),
    "residence": (25, 26),
    "rallyPoint": (16,),
}

# Slots probed when the building view gives no match
FALLBACK_SLOTS: dict[str, tuple[int, ...]] = {
    "barracks": (19, 18, 17, 16),
    "stable": (20, 21),
    "workshop": (21, 22, 23),
    "residence": (25, 26),
}

EMPTY_PLOT_PHRASES = ("construir", "build new", "bauplatz")

STOP_WORDS = frozenset({"de", "del", "la", "el", "los", "las", "und", "der", "die", "das", "a", "to"})
MIN_TOKEN_LENGTH = 4


def normalize_text(text: str | None) -> str:
    """Lowercase, strip diacritics and collapse whitespace."""
    if not text:
        return ""
    decomposed = unicodedata.normalize("NFD", text.lower())
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    return WHITESPACE_RE.sub(" ", stripped).strip()


def contains_any(text: str, phrases: tuple[str, ...] | list[str]) -> bool:
    """Whether the normalized text contains any normalized phrase."""
    haystack = normalize_text(text)
    return any(normalize_text(p) in haystack for p in phrases if p)


def classify_field(label: str | None) -> FieldType | None:
    """Map a resource field label to its type, None when unknown."""
    text = normalize_text(label)
    if not text:
        return None
    for field_type, keywords in FIELD_KEYWORDS.items():
        if any(k in text for k in keywords):
            return field_type
    return None


def classify_building(label: str | None) -> str | None:
    """Map a building label (or a building type key) to a known building type."""
    text = normalize_text(label)
    if not text:
        return None
    for key in BUILDING_KEYWORDS:
        if text == key.lower():
            return key
    for key, keywords in BUILDING_KEYWORDS.items():
        if any(normalize_text(k) in text for k in keywords):
            return key
    return None


def building_keywords(building_type: str) -> tuple[str, ...]:
    return BUILDING_KEYWORDS.get(building_type, (building_type,))


def looks_like_empty_plot(title: str | None) -> bool:
    return contains_any(title or "", EMPTY_PLOT_PHRASES)


def names_match(expected: str | None, actual: str | None) -> bool:
    """Loose building name equality: either normalized name contains the other."""
    a = normalize_text(expected)
    b = normalize_text(actual)
    if not a or not b:
        return True
    return a == b or a in b or b in a


# ----------------------------------------------------------------------
# Troop name matching
# ----------------------------------------------------------------------


def troop_tokens(name: str | None) -> list[str]:
    """Significant tokens of a troop name (stop-words and short words removed)."""
    return [
        t for t in normalize_text(name).split(" ")
        if t and t not in STOP_WORDS and len(t) >= MIN_TOKEN_LENGTH
    ]


def token_match(haystack: str, token: str) -> bool:
    """Suffix/prefix tolerant token containment (plural and singular variants)."""
    n = normalize_text(token)
    if not n:
        return False
    variants = [n, n + "s", n + "es"]
    if len(n) >= 5:
        variants.append(n[:-1])
        variants.append(n[1:])
    if len(n) >= 6:
        variants.append(n[:-2])
    return any(v in haystack for v in variants)


def matches_troop(text: str, name: str | None) -> bool:
    """Whether a normalized row or queue line refers to the named troop."""
    target = normalize_text(name)
    line = normalize_text(text)
    if not target or not line:
        return False
    if target in line:
        return True
    tokens = troop_tokens(target)
    if not tokens:
        return False
    matched = sum(1 for t in tokens if token_match(line, t))
    return matched == len(tokens)
