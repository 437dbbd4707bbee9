"""
Translation Mapper.

Turns raw locale strings and the legacy shapes found in the store into the
canonical bilingual leaf ``{"en": ..., "vi": ...}``. Shapes are recognised
structurally, since the stored data predates any schema version:

    "Nhẫn Doran"                                   plain string
    {"en": "Doran's Ring", "vi": "Nhẫn Doran"}     flat leaf, returned as is
    {"en": {"en": .., "vi": ..}, "vi": {...}}      doubly nested leaf
    {"vi": "Nhẫn Doran"} / {"en": "x", "vi": ""}   partial leaf

Lookups are exact-match against a table loaded from JSON. A miss is not an
error: the leaf falls back to the same string in both locales and a
MappingMiss is recorded for whoever curates the table.
"""

import json
import os
import re
import unicodedata
from collections import Counter
from typing import Any, Iterable, Optional

from errors import MappingMiss
from logger import get_logger

log = get_logger(__name__)

PRIMARY   = "en"
SECONDARY = "vi"
LOCALES   = (PRIMARY, SECONDARY)

DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")
DEFAULT_TABLE_PATH = os.path.join(DATA_DIR, "translations.json")

# Keys whose string values are display text and therefore bilingual.
TEXT_KEYS = frozenset({
    "name", "title", "description", "activeDescription",
    "runes", "statShards", "summonerSpells",
    "items", "startingItems", "starting", "coreItems", "boots", "situationalItems",
})

_VI_ONLY = re.compile(r"[ăâđêôơưĂÂĐÊÔƠƯ]")


def detect_locale(text: str) -> str:
    """``vi`` when the string carries Vietnamese letters or tone marks."""
    if _VI_ONLY.search(text):
        return SECONDARY
    decomposed = unicodedata.normalize("NFD", text)
    if any(unicodedata.category(c) == "Mn" for c in decomposed):
        return SECONDARY
    return PRIMARY


def load_translation_table(*paths: str) -> dict:
    """
    Merge one or more ``{"version": .., "entries": {vi: en}}`` files.
    Later files override earlier ones, so a local curation file can be
    layered over the shipped table.
    """
    table = {}
    for path in paths or (DEFAULT_TABLE_PATH,):
        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)
        entries = data.get("entries", data) if isinstance(data, dict) else {}
        table.update({k.strip(): v.strip() for k, v in entries.items() if k and v})
        log.debug("Loaded %d translations from %s (version=%s)",
                  len(entries), path, data.get("version", "-"))
    return table


def is_leaf_shape(value: Any) -> bool:
    return isinstance(value, dict) and bool(value) and set(value) <= set(LOCALES)


def is_normalized_leaf(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and set(value) == set(LOCALES)
        and all(isinstance(value[k], str) and value[k].strip() for k in LOCALES)
    )


class TranslationMapper:

    def __init__(self, table: Optional[dict] = None):
        self.vi_to_en = dict(table or {})
        self.en_to_vi = {}
        for vi, en in self.vi_to_en.items():
            self.en_to_vi.setdefault(en, vi)
        self.misses: list[MappingMiss] = []

    @classmethod
    def from_files(cls, *paths: str) -> "TranslationMapper":
        return cls(load_translation_table(*paths))

    def lookup(self, text: str, locale: str) -> Optional[str]:
        if locale == SECONDARY:
            return self.vi_to_en.get(text)
        return self.en_to_vi.get(text)

    def _miss(self, value: str) -> None:
        self.misses.append(MappingMiss(value))
        log.info("MappingMiss value=%r", value)

    def miss_counts(self) -> Counter:
        return Counter(m.value for m in self.misses)


    def _from_string(self, text: str, locale: Optional[str] = None) -> dict:
        inferred = locale is None
        locale = locale or detect_locale(text)
        other = PRIMARY if locale == SECONDARY else SECONDARY

        paired = self.lookup(text, locale)
        if paired is None and inferred:
            # Unaccented Vietnamese ("Ma Poro") reads as English.
            paired = self.lookup(text, other)
            if paired is not None:
                locale, other = other, locale
        if paired is None:
            self._miss(text)
            paired = text
        return {locale: text, other: paired}

    def pair(self, en: Optional[str], vi: Optional[str]) -> Optional[dict]:
        en = (en or "").strip()
        vi = (vi or "").strip()
        if not en and not vi:
            return None
        return {PRIMARY: en or vi, SECONDARY: vi or en}

    def normalize_text(self, raw: Any) -> Optional[dict]:
        if isinstance(raw, str):
            text = raw.strip()
            return self._from_string(text) if text else None

        if not is_leaf_shape(raw):
            return None

        if is_normalized_leaf(raw):
            return raw

        en_side = raw.get(PRIMARY)
        vi_side = raw.get(SECONDARY)

        if isinstance(en_side, dict) or isinstance(vi_side, dict):
            inner = _nested_text(raw)
            if inner is None:
                if is_unrecognized_leaf(raw):
                    log.warning("Unrecognized leaf shape left as is: %r", raw)
                    return raw
                return None
            return self._from_string(inner, SECONDARY)

        vi_text = vi_side.strip() if isinstance(vi_side, str) else ""
        en_text = en_side.strip() if isinstance(en_side, str) else ""
        if vi_text:
            return self._from_string(vi_text, SECONDARY)
        if en_text:
            return self._from_string(en_text, PRIMARY)
        return None

    def normalize_structure(self, obj: Any, text: bool = False) -> Any:
        """
        Normalize every bilingual leaf inside ``obj``. Strings are leaves
        only below a key in TEXT_KEYS; numbers, rates and URLs elsewhere
        are left alone. Empty leaves are dropped from lists.
        """
        if is_leaf_shape(obj):
            return self.normalize_text(obj)

        if isinstance(obj, str):
            if not text:
                return obj
            leaf = self.normalize_text(obj)
            return leaf if leaf is not None else obj

        if isinstance(obj, list):
            out = []
            for value in obj:
                if text and isinstance(value, str) and not value.strip():
                    continue
                normalized = self.normalize_structure(value, text)
                if normalized is None and is_leaf_shape(value):
                    continue
                out.append(normalized)
            return out

        if isinstance(obj, dict):
            return {
                key: self.normalize_structure(value, text=key in TEXT_KEYS)
                for key, value in obj.items()
            }

        return obj

    def needs_normalization(self, obj: Any, text: bool = False) -> bool:
        """True when some leaf below ``obj`` is not in canonical shape and can be fixed."""
        if is_leaf_shape(obj):
            return not is_normalized_leaf(obj) and not is_unrecognized_leaf(obj)
        if isinstance(obj, str):
            return text and bool(obj.strip())
        if isinstance(obj, list):
            return any(
                (text and isinstance(v, str) and not v.strip()) or self.needs_normalization(v, text)
                for v in obj
            )
        if isinstance(obj, dict):
            return any(self.needs_normalization(v, key in TEXT_KEYS) for key, v in obj.items())
        return False


def is_unrecognized_leaf(value: Any) -> bool:
    """Nested leaf with no text at the depth legacy data used, e.g. ``{"en": {"vi": {"en": "X"}}}``."""
    if not is_leaf_shape(value):
        return False
    if not any(isinstance(value.get(k), dict) for k in LOCALES):
        return False
    if _nested_text(value) is not None:
        return False
    return any(t.strip() for t in leaf_texts(value))


def _nested_text(raw: dict) -> Optional[str]:
    en_side = raw.get(PRIMARY)
    vi_side = raw.get(SECONDARY)
    return _first_text(
        _get(vi_side, SECONDARY),
        _get(vi_side, PRIMARY),
        _get(en_side, SECONDARY),
        _get(en_side, PRIMARY),
        vi_side if isinstance(vi_side, str) else None,
        en_side if isinstance(en_side, str) else None,
    )


def _get(node: Any, key: str) -> Optional[str]:
    if isinstance(node, dict):
        value = node.get(key)
        if isinstance(value, str):
            return value
    return None


def _first_text(*candidates: Optional[str]) -> Optional[str]:
    for c in candidates:
        if c and c.strip():
            return c.strip()
    return None


def leaf_texts(obj: Any) -> Iterable[str]:
    """Every locale string inside ``obj``, for diagnostics."""
    if is_leaf_shape(obj):
        for value in obj.values():
            if isinstance(value, str):
                yield value
            else:
                yield from leaf_texts(value)
    elif isinstance(obj, list):
        for value in obj:
            yield from leaf_texts(value)
    elif isinstance(obj, dict):
        for value in obj.values():
            yield from leaf_texts(value)
