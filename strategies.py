"""
Extraction strategies.

A field is described by a FieldSpec holding an ordered list of strategies.
Strategies are tried in order; the first value that passes the field's
bounds wins and its strategy id is recorded. Adding a rule for a site that
changed its markup means appending a strategy, not writing a new scraper.
"""

import re
from typing import Any, Callable, Iterable, Optional

from bs4 import BeautifulSoup

from logger import get_logger

log = get_logger(__name__)

_WS = re.compile(r"\s+")
_SENTENCE_SPLIT = re.compile(r"(?<=[.!?])\s+")


def squash(value: str) -> str:
    if not value:
        return ""
    return _WS.sub(" ", value).strip()


class Document:
    """Parsed HTML page queried by CSS selector."""

    def __init__(self, html: str, url: str = ""):
        self.url  = url
        self.soup = BeautifulSoup(html or "", "html.parser")
        self._body_text: Optional[str] = None

    def select(self, selector: str) -> list:
        return self.soup.select(selector)

    def select_one(self, selector: str):
        return self.soup.select_one(selector)

    def texts(self, selector: str) -> list[str]:
        return [t for t in (squash(el.get_text(" ", strip=True)) for el in self.select(selector)) if t]

    def attrs(self, selector: str, attr: str) -> list[str]:
        values = []
        for el in self.select(selector):
            value = el.get(attr)
            if isinstance(value, list):
                value = " ".join(value)
            if value and value.strip():
                values.append(value.strip())
        return values

    def body_text(self) -> str:
        if self._body_text is None:
            root = self.soup.body or self.soup
            self._body_text = squash(root.get_text(" ", strip=True))
        return self._body_text

    def elements_text(self, tags: Iterable[str] = ("p", "div", "span", "li", "td")) -> Iterable[str]:
        for el in self.soup.find_all(list(tags)):
            text = squash(el.get_text(" ", strip=True))
            if text:
                yield text


class Strategy:
    id = "strategy"

    def apply(self, doc: Any) -> Any:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id}>"


class CssText(Strategy):
    def __init__(self, id: str, selector: str, transform: Optional[Callable[[str], str]] = None):
        self.id = id
        self.selector = selector
        self.transform = transform

    def apply(self, doc: Document) -> Optional[str]:
        texts = doc.texts(self.selector)
        if not texts:
            return None
        return self.transform(texts[0]) if self.transform else texts[0]


class CssKeywordText(Strategy):
    """First element matching ``selector`` whose text holds a keyword and fits the bounds."""

    def __init__(self, id: str, selector: str, keywords: Iterable[str], min_len: int = 20, max_len: int = 300):
        self.id = id
        self.selector = selector
        self.keywords = tuple(keywords)
        self.min_len = min_len
        self.max_len = max_len

    def apply(self, doc: Document) -> Optional[str]:
        for text in doc.texts(self.selector):
            if any(k in text for k in self.keywords) and self.min_len <= len(text) <= self.max_len:
                return text
        return None


class CssTexts(Strategy):
    def __init__(self, id: str, selector: str, limit: Optional[int] = None, unique: bool = True):
        self.id = id
        self.selector = selector
        self.limit = limit
        self.unique = unique

    def apply(self, doc: Document) -> list[str]:
        texts = doc.texts(self.selector)
        if self.unique:
            texts = _unique(texts)
        return texts[: self.limit]


class CssAttr(Strategy):
    def __init__(self, id: str, selector: str, attr: str, transform: Optional[Callable] = None):
        self.id = id
        self.selector = selector
        self.attr = attr
        self.transform = transform

    def apply(self, doc: Document) -> Optional[str]:
        for value in doc.attrs(self.selector, self.attr):
            if self.transform:
                value = self.transform(value, doc)
            if value:
                return value
        return None


class CssAttrs(Strategy):
    def __init__(self, id: str, selector: str, attr: str, limit: Optional[int] = None):
        self.id = id
        self.selector = selector
        self.attr = attr
        self.limit = limit

    def apply(self, doc: Document) -> list[str]:
        return _unique(doc.attrs(self.selector, self.attr))[: self.limit]


class RegexText(Strategy):
    def __init__(self, id: str, pattern: str, group: int = 0, flags: int = re.I):
        self.id = id
        self.pattern = re.compile(pattern, flags)
        self.group = group

    def apply(self, doc: Document) -> Optional[str]:
        m = self.pattern.search(doc.body_text())
        return squash(m.group(self.group)) if m else None


class RegexStats(Strategy):
    """Collect ``{stat_name: number}`` from ``(stat_name, pattern)`` pairs."""

    def __init__(self, id: str, patterns: list[tuple[str, str]]):
        self.id = id
        self.patterns = [(name, re.compile(p, re.I)) for name, p in patterns]

    def apply(self, doc: Document) -> dict:
        text = doc.body_text()
        stats = {}
        for name, pattern in self.patterns:
            m = pattern.search(text)
            if m:
                stats[name] = _to_number(m.group(1))
        return stats


class KeywordSentence(Strategy):
    """
    Longest plausible sentence that contains one of ``keywords``.

    Only elements whose own text is within ``[min_len, max_len * 2]`` are
    considered, which keeps nav bars and whole-page wrappers out.
    """

    def __init__(self, id: str, keywords: Iterable[str], min_len: int = 20, max_len: int = 300):
        self.id = id
        self.keywords = tuple(keywords)
        self.min_len = min_len
        self.max_len = max_len

    def apply(self, doc: Document) -> Optional[str]:
        best = None
        for text in doc.elements_text():
            if len(text) < self.min_len or len(text) > self.max_len * 2:
                continue
            for sentence in _SENTENCE_SPLIT.split(text):
                sentence = sentence.strip()
                if not any(k in sentence for k in self.keywords):
                    continue
                if not self.min_len <= len(sentence) <= self.max_len:
                    continue
                if best is None or len(sentence) > len(best):
                    best = sentence
        return best


class JsonPath(Strategy):
    """Dotted-path lookup into decoded JSON, e.g. ``data.Ahri.title``."""

    def __init__(self, id: str, path: str, transform: Optional[Callable] = None):
        self.id = id
        self.path = path.split(".")
        self.transform = transform

    def apply(self, doc: Any) -> Any:
        node = doc
        for part in self.path:
            if part == "*":
                if not isinstance(node, dict) or not node:
                    return None
                node = next(iter(node.values()))
            elif isinstance(node, dict):
                node = node.get(part)
            elif isinstance(node, list) and part.isdigit() and int(part) < len(node):
                node = node[int(part)]
            else:
                return None
            if node is None:
                return None
        return self.transform(node) if self.transform else node


class Custom(Strategy):
    """Wraps a plain function for structures a selector cannot express."""

    def __init__(self, id: str, fn: Callable[[Any], Any]):
        self.id = id
        self.fn = fn

    def apply(self, doc: Any) -> Any:
        return self.fn(doc)


class FieldSpec:

    def __init__(
        self,
        name: str,
        strategies: list[Strategy],
        min_len: int = 1,
        max_len: int = 300,
        required: bool = True,
    ):
        self.name = name
        self.strategies = strategies
        self.min_len = min_len
        self.max_len = max_len
        self.required = required

    def accept(self, value: Any) -> bool:
        if value is None:
            return False
        if isinstance(value, str):
            return self.min_len <= len(squash(value)) <= self.max_len
        if isinstance(value, (list, tuple)):
            return bool(value) and all(self._accept_item(v) for v in value)
        if isinstance(value, dict):
            return bool(value)
        return True

    def _accept_item(self, value: Any) -> bool:
        if isinstance(value, str):
            return self.min_len <= len(squash(value)) <= self.max_len
        return value is not None


def run_field(spec: FieldSpec, doc: Any) -> tuple[Any, Optional[str]]:
    for strategy in spec.strategies:
        try:
            value = strategy.apply(doc)
        except Exception as exc:
            log.debug("Strategy %s failed for %s: %s", strategy.id, spec.name, exc)
            continue
        if spec.accept(value):
            if isinstance(value, str):
                value = squash(value)
            return value, strategy.id
        if value:
            log.debug("Strategy %s rejected for %s: %r", strategy.id, spec.name, _preview(value))
    return None, None


def _unique(values: list[str]) -> list[str]:
    seen = set()
    out = []
    for v in values:
        if v not in seen:
            seen.add(v)
            out.append(v)
    return out


def _to_number(raw: str):
    raw = raw.replace(",", ".")
    try:
        value = float(raw)
    except ValueError:
        return None
    return int(value) if value.is_integer() else value


def _preview(value: Any, limit: int = 60) -> str:
    text = value if isinstance(value, str) else repr(value)
    return text if len(text) <= limit else text[:limit] + "…"
