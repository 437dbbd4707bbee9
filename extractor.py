import json
import re
from typing import Any, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from errors import ExtractionMiss
from logger import get_logger
from strategies import (
    Custom,
    CssAttr,
    CssAttrs,
    CssKeywordText,
    CssText,
    CssTexts,
    Document,
    FieldSpec,
    JsonPath,
    KeywordSentence,
    RegexStats,
    RegexText,
    run_field,
    squash,
)

log = get_logger(__name__)

RUNE_TREES = (
    "Chuẩn Xác", "Chính Xác", "Áp Đảo", "Pháp Thuật",
    "Kiên Định", "Quyết Tâm", "Cảm Hứng",
)

PRIMARY_RUNE_COUNT   = 4
SECONDARY_RUNE_COUNT = 2

ACTIVE_KEYWORDS = ("(Kích Hoạt)", "duy nhất", "Hóa Giải:")

ITEM_STAT_PATTERNS = [
    ("health",                r"\+(\d+)\s*Máu\s*Tối\s*Đa"),
    ("attackDamage",          r"\+(\d+)\s*Sức\s*Mạnh\s*Công\s*Kích"),
    ("abilityPower",          r"\+(\d+)\s*Sức\s*Mạnh\s*Phép"),
    ("armor",                 r"\+(\d+)\s*Giáp"),
    ("magicResist",           r"\+(\d+)\s*Kháng\s*Phép"),
    ("attackSpeedPercent",    r"\+(\d+)%\s*Tốc\s*Độ\s*Đánh"),
    ("movementSpeed",         r"\+(\d+)\s*Tốc\s*Độ\s*Di\s*Chuyển"),
    ("lifeStealPercent",      r"\+(\d+)%\s*Hút\s*Máu"),
    ("armorPenetration",      r"\+(\d+)\s*Xuyên\s*Giáp"),
    ("criticalStrikePercent", r"\+(\d+)%\s*(?:Tỉ\s*Lệ\s*)?Chí\s*Mạng"),
    ("abilityHaste",          r"\+(\d+)\s*Điểm\s*Hồi\s*Kỹ\s*Năng"),
    ("mana",                  r"\+(\d+)\s*Năng\s*Lượng"),
]

ABILITY_KEYS = ("Q", "W", "E", "R")


class Extractor:
    """
    Base for one entity kind. Subclasses declare ``fields`` (ordered
    FieldSpecs) and turn the extracted values into a payload in
    ``assemble``. Missing required fields are recorded in ``misses`` and the
    rest of the page is still extracted.
    """

    kind = "entity"
    fields: list[FieldSpec] = []

    def __init__(self):
        self.misses: list[ExtractionMiss] = []

    def parse(self, raw: str, url: str) -> Any:
        return Document(raw, url)

    def extract(self, raw: str, context: Optional[dict] = None) -> dict:
        context = context or {}
        url = context.get("url", "")
        doc = self.parse(raw, url)

        values = {}
        used = {}
        for spec in self.fields:
            value, strategy_id = run_field(spec, doc)
            if strategy_id is None:
                if spec.required:
                    miss = ExtractionMiss(spec.name, url)
                    self.misses.append(miss)
                    log.warning("ExtractionMiss field=%s url=%s", spec.name, url)
                continue
            values[spec.name] = value
            used[spec.name] = strategy_id

        entity = self.assemble(values, context)
        entity["sourceUrl"] = url
        entity["extractionStrategyId"] = used
        log.debug("Extracted %s fields=%s from %s", self.kind, sorted(used), url)
        return entity

    def assemble(self, values: dict, context: dict) -> dict:
        return dict(values)



def _strip_label(label: str):
    return lambda text: text.replace(label, "").strip()


def _rate(label: str) -> list:
    """Rate strategies: the ``<em>label</em><b>..</b>`` list item, then free text."""
    return [
        CssText(f"rate-li-{label}", f'li:has(> em:-soup-contains("{label}")) b',
                transform=lambda t: t.split(" ")[0]),
        RegexText(f"rate-regex-{label}", rf"{label}\s*:?\s*([\d.,]+\s*%)", group=1),
    ]


def _tree_names(values: list[str]) -> list[str]:
    return [v for v in values if v in RUNE_TREES]


def _row_items(doc: Document, header: str) -> list[dict]:
    rows = []
    for row in doc.select(f'thead:-soup-contains("{header}") ~ tbody tr'):
        items = [img.get("alt", "").strip() for img in row.find_all("img")]
        items = [i for i in items if i]
        if not items:
            continue
        cells = row.find_all("td")
        rows.append({
            "items":    items,
            "pickRate": _cell_strong(cells, 1),
            "winRate":  _cell_strong(cells, 2),
        })
    return rows


def _cell_strong(cells: list, index: int) -> str:
    if len(cells) <= index:
        return ""
    strong = cells[index].find("strong") or cells[index]
    return squash(strong.get_text(" ", strip=True))


def _boots(doc: Document) -> list[dict]:
    return [
        {"name": row["items"][0], "pickRate": row["pickRate"], "winRate": row["winRate"]}
        for row in _row_items(doc, "Giày")
    ][:2]


def _skill_priority(doc: Document) -> list[str]:
    alts = doc.attrs("div.inline-flex.flex-wrap.items-center [data-tooltip-html] img", "alt")
    keys = [a.split()[-1] for a in alts if a.split()]
    return keys[:3]


class BuildExtractor(Extractor):

    kind = "build"

    fields = [
        FieldSpec("tier", [
            CssText("tier-strong", 'strong:-soup-contains("Bậc")', transform=_strip_label("Bậc")),
            RegexText("tier-regex", r"Bậc\s+(\d|[SABCD]\+?)", group=1),
        ], max_len=4),
        FieldSpec("winRate",  _rate("Tỉ lệ thắng"), max_len=12),
        FieldSpec("pickRate", _rate("Tỷ lệ chọn"), max_len=12, required=False),
        FieldSpec("banRate",  _rate("Tỷ lệ cấm"), max_len=12, required=False),
        FieldSpec("runeTrees", [
            Custom("tree-label", lambda d: _tree_names(d.texts("span.text-gray-500"))),
            Custom("tree-img", lambda d: _tree_names(d.attrs("div.flex img", "alt"))),
        ], max_len=40),
        FieldSpec("activeRunes", [
            Custom("rune-opacity", lambda d: [
                a for a in d.attrs("div.overflow-hidden img.opacity-100:not(.grayscale)", "alt")
                if a not in RUNE_TREES
            ]),
        ], max_len=60),
        FieldSpec("statShards", [
            CssAttrs("shard-border", 'span img[class*="border-"]', "alt", limit=3),
        ], max_len=60, required=False),
        FieldSpec("summonerSpells", [
            CssAttrs("spell-caption", 'caption:-soup-contains("SummonerSpells") ~ tbody tr:first-child img', "alt"),
            CssAttrs("spell-src", 'img[src*="/spell/Summoner"]', "alt", limit=2),
        ], max_len=40, required=False),
        FieldSpec("startingItems", [
            Custom("start-table", lambda d: _row_items(d, "Trang bị khởi đầu")[:2]),
        ]),
        FieldSpec("coreItems", [
            Custom("core-table", lambda d: _row_items(d, "Đây là xây dựng item cố định")),
            Custom("core-table-alt", lambda d: _row_items(d, "Trang bị cốt lõi")),
        ]),
        FieldSpec("boots", [Custom("boots-table", _boots)], required=False),
        FieldSpec("skillPriority", [Custom("skill-tooltip", _skill_priority)], max_len=1, required=False),
        FieldSpec("skillSequence", [
            CssTexts("skill-seq", "span.inline-flex.flex-col.items-center strong", limit=18, unique=False),
        ], max_len=1, required=False),
    ]

    def assemble(self, values: dict, context: dict) -> dict:
        payload = {}

        tier_info = {k: values[k] for k in ("tier", "winRate", "pickRate", "banRate") if k in values}
        if tier_info:
            payload["tierInfo"] = tier_info

        trees = values.get("runeTrees", [])
        runes = values.get("activeRunes", [])
        if trees or runes:
            group = {
                "primaryTree": {
                    "name":  trees[0] if trees else "",
                    "runes": runes[:PRIMARY_RUNE_COUNT],
                },
                "secondaryTree": {
                    "name":  trees[1] if len(trees) > 1 else "",
                    "runes": runes[PRIMARY_RUNE_COUNT:PRIMARY_RUNE_COUNT + SECONDARY_RUNE_COUNT],
                },
            }
            if values.get("statShards"):
                group["statShards"] = values["statShards"]
            payload["recommendedRunes"] = [group]

        items = {k: values[k] for k in ("startingItems", "coreItems", "boots") if k in values}
        if items:
            payload["recommendedItems"] = [items]

        if "summonerSpells" in values:
            payload["summonerSpells"] = values["summonerSpells"]

        skills = {}
        if "skillPriority" in values:
            skills["priority"] = values["skillPriority"]
        if "skillSequence" in values:
            skills["sequence"] = values["skillSequence"]
        if skills:
            payload["skillOrder"] = skills

        return payload



COUNTER_SECTIONS = {
    "weakAgainst":       ("Bị khắc chế", "Yếu trước", "Weak against"),
    "strongAgainst":     ("Khắc chế tốt", "Mạnh trước", "Strong against"),
    "bestLaneCounters":  ("Đi đường tốt", "Best lane"),
    "worstLaneCounters": ("Đi đường khó", "Worst lane"),
}


def _section_champions(doc: Document, keywords: tuple) -> list[dict]:
    """Champion icons between a heading holding a keyword and the next heading."""
    champions = []
    for heading in doc.soup.find_all(["h2", "h3", "h4"]):
        if not any(k in heading.get_text(" ", strip=True) for k in keywords):
            continue
        for sibling in heading.find_next_siblings():
            if sibling.name in ("h2", "h3", "h4"):
                break
            for img in sibling.find_all("img"):
                name = (img.get("alt") or img.get("title") or "").strip()
                if name and name not in [c["championId"] for c in champions]:
                    champions.append({
                        "championId": name,
                        "imageUrl":   urljoin(doc.url, img.get("src", "")) if img.get("src") else "",
                    })
        if champions:
            break
    return champions


def _class_champions(selector: str):
    def collect(doc: Document) -> list[dict]:
        return [{"championId": name, "imageUrl": ""} for name in dict.fromkeys(doc.attrs(selector, "alt"))]
    return collect


def _section_field(name: str, keywords: tuple, required: bool) -> FieldSpec:
    css_class = re.sub(r"([A-Z])", r"-\1", name).lower()
    return FieldSpec(name, [
        Custom(f"{css_class}-class", _class_champions(f".{css_class} img")),
        Custom(f"{css_class}-section", lambda d: _section_champions(d, keywords)),
    ], required=required)


def _number(raw: str):
    m = re.search(r"[\d]+(?:[.,]\d+)?", raw or "")
    if not m:
        return None
    return float(m.group(0).replace(",", "."))


class CounterExtractor(Extractor):

    kind = "counter"

    fields = [
        FieldSpec("overallWinRate", [
            CssText("counter-win-class", ".win-rate"),
            RegexText("counter-win-regex", r"Tỉ lệ thắng\s*:?\s*([\d.,]+)\s*%", group=1),
        ], max_len=12),
        FieldSpec("pickRate", [
            CssText("counter-pick-class", ".pick-rate"),
            RegexText("counter-pick-regex", r"Tỷ lệ chọn\s*:?\s*([\d.,]+)\s*%", group=1),
        ], max_len=12, required=False),
        FieldSpec("banRate", [
            CssText("counter-ban-class", ".ban-rate"),
            RegexText("counter-ban-regex", r"Tỷ lệ cấm\s*:?\s*([\d.,]+)\s*%", group=1),
        ], max_len=12, required=False),
    ] + [
        _section_field(name, keywords, required=name in ("weakAgainst", "strongAgainst"))
        for name, keywords in COUNTER_SECTIONS.items()
    ] + [
        FieldSpec("formattedContent", [
            CssText("guide-entry", ".entry-content"),
            CssText("guide-article", "article"),
        ], min_len=40, max_len=20000, required=False),
    ]

    def assemble(self, values: dict, context: dict) -> dict:
        params = context.get("params", {})
        counters = {}
        for key in ("overallWinRate", "pickRate", "banRate"):
            if key in values:
                counters[key] = _number(values[key])
        for key in COUNTER_SECTIONS:
            if key in values:
                counters[key] = values[key]
        if "formattedContent" in values:
            counters["formattedContent"] = values["formattedContent"]
        if counters:
            for key in ("role", "patch", "rank", "region"):
                if params.get(key):
                    counters[key] = params[key]
        return {"counterStats": counters} if counters else {}



def _absolute_image(value: str, doc: Document) -> str:
    url = urljoin(doc.url, value) if doc.url else value
    if url.startswith("//"):
        url = "https:" + url
    return url if url.startswith("http") else ""


_IMAGE_SELECTORS = [
    ".item-image img",
    ".equipment-image img",
    ".main-image img",
    'img[src*="item"]',
    'img[src*="equipment"]',
    ".content img",
    "article img",
]


class ItemExtractor(Extractor):

    kind = "item"

    fields = [
        FieldSpec("name", [
            CssText("item-h1", "h1"),
            CssText("item-title", "title", transform=_strip_label("Trang bị:")),
        ], min_len=2, max_len=80),
        FieldSpec("imageUrl", [
            CssAttr(f"item-img-{i}", sel, attr, transform=_absolute_image)
            for i, sel in enumerate(_IMAGE_SELECTORS)
            for attr in ("src", "data-src")
        ], max_len=500),
        FieldSpec("description", [
            CssText("item-desc-class", ".item-description"),
            CssKeywordText("item-desc-passive", "p", ("Nội Tại", "Passive"), 20, 300),
            KeywordSentence("item-desc-sentence", ("Nội Tại",), 20, 300),
        ], min_len=20, max_len=300, required=False),
        FieldSpec("activeDescription", [
            CssKeywordText("active-p", "p", ACTIVE_KEYWORDS, 20, 300),
            RegexText("active-regex-kich-hoat", r"[^.]*\(Kích Hoạt\):[^.]+\.[^.]*\."),
            RegexText("active-regex-duy-nhat", r"duy nhất[:\-–]?\s*[^.]+\.[^.]*\."),
            RegexText("active-regex-hoa-giai", r"Hóa Giải:\s*[^.]+\.[^.]*\."),
            KeywordSentence("active-sentence", ACTIVE_KEYWORDS, 20, 300),
        ], min_len=20, max_len=300, required=False),
        FieldSpec("stats", [
            RegexStats("item-stat-table", ITEM_STAT_PATTERNS),
        ]),
        FieldSpec("price", [
            CssText("item-price-class", ".item-price"),
            RegexText("item-price-regex", r"Giá\s*(?:mua|bán)?\s*:?\s*(\d{3,5})", group=1),
        ], max_len=12, required=False),
    ]

    def assemble(self, values: dict, context: dict) -> dict:
        payload = {k: values[k] for k in ("name", "imageUrl", "description", "stats") if k in values}
        if "activeDescription" in values:
            payload["activeDescription"] = values["activeDescription"]
            payload["isActive"] = True
        if "price" in values:
            price = _number(values["price"])
            if price is not None:
                payload["price"] = int(price)
        return payload



def _plain(html: str) -> str:
    if not html:
        return ""
    return squash(BeautifulSoup(html, "html.parser").get_text(" ", strip=True))


def _abilities(champion: dict) -> list[dict]:
    abilities = []
    passive = champion.get("passive") or {}
    if passive.get("name"):
        abilities.append({
            "key":         "P",
            "name":        passive["name"],
            "description": _plain(passive.get("description", "")),
            "image":       ["passive", (passive.get("image") or {}).get("full", "")],
        })
    for key, spell in zip(ABILITY_KEYS, champion.get("spells") or []):
        abilities.append({
            "key":         key,
            "name":        spell.get("name", ""),
            "description": _plain(spell.get("description", "")),
            "image":       ["spell", (spell.get("image") or {}).get("full", "")],
        })
    return abilities


class AbilityExtractor(Extractor):
    """Champion name, title and abilities from one locale of the asset feed."""

    kind = "abilities"

    fields = [
        FieldSpec("name",  [JsonPath("feed-name", "data.*.name")], max_len=60),
        FieldSpec("title", [JsonPath("feed-title", "data.*.title")], max_len=120, required=False),
        FieldSpec("tags",  [JsonPath("feed-tags", "data.*.tags")], max_len=30, required=False),
        FieldSpec("imageFile", [JsonPath("feed-image", "data.*.image.full")], max_len=80, required=False),
        FieldSpec("abilities", [
            JsonPath("feed-spells", "data.*", transform=_abilities),
        ], max_len=2000),
    ]

    def parse(self, raw: str, url: str) -> Any:
        return json.loads(raw) if isinstance(raw, str) else raw

    def assemble(self, values: dict, context: dict) -> dict:
        return dict(values)



SKILL_KEYS = {"passive": "P", "p": "P", "q": "Q", "w": "W", "e": "E", "r": "R", "ultimate": "R"}

_SKILL_LAYOUTS = {
    # block selector, name, description, cooldown, cost
    "wf-ability": (".wf-ability", ".wf-ability__name", ".wf-ability__description",
                   ".wf-ability__cooldown", ".wf-ability__cost"),
    "ability-class": (".ability", ".ability-name, .name", ".ability-description, .description",
                      ".cooldown, .cd", ".cost, .mana-cost"),
}


def _numbers(text: str) -> list:
    """``"14 / 12 / 10"`` -> ``[14, 12, 10]``"""
    values = []
    for raw in re.findall(r"\d+(?:[.,]\d+)?", text or ""):
        value = float(raw.replace(",", "."))
        values.append(int(value) if value.is_integer() else value)
    return values


def _skill_key(block, position: int) -> str:
    candidates = [block.get("data-ability"), block.get("data-key")]
    candidates += [c[len("ability-"):] for c in block.get("class", []) if c.startswith("ability-")]
    for raw in candidates:
        key = SKILL_KEYS.get((raw or "").strip().lower())
        if key:
            return key
    return "PQWER"[position] if position < 5 else ""


def _block_text(block, selector: str) -> str:
    el = block.select_one(selector)
    return squash(el.get_text(" ", strip=True)) if el else ""


def _skill_blocks(layout: str):
    block_sel, name_sel, desc_sel, cd_sel, cost_sel = _SKILL_LAYOUTS[layout]

    def collect(doc: Document) -> list[dict]:
        skills = []
        for position, block in enumerate(doc.select(block_sel)):
            name = _block_text(block, name_sel)
            if not name:
                continue
            img = block.find("img")
            src = (img.get("src") or img.get("data-src") or "") if img else ""
            skill = {
                "key":         _skill_key(block, position),
                "name":        name,
                "description": _block_text(block, desc_sel),
                "imageUrl":    _absolute_image(src, doc) if src else "",
                "cooldown":    _numbers(_block_text(block, cd_sel)),
                "cost":        _numbers(_block_text(block, cost_sel)),
            }
            skills.append({k: v for k, v in skill.items() if v})
        return [s for s in skills if s.get("key")]
    return collect


def _full_kit(collect):
    def only_complete(doc: Document) -> list[dict]:
        skills = collect(doc)
        return skills if {s["key"] for s in skills} >= set("PQWER") else []
    return only_complete


class SkillExtractor(Extractor):
    """Champion header and abilities from a Wild Rift guide page."""

    kind = "skills"

    fields = [
        FieldSpec("name", [
            CssText("guide-name-h1", "h1.wf-page-header__champion-name"),
            CssText("guide-name-class", ".wf-page-header__champion-name"),
            CssText("guide-name-h1-any", "h1"),
        ], max_len=60),
        FieldSpec("title", [
            CssText("guide-title-class", ".wf-page-header__champion-title"),
        ], max_len=120, required=False),
        FieldSpec("roles", [
            CssTexts("guide-roles-span", ".wf-page-header__champion-roles span"),
            Custom("guide-roles-text", lambda d: [
                r.strip() for r in re.split(r"[,/]", " ".join(d.texts(".wf-page-header__champion-roles"))) if r.strip()
            ]),
        ], max_len=30, required=False),
        FieldSpec("imageUrl", [
            CssAttr("guide-avatar", ".wf-page-header__champion-avatar img", "src", transform=_absolute_image),
            CssAttr("guide-header-img", ".wf-guide__header img", "src", transform=_absolute_image),
        ], max_len=500, required=False),
        FieldSpec("abilities", [
            Custom("wf-ability-full", _full_kit(_skill_blocks("wf-ability"))),
            Custom("ability-class-full", _full_kit(_skill_blocks("ability-class"))),
            Custom("wf-ability", _skill_blocks("wf-ability")),
            Custom("ability-class", _skill_blocks("ability-class")),
        ]),
        FieldSpec("patch", [
            CssText("guide-patch", ".wf-page-header__patch", transform=_strip_label("Patch")),
        ], max_len=12, required=False),
    ]



TFT_STAT_LABELS = [
    ("Health:",    "health"),
    ("Mana:",      "mana"),
    ("Armor:",     "armor"),
    ("MR:",        "magicResist"),
    ("DPS:",       "dps"),
    ("Damage:",    "damage"),
    ("Atk Spd:",   "attackSpeed"),
    ("Crit Rate:", "critRate"),
    ("Range:",     "range"),
]


def _tft_stats(doc: Document) -> dict:
    stats = {}
    for text in doc.texts(".stats-list li"):
        for label, key in TFT_STAT_LABELS:
            if label in text and key not in stats:
                stats[key] = text.replace(label, "").strip()
                break
    return stats


def _tft_traits(doc: Document) -> list[str]:
    ability = (doc.texts(".ability-description-name h2") or [""])[0]
    return [t for t in dict.fromkeys(doc.texts(".character-ability .ability-description-name h2")) if t != ability]


def _tft_items(doc: Document) -> list[dict]:
    items = {}
    for img in doc.select(".items-list img, .champion-build-items img"):
        name = (img.get("alt") or "").strip()
        if name and name not in items:
            src = img.get("src") or ""
            items[name] = {"name": name, "imageUrl": _absolute_image(src, doc) if src else ""}
    return list(items.values())


class TftChampionExtractor(Extractor):
    """One champion detail page of the TFT companion site."""

    kind = "tft"

    fields = [
        FieldSpec("imageUrl", [
            CssAttr("tft-portrait", ".character-portrait .character-image", "src", transform=_absolute_image),
        ], max_len=500, required=False),
        FieldSpec("cost", [
            CssText("tft-cost-li", '.stats-list li:-soup-contains("Cost:")', transform=_strip_label("Cost:")),
            RegexText("tft-cost-regex", r"Cost:\s*(\d+)", group=1),
        ], max_len=2, required=False),
        FieldSpec("stats", [Custom("tft-stats-list", _tft_stats)]),
        FieldSpec("abilityName", [CssText("tft-ability-name", ".ability-description-name h2")], max_len=80),
        FieldSpec("abilityMana", [CssText("tft-ability-mana", ".ability-description-cost span")],
                  max_len=20, required=False),
        FieldSpec("abilityDescription", [CssText("tft-ability-bonus", ".ability-bonus")],
                  max_len=600, required=False),
        FieldSpec("traits", [Custom("tft-trait-headings", _tft_traits)], max_len=40, required=False),
        FieldSpec("recommendedItems", [Custom("tft-build-items", _tft_items)], required=False),
    ]

    def assemble(self, values: dict, context: dict) -> dict:
        params = context.get("params", {})
        payload = {k: values[k] for k in ("imageUrl", "stats", "traits", "recommendedItems") if k in values}
        if params.get("name") and payload:
            payload["name"] = params["name"]
        if "cost" in values:
            cost = _number(values["cost"])
            if cost is not None:
                payload["cost"] = int(cost)
        ability = {
            "name":        values.get("abilityName"),
            "description": values.get("abilityDescription"),
            "mana":        values.get("abilityMana"),
        }
        ability = {k: v for k, v in ability.items() if v}
        if ability:
            payload["ability"] = ability
        return payload
