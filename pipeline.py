"""
Crawl jobs.

Each job binds Fetcher -> Extractor -> Mapper -> Persister for one target:

    build      op.gg build page        -> champion record (runes, items, spells, skills)
    counter    kicdo counter page      -> champion record (counterStats)
    abilities  asset feed en_US + vi_VN -> champion record (name, title, abilities)
    item       tocchien item page      -> item record
    skills     wildriftfire guide page -> wr_champion record (abilities with cooldowns)
    tft        tftactics champion page -> tft_champion record, plus one tft_item per build item
"""

import json
import os
import re
from typing import Callable, Optional

import requests

from errors import NetworkError, PipelineError
from extractor import (
    AbilityExtractor,
    BuildExtractor,
    CounterExtractor,
    ItemExtractor,
    SkillExtractor,
    TftChampionExtractor,
)
from fetcher import (
    FEED_BASE,
    asset_image_url,
    asset_url,
    build_page_url,
    counter_page_url,
    fetch,
    fetch_first,
    item_page_urls,
    latest_feed_version,
    probe,
    skill_image_fallback,
    skill_page_url,
    tft_champion_url,
)
from logger import get_logger
from mapper import DATA_DIR, TranslationMapper
from persistence import CanonicalPersister

log = get_logger(__name__)

JOBS = ("build", "counter", "abilities", "item", "skills", "tft")

JOB_KINDS = {
    "build":     "champion",
    "counter":   "champion",
    "abilities": "champion",
    "item":      "item",
    "skills":    "wr_champion",
    "tft":       "tft_champion",
}

KINDS = ("champion", "item", "wr_champion", "tft_champion", "tft_item")

DEFAULT_TFT_SET = 14

DEFAULT_PRESETS_PATH = os.path.join(DATA_DIR, "popular_targets.json")

FEED_LOCALES = ("en_US", "vi_VN")


def load_presets(path: str = DEFAULT_PRESETS_PATH) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        presets = json.load(f)
    log.debug("Loaded %d preset champions from %s", len(presets.get("champions", {})), path)
    return presets


def feed_id(name: str, presets: Optional[dict] = None) -> str:
    """Asset-feed id for a display name: ``Kai'Sa`` -> ``Kaisa``, ``Wukong`` -> ``MonkeyKing``."""
    overrides = (presets or {}).get("feed_ids", {})
    if name in overrides:
        return overrides[name]
    return re.sub(r"[^A-Za-z0-9]", "", name)


class Pipeline:

    def __init__(
        self,
        session: requests.Session,
        mapper: TranslationMapper,
        persister: CanonicalPersister,
        config: dict,
    ):
        self.session   = session
        self.mapper    = mapper
        self.persister = persister
        self.config    = config
        self.timeout   = config.get("timeout", 10)
        self.feed_base = config.get("feed_base") or FEED_BASE
        self._feed_version = config.get("feed_version") or "latest"

        self.extractors = {
            "build":     BuildExtractor(),
            "counter":   CounterExtractor(),
            "abilities": AbilityExtractor(),
            "item":      ItemExtractor(),
            "skills":    SkillExtractor(),
            "tft":       TftChampionExtractor(),
        }

    @property
    def feed_version(self) -> str:
        if self._feed_version == "latest":
            self._feed_version = latest_feed_version(self.session, timeout=self.timeout)
        return self._feed_version

    def processor(self, job: str) -> Callable[[dict], dict]:
        if job not in JOBS:
            raise ValueError(f"unknown job: {job!r}")
        return getattr(self, f"crawl_{job}")

    def extraction_misses(self) -> list:
        return [m for e in self.extractors.values() for m in e.misses]

    def _persist(self, target: dict, kind: str, job: str, entity: dict, extra: Optional[dict] = None) -> dict:
        url = entity.pop("sourceUrl", "")
        strategies = entity.pop("extractionStrategyId", {})
        if not entity:
            raise PipelineError(f"nothing extracted for {target['externalId']} from {url}")

        log.debug("%s %s strategies=%s", job, target["externalId"], strategies)
        payload = self.mapper.normalize_structure(entity)
        payload.update(extra or {})
        payload["sources"] = {job: url}
        return self.persister.upsert(target["externalId"], kind, payload)

    def crawl_build(self, target: dict) -> dict:
        params = target.get("params", {})
        name = params.get("name") or target["externalId"]
        url = build_page_url(name, params.get("rank") or "emerald_plus")
        html = fetch(self.session, url, timeout=self.timeout)
        entity = self.extractors["build"].extract(html, {"url": url, "params": params})
        return self._persist(target, "champion", "build", entity)

    def crawl_counter(self, target: dict) -> dict:
        params = target.get("params", {})
        url = counter_page_url(params.get("name") or target["externalId"])
        html = fetch(self.session, url, timeout=self.timeout)
        entity = self.extractors["counter"].extract(html, {"url": url, "params": params})
        return self._persist(target, "champion", "counter", entity)

    def crawl_item(self, target: dict) -> dict:
        params = target.get("params", {})
        url, html = fetch_first(self.session, item_page_urls(target["externalId"]), timeout=self.timeout)
        entity = self.extractors["item"].extract(html, {"url": url, "params": params})
        return self._persist(target, "item", "item", entity)

    def crawl_abilities(self, target: dict) -> dict:
        champion = target["externalId"]
        version = self.feed_version
        extractor = self.extractors["abilities"]

        by_locale = {}
        for locale in FEED_LOCALES:
            url = asset_url(self.feed_base, version, locale, "champion", champion)
            body = fetch(self.session, url, headers={"Accept": "application/json"}, timeout=self.timeout)
            by_locale[locale] = extractor.extract(body, {"url": url})
        en, vi = by_locale["en_US"], by_locale["vi_VN"]

        payload = {
            "name":  self.mapper.pair(en.get("name"), vi.get("name")),
            "title": self.mapper.pair(en.get("title"), vi.get("title")),
            "tags":  en.get("tags") or [],
            "abilities": self._pair_abilities(version, en.get("abilities", []), vi.get("abilities", [])),
        }
        if en.get("imageFile"):
            payload["imageUrl"] = self._checked_image(
                asset_image_url(self.feed_base, version, "champion", en["imageFile"])
            )
        payload = {k: v for k, v in payload.items() if v}
        if not payload:
            raise PipelineError(f"nothing extracted for {champion} from the asset feed")

        payload["sources"] = {"abilities": en.get("sourceUrl", "")}
        payload["feedVersion"] = version
        return self.persister.upsert(champion, "champion", payload)

    def crawl_skills(self, target: dict) -> dict:
        params = target.get("params", {})
        champion = params.get("name") or target["externalId"]
        url = skill_page_url(champion)
        html = fetch(self.session, url, timeout=self.timeout)
        entity = self.extractors["skills"].extract(html, {"url": url, "params": params})
        for ability in entity.get("abilities", []):
            candidates = [ability.pop("imageUrl", "")]
            candidates.append(skill_image_fallback(champion, ability["name"]))
            image = self._first_image(candidates)
            if image:
                ability["imageUrl"] = image
        return self._persist(target, "wr_champion", "skills", entity)

    def crawl_tft(self, target: dict) -> dict:
        params = target.get("params", {})
        champion = params.get("name") or target["externalId"]
        url = tft_champion_url(champion)
        html = fetch(self.session, url, timeout=self.timeout)
        entity = self.extractors["tft"].extract(html, {"url": url, "params": params})
        items = entity.get("recommendedItems", [])

        set_number = self.config.get("tft_set") or DEFAULT_TFT_SET
        season = {"setNumber": set_number, "patch": f"Set {set_number}"}
        record = self._persist(target, "tft_champion", "tft", entity, extra=season)

        for item in items:
            payload = self.mapper.normalize_structure(item)
            payload.update(season, sources={"tft": url})
            self.persister.upsert(item["name"], "tft_item", payload)
        if items:
            log.info("%s: %d recommended TFT items stored", target["externalId"], len(items))
        return record

    def _pair_abilities(self, version: str, en_list: list, vi_list: list) -> list[dict]:
        vi_by_key = {a["key"]: a for a in vi_list}
        abilities = []
        for ability in en_list:
            other = vi_by_key.get(ability["key"], {})
            entry = {
                "key":         ability["key"],
                "name":        self.mapper.pair(ability.get("name"), other.get("name")),
                "description": self.mapper.pair(ability.get("description"), other.get("description")),
            }
            group, filename = ability.get("image") or ["", ""]
            if filename:
                image = self._checked_image(asset_image_url(self.feed_base, version, group, filename))
                if image:
                    entry["imageUrl"] = image
            abilities.append({k: v for k, v in entry.items() if v is not None})
        return abilities

    def _checked_image(self, url: str) -> str:
        if not self.config.get("probe_images", True):
            return url
        try:
            if probe(self.session, url, timeout=self.timeout):
                return url
        except NetworkError as exc:
            log.warning("Image check failed, dropped: %s", exc)
            return ""
        log.warning("Image does not resolve, dropped: %s", url)
        return ""

    def _first_image(self, candidates: list) -> str:
        for url in candidates:
            if url and self._checked_image(url):
                return url
        return ""
