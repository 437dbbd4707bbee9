"""
Repair Runner.

Store-only maintenance passes over records left malformed by earlier
pipeline versions. Every pass is dry-run unless ``confirm`` is set, and
every pass is idempotent: a second run over fixed data fixes nothing.
"""

import copy
from typing import Callable, Optional

from logger import get_logger
from mapper import TranslationMapper, is_leaf_shape
from persistence import CanonicalPersister, canonical_name, flat_aliases, is_populated
from store import DocumentStore

log = get_logger(__name__)

REPAIR_PASSES = ("rename-starting-items", "nested-bilingual", "duplicates", "broken-names")

# Kinds keyed by their display name. Champions are keyed by asset-feed id
# (Wukong -> MonkeyKing), so a rename never touches their ``name``.
DISPLAY_NAME_KINDS = ("item", "wr_champion", "tft_champion", "tft_item")


def has_legacy_starting(record: dict) -> bool:
    groups = record.get("recommendedItems")
    if not isinstance(groups, list):
        return False
    return any(isinstance(g, dict) and "starting" in g for g in groups)


def rename_starting(record: dict) -> dict:
    for group in record.get("recommendedItems") or []:
        if not isinstance(group, dict) or "starting" not in group:
            continue
        legacy = group.pop("starting")
        if not is_populated(group.get("startingItems")):
            group["startingItems"] = legacy
    return record


class RepairRunner:

    def __init__(
        self,
        store: DocumentStore,
        confirm: bool = False,
        mapper: Optional[TranslationMapper] = None,
        aliases: Optional[dict] = None,
    ):
        self.store   = store
        self.confirm = confirm
        self.mapper  = mapper or TranslationMapper()
        self.aliases = aliases or {}

    @property
    def _tag(self) -> str:
        return "" if self.confirm else "[dry-run] "

    def repair(
        self,
        predicate: Callable[[dict], bool],
        transform: Callable[[dict], Optional[dict]],
        kind: Optional[str] = None,
    ) -> dict:
        """
        Apply ``transform`` to every record matching ``predicate``.

        ``transform`` receives a copy and returns the fixed record, or None
        to delete it. Nothing is written unless ``confirm`` is set.
        """
        scanned = fixed = 0
        for record in self.store.all(kind):
            scanned += 1
            if not predicate(record):
                continue
            result = transform(copy.deepcopy(record))
            fixed += 1
            key = f"{record['kind']}/{record['externalId']}#{record['_id']}"
            if result is None:
                log.info("%sdelete %s", self._tag, key)
                if self.confirm:
                    self.store.delete(record["_id"])
            else:
                if result.get("externalId") != record["externalId"]:
                    log.info("%srename %s -> %s", self._tag, key, result.get("externalId"))
                else:
                    log.debug("%supdate %s", self._tag, key)
                if self.confirm:
                    result["_id"] = record["_id"]
                    self.store.replace(result)
        return {"scanned": scanned, "fixed": fixed}

    def rename_starting_items(self) -> dict:
        return self.repair(has_legacy_starting, rename_starting)

    def nested_bilingual(self) -> dict:
        def predicate(record: dict) -> bool:
            return self.mapper.needs_normalization(record)

        def transform(record: dict) -> dict:
            return self.mapper.normalize_structure(record)

        return self.repair(predicate, transform)

    def broken_names(self) -> dict:
        """Delete records with invalid names; rename mis-split names when the canonical one is free."""
        totals = {"scanned": 0, "fixed": 0}
        for kind, entry in self.aliases.items():
            aliases = entry.get("aliases", {})
            invalid = set(entry.get("invalid", []))

            def predicate(record: dict) -> bool:
                name = record["externalId"]
                if name in invalid:
                    return True
                if name not in aliases:
                    return False
                return self.store.find_one(kind, canonical_name(aliases, name)) is None

            def transform(record: dict) -> Optional[dict]:
                name = record["externalId"]
                if name in invalid:
                    return None
                canonical = canonical_name(aliases, name)
                record["externalId"] = canonical
                if kind in DISPLAY_NAME_KINDS and _names_match(record.get("name"), name):
                    record["name"] = self.mapper.normalize_text(canonical)
                return record

            result = self.repair(predicate, transform, kind=kind)
            totals["scanned"] += result["scanned"]
            totals["fixed"] += result["fixed"]
        return totals

    def collapse(self, persister: Optional[CanonicalPersister] = None, aliases: Optional[dict] = None) -> dict:
        persister = persister or CanonicalPersister(self.store)
        if aliases is None:
            aliases = flat_aliases(self.aliases)
        scanned = self.store.count()
        removed = persister.collapse_duplicates(aliases=aliases, dry_run=not self.confirm)
        return {"scanned": scanned, "fixed": removed}

    def run_passes(self, names: Optional[list[str]] = None) -> list[dict]:
        passes = {
            "rename-starting-items": self.rename_starting_items,
            "nested-bilingual":      self.nested_bilingual,
            "duplicates":            self.collapse,
            "broken-names":          self.broken_names,
        }
        names = list(names or REPAIR_PASSES)
        unknown = [n for n in names if n not in passes]
        if unknown:
            raise ValueError(f"unknown repair pass: {', '.join(unknown)}")

        reports = []
        for name in names:
            before = self.store.count()
            result = passes[name]()
            after = self.store.count()
            report = {"pass": name, **result, "before": before, "after": after}
            log.info(
                "%sRepair %s | scanned=%d fixed=%d records before=%d after=%d",
                self._tag, name, report["scanned"], report["fixed"], before, after,
            )
            reports.append(report)
        return reports


def _names_match(value, name: str) -> bool:
    if isinstance(value, str):
        return value.strip() == name
    if is_leaf_shape(value):
        return name in value.values()
    return False
