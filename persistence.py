import json
import os
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Optional

from errors import PersistenceConflict, PipelineError
from logger import get_logger
from mapper import DATA_DIR, is_leaf_shape
from store import DocumentStore

log = get_logger(__name__)

DEFAULT_ALIASES_PATH = os.path.join(DATA_DIR, "name_aliases.json")

IDENTITY_FIELDS = ("_id", "externalId", "kind")
UNSCORED_FIELDS = IDENTITY_FIELDS + ("updatedAt",)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def is_populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, dict):
        return any(is_populated(v) for v in value.values())
    if isinstance(value, (list, tuple)):
        return any(is_populated(v) for v in value)
    return True


def completeness_score(record: dict) -> int:
    """Number of populated optional fields. Derived on demand, never stored."""
    return sum(1 for k, v in record.items() if k not in UNSCORED_FIELDS and is_populated(v))


def merge_fields(existing: dict, payload: dict) -> dict:
    """
    Overlay the populated fields of ``payload`` on ``existing``.

    Empty values never erase stored data. Plain sub-documents are merged
    key by key; bilingual leaves and lists are replaced whole.
    """
    merged = dict(existing)
    for key, value in payload.items():
        if key in UNSCORED_FIELDS or not is_populated(value):
            continue
        current = merged.get(key)
        if (
            isinstance(value, dict) and isinstance(current, dict)
            and not is_leaf_shape(value) and not is_leaf_shape(current)
        ):
            merged[key] = merge_fields(current, value)
        else:
            merged[key] = value
    return merged


def load_aliases(path: str = DEFAULT_ALIASES_PATH) -> dict:
    """``{kind: {"aliases": {broken: canonical}, "invalid": [...]}}``"""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    kinds = data.get("kinds", {})
    log.debug("Loaded name aliases for %s from %s", sorted(kinds), path)
    return kinds


def flat_aliases(kinds: dict) -> dict:
    aliases = {}
    for entry in kinds.values():
        aliases.update(entry.get("aliases", {}))
    return aliases


def canonical_name(aliases: Optional[dict], name: str) -> str:
    """Follow alias chains (``A -> B -> C``) to the final name."""
    seen = {name}
    while aliases and name in aliases and aliases[name] not in seen:
        name = aliases[name]
        seen.add(name)
    return name


class CanonicalPersister:

    def __init__(self, store: DocumentStore, aliases: Optional[dict] = None):
        self.store = store
        self.aliases = aliases or {}
        self.conflicts: list[PersistenceConflict] = []

    def resolve(self, external_id: str, kind: str) -> str:
        """Canonical key for ``external_id``; raises PipelineError for names listed as invalid."""
        entry = self.aliases.get(kind, {})
        if external_id in entry.get("invalid", []):
            raise PipelineError(f"refusing to store invalid {kind} name {external_id!r}")
        canonical = canonical_name(entry.get("aliases"), external_id)
        if canonical != external_id:
            log.info("Alias %s/%s -> %s", kind, external_id, canonical)
        return canonical

    def upsert(self, external_id: str, kind: str, payload: dict) -> dict:
        external_id = self.resolve(external_id, kind)
        existing = self.store.find(kind, external_id)
        if len(existing) > 1:
            record = self.collapse(existing)
        else:
            record = existing[0] if existing else None

        if record is None:
            doc = merge_fields({"externalId": external_id, "kind": kind}, payload)
            doc["updatedAt"] = _now()
            doc = self.store.insert(doc)
            log.info("Inserted %s/%s (score=%d)", kind, external_id, completeness_score(doc))
            return doc

        merged = merge_fields(record, payload)
        merged["updatedAt"] = _now()
        self.store.replace(merged)
        log.info("Updated %s/%s (score=%d)", kind, external_id, completeness_score(merged))
        return merged

    def collapse(self, records: list[dict], dry_run: bool = False) -> dict:
        """
        Merge duplicate records of one logical entity into the most complete.

        The highest completeness score wins, ties going to the oldest record.
        Fields populated only in a loser are copied into the winner, which
        keeps its own ``externalId``; losers are deleted.
        """
        ranked = sorted(records, key=lambda r: (-completeness_score(r), r["_id"]))
        winner, losers = dict(ranked[0]), ranked[1:]

        for loser in losers:
            for key, value in loser.items():
                if key in UNSCORED_FIELDS:
                    continue
                if is_populated(value) and not is_populated(winner.get(key)):
                    winner[key] = value

        conflict = PersistenceConflict(
            external_id=winner["externalId"],
            kind=winner["kind"],
            kept=winner["_id"],
            removed=tuple(r["_id"] for r in losers),
        )
        self.conflicts.append(conflict)
        log.warning(
            "%sPersistenceConflict %s/%s kept=_id %s (score=%d) removed=%s",
            "[dry-run] " if dry_run else "",
            conflict.kind, conflict.external_id, conflict.kept,
            completeness_score(winner),
            [f"{r['externalId']}#{r['_id']}" for r in losers],
        )
        if dry_run:
            return winner

        winner["updatedAt"] = _now()
        self.store.replace(winner)
        for loser in losers:
            self.store.delete(loser["_id"])
        return winner

    def collapse_duplicates(
        self,
        kind: Optional[str] = None,
        aliases: Optional[dict] = None,
        dry_run: bool = False,
    ) -> int:
        """Collapse every ``(logical key, kind)`` group; returns the number of records removed."""
        groups = defaultdict(list)
        for record in self.store.all(kind):
            key = canonical_name(aliases, record["externalId"])
            groups[(key, record["kind"])].append(record)

        removed = 0
        for records in groups.values():
            if len(records) < 2:
                continue
            self.collapse(records, dry_run=dry_run)
            removed += len(records) - 1
        return removed
