"""
Batch Orchestrator.

Targets are processed strictly one at a time. Batches exist for pacing
only: a short pause after every target and a longer one between batches
keeps the third-party sites from rate-limiting us. The mapper's miss log
and the persister's check-then-write both rely on there being no second
writer, so do not parallelise this loop.
"""

import time
from typing import Callable, Iterable, Iterator, Optional

from errors import StoreUnavailable
from logger import get_logger
from pipeline import feed_id
from store import DocumentStore

log = get_logger(__name__)

TARGET_MODES = ("specific", "popular", "all")


def chunked(items: list, size: int) -> Iterator[list]:
    for i in range(0, len(items), size):
        yield items[i:i + size]


def target_label(target: dict) -> str:
    role = target.get("params", {}).get("role")
    return f"{target['externalId']}/{role}" if role else target["externalId"]


def run(
    targets: list[dict],
    process: Callable[[dict], object],
    batch_size: int = 5,
    inter_item_delay: float = 3.0,
    inter_batch_delay: float = 15.0,
    sleep: Callable[[float], None] = time.sleep,
) -> dict:
    """
    Run ``process`` over every target and return the RunSummary.

    Any exception from one target is recorded and the run moves on, except
    StoreUnavailable which aborts the run. Ctrl-C stops the run early and
    returns the partial summary with ``interrupted`` set.
    """
    if batch_size < 1:
        raise ValueError("batch_size must be at least 1")

    summary = {"success_count": 0, "error_count": 0, "errors": [], "interrupted": False}
    batches = list(chunked(list(targets), batch_size))

    try:
        for number, batch in enumerate(batches, 1):
            log.info("Batch %d/%d: %s", number, len(batches), ", ".join(target_label(t) for t in batch))

            for target in batch:
                label = target_label(target)
                try:
                    process(target)
                except StoreUnavailable:
                    log.error("Record store unavailable -- aborting run at %s", label)
                    raise
                except Exception as exc:
                    summary["error_count"] += 1
                    summary["errors"].append({"target": target, "message": str(exc)})
                    log.error("Target %s failed: %s: %s", label, type(exc).__name__, exc)
                else:
                    summary["success_count"] += 1
                    log.info("Target %s done", label)

                if inter_item_delay > 0:
                    sleep(inter_item_delay)

            if number < len(batches) and inter_batch_delay > 0:
                log.info("Batch %d done, pausing %.1fs", number, inter_batch_delay)
                sleep(inter_batch_delay)
    except KeyboardInterrupt:
        summary["interrupted"] = True
        log.warning("Interrupted -- %d of %d targets processed",
                    summary["success_count"] + summary["error_count"], len(targets))

    log.info("Run summary | targets=%d success=%d errors=%d",
             len(targets), summary["success_count"], summary["error_count"])
    for error in summary["errors"]:
        log.info("  failed %s: %s", target_label(error["target"]), error["message"])
    return summary


def _stored_role(store: Optional[DocumentStore], external_id: str, presets: dict) -> Optional[str]:
    if store is None:
        return None
    record = store.find_one("champion", external_id)
    tag_roles = presets.get("tag_roles", {})
    for tag in (record or {}).get("tags") or []:
        if isinstance(tag, str) and tag in tag_roles:
            return tag_roles[tag]
    return None


def resolve_role(name: str, external_id: str, store: Optional[DocumentStore], presets: dict) -> str:
    """Preset role, else the role implied by the stored feed tags, else the default."""
    champions = presets.get("champions", {})
    if name in champions:
        return champions[name]
    for preset_name, role in champions.items():
        if feed_id(preset_name, presets) == external_id:
            return role
    return _stored_role(store, external_id, presets) or presets.get("default_role", "mid")


def select_targets(
    mode: str,
    ids: Iterable[str] = (),
    store: Optional[DocumentStore] = None,
    presets: Optional[dict] = None,
    kind: str = "champion",
    params: Optional[dict] = None,
) -> list[dict]:
    """
    Build CrawlTargets: ``specific`` takes ``ids`` as given, ``popular``
    the curated preset list, ``all`` every id already in the store.
    """
    presets = presets or {}
    params = params or {}

    if mode == "specific":
        names = [i.strip() for i in ids if i and i.strip()]
    elif mode == "popular":
        if kind != "champion":
            raise ValueError(f"no popular preset for {kind} targets")
        names = list(presets.get("champions", {}))
    elif mode == "all":
        if store is None:
            raise ValueError("mode 'all' needs the record store")
        names = store.distinct_ids(kind)
    else:
        raise ValueError(f"unknown target mode: {mode!r}")

    targets = []
    seen = set()
    for name in names:
        if kind == "champion":
            external_id = feed_id(name, presets)
            target_params = dict(params, name=name, role=resolve_role(name, external_id, store, presets))
        else:
            external_id = name
            target_params = dict(params, name=name)
        if external_id in seen:
            continue
        seen.add(external_id)
        targets.append({"externalId": external_id, "params": target_params})

    log.info("Selected %d %s targets (mode=%s)", len(targets), kind, mode)
    return targets
