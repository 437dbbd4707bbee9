"""
scrape.py
---------
CLI entrypoint. Three subcommands:
  crawl-all-targets   fetch -> extract -> normalize -> persist, in paced batches
  repair-pass         store-only fixes for legacy records (dry-run by default)
  dump                print the stored record(s) for one externalId

Usage:
    python scrape.py --help
    python scrape.py crawl-all-targets --popular --job build
    python scrape.py crawl-all-targets --specific "Kai'Sa,Ahri" --job abilities --feed-version 15.10.1
    python scrape.py crawl-all-targets --specific "GIÀY NĂNG LƯỢNG HOÀN CHỈNH" --job item
    python scrape.py crawl-all-targets --specific "Aatrox,Lee Sin" --job skills
    python scrape.py crawl-all-targets --specific Jinx --job tft --tft-set 14
    python scrape.py repair-pass                      # report only
    python scrape.py repair-pass --confirm --pass duplicates
    python scrape.py dump Kaisa
"""

import json
import logging
import sys

# Bootstrap logger before importing anything else
import logger as _logger_mod

RUN_ID = _logger_mod.new_run_id()
_logger_mod.setup_logger(RUN_ID)
log = _logger_mod.get_logger("scrape")

from config import VERSION, parse_args, build_config
from errors import StoreUnavailable
from fetcher import make_session
from mapper import TranslationMapper
from orchestrator import run, select_targets
from persistence import CanonicalPersister, load_aliases
from pipeline import JOB_KINDS, Pipeline, load_presets
from repair import RepairRunner
from store import DocumentStore


def crawl(config: dict, store: DocumentStore, mapper: TranslationMapper) -> int:
    presets = load_presets(config["presets_path"])
    kind = JOB_KINDS[config["job"]]
    params = {k: config[k] for k in ("patch", "rank", "region")}

    try:
        targets = select_targets(config["mode"], config["ids"], store, presets, kind, params)
    except ValueError as exc:
        log.error("Cannot select targets: %s", exc)
        return 1
    if not targets:
        log.warning("No targets selected. Nothing to do.")
        return 0

    session = make_session(config["user_agent"], verify=config["verify_ssl"])
    persister = CanonicalPersister(store, aliases=load_aliases(config["aliases_path"]))
    pipeline = Pipeline(session, mapper, persister, config)

    summary = run(
        targets,
        pipeline.processor(config["job"]),
        batch_size=config["batch_size"],
        inter_item_delay=config["item_delay"],
        inter_batch_delay=config["batch_delay"],
    )

    misses = pipeline.extraction_misses()
    if misses:
        log.info("Extraction misses: %d (fields: %s)", len(misses), sorted({m.field for m in misses}))
    log.info("Done. success=%d errors=%d%s",
             summary["success_count"], summary["error_count"],
             " (interrupted)" if summary["interrupted"] else "")
    return 0


def repair(config: dict, store: DocumentStore, mapper: TranslationMapper) -> int:
    runner = RepairRunner(
        store,
        confirm=config["confirm"],
        mapper=mapper,
        aliases=load_aliases(config["aliases_path"]),
    )
    if not config["confirm"]:
        log.info("Dry run: nothing will be written. Re-run with --confirm to apply.")
    reports = runner.run_passes(config["passes"])
    log.info("Repair done. fixed=%d records before=%d after=%d",
             sum(r["fixed"] for r in reports), reports[0]["before"], reports[-1]["after"])
    return 0


def dump(config: dict, store: DocumentStore) -> int:
    records = store.find(config["kind"], config["external_id"])
    if not records:
        log.warning("No %s record for %r", config["kind"], config["external_id"])
        return 1
    if len(records) > 1:
        log.warning("%d records share %s/%s -- run repair-pass", len(records), config["kind"], config["external_id"])
    for record in records:
        print(json.dumps(record, ensure_ascii=False, indent=2))
    return 0


def main(argv=None) -> int:
    args   = parse_args(argv)
    config = build_config(args)

    if config["verbose"] or config["log_file"]:
        _logger_mod.setup_logger(
            RUN_ID,
            level=logging.DEBUG if config["verbose"] else logging.INFO,
            log_file=config["log_file"],
        )

    log.info("=" * 60)
    log.info("League champion content pipeline  v%s", VERSION)
    log.info("run_id=%s  command=%s  store=%s", RUN_ID, config["command"], config["store_path"])
    if config["command"] == "crawl-all-targets":
        log.info("job=%s  mode=%s  batch_size=%d  item_delay=%.1fs  batch_delay=%.1fs  timeout=%.0fs",
                 config["job"], config["mode"], config["batch_size"],
                 config["item_delay"], config["batch_delay"], config["timeout"])
    log.info("=" * 60)

    mapper = TranslationMapper.from_files(*config["translations"])

    try:
        with DocumentStore(config["store_path"]) as store:
            if config["command"] == "crawl-all-targets":
                code = crawl(config, store, mapper)
            elif config["command"] == "repair-pass":
                code = repair(config, store, mapper)
            else:
                code = dump(config, store)
    except StoreUnavailable as exc:
        log.error("Record store unavailable: %s", exc)
        return 2

    top = mapper.miss_counts().most_common(20)
    if top:
        log.info("Mapping misses (top %d of %d): %s", len(top), len(mapper.misses), top)
    return code


if __name__ == "__main__":
    sys.exit(main())
