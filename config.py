import argparse
import os

from fetcher import DEFAULT_USER_AGENT, FEED_BASE
from mapper import DEFAULT_TABLE_PATH
from persistence import DEFAULT_ALIASES_PATH
from pipeline import DEFAULT_PRESETS_PATH, DEFAULT_TFT_SET, JOBS, KINDS
from repair import REPAIR_PASSES

VERSION = "1.0.0"


def _split_ids(value: str) -> list[str]:
    return [v.strip() for v in value.split(",") if v.strip()]


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--store",
        default=os.environ.get("STORE_PATH", "champdata.db"),
        metavar="PATH",
        help="SQLite file holding the canonical records.",
    )
    parser.add_argument(
        "--translations",
        action="append",
        default=None,
        metavar="PATH",
        help="Translation table JSON. Repeat to layer tables; later files win. "
             f"Default: $TRANSLATIONS_PATH or {os.path.relpath(DEFAULT_TABLE_PATH)}",
    )
    parser.add_argument(
        "--aliases",
        default=os.environ.get("ALIASES_PATH", DEFAULT_ALIASES_PATH),
        metavar="PATH",
        help="Name alias JSON. Crawls store under the canonical name; repair uses it for "
             "broken-names and duplicates.",
    )
    parser.add_argument(
        "--log-file",
        default=os.environ.get("LOG_FILE"),
        metavar="PATH",
        help="Also write the log to this rotating file.",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        default=False,
        help="Log at DEBUG level.",
    )


def make_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scrape.py",
        description="League champion content pipeline: crawl, normalize and repair canonical records",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"champdata-pipeline {VERSION}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    crawl = sub.add_parser(
        "crawl-all-targets",
        help="Crawl a target list and upsert the results.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    _add_common(crawl)
    mode = crawl.add_mutually_exclusive_group()
    mode.add_argument(
        "--popular",
        action="store_const",
        dest="mode",
        const="popular",
        help="Crawl the curated popular preset (champions only).",
    )
    mode.add_argument(
        "--specific",
        type=_split_ids,
        default=None,
        metavar="ID,ID,...",
        help="Crawl these ids only (champion names or item names).",
    )
    mode.add_argument(
        "--all",
        action="store_const",
        dest="mode",
        const="all",
        help="Crawl every id already in the store.",
    )
    crawl.add_argument(
        "--job",
        choices=JOBS,
        default=os.environ.get("JOB", "build"),
        help="What to crawl for each target.",
    )
    crawl.add_argument(
        "--batch-size",
        type=int,
        default=int(os.environ.get("BATCH_SIZE", "5")),
        metavar="N",
        help="Targets per batch.",
    )
    crawl.add_argument(
        "--item-delay",
        type=float,
        default=float(os.environ.get("ITEM_DELAY", "3.0")),
        metavar="SECONDS",
        help="Pause after every target.",
    )
    crawl.add_argument(
        "--batch-delay",
        type=float,
        default=float(os.environ.get("BATCH_DELAY", "15.0")),
        metavar="SECONDS",
        help="Pause between batches.",
    )
    crawl.add_argument(
        "--timeout",
        type=float,
        default=float(os.environ.get("TIMEOUT_SECONDS", "10")),
        metavar="SECONDS",
        help="Per-request timeout.",
    )
    crawl.add_argument(
        "--user-agent",
        default=os.environ.get("USER_AGENT", DEFAULT_USER_AGENT),
        metavar="UA",
        help="User-Agent header sent with every request.",
    )
    crawl.add_argument(
        "--feed-base",
        default=os.environ.get("FEED_BASE", FEED_BASE),
        metavar="URL",
        help="Asset feed base URL.",
    )
    crawl.add_argument(
        "--feed-version",
        default=os.environ.get("FEED_VERSION", "latest"),
        metavar="V",
        help="Asset feed version, or 'latest' to resolve it from the version list.",
    )
    crawl.add_argument(
        "--patch",
        default=os.environ.get("PATCH", "15.10"),
        help="Game patch recorded with counter data.",
    )
    crawl.add_argument(
        "--rank",
        default=os.environ.get("RANK", "emerald_plus"),
        help="Rank bracket for build and counter pages.",
    )
    crawl.add_argument(
        "--region",
        default=os.environ.get("REGION", "global"),
        help="Region recorded with counter data.",
    )
    crawl.add_argument(
        "--tft-set",
        type=int,
        default=int(os.environ.get("TFT_SET", str(DEFAULT_TFT_SET))),
        metavar="N",
        help="TFT set number recorded with tft records.",
    )
    crawl.add_argument(
        "--presets",
        default=os.environ.get("PRESETS_PATH", DEFAULT_PRESETS_PATH),
        metavar="PATH",
        help="Popular target preset JSON.",
    )
    crawl.add_argument(
        "--no-probe-images",
        action="store_false",
        dest="probe_images",
        default=True,
        help="Skip checking that asset-feed image URLs resolve.",
    )
    crawl.add_argument(
        "--insecure",
        action="store_true",
        default=False,
        help="Do not verify TLS certificates.",
    )
    crawl.set_defaults(mode="popular")

    repair = sub.add_parser(
        "repair-pass",
        help="Fix malformed legacy records. Dry-run unless --confirm.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    _add_common(repair)
    repair.add_argument(
        "--confirm",
        action="store_true",
        default=False,
        help="Apply renames, merges and deletions. Without it nothing is written.",
    )
    repair.add_argument(
        "--pass",
        dest="passes",
        action="append",
        choices=REPAIR_PASSES,
        default=None,
        help="Run only this pass (repeatable). Default: all passes in order.",
    )

    dump = sub.add_parser(
        "dump",
        help="Print the stored record(s) for one externalId.",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    _add_common(dump)
    dump.add_argument("external_id", metavar="EXTERNAL_ID")
    dump.add_argument(
        "--kind",
        choices=KINDS,
        default="champion",
    )

    return parser


def parse_args(argv=None) -> argparse.Namespace:
    return make_parser().parse_args(argv)


def build_config(args: argparse.Namespace) -> dict:
    """
    Flatten the parsed namespace into one config dict that gets logged at
    start-up. Options a subcommand does not define come out as None.
    """
    translations = args.translations
    if not translations:
        translations = [os.environ.get("TRANSLATIONS_PATH", DEFAULT_TABLE_PATH)]

    mode = getattr(args, "mode", None)
    ids = getattr(args, "specific", None)
    if ids:
        mode = "specific"

    return {
        "command":       args.command,
        "store_path":    args.store,
        "translations":  translations,
        "log_file":      args.log_file,
        "verbose":       args.verbose,
        # crawl-all-targets
        "mode":          mode,
        "ids":           ids or [],
        "job":           getattr(args, "job", None),
        "batch_size":    getattr(args, "batch_size", None),
        "item_delay":    getattr(args, "item_delay", None),
        "batch_delay":   getattr(args, "batch_delay", None),
        "timeout":       getattr(args, "timeout", None),
        "user_agent":    getattr(args, "user_agent", None),
        "feed_base":     getattr(args, "feed_base", None),
        "feed_version":  getattr(args, "feed_version", None),
        "patch":         getattr(args, "patch", None),
        "rank":          getattr(args, "rank", None),
        "region":        getattr(args, "region", None),
        "presets_path":  getattr(args, "presets", None),
        "tft_set":       getattr(args, "tft_set", None),
        "probe_images":  getattr(args, "probe_images", None),
        "verify_ssl":    not getattr(args, "insecure", False),
        # repair-pass
        "confirm":       getattr(args, "confirm", False),
        "passes":        getattr(args, "passes", None),
        "aliases_path":  getattr(args, "aliases", None),
        # dump
        "external_id":   getattr(args, "external_id", None),
        "kind":          getattr(args, "kind", None),
    }
