import os
import pytest
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import build_config, parse_args
from mapper import DEFAULT_TABLE_PATH
from persistence import DEFAULT_ALIASES_PATH
from repair import REPAIR_PASSES


CONFIG_KEYS = [
    "command", "store_path", "translations", "log_file", "verbose",
    "mode", "ids", "job", "batch_size", "item_delay", "batch_delay",
    "timeout", "user_agent", "feed_base", "feed_version", "patch", "rank",
    "region", "tft_set", "presets_path", "probe_images", "verify_ssl",
    "confirm", "passes", "aliases_path", "external_id", "kind",
]


class TestCrawlConfig:

    def test_all_keys_present(self):
        config = build_config(parse_args(["crawl-all-targets"]))
        for key in CONFIG_KEYS:
            assert key in config

    def test_defaults(self):
        config = build_config(parse_args(["crawl-all-targets"]))
        assert config["command"] == "crawl-all-targets"
        assert config["mode"] == "popular"
        assert config["ids"] == []
        assert config["job"] == "build"
        assert config["batch_size"] == 5
        assert config["item_delay"] == 3.0
        assert config["batch_delay"] == 15.0
        assert config["feed_version"] == "latest"
        assert config["probe_images"] is True
        assert config["verify_ssl"] is True
        assert config["translations"] == [DEFAULT_TABLE_PATH]

    def test_specific_sets_mode(self):
        config = build_config(parse_args(["crawl-all-targets", "--specific", "Kai'Sa, Ahri,,"]))
        assert config["mode"] == "specific"
        assert config["ids"] == ["Kai'Sa", "Ahri"]

    def test_all_mode(self):
        config = build_config(parse_args(["crawl-all-targets", "--all", "--job", "item"]))
        assert config["mode"] == "all"
        assert config["job"] == "item"

    def test_modes_are_exclusive(self):
        with pytest.raises(SystemExit):
            parse_args(["crawl-all-targets", "--all", "--popular"])

    def test_unknown_job_rejected(self):
        with pytest.raises(SystemExit):
            parse_args(["crawl-all-targets", "--job", "frontier"])

    def test_pacing_and_http_flags(self):
        config = build_config(parse_args([
            "crawl-all-targets", "--batch-size", "2", "--item-delay", "0",
            "--batch-delay", "1.5", "--timeout", "4", "--insecure", "--no-probe-images",
        ]))
        assert config["batch_size"] == 2
        assert config["item_delay"] == 0.0
        assert config["batch_delay"] == 1.5
        assert config["timeout"] == 4.0
        assert config["verify_ssl"] is False
        assert config["probe_images"] is False

    def test_env_defaults(self, monkeypatch):
        monkeypatch.setenv("STORE_PATH", "/tmp/other.db")
        monkeypatch.setenv("BATCH_SIZE", "9")
        monkeypatch.setenv("FEED_VERSION", "15.9.1")
        config = build_config(parse_args(["crawl-all-targets"]))
        assert config["store_path"] == "/tmp/other.db"
        assert config["batch_size"] == 9
        assert config["feed_version"] == "15.9.1"

    def test_translations_layered(self):
        config = build_config(parse_args([
            "crawl-all-targets", "--translations", "a.json", "--translations", "b.json",
        ]))
        assert config["translations"] == ["a.json", "b.json"]

    def test_tft_set(self, monkeypatch):
        assert build_config(parse_args(["crawl-all-targets"]))["tft_set"] == 14
        config = build_config(parse_args(["crawl-all-targets", "--job", "tft", "--tft-set", "13"]))
        assert (config["job"], config["tft_set"]) == ("tft", 13)
        monkeypatch.setenv("TFT_SET", "12")
        assert build_config(parse_args(["crawl-all-targets"]))["tft_set"] == 12

    def test_aliases_available_to_crawl(self, monkeypatch):
        assert build_config(parse_args(["crawl-all-targets"]))["aliases_path"] == DEFAULT_ALIASES_PATH
        monkeypatch.setenv("ALIASES_PATH", "/tmp/aliases.json")
        assert build_config(parse_args(["crawl-all-targets"]))["aliases_path"] == "/tmp/aliases.json"


class TestRepairConfig:

    def test_dry_run_by_default(self):
        config = build_config(parse_args(["repair-pass"]))
        assert config["confirm"] is False
        assert config["passes"] is None
        assert config["aliases_path"] == DEFAULT_ALIASES_PATH
        assert config["mode"] is None
        assert config["job"] is None

    def test_confirm_and_passes(self):
        config = build_config(parse_args([
            "repair-pass", "--confirm", "--pass", "duplicates", "--pass", "broken-names",
        ]))
        assert config["confirm"] is True
        assert config["passes"] == ["duplicates", "broken-names"]

    def test_unknown_pass_rejected(self):
        with pytest.raises(SystemExit):
            parse_args(["repair-pass", "--pass", "everything"])

    def test_pass_choices(self):
        for name in REPAIR_PASSES:
            assert build_config(parse_args(["repair-pass", "--pass", name]))["passes"] == [name]


class TestDumpConfig:

    def test_dump(self):
        config = build_config(parse_args(["dump", "Kaisa", "-v"]))
        assert config["external_id"] == "Kaisa"
        assert config["kind"] == "champion"
        assert config["verbose"] is True

    def test_command_required(self):
        with pytest.raises(SystemExit):
            parse_args([])

    def test_dump_other_kinds(self):
        assert build_config(parse_args(["dump", "Jinx", "--kind", "tft_champion"]))["kind"] == "tft_champion"
        with pytest.raises(SystemExit):
            parse_args(["dump", "Jinx", "--kind", "rune"])
