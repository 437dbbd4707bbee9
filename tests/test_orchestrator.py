import os
import pytest
import sys
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from errors import NetworkError, StoreUnavailable
from orchestrator import chunked, resolve_role, run, select_targets
from pipeline import load_presets


def targets(n):
    return [{"externalId": f"champ{i}", "params": {"role": "mid"}} for i in range(1, n + 1)]


class Recorder:
    """Stands in for time.sleep and a process callable."""

    def __init__(self, fail=()):
        self.fail = dict(fail)
        self.processed = []
        self.sleeps = []

    def process(self, target):
        self.processed.append(target["externalId"])
        exc = self.fail.get(target["externalId"])
        if exc is not None:
            raise exc

    def sleep(self, seconds):
        self.sleeps.append(seconds)


class TestRun:

    def test_one_network_error_does_not_abort(self):
        # Example 4
        ts = targets(5)
        rec = Recorder(fail={"champ3": NetworkError("https://a.test/champ3", "boom", 503)})
        summary = run(ts, rec.process, batch_size=2, inter_item_delay=0, inter_batch_delay=0, sleep=rec.sleep)
        assert summary["success_count"] == 4
        assert summary["error_count"] == 1
        assert summary["errors"] == [{"target": ts[2], "message": "HTTP 503 for https://a.test/champ3"}]
        assert rec.processed == ["champ1", "champ2", "champ3", "champ4", "champ5"]

    @pytest.mark.parametrize("n,failing", [(0, ()), (1, ("champ1",)), (7, ("champ2", "champ7")), (10, ())])
    def test_conservation(self, n, failing):
        rec = Recorder(fail={f: ValueError("bad markup") for f in failing})
        summary = run(targets(n), rec.process, batch_size=3, inter_item_delay=0, inter_batch_delay=0, sleep=rec.sleep)
        assert summary["success_count"] + summary["error_count"] == n
        assert summary["error_count"] == len(failing)

    def test_pacing(self):
        rec = Recorder()
        run(targets(5), rec.process, batch_size=2, inter_item_delay=1.5, inter_batch_delay=10, sleep=rec.sleep)
        # items: 1.5 after each; batches [1,2] [3,4] [5]: 10 between, none after the last
        assert rec.sleeps == [1.5, 1.5, 10, 1.5, 1.5, 10, 1.5]

    def test_zero_delays_never_sleep(self):
        rec = Recorder()
        run(targets(3), rec.process, batch_size=1, inter_item_delay=0, inter_batch_delay=0, sleep=rec.sleep)
        assert rec.sleeps == []

    def test_store_unavailable_aborts(self):
        rec = Recorder(fail={"champ2": StoreUnavailable("db gone")})
        with pytest.raises(StoreUnavailable):
            run(targets(4), rec.process, inter_item_delay=0, inter_batch_delay=0, sleep=rec.sleep)
        assert rec.processed == ["champ1", "champ2"]

    def test_interrupt_returns_partial_summary(self):
        rec = Recorder(fail={"champ3": KeyboardInterrupt()})
        summary = run(targets(5), rec.process, inter_item_delay=0, inter_batch_delay=0, sleep=rec.sleep)
        assert summary["interrupted"] is True
        assert summary["success_count"] == 2
        assert rec.processed == ["champ1", "champ2", "champ3"]

    def test_bad_batch_size(self):
        with pytest.raises(ValueError):
            run(targets(1), lambda t: None, batch_size=0)

    def test_chunked(self):
        assert list(chunked([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]


class TestSelectTargets:

    @pytest.fixture
    def presets(self):
        return load_presets()

    def test_specific_ids_get_feed_ids_and_roles(self, presets):
        ts = select_targets("specific", ["Kai'Sa", "Wukong"], presets=presets, params={"patch": "15.10"})
        assert [t["externalId"] for t in ts] == ["Kaisa", "MonkeyKing"]
        assert ts[0]["params"] == {"patch": "15.10", "name": "Kai'Sa", "role": "adc"}

    def test_specific_deduplicates(self, presets):
        ts = select_targets("specific", ["Kai'Sa", "Kaisa", " "], presets=presets)
        assert [t["externalId"] for t in ts] == ["Kaisa"]

    def test_popular_uses_preset(self, presets):
        ts = select_targets("popular", presets=presets)
        assert len(ts) == len(presets["champions"])
        assert all(t["params"]["role"] for t in ts)

    def test_popular_items_rejected(self, presets):
        with pytest.raises(ValueError):
            select_targets("popular", presets=presets, kind="item")

    def test_all_from_store(self, store, presets):
        store.insert({"externalId": "GIÀY THỦY NGÂN", "kind": "item"})
        store.insert({"externalId": "Kaisa", "kind": "champion"})
        ts = select_targets("all", store=store, presets=presets, kind="item")
        assert ts == [{"externalId": "GIÀY THỦY NGÂN", "params": {"name": "GIÀY THỦY NGÂN"}}]

    def test_all_needs_store(self, presets):
        with pytest.raises(ValueError):
            select_targets("all", presets=presets)

    def test_unknown_mode(self, presets):
        with pytest.raises(ValueError):
            select_targets("frontier", presets=presets)


class TestResolveRole:

    @pytest.fixture
    def presets(self):
        return {
            "default_role": "mid",
            "feed_ids": {"Kai'Sa": "Kaisa"},
            "tag_roles": {"Marksman": "adc", "Tank": "top"},
            "champions": {"Kai'Sa": "adc", "Lux": "support"},
        }

    def test_preset_by_name(self, presets):
        assert resolve_role("Lux", "Lux", None, presets) == "support"

    def test_preset_by_feed_id(self, presets):
        assert resolve_role("Kaisa", "Kaisa", None, presets) == "adc"

    def test_stored_tags(self, store, presets):
        store.insert({"externalId": "Malphite", "kind": "champion", "tags": ["Tank", "Fighter"]})
        assert resolve_role("Malphite", "Malphite", store, presets) == "top"

    def test_default(self, store, presets):
        assert resolve_role("Zed", "Zed", store, presets) == "mid"
