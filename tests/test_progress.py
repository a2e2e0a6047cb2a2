"""Tests for the progress store and the active-run pointer."""

from core.models import STATUS_COMPLETE, STATUS_ERROR, STATUS_RUNNING, ProgressRecord
from core.progress import PROGRESS_TTL, ProgressStore


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


def running(**kwargs):
    return ProgressRecord(status=STATUS_RUNNING, **kwargs)


class TestRecords:
    def test_default_ttl_is_one_hour(self):
        assert PROGRESS_TTL == 3600

    def test_expiry(self):
        clock = FakeClock()
        store = ProgressStore(ttl=3600, clock=clock)
        store.set("run", running())

        clock.advance(3599)
        assert store.get("run") is not None
        clock.advance(1)
        assert store.get("run") is None

    def test_merge_keeps_other_fields(self):
        store = ProgressStore(clock=FakeClock())
        store.set("run", running(total=40, message="Counting products..."))
        store.merge("run", percent=50, exported=20)

        record = store.get("run")
        assert record.percent == 50
        assert record.exported == 20
        assert record.total == 40
        assert record.message == "Counting products..."
        assert record.status == STATUS_RUNNING

    def test_merge_renews_expiry(self):
        clock = FakeClock()
        store = ProgressStore(ttl=100, clock=clock)
        store.set("run", running())
        clock.advance(90)
        store.merge("run", percent=10)
        clock.advance(90)
        assert store.get("run").percent == 10

    def test_delete(self):
        store = ProgressStore(clock=FakeClock())
        store.set("run", running())
        store.delete("run")
        store.delete("never-existed")
        assert store.get("run") is None

    def test_purge_expired(self):
        clock = FakeClock()
        store = ProgressStore(ttl=10, clock=clock)
        store.set("old", running())
        clock.advance(5)
        store.set("new", running())
        clock.advance(6)
        assert store.purge_expired() == 1
        assert store.get("new") is not None


class TestActivePointer:
    def test_claim_when_idle(self):
        store = ProgressStore(clock=FakeClock())
        assert store.claim_active("a", running(message="Starting export...")) is None
        assert store.get("a").message == "Starting export..."
        assert store.active()[0] == "a"

    def test_claim_rejected_while_running(self):
        store = ProgressStore(clock=FakeClock())
        store.claim_active("a", running())
        assert store.claim_active("b", running()) == "a"
        assert store.get("b") is None

    def test_claim_rejected_while_init(self):
        store = ProgressStore(clock=FakeClock())
        store.claim_active("a", ProgressRecord())
        assert store.claim_active("b", running()) == "a"

    def test_claim_after_terminal_status(self):
        store = ProgressStore(clock=FakeClock())
        store.claim_active("a", running())
        store.merge("a", status=STATUS_COMPLETE, percent=100)
        assert store.claim_active("b", running()) is None
        assert store.active()[0] == "b"

    def test_claim_after_record_expired(self):
        clock = FakeClock()
        store = ProgressStore(ttl=60, clock=clock)
        store.claim_active("a", running())
        clock.advance(61)
        assert store.claim_active("b", running()) is None

    def test_active_clears_terminal_pointer(self):
        store = ProgressStore(clock=FakeClock())
        store.claim_active("a", running())
        store.merge("a", status=STATUS_ERROR, message="boom")
        assert store.active() is None
        assert store._active_run_id is None
        assert store.get("a").status == STATUS_ERROR

    def test_release_only_own_run(self):
        store = ProgressStore(clock=FakeClock())
        store.claim_active("a", running())
        store.release_active("other")
        assert store.active()[0] == "a"
        store.release_active("a")
        assert store.active() is None

    def test_claim_reclaims_expired_records(self):
        clock = FakeClock()
        store = ProgressStore(ttl=10, clock=clock)
        for i in range(50):
            run_id = f"run-{i}"
            assert store.claim_active(run_id, running()) is None
            store.merge(run_id, status=STATUS_COMPLETE, percent=100)
            store.release_active(run_id)
            clock.advance(100)
        assert list(store._records) == ["run-49"]
