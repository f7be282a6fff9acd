"""Tests for EnrichmentStats counters."""

from src.parsers.metrics import MAX_ERROR_LEN, EnrichmentStats


class TestCounters:
    def test_initial_snapshot_is_empty(self):
        snap = EnrichmentStats().snapshot()
        assert snap.enrich_success == 0
        assert snap.enrich_failure == 0
        assert snap.last_errors == []
        assert snap.last_refresh_at is None

    def test_success_and_failure_counted(self):
        stats = EnrichmentStats()
        stats.record_enrich_success()
        stats.record_enrich_success()
        stats.record_enrich_failure(RuntimeError("security scan failed"))
        stats.record_refresh_success()
        stats.record_refresh_failure("HTTP 500")

        snap = stats.snapshot()
        assert snap.enrich_success == 2
        assert snap.enrich_failure == 1
        assert snap.refresh_success == 1
        assert snap.refresh_failure == 1
        assert snap.last_enrich_success_at is not None
        assert snap.last_enrich_failure_at is not None
        assert snap.last_refresh_at is not None
        assert snap.last_errors == ["security scan failed", "HTTP 500"]


class TestErrorRing:
    def test_keeps_most_recent_errors(self):
        stats = EnrichmentStats(max_errors=3)
        for i in range(5):
            stats.record_enrich_failure(f"err {i}")
        assert stats.snapshot().last_errors == ["err 2", "err 3", "err 4"]

    def test_blank_errors_are_counted_but_not_stored(self):
        stats = EnrichmentStats()
        stats.record_enrich_failure("   ")
        snap = stats.snapshot()
        assert snap.enrich_failure == 1
        assert snap.last_errors == []

    def test_long_errors_are_trimmed(self):
        stats = EnrichmentStats()
        stats.record_refresh_failure("x" * 2000)
        assert len(stats.snapshot().last_errors[0]) == MAX_ERROR_LEN

    def test_snapshot_is_a_copy(self):
        stats = EnrichmentStats()
        stats.record_enrich_failure("one")
        snap = stats.snapshot()
        snap.last_errors.append("mutated")
        assert stats.snapshot().last_errors == ["one"]


def test_to_dict_and_stats_line():
    stats = EnrichmentStats()
    stats.record_enrich_success()
    data = stats.snapshot().to_dict()
    assert data["enrich_success"] == 1
    assert isinstance(data["last_enrich_success_at"], str)
    assert data["last_refresh_at"] is None
    assert stats.format_stats_line().startswith("enrich ok=1 fail=0")
