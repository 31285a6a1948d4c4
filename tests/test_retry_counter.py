"""Tests for the bounded message retry counter."""

from wademo.cache.retry_counter import RetryCounterCache


class FakeClock:

    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


class TestRetryCounterCache:

    def test_unknown_message_counts_zero(self):
        counter = RetryCounterCache()
        assert counter.get("MSG1") == 0
        assert "MSG1" not in counter

    def test_increment_returns_new_count(self):
        counter = RetryCounterCache()
        assert counter.increment("MSG1") == 1
        assert counter.increment("MSG1") == 2
        assert counter.increment("MSG2") == 1
        assert counter.get("MSG1") == 2
        assert len(counter) == 2

    def test_least_recently_used_entry_is_evicted(self):
        counter = RetryCounterCache(max_entries=2, max_age=0)
        counter.increment("a")
        counter.increment("b")
        counter.get("a")
        counter.increment("c")

        assert "a" in counter
        assert "b" not in counter
        assert "c" in counter
        assert len(counter) == 2

    def test_evicted_entry_restarts_from_zero(self):
        counter = RetryCounterCache(max_entries=1, max_age=0)
        counter.increment("a")
        counter.increment("a")
        counter.increment("b")
        assert counter.increment("a") == 1

    def test_entries_expire_after_max_age(self):
        clock = FakeClock()
        counter = RetryCounterCache(max_age=60, clock=clock)
        counter.increment("a")
        clock.now = 30
        counter.increment("a")
        counter.increment("b")

        # age is measured from the first failure, not the latest one
        clock.now = 60
        assert counter.get("a") == 0
        assert counter.get("b") == 1
        assert len(counter) == 1

        clock.now = 90
        assert len(counter) == 0

    def test_zero_max_age_never_expires(self):
        clock = FakeClock()
        counter = RetryCounterCache(max_age=0, clock=clock)
        counter.increment("a")
        clock.now = 10 ** 9
        assert counter.get("a") == 1

    def test_delete_and_clear(self):
        counter = RetryCounterCache()
        counter.increment("a")
        counter.increment("b")
        counter.delete("a")
        counter.delete("missing")
        assert "a" not in counter
        counter.clear()
        assert len(counter) == 0
