"""Search store TTL and LRU behaviour, driven by a fake clock."""
from aipa.search_store import SearchStore
from aipa.schemas import StoredSearch


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


def _search(search_id: str, query: str = "land") -> StoredSearch:
    return StoredSearch(id=search_id, created_at="2026-01-01T00:00:00+00:00", query=query)


class TestSearchStore:
    def test_save_and_get(self):
        store = SearchStore(max_entries=10, ttl_seconds=60, clock=FakeClock())
        store.save(_search("a"))
        assert store.get("a").query == "land"
        assert store.get("missing") is None

    def test_last_write_wins(self):
        store = SearchStore(max_entries=10, ttl_seconds=60, clock=FakeClock())
        store.save(_search("a", "first"))
        store.save(_search("a", "second"))
        assert store.get("a").query == "second"
        assert len(store) == 1

    def test_expired_entries_are_dropped(self):
        clock = FakeClock()
        store = SearchStore(max_entries=10, ttl_seconds=60, clock=clock)
        store.save(_search("a"))

        clock.now = 59.9
        assert store.get("a") is not None
        clock.now = 60
        assert store.get("a") is None
        assert len(store) == 0

    def test_evicts_least_recently_used(self):
        store = SearchStore(max_entries=2, ttl_seconds=60, clock=FakeClock())
        store.save(_search("a"))
        store.save(_search("b"))
        store.get("a")
        store.save(_search("c"))

        assert store.get("b") is None
        assert store.get("a") is not None
        assert store.get("c") is not None

    def test_resave_refreshes_ttl(self):
        clock = FakeClock()
        store = SearchStore(max_entries=10, ttl_seconds=60, clock=clock)
        store.save(_search("a"))
        clock.now = 50
        store.save(_search("a"))
        clock.now = 100
        assert store.get("a") is not None

    def test_minimum_capacity_is_one(self):
        store = SearchStore(max_entries=0, ttl_seconds=60, clock=FakeClock())
        store.save(_search("a"))
        store.save(_search("b"))
        assert len(store) == 1
        assert store.get("b") is not None
