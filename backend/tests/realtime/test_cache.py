"""Tests for SnapshotCache."""

from app.realtime.cache import SnapshotCache
from app.realtime.models import Channel, CryptoQuote, MoverCategory, MoverQuote


def quotes(*prices):
    return tuple(CryptoQuote(symbol=f"KRW-{i}", price=p) for i, p in enumerate(prices))


class TestSnapshotCache:
    """Unit tests for the SnapshotCache."""

    def test_first_accept_stores(self):
        """Test that the first data set is always accepted."""
        cache = SnapshotCache()
        snapshot = cache.accept(Channel.CRYPTO, quotes(100.0, 200.0))

        assert snapshot is not None
        assert snapshot.fingerprint.count == 2
        assert snapshot.fingerprint.first_price == 100.0
        assert cache.records(Channel.CRYPTO) == list(quotes(100.0, 200.0))

    def test_same_fingerprint_rejected(self):
        """Test that equal count and first price is a duplicate."""
        cache = SnapshotCache()
        cache.accept(Channel.CRYPTO, quotes(100.0, 200.0))
        version = cache.version

        # Second price differs, but the fingerprint only looks at the first
        assert cache.accept(Channel.CRYPTO, quotes(100.0, 250.0)) is None
        assert cache.version == version
        assert cache.records(Channel.CRYPTO)[1].price == 200.0

    def test_changed_count_accepted(self):
        """Test that a different record count is a change."""
        cache = SnapshotCache()
        cache.accept(Channel.CRYPTO, quotes(100.0))
        assert cache.accept(Channel.CRYPTO, quotes(100.0, 200.0)) is not None

    def test_changed_first_price_accepted(self):
        """Test that a different first price is a change."""
        cache = SnapshotCache()
        cache.accept(Channel.CRYPTO, quotes(100.0))
        assert cache.accept(Channel.CRYPTO, quotes(101.0)) is not None
        assert cache.records(Channel.CRYPTO)[0].price == 101.0

    def test_channels_independent(self):
        """Test that fingerprints are kept per channel."""
        cache = SnapshotCache()
        cache.accept(Channel.CRYPTO, quotes(100.0))
        assert cache.accept(Channel.EQUITY_INDEX, quotes(100.0)) is not None
        assert len(cache) == 2

    def test_empty_records(self):
        """Test that an empty set is stored but reads back as None."""
        cache = SnapshotCache()
        assert cache.accept(Channel.CRYPTO, ()) is not None
        assert Channel.CRYPTO in cache
        assert cache.records(Channel.CRYPTO) is None
        assert cache.accept(Channel.CRYPTO, []) is None

    def test_records_returns_copy(self):
        """Test that callers cannot mutate the cached set."""
        cache = SnapshotCache()
        cache.accept(Channel.CRYPTO, quotes(100.0))
        cache.records(Channel.CRYPTO).clear()
        assert len(cache.records(Channel.CRYPTO)) == 1

    def test_movers_categorized(self):
        """Test that movers snapshots carry categories."""
        cache = SnapshotCache()
        cache.accept(
            Channel.MOVERS,
            (
                MoverQuote(symbol="UP", price=1.0, change_percent=5.0, category=MoverCategory.GAINERS, rank=1),
                MoverQuote(symbol="DN", price=2.0, change_percent=-5.0),
            ),
        )
        categories = cache.categories(Channel.MOVERS)
        assert [r.symbol for r in categories.gainers] == ["UP"]
        assert [r.symbol for r in categories.losers] == ["DN"]
        assert cache.categories(Channel.CRYPTO) is None

    def test_age_and_freshness(self):
        """Test age against an explicit timestamp."""
        cache = SnapshotCache()
        cache.accept(Channel.CRYPTO, quotes(100.0), timestamp=1000.0)
        assert cache.age(Channel.CRYPTO, now=1060.0) == 60.0
        assert cache.age(Channel.EQUITY_INDEX) is None
        assert not cache.is_fresh(Channel.CRYPTO, max_age=180.0)

        cache.accept(Channel.EQUITY_INDEX, quotes(1.0))
        assert cache.is_fresh(Channel.EQUITY_INDEX, max_age=180.0)

    def test_remove_and_clear(self):
        """Test removal and clearing."""
        cache = SnapshotCache()
        cache.accept(Channel.CRYPTO, quotes(100.0))
        cache.accept(Channel.MOVERS, ())
        cache.remove(Channel.CRYPTO)
        cache.remove(Channel.CRYPTO)  # Should not raise
        assert Channel.CRYPTO not in cache

        cache.clear()
        assert len(cache) == 0
