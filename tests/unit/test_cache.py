"""Unit tests for the cache stores."""

from unittest.mock import MagicMock, patch

from payment_gateway.infrastructure.cache import InMemoryCache, RedisCache


class TestInMemoryCache:
    """Tests for the process-local cache."""

    def test_set_get_delete(self) -> None:
        cache = InMemoryCache()
        cache.set("key", {"provider": "paystack"})

        assert cache.get("key") == {"provider": "paystack"}

        cache.delete("key")
        assert cache.get("key") is None

    def test_expiry(self) -> None:
        """Test that entries disappear after their TTL."""
        cache = InMemoryCache()

        with patch("payment_gateway.infrastructure.cache.time.monotonic", return_value=1000.0):
            cache.set("key", True, ttl_seconds=60)
            assert cache.ttl("key") == 60

        with patch("payment_gateway.infrastructure.cache.time.monotonic", return_value=1059.0):
            assert cache.get("key") is True

        with patch("payment_gateway.infrastructure.cache.time.monotonic", return_value=1060.0):
            assert cache.get("key") is None

    def test_false_values_are_cached(self) -> None:
        """Test that falsy values are distinguishable from misses."""
        cache = InMemoryCache()
        cache.set("health", False, ttl_seconds=300)

        assert cache.get("health") is False

    def test_increment(self) -> None:
        """Test counters keep the TTL set at creation."""
        cache = InMemoryCache()

        with patch("payment_gateway.infrastructure.cache.time.monotonic", return_value=0.0):
            assert cache.increment("counter", ttl_seconds=60) == 1

        with patch("payment_gateway.infrastructure.cache.time.monotonic", return_value=30.0):
            assert cache.increment("counter", ttl_seconds=60) == 2
            assert cache.ttl("counter") == 30

        with patch("payment_gateway.infrastructure.cache.time.monotonic", return_value=61.0):
            assert cache.increment("counter", ttl_seconds=60) == 1

    def test_clear(self) -> None:
        cache = InMemoryCache()
        cache.set("a", 1)
        cache.clear()

        assert cache.get("a") is None
        assert cache.ttl("a") is None


class TestRedisCache:
    """Tests for the Redis-backed cache against a mocked client."""

    def test_values_are_json(self) -> None:
        """Test that values are serialized and keys prefixed."""
        client = MagicMock()
        client.get.return_value = '{"provider": "stripe"}'
        cache = RedisCache(client, prefix="test:")

        cache.set("payments.session.R1", {"provider": "stripe"}, ttl_seconds=3600)

        client.set.assert_called_once_with("test:payments.session.R1", '{"provider": "stripe"}', ex=3600)
        assert cache.get("payments.session.R1") == {"provider": "stripe"}
        client.get.assert_called_once_with("test:payments.session.R1")

    def test_get_missing(self) -> None:
        client = MagicMock()
        client.get.return_value = None

        assert RedisCache(client).get("missing") is None

    def test_increment_sets_ttl_once(self) -> None:
        """Test that the window TTL is only set when the counter is created."""
        client = MagicMock()
        client.incr.side_effect = [1, 2]
        cache = RedisCache(client, prefix="")

        assert cache.increment("payment_charge:global", ttl_seconds=60) == 1
        assert cache.increment("payment_charge:global", ttl_seconds=60) == 2

        client.expire.assert_called_once_with("payment_charge:global", 60)

    def test_ttl(self) -> None:
        """Test that Redis' negative sentinels become None."""
        client = MagicMock()
        client.ttl.side_effect = [42, -1, -2]
        cache = RedisCache(client)

        assert cache.ttl("a") == 42
        assert cache.ttl("b") is None
        assert cache.ttl("c") is None

    def test_from_url(self) -> None:
        """Test building a cache from a URL."""
        with patch("payment_gateway.infrastructure.cache.redis.Redis.from_url") as from_url:
            cache = RedisCache.from_url("redis://localhost:6379/0")

        from_url.assert_called_once_with("redis://localhost:6379/0", decode_responses=True)
        assert cache.client is from_url.return_value
