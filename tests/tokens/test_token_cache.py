"""Tests for the installation token cache."""

from datetime import timedelta

import pytest

from issuedesk.tokens import CachedInstallationToken, TokenCache
from tests.conftest import JAN_15


def token(
    installation_id: int = 101, *, minutes: int = 60, value: str = "ghs_abc"
) -> CachedInstallationToken:
    return CachedInstallationToken(
        installation_id=installation_id,
        token=value,
        expires_at=JAN_15 + timedelta(minutes=minutes),
    )


@pytest.fixture
def cache(clock) -> TokenCache:
    return TokenCache(clock=clock)


class TestTokenCache:
    """Tests for get/put and lazy expiry."""

    def test_put_then_get(self, cache):
        cache.put_token(token())

        cached = cache.get_token(101)

        assert cached is not None
        assert cached.token == "ghs_abc"
        assert cache.has_token(101)

    def test_missing_installation_returns_none(self, cache):
        assert cache.get_token(999) is None
        assert not cache.has_token(999)

    def test_put_replaces_previous_token(self, cache):
        cache.put_token(token(value="old"))
        cache.put_token(token(value="new"))

        assert cache.get_token(101).token == "new"
        assert cache.size() == 1

    def test_expired_token_is_evicted_on_read(self, cache, clock):
        cache.put_token(token(minutes=10))
        clock.advance(minutes=10)

        assert cache.get_token(101) is None
        assert cache.size() == 0

    def test_evict_expired_sweeps_only_expired(self, cache, clock):
        cache.put_token(token(101, minutes=5))
        cache.put_token(token(102, minutes=120))
        clock.advance(minutes=30)

        assert cache.evict_expired() == 1
        assert cache.cached_installation_ids() == [102]

    def test_clear_all(self, cache):
        cache.put_token(token(101))
        cache.put_token(token(102))

        cache.clear_all()

        assert cache.size() == 0


class TestTokenCacheSnapshot:
    """Tests for to_json/from_json persistence."""

    def test_restore_skips_expired_tokens(self, cache, clock):
        cache.put_token(token(101, minutes=5))
        cache.put_token(token(102, minutes=120))
        snapshot = cache.to_json()
        assert {item["installation_id"] for item in snapshot} == {101, 102}

        clock.advance(minutes=30)
        restored = TokenCache(clock=clock)
        restored.from_json(snapshot)

        assert restored.cached_installation_ids() == [102]
        assert restored.get_token(102).expires_at == JAN_15 + timedelta(minutes=120)

    def test_rejects_non_positive_installation_id(self):
        with pytest.raises(ValueError):
            CachedInstallationToken(installation_id=0, token="t", expires_at=JAN_15)
