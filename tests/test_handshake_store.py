import asyncio

import pytest

from socialflow.infrastructure.handshake_store import HANDSHAKE_TTL


@pytest.mark.asyncio
async def test_put_is_encrypted_and_expires(handshakes, fake_redis):
    assert await handshakes.put("u1", "tok", {"provider": "TWITTER", "secret": "req-secret"}) is True
    key = handshakes.key("u1", "tok")
    assert key == "oauth:handshake:u1:tok"
    assert "req-secret" not in fake_redis.store[key]
    assert await fake_redis.ttl(key) == HANDSHAKE_TTL == 600


@pytest.mark.asyncio
async def test_pop_is_single_use(handshakes):
    await handshakes.put("u1", "tok", {"provider": "TWITTER", "secret": "s"})
    assert await handshakes.pop("u1", "tok") == {"provider": "TWITTER", "secret": "s"}
    assert await handshakes.pop("u1", "tok") is None


@pytest.mark.asyncio
async def test_concurrent_callbacks_claim_a_handshake_once(handshakes):
    await handshakes.put("u1", "tok", {"provider": "TWITTER", "secret": "s"})
    claims = await asyncio.gather(*(handshakes.pop("u1", "tok") for _ in range(3)))
    assert [c for c in claims if c is not None] == [{"provider": "TWITTER", "secret": "s"}]


@pytest.mark.asyncio
async def test_put_does_not_overwrite(handshakes):
    await handshakes.put("u1", "tok", {"provider": "TWITTER", "secret": "first"})
    assert await handshakes.put("u1", "tok", {"provider": "TWITTER", "secret": "second"}) is False
    assert (await handshakes.pop("u1", "tok"))["secret"] == "first"


@pytest.mark.asyncio
async def test_records_are_scoped_to_user(handshakes):
    await handshakes.put("u1", "tok", {"provider": "TWITTER"})
    assert await handshakes.pop("u2", "tok") is None
    assert await handshakes.pop("u1", "tok") is not None


@pytest.mark.asyncio
async def test_unreadable_payload_is_treated_as_missing(handshakes, fake_redis):
    await fake_redis.set(handshakes.key("u1", "tok"), "not-a-ciphertext", ex=600)
    assert await handshakes.pop("u1", "tok") is None
    assert await fake_redis.exists(handshakes.key("u1", "tok")) == 0
