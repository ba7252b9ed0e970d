from datetime import timedelta

import pytest

from socialflow.models.connected_account import PENDING_ACCOUNT_ID, AccountStatus, Provider
from socialflow.models.types import utcnow
from socialflow.services.token_refresh_service import TokenRefresher
from tests.fakes import FakeFacebookClient, FakeInstagramClient, FakeTikTokClient, upstream_error


@pytest.fixture
def refresher(repo, cipher):
    return TokenRefresher(repo, cipher, instagram=FakeInstagramClient(), tiktok=FakeTikTokClient(), facebook=FakeFacebookClient())


async def add(repo, cipher, user, provider, pid, expires_in_days, **fields):
    values = {
        "status": AccountStatus.ACTIVE,
        "access_token_enc": cipher.encrypt(f"{pid}-access"),
        "token_expires_at": utcnow() + timedelta(days=expires_in_days),
    }
    values.update(fields)
    return await repo.upsert(user.id, provider, pid, values)


@pytest.mark.asyncio
async def test_expiring_instagram_token_is_renewed(refresher, repo, cipher, user):
    soon = await add(repo, cipher, user, Provider.INSTAGRAM, "ig-soon", 3)
    later = await add(repo, cipher, user, Provider.INSTAGRAM, "ig-later", 40)

    results = await refresher.refresh_expiring()

    assert [(r.account_id, r.status) for r in results] == [(soon.id, "success")]
    assert ("refresh_long_lived", "ig-soon-access") in refresher.instagram.calls
    renewed = await repo.get_by_id(soon.id)
    assert cipher.decrypt(renewed.access_token_enc) == "ig-refreshed"
    assert renewed.token_expires_at > utcnow() + timedelta(days=59)
    assert cipher.decrypt((await repo.get_by_id(later.id)).access_token_enc) == "ig-later-access"


@pytest.mark.asyncio
async def test_page_linked_instagram_renews_its_facebook_token(refresher, repo, cipher, user):
    account = await add(
        repo, cipher, user, Provider.INSTAGRAM, "ig-page", 2,
        meta={"via": "facebook_page", "facebook_page_id": "p2"},
    )

    results = await refresher.refresh_expiring()

    assert [r.status for r in results] == ["success"]
    assert refresher.facebook.calls == [("refresh_long_lived", "ig-page-access")]
    assert refresher.instagram.calls == []
    renewed = await repo.get_by_id(account.id)
    assert cipher.decrypt(renewed.access_token_enc) == "fb-renewed"
    assert renewed.token_expires_at > utcnow() + timedelta(days=59)


@pytest.mark.asyncio
async def test_tiktok_refresh_rotates_both_tokens(refresher, repo, cipher, user):
    account = await add(repo, cipher, user, Provider.TIKTOK, "tt", 1, refresh_token_enc=cipher.encrypt("tt-refresh"))
    results = await refresher.refresh_expiring()
    assert results[0].status == "success"
    assert ("refresh", "tt-refresh") in refresher.tiktok.calls
    stored = await repo.get_by_id(account.id)
    assert cipher.decrypt(stored.access_token_enc) == "tt-access-2"
    assert cipher.decrypt(stored.refresh_token_enc) == "tt-refresh-2"


@pytest.mark.asyncio
async def test_failures_are_recorded_per_account(repo, cipher, user):
    class BrokenInstagram(FakeInstagramClient):
        async def refresh_long_lived(self, access_token):
            raise upstream_error("INSTAGRAM", status_code=500)

    refresher = TokenRefresher(repo, cipher, instagram=BrokenInstagram(), tiktok=FakeTikTokClient())
    broken = await add(repo, cipher, user, Provider.INSTAGRAM, "ig", 1)
    tiktok = await add(repo, cipher, user, Provider.TIKTOK, "tt", 1, refresh_token_enc=cipher.encrypt("r"))

    results = {r.account_id: r for r in await refresher.refresh_expiring()}

    assert results[broken.id].status == "error"
    assert results[tiktok.id].status == "success"
    stored = await repo.get_by_id(broken.id)
    assert stored.last_error_message
    assert stored.status == AccountStatus.ACTIVE


@pytest.mark.asyncio
async def test_tiktok_without_refresh_token(refresher, repo, cipher, user):
    account = await add(repo, cipher, user, Provider.TIKTOK, "tt", 1)
    results = await refresher.refresh_expiring()
    assert results[0].status == "error"
    assert "no refresh token" in results[0].error
    assert (await repo.get_by_id(account.id)).last_error_at is not None


@pytest.mark.asyncio
async def test_purge_pending(refresher, repo, user):
    await repo.upsert(
        user.id, Provider.TWITTER, PENDING_ACCOUNT_ID,
        {"status": AccountStatus.PENDING, "request_token_expires_at": utcnow() - timedelta(minutes=1)},
    )
    assert await refresher.purge_pending() == 1
    assert await refresher.purge_pending() == 0
