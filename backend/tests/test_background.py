import pytest
from sqlalchemy import select

import tripbank.database
from tripbank.config import settings
from tripbank.database import utcnow
from tripbank.errors import UnauthorizedError
from tripbank.main import _reconcile_storage
from tripbank.models import StoredFile, User
from tripbank.services.object_storage import ObjectStorage
from tripbank.services.realtime import TripEventBroker


async def test_publish_is_a_no_op_when_disabled():
    broker = TripEventBroker()
    assert broker.channel("abc") == "trip:abc"
    assert await broker.publish("abc", "moments_changed") is False
    assert [event async for event in broker.listen("abc")] == []


async def test_publish_degrades_when_redis_is_unreachable(monkeypatch):
    monkeypatch.setattr(settings, "realtime_enabled", True)
    monkeypatch.setattr(settings, "redis_url", "redis://127.0.0.1:1/0")
    broker = TripEventBroker()
    assert await broker.publish("abc", "moments_changed") is False
    await broker.close()


async def test_reconcile_job_repairs_drifted_usage(db, session_factory, make_user, monkeypatch):
    await make_user("drifted", storage_used_bytes=12345)
    monkeypatch.setattr(tripbank.database, "async_session_factory", session_factory)

    await _reconcile_storage()

    user = await db.get(User, "drifted")
    await db.refresh(user)
    assert user.storage_used_bytes == 0


async def test_upload_tokens_are_signed_single_use_and_expire(db, tmp_path, monkeypatch):
    root = tmp_path / "store"
    store = ObjectStorage(root)
    slot = store.request_upload_slot("owner")
    assert slot.upload_url.endswith(slot.token)
    assert slot.expires_at > utcnow()

    stored = await store.put_bytes(db, slot.token, b"abc")
    assert (stored.user_id, stored.size) == ("owner", 3)
    assert store.size_of(stored.id) == 3
    assert await db.get(StoredFile, stored.id) is not None

    with pytest.raises(UnauthorizedError):
        await store.put_bytes(db, slot.token, b"again")
    assert len(list(root.iterdir())) == 1

    assert await store.release_files(db, [stored.id]) == 1
    assert not store.exists(stored.id)
    assert (await db.execute(select(StoredFile))).scalars().all() == []

    monkeypatch.setattr(settings, "upload_token_expire_minutes", -1)
    expired = store.request_upload_slot("owner")
    with pytest.raises(UnauthorizedError):
        await store.put_bytes(db, expired.token, b"abc")


def test_storage_ids_cannot_escape_the_store(tmp_path):
    store = ObjectStorage(tmp_path)
    assert store.path_for("../secret") is None
    assert store.get_url("not-an-id") is None
    assert store.get_url(None) is None
    assert store.exists("0" * 32) is False
