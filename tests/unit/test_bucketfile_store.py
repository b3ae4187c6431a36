"""Tests specific to the file-backed token store."""

import json
import time

import pytest

import tokenauth.models as models
from tokenauth.errors import ConfigurationError, InvalidRecordError, StoreError
from tokenauth.models import Audience, Token
from tokenauth.stores import BucketFileStore
from tokenauth.stores.bucketfile import (
    ALL_TOKENS_BUCKET,
    AUDIENCE_INFO_KEY,
    AUDIENCE_TOKENS_BUCKET,
    SINGLE_IDS_BUCKET,
)
from tokenauth.stores.buckets import BucketDB


async def _open_store(tmp_path, name: str = "tokens.db") -> BucketFileStore:
    store = BucketFileStore()
    await store.open({"path": str(tmp_path / name)})
    return store


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "config", ["", "path", "{}", '{"goodpath":""}', '{"path":""}', None]
)
async def test_open_rejects_bad_config(config):
    store = BucketFileStore()
    with pytest.raises(ConfigurationError):
        await store.open(config)
    await store.close()


@pytest.mark.asyncio
async def test_open_accepts_json_config_and_reports_path(tmp_path):
    store = BucketFileStore()
    assert store.db_path == ""

    path = str(tmp_path / "tokens.db")
    await store.open(json.dumps({"path": path}))
    assert store.db_path == path
    await store.close()


@pytest.mark.asyncio
async def test_open_creates_missing_directories(tmp_path):
    path = tmp_path / "nested" / "data" / "tokendb.bolt"
    store = BucketFileStore()
    await store.open({"path": str(path)})
    assert path.exists()
    await store.close()


@pytest.mark.asyncio
async def test_reopening_same_path_keeps_connection(tmp_path):
    store = await _open_store(tmp_path)
    db = store._db
    await store.open({"path": str(tmp_path / "tokens.db")})
    assert store._db is db
    await store.close()


@pytest.mark.asyncio
async def test_opening_another_path_switches_database(tmp_path):
    store = await _open_store(tmp_path, "first.db")
    first_db = store._db
    audience = Audience(id="a1", name="first")
    await store.save_audience(audience)

    await store.open({"path": str(tmp_path / "second.db")})
    assert first_db.closed
    assert store.db_path == str(tmp_path / "second.db")
    assert await store.get_audience("a1") is None
    await store.close()


@pytest.mark.asyncio
async def test_failed_close_of_old_database_is_propagated(tmp_path, monkeypatch):
    store = await _open_store(tmp_path, "first.db")
    old_db = store._db
    opened: list[BucketDB] = []
    real_init = BucketDB.__init__

    def tracking_init(self, path):
        real_init(self, path)
        opened.append(self)

    def failing_close():
        raise OSError("disk on fire")

    monkeypatch.setattr(BucketDB, "__init__", tracking_init)
    monkeypatch.setattr(old_db, "close", failing_close)

    with pytest.raises(StoreError, match="close old db"):
        await store.open({"path": str(tmp_path / "second.db")})

    assert store._db is old_db
    assert opened and opened[0].closed
    monkeypatch.undo()
    old_db.close()


@pytest.mark.asyncio
async def test_data_survives_close_and_reopen(tmp_path):
    store = await _open_store(tmp_path)
    audience = Audience(id="a1", name="persisted", secret="s", token_period=60)
    token = Token(client_id="a1", value="v1", deadline=int(time.time()) + 60)
    await store.save_audience(audience)
    await store.save_token(token)
    await store.close()

    store = await _open_store(tmp_path)
    assert await store.get_audience("a1") == audience
    assert await store.get_token("v1") == token
    await store.close()


@pytest.mark.asyncio
async def test_on_disk_layout(tmp_path):
    store = await _open_store(tmp_path)
    await store.save_audience(Audience(id="a1", name="layout"))
    await store.save_token(Token(client_id="a1", value="v1"))
    await store.save_token(Token(single_id="s1", value="v2"))

    with store._db.view() as tx:
        audience_bk = tx.bucket(b"a1")
        info = json.loads(audience_bk.get(AUDIENCE_INFO_KEY))
        assert info["ID"] == "a1"
        assert audience_bk.bucket(AUDIENCE_TOKENS_BUCKET).items() == [(b"v1", b"")]
        assert set(tx.bucket(ALL_TOKENS_BUCKET).keys()) == {b"v1", b"v2"}
        assert tx.bucket(SINGLE_IDS_BUCKET).items() == [(b"s1", b"v2")]
    await store.close()


@pytest.mark.asyncio
async def test_reserved_bucket_names_cannot_be_audience_ids(tmp_path):
    store = await _open_store(tmp_path)
    await store.save_token(Token(single_id="s1", value="v1"))

    with pytest.raises(InvalidRecordError):
        await store.save_audience(Audience(id=ALL_TOKENS_BUCKET.decode()))
    await store.delete_audience(ALL_TOKENS_BUCKET.decode())
    assert await store.get_audience(SINGLE_IDS_BUCKET.decode()) is None
    assert await store.get_token("v1") is not None
    await store.close()


@pytest.mark.asyncio
async def test_delete_expired_skips_undecodable_records(tmp_path, monkeypatch):
    store = await _open_store(tmp_path)
    token = Token(single_id="s1", value="v1", deadline=int(time.time()) + 10)
    await store.save_token(token)
    with store._db.update() as tx:
        tx.bucket(ALL_TOKENS_BUCKET).put(b"garbage", b"not json")

    monkeypatch.setattr(models, "_now", lambda: token.deadline + 1)
    assert await store.delete_expired() == 1
    assert await store.get_token("v1") is None
    with store._db.view() as tx:
        assert tx.bucket(ALL_TOKENS_BUCKET).get(b"garbage") == b"not json"
    await store.close()
