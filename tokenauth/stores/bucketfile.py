"""Token store persisted in a bucket database file.

Layout:

* one top-level bucket per audience, named by the audience id, holding the
  audience record under ``one_audience`` and a nested ``bk_one_audience_tokens``
  bucket whose keys are the values of the audience's tokens;
* ``bk_all_tokeninfo``: token value -> token record;
* ``bk_token_singleIDs``: single id -> value of the token occupying it.

Index entries and token records only ever change together inside one write
transaction.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import ValidationError as PydanticValidationError

from ..config import StoreConfigLike, parse_store_config
from ..errors import (
    AudienceNotFoundError,
    InvalidRecordError,
    StoreClosedError,
    StoreError,
    TokenNotFoundError,
)
from ..models import Audience, Token
from .base import TokenStore, validate_token_record
from .buckets import BucketDB, Transaction

logger = logging.getLogger(__name__)

ALL_TOKENS_BUCKET = b"bk_all_tokeninfo"
AUDIENCE_TOKENS_BUCKET = b"bk_one_audience_tokens"
AUDIENCE_INFO_KEY = b"one_audience"
SINGLE_IDS_BUCKET = b"bk_token_singleIDs"
_RESERVED_NAMES = {ALL_TOKENS_BUCKET, SINGLE_IDS_BUCKET}


def _is_reserved(audience_id: str) -> bool:
    return audience_id.encode() in _RESERVED_NAMES


class BucketFileStore(TokenStore):
    """Persist audiences and tokens in a bucket database file."""

    alias = "BucketFileStore"

    def __init__(self) -> None:
        self._db: Optional[BucketDB] = None
        self._db_path = ""

    @property
    def db_path(self) -> str:
        return self._db_path

    # ------------------------------------------------------------------
    # Open / close
    async def open(self, config: StoreConfigLike) -> None:
        store_config = parse_store_config(config)
        await asyncio.to_thread(self._open, store_config.path)

    def _open(self, db_path: str) -> None:
        # do not open the same db again
        if self._db is not None and not self._db.closed and _same_path(
            db_path, self._db.path
        ):
            return

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        db = BucketDB(db_path)

        if self._db is not None:
            try:
                self._db.close()
            except Exception as exc:
                db.close()
                raise StoreError(f"store: close old db failed, {exc}") from exc
        self._db = db
        self._db_path = db_path
        logger.info(f"Opened token store at {db_path}")

    async def _close(self) -> None:
        if self._db is not None:
            await asyncio.to_thread(self._db.close)
            logger.info(f"Closed token store at {self._db_path}")

    def _require_db(self) -> BucketDB:
        if self._db is None or self._db.closed:
            raise StoreClosedError("token store is not open")
        return self._db

    # ------------------------------------------------------------------
    # Transaction-level helpers
    def _delete_audience(self, audience_id: str, tx: Transaction) -> None:
        """Delete an audience bucket and every token listed in its index."""
        if _is_reserved(audience_id):
            return
        bk = tx.bucket(audience_id.encode())
        if bk is None:
            return

        tokens_bk = tx.bucket(ALL_TOKENS_BUCKET)
        index_bk = bk.bucket(AUDIENCE_TOKENS_BUCKET)
        if tokens_bk is not None and index_bk is not None:
            for key in index_bk.keys():
                tokens_bk.delete(key)
                logger.debug(f"Cascade deleted token of audience {audience_id}")
        tx.delete_bucket(audience_id.encode())

    def _delete_token(self, value: str, tx: Transaction) -> Token:
        tokens_bk = tx.bucket(ALL_TOKENS_BUCKET)
        if tokens_bk is None:
            raise TokenNotFoundError("token not found")
        key = value.encode()
        data = tokens_bk.get(key)
        if data is None:
            raise TokenNotFoundError("token not found")
        tokens_bk.delete(key)

        token = Token.from_json_bytes(data)
        if token.is_single():
            ids_bk = tx.bucket(SINGLE_IDS_BUCKET)
            slot = token.single_id.encode()
            if ids_bk is not None and ids_bk.get(slot) == key:
                ids_bk.delete(slot)
        else:
            au = tx.bucket(token.client_id.encode())
            index_bk = au.bucket(AUDIENCE_TOKENS_BUCKET) if au is not None else None
            if index_bk is not None:
                index_bk.delete(key)
        return token

    # ------------------------------------------------------------------
    # Audiences
    async def save_audience(self, audience: Optional[Audience]) -> None:
        if audience is None or not audience.id:
            raise InvalidRecordError("audience id is empty")
        if _is_reserved(audience.id):
            raise InvalidRecordError(f"audience id {audience.id!r} is reserved")
        await asyncio.to_thread(self._save_audience, audience.to_json_bytes(), audience.id)

    def _save_audience(self, data: bytes, audience_id: str) -> None:
        with self._require_db().update() as tx:
            # the old audience and its tokens go first
            self._delete_audience(audience_id, tx)
            bk = tx.create_bucket(audience_id.encode())
            bk.create_bucket(AUDIENCE_TOKENS_BUCKET)
            bk.put(AUDIENCE_INFO_KEY, data)
        logger.debug(f"Saved audience {audience_id}")

    async def delete_audience(self, audience_id: str) -> None:
        if not audience_id:
            raise InvalidRecordError("audience id is empty")
        await asyncio.to_thread(self._delete_audience_tx, audience_id)

    def _delete_audience_tx(self, audience_id: str) -> None:
        with self._require_db().update() as tx:
            self._delete_audience(audience_id, tx)
        logger.debug(f"Deleted audience {audience_id}")

    async def get_audience(self, audience_id: str) -> Optional[Audience]:
        if not audience_id:
            raise InvalidRecordError("audience id is empty")
        return await asyncio.to_thread(self._get_audience, audience_id)

    def _get_audience(self, audience_id: str) -> Optional[Audience]:
        if _is_reserved(audience_id):
            return None
        with self._require_db().view() as tx:
            bk = tx.bucket(audience_id.encode())
            if bk is None:
                return None
            data = bk.get(AUDIENCE_INFO_KEY)
        if data is None:
            return None
        return Audience.from_json_bytes(data)

    # ------------------------------------------------------------------
    # Tokens
    async def save_token(self, token: Optional[Token]) -> None:
        token = validate_token_record(token)
        await asyncio.to_thread(self._save_token, token)

    def _save_token(self, token: Token) -> None:
        key = token.value.encode()
        with self._require_db().update() as tx:
            tokens_bk = tx.create_bucket_if_not_exists(ALL_TOKENS_BUCKET)

            if token.is_single():
                # single tokens have no audience, but the previous holder of
                # the slot has to go
                index_bk = tx.create_bucket_if_not_exists(SINGLE_IDS_BUCKET)
                slot = token.single_id.encode()
                old_value = index_bk.get(slot)
                if old_value is not None and tokens_bk.get(old_value) is not None:
                    self._delete_token(old_value.decode(), tx)
                    logger.debug(f"Replaced single token for {token.single_id}")
                index_key, index_value = slot, key
            else:
                au = tx.bucket(token.client_id.encode())
                if au is None or _is_reserved(token.client_id):
                    raise AudienceNotFoundError(
                        f"audience {token.client_id} not found, save the audience before its tokens"
                    )
                index_bk = au.create_bucket_if_not_exists(AUDIENCE_TOKENS_BUCKET)
                index_key, index_value = key, b""

            # a re-saved value drops whatever index entry it had before
            if tokens_bk.get(key) is not None:
                self._delete_token(token.value, tx)

            index_bk.put(index_key, index_value)
            tokens_bk.put(key, token.to_json_bytes())

    async def get_token(self, value: str) -> Optional[Token]:
        if not value:
            return None
        return await asyncio.to_thread(self._get_token, value)

    def _get_token(self, value: str) -> Optional[Token]:
        with self._require_db().view() as tx:
            tokens_bk = tx.bucket(ALL_TOKENS_BUCKET)
            if tokens_bk is None:
                return None
            data = tokens_bk.get(value.encode())
        if data is None:
            return None
        return Token.from_json_bytes(data)

    async def delete_token(self, value: str) -> None:
        if not value:
            raise InvalidRecordError("token value is empty")
        await asyncio.to_thread(self._delete_token_tx, value)

    def _delete_token_tx(self, value: str) -> None:
        with self._require_db().update() as tx:
            self._delete_token(value, tx)

    async def list_tokens(self, audience_id: str) -> list[Token]:
        if not audience_id:
            raise InvalidRecordError("audience id is empty")
        return await asyncio.to_thread(self._list_tokens, audience_id)

    def _list_tokens(self, audience_id: str) -> list[Token]:
        tokens: list[Token] = []
        if _is_reserved(audience_id):
            return tokens
        with self._require_db().view() as tx:
            bk = tx.bucket(audience_id.encode())
            tokens_bk = tx.bucket(ALL_TOKENS_BUCKET)
            if bk is None or tokens_bk is None:
                return tokens
            index_bk = bk.bucket(AUDIENCE_TOKENS_BUCKET)
            for key in index_bk.keys() if index_bk is not None else []:
                data = tokens_bk.get(key)
                if data is not None:
                    tokens.append(Token.from_json_bytes(data))
        return tokens

    # ------------------------------------------------------------------
    # Expiry
    async def delete_expired(self) -> int:
        if self._db is None or self._db.closed:
            return 0
        return await asyncio.to_thread(self._delete_expired)

    def _delete_expired(self) -> int:
        db = self._require_db()
        expired: list[str] = []
        with db.view() as tx:
            tokens_bk = tx.bucket(ALL_TOKENS_BUCKET)
            if tokens_bk is None:
                return 0
            for key, data in tokens_bk.items():
                try:
                    token = Token.from_json_bytes(data)
                except PydanticValidationError:
                    logger.warning(f"Skipping undecodable token record {key!r}")
                    continue
                if token.expired():
                    expired.append(token.value)

        removed = 0
        for value in expired:
            try:
                with db.update() as tx:
                    tokens_bk = tx.bucket(ALL_TOKENS_BUCKET)
                    data = tokens_bk.get(value.encode()) if tokens_bk is not None else None
                    # gone or replaced since the scan
                    if data is None or not Token.from_json_bytes(data).expired():
                        continue
                    self._delete_token(value, tx)
                removed += 1
            except Exception:
                logger.exception("Failed to delete expired token")
        logger.debug(f"Expiry sweep removed {removed} of {len(expired)} candidates")
        return removed


def _same_path(a: str, b: str) -> bool:
    return os.path.abspath(a) == os.path.abspath(b)
