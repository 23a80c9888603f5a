"""
Per-user configuration blobs keyed by (user_id, type).

Saves for the same key are serialized: a save issued while another one for
that key is still running waits for it to settle (success or failure) before
writing. Saves for different keys never wait on each other.
"""
import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, Hashable, Optional, TypeVar

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from calcula.core.errors import RemoteServiceError
from calcula.db.session import SessionLocal
from calcula.models.user_configuration import UserConfiguration

logger = logging.getLogger(__name__)

T = TypeVar("T")


class KeyedWriteSerializer:
    """
    Registry of in-flight completion handles, one chain per key.

    Each run() registers its own handle as the tail for the key, waits for the
    previous tail, executes, then resolves its handle. The handle is always
    resolved, so a failed or cancelled write never blocks later ones.
    """

    def __init__(self):
        self._tails: Dict[Hashable, asyncio.Future] = {}

    def in_flight(self, key: Hashable) -> bool:
        return key in self._tails

    async def run(self, key: Hashable, operation: Callable[[], Awaitable[T]]) -> T:
        previous = self._tails.get(key)
        done = asyncio.get_running_loop().create_future()
        self._tails[key] = done
        try:
            if previous is not None:
                await asyncio.shield(previous)
            return await operation()
        finally:
            if previous is not None and not previous.done():
                # Cancelled while waiting: release only after the predecessor settles
                previous.add_done_callback(lambda _: self._release(key, done))
            else:
                self._release(key, done)

    def _release(self, key: Hashable, done: asyncio.Future) -> None:
        if not done.done():
            done.set_result(None)
        if self._tails.get(key) is done:
            del self._tails[key]


def _to_dict(row: UserConfiguration) -> dict:
    return {
        "id": row.id,
        "user_id": row.user_id,
        "type": row.type,
        "configuration": row.configuration,
        "updated_at": row.updated_at.isoformat() if row.updated_at else None,
    }


class ConfigurationStore:
    def __init__(self, session_factory=SessionLocal, serializer: Optional[KeyedWriteSerializer] = None):
        self.session_factory = session_factory
        self.serializer = serializer or KeyedWriteSerializer()

    # --- blocking helpers (worker thread) ---------------------------------

    def _load_sync(self, user_id: str, config_type: str) -> Optional[Any]:
        db = self.session_factory()
        try:
            row = db.query(UserConfiguration).filter(
                UserConfiguration.user_id == user_id,
                UserConfiguration.type == config_type,
            ).first()
            return row.configuration if row else None
        except SQLAlchemyError as e:
            logger.exception("Failed to load configuration %s for user %s", config_type, user_id)
            raise RemoteServiceError(f"Configuration load failed: {e}") from e
        finally:
            db.close()

    def _save_sync(self, user_id: str, config_type: str, payload: Any) -> dict:
        db = self.session_factory()
        try:
            row = db.query(UserConfiguration).filter(
                UserConfiguration.user_id == user_id,
                UserConfiguration.type == config_type,
            ).first()
            if row:
                row.configuration = payload
            else:
                row = UserConfiguration(user_id=user_id, type=config_type, configuration=payload)
                db.add(row)
            try:
                db.commit()
            except IntegrityError:
                # Row created by another process between the read and the insert
                db.rollback()
                row = db.query(UserConfiguration).filter(
                    UserConfiguration.user_id == user_id,
                    UserConfiguration.type == config_type,
                ).one()
                row.configuration = payload
                db.commit()
            db.refresh(row)
            return _to_dict(row)
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Failed to save configuration %s for user %s", config_type, user_id)
            raise RemoteServiceError(f"Configuration save failed: {e}") from e
        finally:
            db.close()

    def _delete_sync(self, user_id: str, config_type: str) -> bool:
        db = self.session_factory()
        try:
            deleted = db.query(UserConfiguration).filter(
                UserConfiguration.user_id == user_id,
                UserConfiguration.type == config_type,
            ).delete()
            db.commit()
            return deleted > 0
        except SQLAlchemyError as e:
            db.rollback()
            logger.exception("Failed to delete configuration %s for user %s", config_type, user_id)
            raise RemoteServiceError(f"Configuration delete failed: {e}") from e
        finally:
            db.close()

    # --- async API ---------------------------------------------------------

    async def load(self, user_id: str, config_type: str) -> Optional[Any]:
        return await run_in_threadpool(self._load_sync, user_id, config_type)

    async def save(self, user_id: str, config_type: str, payload: Any) -> dict:
        return await self.serializer.run(
            (user_id, config_type),
            lambda: run_in_threadpool(self._save_sync, user_id, config_type, payload),
        )

    async def delete(self, user_id: str, config_type: str) -> bool:
        return await self.serializer.run(
            (user_id, config_type),
            lambda: run_in_threadpool(self._delete_sync, user_id, config_type),
        )


configuration_store = ConfigurationStore()


def get_configuration_store() -> ConfigurationStore:
    return configuration_store
