"""
User Secret Storage

SnapTrade hands out a userSecret once, at registration. These stores
keep the userId → userSecret mapping so later calls (login portal,
accounts, holdings) can be made after a restart.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path

from snapadmin.config import Settings, get_settings
from snapadmin.database import ensure_schema, get_connection
from snapadmin.models import SecretStoreKind

logger = logging.getLogger(__name__)

LOCAL_SECRETS_KEY = "snaptrade_userSecrets_v1"


class BaseSecretStore(ABC):
    """Async key-value store of user secrets."""

    @abstractmethod
    async def get(self, user_id: str) -> str | None:
        pass

    @abstractmethod
    async def set(self, user_id: str, user_secret: str) -> None:
        pass

    @abstractmethod
    async def delete(self, user_id: str) -> None:
        pass

    @abstractmethod
    async def all(self) -> dict[str, str]:
        pass


class MemorySecretStore(BaseSecretStore):
    """Process-local store; secrets are lost on restart."""

    def __init__(self):
        self._secrets: dict[str, str] = {}

    async def get(self, user_id: str) -> str | None:
        return self._secrets.get(user_id)

    async def set(self, user_id: str, user_secret: str) -> None:
        self._secrets[user_id] = user_secret

    async def delete(self, user_id: str) -> None:
        self._secrets.pop(user_id, None)

    async def all(self) -> dict[str, str]:
        return dict(self._secrets)


class JsonFileSecretStore(BaseSecretStore):
    """
    Local-storage style store: one JSON document holding a single key
    whose value maps userId → userSecret.

    Unreadable or malformed files read as empty, and write failures are
    logged and ignored, so a broken file never blocks the console.
    """

    def __init__(self, path: str | Path, key: str = LOCAL_SECRETS_KEY):
        self.path = Path(path)
        self.key = key

    def _load_document(self) -> dict:
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as e:
            logger.warning(f"⚠️ Ignoring unreadable secrets file {self.path}: {e}")
            return {}
        return document if isinstance(document, dict) else {}

    def _load(self) -> dict[str, str]:
        secrets = self._load_document().get(self.key)
        if not isinstance(secrets, dict):
            return {}
        return {k: v for k, v in secrets.items() if isinstance(v, str)}

    def _save(self, secrets: dict[str, str]) -> None:
        document = self._load_document()
        document[self.key] = secrets
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            self.path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning(f"⚠️ Failed to write secrets file {self.path}: {e}")

    async def get(self, user_id: str) -> str | None:
        return self._load().get(user_id) or None

    async def set(self, user_id: str, user_secret: str) -> None:
        self._save({**self._load(), user_id: user_secret})

    async def delete(self, user_id: str) -> None:
        secrets = self._load()
        if secrets.pop(user_id, None) is not None:
            self._save(secrets)

    async def all(self) -> dict[str, str]:
        return self._load()


class PostgresSecretStore(BaseSecretStore):
    """Secrets in the ``user_secrets`` table."""

    def __init__(self):
        self._schema_ready = False

    async def _ensure_schema(self) -> None:
        if not self._schema_ready:
            await ensure_schema()
            self._schema_ready = True

    async def get(self, user_id: str) -> str | None:
        await self._ensure_schema()
        async with get_connection() as conn:
            return await conn.fetchval(
                "SELECT user_secret FROM user_secrets WHERE user_id = $1",
                user_id
            )

    async def set(self, user_id: str, user_secret: str) -> None:
        await self._ensure_schema()
        async with get_connection() as conn:
            await conn.execute(
                """
                INSERT INTO user_secrets (user_id, user_secret, updated_at)
                VALUES ($1, $2, now())
                ON CONFLICT (user_id) DO UPDATE
                SET user_secret = EXCLUDED.user_secret, updated_at = now()
                """,
                user_id,
                user_secret
            )

    async def delete(self, user_id: str) -> None:
        await self._ensure_schema()
        async with get_connection() as conn:
            await conn.execute("DELETE FROM user_secrets WHERE user_id = $1", user_id)

    async def all(self) -> dict[str, str]:
        await self._ensure_schema()
        async with get_connection() as conn:
            rows = await conn.fetch("SELECT user_id, user_secret FROM user_secrets")
        return {row["user_id"]: row["user_secret"] for row in rows}


def create_secret_store(settings: Settings | None = None) -> BaseSecretStore:
    """Build the store selected by ``SECRET_STORE``."""
    settings = settings or get_settings()
    kind = SecretStoreKind(settings.secret_store.lower())
    if kind is SecretStoreKind.POSTGRES:
        return PostgresSecretStore()
    return MemorySecretStore()


def create_local_secret_store(settings: Settings | None = None) -> JsonFileSecretStore:
    """The console's local-storage file at ``LOCAL_SECRETS_PATH``."""
    settings = settings or get_settings()
    return JsonFileSecretStore(settings.local_secrets_path)
