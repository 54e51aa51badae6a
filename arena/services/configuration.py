"""
Runtime configuration overrides backed by the database.

Keys are dotted (``rating.decay``, ``matchmaking.level_window``); values are
stored JSON-encoded and cached in memory. Every write is audited.
ArenaSettings.from_config reads the cache when the engine is built.
"""

import json
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from arena.config import SETTING_KEYS
from arena.database.models import AuditLog, Configuration
from arena.services.base import BaseService

logger = logging.getLogger(__name__)


def _decode(raw: Optional[str]) -> Any:
    if raw is None:
        return None
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return {"error": "invalid JSON", "raw": raw}


class ConfigurationService(BaseService):
    """Arena setting overrides with an in-memory cache and an audit trail"""

    def __init__(self, session_factory):
        super().__init__(session_factory)
        self._cache: Dict[str, Any] = {}

    async def load_all(self):
        """Refresh the cache from the configurations table; unparseable rows are skipped"""
        overrides = {}
        async with self.get_session() as session:
            rows = (await session.execute(select(Configuration))).scalars().all()
        for row in rows:
            try:
                overrides[row.key] = json.loads(row.value)
            except json.JSONDecodeError:
                logger.warning(f"Ignoring override '{row.key}': stored value is not JSON")
        self._cache = overrides
        logger.info(f"Loaded {len(self._cache)} arena setting overrides")

    def get(self, key: str, default: Any = None) -> Any:
        return self._cache.get(key, default)

    def get_by_category(self, category: str) -> Dict[str, Any]:
        """Overrides under one category (``rating``, ``battle``, ...) with the prefix stripped"""
        prefix = f"{category}."
        return {key[len(prefix):]: value for key, value in self._cache.items() if key.startswith(prefix)}

    async def _write(self, key: str, value: Any, user_id: int, action: str):
        async with self.get_session() as session:
            row = await session.get(Configuration, key)
            old_value = _decode(row.value) if row else None

            if action == 'config_reset':
                if row:
                    await session.delete(row)
            elif row:
                row.value = json.dumps(value)
            else:
                session.add(Configuration(key=key, value=json.dumps(value)))

            session.add(AuditLog(
                user_id=user_id,
                action=action,
                details=json.dumps({'key': key, 'old_value': old_value, 'new_value': value}),
            ))
        logger.info(f"Arena setting {key}: {action} {value!r} by user {user_id}")
        await self.load_all()

    async def set(self, key: str, value: Any, user_id: int):
        """
        Persist an override and refresh the cache.

        Args:
            key: Dotted key; must be one of the known arena settings
            value: JSON-encodable value
            user_id: Discord user ID for the audit trail

        Raises:
            KeyError: For keys the arena does not understand
        """
        if key not in SETTING_KEYS:
            raise KeyError(f"Unknown configuration key: {key}")
        await self._write(key, value, user_id, 'config_set')

    async def reset(self, key: str, user_id: int):
        """Drop an override so the Config default applies again on the next start"""
        if key not in SETTING_KEYS:
            raise KeyError(f"Unknown configuration key: {key}")
        await self._write(key, None, user_id, 'config_reset')

    async def audit_history(self, limit: int = 20) -> List[AuditLog]:
        """Most recent configuration changes, newest first"""
        async with self.get_session() as session:
            result = await session.execute(
                select(AuditLog).order_by(AuditLog.id.desc()).limit(limit)
            )
            return list(result.scalars().all())
