# Vault - Auto-Lock Timer
#
# Locks the vault after the configured number of idle minutes.
# Callers reset() on user activity; 0 minutes disables auto-lock.

import asyncio
import logging
from typing import Optional

from ..core.user_preferences import (
    DEFAULT_PREFERENCES,
    PREF_AUTO_LOCK_MINUTES,
    UserPreferences,
)

logger = logging.getLogger(__name__)


class AutoLockTimer:
    """Idle timer bound to one VaultStore. Must be driven from the event loop."""

    def __init__(self, vault, preferences: Optional[UserPreferences] = None):
        self.vault = vault
        self.preferences = preferences or vault.preferences
        self._handle: Optional[asyncio.TimerHandle] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._handle is not None

    async def timeout_minutes(self) -> float:
        default = DEFAULT_PREFERENCES[PREF_AUTO_LOCK_MINUTES]
        minutes = await asyncio.to_thread(self.preferences.get, PREF_AUTO_LOCK_MINUTES, default)
        try:
            return max(float(minutes), 0.0)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring invalid auto-lock setting: {minutes!r}")
            return float(default)

    async def reset(self) -> None:
        """(Re)start the countdown from now."""
        minutes = await self.timeout_minutes()
        self.cancel()
        if minutes <= 0:
            return
        loop = asyncio.get_running_loop()
        self._handle = loop.call_later(minutes * 60, self._expire)

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()
            self._handle = None

    def _expire(self) -> None:
        self._handle = None
        if self.vault.is_unlocked:
            logger.info("Auto-lock timeout reached, locking vault")
            self._task = asyncio.create_task(self.vault.lock())

    async def wait_closed(self) -> None:
        """Wait for an in-flight auto-lock to finish."""
        if self._task is not None:
            await self._task
