"""Settings Provider: loads gameplay tunables from the ``settings`` table."""

from __future__ import annotations

import logging
import threading

from sqlalchemy import select
from sqlalchemy.orm import Session

from clanwars.domain.enums import SettingKey
from clanwars.domain.game_settings import DEFAULT_GAME_SETTINGS, GameSettings
from clanwars.models import Setting

logger = logging.getLogger(__name__)


def load_game_settings(session: Session) -> GameSettings:
    """Parse the stored rows into a snapshot; unknown keys are ignored."""
    rows = session.execute(select(Setting.key, Setting.value)).all()
    return GameSettings.from_raw({key: value for key, value in rows})


def upsert_setting(session: Session, key: SettingKey, value: str) -> Setting:
    """Create or overwrite one stored setting (values use the stored units)."""
    setting = session.execute(select(Setting).where(Setting.key == key.value)).scalar_one_or_none()
    if setting is None:
        setting = Setting(key=key.value, value=value)
        session.add(setting)
    else:
        setting.value = value
    session.flush()
    return setting


class SettingsProvider:
    """Holds the current :class:`GameSettings` snapshot.

    Readers take ``snapshot()`` once per operation; ``reload`` swaps in a new
    immutable snapshot so in-flight operations keep the values they started with.
    """

    def __init__(self, initial: GameSettings = DEFAULT_GAME_SETTINGS) -> None:
        self._current = initial
        self._lock = threading.Lock()

    def snapshot(self) -> GameSettings:
        with self._lock:
            return self._current

    def replace(self, settings: GameSettings) -> None:
        with self._lock:
            self._current = settings

    def reload(self, session: Session) -> GameSettings:
        settings = load_game_settings(session)
        previous = self.snapshot()
        self.replace(settings)
        if settings != previous:
            logger.info("gameplay settings changed: %s", settings)
        return settings
