"""Runtime settings for the reader."""

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Mapping

from .storage import StoreError

logger = logging.getLogger(__name__)

SETTINGS_KEY = "vn_settings_v1"
BASE_CHAR_DELAY = 25.0


def _clamp(value: float, minimum: float, maximum: float) -> float:
    return max(minimum, min(maximum, value))


_TRUE_WORDS = {"true", "1", "yes", "on"}
_FALSE_WORDS = {"false", "0", "no", "off"}


def _coerce_flag(value: Any, fallback: bool) -> bool:
    if isinstance(value, str):
        word = value.strip().lower()
        if word in _TRUE_WORDS or word in _FALSE_WORDS:
            return word in _TRUE_WORDS
        return fallback
    if value is None:
        return fallback
    return bool(value)


@dataclass
class Settings:
    """Reader preferences that persist between sessions."""

    text_speed: float = 1.0
    chars_per_tick: int = 1
    reduce_animations: bool = False
    transitions_enabled: bool = True
    muted: bool = False

    def clamp(self) -> "Settings":
        self.text_speed = _clamp(float(self.text_speed), 0.0, 4.0)
        self.chars_per_tick = int(_clamp(int(self.chars_per_tick), 1, 16))
        self.reduce_animations = bool(self.reduce_animations)
        self.transitions_enabled = bool(self.transitions_enabled)
        self.muted = bool(self.muted)
        return self

    def copy(self) -> "Settings":
        return Settings.from_dict(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None) -> "Settings":
        """Build settings from a stored record, keeping defaults for bad values."""
        defaults = cls()
        if not isinstance(data, Mapping):
            return defaults
        values: Dict[str, Any] = {}
        for item in fields(cls):
            fallback = getattr(defaults, item.name)
            raw = data.get(item.name, fallback)
            if isinstance(fallback, bool):
                values[item.name] = _coerce_flag(raw, fallback)
                continue
            try:
                values[item.name] = type(fallback)(raw)
            except (TypeError, ValueError):
                logger.debug("Setting %s=%r ignored; using %r.", item.name, raw, fallback)
                values[item.name] = fallback
        return cls(**values).clamp()


def compute_char_delay(settings: Settings) -> float:
    """Delay between reveal ticks, in clock units; 0 means instant text."""
    if settings.reduce_animations or settings.text_speed <= 0:
        return 0.0
    return BASE_CHAR_DELAY / max(settings.text_speed, 0.1)


def load_settings(store) -> Settings:
    try:
        data = store.get(SETTINGS_KEY)
    except StoreError as exc:
        logger.warning("Settings unreadable, using defaults: %s", exc)
        return Settings()
    return Settings.from_dict(data)


def save_settings(settings: Settings, store) -> Settings:
    sanitized = settings.copy().clamp()
    try:
        store.put(SETTINGS_KEY, sanitized.to_dict())
    except StoreError as exc:
        logger.warning("Failed to save settings: %s", exc)
    return sanitized
