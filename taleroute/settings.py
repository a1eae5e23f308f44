"""Settings persistence for Taleroute sessions."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict

logger = logging.getLogger(__name__)

_BASE_DIR = Path(__file__).resolve().parent.parent
SETTINGS_PATH = _BASE_DIR / "settings.json"

MIN_COMBAT_LOG = 4
MAX_COMBAT_LOG = 50


def _clamp(value: int, minimum: int, maximum: int) -> int:
    return max(minimum, min(maximum, value))


@dataclass
class Settings:
    """Runtime switches that shape how a session resolves actions."""

    gap_policy: str = "stay"
    outcome_tag_scope: str = "scene"
    outcome_tag_prefix: str = "combat"
    combat_log_size: int = MIN_COMBAT_LOG
    debug: bool = False

    _GAP_POLICIES = {"stay", "raise"}
    _TAG_SCOPES = {"scene", "global"}

    def clamp(self) -> "Settings":
        policy = str(self.gap_policy).lower()
        if policy not in self._GAP_POLICIES:
            policy = "stay"
        self.gap_policy = policy

        scope = str(self.outcome_tag_scope).lower()
        if scope not in self._TAG_SCOPES:
            scope = "scene"
        self.outcome_tag_scope = scope

        prefix = str(self.outcome_tag_prefix).strip()
        self.outcome_tag_prefix = prefix or "combat"

        try:
            size = int(self.combat_log_size)
        except (TypeError, ValueError):
            size = MIN_COMBAT_LOG
        self.combat_log_size = _clamp(size, MIN_COMBAT_LOG, MAX_COMBAT_LOG)

        self.debug = bool(self.debug)
        return self

    def copy(self) -> "Settings":
        return Settings.from_dict(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any] | None) -> "Settings":
        if not isinstance(data, dict):
            return cls()

        def _as_bool(key: str, default: bool) -> bool:
            value = data.get(key, default)
            if isinstance(value, bool):
                return value
            if isinstance(value, str):
                lowered = value.strip().lower()
                if lowered in {"true", "1", "yes", "on"}:
                    return True
                if lowered in {"false", "0", "no", "off"}:
                    return False
            return bool(value) if value is not None else default

        settings = cls(
            gap_policy=str(data.get("gap_policy", "stay")),
            outcome_tag_scope=str(data.get("outcome_tag_scope", "scene")),
            outcome_tag_prefix=str(data.get("outcome_tag_prefix", "combat")),
            combat_log_size=data.get("combat_log_size", MIN_COMBAT_LOG),
            debug=_as_bool("debug", False),
        )
        return settings.clamp()


def load_settings(path: Path | str = SETTINGS_PATH) -> Settings:
    path = Path(path)
    try:
        with path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
    except FileNotFoundError:
        return Settings()
    except (OSError, json.JSONDecodeError, TypeError):
        logger.warning("Ignoring unreadable settings file %s", path)
        return Settings()
    return Settings.from_dict(data)


def save_settings(settings: Settings, path: Path | str = SETTINGS_PATH) -> Settings:
    path = Path(path)
    sanitized = settings.copy().clamp()
    path.parent.mkdir(parents=True, exist_ok=True)

    tmp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            "w", delete=False, dir=path.parent, prefix=path.name, suffix=".tmp", encoding="utf-8"
        ) as tmp_file:
            json.dump(sanitized.to_dict(), tmp_file, indent=2)
            tmp_file.write("\n")
            tmp_path = Path(tmp_file.name)
        os.replace(str(tmp_path), str(path))
    except OSError as exc:
        logger.error("Failed to save settings to %s: %s", path, exc)
        if tmp_path is not None:
            try:
                tmp_path.unlink()
            except OSError:
                pass
    return sanitized
