from __future__ import annotations

from typing import Any, Dict, Optional

from questline.config.config_loader import available_roles, balance_defaults, recommended_werewolf_count
from questline.config.config_validator import ConfigValidator
from questline.core.errors import RoleConfigError
from questline.core.models import Difficulty, GameSettings, Role, SessionMode


def default_game_settings(player_count: int = 6, ai_player_count: int = 0) -> GameSettings:
    defaults = balance_defaults()
    special = tuple(
        Role(name)
        for name in available_roles(player_count)
        if name not in {Role.WEREWOLF.value, Role.VILLAGER.value}
    )
    return GameSettings(
        mode=SessionMode(defaults.get("mode", SessionMode.TIMED_ROUND.value)),
        player_count=player_count,
        werewolf_count=max(1, recommended_werewolf_count(player_count)),
        include_roles=special,
        ai_player_count=ai_player_count,
        ai_difficulty=Difficulty(defaults.get("ai_difficulty", Difficulty.MEDIUM.value)),
        focus_duration=int(defaults.get("focus_duration", 25)),
        break_duration=int(defaults.get("break_duration", 5)),
    )

_INT_FIELDS = {"player_count", "werewolf_count", "ai_player_count", "focus_duration", "break_duration"}
_BOOL_FIELDS = {"allow_chat", "reveal_roles_on_death"}


def _coerce_int(key: str, value: Any) -> int:
    if isinstance(value, bool):
        raise RoleConfigError([f"{key} must be an integer"])
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise RoleConfigError([f"{key} must be an integer"]) from exc


def _coerce_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in {"true", "false"}:
        return value.strip().lower() == "true"
    raise RoleConfigError([f"{key} must be true or false"])


def settings_from_dict(player_count: int, overrides: Optional[Dict[str, Any]] = None) -> GameSettings:
    settings = default_game_settings(player_count)
    for key, value in (overrides or {}).items():
        if value is None:
            continue
        if key == "include_roles":
            if isinstance(value, str):
                raise RoleConfigError(["include_roles must be a list of role names"])
            settings.include_roles = ConfigValidator.normalize_roles(value)
        elif key == "mode":
            settings.mode = SessionMode(value)
        elif key == "ai_difficulty":
            settings.ai_difficulty = Difficulty(value)
        elif key in _INT_FIELDS:
            setattr(settings, key, _coerce_int(key, value))
        elif key in _BOOL_FIELDS:
            setattr(settings, key, _coerce_bool(key, value))
        elif key == "metadata":
            if not isinstance(value, dict):
                raise RoleConfigError(["metadata must be an object"])
            settings.metadata = dict(value)
        else:
            raise ValueError(f"unknown setting: {key}")
    return settings
