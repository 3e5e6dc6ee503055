from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, List, Tuple

from questline.config.config_loader import available_roles, recommended_werewolf_count
from questline.core.models import GameSettings, Role


@dataclass(slots=True)
class ValidationResult:
    ok: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


class ConfigValidator:
    MIN_PLAYERS = 4

    @staticmethod
    def normalize_roles(include_roles: Iterable[object]) -> Tuple[Role, ...]:
        roles: List[Role] = []
        for raw in include_roles:
            try:
                role = raw if isinstance(raw, Role) else Role(str(raw).strip().lower())
            except ValueError as exc:
                raise ValueError(f"unknown role: {raw}") from exc
            roles.append(role)
        return tuple(roles)

    @classmethod
    def validate_settings(cls, settings: GameSettings) -> ValidationResult:
        errors: List[str] = []
        if settings.player_count < cls.MIN_PLAYERS:
            errors.append(f"Minimum {cls.MIN_PLAYERS} players required")
        if settings.werewolf_count < 1:
            errors.append("At least 1 werewolf required")
        if settings.werewolf_count * 2 >= settings.player_count:
            errors.append("Werewolves cannot be majority at start")
        if len(settings.include_roles) > settings.player_count:
            errors.append("Too many special roles for player count")
        if settings.ai_player_count < 0 or settings.ai_player_count > settings.player_count:
            errors.append("AI player count must be between 0 and player count")

        warnings: List[str] = []
        if not errors:
            allowed = set(available_roles(settings.player_count))
            for role in settings.include_roles:
                if role.value not in allowed:
                    warnings.append(f"{role.value} is not recommended for {settings.player_count} players")
            recommended = recommended_werewolf_count(settings.player_count)
            if settings.werewolf_count != recommended:
                warnings.append(
                    f"{settings.werewolf_count} werewolves differs from the recommended {recommended}"
                )

        return ValidationResult(ok=not errors, errors=errors, warnings=warnings)
