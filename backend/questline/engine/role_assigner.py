from __future__ import annotations

import random
from dataclasses import replace
from typing import List, Optional, Sequence

from questline.config.config_loader import initial_action_tokens
from questline.config.config_validator import ConfigValidator, ValidationResult
from questline.core.errors import RoleConfigError
from questline.core.models import GameSettings, PlayerState, Role


def validate_role_configuration(settings: GameSettings) -> ValidationResult:
    return ConfigValidator.validate_settings(settings)


def shuffle_roles(roles: Sequence[Role], rng: Optional[random.Random] = None) -> List[Role]:
    """Fisher-Yates shuffle on a copy of ``roles``."""
    rng = rng or random.Random()
    shuffled = list(roles)
    for i in range(len(shuffled) - 1, 0, -1):
        j = rng.randint(0, i)
        shuffled[i], shuffled[j] = shuffled[j], shuffled[i]
    return shuffled


def generate_role_distribution(settings: GameSettings, rng: Optional[random.Random] = None) -> List[Role]:
    roles: List[Role] = [Role.WEREWOLF] * settings.werewolf_count

    for role in settings.include_roles:
        if role in {Role.WEREWOLF, Role.VILLAGER}:
            continue
        if len(roles) < settings.player_count:
            roles.append(role)

    while len(roles) < settings.player_count:
        roles.append(Role.VILLAGER)

    return shuffle_roles(roles, rng)


def assign_roles(
    players: Sequence[PlayerState],
    settings: GameSettings,
    rng: Optional[random.Random] = None,
) -> tuple[PlayerState, ...]:
    result = validate_role_configuration(settings)
    errors = list(result.errors)
    if len(players) != settings.player_count:
        errors.append(f"Expected {settings.player_count} players, got {len(players)}")
    if errors:
        raise RoleConfigError(errors)

    roles = generate_role_distribution(settings, rng)
    tokens = initial_action_tokens(settings.mode.value)
    return tuple(
        replace(
            player,
            role=roles[index],
            alive=True,
            action_tokens=tokens,
            has_acted=False,
            has_voted=False,
        )
        for index, player in enumerate(players)
    )
