import random
from collections import Counter

import pytest

from questline.config.config_loader import available_roles, recommended_werewolf_count
from questline.config.config_validator import ConfigValidator
from questline.core.errors import RoleConfigError
from questline.core.game_config import default_game_settings, settings_from_dict
from questline.core.models import GameSettings, PlayerState, Role
from questline.engine.role_assigner import assign_roles, generate_role_distribution, shuffle_roles


def test_distribution_fills_with_villagers() -> None:
    settings = GameSettings(player_count=6, werewolf_count=1, include_roles=(Role.SEER, Role.DOCTOR))
    roles = generate_role_distribution(settings, random.Random(1))

    assert Counter(roles) == Counter(
        {Role.WEREWOLF: 1, Role.SEER: 1, Role.DOCTOR: 1, Role.VILLAGER: 3}
    )


def test_shuffle_is_seeded_and_keeps_input() -> None:
    roles = [Role.WEREWOLF, Role.SEER, Role.VILLAGER, Role.VILLAGER, Role.DOCTOR]
    first = shuffle_roles(roles, random.Random(42))
    second = shuffle_roles(roles, random.Random(42))

    assert first == second
    assert sorted(first) == sorted(roles)
    assert roles == [Role.WEREWOLF, Role.SEER, Role.VILLAGER, Role.VILLAGER, Role.DOCTOR]


def test_assign_roles_resets_player_flags() -> None:
    settings = default_game_settings(6)
    players = [PlayerState(player_id=f"p{i}", name=f"P{i}", has_voted=True) for i in range(6)]

    seated = assign_roles(players, settings, random.Random(3))

    assert all(p.role is not None for p in seated)
    assert not any(p.has_voted for p in seated)
    assert sum(1 for p in seated if p.role == Role.WEREWOLF) == settings.werewolf_count


def test_assign_roles_rejects_wrong_table_size() -> None:
    players = [PlayerState(player_id=f"p{i}", name=f"P{i}") for i in range(5)]
    with pytest.raises(RoleConfigError) as exc:
        assign_roles(players, GameSettings(player_count=6))
    assert "Expected 6 players" in str(exc.value)


def test_validator_rejects_werewolf_majority() -> None:
    result = ConfigValidator.validate_settings(GameSettings(player_count=4, werewolf_count=2))
    assert result.ok is False
    assert "Werewolves cannot be majority at start" in result.errors

    result = ConfigValidator.validate_settings(GameSettings(player_count=3, werewolf_count=1))
    assert "Minimum 4 players required" in result.errors


def test_validator_warns_on_unusual_setup() -> None:
    settings = GameSettings(player_count=5, werewolf_count=1, include_roles=(Role.HUNTER,))
    result = ConfigValidator.validate_settings(settings)

    assert result.ok is True
    assert any("hunter" in w for w in result.warnings)


def test_balance_table() -> None:
    assert recommended_werewolf_count(6) == 1
    assert recommended_werewolf_count(8) == 2
    assert recommended_werewolf_count(20) == 5
    assert "seer" in available_roles(5)
    assert "hunter" not in available_roles(6)


def test_settings_overrides() -> None:
    settings = settings_from_dict(8, {"include_roles": ["Seer", "doctor"], "ai_difficulty": "hard"})
    assert settings.include_roles == (Role.SEER, Role.DOCTOR)
    assert settings.werewolf_count == 2
    assert settings.ai_difficulty.value == "hard"

    with pytest.raises(ValueError, match="unknown setting"):
        settings_from_dict(6, {"moon_phase": "full"})
    with pytest.raises(ValueError, match="unknown role"):
        settings_from_dict(6, {"include_roles": ["witch"]})


def test_settings_overrides_coerce_types() -> None:
    settings = settings_from_dict(6, {"werewolf_count": "2", "allow_chat": "false", "focus_duration": 30.0})
    assert settings.werewolf_count == 2
    assert settings.allow_chat is False
    assert settings.focus_duration == 30

    with pytest.raises(RoleConfigError, match="werewolf_count must be an integer"):
        settings_from_dict(6, {"werewolf_count": "two"})
    with pytest.raises(RoleConfigError, match="werewolf_count must be an integer"):
        settings_from_dict(6, {"werewolf_count": True})
    with pytest.raises(RoleConfigError, match="allow_chat"):
        settings_from_dict(6, {"allow_chat": "sometimes"})
    with pytest.raises(RoleConfigError, match="include_roles"):
        settings_from_dict(6, {"include_roles": "seer"})
