from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List

import yaml

_BALANCE_PATH = Path(__file__).resolve().parents[2] / "config" / "role_balance.yaml"


@lru_cache(maxsize=1)
def load_role_balance() -> Dict[str, Any]:
    raw = yaml.safe_load(_BALANCE_PATH.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"role balance file is malformed: {_BALANCE_PATH}")
    return raw


def recommended_werewolf_count(player_count: int) -> int:
    balance = load_role_balance()
    for row in balance.get("recommended_werewolves", []):
        if player_count <= int(row["max_players"]):
            return int(row["werewolves"])
    divisor = int(balance.get("large_table_divisor", 4))
    return player_count // divisor


def available_roles(player_count: int) -> List[str]:
    roles = ["villager", "werewolf"]
    thresholds = load_role_balance().get("role_availability", {})
    for role_name, min_players in thresholds.items():
        if player_count >= int(min_players):
            roles.append(str(role_name))
    return roles


def initial_action_tokens(mode: str) -> int:
    tokens = load_role_balance().get("initial_action_tokens", {})
    return int(tokens.get(mode, 0))


def balance_defaults() -> Dict[str, Any]:
    return dict(load_role_balance().get("defaults", {}))
