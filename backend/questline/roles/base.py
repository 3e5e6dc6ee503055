from __future__ import annotations

from abc import ABC
from typing import List

from questline.core.models import ActionKind, GameState, Phase, PlayerState, Role, Team


class RoleSkill(ABC):
    role: Role
    team: Team = Team.VILLAGE
    action_kind: ActionKind = ActionKind.NONE
    has_revenge: bool = False
    display_name: str = ""
    description: str = ""

    @property
    def has_night_action(self) -> bool:
        return self.action_kind != ActionKind.NONE

    def validate_target(self, state: GameState, actor: PlayerState, target: PlayerState) -> None:
        """Role-specific target rule; raise GameRuleError to reject."""

    def narrow_targets(self, state: GameState, actor: PlayerState, phase: Phase) -> List[PlayerState]:
        return [p for p in state.players if p.alive and p.player_id != actor.player_id]
