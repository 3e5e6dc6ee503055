from __future__ import annotations

from typing import Dict, List, Optional

from questline.core.errors import GameRuleError
from questline.core.models import ActionKind, GameState, Phase, PlayerState, Role, Team
from questline.roles.base import RoleSkill


class WerewolfSkill(RoleSkill):
    role = Role.WEREWOLF
    team = Team.WEREWOLF
    action_kind = ActionKind.KILL
    display_name = "Werewolf"
    description = "Hunt villagers at night. You know who your fellow werewolves are."

    def validate_target(self, state: GameState, actor: PlayerState, target: PlayerState) -> None:
        if target.role == Role.WEREWOLF:
            raise GameRuleError("Werewolves cannot kill other werewolves")

    def narrow_targets(self, state: GameState, actor: PlayerState, phase: Phase) -> List[PlayerState]:
        candidates = super().narrow_targets(state, actor, phase)
        if phase != Phase.NIGHT:
            return candidates
        return [p for p in candidates if p.role != Role.WEREWOLF]


class SeerSkill(RoleSkill):
    role = Role.SEER
    action_kind = ActionKind.INVESTIGATE
    display_name = "Seer"
    description = "Each night, you may investigate one player to learn their alignment."


class DoctorSkill(RoleSkill):
    role = Role.DOCTOR
    action_kind = ActionKind.PROTECT
    display_name = "Doctor"
    description = "Each night, you may protect one player from being killed."

    def narrow_targets(self, state: GameState, actor: PlayerState, phase: Phase) -> List[PlayerState]:
        if phase == Phase.NIGHT:
            # self-protection is allowed
            return [p for p in state.players if p.alive]
        return super().narrow_targets(state, actor, phase)


class HunterSkill(RoleSkill):
    role = Role.HUNTER
    has_revenge = True
    display_name = "Hunter"
    description = "When you die, you may take one other player with you."


class VillagerSkill(RoleSkill):
    role = Role.VILLAGER
    display_name = "Villager"
    description = "A regular villager with no special abilities. Vote wisely during the day."


SKILL_REGISTRY: Dict[Role, RoleSkill] = {
    Role.WEREWOLF: WerewolfSkill(),
    Role.SEER: SeerSkill(),
    Role.DOCTOR: DoctorSkill(),
    Role.HUNTER: HunterSkill(),
    Role.VILLAGER: VillagerSkill(),
}


def skill_for(role: Optional[Role]) -> RoleSkill:
    if role is None:
        return SKILL_REGISTRY[Role.VILLAGER]
    return SKILL_REGISTRY[role]


def night_action_kind(role: Optional[Role]) -> ActionKind:
    return skill_for(role).action_kind


def is_werewolf(player: PlayerState) -> bool:
    return skill_for(player.role).team == Team.WEREWOLF


def legal_targets(state: GameState, actor_id: str, phase: Optional[Phase] = None) -> List[PlayerState]:
    actor = state.player(actor_id)
    if actor is None:
        return []
    return skill_for(actor.role).narrow_targets(state, actor, phase or state.phase)
