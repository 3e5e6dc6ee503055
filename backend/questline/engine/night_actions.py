from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from questline.core.errors import GameRuleError
from questline.core.models import ActionKind, GameState, NightAction, Phase, PlayerState, Role
from questline.roles.skills import night_action_kind, skill_for


@dataclass(frozen=True, slots=True)
class NightOutcome:
    round: int
    killed_id: Optional[str] = None
    saved_id: Optional[str] = None
    protected_id: Optional[str] = None
    kill_votes: Dict[str, int] = field(default_factory=dict)
    actions_processed: int = 0


@dataclass(frozen=True, slots=True)
class InvestigationResult:
    round: int
    target_id: str
    is_werewolf: bool


def _must_get(state: GameState, player_id: Optional[str], label: str) -> PlayerState:
    if not player_id:
        raise GameRuleError(f"{label} is required")
    player = state.player(player_id)
    if player is None:
        raise GameRuleError(f"{label} not found")
    return player


def validate_night_action(state: GameState, actor_id: str, target_id: Optional[str]) -> ActionKind:
    actor = _must_get(state, actor_id, "player")
    target = _must_get(state, target_id, "target")

    if not actor.alive:
        raise GameRuleError("Dead players cannot act")
    if not target.alive:
        raise GameRuleError("Cannot target dead players")
    if state.phase != Phase.NIGHT:
        raise GameRuleError("Night actions only during night phase")
    if state.night_resolved_round == state.round:
        raise GameRuleError("Night already resolved this round")
    if actor.has_acted:
        raise GameRuleError("Already acted this round")

    kind = night_action_kind(actor.role)
    if kind == ActionKind.NONE:
        raise GameRuleError("This role has no night action")

    skill_for(actor.role).validate_target(state, actor, target)
    return kind


def record_night_action(state: GameState, actor_id: str, target_id: Optional[str], seq: int) -> GameState:
    """Store the action keyed by (actor, round); an earlier record is replaced."""
    actor = _must_get(state, actor_id, "player")
    action = NightAction(
        actor_id=actor_id,
        target_id=target_id,
        kind=night_action_kind(actor.role),
        round=state.round,
        seq=seq,
    )
    kept = tuple(
        a for a in state.night_actions if not (a.actor_id == actor_id and a.round == state.round)
    )
    return state.evolve(
        night_actions=kept + (action,),
        players=state.with_player(actor_id, has_acted=True),
    )


def submit_night_action(state: GameState, actor_id: str, target_id: Optional[str], seq: int) -> GameState:
    validate_night_action(state, actor_id, target_id)
    return record_night_action(state, actor_id, target_id, seq)


def majority_target(actions: List[NightAction]) -> Tuple[Optional[str], Dict[str, int]]:
    """Target with the most votes; equal counts go to the lowest player id."""
    votes: Dict[str, int] = {}
    for action in actions:
        if action.target_id:
            votes[action.target_id] = votes.get(action.target_id, 0) + 1
    if not votes:
        return None, votes
    target = min(votes, key=lambda pid: (-votes[pid], pid))
    return target, votes


def resolve_night_actions(state: GameState) -> Tuple[GameState, NightOutcome]:
    round_actions = list(state.round_actions())

    kill_target, kill_votes = majority_target([a for a in round_actions if a.kind == ActionKind.KILL])

    protects = sorted(
        (a for a in round_actions if a.kind == ActionKind.PROTECT and a.target_id),
        key=lambda a: a.seq,
    )
    protected_id = protects[-1].target_id if protects else None

    killed_id: Optional[str] = None
    saved_id: Optional[str] = None
    players = state.players
    if kill_target:
        if kill_target == protected_id:
            saved_id = kill_target
        else:
            victim = state.player(kill_target)
            if victim is not None and victim.alive:
                killed_id = kill_target
                players = state.with_player(kill_target, alive=False)

    outcome = NightOutcome(
        round=state.round,
        killed_id=killed_id,
        saved_id=saved_id,
        protected_id=protected_id,
        kill_votes=kill_votes,
        actions_processed=len(round_actions),
    )
    next_state = state.evolve(
        players=players,
        killed_tonight=killed_id,
        saved_tonight=saved_id,
        night_resolved_round=state.round,
    )
    return next_state, outcome


def investigation_result(state: GameState, seer_id: str) -> Optional[InvestigationResult]:
    for action in state.round_actions():
        if action.actor_id == seer_id and action.kind == ActionKind.INVESTIGATE and action.target_id:
            target = state.player(action.target_id)
            if target is None:
                return None
            return InvestigationResult(
                round=action.round,
                target_id=action.target_id,
                is_werewolf=target.role == Role.WEREWOLF,
            )
    return None


def investigation_history(state: GameState, seer_id: str) -> List[InvestigationResult]:
    results: List[InvestigationResult] = []
    for action in sorted(state.night_actions, key=lambda a: a.seq):
        if action.actor_id != seer_id or action.kind != ActionKind.INVESTIGATE or not action.target_id:
            continue
        target = state.player(action.target_id)
        if target is None:
            continue
        results.append(
            InvestigationResult(
                round=action.round,
                target_id=action.target_id,
                is_werewolf=target.role == Role.WEREWOLF,
            )
        )
    return results
