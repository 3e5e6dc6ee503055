from __future__ import annotations

import itertools
import random
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, Iterator, List, Optional

from questline.core.errors import GameRuleError, PhaseTransitionBlocked
from questline.core.models import Difficulty, GameSettings, GameState, Phase, PlayerState, Winner
from questline.engine import night_actions, voting
from questline.engine.role_assigner import assign_roles
from questline.engine.states import can_transition, next_phase, phase_info
from questline.engine.win_conditions import check_win_condition


@dataclass(frozen=True, slots=True)
class PhaseChange:
    previous_phase: Phase
    state: GameState

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def round(self) -> int:
        return self.state.round


class GameEngine:
    """Single-writer driver for one game.

    Holds the current ``GameState`` value; every entry point computes a new
    value from the current one and swaps it in only after the whole mutation
    succeeded.
    """

    def __init__(
        self,
        game_id: str,
        settings: Optional[GameSettings] = None,
        rng: Optional[random.Random] = None,
        sequence: Optional[Iterator[int]] = None,
        event_sink: Optional[Callable[[Dict[str, Any]], None]] = None,
    ) -> None:
        self.state = GameState(game_id=game_id)
        self.settings = settings or GameSettings()
        self.rng = rng or random.Random()
        self._sequence = sequence or itertools.count(1)
        self._event_sink = event_sink
        self.event_log: List[Dict[str, Any]] = []
        self.hooks: Dict[str, List[Callable[..., None]]] = {
            "on_phase_change": [],
            "on_player_death": [],
        }

    def register_hook(self, hook_name: str, callback: Callable[..., None]) -> None:
        if hook_name not in self.hooks:
            self.hooks[hook_name] = []
        self.hooks[hook_name].append(callback)

    def _trigger_hook(self, hook_name: str, *args: Any) -> None:
        for callback in self.hooks.get(hook_name, []):
            callback(*args)

    def _next_seq(self) -> int:
        return next(self._sequence)

    # ------------------------------------------------------------------
    # Roster
    # ------------------------------------------------------------------

    def add_player(
        self,
        player_id: str,
        name: str,
        is_ai: bool = False,
        ai_difficulty: Optional[Difficulty] = None,
    ) -> GameState:
        state = self.state
        if state.phase != Phase.SETUP:
            raise GameRuleError("game already started")
        if state.player(player_id) is not None:
            raise GameRuleError("player already in game")
        if len(state.players) >= self.settings.player_count:
            raise GameRuleError("game is full")
        player = PlayerState(
            player_id=player_id,
            name=name,
            is_ai=is_ai,
            ai_difficulty=ai_difficulty or self.settings.ai_difficulty,
        )
        self._commit(state.evolve(players=state.players + (player,)))
        self._audit("player_joined", player_id, {"name": name, "is_ai": is_ai})
        return self.state

    def remove_player(self, player_id: str) -> GameState:
        state = self.state
        if state.phase != Phase.SETUP:
            raise GameRuleError("players can only leave before the game starts")
        if state.player(player_id) is None:
            raise GameRuleError("player not found")
        self._commit(state.evolve(players=tuple(p for p in state.players if p.player_id != player_id)))
        self._audit("player_left", player_id, {})
        return self.state

    def assign_roles(self) -> GameState:
        state = self.state
        if state.phase != Phase.SETUP:
            raise GameRuleError("roles can only be assigned during setup")
        players = assign_roles(state.players, self.settings, self.rng)
        self._commit(state.evolve(players=players))
        self._audit("roles_assigned", "system", {"player_count": len(players)})
        return self.state

    def start_game(self) -> GameState:
        self.assign_roles()
        return self.advance_phase()

    # ------------------------------------------------------------------
    # Night
    # ------------------------------------------------------------------

    def submit_night_action(self, actor_id: str, target_id: Optional[str]) -> GameState:
        next_state = night_actions.submit_night_action(self.state, actor_id, target_id, self._next_seq())
        self._commit(next_state)
        self._audit("night_action_submitted", actor_id, {"round": next_state.round})
        return self.state

    def resolve_night_actions(self) -> night_actions.NightOutcome:
        state = self.state
        if state.phase != Phase.NIGHT:
            raise GameRuleError("Night actions can only be resolved during the night phase")
        if state.night_resolved_round == state.round:
            raise GameRuleError("Night already resolved this round")
        next_state, outcome = night_actions.resolve_night_actions(state)
        self._commit(next_state)
        self._audit_night(outcome)
        return outcome

    def investigation_result(self, seer_id: str) -> Optional[night_actions.InvestigationResult]:
        return night_actions.investigation_result(self.state, seer_id)

    # ------------------------------------------------------------------
    # Voting
    # ------------------------------------------------------------------

    def cast_vote(self, voter_id: str, target_id: Optional[str]) -> GameState:
        next_state = voting.cast_vote(self.state, voter_id, target_id, self._next_seq())
        self._commit(next_state)
        self._audit("vote_cast", voter_id, {"round": next_state.round, "abstain": target_id is None})
        return self.state

    def tally_votes(self) -> voting.VoteTally:
        return voting.tally_votes(self.state)

    def vote_distribution(self) -> List[voting.VoteBucket]:
        return voting.vote_distribution(self.state)

    # ------------------------------------------------------------------
    # Phase progression
    # ------------------------------------------------------------------

    def advance_phase(self, revenge_target_id: Optional[str] = None) -> GameState:
        state = self.state
        if state.phase == Phase.ENDED:
            return state

        check = can_transition(state)
        if not check.can_transition:
            raise PhaseTransitionBlocked(check.reason or "transition blocked")

        working = state
        night_outcome = None
        vote_outcome = None
        if state.phase == Phase.NIGHT and state.night_resolved_round != state.round:
            working, night_outcome = night_actions.resolve_night_actions(working)
        elif state.phase == Phase.VOTING and state.votes_resolved_round != state.round:
            working, vote_outcome = voting.resolve_votes(working, revenge_target_id)

        working = self._transition(working)
        self._commit(working)

        if night_outcome is not None:
            self._audit_night(night_outcome)
        if vote_outcome is not None:
            self._audit(
                "votes_tallied",
                "system",
                {
                    "round": vote_outcome.tally.round,
                    "counts": dict(vote_outcome.tally.results),
                    "tie": vote_outcome.tally.is_tie,
                    "eliminated_player_id": vote_outcome.eliminated_id,
                    "revenge_victim_id": vote_outcome.revenge_victim_id,
                },
            )
        self._audit("phase_advanced", "system", {"from": state.phase.value, "to": working.phase.value})
        self._trigger_hook("on_phase_change", PhaseChange(previous_phase=state.phase, state=working))
        return self.state

    @staticmethod
    def _transition(state: GameState) -> GameState:
        winner = check_win_condition(state.players)
        if winner != Winner.NONE:
            return state.evolve(phase=Phase.ENDED, winner=winner)

        target = next_phase(state.phase)
        changes: Dict[str, Any] = {"phase": target}
        if target == Phase.NIGHT:
            changes["round"] = state.round + 1
            changes["players"] = tuple(replace(p, has_acted=False, has_voted=False) for p in state.players)
            changes["eliminated_today"] = None
            changes["revenge_victim"] = None
        elif target == Phase.VOTING:
            changes["killed_tonight"] = None
            changes["saved_tonight"] = None
        return state.evolve(**changes)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _commit(self, next_state: GameState) -> None:
        previous = self.state
        self.state = next_state
        for before in previous.players:
            after = next_state.player(before.player_id)
            if before.alive and after is not None and not after.alive:
                self._trigger_hook("on_player_death", after)

    def _audit_night(self, outcome: night_actions.NightOutcome) -> None:
        self._audit(
            "night_resolved",
            "system",
            {
                "round": outcome.round,
                "eliminated_player_id": outcome.killed_id,
                "saved_player_id": outcome.saved_id,
                "actions_processed": outcome.actions_processed,
            },
        )

    def _audit(self, event_type: str, actor_id: str, payload: dict) -> None:
        event = {
            "seq": self._next_seq(),
            "game_id": self.state.game_id,
            "round": self.state.round,
            "event_type": event_type,
            "actor_id": actor_id,
            "payload": payload,
        }
        self.event_log.append(event)
        if self._event_sink is not None:
            self._event_sink(event)

    def public_state(self, viewer_id: Optional[str] = None) -> dict:
        state = self.state
        info = phase_info(state.phase)
        reveal_all = state.phase == Phase.ENDED
        players = []
        for p in state.players:
            show_role = (
                reveal_all
                or p.player_id == viewer_id
                or (not p.alive and self.settings.reveal_roles_on_death)
            )
            players.append(
                {
                    "player_id": p.player_id,
                    "name": p.name,
                    "role": p.role.value if (p.role and show_role) else None,
                    "alive": p.alive,
                    "is_ai": p.is_ai,
                    "has_acted": p.has_acted,
                    "has_voted": p.has_voted,
                    "action_tokens": p.action_tokens,
                }
            )
        return {
            "game_id": state.game_id,
            "phase": state.phase.value,
            "phase_info": {"name": info.name, "description": info.description},
            "round": state.round,
            "winner": state.winner.value,
            "game_over": state.game_over,
            "version": state.version,
            "players": players,
            "killed_tonight": state.killed_tonight,
            "saved_tonight": state.saved_tonight,
            "eliminated_today": state.eliminated_today,
            "revenge_victim": state.revenge_victim,
        }
