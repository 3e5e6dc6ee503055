from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

from questline.core.models import GameState, Phase
from questline.roles.skills import skill_for

MIN_PLAYERS = 4


@dataclass(frozen=True, slots=True)
class TransitionCheck:
    can_transition: bool
    reason: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PhaseInfo:
    name: str
    description: str


_OK = TransitionCheck(True)


class BasePhaseState(ABC):
    phase: Phase
    info: PhaseInfo

    @abstractmethod
    def next_phase(self) -> Phase:
        pass

    def can_leave(self, state: GameState) -> TransitionCheck:
        return _OK


class SetupState(BasePhaseState):
    phase = Phase.SETUP
    info = PhaseInfo("Setup", "Waiting for players to join and game to start")

    def next_phase(self) -> Phase:
        return Phase.NIGHT

    def can_leave(self, state: GameState) -> TransitionCheck:
        if not all(p.role is not None for p in state.players):
            return TransitionCheck(False, "Roles not assigned")
        if len(state.players) < MIN_PLAYERS:
            return TransitionCheck(False, f"Need at least {MIN_PLAYERS} players")
        return _OK


class NightState(BasePhaseState):
    phase = Phase.NIGHT
    info = PhaseInfo("Night", "The village sleeps while dark forces act")

    def next_phase(self) -> Phase:
        return Phase.DAY

    def can_leave(self, state: GameState) -> TransitionCheck:
        waiting = [
            p for p in state.alive_players()
            if skill_for(p.role).has_night_action and not p.has_acted
        ]
        if waiting:
            return TransitionCheck(False, "Waiting for night actions")
        return _OK


class DayState(BasePhaseState):
    phase = Phase.DAY
    info = PhaseInfo("Day", "Discuss and find the werewolves among you")

    def next_phase(self) -> Phase:
        return Phase.VOTING


class VotingState(BasePhaseState):
    phase = Phase.VOTING
    info = PhaseInfo("Voting", "Vote to eliminate a suspected werewolf")

    def next_phase(self) -> Phase:
        return Phase.RESOLUTION

    def can_leave(self, state: GameState) -> TransitionCheck:
        if not all(p.has_voted for p in state.alive_players()):
            return TransitionCheck(False, "Waiting for all votes")
        return _OK


class ResolutionState(BasePhaseState):
    phase = Phase.RESOLUTION
    info = PhaseInfo("Resolution", "The village decides the fate of the accused")

    def next_phase(self) -> Phase:
        return Phase.NIGHT


class EndedState(BasePhaseState):
    phase = Phase.ENDED
    info = PhaseInfo("Game Over", "The game has concluded")

    def next_phase(self) -> Phase:
        return Phase.ENDED

    def can_leave(self, state: GameState) -> TransitionCheck:
        return TransitionCheck(False, "Game has ended")


STATE_REGISTRY: Dict[Phase, BasePhaseState] = {
    Phase.SETUP: SetupState(),
    Phase.NIGHT: NightState(),
    Phase.DAY: DayState(),
    Phase.VOTING: VotingState(),
    Phase.RESOLUTION: ResolutionState(),
    Phase.ENDED: EndedState(),
}


def next_phase(phase: Phase) -> Phase:
    return STATE_REGISTRY[phase].next_phase()


def can_transition(state: GameState) -> TransitionCheck:
    return STATE_REGISTRY[state.phase].can_leave(state)


def phase_info(phase: Phase) -> PhaseInfo:
    return STATE_REGISTRY[phase].info
