from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, Optional, Tuple


class Role(str, Enum):
    WEREWOLF = "werewolf"
    VILLAGER = "villager"
    SEER = "seer"
    DOCTOR = "doctor"
    HUNTER = "hunter"


class Team(str, Enum):
    WEREWOLF = "werewolf"
    VILLAGE = "village"


class Phase(str, Enum):
    SETUP = "setup"
    NIGHT = "night"
    DAY = "day"
    VOTING = "voting"
    RESOLUTION = "resolution"
    ENDED = "ended"


class Winner(str, Enum):
    VILLAGERS = "villagers"
    WEREWOLVES = "werewolves"
    NONE = "none"


class ActionKind(str, Enum):
    KILL = "kill"
    INVESTIGATE = "investigate"
    PROTECT = "protect"
    NONE = "none"


class Difficulty(str, Enum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class SessionMode(str, Enum):
    FOCUS_AS_NIGHT = "focus-as-night"
    ACTION_REWARD = "action-reward"
    TIMED_ROUND = "timed-round"


@dataclass(frozen=True, slots=True)
class PlayerState:
    player_id: str
    name: str
    role: Optional[Role] = None
    alive: bool = True
    action_tokens: int = 0
    has_acted: bool = False
    has_voted: bool = False
    is_ai: bool = False
    ai_difficulty: Difficulty = Difficulty.MEDIUM


@dataclass(frozen=True, slots=True)
class NightAction:
    actor_id: str
    target_id: Optional[str]
    kind: ActionKind
    round: int
    seq: int


@dataclass(frozen=True, slots=True)
class Vote:
    voter_id: str
    target_id: Optional[str]
    round: int
    seq: int


@dataclass(frozen=True, slots=True)
class GameState:
    """Immutable snapshot of one game.

    Every mutation produces a new value through ``evolve`` so the engine can
    swap snapshots atomically and reject a failed mutation without leaving a
    half-applied state behind.
    """

    game_id: str
    phase: Phase = Phase.SETUP
    round: int = 0
    winner: Winner = Winner.NONE
    players: Tuple[PlayerState, ...] = ()
    night_actions: Tuple[NightAction, ...] = ()
    votes: Tuple[Vote, ...] = ()
    killed_tonight: Optional[str] = None
    saved_tonight: Optional[str] = None
    eliminated_today: Optional[str] = None
    revenge_victim: Optional[str] = None
    night_resolved_round: int = 0
    votes_resolved_round: int = 0
    version: int = 0

    def evolve(self, **changes) -> "GameState":
        return replace(self, version=self.version + 1, **changes)

    def player(self, player_id: str) -> Optional[PlayerState]:
        for p in self.players:
            if p.player_id == player_id:
                return p
        return None

    def alive_players(self) -> Tuple[PlayerState, ...]:
        return tuple(p for p in self.players if p.alive)

    def with_player(self, player_id: str, **changes) -> Tuple[PlayerState, ...]:
        return tuple(replace(p, **changes) if p.player_id == player_id else p for p in self.players)

    def round_actions(self) -> Tuple[NightAction, ...]:
        return tuple(a for a in self.night_actions if a.round == self.round)

    def round_votes(self) -> Tuple[Vote, ...]:
        return tuple(v for v in self.votes if v.round == self.round)

    @property
    def game_over(self) -> bool:
        return self.phase == Phase.ENDED


@dataclass(slots=True)
class GameSettings:
    mode: SessionMode = SessionMode.TIMED_ROUND
    player_count: int = 6
    werewolf_count: int = 1
    include_roles: Tuple[Role, ...] = ()
    ai_player_count: int = 0
    ai_difficulty: Difficulty = Difficulty.MEDIUM
    focus_duration: int = 25
    break_duration: int = 5
    allow_chat: bool = True
    reveal_roles_on_death: bool = True
    metadata: Dict[str, object] = field(default_factory=dict)
