from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class CreateGameRequest(BaseModel):
    host_name: str = Field(min_length=1, max_length=30)
    player_count: int = Field(default=6, ge=4, le=30)
    ai_player_count: int = Field(default=0, ge=0, le=30)
    host_plays: bool = True
    seed: Optional[int] = None
    settings: Optional[Dict[str, Any]] = None


class CreateGameResponse(BaseModel):
    game_id: str
    host_id: Optional[str]
    player_count: int
    werewolf_count: int
    include_roles: List[str]
    warnings: List[str] = Field(default_factory=list)


class JoinGameRequest(BaseModel):
    name: str = Field(min_length=1, max_length=30)


class AddAIPlayerRequest(BaseModel):
    name: Optional[str] = Field(default=None, max_length=30)
    difficulty: Optional[str] = Field(default=None, pattern="^(easy|medium|hard)$")


class PlayerRef(BaseModel):
    game_id: str
    player_id: str


class LeaveGameRequest(BaseModel):
    player_id: str


class NightActionRequest(BaseModel):
    player_id: str
    target_id: Optional[str] = None


class VoteRequest(BaseModel):
    player_id: str
    target_id: Optional[str] = None


class AdvanceRequest(BaseModel):
    revenge_target_id: Optional[str] = None


class RunToEndRequest(BaseModel):
    max_steps: int = Field(default=200, ge=1, le=2000)


class HintRequest(BaseModel):
    player_id: str


class PlayerView(BaseModel):
    player_id: str
    name: str
    role: Optional[str] = None
    alive: bool
    is_ai: bool
    has_acted: bool
    has_voted: bool
    action_tokens: int


class PhaseInfoView(BaseModel):
    name: str
    description: str


class GameStateResponse(BaseModel):
    game_id: str
    phase: str
    phase_info: Optional[PhaseInfoView] = None
    round: int
    winner: str
    game_over: bool
    version: int
    players: List[PlayerView]
    killed_tonight: Optional[str] = None
    saved_tonight: Optional[str] = None
    eliminated_today: Optional[str] = None
    revenge_victim: Optional[str] = None
    win_description: Optional[str] = None
    winners: List[str] = Field(default_factory=list)


class NightOutcomeResponse(BaseModel):
    round: int
    killed_id: Optional[str] = None
    saved_id: Optional[str] = None
    protected_id: Optional[str] = None
    kill_votes: Dict[str, int] = Field(default_factory=dict)
    actions_processed: int = 0


class VoteTallyResponse(BaseModel):
    round: int
    results: Dict[str, int] = Field(default_factory=dict)
    abstentions: int = 0
    leader: Optional[str] = None
    is_tie: bool = False


class VoteBucketView(BaseModel):
    player_id: str
    vote_count: int
    voter_ids: List[str]


class InvestigationResponse(BaseModel):
    round: int
    target_id: str
    is_werewolf: bool


class TaskView(BaseModel):
    task_id: str
    game_id: str
    player_id: Optional[str] = None
    kind: str
    status: str
    model: str
    payload: Dict[str, Any] = Field(default_factory=dict)
    result: Optional[Dict[str, Any]] = None
    error: Optional[str] = None
    issued_phase: Optional[str] = None
    issued_round: Optional[int] = None
    discarded_reason: Optional[str] = None
    submitted: bool = False
    submit_error: Optional[str] = None
    created_at: str
    started_at: Optional[str] = None
    finished_at: Optional[str] = None


class RunToEndResponse(BaseModel):
    game_over: bool
    winner: str
    steps: int
    blocked_reason: Optional[str] = None
    metrics: Dict[str, Any] = Field(default_factory=dict)
    state: GameStateResponse


class ReplayResponse(BaseModel):
    record: Dict[str, Any]
