from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, HTTPException

from questline.api.deps import game_manager
from questline.core.errors import GameNotFound
from questline.schemas import (
    AddAIPlayerRequest,
    AdvanceRequest,
    CreateGameRequest,
    CreateGameResponse,
    GameStateResponse,
    HintRequest,
    InvestigationResponse,
    JoinGameRequest,
    LeaveGameRequest,
    NightActionRequest,
    NightOutcomeResponse,
    PlayerRef,
    ReplayResponse,
    RunToEndRequest,
    RunToEndResponse,
    TaskView,
    VoteBucketView,
    VoteRequest,
    VoteTallyResponse,
)

router = APIRouter(prefix="/api", tags=["werewolf"])


def _not_found(exc: GameNotFound) -> HTTPException:
    return HTTPException(status_code=404, detail=f"game not found: {exc.args[0] if exc.args else ''}")


@router.post("/games", response_model=CreateGameResponse)
def create_game(req: CreateGameRequest) -> CreateGameResponse:
    try:
        result = game_manager.create_game(
            req.host_name,
            player_count=req.player_count,
            settings=req.settings,
            ai_player_count=req.ai_player_count,
            seed=req.seed,
            host_plays=req.host_plays,
        )
        return CreateGameResponse(**result)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/games/{game_id}/join", response_model=PlayerRef)
def join_game(game_id: str, req: JoinGameRequest) -> PlayerRef:
    try:
        return PlayerRef(**game_manager.join_game(game_id, req.name))
    except GameNotFound as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/games/{game_id}/ai-players", response_model=PlayerRef)
def add_ai_player(game_id: str, req: AddAIPlayerRequest) -> PlayerRef:
    try:
        return PlayerRef(**game_manager.add_ai_player(game_id, name=req.name, difficulty=req.difficulty))
    except GameNotFound as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/games/{game_id}/leave", response_model=dict)
def leave_game(game_id: str, req: LeaveGameRequest) -> dict:
    try:
        return game_manager.leave_game(game_id, req.player_id)
    except GameNotFound as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/games/{game_id}/start", response_model=GameStateResponse)
async def start_game(game_id: str) -> GameStateResponse:
    try:
        return GameStateResponse(**await game_manager.orchestrator.start(game_id))
    except GameNotFound as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/games/{game_id}", response_model=GameStateResponse)
def game_state(game_id: str, viewer_id: Optional[str] = None) -> GameStateResponse:
    try:
        return GameStateResponse(**game_manager.state(game_id, viewer_id=viewer_id))
    except GameNotFound as exc:
        raise _not_found(exc) from exc


@router.post("/games/{game_id}/night-action", response_model=GameStateResponse)
def night_action(game_id: str, req: NightActionRequest) -> GameStateResponse:
    try:
        return GameStateResponse(**game_manager.submit_night_action(game_id, req.player_id, req.target_id))
    except GameNotFound as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/games/{game_id}/resolve-night", response_model=NightOutcomeResponse)
def resolve_night(game_id: str) -> NightOutcomeResponse:
    try:
        return NightOutcomeResponse(**game_manager.resolve_night_actions(game_id))
    except GameNotFound as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/games/{game_id}/vote", response_model=GameStateResponse)
def cast_vote(game_id: str, req: VoteRequest) -> GameStateResponse:
    try:
        return GameStateResponse(**game_manager.cast_vote(game_id, req.player_id, req.target_id))
    except GameNotFound as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/games/{game_id}/tally", response_model=VoteTallyResponse)
def tally(game_id: str) -> VoteTallyResponse:
    try:
        return VoteTallyResponse(**game_manager.tally_votes(game_id))
    except GameNotFound as exc:
        raise _not_found(exc) from exc


@router.get("/games/{game_id}/vote-distribution", response_model=List[VoteBucketView])
def vote_distribution(game_id: str) -> List[VoteBucketView]:
    try:
        return [VoteBucketView(**b) for b in game_manager.vote_distribution(game_id)]
    except GameNotFound as exc:
        raise _not_found(exc) from exc


@router.post("/games/{game_id}/advance", response_model=GameStateResponse)
async def advance(game_id: str, req: Optional[AdvanceRequest] = None) -> GameStateResponse:
    revenge = req.revenge_target_id if req else None
    try:
        return GameStateResponse(**await game_manager.orchestrator.advance(game_id, revenge_target_id=revenge))
    except GameNotFound as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/games/{game_id}/investigation", response_model=Optional[InvestigationResponse])
def investigation(game_id: str, seer_id: str) -> Optional[InvestigationResponse]:
    try:
        result = game_manager.investigation_result(game_id, seer_id)
        return InvestigationResponse(**result) if result else None
    except GameNotFound as exc:
        raise _not_found(exc) from exc


@router.get("/games/{game_id}/tasks", response_model=List[TaskView])
def tasks(game_id: str, status: Optional[str] = None) -> List[TaskView]:
    try:
        return [TaskView(**t) for t in game_manager.tasks_for_game(game_id, status=status)]
    except GameNotFound as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/games/{game_id}/log", response_model=List[dict])
def game_log(game_id: str) -> List[dict]:
    try:
        return game_manager.game_log(game_id)
    except GameNotFound as exc:
        raise _not_found(exc) from exc


@router.get("/games/{game_id}/events", response_model=List[dict])
def game_events(game_id: str, round: Optional[int] = None) -> List[dict]:
    try:
        return game_manager.events(game_id, round_no=round)
    except GameNotFound as exc:
        raise _not_found(exc) from exc


@router.post("/games/{game_id}/hint", response_model=TaskView)
async def request_hint(game_id: str, req: HintRequest) -> TaskView:
    try:
        task = await game_manager.orchestrator.request_hint(game_id, req.player_id)
        return TaskView(**task.to_dict())
    except GameNotFound as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.post("/games/{game_id}/run-to-end", response_model=RunToEndResponse)
async def run_to_end(game_id: str, req: RunToEndRequest) -> RunToEndResponse:
    try:
        result = await game_manager.orchestrator.run_to_game_over(game_id, max_steps=req.max_steps)
        return RunToEndResponse(**result, state=GameStateResponse(**game_manager.state(game_id)))
    except GameNotFound as exc:
        raise _not_found(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@router.get("/replay/{record_id}", response_model=ReplayResponse)
def replay_record(record_id: int) -> ReplayResponse:
    try:
        return ReplayResponse(record=game_manager.replay_record(record_id))
    except GameNotFound as exc:
        raise HTTPException(status_code=404, detail="record not found") from exc


@router.get("/games/{game_id}/records", response_model=List[ReplayResponse])
def game_records(game_id: str) -> List[ReplayResponse]:
    return [ReplayResponse(record=record) for record in game_manager.archived_records(game_id)]
