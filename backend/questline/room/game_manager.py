from __future__ import annotations

import logging
import os
import random
import uuid
from dataclasses import asdict, dataclass, field
from threading import RLock
from typing import Any, Dict, List, Optional

from questline.agent.decision_pipeline import DecisionPipeline
from questline.agent.fallback_strategies import FallbackStrategies
from questline.agent.orchestrator import AIOrchestrator
from questline.agent.provider import ReasoningProvider
from questline.agent.task_queue import TaskStatus, TaskStore
from questline.config.config_validator import ConfigValidator
from questline.core.errors import GameNotFound, GameRuleError, RoleConfigError
from questline.core.game_config import settings_from_dict
from questline.core.models import Difficulty, GameState, Phase
from questline.engine.game_engine import GameEngine, PhaseChange
from questline.engine.win_conditions import game_stats, win_description, winning_players
from questline.storage.repository import InMemoryStore, SQLiteRepository

logger = logging.getLogger("uvicorn.error")
PROJECTED_TABLES = ("players", "night_actions", "votes", "events", "tasks")


@dataclass(slots=True)
class Game:
    game_id: str
    engine: GameEngine
    host_id: Optional[str]
    log: List[dict] = field(default_factory=list)
    pending_changes: List[PhaseChange] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    archived_record_id: Optional[int] = None


class GameManager:
    """Owns every live game and serializes all reads and writes to them."""

    def __init__(
        self,
        repository: Optional[SQLiteRepository] = None,
        store: Optional[InMemoryStore] = None,
        provider: Optional[ReasoningProvider] = None,
        fallback: Optional[FallbackStrategies] = None,
        max_concurrency: Optional[int] = None,
    ) -> None:
        self._games: Dict[str, Game] = {}
        self._lock = RLock()
        self.repository = repository or SQLiteRepository(os.getenv("QUESTLINE_DB_PATH", "./backend/data/questline.db"))
        self.store = store or InMemoryStore()
        self.tasks = TaskStore()
        self.pipeline = DecisionPipeline(
            self.tasks,
            provider=provider,
            fallback=fallback,
            narration_sink=self.append_narration,
        )
        self.orchestrator = AIOrchestrator(self, self.pipeline, max_concurrency=max_concurrency)

    def shutdown_cleanup(self) -> None:
        with self._lock:
            for game_id in list(self._games):
                for table in PROJECTED_TABLES:
                    self.store.delete_where(table, game_id=game_id)
            self._games.clear()

    # ------------------------------------------------------------------
    # Lobby
    # ------------------------------------------------------------------

    def create_game(
        self,
        host_name: str,
        player_count: int = 6,
        settings: Optional[Dict[str, Any]] = None,
        ai_player_count: int = 0,
        seed: Optional[int] = None,
        host_plays: bool = True,
    ) -> dict:
        overrides = dict(settings or {})
        overrides["ai_player_count"] = ai_player_count
        game_settings = settings_from_dict(player_count, overrides)
        result = ConfigValidator.validate_settings(game_settings)
        if not result.ok:
            raise RoleConfigError(result.errors)
        if host_plays and ai_player_count >= game_settings.player_count:
            raise GameRuleError("At least one seat must be left for the host")

        with self._lock:
            game_id = self._new_game_id()
            host_id = self._new_player_id() if host_plays else None
            engine = GameEngine(
                game_id=game_id,
                settings=game_settings,
                rng=random.Random(seed),
                event_sink=self._record_event,
            )
            game = Game(game_id=game_id, engine=engine, host_id=host_id, warnings=list(result.warnings))
            engine.register_hook("on_phase_change", game.pending_changes.append)
            if host_id:
                engine.add_player(host_id, host_name)
            for index in range(ai_player_count):
                engine.add_player(
                    self._new_player_id(),
                    f"AI Player {index + 1}",
                    is_ai=True,
                    ai_difficulty=game_settings.ai_difficulty,
                )
            self._games[game_id] = game
            self._project(game)
            logger.info(
                "[GameManager] created game_id=%s players=%s ai=%s",
                game_id,
                game_settings.player_count,
                ai_player_count,
            )
            return {
                "game_id": game_id,
                "host_id": host_id,
                "player_count": game_settings.player_count,
                "werewolf_count": game_settings.werewolf_count,
                "include_roles": [r.value for r in game_settings.include_roles],
                "warnings": list(result.warnings),
            }

    def join_game(self, game_id: str, name: str) -> dict:
        with self._lock:
            game = self.must_get_game(game_id)
            player_id = self._new_player_id()
            game.engine.add_player(player_id, name)
            self._project(game)
            return {"game_id": game_id, "player_id": player_id}

    def add_ai_player(self, game_id: str, name: Optional[str] = None, difficulty: Optional[str] = None) -> dict:
        with self._lock:
            game = self.must_get_game(game_id)
            count = sum(1 for p in game.engine.state.players if p.is_ai)
            player_id = self._new_player_id()
            game.engine.add_player(
                player_id,
                name or f"AI Player {count + 1}",
                is_ai=True,
                ai_difficulty=Difficulty(difficulty) if difficulty else None,
            )
            self._project(game)
            return {"game_id": game_id, "player_id": player_id}

    def leave_game(self, game_id: str, player_id: str) -> dict:
        with self._lock:
            game = self.must_get_game(game_id)
            game.engine.remove_player(player_id)
            self.store.delete("players", player_id)
            return {"game_id": game_id, "player_id": player_id, "left": True}

    def start_game(self, game_id: str) -> dict:
        with self._lock:
            game = self.must_get_game(game_id)
            game.engine.start_game()
            self._project(game)
            return game.engine.public_state()

    # ------------------------------------------------------------------
    # Rules entry points
    # ------------------------------------------------------------------

    def submit_night_action(self, game_id: str, player_id: str, target_id: Optional[str]) -> dict:
        with self._lock:
            game = self.must_get_game(game_id)
            game.engine.submit_night_action(player_id, target_id)
            self._project(game)
            return game.engine.public_state(viewer_id=player_id)

    def resolve_night_actions(self, game_id: str) -> dict:
        with self._lock:
            game = self.must_get_game(game_id)
            outcome = game.engine.resolve_night_actions()
            self._project(game)
            return asdict(outcome)

    def cast_vote(self, game_id: str, voter_id: str, target_id: Optional[str]) -> dict:
        with self._lock:
            game = self.must_get_game(game_id)
            game.engine.cast_vote(voter_id, target_id)
            self._project(game)
            return game.engine.public_state(viewer_id=voter_id)

    def tally_votes(self, game_id: str) -> dict:
        with self._lock:
            return asdict(self.must_get_game(game_id).engine.tally_votes())

    def advance_phase(self, game_id: str, revenge_target_id: Optional[str] = None) -> dict:
        with self._lock:
            game = self.must_get_game(game_id)
            before = game.engine.state.phase
            game.engine.advance_phase(revenge_target_id=revenge_target_id)
            self._project(game)
            after = game.engine.state
            if before != after.phase:
                logger.info(
                    "[GameManager] game_id=%s phase %s -> %s round=%s",
                    game_id,
                    before.value,
                    after.phase.value,
                    after.round,
                )
            self.archive_if_game_over(game_id)
            return game.engine.public_state()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_game(self, game_id: str) -> Optional[Game]:
        with self._lock:
            return self._games.get(game_id)

    def must_get_game(self, game_id: str) -> Game:
        game = self.get_game(game_id)
        if not game:
            raise GameNotFound(game_id)
        return game

    def snapshot(self, game_id: str) -> GameState:
        with self._lock:
            return self.must_get_game(game_id).engine.state

    def state(self, game_id: str, viewer_id: Optional[str] = None) -> dict:
        with self._lock:
            game = self.must_get_game(game_id)
            state = game.engine.public_state(viewer_id=viewer_id)
            current = game.engine.state
            if current.phase == Phase.ENDED:
                state["win_description"] = win_description(current.winner, current.players)
                state["winners"] = [p.player_id for p in winning_players(current.winner, current.players)]
            return state

    def investigation_result(self, game_id: str, seer_id: str) -> Optional[dict]:
        with self._lock:
            result = self.must_get_game(game_id).engine.investigation_result(seer_id)
            return asdict(result) if result else None

    def vote_distribution(self, game_id: str) -> List[dict]:
        with self._lock:
            return [asdict(bucket) for bucket in self.must_get_game(game_id).engine.vote_distribution()]

    def tasks_for_game(self, game_id: str, status: Optional[str] = None) -> List[dict]:
        self.must_get_game(game_id)
        wanted = TaskStatus(status) if status else None
        return [task.to_dict() for task in self.tasks.by_game(game_id, status=wanted)]

    def game_log(self, game_id: str) -> List[dict]:
        with self._lock:
            return list(self.must_get_game(game_id).log)

    def events(self, game_id: str, round_no: Optional[int] = None) -> List[dict]:
        self.must_get_game(game_id)
        if round_no is None:
            return self.store.query("events", game_id=game_id)
        return self.store.query("events", game_id=game_id, round=round_no)

    def pop_phase_changes(self, game_id: str) -> List[PhaseChange]:
        with self._lock:
            game = self.must_get_game(game_id)
            changes = list(game.pending_changes)
            game.pending_changes.clear()
            return changes

    def append_narration(self, game_id: str, result: Dict[str, Any]) -> None:
        with self._lock:
            game = self.get_game(game_id)
            if not game:
                return
            round_no = result.get("round")
            entry = {
                "type": "narration",
                "round": game.engine.state.round if round_no is None else round_no,
                "phase": result.get("phase") or game.engine.state.phase.value,
                "content": result.get("content", ""),
                "provenance": result.get("provenance"),
                "task_id": result.get("task_id"),
            }
            game.log.append(entry)
            game.engine._audit("narration", "narrator", dict(entry))

    def record_task_event(self, game_id: str, event_type: str, payload: dict) -> None:
        with self._lock:
            game = self.get_game(game_id)
            if game:
                game.engine._audit(event_type, "ai", payload)
            task = self.tasks.get(payload.get("task_id") or "")
            if task is not None:
                self.store.upsert("tasks", task.task_id, task.to_dict())

    def health_summary(self) -> dict:
        with self._lock:
            games = list(self._games.values())
        return {
            "games": len(games),
            "games_detail": {
                g.game_id: {
                    "players": len(g.engine.state.players),
                    "phase": g.engine.state.phase.value,
                    "round": g.engine.state.round,
                    "game_over": g.engine.state.game_over,
                }
                for g in games
            },
            "tasks_queued": len(self.tasks.by_status(TaskStatus.QUEUED)),
            "tasks_running": len(self.tasks.by_status(TaskStatus.RUNNING)),
            "ai_metrics": self.pipeline.metrics.to_dict(),
        }

    def replay_record(self, record_id: int) -> dict:
        record = self.repository.get_game_record(record_id)
        if not record:
            raise GameNotFound(f"record {record_id}")
        return record

    def archived_records(self, game_id: str) -> List[dict]:
        return self.repository.records_for_game(game_id)

    def archive_if_game_over(self, game_id: str) -> Optional[int]:
        with self._lock:
            game = self._games.get(game_id)
            if not game or not game.engine.state.game_over or game.archived_record_id is not None:
                return None
            state = game.engine.state
            game.archived_record_id = self.repository.save_finished_game(
                game_id=game_id,
                winner=state.winner.value,
                rounds=state.round,
                payload={
                    "events": list(game.engine.event_log),
                    "log": list(game.log),
                    "stats": asdict(game_stats(state.players)),
                    "ai_metrics": self.pipeline.metrics.to_dict(),
                    "players": [
                        {
                            "player_id": p.player_id,
                            "name": p.name,
                            "role": p.role.value if p.role else None,
                            "alive": p.alive,
                            "is_ai": p.is_ai,
                        }
                        for p in state.players
                    ],
                },
            )
            logger.info(
                "[GameManager] archived game_id=%s winner=%s record_id=%s",
                game_id,
                state.winner.value,
                game.archived_record_id,
            )
            return game.archived_record_id

    # ------------------------------------------------------------------
    # Store projection
    # ------------------------------------------------------------------

    def _record_event(self, event: Dict[str, Any]) -> None:
        self.store.upsert("events", f"{event['game_id']}:{event['seq']}", event)

    def _project(self, game: Game) -> None:
        state = game.engine.state
        for p in state.players:
            self.store.upsert(
                "players",
                p.player_id,
                {
                    "game_id": state.game_id,
                    "name": p.name,
                    "role": p.role.value if p.role else None,
                    "alive": p.alive,
                    "action_tokens": p.action_tokens,
                    "has_acted": p.has_acted,
                    "has_voted": p.has_voted,
                    "is_ai": p.is_ai,
                    "ai_difficulty": p.ai_difficulty.value,
                },
            )
        for a in state.round_actions():
            self.store.upsert(
                "night_actions",
                f"{state.game_id}:{a.actor_id}:{a.round}",
                {
                    "game_id": state.game_id,
                    "actor_id": a.actor_id,
                    "target_id": a.target_id,
                    "kind": a.kind.value,
                    "round": a.round,
                    "seq": a.seq,
                },
            )
        for v in state.round_votes():
            self.store.upsert(
                "votes",
                f"{state.game_id}:{v.voter_id}:{v.round}",
                {
                    "game_id": state.game_id,
                    "voter_id": v.voter_id,
                    "target_id": v.target_id,
                    "round": v.round,
                    "seq": v.seq,
                },
            )

    @staticmethod
    def _new_game_id() -> str:
        return uuid.uuid4().hex[:8]

    @staticmethod
    def _new_player_id() -> str:
        return uuid.uuid4().hex
