"""Drives AI seats and narration off phase transitions.

Decisions are submitted through the same GameManager entry points a human
client uses, so every AI move passes the rules engine's validation.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import TYPE_CHECKING, List, Optional, Set, Tuple

from questline.agent.decision_pipeline import DecisionPipeline, build_decision_context
from questline.agent.prompts import NarrationContext
from questline.agent.task_queue import DecisionTask, TaskKind, TaskStatus
from questline.core.errors import GameRuleError, PhaseTransitionBlocked
from questline.core.models import GameState, Phase, PlayerState, Winner
from questline.engine.game_engine import PhaseChange
from questline.engine.states import can_transition
from questline.engine.voting import tally_votes
from questline.roles.skills import is_werewolf, skill_for

if TYPE_CHECKING:
    from questline.room.game_manager import GameManager

logger = logging.getLogger("uvicorn.error")
AI_MAX_CONCURRENCY = max(1, int(os.getenv("QUESTLINE_AI_MAX_CONCURRENCY", "4")))


def narration_event(change: PhaseChange) -> Optional[str]:
    state = change.state
    if state.phase == Phase.NIGHT:
        return "game_start" if state.round <= 1 else "night_start"
    if state.phase == Phase.DAY:
        return "night_end"
    if state.phase == Phase.VOTING:
        return "voting_start"
    if state.phase == Phase.RESOLUTION:
        return "elimination" if state.eliminated_today else "no_elimination"
    if state.phase == Phase.ENDED:
        return "game_end"
    return None


def narration_context(change: PhaseChange, event: str) -> NarrationContext:
    state = change.state
    alive = state.alive_players()
    eliminated_id = None
    if state.phase == Phase.DAY:
        eliminated_id = state.killed_tonight
    elif state.phase in {Phase.RESOLUTION, Phase.ENDED}:
        eliminated_id = state.eliminated_today
    eliminated = state.player(eliminated_id) if eliminated_id else None
    return NarrationContext(
        phase=state.phase.value,
        round=state.round,
        event=event,
        alive_count=len(alive),
        werewolf_count=sum(1 for p in alive if is_werewolf(p)),
        player_names=[p.name for p in state.players],
        eliminated_name=eliminated.name if eliminated else None,
        winning_team=state.winner.value if state.winner != Winner.NONE else None,
    )


def seats_to_act(state: GameState) -> List[PlayerState]:
    """AI seats the current phase is still waiting on."""
    seats = []
    for p in state.alive_players():
        if not p.is_ai:
            continue
        if state.phase == Phase.NIGHT:
            if skill_for(p.role).has_night_action and not p.has_acted:
                seats.append(p)
        elif state.phase in {Phase.DAY, Phase.VOTING}:
            if not p.has_voted:
                seats.append(p)
    return seats


class AIOrchestrator:
    def __init__(
        self,
        manager: "GameManager",
        pipeline: DecisionPipeline,
        max_concurrency: Optional[int] = None,
    ) -> None:
        self.manager = manager
        self.pipeline = pipeline
        self.max_concurrency = max(1, max_concurrency or AI_MAX_CONCURRENCY)
        # (game_id, player_id, phase, round) of decisions awaiting the provider
        self._in_flight: Set[Tuple[str, str, str, int]] = set()

    # ------------------------------------------------------------------
    # Phase reactions
    # ------------------------------------------------------------------

    async def handle_phase_changes(self, game_id: str) -> dict:
        narrations: List[DecisionTask] = []
        for change in self.manager.pop_phase_changes(game_id):
            task = await self.narrate(game_id, change)
            if task is not None:
                narrations.append(task)
        decisions = await self.run_decisions(game_id)
        return {
            "narrations": [t.task_id for t in narrations],
            "decisions": [t.task_id for t in decisions],
        }

    async def narrate(self, game_id: str, change: PhaseChange) -> Optional[DecisionTask]:
        event = narration_event(change)
        if event is None:
            return None
        ctx = narration_context(change, event)
        task = self._queue(game_id, TaskKind.NARRATION, change.state, payload=ctx.to_payload())
        try:
            return await self._process(task)
        except Exception:  # noqa: BLE001
            logger.exception("[Orchestrator] narration failed game_id=%s event=%s", game_id, event)
            return self.pipeline.tasks.get(task.task_id)

    async def run_decisions(self, game_id: str) -> List[DecisionTask]:
        state = self.manager.snapshot(game_id)
        seats = []
        for player in seats_to_act(state):
            key = (game_id, player.player_id, state.phase.value, state.round)
            if key in self._in_flight:
                logger.info("[Orchestrator] decision already in flight game_id=%s player=%s", game_id, player.player_id)
                continue
            self._in_flight.add(key)
            seats.append((player, key))
        if not seats:
            return []

        sem = asyncio.Semaphore(self.max_concurrency)

        async def _one(player: PlayerState, key: Tuple[str, str, str, int]) -> DecisionTask:
            try:
                async with sem:
                    context = build_decision_context(state, player.player_id)
                    task = self._queue(
                        game_id,
                        TaskKind.PLAYER_DECISION,
                        state,
                        player_id=player.player_id,
                        payload={"phase": state.phase.value, "round": state.round, "role": context.role.value},
                    )
                    task = await self._process(task, context)
                    self.submit_decision(game_id, task)
                    return task
            finally:
                self._in_flight.discard(key)

        return list(await asyncio.gather(*[_one(p, key) for p, key in seats]))

    def submit_decision(self, game_id: str, task: DecisionTask) -> bool:
        """Apply a completed decision, unless the game has moved on since it was issued."""
        if task.status != TaskStatus.COMPLETED or not task.player_id:
            return False

        state = self.manager.snapshot(game_id)
        if task.issued_phase != state.phase.value or task.issued_round != state.round:
            logger.warning(
                "[Orchestrator] discard stale decision game_id=%s player=%s issued=%s/%s now=%s/%s",
                game_id,
                task.player_id,
                task.issued_phase,
                task.issued_round,
                state.phase.value,
                state.round,
            )
            self.pipeline.tasks.annotate(task.task_id, discarded_reason="stale")
            return False

        target_id = (task.result or {}).get("target_id")
        try:
            if state.phase == Phase.NIGHT:
                if not target_id:
                    logger.warning("[Orchestrator] no night target game_id=%s player=%s", game_id, task.player_id)
                    self.pipeline.tasks.annotate(task.task_id, discarded_reason="no_target")
                    return False
                self.manager.submit_night_action(game_id, task.player_id, target_id)
            else:
                self.manager.cast_vote(game_id, task.player_id, target_id)
        except GameRuleError as exc:
            logger.warning(
                "[Orchestrator] submission rejected game_id=%s player=%s: %s",
                game_id,
                task.player_id,
                exc,
            )
            self.pipeline.tasks.annotate(task.task_id, submit_error=str(exc))
            return False

        self.pipeline.tasks.annotate(task.task_id, submitted=True)
        return True

    # ------------------------------------------------------------------
    # Supplementary flows
    # ------------------------------------------------------------------

    async def choose_revenge(self, game_id: str) -> Optional[DecisionTask]:
        """Pick a revenge target when the voting leader is an AI hunter.

        Returns the completed decision task, whose result carries `target_id`. The task is
        only marked submitted once the vote resolution that consumes it has been applied.
        """
        state = self.manager.snapshot(game_id)
        if state.phase != Phase.VOTING or not can_transition(state).can_transition:
            return None
        tally = tally_votes(state)
        if not tally.leader or tally.is_tie:
            return None
        hunter = state.player(tally.leader)
        if hunter is None or not hunter.is_ai or not skill_for(hunter.role).has_revenge:
            return None

        context = build_decision_context(state, hunter.player_id)
        task = self._queue(
            game_id,
            TaskKind.PLAYER_DECISION,
            state,
            player_id=hunter.player_id,
            payload={"phase": state.phase.value, "round": state.round, "role": context.role.value, "revenge": True},
        )
        task = await self._process(task, context)
        if task.status != TaskStatus.COMPLETED:
            return None
        target_id = (task.result or {}).get("target_id")
        if not target_id or target_id == hunter.player_id:
            self.pipeline.tasks.annotate(task.task_id, discarded_reason="no_target")
            return None
        return task

    async def request_hint(self, game_id: str, player_id: str) -> DecisionTask:
        state = self.manager.snapshot(game_id)
        player = state.player(player_id)
        if player is None:
            raise GameRuleError("player not found")
        task = self._queue(
            game_id,
            TaskKind.HINT,
            state,
            player_id=player_id,
            payload={
                "role": player.role.value if player.role else "villager",
                "phase": state.phase.value,
                "round": state.round,
                "alive_count": len(state.alive_players()),
            },
        )
        return await self._process(task)

    async def start(self, game_id: str) -> dict:
        self.manager.start_game(game_id)
        await self.handle_phase_changes(game_id)
        return self.manager.state(game_id)

    async def advance(self, game_id: str, revenge_target_id: Optional[str] = None) -> dict:
        revenge_task = None
        if revenge_target_id is None:
            revenge_task = await self.choose_revenge(game_id)
            if revenge_task is not None:
                revenge_target_id = revenge_task.result["target_id"]
        self.manager.advance_phase(game_id, revenge_target_id=revenge_target_id)
        if revenge_task is not None:
            self.pipeline.tasks.annotate(revenge_task.task_id, submitted=True)
        await self.handle_phase_changes(game_id)
        return self.manager.state(game_id)

    async def run_to_game_over(self, game_id: str, max_steps: int = 200) -> dict:
        steps = 0
        blocked_reason: Optional[str] = None
        if self.manager.snapshot(game_id).phase == Phase.SETUP:
            await self.start(game_id)
            steps += 1
        while not self.manager.snapshot(game_id).game_over and steps < max_steps:
            try:
                await self.advance(game_id)
            except PhaseTransitionBlocked as exc:
                await self.run_decisions(game_id)
                try:
                    await self.advance(game_id)
                except PhaseTransitionBlocked as again:
                    blocked_reason = str(again)
                    logger.info("[Orchestrator] game_id=%s waiting: %s", game_id, exc)
                    break
            steps += 1
        state = self.manager.snapshot(game_id)
        return {
            "game_over": state.game_over,
            "winner": state.winner.value,
            "steps": steps,
            "blocked_reason": blocked_reason,
            "metrics": self.pipeline.metrics.to_dict(),
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _queue(
        self,
        game_id: str,
        kind: TaskKind,
        state: GameState,
        player_id: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> DecisionTask:
        task = self.pipeline.tasks.queue(
            game_id=game_id,
            kind=kind,
            model=self.pipeline.provider.config.model_for(kind),
            player_id=player_id,
            payload=payload,
            issued_phase=state.phase.value,
            issued_round=state.round,
        )
        self.manager.record_task_event(
            game_id,
            "ai_task_queued",
            {"task_id": task.task_id, "task_type": kind.value, "player_id": player_id},
        )
        return task

    async def _process(self, task: DecisionTask, context=None) -> DecisionTask:
        done = await self.pipeline.process_task(task.task_id, context)
        event_type = "ai_task_completed" if done.status == TaskStatus.COMPLETED else "ai_task_failed"
        payload = {"task_id": done.task_id, "task_type": done.kind.value, "player_id": done.player_id}
        if done.result:
            payload["provenance"] = done.result.get("provenance")
        if done.error:
            payload["error"] = done.error
        self.manager.record_task_event(task.game_id, event_type, payload)
        return done
