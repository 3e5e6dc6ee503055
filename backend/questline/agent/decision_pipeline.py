"""Turns a queued decision task into a result the game can use.

Every task ends ``completed`` with either a provider-backed or a fallback
result. A task is only marked ``failed`` when the fallback itself raised.
"""

from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from questline.agent.decision_parser import (
    ParseResult,
    Unparseable,
    parse_decision,
    validate_target,
)
from questline.agent.fallback_strategies import FallbackStrategies
from questline.agent.prompts import (
    DecisionContext,
    Investigation,
    NarrationContext,
    decision_system_prompt,
    decision_user_prompt,
    hint_system_prompt,
    hint_user_prompt,
    narration_system_prompt,
    narration_user_prompt,
)
from questline.agent.provider import ProviderError, ProviderNotConfigured, ReasoningProvider, _clip_text
from questline.agent.task_queue import DecisionTask, TaskKind, TaskStatus, TaskStore
from questline.core.models import GameState, Phase, Role
from questline.engine.night_actions import investigation_history
from questline.roles.skills import is_werewolf, legal_targets, skill_for

logger = logging.getLogger(__name__)
RAW_RESPONSE_MAX_CHARS = max(100, int(os.getenv("QUESTLINE_LLM_LOG_MAX_CHARS", "1024")))


class Provenance(str, Enum):
    PROVIDER = "provider"
    FALLBACK = "fallback"


@dataclass(slots=True)
class PipelineMetrics:
    total_calls: int = 0
    provider_calls: int = 0
    fallback_calls: int = 0
    error_calls: int = 0
    total_latency_ms: float = 0.0
    by_error_type: Dict[str, int] = field(default_factory=dict)

    def observe_success(self, latency_ms: float) -> None:
        self.total_calls += 1
        self.provider_calls += 1
        self.total_latency_ms += latency_ms

    def observe_error(self, error_name: str) -> None:
        self.total_calls += 1
        self.error_calls += 1
        self.by_error_type[error_name] = self.by_error_type.get(error_name, 0) + 1

    def observe_fallback(self) -> None:
        self.fallback_calls += 1

    def to_dict(self) -> dict:
        avg = 0.0 if self.provider_calls == 0 else self.total_latency_ms / self.provider_calls
        return {
            "total_calls": self.total_calls,
            "provider_calls": self.provider_calls,
            "fallback_calls": self.fallback_calls,
            "error_calls": self.error_calls,
            "avg_latency_ms": round(avg, 2),
            "by_error_type": dict(self.by_error_type),
        }


def build_decision_context(
    state: GameState,
    player_id: str,
    recent_messages: Optional[List[str]] = None,
) -> DecisionContext:
    """Knowledge visible to one seat: its own role, wolf allies, its own investigations."""
    player = state.player(player_id)
    if player is None:
        raise KeyError(f"player not found: {player_id}")

    role = player.role or Role.VILLAGER
    alive = state.alive_players()
    known_wolves = []
    if role == Role.WEREWOLF:
        known_wolves = [(p.player_id, p.name) for p in alive if is_werewolf(p) and p.player_id != player_id]

    investigations = []
    if role == Role.SEER:
        for result in investigation_history(state, player_id):
            target = state.player(result.target_id)
            investigations.append(
                Investigation(
                    player_id=result.target_id,
                    player_name=target.name if target else result.target_id,
                    is_werewolf=result.is_werewolf,
                )
            )

    return DecisionContext(
        player_id=player_id,
        player_name=player.name,
        role=role,
        difficulty=player.ai_difficulty,
        phase=state.phase,
        round=state.round,
        alive_players=[(p.player_id, p.name) for p in alive],
        candidates=[(p.player_id, p.name) for p in legal_targets(state, player_id)],
        known_werewolves=known_wolves,
        investigations=investigations,
        previous_eliminations=[p.name for p in state.players if not p.alive],
        recent_messages=list(recent_messages or []),
    )


class DecisionPipeline:
    def __init__(
        self,
        tasks: TaskStore,
        provider: Optional[ReasoningProvider] = None,
        fallback: Optional[FallbackStrategies] = None,
        narration_sink: Optional[Callable[[str, Dict[str, Any]], None]] = None,
    ) -> None:
        self.tasks = tasks
        self.provider = provider or ReasoningProvider()
        self.fallback = fallback or FallbackStrategies()
        self.metrics = PipelineMetrics()
        self._narration_sink = narration_sink

    async def process_task(self, task_id: str, context: Optional[DecisionContext] = None) -> DecisionTask:
        task = self.tasks.must_get(task_id)
        if task.status != TaskStatus.QUEUED:
            return task
        self.tasks.mark_running(task_id)

        try:
            result = await self._process_with_provider(task, context)
        except Exception as exc:  # noqa: BLE001
            reason = self._failure_reason(exc)
            if not isinstance(exc, ProviderNotConfigured):
                self.metrics.observe_error(type(exc).__name__)
                logger.warning("[Pipeline] task=%s kind=%s provider failed: %s", task_id, task.kind.value, reason)
            try:
                result = self._process_with_fallback(task, context)
            except Exception as fb_exc:  # noqa: BLE001
                logger.exception("[Pipeline] task=%s fallback failed", task_id)
                return self.tasks.fail(task_id, f"{reason} | fallback: {fb_exc}")
            result["fallback_reason"] = reason
            self.metrics.observe_fallback()

        completed = self.tasks.complete(task_id, result)
        if task.kind == TaskKind.NARRATION and self._narration_sink is not None:
            self._narration_sink(
                task.game_id,
                {
                    "task_id": task_id,
                    **result,
                    "phase": task.payload.get("phase"),
                    "round": task.payload.get("round"),
                },
            )
        return completed

    @staticmethod
    def _failure_reason(exc: Exception) -> str:
        if isinstance(exc, ProviderNotConfigured):
            return "provider_not_configured"
        if isinstance(exc, ProviderError) and exc.status_code is not None:
            return f"http_{exc.status_code}"
        return f"{type(exc).__name__}: {exc}"

    # ------------------------------------------------------------------
    # Provider path
    # ------------------------------------------------------------------

    async def _process_with_provider(self, task: DecisionTask, context: Optional[DecisionContext]) -> Dict[str, Any]:
        if not self.provider.configured:
            raise ProviderNotConfigured("reasoning provider not configured")

        if task.kind == TaskKind.NARRATION:
            ctx = NarrationContext.from_payload(task.payload)
            messages = [
                {"role": "system", "content": narration_system_prompt()},
                {"role": "user", "content": narration_user_prompt(ctx)},
            ]
        elif task.kind == TaskKind.HINT:
            payload = task.payload
            messages = [
                {"role": "system", "content": hint_system_prompt()},
                {
                    "role": "user",
                    "content": hint_user_prompt(
                        role=str(payload.get("role") or Role.VILLAGER.value),
                        phase=str(payload.get("phase") or Phase.NIGHT.value),
                        round_no=int(payload.get("round") or 1),
                        alive_count=int(payload.get("alive_count") or 0),
                    ),
                },
            ]
        else:
            if context is None:
                raise ValueError("Could not build game context for AI decision")
            messages = [
                {"role": "system", "content": decision_system_prompt(context.role, context.difficulty)},
                {"role": "user", "content": decision_user_prompt(context)},
            ]

        start = time.perf_counter()
        response = await self.provider.complete(task.kind, messages, model=task.model)
        self.metrics.observe_success((time.perf_counter() - start) * 1000)

        base = {
            "model": response.model,
            "tokens_used": response.tokens_used,
            "finish_reason": response.finish_reason,
            "provenance": Provenance.PROVIDER.value,
        }
        if task.kind != TaskKind.PLAYER_DECISION:
            content = response.content.strip()
            if not content:
                raise ValueError("empty provider content")
            return {"content": content, **base}

        decision = self._decision_from_parse(parse_decision(response.content), context)
        decision.update(
            model=response.model,
            tokens_used=response.tokens_used,
            finish_reason=response.finish_reason,
            raw_response=_clip_text(response.content, RAW_RESPONSE_MAX_CHARS),
        )
        return decision

    def _decision_from_parse(self, parsed: ParseResult, ctx: DecisionContext) -> Dict[str, Any]:
        legal_ids = ctx.candidate_ids
        abstain_allowed = ctx.phase in {Phase.DAY, Phase.VOTING}

        if isinstance(parsed, Unparseable):
            fb = self.fallback.decide(ctx)
            self.metrics.observe_fallback()
            logger.warning("[Pipeline] player=%s unparseable response, using fallback", ctx.player_id)
            return {
                "target_id": fb.target_id,
                "reasoning": f"Fallback: {fb.reasoning}",
                "parse_kind": parsed.kind,
                "fallback_reason": parsed.reason,
                "provenance": Provenance.FALLBACK.value,
            }

        target_id = validate_target(parsed.target_id, legal_ids)
        reasoning = parsed.reasoning
        result: Dict[str, Any] = {"parse_kind": parsed.kind, "provenance": Provenance.PROVIDER.value}

        if parsed.target_id is not None and target_id is None:
            fb = self.fallback.decide(ctx)
            target_id = fb.target_id
            reasoning = f"{reasoning} (target corrected: {fb.reasoning})"
            result["target_corrected"] = True
            result["rejected_target_id"] = parsed.target_id
        elif parsed.target_id is None and not abstain_allowed and skill_for(ctx.role).has_night_action:
            fb = self.fallback.decide(ctx)
            target_id = fb.target_id
            reasoning = f"{reasoning} (target filled: {fb.reasoning})"
            result["target_corrected"] = True

        result.update({"target_id": target_id, "reasoning": reasoning})
        return result

    # ------------------------------------------------------------------
    # Fallback path
    # ------------------------------------------------------------------

    def _process_with_fallback(self, task: DecisionTask, context: Optional[DecisionContext]) -> Dict[str, Any]:
        base = {"model": task.model, "tokens_used": 0, "provenance": Provenance.FALLBACK.value}
        payload = task.payload

        if task.kind == TaskKind.NARRATION:
            content = self.fallback.narration(
                str(payload.get("event") or "night_start"),
                round_no=payload.get("round"),
                eliminated_name=payload.get("eliminated_name"),
                winning_team=payload.get("winning_team"),
            )
            return {"content": content, **base}

        if task.kind == TaskKind.HINT:
            return {"content": self.fallback.hint(), **base}

        if context is None:
            return {"target_id": None, "reasoning": "No game context available", **base}

        fb = self.fallback.decide(context)
        return {"target_id": fb.target_id, "reasoning": fb.reasoning, "parse_kind": None, **base}
