import asyncio

from questline.agent.decision_pipeline import DecisionPipeline, build_decision_context
from questline.agent.fallback_strategies import FallbackStrategies
from questline.agent.provider import ProviderConfig, ProviderError, ProviderResponse, ReasoningProvider
from questline.agent.task_queue import TaskKind, TaskStatus, TaskStore
from questline.core.models import Difficulty, GameState, Phase, PlayerState, Role


class _ScriptedProvider(ReasoningProvider):
    def __init__(self, content: str) -> None:
        super().__init__(ProviderConfig(api_key="test"))
        self.content = content
        self.calls = []

    async def complete(self, kind, messages, model=None):
        self.calls.append((kind, messages, model))
        return ProviderResponse(content=self.content, model=model or "fake", tokens_used=7, finish_reason="stop")


class _FailingProvider(ReasoningProvider):
    def __init__(self) -> None:
        super().__init__(ProviderConfig(api_key="test"))

    async def complete(self, kind, messages, model=None):
        raise ProviderError("upstream unavailable", status_code=503)


class _BrokenFallback(FallbackStrategies):
    def narration(self, event, round_no=None, eliminated_name=None, winning_team=None):
        raise RuntimeError("template store offline")


def _disabled_provider() -> ReasoningProvider:
    return ReasoningProvider(ProviderConfig(api_key=""))


def _night_state(phase: Phase = Phase.NIGHT) -> GameState:
    roles = [
        ("p1", Role.WEREWOLF),
        ("p2", Role.WEREWOLF),
        ("p3", Role.SEER),
        ("p4", Role.DOCTOR),
        ("p5", Role.VILLAGER),
        ("p6", Role.VILLAGER),
    ]
    players = tuple(
        PlayerState(player_id=pid, name=pid.upper(), role=role, is_ai=True, ai_difficulty=Difficulty.HARD)
        for pid, role in roles
    )
    return GameState(game_id="g_pipe", phase=phase, round=1, players=players)


def _run(pipeline: DecisionPipeline, state: GameState, player_id: str):
    task = pipeline.tasks.queue(
        "g_pipe",
        TaskKind.PLAYER_DECISION,
        "decision-model",
        player_id=player_id,
        issued_phase=state.phase.value,
        issued_round=state.round,
    )
    return asyncio.run(pipeline.process_task(task.task_id, build_decision_context(state, player_id)))


def test_disabled_provider_uses_fallback_with_legal_target() -> None:
    pipeline = DecisionPipeline(TaskStore(), provider=_disabled_provider())
    task = _run(pipeline, _night_state(), "p1")

    assert task.status == TaskStatus.COMPLETED
    assert task.result["provenance"] == "fallback"
    assert task.result["fallback_reason"] == "provider_not_configured"
    # hard werewolf: first living non-wolf, never itself
    assert task.result["target_id"] == "p3"
    assert pipeline.metrics.fallback_calls == 1
    assert pipeline.metrics.error_calls == 0


def test_provider_decision_is_used() -> None:
    provider = _ScriptedProvider('{"targetId": "p5", "reasoning": "easy prey"}')
    pipeline = DecisionPipeline(TaskStore(), provider=provider)
    task = _run(pipeline, _night_state(), "p1")

    assert task.result["provenance"] == "provider"
    assert task.result["parse_kind"] == "structured"
    assert task.result["target_id"] == "p5"
    assert task.result["reasoning"] == "easy prey"
    assert task.result["tokens_used"] == 7
    assert provider.calls[0][0] == TaskKind.PLAYER_DECISION
    assert provider.calls[0][2] == "decision-model"


def test_illegal_target_is_corrected() -> None:
    provider = _ScriptedProvider('{"targetId": "p2", "reasoning": "bite my ally"}')
    pipeline = DecisionPipeline(TaskStore(), provider=provider)
    task = _run(pipeline, _night_state(), "p1")

    assert task.result["target_corrected"] is True
    assert task.result["rejected_target_id"] == "p2"
    assert task.result["target_id"] == "p3"
    assert "(target corrected:" in task.result["reasoning"]


def test_missing_night_target_is_filled() -> None:
    provider = _ScriptedProvider('{"targetId": null, "reasoning": "skip"}')
    pipeline = DecisionPipeline(TaskStore(), provider=provider)
    task = _run(pipeline, _night_state(), "p3")

    assert task.result["target_corrected"] is True
    assert task.result["target_id"] in {"p1", "p2", "p4", "p5", "p6"}
    assert "target filled" in task.result["reasoning"]


def test_abstain_is_kept_during_voting() -> None:
    provider = _ScriptedProvider('{"targetId": null, "reasoning": "not sure"}')
    pipeline = DecisionPipeline(TaskStore(), provider=provider)
    task = _run(pipeline, _night_state(Phase.VOTING), "p5")

    assert task.result["target_id"] is None
    assert "target_corrected" not in task.result


def test_heuristic_and_unparseable_responses() -> None:
    pipeline = DecisionPipeline(TaskStore(), provider=_ScriptedProvider("I will vote for p2 today"))
    task = _run(pipeline, _night_state(Phase.VOTING), "p5")
    assert task.result["parse_kind"] == "heuristic"
    assert task.result["target_id"] == "p2"

    pipeline = DecisionPipeline(TaskStore(), provider=_ScriptedProvider("hmm, hard to say"))
    task = _run(pipeline, _night_state(Phase.VOTING), "p5")
    assert task.result["parse_kind"] == "unparseable"
    assert task.result["provenance"] == "fallback"
    assert task.result["reasoning"].startswith("Fallback:")
    assert task.result["raw_response"] == "hmm, hard to say"


def test_provider_failure_falls_back() -> None:
    pipeline = DecisionPipeline(TaskStore(), provider=_FailingProvider())
    task = _run(pipeline, _night_state(), "p4")

    assert task.status == TaskStatus.COMPLETED
    assert task.result["provenance"] == "fallback"
    assert task.result["fallback_reason"] == "http_503"
    assert pipeline.metrics.to_dict()["by_error_type"] == {"ProviderError": 1}


def test_narration_reaches_sink() -> None:
    received = []
    tasks = TaskStore()
    pipeline = DecisionPipeline(
        tasks,
        provider=_disabled_provider(),
        narration_sink=lambda game_id, result: received.append((game_id, result)),
    )
    task = tasks.queue("g_pipe", TaskKind.NARRATION, "narration-model", payload={"event": "game_start", "phase": "night", "round": 1})
    done = asyncio.run(pipeline.process_task(task.task_id))

    assert done.status == TaskStatus.COMPLETED
    assert "first night" in done.result["content"]
    assert received[0][0] == "g_pipe"
    assert received[0][1]["task_id"] == task.task_id
    assert (received[0][1]["phase"], received[0][1]["round"]) == ("night", 1)


def test_provider_narration_and_hint() -> None:
    tasks = TaskStore()
    pipeline = DecisionPipeline(tasks, provider=_ScriptedProvider("  The moon rises.  "))
    narration = tasks.queue("g_pipe", TaskKind.NARRATION, "n", payload={"event": "night_start", "round": 2})
    hint = tasks.queue("g_pipe", TaskKind.HINT, "h", payload={"role": "seer", "phase": "day", "round": 2})

    assert asyncio.run(pipeline.process_task(narration.task_id)).result["content"] == "The moon rises."
    assert asyncio.run(pipeline.process_task(hint.task_id)).result["provenance"] == "provider"


def test_task_fails_only_when_fallback_breaks() -> None:
    tasks = TaskStore()
    pipeline = DecisionPipeline(tasks, provider=_disabled_provider(), fallback=_BrokenFallback())
    task = tasks.queue("g_pipe", TaskKind.NARRATION, "n", payload={"event": "night_start"})
    done = asyncio.run(pipeline.process_task(task.task_id))

    assert done.status == TaskStatus.FAILED
    assert "provider_not_configured" in done.error
    assert "template store offline" in done.error


def test_non_queued_task_is_returned_untouched() -> None:
    tasks = TaskStore()
    pipeline = DecisionPipeline(tasks, provider=_disabled_provider())
    task = tasks.queue("g_pipe", TaskKind.HINT, "h")
    asyncio.run(pipeline.process_task(task.task_id))
    again = asyncio.run(pipeline.process_task(task.task_id))

    assert again.status == TaskStatus.COMPLETED
    assert pipeline.metrics.fallback_calls == 1


def test_context_only_reveals_own_knowledge() -> None:
    state = _night_state()
    wolf = build_decision_context(state, "p1")
    villager = build_decision_context(state, "p5")

    assert wolf.known_werewolves == [("p2", "P2")]
    assert "p2" not in wolf.candidate_ids
    assert villager.known_werewolves == []
    assert villager.investigations == []
