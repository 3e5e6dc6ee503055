import json
import random

from questline.agent.fallback_strategies import FALLBACK_HINTS, FallbackStrategies
from questline.agent.prompts import DecisionContext, Investigation
from questline.core.models import Difficulty, Phase, Role


class _FixedRandom(random.Random):
    def __init__(self, value: float) -> None:
        super().__init__(0)
        self.value = value

    def random(self) -> float:
        return self.value


def _ctx(role: Role, phase: Phase, difficulty: Difficulty = Difficulty.MEDIUM, **kwargs) -> DecisionContext:
    candidates = kwargs.pop("candidates", [("p2", "Bea"), ("p3", "Cal"), ("p4", "Dee"), ("p5", "Eli")])
    return DecisionContext(
        player_id="p1",
        player_name="Ann",
        role=role,
        difficulty=difficulty,
        phase=phase,
        round=1,
        candidates=candidates,
        **kwargs,
    )


def test_empty_pool_yields_no_target() -> None:
    decision = FallbackStrategies().decide(_ctx(Role.SEER, Phase.NIGHT, candidates=[]))
    assert decision.target_id is None
    assert decision.reasoning == "No valid targets available"


def test_werewolf_never_picks_allies() -> None:
    for seed in range(20):
        fb = FallbackStrategies(random.Random(seed))
        ctx = _ctx(
            Role.WEREWOLF,
            Phase.VOTING,
            Difficulty.EASY,
            known_werewolves=[("p2", "Bea"), ("p3", "Cal")],
        )
        assert fb.decide(ctx).target_id in {"p4", "p5"}


def test_day_vote_targets_confirmed_wolf() -> None:
    ctx = _ctx(
        Role.SEER,
        Phase.DAY,
        investigations=[Investigation("p3", "Cal", False), Investigation("p4", "Dee", True)],
    )
    decision = FallbackStrategies().decide(ctx)
    assert decision.target_id == "p4"
    assert "confirmed werewolf" in decision.reasoning


def test_doctor_self_protection_roll() -> None:
    pool = [("p2", "Bea"), ("p1", "Ann"), ("p3", "Cal")]
    saved = FallbackStrategies(_FixedRandom(0.0)).decide(
        _ctx(Role.DOCTOR, Phase.NIGHT, Difficulty.HARD, candidates=pool)
    )
    assert saved.target_id == "p1"

    # 0.15 is under the easy chance but over the hard one
    easy = FallbackStrategies(_FixedRandom(0.15)).decide(
        _ctx(Role.DOCTOR, Phase.NIGHT, Difficulty.EASY, candidates=pool)
    )
    hard = FallbackStrategies(_FixedRandom(0.15)).decide(
        _ctx(Role.DOCTOR, Phase.NIGHT, Difficulty.HARD, candidates=pool)
    )
    assert easy.target_id == "p1"
    assert hard.target_id == "p2"
    assert "hard" in hard.reasoning


def test_medium_picks_from_front_half() -> None:
    for seed in range(20):
        decision = FallbackStrategies(random.Random(seed)).decide(_ctx(Role.VILLAGER, Phase.VOTING))
        assert decision.target_id in {"p2", "p3"}


def test_hard_prefers_uninvestigated() -> None:
    ctx = _ctx(
        Role.SEER,
        Phase.NIGHT,
        Difficulty.HARD,
        investigations=[Investigation("p2", "Bea", False)],
    )
    decision = FallbackStrategies().decide(ctx)
    assert decision.target_id == "p3"
    assert "uninvestigated" in decision.reasoning


def test_narration_lines() -> None:
    fb = FallbackStrategies()
    assert "Cal" in fb.narration("night_end", round_no=2, eliminated_name="Cal")
    assert "untouched" in fb.narration("night_end", round_no=2)
    assert "unmasked" in fb.narration("game_end", winning_team="villagers")
    assert "claimed" in fb.narration("game_end", winning_team="werewolves")
    assert fb.narration("unknown_event") == "The game unfolds as tensions rise in the village."


def test_narration_templates_override(tmp_path) -> None:
    path = tmp_path / "lines.json"
    path.write_text(json.dumps({"night_start": "Night {round} falls again."}), encoding="utf-8")

    fb = FallbackStrategies()
    fb.load_templates(str(path))
    fb.load_templates(str(tmp_path / "missing.json"))

    assert fb.narration("night_start", round_no=3) == "Night 3 falls again."
    assert "untouched" in fb.narration("night_end")


def test_hint_comes_from_pool() -> None:
    assert FallbackStrategies(random.Random(1)).hint() in FALLBACK_HINTS
