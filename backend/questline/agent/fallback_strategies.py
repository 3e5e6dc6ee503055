from __future__ import annotations

import json
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

from questline.agent.prompts import DecisionContext
from questline.core.models import Difficulty, Phase, Role

DOCTOR_SELF_PROTECT_CHANCE: Dict[Difficulty, float] = {
    Difficulty.EASY: 0.3,
    Difficulty.MEDIUM: 0.2,
    Difficulty.HARD: 0.1,
}

FALLBACK_HINTS: List[str] = [
    "Pay attention to voting patterns; werewolves often vote together to protect each other.",
    "The Seer should be careful about revealing too much too early.",
    "If you're the Doctor, try to predict who the werewolves will target tonight.",
    "Watch for players who are unusually quiet; they might be hiding something.",
    "Werewolves benefit from chaos. If someone keeps creating confusion, ask why.",
    "Keep track of who accuses whom. Wolves sometimes accuse confirmed innocents.",
]

DEFAULT_NARRATION = "The game unfolds as tensions rise in the village."


@dataclass(frozen=True, slots=True)
class FallbackDecision:
    target_id: Optional[str]
    reasoning: str


class FallbackStrategies:
    """Deterministic decision and narration fallbacks.

    Decisions never leave the candidate pool handed in by the caller. The
    random source is injectable so tests can pin every choice.
    """

    def __init__(self, rng: Optional[random.Random] = None) -> None:
        self.rng = rng or random.Random()
        self._strategies: Dict[str, Callable[[DecisionContext], FallbackDecision]] = {
            "default": self._default_action,
            "night_kill": self._night_kill_action,
            "night_investigate": self._default_action,
            "night_protect": self._night_protect_action,
            "day_vote": self._day_vote_action,
        }
        self._narration_templates: Dict[str, str] = {}

    def load_templates(self, file_path: str) -> None:
        """Override narration lines from a JSON object keyed by event name."""
        path = Path(file_path)
        if not path.exists():
            return
        data = json.loads(path.read_text(encoding="utf-8"))
        if isinstance(data, dict):
            self._narration_templates = {str(k): str(v) for k, v in data.items()}

    @staticmethod
    def strategy_name(ctx: DecisionContext) -> str:
        if ctx.phase in {Phase.DAY, Phase.VOTING}:
            return "day_vote"
        if ctx.phase == Phase.NIGHT:
            if ctx.role == Role.WEREWOLF:
                return "night_kill"
            if ctx.role == Role.SEER:
                return "night_investigate"
            if ctx.role == Role.DOCTOR:
                return "night_protect"
        return "default"

    def decide(self, ctx: DecisionContext) -> FallbackDecision:
        if not ctx.candidates:
            return FallbackDecision(target_id=None, reasoning="No valid targets available")
        fn = self._strategies.get(self.strategy_name(ctx), self._strategies["default"])
        return fn(ctx)

    # ------------------------------------------------------------------
    # Decision strategies
    # ------------------------------------------------------------------

    def _default_action(self, ctx: DecisionContext) -> FallbackDecision:
        return self._select_by_difficulty(self._exclude_allies(ctx), ctx)

    def _night_kill_action(self, ctx: DecisionContext) -> FallbackDecision:
        return self._select_by_difficulty(self._exclude_allies(ctx), ctx)

    def _night_protect_action(self, ctx: DecisionContext) -> FallbackDecision:
        pool = ctx.candidates
        if any(pid == ctx.player_id for pid, _ in pool):
            chance = DOCTOR_SELF_PROTECT_CHANCE.get(ctx.difficulty, DOCTOR_SELF_PROTECT_CHANCE[Difficulty.MEDIUM])
            if self.rng.random() < chance:
                return FallbackDecision(target_id=ctx.player_id, reasoning="Self-protection for safety")
        return self._select_by_difficulty(pool, ctx)

    def _day_vote_action(self, ctx: DecisionContext) -> FallbackDecision:
        pool = self._exclude_allies(ctx)
        pool_ids = {pid for pid, _ in pool}
        for result in ctx.investigations:
            if result.is_werewolf and result.player_id in pool_ids:
                return FallbackDecision(
                    target_id=result.player_id,
                    reasoning="Targeting a confirmed werewolf from investigation",
                )
        return self._select_by_difficulty(pool, ctx)

    @staticmethod
    def _exclude_allies(ctx: DecisionContext) -> List[Tuple[str, str]]:
        if ctx.role != Role.WEREWOLF or not ctx.known_werewolves:
            return list(ctx.candidates)
        allies = {pid for pid, _ in ctx.known_werewolves}
        filtered = [c for c in ctx.candidates if c[0] not in allies]
        return filtered or list(ctx.candidates)

    def _select_by_difficulty(self, pool: List[Tuple[str, str]], ctx: DecisionContext) -> FallbackDecision:
        if ctx.difficulty == Difficulty.EASY:
            target_id, _ = self.rng.choice(pool)
            return FallbackDecision(target_id=target_id, reasoning="Random selection (easy difficulty fallback)")

        if ctx.difficulty == Difficulty.HARD:
            if ctx.investigations:
                investigated = {r.player_id for r in ctx.investigations}
                for pid, _ in pool:
                    if pid not in investigated:
                        return FallbackDecision(
                            target_id=pid,
                            reasoning="Strategic: targeting uninvestigated player (hard fallback)",
                        )
            return FallbackDecision(target_id=pool[0][0], reasoning="Strategic selection (hard difficulty fallback)")

        head = pool[: max(len(pool) // 2, 1)]
        target_id, _ = self.rng.choice(head)
        return FallbackDecision(target_id=target_id, reasoning="Semi-strategic selection (medium difficulty fallback)")

    # ------------------------------------------------------------------
    # Narration and hints
    # ------------------------------------------------------------------

    def narration(
        self,
        event: str,
        round_no: Optional[int] = None,
        eliminated_name: Optional[str] = None,
        winning_team: Optional[str] = None,
    ) -> str:
        if event in self._narration_templates:
            return self._narration_templates[event].format(
                round=round_no if round_no is not None else "",
                eliminated_name=eliminated_name or "",
                winning_team=winning_team or "",
            )

        round_text = "" if round_no is None else f" {round_no}"
        if event == "game_start":
            return (
                "A hush falls over the village as darkness creeps in. Among the innocent faces "
                "gathered around the fire, predators lurk unseen. The first night approaches."
            )
        if event == "night_start":
            return (
                f"Night{round_text} descends upon the village. Doors are barred and candles "
                "snuffed out. In the shadows, the werewolves begin their hunt."
            )
        if event == "night_end":
            if eliminated_name:
                return (
                    f"Dawn breaks to reveal a terrible sight. {eliminated_name} has been found "
                    "lifeless at their doorstep. Fear tightens its grip on the village."
                )
            return (
                "The sun rises on an untouched village. By luck or providence, no one was taken "
                "in the night. But suspicion still festers."
            )
        if event == "voting_start":
            return (
                "The time for talk is over. The village must now decide who to cast out. "
                "Each voice carries the weight of life and death."
            )
        if event == "elimination":
            if eliminated_name:
                return (
                    f"The village has spoken. {eliminated_name} is led to the edge of the village, "
                    "condemned by the majority. Only time will tell if justice was done."
                )
            return "The vote concludes, but the village remains divided. No one is eliminated today."
        if event == "no_elimination":
            return (
                "Voices clash and accusations fly, but no consensus is reached. The village will "
                "face another night with the wolves still among them."
            )
        if event == "game_end":
            if winning_team == "villagers":
                return (
                    "At last, the final werewolf is unmasked! The village erupts in relief and the "
                    "survivors embrace under a clear sky."
                )
            return (
                "The howling grows louder as the last villagers fall. The werewolves have claimed "
                "the village as their own."
            )
        return DEFAULT_NARRATION

    def hint(self) -> str:
        return self.rng.choice(FALLBACK_HINTS)
