from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from questline.core.models import Difficulty, Phase, Role


@dataclass(slots=True)
class NarrationContext:
    phase: str
    round: int
    event: str
    alive_count: int
    werewolf_count: int = 0
    player_names: List[str] = field(default_factory=list)
    eliminated_name: Optional[str] = None
    winning_team: Optional[str] = None

    def to_payload(self) -> dict:
        return {
            "phase": self.phase,
            "round": self.round,
            "event": self.event,
            "alive_count": self.alive_count,
            "werewolf_count": self.werewolf_count,
            "player_names": list(self.player_names),
            "eliminated_name": self.eliminated_name,
            "winning_team": self.winning_team,
        }

    @classmethod
    def from_payload(cls, payload: dict) -> "NarrationContext":
        return cls(
            phase=str(payload.get("phase") or Phase.NIGHT.value),
            round=int(payload.get("round") or 1),
            event=str(payload.get("event") or "night_start"),
            alive_count=int(payload.get("alive_count") or 0),
            werewolf_count=int(payload.get("werewolf_count") or 0),
            player_names=list(payload.get("player_names") or []),
            eliminated_name=payload.get("eliminated_name"),
            winning_team=payload.get("winning_team"),
        )


@dataclass(frozen=True, slots=True)
class Investigation:
    player_id: str
    player_name: str
    is_werewolf: bool


@dataclass(slots=True)
class DecisionContext:
    """Everything one AI seat is allowed to know when choosing a target."""

    player_id: str
    player_name: str
    role: Role
    difficulty: Difficulty
    phase: Phase
    round: int
    alive_players: List[Tuple[str, str]] = field(default_factory=list)
    candidates: List[Tuple[str, str]] = field(default_factory=list)
    known_werewolves: List[Tuple[str, str]] = field(default_factory=list)
    investigations: List[Investigation] = field(default_factory=list)
    previous_eliminations: List[str] = field(default_factory=list)
    recent_messages: List[str] = field(default_factory=list)

    @property
    def candidate_ids(self) -> List[str]:
        return [pid for pid, _ in self.candidates]


_DIFFICULTY_INSTRUCTIONS: Dict[Difficulty, str] = {
    Difficulty.EASY: (
        "You are a beginner player. Make somewhat random decisions. "
        "Occasionally make suboptimal choices and do not study voting patterns."
    ),
    Difficulty.MEDIUM: (
        "You are an average player. Use basic strategy and pay some attention "
        "to voting patterns, but you sometimes make mistakes."
    ),
    Difficulty.HARD: (
        "You are an expert player. Analyse voting patterns, contradictions and "
        "behavioural cues, and make the strongest strategic choice."
    ),
}

_RESPONSE_FORMAT = 'Respond with JSON: {"targetId": "<player_id>", "reasoning": "<brief>"}'


def narration_system_prompt() -> str:
    return "\n".join(
        [
            "You are the Narrator for a Werewolf (Mafia) social-deduction game.",
            "Write atmospheric narration for game events.",
            "",
            "Rules:",
            '- Write in third person ("The village...", "Dawn breaks...").',
            "- Keep each narration to 2-3 sentences.",
            "- Use a dark medieval-village tone with sensory details.",
            "- NEVER reveal hidden information such as who the werewolves are.",
            "- Vary your descriptions from round to round.",
        ]
    )


def narration_user_prompt(ctx: NarrationContext) -> str:
    event = ctx.event
    if event == "game_start":
        return (
            f"Narrate the beginning of a new Werewolf game. {ctx.alive_count} villagers have gathered. "
            "Werewolves hide among them. Set the scene for the first night."
        )
    if event == "night_start":
        return (
            f"Narrate the start of Night {ctx.round}. {ctx.alive_count} souls remain and retreat "
            "to their homes as the werewolves stir."
        )
    if event == "night_end":
        if ctx.eliminated_name:
            return (
                f"Narrate the dawn after Night {ctx.round}. The villagers discover that "
                f"{ctx.eliminated_name} was killed in the night. {ctx.alive_count} remain."
            )
        return (
            f"Narrate the dawn after Night {ctx.round}. No one was killed; perhaps the doctor "
            f"intervened. {ctx.alive_count} remain."
        )
    if event == "voting_start":
        return (
            f"Narrate the start of voting in round {ctx.round}. The village must choose someone "
            f"to cast out. {ctx.alive_count} players will vote."
        )
    if event == "elimination":
        return (
            f"Narrate the elimination of {ctx.eliminated_name or 'a villager'} after the vote in "
            f"round {ctx.round}. {ctx.alive_count} remain."
        )
    if event == "no_elimination":
        return (
            f"Narrate a tied or failed vote in round {ctx.round}. Nobody is removed today. "
            f"{ctx.alive_count} remain."
        )
    if event == "game_end":
        if ctx.winning_team == "villagers":
            return "Narrate the villagers' victory. Every werewolf has been unmasked."
        if ctx.winning_team == "werewolves":
            return "Narrate the werewolves' victory. They now outnumber the villagers."
        return "Narrate the end of the game between villagers and werewolves."
    return f"Narrate a transition in the Werewolf game. Round {ctx.round}, {ctx.alive_count} players remain."


def decision_system_prompt(role: Role, difficulty: Difficulty) -> str:
    instructions = _DIFFICULTY_INSTRUCTIONS.get(difficulty, _DIFFICULTY_INSTRUCTIONS[Difficulty.MEDIUM])
    return "\n".join(
        [
            f"You are an AI player in a Werewolf (Mafia) game. Your role is {role.value}.",
            "",
            instructions,
            "",
            "IMPORTANT: Respond with ONLY a valid JSON object, no text outside it.",
            'The JSON must be exactly: {"targetId": "<id_or_null>", "reasoning": "<max 100 chars>"}',
        ]
    )


def _player_lines(players: List[Tuple[str, str]], self_id: Optional[str] = None) -> str:
    lines = []
    for pid, name in players:
        suffix = " (yourself)" if pid == self_id else ""
        lines.append(f"  - {name}{suffix} (ID: {pid})")
    return "\n".join(lines)


def night_action_prompt(ctx: DecisionContext) -> str:
    candidates = _player_lines(ctx.candidates, self_id=ctx.player_id)
    if ctx.role == Role.WEREWOLF:
        allies = ""
        if ctx.known_werewolves:
            names = ", ".join(name for _, name in ctx.known_werewolves)
            allies = f"Your fellow werewolves: {names}. Do NOT target them.\n"
        return "\n".join(
            [
                f"Night {ctx.round}: choose a player to KILL tonight.",
                allies,
                "Players you can target:",
                candidates,
                "",
                "Target players who seem influential or who may hold special roles.",
                _RESPONSE_FORMAT,
            ]
        )
    if ctx.role == Role.SEER:
        history = ""
        if ctx.investigations:
            rows = [
                f"  - {r.player_name}: {'WEREWOLF' if r.is_werewolf else 'Not a werewolf'}"
                for r in ctx.investigations
            ]
            history = "\n".join(["Your previous investigations:", *rows, ""])
        return "\n".join(
            [
                f"Night {ctx.round}: choose a player to INVESTIGATE tonight.",
                history,
                "Players you can investigate:",
                candidates,
                "",
                "Prefer players you have not investigated yet.",
                _RESPONSE_FORMAT,
            ]
        )
    if ctx.role == Role.DOCTOR:
        return "\n".join(
            [
                f"Night {ctx.round}: choose a player to PROTECT tonight.",
                "You may protect yourself or any other living player.",
                "",
                "Players you can protect:",
                candidates,
                "",
                "Protect high-value targets, or yourself if you feel threatened.",
                _RESPONSE_FORMAT,
            ]
        )
    return "\n".join(
        [
            f"Night {ctx.round}: you have no special night action.",
            'Respond with: {"targetId": null, "reasoning": "No night action available"}',
        ]
    )


def voting_prompt(ctx: DecisionContext) -> str:
    sections: List[str] = [f"Round {ctx.round} voting: choose a player to ELIMINATE.", ""]

    if ctx.investigations:
        sections.append("Your investigation results:")
        for r in ctx.investigations:
            sections.append(f"  - {r.player_name}: {'WEREWOLF!' if r.is_werewolf else 'Innocent'}")
        sections.append("")

    if ctx.previous_eliminations:
        sections.append(f"Previously eliminated: {', '.join(ctx.previous_eliminations)}")
        sections.append("")

    if ctx.recent_messages:
        sections.append("Recent discussion:")
        sections.extend(f"  {m}" for m in ctx.recent_messages[-5:])
        sections.append("")

    sections.append("Players you can vote for:")
    sections.append(_player_lines(ctx.candidates))
    sections.append("")

    if ctx.role == Role.WEREWOLF:
        sections.append(
            "STRATEGY: as a werewolf, deflect suspicion and vote for villagers who are close to the truth."
        )
    else:
        sections.append("STRATEGY: vote for the player you find most suspicious.")
    sections.append("")
    sections.append("You can abstain by setting targetId to null.")
    sections.append('Respond with JSON: {"targetId": "<player_id_or_null>", "reasoning": "<brief>"}')
    return "\n".join(sections)


def decision_user_prompt(ctx: DecisionContext) -> str:
    if ctx.phase == Phase.NIGHT:
        return night_action_prompt(ctx)
    return voting_prompt(ctx)


def hint_system_prompt() -> str:
    return (
        "You are a helpful game assistant for Werewolf (Mafia). "
        "Give strategic hints in 1-2 sentences. "
        "Never reveal other players' roles or private information."
    )


def hint_user_prompt(role: str, phase: str, round_no: int, alive_count: int) -> str:
    return (
        f"The player is a {role} in the {phase} phase of round {round_no}. "
        f"There are {alive_count} players alive. "
        "Give them a useful strategy hint for their current situation."
    )
