from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List

from questline.core.models import PlayerState, Winner
from questline.roles.skills import is_werewolf


@dataclass(frozen=True, slots=True)
class GameStats:
    total_players: int
    survivors: int
    werewolves_eliminated: int
    villagers_eliminated: int


def check_win_condition(players: Iterable[PlayerState]) -> Winner:
    alive = [p for p in players if p.alive]
    alive_wolves = sum(1 for p in alive if is_werewolf(p))
    alive_others = len(alive) - alive_wolves

    if alive_wolves >= alive_others:
        return Winner.WEREWOLVES
    if alive_wolves == 0:
        return Winner.VILLAGERS
    return Winner.NONE


def win_description(winner: Winner, players: Iterable[PlayerState]) -> str:
    alive = [p for p in players if p.alive]
    if winner == Winner.VILLAGERS:
        return "All werewolves have been eliminated! The village is safe once more."
    if winner == Winner.WEREWOLVES:
        if all(is_werewolf(p) for p in alive):
            return "The werewolves have killed all the villagers. Darkness consumes the village."
        return "The werewolves now outnumber the remaining villagers. The village falls into darkness."
    return "The game continues..."


def winning_players(winner: Winner, players: Iterable[PlayerState]) -> List[PlayerState]:
    if winner == Winner.VILLAGERS:
        return [p for p in players if not is_werewolf(p)]
    if winner == Winner.WEREWOLVES:
        return [p for p in players if is_werewolf(p)]
    return []


def game_stats(players: Iterable[PlayerState]) -> GameStats:
    roster = list(players)
    return GameStats(
        total_players=len(roster),
        survivors=sum(1 for p in roster if p.alive),
        werewolves_eliminated=sum(1 for p in roster if is_werewolf(p) and not p.alive),
        villagers_eliminated=sum(1 for p in roster if not is_werewolf(p) and not p.alive),
    )
