from questline.core.models import PlayerState, Role, Winner
from questline.engine.win_conditions import check_win_condition, game_stats, win_description, winning_players


def _players(wolves: int, others: int, dead_others: int = 0) -> list[PlayerState]:
    roster = [PlayerState(player_id=f"w{i}", name=f"W{i}", role=Role.WEREWOLF) for i in range(wolves)]
    roster += [PlayerState(player_id=f"v{i}", name=f"V{i}", role=Role.VILLAGER) for i in range(others)]
    roster += [
        PlayerState(player_id=f"d{i}", name=f"D{i}", role=Role.VILLAGER, alive=False) for i in range(dead_others)
    ]
    return roster


def test_game_continues_while_village_outnumbers_wolves() -> None:
    assert check_win_condition(_players(2, 3)) == Winner.NONE


def test_wolves_win_at_parity() -> None:
    assert check_win_condition(_players(2, 2)) == Winner.WEREWOLVES
    assert check_win_condition(_players(1, 0, dead_others=4)) == Winner.WEREWOLVES


def test_village_wins_when_no_wolves_alive() -> None:
    roster = _players(0, 3)
    roster.append(PlayerState(player_id="w9", name="W9", role=Role.WEREWOLF, alive=False))
    assert check_win_condition(roster) == Winner.VILLAGERS


def test_descriptions_and_winners() -> None:
    roster = _players(1, 2, dead_others=1)
    assert "outnumber" in win_description(Winner.WEREWOLVES, _players(2, 1))
    assert "killed all" in win_description(Winner.WEREWOLVES, _players(1, 0))
    assert "safe" in win_description(Winner.VILLAGERS, roster)
    assert [p.player_id for p in winning_players(Winner.WEREWOLVES, roster)] == ["w0"]

    stats = game_stats(roster)
    assert stats.total_players == 4
    assert stats.survivors == 3
    assert stats.villagers_eliminated == 1
    assert stats.werewolves_eliminated == 0
