import asyncio

import pytest

from questline.agent.provider import ProviderConfig, ReasoningProvider
from questline.core.errors import GameNotFound, GameRuleError, RoleConfigError
from questline.core.models import Phase
from questline.room.game_manager import GameManager
from questline.storage.repository import SQLiteRepository


def _manager(tmp_path) -> GameManager:
    return GameManager(
        repository=SQLiteRepository(str(tmp_path / "manager.db")),
        provider=ReasoningProvider(ProviderConfig(api_key="")),
    )


def test_lobby_roster_is_projected(tmp_path) -> None:
    manager = _manager(tmp_path)
    created = manager.create_game("Ada", player_count=5, ai_player_count=2)
    game_id = created["game_id"]
    joined = manager.join_game(game_id, "Bo")
    ai = manager.add_ai_player(game_id, difficulty="hard")

    rows = manager.store.query("players", game_id=game_id)
    assert len(rows) == 5
    by_id = {r["id"]: r for r in rows}
    assert by_id[ai["player_id"]]["ai_difficulty"] == "hard"
    assert by_id[joined["player_id"]]["is_ai"] is False

    manager.leave_game(game_id, joined["player_id"])
    assert len(manager.store.query("players", game_id=game_id)) == 4
    assert joined["player_id"] not in {p.player_id for p in manager.snapshot(game_id).players}


def test_create_game_rejections(tmp_path) -> None:
    manager = _manager(tmp_path)
    with pytest.raises(RoleConfigError):
        manager.create_game("Ada", player_count=3)
    with pytest.raises(GameRuleError, match="seat must be left"):
        manager.create_game("Ada", player_count=4, ai_player_count=4)
    with pytest.raises(GameNotFound):
        manager.state("missing")


def test_night_actions_and_votes_are_projected(tmp_path) -> None:
    manager = _manager(tmp_path)
    game_id = manager.create_game("Ada", player_count=4, ai_player_count=3, seed=8)["game_id"]
    asyncio.run(manager.orchestrator.start(game_id))

    state = manager.snapshot(game_id)
    acted = [p.player_id for p in state.players if p.has_acted]
    actions = manager.store.query("night_actions", game_id=game_id, round=1)
    assert sorted(a["actor_id"] for a in actions) == sorted(acted)

    host = manager.get_game(game_id).host_id
    waiting = [p for p in state.alive_players() if not p.is_ai and p.role.value == "werewolf" and not p.has_acted]
    if waiting:
        target = next(p.player_id for p in state.alive_players() if p.role.value != "werewolf")
        manager.submit_night_action(game_id, host, target)

    asyncio.run(manager.orchestrator.advance(game_id))
    after = manager.snapshot(game_id)
    assert after.phase.value in {"day", "ended"}
    if after.phase.value == "day":
        votes = manager.store.query("votes", game_id=game_id, round=1)
        assert len(votes) == sum(1 for p in after.alive_players() if p.is_ai)


def test_health_summary_counts_games(tmp_path) -> None:
    manager = _manager(tmp_path)
    game_id = manager.create_game("Ada", player_count=4)["game_id"]
    assert manager.store.query("players", game_id=game_id)
    summary = manager.health_summary()

    assert summary["games"] == 1
    assert summary["tasks_queued"] == 0
    assert summary["ai_metrics"]["total_calls"] == 0
    manager.shutdown_cleanup()
    assert manager.health_summary()["games"] == 0
    assert manager.store.query("players", game_id=game_id) == []
    assert manager.store.query("events", game_id=game_id) == []


def test_narration_keeps_the_phase_it_describes(tmp_path) -> None:
    manager = _manager(tmp_path)
    game_id = manager.create_game("Ada", player_count=4, ai_player_count=3, seed=3)["game_id"]
    manager.start_game(game_id)
    (change,) = manager.pop_phase_changes(game_id)

    game = manager.must_get_game(game_id)
    game.engine.state = game.engine.state.evolve(phase=Phase.DAY)
    asyncio.run(manager.orchestrator.narrate(game_id, change))

    entry = manager.game_log(game_id)[-1]
    assert (entry["phase"], entry["round"]) == ("night", 1)
