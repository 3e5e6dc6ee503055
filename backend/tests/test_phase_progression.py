import random
from dataclasses import replace

import pytest

from questline.core.errors import PhaseTransitionBlocked
from questline.core.models import GameSettings, Phase, Role, Winner
from questline.engine.game_engine import GameEngine
from questline.engine.states import can_transition, phase_info


def _seat(engine: GameEngine, roles: dict[str, Role]) -> None:
    for pid in roles:
        engine.add_player(pid, pid.upper())
    engine.state = engine.state.evolve(
        players=tuple(replace(p, role=roles[p.player_id]) for p in engine.state.players)
    )


def test_setup_blocked_until_roles_assigned() -> None:
    engine = GameEngine(game_id="g_setup", settings=GameSettings(player_count=4))
    for pid in ("p1", "p2", "p3", "p4"):
        engine.add_player(pid, pid)

    with pytest.raises(PhaseTransitionBlocked, match="Roles not assigned"):
        engine.advance_phase()
    assert engine.state.phase == Phase.SETUP
    assert engine.state.round == 0


def test_start_game_enters_first_night() -> None:
    engine = GameEngine(game_id="g_start", settings=GameSettings(player_count=4), rng=random.Random(5))
    changes = []
    engine.register_hook("on_phase_change", changes.append)
    for pid in ("p1", "p2", "p3", "p4"):
        engine.add_player(pid, pid)

    engine.start_game()

    assert engine.state.phase == Phase.NIGHT
    assert engine.state.round == 1
    assert all(p.role is not None for p in engine.state.players)
    assert sum(1 for p in engine.state.players if p.role == Role.WEREWOLF) == 1
    assert len(changes) == 1
    assert changes[0].previous_phase == Phase.SETUP
    assert changes[0].phase == Phase.NIGHT


def test_night_waits_for_every_night_role() -> None:
    engine = GameEngine(game_id="g_wait")
    _seat(engine, {"p1": Role.WEREWOLF, "p2": Role.SEER, "p3": Role.VILLAGER, "p4": Role.VILLAGER})
    engine.advance_phase()
    engine.submit_night_action("p1", "p3")

    assert can_transition(engine.state).can_transition is False
    with pytest.raises(PhaseTransitionBlocked, match="night actions"):
        engine.advance_phase()


def test_full_round_until_werewolf_win() -> None:
    engine = GameEngine(game_id="g_full")
    _seat(engine, {"p1": Role.WEREWOLF, "p2": Role.VILLAGER, "p3": Role.VILLAGER, "p4": Role.VILLAGER})
    engine.advance_phase()

    engine.submit_night_action("p1", "p2")
    engine.advance_phase()
    assert engine.state.phase == Phase.DAY
    assert engine.state.winner == Winner.NONE

    engine.cast_vote("p1", "p3")
    engine.cast_vote("p3", "p1")
    engine.cast_vote("p4", "p3")
    engine.advance_phase()
    assert engine.state.phase == Phase.VOTING
    assert engine.state.killed_tonight is None

    engine.advance_phase()
    assert engine.state.phase == Phase.ENDED
    assert engine.state.winner == Winner.WEREWOLVES
    assert engine.state.eliminated_today == "p3"


def test_ended_is_absorbing() -> None:
    engine = GameEngine(game_id="g_end")
    _seat(engine, {"p1": Role.WEREWOLF, "p2": Role.VILLAGER, "p3": Role.VILLAGER, "p4": Role.VILLAGER})
    engine.state = engine.state.evolve(phase=Phase.ENDED, winner=Winner.VILLAGERS)
    version = engine.state.version

    assert engine.advance_phase() is engine.state
    assert engine.state.version == version
    assert phase_info(Phase.ENDED).name == "Game Over"


def test_village_wins_by_voting_out_last_wolf() -> None:
    engine = GameEngine(game_id="g_village")
    _seat(
        engine,
        {
            "p1": Role.WEREWOLF,
            "p2": Role.DOCTOR,
            "p3": Role.VILLAGER,
            "p4": Role.VILLAGER,
            "p5": Role.VILLAGER,
            "p6": Role.VILLAGER,
        },
    )
    engine.advance_phase()
    engine.submit_night_action("p1", "p3")
    engine.submit_night_action("p2", "p2")
    engine.advance_phase()
    for voter, target in (("p1", "p4"), ("p2", "p1"), ("p4", "p1"), ("p5", "p6"), ("p6", "p5")):
        engine.cast_vote(voter, target)
    engine.advance_phase()
    engine.advance_phase()
    assert engine.state.phase == Phase.ENDED
    assert engine.state.winner == Winner.VILLAGERS
    assert engine.state.eliminated_today == "p1"
    assert engine.state.player("p3").alive is False


def test_resolution_loops_back_to_night() -> None:
    engine = GameEngine(game_id="g_loop")
    _seat(
        engine,
        {
            "p1": Role.WEREWOLF,
            "p2": Role.WEREWOLF,
            "p3": Role.DOCTOR,
            "p4": Role.VILLAGER,
            "p5": Role.VILLAGER,
            "p6": Role.VILLAGER,
            "p7": Role.VILLAGER,
        },
    )
    engine.advance_phase()
    engine.submit_night_action("p1", "p4")
    engine.submit_night_action("p2", "p4")
    engine.submit_night_action("p3", "p4")
    engine.advance_phase()
    for p in engine.state.alive_players():
        engine.cast_vote(p.player_id, None)
    engine.advance_phase()
    engine.advance_phase()
    assert engine.state.phase == Phase.RESOLUTION
    assert engine.state.eliminated_today is None

    engine.advance_phase()
    assert engine.state.phase == Phase.NIGHT
    assert engine.state.round == 2
    assert not any(p.has_acted or p.has_voted for p in engine.state.players)
    assert engine.state.saved_tonight is None


def test_events_carry_increasing_sequence() -> None:
    sink = []
    engine = GameEngine(game_id="g_seq", event_sink=sink.append)
    _seat(engine, {"p1": Role.WEREWOLF, "p2": Role.VILLAGER, "p3": Role.VILLAGER, "p4": Role.VILLAGER})
    engine.advance_phase()
    engine.submit_night_action("p1", "p2")

    seqs = [e["seq"] for e in engine.event_log]
    assert seqs == sorted(seqs)
    assert len(set(seqs)) == len(seqs)
    assert sink == engine.event_log
    assert engine.event_log[-1]["event_type"] == "night_action_submitted"


def test_public_state_hides_living_roles() -> None:
    engine = GameEngine(game_id="g_view")
    _seat(engine, {"p1": Role.WEREWOLF, "p2": Role.SEER, "p3": Role.VILLAGER, "p4": Role.VILLAGER})
    engine.advance_phase()
    engine.submit_night_action("p1", "p3")
    engine.submit_night_action("p2", "p1")
    engine.advance_phase()

    view = engine.public_state(viewer_id="p2")
    roles = {p["player_id"]: p["role"] for p in view["players"]}
    assert roles == {"p1": None, "p2": "seer", "p3": "villager", "p4": None}
    assert view["killed_tonight"] == "p3"
    assert view["phase_info"]["name"] == "Day"
