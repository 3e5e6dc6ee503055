from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

from questline.core.errors import GameRuleError
from questline.core.models import GameState, Phase, Vote
from questline.roles.skills import skill_for


@dataclass(frozen=True, slots=True)
class VoteTally:
    round: int
    results: Dict[str, int] = field(default_factory=dict)
    abstentions: int = 0
    leader: Optional[str] = None
    is_tie: bool = False


@dataclass(frozen=True, slots=True)
class VoteOutcome:
    tally: VoteTally
    eliminated_id: Optional[str] = None
    revenge_victim_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class VoteBucket:
    player_id: str
    vote_count: int
    voter_ids: Tuple[str, ...]


def validate_vote(state: GameState, voter_id: str, target_id: Optional[str]) -> None:
    voter = state.player(voter_id)
    if voter is None:
        raise GameRuleError("Voter not in game")
    if not voter.alive:
        raise GameRuleError("Dead players cannot vote")
    if state.phase not in {Phase.DAY, Phase.VOTING}:
        raise GameRuleError("Votes are only allowed in day or voting phase")
    if voter.has_voted:
        raise GameRuleError("Already voted this round")
    if target_id is not None:
        target = state.player(target_id)
        if target is None:
            raise GameRuleError("Vote target not in game")
        if not target.alive:
            raise GameRuleError("Cannot vote for dead players")


def record_vote(state: GameState, voter_id: str, target_id: Optional[str], seq: int) -> GameState:
    vote = Vote(voter_id=voter_id, target_id=target_id, round=state.round, seq=seq)
    kept = tuple(v for v in state.votes if not (v.voter_id == voter_id and v.round == state.round))
    return state.evolve(
        votes=kept + (vote,),
        players=state.with_player(voter_id, has_voted=True),
    )


def cast_vote(state: GameState, voter_id: str, target_id: Optional[str], seq: int) -> GameState:
    validate_vote(state, voter_id, target_id)
    return record_vote(state, voter_id, target_id, seq)


def tally_votes(state: GameState) -> VoteTally:
    results: Dict[str, int] = {}
    abstentions = 0
    for vote in state.round_votes():
        if vote.target_id is None:
            abstentions += 1
        else:
            results[vote.target_id] = results.get(vote.target_id, 0) + 1

    if not results:
        return VoteTally(round=state.round, results=results, abstentions=abstentions)

    top = max(results.values())
    leaders = [pid for pid, count in results.items() if count == top]
    if len(leaders) > 1:
        return VoteTally(round=state.round, results=results, abstentions=abstentions, is_tie=True)
    return VoteTally(round=state.round, results=results, abstentions=abstentions, leader=leaders[0])


def resolve_votes(state: GameState, revenge_target_id: Optional[str] = None) -> Tuple[GameState, VoteOutcome]:
    tally = tally_votes(state)
    eliminated = state.player(tally.leader) if tally.leader and not tally.is_tie else None

    if eliminated is None or not eliminated.alive:
        next_state = state.evolve(
            eliminated_today=None,
            revenge_victim=None,
            votes_resolved_round=state.round,
        )
        return next_state, VoteOutcome(tally=tally)

    players = state.with_player(eliminated.player_id, alive=False)
    revenge_victim: Optional[str] = None
    if (
        skill_for(eliminated.role).has_revenge
        and revenge_target_id
        and revenge_target_id != eliminated.player_id
    ):
        target = state.player(revenge_target_id)
        if target is not None and target.alive:
            revenge_victim = revenge_target_id
            players = tuple(
                replace(p, alive=False) if p.player_id == revenge_target_id else p for p in players
            )

    next_state = state.evolve(
        players=players,
        eliminated_today=eliminated.player_id,
        revenge_victim=revenge_victim,
        votes_resolved_round=state.round,
    )
    return next_state, VoteOutcome(
        tally=tally,
        eliminated_id=eliminated.player_id,
        revenge_victim_id=revenge_victim,
    )


def vote_distribution(state: GameState) -> List[VoteBucket]:
    tally = tally_votes(state)
    round_votes = state.round_votes()
    buckets = [
        VoteBucket(
            player_id=p.player_id,
            vote_count=tally.results.get(p.player_id, 0),
            voter_ids=tuple(v.voter_id for v in round_votes if v.target_id == p.player_id),
        )
        for p in state.alive_players()
    ]
    buckets.sort(key=lambda b: b.vote_count, reverse=True)
    return buckets
