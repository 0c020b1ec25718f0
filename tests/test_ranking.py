"""Tier math and the sentinel rank swap."""

from types import SimpleNamespace

import pytest

from ladder.constants import LadderConstants
from ladder.database.player_directory import PlayerDirectory
from ladder.operations.ranking_service import RankingService
from ladder.utils.exceptions import InvalidRankError, InvalidTierError, ValidationError


@pytest.mark.parametrize("rank,tier", [
    (1, 1), (2, 2), (3, 2), (4, 3), (6, 3), (7, 4), (10, 4), (11, 5), (5050, 100), (5051, 101),
])
def test_tier_of(rank, tier):
    assert RankingService.tier_of(rank) == tier


@pytest.mark.parametrize("tier", range(1, 30))
def test_ranks_of_round_trips_through_tier_of(tier):
    ranks = RankingService.ranks_of(tier)
    assert len(ranks) == tier
    assert all(RankingService.tier_of(rank) == tier for rank in ranks)


def test_ranks_of_is_contiguous_across_tiers():
    ranks = [rank for tier in range(1, 6) for rank in RankingService.ranks_of(tier)]
    assert ranks == list(range(1, 16))
    assert list(RankingService.ranks_of(3)) == [4, 5, 6]


@pytest.mark.parametrize("rank", [0, -1, 2.0, "3", None, True])
def test_tier_of_rejects_invalid_ranks(rank):
    with pytest.raises(InvalidRankError) as exc_info:
        RankingService.tier_of(rank)
    assert isinstance(exc_info.value, ValidationError)


@pytest.mark.parametrize("tier", [0, -2, 1.5, None])
def test_ranks_of_rejects_invalid_tiers(tier):
    with pytest.raises(InvalidTierError):
        RankingService.ranks_of(tier)


def test_group_by_tier_sorts_and_skips_parked_players():
    players = [SimpleNamespace(username=f"p{rank}", rank=rank) for rank in (5, 1, 3, 2, 4)]
    players.append(SimpleNamespace(username="parked", rank=LadderConstants.TEMP_RANK))

    grouped = RankingService.group_by_tier(players)

    assert list(grouped) == [1, 2, 3]
    assert [p.rank for p in grouped[2]] == [2, 3]
    assert [p.rank for p in grouped[3]] == [4, 5]
    assert [p.rank for p in RankingService.players_in_tier(players, 3)] == [4, 5]


def test_tier_gap():
    assert RankingService.tier_gap(1, 3) == 1
    assert RankingService.tier_gap(6, 1) == 2


class CountingDirectory(PlayerDirectory):
    def __init__(self):
        self.set_rank_calls = []

    async def set_rank(self, session, player_id, rank):
        self.set_rank_calls.append((player_id, rank))
        return await super().set_rank(session, player_id, rank)


async def test_swap_is_a_no_op_when_winner_already_ranked_higher(db, ladder):
    directory = CountingDirectory()
    ranking = RankingService(directory)

    async with db.transaction() as session:
        winner = await directory.get(session, ladder[0].id)
        loser = await directory.get(session, ladder[1].id)
        swapped = await ranking.swap_if_needed(session, winner, loser)

    assert swapped is False
    assert directory.set_rank_calls == []


async def test_swap_exchanges_ranks_through_sentinel(db, ladder):
    directory = CountingDirectory()
    ranking = RankingService(directory)
    winner_id, loser_id = ladder[4].id, ladder[2].id

    async with db.transaction() as session:
        winner = await directory.get(session, winner_id)
        loser = await directory.get(session, loser_id)
        swapped = await ranking.swap_if_needed(session, winner, loser)

    assert swapped is True
    assert directory.set_rank_calls == [
        (winner_id, LadderConstants.TEMP_RANK),
        (loser_id, 5),
        (winner_id, 3),
    ]

    async with db.get_session() as session:
        assert (await directory.get(session, winner_id)).rank == 3
        assert (await directory.get(session, loser_id)).rank == 5
        assert [p.rank for p in await directory.list_ranked(session)] == [1, 2, 3, 4, 5, 6]
