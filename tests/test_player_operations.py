import pytest

from conftest import START, wait_for_events
from ladder.constants import LadderConstants
from ladder.utils.exceptions import (
    InvalidUsernameError, UsernameTakenError, AlreadyRegisteredError, PlayerNotFoundError
)


async def test_register_places_players_at_the_bottom(player_ops, sink):
    first = await player_ops.register_player("alice", discord_id=11)
    second = await player_ops.register_player("bob")
    third = await player_ops.register_player("  carol  ")

    assert (first.rank, second.rank, third.rank) == (1, 2, 3)
    assert third.username == "carol"
    assert first.discord_id == 11
    assert first.registered_at == START

    await wait_for_events(sink, 3)
    assert sink.names() == ['player:new'] * 3
    assert sink.last('player:new')['player'] == {
        'id': third.id, 'username': 'carol', 'rank': 3, 'discord_id': None
    }


@pytest.mark.parametrize("username", ["", "   ", None, "x" * (LadderConstants.MAX_USERNAME_LENGTH + 1)])
async def test_register_rejects_invalid_usernames(player_ops, username):
    with pytest.raises(InvalidUsernameError):
        await player_ops.register_player(username)


async def test_register_rejects_taken_username_ignoring_case(player_ops):
    await player_ops.register_player("Alice")

    with pytest.raises(UsernameTakenError):
        await player_ops.register_player("alice")


async def test_register_rejects_linked_discord_account(player_ops):
    await player_ops.register_player("alice", discord_id=42)

    with pytest.raises(AlreadyRegisteredError) as exc_info:
        await player_ops.register_player("alice2", discord_id=42)
    assert "alice" in exc_info.value.user_message

    assert len(await player_ops.list_standings()) == 1


async def test_change_username(player_ops, ladder, sink):
    player = ladder[2]

    renamed = await player_ops.change_username(player.id, " the_third ")

    assert renamed.username == "the_third"
    assert renamed.rank == 3
    assert (await player_ops.get_player(player.id)).username == "the_third"

    await wait_for_events(sink, len(ladder) + 1)
    payload = sink.last('player:change:username')
    assert payload['old_username'] == 'player3'
    assert payload['player']['username'] == 'the_third'


async def test_change_username_allows_case_change_of_own_name(player_ops, ladder):
    renamed = await player_ops.change_username(ladder[0].id, "PLAYER1")
    assert renamed.username == "PLAYER1"


async def test_change_username_errors(player_ops, ladder):
    with pytest.raises(UsernameTakenError):
        await player_ops.change_username(ladder[0].id, "player2")
    with pytest.raises(InvalidUsernameError):
        await player_ops.change_username(ladder[0].id, " ")
    with pytest.raises(PlayerNotFoundError):
        await player_ops.change_username(999, "ghost")


async def test_lookups(player_ops, ladder):
    assert (await player_ops.get_player(ladder[3].id)).username == 'player4'
    assert (await player_ops.get_player_by_discord_id(1002)).id == ladder[1].id
    assert await player_ops.get_player_by_discord_id(5) is None

    with pytest.raises(PlayerNotFoundError):
        await player_ops.get_player(999)


async def test_standings_by_tier(player_ops, ladder):
    tiers = await player_ops.standings_by_tier()

    assert {tier: [p.username for p in players] for tier, players in tiers.items()} == {
        1: ['player1'],
        2: ['player2', 'player3'],
        3: ['player4', 'player5', 'player6'],
    }


async def test_verify_rank_integrity(db, player_ops, ladder):
    report = await player_ops.verify_rank_integrity()
    assert report == {
        'player_count': 6,
        'missing_ranks': [],
        'duplicate_ranks': [],
        'invalid_ranks': [],
        'integrity_check': True,
    }

    # Open a gap by hand: rank 3 moves to 9
    async with db.transaction() as session:
        await player_ops.directory.set_rank(session, ladder[2].id, 9)

    report = await player_ops.verify_rank_integrity()
    assert report['missing_ranks'] == [3]
    assert report['integrity_check'] is False


async def test_verify_rank_integrity_on_empty_ladder(player_ops):
    report = await player_ops.verify_rank_integrity()
    assert report['player_count'] == 0
    assert report['integrity_check'] is True
