from types import SimpleNamespace

from ladder.constants import UIConstants
from ladder.operations.challenge_operations import PlayerChallenges, PlayerRecord
from ladder.utils.embeds import LadderEmbeds
from ladder.utils.exceptions import (
    ChallengeExpiredError, ConflictError, DependencyError, DuplicateChallengeError,
    PlayerNotFoundError, TiedScoreError
)

ALICE = {'id': 1, 'username': 'alice', 'rank': 1, 'discord_id': 111}
BOB = {'id': 2, 'username': 'bob', 'rank': 2, 'discord_id': None}


def make_challenge(challenge_id, winner_id=None, scores=(None, None)):
    challenger = SimpleNamespace(id=2, username='bob')
    challengee = SimpleNamespace(id=1, username='alice')
    return SimpleNamespace(
        id=challenge_id,
        challenger=challenger,
        challengee=challengee,
        challenger_id=challenger.id,
        challengee_id=challengee.id,
        winner_id=winner_id,
        challenger_score=scores[0],
        challengee_score=scores[1],
    )


def test_resolved_event_embed_shows_score_and_swap():
    embed = LadderEmbeds.event_embed('challenge:resolved', {
        'challenge_id': 4, 'winner': BOB, 'loser': ALICE,
        'challenger_score': 3, 'challengee_score': 1, 'swapped': True,
    })

    assert embed.description == "**bob** defeated **alice** 3-1."
    assert embed.fields[0].name == "Ladder Update"
    assert embed.footer.text == "Challenge #4"
    assert embed.color.value == UIConstants.SUCCESS_COLOR


def test_forfeit_event_embed_has_no_score():
    embed = LadderEmbeds.event_embed('challenge:forfeited', {
        'challenge_id': 5, 'challenger': BOB, 'challengee': ALICE, 'swapped': False,
    })

    assert embed.description == "**alice** forfeited to **bob**."
    assert embed.fields == []


def test_participant_discord_ids_skips_unlinked_and_duplicates():
    payload = {'winner': ALICE, 'loser': BOB, 'challenger': ALICE}
    assert LadderEmbeds.participant_discord_ids(payload) == [111]


def test_standings_embed_has_one_field_per_tier():
    tiers = {
        1: [SimpleNamespace(rank=1, username='alice')],
        2: [SimpleNamespace(rank=2, username='bob'), SimpleNamespace(rank=3, username='carol')],
    }

    embed = LadderEmbeds.standings_embed(tiers)

    assert [field.name for field in embed.fields] == ["Tier 1", "Tier 2"]
    assert embed.fields[1].value == "#2 bob\n#3 carol"


def test_standings_embed_for_empty_ladder():
    embed = LadderEmbeds.standings_embed({})
    assert "/ladder-join" in embed.description


def test_challenges_embed_lists_each_section():
    challenges = PlayerChallenges(
        resolved=[make_challenge(1, winner_id=2, scores=(3, 1)), make_challenge(2, winner_id=1)],
        outgoing=[make_challenge(3)],
        incoming=[],
    )

    embed = LadderEmbeds.challenges_embed('bob', challenges)
    fields = {field.name: field.value for field in embed.fields}

    assert fields["Incoming"] == "None"
    assert fields["Outgoing"] == "`#3` bob vs alice"
    assert fields["Recent Results"].splitlines() == [
        "`#1` bob vs alice - won by **bob** (3-1)",
        "`#2` bob vs alice - won by **alice** (forfeit)",
    ]


def test_expired_embed_names_who_must_forfeit():
    embed = LadderEmbeds.expired_embed([make_challenge(8)])
    assert embed.description == "`#8` bob vs alice - **alice** must forfeit"

    assert LadderEmbeds.expired_embed([]).description == "No expired challenges."


def test_record_embed():
    embed = LadderEmbeds.record_embed('bob', PlayerRecord(wins=4, losses=2))
    assert [(field.name, field.value) for field in embed.fields] == [("Wins", "4"), ("Losses", "2")]


def test_error_embed_titles_follow_error_category():
    cases = [
        (TiedScoreError(2), "Invalid Request"),
        (DuplicateChallengeError(), "Not Allowed"),
        (PlayerNotFoundError(9), "Not Found"),
        (ChallengeExpiredError('alice'), "Challenge Expired"),
        (ConflictError('resolve_challenge', 'stale'), "Please Retry"),
        (DependencyError('resolve_challenge', 'disk full'), "Ladder Error"),
    ]

    for error, title in cases:
        embed = LadderEmbeds.error_embed(error)
        assert embed.title == f"❌ {title}"
        assert embed.description == error.user_message
        assert embed.color.value == UIConstants.ERROR_COLOR
