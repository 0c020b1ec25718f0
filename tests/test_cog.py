"""Permission checks the slash commands run before touching the ladder."""

from types import SimpleNamespace

import pytest

from ladder.cogs.ladder import LadderCog, NotOnLadderError
from ladder.config import Config
from ladder.utils.exceptions import PolicyViolation

OWNER_ID = 42


@pytest.fixture
def cog(challenge_ops, player_ops, monkeypatch):
    monkeypatch.setattr(Config, 'OWNER_DISCORD_ID', OWNER_ID)
    return LadderCog(SimpleNamespace(challenge_ops=challenge_ops, player_ops=player_ops))


def interaction_from(discord_id):
    return SimpleNamespace(user=SimpleNamespace(id=discord_id, display_name=f"member{discord_id}"))


async def test_either_player_may_report_a_score(cog, challenge_ops, ladder):
    challenge = await challenge_ops.issue_challenge(ladder[4].id, ladder[3].id)

    await cog._require_participant(interaction_from(ladder[4].discord_id), challenge.id)
    await cog._require_participant(interaction_from(ladder[3].discord_id), challenge.id)

    with pytest.raises(PolicyViolation):
        await cog._require_participant(interaction_from(ladder[0].discord_id), challenge.id)


async def test_only_the_challengee_may_forfeit(cog, challenge_ops, ladder):
    challenge = await challenge_ops.issue_challenge(ladder[4].id, ladder[3].id)

    with pytest.raises(PolicyViolation) as excinfo:
        await cog._require_participant(
            interaction_from(ladder[4].discord_id), challenge.id, challengee_only=True
        )
    assert "challenged player" in excinfo.value.user_message

    await cog._require_participant(
        interaction_from(ladder[3].discord_id), challenge.id, challengee_only=True
    )


async def test_owner_bypasses_participant_checks(cog, challenge_ops, ladder):
    challenge = await challenge_ops.issue_challenge(ladder[4].id, ladder[3].id)

    await cog._require_participant(interaction_from(OWNER_ID), challenge.id, challengee_only=True)


async def test_unlinked_member_is_told_to_join(cog, challenge_ops, ladder):
    challenge = await challenge_ops.issue_challenge(ladder[4].id, ladder[3].id)

    with pytest.raises(NotOnLadderError):
        await cog._require_participant(interaction_from(7), challenge.id)
