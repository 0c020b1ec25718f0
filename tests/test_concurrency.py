"""Overlapping operations keep the ladder consistent."""

import asyncio

import pytest

from conftest import ranks_by_id, wait_for_events
from ladder.services.lock_manager import PlayerLockManager
from ladder.utils.exceptions import ChallengeQuotaExceededError, ConflictError, DuplicateChallengeError
from ladder.services.base import BaseService


async def test_concurrent_issues_respect_outgoing_quota(challenge_ops, ladder):
    challenger = ladder[2]

    results = await asyncio.gather(
        challenge_ops.issue_challenge(challenger.id, ladder[1].id),
        challenge_ops.issue_challenge(challenger.id, ladder[0].id),
        return_exceptions=True
    )

    errors = [r for r in results if isinstance(r, Exception)]
    created = [r for r in results if not isinstance(r, Exception)]
    assert len(created) == 1
    assert len(errors) == 1
    assert isinstance(errors[0], ChallengeQuotaExceededError)

    challenges = await challenge_ops.get_challenges_for_player(challenger.id)
    assert len(challenges.outgoing) == 1


async def test_concurrent_duplicate_issues_create_one_challenge(make_challenge_ops, ladder):
    ops = make_challenge_ops(allowed_outgoing=5, allowed_incoming=5)

    results = await asyncio.gather(
        *[ops.issue_challenge(ladder[4].id, ladder[3].id) for _ in range(4)],
        return_exceptions=True
    )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert all(isinstance(r, DuplicateChallengeError) for r in results if isinstance(r, Exception))


async def test_concurrent_resolves_on_disjoint_pairs(challenge_ops, player_ops, ladder):
    challenges = [
        await challenge_ops.issue_challenge(ladder[1].id, ladder[0].id),
        await challenge_ops.issue_challenge(ladder[3].id, ladder[2].id),
        await challenge_ops.issue_challenge(ladder[5].id, ladder[4].id),
    ]

    outcomes = await asyncio.gather(
        *[challenge_ops.resolve_challenge(c.id, 3, 2) for c in challenges]
    )

    assert all(outcome.swapped for outcome in outcomes)
    ranks = await ranks_by_id(player_ops)
    assert [ranks[p.id] for p in ladder] == [2, 1, 4, 3, 6, 5]


async def test_overlapping_resolves_keep_rank_permutation(make_challenge_ops, player_ops, ladder):
    ops = make_challenge_ops(allowed_outgoing=2, allowed_incoming=2)
    # player2 is challenger in one and challengee in the other
    upper = await ops.issue_challenge(ladder[1].id, ladder[0].id)
    lower = await ops.issue_challenge(ladder[2].id, ladder[1].id)

    await asyncio.gather(
        ops.resolve_challenge(upper.id, 2, 1),
        ops.resolve_challenge(lower.id, 2, 1),
    )

    ranks = await ranks_by_id(player_ops)
    assert sorted(ranks.values()) == [1, 2, 3, 4, 5, 6]
    integrity = await player_ops.verify_rank_integrity()
    assert integrity['integrity_check'] is True


async def test_resolve_and_forfeit_race_resolves_once(challenge_ops, player_ops, ladder):
    challenge = await challenge_ops.issue_challenge(ladder[4].id, ladder[3].id)

    results = await asyncio.gather(
        challenge_ops.resolve_challenge(challenge.id, 1, 3),
        challenge_ops.forfeit_challenge(challenge.id),
        return_exceptions=True
    )

    assert sum(1 for r in results if not isinstance(r, Exception)) == 1
    assert sorted((await ranks_by_id(player_ops)).values()) == [1, 2, 3, 4, 5, 6]


async def test_concurrent_registrations_get_distinct_ranks(player_ops):
    players = await asyncio.gather(
        *[player_ops.register_player(f"racer{i}") for i in range(8)]
    )

    assert sorted(p.rank for p in players) == list(range(1, 9))


async def test_cancelled_caller_does_not_interrupt_resolution(challenge_ops, player_ops, ladder, sink):
    challenger, challengee = ladder[4], ladder[3]
    challenge = await challenge_ops.issue_challenge(challenger.id, challengee.id)
    await wait_for_events(sink, len(ladder) + 1)

    task = asyncio.create_task(challenge_ops.resolve_challenge(challenge.id, 3, 0))
    await asyncio.sleep(0)
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    # The shielded work still commits and announces the result
    await wait_for_events(sink, len(ladder) + 2)
    stored = await challenge_ops.get_challenge(challenge.id)
    assert stored.winner_id == challenger.id

    ranks = await ranks_by_id(player_ops)
    assert ranks[challenger.id] == 4
    assert ranks[challengee.id] == 5


async def test_failure_after_caller_cancellation_is_logged(db, caplog):
    service = BaseService(db)
    release = asyncio.Event()

    async def work():
        await release.wait()
        raise ConflictError('resolve_challenge', 'retries exhausted')

    with caplog.at_level('ERROR', logger='ladder.services.base'):
        caller = asyncio.create_task(service.run_shielded('resolve_challenge', work()))
        await asyncio.sleep(0)
        caller.cancel()
        with pytest.raises(asyncio.CancelledError):
            await caller

        release.set()
        for _ in range(50):
            if 'failed after its caller was cancelled' in caplog.text:
                break
            await asyncio.sleep(0.01)

    assert 'resolve_challenge failed after its caller was cancelled' in caplog.text


async def test_shielded_failure_reaches_a_waiting_caller(db, caplog):
    service = BaseService(db)

    async def work():
        raise ConflictError('issue_challenge', 'retries exhausted')

    with pytest.raises(ConflictError):
        await service.run_shielded('issue_challenge', work())
    assert 'failed after its caller was cancelled' not in caplog.text


async def test_player_locks_are_taken_in_id_order():
    locks = PlayerLockManager()
    order = []

    async def worker(name, *ids):
        async with locks.hold(*ids):
            order.append(name)
            await asyncio.sleep(0.01)

    # Opposite argument order would deadlock without sorted acquisition
    await asyncio.wait_for(
        asyncio.gather(worker('a', 1, 2), worker('b', 2, 1), worker('c', 2, None)),
        timeout=2.0
    )

    assert sorted(order) == ['a', 'b', 'c']
    assert not locks.is_locked(1)
    assert not locks.is_locked(2)


async def test_execute_with_retry_only_retries_conflicts(db):
    service = BaseService(db)
    calls = []

    async def flaky():
        calls.append(1)
        if len(calls) < 3:
            raise ConflictError('flaky', 'version mismatch')
        return 'done'

    assert await service.execute_with_retry(flaky, max_retries=3) == 'done'
    assert len(calls) == 3

    async def always_conflicts():
        raise ConflictError('always', 'version mismatch')

    with pytest.raises(ConflictError):
        await service.execute_with_retry(always_conflicts, max_retries=2)

    attempts = []

    async def rejected():
        attempts.append(1)
        raise DuplicateChallengeError()

    with pytest.raises(DuplicateChallengeError):
        await service.execute_with_retry(rejected, max_retries=3)
    assert len(attempts) == 1
