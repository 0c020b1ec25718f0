"""
Operations Layer

Business logic that composes the data-access collaborators into ladder
workflows. Operations validate input, enforce ladder rules, own the
transaction boundary and announce committed changes.

- RankingService: tier math and the rank swap protocol
- ChallengeOperations: issue, revoke, resolve and forfeit challenges
- PlayerOperations: registration, renames and standings
"""
