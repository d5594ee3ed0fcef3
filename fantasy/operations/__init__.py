"""
Operations Layer

This package provides the business logic that composes database reads and
writes into complete workflows, kept apart from the services that talk to
external providers.

Each operations module focuses on a specific domain:
- OwnershipReconstructor: rebuilds who held each player and when
- aggregate_weekly_points: buckets a player's in-interval scoring into weeks
- MarketOperations: roster building, trades, cooldowns and release clauses
"""
