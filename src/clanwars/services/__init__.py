"""Service layer for the clan war engine.

Every service wraps one SQLAlchemy session and owns the transaction boundary
of its mutating operations: it commits on success and rolls back on any error
before re-raising.

Architecture:
    - CombatService: attack resolution, loot and attacker cooldown
    - WarService: war declaration and war queries
    - SettlementService: closing expired wars and reversing thefts
    - StatsService: recomputation of denormalized user and clan aggregates
    - BoostService: shield and cooldown-halving queries
    - MembershipService: creating, joining, leaving and kicking
    - GuardService: granting and listing guards
    - RatingService: clan and user leaderboards

Side effects (event history, notifications) are handed to a dispatcher after
commit; see :mod:`clanwars.services.notification_service`.

Production Usage:
    from clanwars.factory import ServiceFactory
    combat = factory.combat(session)
    outcome = combat.attack(attacker_id, defender_id)
"""

from clanwars.services.boost_service import BoostService
from clanwars.services.combat_service import AttackOutcome, CombatService, TheftRecord
from clanwars.services.guard_service import GuardService
from clanwars.services.membership_service import MembershipService
from clanwars.services.rating_service import ClanRating, RatingPage, RatingService
from clanwars.services.settlement_service import SettlementResult, SettlementService
from clanwars.services.stats_service import GuardTotals, StatsService
from clanwars.services.war_service import EnemyClan, WarPage, WarService

__all__ = [
    "AttackOutcome",
    "BoostService",
    "ClanRating",
    "CombatService",
    "EnemyClan",
    "GuardService",
    "GuardTotals",
    "MembershipService",
    "RatingPage",
    "RatingService",
    "SettlementResult",
    "SettlementService",
    "StatsService",
    "TheftRecord",
    "WarPage",
    "WarService",
]
