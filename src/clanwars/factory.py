"""Service Factory for the clan war engine.

Wires services to the shared collaborators: the current gameplay settings
snapshot, the side-effect dispatcher and the SQL-backed event history and
notification writers. Use it in production code; tests construct services
directly and inject fakes.

Example:
    factory = ServiceFactory(provider, dispatcher, session_factory)
    with session_factory() as session:
        outcome = factory.combat(session).attack(attacker_id, defender_id)
"""

from __future__ import annotations

from collections.abc import Callable

from sqlalchemy.orm import Session

from clanwars.domain.combat import RandomSource
from clanwars.services.combat_service import CombatService
from clanwars.services.guard_service import GuardService
from clanwars.services.membership_service import MembershipService
from clanwars.services.notification_service import (
    Dispatcher,
    SqlEventHistoryRecorder,
    SqlNotifier,
)
from clanwars.services.rating_service import RatingService
from clanwars.services.settings_service import SettingsProvider
from clanwars.services.settlement_service import SettlementService
from clanwars.services.stats_service import StatsService
from clanwars.services.war_service import WarService


class ServiceFactory:
    """Builds session-scoped services with their collaborators."""

    def __init__(
        self,
        settings: SettingsProvider,
        dispatcher: Dispatcher,
        session_factory: Callable[[], Session],
        *,
        rng: RandomSource | None = None,
    ) -> None:
        self.settings = settings
        self.dispatcher = dispatcher
        self.event_history = SqlEventHistoryRecorder(session_factory)
        self.notifier = SqlNotifier(session_factory)
        self._rng = rng

    def combat(self, session: Session) -> CombatService:
        """Create a CombatService reading the current settings snapshot."""
        return CombatService(
            session,
            self.settings.snapshot(),
            event_history=self.event_history,
            dispatcher=self.dispatcher,
            rng=self._rng,
        )

    def wars(self, session: Session) -> WarService:
        return WarService(
            session,
            self.settings.snapshot(),
            notifier=self.notifier,
            dispatcher=self.dispatcher,
        )

    def settlement(self, session: Session) -> SettlementService:
        return SettlementService(session, notifier=self.notifier, dispatcher=self.dispatcher)

    def membership(self, session: Session) -> MembershipService:
        return MembershipService(session, self.settings.snapshot())

    def guards(self, session: Session) -> GuardService:
        return GuardService(session)

    def stats(self, session: Session) -> StatsService:
        return StatsService(session)

    def ratings(self, session: Session) -> RatingService:
        return RatingService(session)
