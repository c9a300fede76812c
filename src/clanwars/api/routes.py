"""HTTP routes for the clan war API.

The acting user is identified by the ``X-User-Id`` header; authentication
happens in front of this service.
"""

from __future__ import annotations

from datetime import datetime
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request, status
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy.orm import Session

from clanwars.api.runtime import ApiState
from clanwars.database import check_database_health
from clanwars.services import AttackOutcome, SettlementResult

router = APIRouter()


def get_state(request: Request) -> ApiState:
    state = getattr(request.app.state, "api_state", None)
    if state is None:  # pragma: no cover - FastAPI should always initialise state
        raise RuntimeError("API state not initialised")
    return state


ApiStateDep = Annotated[ApiState, Depends(get_state)]
UserIdDep = Annotated[int, Header(alias="X-User-Id", ge=1)]


class GameSettingsResponse(BaseModel):
    attack_cooldown_seconds: float
    clan_war_duration_seconds: float
    clan_war_cooldown_seconds: float
    max_clan_wars_count: int
    clan_join_cooldown_seconds: float


class ClanSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    leader_id: int
    strength: int
    guards_count: int
    members_count: int
    max_members: int


class EnemyClanSummary(ClanSummary):
    war_id: int
    war_start_time: datetime
    war_end_time: datetime


class MemberSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    clan_id: int | None
    money: int
    strength: int
    guards_count: int


class GuardSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    name: str
    strength: int
    is_first: bool


class ClanWarSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    clan_1_id: int
    clan_2_id: int
    start_time: datetime
    end_time: datetime
    status: str


class WarHistoryResponse(BaseModel):
    data: list[ClanWarSummary]
    total: int
    page: int
    limit: int


class ClanRatingEntry(ClanSummary):
    money: int
    wins: int
    losses: int
    score: int


class ClanRatingResponse(BaseModel):
    data: list[ClanRatingEntry]
    total: int
    page: int
    limit: int


class UserRatingResponse(BaseModel):
    data: list[MemberSummary]
    total: int
    page: int
    limit: int


class StolenItemSummary(BaseModel):
    id: int
    type: str
    value: str
    thief_id: int
    victim_id: int


class AttackRequest(BaseModel):
    target_user_id: int = Field(ge=1)
    enemy_clan_id: int | None = Field(default=None, ge=1)


class AttackResponse(BaseModel):
    clan_war_id: int
    win_chance: float
    is_win: bool
    stolen_money: int
    captured_guards: int
    stolen_items: list[StolenItemSummary]
    attack_cooldown_end: datetime

    @classmethod
    def from_outcome(cls, outcome: AttackOutcome) -> AttackResponse:
        return cls(
            clan_war_id=outcome.clan_war_id,
            win_chance=outcome.win_chance,
            is_win=outcome.is_win,
            stolen_money=outcome.stolen_money,
            captured_guards=outcome.captured_guards,
            stolen_items=[
                StolenItemSummary(
                    id=item.id,
                    type=str(item.type),
                    value=item.value,
                    thief_id=item.thief_id,
                    victim_id=item.victim_id,
                )
                for item in outcome.stolen_items
            ],
            attack_cooldown_end=outcome.attack_cooldown_end,
        )


class CooldownResponse(BaseModel):
    eligible: bool
    cooldown_end: datetime | None
    cooldown_seconds: float


class DeclareWarRequest(BaseModel):
    target_clan_id: int = Field(ge=1)


class CreateClanRequest(BaseModel):
    name: str = Field(min_length=1, max_length=64)
    max_members: int = Field(default=50, ge=1)


class GrantGuardRequest(BaseModel):
    strength: int = Field(ge=0)
    name: str = Field(default="Guard", min_length=1)
    is_first: bool = False


class SettlementSummary(BaseModel):
    clan_war_id: int
    status: str
    winner_clan_id: int
    loser_clan_id: int
    reversed_item_ids: list[int]
    kept_item_ids: list[int]

    @classmethod
    def from_result(cls, result: SettlementResult) -> SettlementSummary:
        return cls(
            clan_war_id=result.clan_war_id,
            status=str(result.status),
            winner_clan_id=result.winner_clan_id,
            loser_clan_id=result.loser_clan_id,
            reversed_item_ids=list(result.reversed_item_ids),
            kept_item_ids=list(result.kept_item_ids),
        )


@router.get("/health")
async def health(state: ApiStateDep) -> dict[str, object]:
    database_ok = check_database_health(state.engine)
    return {
        "status": "ok" if database_ok else "degraded",
        "database": "connected" if database_ok else "unavailable",
        "settlement_interval_seconds": state.settlement.interval_seconds,
        "settlement_running": state.settlement.running,
    }


@router.get("/settings", response_model=GameSettingsResponse)
async def get_game_settings(state: ApiStateDep) -> GameSettingsResponse:
    current = state.game_settings.snapshot()
    return GameSettingsResponse(
        attack_cooldown_seconds=current.attack_cooldown.total_seconds(),
        clan_war_duration_seconds=current.clan_war_duration.total_seconds(),
        clan_war_cooldown_seconds=current.clan_war_cooldown.total_seconds(),
        max_clan_wars_count=current.max_clan_wars_count,
        clan_join_cooldown_seconds=current.clan_join_cooldown.total_seconds(),
    )


@router.post("/attacks", response_model=AttackResponse)
async def attack(request: AttackRequest, user_id: UserIdDep, state: ApiStateDep) -> AttackResponse:
    def work(session: Session) -> AttackOutcome:
        return state.services.combat(session).attack(
            user_id, request.target_user_id, request.enemy_clan_id
        )

    outcome = await state.run(work)
    return AttackResponse.from_outcome(outcome)


@router.get("/attacks/cooldown", response_model=CooldownResponse)
async def attack_cooldown(user_id: UserIdDep, state: ApiStateDep) -> CooldownResponse:
    def work(session: Session) -> CooldownResponse:
        check = state.services.combat(session).cooldown_status(user_id)
        return CooldownResponse(
            eligible=check.eligible,
            cooldown_end=check.cooldown_end,
            cooldown_seconds=check.duration.total_seconds(),
        )

    return await state.run(work)


@router.post("/wars", response_model=ClanWarSummary, status_code=status.HTTP_201_CREATED)
async def declare_war(
    request: DeclareWarRequest, user_id: UserIdDep, state: ApiStateDep
) -> ClanWarSummary:
    def work(session: Session) -> ClanWarSummary:
        war = state.services.wars(session).declare_war(user_id, request.target_clan_id)
        return ClanWarSummary.model_validate(war)

    return await state.run(work)


@router.post("/wars/settle", response_model=list[SettlementSummary])
async def settle_wars(state: ApiStateDep) -> list[SettlementSummary]:
    results = await state.settlement.run_now()
    return [SettlementSummary.from_result(result) for result in results]


@router.get("/clans/available-for-war", response_model=list[ClanSummary])
async def available_clans_for_war(user_id: UserIdDep, state: ApiStateDep) -> list[ClanSummary]:
    def work(session: Session) -> list[ClanSummary]:
        clans = state.services.wars(session).available_clans_for_war(user_id)
        return [ClanSummary.model_validate(clan) for clan in clans]

    return await state.run(work)


@router.get("/clans/{clan_id}/wars", response_model=WarHistoryResponse)
async def war_history(
    clan_id: int,
    state: ApiStateDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> WarHistoryResponse:
    def work(session: Session) -> WarHistoryResponse:
        result = state.services.wars(session).war_history(clan_id, page=page, limit=limit)
        return WarHistoryResponse(
            data=[ClanWarSummary.model_validate(war) for war in result.wars],
            total=result.total,
            page=result.page,
            limit=result.limit,
        )

    return await state.run(work)


@router.get("/clans/{clan_id}/wars/active", response_model=list[ClanWarSummary])
async def active_wars(clan_id: int, state: ApiStateDep) -> list[ClanWarSummary]:
    def work(session: Session) -> list[ClanWarSummary]:
        wars = state.services.wars(session).active_wars(clan_id)
        return [ClanWarSummary.model_validate(war) for war in wars]

    return await state.run(work)


@router.get("/enemy-clans", response_model=list[EnemyClanSummary])
async def enemy_clans(user_id: UserIdDep, state: ApiStateDep) -> list[EnemyClanSummary]:
    def work(session: Session) -> list[EnemyClanSummary]:
        return [
            EnemyClanSummary(
                **ClanSummary.model_validate(enemy.clan).model_dump(),
                war_id=enemy.war.id,
                war_start_time=enemy.war.start_time,
                war_end_time=enemy.war.end_time,
            )
            for enemy in state.services.wars(session).enemy_clans(user_id)
        ]

    return await state.run(work)


@router.get("/enemy-clans/{clan_id}/members", response_model=list[MemberSummary])
async def enemy_clan_members(
    clan_id: int, user_id: UserIdDep, state: ApiStateDep
) -> list[MemberSummary]:
    def work(session: Session) -> list[MemberSummary]:
        members = state.services.wars(session).enemy_clan_members(user_id, clan_id)
        return [MemberSummary.model_validate(member) for member in members]

    return await state.run(work)


@router.post("/clans", response_model=ClanSummary, status_code=status.HTTP_201_CREATED)
async def create_clan(
    request: CreateClanRequest, user_id: UserIdDep, state: ApiStateDep
) -> ClanSummary:
    def work(session: Session) -> ClanSummary:
        clan = state.services.membership(session).create_clan(
            user_id, request.name, max_members=request.max_members
        )
        return ClanSummary.model_validate(clan)

    return await state.run(work)


@router.post("/clans/{clan_id}/join", response_model=MemberSummary)
async def join_clan(clan_id: int, user_id: UserIdDep, state: ApiStateDep) -> MemberSummary:
    def work(session: Session) -> MemberSummary:
        member = state.services.membership(session).join_clan(user_id, clan_id)
        return MemberSummary.model_validate(member)

    return await state.run(work)


@router.post("/clans/leave", response_model=MemberSummary)
async def leave_clan(user_id: UserIdDep, state: ApiStateDep) -> MemberSummary:
    def work(session: Session) -> MemberSummary:
        return MemberSummary.model_validate(state.services.membership(session).leave_clan(user_id))

    return await state.run(work)


@router.post("/clans/members/{member_id}/kick", response_model=MemberSummary)
async def kick_member(member_id: int, user_id: UserIdDep, state: ApiStateDep) -> MemberSummary:
    def work(session: Session) -> MemberSummary:
        member = state.services.membership(session).kick_member(user_id, member_id)
        return MemberSummary.model_validate(member)

    return await state.run(work)


@router.get("/guards", response_model=list[GuardSummary])
async def list_guards(user_id: UserIdDep, state: ApiStateDep) -> list[GuardSummary]:
    def work(session: Session) -> list[GuardSummary]:
        guards = state.services.guards(session).list_guards(user_id)
        return [GuardSummary.model_validate(guard) for guard in guards]

    return await state.run(work)


@router.post("/guards", response_model=GuardSummary, status_code=status.HTTP_201_CREATED)
async def grant_guard(
    request: GrantGuardRequest, user_id: UserIdDep, state: ApiStateDep
) -> GuardSummary:
    def work(session: Session) -> GuardSummary:
        guard = state.services.guards(session).grant_guard(
            user_id, request.strength, is_first=request.is_first, name=request.name
        )
        return GuardSummary.model_validate(guard)

    return await state.run(work)


@router.get("/clans/rating", response_model=ClanRatingResponse)
async def clan_rating(
    state: ApiStateDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> ClanRatingResponse:
    def work(session: Session) -> ClanRatingResponse:
        result = state.services.ratings(session).clan_rating(page=page, limit=limit)
        return ClanRatingResponse(
            data=[
                ClanRatingEntry(
                    **ClanSummary.model_validate(entry.clan).model_dump(),
                    money=entry.money,
                    wins=entry.wins,
                    losses=entry.losses,
                    score=entry.score,
                )
                for entry in result.entries
            ],
            total=result.total,
            page=result.page,
            limit=result.limit,
        )

    return await state.run(work)


@router.get("/users/rating", response_model=UserRatingResponse)
async def user_rating(
    state: ApiStateDep,
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> UserRatingResponse:
    def work(session: Session) -> UserRatingResponse:
        result = state.services.ratings(session).user_rating(page=page, limit=limit)
        return UserRatingResponse(
            data=[MemberSummary.model_validate(user) for user in result.entries],
            total=result.total,
            page=result.page,
            limit=result.limit,
        )

    return await state.run(work)
