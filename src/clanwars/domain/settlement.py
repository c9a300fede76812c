"""Pure war settlement rules: picking a winner and deciding which thefts to undo."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

from clanwars.domain.enums import ClanWarStatus


@dataclass(frozen=True, slots=True)
class WarVerdict:
    status: ClanWarStatus
    winner_clan_id: int
    loser_clan_id: int
    clan_1_thefts: int
    clan_2_thefts: int


def decide_winner(
    clan_1_id: int, clan_2_id: int, thief_clan_ids: Iterable[int | None]
) -> WarVerdict:
    """Count thefts per clan; strictly more wins, a tie or no thefts goes to clan 1.

    Thefts by thieves that belonged to neither clan count for nobody.
    """
    clan_1_thefts = 0
    clan_2_thefts = 0
    for thief_clan_id in thief_clan_ids:
        if thief_clan_id == clan_1_id:
            clan_1_thefts += 1
        elif thief_clan_id == clan_2_id:
            clan_2_thefts += 1

    if clan_2_thefts > clan_1_thefts:
        status = ClanWarStatus.WON_BY_CLAN_2
        winner, loser = clan_2_id, clan_1_id
    else:
        status = ClanWarStatus.WON_BY_CLAN_1
        winner, loser = clan_1_id, clan_2_id

    return WarVerdict(
        status=status,
        winner_clan_id=winner,
        loser_clan_id=loser,
        clan_1_thefts=clan_1_thefts,
        clan_2_thefts=clan_2_thefts,
    )


def should_reverse(
    thief_clan_id: int | None, victim_clan_id: int | None, verdict: WarVerdict
) -> bool:
    """A theft is undone when the victim's clan won or the thief's clan lost."""
    return victim_clan_id == verdict.winner_clan_id or thief_clan_id == verdict.loser_clan_id
