"""
Score consensus between the two captains.

Each captain reports the final score as seen from the match (score_a,
score_b). Matching reports complete the match; a mismatch clears both reports
and grants one retry; a second mismatch ends the match as a null result.

Transitions (per submission, inside the per-match score lane):

    other side missing   -> "waiting"
    both equal           -> "confirmed"  (status completed, points, MOTM opens)
    differ, 1st conflict -> "conflict"   (reports cleared, last chance)
    differ, 2nd conflict -> "null_result"
"""

from typing import Dict, Optional, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from footsquad.database.models import Match, MatchStatus, NotificationType, TeamSide
from footsquad.services.errors import ConflictError, PermissionDeniedError, ValidationError
from footsquad.services.lock_service import match_lock, SCORE_SCOPE
from footsquad.services.match_service import (
    get_match_or_404,
    lock_match,
    match_link,
    release_read_transaction,
)
from footsquad.services.notification_service import notify_players
from footsquad.services.player_service import get_player
from footsquad.services.points_service import award_match_points
from footsquad.services.team_service import get_team, is_captain_of
from footsquad.utils.constants import MAX_SCORE_CONFLICTS
import logging

logger = logging.getLogger(__name__)

SCORABLE_STATUSES = {MatchStatus.CONFIRMED.value, MatchStatus.IN_PROGRESS.value}

WAITING = "waiting"
CONFIRMED = "confirmed"
CONFLICT = "conflict"
NULL_RESULT = "null_result"


def format_score(score_a: int, score_b: int) -> str:
    return f"{score_a}-{score_b}"


def parse_score(value: Optional[str]) -> Optional[Tuple[int, int]]:
    """Stored "a-b" report as a (score_a, score_b) tuple; None when not reported."""
    if not value:
        return None
    score_a, score_b = value.split("-", 1)
    return int(score_a), int(score_b)


def _validate_score(value) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValidationError("Scores must be non-negative integers")
    return value


async def _captain_side(session: AsyncSession, match: Match, player_id: int) -> Optional[str]:
    player = await get_player(session, player_id)
    if is_captain_of(player, await get_team(session, match.team_a_id)):
        return TeamSide.A.value
    if match.team_b_id is not None and is_captain_of(player, await get_team(session, match.team_b_id)):
        return TeamSide.B.value
    return None


async def _captain_ids(session: AsyncSession, match: Match) -> Dict[str, Optional[int]]:
    team_a = await get_team(session, match.team_a_id)
    team_b = await get_team(session, match.team_b_id)
    return {
        TeamSide.A.value: team_a.captain_id if team_a else None,
        TeamSide.B.value: team_b.captain_id if team_b else None,
    }


def _submission(match: Match, side: str) -> Optional[str]:
    if side == TeamSide.A.value:
        return match.score_submitted_by_a
    return match.score_submitted_by_b


def _set_submission(match: Match, side: str, value: Optional[str]) -> None:
    if side == TeamSide.A.value:
        match.score_submitted_by_a = value
    else:
        match.score_submitted_by_b = value


async def submit_score(
    session: AsyncSession, match_id: int, captain_player_id: int, score_a: int, score_b: int
) -> Dict:
    """
    Record one captain's report of the final score.

    Resubmitting before the other captain reports overwrites the earlier
    report.

    Returns:
        Dict with "state" (waiting, confirmed, conflict or null_result) and
        the resulting score status

    Raises:
        ValidationError: Negative or non-integer scores
        NotFoundError: Match does not exist
        PermissionDeniedError: Caller captains neither team
        ConflictError: Match is not awaiting a score
    """
    score_a = _validate_score(score_a)
    score_b = _validate_score(score_b)
    reported = format_score(score_a, score_b)

    await get_match_or_404(session, match_id)

    await release_read_transaction(session)
    async with match_lock(match_id, SCORE_SCOPE):
        match = await lock_match(session, match_id)
        side = await _captain_side(session, match, captain_player_id)
        if side is None:
            raise PermissionDeniedError("Only team captains can submit scores")
        if match.status not in SCORABLE_STATUSES:
            raise ConflictError("Scores can only be submitted for confirmed matches")

        other_side = TeamSide.B.value if side == TeamSide.A.value else TeamSide.A.value
        _set_submission(match, side, reported)
        other_report = parse_score(_submission(match, other_side))

        if other_report is None:
            state = WAITING
        elif other_report == (score_a, score_b):
            state = CONFIRMED
            match.status = MatchStatus.COMPLETED.value
            match.score_a = score_a
            match.score_b = score_b
            match.score_conflict = False
            match.motm_voting_open = True
            await session.flush()
            await award_match_points(session, match_id)
        else:
            match.score_conflict_count = (match.score_conflict_count or 0) + 1
            match.score_submitted_by_a = None
            match.score_submitted_by_b = None
            if match.score_conflict_count >= MAX_SCORE_CONFLICTS:
                state = NULL_RESULT
                match.status = MatchStatus.NULL_RESULT.value
                match.score_conflict = False
            else:
                state = CONFLICT
                match.score_conflict = True

        await session.flush()
        await session.commit()

    logger.info(f"Match {match_id}: side {side} reported {reported} -> {state}")

    captains = await _captain_ids(session, match)
    data = {"match_id": match_id}
    link_url = match_link(match_id)
    if state == WAITING:
        await notify_players(
            session,
            [captains[other_side]],
            NotificationType.SCORE_REQUEST.value,
            "Confirm the Score",
            f"The other captain reported {reported}. Submit your score to confirm",
            data=data,
            link_url=link_url,
        )
    elif state == CONFIRMED:
        await notify_players(
            session,
            captains.values(),
            NotificationType.SCORE_CONFIRMED.value,
            "Score Confirmed",
            f"Final score {reported} confirmed. Man of the Match voting is open",
            data=data,
            link_url=link_url,
        )
    elif state == CONFLICT:
        await notify_players(
            session,
            captains.values(),
            NotificationType.SCORE_CONFLICT.value,
            "Score Conflict",
            "The submitted scores don't match. Last chance: submit the score again",
            data=data,
            link_url=link_url,
        )
    else:
        await notify_players(
            session,
            captains.values(),
            NotificationType.SCORE_NULL.value,
            "Match Result Voided",
            "The scores didn't match twice. The match has no result",
            data=data,
            link_url=link_url,
        )
    await session.commit()

    return {"state": state, **await get_score_status(session, match_id, captain_player_id)}


async def get_score_status(
    session: AsyncSession, match_id: int, player_id: Optional[int] = None
) -> Dict:
    """
    Score consensus progress for a match.

    When player_id is a captain of the match, my_side and my_submission
    describe that captain's outstanding report.
    """
    match = await get_match_or_404(session, match_id)
    my_side = await _captain_side(session, match, player_id) if player_id is not None else None
    conflicts = match.score_conflict_count or 0

    return {
        "match_id": match.id,
        "status": match.status,
        "score_a": match.score_a,
        "score_b": match.score_b,
        "submitted_a": match.score_submitted_by_a is not None,
        "submitted_b": match.score_submitted_by_b is not None,
        "my_side": my_side,
        "my_submission": _submission(match, my_side) if my_side else None,
        "score_conflict": match.score_conflict,
        "score_conflict_count": conflicts,
        "attempts_remaining": max(MAX_SCORE_CONFLICTS - conflicts, 0)
        if match.status in SCORABLE_STATUSES
        else 0,
    }
