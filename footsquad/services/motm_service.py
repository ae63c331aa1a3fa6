"""
Man of the Match voting.

Voting opens when the score is confirmed. Every approved participant casts
one vote for another participant; the vote that completes the electorate
finalizes the award. Finalization closes voting with a conditional UPDATE,
so the winner's bonus is applied exactly once.
"""

from typing import Dict, List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func, and_
from sqlalchemy.exc import IntegrityError
from footsquad.database.models import Match, MotmVote, NotificationType, Player
from footsquad.services.errors import ConflictError, PermissionDeniedError, ValidationError
from footsquad.services.lock_service import match_lock, MOTM_SCOPE
from footsquad.services.match_service import (
    get_match_or_404,
    lock_match,
    match_link,
    release_read_transaction,
)
from footsquad.services.notification_service import notify_players
from footsquad.services.roster_service import get_approved_player_ids
from footsquad.utils.constants import MOTM_BONUS_POINTS
import logging

logger = logging.getLogger(__name__)


async def has_voted(session: AsyncSession, match_id: int, voter_id: int) -> bool:
    result = await session.execute(
        select(MotmVote.id).where(and_(MotmVote.match_id == match_id, MotmVote.voter_id == voter_id))
    )
    return result.first() is not None


async def _vote_count(session: AsyncSession, match_id: int) -> int:
    result = await session.execute(
        select(func.count(MotmVote.id)).where(MotmVote.match_id == match_id)
    )
    return result.scalar_one() or 0


async def _tally(session: AsyncSession, match_id: int) -> List[Dict]:
    """Votes per candidate, most votes first; ties by earliest vote received."""
    first_vote = func.min(MotmVote.id).label("first_vote")
    votes = func.count(MotmVote.id).label("votes")
    result = await session.execute(
        select(MotmVote.voted_player_id, votes, first_vote)
        .where(MotmVote.match_id == match_id)
        .group_by(MotmVote.voted_player_id)
        .order_by(votes.desc(), first_vote.asc())
    )
    return [{"player_id": row.voted_player_id, "votes": row.votes} for row in result]


async def vote(session: AsyncSession, match_id: int, voter_id: int, voted_player_id: int) -> Dict:
    """
    Cast a Man of the Match vote.

    Returns:
        Dict with voted, finalized and winner_id (set when this vote closed voting)

    Raises:
        NotFoundError: Match does not exist
        ConflictError: Voting closed or voter already voted
        PermissionDeniedError: Voter did not play
        ValidationError: Self-vote or candidate did not play
    """
    await get_match_or_404(session, match_id)

    await release_read_transaction(session)
    async with match_lock(match_id, MOTM_SCOPE):
        match = await lock_match(session, match_id)
        if not match.motm_voting_open:
            raise ConflictError("MOTM voting is not open")

        participants = await get_approved_player_ids(session, match_id)
        if voter_id not in participants:
            raise PermissionDeniedError("Only match participants can vote")
        if voter_id == voted_player_id:
            raise ValidationError("Cannot vote for yourself")
        if voted_player_id not in participants:
            raise ValidationError("Player did not play in this match")
        if await has_voted(session, match_id, voter_id):
            raise ConflictError("Already voted")

        try:
            async with session.begin_nested():
                session.add(
                    MotmVote(match_id=match_id, voter_id=voter_id, voted_player_id=voted_player_id)
                )
        except IntegrityError:
            raise ConflictError("Already voted")

        electorate_complete = await _vote_count(session, match_id) >= len(participants)
        await session.commit()

    logger.info(f"Player {voter_id} voted for {voted_player_id} as MOTM of match {match_id}")

    winner_id = None
    if electorate_complete:
        winner_id = await finalize_motm_winner(session, match_id)
    return {"voted": True, "finalized": electorate_complete, "winner_id": winner_id}


async def finalize_motm_winner(session: AsyncSession, match_id: int) -> Optional[int]:
    """
    Close voting and award the Man of the Match.

    The winner gets motm_count + 1 and MOTM_BONUS_POINTS season points.
    Participants are notified.

    Returns:
        Winner's player id, or None if voting was already closed or nobody voted
    """
    closed = await session.execute(
        update(Match)
        .where(and_(Match.id == match_id, Match.motm_voting_open == True))  # noqa: E712
        .values(motm_voting_open=False)
    )
    if closed.rowcount != 1:
        logger.info(f"MOTM voting for match {match_id} already closed")
        return None

    tally = await _tally(session, match_id)
    if not tally:
        await session.commit()
        logger.info(f"MOTM voting for match {match_id} closed without votes")
        return None

    winner_id = tally[0]["player_id"]
    await session.execute(
        update(Player)
        .where(Player.id == winner_id)
        .values(
            motm_count=Player.motm_count + 1,
            total_points=Player.total_points + MOTM_BONUS_POINTS,
        )
        .execution_options(synchronize_session="fetch")
    )
    await session.execute(
        update(Match).where(Match.id == match_id).values(motm_winner_id=winner_id)
    )
    await session.commit()
    logger.info(f"Player {winner_id} is Man of the Match for match {match_id} ({tally[0]['votes']} votes)")

    winner_name = (
        await session.execute(select(Player.full_name).where(Player.id == winner_id))
    ).scalar_one_or_none()
    await notify_players(
        session,
        await get_approved_player_ids(session, match_id),
        NotificationType.MOTM_WINNER.value,
        "Man of the Match",
        f"{winner_name or 'A player'} was voted Man of the Match",
        data={"match_id": match_id, "player_id": winner_id},
        link_url=match_link(match_id),
    )
    await session.commit()
    return winner_id


async def get_motm_results(session: AsyncSession, match_id: int) -> Dict:
    match = await get_match_or_404(session, match_id)
    tally = await _tally(session, match_id)
    top = tally[0]["votes"] if tally else 0
    return {
        "match_id": match_id,
        "voting_open": match.motm_voting_open,
        "total_votes": sum(entry["votes"] for entry in tally),
        "counts": tally,
        "leaders": [entry["player_id"] for entry in tally if entry["votes"] == top] if tally else [],
        "winner_id": match.motm_winner_id,
    }
