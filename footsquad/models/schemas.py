"""
Pydantic models for API request/response validation.
"""

from datetime import datetime
from typing import Optional, List
from pydantic import BaseModel, Field, ConfigDict, field_validator

from footsquad.utils.constants import (
    MIN_RATING_SCORE,
    MAX_RATING_SCORE,
    MAX_RATINGS_PER_SUBMISSION,
)


class PlayerCreate(BaseModel):
    """Request to create the caller's player profile."""

    full_name: str = Field(min_length=1, max_length=255)
    city: Optional[str] = None
    position: Optional[str] = Field(default=None, pattern="^(GK|DEF|MID|ATT)$")


class PlayerResponse(BaseModel):
    """Player profile with season counters."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: Optional[int] = None
    full_name: str
    city: Optional[str] = None
    position: Optional[str] = None
    team_id: Optional[int] = None
    is_captain: bool
    total_matches: int
    total_points: int
    total_ratings: float
    rating_count: int
    average_rating: Optional[float] = None
    motm_count: int


class TeamCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    city: Optional[str] = None


class TeamSummary(BaseModel):
    id: int
    name: str
    city: Optional[str] = None
    captain_id: int


class TeamDetail(TeamSummary):
    total_wins: int
    total_matches: int
    members: List[PlayerResponse] = []


class AddTeamPlayerRequest(BaseModel):
    player_id: int


class MatchCreate(BaseModel):
    """Request to create a match for the caller's team."""

    type: str = Field(pattern="^(public|friendly)$")
    city: Optional[str] = None
    pitch_name: Optional[str] = None
    match_date: Optional[datetime] = None
    format: str = Field(default="5v5", pattern="^(5v5|8v8|11v11)$")
    max_players_per_team: Optional[int] = Field(default=None, ge=1)


class MatchResponse(BaseModel):
    """Match row as returned by the API."""

    id: int
    type: str
    status: str
    city: Optional[str] = None
    pitch_name: Optional[str] = None
    match_date: Optional[str] = None
    format: Optional[str] = None
    max_players_per_team: int
    team_a_id: int
    team_b_id: Optional[int] = None
    score_a: Optional[int] = None
    score_b: Optional[int] = None
    score_conflict: bool
    score_conflict_count: int
    motm_voting_open: bool
    motm_winner_id: Optional[int] = None
    points_awarded: bool
    created_by: int
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    team_a: Optional[TeamSummary] = None
    team_b: Optional[TeamSummary] = None


class RosterEntry(BaseModel):
    id: int
    match_id: int
    player_id: int
    team_id: int
    team_side: str
    join_status: str
    full_name: str
    position: Optional[str] = None
    created_at: Optional[str] = None


class MatchRequestResponse(BaseModel):
    """Friendly invitation or public challenge."""

    id: int
    match_id: int
    team_id: int
    direction: str
    status: str
    created_at: Optional[str] = None
    responded_at: Optional[str] = None
    team: Optional[TeamSummary] = None


class MatchDetailResponse(MatchResponse):
    """Aggregated match view: rosters per side, live counts and queues."""

    roster_a: List[RosterEntry] = []
    roster_b: List[RosterEntry] = []
    count_a: int = 0
    count_b: int = 0
    pending_requests: List[RosterEntry] = []
    opponent_requests: List[MatchRequestResponse] = []


class InviteTeamRequest(BaseModel):
    team_id: int


class JoinMatchRequest(BaseModel):
    team_id: int
    team_side: str = Field(pattern="^(A|B)$")


class JoinStatusResponse(BaseModel):
    join_status: Optional[str] = None
    team_side: Optional[str] = None
    team_id: Optional[int] = None


class JoinDecisionResponse(BaseModel):
    match_id: int
    player_id: int
    team_id: int
    team_side: str
    join_status: str


class ScoreSubmitRequest(BaseModel):
    """A captain's report of the final score."""

    score_a: int = Field(ge=0)
    score_b: int = Field(ge=0)


class ScoreStatusResponse(BaseModel):
    match_id: int
    status: str
    score_a: Optional[int] = None
    score_b: Optional[int] = None
    submitted_a: bool
    submitted_b: bool
    my_side: Optional[str] = None
    my_submission: Optional[str] = None
    score_conflict: bool
    score_conflict_count: int
    attempts_remaining: int


class ScoreSubmitResponse(ScoreStatusResponse):
    state: str


class MotmVoteRequest(BaseModel):
    voted_player_id: int


class MotmVoteResponse(BaseModel):
    voted: bool
    finalized: bool
    winner_id: Optional[int] = None


class MotmCount(BaseModel):
    player_id: int
    votes: int


class MotmResultsResponse(BaseModel):
    match_id: int
    voting_open: bool
    total_votes: int
    counts: List[MotmCount]
    leaders: List[int]
    winner_id: Optional[int] = None
    has_voted: Optional[bool] = None


class RatingItem(BaseModel):
    player_id: int
    score: float = Field(ge=MIN_RATING_SCORE, le=MAX_RATING_SCORE)


class RatingSubmitRequest(BaseModel):
    """Ratings for opponents; the total is capped by the rating budget."""

    ratings: List[RatingItem] = Field(min_length=1, max_length=MAX_RATINGS_PER_SUBMISSION)

    @field_validator("ratings")
    @classmethod
    def distinct_players(cls, ratings: List[RatingItem]) -> List[RatingItem]:
        if len({r.player_id for r in ratings}) != len(ratings):
            raise ValueError("Each player can only be rated once per submission")
        return ratings


class RatingSubmitResponse(BaseModel):
    match_id: int
    rated: int
    total: float
    max_budget: int


class RatingResult(BaseModel):
    player_id: int
    average: float
    count: int


class RatingResultsResponse(BaseModel):
    match_id: int
    results: List[RatingResult]
    has_rated: Optional[bool] = None
    opponent_count: Optional[int] = None
    max_budget: Optional[int] = None


class NotificationResponse(BaseModel):
    """Notification response model."""

    id: int
    user_id: int
    type: str
    title: str
    message: str
    data: Optional[dict] = None
    is_read: bool
    read_at: Optional[str] = None
    link_url: Optional[str] = None
    created_at: Optional[str] = None


class NotificationListResponse(BaseModel):
    """Paginated notification list response."""

    notifications: List[NotificationResponse]
    total_count: int
    has_more: bool
