"""
SQLAlchemy ORM models for the FootSquad match engine.
"""

import enum
from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from footsquad.database.db import Base


class PlayerPosition(str, enum.Enum):
    """Preferred pitch position."""

    GK = "GK"
    DEF = "DEF"
    MID = "MID"
    ATT = "ATT"


class MatchType(str, enum.Enum):
    """How a match acquires its second team."""

    PUBLIC = "public"
    FRIENDLY = "friendly"


class MatchFormat(str, enum.Enum):
    """Players per side on the pitch."""

    FIVE_A_SIDE = "5v5"
    EIGHT_A_SIDE = "8v8"
    ELEVEN_A_SIDE = "11v11"


class MatchStatus(str, enum.Enum):
    """Match lifecycle status enum."""

    PENDING = "pending"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NULL_RESULT = "null_result"


class TeamSide(str, enum.Enum):
    """Side of the match a roster row belongs to."""

    A = "A"
    B = "B"


class JoinStatus(str, enum.Enum):
    """Roster join request status enum."""

    PENDING = "pending"
    APPROVED = "approved"
    DECLINED = "declined"


class MatchRequestDirection(str, enum.Enum):
    """Who initiated an opponent request."""

    INVITE = "invite"  # creator invited a team to a friendly
    CHALLENGE = "challenge"  # another captain challenged a public match


class MatchRequestStatus(str, enum.Enum):
    """Opponent request status enum."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class NotificationType(str, enum.Enum):
    """Notification type enum."""

    JOIN_REQUEST = "join_request"
    JOIN_APPROVED = "join_approved"
    JOIN_DECLINED = "join_declined"
    PLAY_REQUEST = "play_request"
    PLAY_REQUEST_ACCEPTED = "play_request_accepted"
    PLAY_REQUEST_DECLINED = "play_request_declined"
    MATCH_INVITE = "match_invite"
    MATCH_CANCELLED = "match_cancelled"
    SCORE_REQUEST = "score_request"
    SCORE_CONFIRMED = "score_confirmed"
    SCORE_CONFLICT = "score_conflict"
    SCORE_NULL = "score_null"
    MOTM_WINNER = "motm_winner"
    TEAM_INVITE = "team_invite"
    TEAM_REMOVED = "team_removed"


class User(Base):
    """User accounts (identity is issued by the external auth provider)."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    email = Column(String(320), nullable=True, unique=True)
    name = Column(String, nullable=True)
    is_verified = Column(Boolean, default=True, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    players = relationship("Player", back_populates="user")


class Player(Base):
    """Player profiles and season counters."""

    __tablename__ = "players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=True)
    full_name = Column(String(255), nullable=False)
    city = Column(String(100), nullable=True)
    position = Column(String(3), nullable=True)  # PlayerPosition value
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=True)
    is_captain = Column(Boolean, default=False, nullable=False)
    total_matches = Column(Integer, default=0, nullable=False)
    total_points = Column(Integer, default=0, nullable=False)
    total_ratings = Column(Float, default=0, nullable=False)  # Sum of all rating scores received
    rating_count = Column(Integer, default=0, nullable=False)
    motm_count = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Load server-side timestamps at flush; async sessions cannot lazy-load them
    __mapper_args__ = {"eager_defaults": True}

    # Relationships
    user = relationship("User", back_populates="players")
    team = relationship("Team", foreign_keys=[team_id], back_populates="members")

    __table_args__ = (
        Index("idx_players_user", "user_id"),
        Index("idx_players_team", "team_id"),
    )


class Team(Base):
    """Teams, each led by one captain."""

    __tablename__ = "teams"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    city = Column(String(100), nullable=True)
    captain_id = Column(Integer, nullable=False)  # players.id
    total_wins = Column(Integer, default=0, nullable=False)
    total_matches = Column(Integer, default=0, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"eager_defaults": True}

    # Relationships
    members = relationship("Player", foreign_keys="Player.team_id", back_populates="team")

    __table_args__ = (Index("idx_teams_captain", "captain_id"),)


class Match(Base):
    """Matches between a creator team (A) and an opponent team (B).

    team_b_id is never set at creation; negotiation binds it exactly once.
    Score submissions are stored per side as "a-b" strings until both
    captains agree.
    """

    __tablename__ = "matches"

    id = Column(Integer, primary_key=True, autoincrement=True)
    type = Column(String(20), nullable=False)  # MatchType value
    status = Column(String(20), nullable=False, default=MatchStatus.PENDING.value)
    city = Column(String(100), nullable=True)
    pitch_name = Column(String(255), nullable=True)
    match_date = Column(DateTime(timezone=True), nullable=True)
    format = Column(String(10), nullable=True)  # MatchFormat value
    max_players_per_team = Column(Integer, nullable=False, default=5)
    team_a_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    team_b_id = Column(Integer, ForeignKey("teams.id"), nullable=True)
    score_a = Column(Integer, nullable=True)
    score_b = Column(Integer, nullable=True)
    score_submitted_by_a = Column(String(16), nullable=True)
    score_submitted_by_b = Column(String(16), nullable=True)
    score_conflict = Column(Boolean, default=False, nullable=False)
    score_conflict_count = Column(Integer, default=0, nullable=False)
    motm_voting_open = Column(Boolean, default=False, nullable=False)
    motm_winner_id = Column(Integer, ForeignKey("players.id"), nullable=True)
    points_awarded = Column(Boolean, default=False, nullable=False)
    created_by = Column(Integer, ForeignKey("players.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"eager_defaults": True}

    # Relationships
    team_a = relationship("Team", foreign_keys=[team_a_id], lazy="select")
    team_b = relationship("Team", foreign_keys=[team_b_id], lazy="select")
    creator = relationship("Player", foreign_keys=[created_by])

    __table_args__ = (
        CheckConstraint(
            "score_conflict_count >= 0 AND score_conflict_count <= 2",
            name="ck_matches_conflict_count",
        ),
        Index("idx_matches_status", "status"),
        Index("idx_matches_type_status", "type", "status"),
        Index("idx_matches_team_a", "team_a_id"),
        Index("idx_matches_team_b", "team_b_id"),
        Index("idx_matches_date", "match_date"),
    )


class MatchRequest(Base):
    """Friendly invitations and public challenges for the opponent slot."""

    __tablename__ = "match_requests"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    direction = Column(String(20), nullable=False)  # MatchRequestDirection value
    status = Column(String(20), nullable=False, default=MatchRequestStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    responded_at = Column(DateTime(timezone=True), nullable=True)

    # Relationships
    match = relationship("Match")
    team = relationship("Team")

    __table_args__ = (
        Index("idx_match_requests_match_status", "match_id", "status"),
        Index("idx_match_requests_team", "team_id"),
    )


class MatchPlayer(Base):
    """Roster rows: one per player per match."""

    __tablename__ = "match_players"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    team_id = Column(Integer, ForeignKey("teams.id"), nullable=False)
    team_side = Column(String(1), nullable=False)  # TeamSide value
    join_status = Column(String(20), nullable=False, default=JoinStatus.PENDING.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __mapper_args__ = {"eager_defaults": True}

    # Relationships
    match = relationship("Match")
    player = relationship("Player")

    __table_args__ = (
        UniqueConstraint("match_id", "player_id", name="uq_match_players_match_player"),
        CheckConstraint("team_side IN ('A', 'B')", name="ck_match_players_side"),
        Index("idx_match_players_side_status", "match_id", "team_side", "join_status"),
        Index("idx_match_players_player", "player_id"),
    )


class MotmVote(Base):
    """Man of the Match ballots, one per voter per match."""

    __tablename__ = "motm_votes"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    voter_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    voted_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint("match_id", "voter_id", name="uq_motm_votes_match_voter"),
        Index("idx_motm_votes_match", "match_id"),
    )


class Rating(Base):
    """Post-match peer ratings of opponents."""

    __tablename__ = "ratings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    match_id = Column(Integer, ForeignKey("matches.id"), nullable=False)
    rater_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    rated_player_id = Column(Integer, ForeignKey("players.id"), nullable=False)
    score = Column(Float, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    __table_args__ = (
        UniqueConstraint(
            "match_id", "rater_id", "rated_player_id", name="uq_ratings_match_rater_rated"
        ),
        CheckConstraint("score >= 1 AND score <= 10", name="ck_ratings_score_range"),
        Index("idx_ratings_match", "match_id"),
        Index("idx_ratings_rated", "rated_player_id"),
    )


class Notification(Base):
    """User notifications for in-app messaging."""

    __tablename__ = "notifications"

    id = Column(Integer, primary_key=True, autoincrement=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    type = Column(String, nullable=False)  # NotificationType enum value
    title = Column(String(255), nullable=False)
    message = Column(Text, nullable=False)
    data = Column(
        Text, nullable=True
    )  # JSON string for flexible metadata (match_id, request_id, etc.)
    is_read = Column(Boolean, default=False, nullable=False)
    read_at = Column(DateTime(timezone=True), nullable=True)
    link_url = Column(String(500), nullable=True)  # Navigation target
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    user = relationship("User", backref="notifications")

    __table_args__ = (
        Index("idx_notifications_user_unread", "user_id", "is_read", "created_at"),
        Index("idx_notifications_user_created", "user_id", "created_at"),
    )
