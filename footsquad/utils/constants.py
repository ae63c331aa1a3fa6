"""
Constants used across the match lifecycle engine.
"""

# League points per approved roster member
WIN_POINTS = 3
DRAW_POINTS = 1
LOSS_POINTS = 0

# Man of the Match bonus added to the winner's season points
MOTM_BONUS_POINTS = 2

# Peer ratings
MIN_RATING_SCORE = 1
MAX_RATING_SCORE = 10
MAX_RATINGS_PER_SUBMISSION = 10
RATING_BUDGET_PER_OPPONENT = 7  # Total budget = opponent_count * 7
TRIMMED_MEAN_MIN_RATINGS = 5  # Drop highest + lowest from this many ratings up

# Score consensus: the second mismatched pair ends the match as a null result
MAX_SCORE_CONFLICTS = 2

# Roster size per side derived from the match format
FORMAT_PLAYERS_PER_TEAM = {
    "5v5": 5,
    "8v8": 8,
    "11v11": 11,
}
DEFAULT_PLAYERS_PER_TEAM = 5
