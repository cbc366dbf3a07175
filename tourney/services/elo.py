"""
ELO rating math, independent of any bracket state.

Key design decisions:
- Start: 1500 ELO.
- K-factor: adaptive (32 for newcomers, 16 once a player has 100 games,
  8 after 300) so new ratings settle quickly and veterans stay stable.
- Daily cap: a player's rating may move at most ``max_daily_delta`` points
  in either direction on one calendar day.
- Formula: E = 1 / (1 + 10^((opponent - player) / scale))
           ΔR = K * (actual - expected)
"""
import math

DEFAULT_RATING = 1500.0
DEFAULT_SCALE = 400.0
DEFAULT_MAX_DAILY_DELTA = 100.0


def get_k_factor(games_played):
    """Adaptive K-factor: higher for new players, lower for veterans."""
    if games_played < 100:
        return 32  # Newcomer
    if games_played < 300:
        return 16  # Intermediate
    return 8       # Established


def expected_score(rating, opponent_rating, scale=DEFAULT_SCALE):
    """Win probability of ``rating`` against ``opponent_rating``."""
    return 1.0 / (1.0 + math.pow(10, (opponent_rating - rating) / scale))


def rating_delta(rating, opponent_rating, outcome, k_factor, scale=DEFAULT_SCALE):
    if not 0.0 <= outcome <= 1.0:
        raise ValueError('outcome must be between 0 and 1')
    return k_factor * (outcome - expected_score(rating, opponent_rating, scale))


def update_ratings(rating_a, rating_b, outcome, k_factor, scale=DEFAULT_SCALE):
    """Return the new ``(rating_a, rating_b)`` after one game.

    Args:
        rating_a: Current rating of player A.
        rating_b: Current rating of player B.
        outcome: Result from A's point of view: 1.0 win, 0.0 loss, 0.5 draw.
        k_factor: Shared K-factor for both players.
        scale: Logistic scale of the expected-score curve.
    """
    delta_a = rating_delta(rating_a, rating_b, outcome, k_factor, scale)
    return rating_a + delta_a, rating_b - delta_a


def clamp_daily_delta(delta, daily_delta, max_daily_delta=DEFAULT_MAX_DAILY_DELTA):
    """Limit ``delta`` so the day's accumulated movement stays within the cap."""
    upper = max_daily_delta - daily_delta
    lower = -max_daily_delta - daily_delta
    return max(lower, min(upper, delta))
