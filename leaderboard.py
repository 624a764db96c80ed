"""
leaderboard.py

The Leaderboard Ranker.

Entries are ordered by points (highest first). Ties are broken by how close
each user's tiebreaker guess came to the combined final score of the Super
Bowl; until that game is final there is nothing to measure against and tied
entries keep their arrival order.
"""

from models import LeaderboardEntry
from scoring import score


def tiebreaker_distance(entry, actual_tiebreaker):
    """Absolute distance to the real total; entries without a guess sort last."""
    if actual_tiebreaker is None:
        return 0
    if entry.tiebreaker_value is None:
        return float("inf")
    return abs(entry.tiebreaker_value - actual_tiebreaker)


def _rank_key(entry, actual_tiebreaker):
    return (-entry.points, tiebreaker_distance(entry, actual_tiebreaker))


def rank(entries, actual_tiebreaker=None):
    """
    Orders leaderboard entries.

    Python's sort is stable, so entries that tie on every key stay in the
    order they were given.

    Args:
        entries (list[LeaderboardEntry]): Unordered entries.
        actual_tiebreaker (int): Combined Super Bowl score, once final.

    Returns:
        list[LeaderboardEntry]: Best entry first.
    """
    return sorted(entries, key=lambda e: _rank_key(e, actual_tiebreaker))


def positions(ranked, actual_tiebreaker=None):
    """
    Standard competition ranking over an already ranked list: entries with
    the same points and tiebreaker distance share a position (1, 2, 2, 4).

    Returns:
        list[tuple[int, LeaderboardEntry]]
    """
    numbered = []
    previous_key = None
    current = 0
    for idx, entry in enumerate(ranked, start=1):
        key = _rank_key(entry, actual_tiebreaker)
        if key != previous_key:
            current = idx
        numbered.append((current, entry))
        previous_key = key
    return numbered


def build_leaderboard(pick_sets, results, actual_tiebreaker=None, usernames=None):
    """
    Scores every submitted pick set and ranks the result.

    Unsubmitted brackets never appear on the leaderboard.

    Args:
        pick_sets (list[PickSet]): All pick sets of a room.
        results (dict): The room's results map.
        actual_tiebreaker (int): Combined Super Bowl score, if final.
        usernames (dict): Optional user_id -> display name.
    """
    usernames = usernames or {}
    entries = []
    for pick_set in pick_sets:
        if not pick_set.submitted:
            continue
        entries.append(LeaderboardEntry(
            user_id=pick_set.user_id,
            points=score(pick_set.picks, results),
            tiebreaker_value=pick_set.tiebreaker_value,
            username=usernames.get(pick_set.user_id),
            submitted_at=pick_set.submitted_at.isoformat() if pick_set.submitted_at else None
        ))
    return rank(entries, actual_tiebreaker)
