"""
scoring.py

This module scores pick maps against a room's results map and guards the
bracket lock. It is structured in three steps:

  1. Base Score Calculation: slot_weight(), score() and score_breakdown().
  2. Best Case Projection: eliminated_teams() and best_case_points().
  3. Submission: missing_slots(), validate_submission() and the PickSet
     record whose submit() is a single guarded transition.

Every function here is pure; missing entries simply score zero.
"""

import datetime
import threading
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Optional

from constants import (
    CONFERENCE, DIVISIONAL, REQUIRED_SLOTS, ROUND_ORDER, ROUND_WEIGHTS,
    SUPER_BOWL, SUPER_BOWL_SLOT, WILD_CARD
)


class IncompleteBracketError(Exception):
    """Raised when a pick set is submitted without a winner for every slot."""

    def __init__(self, missing):
        self.missing = list(missing)
        super().__init__(
            f"Bracket is missing {len(self.missing)} pick(s): {', '.join(self.missing)}"
        )


class BracketLockedError(Exception):
    """Raised on any write to a pick set that has already been submitted."""
    pass


# ---------------------------
# Step 1: Base Score Calculation
# ---------------------------
def round_for_slot(slot_id):
    """Round of a slot id by naming convention; None for unknown ids."""
    if slot_id == SUPER_BOWL_SLOT:
        return SUPER_BOWL
    if "wc" in slot_id:
        return WILD_CARD
    if "div" in slot_id:
        return DIVISIONAL
    if "conf" in slot_id:
        return CONFERENCE
    return None


def slot_weight(slot_id):
    round_name = round_for_slot(slot_id)
    return ROUND_WEIGHTS.get(round_name, 0) if round_name else 0


def _is_correct(picks, results, slot_id):
    picked = picks.get(slot_id)
    actual = results.get(slot_id)
    return bool(picked) and bool(actual) and str(picked) == str(actual)


def score(picks, results):
    """
    Round-weighted points for one pick map.

    A slot earns its weight when the picked team equals the adjudicated
    winner. Absent picks or results earn nothing.
    """
    picks = picks or {}
    results = results or {}
    return sum(slot_weight(slot_id) for slot_id in picks if _is_correct(picks, results, slot_id))


def score_breakdown(picks, results):
    """
    Correct picks and points per round.

    Returns:
        dict: {round_name: {"correct": int, "decided": int, "points": int}}
    """
    picks = picks or {}
    results = results or {}
    breakdown = {r: {"correct": 0, "decided": 0, "points": 0} for r in ROUND_ORDER}
    for slot_id in REQUIRED_SLOTS:
        round_name = round_for_slot(slot_id)
        if results.get(slot_id):
            breakdown[round_name]["decided"] += 1
        if _is_correct(picks, results, slot_id):
            breakdown[round_name]["correct"] += 1
            breakdown[round_name]["points"] += slot_weight(slot_id)
    return breakdown


# ---------------------------
# Step 2: Best Case Projection
# ---------------------------
def eliminated_teams(results, actual_matchups):
    """
    Ids of teams that have lost a decided game.

    Args:
        results (dict): slot_id -> winning team id.
        actual_matchups (list[Matchup]): The real bracket (live pairings) so
            the loser of every decided slot is known.
    """
    results = results or {}
    out = set()
    for matchup in actual_matchups or []:
        winner = results.get(matchup.id) or matchup.actual_winner
        if not winner or not matchup.is_resolved:
            continue
        for team in (matchup.team1, matchup.team2):
            if str(team.id) != str(winner) and team.abbreviation != str(winner):
                out.add(team.id)
    return out


def best_case_points(picks, results, actual_matchups=None):
    """
    Points a pick map could still reach if every remaining pick came true.

    Current points plus the weight of each undecided slot whose picked team
    has not been eliminated.
    """
    picks = picks or {}
    results = results or {}
    gone = eliminated_teams(results, actual_matchups)
    potential = 0
    for slot_id in REQUIRED_SLOTS:
        picked = picks.get(slot_id)
        if not picked or results.get(slot_id):
            continue
        if str(picked) not in gone:
            potential += slot_weight(slot_id)
    return score(picks, results) + potential


# ---------------------------
# Step 3: Submission
# ---------------------------
def missing_slots(picks):
    """Required slot ids without a non-empty pick, in canonical order."""
    picks = picks or {}
    return [slot_id for slot_id in REQUIRED_SLOTS if not picks.get(slot_id)]


def validate_submission(picks):
    """
    Raises IncompleteBracketError naming every slot still lacking a pick.
    """
    missing = missing_slots(picks)
    if missing:
        raise IncompleteBracketError(missing)


@dataclass
class PickSet:
    """
    One user's picks for one room.

    Attributes:
        user_id (str): Opaque user id.
        room_id (str): Opaque room id.
        picks (Mapping): slot_id -> team_id. Read-only once submitted.
        submitted (bool): The bracket lock.
        submitted_at (datetime): When the lock was taken.
        tiebreaker_value (int): Guess of the combined Super Bowl score.
    """
    user_id: str
    room_id: str
    picks: dict = field(default_factory=dict)
    submitted: bool = False
    submitted_at: Optional[datetime.datetime] = None
    tiebreaker_value: Optional[int] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def __post_init__(self):
        self.picks = {str(k): str(v) for k, v in dict(self.picks or {}).items() if v}
        if self.submitted:
            self.picks = MappingProxyType(self.picks)

    def _check_open(self):
        if self.submitted:
            raise BracketLockedError(f"Bracket for user {self.user_id} in room {self.room_id} is already submitted.")

    def set_pick(self, slot_id, team_id):
        if slot_id not in REQUIRED_SLOTS:
            raise ValueError(f"Unknown slot id '{slot_id}'.")
        with self._lock:
            self._check_open()
            if team_id:
                self.picks[slot_id] = str(team_id)
            else:
                self.picks.pop(slot_id, None)

    def submit(self, tiebreaker_value=None, now=None):
        """
        Locks the pick set. Only one caller can ever succeed.

        Raises:
            BracketLockedError: If already submitted.
            IncompleteBracketError: If any required slot is unpicked.
        """
        with self._lock:
            self._check_open()
            validate_submission(self.picks)
            if tiebreaker_value is not None:
                self.tiebreaker_value = tiebreaker_value
            self.picks = MappingProxyType(dict(self.picks))
            self.submitted_at = now or datetime.datetime.now(datetime.timezone.utc)
            self.submitted = True
