"""
reconcile.py

The Result Reconciler.

Merges live/final outcomes reported by the external schedule feed into a
room's results map and compares a user's predicted pairings against the
real ones.

  - assign_slots() places each live game in its bracket slot by team
    identity (registry id, then abbreviation), never by feed order.
  - classify_pairing() / grade_slot() decide whether a prediction can be
    graded: only when both predicted teams are the live teams.
  - merge_results() is the auto-sync rule: a winner is written only into an
    empty slot, so a manual admin result always survives re-syncs.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional

from config import logger
from constants import (
    CONFERENCE, CONFERENCES, DIVISIONAL, BYE_SEED, REQUIRED_SLOTS, SUPER_BOWL,
    SUPER_BOWL_SLOT, WILD_CARD, WILD_CARD_PAIRINGS, conference_slot,
    divisional_slot, wild_card_slot
)
from models import LiveGame, Team
from teams import TeamRegistry, is_placeholder

BOTH_MATCH = "bothMatch"
ONE_MATCHES = "oneMatches"
NEITHER_MATCH = "neitherMatch"

CORRECT = "correct"
INCORRECT = "incorrect"


@dataclass(frozen=True)
class SlotGrade:
    """How a user's prediction for one slot compares to reality."""
    slot_id: str
    classification: Optional[str] = None
    outcome: Optional[str] = None

    def to_dict(self):
        return {"slot_id": self.slot_id, "classification": self.classification, "outcome": self.outcome}


@dataclass(frozen=True)
class ReconcileResult:
    updated_results: Dict[str, str]
    mismatches: Dict[str, str] = field(default_factory=dict)
    applied: List[str] = field(default_factory=list)
    grades: Dict[str, SlotGrade] = field(default_factory=dict)
    tiebreaker_total: Optional[int] = None


# ---------------------------
# Slot assignment
# ---------------------------
def assign_slots(live_games, registry):
    """
    Tags each live game with the slot it belongs to.

    Wild Card games are placed by the seed pair of their two teams,
    Divisional games by whether the conference's bye team plays in them,
    Conference games by conference and the Super Bowl by round. Games that
    cannot be placed, and second games claiming an occupied slot, are dropped.

    Returns:
        list[LiveGame]: Copies of the placeable games with slot_id set.
    """
    registry = registry if isinstance(registry, TeamRegistry) else TeamRegistry(registry)
    assigned = []
    taken = set()
    for game in live_games or []:
        slot_id = game.slot_id or _slot_for(game, registry)
        if slot_id is None:
            continue
        if slot_id in taken:
            logger.warning(f"Live game {game.espn_id} also maps to slot {slot_id}; ignoring it.")
            continue
        taken.add(slot_id)
        assigned.append(game if game.slot_id == slot_id else replace(game, slot_id=slot_id))
    return assigned


def _slot_for(game, registry):
    if game.round == SUPER_BOWL:
        return SUPER_BOWL_SLOT
    if not has_real_pairing(game):
        logger.debug(f"Live game {game.espn_id} ({game.round}) has no decided pairing yet.")
        return None

    conference = registry.conference_of(game.home)
    if conference not in CONFERENCES or registry.conference_of(game.away) != conference:
        logger.warning(f"Live game {game.espn_id}: teams {game.home.abbreviation}/{game.away.abbreviation} "
                       f"are not in the same conference.")
        return None

    if game.round == WILD_CARD:
        home, away = registry.resolve(game.home), registry.resolve(game.away)
        if home is None or away is None:
            logger.warning(f"Wild Card game {game.espn_id} involves a team outside the seeded field.")
            return None
        pair = (min(home.seed, away.seed), max(home.seed, away.seed))
        if pair not in WILD_CARD_PAIRINGS:
            logger.warning(f"Wild Card game {game.espn_id} pairs seeds {pair}, which is not a Wild Card pairing.")
            return None
        return wild_card_slot(conference, WILD_CARD_PAIRINGS.index(pair))

    if game.round == DIVISIONAL:
        bye = registry.by_seed(conference, BYE_SEED)
        hosts_bye = bye is not None and (bye.same_as(game.home) or bye.same_as(game.away))
        return divisional_slot(conference, 0 if hosts_bye else 1)

    if game.round == CONFERENCE:
        return conference_slot(conference)

    logger.warning(f"Live game {game.espn_id} has unknown round '{game.round}'.")
    return None


def has_real_pairing(game):
    return (game is not None and game.has_pairing
            and not is_placeholder(game.home) and not is_placeholder(game.away))


# ---------------------------
# Pairing classification and grading
# ---------------------------
def _pairing(source):
    """(team1, team2) of a Matchup or (home, away) of a LiveGame; None when incomplete."""
    if source is None:
        return None
    if isinstance(source, LiveGame):
        return (source.home, source.away) if has_real_pairing(source) else None
    if source.team1 is None or source.team2 is None:
        return None
    return source.team1, source.team2


def classify_pairing(predicted, actual):
    """
    Compares a predicted pairing with the real one, ignoring home/away order.

    Args:
        predicted (Matchup): The slot as derived from the user's own picks.
        actual (LiveGame | Matchup): The real pairing for the same slot.

    Returns:
        str: BOTH_MATCH, ONE_MATCHES or NEITHER_MATCH; None when either
        pairing is not fully known.
    """
    predicted_teams = _pairing(predicted)
    actual_teams = _pairing(actual)
    if predicted_teams is None or actual_teams is None:
        return None
    matched = sum(1 for team in predicted_teams if any(team.same_as(real) for real in actual_teams))
    if matched == 2:
        return BOTH_MATCH
    if matched == 1:
        return ONE_MATCHES
    return NEITHER_MATCH


def _names_team(team, team_id):
    return team is not None and team_id is not None and team.same_as(Team(id=str(team_id), abbreviation=str(team_id)))


def grade_slot(predicted, actual, results=None):
    """
    Grades one predicted slot.

    A prediction is marked correct or incorrect only when both predicted
    teams are the real teams and a winner is known (results map first, then
    a Final live game). Any other case stays ungraded (outcome None).
    """
    results = results or {}
    classification = classify_pairing(predicted, actual)
    outcome = None
    if classification == BOTH_MATCH and predicted.predicted_winner is not None:
        winner = results.get(predicted.id)
        if not winner and isinstance(actual, LiveGame):
            winner = actual.winner_id
        elif not winner and actual is not None:
            winner = actual.actual_winner
        if winner:
            outcome = CORRECT if _names_team(predicted.predicted_winner, winner) else INCORRECT
    return SlotGrade(slot_id=predicted.id, classification=classification, outcome=outcome)


# ---------------------------
# Auto-sync merge
# ---------------------------
def merge_results(results, winners):
    """
    Fills empty result slots with auto-synced winners.

    Existing values are never replaced, which lets an admin override win
    over every later sync. The input mapping is not modified.

    Args:
        results (dict): Current slot_id -> team_id results.
        winners (dict): slot_id -> team_id computed from Final live games.

    Returns:
        tuple: (updated results dict, list of slot ids that were written)
    """
    updated = dict(results or {})
    applied = []
    for slot_id in sorted(winners, key=_slot_order):
        team_id = winners[slot_id]
        if not team_id or updated.get(slot_id):
            continue
        updated[slot_id] = str(team_id)
        applied.append(slot_id)
    return updated, applied


def _slot_order(slot_id):
    return (REQUIRED_SLOTS.index(slot_id) if slot_id in REQUIRED_SLOTS else len(REQUIRED_SLOTS), slot_id)


def final_winners(assigned_games, registry):
    """slot_id -> registry team id for every Final live game with a winner."""
    winners = {}
    for game in assigned_games:
        if not game.is_final or not has_real_pairing(game) or game.winner_id is None:
            continue
        winning_team = game.home if game.home.id == game.winner_id else game.away
        known = registry.resolve(winning_team)
        winners[game.slot_id] = known.id if known is not None else winning_team.id
    return winners


def reconcile(live_games, registry, results, predicted_matchups=None):
    """
    Runs one reconciliation pass.

    Args:
        live_games (list[LiveGame]): Parsed feed games, any round, any order.
        registry (TeamRegistry | list): The seeded field.
        results (dict): The room's current results map.
        predicted_matchups (list[Matchup]): Optional hypothetical bracket of
            one user, used to flag pairings that differ from reality.

    Returns:
        ReconcileResult: the merged results map, the slots written by this
        pass, per-slot grades and mismatches, and the Super Bowl combined
        score once that game is Final.
    """
    registry = registry if isinstance(registry, TeamRegistry) else TeamRegistry(registry)
    assigned = assign_slots(live_games, registry)
    by_slot = {game.slot_id: game for game in assigned}

    updated, applied = merge_results(results, final_winners(assigned, registry))
    if applied:
        logger.info(f"Auto-sync recorded winners for: {', '.join(applied)}")

    grades = {}
    mismatches = {}
    for matchup in predicted_matchups or []:
        grade = grade_slot(matchup, by_slot.get(matchup.id), updated)
        grades[matchup.id] = grade
        if grade.classification in (ONE_MATCHES, NEITHER_MATCH):
            mismatches[matchup.id] = grade.classification

    tiebreaker_total = None
    super_bowl = by_slot.get(SUPER_BOWL_SLOT)
    if super_bowl is not None and super_bowl.is_final and has_real_pairing(super_bowl):
        tiebreaker_total = super_bowl.total_points

    return ReconcileResult(
        updated_results=updated,
        mismatches=mismatches,
        applied=applied,
        grades=grades,
        tiebreaker_total=tiebreaker_total
    )
