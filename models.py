"""
models.py

Immutable records shared by the bracket, reconciliation, scoring and
leaderboard modules. Storage rows live in db.py; these are the in-memory
snapshots the pure functions pass around.
"""

from dataclasses import dataclass, asdict
from typing import Optional

from constants import FINAL, NOT_STARTED


@dataclass(frozen=True)
class Team:
    """
    A playoff entrant.

    Attributes:
        id (str): ESPN team id.
        name (str): Nickname, e.g. "Chiefs".
        city (str): Location, e.g. "Kansas City".
        abbreviation (str): ESPN abbreviation, e.g. "KC".
        conference (str): "AFC" or "NFC".
        seed (int): Conference seed 1-7, or None when unknown (live feed teams).
        color (str): Primary color hex code.
    """
    id: str
    name: str = ""
    city: str = ""
    abbreviation: str = ""
    conference: Optional[str] = None
    seed: Optional[int] = None
    color: str = ""

    def same_as(self, other):
        """Identity match: registry id first, abbreviation as fallback."""
        if other is None:
            return False
        if self.id and other.id and str(self.id) == str(other.id):
            return True
        return bool(self.abbreviation and other.abbreviation
                    and self.abbreviation.upper() == other.abbreviation.upper())

    def to_dict(self):
        return asdict(self)


@dataclass(frozen=True)
class LiveGame:
    """A single game parsed from the live schedule feed."""
    espn_id: str
    round: str
    home: Optional[Team] = None
    away: Optional[Team] = None
    home_score: Optional[int] = None
    away_score: Optional[int] = None
    status: str = NOT_STARTED
    status_detail: str = ""
    date: str = ""
    winner_flag: Optional[str] = None
    slot_id: Optional[str] = None

    @property
    def has_pairing(self):
        return self.home is not None and self.away is not None

    @property
    def is_final(self):
        return self.status == FINAL

    @property
    def winner_id(self):
        """Id of the winning team for a Final game, None otherwise (ties included)."""
        if not self.is_final or not self.has_pairing:
            return None
        if self.home_score is not None and self.away_score is not None:
            if self.home_score > self.away_score:
                return self.home.id
            if self.away_score > self.home_score:
                return self.away.id
        return self.winner_flag

    @property
    def total_points(self):
        if self.home_score is None or self.away_score is None:
            return None
        return self.home_score + self.away_score


@dataclass(frozen=True)
class Matchup:
    """
    One slot of the derived bracket tree.

    predicted_winner is the user's pick resolved to a Team; actual_winner is
    the adjudicated team id. A slot with either team missing is inert.
    """
    id: str
    round: str
    conference: str
    team1: Optional[Team] = None
    team2: Optional[Team] = None
    predicted_winner: Optional[Team] = None
    actual_winner: Optional[str] = None
    status: str = NOT_STARTED
    status_detail: str = ""
    home_score: Optional[int] = None
    away_score: Optional[int] = None

    @property
    def is_resolved(self):
        return self.team1 is not None and self.team2 is not None

    def team_for(self, team_id):
        """Return whichever of the slot's teams carries team_id (id or abbreviation)."""
        if team_id is None or team_id == "":
            return None
        wanted = Team(id=str(team_id), abbreviation=str(team_id))
        for team in (self.team1, self.team2):
            if team is not None and team.same_as(wanted):
                return team
        return None

    def to_dict(self):
        return {
            "id": self.id,
            "round": self.round,
            "conference": self.conference,
            "team1": self.team1.to_dict() if self.team1 else None,
            "team2": self.team2.to_dict() if self.team2 else None,
            "predicted_winner": self.predicted_winner.id if self.predicted_winner else None,
            "actual_winner": self.actual_winner,
            "status": self.status,
            "status_detail": self.status_detail,
            "home_score": self.home_score,
            "away_score": self.away_score,
        }


@dataclass(frozen=True)
class LeaderboardEntry:
    """Derived standing for one user; always recomputed, never stored."""
    user_id: str
    points: int
    tiebreaker_value: Optional[int] = None
    username: Optional[str] = None
    submitted_at: Optional[str] = None

    def to_dict(self):
        return asdict(self)
