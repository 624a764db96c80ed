"""
teams.py

The playoff Team/Seed registry.

The registry holds the fourteen playoff entrants for a season (seven per
conference, seeds 1-7) and answers identity lookups for the bracket builder
and the result reconciler. Teams are matched by ESPN id first and by
abbreviation as a fallback, never by bracket position.

When the configured field is unusable (fewer than two valid teams) the
built-in default field from constants.DEFAULT_TEAMS is used instead.
"""

from config import logger
from constants import (
    AFC, AFC_TEAM_IDS, CONFERENCES, DEFAULT_COLOR, DEFAULT_TEAMS, NFC,
    PLACEHOLDER_TEAM_IDS, TBD_TEAM_IDS, TEAM_COLORS
)
from models import Team


def is_placeholder(team):
    """True for a missing team or one of the feed's TBD / "AFC" / "NFC" stand-ins."""
    if team is None:
        return True
    team_id = str(team.id if isinstance(team, Team) else team)
    return team_id in TBD_TEAM_IDS or team_id in PLACEHOLDER_TEAM_IDS


def team_from_record(record):
    """
    Builds a Team from a loosely shaped dict (config file, db row, API payload).

    Returns None when the record has no usable id. Unknown seeds or
    conferences are kept as None so that the registry can discard them.
    """
    if record is None:
        return None
    if isinstance(record, Team):
        return record
    team_id = record.get("id")
    if team_id is None or str(team_id).strip() == "":
        return None
    team_id = str(team_id).strip()

    seed = record.get("seed")
    try:
        seed = int(seed) if seed is not None else None
    except (TypeError, ValueError):
        seed = None

    conference = (record.get("conference") or "").upper() or None
    abbreviation = (record.get("abbreviation") or "").strip().upper()
    return Team(
        id=team_id,
        name=record.get("name") or "",
        city=record.get("city") or record.get("location") or "",
        abbreviation=abbreviation,
        conference=conference,
        seed=seed,
        color=record.get("color") or TEAM_COLORS.get(abbreviation, DEFAULT_COLOR)
    )


def default_teams():
    return [team_from_record(record) for record in DEFAULT_TEAMS]


def conference_for_team_id(team_id):
    """Static conference lookup for teams that are not in the registry."""
    return AFC if str(team_id) in AFC_TEAM_IDS else NFC


class TeamRegistry:
    """
    Lookup table over one season's seeded playoff teams.

    Attributes:
        teams (list[Team]): Valid seeded teams, AFC first, each conference by seed.
        is_default (bool): True when the built-in default field is in use.
    """

    def __init__(self, teams=None):
        valid = self._valid_teams(teams or [])
        self.is_default = len(valid) < 2
        if self.is_default:
            if teams:
                logger.warning(f"Only {len(valid)} usable playoff team(s) configured; using the default field.")
            valid = default_teams()
        elif len(valid) != 14:
            logger.warning(f"Expected 14 seeded playoff teams, found {len(valid)}; missing seeds stay unresolved.")

        self.teams = sorted(valid, key=lambda t: (CONFERENCES.index(t.conference), t.seed))
        self._by_id = {t.id: t for t in self.teams}
        self._by_abbreviation = {t.abbreviation: t for t in self.teams if t.abbreviation}
        self._by_seed = {(t.conference, t.seed): t for t in self.teams}

    @staticmethod
    def _valid_teams(teams):
        """Drops records without an id, conference or 1-7 seed, and duplicate seeds."""
        seen_seeds = set()
        seen_ids = set()
        valid = []
        for record in teams:
            team = team_from_record(record)
            if team is None or team.conference not in CONFERENCES:
                continue
            if team.seed is None or not 1 <= team.seed <= 7:
                continue
            key = (team.conference, team.seed)
            if key in seen_seeds or team.id in seen_ids:
                logger.warning(f"Duplicate seed or team ignored: {team.conference} #{team.seed} {team.abbreviation or team.id}")
                continue
            seen_seeds.add(key)
            seen_ids.add(team.id)
            valid.append(team)
        return valid

    def __len__(self):
        return len(self.teams)

    def __iter__(self):
        return iter(self.teams)

    def get(self, team_id):
        return self._by_id.get(str(team_id)) if team_id is not None else None

    def resolve(self, team):
        """
        Returns the registry Team that matches `team` by id, then abbreviation.

        Args:
            team (Team | str | None): A Team (possibly from the live feed) or a team id.
        """
        if team is None:
            return None
        if not isinstance(team, Team):
            return self.get(team) or self._by_abbreviation.get(str(team).upper())
        found = self._by_id.get(str(team.id))
        if found is None and team.abbreviation:
            found = self._by_abbreviation.get(team.abbreviation.upper())
        return found

    def by_seed(self, conference, seed):
        return self._by_seed.get((conference, seed))

    def conference_teams(self, conference):
        return [t for t in self.teams if t.conference == conference]

    def conference_of(self, team):
        """Conference of a team: registry first, then the static ESPN id table."""
        if team is None:
            return None
        known = self.resolve(team)
        if known is not None:
            return known.conference
        if isinstance(team, Team):
            if team.conference in CONFERENCES:
                return team.conference
            return conference_for_team_id(team.id)
        return conference_for_team_id(team)
