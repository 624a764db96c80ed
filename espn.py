"""
espn.py

Handles the ESPN integration for the NFL Playoff Pool application.
Responsible for fetching postseason scoreboards and conference standings
from ESPN's public site API and turning them into LiveGame and Team records.

Parsing is tolerant: any field may be absent. A game whose competitor is
still undecided (team id "-1", or the generic "AFC"/"NFC" Super Bowl
placeholders) is returned with no teams at all rather than a half pairing.
"""

import requests

from config import ESPN_SCOREBOARD_URL, ESPN_STANDINGS_URL, REQUEST_TIMEOUT, SEASON, logger
from constants import (
    AFC, CONFERENCES, DEFAULT_COLOR, FINAL, IN_PROGRESS, NFC, NOT_STARTED, ROUND_ORDER,
    ROUND_WEEKS, TEAM_COLORS
)
from models import LiveGame, Team
from teams import conference_for_team_id, is_placeholder

# ESPN season type for the postseason.
POSTSEASON = 3


class EspnFeedError(Exception):
    """Custom exception for errors while fetching or decoding ESPN data."""
    pass


def _get_json(url, params):
    """
    Performs a GET request and decodes the JSON body.

    Raises:
        EspnFeedError: On connection errors, non-2xx responses or invalid JSON.
    """
    try:
        response = requests.get(url, params=params, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        return response.json()
    except requests.RequestException as e:
        message = f"Error fetching ESPN data ({url}, params={params}): {e}"
        logger.error(message)
        raise EspnFeedError(message) from e
    except ValueError as e:
        message = f"ESPN returned invalid JSON ({url}, params={params}): {e}"
        logger.error(message)
        raise EspnFeedError(message) from e


# ---------------------------
# Scoreboard parsing
# ---------------------------
def _parse_int(value):
    if isinstance(value, dict):
        value = value.get("value", value.get("displayValue"))
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def parse_team(competitor):
    """
    Builds a Team from an ESPN competitor entry, or None if it has no team id.
    """
    if not competitor:
        return None
    team = competitor.get("team") or {}
    team_id = team.get("id") or competitor.get("id")
    if team_id is None or str(team_id) == "":
        return None
    team_id = str(team_id)
    abbreviation = (team.get("abbreviation") or "").upper()

    seed = _parse_int((competitor.get("curatedRank") or {}).get("current"))
    if seed is not None and not 1 <= seed <= 7:
        seed = None

    return Team(
        id=team_id,
        name=team.get("name") or team.get("displayName") or "",
        city=team.get("location") or "",
        abbreviation=abbreviation,
        conference=conference_for_team_id(team_id),
        seed=seed,
        color=TEAM_COLORS.get(abbreviation, DEFAULT_COLOR)
    )


def parse_status(status):
    """Maps an ESPN status object to (NotStarted|InProgress|Final, detail text)."""
    status_type = (status or {}).get("type") or {}
    if status_type.get("completed"):
        state = FINAL
    elif status_type.get("state") == "in":
        state = IN_PROGRESS
    else:
        state = NOT_STARTED
    detail = status_type.get("shortDetail") or status_type.get("description") or ""
    return state, detail


def parse_event(event, round_name):
    """
    Parses one scoreboard event into a LiveGame.

    Args:
        event (dict): An entry of the scoreboard's "events" list.
        round_name (str): The playoff round the event was fetched for.

    Returns:
        LiveGame, or None for an entry without competition data.
    """
    competitions = event.get("competitions") or []
    if not competitions or not isinstance(competitions[0], dict):
        return None
    competition = competitions[0]
    competitors = competition.get("competitors") or []
    home = next((c for c in competitors if c.get("homeAway") == "home"), None)
    away = next((c for c in competitors if c.get("homeAway") == "away"), None)

    home_team = parse_team(home)
    away_team = parse_team(away)
    undecided = is_placeholder(home_team) or is_placeholder(away_team)

    state, detail = parse_status(competition.get("status") or event.get("status"))

    winner_flag = None
    if not undecided:
        if home.get("winner") is True:
            winner_flag = home_team.id
        elif away.get("winner") is True:
            winner_flag = away_team.id

    return LiveGame(
        espn_id=str(event.get("id") or ""),
        round=round_name,
        home=None if undecided else home_team,
        away=None if undecided else away_team,
        home_score=None if undecided else _parse_int(home.get("score")),
        away_score=None if undecided else _parse_int(away.get("score")),
        status=state,
        status_detail=detail,
        date=event.get("date") or "",
        winner_flag=winner_flag
    )


def parse_scoreboard(data, round_name):
    games = []
    for event in (data or {}).get("events") or []:
        game = parse_event(event, round_name)
        if game is not None:
            games.append(game)
    return games


def fetch_round_games(round_name, season=None):
    """
    Fetches the scoreboard of one playoff round.

    Raises:
        EspnFeedError: If the request fails.
    """
    params = {
        "seasontype": POSTSEASON,
        "week": ROUND_WEEKS[round_name],
        "dates": season or SEASON,
    }
    data = _get_json(ESPN_SCOREBOARD_URL, params)
    games = parse_scoreboard(data, round_name)
    logger.debug(f"Fetched {len(games)} {round_name} game(s) from ESPN.")
    return games


def fetch_playoff_games(season=None):
    """
    Fetches every playoff round and returns the parsed games in round order.

    Raises:
        EspnFeedError: If any round cannot be fetched.
    """
    games = []
    for round_name in ROUND_ORDER:
        games.extend(fetch_round_games(round_name, season))
    logger.info(f"Fetched {len(games)} playoff game(s) from ESPN.")
    return games


# ---------------------------
# Standings / seeds
# ---------------------------
def _conference_of_group(group):
    abbreviation = (group.get("abbreviation") or "").upper()
    if abbreviation in CONFERENCES:
        return abbreviation
    name = (group.get("name") or "").lower()
    if name.startswith("american"):
        return AFC
    if name.startswith("national"):
        return NFC
    return None


def parse_standings(data):
    """
    Extracts the seeded playoff teams from an ESPN standings payload.

    Returns:
        list[Team]: Teams with a playoffSeed stat between 1 and 7.
    """
    teams = []
    for group in (data or {}).get("children") or []:
        conference = _conference_of_group(group)
        if conference is None:
            continue
        for entry in ((group.get("standings") or {}).get("entries")) or []:
            team = entry.get("team") or {}
            seed_stat = next((s for s in entry.get("stats") or [] if s.get("name") == "playoffSeed"), None)
            seed = _parse_int(seed_stat.get("value")) if seed_stat else None
            if not team.get("id") or seed is None or not 1 <= seed <= 7:
                continue
            abbreviation = (team.get("abbreviation") or "").upper()
            teams.append(Team(
                id=str(team["id"]),
                name=team.get("name") or team.get("displayName") or "",
                city=team.get("location") or "",
                abbreviation=abbreviation,
                conference=conference,
                seed=seed,
                color=TEAM_COLORS.get(abbreviation, DEFAULT_COLOR)
            ))
    return teams


def fetch_playoff_seeds(season=None):
    """
    Fetches the current playoff seeds from ESPN standings.

    Raises:
        EspnFeedError: If the request fails.
    """
    params = {"region": "us", "lang": "en", "contentorigin": "espn", "season": season or SEASON, "type": 0}
    teams = parse_standings(_get_json(ESPN_STANDINGS_URL, params))
    logger.info(f"Fetched {len(teams)} seeded playoff team(s) from ESPN standings.")
    return teams
