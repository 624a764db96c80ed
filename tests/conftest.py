# tests/conftest.py
import pytest
from unittest.mock import Mock

from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from constants import FINAL, NOT_STARTED, DIVISIONAL, SUPER_BOWL, WILD_CARD
from models import LiveGame, Team
from teams import TeamRegistry, default_teams


# Chalk bracket over the default field: every higher seed wins, the AFC #1 wins it all.
CHALK_PICKS = {
    "afc-wc-0": "2",    # BUF over DEN
    "afc-wc-1": "33",   # BAL over LAC
    "afc-wc-2": "34",   # HOU over PIT
    "nfc-wc-0": "21",   # PHI over GB
    "nfc-wc-1": "14",   # LAR over WSH
    "nfc-wc-2": "27",   # TB over MIN
    "afc-div-0": "12",  # KC over HOU
    "afc-div-1": "2",   # BUF over BAL
    "nfc-div-0": "8",   # DET over TB
    "nfc-div-1": "21",  # PHI over LAR
    "afc-conf": "12",   # KC over BUF
    "nfc-conf": "8",    # DET over PHI
    "super-bowl": "12", # KC over DET
}


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "db: tests that use the in-memory database")


@pytest.fixture
def teams():
    """The fourteen default playoff teams."""
    return default_teams()


@pytest.fixture
def registry(teams):
    return TeamRegistry(teams)


@pytest.fixture
def chalk_picks():
    return dict(CHALK_PICKS)


@pytest.fixture
def team_by_abbr(registry):
    """Lookup helper: abbreviation -> registry Team."""
    return lambda abbreviation: registry.resolve(abbreviation)


def make_game(espn_id, round_name, home, away, home_score=None, away_score=None, status=NOT_STARTED):
    """LiveGame with feed-shaped teams (no seed), as espn.parse_event returns them."""
    def feed_team(team):
        if team is None:
            return None
        return Team(id=team.id, name=team.name, abbreviation=team.abbreviation, conference=team.conference)
    return LiveGame(
        espn_id=espn_id,
        round=round_name,
        home=feed_team(home),
        away=feed_team(away),
        home_score=home_score,
        away_score=away_score,
        status=status
    )


@pytest.fixture
def game_factory():
    return make_game


@pytest.fixture
def final_wild_card_games(team_by_abbr):
    """AFC Wild Card games, all Final: DEN, LAC and HOU advance."""
    t = team_by_abbr
    return [
        make_game("401", WILD_CARD, t("BUF"), t("DEN"), 17, 24, FINAL),
        make_game("402", WILD_CARD, t("BAL"), t("LAC"), 10, 13, FINAL),
        make_game("403", WILD_CARD, t("HOU"), t("PIT"), 31, 14, FINAL),
    ]


@pytest.fixture
def tbd_super_bowl():
    """Super Bowl listing before the conference games end."""
    return LiveGame(espn_id="499", round=SUPER_BOWL, status=NOT_STARTED)


@pytest.fixture
def divisional_game(team_by_abbr):
    return make_game("411", DIVISIONAL, team_by_abbr("KC"), team_by_abbr("HOU"))


@pytest.fixture
def db_engine():
    """Binds db.SessionLocal to a fresh in-memory SQLite database."""
    import db

    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool
    )
    db.init_db(engine)
    db.SessionLocal.configure(bind=engine)
    yield engine
    db.SessionLocal.configure(bind=db.engine)
    db.Base.metadata.drop_all(engine)
    engine.dispose()


@pytest.fixture
def client(db_engine):
    """Flask test client over the in-memory database, with no live games."""
    import main

    main.app.config["TESTING"] = True
    main.live_sync.latest_games = []
    with main.app.test_client() as test_client:
        yield test_client


@pytest.fixture
def admin_user(db_engine):
    import db

    db.upsert_user("admin-1", email="Commish@Example.com", username="Commish")
    db.sync_admin_roles(["commish@example.com"])
    return "admin-1"


@pytest.fixture
def mock_response():
    """Factory for a requests.Response stand-in returning the given JSON."""
    def _make(payload, status_error=None):
        response = Mock()
        response.json.return_value = payload
        if status_error is not None:
            response.raise_for_status.side_effect = status_error
        else:
            response.raise_for_status.return_value = None
        return response
    return _make


@pytest.fixture
def scoreboard_payload():
    """ESPN scoreboard with one Final Wild Card game and one TBD game."""
    return {
        "events": [
            {
                "id": "401671001",
                "date": "2026-01-10T21:30Z",
                "competitions": [{
                    "status": {"type": {"state": "post", "completed": True, "shortDetail": "Final"}},
                    "competitors": [
                        {"homeAway": "home", "score": "17", "winner": False,
                         "team": {"id": "2", "abbreviation": "BUF", "name": "Bills", "location": "Buffalo"},
                         "curatedRank": {"current": 2}},
                        {"homeAway": "away", "score": "24", "winner": True,
                         "team": {"id": "7", "abbreviation": "DEN", "name": "Broncos", "location": "Denver"},
                         "curatedRank": {"current": 99}},
                    ]
                }]
            },
            {
                "id": "401671099",
                "date": "2026-02-08T23:30Z",
                "competitions": [{
                    "status": {"type": {"state": "pre", "completed": False, "shortDetail": "2/8 - 6:30 PM EST"}},
                    "competitors": [
                        {"homeAway": "home", "score": "0", "team": {"id": "-1", "abbreviation": "TBD"}},
                        {"homeAway": "away", "score": "0", "team": {"id": "8", "abbreviation": "DET"}},
                    ]
                }]
            },
            {"id": "no-competitions"}
        ]
    }


@pytest.fixture
def standings_payload():
    """ESPN standings with two seeded AFC teams, one unseeded, and one seeded NFC team."""
    def entry(team_id, abbreviation, seed):
        return {
            "team": {"id": team_id, "abbreviation": abbreviation, "name": abbreviation.title(), "location": "City"},
            "stats": [{"name": "wins", "value": 12}, {"name": "playoffSeed", "value": seed}]
        }
    return {
        "children": [
            {"name": "American Football Conference", "abbreviation": "AFC",
             "standings": {"entries": [entry("12", "KC", 1), entry("2", "BUF", 2), entry("15", "MIA", 11)]}},
            {"name": "National Football Conference",
             "standings": {"entries": [entry("8", "DET", 1.0)]}},
            {"name": "Something Else", "standings": {"entries": [entry("99", "XXX", 1)]}},
        ]
    }
