"""
constants.py

Shared constants for the NFL Playoff Pool application.

This module defines:
  - The sequential order of playoff rounds and their ESPN week numbers.
  - The seed pairings for the Wild Card round.
  - The stable slot ids every other layer keys off of.
  - The scoring weight for each round.
  - Sentinel team ids used by the live feed for undecided competitors.
  - The built-in default field used when no seeds are configured.
"""

# Define the playoff rounds in their sequential order.
WILD_CARD = "WildCard"
DIVISIONAL = "Divisional"
CONFERENCE = "Conference"
SUPER_BOWL = "SuperBowl"

ROUND_ORDER = [WILD_CARD, DIVISIONAL, CONFERENCE, SUPER_BOWL]

# ESPN postseason (seasontype=3) week numbers. Week 4 is the Pro Bowl.
ROUND_WEEKS = {
    WILD_CARD: 1,
    DIVISIONAL: 2,
    CONFERENCE: 3,
    SUPER_BOWL: 5,
}

AFC = "AFC"
NFC = "NFC"
SB = "SB"
CONFERENCES = [AFC, NFC]

# Matchup status values.
NOT_STARTED = "NotStarted"
IN_PROGRESS = "InProgress"
FINAL = "Final"

# Seed 1 in each conference sits out the Wild Card round.
BYE_SEED = 1

# Wild Card pairings, in slot order: (higher seed, lower seed).
WILD_CARD_PAIRINGS = [
    (2, 7),
    (3, 6),
    (4, 5)
]

SUPER_BOWL_SLOT = "super-bowl"


def wild_card_slot(conference, index):
    return f"{conference.lower()}-wc-{index}"


def divisional_slot(conference, index):
    return f"{conference.lower()}-div-{index}"


def conference_slot(conference):
    return f"{conference.lower()}-conf"


# Every slot a complete bracket must pick, in canonical order.
REQUIRED_SLOTS = (
    [wild_card_slot(AFC, i) for i in range(len(WILD_CARD_PAIRINGS))]
    + [wild_card_slot(NFC, i) for i in range(len(WILD_CARD_PAIRINGS))]
    + [divisional_slot(AFC, i) for i in range(2)]
    + [divisional_slot(NFC, i) for i in range(2)]
    + [conference_slot(AFC), conference_slot(NFC)]
    + [SUPER_BOWL_SLOT]
)

# Define the scoring weight assigned to each round.
ROUND_WEIGHTS = {
    WILD_CARD: 1,
    DIVISIONAL: 2,
    CONFERENCE: 3,
    SUPER_BOWL: 5
}

MAX_POINTS = 23

# ------------------------------------------------------------------------
# Live feed sentinels
# ------------------------------------------------------------------------
# ESPN reports an undecided competitor with team id "-1".
TBD_TEAM_IDS = {"-1"}
# Before the conference games end, the Super Bowl lists generic "AFC"/"NFC" teams.
PLACEHOLDER_TEAM_IDS = {"31", "32"}

# ESPN ids of the sixteen AFC franchises; everything else is NFC.
AFC_TEAM_IDS = {
    "2", "15", "17", "20",    # BUF, MIA, NE, NYJ
    "33", "4", "5", "23",     # BAL, CIN, CLE, PIT
    "34", "11", "30", "10",   # HOU, IND, JAX, TEN
    "7", "12", "13", "24",    # DEN, KC, LV, LAC
}

TEAM_COLORS = {
    'KC': '#E31837', 'BUF': '#00338D', 'BAL': '#241773', 'HOU': '#03202F',
    'PIT': '#FFB612', 'LAC': '#0080C6', 'DEN': '#FB4F14', 'MIA': '#008E97',
    'CIN': '#FB4F14', 'CLE': '#311D00', 'LV': '#000000', 'IND': '#002C5F',
    'TEN': '#0C2340', 'JAX': '#006778', 'NE': '#002244',
    'DET': '#0076B6', 'PHI': '#004C54', 'LAR': '#003594', 'TB': '#D50A0A',
    'MIN': '#4F2683', 'WSH': '#5A1414', 'GB': '#203731', 'SF': '#AA0000',
    'DAL': '#041E42', 'SEA': '#002244', 'ATL': '#A71930', 'NO': '#D3BC8D',
    'CAR': '#0085CA', 'ARI': '#97233F', 'CHI': '#0B162A', 'NYG': '#0B2265', 'NYJ': '#125740'
}
DEFAULT_COLOR = '#1e293b'

# Default playoff field, used when fewer than two real teams are configured.
DEFAULT_TEAMS = [
    {"id": "12", "name": "Chiefs", "city": "Kansas City", "abbreviation": "KC", "conference": AFC, "seed": 1},
    {"id": "2", "name": "Bills", "city": "Buffalo", "abbreviation": "BUF", "conference": AFC, "seed": 2},
    {"id": "33", "name": "Ravens", "city": "Baltimore", "abbreviation": "BAL", "conference": AFC, "seed": 3},
    {"id": "34", "name": "Texans", "city": "Houston", "abbreviation": "HOU", "conference": AFC, "seed": 4},
    {"id": "23", "name": "Steelers", "city": "Pittsburgh", "abbreviation": "PIT", "conference": AFC, "seed": 5},
    {"id": "24", "name": "Chargers", "city": "Los Angeles", "abbreviation": "LAC", "conference": AFC, "seed": 6},
    {"id": "7", "name": "Broncos", "city": "Denver", "abbreviation": "DEN", "conference": AFC, "seed": 7},
    {"id": "8", "name": "Lions", "city": "Detroit", "abbreviation": "DET", "conference": NFC, "seed": 1},
    {"id": "21", "name": "Eagles", "city": "Philadelphia", "abbreviation": "PHI", "conference": NFC, "seed": 2},
    {"id": "14", "name": "Rams", "city": "Los Angeles", "abbreviation": "LAR", "conference": NFC, "seed": 3},
    {"id": "27", "name": "Buccaneers", "city": "Tampa Bay", "abbreviation": "TB", "conference": NFC, "seed": 4},
    {"id": "16", "name": "Vikings", "city": "Minnesota", "abbreviation": "MIN", "conference": NFC, "seed": 5},
    {"id": "28", "name": "Commanders", "city": "Washington", "abbreviation": "WSH", "conference": NFC, "seed": 6},
    {"id": "9", "name": "Packers", "city": "Green Bay", "abbreviation": "GB", "conference": NFC, "seed": 7},
]
