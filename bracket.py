"""
bracket.py

The Bracket Builder: derives the thirteen playoff slots from the seeded
field, a user's pick map and (optionally) the real pairings reported by the
live feed.

Rounds are built in order, each from the outputs of the previous one:

  1. Wild Card: fixed seed pairings 2v7, 3v6, 4v5 per conference; seed 1 has a bye.
  2. Divisional: NFL re-seeding. The bye team hosts the worst surviving seed,
     the other two Wild Card winners play each other.
  3. Conference Championship: the two Divisional winners of each conference.
  4. Super Bowl: the AFC champion against the NFC champion.

For every slot a real live pairing wins over the derived one. Otherwise the
teams come from the previous round's predicted winners, so a user can fill
in a whole hypothetical bracket before any game is played. The builder is a
pure function: identical inputs always give identical output.
"""

from constants import (
    AFC, BYE_SEED, CONFERENCE, CONFERENCES, DIVISIONAL, FINAL, NFC, NOT_STARTED,
    REQUIRED_SLOTS, SB, SUPER_BOWL, SUPER_BOWL_SLOT, WILD_CARD, WILD_CARD_PAIRINGS,
    conference_slot, divisional_slot, wild_card_slot
)
from models import Matchup
from reconcile import assign_slots, has_real_pairing
from teams import TeamRegistry

# Sort key for teams without a known seed.
UNKNOWN_SEED = 99


def build_bracket(seeds, picks=None, live_matchups=None, results=None):
    """
    Builds the full 13-slot bracket.

    Args:
        seeds (TeamRegistry | list): The seeded field (Team records or dicts).
        picks (dict): slot_id -> team_id chosen by the user.
        live_matchups (iterable[LiveGame]): Parsed live games. Games without a
            slot_id are placed by reconcile.assign_slots.
        results (dict): slot_id -> team_id adjudicated winners.

    Returns:
        list[Matchup]: Matchups in canonical slot order (REQUIRED_SLOTS).
    """
    registry = seeds if isinstance(seeds, TeamRegistry) else TeamRegistry(seeds)
    picks = picks or {}
    results = results or {}
    live = _index_live(live_matchups, registry)

    built = {}
    champions = {}
    for conference in CONFERENCES:
        wild_card = []
        for index, (high, low) in enumerate(WILD_CARD_PAIRINGS):
            wild_card.append(_make_matchup(
                wild_card_slot(conference, index), WILD_CARD, conference,
                registry.by_seed(conference, high), registry.by_seed(conference, low),
                registry, picks, live, results
            ))

        bye_pairing, other_pairing = reseed_divisional(
            registry.by_seed(conference, BYE_SEED),
            [m.predicted_winner for m in wild_card],
            registry
        )
        divisional = [
            _make_matchup(divisional_slot(conference, 0), DIVISIONAL, conference,
                          bye_pairing[0], bye_pairing[1], registry, picks, live, results),
            _make_matchup(divisional_slot(conference, 1), DIVISIONAL, conference,
                          other_pairing[0], other_pairing[1], registry, picks, live, results),
        ]

        championship = _make_matchup(
            conference_slot(conference), CONFERENCE, conference,
            divisional[0].predicted_winner, divisional[1].predicted_winner,
            registry, picks, live, results
        )
        champions[conference] = championship.predicted_winner

        for matchup in wild_card + divisional + [championship]:
            built[matchup.id] = matchup

    built[SUPER_BOWL_SLOT] = _make_matchup(
        SUPER_BOWL_SLOT, SUPER_BOWL, SB, champions[AFC], champions[NFC],
        registry, picks, live, results
    )
    return [built[slot_id] for slot_id in REQUIRED_SLOTS]


def hypothetical_bracket(seeds, picks=None):
    """The bracket a user's picks imply on their own, ignoring live pairings and results."""
    return build_bracket(seeds, picks)


def reseed_divisional(bye_team, wild_card_winners, registry):
    """
    Applies NFL re-seeding to one conference's Wild Card winners.

    The winners are ordered by seed; the bye team plays the numerically worst
    survivor and the remaining two play each other (better seed first). Until
    all three winners are known the opponent of the bye team cannot be known,
    so only the bye team is placed.

    Returns:
        tuple: ((bye_team, opponent), (team1, team2)); unknown teams are None.
    """
    if len(wild_card_winners) != len(WILD_CARD_PAIRINGS) or not all(wild_card_winners):
        return (bye_team, None), (None, None)
    ordered = sorted(wild_card_winners, key=lambda team: seed_of(team, registry))
    return (bye_team, ordered[-1]), (ordered[0], ordered[1])


def seed_of(team, registry):
    known = registry.resolve(team)
    if known is not None and known.seed is not None:
        return known.seed
    if team is not None and team.seed is not None:
        return team.seed
    return UNKNOWN_SEED


def matchup_by_slot(matchups):
    return {m.id: m for m in matchups}


def accepts_pick(matchup, team_id):
    """A pick is only accepted for a slot with both teams known, naming one of them."""
    return matchup is not None and matchup.is_resolved and matchup.team_for(team_id) is not None


def _index_live(live_matchups, registry):
    """Maps slot_id -> LiveGame, placing games that were not assigned a slot yet."""
    if not live_matchups:
        return {}
    games = list(live_matchups)
    if any(game.slot_id is None for game in games):
        games = assign_slots(games, registry)
    indexed = {}
    for game in games:
        if game.slot_id and game.slot_id not in indexed:
            indexed[game.slot_id] = game
    return indexed


def _make_matchup(slot_id, round_name, conference, team1, team2, registry, picks, live, results):
    game = live.get(slot_id)
    if has_real_pairing(game):
        team1 = registry.resolve(game.home) or game.home
        team2 = registry.resolve(game.away) or game.away

    matchup = Matchup(id=slot_id, round=round_name, conference=conference, team1=team1, team2=team2)

    predicted = None
    if matchup.is_resolved:
        predicted = matchup.team_for(picks.get(slot_id))

    actual = results.get(slot_id) or None
    status = NOT_STARTED
    status_detail = ""
    home_score = away_score = None
    if game is not None:
        status = game.status
        status_detail = game.status_detail
        if has_real_pairing(game):
            home_score, away_score = game.home_score, game.away_score
            if actual is None and game.winner_id is not None:
                winner = matchup.team_for(game.winner_id)
                actual = winner.id if winner is not None else game.winner_id
    elif actual is not None:
        status = FINAL

    return Matchup(
        id=slot_id,
        round=round_name,
        conference=conference,
        team1=team1,
        team2=team2,
        predicted_winner=predicted,
        actual_winner=actual,
        status=status,
        status_detail=status_detail,
        home_score=home_score,
        away_score=away_score
    )
