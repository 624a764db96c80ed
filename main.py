"""
main.py

Main Flask application for the NFL Playoff Pool.

Exposes a JSON API over the pure bracket, reconciliation, scoring and
leaderboard modules:

  - User registration, teams and the season's seeded field.
  - The per-user bracket (matchups recomputed on every read).
  - Pick writes and bracket submission (the bracket lock).
  - The room leaderboard and a PDF report.
  - Admin-only result overrides, seeding, live sync, bracket removal and
    room resets.

The acting user is identified by the X-User-Id header (or a user_id field
in the query string or JSON body). Admin rights come from db.is_admin, which
is reconciled with the ADMIN_EMAILS allowlist at startup and whenever a
user registers.
"""

from io import BytesIO
from flask import Flask, request, jsonify, send_file

from config import logger, ADMIN_EMAILS, SEASON
import db
from bracket import accepts_pick, build_bracket, hypothetical_bracket, matchup_by_slot
from constants import REQUIRED_SLOTS
from espn import EspnFeedError
from reconcile import assign_slots, grade_slot
from report import generate_report, leaderboard_rows
from scoring import BracketLockedError, IncompleteBracketError, best_case_points, score
from sync import LiveSync, load_registry, refresh_seeds
from teams import TeamRegistry

# Initialize the Flask application
app = Flask(__name__)

# Live feed snapshot; the background thread is started from __main__ only,
# the admin sync route refreshes it on demand.
live_sync = LiveSync()


def _payload():
    return request.get_json(silent=True) or {}


def _current_user():
    return (request.headers.get("X-User-Id")
            or request.args.get("user_id")
            or _payload().get("user_id"))


def _failure(message, code, **extra):
    body = {"status": "failure", "error": message}
    body.update(extra)
    return jsonify(body), code


def _require_admin():
    """Returns an error response for non-admin callers, None otherwise."""
    user_id = _current_user()
    if not user_id:
        return _failure("Missing user id", 401)
    if not db.is_admin(user_id):
        logger.info(f"User {user_id} attempted an admin action.")
        return _failure("Admin access required", 403)
    return None


def _live_games():
    return list(live_sync.latest_games)


def _parse_int(value, field_name):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValueError(f"{field_name} must be an integer")


def _season():
    return _parse_int(request.args.get('season') or _payload().get('season'), 'season') or SEASON


@app.route('/api/users', methods=['POST'])
def register_user():
    """
    Registers (or updates) the acting user. Expects JSON with 'email' and an
    optional 'username'; the admin allowlist is applied right away.
    """
    data = _payload()
    user_id = _current_user()
    if not user_id:
        return _failure("Missing user id", 400)
    email = (data.get('email') or '').strip() or None
    try:
        db.upsert_user(user_id, email=email, username=data.get('username'))
        db.sync_admin_roles(ADMIN_EMAILS)
    except Exception as e:
        logger.error(f"Error registering user: {e}")
        return _failure(str(e), 500)
    return jsonify({"status": "success", "user_id": user_id, "is_admin": db.is_admin(user_id)})


@app.route('/api/teams')
def get_teams():
    """Lists the seeded field of the configured season."""
    registry = load_registry()
    return jsonify({
        "status": "success",
        "season": SEASON,
        "is_default": registry.is_default,
        "teams": [team.to_dict() for team in registry]
    })


@app.route('/api/seeds', methods=['POST'])
def set_seeds():
    """
    Admin action: stores the seeded field. Expects JSON with 'teams' (records
    with id, conference and seed), an optional 'season' and 'replace'.
    """
    denied = _require_admin()
    if denied:
        return denied
    data = _payload()
    try:
        season = _season()
    except ValueError as e:
        return _failure(str(e), 400)
    registry = TeamRegistry(data.get('teams') or [])
    if registry.is_default:
        return _failure("No usable playoff field in 'teams'", 400)
    try:
        db.save_team_seeds(season, registry.teams, replace=bool(data.get('replace')))
    except db.SeedsLockedError as e:
        return _failure(str(e), 409)
    return jsonify({"status": "success", "season": season, "teams": [t.to_dict() for t in registry]})


@app.route('/api/seeds/refresh', methods=['POST'])
def refresh_seeds_from_standings():
    """Admin action: loads the seeded field from ESPN standings."""
    denied = _require_admin()
    if denied:
        return denied
    try:
        season = _season()
        registry = refresh_seeds(season, replace_existing=bool(_payload().get('replace')))
    except ValueError as e:
        return _failure(str(e), 400)
    except EspnFeedError as e:
        return _failure(str(e), 502)
    except db.SeedsLockedError as e:
        return _failure(str(e), 409)
    if registry.is_default:
        return _failure("Standings did not contain a usable playoff field", 502)
    return jsonify({"status": "success", "season": season, "teams": [t.to_dict() for t in registry]})


@app.route('/api/rooms/<room_id>/bracket')
def get_bracket(room_id):
    """
    Returns the user's 13 matchups, the grade of each predicted slot and the
    user's current and best case points.
    """
    user_id = _current_user()
    if not user_id:
        return _failure("Missing user id", 400)

    registry = load_registry()
    pick_set = db.load_pick_set(room_id, user_id)
    results = db.load_results(room_id)
    live_games = _live_games()

    matchups = build_bracket(registry, pick_set.picks, live_games, results)
    actual_matchups = build_bracket(registry, results, live_games, results)
    by_slot = {game.slot_id: game for game in assign_slots(live_games, registry)}
    grades = {
        predicted.id: grade_slot(predicted, by_slot.get(predicted.id), results).to_dict()
        for predicted in hypothetical_bracket(registry, pick_set.picks)
    }

    return jsonify({
        "status": "success",
        "room_id": room_id,
        "user_id": user_id,
        "submitted": pick_set.submitted,
        "submitted_at": pick_set.submitted_at.isoformat() if pick_set.submitted_at else None,
        "tiebreaker_value": pick_set.tiebreaker_value,
        "picks": dict(pick_set.picks),
        "matchups": [m.to_dict() for m in matchups],
        "grades": grades,
        "points": score(pick_set.picks, results),
        "best_case": best_case_points(pick_set.picks, results, actual_matchups)
    })


@app.route('/api/rooms/<room_id>/picks', methods=['POST'])
def save_pick(room_id):
    """
    Stores one pick. Expects JSON with 'slot_id' and 'team_id' (empty to clear).

    A pick must name one of the slot's two teams; picks further down the
    bracket that no longer fit are cleared.
    """
    data = _payload()
    user_id = _current_user()
    slot_id = data.get('slot_id')
    team_id = str(data.get('team_id') or '').strip() or None
    if not user_id:
        return _failure("Missing user id", 400)
    if slot_id not in REQUIRED_SLOTS:
        return _failure(f"Unknown slot '{slot_id}'", 400)

    registry = load_registry()
    pick_set = db.load_pick_set(room_id, user_id)
    if pick_set.submitted:
        return _failure("Bracket already submitted", 409)

    live_games = _live_games()
    results = db.load_results(room_id)
    if team_id:
        matchup = matchup_by_slot(build_bracket(registry, pick_set.picks, live_games, results)).get(slot_id)
        if not matchup.is_resolved:
            logger.info(f"Pick for inert slot {slot_id} rejected (user {user_id}, room {room_id}).")
            return _failure("Matchup is not set yet", 400)
        if not accepts_pick(matchup, team_id):
            logger.info(f"Invalid pick '{team_id}' for slot {slot_id} (user {user_id}, room {room_id}).")
            return _failure("Team is not part of this matchup", 400)
        team_id = matchup.team_for(team_id).id

    try:
        updated = db.save_pick(room_id, user_id, slot_id, team_id)
        new_picks = dict(updated.picks)
        stale = [m.id for m in build_bracket(registry, new_picks, live_games, results)
                 if new_picks.get(m.id) and m.predicted_winner is None]
        for stale_slot in stale:
            updated = db.save_pick(room_id, user_id, stale_slot, None)
    except BracketLockedError as e:
        return _failure(str(e), 409)
    except Exception as e:
        logger.error(f"Error saving pick: {e}")
        return _failure(str(e), 500)

    return jsonify({"status": "success", "picks": dict(updated.picks), "cleared": stale})


@app.route('/api/rooms/<room_id>/submit', methods=['POST'])
def submit_bracket(room_id):
    """Locks the user's bracket. Expects JSON with an optional 'tiebreaker_value'."""
    user_id = _current_user()
    if not user_id:
        return _failure("Missing user id", 400)
    try:
        tiebreaker_value = _parse_int(_payload().get('tiebreaker_value'), 'tiebreaker_value')
    except ValueError as e:
        return _failure(str(e), 400)

    try:
        pick_set = db.submit_bracket(room_id, user_id, tiebreaker_value)
    except IncompleteBracketError as e:
        return _failure(str(e), 400, missing=e.missing)
    except BracketLockedError as e:
        return _failure(str(e), 409)
    except Exception as e:
        logger.error(f"Error submitting bracket: {e}")
        return _failure(str(e), 500)

    return jsonify({
        "status": "success",
        "submitted_at": pick_set.submitted_at.isoformat() if pick_set.submitted_at else None,
        "tiebreaker_value": pick_set.tiebreaker_value
    })


@app.route('/api/rooms/<room_id>/leaderboard')
def get_leaderboard(room_id):
    """
    Ranked standings of every submitted bracket in the room. Only visible to
    users whose own bracket is submitted.
    """
    user_id = _current_user()
    if not user_id:
        return _failure("Missing user id", 400)
    if not db.load_pick_set(room_id, user_id).submitted:
        return _failure("Submit your bracket to see the leaderboard", 403)

    pick_sets = db.load_pick_sets(room_id, submitted_only=True)
    actual_tiebreaker = db.get_tiebreaker_actual(room_id)
    rows = leaderboard_rows(
        load_registry(),
        pick_sets,
        db.load_results(room_id),
        actual_tiebreaker,
        db.usernames([p.user_id for p in pick_sets]),
        _live_games()
    )
    return jsonify({"status": "success", "tiebreaker_actual": actual_tiebreaker, "entries": rows})


@app.route('/api/rooms/<room_id>/results', methods=['GET'])
def get_results(room_id):
    return jsonify({
        "status": "success",
        "results": db.load_results(room_id),
        "tiebreaker_actual": db.get_tiebreaker_actual(room_id)
    })


@app.route('/api/rooms/<room_id>/results', methods=['POST'])
def set_result(room_id):
    """
    Admin override. Expects JSON with 'slot_id' and 'team_id', and/or
    'tiebreaker_actual' (the real combined Super Bowl score).
    """
    denied = _require_admin()
    if denied:
        return denied
    data = _payload()
    slot_id = data.get('slot_id')
    team_id = str(data.get('team_id') or '').strip() or None
    try:
        tiebreaker_actual = _parse_int(data.get('tiebreaker_actual'), 'tiebreaker_actual')
    except ValueError as e:
        return _failure(str(e), 400)
    if slot_id is None and tiebreaker_actual is None:
        return _failure("Nothing to update", 400)

    if slot_id is not None:
        if slot_id not in REQUIRED_SLOTS:
            return _failure(f"Unknown slot '{slot_id}'", 400)
        if not team_id:
            return _failure("Missing team_id", 400)
        results = db.load_results(room_id)
        matchup = matchup_by_slot(build_bracket(load_registry(), results, _live_games(), results)).get(slot_id)
        if not matchup.is_resolved:
            return _failure("Matchup is not set yet", 400)
        if not accepts_pick(matchup, team_id):
            logger.info(f"Invalid winner '{team_id}' for slot {slot_id} in room {room_id}")
            return _failure("Invalid winner", 400)
        db.set_result(room_id, slot_id, matchup.team_for(team_id).id)

    if tiebreaker_actual is not None:
        db.set_tiebreaker_actual(room_id, tiebreaker_actual, overwrite=True)

    return jsonify({
        "status": "success",
        "results": db.load_results(room_id),
        "tiebreaker_actual": db.get_tiebreaker_actual(room_id)
    })


@app.route('/api/rooms/<room_id>/results', methods=['DELETE'])
def clear_result(room_id):
    """Admin action: removes the result of the slot named by 'slot_id'."""
    denied = _require_admin()
    if denied:
        return denied
    slot_id = request.args.get('slot_id') or _payload().get('slot_id')
    if slot_id not in REQUIRED_SLOTS:
        return _failure(f"Unknown slot '{slot_id}'", 400)
    if not db.clear_result(room_id, slot_id):
        return _failure("No result stored for this slot", 404)
    return jsonify({"status": "success", "results": db.load_results(room_id)})


@app.route('/api/rooms/<room_id>/sync', methods=['POST'])
def sync_results(room_id):
    """Admin action: runs one live sync pass for the room right away."""
    denied = _require_admin()
    if denied:
        return denied
    result = live_sync.sync_room(room_id)
    if result is None:
        return _failure("Live feed unavailable", 502)
    return jsonify({
        "status": "success",
        "applied": result.applied,
        "results": db.load_results(room_id),
        "tiebreaker_actual": db.get_tiebreaker_actual(room_id)
    })


@app.route('/api/rooms/<room_id>/brackets')
def list_brackets(room_id):
    """Admin view: every submitted bracket of the room with its picks and points."""
    denied = _require_admin()
    if denied:
        return denied
    pick_sets = db.load_pick_sets(room_id, submitted_only=True)
    results = db.load_results(room_id)
    names = db.usernames([p.user_id for p in pick_sets])
    return jsonify({
        "status": "success",
        "brackets": [{
            "user_id": p.user_id,
            "player": names.get(p.user_id, p.user_id),
            "picks": dict(p.picks),
            "tiebreaker_value": p.tiebreaker_value,
            "submitted_at": p.submitted_at.isoformat() if p.submitted_at else None,
            "points": score(p.picks, results)
        } for p in pick_sets]
    })


@app.route('/api/rooms/<room_id>/brackets/<user_id>', methods=['DELETE'])
def delete_bracket(room_id, user_id):
    """Admin action: removes one user's bracket so they can start over."""
    denied = _require_admin()
    if denied:
        return denied
    if not db.delete_bracket(room_id, user_id):
        return _failure("No bracket stored for this user", 404)
    logger.info(f"Bracket of {user_id} in room {room_id} deleted by {_current_user()}")
    return jsonify({"status": "success"})


@app.route('/api/rooms/<room_id>/reset', methods=['POST'])
def reset_room(room_id):
    """
    Admin action. JSON 'scope' selects what is cleared: "results",
    "brackets" or "all" (default).
    """
    denied = _require_admin()
    if denied:
        return denied
    scope = _payload().get('scope', 'all')
    if scope not in ('results', 'brackets', 'all'):
        return _failure(f"Unknown scope '{scope}'", 400)
    cleared = {}
    if scope in ('results', 'all'):
        cleared['results'] = db.reset_results(room_id)
    if scope in ('brackets', 'all'):
        cleared['brackets'] = db.reset_brackets(room_id)
    logger.info(f"Room {room_id} reset ({scope}) by {_current_user()}")
    return jsonify({"status": "success", "cleared": cleared})


@app.route('/api/rooms/<room_id>/report')
def report(room_id):
    """Streams the room's PDF report."""
    pick_sets = db.load_pick_sets(room_id, submitted_only=True)
    buffer = BytesIO()
    ok = generate_report(
        buffer,
        room_id,
        load_registry(),
        pick_sets,
        db.load_results(room_id),
        db.get_tiebreaker_actual(room_id),
        db.usernames([p.user_id for p in pick_sets]),
        _live_games()
    )
    if not ok:
        return _failure("Report generation failed", 500)
    buffer.seek(0)
    return send_file(buffer, mimetype="application/pdf", as_attachment=True,
                     download_name=f"nfl_playoff_pool_{room_id}.pdf")


if __name__ == '__main__':
    # Initialize the database and tables if not already created
    db.init_db()
    # Reconcile admin roles with the configured allowlist
    db.sync_admin_roles(ADMIN_EMAILS)
    live_sync.start()
    try:
        app.run(debug=False)
    finally:
        live_sync.stop()
