"""
Unit tests for the Flask JSON API.
"""
from unittest.mock import patch

import pytest

import db
from constants import DIVISIONAL, FINAL, REQUIRED_SLOTS
from espn import EspnFeedError

pytestmark = pytest.mark.db

ROOM = "office-pool"


def post_pick(client, user_id, slot_id, team_id):
    return client.post(f"/api/rooms/{ROOM}/picks", json={"slot_id": slot_id, "team_id": team_id},
                       headers={"X-User-Id": user_id})


def fill_bracket(client, user_id, picks):
    for slot_id in REQUIRED_SLOTS:
        response = post_pick(client, user_id, slot_id, picks[slot_id])
        assert response.status_code == 200, response.get_json()


def submit(client, user_id, tiebreaker_value=None):
    return client.post(f"/api/rooms/{ROOM}/submit", json={"tiebreaker_value": tiebreaker_value},
                       headers={"X-User-Id": user_id})


class TestUsers:
    """Tests for registration and the admin allowlist."""

    def test_registration_grants_admin_from_allowlist(self, client):
        with patch("main.ADMIN_EMAILS", ["commish@example.com"]):
            response = client.post("/api/users", json={"email": "Commish@Example.com", "username": "Commish"},
                                   headers={"X-User-Id": "commish-1"})
        assert response.status_code == 200
        assert response.get_json()["is_admin"] is True

        response = client.post(f"/api/rooms/{ROOM}/results", json={"slot_id": "afc-wc-0", "team_id": "DEN"},
                               headers={"X-User-Id": "commish-1"})
        assert response.status_code == 200
        assert response.get_json()["results"] == {"afc-wc-0": "7"}

    def test_registration_without_allowlist_entry(self, client):
        with patch("main.ADMIN_EMAILS", ["commish@example.com"]):
            response = client.post("/api/users", json={"email": "player@example.com"},
                                   headers={"X-User-Id": "player-1"})
        assert response.get_json()["is_admin"] is False
        assert client.post(f"/api/rooms/{ROOM}/sync", headers={"X-User-Id": "player-1"}).status_code == 403

    def test_registration_requires_user(self, client):
        assert client.post("/api/users", json={"email": "a@example.com"}).status_code == 400


class TestSeeds:
    """Tests for setting the seeded field."""

    def test_admin_sets_field(self, client, admin_user, teams):
        records = [t.to_dict() for t in teams]
        for record in records:
            if record["abbreviation"] == "KC":
                record["seed"] = 2
            elif record["abbreviation"] == "BUF":
                record["seed"] = 1
        headers = {"X-User-Id": admin_user}
        assert client.post("/api/seeds", json={"teams": records}, headers=headers).status_code == 200

        body = client.get("/api/teams").get_json()
        assert body["is_default"] is False
        assert body["teams"][0]["abbreviation"] == "BUF"

        assert client.post("/api/seeds", json={"teams": records}, headers=headers).status_code == 409
        assert client.post("/api/seeds", json={"teams": records, "replace": True}, headers=headers).status_code == 200

    def test_unusable_field(self, client, admin_user):
        response = client.post("/api/seeds", json={"teams": [{"id": "12"}]}, headers={"X-User-Id": admin_user})
        assert response.status_code == 400

    def test_requires_admin(self, client, teams):
        response = client.post("/api/seeds", json={"teams": [t.to_dict() for t in teams]},
                               headers={"X-User-Id": "player"})
        assert response.status_code == 403

    def test_refresh_from_standings(self, client, admin_user, teams):
        with patch("espn.fetch_playoff_seeds", return_value=teams):
            response = client.post("/api/seeds/refresh", headers={"X-User-Id": admin_user})
        assert response.status_code == 200
        assert len(response.get_json()["teams"]) == 14
        assert client.get("/api/teams").get_json()["is_default"] is False

    def test_refresh_feed_down(self, client, admin_user):
        with patch("espn.fetch_playoff_seeds", side_effect=EspnFeedError("down")):
            response = client.post("/api/seeds/refresh", headers={"X-User-Id": admin_user})
        assert response.status_code == 502
        assert client.get("/api/teams").get_json()["is_default"] is True


class TestTeamsAndBracket:
    """Tests for read endpoints."""

    def test_teams(self, client):
        body = client.get("/api/teams").get_json()
        assert body["status"] == "success"
        assert body["is_default"] is True
        assert len(body["teams"]) == 14

    def test_bracket_requires_user(self, client):
        assert client.get(f"/api/rooms/{ROOM}/bracket").status_code == 400

    def test_empty_bracket(self, client):
        body = client.get(f"/api/rooms/{ROOM}/bracket?user_id=u1").get_json()
        assert [m["id"] for m in body["matchups"]] == REQUIRED_SLOTS
        assert body["submitted"] is False
        assert body["points"] == 0
        assert body["best_case"] == 0
        div = body["matchups"][REQUIRED_SLOTS.index("afc-div-0")]
        assert div["team1"]["abbreviation"] == "KC"
        assert div["team2"] is None

    def test_bracket_reflects_picks(self, client, chalk_picks):
        fill_bracket(client, "u1", chalk_picks)
        body = client.get(f"/api/rooms/{ROOM}/bracket", headers={"X-User-Id": "u1"}).get_json()
        super_bowl = body["matchups"][-1]
        assert super_bowl["predicted_winner"] == "12"
        assert body["best_case"] == 23
        assert body["grades"]["super-bowl"]["classification"] is None


class TestPicks:
    """Tests for pick writes."""

    def test_pick_by_abbreviation_is_stored_as_id(self, client):
        response = post_pick(client, "u1", "afc-wc-0", "DEN")
        assert response.status_code == 200
        assert response.get_json()["picks"] == {"afc-wc-0": "7"}

    def test_team_outside_matchup(self, client):
        response = post_pick(client, "u1", "afc-wc-0", "12")
        assert response.status_code == 400
        assert response.get_json()["status"] == "failure"

    def test_inert_slot(self, client):
        assert post_pick(client, "u1", "afc-div-0", "12").status_code == 400

    def test_unknown_slot(self, client):
        assert post_pick(client, "u1", "afc-wc-5", "2").status_code == 400

    def test_missing_user(self, client):
        response = client.post(f"/api/rooms/{ROOM}/picks", json={"slot_id": "afc-wc-0", "team_id": "2"})
        assert response.status_code == 400

    def test_changed_pick_clears_stale_downstream_picks(self, client, chalk_picks):
        fill_bracket(client, "u1", chalk_picks)
        response = post_pick(client, "u1", "afc-wc-0", "7")  # DEN now plays KC, BUF is out
        body = response.get_json()
        assert body["cleared"] == ["afc-div-1", "afc-conf", "super-bowl"]
        assert "afc-div-0" in body["picks"]
        assert "super-bowl" not in body["picks"]


class TestSubmit:
    """Tests for the submission gate and the lock."""

    def test_incomplete_bracket_lists_missing_slots(self, client, chalk_picks):
        for slot_id in REQUIRED_SLOTS[:6]:
            post_pick(client, "u1", slot_id, chalk_picks[slot_id])
        response = submit(client, "u1", 45)
        assert response.status_code == 400
        assert response.get_json()["missing"] == REQUIRED_SLOTS[6:]

    def test_submit_then_locked(self, client, chalk_picks):
        fill_bracket(client, "u1", chalk_picks)
        response = submit(client, "u1", 45)
        assert response.status_code == 200
        assert response.get_json()["tiebreaker_value"] == 45
        assert post_pick(client, "u1", "afc-wc-0", "7").status_code == 409
        assert submit(client, "u1").status_code == 409

    def test_bad_tiebreaker(self, client):
        assert submit(client, "u1", "lots").status_code == 400


class TestLeaderboard:
    """Tests for the leaderboard endpoint."""

    def test_ranking_with_tiebreaker(self, client, chalk_picks, admin_user):
        for user_id, guess in (("far", 41), ("near", 47)):
            fill_bracket(client, user_id, chalk_picks)
            submit(client, user_id, guess)
        post_pick(client, "draft", "afc-wc-0", "2")

        db.set_result(ROOM, "super-bowl", "12")
        client.post(f"/api/rooms/{ROOM}/results", json={"tiebreaker_actual": 45},
                    headers={"X-User-Id": admin_user})

        body = client.get(f"/api/rooms/{ROOM}/leaderboard", headers={"X-User-Id": "far"}).get_json()
        assert body["tiebreaker_actual"] == 45
        assert [(e["rank"], e["user_id"], e["points"]) for e in body["entries"]] == [
            (1, "near", 5), (2, "far", 5)
        ]

    def test_hidden_until_own_bracket_is_submitted(self, client, chalk_picks):
        fill_bracket(client, "u1", chalk_picks)
        assert client.get(f"/api/rooms/{ROOM}/leaderboard").status_code == 400
        assert client.get(f"/api/rooms/{ROOM}/leaderboard", headers={"X-User-Id": "u1"}).status_code == 403
        submit(client, "u1", 44)
        response = client.get(f"/api/rooms/{ROOM}/leaderboard", headers={"X-User-Id": "u1"})
        assert response.status_code == 200
        assert [e["user_id"] for e in response.get_json()["entries"]] == ["u1"]


class TestAdminResults:
    """Tests for admin-only result endpoints."""

    def test_anyone_can_read(self, client):
        db.set_result(ROOM, "afc-wc-0", "7")
        assert client.get(f"/api/rooms/{ROOM}/results").get_json()["results"] == {"afc-wc-0": "7"}

    def test_requires_admin(self, client, admin_user):
        payload = {"slot_id": "afc-wc-0", "team_id": "7"}
        assert client.post(f"/api/rooms/{ROOM}/results", json=payload).status_code == 401
        assert client.post(f"/api/rooms/{ROOM}/results", json=payload,
                           headers={"X-User-Id": "player"}).status_code == 403

    def test_set_and_clear(self, client, admin_user):
        headers = {"X-User-Id": admin_user}
        response = client.post(f"/api/rooms/{ROOM}/results", json={"slot_id": "afc-wc-0", "team_id": "DEN"},
                               headers=headers)
        assert response.status_code == 200
        assert response.get_json()["results"] == {"afc-wc-0": "7"}

        assert client.delete(f"/api/rooms/{ROOM}/results?slot_id=afc-wc-0", headers=headers).status_code == 200
        assert client.delete(f"/api/rooms/{ROOM}/results?slot_id=afc-wc-0", headers=headers).status_code == 404

    def test_invalid_winner(self, client, admin_user):
        headers = {"X-User-Id": admin_user}
        bad_team = {"slot_id": "afc-wc-0", "team_id": "12"}
        inert = {"slot_id": "afc-div-0", "team_id": "12"}
        assert client.post(f"/api/rooms/{ROOM}/results", json=bad_team, headers=headers).status_code == 400
        assert client.post(f"/api/rooms/{ROOM}/results", json=inert, headers=headers).status_code == 400

    def test_sync(self, client, admin_user, final_wild_card_games):
        with patch("espn.fetch_playoff_games", return_value=final_wild_card_games):
            response = client.post(f"/api/rooms/{ROOM}/sync", headers={"X-User-Id": admin_user})
        assert response.status_code == 200
        assert response.get_json()["applied"] == ["afc-wc-0", "afc-wc-1", "afc-wc-2"]

    def test_sync_feeds_live_pairings_to_bracket(self, client, admin_user, final_wild_card_games,
                                                 team_by_abbr, game_factory):
        divisional = game_factory("411", DIVISIONAL, team_by_abbr("KC"), team_by_abbr("DEN"), 30, 20, FINAL)
        with patch("espn.fetch_playoff_games", return_value=final_wild_card_games + [divisional]):
            response = client.post(f"/api/rooms/{ROOM}/sync", headers={"X-User-Id": admin_user})
        assert response.get_json()["applied"] == ["afc-wc-0", "afc-wc-1", "afc-wc-2", "afc-div-0"]

        body = client.get(f"/api/rooms/{ROOM}/bracket", headers={"X-User-Id": "u1"}).get_json()
        div = body["matchups"][REQUIRED_SLOTS.index("afc-div-0")]
        assert div["team1"]["abbreviation"] == "KC"
        assert div["team2"]["abbreviation"] == "DEN"
        assert (div["status"], div["home_score"], div["away_score"]) == (FINAL, 30, 20)

    def test_sync_feed_down(self, client, admin_user):
        with patch("espn.fetch_playoff_games", side_effect=EspnFeedError("timeout")):
            response = client.post(f"/api/rooms/{ROOM}/sync", headers={"X-User-Id": admin_user})
        assert response.status_code == 502

    def test_reset(self, client, admin_user, chalk_picks):
        fill_bracket(client, "u1", chalk_picks)
        db.set_result(ROOM, "afc-wc-0", "2")
        response = client.post(f"/api/rooms/{ROOM}/reset", json={"scope": "all"}, headers={"X-User-Id": admin_user})
        assert response.get_json()["cleared"] == {"results": 1, "brackets": 1}
        assert db.load_results(ROOM) == {}
        assert db.load_pick_sets(ROOM) == []


class TestAdminBrackets:
    """Tests for the admin bracket list and removal."""

    def test_list_submitted_brackets(self, client, admin_user, chalk_picks):
        fill_bracket(client, "u1", chalk_picks)
        submit(client, "u1", 44)
        post_pick(client, "draft", "afc-wc-0", "2")
        db.set_result(ROOM, "afc-wc-0", "2")

        response = client.get(f"/api/rooms/{ROOM}/brackets", headers={"X-User-Id": admin_user})
        assert response.status_code == 200
        brackets = response.get_json()["brackets"]
        assert [(b["user_id"], b["points"], b["tiebreaker_value"]) for b in brackets] == [("u1", 1, 44)]
        assert brackets[0]["picks"] == chalk_picks

    def test_delete_bracket(self, client, admin_user, chalk_picks):
        fill_bracket(client, "u1", chalk_picks)
        submit(client, "u1", 44)
        headers = {"X-User-Id": admin_user}
        assert client.delete(f"/api/rooms/{ROOM}/brackets/u1", headers=headers).status_code == 200
        assert client.delete(f"/api/rooms/{ROOM}/brackets/u1", headers=headers).status_code == 404
        assert post_pick(client, "u1", "afc-wc-0", "7").status_code == 200

    def test_requires_admin(self, client):
        headers = {"X-User-Id": "player"}
        assert client.get(f"/api/rooms/{ROOM}/brackets", headers=headers).status_code == 403
        assert client.delete(f"/api/rooms/{ROOM}/brackets/u1", headers=headers).status_code == 403


class TestReport:
    """Tests for the PDF report endpoint."""

    def test_pdf(self, client, chalk_picks):
        fill_bracket(client, "u1", chalk_picks)
        submit(client, "u1", 44)
        db.set_result(ROOM, "afc-wc-0", "7")
        with patch("report.fig_to_image", return_value=None):
            response = client.get(f"/api/rooms/{ROOM}/report")
        assert response.status_code == 200
        assert response.mimetype == "application/pdf"
        assert response.data.startswith(b"%PDF")
