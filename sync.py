"""
sync.py

Live result synchronisation for the NFL Playoff Pool application.

sync_room_results() runs one pass for one room: fetch the playoff
scoreboards, reconcile them against the seeded field and store the winners
of Final games in slots that have no result yet. LiveSync repeats that pass
for every room on a daemon thread until stop() is called; sync_room() runs
it on demand. Both keep the latest feed snapshot that bracket reads use.

A failed ESPN request is logged and the pass is skipped; it never stops the
scheduler.
"""

import threading
from dataclasses import replace

import db
import espn
from config import SEASON, SYNC_INTERVAL_SECONDS, logger
from reconcile import reconcile
from teams import TeamRegistry


def load_registry(season=None):
    """The season's stored seeds, or the default field when none are stored."""
    return TeamRegistry(db.load_team_seeds(season or SEASON))


def refresh_seeds(season=None, replace_existing=False, fetch=None):
    """
    Loads the seeded field from ESPN standings and stores it for the season.

    Raises:
        EspnFeedError: If the standings cannot be fetched.
        SeedsLockedError: If the season is already seeded and replace_existing is False.
    """
    season = season or SEASON
    fetch = fetch or espn.fetch_playoff_seeds
    registry = TeamRegistry(fetch(season))
    if registry.is_default:
        logger.warning(f"ESPN standings for {season} did not contain a usable playoff field; nothing stored.")
        return registry
    db.save_team_seeds(season, registry.teams, replace=replace_existing)
    return registry


def sync_room_results(room_id, fetch=None, registry=None):
    """
    Runs one live sync pass for a room.

    Args:
        room_id (str): The room to update.
        fetch (callable): Returns a list of LiveGame; defaults to espn.fetch_playoff_games.
        registry (TeamRegistry): The seeded field; loaded from storage if omitted.

    Returns:
        ReconcileResult with `applied` listing the slots actually stored, or
        None when the feed could not be read.
    """
    fetch = fetch or espn.fetch_playoff_games
    registry = registry or load_registry()
    try:
        live_games = fetch()
    except espn.EspnFeedError as e:
        logger.error(f"Live sync for room {room_id} skipped: {e}")
        return None

    result = reconcile(live_games, registry, db.load_results(room_id))
    stored = db.merge_auto_results(room_id, {slot_id: result.updated_results[slot_id] for slot_id in result.applied})
    if result.tiebreaker_total is not None:
        db.set_tiebreaker_actual(room_id, result.tiebreaker_total)
    return replace(result, applied=stored)


class LiveSync:
    """
    Periodic live sync on a background thread.

    Attributes:
        interval (float): Seconds between passes.
        latest_games (list[LiveGame]): Games from the most recent successful fetch.
    """

    def __init__(self, room_ids=None, interval=SYNC_INTERVAL_SECONDS, fetch=None):
        self.room_ids = list(room_ids) if room_ids is not None else None
        self.interval = interval
        self.fetch = fetch
        self.latest_games = []
        self._stop_event = threading.Event()
        self._thread = None

    @property
    def is_running(self):
        return self._thread is not None and self._thread.is_alive()

    def _fetch(self):
        """Reads the feed and keeps the snapshot; None when the fetch failed."""
        fetch = self.fetch or espn.fetch_playoff_games
        try:
            games = fetch()
        except espn.EspnFeedError as e:
            logger.error(f"Live sync pass skipped: {e}")
            return None
        self.latest_games = games
        return games

    def sync_room(self, room_id):
        """
        Runs one pass for a single room and refreshes latest_games.

        Returns:
            ReconcileResult, or None when the feed could not be read.
        """
        games = self._fetch()
        if games is None:
            return None
        return sync_room_results(room_id, fetch=lambda: games)

    def run_once(self):
        """
        Fetches the feed once and syncs every room with the same snapshot.

        Returns:
            dict: room_id -> ReconcileResult (empty when the fetch failed).
        """
        games = self._fetch()
        if games is None:
            return {}

        registry = load_registry()
        room_ids = self.room_ids if self.room_ids is not None else db.list_rooms()
        return {
            room_id: sync_room_results(room_id, fetch=lambda: games, registry=registry)
            for room_id in room_ids
        }

    def _run(self):
        logger.info(f"Live sync started (every {self.interval:.0f}s).")
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception as e:
                logger.error(f"Live sync pass failed: {e}")
            self._stop_event.wait(self.interval)
        logger.info("Live sync stopped.")

    def start(self):
        if self.is_running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="live-sync", daemon=True)
        self._thread.start()

    def stop(self, timeout=None):
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
