"""
db.py

This module defines the database models and storage functions for the NFL Playoff Pool application.
It uses SQLAlchemy to manage database sessions and models for Users, Brackets (pick sets),
Bracket Picks, Game Results, Room State and the seasonal Team Seeds.

The bracket lock and the "auto-sync never overwrites" rule are enforced here, at the
write boundary, in addition to the in-memory checks of scoring.PickSet and reconcile.merge_results.
"""

import datetime

from sqlalchemy import (
    create_engine, Boolean, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, update
)
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker, relationship, declarative_base

from config import DATABASE_URL, logger
from constants import REQUIRED_SLOTS
from models import Team
from reconcile import merge_results
from scoring import BracketLockedError, IncompleteBracketError, PickSet, validate_submission

# Create a base class for all ORM models.
Base = declarative_base()

SOURCE_AUTO = "auto"
SOURCE_ADMIN = "admin"


class SeedsLockedError(Exception):
    """Raised when a season's seeds are saved a second time without replace=True."""
    pass


class User(Base):
    """
    Represents a pool participant. Only the id is meaningful to the engine.

    Attributes:
        user_id (str): Opaque identifier supplied by the auth provider.
        email (str): Used to reconcile the admin role.
        username (str): Display name for the leaderboard.
        is_admin (bool): May edit results and reset rooms.
    """
    __tablename__ = 'users'
    user_id = Column(String, primary_key=True)
    email = Column(String, unique=True, nullable=True)
    username = Column(String, nullable=True)
    is_admin = Column(Boolean, default=False, nullable=False)


class Bracket(Base):
    """
    Stores one user's pick set for one room.

    Attributes:
        bracket_id (int): Primary key.
        room_id (str): Opaque room identifier.
        user_id (str): Opaque user identifier.
        submitted (bool): Bracket lock; no pick writes are accepted once True.
        submitted_at (datetime): When the lock was taken.
        tiebreaker_value (int): Guess of the combined Super Bowl score.
        picks (List[BracketPick]): One row per picked slot.
    """
    __tablename__ = 'brackets'
    bracket_id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String, nullable=False)
    user_id = Column(String, nullable=False)
    submitted = Column(Boolean, default=False, nullable=False)
    submitted_at = Column(DateTime, nullable=True)
    tiebreaker_value = Column(Integer, nullable=True)
    updated_at = Column(DateTime, nullable=True)
    picks = relationship("BracketPick", back_populates="bracket", cascade="all, delete-orphan")
    __table_args__ = (UniqueConstraint('room_id', 'user_id', name='uq_bracket_room_user'),)


class BracketPick(Base):
    """
    A single predicted winner.

    Attributes:
        slot_id (str): Stable slot id, e.g. "afc-wc-0".
        team_id (str): The team picked to win that slot.
    """
    __tablename__ = 'bracket_picks'
    pick_id = Column(Integer, primary_key=True, autoincrement=True)
    bracket_id = Column(Integer, ForeignKey('brackets.bracket_id'), nullable=False)
    slot_id = Column(String, nullable=False)
    team_id = Column(String, nullable=False)
    bracket = relationship("Bracket", back_populates="picks")
    __table_args__ = (UniqueConstraint('bracket_id', 'slot_id', name='uq_pick_bracket_slot'),)


class GameResult(Base):
    """
    The adjudicated winner of one slot in one room.

    Attributes:
        source (str): "auto" when written by live sync, "admin" for manual overrides.
        updated_at (str): ISO formatted timestamp of the last write.
    """
    __tablename__ = 'game_results'
    result_id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String, nullable=False)
    slot_id = Column(String, nullable=False)
    team_id = Column(String, nullable=False)
    source = Column(String, nullable=False, default=SOURCE_AUTO)
    updated_at = Column(String)
    __table_args__ = (UniqueConstraint('room_id', 'slot_id', name='uq_result_room_slot'),)


class RoomState(Base):
    """Per-room values that are not slot results, i.e. the real tiebreaker total."""
    __tablename__ = 'room_state'
    room_id = Column(String, primary_key=True)
    tiebreaker_actual = Column(Integer, nullable=True)


class TeamSeed(Base):
    """A seeded playoff team for one season."""
    __tablename__ = 'team_seeds'
    seed_id = Column(Integer, primary_key=True, autoincrement=True)
    season = Column(Integer, nullable=False)
    team_id = Column(String, nullable=False)
    name = Column(String)
    city = Column(String)
    abbreviation = Column(String)
    conference = Column(String, nullable=False)
    seed = Column(Integer, nullable=False)
    color = Column(String)
    __table_args__ = (
        UniqueConstraint('season', 'conference', 'seed', name='uq_seed_season_conf_seed'),
        UniqueConstraint('season', 'team_id', name='uq_seed_season_team'),
    )


# Create the SQLAlchemy engine using the DATABASE_URL from configuration.
engine = create_engine(DATABASE_URL, echo=False)

# Create a session factory bound to the engine.
SessionLocal = sessionmaker(bind=engine)


def init_db(bind=None):
    """
    Initializes the database by creating all tables defined in the ORM models.
    Call this at application startup to ensure the database schema is in place.
    """
    Base.metadata.create_all(bind or engine)


def _now():
    return datetime.datetime.now(datetime.timezone.utc)


# ---------------------------
# Pick sets
# ---------------------------
def _to_pick_set(bracket):
    return PickSet(
        user_id=bracket.user_id,
        room_id=bracket.room_id,
        picks={p.slot_id: p.team_id for p in bracket.picks},
        submitted=bool(bracket.submitted),
        submitted_at=bracket.submitted_at,
        tiebreaker_value=bracket.tiebreaker_value
    )


def load_pick_set(room_id, user_id):
    """Returns the user's PickSet for the room; an empty, open one if none is stored."""
    session = SessionLocal()
    try:
        bracket = session.query(Bracket).filter_by(room_id=room_id, user_id=user_id).first()
        if bracket is None:
            return PickSet(user_id=user_id, room_id=room_id)
        return _to_pick_set(bracket)
    finally:
        session.close()


def load_pick_sets(room_id, submitted_only=False):
    """
    Returns every PickSet of a room in arrival order (submission time, then creation).
    """
    session = SessionLocal()
    try:
        query = session.query(Bracket).filter_by(room_id=room_id)
        if submitted_only:
            query = query.filter(Bracket.submitted.is_(True))
        brackets = query.order_by(Bracket.submitted_at, Bracket.bracket_id).all()
        return [_to_pick_set(b) for b in brackets]
    finally:
        session.close()


def _claim_open_bracket(session, bracket_id, values):
    """
    Conditional UPDATE that only matches an unsubmitted bracket. A rowcount of
    zero means another writer locked the bracket first.
    """
    result = session.execute(
        update(Bracket)
        .where(Bracket.bracket_id == bracket_id, Bracket.submitted.is_(False))
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def save_pick(room_id, user_id, slot_id, team_id):
    """
    Records (or clears, when team_id is empty) one pick.

    Raises:
        BracketLockedError: If the bracket is already submitted.
        ValueError: For an unknown slot id.
    """
    if slot_id not in REQUIRED_SLOTS:
        raise ValueError(f"Unknown slot id '{slot_id}'.")
    session = SessionLocal()
    try:
        bracket = session.query(Bracket).filter_by(room_id=room_id, user_id=user_id).first()
        if bracket is None:
            bracket = Bracket(room_id=room_id, user_id=user_id, submitted=False)
            session.add(bracket)
            session.flush()
        if bracket.submitted:
            raise BracketLockedError(f"Bracket for user {user_id} in room {room_id} is already submitted.")

        existing = next((p for p in bracket.picks if p.slot_id == slot_id), None)
        if team_id:
            if existing:
                existing.team_id = str(team_id)
            else:
                bracket.picks.append(BracketPick(slot_id=slot_id, team_id=str(team_id)))
        elif existing:
            bracket.picks.remove(existing)
        session.flush()

        if not _claim_open_bracket(session, bracket.bracket_id, {"updated_at": _now()}):
            raise BracketLockedError(f"Bracket for user {user_id} in room {room_id} was submitted concurrently.")
        session.commit()
        logger.info(f"Saved pick {slot_id}={team_id} for user {user_id} in room {room_id}")
        return _to_pick_set(bracket)
    except BracketLockedError:
        session.rollback()
        raise
    except Exception as e:
        logger.error(f"Error saving pick: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def submit_bracket(room_id, user_id, tiebreaker_value=None, now=None):
    """
    Locks a user's bracket. The unsubmitted -> submitted transition is a single
    conditional UPDATE, so exactly one concurrent caller can succeed.

    Raises:
        IncompleteBracketError: If any required slot is unpicked.
        BracketLockedError: If the bracket is already submitted.
    """
    session = SessionLocal()
    try:
        bracket = session.query(Bracket).filter_by(room_id=room_id, user_id=user_id).first()
        if bracket is None:
            raise IncompleteBracketError(REQUIRED_SLOTS)
        if bracket.submitted:
            raise BracketLockedError(f"Bracket for user {user_id} in room {room_id} is already submitted.")
        validate_submission({p.slot_id: p.team_id for p in bracket.picks})

        submitted_at = now or _now()
        values = {"submitted": True, "submitted_at": submitted_at, "updated_at": submitted_at}
        if tiebreaker_value is not None:
            values["tiebreaker_value"] = int(tiebreaker_value)
        if not _claim_open_bracket(session, bracket.bracket_id, values):
            raise BracketLockedError(f"Bracket for user {user_id} in room {room_id} is already submitted.")
        session.commit()
        logger.info(f"User {user_id} submitted bracket in room {room_id}")
        session.refresh(bracket)
        return _to_pick_set(bracket)
    except (BracketLockedError, IncompleteBracketError):
        session.rollback()
        raise
    except Exception as e:
        logger.error(f"Error submitting bracket: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def delete_bracket(room_id, user_id):
    """Admin action: removes one user's bracket. Returns True if one existed."""
    session = SessionLocal()
    try:
        bracket = session.query(Bracket).filter_by(room_id=room_id, user_id=user_id).first()
        if bracket is None:
            return False
        session.delete(bracket)
        session.commit()
        logger.info(f"Deleted bracket of user {user_id} in room {room_id}")
        return True
    except Exception as e:
        logger.error(f"Error deleting bracket: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def reset_brackets(room_id):
    """Admin action: removes every bracket of a room. Returns the number removed."""
    session = SessionLocal()
    try:
        brackets = session.query(Bracket).filter_by(room_id=room_id).all()
        for bracket in brackets:
            session.delete(bracket)
        session.commit()
        logger.info(f"Reset {len(brackets)} bracket(s) in room {room_id}")
        return len(brackets)
    except Exception as e:
        logger.error(f"Error resetting brackets: {e}")
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------
# Results
# ---------------------------
def load_results(room_id):
    """Returns the room's results map: slot_id -> team_id."""
    session = SessionLocal()
    try:
        return {r.slot_id: r.team_id for r in session.query(GameResult).filter_by(room_id=room_id).all()}
    finally:
        session.close()


def set_result(room_id, slot_id, team_id):
    """
    Admin override: always writes, replacing any auto-synced value.
    """
    if slot_id not in REQUIRED_SLOTS:
        raise ValueError(f"Unknown slot id '{slot_id}'.")
    session = SessionLocal()
    try:
        result = session.query(GameResult).filter_by(room_id=room_id, slot_id=slot_id).first()
        if result is None:
            result = GameResult(room_id=room_id, slot_id=slot_id)
            session.add(result)
        result.team_id = str(team_id)
        result.source = SOURCE_ADMIN
        result.updated_at = _now().isoformat()
        session.commit()
        logger.info(f"Admin set result {slot_id}={team_id} in room {room_id}")
    except Exception as e:
        logger.error(f"Error setting result: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def clear_result(room_id, slot_id):
    """Admin action: removes one slot's result. Returns True if one existed."""
    session = SessionLocal()
    try:
        deleted = session.query(GameResult).filter_by(room_id=room_id, slot_id=slot_id).delete()
        session.commit()
        if deleted:
            logger.info(f"Cleared result {slot_id} in room {room_id}")
        return bool(deleted)
    except Exception as e:
        logger.error(f"Error clearing result: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def reset_results(room_id):
    """Admin action: removes every result and the tiebreaker total of a room."""
    session = SessionLocal()
    try:
        deleted = session.query(GameResult).filter_by(room_id=room_id).delete()
        session.query(RoomState).filter_by(room_id=room_id).delete()
        session.commit()
        logger.info(f"Reset {deleted} result(s) in room {room_id}")
        return deleted
    except Exception as e:
        logger.error(f"Error resetting results: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def merge_auto_results(room_id, winners):
    """
    Stores auto-synced winners for slots that have no result yet.

    The existing rows are read and the new ones written in the same
    transaction; the (room_id, slot_id) unique constraint rejects a row that
    a concurrent writer inserted in between, in which case the stored value
    is kept and this pass writes nothing (the next pass retries).

    Returns:
        list[str]: Slot ids written by this call.
    """
    session = SessionLocal()
    try:
        existing = {r.slot_id: r.team_id for r in session.query(GameResult).filter_by(room_id=room_id).all()}
        _, applied = merge_results(existing, winners)
        stamp = _now().isoformat()
        for slot_id in applied:
            session.add(GameResult(room_id=room_id, slot_id=slot_id, team_id=str(winners[slot_id]),
                                   source=SOURCE_AUTO, updated_at=stamp))
        session.commit()
        return applied
    except IntegrityError:
        session.rollback()
        logger.warning(f"Concurrent result write in room {room_id}; keeping stored results.")
        return []
    except Exception as e:
        logger.error(f"Error merging auto-synced results: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def get_tiebreaker_actual(room_id):
    session = SessionLocal()
    try:
        state = session.get(RoomState, room_id)
        return state.tiebreaker_actual if state else None
    finally:
        session.close()


def set_tiebreaker_actual(room_id, value, overwrite=False):
    """
    Records the real combined Super Bowl score. Auto-sync calls this with
    overwrite=False so that an admin-entered value is kept.

    Returns:
        bool: True if the value was written.
    """
    session = SessionLocal()
    try:
        state = session.get(RoomState, room_id)
        if state is None:
            state = RoomState(room_id=room_id)
            session.add(state)
        elif state.tiebreaker_actual is not None and not overwrite:
            return False
        state.tiebreaker_actual = None if value is None else int(value)
        session.commit()
        return True
    except Exception as e:
        logger.error(f"Error storing tiebreaker total: {e}")
        session.rollback()
        raise
    finally:
        session.close()


# ---------------------------
# Team seeds
# ---------------------------
def save_team_seeds(season, teams, replace=False):
    """
    Stores the seeded field for a season. The registry is set once per season.

    Raises:
        SeedsLockedError: If seeds exist for the season and replace is False.
    """
    session = SessionLocal()
    try:
        existing = session.query(TeamSeed).filter_by(season=season)
        if existing.count() and not replace:
            raise SeedsLockedError(f"Seeds for season {season} are already set.")
        existing.delete()
        for team in teams:
            session.add(TeamSeed(
                season=season,
                team_id=team.id,
                name=team.name,
                city=team.city,
                abbreviation=team.abbreviation,
                conference=team.conference,
                seed=team.seed,
                color=team.color
            ))
        session.commit()
        logger.info(f"Saved {len(teams)} seeded team(s) for season {season}")
    except SeedsLockedError:
        session.rollback()
        raise
    except Exception as e:
        logger.error(f"Error saving team seeds: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def load_team_seeds(season):
    """Returns the stored seeded field for a season as Team records (empty if unset)."""
    session = SessionLocal()
    try:
        rows = session.query(TeamSeed).filter_by(season=season).order_by(TeamSeed.conference, TeamSeed.seed).all()
        return [
            Team(id=r.team_id, name=r.name or "", city=r.city or "", abbreviation=r.abbreviation or "",
                 conference=r.conference, seed=r.seed, color=r.color or "")
            for r in rows
        ]
    finally:
        session.close()


# ---------------------------
# Users and admin roles
# ---------------------------
def upsert_user(user_id, email=None, username=None):
    session = SessionLocal()
    try:
        user = session.get(User, user_id)
        if user is None:
            user = User(user_id=user_id, is_admin=False)
            session.add(user)
        if email is not None:
            user.email = email.strip().lower()
        if username is not None:
            user.username = username
        session.commit()
    except Exception as e:
        logger.error(f"Error saving user {user_id}: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def sync_admin_roles(admin_emails):
    """
    Reconciles User.is_admin with the configured admin allowlist.

    Run once at a well-defined boundary (application start, role changes);
    running it again with the same allowlist changes nothing.

    Returns:
        int: Number of users whose role changed.
    """
    allowed = {e.strip().lower() for e in admin_emails if e and e.strip()}
    session = SessionLocal()
    try:
        changed = 0
        for user in session.query(User).all():
            should_be_admin = bool(user.email) and user.email.lower() in allowed
            if bool(user.is_admin) != should_be_admin:
                user.is_admin = should_be_admin
                changed += 1
        session.commit()
        if changed:
            logger.info(f"Admin role reconciliation updated {changed} user(s).")
        return changed
    except Exception as e:
        logger.error(f"Error reconciling admin roles: {e}")
        session.rollback()
        raise
    finally:
        session.close()


def is_admin(user_id):
    if not user_id:
        return False
    session = SessionLocal()
    try:
        user = session.get(User, user_id)
        return bool(user and user.is_admin)
    finally:
        session.close()


def usernames(user_ids):
    """Maps user ids to display names (username, then email)."""
    session = SessionLocal()
    try:
        users = session.query(User).filter(User.user_id.in_(list(user_ids))).all()
        return {u.user_id: u.username or u.email or u.user_id for u in users}
    finally:
        session.close()


def list_rooms():
    """Every room id that has a bracket or a result, sorted."""
    session = SessionLocal()
    try:
        rooms = {r for (r,) in session.query(Bracket.room_id).distinct()}
        rooms.update(r for (r,) in session.query(GameResult.room_id).distinct())
        return sorted(rooms)
    finally:
        session.close()
