"""
Session state machine for group swiping.

A session moves lobby -> swiping -> revealed and never back. The deck is
built (with all provider calls) before anything is written, so a failed
build leaves no trace. Swipes are upserted per (session, user, movie) and
the swiper's completion flag is recomputed from the stored rows in the
same transaction, under a lock on that participant's row.

"All completed" is derived state: clients read it from ``get_state`` and
call ``reveal`` themselves.
"""

import os
from datetime import datetime
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from cinematch import movies
from cinematch.deck_builder import DeckBuilder
from cinematch.exceptions import (
    AlreadyStartedError,
    EmptyDeckError,
    ForbiddenError,
    InvalidStateError,
    InvalidSwipeError,
    NotInLobbyError,
    NotSwipingError,
    RoomCodeExhaustedError,
    SessionNotFoundError,
)
from cinematch.logging_config import get_logger
from cinematch.matching import compute_matches, compute_prematches
from cinematch.metrics import track_participant_completed, track_reveal, track_session_created, track_swipe
from cinematch.models import (
    db,
    GroupSession,
    SavedMovie,
    SessionParticipant,
    SessionStatus,
    Swipe,
    WatchedMovie,
)
from cinematch.utils import generate_room_code, normalize_room_code

logger = get_logger(__name__)

DEFAULT_DECK_SIZE = int(os.getenv("DEFAULT_DECK_SIZE", "25"))
ROOM_CODE_MAX_ATTEMPTS = int(os.getenv("ROOM_CODE_MAX_ATTEMPTS", "20"))
HISTORY_LIMIT = 50


def _exclude_idle_default() -> bool:
    return os.getenv("MATCH_EXCLUDE_IDLE", "0").lower() in ("1", "true", "yes")


class SessionService:
    """
    Operations on group sessions.

    Methods take the acting user's id explicitly; authentication happens
    in the web layer. Client errors raise ``MatchError`` subclasses before
    any write.
    """

    def __init__(self, builder: Optional[DeckBuilder] = None, exclude_idle: Optional[bool] = None):
        self.builder = builder or DeckBuilder()
        self.exclude_idle = _exclude_idle_default() if exclude_idle is None else exclude_idle

    # --- lookups ---------------------------------------------------------

    def get_session(self, session_id: str) -> GroupSession:
        group = db.session.get(GroupSession, session_id)
        if group is None:
            raise SessionNotFoundError()
        return group

    def get_participant(self, session_id: str, user_id: str, lock: bool = False) -> Optional[SessionParticipant]:
        query = SessionParticipant.query.filter_by(session_id=session_id, user_id=user_id)
        if lock:
            query = query.with_for_update()
        return query.first()

    def require_participant(self, session_id: str, user_id: str) -> SessionParticipant:
        participant = self.get_participant(session_id, user_id)
        if participant is None:
            raise ForbiddenError("Not a participant")
        return participant

    def lookup(self, code: str) -> GroupSession:
        group = GroupSession.query.filter_by(code=normalize_room_code(code)).first()
        if group is None:
            raise SessionNotFoundError()
        return group

    # --- lifecycle -------------------------------------------------------

    def create(self, host_id: str, source, deck_size: Optional[int] = None,
               nickname: Optional[str] = None) -> GroupSession:
        """
        Build a deck and open a session in the lobby with the host joined.

        Raises:
            InvalidSourceError, UpstreamError: the source could not be used
            EmptyDeckError: no movie could be resolved
            RoomCodeExhaustedError: no free room code after the retry budget
        """
        deck = self.builder.build(source, deck_size or DEFAULT_DECK_SIZE)
        if not deck:
            raise EmptyDeckError()

        for attempt in range(ROOM_CODE_MAX_ATTEMPTS):
            code = generate_room_code()
            if GroupSession.query.filter_by(code=code).first() is not None:
                continue

            group = GroupSession(code=code, host_id=host_id, deck=deck, status=SessionStatus.LOBBY.value)
            db.session.add(group)
            try:
                db.session.flush()
                db.session.add(SessionParticipant(
                    session_id=group.id,
                    user_id=host_id,
                    nickname=nickname or "Host",
                ))
                db.session.commit()
            except IntegrityError:
                # A concurrent create took the same code between check and insert
                db.session.rollback()
                logger.info("room_code_collision", attempt=attempt + 1)
                continue

            track_session_created(source.type)
            logger.info(
                "session_created",
                group_session_id=group.id,
                room_code=group.code,
                source=source.type,
                deck_size=len(deck),
            )
            return group

        logger.error("room_code_exhausted", attempts=ROOM_CODE_MAX_ATTEMPTS)
        raise RoomCodeExhaustedError()

    def join(self, code: str, user_id: str, nickname: Optional[str] = None) -> GroupSession:
        """
        Add ``user_id`` to the session with this room code.

        Joining again is a no-op, so retries are safe.
        """
        group = self.lookup(code)

        if self.get_participant(group.id, user_id) is not None:
            return group

        if group.status != SessionStatus.LOBBY.value:
            raise AlreadyStartedError()

        db.session.add(SessionParticipant(session_id=group.id, user_id=user_id, nickname=nickname or "Guest"))
        try:
            db.session.commit()
        except IntegrityError:
            # Same user joined twice at once; the other request won
            db.session.rollback()
            return group

        logger.info("participant_joined", group_session_id=group.id, participants=len(group.participants))
        return group

    def _transition(self, group: GroupSession, current: SessionStatus, target: SessionStatus) -> bool:
        """Compare-and-set the status; False when another request moved it first."""
        if not current.can_transition_to(target):
            raise InvalidStateError()
        updated = GroupSession.query.filter_by(id=group.id, status=current.value).update(
            {"status": target.value}, synchronize_session=False
        )
        db.session.commit()
        db.session.refresh(group)
        return updated == 1

    def start(self, session_id: str, user_id: str) -> GroupSession:
        """Host-only: lobby -> swiping."""
        group = self.get_session(session_id)
        if group.host_id != user_id:
            raise ForbiddenError("Only host can start")
        if group.status != SessionStatus.LOBBY.value:
            raise NotInLobbyError()

        if not self._transition(group, SessionStatus.LOBBY, SessionStatus.SWIPING):
            raise NotInLobbyError()

        logger.info("session_started", group_session_id=group.id, participants=len(group.participants))
        return group

    def swipe(self, session_id: str, user_id: str, movie_id: int, liked: bool) -> SessionParticipant:
        """
        Record (or overwrite) a verdict and refresh the swiper's completion.

        Returns:
            The swiper's participant row after the update
        """
        group = self.get_session(session_id)
        if group.status != SessionStatus.SWIPING.value:
            raise NotSwipingError()

        deck = list(group.deck or [])
        if movie_id not in deck:
            raise InvalidSwipeError()

        # Serializes this user's swipes; other users are not blocked
        participant = self.get_participant(session_id, user_id, lock=True)
        if participant is None:
            db.session.rollback()
            raise ForbiddenError("Not a participant")

        self._upsert_swipe(session_id, user_id, movie_id, liked)

        swipe_count = db.session.query(func.count(Swipe.id)).filter(
            Swipe.session_id == session_id,
            Swipe.user_id == user_id,
        ).scalar()

        newly_completed = swipe_count == len(deck) and not participant.completed
        if newly_completed:
            participant.completed = True

        db.session.commit()

        track_swipe(liked)
        logger.debug("swipe_recorded", group_session_id=session_id, movie_id=movie_id, liked=liked,
                     swipe_count=swipe_count, deck_size=len(deck))
        if newly_completed:
            track_participant_completed()
            logger.info("participant_completed", group_session_id=session_id)
        return participant

    def _upsert_swipe(self, session_id: str, user_id: str, movie_id: int, liked: bool) -> None:
        values = {"session_id": session_id, "user_id": user_id, "movie_id": movie_id, "liked": liked}
        dialect = db.session.get_bind().dialect.name

        if dialect in ("sqlite", "postgresql"):
            insert = sqlite_insert if dialect == "sqlite" else pg_insert
            stmt = insert(Swipe).values(**values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["session_id", "user_id", "movie_id"],
                set_={"liked": stmt.excluded.liked, "updated_at": datetime.utcnow()},
            )
            db.session.execute(stmt)
            return

        # Other backends: try the insert in a savepoint, update on conflict
        try:
            with db.session.begin_nested():
                db.session.add(Swipe(**values))
        except IntegrityError:
            Swipe.query.filter_by(session_id=session_id, user_id=user_id, movie_id=movie_id).update(
                {"liked": liked}, synchronize_session=False
            )

    def reveal(self, session_id: str, user_id: str) -> GroupSession:
        """
        swiping -> revealed. Idempotent once revealed.

        Completion is not required; matches are then computed over the
        swipes recorded so far.
        """
        group = self.get_session(session_id)
        self.require_participant(session_id, user_id)

        if group.status == SessionStatus.REVEALED.value:
            return group
        if group.status != SessionStatus.SWIPING.value:
            raise NotSwipingError()

        if self._transition(group, SessionStatus.SWIPING, SessionStatus.REVEALED):
            track_reveal()
            logger.info("session_revealed", group_session_id=group.id, all_completed=self.all_completed(group))
        return group

    # --- reads -----------------------------------------------------------

    def all_completed(self, group: GroupSession) -> bool:
        participants = group.participants
        return bool(participants) and all(p.completed for p in participants)

    def user_swipes(self, session_id: str, user_id: str) -> Dict[int, bool]:
        rows = Swipe.query.filter_by(session_id=session_id, user_id=user_id).all()
        return {row.movie_id: row.liked for row in rows}

    def get_state(self, session_id: str, user_id: str) -> Dict:
        """Everything a polling client needs, from the caller's point of view."""
        group = self.get_session(session_id)
        self.require_participant(session_id, user_id)

        swipes = {}
        if group.status != SessionStatus.LOBBY.value:
            swipes = {str(movie_id): liked for movie_id, liked in self.user_swipes(session_id, user_id).items()}

        return {
            "id": group.id,
            "code": group.code,
            "status": group.status,
            "hostId": group.host_id,
            "isHost": group.host_id == user_id,
            "deck": list(group.deck or []),
            "movies": [m.to_dict() for m in movies.get_movies_by_ids(group.deck or [])],
            "participants": [p.to_dict() for p in group.participants],
            "userSwipes": swipes,
            "allCompleted": self.all_completed(group),
        }

    def matching_participants(self, group: GroupSession) -> List[str]:
        """Participants whose likes count toward a match."""
        participant_ids = [p.user_id for p in group.participants]
        if not self.exclude_idle:
            return participant_ids

        active = {
            user_id for (user_id,) in db.session.query(Swipe.user_id)
            .filter(Swipe.session_id == group.id).distinct()
        }
        return [user_id for user_id in participant_ids if user_id in active]

    def get_matches(self, session_id: str, user_id: str) -> List[int]:
        """Movie ids every participant liked, once the session is revealed."""
        group = self.get_session(session_id)
        self.require_participant(session_id, user_id)
        if group.status != SessionStatus.REVEALED.value:
            raise InvalidStateError("Matches are available after reveal")

        rows = db.session.query(Swipe.user_id, Swipe.movie_id, Swipe.liked).filter(
            Swipe.session_id == session_id
        ).all()
        return compute_matches(rows, self.matching_participants(group))

    def get_prematches(self, session_id: str, user_id: str) -> List[Dict]:
        """Movies already on more than one member's solo watchlist."""
        group = self.get_session(session_id)
        self.require_participant(session_id, user_id)

        nicknames = {p.user_id: p.nickname for p in group.participants}
        saved: Dict[str, List[int]] = {user: [] for user in nicknames}
        if len(saved) < 2:
            return []

        rows = db.session.query(SavedMovie.user_id, SavedMovie.movie_id).filter(
            SavedMovie.user_id.in_(list(nicknames))
        ).all()
        for saver, movie_id in rows:
            saved[saver].append(movie_id)

        shared = compute_prematches(saved)
        records = {m.tmdb_id: m for m in movies.get_movies_by_ids([movie_id for movie_id, _ in shared])}
        return [
            {
                "movieId": movie_id,
                "movie": records[movie_id].to_dict() if movie_id in records else None,
                "savedBy": [nicknames[saver] for saver in savers],
            }
            for movie_id, savers in shared
        ]

    def select_movie(self, session_id: str, user_id: str, movie_id: int) -> WatchedMovie:
        """Record the movie the group picked after the reveal."""
        group = self.get_session(session_id)
        self.require_participant(session_id, user_id)
        if group.status != SessionStatus.REVEALED.value:
            raise InvalidStateError("A movie can only be picked after reveal")
        if movie_id not in (group.deck or []):
            raise InvalidSwipeError()

        watched = WatchedMovie(
            session_id=session_id,
            movie_id=movie_id,
            watched_by=[p.user_id for p in group.participants],
        )
        db.session.add(watched)
        db.session.commit()
        logger.info("movie_selected", group_session_id=session_id, movie_id=movie_id)
        return watched

    def history(self, user_id: str, limit: int = HISTORY_LIMIT) -> List[WatchedMovie]:
        """Movies picked in sessions the user took part in, newest first."""
        return (
            WatchedMovie.query
            .join(SessionParticipant, SessionParticipant.session_id == WatchedMovie.session_id)
            .filter(SessionParticipant.user_id == user_id)
            .order_by(WatchedMovie.watched_at.desc(), WatchedMovie.id.desc())
            .limit(limit)
            .all()
        )


_session_service: Optional[SessionService] = None


def get_session_service() -> SessionService:
    global _session_service
    if _session_service is None:
        _session_service = SessionService()
    return _session_service


def set_session_service(service: Optional[SessionService]) -> None:
    """Swap the shared service (tests inject fake deck builders this way)."""
    global _session_service
    _session_service = service
