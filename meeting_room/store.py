from __future__ import annotations

import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, Iterator, List, Optional

from loguru import logger
from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    select,
    update,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import DeclarativeBase, Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import PersonaNotFoundError, RoomNotFoundError
from .personas import identity_of
from .states import MessageRole, RoomStatus, UserRole


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything stored here is UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def _new_id() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    pass


class PersonaRecord(Base):
    __tablename__ = "room_personas"

    id = Column(String(36), primary_key=True, default=_new_id)
    identity = Column(JSON, nullable=False, default=dict)
    psychology = Column(JSON, nullable=False, default=dict)
    backstory = Column(JSON, nullable=False, default=dict)
    memory = Column(JSON, nullable=True)
    portrait_url = Column(Text, nullable=True)
    source_export = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def __repr__(self):
        return f"<PersonaRecord(id={self.id})>"


class RoomRecord(Base):
    __tablename__ = "meeting_rooms"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False)
    scenario = Column(Text, nullable=False, default="")
    purpose = Column(Text, nullable=False, default="")
    status = Column(String(16), nullable=False, default=RoomStatus.PENDING.value)
    user_role = Column(String(16), nullable=False, default=UserRole.OBSERVER.value)
    duration_minutes = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    started_at = Column(DateTime(timezone=True), nullable=True)
    ended_at = Column(DateTime(timezone=True), nullable=True)
    # Pause bookkeeping, only consulted when pause_stops_clock is enabled.
    paused_at = Column(DateTime(timezone=True), nullable=True)
    paused_seconds = Column(Float, nullable=False, default=0.0)
    # Compare-and-increment guard for persona turns.
    turn_count = Column(Integer, nullable=False, default=0)

    @property
    def room_status(self) -> RoomStatus:
        return RoomStatus(self.status)

    def __repr__(self):
        return f"<RoomRecord(id={self.id}, status='{self.status}')>"


class ParticipantRecord(Base):
    __tablename__ = "room_participants"

    id = Column(String(36), primary_key=True, default=_new_id)
    room_id = Column(String(36), ForeignKey("meeting_rooms.id"), nullable=False, index=True)
    persona_id = Column(String(36), ForeignKey("room_personas.id"), nullable=False)
    admitted_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    removed_at = Column(DateTime(timezone=True), nullable=True)

    @property
    def active(self) -> bool:
        return self.removed_at is None


class MessageRecord(Base):
    __tablename__ = "room_messages"

    # Autoincrement id is the transcript sequence; created_at is informational.
    id = Column(Integer, primary_key=True, autoincrement=True)
    room_id = Column(String(36), ForeignKey("meeting_rooms.id"), nullable=False, index=True)
    persona_id = Column(String(36), ForeignKey("room_personas.id"), nullable=True)
    role = Column(String(16), nullable=False)
    content = Column(Text, nullable=False, default="")
    inner_thought = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        created = as_utc(self.created_at)
        return {
            "id": self.id,
            "room_id": self.room_id,
            "persona_id": self.persona_id,
            "role": self.role,
            "content": self.content,
            "inner_thought": self.inner_thought,
            "created_at": created.isoformat() if created else None,
        }


class RoomStore:
    """Rooms, participants, messages and personas behind one session factory.

    Every method opens and commits its own session; returned records are
    detached snapshots.
    """

    def __init__(self, database_url: Optional[str] = None, engine: Optional[Engine] = None) -> None:
        if engine is None:
            url = make_url(database_url or "sqlite://")
            opts: Dict[str, Any] = {}
            if url.drivername.startswith("sqlite"):
                opts["connect_args"] = {"check_same_thread": False}
                if url.database in (None, "", ":memory:"):
                    opts["poolclass"] = StaticPool
            engine = create_engine(url, **opts)
        self.engine = engine
        self._session_factory = sessionmaker(bind=engine, expire_on_commit=False)

    def create_all(self) -> None:
        Base.metadata.create_all(self.engine)

    @contextmanager
    def session(self) -> Iterator[Session]:
        session = self._session_factory()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    # ---- personas -------------------------------------------------------

    def add_persona(
        self,
        identity: Dict[str, Any],
        psychology: Optional[Dict[str, Any]] = None,
        backstory: Optional[Dict[str, Any]] = None,
        memory: Any = None,
        portrait_url: Optional[str] = None,
        source_export: Any = None,
        persona_id: Optional[str] = None,
    ) -> PersonaRecord:
        record = PersonaRecord(
            id=persona_id or _new_id(),
            identity=identity or {},
            psychology=psychology or {},
            backstory=backstory or {},
            memory=memory,
            portrait_url=portrait_url,
            source_export=source_export,
        )
        with self.session() as s:
            s.add(record)
        logger.debug(f"persona_added | id={record.id}")
        return record

    def get_persona(self, persona_id: str) -> Optional[PersonaRecord]:
        with self.session() as s:
            return s.get(PersonaRecord, persona_id)

    def get_personas(self, persona_ids: Iterable[str]) -> Dict[str, PersonaRecord]:
        ids = list(set(persona_ids))
        if not ids:
            return {}
        with self.session() as s:
            rows = s.scalars(select(PersonaRecord).where(PersonaRecord.id.in_(ids))).all()
            return {r.id: r for r in rows}

    # ---- rooms ----------------------------------------------------------

    def create_room(
        self,
        name: str,
        scenario: str,
        purpose: str,
        persona_ids: List[str],
        user_role: UserRole | str = UserRole.OBSERVER,
        duration_minutes: Optional[int] = 30,
    ) -> RoomRecord:
        role = UserRole(user_role)
        if not persona_ids:
            raise ValueError("A room needs at least one persona")
        unique_ids = list(dict.fromkeys(persona_ids))
        with self.session() as s:
            found = set(s.scalars(select(PersonaRecord.id).where(PersonaRecord.id.in_(unique_ids))).all())
            missing = [pid for pid in unique_ids if pid not in found]
            if missing:
                raise PersonaNotFoundError(f"Persona not found: {', '.join(missing)}")
            room = RoomRecord(
                id=_new_id(),
                name=name,
                scenario=scenario or "",
                purpose=purpose or "",
                status=RoomStatus.PENDING.value,
                user_role=role.value,
                duration_minutes=duration_minutes,
            )
            s.add(room)
            s.flush()
            for pid in unique_ids:
                s.add(ParticipantRecord(id=_new_id(), room_id=room.id, persona_id=pid))
        logger.info(f"room_created | room={room.id} personas={len(unique_ids)} role={role.value} duration={duration_minutes}")
        return room

    def get_room(self, room_id: str) -> Optional[RoomRecord]:
        with self.session() as s:
            return s.get(RoomRecord, room_id)

    def require_room(self, room_id: str) -> RoomRecord:
        room = self.get_room(room_id)
        if room is None:
            raise RoomNotFoundError("Room not found")
        return room

    def update_room(self, room_id: str, **fields: Any) -> RoomRecord:
        with self.session() as s:
            room = s.get(RoomRecord, room_id)
            if room is None:
                raise RoomNotFoundError("Room not found")
            for key, value in fields.items():
                if not hasattr(RoomRecord, key):
                    raise AttributeError(f"RoomRecord has no column {key}")
                if isinstance(value, (RoomStatus, UserRole)):
                    value = value.value
                setattr(room, key, value)
            return room

    # ---- participants ---------------------------------------------------

    def participants(self, room_id: str, include_removed: bool = False) -> List[ParticipantRecord]:
        with self.session() as s:
            stmt = select(ParticipantRecord).where(ParticipantRecord.room_id == room_id)
            if not include_removed:
                stmt = stmt.where(ParticipantRecord.removed_at.is_(None))
            return list(s.scalars(stmt.order_by(ParticipantRecord.admitted_at)).all())

    def active_persona_ids(self, room_id: str) -> List[str]:
        return [p.persona_id for p in self.participants(room_id)]

    def remove_participant(self, room_id: str, persona_id: str, at: Optional[datetime] = None) -> bool:
        """Soft-remove; returns False when the persona is not seated."""
        with self.session() as s:
            result = s.execute(
                update(ParticipantRecord)
                .where(ParticipantRecord.room_id == room_id)
                .where(ParticipantRecord.persona_id == persona_id)
                .where(ParticipantRecord.removed_at.is_(None))
                .values(removed_at=at or utcnow())
            )
            return result.rowcount > 0

    # ---- messages -------------------------------------------------------

    def append_message(
        self,
        room_id: str,
        role: MessageRole | str,
        content: str,
        persona_id: Optional[str] = None,
        inner_thought: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> MessageRecord:
        role = MessageRole(role)
        if role is not MessageRole.PERSONA and (persona_id is not None or inner_thought is not None):
            raise ValueError("Only persona messages carry persona_id or inner_thought")
        if role is MessageRole.PERSONA and not persona_id:
            raise ValueError("Persona messages need a persona_id")
        with self.session() as s:
            msg = MessageRecord(
                room_id=room_id,
                persona_id=persona_id,
                role=role.value,
                content=content,
                inner_thought=inner_thought,
                created_at=created_at or utcnow(),
            )
            s.add(msg)
            s.flush()
            return msg

    def append_turn(
        self,
        room_id: str,
        expected_turn: int,
        persona_id: str,
        content: str,
        inner_thought: Optional[str] = None,
        created_at: Optional[datetime] = None,
    ) -> Optional[MessageRecord]:
        """Insert a persona turn only if the room's turn counter is still `expected_turn`
        and the room has not ended.

        Returns None when another turn won the race or the room ended meanwhile;
        nothing is written then.
        """
        with self.session() as s:
            bumped = s.execute(
                update(RoomRecord)
                .where(RoomRecord.id == room_id)
                .where(RoomRecord.turn_count == expected_turn)
                .where(RoomRecord.status != RoomStatus.ENDED.value)
                .values(turn_count=expected_turn + 1)
            )
            if bumped.rowcount != 1:
                return None
            msg = MessageRecord(
                room_id=room_id,
                persona_id=persona_id,
                role=MessageRole.PERSONA.value,
                content=content,
                inner_thought=inner_thought,
                created_at=created_at or utcnow(),
            )
            s.add(msg)
            s.flush()
            return msg

    def list_messages(self, room_id: str, limit: Optional[int] = None) -> List[MessageRecord]:
        """Transcript in sequence order; with `limit`, only the most recent messages."""
        with self.session() as s:
            stmt = select(MessageRecord).where(MessageRecord.room_id == room_id)
            if limit is not None:
                rows = list(s.scalars(stmt.order_by(MessageRecord.id.desc()).limit(limit)).all())
                rows.reverse()
                return rows
            return list(s.scalars(stmt.order_by(MessageRecord.id.asc())).all())

    def last_persona_message(self, room_id: str, persona_ids: Iterable[str]) -> Optional[MessageRecord]:
        ids = list(persona_ids)
        if not ids:
            return None
        with self.session() as s:
            stmt = (
                select(MessageRecord)
                .where(MessageRecord.room_id == room_id)
                .where(MessageRecord.role == MessageRole.PERSONA.value)
                .where(MessageRecord.persona_id.in_(ids))
                .order_by(MessageRecord.id.desc())
                .limit(1)
            )
            return s.scalars(stmt).first()

    def transition_room(self, room_id: str, from_statuses: Iterable[RoomStatus], **fields: Any) -> bool:
        """Conditional update: applies `fields` only while status is one of `from_statuses`."""
        allowed = [RoomStatus(s).value for s in from_statuses]
        values = {k: (v.value if isinstance(v, (RoomStatus, UserRole)) else v) for k, v in fields.items()}
        with self.session() as s:
            result = s.execute(
                update(RoomRecord)
                .where(RoomRecord.id == room_id)
                .where(RoomRecord.status.in_(allowed))
                .values(**values)
            )
            return result.rowcount == 1

    def persona_names(self, room_id: str) -> Dict[str, str]:
        """Display names for everyone ever seated in the room, removed or not."""
        ids = [p.persona_id for p in self.participants(room_id, include_removed=True)]
        return {pid: identity_of(rec.identity).display_name for pid, rec in self.get_personas(ids).items()}
