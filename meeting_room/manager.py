from __future__ import annotations

from datetime import datetime
from typing import Any, Awaitable, Callable, Dict, Optional

from loguru import logger

from .agents import PersonaAgent
from .config import Settings, get_settings
from .errors import (
    InvalidTransitionError,
    MeetingRoomError,
    NoParticipantsError,
    PersonaNotFoundError,
    TurnConflictError,
)
from .llm import CompletionProvider
from .personas import RoomPersona
from .scheduler import compute_time_budget, pick_next_speaker, seating_order
from .states import Action, ActionResult, ErrorKind, MessageRole, RoomStatus, VALID_FROM, can_apply, next_status
from .store import RoomRecord, RoomStore, as_utc, utcnow
from .summarizer import MANUAL_END, TIME_EXPIRED, MeetingSummarizer


Handler = Callable[[RoomRecord, Dict[str, Any]], Awaitable[ActionResult]]


class MeetingRoomManager:
    """Single dispatch point for a meeting room.

    Holds no per-room state between calls: every `handle_action` re-reads the
    room from the store, applies one action and writes the outcome back. Any
    driver (client poll, job, queue consumer) can call it repeatedly.
    """

    def __init__(
        self,
        store: RoomStore,
        provider: CompletionProvider,
        settings: Optional[Settings] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.store = store
        self.provider = provider
        self.settings = settings or get_settings()
        self.clock = clock or utcnow
        self.summarizer = MeetingSummarizer(store, provider, history_limit=self.settings.summary_history_limit)
        self._handlers: Dict[Action, Handler] = {
            Action.START: self._start,
            Action.PAUSE: self._pause,
            Action.RESUME: self._resume,
            Action.END: self._end,
            Action.REMOVE_PERSONA: self._remove_persona,
            Action.DIRECTIVE: self._directive,
            Action.FACILITATOR_MESSAGE: self._facilitator_message,
            Action.NEXT_TURN: self._next_turn,
        }

    async def handle_action(
        self,
        room_id: str,
        action: Action | str,
        payload: Optional[Dict[str, Any]] = None,
    ) -> ActionResult:
        payload = payload or {}
        try:
            act = Action(action)
        except ValueError:
            logger.warning(f"room_action_unknown | room={room_id} action={action}")
            return ActionResult.failure("Unknown action", ErrorKind.BAD_REQUEST)

        logger.info(f"room_action | room={room_id} action={act.value}")
        try:
            room = self.store.require_room(room_id)
            return await self._handlers[act](room, payload)
        except MeetingRoomError as e:
            logger.warning(f"room_action_failed | room={room_id} action={act.value} kind={e.kind.value} | {e}")
            return ActionResult.failure(str(e), e.kind)
        except Exception as e:
            logger.exception(f"room_action_error | room={room_id} action={act.value}")
            return ActionResult.failure(str(e) or "Unknown error", ErrorKind.GENERIC)

    # ---- helpers ---------------------------------------------------------

    def _require(self, action: Action, room: RoomRecord) -> RoomStatus:
        status = room.room_status
        if can_apply(action, status):
            return status
        if action in (Action.NEXT_TURN, Action.FACILITATOR_MESSAGE):
            raise MeetingRoomError("Room is not active", ErrorKind.NOT_ACTIVE)
        raise InvalidTransitionError(f"Cannot {action.value} a room that is {status.value}")

    def _transition(self, action: Action, room: RoomRecord, **fields: Any) -> RoomStatus:
        target = next_status(action, room.room_status)
        if not self.store.transition_room(room.id, VALID_FROM[action], status=target, **fields):
            raise InvalidTransitionError(f"Room changed state before {action.value} could apply")
        logger.info(f"room_state_transition | room={room.id} {room.status} -> {target.value}")
        return target

    def _system(self, room_id: str, content: str) -> None:
        self.store.append_message(room_id, MessageRole.SYSTEM, content, created_at=self.clock())

    @staticmethod
    def _text(payload: Dict[str, Any]) -> str:
        text = payload.get("message")
        if not isinstance(text, str) or not text.strip():
            raise MeetingRoomError("A non-empty message is required", ErrorKind.BAD_REQUEST)
        return text

    # ---- lifecycle -------------------------------------------------------

    async def _start(self, room: RoomRecord, payload: Dict[str, Any]) -> ActionResult:
        self._require(Action.START, room)
        fields: Dict[str, Any] = {}
        if room.started_at is None:
            fields["started_at"] = self.clock()
        self._transition(Action.START, room, **fields)
        self._system(
            room.id,
            f"**Meeting Started** (Duration: {room.duration_minutes} min)\n\n"
            f"**Scenario:** {room.scenario}\n\n**Purpose:** {room.purpose}",
        )
        return ActionResult.success()

    async def _pause(self, room: RoomRecord, payload: Dict[str, Any]) -> ActionResult:
        self._require(Action.PAUSE, room)
        self._transition(Action.PAUSE, room, paused_at=self.clock())
        self._system(room.id, "⏸️ Meeting paused by moderator.")
        return ActionResult.success()

    async def _resume(self, room: RoomRecord, payload: Dict[str, Any]) -> ActionResult:
        self._require(Action.RESUME, room)
        now = self.clock()
        paused_seconds = room.paused_seconds or 0.0
        paused_at = as_utc(room.paused_at)
        if paused_at is not None:
            paused_seconds += max(0.0, (as_utc(now) - paused_at).total_seconds())
        self._transition(Action.RESUME, room, paused_at=None, paused_seconds=paused_seconds)
        self._system(room.id, "▶️ Meeting resumed.")
        return ActionResult.success()

    async def _end(self, room: RoomRecord, payload: Dict[str, Any]) -> ActionResult:
        self._require(Action.END, room)
        summary = await self.summarizer.summarize(room, MANUAL_END)
        self._transition(Action.END, room, ended_at=self.clock())
        self._system(room.id, summary)
        return ActionResult.success()

    async def _expire(self, room: RoomRecord) -> ActionResult:
        self._transition(Action.END, room, ended_at=self.clock())
        self._system(room.id, "⏰ Meeting duration has expired.")
        summary = await self.summarizer.summarize(room, TIME_EXPIRED)
        self._system(room.id, summary)
        logger.info(f"room_expired | room={room.id} duration={room.duration_minutes}")
        return ActionResult(ok=False, ended=True, error="Meeting duration expired")

    # ---- moderation ------------------------------------------------------

    async def _remove_persona(self, room: RoomRecord, payload: Dict[str, Any]) -> ActionResult:
        self._require(Action.REMOVE_PERSONA, room)
        persona_id = payload.get("persona_id") or payload.get("persona_id_to_remove")
        if not persona_id:
            raise MeetingRoomError("persona_id is required", ErrorKind.BAD_REQUEST)
        if not self.store.remove_participant(room.id, persona_id, at=self.clock()):
            raise PersonaNotFoundError("Persona is not seated in this room")
        record = self.store.get_persona(persona_id)
        name = RoomPersona.from_record(record).first_name if record is not None else None
        self._system(room.id, f"🚪 {name or 'A persona'} has been removed from the meeting.")
        return ActionResult.success()

    async def _directive(self, room: RoomRecord, payload: Dict[str, Any]) -> ActionResult:
        self._require(Action.DIRECTIVE, room)
        text = self._text(payload)
        msg = self.store.append_message(room.id, MessageRole.MODERATOR, text, created_at=self.clock())
        return ActionResult.success(message=msg.to_dict())

    async def _facilitator_message(self, room: RoomRecord, payload: Dict[str, Any]) -> ActionResult:
        self._require(Action.FACILITATOR_MESSAGE, room)
        text = self._text(payload)
        self.store.append_message(room.id, MessageRole.FACILITATOR, text, created_at=self.clock())
        return await self._run_turn(room)

    async def _next_turn(self, room: RoomRecord, payload: Dict[str, Any]) -> ActionResult:
        self._require(Action.NEXT_TURN, room)
        return await self._run_turn(room)

    # ---- turns -----------------------------------------------------------

    async def _run_turn(self, room: RoomRecord) -> ActionResult:
        budget = compute_time_budget(
            room,
            self.clock(),
            multiplier=self.settings.time_multiplier,
            pause_stops_clock=self.settings.pause_stops_clock,
        )
        if budget is not None and budget.expired:
            return await self._expire(room)

        order = seating_order(self.store.active_persona_ids(room.id))
        if not order:
            raise NoParticipantsError("No participants")
        last = self.store.last_persona_message(room.id, order)
        speaker_id = pick_next_speaker(order, last.persona_id if last else None)

        record = self.store.get_persona(speaker_id)
        if record is None:
            raise PersonaNotFoundError("Persona not found")
        agent = PersonaAgent(RoomPersona.from_record(record), self.provider)

        history = self.store.list_messages(room.id, limit=self.settings.turn_history_limit)
        names = self.store.persona_names(room.id)
        parsed = await agent.respond(room, history, names, budget)

        saved = self.store.append_turn(
            room.id,
            expected_turn=room.turn_count or 0,
            persona_id=speaker_id,
            content=parsed.content,
            inner_thought=parsed.inner_thought,
            created_at=self.clock(),
        )
        if saved is None:
            if self.store.require_room(room.id).room_status is RoomStatus.ENDED:
                raise MeetingRoomError("Room is not active", ErrorKind.NOT_ACTIVE)
            raise TurnConflictError("Another turn was generated for this room; discarded this one")

        snippet = " ".join(parsed.content[:400].split())
        logger.info(f"room_turn | room={room.id} spk={agent.name} seq={saved.id} turn={(room.turn_count or 0) + 1} | msg='{snippet}'")
        return ActionResult.success(message=saved.to_dict(), persona_name=agent.name)
