from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, FrozenSet, Optional


class RoomStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    ENDED = "ended"


class UserRole(str, Enum):
    OBSERVER = "observer"
    MODERATOR = "moderator"
    FACILITATOR = "facilitator"


class MessageRole(str, Enum):
    SYSTEM = "system"
    PERSONA = "persona"
    FACILITATOR = "facilitator"
    MODERATOR = "moderator"


class Action(str, Enum):
    START = "start"
    PAUSE = "pause"
    RESUME = "resume"
    END = "end"
    REMOVE_PERSONA = "remove_persona"
    DIRECTIVE = "directive"
    FACILITATOR_MESSAGE = "facilitator_message"
    NEXT_TURN = "next_turn"


class ErrorKind(str, Enum):
    NOT_ACTIVE = "not_active"
    INVALID_STATE = "invalid_state"
    RATE_LIMITED = "rate_limited"
    QUOTA_EXHAUSTED = "quota_exhausted"
    NOT_FOUND = "not_found"
    NO_PARTICIPANTS = "no_participants"
    BAD_REQUEST = "bad_request"
    UPSTREAM = "upstream"
    CONFLICT = "conflict"
    GENERIC = "generic"


ERROR_STATUS: Dict[ErrorKind, int] = {
    ErrorKind.NOT_ACTIVE: 409,
    ErrorKind.INVALID_STATE: 409,
    ErrorKind.RATE_LIMITED: 429,
    ErrorKind.QUOTA_EXHAUSTED: 402,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.NO_PARTICIPANTS: 422,
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.UPSTREAM: 502,
    ErrorKind.CONFLICT: 409,
    ErrorKind.GENERIC: 500,
}


_LIVE: FrozenSet[RoomStatus] = frozenset({RoomStatus.PENDING, RoomStatus.ACTIVE, RoomStatus.PAUSED})

# Statuses from which each action may be applied.
VALID_FROM: Dict[Action, FrozenSet[RoomStatus]] = {
    Action.START: frozenset({RoomStatus.PENDING}),
    Action.PAUSE: frozenset({RoomStatus.ACTIVE}),
    Action.RESUME: frozenset({RoomStatus.PAUSED}),
    Action.END: frozenset({RoomStatus.ACTIVE, RoomStatus.PAUSED}),
    Action.REMOVE_PERSONA: _LIVE,
    Action.DIRECTIVE: _LIVE,
    Action.FACILITATOR_MESSAGE: frozenset({RoomStatus.ACTIVE}),
    Action.NEXT_TURN: frozenset({RoomStatus.ACTIVE}),
}

# Status each lifecycle action moves the room to. Actions not listed keep the status.
TRANSITIONS: Dict[Action, RoomStatus] = {
    Action.START: RoomStatus.ACTIVE,
    Action.PAUSE: RoomStatus.PAUSED,
    Action.RESUME: RoomStatus.ACTIVE,
    Action.END: RoomStatus.ENDED,
}


def can_apply(action: Action, status: RoomStatus) -> bool:
    return status in VALID_FROM.get(action, frozenset())


def next_status(action: Action, status: RoomStatus) -> RoomStatus:
    if not can_apply(action, status):
        raise ValueError(f"{action.value} not allowed from {status.value}")
    return TRANSITIONS.get(action, status)


@dataclass
class ActionResult:
    """Outcome of one dispatch. `to_dict()` is the wire shape handed to drivers."""

    ok: bool
    error: Optional[str] = None
    kind: Optional[ErrorKind] = None
    ended: bool = False
    message: Optional[Dict[str, Any]] = None
    persona_name: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def status(self) -> int:
        if self.ok:
            return 200
        if self.kind is None:
            return 200 if self.ended else 500
        return ERROR_STATUS[self.kind]

    @classmethod
    def success(cls, **kwargs: Any) -> "ActionResult":
        return cls(ok=True, **kwargs)

    @classmethod
    def failure(cls, error: str, kind: ErrorKind, **kwargs: Any) -> "ActionResult":
        return cls(ok=False, error=error, kind=kind, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"ok": self.ok}
        if self.ended:
            out["ended"] = True
        if self.error is not None:
            out["error"] = self.error
        if self.kind is not None:
            out["kind"] = self.kind.value
        if self.message is not None:
            out["message"] = self.message
        if self.persona_name is not None:
            out["persona_name"] = self.persona_name
        out.update(self.extra)
        return out
