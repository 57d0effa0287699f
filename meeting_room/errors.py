from __future__ import annotations

from typing import Optional

from .states import ErrorKind


class MeetingRoomError(RuntimeError):
    kind: ErrorKind = ErrorKind.GENERIC

    def __init__(self, message: str, kind: Optional[ErrorKind] = None) -> None:
        super().__init__(message)
        if kind is not None:
            self.kind = kind


class RoomNotFoundError(MeetingRoomError):
    kind = ErrorKind.NOT_FOUND


class PersonaNotFoundError(MeetingRoomError):
    kind = ErrorKind.NOT_FOUND


class NoParticipantsError(MeetingRoomError):
    kind = ErrorKind.NO_PARTICIPANTS


class InvalidTransitionError(MeetingRoomError):
    kind = ErrorKind.INVALID_STATE


class TurnConflictError(MeetingRoomError):
    """Another turn was committed for the room between read and insert."""

    kind = ErrorKind.CONFLICT


class CompletionError(MeetingRoomError):
    """Completion provider failure, classified for the caller."""

    kind = ErrorKind.UPSTREAM

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.UPSTREAM, status: Optional[int] = None) -> None:
        super().__init__(message, kind)
        self.status = status

    @property
    def retryable(self) -> bool:
        return self.kind in (ErrorKind.RATE_LIMITED, ErrorKind.UPSTREAM)
