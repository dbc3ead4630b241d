"""
Error kinds raised by the coordination services.

Every error carries a stable ``code`` (what clients switch on), an HTTP
``status_code`` and a human-readable message that is surfaced verbatim.
"""

from typing import Any, Optional


class ClassroomError(Exception):
    """Base exception for the classroom backend."""

    code = "ClassroomError"
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None, code: Optional[str] = None):
        self.message = message
        self.details = details
        if code:
            self.code = code
        super().__init__(message)


class ValidationError(ClassroomError):
    """Missing or oversized input. Always user-correctable."""

    code = "ValidationFailed"
    status_code = 400


class NotFoundError(ClassroomError):
    """Session, participant or message absent."""

    code = "NotFound"
    status_code = 404


class ConflictError(ClassroomError):
    """Uniqueness violated (seat, name, session code)."""

    code = "Conflict"
    status_code = 409


class SessionClosedError(ClassroomError):
    """Session no longer accepts mutations."""

    code = "SessionClosed"
    status_code = 400


class CapacityExceededError(ClassroomError):
    """No seats remain in the session."""

    code = "CapacityExceeded"
    status_code = 409


class InternalError(ClassroomError):
    """Backing store failure."""

    code = "InternalError"
    status_code = 500


# Specific kinds


class InvalidSeatError(ValidationError):
    code = "InvalidSeat"


class InvalidSessionCodeError(ValidationError):
    code = "InvalidSessionCode"


class TitleTooLongError(ValidationError):
    code = "TitleTooLong"


class ContentTooLongError(ValidationError):
    code = "ContentTooLong"


class MessageTooLongError(ValidationError):
    code = "MessageTooLong"


class EmptyMessageError(ValidationError):
    code = "EmptyMessage"


class CommentTooLongError(ValidationError):
    code = "CommentTooLong"


class SessionNotFoundError(NotFoundError):
    code = "SessionNotFound"


class ParticipantNotFoundError(NotFoundError):
    code = "ParticipantNotFound"


class MessageNotFoundError(NotFoundError):
    code = "MessageNotFound"


class AlreadyClosedError(SessionClosedError):
    code = "AlreadyClosed"


class NameTakenError(ConflictError):
    code = "NameTaken"


class SeatTakenError(ConflictError):
    """Seat held by another participant; ``occupant`` names them."""

    code = "SeatTaken"

    def __init__(self, seat_position: int, occupant: str):
        self.seat_position = seat_position
        self.occupant = occupant
        super().__init__(
            f"Seat #{seat_position} is already taken by {occupant}",
            details={"seat_position": seat_position, "occupant": occupant},
        )


class NameAlreadySeatedError(ConflictError):
    """Student name already holds a different seat."""

    code = "NameAlreadySeated"

    def __init__(self, student_name: str, seat_position: int):
        self.student_name = student_name
        self.seat_position = seat_position
        super().__init__(
            f"{student_name} is already seated at seat #{seat_position}",
            details={"student_name": student_name, "seat_position": seat_position},
        )


class CodeGenerationExhaustedError(ConflictError):
    code = "CodeGenerationExhausted"
