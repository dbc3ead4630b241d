import enum


class SessionStatus(str, enum.Enum):
    ACTIVE = "active"
    CLOSED = "closed"


class ParticipantStatus(str, enum.Enum):
    JOINED = "joined"
    SEATED = "seated"
    SUBMITTED = "submitted"


class ReactionType(str, enum.Enum):
    LIKE = "like"
    VIEW = "view"


class EventType(str, enum.Enum):
    PARTICIPANT = "participant"
    CHAT = "chat"
    REACTION = "reaction"
    SESSION = "session"


class SubscriptionMode(str, enum.Enum):
    PUSH = "push"
    POLL = "poll"


class ViewerRole(str, enum.Enum):
    TEACHER = "teacher"
    STUDENT = "student"
