from classroom.services.session_registry import SessionRegistry
from classroom.services.participant_coordinator import ParticipantCoordinator
from classroom.services.reaction_aggregator import ReactionAggregator
from classroom.services.chat_channel import ChatChannel

__all__ = ["SessionRegistry", "ParticipantCoordinator", "ReactionAggregator", "ChatChannel"]
