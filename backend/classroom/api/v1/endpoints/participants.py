from fastapi import APIRouter
from uuid import UUID

from classroom.api.deps import Coordinator
from classroom.core.security import create_viewer_token
from classroom.schemas.participant import (
    JoinRequest,
    ParticipantResponse,
    ParticipantWithStats,
    SeatSelectRequest,
    SeatSelectResponse,
    TopicSubmitRequest,
    TopicSubmitResponse,
)
from classroom.schemas.session import JoinResponse, SessionResponse

router = APIRouter()


@router.post("/join", response_model=JoinResponse)
async def join_session(request: JoinRequest, coordinator: Coordinator):
    participant, available_seats = await coordinator.join(
        request.session_code,
        request.student_name,
        student_id=request.student_id,
        auto_seat=request.auto_seat,
    )
    session = await coordinator.registry.get(participant.session_id)
    return JoinResponse(
        session_id=participant.session_id,
        session=SessionResponse.model_validate(session),
        participant=ParticipantResponse.model_validate(participant),
        available_seats=available_seats,
        viewer_token=create_viewer_token(
            str(participant.session_id),
            participant.student_name,
            role="student",
            participant_id=str(participant.id),
        ),
    )


@router.post("/seat", response_model=SeatSelectResponse)
async def select_seat(request: SeatSelectRequest, coordinator: Coordinator):
    participant = await coordinator.select_seat(
        request.session_id,
        request.seat_position,
        request.student_name,
        student_id=request.student_id,
    )
    return SeatSelectResponse(participant=ParticipantResponse.model_validate(participant))


@router.post("/{participant_id}/topic", response_model=TopicSubmitResponse)
async def submit_topic(participant_id: UUID, request: TopicSubmitRequest, coordinator: Coordinator):
    participant = await coordinator.submit_topic(
        participant_id,
        request.topic_title,
        request.topic_content,
    )
    return TopicSubmitResponse(participant=ParticipantResponse.model_validate(participant))


@router.get("", response_model=list[ParticipantWithStats])
async def list_participants(session_id: UUID, coordinator: Coordinator):
    return await coordinator.list_for_session(session_id)


@router.get("/{participant_id}", response_model=ParticipantResponse)
async def get_participant(participant_id: UUID, coordinator: Coordinator):
    return await coordinator.get(participant_id)
