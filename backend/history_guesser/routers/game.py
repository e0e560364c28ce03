from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response
from typing import List, Optional

from ..errors import SubjectFetchError, ValidationError
from ..models.api import (
    FinalScoreResponse, GuessRequest, GuessResponse, HintResponse,
    SessionResponse, SubjectResponse
)
from ..models.game import HintType, RoundResult, SessionConfig, SessionStatus, parse_guess
from ..services.engine import GameEngine
from ..services.immich import ImmichClient
from ..services.scoring import final_session_score

router = APIRouter(prefix="/game", tags=["Game"])


def get_engine(request: Request) -> GameEngine:
    """The engine owned by the application."""
    return request.app.state.engine


def _require_active(engine: GameEngine) -> None:
    if engine.status != SessionStatus.ACTIVE:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"No round in play (session is {engine.status.value})."
        )


def _guess_response(engine: GameEngine, result: RoundResult) -> GuessResponse:
    session = engine.session
    subject = session.round_subjects[result.round_index]
    return GuessResponse(
        result=result,
        actual_latitude=subject.true_coordinates.lat,
        actual_longitude=subject.true_coordinates.lng,
        actual_year=subject.true_year,
        location_label=subject.location_label,
        round_completed=True,
        game_completed=session.status == SessionStatus.COMPLETED,
        total_xp=session.total_xp,
        total_accuracy=session.total_accuracy
    )


@router.post("/start", response_model=SessionResponse, status_code=status.HTTP_201_CREATED)
async def start_game(
    config: Optional[SessionConfig] = None,
    engine: GameEngine = Depends(get_engine)
):
    """Start a new game session, replacing any current one."""
    session = await engine.start_session(config)

    if session.status == SessionStatus.ERROR:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=session.last_error.message if session.last_error else "Could not load round subjects."
        )

    return SessionResponse.from_session(session)


@router.get("/current", response_model=SessionResponse)
async def get_current_game(engine: GameEngine = Depends(get_engine)):
    """Get the current game session (active, completed or failed)."""
    if engine.status == SessionStatus.IDLE:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No active game found. Start a new game."
        )
    return SessionResponse.from_session(engine.session)


@router.get("/subject", response_model=SubjectResponse)
async def get_current_subject(engine: GameEngine = Depends(get_engine)):
    """Get the current image to guess (without its location or year)."""
    _require_active(engine)
    session = engine.session
    subject = engine.current_subject

    return SubjectResponse(
        subject_id=subject.id,
        media_ref=subject.media_ref,
        round_number=session.current_round_index + 1,
        rounds_total=len(session.round_subjects),
        remaining_seconds=engine.remaining_seconds,
        hints_used_this_round=session.hints.hints_used_this_round,
        hints_used_total=session.hints.hints_used_total,
        can_select_hint=engine.can_select_hint(),
        revealed_hints={k.value: v for k, v in engine.revealed_hints().items()}
    )


@router.post("/hints/{hint_type}", response_model=HintResponse)
async def select_hint(hint_type: HintType, engine: GameEngine = Depends(get_engine)):
    """Buy a hint for the current round."""
    _require_active(engine)

    if not engine.select_hint(hint_type):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Hint not available: already selected or hint limit reached."
        )

    hints = engine.session.hints
    return HintResponse(
        hint_type=hint_type,
        content=engine.revealed_hints()[hint_type],
        hints_used_this_round=hints.hints_used_this_round,
        hints_used_total=hints.hints_used_total,
        can_select_hint=engine.can_select_hint()
    )


@router.post("/guess", response_model=GuessResponse)
async def submit_guess(guess: GuessRequest, engine: GameEngine = Depends(get_engine)):
    """Submit a guess for the current round."""
    _require_active(engine)

    coordinates = None
    if guess.latitude is not None or guess.longitude is not None:
        coordinates = {"lat": guess.latitude, "lng": guess.longitude}
    try:
        parse_guess(coordinates, guess.year)
    except ValidationError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=e.message)

    result = await engine.submit_round(
        coordinates, guess.year,
        time_taken_seconds=guess.time_taken_seconds,
        round_index=guess.round_index
    )
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Round already finalised."
        )
    return _guess_response(engine, result)


@router.post("/timeout", response_model=GuessResponse)
async def timeout_round(engine: GameEngine = Depends(get_engine)):
    """Finalise the current round because its timer ran out."""
    _require_active(engine)

    result = await engine.timeout_round()
    if result is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Round already finalised."
        )
    return _guess_response(engine, result)


@router.get("/rounds", response_model=List[RoundResult])
async def get_game_rounds(engine: GameEngine = Depends(get_engine)):
    """Get all finished rounds of the current game."""
    return list(engine.session.round_results)


@router.get("/summary", response_model=FinalScoreResponse)
async def get_summary(engine: GameEngine = Depends(get_engine)):
    """Get the totals of the current game."""
    if engine.status == SessionStatus.IDLE:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No game found."
        )
    results = engine.session.round_results
    score = final_session_score(results)
    return FinalScoreResponse(final_xp=score.final_xp, final_percent=score.final_percent, rounds=list(results))


@router.delete("/current", status_code=status.HTTP_204_NO_CONTENT)
async def delete_current_game(engine: GameEngine = Depends(get_engine)):
    """Abandon the current game."""
    engine.reset_session()
    return None


@router.get("/photo/{asset_id}/{quality}")
async def get_photo_proxy(asset_id: str, quality: str, engine: GameEngine = Depends(get_engine)):
    """Proxy photo requests to Immich with the API key."""
    source = engine.subject_source
    if not isinstance(source, ImmichClient):
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No photo library configured."
        )
    try:
        image_bytes = await source.get_asset_image(asset_id, quality)
    except SubjectFetchError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=e.message)
    return Response(content=image_bytes, media_type="image/jpeg")
