"""HTTP route handlers for leaderboard operations and service health checks."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path, Query, Request, Response

from keeperboard.api.errors import APIError
from keeperboard.models.schemas import (
    IDENTIFIER_PATTERN,
    EpochResponse,
    HealthResponse,
    LeaderboardCreate,
    LeaderboardResponse,
    LeaderboardRow,
    ReadyResponse,
    ScoreResult,
    ScoreSubmission,
    UserContext,
    UserContextResponse,
    VersionPeriodResponse,
)
from keeperboard.services.leaderboard import LeaderboardService, UserNotFoundError

router = APIRouter(prefix="/v1")


def get_service(request: Request) -> LeaderboardService:
    return request.app.state.leaderboard_service


@router.post("/games/{game_id}/leaderboard", response_model=EpochResponse, status_code=201)
async def create_leaderboard(
    payload: LeaderboardCreate,
    game_id: str = Path(pattern=IDENTIFIER_PATTERN),
    service: LeaderboardService = Depends(get_service),
) -> EpochResponse:
    epoch, resolved = await service.create_leaderboard(
        game_id,
        reset_cadence=payload.reset_cadence,
        reset_hour=payload.reset_hour,
    )
    return EpochResponse(
        game_id=game_id,
        reset_cadence=epoch.reset_cadence.value,
        reset_hour=epoch.reset_hour,
        version=resolved.version,
        period_start=resolved.period_start,
        next_reset=resolved.next_reset,
    )


@router.get("/games/{game_id}/epoch", response_model=EpochResponse)
async def get_epoch(
    game_id: str = Path(pattern=IDENTIFIER_PATTERN),
    service: LeaderboardService = Depends(get_service),
) -> EpochResponse:
    epoch, resolved = await service.current_epoch(game_id)
    return EpochResponse(
        game_id=game_id,
        reset_cadence=epoch.reset_cadence.value,
        reset_hour=epoch.reset_hour,
        version=resolved.version,
        period_start=resolved.period_start,
        next_reset=resolved.next_reset,
    )


@router.delete("/games/{game_id}/leaderboard", status_code=204)
async def delete_leaderboard(
    game_id: str = Path(pattern=IDENTIFIER_PATTERN),
    service: LeaderboardService = Depends(get_service),
) -> Response:
    await service.delete_leaderboard(game_id)
    return Response(status_code=204)


@router.get("/games/{game_id}/versions/{version}", response_model=VersionPeriodResponse)
async def get_version_period(
    game_id: str = Path(pattern=IDENTIFIER_PATTERN),
    version: int = Path(ge=1),
    service: LeaderboardService = Depends(get_service),
) -> VersionPeriodResponse:
    period = await service.get_version_period(game_id, version)
    return VersionPeriodResponse(
        game_id=game_id,
        version=period.version,
        period_start=period.period_start,
        period_end=period.period_end,
    )


@router.post("/games/{game_id}/scores", response_model=ScoreResult)
async def submit_score(
    payload: ScoreSubmission,
    game_id: str = Path(pattern=IDENTIFIER_PATTERN),
    service: LeaderboardService = Depends(get_service),
) -> ScoreResult:
    submitted = await service.submit_score(
        game_id=game_id,
        user_id=payload.user_id,
        score=payload.score,
        mode=payload.mode,
    )
    return ScoreResult(
        game_id=game_id,
        user_id=submitted.user_id,
        score=submitted.score,
        rank=submitted.rank,
        version=submitted.version,
    )


@router.get("/games/{game_id}/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    game_id: str = Path(pattern=IDENTIFIER_PATTERN),
    limit: int = Query(default=10),
    offset: int = Query(default=0, ge=0),
    version: int | None = Query(default=None),
    service: LeaderboardService = Depends(get_service),
) -> LeaderboardResponse:
    if limit not in {10, 100}:
        raise APIError(
            code="VALIDATION_ERROR",
            message="Request validation failed",
            status_code=400,
            details={
                "errors": [
                    {"loc": ["query", "limit"], "msg": "limit must be 10 or 100"}
                ]
            },
        )

    page = await service.get_leaderboard(game_id, limit, offset, version)
    total = await service.total_count(game_id, page.info.version)
    return LeaderboardResponse(
        game_id=game_id,
        limit=limit,
        offset=offset,
        total_count=total,
        reset_cadence=page.info.reset_cadence.value,
        version=page.info.version,
        oldest_version=page.info.oldest_version,
        next_reset=page.info.next_reset,
        results=[LeaderboardRow(rank=r.rank, user_id=r.user_id, score=r.score) for r in page.rows],
    )


@router.get("/games/{game_id}/users/{user_id}/context", response_model=UserContextResponse)
async def get_user_context(
    game_id: str = Path(pattern=IDENTIFIER_PATTERN),
    user_id: str = Path(pattern=IDENTIFIER_PATTERN),
    window: int = Query(default=2, ge=0, le=25),
    version: int | None = Query(default=None),
    service: LeaderboardService = Depends(get_service),
) -> UserContextResponse:
    try:
        context = await service.get_user_context(game_id, user_id, window, version)
    except UserNotFoundError as exc:
        raise APIError(
            code="USER_NOT_FOUND",
            message="User has no score for this leaderboard version",
            status_code=404,
        ) from exc

    return UserContextResponse(
        version=context.version,
        user=UserContext(
            rank=context.user.rank,
            user_id=context.user.user_id,
            score=context.user.score,
        ),
        above=[UserContext(rank=r.rank, user_id=r.user_id, score=r.score) for r in context.above],
        below=[UserContext(rank=r.rank, user_id=r.user_id, score=r.score) for r in context.below],
    )


# These probes are intended for infrastructure and do not need to appear in API docs.
@router.get("/healthz", response_model=HealthResponse, include_in_schema=False)
async def healthz() -> HealthResponse:
    return HealthResponse(status="ok")


@router.get("/readyz", response_model=ReadyResponse, include_in_schema=False)
async def readyz(service: LeaderboardService = Depends(get_service)) -> ReadyResponse:
    try:
        # Readiness verifies backing Redis connectivity, not just process liveness.
        is_ready = await service.ping()
    except Exception as exc:
        raise APIError(
            code="REDIS_UNAVAILABLE",
            message="Redis readiness check failed",
            status_code=503,
        ) from exc

    if not is_ready:
        raise APIError(
            code="REDIS_UNAVAILABLE",
            message="Redis readiness check failed",
            status_code=503,
        )
    return ReadyResponse(status="ok")
