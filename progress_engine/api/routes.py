"""API routes for the progress engine"""
import logging
from datetime import datetime, timezone
from typing import Optional
from fastapi import APIRouter, Depends, Request, status

from progress_engine.api.auth import get_caller_id, require_same_user, verify_api_key
from progress_engine.api.middleware import limiter
from progress_engine.api.models import (
    AnalyticsEventRequest, AnalyticsEventResponse,
    CompleteSessionRequest, OpenSessionRequest, ProgressResponse,
    HealthCheckResponse, ErrorResponse
)
from progress_engine.models import (
    Achievement, ActivityKind, AppDefinition, CompletionResult,
    LeaderboardEntry, ProgressKey, Recommendation, Session
)
from progress_engine.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(
    responses={
        401: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        503: {"model": ErrorResponse},
    }
)


def get_services(request: Request) -> ServiceContainer:
    """Service container attached to the application at startup"""
    return request.app.state.container


# ------------------------------------------
# Catalog
# ------------------------------------------

@router.get("/api/v1/apps", response_model=list[AppDefinition])
@limiter.limit("60/minute")
async def list_apps(
    request: Request,
    app_type: Optional[ActivityKind] = None,
    api_key: str = Depends(verify_api_key),
    services: ServiceContainer = Depends(get_services)
):
    """Active catalog entries, optionally filtered by activity kind"""
    return await services.store.list_apps(app_type)


@router.get("/api/v1/achievements", response_model=list[Achievement])
@limiter.limit("60/minute")
async def list_achievements(
    request: Request,
    api_key: str = Depends(verify_api_key),
    services: ServiceContainer = Depends(get_services)
):
    """All achievement definitions"""
    return services.achievements.list_achievements()


# ------------------------------------------
# Sessions
# ------------------------------------------

@router.post("/api/v1/sessions", response_model=Session, status_code=status.HTTP_201_CREATED)
@limiter.limit("30/minute")
async def open_session(
    request: Request,
    body: OpenSessionRequest,
    api_key: str = Depends(verify_api_key),
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services)
):
    """Start a new session on an app"""
    return await services.sessions.open_session(body.app_id, caller_id, body.session_type)


@router.post("/api/v1/sessions/{session_id}/progress", response_model=Session)
@limiter.limit("60/minute")
async def mark_in_progress(
    request: Request,
    session_id: str,
    api_key: str = Depends(verify_api_key),
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services)
):
    """Record that the user is actively working on a session"""
    return await services.sessions.mark_in_progress(session_id, caller_id)


@router.post("/api/v1/sessions/{session_id}/complete", response_model=CompletionResult)
@limiter.limit("30/minute")
async def complete_session(
    request: Request,
    session_id: str,
    body: CompleteSessionRequest,
    api_key: str = Depends(verify_api_key),
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services)
):
    """
    Complete a session and apply it to progress.

    A 503 response is retriable: repeating the same call finishes scoring.
    """
    return await services.sessions.complete_session(
        session_id,
        caller_id,
        body.score,
        responses=body.responses,
        interaction_data=body.interaction_data
    )


@router.post("/api/v1/sessions/{session_id}/abandon", response_model=Session)
@limiter.limit("30/minute")
async def abandon_session(
    request: Request,
    session_id: str,
    api_key: str = Depends(verify_api_key),
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services)
):
    """Abandon a session (no effect on progress)"""
    return await services.sessions.abandon_session(session_id, caller_id)


@router.post(
    "/api/v1/sessions/{session_id}/events",
    response_model=AnalyticsEventResponse,
    status_code=status.HTTP_202_ACCEPTED
)
@limiter.limit("120/minute")
async def record_session_event(
    request: Request,
    session_id: str,
    body: AnalyticsEventRequest,
    api_key: str = Depends(verify_api_key),
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services)
):
    """Append a client-reported analytics event to a session the caller owns"""
    session = await services.sessions.get_session(session_id, caller_id)
    recorded = await services.analytics.record_event(
        session.id,
        body.event_type,
        body.event_data,
        user_id=caller_id,
        app_id=session.app_id
    )
    return AnalyticsEventResponse(recorded=recorded)


# ------------------------------------------
# Progress
# ------------------------------------------

@router.get("/api/v1/users/{user_id}/progress", response_model=list[ProgressResponse])
@limiter.limit("60/minute")
async def list_user_progress(
    request: Request,
    user_id: str,
    app_id: Optional[str] = None,
    api_key: str = Depends(verify_api_key),
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services)
):
    """All progress summaries for a user, optionally for one app"""
    require_same_user(caller_id, user_id)
    summaries = await services.aggregator.list_for_user(user_id, app_id)
    return [ProgressResponse.from_summary(s) for s in summaries]


@router.get("/api/v1/apps/{app_id}/progress/{user_id}", response_model=ProgressResponse)
@limiter.limit("60/minute")
async def get_progress(
    request: Request,
    app_id: str,
    user_id: str,
    api_key: str = Depends(verify_api_key),
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services)
):
    """Progress summary for one (app, user)"""
    require_same_user(caller_id, user_id)
    summary = await services.aggregator.get(ProgressKey(app_id, user_id))
    return ProgressResponse.from_summary(summary)


# ------------------------------------------
# Rankings
# ------------------------------------------

@router.get("/api/v1/users/{user_id}/recommendations", response_model=list[Recommendation])
@limiter.limit("30/minute")
async def get_recommendations(
    request: Request,
    user_id: str,
    limit: Optional[int] = None,
    api_key: str = Depends(verify_api_key),
    caller_id: str = Depends(get_caller_id),
    services: ServiceContainer = Depends(get_services)
):
    """Apps the user has not completed, best first"""
    require_same_user(caller_id, user_id)
    return await services.recommendations.get_recommendations(user_id, limit)


@router.get("/api/v1/apps/{app_id}/leaderboard", response_model=list[LeaderboardEntry])
@limiter.limit("30/minute")
async def get_leaderboard(
    request: Request,
    app_id: str,
    limit: Optional[int] = None,
    api_key: str = Depends(verify_api_key),
    services: ServiceContainer = Depends(get_services)
):
    """Top performers on an app"""
    return await services.leaderboard.get_leaderboard(app_id, limit)


# ------------------------------------------
# Health
# ------------------------------------------

@router.get("/health", response_model=HealthCheckResponse)
@limiter.limit("60/minute")
async def health_check(
    request: Request,
    services: ServiceContainer = Depends(get_services)
):
    """Health check endpoint (no auth, for monitoring systems)"""
    reachable = await services.store.ping()
    db_status = "connected" if reachable else "disconnected"

    return HealthCheckResponse(
        status="healthy" if reachable else "degraded",
        database=db_status,
        timestamp=datetime.now(timezone.utc)
    )
