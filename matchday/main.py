"""
Matchday Core - Main FastAPI Application
Live match event intake and read-only match views
"""
import logging
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator

from fastapi import Body, Depends, FastAPI, HTTPException

from config.settings import get_settings
from matchday.errors import ContentionError, RuleViolation, StoreUnavailable, ValidationError
from matchday.live_match.payloads import PAYLOAD_VERSION
from matchday.schemas import (
    HealthResponse,
    LineupRequest,
    OutcomeResponse,
    PlayerMinutesResponse,
    PlayerSeasonResponse,
    VersionResponse,
)
from matchday.services import Services, build_services

settings = get_settings()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("matchday.main")

app = FastAPI(
    title=settings.app_name,
    description="Live match event processing: scores, minutes, discipline",
    version=settings.app_version,
)

_services_lock = threading.Lock()

# Seconds a caller should wait before retrying a busy or unavailable match
RETRY_AFTER_SECONDS = "1"


def get_services() -> Services:
    """Build services on first use so importing the app never touches the database."""
    with _services_lock:
        services = getattr(app.state, "services", None)
        if services is None:
            services = build_services(settings)
            app.state.services = services
        return services


@contextmanager
def core_errors() -> Iterator[None]:
    """Map core errors onto HTTP status codes."""
    try:
        yield
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=e.to_dict())
    except RuleViolation as e:
        raise HTTPException(status_code=409, detail=e.to_dict())
    except ContentionError as e:
        raise HTTPException(
            status_code=503,
            detail={"error": "contention", "match_id": e.match_id, "message": e.message},
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )
    except StoreUnavailable as e:
        logger.error(f"Store unavailable: {e}")
        raise HTTPException(
            status_code=503,
            detail={"error": "store_unavailable", "backend": e.backend, "message": e.message},
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )


@app.get("/health", response_model=HealthResponse)
def health_check(services: Services = Depends(get_services)):
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        database=services.backend,
        cache_enabled=services.cache.enabled,
    )


@app.get("/version", response_model=VersionResponse)
def version_info():
    """Version information endpoint."""
    return VersionResponse(
        name=settings.app_name,
        version=settings.app_version,
        payload_version=PAYLOAD_VERSION,
    )


@app.get("/cache/stats")
def cache_stats(services: Services = Depends(get_services)):
    """Get cache statistics."""
    return services.cache.get_stats()


@app.post("/matches/{match_id}/events", response_model=OutcomeResponse)
def post_event(
    match_id: str,
    row: Dict[str, Any] = Body(...),
    services: Services = Depends(get_services),
):
    """
    Process one event row for a match.

    A row that was already processed returns its original outcome with
    `skipped: true` and is not re-delivered.
    """
    with core_errors():
        outcome = services.processor.process_row(match_id, row)

    response = OutcomeResponse.model_validate(outcome)
    if services.dispatcher is not None and not outcome.skipped:
        response.delivered = services.dispatcher.dispatch(outcome)
    return response


@app.put("/matches/{match_id}/lineup")
def put_lineup(
    match_id: str,
    lineup: LineupRequest,
    services: Services = Depends(get_services),
):
    """Register starters and substitutes before kickoff."""
    with core_errors():
        state = services.processor.register_lineup(
            match_id,
            starters=lineup.starters,
            substitutes=lineup.substitutes,
            opponent=lineup.opponent,
            team_side=lineup.team_side,
            date=lineup.date,
        )
    return state.to_dict()


@app.get("/matches/{match_id}")
def get_match(match_id: str, services: Services = Depends(get_services)):
    """Full match snapshot, including live player minutes."""
    with core_errors():
        snapshot = services.processor.match_snapshot(match_id)
    if snapshot is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return snapshot


@app.get("/matches/{match_id}/scoreline")
def get_scoreline(match_id: str, services: Services = Depends(get_services)):
    with core_errors():
        scoreline = services.processor.scoreline(match_id)
    if scoreline is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return scoreline


@app.get("/matches/{match_id}/minutes", response_model=PlayerMinutesResponse)
def get_minutes(match_id: str, services: Services = Depends(get_services)):
    with core_errors():
        minutes = services.processor.player_minutes(match_id)
    if minutes is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return PlayerMinutesResponse(match_id=match_id, minutes=minutes)


@app.get("/matches/{match_id}/discipline")
def get_discipline(match_id: str, services: Services = Depends(get_services)):
    with core_errors():
        summary = services.processor.discipline_summary(match_id)
    if summary is None:
        raise HTTPException(status_code=404, detail="Match not found")
    return summary


@app.get("/players/{player}/season", response_model=PlayerSeasonResponse)
def get_player_season(player: str, services: Services = Depends(get_services)):
    """Season-to-date totals, updated when each match reaches full time."""
    with core_errors():
        stats = services.processor.season_stats(player)
    if stats is None:
        raise HTTPException(status_code=404, detail=f"No season stats for {player}")
    return PlayerSeasonResponse(**stats)
