"""
Health check endpoints for production deployment.

Provides:
- /health - Basic liveness check (is the app running?)
- /ready - Readiness check (is the room registry wired up?)
- /metrics - Room and game counts for monitoring
"""

import json
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Response
from pydantic import BaseModel

from ai import get_all_profiles
from game import GameStatus

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Service references (set during app initialization)
_room_manager = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str


class MetricsResponse(BaseModel):
    timestamp: str
    active_rooms: int = 0
    total_players: int = 0
    cpu_players: int = 0
    rooms_waiting: int = 0
    games_in_progress: int = 0
    games_finished: int = 0
    open_connections: int = 0


def set_health_dependencies(room_manager=None):
    """Set dependencies for health checks."""
    global _room_manager
    _room_manager = room_manager


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.get("/health", response_model=HealthResponse)
async def health_check():
    """
    Basic liveness check - is the app running?

    This endpoint should always return 200 if the process is alive.
    """
    return HealthResponse(status="ok", timestamp=_now())


@router.get("/ready")
async def readiness_check():
    """
    Readiness check - can the app accept players?

    Returns 503 until the room registry has been registered.
    """
    checks = {
        "room_manager": {"status": "ok" if _room_manager is not None else "not_configured"},
        "cpu_profiles": {"status": "ok", "count": len(get_all_profiles())},
    }
    ready = _room_manager is not None

    return Response(
        content=json.dumps({
            "status": "ok" if ready else "degraded",
            "checks": checks,
            "timestamp": _now(),
        }),
        status_code=200 if ready else 503,
        media_type="application/json",
    )


@router.get("/metrics", response_model=MetricsResponse)
async def metrics():
    """Expose room metrics for dashboards and alerting."""
    data = MetricsResponse(timestamp=_now())
    if _room_manager is None:
        return data

    sessions = list(_room_manager.rooms.values())
    by_status = {status: 0 for status in GameStatus}
    for session in sessions:
        by_status[session.state.status] += 1

    data.active_rooms = len(sessions)
    data.total_players = sum(len(s.state.players) for s in sessions)
    data.cpu_players = sum(len(s.get_cpu_players()) for s in sessions)
    data.rooms_waiting = by_status[GameStatus.WAITING]
    data.games_in_progress = by_status[GameStatus.PLAYING]
    data.games_finished = by_status[GameStatus.FINISHED]
    data.open_connections = sum(len(s.connections) for s in sessions)
    return data
