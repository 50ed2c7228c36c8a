"""FastAPI WebSocket server for UNO rooms."""

import asyncio
import logging
import uuid
from contextlib import asynccontextmanager

from fastapi import FastAPI, WebSocket, WebSocketDisconnect

from ai import CPU_PROFILES, _cpu_profiles, _room_used_profiles, process_cpu_turn, reset_all_profiles
from config import config
from errors import DeckExhaustedError, IllegalMoveError
from game import GameStatus
from handlers import HANDLERS, ConnectionContext, send_error
from logging_config import connection_id_var, player_id_var, setup_logging
from room import RoomManager, RoomSession, abort_game
from routers.health import router as health_router, set_health_dependencies

# Configure logging based on environment
setup_logging(
    level=config.LOG_LEVEL,
    environment=config.ENVIRONMENT,
)
logger = logging.getLogger(__name__)

room_manager = RoomManager()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    set_health_dependencies(room_manager=room_manager)
    logger.info(f"UNO server started (environment={config.ENVIRONMENT})")

    yield

    logger.info("Shutdown initiated...")
    await _close_all_websockets()
    reset_all_profiles()
    logger.info("Shutdown complete")


async def _close_all_websockets():
    """Close all active WebSocket connections gracefully."""
    for session in list(room_manager.rooms.values()):
        for websocket in list(session.connections.values()):
            try:
                await websocket.close(code=1001, reason="Server shutting down")
            except Exception as e:
                logger.debug(f"Room {session.code}: close failed: {e}")
    logger.info("All WebSocket connections closed")


app = FastAPI(
    title="UNO Room Server",
    debug=config.DEBUG,
    version="1.0.0",
    lifespan=lifespan,
)

app.include_router(health_router)


# =============================================================================
# Debug Endpoints (CPU Profile Management)
# =============================================================================

@app.get("/api/debug/cpu-profiles")
async def get_cpu_profile_status():
    """Get current CPU profile allocation status."""
    return {
        "total_profiles": len(CPU_PROFILES),
        "room_profiles": {
            room_code: sorted(profiles)
            for room_code, profiles in _room_used_profiles.items()
        },
        "cpu_mappings": {
            cpu_id: {"room": room_code, "profile": profile.name}
            for cpu_id, (room_code, profile) in _cpu_profiles.items()
        },
        "active_rooms": len(room_manager.rooms),
        "rooms": {
            code: {
                "status": session.state.status.value,
                "players": len(session.state.players),
                "cpu_players": [p.name for p in session.get_cpu_players()],
            }
            for code, session in room_manager.rooms.items()
        },
    }


@app.post("/api/debug/reset-cpu-profiles")
async def reset_cpu_profiles():
    """Reset all CPU profiles (emergency cleanup)."""
    reset_all_profiles()
    return {"status": "ok", "message": "All CPU profiles reset"}


@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    await websocket.accept()

    connection_id = str(uuid.uuid4())
    connection_id_var.set(connection_id)
    player_id_var.set(connection_id)
    logger.debug(f"WebSocket connected as {connection_id}")

    ctx = ConnectionContext(
        websocket=websocket,
        connection_id=connection_id,
        player_id=connection_id,
    )

    # Shared dependencies passed to every handler
    handler_deps = dict(
        room_manager=room_manager,
        broadcast_game_state=broadcast_game_state,
        check_and_run_cpu_turn=check_and_run_cpu_turn,
        handle_player_leave=handle_player_leave,
    )

    try:
        while True:
            data = await websocket.receive_json()
            handler = HANDLERS.get(data.get("type")) if isinstance(data, dict) else None
            if handler:
                await handler(data, ctx, **handler_deps)
            else:
                await send_error(websocket, "Unknown message type")
    except WebSocketDisconnect:
        logger.debug(f"WebSocket {connection_id} disconnected")
        if ctx.current_room:
            await handle_player_leave(ctx.current_room, ctx.player_id)


async def broadcast_game_state(session: RoomSession):
    """Send every connected seat its own view of the room."""
    state = session.state
    winner = state.get_player(state.winner_id) if state.winner_id else None

    for pid in list(session.connections):
        await session.send_to(pid, {
            "type": "game_state",
            "game_state": state.get_state(pid),
        })

        if state.status == GameStatus.FINISHED:
            await session.send_to(pid, {
                "type": "game_over",
                "winner_id": state.winner_id,
                "winner_name": winner.name if winner else None,
            })
        elif state.status == GameStatus.PLAYING and state.current_player_id == pid:
            await session.send_to(pid, {
                "type": "your_turn",
                "pending_draw_count": state.pending_draw_count,
                "has_drawn": state.has_drawn,
            })


async def check_and_run_cpu_turn(session: RoomSession):
    """
    Let CPU seats move for as long as it is a CPU seat's turn.

    Each CPU turn is computed on a snapshot outside the lock (it includes
    a thinking delay) and only applied if nothing else changed the room
    in the meantime; otherwise whoever changed it carries on the chain.
    """
    while True:
        snapshot = session.state
        if snapshot.status != GameStatus.PLAYING:
            return
        current = snapshot.current_player()
        if not current or not current.is_cpu:
            return
        if room_manager.get_room(session.code) is not session:
            return

        try:
            new_state, action = await process_cpu_turn(snapshot, current)
        except DeckExhaustedError as e:
            logger.warning(f"Room {session.code}: {e.message}, aborting game")
            new_state, action = abort_game(snapshot), None
        except IllegalMoveError as e:
            logger.error(f"Room {session.code}: CPU {current.name} made an illegal move: {e.message}")
            return

        async with session.lock:
            if session.state is not snapshot:
                logger.debug(f"Room {session.code}: state moved on during CPU turn, discarding")
                return
            session.state = new_state
            if action:
                logger.debug(f"Room {session.code}: CPU {current.name} did {action.type.value}")
            await broadcast_game_state(session)

        if config.cpu.post_action_pause > 0:
            await asyncio.sleep(config.cpu.post_action_pause)


async def handle_player_leave(session: RoomSession, player_id: str):
    """Handle a player leaving a room."""
    async with session.lock:
        player = session.remove_player(player_id)

        # If no human players left, clean up the room entirely
        if session.is_empty() or session.human_player_count() == 0:
            room_manager.remove_room(session.code)
            return

        if player:
            await session.broadcast({
                "type": "player_left",
                "player_id": player_id,
                "player_name": player.name,
            })
            await broadcast_game_state(session)

    await check_and_run_cpu_turn(session)


def run():
    """Run the server using uvicorn."""
    import uvicorn

    logger.info(f"Starting UNO server on {config.HOST}:{config.PORT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    uvicorn.run(
        "main:app",
        host=config.HOST,
        port=config.PORT,
        reload=config.DEBUG,
        log_level=config.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    run()
