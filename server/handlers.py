"""WebSocket message handlers for the UNO room server.

Each handler corresponds to a single message type from the client.
Handlers are dispatched via the HANDLERS dict in main.py.

Every state change goes through the room's lock and one engine or
lifecycle call. A refused request is answered with an ``error`` message
to the sender only; the room is left as it was.
"""

import uuid
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from fastapi import WebSocket

from cards import Color, GameMode
from config import config
from errors import DeckExhaustedError, GameError, IllegalMoveError
from game import GameStatus, Room, draw_card, flip_deck, pass_turn, play_card
from logging_config import get_logger, room_code_var
from room import RoomSession, abort_game, start_game, toggle_ready

logger = get_logger(__name__)


@dataclass
class ConnectionContext:
    """State tracked per WebSocket connection."""

    websocket: WebSocket
    connection_id: str
    player_id: str
    current_room: Optional[RoomSession] = None


async def send_error(websocket: WebSocket, message: str) -> None:
    await websocket.send_json({"type": "error", "message": message})


def _parse_color(value) -> Optional[Color]:
    """Color named by the client, or None. Raises IllegalMoveError on junk."""
    if value is None:
        return None
    try:
        return Color(str(value).lower())
    except ValueError:
        raise IllegalMoveError(f"Unknown color: {value}")


def _is_host(session: RoomSession, player_id: str) -> bool:
    player = session.state.get_player(player_id)
    return bool(player and player.is_host)


async def run_transition(
    ctx: ConnectionContext,
    transition: Callable[[Room], Room],
    *,
    broadcast_game_state,
    check_and_run_cpu_turn,
    on_success: Optional[Callable[[Room, Room], Awaitable[None]]] = None,
) -> bool:
    """
    Apply one transition to the connection's room under its lock.

    On success the new state is broadcast, then any CPU seats whose turn
    it now is get to move. A DeckExhaustedError ends that room's game
    with no winner.

    Args:
        ctx: Connection issuing the request.
        transition: Function from the current room to the next one.
        on_success: Optional coroutine given (previous, current) state,
            awaited before the broadcast.

    Returns:
        True if the room changed.
    """
    session = ctx.current_room
    async with session.lock:
        previous = session.state
        try:
            session.state = transition(previous)
        except DeckExhaustedError as e:
            logger.with_context(room_code=session.code).warning(f"{e.message}, aborting game")
            session.state = abort_game(previous)
            await session.broadcast({"type": "error", "message": e.message})
        except GameError as e:
            await send_error(ctx.websocket, e.message)
            return False
        else:
            if on_success is not None:
                await on_success(previous, session.state)
        await broadcast_game_state(session)

    await check_and_run_cpu_turn(session)
    return True


# ---------------------------------------------------------------------------
# Lobby / Room handlers
# ---------------------------------------------------------------------------

async def handle_create_room(data: dict, ctx: ConnectionContext, *, room_manager, broadcast_game_state, **kw) -> None:
    if ctx.current_room:
        await send_error(ctx.websocket, "Already in a room")
        return

    try:
        mode = GameMode(data.get("mode", GameMode.CLASSIC.value))
    except ValueError:
        await send_error(ctx.websocket, f"Unknown game mode: {data.get('mode')}")
        return

    player_name = data.get("player_name", "Player")
    try:
        session = room_manager.create_room(player_name, ctx.player_id, mode, ctx.websocket)
    except GameError as e:
        await send_error(ctx.websocket, e.message)
        return

    ctx.current_room = session
    room_code_var.set(session.code)

    await ctx.websocket.send_json({
        "type": "room_created",
        "room_code": session.code,
        "player_id": ctx.player_id,
        "mode": mode.value,
    })
    await broadcast_game_state(session)


async def handle_join_room(data: dict, ctx: ConnectionContext, *, room_manager, broadcast_game_state, **kw) -> None:
    if ctx.current_room:
        await send_error(ctx.websocket, "Already in a room")
        return

    session = room_manager.get_room(data.get("room_code", ""))
    if not session:
        await send_error(ctx.websocket, "Room not found")
        return

    player_name = data.get("player_name", "Player")
    async with session.lock:
        try:
            session.join(player_name, ctx.player_id, ctx.websocket)
        except GameError as e:
            await send_error(ctx.websocket, e.message)
            return

        ctx.current_room = session
        room_code_var.set(session.code)

        await ctx.websocket.send_json({
            "type": "room_joined",
            "room_code": session.code,
            "player_id": ctx.player_id,
            "mode": session.state.mode.value,
        })
        await broadcast_game_state(session)


async def handle_toggle_ready(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    if not ctx.current_room:
        return

    session = ctx.current_room
    async with session.lock:
        new_state = toggle_ready(session.state, ctx.player_id)
        if new_state is session.state:
            return
        session.state = new_state
        await broadcast_game_state(session)


async def handle_add_cpu(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    if not ctx.current_room:
        return

    session = ctx.current_room
    if not _is_host(session, ctx.player_id):
        await send_error(ctx.websocket, "Only the host can add CPU players")
        return

    cpu_id = f"cpu_{uuid.uuid4().hex[:8]}"
    async with session.lock:
        if len(session.get_cpu_players()) >= config.MAX_CPU_PER_ROOM:
            await send_error(ctx.websocket, f"At most {config.MAX_CPU_PER_ROOM} CPU players per room")
            return
        try:
            cpu_player = session.add_cpu_player(cpu_id, data.get("profile_name"))
        except GameError as e:
            await send_error(ctx.websocket, e.message)
            return
        if not cpu_player:
            await send_error(ctx.websocket, "CPU profile not available")
            return
        await broadcast_game_state(session)


async def handle_remove_cpu(data: dict, ctx: ConnectionContext, *, broadcast_game_state, **kw) -> None:
    if not ctx.current_room:
        return

    session = ctx.current_room
    if not _is_host(session, ctx.player_id):
        return

    async with session.lock:
        if session.state.status != GameStatus.WAITING:
            await send_error(ctx.websocket, "Game already in progress")
            return
        cpu_players = session.get_cpu_players()
        if cpu_players:
            session.remove_player(cpu_players[-1].id)
            await broadcast_game_state(session)


# ---------------------------------------------------------------------------
# Game lifecycle handlers
# ---------------------------------------------------------------------------

async def handle_start_game(data: dict, ctx: ConnectionContext, *, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    if not ctx.current_room:
        return

    await run_transition(
        ctx,
        lambda room: start_game(room, ctx.player_id),
        broadcast_game_state=broadcast_game_state,
        check_and_run_cpu_turn=check_and_run_cpu_turn,
    )


# ---------------------------------------------------------------------------
# Turn action handlers
# ---------------------------------------------------------------------------

async def handle_play_card(data: dict, ctx: ConnectionContext, *, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    if not ctx.current_room:
        return

    try:
        chosen_color = _parse_color(data.get("chosen_color"))
    except IllegalMoveError as e:
        await send_error(ctx.websocket, e.message)
        return

    def transition(room: Room) -> Room:
        return play_card(
            room,
            ctx.player_id,
            data.get("card_id", ""),
            chosen_color=chosen_color,
            called_last_card=bool(data.get("called_last_card", True)),
            missed_call_penalty=config.rules.missed_call_penalty,
        )

    await run_transition(
        ctx,
        transition,
        broadcast_game_state=broadcast_game_state,
        check_and_run_cpu_turn=check_and_run_cpu_turn,
    )


async def handle_draw_card(data: dict, ctx: ConnectionContext, *, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    if not ctx.current_room:
        return

    async def send_drawn(previous: Room, current: Room) -> None:
        held = {c.id for c in previous.get_player(ctx.player_id).hand}
        player = current.get_player(ctx.player_id)
        drawn = [c for c in player.hand if c.id not in held]
        await ctx.websocket.send_json({
            "type": "card_drawn",
            "cards": [c.to_dict() for c in drawn],
            "keeps_turn": current.current_player_id == ctx.player_id,
        })

    await run_transition(
        ctx,
        lambda room: draw_card(room, ctx.player_id),
        broadcast_game_state=broadcast_game_state,
        check_and_run_cpu_turn=check_and_run_cpu_turn,
        on_success=send_drawn,
    )


async def handle_pass_turn(data: dict, ctx: ConnectionContext, *, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    if not ctx.current_room:
        return

    await run_transition(
        ctx,
        lambda room: pass_turn(room, ctx.player_id),
        broadcast_game_state=broadcast_game_state,
        check_and_run_cpu_turn=check_and_run_cpu_turn,
    )


async def handle_flip_deck(data: dict, ctx: ConnectionContext, *, broadcast_game_state, check_and_run_cpu_turn, **kw) -> None:
    if not ctx.current_room:
        return

    def transition(room: Room) -> Room:
        if room.current_player_id != ctx.player_id:
            raise IllegalMoveError("Not your turn")
        return flip_deck(room)

    await run_transition(
        ctx,
        transition,
        broadcast_game_state=broadcast_game_state,
        check_and_run_cpu_turn=check_and_run_cpu_turn,
    )


# ---------------------------------------------------------------------------
# Leave handler
# ---------------------------------------------------------------------------

async def handle_leave_room(data: dict, ctx: ConnectionContext, *, handle_player_leave, **kw) -> None:
    if ctx.current_room:
        await handle_player_leave(ctx.current_room, ctx.player_id)
        ctx.current_room = None
        room_code_var.set(None)


# ---------------------------------------------------------------------------
# Handler dispatch table
# ---------------------------------------------------------------------------

HANDLERS = {
    "create_room": handle_create_room,
    "join_room": handle_join_room,
    "toggle_ready": handle_toggle_ready,
    "add_cpu": handle_add_cpu,
    "remove_cpu": handle_remove_cpu,
    "start_game": handle_start_game,
    "play_card": handle_play_card,
    "draw_card": handle_draw_card,
    "pass_turn": handle_pass_turn,
    "flip_deck": handle_flip_deck,
    "leave_room": handle_leave_room,
}
