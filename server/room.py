"""
Room lifecycle and registry for multiplayer UNO.

Lifecycle functions move a Room through WAITING -> PLAYING -> FINISHED.
Like the turn engine they take a Room and return a new one, raising a
GameError (and leaving the input untouched) when the request is refused.

A RoomSession wraps one Room with everything that is not game state:
    - WebSocket connections of the human seats
    - An asyncio.Lock serializing transitions on that room

The RoomManager owns every live session, keyed by room code.
"""

import asyncio
import copy
import logging
import random
import uuid
from dataclasses import dataclass, field
from typing import Optional

from fastapi import WebSocket

from ai import assign_profile, cleanup_room_profiles, release_profile
from cards import GameMode, Side, draw_one
from constants import HAND_SIZE, MAX_NAME_LENGTH, ROOM_CODE_ALPHABET, ROOM_CODE_LENGTH
from errors import (
    DuplicateNameError,
    GameAlreadyStartedError,
    GameError,
    InvalidNameError,
    NotEnoughPlayersError,
    NotHostError,
    PlayersNotReadyError,
    RoomFullError,
)
from game import GameStatus, Player, Room, deal_opening_card, fresh_deck, next_seat_index

logger = logging.getLogger(__name__)


def generate_room_code(rng: Optional[random.Random] = None) -> str:
    """Random room code such as "K7Q2ZD"."""
    return "".join((rng or random).choices(ROOM_CODE_ALPHABET, k=ROOM_CODE_LENGTH))


def _clean_name(name: str) -> str:
    name = (name or "").strip()
    if not name or len(name) > MAX_NAME_LENGTH:
        raise InvalidNameError(f"Name must be 1-{MAX_NAME_LENGTH} characters")
    return name


def _deal_hand(room: Room) -> list:
    hand = []
    for _ in range(HAND_SIZE):
        card, room.draw_pile = draw_one(room.draw_pile)
        hand.append(card)
    return hand


# =============================================================================
# Lifecycle
# =============================================================================

def create_room(
    host_name: str,
    mode: GameMode = GameMode.CLASSIC,
    room_id: Optional[str] = None,
    host_id: Optional[str] = None,
    rng: Optional[random.Random] = None,
) -> Room:
    """
    Create a room with its host seated and dealt in.

    A fresh deck is shuffled, the host gets a full hand and the first
    non-wild card starts the discard pile.

    Args:
        host_name: Display name of the creator.
        mode: Rule set for the room.
        room_id: Room code (random if omitted; RoomManager guarantees
            uniqueness across live rooms).
        host_id: Seat id for the host (random if omitted).
        rng: Random source for shuffles.

    Returns:
        A new room in WAITING status.

    Raises:
        InvalidNameError: If the name is blank or too long.
    """
    name = _clean_name(host_name)
    room = Room(
        id=room_id or generate_room_code(rng),
        mode=mode,
        flip_side=Side.LIGHT if mode == GameMode.FLIP else None,
    )
    room.draw_pile = fresh_deck(room, Side.LIGHT, rng)

    host = Player(id=host_id or uuid.uuid4().hex, name=name, is_host=True)
    host.hand = _deal_hand(room)
    room.players.append(host)
    room.current_player_id = host.id
    deal_opening_card(room, rng)

    logger.info(f"Room {room.id} created by {name} ({mode.value})")
    return room


def join_room(
    room: Room,
    player_name: str,
    player_id: Optional[str] = None,
    is_cpu: bool = False,
) -> Room:
    """
    Seat a new player and deal them a hand.

    CPU seats join already marked ready.

    Raises:
        GameAlreadyStartedError: If the room is not WAITING.
        RoomFullError: If every seat is taken.
        InvalidNameError: If the name is blank or too long.
        DuplicateNameError: If the name (or id) is already seated.
    """
    if room.status != GameStatus.WAITING:
        raise GameAlreadyStartedError()
    if len(room.players) >= room.max_players:
        raise RoomFullError()

    name = _clean_name(player_name)
    if any(p.name.lower() == name.lower() for p in room.players):
        raise DuplicateNameError()
    if player_id and room.get_player(player_id):
        raise DuplicateNameError("Player already in room")

    room = copy.deepcopy(room)
    player = Player(
        id=player_id or uuid.uuid4().hex,
        name=name,
        is_ready=is_cpu,
        is_cpu=is_cpu,
    )
    player.hand = _deal_hand(room)
    room.players.append(player)

    logger.info(f"Room {room.id}: {name} joined ({len(room.players)}/{room.max_players})")
    return room


def toggle_ready(room: Room, player_id: str) -> Room:
    """Flip a player's ready flag. No effect outside WAITING or for unknown ids."""
    if room.status != GameStatus.WAITING or not room.get_player(player_id):
        return room
    room = copy.deepcopy(room)
    player = room.get_player(player_id)
    player.is_ready = not player.is_ready
    return room


def start_game(room: Room, requestor_id: str) -> Room:
    """
    Start play. The first seat takes the first turn.

    Raises:
        GameAlreadyStartedError: If the room is not WAITING.
        NotHostError: If the requestor is not the host.
        NotEnoughPlayersError: With fewer than the minimum seats.
        PlayersNotReadyError: If anyone is not ready.
    """
    if room.status != GameStatus.WAITING:
        raise GameAlreadyStartedError()
    requestor = room.get_player(requestor_id)
    if not requestor or not requestor.is_host:
        raise NotHostError()
    if len(room.players) < room.min_players:
        raise NotEnoughPlayersError(f"Need at least {room.min_players} players to start")
    if not all(p.is_ready for p in room.players):
        raise PlayersNotReadyError()

    room = copy.deepcopy(room)
    room.status = GameStatus.PLAYING
    room.current_player_id = room.players[0].id
    room.has_drawn = False

    logger.info(f"Room {room.id}: game started with {len(room.players)} players")
    return room


def remove_player(room: Room, player_id: str) -> Room:
    """
    Take a player out of the room.

    If they held the turn it passes on first. Their hand goes to the
    bottom of the draw pile. A running game left with a single seat ends
    with that seat as the winner. An empty room is for the caller to
    dispose of.
    """
    index = room.player_index(player_id)
    if index < 0:
        return room

    room = copy.deepcopy(room)
    leaving = room.players[index]

    if room.current_player_id == player_id:
        if len(room.players) > 1:
            next_index = next_seat_index(index, len(room.players), room.direction)
            room.current_player_id = room.players[next_index].id
        else:
            room.current_player_id = None
        room.pending_draw_count = 0
        room.has_drawn = False

    room.players.pop(index)
    room.draw_pile[:0] = leaving.hand
    leaving.hand = []

    if room.status == GameStatus.PLAYING and len(room.players) == 1:
        room.status = GameStatus.FINISHED
        room.winner_id = room.players[0].id
        room.pending_draw_count = 0
        logger.info(f"Room {room.id}: {room.players[0].name} wins as last player standing")

    logger.info(f"Room {room.id}: {leaving.name} left ({len(room.players)} remaining)")
    return room


def abort_game(room: Room) -> Room:
    """End a game with no winner (both piles ran dry)."""
    room = copy.deepcopy(room)
    room.status = GameStatus.FINISHED
    room.winner_id = None
    room.pending_draw_count = 0
    logger.warning(f"Room {room.id}: game aborted")
    return room


# =============================================================================
# Sessions
# =============================================================================

@dataclass
class RoomSession:
    """
    A live room on the server.

    Attributes:
        code: Room code, same as state.id.
        state: Current game state. Replaced wholesale on every transition.
        connections: WebSockets of human seats, keyed by player id.
        lock: Serializes read-compute-write of ``state``.
    """

    code: str
    state: Room
    connections: dict[str, WebSocket] = field(default_factory=dict)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    def join(self, player_name: str, player_id: str, websocket: Optional[WebSocket] = None) -> Player:
        """
        Seat a human player.

        Raises:
            GameError: Any join-time rejection from join_room.
        """
        self.state = join_room(self.state, player_name, player_id)
        if websocket is not None:
            self.connections[player_id] = websocket
        return self.state.get_player(player_id)

    def add_cpu_player(self, cpu_id: str, profile_name: Optional[str] = None) -> Optional[Player]:
        """
        Seat a CPU player with a personality from the room's profile pool.

        Returns:
            The new seat, or None if no profile is free.

        Raises:
            GameError: Any join-time rejection from join_room.
        """
        taken = {p.name for p in self.state.players}
        profile = assign_profile(cpu_id, self.code, profile_name, exclude=taken)
        if not profile:
            return None
        try:
            self.state = join_room(self.state, profile.name, cpu_id, is_cpu=True)
        except GameError:
            release_profile(profile.name, self.code)
            raise
        return self.state.get_player(cpu_id)

    def remove_player(self, player_id: str) -> Optional[Player]:
        """
        Remove a seat and its connection.

        Returns:
            The removed seat as it was before leaving, or None if unknown.
        """
        player = self.state.get_player(player_id)
        if not player:
            return None
        self.state = remove_player(self.state, player_id)
        self.connections.pop(player_id, None)
        if player.is_cpu:
            release_profile(player.name, self.code)
        return player

    def get_cpu_players(self) -> list[Player]:
        return [p for p in self.state.players if p.is_cpu]

    def human_player_count(self) -> int:
        return sum(1 for p in self.state.players if not p.is_cpu)

    def is_empty(self) -> bool:
        return not self.state.players

    async def broadcast(self, message: dict, exclude: Optional[str] = None) -> None:
        """
        Send a message to every connected human seat.

        Args:
            message: JSON-serializable message dict.
            exclude: Optional player ID to skip.
        """
        for player_id in list(self.connections):
            if player_id != exclude:
                await self.send_to(player_id, message)

    async def send_to(self, player_id: str, message: dict) -> None:
        """Send a message to one seat. Dead connections are dropped."""
        websocket = self.connections.get(player_id)
        if websocket is None:
            return
        try:
            await websocket.send_json(message)
        except Exception as e:
            logger.debug(f"Room {self.code}: send to {player_id} failed: {e}")
            self.connections.pop(player_id, None)


class RoomManager:
    """
    Registry of all live rooms.

    Rooms are always looked up by code; handlers never keep a Room object
    across awaits without holding the session lock.
    """

    def __init__(self) -> None:
        self.rooms: dict[str, RoomSession] = {}

    def _generate_code(self, max_attempts: int = 100) -> str:
        """Generate a room code not used by any live room."""
        for _ in range(max_attempts):
            code = generate_room_code()
            if code not in self.rooms:
                return code
        raise RuntimeError("Could not generate unique room code")

    def create_room(
        self,
        host_name: str,
        host_id: str,
        mode: GameMode = GameMode.CLASSIC,
        websocket: Optional[WebSocket] = None,
    ) -> RoomSession:
        """
        Create and register a room hosted by ``host_id``.

        Raises:
            InvalidNameError: If the host name is rejected.
        """
        code = self._generate_code()
        state = create_room(host_name, mode, room_id=code, host_id=host_id)
        session = RoomSession(code=code, state=state)
        if websocket is not None:
            session.connections[host_id] = websocket
        self.rooms[code] = session
        return session

    def get_room(self, code: str) -> Optional[RoomSession]:
        """Get a room by its code (case-insensitive)."""
        return self.rooms.get((code or "").upper())

    def remove_room(self, code: str) -> None:
        if code in self.rooms:
            del self.rooms[code]
            cleanup_room_profiles(code)
            logger.info(f"Room {code} closed")

    def find_player_room(self, player_id: str) -> Optional[RoomSession]:
        for session in self.rooms.values():
            if session.state.get_player(player_id):
                return session
        return None
