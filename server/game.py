"""
Room state and turn engine for UNO.

This module holds the authoritative state of one room and the rules that
move it forward. Every transition is a function that takes a Room and
returns a new Room; the input is never modified, so a rejected move
leaves the caller's room exactly as it was.

Turn Rules Summary:
    - A card is playable if it matches the active card's color or value,
      or if it is wild (a declared color stands in for a wild's color)
    - reverse flips direction, skip passes over the next seat,
      draw cards hand the next seat a draw it must take before playing
    - Drawing is always allowed on your turn; a playable drawn card keeps
      the turn, anything else passes it on
    - Playing your last card wins immediately

Two flavours of each action are exported:
    play_card / draw_card / pass_turn / flip_deck raise IllegalMoveError
    apply_play_card / apply_draw_card / ... return the input room instead
"""

import copy
import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from cards import Card, Color, GameMode, Side, Value, build_deck, draw_one, shuffle
from constants import HAND_SIZE, HISTORY_LENGTH, MAX_PLAYERS, MIN_PLAYERS
from errors import DeckExhaustedError, IllegalMoveError

logger = logging.getLogger(__name__)


class Direction(str, Enum):
    """Order in which seats take turns."""

    FORWARD = "forward"
    BACKWARD = "backward"

    @property
    def step(self) -> int:
        return 1 if self == Direction.FORWARD else -1

    def reversed(self) -> "Direction":
        return Direction.BACKWARD if self == Direction.FORWARD else Direction.FORWARD


class GameStatus(str, Enum):
    """
    Room lifecycle.

    Flow: WAITING -> PLAYING -> FINISHED (one way, no restart)
    """

    WAITING = "waiting"      # Lobby, players joining and readying up
    PLAYING = "playing"      # Turns in progress
    FINISHED = "finished"    # Someone went out, or the game was aborted


@dataclass
class Player:
    """
    A seat at the table.

    Attributes:
        id: Unique within the room (the connection id for humans).
        name: Display name.
        hand: Cards held. Order carries no meaning.
        is_host: Set for the room creator only; never transferred.
        is_ready: Ready-check flag, only changed while waiting.
        is_cpu: Seat driven by the automatic opponent.
    """

    id: str
    name: str
    hand: list[Card] = field(default_factory=list)
    is_host: bool = False
    is_ready: bool = False
    is_cpu: bool = False

    def find_card(self, card_id: str) -> Optional[Card]:
        for card in self.hand:
            if card.id == card_id:
                return card
        return None

    def to_dict(self, reveal: bool = False) -> dict:
        """
        Convert seat to dictionary for client display.

        Args:
            reveal: Include the hand itself, not just its size.
        """
        data = {
            "id": self.id,
            "name": self.name,
            "is_host": self.is_host,
            "is_ready": self.is_ready,
            "is_cpu": self.is_cpu,
            "card_count": len(self.hand),
        }
        if reveal:
            data["hand"] = [card.to_dict() for card in self.hand]
        return data


@dataclass
class MoveRecord:
    """One entry of the room's recent move history."""

    player_id: str
    action: str              # play, draw, pass, flip
    card: Optional[Card] = None
    count: int = 0           # cards drawn

    def to_dict(self) -> dict:
        return {
            "player_id": self.player_id,
            "action": self.action,
            "card": self.card.to_dict() if self.card else None,
            "count": self.count,
        }


@dataclass
class Room:
    """
    Complete state of one game room.

    Every card of the room is in exactly one of: a player's hand, the draw
    pile, or the discard pile. The top of both piles is the last element.

    Attributes:
        id: Short shareable room code.
        mode: Rule set.
        players: Seats in turn order.
        current_player_id: Seat whose turn it is.
        direction: Turn order traversal.
        status: Lifecycle status.
        draw_pile: Face-down pile.
        discard_pile: Face-up pile; its last card is the active card.
        pending_draw_count: Cards the current player must draw before playing.
        winner_id: Seat that went out, if any.
        flip_side: Active deck face (flip mode only).
        declared_color: Color named when the active wild card was played.
        has_drawn: Current player already drew a card this turn.
        decks_built: Decks built for this room so far (keeps card ids unique).
        history: Most recent moves, oldest first.
    """

    id: str
    mode: GameMode = GameMode.CLASSIC
    players: list[Player] = field(default_factory=list)
    current_player_id: Optional[str] = None
    direction: Direction = Direction.FORWARD
    status: GameStatus = GameStatus.WAITING
    draw_pile: list[Card] = field(default_factory=list)
    discard_pile: list[Card] = field(default_factory=list)
    pending_draw_count: int = 0
    winner_id: Optional[str] = None
    flip_side: Optional[Side] = None
    declared_color: Optional[Color] = None
    has_drawn: bool = False
    decks_built: int = 0
    history: list[MoveRecord] = field(default_factory=list)
    min_players: int = MIN_PLAYERS
    max_players: int = MAX_PLAYERS

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    @property
    def active_card(self) -> Optional[Card]:
        """Top of the discard pile, the card new plays must match."""
        if self.discard_pile:
            return self.discard_pile[-1]
        return None

    def get_player(self, player_id: str) -> Optional[Player]:
        for player in self.players:
            if player.id == player_id:
                return player
        return None

    def player_index(self, player_id: str) -> int:
        """Seat index of a player, or -1 if not seated."""
        for i, player in enumerate(self.players):
            if player.id == player_id:
                return i
        return -1

    def current_player(self) -> Optional[Player]:
        if self.current_player_id is None:
            return None
        return self.get_player(self.current_player_id)

    def total_cards(self) -> int:
        """Cards in play across hands and both piles (constant between flips)."""
        return (
            len(self.draw_pile)
            + len(self.discard_pile)
            + sum(len(p.hand) for p in self.players)
        )

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def get_state(self, for_player_id: Optional[str] = None) -> dict:
        """
        Get the room state as seen by one participant.

        The recipient's own hand is included in full; every other seat only
        shows its card count.

        Args:
            for_player_id: The seat receiving this view (None for an
                observer with no hand).

        Returns:
            JSON-serializable dict.
        """
        active = self.active_card
        playable = [c.id for c in legal_cards(self, for_player_id)] if for_player_id else []

        return {
            "id": self.id,
            "mode": self.mode.value,
            "status": self.status.value,
            "direction": self.direction.value,
            "players": [p.to_dict(reveal=p.id == for_player_id) for p in self.players],
            "current_player_id": self.current_player_id,
            "active_card": active.to_dict() if active else None,
            "declared_color": self.declared_color.value if self.declared_color else None,
            "draw_pile_count": len(self.draw_pile),
            "discard_pile_count": len(self.discard_pile),
            "pending_draw_count": self.pending_draw_count,
            "has_drawn": self.has_drawn,
            "winner_id": self.winner_id,
            "flip_side": self.flip_side.value if self.flip_side else None,
            "min_players": self.min_players,
            "max_players": self.max_players,
            "playable_card_ids": playable,
            "history": [m.to_dict() for m in self.history],
        }


# =============================================================================
# Rules
# =============================================================================

def is_legal(card: Card, active_card: Card, declared_color: Optional[Color] = None) -> bool:
    """
    Check whether a card may be played on the active card.

    Legal if the colors match, the values match, or the card is wild.
    When the active card is a wild, the color declared with it is
    matched instead of "wild".
    """
    if card.is_wild:
        return True
    if active_card.is_wild:
        return card.color == declared_color
    return card.color == active_card.color or card.value == active_card.value


def next_seat_index(index: int, count: int, direction: Direction, steps: int = 1) -> int:
    """Seat index ``steps`` turns after ``index``, wrapping around the table."""
    return (index + direction.step * steps) % count


def legal_cards(room: Room, player_id: Optional[str]) -> list[Card]:
    """
    Cards the player could play right now.

    Empty when it isn't their turn, the game isn't running, or they owe
    a forced draw.
    """
    if room.status != GameStatus.PLAYING or room.current_player_id != player_id:
        return []
    if room.pending_draw_count > 0 or room.active_card is None:
        return []
    player = room.get_player(player_id)
    if not player:
        return []
    return [c for c in player.hand if is_legal(c, room.active_card, room.declared_color)]


# -------------------------------------------------------------------------
# Internal helpers (operate on a room copy)
# -------------------------------------------------------------------------

def _advance(room: Room, steps: int = 1) -> None:
    """Pass the turn ``steps`` seats along the current direction."""
    index = room.player_index(room.current_player_id)
    if index < 0:
        index = 0
    index = next_seat_index(index, len(room.players), room.direction, steps)
    room.current_player_id = room.players[index].id
    room.has_drawn = False


def _reclaim_discards(room: Room, rng: Optional[random.Random]) -> None:
    """
    Turn the discard pile (minus its top card) into a new draw pile.

    Raises:
        DeckExhaustedError: If there is nothing under the top card.
    """
    if len(room.discard_pile) <= 1:
        raise DeckExhaustedError()
    top_card = room.discard_pile[-1]
    room.draw_pile = shuffle(room.discard_pile[:-1], rng)
    room.discard_pile = [top_card]
    logger.debug(f"Room {room.id}: reshuffled {len(room.draw_pile)} discards into draw pile")


def _draw_cards(room: Room, count: int, rng: Optional[random.Random] = None) -> list[Card]:
    """Draw ``count`` cards one at a time, reclaiming discards when the pile runs out."""
    drawn = []
    for _ in range(count):
        if not room.draw_pile:
            _reclaim_discards(room, rng)
        card, room.draw_pile = draw_one(room.draw_pile)
        drawn.append(card)
    return drawn


def _record(room: Room, player_id: str, action: str, card: Optional[Card] = None, count: int = 0) -> None:
    room.history.append(MoveRecord(player_id=player_id, action=action, card=card, count=count))
    if len(room.history) > HISTORY_LENGTH:
        del room.history[: len(room.history) - HISTORY_LENGTH]


def _require_turn(room: Room, player_id: str) -> Player:
    """Return the acting player, or raise if they may not act now."""
    if room.status != GameStatus.PLAYING:
        raise IllegalMoveError("Game is not in progress")
    if room.current_player_id != player_id:
        raise IllegalMoveError("Not your turn")
    player = room.get_player(player_id)
    if not player:
        raise IllegalMoveError("Player not in room")
    return player


def deal_opening_card(room: Room, rng: Optional[random.Random] = None) -> None:
    """
    Start the discard pile with a non-wild card.

    A wild drawn for the opening is returned to the draw pile and the pile
    reshuffled. Modifies ``room`` in place; used while building a room.
    """
    while True:
        card, room.draw_pile = draw_one(room.draw_pile)
        if not card.is_wild:
            room.discard_pile.append(card)
            return
        room.draw_pile.append(card)
        shuffle(room.draw_pile, rng)


def fresh_deck(room: Room, side: Side = Side.LIGHT, rng: Optional[random.Random] = None) -> list[Card]:
    """Build a new deck for ``room`` with ids that don't clash with earlier decks."""
    room.decks_built += 1
    return build_deck(room.mode, side, rng=rng, tag=f"{room.id}{room.decks_built}")


# =============================================================================
# Turn Actions
# =============================================================================

def play_card(
    room: Room,
    player_id: str,
    card_id: str,
    chosen_color: Optional[Color] = None,
    called_last_card: bool = True,
    missed_call_penalty: int = 0,
    rng: Optional[random.Random] = None,
) -> Room:
    """
    Play a card from the current player's hand.

    Args:
        room: Current room state (not modified).
        player_id: Seat attempting the play.
        card_id: Card to play.
        chosen_color: Color named for a wild card, required when playing
            one. Ignored for other cards.
        called_last_card: Whether the player announced their last card.
        missed_call_penalty: Cards drawn when a player gets down to one card
            without announcing it (0 disables the rule).
        rng: Random source used if a reshuffle is needed.

    Returns:
        The new room state.

    Raises:
        IllegalMoveError: If the play is not allowed.
        DeckExhaustedError: If a penalty draw finds no cards anywhere.
    """
    player = _require_turn(room, player_id)

    if room.pending_draw_count > 0:
        raise IllegalMoveError(f"Draw {room.pending_draw_count} cards first")

    card = player.find_card(card_id)
    if not card:
        raise IllegalMoveError("Card not in hand")

    if not is_legal(card, room.active_card, room.declared_color):
        raise IllegalMoveError(f"Cannot play {card} on {room.active_card}")

    if card.is_wild:
        if chosen_color is None:
            raise IllegalMoveError("Choose a color")
        if chosen_color == Color.WILD:
            raise IllegalMoveError("Choose red, blue, green or yellow")

    room = copy.deepcopy(room)
    player = room.get_player(player_id)
    player.hand = [c for c in player.hand if c.id != card_id]
    room.discard_pile.append(card)
    room.declared_color = chosen_color if card.is_wild else None
    _record(room, player_id, "play", card=card)

    if not player.hand:
        room.status = GameStatus.FINISHED
        room.winner_id = player_id
        room.pending_draw_count = 0
        logger.info(f"Room {room.id}: {player.name} played their last card and wins")
        return room

    if len(player.hand) == 1 and not called_last_card and missed_call_penalty > 0:
        player.hand.extend(_draw_cards(room, missed_call_penalty, rng))
        _record(room, player_id, "draw", count=missed_call_penalty)
        logger.debug(f"Room {room.id}: {player.name} missed the last-card call, drew {missed_call_penalty}")

    if card.value == Value.REVERSE:
        room.direction = room.direction.reversed()
        _advance(room)
    elif card.value == Value.SKIP:
        _advance(room, steps=2)
    elif card.value == Value.SKIP_EVERYONE:
        room.has_drawn = False
    elif card.penalty:
        room.pending_draw_count += card.penalty
        _advance(room)
    else:
        _advance(room)

    logger.debug(f"Room {room.id}: {player.name} played {card}, next {room.current_player_id}")
    return room


def draw_card(room: Room, player_id: str, rng: Optional[random.Random] = None) -> Room:
    """
    Draw for the current player.

    With a draw owed, the full amount is taken and the turn passes.
    Otherwise one card is taken; the turn stays if it can be played and
    passes if it cannot.

    Raises:
        IllegalMoveError: If it isn't the player's turn.
        DeckExhaustedError: If both piles run out.
    """
    _require_turn(room, player_id)

    room = copy.deepcopy(room)
    player = room.get_player(player_id)

    if room.pending_draw_count > 0:
        count = room.pending_draw_count
        player.hand.extend(_draw_cards(room, count, rng))
        room.pending_draw_count = 0
        _record(room, player_id, "draw", count=count)
        _advance(room)
        logger.debug(f"Room {room.id}: {player.name} drew {count} penalty cards")
        return room

    card = _draw_cards(room, 1, rng)[0]
    player.hand.append(card)
    _record(room, player_id, "draw", count=1)

    if is_legal(card, room.active_card, room.declared_color):
        room.has_drawn = True
    else:
        _advance(room)
    return room


def pass_turn(room: Room, player_id: str) -> Room:
    """
    End the turn after drawing without playing.

    Raises:
        IllegalMoveError: If the player hasn't drawn this turn.
    """
    _require_turn(room, player_id)
    if not room.has_drawn or room.pending_draw_count > 0:
        raise IllegalMoveError("Draw a card before passing")

    room = copy.deepcopy(room)
    _record(room, player_id, "pass")
    _advance(room)
    return room


def flip_deck(room: Room, rng: Optional[random.Random] = None) -> Room:
    """
    Switch a flip-mode room to the other side of the deck.

    Every hand and the active card are replaced by cards dealt from a
    freshly built deck of the new side. The old cards leave play.

    Raises:
        IllegalMoveError: Outside flip mode or outside a running game.
    """
    if room.mode != GameMode.FLIP:
        raise IllegalMoveError("Only flip mode has a second side")
    if room.status != GameStatus.PLAYING:
        raise IllegalMoveError("Game is not in progress")

    room = copy.deepcopy(room)
    side = Side.LIGHT if room.flip_side == Side.DARK else Side.DARK
    room.flip_side = side
    room.draw_pile = fresh_deck(room, side, rng)
    room.discard_pile = []
    for player in room.players:
        player.hand = _draw_cards(room, HAND_SIZE, rng)
    deal_opening_card(room, rng)

    room.pending_draw_count = 0
    room.declared_color = None
    room.has_drawn = False
    _record(room, room.current_player_id or "", "flip")
    logger.info(f"Room {room.id}: deck flipped to {side.value} side")
    return room


# =============================================================================
# Silent transition boundary
# =============================================================================

def apply_play_card(room: Room, player_id: str, card_id: str, **kwargs) -> Room:
    """play_card, returning ``room`` unchanged if the play is rejected."""
    try:
        return play_card(room, player_id, card_id, **kwargs)
    except IllegalMoveError as e:
        logger.debug(f"Room {room.id}: play rejected for {player_id}: {e.message}")
        return room


def apply_draw_card(room: Room, player_id: str, rng: Optional[random.Random] = None) -> Room:
    """draw_card, returning ``room`` unchanged if the draw is rejected."""
    try:
        return draw_card(room, player_id, rng)
    except IllegalMoveError as e:
        logger.debug(f"Room {room.id}: draw rejected for {player_id}: {e.message}")
        return room


def apply_pass_turn(room: Room, player_id: str) -> Room:
    """pass_turn, returning ``room`` unchanged if the pass is rejected."""
    try:
        return pass_turn(room, player_id)
    except IllegalMoveError as e:
        logger.debug(f"Room {room.id}: pass rejected for {player_id}: {e.message}")
        return room


def apply_flip_deck(room: Room, rng: Optional[random.Random] = None) -> Room:
    """flip_deck, returning ``room`` unchanged outside a running flip-mode game."""
    try:
        return flip_deck(room, rng)
    except IllegalMoveError:
        return room
