"""
Card and deck model for UNO.

Cards are immutable values. A deck is a plain list of cards whose last
element is the top of the pile. Nothing in here touches room state; the
turn engine in game.py decides where cards go.

Deck Layout (per side, 108 cards):
    - red, blue, green, yellow: one 0, two each of 1-9,
      two each of the three colored action cards
    - four wild, four wild draw four

    Light side actions: skip, reverse, draw-two
    Dark side actions (flip mode): skip-everyone, reverse, draw-five
"""

import random
import uuid
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from constants import (
    ACTION_COPIES,
    COLOR_NAMES,
    DRAW_PENALTIES,
    NUMBER_COPIES,
    WILD_COPIES,
    ZERO_COPIES,
)
from errors import EmptyPileError


class GameMode(str, Enum):
    """
    Rule sets a room can be created with.

    Only CLASSIC and FLIP change how the engine resolves a move. DOUBLES,
    SPEED and NO_MERCY are carried as labels and play by classic rules.
    """

    CLASSIC = "classic"
    FLIP = "flip"
    DOUBLES = "doubles"
    SPEED = "speed"
    NO_MERCY = "no-mercy"


class Side(str, Enum):
    """Which face of a flip-mode deck is in play."""

    LIGHT = "light"
    DARK = "dark"


class Color(str, Enum):
    RED = "red"
    BLUE = "blue"
    GREEN = "green"
    YELLOW = "yellow"
    WILD = "wild"


class Value(str, Enum):
    """Card faces. Numbers are stored as their digit string."""

    ZERO = "0"
    ONE = "1"
    TWO = "2"
    THREE = "3"
    FOUR = "4"
    FIVE = "5"
    SIX = "6"
    SEVEN = "7"
    EIGHT = "8"
    NINE = "9"
    SKIP = "skip"
    REVERSE = "reverse"
    DRAW_TWO = "draw-two"
    WILD = "wild"
    WILD_DRAW_FOUR = "wild-draw-four"
    # Dark side of a flip deck
    DRAW_FIVE = "draw-five"
    SKIP_EVERYONE = "skip-everyone"


NUMBER_VALUES: tuple[Value, ...] = tuple(v for v in Value if v.value.isdigit())
SUITED_COLORS: tuple[Color, ...] = tuple(Color(name) for name in COLOR_NAMES)

SIDE_ACTIONS: dict[Side, tuple[Value, ...]] = {
    Side.LIGHT: (Value.SKIP, Value.REVERSE, Value.DRAW_TWO),
    Side.DARK: (Value.SKIP_EVERYONE, Value.REVERSE, Value.DRAW_FIVE),
}


@dataclass(frozen=True)
class Card:
    """
    A single UNO card.

    Attributes:
        id: Identifier unique for the lifetime of the room holding the card.
        color: One of the four suits, or WILD.
        value: Number or action face.
    """

    id: str
    color: Color
    value: Value

    @property
    def is_wild(self) -> bool:
        return self.color == Color.WILD

    @property
    def is_number(self) -> bool:
        return self.value in NUMBER_VALUES

    @property
    def penalty(self) -> int:
        """Cards this card forces on the next player (0 for most cards)."""
        return DRAW_PENALTIES.get(self.value.value, 0)

    def to_dict(self) -> dict:
        """Convert card to dictionary for JSON serialization."""
        return {
            "id": self.id,
            "color": self.color.value,
            "value": self.value.value,
        }

    def __str__(self) -> str:
        if self.is_wild:
            return self.value.value
        return f"{self.color.value} {self.value.value}"


def shuffle(cards: list[Card], rng: Optional[random.Random] = None) -> list[Card]:
    """
    Shuffle cards in place and return the same list.

    random.Random.shuffle is a Fisher-Yates shuffle, so every ordering
    is equally likely.
    """
    (rng or random.Random()).shuffle(cards)
    return cards


def build_deck(
    mode: GameMode = GameMode.CLASSIC,
    side: Side = Side.LIGHT,
    rng: Optional[random.Random] = None,
    tag: Optional[str] = None,
) -> list[Card]:
    """
    Build a fresh, shuffled 108-card deck.

    Args:
        mode: Room mode. Only flip mode has a dark side.
        side: Which face of the deck to build.
        rng: Random source for the shuffle (a fresh one if omitted).
        tag: Prefix for card ids. Must differ between decks built for
             the same room; a random tag is used if omitted.

    Returns:
        The shuffled deck, top card last.

    Raises:
        ValueError: If a dark side is requested outside flip mode.
    """
    if side == Side.DARK and mode != GameMode.FLIP:
        raise ValueError(f"{mode.value} mode has no dark side")

    tag = tag or uuid.uuid4().hex[:8]
    faces: list[tuple[Color, Value]] = []

    for color in SUITED_COLORS:
        faces.extend([(color, Value.ZERO)] * ZERO_COPIES)
        for value in NUMBER_VALUES[1:]:
            faces.extend([(color, value)] * NUMBER_COPIES)
        for value in SIDE_ACTIONS[side]:
            faces.extend([(color, value)] * ACTION_COPIES)

    faces.extend([(Color.WILD, Value.WILD)] * WILD_COPIES)
    faces.extend([(Color.WILD, Value.WILD_DRAW_FOUR)] * WILD_COPIES)

    deck = [
        Card(id=f"{tag}-{i:03d}", color=color, value=value)
        for i, (color, value) in enumerate(faces)
    ]
    return shuffle(deck, rng)


def draw_one(pile: list[Card]) -> tuple[Card, list[Card]]:
    """
    Take the top card off a pile.

    Args:
        pile: Cards with the top card last. Not modified.

    Returns:
        The drawn card and the remaining pile.

    Raises:
        EmptyPileError: If the pile has no cards.
    """
    if not pile:
        raise EmptyPileError()
    return pile[-1], pile[:-1]
