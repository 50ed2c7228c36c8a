"""
Deck composition and table constants for UNO.

This module is the single source of truth for how many copies of each
card go into a deck and how many cards a draw card forces.

Table limits (seats, hand size) come from config.py so they can be
customized via environment variables. See config.py for details.

Standard deck (per side):
    - Each of the four colors: one 0, two each of 1-9,
      two each of the three colored action cards
    - Four wild cards and four wild draw four cards
    - 108 cards in total
"""

import string

from config import config


# =============================================================================
# Deck Composition
# =============================================================================

COLOR_NAMES: tuple[str, ...] = ("red", "blue", "green", "yellow")

ZERO_COPIES = 1
NUMBER_COPIES = 2          # copies of each of 1-9 per color
ACTION_COPIES = 2          # copies of each colored action card per color
WILD_COPIES = 4            # wild and wild draw four, each

# Cards forced on the next player, by card value
DRAW_PENALTIES: dict[str, int] = {
    "draw-two": 2,
    "wild-draw-four": 4,
    "draw-five": 5,
}

DECK_SIZE = (
    len(COLOR_NAMES) * (ZERO_COPIES + 9 * NUMBER_COPIES + 3 * ACTION_COPIES)
    + 2 * WILD_COPIES
)


# =============================================================================
# Table Constants
# =============================================================================

MIN_PLAYERS = config.rules.min_players
MAX_PLAYERS = config.rules.max_players
HAND_SIZE = config.rules.hand_size
HISTORY_LENGTH = config.rules.history_length

ROOM_CODE_LENGTH = config.ROOM_CODE_LENGTH
ROOM_CODE_ALPHABET = string.ascii_uppercase + string.digits
MAX_NAME_LENGTH = config.MAX_NAME_LENGTH
