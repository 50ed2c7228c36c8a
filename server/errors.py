"""
Rejections raised by the turn engine and the room lifecycle.

Every error except DeckExhaustedError is a refused transition: the room
is left exactly as it was and the caller reports ``message`` to whoever
asked. DeckExhaustedError ends the affected room's game.
"""

from typing import Optional


class GameError(Exception):
    """Base class for every game rejection."""

    message = "Action not allowed"

    def __init__(self, message: Optional[str] = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class IllegalMoveError(GameError):
    """Card not playable, not your turn, draw owed, or unknown player/card."""

    message = "Illegal move"


# --- Join-time -------------------------------------------------------------

class RoomFullError(GameError):
    message = "Room is full"


class GameAlreadyStartedError(GameError):
    message = "Game has already started"


class DuplicateNameError(GameError):
    message = "Player name already taken"


class InvalidNameError(GameError):
    message = "Invalid player name"


# --- Start-time ------------------------------------------------------------

class NotHostError(GameError):
    message = "Only the host can start the game"


class NotEnoughPlayersError(GameError):
    message = "Not enough players to start"


class PlayersNotReadyError(GameError):
    message = "All players must be ready to start"


# --- Piles -----------------------------------------------------------------

class EmptyPileError(GameError):
    message = "Pile is empty"


class DeckExhaustedError(GameError):
    """Draw pile and discard pile are both used up. Fatal for the room."""

    message = "No cards left to draw"
