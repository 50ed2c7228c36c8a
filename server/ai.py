"""AI personalities and move selection for CPU players in UNO."""

import asyncio
import logging
import os
import random
from collections import Counter
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

from cards import SUITED_COLORS, Card, Color
from config import config
from errors import IllegalMoveError
from game import GameStatus, Player, Room, draw_card, legal_cards, pass_turn, play_card


# Debug logging configuration
# Set AI_DEBUG=1 environment variable to enable detailed AI decision logging
AI_DEBUG = os.environ.get("AI_DEBUG", "0") == "1"

ai_logger = logging.getLogger("uno.ai")
if AI_DEBUG:
    ai_logger.setLevel(logging.DEBUG)
    if not ai_logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(
            "%(asctime)s [AI] %(message)s", datefmt="%H:%M:%S"
        ))
        ai_logger.addHandler(handler)


def ai_log(message: str):
    """Log AI decision info when AI_DEBUG is enabled."""
    if AI_DEBUG:
        ai_logger.debug(message)


# =============================================================================
# Actions
# =============================================================================

class ActionType(str, Enum):
    PLAY = "play"
    DRAW = "draw"
    PASS = "pass"


@dataclass
class Action:
    """A move a seat wants to make."""

    type: ActionType
    player_id: str
    card_id: Optional[str] = None
    chosen_color: Optional[Color] = None
    called_last_card: bool = True

    def to_dict(self) -> dict:
        return {
            "type": self.type.value,
            "player_id": self.player_id,
            "card_id": self.card_id,
            "chosen_color": self.chosen_color.value if self.chosen_color else None,
            "called_last_card": self.called_last_card,
        }


def apply_action(
    room: Room,
    action: Action,
    rng: Optional[random.Random] = None,
    missed_call_penalty: int = 0,
) -> Room:
    """
    Run an action through the turn engine.

    Raises:
        IllegalMoveError: If the engine refuses the move.
        DeckExhaustedError: If a draw finds no cards anywhere.
    """
    if action.type == ActionType.PLAY:
        return play_card(
            room,
            action.player_id,
            action.card_id,
            chosen_color=action.chosen_color,
            called_last_card=action.called_last_card,
            missed_call_penalty=missed_call_penalty,
            rng=rng,
        )
    if action.type == ActionType.DRAW:
        return draw_card(room, action.player_id, rng)
    return pass_turn(room, action.player_id)


# =============================================================================
# Profiles
# =============================================================================

class Strategy(str, Enum):
    RANDOM = "random"          # any legal card, uniformly
    AGGRESSIVE = "aggressive"  # action cards first
    CAUTIOUS = "cautious"      # holds wilds back


@dataclass
class CPUProfile:
    """Pre-defined CPU player profile with personality traits."""
    name: str
    style: str  # Brief description shown to players
    strategy: Strategy
    # Chance of forgetting to call out a last card (0.0-1.0)
    forget_call_chance: float = 0.0

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "style": self.style,
        }


DEFAULT_PROFILE = CPUProfile(name="CPU", style="Anything Goes", strategy=Strategy.RANDOM)

CPU_PROFILES = [
    CPUProfile(name="Sofia", style="Anything Goes", strategy=Strategy.RANDOM, forget_call_chance=0.1),
    CPUProfile(name="Maya", style="Card Shark", strategy=Strategy.AGGRESSIVE, forget_call_chance=0.05),
    CPUProfile(name="Marcus", style="Wild Hoarder", strategy=Strategy.CAUTIOUS, forget_call_chance=0.02),
    CPUProfile(name="Kenji", style="Chaos Agent", strategy=Strategy.AGGRESSIVE, forget_call_chance=0.3),
    CPUProfile(name="River", style="Easygoing", strategy=Strategy.RANDOM, forget_call_chance=0.5),
    CPUProfile(name="Sage", style="Patient Planner", strategy=Strategy.CAUTIOUS, forget_call_chance=0.0),
]

# Track profiles per room (room_code -> set of used profile names)
_room_used_profiles: dict[str, set[str]] = {}
# Track cpu_id -> (room_code, profile) mapping
_cpu_profiles: dict[str, tuple[str, CPUProfile]] = {}


def assign_profile(
    cpu_id: str,
    room_code: str,
    profile_name: Optional[str] = None,
    exclude: Iterable[str] = (),
) -> Optional[CPUProfile]:
    """
    Assign a profile to a CPU player in a specific room.

    Args:
        cpu_id: Seat id of the CPU player.
        room_code: Room the seat belongs to.
        profile_name: Specific profile to use, or None for a random one.
        exclude: Names already taken at the table, compared case-insensitively.

    Returns:
        The assigned profile, or None if none is available.
    """
    taken = {name.lower() for name in _room_used_profiles.get(room_code, set()) | set(exclude)}
    available = [p for p in CPU_PROFILES if p.name.lower() not in taken]
    if profile_name:
        available = [p for p in available if p.name == profile_name]
    if not available:
        return None
    profile = random.choice(available)
    _room_used_profiles.setdefault(room_code, set()).add(profile.name)
    _cpu_profiles[cpu_id] = (room_code, profile)
    return profile


def release_profile(name: str, room_code: str):
    """Release a CPU profile back to the room's pool."""
    if room_code in _room_used_profiles:
        _room_used_profiles[room_code].discard(name)
        if not _room_used_profiles[room_code]:
            del _room_used_profiles[room_code]
    to_remove = [
        cpu_id for cpu_id, (rc, profile) in _cpu_profiles.items()
        if profile.name == name and rc == room_code
    ]
    for cpu_id in to_remove:
        del _cpu_profiles[cpu_id]


def cleanup_room_profiles(room_code: str):
    """Clean up all profile tracking for a room when it's deleted."""
    _room_used_profiles.pop(room_code, None)
    to_remove = [cpu_id for cpu_id, (rc, _) in _cpu_profiles.items() if rc == room_code]
    for cpu_id in to_remove:
        del _cpu_profiles[cpu_id]


def reset_all_profiles():
    """Reset all profile tracking (for cleanup)."""
    _room_used_profiles.clear()
    _cpu_profiles.clear()


def get_profile(cpu_id: str) -> Optional[CPUProfile]:
    """Get the profile for a CPU player."""
    entry = _cpu_profiles.get(cpu_id)
    return entry[1] if entry else None


def get_all_profiles() -> list[dict]:
    """Get all CPU profiles for display."""
    return [p.to_dict() for p in CPU_PROFILES]


# =============================================================================
# Move selection
# =============================================================================

def choose_color(hand: list[Card], rng: Optional[random.Random] = None) -> Color:
    """Color to name for a wild: the one held most, ties broken at random."""
    rng = rng or random.Random()
    counts = Counter(c.color for c in hand if not c.is_wild)
    if not counts:
        return rng.choice(SUITED_COLORS)
    best = max(counts.values())
    return rng.choice([color for color in SUITED_COLORS if counts.get(color) == best])


def select_card(legal: list[Card], strategy: Strategy, rng: random.Random) -> Card:
    """Pick one of the legal cards according to a strategy."""
    candidates = legal
    if strategy == Strategy.AGGRESSIVE:
        candidates = [c for c in legal if not c.is_number and not c.is_wild] or legal
    elif strategy == Strategy.CAUTIOUS:
        candidates = [c for c in legal if not c.is_wild] or legal
    return rng.choice(candidates)


def choose_action(
    room: Room,
    player_id: str,
    rng: Optional[random.Random] = None,
    profile: Optional[CPUProfile] = None,
) -> Action:
    """
    Pick a legal move for the seat whose turn it is.

    A seat that owes a draw draws. Otherwise one of its legal cards is
    played; with none, it draws, or passes if it already drew this turn.

    Raises:
        IllegalMoveError: If it is not this seat's turn.
    """
    if room.status != GameStatus.PLAYING or room.current_player_id != player_id:
        raise IllegalMoveError("Not this seat's turn")

    rng = rng or random.Random()
    profile = profile or DEFAULT_PROFILE
    player = room.get_player(player_id)

    if room.pending_draw_count > 0:
        ai_log(f"{player.name} owes {room.pending_draw_count} cards, drawing")
        return Action(ActionType.DRAW, player_id)

    legal = legal_cards(room, player_id)
    if legal:
        card = select_card(legal, profile.strategy, rng)
        remaining = [c for c in player.hand if c.id != card.id]
        chosen_color = choose_color(remaining, rng) if card.is_wild else None
        called = True
        if len(remaining) == 1:
            called = rng.random() >= profile.forget_call_chance
        ai_log(
            f"{player.name} ({profile.strategy.value}) plays {card} "
            f"from {len(legal)} options"
            + (f", names {chosen_color.value}" if chosen_color else "")
            + ("" if called else ", forgot to call last card")
        )
        return Action(ActionType.PLAY, player_id, card.id, chosen_color, called)

    if room.has_drawn:
        ai_log(f"{player.name} has nothing to play after drawing, passing")
        return Action(ActionType.PASS, player_id)

    ai_log(f"{player.name} has nothing to play, drawing")
    return Action(ActionType.DRAW, player_id)


async def process_cpu_turn(
    room: Room,
    cpu_player: Player,
    rng: Optional[random.Random] = None,
) -> tuple[Room, Action]:
    """
    Think for a moment, then take one action for a CPU seat.

    Works on the snapshot it was given; the caller decides whether the
    result may still be applied.

    Returns:
        The new room state and the action taken.
    """
    delay = config.cpu.turn_delay
    if delay > 0:
        await asyncio.sleep(random.uniform(delay * 0.75, delay * 1.25))

    action = choose_action(room, cpu_player.id, rng, get_profile(cpu_player.id))
    new_room = apply_action(room, action, rng, missed_call_penalty=config.rules.missed_call_penalty)
    return new_room, action
