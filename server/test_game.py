"""
Test suite for the UNO turn engine.

Verifies the engine against the classic rules:
- Legality (color match, value match, wild)
- Turn advancement with reverse and skip
- Forced draws from draw-two / wild draw four
- Win detection
- Reshuffling the discard pile
- Rejected moves leave the room untouched
- Card conservation across whole games

Run with: pytest test_game.py -v
"""

import copy
import random

import pytest

from ai import apply_action, choose_action
from cards import Card, Color, GameMode, Side, Value
from constants import HISTORY_LENGTH
from errors import DeckExhaustedError, IllegalMoveError
from game import (
    Direction,
    GameStatus,
    Player,
    Room,
    apply_draw_card,
    apply_flip_deck,
    apply_pass_turn,
    apply_play_card,
    draw_card,
    flip_deck,
    is_legal,
    legal_cards,
    next_seat_index,
    pass_turn,
    play_card,
)
from room import create_room, join_room, start_game, toggle_ready


# =============================================================================
# Helpers
# =============================================================================

def card(card_id: str, color: str, value: str) -> Card:
    return Card(card_id, Color(color), Value(value))


def filler(n: int, prefix: str = "f") -> list[Card]:
    """Yellow number cards for padding piles."""
    return [card(f"{prefix}{i}", "yellow", str(i % 10)) for i in range(n)]


def make_room(
    hands: list[list[Card]],
    active: Card,
    draw_pile=None,
    current: int = 0,
    direction: Direction = Direction.FORWARD,
    mode: GameMode = GameMode.CLASSIC,
    status: GameStatus = GameStatus.PLAYING,
) -> Room:
    """Build a room in a known position."""
    players = [
        Player(id=f"p{i}", name=f"Player {i}", hand=list(hand), is_ready=True)
        for i, hand in enumerate(hands)
    ]
    players[0].is_host = True
    return Room(
        id="TEST01",
        mode=mode,
        players=players,
        current_player_id=players[current].id,
        direction=direction,
        status=status,
        draw_pile=filler(10) if draw_pile is None else list(draw_pile),
        discard_pile=[active],
        flip_side=Side.LIGHT if mode == GameMode.FLIP else None,
    )


def three_players(p0: list[Card], **kwargs) -> Room:
    return make_room(
        [p0, [card("b1", "blue", "1"), card("b2", "blue", "2")],
         [card("g1", "green", "1"), card("g2", "green", "2")]],
        kwargs.pop("active", card("top", "red", "7")),
        **kwargs,
    )


RED_7 = card("top", "red", "7")


# =============================================================================
# Legality
# =============================================================================

class TestIsLegal:

    def test_color_match(self):
        assert is_legal(card("a", "red", "3"), RED_7)

    def test_value_match(self):
        assert is_legal(card("a", "blue", "7"), RED_7)

    def test_wild_always_legal(self):
        assert is_legal(card("a", "wild", "wild"), RED_7)
        assert is_legal(card("b", "wild", "wild-draw-four"), RED_7)

    def test_no_match_illegal(self):
        assert not is_legal(card("a", "blue", "3"), RED_7)

    def test_action_value_match(self):
        assert is_legal(card("a", "blue", "skip"), card("t", "red", "skip"))

    def test_declared_color_on_wild(self):
        wild = card("w", "wild", "wild")
        assert is_legal(card("a", "green", "3"), wild, Color.GREEN)
        assert not is_legal(card("b", "red", "3"), wild, Color.GREEN)

    def test_wild_without_declared_color_matches_only_wilds(self):
        wild = card("w", "wild", "wild")
        assert not is_legal(card("a", "green", "3"), wild)
        assert is_legal(card("b", "wild", "wild-draw-four"), wild)

    def test_legal_cards_only_for_current_player(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        assert [c.id for c in legal_cards(room, "p0")] == ["r3"]
        assert legal_cards(room, "p1") == []


# =============================================================================
# Turn advancement
# =============================================================================

class TestTurnAdvancement:

    def test_next_seat_wraps_forward(self):
        assert next_seat_index(2, 3, Direction.FORWARD) == 0

    def test_next_seat_wraps_backward(self):
        assert next_seat_index(0, 3, Direction.BACKWARD) == 2

    def test_next_seat_multiple_steps(self):
        assert next_seat_index(2, 3, Direction.FORWARD, steps=2) == 1

    def test_number_card_advances_once(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "r3")

        assert room.current_player_id == "p1"
        assert room.active_card.id == "r3"
        assert [c.id for c in room.get_player("p0").hand] == ["b9"]

    def test_reverse_in_three_players(self):
        room = three_players([card("rr", "red", "reverse"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "rr")

        assert room.direction == Direction.BACKWARD
        assert room.current_player_id == "p2"

    def test_reverse_keeps_going_backward(self):
        room = three_players([card("rr", "red", "reverse"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "rr")
        # p2 holds nothing red and draws an unplayable yellow 9
        room = draw_card(room, "p2")

        assert room.current_player_id == "p1"

    def test_reverse_twice_restores_direction(self):
        room = three_players([card("rr", "red", "reverse"), card("b9", "blue", "9")])
        room.players[2].hand.append(card("gr", "green", "reverse"))
        room = play_card(room, "p0", "rr")
        room = play_card(room, "p2", "gr")

        assert room.direction == Direction.FORWARD
        assert room.current_player_id == "p0"

    def test_skip_in_three_players(self):
        room = three_players([card("rs", "red", "skip"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "rs")
        assert room.current_player_id == "p2"

    def test_skip_in_two_players_returns_to_player(self):
        room = make_room(
            [[card("rs", "red", "skip"), card("b9", "blue", "9")],
             [card("g1", "green", "1"), card("g2", "green", "2")]],
            RED_7,
        )
        room = play_card(room, "p0", "rs")
        assert room.current_player_id == "p0"

    def test_backward_direction_wraps(self):
        room = three_players(
            [card("r3", "red", "3"), card("b9", "blue", "9")],
            direction=Direction.BACKWARD,
        )
        room = play_card(room, "p0", "r3")
        assert room.current_player_id == "p2"


# =============================================================================
# Forced draws
# =============================================================================

class TestDrawEffects:

    def test_draw_two_sets_pending_for_next_player(self):
        room = three_players([card("d2", "red", "draw-two"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "d2")

        assert room.pending_draw_count == 2
        assert room.current_player_id == "p1"
        assert legal_cards(room, "p1") == []

    def test_recipient_cannot_play_before_drawing(self):
        room = three_players([card("d2", "red", "draw-two"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "d2")
        room.players[1].hand.append(card("r5", "red", "5"))

        with pytest.raises(IllegalMoveError):
            play_card(room, "p1", "r5")

    def test_draw_two_no_stacking(self):
        room = three_players([card("d2", "red", "draw-two"), card("b9", "blue", "9")])
        room.players[1].hand.append(card("bd2", "blue", "draw-two"))
        room = play_card(room, "p0", "d2")

        with pytest.raises(IllegalMoveError):
            play_card(room, "p1", "bd2")

    def test_recipient_draws_all_and_turn_passes(self):
        room = three_players([card("d2", "red", "draw-two"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "d2")
        room = draw_card(room, "p1")

        assert len(room.get_player("p1").hand) == 4
        assert room.pending_draw_count == 0
        assert room.current_player_id == "p2"

    def test_wild_draw_four_with_declared_color(self):
        room = three_players([card("w4", "wild", "wild-draw-four"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "w4", chosen_color=Color.BLUE)

        assert room.pending_draw_count == 4
        assert room.declared_color == Color.BLUE
        assert room.current_player_id == "p1"

        room = draw_card(room, "p1")
        assert len(room.get_player("p1").hand) == 6
        assert room.current_player_id == "p2"
        assert room.declared_color == Color.BLUE

    def test_declared_color_cleared_by_next_play(self):
        room = three_players([card("w", "wild", "wild"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "w", chosen_color=Color.BLUE)
        room = play_card(room, "p1", "b1")
        assert room.declared_color is None

    def test_wild_cannot_declare_wild(self):
        room = three_players([card("w", "wild", "wild"), card("b9", "blue", "9")])
        with pytest.raises(IllegalMoveError):
            play_card(room, "p0", "w", chosen_color=Color.WILD)

    def test_wild_requires_color(self):
        room = three_players([card("w", "wild", "wild"), card("b9", "blue", "9")])
        with pytest.raises(IllegalMoveError, match="Choose a color"):
            play_card(room, "p0", "w")
        assert apply_play_card(room, "p0", "w") is room

    def test_color_ignored_for_plain_card(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "r3", chosen_color=Color.WILD)
        assert room.declared_color is None
        assert room.active_card.id == "r3"

    def test_draw_five_on_dark_side(self):
        room = three_players(
            [card("d5", "red", "draw-five"), card("b9", "blue", "9")],
            mode=GameMode.FLIP,
        )
        room = play_card(room, "p0", "d5")
        assert room.pending_draw_count == 5
        assert room.current_player_id == "p1"

    def test_skip_everyone_keeps_turn(self):
        room = three_players(
            [card("se", "red", "skip-everyone"), card("b9", "blue", "9")],
            mode=GameMode.FLIP,
        )
        room = play_card(room, "p0", "se")
        assert room.current_player_id == "p0"
        assert room.pending_draw_count == 0


# =============================================================================
# Win detection
# =============================================================================

class TestWin:

    def test_last_card_wins(self):
        room = three_players([card("r3", "red", "3")])
        room = play_card(room, "p0", "r3")

        assert room.status == GameStatus.FINISHED
        assert room.winner_id == "p0"

    def test_winning_card_has_no_effect(self):
        room = three_players([card("d2", "red", "draw-two")])
        room = play_card(room, "p0", "d2")

        assert room.winner_id == "p0"
        assert room.pending_draw_count == 0
        assert room.current_player_id == "p0"

    def test_winning_reverse_keeps_direction(self):
        room = three_players([card("rr", "red", "reverse")])
        room = play_card(room, "p0", "rr")
        assert room.direction == Direction.FORWARD

    def test_no_moves_after_finish(self):
        room = three_players([card("r3", "red", "3")])
        room = play_card(room, "p0", "r3")

        with pytest.raises(IllegalMoveError):
            draw_card(room, room.current_player_id)
        assert apply_draw_card(room, "p1") is room


# =============================================================================
# Drawing without a penalty
# =============================================================================

class TestDrawCard:

    def test_playable_draw_keeps_turn(self):
        room = three_players(
            [card("b9", "blue", "9"), card("b8", "blue", "8")],
            draw_pile=[card("x", "blue", "3"), card("r5", "red", "5")],
        )
        room = draw_card(room, "p0")

        assert room.current_player_id == "p0"
        assert room.has_drawn
        assert room.get_player("p0").find_card("r5")

    def test_playable_draw_is_not_played_automatically(self):
        room = three_players(
            [card("b9", "blue", "9"), card("b8", "blue", "8")],
            draw_pile=[card("r5", "red", "5")],
        )
        room = draw_card(room, "p0")
        assert room.active_card.id == "top"

    def test_unplayable_draw_passes_turn(self):
        room = three_players(
            [card("b9", "blue", "9"), card("b8", "blue", "8")],
            draw_pile=[card("r5", "red", "5"), card("b3", "blue", "3")],
        )
        room = draw_card(room, "p0")

        assert room.current_player_id == "p1"
        assert not room.has_drawn
        assert len(room.get_player("p0").hand) == 3

    def test_drawing_allowed_with_playable_cards(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        room = draw_card(room, "p0")
        assert len(room.get_player("p0").hand) == 3

    def test_pass_after_drawing(self):
        room = three_players(
            [card("b9", "blue", "9"), card("b8", "blue", "8")],
            draw_pile=[card("r5", "red", "5")],
        )
        room = draw_card(room, "p0")
        room = pass_turn(room, "p0")

        assert room.current_player_id == "p1"
        assert room.history[-1].action == "pass"

    def test_pass_without_drawing_rejected(self):
        room = three_players([card("b9", "blue", "9"), card("b8", "blue", "8")])
        with pytest.raises(IllegalMoveError):
            pass_turn(room, "p0")

    def test_history_is_bounded(self):
        room = make_room(
            [[card("b9", "blue", "9")], [card("b8", "blue", "8")]],
            RED_7,
            draw_pile=filler(60),
        )
        for _ in range(HISTORY_LENGTH + 5):
            room = draw_card(room, room.current_player_id)
        assert len(room.history) == HISTORY_LENGTH


# =============================================================================
# Reshuffle
# =============================================================================

class TestReshuffle:

    def test_empty_draw_pile_reclaims_discards(self):
        room = three_players([card("b9", "blue", "9"), card("b8", "blue", "8")], draw_pile=[])
        room.discard_pile = [card("y1", "yellow", "1"), card("g2", "green", "2"), RED_7]
        total = room.total_cards()

        room = draw_card(room, "p0", rng=random.Random(1))

        assert [c.id for c in room.discard_pile] == ["top"]
        assert len(room.draw_pile) == 1
        assert len(room.get_player("p0").hand) == 3
        assert room.total_cards() == total

    def test_penalty_draw_spans_reshuffle(self):
        room = three_players(
            [card("w4", "wild", "wild-draw-four"), card("b9", "blue", "9")],
            draw_pile=[card("y0", "yellow", "0")],
        )
        room.discard_pile = filler(5, "old") + [RED_7]
        total = room.total_cards()

        room = play_card(room, "p0", "w4", chosen_color=Color.RED)
        room = draw_card(room, "p1", rng=random.Random(2))

        assert len(room.get_player("p1").hand) == 6
        assert room.active_card.id == "w4"
        assert room.total_cards() == total

    def test_both_piles_exhausted(self):
        room = three_players([card("b9", "blue", "9"), card("b8", "blue", "8")], draw_pile=[])

        with pytest.raises(DeckExhaustedError):
            draw_card(room, "p0")
        with pytest.raises(DeckExhaustedError):
            apply_draw_card(room, "p0")


# =============================================================================
# Rejected moves
# =============================================================================

class TestRejectedMoves:
    """A rejected move returns the very same room, unchanged."""

    def assert_unchanged(self, room: Room, result: Room, snapshot: Room):
        assert result is room
        assert result == snapshot

    def test_not_your_turn(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        room.players[1].hand.append(card("r4", "red", "4"))
        snapshot = copy.deepcopy(room)
        self.assert_unchanged(room, apply_play_card(room, "p1", "r4"), snapshot)

    def test_card_not_in_hand(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        snapshot = copy.deepcopy(room)
        self.assert_unchanged(room, apply_play_card(room, "p0", "b1"), snapshot)

    def test_illegal_card(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        snapshot = copy.deepcopy(room)
        self.assert_unchanged(room, apply_play_card(room, "p0", "b9"), snapshot)

    def test_game_not_started(self):
        room = three_players(
            [card("r3", "red", "3"), card("b9", "blue", "9")],
            status=GameStatus.WAITING,
        )
        snapshot = copy.deepcopy(room)
        self.assert_unchanged(room, apply_play_card(room, "p0", "r3"), snapshot)

    def test_pending_draw_unresolved(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        room.pending_draw_count = 2
        snapshot = copy.deepcopy(room)
        self.assert_unchanged(room, apply_play_card(room, "p0", "r3"), snapshot)

    def test_draw_out_of_turn(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        snapshot = copy.deepcopy(room)
        self.assert_unchanged(room, apply_draw_card(room, "p2"), snapshot)

    def test_pass_without_draw(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        snapshot = copy.deepcopy(room)
        self.assert_unchanged(room, apply_pass_turn(room, "p0"), snapshot)

    def test_unknown_player(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        snapshot = copy.deepcopy(room)
        self.assert_unchanged(room, apply_play_card(room, "ghost", "r3"), snapshot)

    def test_successful_play_leaves_input_untouched(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        snapshot = copy.deepcopy(room)
        result = apply_play_card(room, "p0", "r3")

        assert result is not room
        assert room == snapshot


# =============================================================================
# Last card call
# =============================================================================

class TestLastCardCall:

    def test_missed_call_draws_penalty(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "r3", called_last_card=False, missed_call_penalty=2)

        assert len(room.get_player("p0").hand) == 3
        assert room.current_player_id == "p1"

    def test_called_last_card_no_penalty(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "r3", called_last_card=True, missed_call_penalty=2)
        assert len(room.get_player("p0").hand) == 1

    def test_penalty_disabled_by_default(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        room = play_card(room, "p0", "r3", called_last_card=False)
        assert len(room.get_player("p0").hand) == 1


# =============================================================================
# Flip mode
# =============================================================================

class TestFlipDeck:

    def test_noop_outside_flip_mode(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        assert apply_flip_deck(room) is room
        with pytest.raises(IllegalMoveError):
            flip_deck(room)

    def test_noop_before_game_starts(self):
        room = three_players(
            [card("r3", "red", "3"), card("b9", "blue", "9")],
            mode=GameMode.FLIP,
            status=GameStatus.WAITING,
        )
        assert apply_flip_deck(room) is room

    def test_flip_regenerates_hands_and_active_card(self):
        room = three_players(
            [card("r3", "red", "3"), card("b9", "blue", "9")],
            mode=GameMode.FLIP,
        )
        old_ids = {c.id for p in room.players for c in p.hand} | {"top"}
        room.pending_draw_count = 2

        room = flip_deck(room, random.Random(5))

        assert room.flip_side == Side.DARK
        assert room.pending_draw_count == 0
        assert not room.active_card.is_wild
        assert room.total_cards() == 108
        for player in room.players:
            assert len(player.hand) == 7
            assert not {c.id for c in player.hand} & old_ids
        values = {c.value for p in room.players for c in p.hand} | {c.value for c in room.draw_pile}
        assert Value.DRAW_TWO not in values

    def test_flip_back_keeps_ids_unique(self):
        room = three_players(
            [card("r3", "red", "3"), card("b9", "blue", "9")],
            mode=GameMode.FLIP,
        )
        dark = flip_deck(room, random.Random(5))
        light = flip_deck(dark, random.Random(6))

        dark_ids = {c.id for p in dark.players for c in p.hand} | {c.id for c in dark.draw_pile}
        light_ids = {c.id for p in light.players for c in p.hand} | {c.id for c in light.draw_pile}
        assert light.flip_side == Side.LIGHT
        assert not dark_ids & light_ids


# =============================================================================
# Conservation across whole games
# =============================================================================

def started_room(num_players: int, seed: int) -> Room:
    rng = random.Random(seed)
    room = create_room("Host", room_id="CONSRV", host_id="p0", rng=rng)
    room = toggle_ready(room, "p0")
    for i in range(1, num_players):
        room = join_room(room, f"Player {i}", f"p{i}", is_cpu=True)
    return start_game(room, "p0")


class TestConservation:

    @pytest.mark.parametrize("seed", [1, 2, 3, 4, 5])
    def test_total_cards_constant(self, seed):
        rng = random.Random(seed)
        room = started_room(4, seed)
        assert room.total_cards() == 108

        for _ in range(500):
            if room.status != GameStatus.PLAYING:
                break
            action = choose_action(room, room.current_player_id, rng)
            try:
                room = apply_action(room, action, rng)
            except DeckExhaustedError:
                break

            assert room.total_cards() == 108
            ids = [c.id for c in room.draw_pile + room.discard_pile]
            ids += [c.id for p in room.players for c in p.hand]
            assert len(set(ids)) == 108
            assert room.discard_pile
            assert room.get_player(room.current_player_id)
            assert room.pending_draw_count >= 0


# =============================================================================
# Client view
# =============================================================================

class TestGetState:

    def test_only_own_hand_revealed(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        state = room.get_state("p1")
        players = {p["id"]: p for p in state["players"]}

        assert "hand" in players["p1"]
        assert "hand" not in players["p0"]
        assert players["p0"]["card_count"] == 2

    def test_playable_ids_for_current_player(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        assert room.get_state("p0")["playable_card_ids"] == ["r3"]
        assert room.get_state("p1")["playable_card_ids"] == []

    def test_state_fields(self):
        room = three_players([card("r3", "red", "3"), card("b9", "blue", "9")])
        state = room.get_state(None)

        assert state["status"] == "playing"
        assert state["direction"] == "forward"
        assert state["active_card"] == {"id": "top", "color": "red", "value": "7"}
        assert state["draw_pile_count"] == 10
        assert state["pending_draw_count"] == 0
