"""
UNO CPU Simulation Runner

Plays CPU-only games straight through the turn engine, the same code the
server runs. No server/websocket needed.

Usage:
    python simulate.py [num_games] [num_players]
    python simulate.py detail [num_players]

Examples:
    python simulate.py 10        # Run 10 games with 4 players each
    python simulate.py 50 2      # Run 50 games with 2 players each
    python simulate.py detail 3  # Print one 3-player game move by move
"""

import random
import sys
from typing import Optional

from ai import CPU_PROFILES, ActionType, CPUProfile, apply_action, choose_action
from errors import DeckExhaustedError
from game import GameStatus, Room, legal_cards
from room import abort_game, create_room, join_room, start_game, toggle_ready

MAX_TURNS = 2000


class SimulationStats:
    """Track simulation statistics."""

    def __init__(self):
        self.games_played = 0
        self.games_aborted = 0
        self.games_unfinished = 0
        self.total_turns = 0
        self.player_wins: dict[str, int] = {}
        self.decisions: dict[str, dict] = {}  # player -> {action: count}
        self.conservation_violations = 0
        self.illegal_plays = 0

    def record_game(self, room: Room, turns: int):
        self.games_played += 1
        self.total_turns += turns
        winner = room.get_player(room.winner_id) if room.winner_id else None
        if winner:
            self.player_wins[winner.name] = self.player_wins.get(winner.name, 0) + 1
        elif room.status == GameStatus.FINISHED:
            self.games_aborted += 1
        else:
            self.games_unfinished += 1

    def record_turn(self, player_name: str, action: str):
        actions = self.decisions.setdefault(player_name, {})
        actions[action] = actions.get(action, 0) + 1

    def report(self) -> str:
        lines = [
            "SIMULATION RESULTS",
            "=" * 50,
            f"Games played: {self.games_played}",
            f"Aborted (no cards left): {self.games_aborted}",
            f"Unfinished after {MAX_TURNS} turns: {self.games_unfinished}",
        ]
        if self.games_played:
            lines.append(f"Average turns per game: {self.total_turns / self.games_played:.1f}")
        lines.append(f"Conservation violations: {self.conservation_violations}")
        lines.append(f"Illegal plays: {self.illegal_plays}")

        lines.append("")
        lines.append("WINS BY PLAYER")
        lines.append("-" * 50)
        for name, wins in sorted(self.player_wins.items(), key=lambda x: -x[1]):
            rate = wins / self.games_played * 100 if self.games_played else 0
            lines.append(f"  {name}: {wins} wins ({rate:.1f}%)")

        lines.append("")
        lines.append("ACTIONS BY PLAYER")
        lines.append("-" * 50)
        for name, actions in sorted(self.decisions.items()):
            summary = ", ".join(f"{a}={n}" for a, n in sorted(actions.items()))
            lines.append(f"  {name}: {summary}")

        return "\n".join(lines)


def create_cpu_room(
    num_players: int,
    rng: random.Random,
) -> tuple[Room, dict[str, CPUProfile]]:
    """Set up a started room whose every seat is a CPU profile."""
    chosen = rng.sample(CPU_PROFILES, num_players)
    room = create_room(chosen[0].name, host_id="cpu_0", rng=rng)
    room = toggle_ready(room, "cpu_0")
    profiles = {"cpu_0": chosen[0]}
    for i, profile in enumerate(chosen[1:], start=1):
        cpu_id = f"cpu_{i}"
        room = join_room(room, profile.name, cpu_id, is_cpu=True)
        profiles[cpu_id] = profile
    return start_game(room, "cpu_0"), profiles


def run_game(
    num_players: int = 4,
    stats: Optional[SimulationStats] = None,
    rng: Optional[random.Random] = None,
    verbose: bool = False,
) -> Room:
    """
    Play one game to the end (or until MAX_TURNS).

    Returns:
        The final room state.
    """
    rng = rng or random.Random()
    stats = stats or SimulationStats()
    room, profiles = create_cpu_room(num_players, rng)
    total = room.total_cards()

    turns = 0
    while room.status == GameStatus.PLAYING and turns < MAX_TURNS:
        current = room.current_player()
        action = choose_action(room, current.id, rng, profiles[current.id])

        if action.type == ActionType.PLAY:
            card = current.find_card(action.card_id)
            if card not in legal_cards(room, current.id):
                stats.illegal_plays += 1

        try:
            room = apply_action(room, action, rng)
        except DeckExhaustedError:
            room = abort_game(room)

        if room.total_cards() != total:
            stats.conservation_violations += 1

        stats.record_turn(current.name, action.type.value)
        turns += 1

        if verbose:
            describe = action.type.value
            if action.type == ActionType.PLAY:
                played = room.active_card
                describe = f"plays {played}"
                if action.chosen_color:
                    describe += f" (names {action.chosen_color.value})"
            print(
                f"  Turn {turns}: {current.name} - {describe} "
                f"[hand {len(room.get_player(current.id).hand)}, "
                f"pending {room.pending_draw_count}, {room.direction.value}]"
            )

    stats.record_game(room, turns)
    return room


def run_simulation(num_games: int = 10, num_players: int = 4, seed: Optional[int] = None) -> SimulationStats:
    """Run many games and print a summary."""
    rng = random.Random(seed)
    stats = SimulationStats()

    print(f"\nRunning {num_games} games with {num_players} players each...")
    print("=" * 50)

    for i in range(num_games):
        room = run_game(num_players, stats, rng)
        winner = room.get_player(room.winner_id) if room.winner_id else None
        print(f"Game {i + 1}/{num_games}: winner {winner.name if winner else 'none'}")

    print("\n")
    print(stats.report())
    return stats


def run_detailed_game(num_players: int = 4, seed: Optional[int] = None) -> Room:
    """Play and print one game move by move."""
    rng = random.Random(seed)

    print(f"\nRunning detailed game with {num_players} players...")
    print("=" * 50)

    room = run_game(num_players, SimulationStats(), rng, verbose=True)

    print("\n" + "=" * 50)
    print("FINAL HANDS")
    print("=" * 50)
    for player in room.players:
        print(f"  {player.name}: {', '.join(str(c) for c in player.hand) or '(out)'}")

    winner = room.get_player(room.winner_id) if room.winner_id else None
    print(f"\nWinner: {winner.name if winner else 'none'}")
    return room


if __name__ == "__main__":
    if len(sys.argv) > 1 and sys.argv[1] == "detail":
        # Detailed single game
        num_players = int(sys.argv[2]) if len(sys.argv) > 2 else 4
        run_detailed_game(num_players)
    else:
        # Batch simulation
        num_games = int(sys.argv[1]) if len(sys.argv) > 1 else 10
        num_players = int(sys.argv[2]) if len(sys.argv) > 2 else 4
        run_simulation(num_games, num_players)
