"""
Quickstart example for the reverse Minesweeper decision engine.

This script demonstrates single-turn analysis and a scripted game.
"""

import random

from reverse_sweeper import (
    DecisionEngine,
    GameMemory,
    GameSession,
    InMemoryStore,
    format_board_knowledge,
    format_probability_map,
    summarize_memory,
)
from reverse_sweeper.utils import get_neighborhoods


def answer_for(cell, mines, rows, cols):
    """Content of a cell on a known hidden board."""
    if cell in mines:
        return "M"
    return str(sum(1 for n in get_neighborhoods(rows, cols)[cell] if n in mines))


def main():
    print("=" * 60)
    print("Reverse Minesweeper Engine - Quickstart Example")
    print("=" * 60)

    # Example 1: Analyze one board state
    print("\n1. Analyzing a 9x9 board with a single revealed 0 and a 2...")
    print("-" * 60)

    engine = DecisionEngine(rng=random.Random(7))
    result = engine.analyze_board(
        (9, 9),
        revealed=[(4, 4, "0"), (0, 0, "2"), (0, 1, "2")],
        flags=[],
    )

    print(format_board_knowledge(result))
    print(f"\nNext move: {result.rationale} [{result.tag}]")
    print(f"New flags: {[a.cell for a in result.flag_actions]}")

    print("\nProbability map (percent):")
    print(format_probability_map(result))

    # Example 2: Play scripted games against a fixed hidden board
    print("\n2. Playing 5 scripted games on a 10x10 board with 12 mines...")
    print("-" * 60)

    rows, cols = 10, 10
    rng = random.Random(42)
    memory = GameMemory(InMemoryStore())

    for game_no in range(1, 6):
        mines = set(rng.sample([(r, c) for r in range(rows) for c in range(cols)], 12))
        session = GameSession((rows, cols), memory=memory, rng=random.Random(game_no))

        while True:
            decision = session.next_move()
            if decision is None:
                break
            session.answer(answer_for(decision.cell, mines, rows, cols))

        print(f"Game {game_no}: {session.status} after {session.reveal_count} reveals")

    summary = summarize_memory(memory)
    print(f"\nWin rate: {summary['win_rate']*100:.1f}%")
    print(f"Average reveals per game: {summary['avg_moves_per_game']:.1f}")
    print(f"Mines recorded in memory: {int(summary['mines_found'])}")

    print("\n" + "=" * 60)
    print("Done! Run `streamlit run app/demo.py` to play interactively.")
    print("=" * 60)


if __name__ == "__main__":
    main()
