"""Tests for the deduction solver and assignment enumeration."""

import random
import unittest
from typing import Iterable, List, Set, Tuple

from reverse_sweeper.board import build_board_model
from reverse_sweeper.solver import (
    ZERO_NEIGHBOR,
    DeductionResult,
    DeductionSolver,
    enumerate_assignments,
)
from reverse_sweeper.utils import Cell, get_neighborhoods


def solve(size: Tuple[int, int], revealed: Iterable, flags: Iterable = ()) -> DeductionResult:
    """Build a model and run every deduction pass on it."""
    return DeductionSolver(build_board_model(size, list(revealed), list(flags))).solve()


def row_of_ones(cols: int) -> List[Tuple[int, int, str]]:
    """Two-row board: row 0 hidden, row 1 revealed as all 1s."""
    return [(1, c, "1") for c in range(cols)]


def random_board(
    rng: random.Random, rows: int, cols: int, mines_count: int, reveal_count: int
) -> Tuple[Set[Cell], List[Tuple[int, int, str]], List[Cell]]:
    """
    Generate a truthful board state.

    Returns:
        Tuple of (mine cells, revealed entries, flagged cells), where every
        revealed number matches the mines and every flag is a real mine.
    """
    cells = [(r, c) for r in range(rows) for c in range(cols)]
    mines = set(rng.sample(cells, mines_count))
    neighborhoods = get_neighborhoods(rows, cols)

    safe = [c for c in cells if c not in mines]
    revealed = [
        (r, c, str(sum(1 for n in neighborhoods[(r, c)] if n in mines)))
        for r, c in rng.sample(safe, reveal_count)
    ]
    flags = [m for m in sorted(mines) if rng.random() < 0.5]
    return mines, revealed, flags


class TestEnumerateAssignments(unittest.TestCase):
    """Tests for enumerate_assignments."""

    def test_counts_and_frequencies(self) -> None:
        x, y, z = (0, 0), (0, 1), (0, 2)
        count, freq = enumerate_assignments([({x, y}, 1), ({y, z}, 1)])

        self.assertEqual(count, 2)
        self.assertEqual(freq[x], 1)
        self.assertEqual(freq[y], 1)
        self.assertEqual(freq[z], 1)

    def test_unsatisfiable_system(self) -> None:
        a, b = (0, 0), (0, 1)
        count, freq = enumerate_assignments([({a, b}, 2), ({a}, 0)])

        self.assertEqual(count, 0)
        self.assertEqual(dict(freq), {})


class TestLocalInference(unittest.TestCase):
    """Tests for zero seeding, local counting and paired inference."""

    def test_zero_neighbors_are_certain_safe(self) -> None:
        result = solve((9, 9), [(4, 4, "0")])

        expected = {(r, c) for r in (3, 4, 5) for c in (3, 4, 5)} - {(4, 4)}
        self.assertEqual(set(result.certain_safes), expected)
        self.assertEqual(result.certain_mines, {})
        for cell in expected:
            self.assertEqual(result.certain_safes[cell], ZERO_NEIGHBOR)

    def test_number_equal_to_unresolved_count_marks_mines(self) -> None:
        result = solve((2, 2), [(0, 0, "2"), (1, 1, "2")])

        self.assertEqual(set(result.certain_mines), {(0, 1), (1, 0)})
        self.assertEqual(result.certain_safes, {})

    def test_satisfied_number_marks_rest_safe(self) -> None:
        result = solve((3, 3), [(1, 1, "1")], flags=[(0, 0)])

        self.assertEqual(len(result.certain_safes), 7)
        self.assertNotIn((0, 0), result.certain_safes)
        self.assertEqual(result.certain_mines, {})

    def test_subset_rule_in_both_orders(self) -> None:
        # (1,0) sees {(0,0), (0,1)} with 1 mine; (1,1) sees those plus (0,2) with 2.
        revealed = [(1, 0, "1"), (1, 1, "2"), (1, 2, "1"), (1, 3, "1")]
        model = build_board_model((2, 4), revealed, [])

        for c1, c2 in (((1, 0), (1, 1)), ((1, 1), (1, 0))):
            with self.subTest(first=c1, second=c2):
                solver = DeductionSolver(model)
                solver.initialize_frontier()

                self.assertTrue(solver.paired_infer(c1, c2))
                self.assertIn((0, 2), solver.certain_mines)
                self.assertTrue(solver.certain_mines[(0, 2)].startswith("subset"))

    def test_subset_chain_resolves_board(self) -> None:
        revealed = [(1, 0, "1"), (1, 1, "2"), (1, 2, "1"), (1, 3, "1")]
        result = solve((2, 4), revealed)

        self.assertEqual(set(result.certain_mines), {(0, 0), (0, 2)})
        self.assertEqual(set(result.certain_safes), {(0, 1), (0, 3)})

    def test_one_one_with_flag(self) -> None:
        # (1,1) is satisfied by the flag at (1,0); (1,2) must take its only exclusive cell.
        revealed = [(1, 1, "1"), (1, 2, "1"), (1, 3, "1")]
        result = solve((2, 4), revealed, flags=[(1, 0)])

        self.assertIn((0, 3), result.certain_mines)
        self.assertEqual(set(result.certain_safes), {(0, 0), (0, 1), (0, 2)})


class TestBoundedEnumeration(unittest.TestCase):
    """Tests for the size-capped enumeration pass."""

    def test_group_at_cap_is_enumerated(self) -> None:
        model = build_board_model((2, 12), row_of_ones(12), [])
        solver = DeductionSolver(model)
        solver.initialize_frontier()

        self.assertTrue(solver.brute_force_infer())
        self.assertEqual(set(solver.certain_mines), {(0, 1), (0, 4), (0, 7), (0, 10)})
        self.assertEqual(len(solver.certain_safes), 8)
        self.assertEqual(solver.skipped_group_count, 0)

    def test_group_over_cap_is_skipped(self) -> None:
        model = build_board_model((2, 13), row_of_ones(13), [])
        solver = DeductionSolver(model)
        solver.initialize_frontier()

        self.assertFalse(solver.brute_force_infer())
        self.assertEqual(solver.skipped_group_count, 1)
        self.assertEqual(solver.certain_mines, {})
        self.assertEqual(solver.certain_safes, {})

    def test_local_passes_still_solve_large_group(self) -> None:
        result = solve((2, 13), row_of_ones(13))

        self.assertEqual(
            set(result.certain_mines), {(0, 0), (0, 3), (0, 6), (0, 9), (0, 12)}
        )
        self.assertEqual(len(result.certain_safes), 8)


class TestPatternInference(unittest.TestCase):
    """Tests for verified pattern proposals."""

    def test_one_one_pattern_is_verified(self) -> None:
        model = build_board_model((2, 4), [(1, 1, "1"), (1, 2, "1"), (1, 3, "1")], [(1, 0)])
        solver = DeductionSolver(model)
        solver.initialize_frontier()

        self.assertTrue(solver.pattern_infer())
        self.assertEqual(solver.certain_mines.get((0, 3)), "pattern 1-1")
        self.assertGreaterEqual(solver.inferred_pattern_count, 1)

    def test_one_two_one_against_wall(self) -> None:
        revealed = [(1, 0, "1"), (1, 1, "1"), (1, 2, "2"), (1, 3, "1"), (1, 4, "1")]
        model = build_board_model((2, 5), revealed, [])
        solver = DeductionSolver(model)
        solver.initialize_frontier()

        self.assertTrue(solver.pattern_infer())
        self.assertIn((0, 1), solver.certain_mines)
        self.assertIn((0, 3), solver.certain_mines)
        self.assertIn((0, 2), solver.certain_safes)


class TestValidation(unittest.TestCase):
    """Tests for contradiction handling and rollback."""

    def test_over_flagged_number_rolls_back(self) -> None:
        revealed = [(1, 1, "1"), (1, 4, "0")]
        result = solve((3, 5), revealed, flags=[(0, 0), (0, 1)])

        self.assertTrue(result.rolled_back)
        self.assertIn((1, 1), result.violated)
        self.assertEqual(result.certain_mines, {})
        # Neighbors of the revealed 0 survive the rollback.
        self.assertEqual(
            set(result.certain_safes), {(0, 3), (0, 4), (1, 3), (2, 3), (2, 4)}
        )

    def test_cell_in_both_sets_is_dropped(self) -> None:
        solver = DeductionSolver(build_board_model((3, 3), [(1, 1, "1")], []))
        solver.initialize_frontier()
        solver.certain_mines[(0, 0)] = "first"
        solver.certain_safes[(0, 0)] = "second"

        result = solver.validate()

        self.assertNotIn((0, 0), result.certain_mines)
        self.assertNotIn((0, 0), result.certain_safes)
        self.assertFalse(result.rolled_back)

    def test_zero_neighbor_stays_safe_on_conflict(self) -> None:
        solver = DeductionSolver(build_board_model((9, 9), [(4, 4, "0")], []))
        solver.initialize_frontier()
        solver.certain_mines[(3, 3)] = "bogus"

        result = solver.validate()

        self.assertNotIn((3, 3), result.certain_mines)
        self.assertEqual(result.certain_safes[(3, 3)], ZERO_NEIGHBOR)

    def test_inert_model_gives_empty_result(self) -> None:
        result = solve((3, 3), [(9, 9, "1")])

        self.assertEqual(result.certain_mines, {})
        self.assertEqual(result.certain_safes, {})
        self.assertFalse(result.rolled_back)


class TestSoundness(unittest.TestCase):
    """Deductions on truthful random boards must be disjoint and correct."""

    def test_random_boards(self) -> None:
        rng = random.Random(2024)
        for trial in range(30):
            mines, revealed, flags = random_board(rng, 8, 8, 10, 20)
            with self.subTest(trial=trial):
                result = solve((8, 8), revealed, flags)

                self.assertFalse(result.rolled_back)
                self.assertEqual(set(result.certain_mines) & set(result.certain_safes), set())
                self.assertTrue(set(result.certain_mines) <= mines)
                self.assertEqual(set(result.certain_safes) & mines, set())

    def test_stats_are_reported(self) -> None:
        result = solve((9, 9), [(4, 4, "0"), (0, 0, "1")])

        for key in (
            "inferred_single_count",
            "attempted_paired_count",
            "attempted_bruteforce_count",
            "skipped_group_count",
            "inferred_pattern_count",
        ):
            self.assertIn(key, result.stats)


if __name__ == "__main__":
    unittest.main()
