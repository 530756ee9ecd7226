"""Tests for the per-turn board model built from external board state."""

import unittest

from reverse_sweeper.board import (
    BoardSize,
    MalformedBoardError,
    build_board_model,
    parse_board_size,
    parse_value,
)


class TestBoardSize(unittest.TestCase):
    """Tests for BoardSize and parse_board_size."""

    def test_rejects_non_positive_dimensions(self) -> None:
        with self.assertRaises(ValueError):
            BoardSize(0, 3)

    def test_accepts_pair_mapping_and_instance(self) -> None:
        self.assertEqual(parse_board_size((3, 4)), BoardSize(3, 4))
        self.assertEqual(parse_board_size({"rows": 3, "cols": 4}), BoardSize(3, 4))
        size = BoardSize(5, 5)
        self.assertIs(parse_board_size(size), size)

    def test_rejects_garbage(self) -> None:
        for raw in ("9x9", (3,), (3, "4"), (True, 4), {"rows": 3}, None):
            with self.assertRaises(MalformedBoardError):
                parse_board_size(raw)


class TestParseValue(unittest.TestCase):
    """Tests for revealed value parsing."""

    def test_numbers_and_mine_markers(self) -> None:
        self.assertEqual(parse_value("0"), 0)
        self.assertEqual(parse_value(" 8 "), 8)
        self.assertEqual(parse_value(3), 3)
        self.assertIsNone(parse_value("M"))
        self.assertIsNone(parse_value(""))

    def test_out_of_range_values(self) -> None:
        for raw in ("9", "-1", "x", 9, 1.5, None):
            with self.assertRaises(MalformedBoardError):
                parse_value(raw)


class TestBuildBoardModel(unittest.TestCase):
    """Tests for build_board_model."""

    def test_one_constraint_per_revealed_number(self) -> None:
        model = build_board_model((3, 3), [(0, 0, "1"), (1, 1, "0"), (2, 2, "2")], [])

        self.assertEqual(set(model.constraints), {(0, 0), (1, 1), (2, 2)})
        self.assertEqual(model.constraints[(0, 0)].unresolved, frozenset({(0, 1), (1, 0)}))
        self.assertEqual(model.constraints[(1, 1)].missing, 0)
        self.assertEqual(len(model.hidden), 6)

    def test_flags_count_toward_known_mines(self) -> None:
        model = build_board_model((3, 3), [(1, 1, "2")], [(0, 0)])
        constraint = model.constraints[(1, 1)]

        self.assertEqual(constraint.flagged_count, 1)
        self.assertEqual(constraint.missing, 1)
        self.assertNotIn((0, 0), constraint.unresolved)
        self.assertNotIn((0, 0), model.hidden)

    def test_exposed_mine_counts_as_flagged(self) -> None:
        model = build_board_model((3, 3), [(1, 1, "1"), (0, 0, "M")], [])

        self.assertIn((0, 0), model.exposed_mines)
        self.assertEqual(model.constraints[(1, 1)].flagged_count, 1)
        self.assertEqual(model.constraints[(1, 1)].missing, 0)
        self.assertEqual(model.revealed_count, 2)

    def test_mapping_entries(self) -> None:
        model = build_board_model(
            {"rows": 4, "cols": 4},
            [{"row": 0, "col": 0, "value": "1"}],
            [{"row": 1, "col": 1}],
        )

        self.assertEqual(model.values, {(0, 0): 1})
        self.assertEqual(model.flags, frozenset({(1, 1)}))

    def test_infeasible_constraint_is_listed(self) -> None:
        # Every neighbor of the 1 is revealed, so the missing mine has nowhere to go.
        model = build_board_model((2, 2), [(0, 0, "1"), (0, 1, "0"), (1, 0, "0"), (1, 1, "0")], [])

        self.assertIn((0, 0), model.infeasible)
        self.assertFalse(model.constraints[(0, 0)].feasible)

    def test_malformed_inputs_give_inert_model(self) -> None:
        cases = [
            ("abc", [], []),
            ((3, 3), [(5, 5, "1")], []),
            ((3, 3), [(0, 0, "9")], []),
            ((3, 3), [(0, 0)], []),
            ((3, 3), [(0, 0, "1")], [(0, 0)]),
            ((3, 3), [(0, 0, "1"), (0, 0, "2")], []),
            ((3, 3), None, []),
            ((3, 3), [("a", 0, "1")], []),
        ]
        for size, revealed, flags in cases:
            with self.subTest(size=size, revealed=revealed, flags=flags):
                model = build_board_model(size, revealed, flags)
                self.assertTrue(model.is_inert)
                self.assertEqual(model.constraints, {})

    def test_rebuild_is_identical(self) -> None:
        revealed = [(0, 0, "1"), (2, 3, "2"), (4, 4, "0")]
        flags = [(1, 1)]

        first = build_board_model((6, 6), revealed, flags)
        second = build_board_model((6, 6), revealed, flags)

        self.assertEqual(first, second)

    def test_cell_views(self) -> None:
        model = build_board_model((5, 5), [(2, 2, "0"), (0, 0, "3")], [])

        self.assertEqual(len(model.zero_neighbors()), 8)
        self.assertEqual(model.highest_number_around((1, 1)), 3)
        self.assertIsNone(model.highest_number_around((4, 0)))
        self.assertTrue(model.is_frontier((1, 2)))
        self.assertFalse(model.is_frontier((4, 0)))
        self.assertAlmostEqual(model.revealed_fraction, 2 / 25)


if __name__ == "__main__":
    unittest.main()
