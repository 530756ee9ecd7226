"""Tests for the persistent cross-game memory."""

import json
import os
import tempfile
import threading
import unittest
from typing import Any, Dict, List, Optional

from reverse_sweeper.board import BoardSize
from reverse_sweeper.config import MemoryConfig
from reverse_sweeper.engine import Move
from reverse_sweeper.memory import (
    GameMemory,
    InMemoryStore,
    JsonFileStore,
    MemoryRecord,
    MemoryStore,
    denormalize_key,
    normalize_position,
)

NINE = BoardSize(9, 9)


def reveals(*cells) -> List[Move]:
    """History made of reveals of the given cells."""
    return [Move(r, c, "reveal", "1") for r, c in cells]


class FailingStore(MemoryStore):
    """Store whose every operation fails with an I/O error."""

    def load(self) -> Dict[str, Any]:
        raise OSError("disk unavailable")

    def save(self, document: Dict[str, Any]) -> None:
        raise OSError("disk unavailable")


class TestNormalization(unittest.TestCase):
    """Tests for size-independent position keys."""

    def test_keys(self) -> None:
        self.assertEqual(normalize_position((0, 0), NINE), "0,0")
        self.assertEqual(normalize_position((8, 8), NINE), "1,1")
        self.assertEqual(normalize_position((4, 4), NINE), "0.5,0.5")

    def test_same_relative_position_shares_key_across_sizes(self) -> None:
        self.assertEqual(
            normalize_position((2, 2), BoardSize(5, 5)), normalize_position((4, 4), NINE)
        )

    def test_denormalize(self) -> None:
        self.assertEqual(denormalize_key("0.5,0.5", NINE), (4, 4))
        self.assertEqual(denormalize_key("1,0", BoardSize(16, 30)), (15, 0))


class TestRecording(unittest.TestCase):
    """Tests for recording mines and game outcomes."""

    def test_mine_found_updates_heat_map_and_log(self) -> None:
        store = InMemoryStore()
        memory = GameMemory(store)

        memory.record_mine_found((4, 4), NINE)
        memory.record_mine_found((4, 4), NINE)

        self.assertEqual(memory.record.heat_map, {"0.5,0.5": 2})
        self.assertEqual(len(memory.record.mine_log), 1)
        self.assertEqual(memory.record.mine_log[0]["count"], 2)
        self.assertEqual(memory.record.stats["mines_found"], 2)
        self.assertEqual(store.save_count, 2)

    def test_mine_log_is_capped(self) -> None:
        memory = GameMemory(config=MemoryConfig(mine_log_limit=3))
        for c in range(5):
            memory.record_mine_found((0, c), NINE)

        self.assertEqual([e["col"] for e in memory.record.mine_log], [2, 3, 4])

    def test_loss_updates_tables_and_sequences(self) -> None:
        memory = GameMemory()
        history = reveals((0, 0), (4, 4)) + [Move(1, 1, "flag")]

        memory.record_loss_sequence(history, NINE)

        rec = memory.record
        self.assertEqual(rec.opening_moves["0,0"], {"wins": 0, "losses": 1})
        self.assertEqual(rec.second_moves["0,0|0.5,0.5"], {"wins": 0, "losses": 1})
        self.assertEqual(rec.losing_sequences, [["0,0", "0.5,0.5"]])
        self.assertEqual(rec.stats["games_played"], 1)
        self.assertEqual(rec.stats["losses"], 1)
        self.assertEqual(rec.stats["total_moves"], 2)
        self.assertIsNotNone(rec.last_played)

    def test_duplicate_losing_sequence_stored_once(self) -> None:
        memory = GameMemory()
        memory.record_loss_sequence(reveals((0, 0), (4, 4)), NINE)
        memory.record_loss_sequence(reveals((0, 0), (4, 4)), NINE)

        self.assertEqual(len(memory.record.losing_sequences), 1)
        self.assertEqual(memory.record.opening_moves["0,0"]["losses"], 2)

    def test_losing_sequences_evict_oldest_first(self) -> None:
        memory = GameMemory(config=MemoryConfig(losing_sequence_limit=2))
        for c in range(3):
            memory.record_loss_sequence(reveals((0, 0), (8, c * 4)), NINE)

        self.assertEqual(
            memory.record.losing_sequences,
            [["0,0", "1,0.5"], ["0,0", "1,1"]],
        )
        self.assertEqual(memory.record.stats["losses"], 3)

    def test_game_log_is_capped(self) -> None:
        memory = GameMemory()
        for _ in range(25):
            memory.record_win_sequence(reveals((0, 0)), NINE)

        self.assertEqual(len(memory.record.games), 20)
        self.assertEqual(memory.record.stats["wins"], 25)

    def test_empty_history_is_ignored(self) -> None:
        memory = GameMemory()
        memory.record_loss_sequence([Move(0, 0, "flag")], NINE)

        self.assertEqual(memory.record.stats["games_played"], 0)


class TestEvaluateCell(unittest.TestCase):
    """Tests for historical risk evaluation."""

    def test_recorded_mine_is_extreme(self) -> None:
        memory = GameMemory()
        memory.record_mine_found((4, 4), NINE)

        evaluation = memory.evaluate_cell((4, 4), NINE)
        self.assertEqual(evaluation.risk_factor, 1.0)
        self.assertEqual(evaluation.confidence, "extreme")

        # Same relative position on another board size.
        self.assertEqual(memory.evaluate_cell((2, 2), BoardSize(5, 5)).confidence, "extreme")

    def test_recorded_mine_outranks_unrelated_cell(self) -> None:
        memory = GameMemory()
        memory.record_mine_found((4, 4), NINE)

        hot = memory.evaluate_cell((4, 4), NINE)
        cold = memory.evaluate_cell((0, 8), NINE)

        self.assertGreaterEqual(hot.risk_factor, cold.risk_factor)
        self.assertEqual(cold.confidence, "low")

    def test_neighbor_of_recorded_mine_carries_risk(self) -> None:
        memory = GameMemory()
        memory.record_mine_found((4, 4), NINE)

        evaluation = memory.evaluate_cell((4, 5), NINE)

        self.assertEqual(evaluation.confidence, "high")
        self.assertGreater(evaluation.risk_factor, 0.0)
        self.assertLess(evaluation.risk_factor, 1.0)

    def test_opening_loss_and_losing_sequence(self) -> None:
        memory = GameMemory()
        memory.record_loss_sequence(reveals((0, 0), (4, 4)), NINE)

        evaluation = memory.evaluate_cell((0, 0), NINE, [])

        self.assertAlmostEqual(evaluation.risk_factor, 0.3 + 0.25)
        self.assertEqual(evaluation.confidence, "high")
        self.assertEqual(len(evaluation.reasoning), 2)

    def test_no_history(self) -> None:
        evaluation = GameMemory().evaluate_cell((3, 3), NINE)

        self.assertEqual(evaluation.as_tuple(), (0.0, "no historical data", "low"))


class TestSecondMove(unittest.TestCase):
    """Tests for second-move recommendations."""

    def test_decisive_winner_is_recommended(self) -> None:
        memory = GameMemory()
        for _ in range(3):
            memory.record_win_sequence(reveals((0, 0), (4, 4)), NINE)
        memory.record_loss_sequence(reveals((0, 0), (8, 8)), NINE)

        rec = memory.recommend_second_move((0, 0), NINE)

        self.assertIsNotNone(rec)
        self.assertEqual(rec.cell, (4, 4))
        self.assertEqual(rec.win_rate, 1.0)
        self.assertEqual(rec.samples, 3)
        self.assertEqual(rec.confidence, "high")

    def test_close_candidates_give_no_recommendation(self) -> None:
        memory = GameMemory()
        memory.record_win_sequence(reveals((0, 0), (4, 4)), NINE)
        memory.record_win_sequence(reveals((0, 0), (8, 8)), NINE)

        self.assertIsNone(memory.recommend_second_move((0, 0), NINE))

    def test_low_win_rate_gives_no_recommendation(self) -> None:
        memory = GameMemory()
        memory.record_loss_sequence(reveals((0, 0), (4, 4)), NINE)

        self.assertIsNone(memory.recommend_second_move((0, 0), NINE))
        self.assertIsNone(memory.recommend_second_move((8, 0), NINE))


class TestPersistence(unittest.TestCase):
    """Tests for stores and failure isolation."""

    def test_json_file_round_trip(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "memory.json")
            memory = GameMemory(JsonFileStore(path))
            memory.record_mine_found((1, 2), NINE)
            memory.record_loss_sequence(reveals((0, 0), (1, 2)), NINE)

            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
            self.assertEqual(document["losing_sequences"], ["0,0|0.1,0.2"])

            reloaded = GameMemory(JsonFileStore(path))
            self.assertTrue(reloaded.available)
            self.assertEqual(reloaded.record.to_dict(), memory.record.to_dict())

    def test_corrupt_file_means_logic_only(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "memory.json")
            with open(path, "w", encoding="utf-8") as f:
                f.write("{not json")

            memory = GameMemory(JsonFileStore(path))

            self.assertFalse(memory.available)
            self.assertEqual(memory.record.heat_map, {})
            self.assertEqual(memory.evaluate_cell((0, 0), NINE).confidence, "low")

    def test_malformed_document_is_rejected(self) -> None:
        with self.assertRaises(ValueError):
            MemoryRecord.from_dict({"mine_log": [{"row": 1}]})
        with self.assertRaises(ValueError):
            MemoryRecord.from_dict(["not", "a", "mapping"])

        memory = GameMemory(InMemoryStore({"heat_map": {"0,0": "many"}}))
        self.assertFalse(memory.available)

    def test_failed_store_keeps_state(self) -> None:
        memory = GameMemory(FailingStore())

        memory.record_mine_found((0, 0), NINE)

        self.assertFalse(memory.available)
        self.assertFalse(memory.save())
        self.assertEqual(memory.record.heat_map, {"0,0": 1})

    def test_unreadable_file_is_never_overwritten(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = os.path.join(tmp, "memory.json")
            writer = GameMemory(JsonFileStore(path))
            for i in range(4):
                writer.record_mine_found((i, i), NINE)
            with open(path, "r", encoding="utf-8") as f:
                document = json.load(f)
            document["mine_log"].append({"row": 5})
            with open(path, "w", encoding="utf-8") as f:
                json.dump(document, f)
            with open(path, "rb") as f:
                damaged = f.read()

            memory = GameMemory(JsonFileStore(path))
            memory.record_mine_found((8, 8), NINE)
            memory.record_loss_sequence(reveals((0, 0), (8, 8)), NINE)

            self.assertFalse(memory.available)
            self.assertFalse(memory.save())
            self.assertEqual(memory.record.heat_map, {"1,1": 1})
            with open(path, "rb") as f:
                self.assertEqual(f.read(), damaged)

    def test_reset_replaces_unreadable_store(self) -> None:
        store = InMemoryStore({"heat_map": {"0,0": "many"}})
        memory = GameMemory(store)
        self.assertFalse(memory.available)

        memory.reset()

        self.assertTrue(memory.available)
        self.assertEqual(store.document["heat_map"], {})

    def test_reset(self) -> None:
        store = InMemoryStore()
        memory = GameMemory(store)
        memory.record_mine_found((0, 0), NINE)

        memory.reset()

        self.assertEqual(memory.record.heat_map, {})
        self.assertEqual(store.document["heat_map"], {})

    def test_incomplete_store_cannot_be_created(self) -> None:
        class LoadOnlyStore(MemoryStore):
            def load(self) -> None:
                return None

        with self.assertRaises(TypeError):
            LoadOnlyStore()


class SlowFirstSaveStore(MemoryStore):
    """Store whose first save blocks until released."""

    def __init__(self) -> None:
        self.document: Optional[Dict[str, Any]] = None
        self.entered = threading.Event()
        self.release = threading.Event()
        self.calls = 0

    def load(self) -> None:
        return None

    def save(self, document: Dict[str, Any]) -> None:
        self.calls += 1
        if self.calls == 1:
            self.entered.set()
            self.release.wait(timeout=5)
        self.document = json.loads(json.dumps(document))


class TestSharedMemory(unittest.TestCase):
    """Tests for one memory shared between threads."""

    def test_concurrent_records_all_reach_the_store(self) -> None:
        store = SlowFirstSaveStore()
        memory = GameMemory(store)

        first = threading.Thread(target=memory.record_mine_found, args=((0, 0), NINE))
        first.start()
        self.assertTrue(store.entered.wait(timeout=5))
        second = threading.Thread(target=memory.record_mine_found, args=((8, 8), NINE))
        second.start()

        # The second writer waits for the save in progress.
        second.join(timeout=0.2)
        self.assertTrue(second.is_alive())

        store.release.set()
        first.join(timeout=5)
        second.join(timeout=5)

        self.assertEqual(store.document["heat_map"], {"0,0": 1, "1,1": 1})
        self.assertEqual(store.document["heat_map"], memory.record.heat_map)


if __name__ == "__main__":
    unittest.main()
