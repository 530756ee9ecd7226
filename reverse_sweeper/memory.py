"""Persistent cross-game memory: mine heat-map, move outcome tables and losing sequences."""

import abc
import functools
import json
import logging
import os
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .board import BoardSize
from .config import DEFAULT_MEMORY_CONFIG, MemoryConfig
from .utils import Cell, iter_reveals

logger = logging.getLogger(__name__)

RECORD_VERSION = 1


def normalize_position(cell: Cell, size: BoardSize, resolution: int = 10) -> str:
    """
    Map a cell to a board-size-independent key such as "0.3,0.7".

    Each coordinate is scaled to [0, 1] by (size - 1) and floored to
    ``resolution`` levels, so nearby cells of different board sizes share a key.
    """
    r, c = cell
    r_level = r * resolution // (size.rows - 1) if size.rows > 1 else 0
    c_level = c * resolution // (size.cols - 1) if size.cols > 1 else 0
    return f"{r_level / resolution:g},{c_level / resolution:g}"


def denormalize_key(key: str, size: BoardSize) -> Cell:
    """Map a normalized key back to the nearest cell of the given board."""
    r_norm, c_norm = (float(part) for part in key.split(","))
    return round(r_norm * (size.rows - 1)), round(c_norm * (size.cols - 1))


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _contains_run(haystack: Sequence[str], needle: Sequence[str]) -> bool:
    """True if needle occurs as a contiguous run inside haystack."""
    n = len(needle)
    if n == 0 or n > len(haystack):
        return False
    return any(list(haystack[i:i + n]) == list(needle) for i in range(len(haystack) - n + 1))


@dataclass
class MemoryRecord:
    """
    Everything the memory persists, serialized as one flat JSON document.

    Attributes:
        heat_map: Normalized key -> number of mines found there.
        mine_log: Exact mine positions with their board size, most recent last.
        opening_moves: First-move key -> {"wins", "losses"}.
        second_moves: "first|second" key -> {"wins", "losses"}.
        losing_sequences: Normalized reveal sequences that ended in a loss.
        games: Short log of the most recent games.
        stats: Aggregate counters.
        last_played: ISO timestamp of the last recorded outcome.
    """

    heat_map: Dict[str, int] = field(default_factory=dict)
    mine_log: List[Dict[str, Any]] = field(default_factory=list)
    opening_moves: Dict[str, Dict[str, int]] = field(default_factory=dict)
    second_moves: Dict[str, Dict[str, int]] = field(default_factory=dict)
    losing_sequences: List[List[str]] = field(default_factory=list)
    games: List[Dict[str, Any]] = field(default_factory=list)
    stats: Dict[str, int] = field(
        default_factory=lambda: {
            "games_played": 0,
            "wins": 0,
            "losses": 0,
            "mines_found": 0,
            "total_moves": 0,
        }
    )
    last_played: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": RECORD_VERSION,
            "heat_map": dict(self.heat_map),
            "mine_log": [dict(e) for e in self.mine_log],
            "opening_moves": {k: dict(v) for k, v in self.opening_moves.items()},
            "second_moves": {k: dict(v) for k, v in self.second_moves.items()},
            "losing_sequences": ["|".join(seq) for seq in self.losing_sequences],
            "games": [dict(g) for g in self.games],
            "stats": dict(self.stats),
            "last_played": self.last_played,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "MemoryRecord":
        """
        Rebuild a record from its serialized form; absent keys take empty defaults.

        Raises:
            ValueError: If a present key has the wrong shape.
        """
        if not isinstance(data, Mapping):
            raise ValueError("Memory document must be a JSON object.")

        record = cls()
        try:
            record.heat_map = {str(k): int(v) for k, v in data.get("heat_map", {}).items()}
            record.mine_log = [
                {
                    **dict(e),
                    "row": int(e["row"]),
                    "col": int(e["col"]),
                    "rows": int(e["rows"]),
                    "cols": int(e["cols"]),
                    "count": int(e.get("count", 1)),
                }
                for e in data.get("mine_log", [])
            ]
            record.opening_moves = {
                str(k): {"wins": int(v.get("wins", 0)), "losses": int(v.get("losses", 0))}
                for k, v in data.get("opening_moves", {}).items()
            }
            record.second_moves = {
                str(k): {"wins": int(v.get("wins", 0)), "losses": int(v.get("losses", 0))}
                for k, v in data.get("second_moves", {}).items()
            }
            record.losing_sequences = [
                str(seq).split("|") for seq in data.get("losing_sequences", []) if seq
            ]
            record.games = [dict(g) for g in data.get("games", [])]
            record.stats.update({str(k): int(v) for k, v in data.get("stats", {}).items()})
        except (AttributeError, KeyError, TypeError) as exc:
            raise ValueError(f"Malformed memory document: {exc}") from exc

        last_played = data.get("last_played")
        record.last_played = str(last_played) if last_played is not None else None
        return record


class MemoryStore(abc.ABC):
    """Raw persistence of the serialized memory document."""

    @abc.abstractmethod
    def load(self) -> Optional[Dict[str, Any]]:
        """Return the stored document, or None if nothing was stored yet."""

    @abc.abstractmethod
    def save(self, document: Dict[str, Any]) -> None:
        """Replace the stored document."""


class InMemoryStore(MemoryStore):
    """Process-local store; used for logic tests and throwaway sessions."""

    def __init__(self, document: Optional[Dict[str, Any]] = None) -> None:
        self.document = json.loads(json.dumps(document)) if document is not None else None
        self.save_count = 0

    def load(self) -> Optional[Dict[str, Any]]:
        if self.document is None:
            return None
        return json.loads(json.dumps(self.document))

    def save(self, document: Dict[str, Any]) -> None:
        self.document = json.loads(json.dumps(document))
        self.save_count += 1


class JsonFileStore(MemoryStore):
    """
    JSON file on disk, replaced atomically on every save.

    Raises:
        OSError: If the file cannot be read or written.
        ValueError: If the file does not contain valid JSON.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    def load(self) -> Optional[Dict[str, Any]]:
        if not os.path.exists(self.path):
            return None
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def save(self, document: Dict[str, Any]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".memory-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(document, f, ensure_ascii=False, indent=2)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


@dataclass(frozen=True)
class MemoryEvaluation:
    """Historical risk of revealing one cell."""

    risk_factor: float
    reasoning: Tuple[str, ...]
    confidence: str

    def as_tuple(self) -> Tuple[float, str, str]:
        return self.risk_factor, "; ".join(self.reasoning), self.confidence


@dataclass(frozen=True)
class SecondMoveRecommendation:
    """Historically best reply to a given first move, denormalized to the current board."""

    cell: Cell
    win_rate: float
    samples: int
    confidence: str


class GameMemory:
    """
    Size-normalized record of past games shared by every game played in the process.

    The record is loaded once at construction and saved after each mutation.
    Store failures are logged and never propagate. An unreadable store leaves
    an empty record (logic-only behaviour) and is never written to, so the
    history it holds survives until ``reset`` is called explicitly. A failed
    save keeps the in-process state. All operations, saves included, hold an
    internal lock, so one instance can be shared between concurrent sessions.
    """

    def __init__(
        self,
        store: Optional[MemoryStore] = None,
        config: MemoryConfig = DEFAULT_MEMORY_CONFIG,
    ) -> None:
        """
        Args:
            store: Persistence backend; None keeps the memory in process only.
            config: Log caps, risk weights and second-move thresholds.
        """
        self.store = store
        self.config = config
        self._lock = threading.RLock()
        self.available = True
        self.record = self._load()

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def _load(self) -> MemoryRecord:
        if self.store is None:
            return MemoryRecord()
        try:
            document = self.store.load()
            if document is None:
                return MemoryRecord()
            return MemoryRecord.from_dict(document)
        except (OSError, ValueError) as exc:
            self.available = False
            logger.warning("Could not load game memory, starting empty: %s", exc)
            return MemoryRecord()

    def save(self) -> bool:
        """
        Persist the current record.

        Returns:
            True if the store accepted the document (or there is no store),
            False if the save failed or the store could not be loaded.
        """
        if self.store is None:
            return True
        with self._lock:
            if not self.available:
                logger.debug("Game memory is logic-only, not saving.")
                return False
            try:
                self.store.save(self.record.to_dict())
                return True
            except (OSError, ValueError) as exc:
                logger.warning("Could not save game memory: %s", exc)
                return False

    def reset(self) -> None:
        """Forget everything and persist the empty record, replacing an unreadable store."""
        with self._lock:
            self.record = MemoryRecord()
            self.available = True
            self.save()

    def key(self, cell: Cell, size: BoardSize) -> str:
        return normalize_position(cell, size, self.config.resolution)

    # -------------------------------------------------------------------------
    # Recording
    # -------------------------------------------------------------------------

    def record_mine_found(self, position: Cell, size: BoardSize) -> None:
        """
        Remember a mine revealed at position on a board of the given size.

        Args:
            position: The (row, col) that turned out to be a mine.
            size: Board size the game was played on.
        """
        key = self.key(position, size)
        with self._lock:
            rec = self.record
            rec.heat_map[key] = rec.heat_map.get(key, 0) + 1
            rec.stats["mines_found"] = rec.stats.get("mines_found", 0) + 1

            entry = None
            for i, existing in enumerate(rec.mine_log):
                if (
                    existing.get("row") == position[0]
                    and existing.get("col") == position[1]
                    and existing.get("rows") == size.rows
                    and existing.get("cols") == size.cols
                ):
                    entry = rec.mine_log.pop(i)
                    break
            if entry is None:
                entry = {
                    "row": position[0],
                    "col": position[1],
                    "rows": size.rows,
                    "cols": size.cols,
                    "count": 0,
                }
            entry["count"] = int(entry.get("count", 0)) + 1
            entry["recorded_at"] = _now()
            rec.mine_log.append(entry)
            del rec.mine_log[: -self.config.mine_log_limit]

        logger.info("Recorded mine at %s (key %s).", position, key)
        self.save()

    def _reveals(self, history: Iterable[Any]) -> List[Tuple[Cell, Any]]:
        return list(iter_reveals(history))

    def _record_outcome(self, history: Iterable[Any], size: BoardSize, won: bool) -> None:
        reveals = self._reveals(history)
        if not reveals:
            return

        outcome = "wins" if won else "losses"
        keys = [self.key(cell, size) for cell, _ in reveals]

        with self._lock:
            rec = self.record
            opening = rec.opening_moves.setdefault(keys[0], {"wins": 0, "losses": 0})
            opening[outcome] += 1

            if len(keys) >= 2:
                pair = rec.second_moves.setdefault(f"{keys[0]}|{keys[1]}", {"wins": 0, "losses": 0})
                pair[outcome] += 1

            if not won and keys not in rec.losing_sequences:
                rec.losing_sequences.append(keys)
                del rec.losing_sequences[: -self.config.losing_sequence_limit]

            rec.stats["wins" if won else "losses"] = rec.stats.get("wins" if won else "losses", 0) + 1
            rec.stats["games_played"] = rec.stats.get("games_played", 0) + 1
            rec.stats["total_moves"] = rec.stats.get("total_moves", 0) + len(reveals)

            now = _now()
            rec.games.append(
                {
                    "date": now,
                    "result": "win" if won else "loss",
                    "moves": [
                        {"row": cell[0], "col": cell[1], "result": content}
                        for cell, content in reveals
                    ],
                    "rows": size.rows,
                    "cols": size.cols,
                }
            )
            del rec.games[: -self.config.game_log_limit]
            rec.last_played = now

        logger.info(
            "Recorded %s after %d reveal(s), opening key %s.",
            "win" if won else "loss",
            len(reveals),
            keys[0],
        )
        self.save()

    def record_loss_sequence(self, history: Iterable[Any], size: BoardSize) -> None:
        """
        Record a lost game: opening/second-move tables, losing sequence and aggregates.

        Args:
            history: Move history; flag placements are ignored.
            size: Board size the game was played on.
        """
        self._record_outcome(history, size, won=False)

    def record_win_sequence(self, history: Iterable[Any], size: BoardSize) -> None:
        """Record a won game; see ``record_loss_sequence``."""
        self._record_outcome(history, size, won=True)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def evaluate_cell(
        self, position: Cell, size: BoardSize, history: Iterable[Any] = ()
    ) -> MemoryEvaluation:
        """
        Estimate the historical risk of revealing position next.

        A cell whose normalized key, or exact coordinate on the same board size,
        holds a recorded mine short-circuits to risk 1.0 with confidence "extreme".

        Args:
            position: Candidate cell.
            size: Current board size.
            history: Moves of the current game so far.

        Returns:
            A MemoryEvaluation with confidence "extreme", "high" or "low".
        """
        cfg = self.config
        key = self.key(position, size)
        reveals = self._reveals(history)

        with self._lock:
            rec = self.record

            if rec.heat_map.get(key, 0) > 0:
                return MemoryEvaluation(
                    1.0, (f"mine recorded at {key} ({rec.heat_map[key]} times)",), "extreme"
                )
            for entry in rec.mine_log:
                if (
                    (entry.get("row"), entry.get("col")) == position
                    and (entry.get("rows"), entry.get("cols")) == (size.rows, size.cols)
                ):
                    return MemoryEvaluation(1.0, ("mine recorded at this exact cell",), "extreme")

            risk = 0.0
            reasoning: List[str] = []

            nearby = sum(
                1
                for entry in rec.mine_log
                if (entry.get("rows"), entry.get("cols")) == (size.rows, size.cols)
                and max(abs(entry["row"] - position[0]), abs(entry["col"] - position[1])) == 1
            )
            if nearby:
                risk += min(cfg.nearby_mine_cap, nearby * cfg.nearby_mine_step)
                reasoning.append(f"{nearby} recorded mine(s) adjacent")

            similar = self._similar_key_frequency(key)
            if similar:
                risk += min(cfg.heat_risk_cap, similar * cfg.heat_risk_step) / 2
                reasoning.append(f"{similar} mine(s) recorded at similar positions")

            if not reveals:
                stats = rec.opening_moves.get(key)
                if stats:
                    total = stats["wins"] + stats["losses"]
                    if total > 0:
                        loss_rate = stats["losses"] / total
                        risk += loss_rate * cfg.opening_loss_weight
                        reasoning.append(f"opening lost {round(loss_rate * 100)}% of the time")

            if len(reveals) == 1:
                first_key = self.key(reveals[0][0], size)
                stats = rec.second_moves.get(f"{first_key}|{key}")
                if stats:
                    total = stats["wins"] + stats["losses"]
                    if total > 0:
                        loss_rate = stats["losses"] / total
                        risk += loss_rate * cfg.second_move_loss_weight
                        reasoning.append(f"move pair lost {round(loss_rate * 100)}% of the time")

            candidate = [self.key(cell, size) for cell, _ in reveals] + [key]
            matches = sum(
                1
                for seq in rec.losing_sequences
                if _contains_run(seq, candidate) or _contains_run(candidate, seq)
            )
            if matches:
                risk += min(cfg.sequence_risk_cap, matches * cfg.sequence_risk_step)
                reasoning.append(f"overlaps {matches} losing sequence(s)")

        if not reasoning:
            return MemoryEvaluation(0.0, ("no historical data",), "low")
        return MemoryEvaluation(min(1.0, max(0.0, risk)), tuple(reasoning), "high")

    def _similar_key_frequency(self, key: str) -> int:
        """Mines recorded at keys one discretization step away from key."""
        step = 1.0 / self.config.resolution
        r, c = (float(part) for part in key.split(","))
        total = 0
        for other, count in self.record.heat_map.items():
            try:
                orow, ocol = (float(part) for part in other.split(","))
            except ValueError:
                continue
            if other != key and abs(orow - r) <= step + 1e-9 and abs(ocol - c) <= step + 1e-9:
                total += count
        return total

    def recommend_second_move(
        self, first_move: Cell, size: BoardSize
    ) -> Optional[SecondMoveRecommendation]:
        """
        Suggest the historically best reply to first_move, if one is decisively better.

        Candidates are ranked by win rate when rates differ by more than the
        configured margin, otherwise by sample count. The top candidate is
        returned only if its win rate reaches the configured minimum and beats
        every other candidate's rate by more than the margin.

        Returns:
            A recommendation denormalized to ``size``, or None.
        """
        cfg = self.config
        prefix = self.key(first_move, size) + "|"

        with self._lock:
            candidates = []
            for pair_key, stats in self.record.second_moves.items():
                if not pair_key.startswith(prefix):
                    continue
                total = stats["wins"] + stats["losses"]
                rate = stats["wins"] / total if total > 0 else 0.0
                candidates.append((pair_key.split("|", 1)[1], rate, total))

        if not candidates:
            return None

        def compare(a: Tuple[str, float, int], b: Tuple[str, float, int]) -> int:
            if abs(a[1] - b[1]) > cfg.second_move_margin:
                return -1 if a[1] > b[1] else 1
            return b[2] - a[2]

        candidates.sort(key=functools.cmp_to_key(compare))
        best_key, best_rate, best_total = candidates[0]

        if best_rate < cfg.second_move_min_win_rate:
            return None
        if any(best_rate - rate <= cfg.second_move_margin for _, rate, _ in candidates[1:]):
            return None

        try:
            cell = denormalize_key(best_key, size)
        except ValueError:
            logger.warning("Ignoring malformed second-move key %r.", best_key)
            return None

        return SecondMoveRecommendation(
            cell=cell,
            win_rate=best_rate,
            samples=best_total,
            confidence="high" if best_total > 2 else "medium",
        )

    def heat_map_cells(self, size: BoardSize) -> Dict[Cell, int]:
        """Project the normalized heat-map onto the cells of a board."""
        out: Dict[Cell, int] = {}
        with self._lock:
            items = list(self.record.heat_map.items())
        for key, count in items:
            try:
                cell = denormalize_key(key, size)
            except ValueError:
                continue
            out[cell] = out.get(cell, 0) + count
        return out
