"""Board model: per-cell status and per-number constraints rebuilt every turn."""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Mapping, Optional, Set, Tuple

from .utils import Cell, get_neighborhoods

logger = logging.getLogger(__name__)

# Revealed values that mean "this cell turned out to be a mine".
MINE_MARKERS = frozenset({"", "M", "m"})


class MalformedBoardError(ValueError):
    """Raised internally when the externally supplied board state cannot be parsed."""


@dataclass(frozen=True)
class BoardSize:
    """Board dimensions, fixed for a game session."""

    rows: int
    cols: int

    def __post_init__(self) -> None:
        if self.rows <= 0 or self.cols <= 0:
            raise ValueError("Board rows and cols must be positive.")

    @property
    def cell_count(self) -> int:
        return self.rows * self.cols

    def contains(self, cell: Cell) -> bool:
        r, c = cell
        return 0 <= r < self.rows and 0 <= c < self.cols

    def cells(self) -> List[Cell]:
        return [(r, c) for r in range(self.rows) for c in range(self.cols)]


@dataclass(frozen=True)
class Constraint:
    """
    Mine-count relationship declared by one revealed numbered cell.

    Attributes:
        origin: The revealed cell carrying the number.
        value: The declared number (0-8).
        unresolved: Neighbors that are still hidden and not flagged.
        flagged_count: Neighbors already known to be mines (flags or exposed mines).
    """

    origin: Cell
    value: int
    unresolved: FrozenSet[Cell]
    flagged_count: int

    @property
    def missing(self) -> int:
        """Mines still to be placed among the unresolved neighbors."""
        return self.value - self.flagged_count

    @property
    def feasible(self) -> bool:
        return 0 <= self.missing <= len(self.unresolved)


@dataclass
class BoardModel:
    """
    Snapshot of one turn: cell statuses plus the full constraint set.

    An inert model (no board size) is returned for malformed input; callers
    detect it through ``is_inert`` and fall back to a random choice.
    """

    size: Optional[BoardSize]
    values: Dict[Cell, int] = field(default_factory=dict)
    exposed_mines: FrozenSet[Cell] = frozenset()
    flags: FrozenSet[Cell] = frozenset()
    hidden: FrozenSet[Cell] = frozenset()
    constraints: Dict[Cell, Constraint] = field(default_factory=dict)
    cell_constraints: Dict[Cell, Tuple[Cell, ...]] = field(default_factory=dict)
    infeasible: Tuple[Cell, ...] = ()

    @classmethod
    def inert(cls) -> "BoardModel":
        return cls(size=None)

    @property
    def is_inert(self) -> bool:
        return self.size is None

    def neighbors(self, cell: Cell) -> Tuple[Cell, ...]:
        """Return the in-bounds 8-neighborhood of a cell."""
        if self.size is None:
            return ()
        return get_neighborhoods(self.size.rows, self.size.cols)[cell]

    @property
    def revealed_count(self) -> int:
        return len(self.values) + len(self.exposed_mines)

    @property
    def revealed_fraction(self) -> float:
        if self.size is None:
            return 0.0
        return self.revealed_count / self.size.cell_count

    def is_revealed(self, cell: Cell) -> bool:
        return cell in self.values or cell in self.exposed_mines

    def constraints_touching(self, cell: Cell) -> List[Constraint]:
        return [self.constraints[o] for o in self.cell_constraints.get(cell, ())]

    def zero_neighbors(self) -> Set[Cell]:
        """Hidden cells adjacent to a revealed 0."""
        out: Set[Cell] = set()
        for origin, value in self.values.items():
            if value == 0:
                out.update(n for n in self.neighbors(origin) if n in self.hidden)
        return out

    def highest_number_around(self, cell: Cell) -> Optional[int]:
        """Highest revealed numeric value among the neighbors, or None if none is revealed."""
        best: Optional[int] = None
        for n in self.neighbors(cell):
            v = self.values.get(n)
            if v is not None and (best is None or v > best):
                best = v
        return best

    def is_frontier(self, cell: Cell) -> bool:
        """True for a hidden cell adjacent to at least one revealed number."""
        return any(n in self.values for n in self.neighbors(cell))


def parse_board_size(raw: Any) -> BoardSize:
    """
    Accept a BoardSize, a mapping with rows/cols, or a (rows, cols) pair.

    Raises:
        MalformedBoardError: If the value cannot be interpreted as a positive size.
    """
    if isinstance(raw, BoardSize):
        return raw

    if isinstance(raw, Mapping):
        rows, cols = raw.get("rows"), raw.get("cols")
    elif isinstance(raw, (tuple, list)) and len(raw) == 2:
        rows, cols = raw
    else:
        raise MalformedBoardError(f"Unrecognized board size: {raw!r}")

    if not _is_int(rows) or not _is_int(cols) or rows <= 0 or cols <= 0:
        raise MalformedBoardError(f"Board size must be two positive integers: {raw!r}")
    return BoardSize(rows, cols)


def _is_int(v: Any) -> bool:
    return isinstance(v, int) and not isinstance(v, bool)


def _parse_cell(raw: Any, size: BoardSize) -> Tuple[Cell, Tuple[Any, ...]]:
    """Split one list entry into its coordinate and trailing payload."""
    if isinstance(raw, Mapping):
        row, col = raw.get("row"), raw.get("col")
        payload: Tuple[Any, ...] = ()
        for key in ("value", "content"):
            if key in raw:
                payload = (raw[key],)
                break
    elif isinstance(raw, (tuple, list)) and len(raw) >= 2:
        row, col = raw[0], raw[1]
        payload = tuple(raw[2:])
    else:
        raise MalformedBoardError(f"Unrecognized cell entry: {raw!r}")

    if not _is_int(row) or not _is_int(col):
        raise MalformedBoardError(f"Cell coordinates must be integers: {raw!r}")
    cell = (row, col)
    if not size.contains(cell):
        raise MalformedBoardError(f"Cell {cell} lies outside a {size.rows}x{size.cols} board.")
    return cell, payload


def parse_value(raw: Any) -> Optional[int]:
    """
    Convert a revealed value into a mine count, or None for an exposed mine.

    Raises:
        MalformedBoardError: If the value is neither 0-8 nor a mine marker.
    """
    if isinstance(raw, str):
        text = raw.strip()
        if text in MINE_MARKERS:
            return None
        if text.isdigit() and 0 <= int(text) <= 8:
            return int(text)
    elif _is_int(raw) and 0 <= raw <= 8:
        return raw
    raise MalformedBoardError(f"Unrecognized revealed value: {raw!r}")


def _parse_lists(
    size: BoardSize, revealed: Iterable[Any], flags: Iterable[Any]
) -> Tuple[Dict[Cell, int], Set[Cell], Set[Cell]]:
    if revealed is None or flags is None:
        raise MalformedBoardError("Revealed and flag lists are required.")

    values: Dict[Cell, int] = {}
    exposed: Set[Cell] = set()
    for entry in revealed:
        cell, payload = _parse_cell(entry, size)
        if not payload:
            raise MalformedBoardError(f"Revealed cell {cell} carries no value.")
        value = parse_value(payload[0])
        if (value is None and cell in values) or (value is not None and cell in exposed):
            raise MalformedBoardError(f"Cell {cell} revealed with conflicting values.")
        if value is None:
            exposed.add(cell)
        else:
            if cell in values and values[cell] != value:
                raise MalformedBoardError(f"Cell {cell} revealed with conflicting values.")
            values[cell] = value

    flagged: Set[Cell] = set()
    for entry in flags:
        cell, _ = _parse_cell(entry, size)
        if cell in values:
            raise MalformedBoardError(f"Cell {cell} is both revealed and flagged.")
        flagged.add(cell)

    # A flag on an exposed mine carries no extra information.
    flagged -= exposed
    return values, exposed, flagged


def build_board_model(size: Any, revealed: Iterable[Any], flags: Iterable[Any]) -> BoardModel:
    """
    Build the per-turn board model from the externally supplied state.

    Args:
        size: Board size (BoardSize, {"rows", "cols"} mapping or (rows, cols)).
        revealed: Entries (row, col, value) or {"row", "col", "value"} where
            value is "0".."8" or a mine marker ("" / "M").
        flags: Entries (row, col) or {"row", "col"}.

    Returns:
        A BoardModel with exactly one Constraint per revealed numeric cell,
        or an inert model if the input is malformed or contradictory.
    """
    try:
        board_size = parse_board_size(size)
        values, exposed, flagged = _parse_lists(board_size, revealed, flags)
    except (MalformedBoardError, TypeError) as exc:
        logger.warning("Malformed board input, using an inert model: %s", exc)
        return BoardModel.inert()

    neighborhoods = get_neighborhoods(board_size.rows, board_size.cols)
    known_mines = flagged | exposed
    hidden = frozenset(
        cell
        for cell in board_size.cells()
        if cell not in values and cell not in exposed and cell not in flagged
    )

    constraints: Dict[Cell, Constraint] = {}
    cell_constraints: Dict[Cell, List[Cell]] = {}
    infeasible: List[Cell] = []

    for origin in sorted(values):
        nbrs = neighborhoods[origin]
        unresolved = frozenset(n for n in nbrs if n in hidden)
        flagged_count = sum(1 for n in nbrs if n in known_mines)
        constraint = Constraint(origin, values[origin], unresolved, flagged_count)
        constraints[origin] = constraint

        if not constraint.feasible:
            infeasible.append(origin)
            logger.warning(
                "Infeasible constraint at %s: value %d, %d known mines, %d unresolved cells.",
                origin,
                constraint.value,
                flagged_count,
                len(unresolved),
            )

        for cell in unresolved:
            cell_constraints.setdefault(cell, []).append(origin)

    return BoardModel(
        size=board_size,
        values=values,
        exposed_mines=frozenset(exposed),
        flags=frozenset(flagged),
        hidden=hidden,
        constraints=constraints,
        cell_constraints={k: tuple(v) for k, v in cell_constraints.items()},
        infeasible=tuple(infeasible),
    )
