"""Checks whether an answer for a pending cell is consistent with the current board."""

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Set, Tuple

from .board import BoardModel, build_board_model, parse_value
from .config import DEFAULT_CONFIG, EngineConfig
from .solver import enumerate_assignments
from .utils import Cell, format_cell

logger = logging.getLogger(__name__)

EXCESS_FLAGS = "excess_flags"
SATURATED_NEIGHBOR = "saturated_neighbor"
EXCESS_MINES = "excess_mines"
INSUFFICIENT_CELLS = "insufficient_cells"
UNSATISFIABLE = "unsatisfiable"


@dataclass(frozen=True)
class Contradiction:
    kind: str
    cell: Cell
    message: str


@dataclass(frozen=True)
class ConsistencyReport:
    """
    Verdict on one answer.

    Attributes:
        consistent: False if at least one contradiction was found.
        message: Summary for display (the first contradiction when inconsistent).
        contradictions: Every contradiction found, in check order.
    """

    consistent: bool
    message: str
    contradictions: Tuple[Contradiction, ...] = field(default_factory=tuple)


def _component_origins(model: BoardModel, seeds: Iterable[Cell]) -> Set[Cell]:
    """Constraints transitively sharing unresolved cells with the seed constraints."""
    stack = [o for o in seeds if o in model.constraints]
    seen: Set[Cell] = set(stack)
    while stack:
        origin = stack.pop()
        for cell in model.constraints[origin].unresolved:
            for other in model.cell_constraints.get(cell, ()):
                if other not in seen:
                    seen.add(other)
                    stack.append(other)
    return seen


def check_answer(
    size: Any,
    revealed: Iterable[Any],
    flags: Iterable[Any],
    cell: Cell,
    answer: Any,
    config: EngineConfig = DEFAULT_CONFIG,
) -> ConsistencyReport:
    """
    Check an answer ("0".."8" or a mine marker) for a hidden cell against the board.

    Args:
        size: Board size in any form accepted by ``build_board_model``.
        revealed: Revealed entries before the answer.
        flags: Flagged entries.
        cell: The pending cell being answered.
        answer: Content the player gives for that cell.
        config: Supplies the enumeration cap for the satisfiability check.

    Returns:
        A ConsistencyReport.

    Raises:
        ValueError: If the board is malformed, the answer is not a valid value,
            or the cell is not a hidden, unflagged cell of the board.
    """
    revealed = list(revealed)
    flags = list(flags)

    before = build_board_model(size, revealed, flags)
    if before.size is None:
        raise ValueError("Cannot check an answer against a malformed board.")
    if cell not in before.hidden:
        raise ValueError(f"Cell {format_cell(cell)} is not a hidden, unflagged cell.")

    value: Optional[int] = parse_value(answer)
    contradictions: List[Contradiction] = []

    if value is not None:
        known = sum(1 for n in before.neighbors(cell) if n in before.flags or n in before.exposed_mines)
        if known > value:
            contradictions.append(
                Contradiction(
                    EXCESS_FLAGS,
                    cell,
                    f"{format_cell(cell)} cannot show {value}: {known} flags already surround it.",
                )
            )
    else:
        for constraint in before.constraints_touching(cell):
            if constraint.missing <= 0:
                contradictions.append(
                    Contradiction(
                        SATURATED_NEIGHBOR,
                        constraint.origin,
                        (
                            f"{format_cell(constraint.origin)} shows {constraint.value} and already "
                            f"has {constraint.flagged_count} flags; {format_cell(cell)} cannot be a mine."
                        ),
                    )
                )

    entry = (cell[0], cell[1], "M" if value is None else str(value))
    after = build_board_model(size, revealed + [entry], flags)
    if after.size is None:
        raise ValueError(f"Answer {answer!r} for {format_cell(cell)} could not be applied.")

    for origin, constraint in after.constraints.items():
        if constraint.flagged_count > constraint.value:
            contradictions.append(
                Contradiction(
                    EXCESS_MINES,
                    origin,
                    (
                        f"{format_cell(origin)} shows {constraint.value} but "
                        f"{constraint.flagged_count} mines are known around it."
                    ),
                )
            )
        elif constraint.missing > len(constraint.unresolved):
            contradictions.append(
                Contradiction(
                    INSUFFICIENT_CELLS,
                    origin,
                    (
                        f"{format_cell(origin)} needs {constraint.missing} more mines but only "
                        f"{len(constraint.unresolved)} hidden cells remain."
                    ),
                )
            )

    if not contradictions:
        seeds = [cell] + list(after.neighbors(cell))
        origins = sorted(_component_origins(after, seeds))
        cells: Set[Cell] = set()
        for origin in origins:
            cells |= after.constraints[origin].unresolved

        if origins and len(cells) <= config.brute_force_max_cells:
            count, _ = enumerate_assignments(
                [(after.constraints[o].unresolved, after.constraints[o].missing) for o in origins]
            )
            if count == 0:
                contradictions.append(
                    Contradiction(
                        UNSATISFIABLE,
                        cell,
                        f"No mine arrangement satisfies the numbers around {format_cell(cell)}.",
                    )
                )
        elif origins:
            logger.debug(
                "Skipping satisfiability check of a %d-cell group around %s.",
                len(cells),
                format_cell(cell),
            )

    if contradictions:
        logger.warning(
            "Answer %r for %s is inconsistent: %s",
            answer,
            format_cell(cell),
            ", ".join(c.kind for c in contradictions),
        )
        return ConsistencyReport(False, contradictions[0].message, tuple(contradictions))
    return ConsistencyReport(True, "The answer is consistent with the board.")
