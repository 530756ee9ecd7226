"""Turn orchestration: board model -> deduction -> probabilities -> memory -> move."""

import logging
import random
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence

from .board import BoardModel, MalformedBoardError, build_board_model, parse_board_size
from .config import DEFAULT_CONFIG, EngineConfig
from .memory import GameMemory
from .probability import ProbabilityEstimator, RiskEstimate
from .selector import (
    DEFAULT_STRATEGIES,
    MoveDecision,
    SelectionContext,
    Strategy,
    fallback_size_cells,
    random_fallback_strategy,
    select_move,
)
from .solver import DeductionResult, DeductionSolver
from .utils import Cell, iter_reveals

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Move:
    """
    One entry of a game's move history.

    Attributes:
        row: 0-based row.
        col: 0-based column.
        action: "reveal" or "flag".
        content: Revealed content ("0".."8" or "M") for reveals; None for flags.
    """

    row: int
    col: int
    action: str = "reveal"
    content: Optional[str] = None

    @property
    def cell(self) -> Cell:
        return self.row, self.col

    def to_dict(self) -> Dict[str, Any]:
        return {"row": self.row, "col": self.col, "action": self.action, "content": self.content}


@dataclass(frozen=True)
class FlagAction:
    """A flag the caller should place, with the deduction that proved the mine."""

    row: int
    col: int
    reason: str

    @property
    def cell(self) -> Cell:
        return self.row, self.col


@dataclass
class TurnResult:
    """
    Outcome of one analysis.

    Attributes:
        flags: Previous flags plus newly deduced mines, sorted.
        next_move: Cell to reveal next, or None if no hidden cell is left.
        flag_actions: Newly deduced flags for the caller to apply, in order.
        model: Board model the analysis was based on.
        deduction: Validated solver output.
        probabilities: Final per-cell estimates (memory blended in when available).
    """

    flags: List[Cell]
    next_move: Optional[MoveDecision]
    flag_actions: List[FlagAction] = field(default_factory=list)
    model: BoardModel = field(default_factory=BoardModel.inert)
    deduction: DeductionResult = field(default_factory=DeductionResult)
    probabilities: Dict[Cell, RiskEstimate] = field(default_factory=dict)

    @property
    def tag(self) -> Optional[str]:
        return self.next_move.tag if self.next_move is not None else None

    @property
    def rationale(self) -> str:
        if self.next_move is None:
            return "no hidden cells left"
        return self.next_move.rationale


class DecisionEngine:
    """
    Chooses the next reveal and the flags to place for a reverse Minesweeper turn.

    Example:
        engine = DecisionEngine(memory=GameMemory(JsonFileStore("memory.json")))
        result = engine.analyze_board((9, 9), [(4, 4, "0")], [], history=[])
        result.next_move.cell
    """

    def __init__(
        self,
        config: EngineConfig = DEFAULT_CONFIG,
        memory: Optional[GameMemory] = None,
        rng: Optional[random.Random] = None,
        strategies: Sequence[Strategy] = DEFAULT_STRATEGIES,
    ) -> None:
        """
        Args:
            config: Engine constants.
            memory: Cross-game memory; None runs in logic-only mode.
            rng: Random source for tie-breaking and the final fallback.
            strategies: Selection layers in priority order.
        """
        self.config = config
        self.memory = memory
        self.rng = rng if rng is not None else random.Random()
        self.strategies = tuple(strategies)
        self.estimator = ProbabilityEstimator(config)

    def analyze_board(
        self,
        size: Any,
        revealed: Iterable[Any],
        flags: Iterable[Any],
        history: Iterable[Any] = (),
    ) -> TurnResult:
        """
        Analyze one turn and return flags to place plus the next cell to reveal.

        Never raises: malformed input or an unexpected internal failure
        degrades to a uniform random hidden cell.

        Args:
            size: Board size ((rows, cols), {"rows", "cols"} or BoardSize).
            revealed: (row, col, value) entries; value "0".."8" or "" / "M" for a mine.
            flags: (row, col) entries.
            history: Prior moves (Move objects or {"row", "col", "action", "content"}).

        Returns:
            A TurnResult.
        """
        revealed_list = _as_list(revealed)
        flags_list = _as_list(flags)
        history_list = _as_list(history) or []

        try:
            return self._analyze(size, revealed_list, flags_list, history_list)
        except Exception:
            logger.exception("Board analysis failed; falling back to a random cell.")
            return self._fallback(size, revealed_list, flags_list)

    def _analyze(
        self,
        size: Any,
        revealed: Optional[List[Any]],
        flags: Optional[List[Any]],
        history: List[Any],
    ) -> TurnResult:
        model = build_board_model(size, revealed, flags)
        board_size = model.size
        if board_size is None:
            return self._fallback(size, revealed, flags)

        moves = [cell for cell, _ in iter_reveals(history) if board_size.contains(cell)]

        deduction = DeductionSolver(model, self.config).solve()
        probabilities = self.estimator.estimate(model, deduction)

        if self.memory is not None:
            history_moves = [Move(r, c) for r, c in moves]
            risks = {
                cell: self.memory.evaluate_cell(cell, board_size, history_moves).as_tuple()
                for cell, est in probabilities.items()
                if not est.certain
            }
            probabilities = self.estimator.blend_memory(probabilities, risks)

        flag_actions = [
            FlagAction(cell[0], cell[1], reason)
            for cell, reason in sorted(deduction.certain_mines.items())
            if cell not in model.flags
        ]
        flags_out = sorted(set(model.flags) | set(deduction.certain_mines))

        ctx = SelectionContext(
            model=model,
            deduction=deduction,
            probabilities=probabilities,
            moves=moves,
            memory=self.memory,
            config=self.config,
            rng=self.rng,
        )
        decision = select_move(ctx, self.strategies)

        return TurnResult(
            flags=flags_out,
            next_move=decision,
            flag_actions=flag_actions,
            model=model,
            deduction=deduction,
            probabilities=probabilities,
        )

    def _fallback(
        self, size: Any, revealed: Optional[List[Any]], flags: Optional[List[Any]]
    ) -> TurnResult:
        """Uniform random choice among cells not listed as revealed or flagged."""
        try:
            board_size = parse_board_size(size)
        except (MalformedBoardError, TypeError):
            return TurnResult(flags=[], next_move=None)

        excluded: List[Cell] = []
        known_flags: List[Cell] = []
        for entries, target in ((revealed or [], excluded), (flags or [], known_flags)):
            for entry in entries:
                try:
                    if isinstance(entry, Mapping):
                        cell = (entry["row"], entry["col"])
                    else:
                        cell = (entry[0], entry[1])
                except (KeyError, IndexError, TypeError):
                    continue
                if isinstance(cell[0], int) and isinstance(cell[1], int) and board_size.contains(cell):
                    target.append(cell)

        ctx = SelectionContext(
            model=BoardModel.inert(),
            deduction=DeductionResult(),
            probabilities={},
            config=self.config,
            rng=self.rng,
            fallback_cells=fallback_size_cells(board_size, excluded + known_flags),
        )
        return TurnResult(flags=sorted(set(known_flags)), next_move=random_fallback_strategy(ctx))


def analyze_board(
    size: Any,
    revealed: Iterable[Any],
    flags: Iterable[Any],
    history: Iterable[Any] = (),
    memory: Optional[GameMemory] = None,
    config: EngineConfig = DEFAULT_CONFIG,
    rng: Optional[random.Random] = None,
) -> TurnResult:
    """One-shot convenience wrapper around ``DecisionEngine.analyze_board``."""
    return DecisionEngine(config=config, memory=memory, rng=rng).analyze_board(
        size, revealed, flags, history
    )


def _as_list(entries: Any) -> Optional[List[Any]]:
    """Materialize an input sequence once; None for anything that is not iterable."""
    if entries is None:
        return None
    try:
        return list(entries)
    except TypeError:
        return None
