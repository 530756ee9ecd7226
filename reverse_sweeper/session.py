"""Reverse game session: the engine picks cells, the player answers what each one holds."""

import logging
import random
from typing import Any, Dict, List, Optional, Set, Tuple

from .board import BoardSize, parse_board_size, parse_value
from .config import DEFAULT_CONFIG, VALIDATION_MODES, EngineConfig
from .consistency import ConsistencyReport, check_answer
from .engine import DecisionEngine, Move, TurnResult
from .memory import GameMemory
from .selector import RANDOM_FALLBACK, MoveDecision
from .utils import Cell, format_cell

logger = logging.getLogger(__name__)


class GameSession:
    """
    State of one reverse Minesweeper game.

    The session owns the revealed cells, flags and move history, asks the
    engine for the next cell, applies the engine's flags, and records the
    outcome in memory when the game ends.
    """

    def __init__(
        self,
        size: Any,
        memory: Optional[GameMemory] = None,
        validation_mode: str = "warn",
        config: EngineConfig = DEFAULT_CONFIG,
        rng: Optional[random.Random] = None,
        engine: Optional[DecisionEngine] = None,
    ) -> None:
        """
        Initialize a new game.

        Args:
            size: Board size ((rows, cols), {"rows", "cols"} or BoardSize).
            memory: Cross-game memory shared with the engine; None disables it.
            validation_mode: "warn" accepts inconsistent answers and records them,
                "block" rejects them, "ignore" skips checking.
            config: Engine constants.
            rng: Random source for the opening move and engine tie-breaks.
            engine: Preconfigured engine; built from memory/config/rng if omitted.

        Raises:
            ValueError: If the size or validation mode is invalid.
        """
        if validation_mode not in VALIDATION_MODES:
            raise ValueError(f"validation_mode must be one of {VALIDATION_MODES}.")

        self.size: BoardSize = parse_board_size(size)
        self.validation_mode = validation_mode
        self.config = config
        self.rng = rng if rng is not None else random.Random()
        self.engine = engine or DecisionEngine(config=config, memory=memory, rng=self.rng)
        self.memory = memory if memory is not None else self.engine.memory

        self.revealed: Dict[Cell, str] = {}
        self.flags: Set[Cell] = set()
        self.history: List[Move] = []
        self.pending: Optional[MoveDecision] = None
        self.last_result: Optional[TurnResult] = None
        self.warnings: List[ConsistencyReport] = []
        self.status: str = "new"

    # -------------------------------------------------------------------------
    # State views
    # -------------------------------------------------------------------------

    @property
    def finished(self) -> bool:
        return self.status in ("won", "lost", "abandoned")

    @property
    def reveal_count(self) -> int:
        return sum(1 for m in self.history if m.action == "reveal")

    def hidden_cells(self) -> List[Cell]:
        """Cells neither revealed nor flagged."""
        return [
            c for c in self.size.cells() if c not in self.revealed and c not in self.flags
        ]

    def revealed_entries(self) -> List[Tuple[int, int, str]]:
        return [(r, c, v) for (r, c), v in sorted(self.revealed.items())]

    # -------------------------------------------------------------------------
    # Turn flow
    # -------------------------------------------------------------------------

    def next_move(self) -> Optional[MoveDecision]:
        """
        Return the cell the engine wants revealed, computing it if needed.

        Newly deduced flags are applied to the session before the move is returned.

        Returns:
            The pending MoveDecision, or None if the game is over.
        """
        if self.finished:
            return None
        if self.pending is not None:
            return self.pending

        if self.reveal_count == 0:
            cell = self.rng.choice(self.hidden_cells())
            self.pending = MoveDecision(cell, RANDOM_FALLBACK, f"{format_cell(cell)}: random opening move")
            self.status = "playing"
            return self.pending

        result = self.engine.analyze_board(
            self.size, self.revealed_entries(), sorted(self.flags), self.history
        )
        self.last_result = result

        for action in result.flag_actions:
            if action.cell not in self.flags:
                self.flags.add(action.cell)
                self.history.append(Move(action.row, action.col, "flag"))

        self.pending = result.next_move
        if self.pending is None:
            self._finish(won=True)
        return self.pending

    def answer(self, content: Any) -> ConsistencyReport:
        """
        Apply the player's answer for the pending cell.

        Args:
            content: "0".."8" for a safe cell, or "M" / "" for a mine.

        Returns:
            The consistency verdict. Under "block" an inconsistent answer is
            rejected and the cell stays pending.

        Raises:
            ValueError: If no cell is pending or the content is not a valid value.
        """
        if self.pending is None or self.finished:
            raise ValueError("No cell is waiting for an answer.")

        cell = self.pending.cell
        value = parse_value(content)

        if self.validation_mode == "ignore":
            report = ConsistencyReport(True, "Answer not checked.")
        else:
            report = check_answer(
                self.size, self.revealed_entries(), sorted(self.flags), cell, content, self.config
            )
            if not report.consistent:
                if self.validation_mode == "block":
                    return report
                self.warnings.append(report)

        text = "M" if value is None else str(value)
        self.revealed[cell] = text
        self.history.append(Move(cell[0], cell[1], "reveal", text))
        self.pending = None

        if value is None:
            if self.memory is not None:
                self.memory.record_mine_found(cell, self.size)
            self._finish(won=False)
        elif not self.hidden_cells():
            self._finish(won=True)

        return report

    def abandon(self) -> None:
        """End the game early; a started game counts as a loss."""
        if self.finished:
            return
        if self.reveal_count > 0:
            self._finish(won=False)
        else:
            self.status = "abandoned"
        self.pending = None

    def _finish(self, won: bool) -> None:
        self.status = "won" if won else "lost"
        self.pending = None
        logger.info(
            "Game on %dx%d %s after %d reveal(s).",
            self.size.rows,
            self.size.cols,
            self.status,
            self.reveal_count,
        )
        if self.memory is None:
            return
        if won:
            self.memory.record_win_sequence(self.history, self.size)
        else:
            self.memory.record_loss_sequence(self.history, self.size)

    # -------------------------------------------------------------------------
    # Display methods
    # -------------------------------------------------------------------------

    _ANSI_RESET = "\033[0m"
    _ANSI_COORD = "\033[96m"
    _ANSI_MINE = "\033[91m"
    _ANSI_PENDING = "\033[93m"

    def _c(self, s: str, color: bool) -> str:
        """Wrap string in coordinate color."""
        return f"{self._ANSI_COORD}{s}{self._ANSI_RESET}" if color else s

    def _m(self, s: str, color: bool) -> str:
        """Wrap string in mine color (red)."""
        return f"{self._ANSI_MINE}{s}{self._ANSI_RESET}" if color else s

    def format_board(self, color: bool = True) -> str:
        """
        Render the board as a multi-line string for terminal display.

        Revealed numbers are shown as digits, mines as "M", flags as "F",
        the pending cell as "?" and other hidden cells as ".".

        Args:
            color: If False, omit ANSI escape codes.

        Returns:
            A formatted multi-line string with 0-based coordinate labels.
        """
        h, w = self.size.rows, self.size.cols
        pending = self.pending.cell if self.pending is not None else None

        def cell_str(r: int, c: int) -> str:
            v = self.revealed.get((r, c))
            if v == "M":
                return self._m("M", color)
            if v is not None:
                return v
            if (r, c) in self.flags:
                return self._m("F", color)
            if (r, c) == pending:
                return f"{self._ANSI_PENDING}?{self._ANSI_RESET}" if color else "?"
            return "."

        header_cells = " ".join(f"{c:2d}" for c in range(w))
        out = [self._c("   ", color) + self._c(header_cells, color)]
        out.append(self._c("   " + "-" * (3 * w - 1), color))

        for r in range(h):
            row_cells = " ".join(f" {cell_str(r, c)}" for c in range(w))
            out.append(self._c(f"{r:2d} ", color) + self._c("|", color) + row_cells)

        return "\n".join(out)


def play_cli(session: GameSession) -> None:
    """
    Run a terminal UI where the engine picks cells and you say what they hold.

    Args:
        session: A fresh GameSession.
    """
    print("Reverse Minesweeper CLI. Answer 0-8 for a number, M for a mine, q to quit.\n")

    while True:
        decision = session.next_move()
        print(session.format_board())

        if decision is None:
            if session.status == "won":
                print("\nEvery safe cell is revealed. The engine won!")
            else:
                print(f"\nGame over ({session.status}).")
            return

        print(f"\nEngine reveals ({decision.cell[0]}, {decision.cell[1]}) [{decision.tag}]")
        print(f"  {decision.rationale}")

        s = input("Content: ").strip()
        if s.lower() in {"q", "quit", "exit"}:
            session.abandon()
            print("Quit.")
            return

        try:
            report = session.answer(s)
        except ValueError as exc:
            print(f"Invalid input: {exc}")
            continue

        if not report.consistent:
            verdict = "rejected" if session.validation_mode == "block" else "accepted anyway"
            print(f"\nInconsistent answer ({verdict}): {report.message}")

        if session.status == "lost":
            print("\nThe engine hit a mine. It lost.")
            print(session.format_board())
            return
