"""Text and matplotlib views of engine decisions and memory, plus aggregate summaries."""

from typing import Dict, List, Optional, Sequence

import matplotlib.pyplot as plt
import numpy as np

from .board import BoardSize
from .engine import TurnResult
from .memory import GameMemory


def _grid_lines(rows: int, cols: int, cell_char, show_coords: bool) -> List[str]:
    lines: List[str] = []
    if show_coords:
        header = " ".join(f"{c:2d}" for c in range(cols))
        lines.append("   " + header)
        lines.append("   " + "-" * (3 * cols - 1))

    for r in range(rows):
        row = " ".join(f"{cell_char(r, c):>2}" for c in range(cols))
        lines.append(f"{r:2d} |" + row if show_coords else row)
    return lines


def format_board_knowledge(result: TurnResult, *, show_coords: bool = True) -> str:
    """
    Format what the engine knows after one analysis as a human-readable grid.

    Args:
        result: Output of ``DecisionEngine.analyze_board``.
        show_coords: If True, include coordinate labels and a header.

    Returns:
        A text grid: digits for revealed numbers, 'M' for exposed mines,
        'F' for existing flags, '*' for deduced mines, 's' for deduced safe
        cells, '?' for the chosen next cell and '.' for other hidden cells.
    """
    model = result.model
    if model.size is None:
        return "(no board)"

    next_cell = result.next_move.cell if result.next_move is not None else None

    def cell_char(r: int, c: int) -> str:
        cell = (r, c)
        if cell in model.values:
            return str(model.values[cell])
        if cell in model.exposed_mines:
            return "M"
        if cell in model.flags:
            return "F"
        if cell == next_cell:
            return "?"
        if cell in result.deduction.certain_mines:
            return "*"
        if cell in result.deduction.certain_safes:
            return "s"
        return "."

    return "\n".join(_grid_lines(model.size.rows, model.size.cols, cell_char, show_coords))


def format_probability_map(result: TurnResult, *, show_coords: bool = True) -> str:
    """
    Format per-cell mine probabilities as whole percentages.

    Hidden cells show their estimate (0-99, '!!' for a certain mine); revealed
    and flagged cells are blank.
    """
    model = result.model
    if model.size is None:
        return "(no board)"

    def cell_char(r: int, c: int) -> str:
        est = result.probabilities.get((r, c))
        if est is None:
            return ""
        if est.certain and est.probability >= 1.0:
            return "!!"
        return str(min(99, int(round(est.probability * 100))))

    return "\n".join(_grid_lines(model.size.rows, model.size.cols, cell_char, show_coords))


def probability_grid(result: TurnResult) -> np.ndarray:
    """
    Return probabilities as a (rows, cols) float array, NaN where no estimate exists.

    Raises:
        ValueError: If the result has no board (malformed input).
    """
    size = result.model.size
    if size is None:
        raise ValueError("The turn result carries no board model.")

    grid = np.full((size.rows, size.cols), np.nan, dtype=float)
    for (r, c), est in result.probabilities.items():
        grid[r, c] = est.probability
    return grid


def memory_heat_grid(memory: GameMemory, size: BoardSize) -> np.ndarray:
    """Project the memory heat-map onto a (rows, cols) array of mine counts."""
    grid = np.zeros((size.rows, size.cols), dtype=float)
    for (r, c), count in memory.heat_map_cells(size).items():
        if size.contains((r, c)):
            grid[r, c] += count
    return grid


def plot_probability_map(result: TurnResult, *, show: bool = True):
    """
    Plot the probability grid as a heat map with the chosen cell marked.

    Args:
        result: Output of ``DecisionEngine.analyze_board``.
        show: If True, call plt.show() before returning.

    Returns:
        The matplotlib Figure.
    """
    grid = probability_grid(result)

    fig = plt.figure()  # type: ignore[misc]
    plt.imshow(np.ma.masked_invalid(grid), cmap="Reds", vmin=0.0, vmax=1.0)  # type: ignore[misc]
    plt.colorbar(label="Mine probability")  # type: ignore[misc]
    if result.next_move is not None:
        r, c = result.next_move.cell
        plt.scatter([c], [r], marker="o", facecolors="none", edgecolors="blue", s=200)  # type: ignore[misc]
    plt.title(f"Mine probabilities ({result.tag or 'no move'})")  # type: ignore[misc]
    plt.xlabel("col")  # type: ignore[misc]
    plt.ylabel("row")  # type: ignore[misc]
    plt.tight_layout()
    if show:
        plt.show()  # type: ignore[misc]
    return fig


def plot_memory_heat_map(memory: GameMemory, size: BoardSize, *, show: bool = True):
    """
    Plot where past games found mines, projected onto a board of the given size.

    Returns:
        The matplotlib Figure.
    """
    grid = memory_heat_grid(memory, size)

    fig = plt.figure()  # type: ignore[misc]
    plt.imshow(grid, cmap="hot", interpolation="nearest")  # type: ignore[misc]
    plt.colorbar(label="Recorded mines")  # type: ignore[misc]
    plt.title(f"Memory heat map ({size.rows}x{size.cols})")  # type: ignore[misc]
    plt.tight_layout()
    if show:
        plt.show()  # type: ignore[misc]
    return fig


def summarize_memory(memory: GameMemory) -> Dict[str, float]:
    """
    Aggregate statistics of the persisted memory.

    Returns:
        Dict with games_played, wins, losses, win_rate, mines_found,
        avg_moves_per_game, heat_map_keys and losing_sequences.
    """
    rec = memory.record
    stats = rec.stats
    games = float(stats.get("games_played", 0))
    return {
        "games_played": games,
        "wins": float(stats.get("wins", 0)),
        "losses": float(stats.get("losses", 0)),
        "win_rate": float(stats.get("wins", 0)) / games if games > 0 else 0.0,
        "mines_found": float(stats.get("mines_found", 0)),
        "avg_moves_per_game": float(stats.get("total_moves", 0)) / games if games > 0 else 0.0,
        "heat_map_keys": float(len(rec.heat_map)),
        "losing_sequences": float(len(rec.losing_sequences)),
    }


def summarize_deductions(
    results: Sequence[TurnResult], *, plot: bool = False, show: bool = True
) -> Dict[str, float]:
    """
    Combine solver counters and move tags over many turns.

    Args:
        results: Turn results, typically one game's worth.
        plot: If True, draw a bar chart of inferences by technique.
        show: Passed through to plt.show() when plotting.

    Returns:
        Dict with per-technique inference totals, productivity per attempt,
        rollback count and the fraction of moves produced by each tag.
    """
    totals: Dict[str, float] = {}
    tags: Dict[str, float] = {}
    rollbacks = 0.0

    for result in results:
        for k, v in result.deduction.stats.items():
            totals[k] = totals.get(k, 0.0) + float(v)
        if result.deduction.rolled_back:
            rollbacks += 1.0
        if result.tag is not None:
            tags[result.tag] = tags.get(result.tag, 0.0) + 1.0

    def per_attempt(inferred: str, attempted: str) -> float:
        att = totals.get(attempted, 0.0)
        return totals.get(inferred, 0.0) / att if att > 0 else 0.0

    out: Dict[str, float] = {k: v for k, v in totals.items()}
    out["single_forced_per_call"] = per_attempt("inferred_single_count", "attempted_single_count")
    out["paired_forced_per_call"] = per_attempt("inferred_paired_count", "attempted_paired_count")
    out["bruteforce_forced_per_call"] = per_attempt(
        "inferred_bruteforce_count", "attempted_bruteforce_count"
    )
    out["rollbacks"] = rollbacks

    moves = sum(tags.values())
    for tag, count in tags.items():
        out[f"{tag}_frac"] = count / moves if moves > 0 else 0.0

    if plot:
        labels = ["single", "paired", "bruteforce", "pattern"]
        values = [
            totals.get("inferred_single_count", 0.0),
            totals.get("inferred_paired_count", 0.0),
            totals.get("inferred_bruteforce_count", 0.0),
            totals.get("inferred_pattern_count", 0.0),
        ]
        x = np.arange(len(labels))
        plt.figure()  # type: ignore[misc]
        plt.bar(x, values)  # type: ignore[misc]
        plt.xticks(x, labels)  # type: ignore[misc]
        plt.ylabel("Inferred cells")  # type: ignore[misc]
        plt.title("Inferences by technique")  # type: ignore[misc]
        plt.tight_layout()
        if show:
            plt.show()  # type: ignore[misc]

    return out


def describe_turn(result: TurnResult, memory: Optional[GameMemory] = None) -> str:
    """One-paragraph text summary of a turn, for logs and the demo sidebar."""
    lines = [f"Next move: {result.rationale}"]
    if result.flag_actions:
        flagged = ", ".join(f"({a.row},{a.col})" for a in result.flag_actions)
        lines.append(f"New flags: {flagged}")
    if result.deduction.rolled_back:
        lines.append("Deductions were discarded after a contradiction.")
    if memory is not None:
        summary = summarize_memory(memory)
        lines.append(
            f"Memory: {int(summary['games_played'])} games, win rate {summary['win_rate']:.0%}"
        )
    return "\n".join(lines)
