"""Layered move selection: an ordered chain of strategies, first match wins."""

import logging
import random
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from .board import BoardModel, BoardSize
from .config import DEFAULT_CONFIG, EngineConfig
from .memory import GameMemory
from .probability import RiskEstimate
from .solver import DeductionResult
from .utils import Cell, format_cell, manhattan, nearest_distance

logger = logging.getLogger(__name__)

CERTAIN_SAFE = "certain-safe"
MEMORY_INFORMED = "memory-informed"
LOW_PROBABILITY = "low-probability"
STAGED_HEURISTIC = "staged-heuristic"
RANDOM_FALLBACK = "random-fallback"


@dataclass(frozen=True)
class MoveDecision:
    """
    Cell chosen for the next reveal.

    Attributes:
        cell: The (row, col) to reveal.
        tag: Strategy layer that produced the decision.
        rationale: Human-readable explanation.
        probability: Estimated mine probability of the cell, if known.
    """

    cell: Cell
    tag: str
    rationale: str
    probability: Optional[float] = None


@dataclass
class SelectionContext:
    """Everything a strategy may consult for one turn."""

    model: BoardModel
    deduction: DeductionResult
    probabilities: Dict[Cell, RiskEstimate]
    moves: List[Cell] = field(default_factory=list)
    memory: Optional[GameMemory] = None
    config: EngineConfig = DEFAULT_CONFIG
    rng: random.Random = field(default_factory=random.Random)
    fallback_cells: Sequence[Cell] = ()

    @property
    def last_move(self) -> Optional[Cell]:
        return self.moves[-1] if self.moves else None

    def candidates(self) -> List[Tuple[Cell, float]]:
        """Hidden cells that are not certain mines, with their probability."""
        return [
            (cell, est.probability)
            for cell, est in sorted(self.probabilities.items())
            if cell not in self.deduction.certain_mines
        ]

    def nearest_to_last(self, cells: Sequence[Cell]) -> Optional[Cell]:
        """Closest cell to the most recent move, or None if there is no move yet."""
        last = self.last_move
        if last is None or not cells:
            return None
        return min(cells, key=lambda c: (manhattan(c, last), c))


Strategy = Callable[[SelectionContext], Optional[MoveDecision]]


def _lowest(items: Sequence[Tuple[Cell, float]]) -> List[Tuple[Cell, float]]:
    """All entries sharing the minimum probability."""
    if not items:
        return []
    best = min(round(p, 9) for _, p in items)
    return [(c, p) for c, p in items if round(p, 9) == best]


def certain_safe_strategy(ctx: SelectionContext) -> Optional[MoveDecision]:
    safes = sorted(ctx.deduction.certain_safes)
    if not safes:
        return None

    zeros = ctx.model.zero_neighbors()
    preferred = [c for c in safes if c in zeros] or safes
    cell = ctx.nearest_to_last(preferred) or preferred[0]
    return MoveDecision(
        cell,
        CERTAIN_SAFE,
        f"{format_cell(cell)} is safe: {ctx.deduction.certain_safes[cell]}",
        0.0,
    )


def memory_second_move_strategy(ctx: SelectionContext) -> Optional[MoveDecision]:
    if ctx.memory is None or len(ctx.moves) != 1 or ctx.model.size is None:
        return None

    recommendation = ctx.memory.recommend_second_move(ctx.moves[0], ctx.model.size)
    if recommendation is None:
        return None

    est = ctx.probabilities.get(recommendation.cell)
    if (
        est is None
        or recommendation.cell in ctx.deduction.certain_mines
        or est.probability >= ctx.config.second_move_probability_ceiling
    ):
        return None

    return MoveDecision(
        recommendation.cell,
        MEMORY_INFORMED,
        (
            f"{format_cell(recommendation.cell)} won {round(recommendation.win_rate * 100)}% "
            f"of {recommendation.samples} past games after this opening"
        ),
        est.probability,
    )


def low_probability_strategy(ctx: SelectionContext) -> Optional[MoveDecision]:
    threshold = ctx.config.low_probability_threshold
    low = [(c, p) for c, p in ctx.candidates() if p < threshold]
    tied = _lowest(low)
    if not tied:
        return None

    cells = [c for c, _ in tied]
    cell = ctx.nearest_to_last(cells) or ctx.rng.choice(cells)
    p = ctx.probabilities[cell].probability
    return MoveDecision(
        cell,
        LOW_PROBABILITY,
        f"{format_cell(cell)} has mine probability {p:.3f} (below {threshold})",
        p,
    )


def staged_strategy(ctx: SelectionContext) -> Optional[MoveDecision]:
    cfg = ctx.config
    model = ctx.model
    fraction = model.revealed_fraction
    candidates = ctx.candidates()

    if fraction < cfg.opening_fraction:
        pool = [(c, p) for c, p in candidates if p <= cfg.opening_probability_ceiling]
        if not pool:
            return None
        anchors = list(ctx.moves) or list(model.values) + list(model.exposed_mines)
        if not anchors:
            cell, p = _lowest(pool)[0]
            reason = "opening, lowest probability"
        else:
            cell, p = max(
                pool,
                key=lambda item: (nearest_distance(item[0], anchors) or 0, -item[1], item[0]),
            )
            reason = f"opening, diversifying {nearest_distance(cell, anchors)} away from earlier moves"
        return MoveDecision(cell, STAGED_HEURISTIC, f"{format_cell(cell)}: {reason}, p={p:.3f}", p)

    if fraction < cfg.midgame_fraction:
        ceiling = cfg.midgame_probability_ceiling
        frontier = [(c, p) for c, p in candidates if p <= ceiling and model.is_frontier(c)]
        outer = [(c, p) for c, p in candidates if p <= ceiling and not model.is_frontier(c)]
        for pool, label in ((frontier, "frontier"), (outer, "non-frontier")):
            tied = _lowest(pool)
            if tied:
                cells = [c for c, _ in tied]
                cell = ctx.nearest_to_last(cells) or cells[0]
                p = ctx.probabilities[cell].probability
                return MoveDecision(
                    cell,
                    STAGED_HEURISTIC,
                    f"{format_cell(cell)}: midgame, lowest {label} probability {p:.3f}",
                    p,
                )
        return None

    tied = _lowest(candidates)
    if not tied:
        return None
    cell, p = tied[0]
    return MoveDecision(
        cell, STAGED_HEURISTIC, f"{format_cell(cell)}: endgame, global lowest probability {p:.3f}", p
    )


def global_lowest_strategy(ctx: SelectionContext) -> Optional[MoveDecision]:
    candidates = ctx.candidates()
    if not candidates:
        return None

    threshold = ctx.config.high_number_threshold

    def near_high_number(cell: Cell) -> bool:
        highest = ctx.model.highest_number_around(cell)
        return highest is not None and highest >= threshold

    calm = [(c, p) for c, p in candidates if not near_high_number(c)]
    pool = calm or candidates
    cell, p = _lowest(pool)[0]
    suffix = "" if calm else " (every candidate borders a high number)"
    return MoveDecision(
        cell, STAGED_HEURISTIC, f"{format_cell(cell)}: global lowest probability {p:.3f}{suffix}", p
    )


def random_fallback_strategy(ctx: SelectionContext) -> Optional[MoveDecision]:
    if ctx.model.is_inert:
        cells = sorted(ctx.fallback_cells)
    else:
        cells = sorted(c for c in ctx.model.hidden if c not in ctx.deduction.certain_mines)
    if not cells:
        return None
    cell = ctx.rng.choice(cells)
    return MoveDecision(cell, RANDOM_FALLBACK, f"{format_cell(cell)}: uniform random choice")


DEFAULT_STRATEGIES: Tuple[Strategy, ...] = (
    certain_safe_strategy,
    memory_second_move_strategy,
    low_probability_strategy,
    staged_strategy,
    global_lowest_strategy,
    random_fallback_strategy,
)


def select_move(
    ctx: SelectionContext, strategies: Sequence[Strategy] = DEFAULT_STRATEGIES
) -> Optional[MoveDecision]:
    """
    Evaluate strategies in priority order and return the first decision.

    Returns:
        A MoveDecision, or None if no hidden cell is left to reveal.
    """
    for strategy in strategies:
        decision = strategy(ctx)
        if decision is not None:
            logger.debug("Selected %s via %s: %s", decision.cell, decision.tag, decision.rationale)
            return decision
    return None


def fallback_size_cells(size: Optional[BoardSize], excluded: Sequence[Cell]) -> List[Cell]:
    """Every cell of size not listed in excluded; empty when the size is unknown."""
    if size is None:
        return []
    skip = set(excluded)
    return [c for c in size.cells() if c not in skip]
