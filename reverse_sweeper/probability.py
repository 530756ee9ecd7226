"""Heuristic mine-probability estimation for cells the solver could not classify."""

import logging
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Tuple

from .board import BoardModel
from .config import DEFAULT_CONFIG, EngineConfig
from .solver import DeductionResult
from .utils import Cell, border_kind, format_cell, nearest_distance

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RiskEstimate:
    """
    Mine likelihood of one hidden cell for the current turn.

    Attributes:
        probability: Value in [0, 1]; exactly 0 or 1 only for certain cells.
        certain: True if the value comes from a certainty set or a revealed 0.
        provenance: Short explanation of how the value was obtained.
    """

    probability: float
    certain: bool
    provenance: str


class ProbabilityEstimator:
    """
    Pessimistic per-cell estimate combining constraint ratios and position priors.

    Each touching constraint proposes (mines still missing) / (cells still open);
    the maximum is kept. Untouched cells start from a reduced base prior that
    decays with distance from the nearest revealed number. The result is scaled
    by the highest adjacent number and by the border position, then clamped.
    """

    def __init__(self, config: EngineConfig = DEFAULT_CONFIG) -> None:
        self.config = config

    def constraint_candidates(
        self, model: BoardModel, deduction: DeductionResult, cell: Cell
    ) -> List[Tuple[Cell, float]]:
        """
        Return (origin, ratio) for every feasible constraint with open cells touching cell.
        """
        candidates: List[Tuple[Cell, float]] = []
        for constraint in model.constraints_touching(cell):
            if not constraint.feasible:
                continue
            deduced_mines = sum(1 for c in constraint.unresolved if c in deduction.certain_mines)
            deduced_safes = sum(1 for c in constraint.unresolved if c in deduction.certain_safes)
            open_cells = len(constraint.unresolved) - deduced_mines - deduced_safes
            if open_cells <= 0:
                continue
            ratio = (constraint.missing - deduced_mines) / open_cells
            candidates.append((constraint.origin, min(1.0, max(0.0, ratio))))
        return candidates

    def _isolated_prior(self, cell: Cell, numbers: Iterable[Cell]) -> Tuple[float, str]:
        cfg = self.config
        p = cfg.base_probability * cfg.isolation_factor
        distance = nearest_distance(cell, numbers)
        if distance is not None and distance > cfg.isolation_distance:
            p *= cfg.isolation_decay ** (distance - cfg.isolation_distance)
            return p, f"isolated, distance {distance}"
        return p, "isolated"

    def estimate_cell(
        self,
        model: BoardModel,
        deduction: DeductionResult,
        cell: Cell,
        zero_neighbors: Optional[Iterable[Cell]] = None,
    ) -> RiskEstimate:
        """
        Estimate the mine probability of one hidden cell.

        Args:
            model: Current board model.
            deduction: Validated solver output for the same model.
            cell: Hidden cell to estimate.
            zero_neighbors: Precomputed hidden neighbors of revealed zeros.

        Returns:
            A RiskEstimate; certainty sets and revealed zeros override everything.
        """
        cfg = self.config
        zeros = model.zero_neighbors() if zero_neighbors is None else zero_neighbors

        if cell in deduction.certain_mines:
            return RiskEstimate(1.0, True, deduction.certain_mines[cell])
        if cell in zeros:
            return RiskEstimate(0.0, True, "adjacent to a revealed 0")
        if cell in deduction.certain_safes:
            return RiskEstimate(0.0, True, deduction.certain_safes[cell])

        candidates = self.constraint_candidates(model, deduction, cell)
        if candidates:
            origin, p = max(candidates, key=lambda item: item[1])
            provenance = f"max over {len(candidates)} constraint(s), worst {format_cell(origin)}"
        else:
            p, provenance = self._isolated_prior(cell, model.values)

        highest = model.highest_number_around(cell)
        if highest is not None:
            p *= cfg.number_factor(highest)

        if model.size is None:
            raise ValueError("Cannot estimate cells of an inert board model.")
        position = border_kind(cell, model.size.rows, model.size.cols)
        if position == "corner":
            p *= cfg.corner_multiplier
        elif position == "edge":
            p *= cfg.edge_multiplier
        elif position == "center":
            p *= cfg.center_multiplier

        p = min(cfg.max_probability, max(cfg.min_probability, p))
        return RiskEstimate(p, False, provenance)

    def estimate(self, model: BoardModel, deduction: DeductionResult) -> Dict[Cell, RiskEstimate]:
        """
        Estimate every hidden cell of the model.

        Returns:
            Mapping from each hidden cell to its RiskEstimate; empty for an inert model.
        """
        if model.is_inert:
            return {}

        zeros = model.zero_neighbors()
        estimates = {
            cell: self.estimate_cell(model, deduction, cell, zeros)
            for cell in sorted(model.hidden)
        }
        logger.debug(
            "Estimated %d hidden cells, %d of them certain.",
            len(estimates),
            sum(1 for est in estimates.values() if est.certain),
        )
        return estimates

    def blend_memory(
        self,
        estimates: Dict[Cell, RiskEstimate],
        risks: Dict[Cell, Tuple[float, str, str]],
    ) -> Dict[Cell, RiskEstimate]:
        """
        Blend historical risk into non-certain estimates.

        Args:
            estimates: Output of ``estimate``.
            risks: cell -> (risk_factor, reasoning, confidence) from the memory.

        Returns:
            New mapping; certain cells are returned unchanged.
        """
        cfg = self.config
        w = cfg.memory_weight
        blended: Dict[Cell, RiskEstimate] = {}

        for cell, est in estimates.items():
            risk = risks.get(cell)
            if est.certain or risk is None:
                blended[cell] = est
                continue

            factor, reasoning, confidence = risk
            if confidence == "extreme":
                p = cfg.max_probability
            else:
                p = (1.0 - w) * est.probability + w * factor
            p = min(cfg.max_probability, max(cfg.min_probability, p))
            if confidence == "low":
                blended[cell] = replace(est, probability=p)
            else:
                blended[cell] = replace(
                    est, probability=p, provenance=f"{est.provenance}; memory: {reasoning}"
                )

        return blended
