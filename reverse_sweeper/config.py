"""Tunable constants for the decision engine and its persistent memory."""

from dataclasses import dataclass, field
from typing import Dict, Tuple

VALIDATION_MODES: Tuple[str, ...] = ("warn", "block", "ignore")

# Board sizes offered by the interactive front ends: (name, rows, cols).
BOARD_SIZES: Tuple[Tuple[str, int, int], ...] = (
    ("8x8", 8, 8),
    ("10x10", 10, 10),
    ("12x12", 12, 12),
    ("15x15", 15, 15),
    ("16x16", 16, 16),
    ("20x20", 20, 20),
)


def _default_number_factors() -> Dict[int, float]:
    return {1: 1.0, 2: 1.05, 3: 1.1, 4: 1.15, 5: 1.2, 6: 1.25, 7: 1.3, 8: 1.35}


@dataclass(frozen=True)
class EngineConfig:
    """
    Constants used by the solver, the probability estimator and the move selector.

    Raises:
        ValueError: If a value is outside its meaningful range.
    """

    base_probability: float = 0.15
    min_probability: float = 0.01
    max_probability: float = 0.99

    brute_force_max_cells: int = 12
    pattern_verification_max_cells: int = 16
    max_local_iterations: int = 200
    max_outer_rounds: int = 20

    low_probability_threshold: float = 0.05
    opening_fraction: float = 0.15
    midgame_fraction: float = 0.5
    opening_probability_ceiling: float = 0.2
    midgame_probability_ceiling: float = 0.3
    second_move_probability_ceiling: float = 0.3

    isolation_distance: int = 3
    isolation_factor: float = 0.7
    isolation_decay: float = 0.85
    high_number_threshold: int = 4

    corner_multiplier: float = 0.85
    edge_multiplier: float = 0.9
    center_multiplier: float = 1.05
    number_factors: Dict[int, float] = field(default_factory=_default_number_factors)

    memory_weight: float = 0.3

    def __post_init__(self) -> None:
        if not 0.0 < self.min_probability < self.max_probability < 1.0:
            raise ValueError("Probability bounds must satisfy 0 < min < max < 1.")
        if not self.min_probability <= self.base_probability <= self.max_probability:
            raise ValueError("base_probability must lie within the probability bounds.")
        if self.brute_force_max_cells < 1:
            raise ValueError("brute_force_max_cells must be positive.")
        if self.pattern_verification_max_cells < 1:
            raise ValueError("pattern_verification_max_cells must be positive.")
        if self.max_local_iterations < 1 or self.max_outer_rounds < 1:
            raise ValueError("Iteration caps must be positive.")
        if not 0.0 < self.opening_fraction < self.midgame_fraction <= 1.0:
            raise ValueError("Stage fractions must satisfy 0 < opening < midgame <= 1.")
        if not 0.0 <= self.memory_weight <= 1.0:
            raise ValueError("memory_weight must lie in [0, 1].")
        factors = [self.number_factors[k] for k in sorted(self.number_factors)]
        if any(b < a for a, b in zip(factors, factors[1:])):
            raise ValueError("number_factors must be non-decreasing in the number value.")

    def number_factor(self, value: int) -> float:
        """Adjacency multiplier for the highest revealed number next to a cell."""
        if value <= 0:
            return 0.0
        if value in self.number_factors:
            return self.number_factors[value]
        return self.number_factors[max(self.number_factors)]


@dataclass(frozen=True)
class MemoryConfig:
    """Caps and thresholds of the persistent cross-game memory."""

    mine_log_limit: int = 50
    losing_sequence_limit: int = 100
    game_log_limit: int = 20
    second_move_margin: float = 0.2
    second_move_min_win_rate: float = 0.6
    resolution: int = 10

    # Risk contributions of the historical rules.
    heat_risk_step: float = 0.2
    heat_risk_cap: float = 0.8
    nearby_mine_step: float = 0.1
    nearby_mine_cap: float = 0.4
    opening_loss_weight: float = 0.3
    second_move_loss_weight: float = 0.4
    sequence_risk_step: float = 0.25
    sequence_risk_cap: float = 0.75

    def __post_init__(self) -> None:
        if min(self.mine_log_limit, self.losing_sequence_limit, self.game_log_limit) < 1:
            raise ValueError("Memory log limits must be positive.")
        if self.resolution < 1:
            raise ValueError("resolution must be positive.")
        if not 0.0 <= self.second_move_min_win_rate <= 1.0:
            raise ValueError("second_move_min_win_rate must lie in [0, 1].")


DEFAULT_CONFIG = EngineConfig()
DEFAULT_MEMORY_CONFIG = MemoryConfig()
