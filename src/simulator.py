from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from categories import CategorySet, build_category_set, categorize_array, round_half_away
from config import (
    N_REPETITIONS,
    PROGRESS_EVERY,
    REPETITION_SEED_BASE,
    SUBSAMPLE_SEED,
    AgreementThresholds,
    SimulationConfig,
    SimulationModel,
)
from metrics import average_metrics, band_label, confusion_counts, metrics_from_confusion

logger = logging.getLogger(__name__)

ProgressSink = Callable[[float], None]


@dataclass(frozen=True)
class SimulationPoint:
    mu: float
    bias: float
    agreement: float
    sensitivity: float
    specificity: float
    agreement_cat: str
    sensitivity_cat: str
    specificity_cat: str
    sublevel_agreement: List[float]
    sublevel_sensitivity: List[float]
    sublevel_specificity: List[float]


@dataclass(frozen=True)
class SimulationResult:
    mu_data: List[SimulationPoint]
    names: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"mu_data": [asdict(p) for p in self.mu_data], "names": list(self.names)}

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "SimulationResult":
        points = [SimulationPoint(**item) for item in payload["mu_data"]]
        return cls(mu_data=points, names=list(payload["names"]))


@dataclass(frozen=True)
class _RunContext:
    data: np.ndarray
    true_idx: np.ndarray
    categories: CategorySet
    noise: Tuple[np.ndarray, ...]   # one standard-normal vector per repetition seed
    model: SimulationModel
    cv_i: float                     # fraction
    decimal_places: int
    thresholds: AgreementThresholds


class ProgressReporter:
    """
    Shared completed-point counter.

    The sink is only notified every PROGRESS_EVERY points and on the final
    point, and it is always called outside the lock.
    """

    def __init__(self, total: int, sink: Optional[ProgressSink] = None, every: int = PROGRESS_EVERY):
        self.total = total
        self.sink = sink
        self.every = every
        self._count = 0
        self._lock = threading.Lock()

    @property
    def count(self) -> int:
        with self._lock:
            return self._count

    def tick(self) -> None:
        with self._lock:
            self._count += 1
            count = self._count
            notify = count % self.every == 0 or count == self.total
        if notify and self.sink is not None:
            pct = count / self.total * 100.0 if self.total else 100.0
            try:
                self.sink(pct)
            except Exception:  # listener problems never stop the run
                logger.debug("Progress sink raised at %.1f%%; ignoring.", pct, exc_info=True)


def prepare_data(data: Sequence[float], sample_size: Optional[int] = None) -> np.ndarray:
    """Shuffle with a fixed seed and truncate when a smaller sample is requested."""
    values = np.array(data, dtype=float)
    if sample_size is not None and sample_size < len(values):
        rng = np.random.default_rng(SUBSAMPLE_SEED)
        rng.shuffle(values)
        values = values[:sample_size]
    return values


def _axis(max_pct: float, step_pct: float, symmetric: bool = False) -> List[float]:
    # Integer step counting keeps the grid free of accumulated float drift.
    n_steps = int(round(max_pct / step_pct))
    step = step_pct / 100.0
    start = -n_steps if symmetric else 0
    return [i * step for i in range(start, n_steps + 1)]


def build_axes(config: SimulationConfig) -> Tuple[List[float], List[float]]:
    """Return (uncertainty/imprecision axis, bias axis) as fractions."""
    if config.model.sweeps_bias:
        max_imp, max_bias, step = config.imp_bias_range()
        return _axis(max_imp, step), _axis(max_bias, step, symmetric=True)
    max_mu, step = config.mu_range()
    return _axis(max_mu, step), [0.0]


def draw_noise(seed: int, size: int) -> np.ndarray:
    return np.random.default_rng(seed).standard_normal(size)


def noise_scale(model: SimulationModel, mu: float, cv_i: float) -> float:
    if model.uses_inherent_cv:
        return float(np.sqrt(mu ** 2 + cv_i ** 2))
    return mu


def perturb(data: np.ndarray, noise: np.ndarray, scale: float, bias: float, decimal_places: int) -> np.ndarray:
    """Apply proportional noise and bias, then round to reporting precision."""
    # Bias is proportional to the original value, not the noisy one.
    values = data * (1.0 + noise * scale) + data * bias
    return round_half_away(values, decimal_places)


def evaluate_point(mu: float, bias: float, ctx: _RunContext) -> SimulationPoint:
    scale = noise_scale(ctx.model, mu, ctx.cv_i)
    n_categories = len(ctx.categories)

    runs = []
    for noise in ctx.noise:
        perturbed = perturb(ctx.data, noise, scale, bias, ctx.decimal_places)
        pred_idx = categorize_array(perturbed, ctx.categories)
        cm = confusion_counts(ctx.true_idx, pred_idx, n_categories)
        runs.append(metrics_from_confusion(cm))
    avg = average_metrics(runs)

    return SimulationPoint(
        mu=mu,
        bias=bias,
        agreement=avg.agreement,
        sensitivity=avg.sensitivity,
        specificity=avg.specificity,
        agreement_cat=band_label(avg.agreement, ctx.thresholds),
        sensitivity_cat=band_label(avg.sensitivity, ctx.thresholds),
        specificity_cat=band_label(avg.specificity, ctx.thresholds),
        sublevel_agreement=avg.sublevel_agreement.tolist(),
        sublevel_sensitivity=avg.sublevel_sensitivity.tolist(),
        sublevel_specificity=avg.sublevel_specificity.tolist(),
    )


def run_simulation(config: SimulationConfig, progress: Optional[ProgressSink] = None) -> SimulationResult:
    """
    Sweep the configured grid and score category agreement at every point.

    Each grid point runs N_REPETITIONS perturbation passes (seeds
    REPETITION_SEED_BASE + 1 .. + N_REPETITIONS) and averages their confusion
    metrics. Points are evaluated on a thread pool; mu_data keeps the nested
    order (every bias value for the first mu, then the second mu, ...).
    """
    categories = build_category_set(config.category_boundaries)
    data = prepare_data(config.data, config.sample_size)
    true_idx = categorize_array(data, categories)
    mu_axis, bias_axis = build_axes(config)

    ctx = _RunContext(
        data=data,
        true_idx=true_idx,
        categories=categories,
        noise=tuple(
            draw_noise(REPETITION_SEED_BASE + s, len(data)) for s in range(1, N_REPETITIONS + 1)
        ),
        model=config.model,
        cv_i=config.cv_i_fraction,
        decimal_places=int(config.decimal_places),
        thresholds=config.agreement_thresholds,
    )

    grid = [(mu, bias) for mu in mu_axis for bias in bias_axis]
    reporter = ProgressReporter(total=len(grid), sink=progress)
    logger.info(
        "Running '%s' over %d grid points (%d x %d) with %d values in %d categories.",
        config.model.value,
        len(grid),
        len(mu_axis),
        len(bias_axis),
        len(data),
        len(categories),
    )

    def _evaluate(point: Tuple[float, float]) -> SimulationPoint:
        result = evaluate_point(point[0], point[1], ctx)
        reporter.tick()
        return result

    # executor.map yields in submission order, whatever the completion order.
    with ThreadPoolExecutor(max_workers=config.max_workers) as executor:
        mu_data = list(executor.map(_evaluate, grid))

    logger.info("Simulation finished: %d points evaluated.", reporter.count)
    return SimulationResult(mu_data=mu_data, names=list(categories.names))
