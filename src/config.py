from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

# Reproducibility constants.
SUBSAMPLE_SEED = 42
REPETITION_SEED_BASE = 1234
N_REPETITIONS = 10
PROGRESS_EVERY = 50

# Sweep defaults, in percent.
DEFAULT_MAX_MU = 33.1
DEFAULT_STEP_SIZE_MU = 0.1
DEFAULT_MAX_IMPRECISION = 33.3
DEFAULT_MAX_BIAS = 35.0
DEFAULT_STEP_SIZE_IMP_BIAS = 1.0


class SimulationModel(str, Enum):
    MU_ANALYTICAL = "Setting APS for measurement uncertainty - Analytical rerun simulation"
    MU_RESAMPLING = "Setting APS for measurement uncertainty - Resampling simulation"
    IMP_BIAS_ANALYTICAL = "Setting APS for imprecision and bias - Analytical rerun simulation"
    IMP_BIAS_RESAMPLING = "Setting APS for imprecision and bias - Resampling simulation"

    @property
    def sweeps_bias(self) -> bool:
        return self in (SimulationModel.IMP_BIAS_ANALYTICAL, SimulationModel.IMP_BIAS_RESAMPLING)

    @property
    def uses_inherent_cv(self) -> bool:
        return self in (SimulationModel.MU_RESAMPLING, SimulationModel.IMP_BIAS_RESAMPLING)

    @classmethod
    def from_label(cls, label: str, strict: bool = True) -> "SimulationModel":
        """
        Resolve a model label by exact match.

        With strict=False an unknown label falls back to MU_ANALYTICAL, which is
        how the desktop application behaved.
        """
        if isinstance(label, cls):
            return label
        for member in cls:
            if member.value == label:
                return member
        if not strict:
            logger.warning("Unknown simulation model %r, falling back to %r.", label, cls.MU_ANALYTICAL.value)
            return cls.MU_ANALYTICAL
        valid = "; ".join(f"'{m.value}'" for m in cls)
        raise ValueError(f"Unknown simulation model '{label}'. Expected one of: {valid}.")


@dataclass(frozen=True)
class AgreementThresholds:
    min: float = 90.0
    des: float = 95.0
    opt: float = 99.0

    def __post_init__(self) -> None:
        if not (self.min <= self.des <= self.opt):
            raise ValueError(
                f"agreement_thresholds must be ascending (min <= des <= opt). "
                f"Found min={self.min}, des={self.des}, opt={self.opt}."
            )

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.min, self.des, self.opt)


@dataclass(frozen=True)
class SimulationConfig:
    model: SimulationModel
    data: Tuple[float, ...]
    category_boundaries: Tuple[float, ...]
    decimal_places: int = 0
    agreement_thresholds: AgreementThresholds = field(default_factory=AgreementThresholds)
    cv_i: Optional[float] = None
    sample_size: Optional[int] = None
    max_mu: Optional[float] = None
    step_size_mu: Optional[float] = None
    max_imprecision: Optional[float] = None
    max_bias: Optional[float] = None
    step_size_imp_bias: Optional[float] = None
    # None lets ThreadPoolExecutor choose.
    max_workers: Optional[int] = None

    def __post_init__(self) -> None:
        # Normalise sequences so the config stays hashable and read-only.
        object.__setattr__(self, "model", SimulationModel.from_label(self.model))
        object.__setattr__(self, "data", tuple(float(v) for v in self.data))
        object.__setattr__(self, "category_boundaries", tuple(float(b) for b in self.category_boundaries))

        boundaries = self.category_boundaries
        if len(boundaries) == 0:
            raise ValueError("category_boundaries must contain at least one clinical decision limit.")
        for low, high in zip(boundaries, boundaries[1:]):
            if not low < high:
                raise ValueError(f"category_boundaries must be strictly increasing. Found {low} before {high}.")
        if int(self.decimal_places) != self.decimal_places or self.decimal_places < 0:
            raise ValueError(f"decimal_places must be a non-negative integer. Found {self.decimal_places}.")
        if self.cv_i is not None and self.cv_i < 0:
            raise ValueError("cv_i must be >= 0.")
        if self.sample_size is not None and self.sample_size < 0:
            raise ValueError("sample_size must be >= 0.")
        if self.max_workers is not None and self.max_workers < 1:
            raise ValueError("max_workers must be >= 1.")

        for name in ("max_mu", "max_imprecision", "max_bias"):
            value = getattr(self, name)
            if value is not None and value < 0:
                raise ValueError(f"{name} must be >= 0.")
        for name in ("step_size_mu", "step_size_imp_bias"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be > 0.")

    @property
    def cv_i_fraction(self) -> float:
        return (self.cv_i or 0.0) / 100.0

    def mu_range(self) -> Tuple[float, float]:
        max_mu = DEFAULT_MAX_MU if self.max_mu is None else self.max_mu
        step = DEFAULT_STEP_SIZE_MU if self.step_size_mu is None else self.step_size_mu
        return max_mu, step

    def imp_bias_range(self) -> Tuple[float, float, float]:
        max_imp = DEFAULT_MAX_IMPRECISION if self.max_imprecision is None else self.max_imprecision
        max_bias = DEFAULT_MAX_BIAS if self.max_bias is None else self.max_bias
        step = DEFAULT_STEP_SIZE_IMP_BIAS if self.step_size_imp_bias is None else self.step_size_imp_bias
        return max_imp, max_bias, step


def thresholds_from_value(value: object) -> AgreementThresholds:
    """Accept either {"min", "des", "opt"} or a [min, des, opt] sequence."""
    if isinstance(value, AgreementThresholds):
        return value
    if isinstance(value, dict):
        missing = [key for key in ("min", "des", "opt") if key not in value]
        if missing:
            raise ValueError(f"agreement_thresholds missing keys: {', '.join(missing)}.")
        return AgreementThresholds(float(value["min"]), float(value["des"]), float(value["opt"]))
    if isinstance(value, Sequence) and not isinstance(value, str):
        if len(value) != 3:
            raise ValueError("agreement_thresholds list must have exactly three values [min, des, opt].")
        return AgreementThresholds(*(float(v) for v in value))
    raise ValueError(f"Unsupported agreement_thresholds value: {value!r}")
