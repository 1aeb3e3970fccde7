from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence, Tuple

import numpy as np


@dataclass(frozen=True)
class CategorySet:
    bins: Tuple[float, ...]      # boundaries with -inf/+inf sentinels
    names: Tuple[str, ...]

    def __post_init__(self) -> None:
        if len(self.names) != len(self.bins) - 1:
            raise ValueError(
                f"CategorySet needs len(names) == len(bins) - 1, got {len(self.names)} names for {len(self.bins)} bins."
            )

    @property
    def boundaries(self) -> Tuple[float, ...]:
        return self.bins[1:-1]

    def __len__(self) -> int:
        return len(self.names)


def format_limit(value: float) -> str:
    value = float(value)
    if value.is_integer():
        return str(int(value))
    return repr(value)


def category_names(boundaries: Sequence[float]) -> List[str]:
    labels = [format_limit(b) for b in boundaries]
    names = [f"<{labels[0]}"]
    for low, high in zip(labels, labels[1:]):
        names.append(f"≥{low} and <{high}")
    names.append(f"≥{labels[-1]}")
    return names


def build_category_set(boundaries: Sequence[float]) -> CategorySet:
    if len(boundaries) == 0:
        raise ValueError("At least one category boundary is required.")
    bins = (float("-inf"), *(float(b) for b in boundaries), float("inf"))
    return CategorySet(bins=bins, names=tuple(category_names(boundaries)))


def categorize(value: float, bins: Sequence[float], names: Sequence[str]) -> int:
    """
    Index of the half-open interval [bins[i], bins[i+1]) holding value.

    Values equal to a boundary fall in the upper interval. Anything that never
    compares below a bin (+inf, NaN) lands in the last category.
    """
    for i in range(1, len(bins)):
        if value < bins[i]:
            return i - 1
    return len(names) - 1


def categorize_array(values: np.ndarray, category_set: CategorySet) -> np.ndarray:
    """Vectorised categorize(); searchsorted(side="right") keeps intervals closed on the left."""
    values = np.asarray(values, dtype=float)
    boundaries = np.asarray(category_set.boundaries, dtype=float)
    idx = np.searchsorted(boundaries, values, side="right")
    return np.minimum(idx, len(category_set) - 1).astype(np.intp)


def round_half_away(values: np.ndarray, decimals: int) -> np.ndarray:
    """Round to `decimals` places with ties going away from zero."""
    scaled = np.asarray(values, dtype=float) * (10.0 ** decimals)
    with np.errstate(invalid="ignore"):
        rounded = np.round(scaled)
        truncated = np.trunc(scaled)
        ties = np.abs(scaled - truncated) == 0.5
    rounded = np.where(ties, truncated + np.sign(scaled), rounded)
    return rounded / (10.0 ** decimals)
