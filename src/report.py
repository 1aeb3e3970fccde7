from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

import pandas as pd

from config import AgreementThresholds
from simulator import SimulationPoint, SimulationResult

METRICS = ("agreement", "sensitivity", "specificity")
APS_LEVELS = (("Minimum", "min"), ("Desirable", "des"), ("Optimal", "opt"))

# Limits beyond this many percent are reported as not available.
NA_LIMIT_PCT = 33.0
NOT_OBTAINABLE = "NO"
NOT_AVAILABLE = "NA"

COMBINED_CLASSES = ("Sensitivity & Specificity", "Sensitivity", "Specificity", "Other")

Limit = Union[float, str]


def metric_value(point: SimulationPoint, metric: str, level: Optional[int] = None) -> float:
    if metric not in METRICS:
        raise ValueError(f"Unknown metric '{metric}'. Expected one of {', '.join(METRICS)}.")
    if level is None:
        return float(getattr(point, metric))
    return float(getattr(point, f"sublevel_{metric}")[level])


def results_frame(result: SimulationResult) -> pd.DataFrame:
    """One row per grid point; rates are in percent."""
    rows: List[Dict[str, Any]] = []
    for point in result.mu_data:
        row: Dict[str, Any] = {
            "mu_pct": point.mu * 100.0,
            "bias_pct": point.bias * 100.0,
        }
        for metric in METRICS:
            row[f"{metric}_pct"] = metric_value(point, metric) * 100.0
            row[f"{metric}_cat"] = getattr(point, f"{metric}_cat")
        for idx, name in enumerate(result.names):
            for metric in METRICS:
                row[f"{name} {metric}_pct"] = metric_value(point, metric, idx) * 100.0
        rows.append(row)
    return pd.DataFrame(rows)


def _limit(values: List[float], pick) -> Limit:
    if not values:
        return NOT_OBTAINABLE
    value = pick(values)
    if abs(value) > NA_LIMIT_PCT:
        return NOT_AVAILABLE
    return round(value, 1)


def aps_limits(
    result: SimulationResult,
    thresholds: AgreementThresholds,
    metric: str = "agreement",
    level: Optional[int] = None,
) -> List[Dict[str, Any]]:
    """
    Largest tolerable uncertainty and bias for each APS level.

    For every level the points whose metric reaches the threshold are kept;
    mu is their maximum uncertainty, bias_pos their maximum bias and bias_neg
    their minimum bias, all in percent.
    """
    rows = []
    for label, key in APS_LEVELS:
        threshold = getattr(thresholds, key)
        passing = [p for p in result.mu_data if metric_value(p, metric, level) * 100.0 >= threshold]
        rows.append(
            {
                "level": label,
                "threshold": threshold,
                "mu": _limit([p.mu * 100.0 for p in passing], max),
                "bias_pos": _limit([p.bias * 100.0 for p in passing], max),
                "bias_neg": _limit([p.bias * 100.0 for p in passing], min),
            }
        )
    return rows


def combined_class(sensitivity: float, specificity: float, minimum: float) -> str:
    """Which of per-category sensitivity/specificity reach the minimum percentage."""
    sens_ok = sensitivity * 100.0 >= minimum
    spec_ok = specificity * 100.0 >= minimum
    if sens_ok and spec_ok:
        return COMBINED_CLASSES[0]
    if sens_ok:
        return COMBINED_CLASSES[1]
    if spec_ok:
        return COMBINED_CLASSES[2]
    return COMBINED_CLASSES[3]


def combined_classes(result: SimulationResult, level: int, minimum: float) -> List[str]:
    return [
        combined_class(p.sublevel_sensitivity[level], p.sublevel_specificity[level], minimum)
        for p in result.mu_data
    ]
