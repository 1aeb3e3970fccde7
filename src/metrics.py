from __future__ import annotations

from dataclasses import dataclass
from typing import List

import numpy as np
from sklearn.metrics import confusion_matrix

from categories import format_limit
from config import AgreementThresholds


@dataclass
class ClassificationMetrics:
    agreement: float
    sensitivity: float        # micro-averaged, equals agreement
    specificity: float        # pooled TN / (TN + FP)
    sublevel_agreement: np.ndarray
    sublevel_sensitivity: np.ndarray
    sublevel_specificity: np.ndarray


def _safe_ratio(num: np.ndarray, den: np.ndarray) -> np.ndarray:
    """num / den with 0 wherever den == 0."""
    num = np.asarray(num, dtype=float)
    den = np.asarray(den, dtype=float)
    out = np.zeros(np.broadcast(num, den).shape, dtype=float)
    np.divide(num, den, out=out, where=den > 0)
    return out


def confusion_counts(true_idx: np.ndarray, pred_idx: np.ndarray, n_categories: int) -> np.ndarray:
    """N x N counts with rows = true category, columns = predicted category."""
    true_idx = np.asarray(true_idx)
    pred_idx = np.asarray(pred_idx)
    if true_idx.shape != pred_idx.shape:
        raise ValueError(
            f"True and predicted categories must have the same length ({len(true_idx)} vs {len(pred_idx)})."
        )
    if true_idx.size == 0:
        return np.zeros((n_categories, n_categories), dtype=np.int64)
    return confusion_matrix(true_idx, pred_idx, labels=list(range(n_categories))).astype(np.int64)


def metrics_from_confusion(cm: np.ndarray) -> ClassificationMetrics:
    cm = np.asarray(cm, dtype=np.int64)
    total = int(cm.sum())

    tp = np.diag(cm)
    fn = cm.sum(axis=1) - tp
    fp = cm.sum(axis=0) - tp
    tn = total - tp - fn - fp

    agreement = float(_safe_ratio(tp.sum(), total))
    specificity = float(_safe_ratio(tn.sum(), tn.sum() + fp.sum()))

    return ClassificationMetrics(
        agreement=agreement,
        sensitivity=agreement,
        specificity=specificity,
        sublevel_agreement=_safe_ratio(tp + tn, np.full_like(tp, total)),
        sublevel_sensitivity=_safe_ratio(tp, tp + fn),
        sublevel_specificity=_safe_ratio(tn, tn + fp),
    )


def average_metrics(runs: List[ClassificationMetrics]) -> ClassificationMetrics:
    if not runs:
        raise ValueError("average_metrics needs at least one repetition.")
    count = float(len(runs))
    return ClassificationMetrics(
        agreement=sum(r.agreement for r in runs) / count,
        sensitivity=sum(r.sensitivity for r in runs) / count,
        specificity=sum(r.specificity for r in runs) / count,
        sublevel_agreement=sum(r.sublevel_agreement for r in runs) / count,
        sublevel_sensitivity=sum(r.sublevel_sensitivity for r in runs) / count,
        sublevel_specificity=sum(r.sublevel_specificity for r in runs) / count,
    )


def band_label(value: float, thresholds: AgreementThresholds) -> str:
    pct = value * 100.0
    if pct >= thresholds.opt:
        return f"≥{format_limit(thresholds.opt)}%"
    if pct >= thresholds.des:
        return f"≥{format_limit(thresholds.des)}%"
    if pct >= thresholds.min:
        return f"≥{format_limit(thresholds.min)}%"
    return f"<{format_limit(thresholds.min)}%"
