import argparse
import json
import sys
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from config import SimulationModel, thresholds_from_value
from report import COMBINED_CLASSES, METRICS, combined_classes, metric_value
from simulator import SimulationResult

BAND_COLORS = ("#0000FF", "#00B000", "#A60000", "#C8C8C8")
COMBINED_COLORS = dict(zip(COMBINED_CLASSES, ("#F4D03F", "#76C7C0", "#AED6F1", "#D7DBDD")))


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Render charts for a finished simulation.")
    parser.add_argument(
        "--input",
        type=Path,
        default=Path("outputs") / "simulation" / "simulation_result.json",
        help="simulation_result.json written by main.py.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("outputs") / "simulation" / "charts",
        help="Directory to write PNG charts.",
    )
    return parser.parse_args()


def _band_color(pct: float, thresholds) -> str:
    if pct >= thresholds.opt:
        return BAND_COLORS[0]
    if pct >= thresholds.des:
        return BAND_COLORS[1]
    if pct >= thresholds.min:
        return BAND_COLORS[2]
    return BAND_COLORS[3]


def _safe_name(name: str) -> str:
    return "".join(ch if ch.isalnum() else "_" for ch in name).strip("_") or "category"


def _plot_metric(result, metric, thresholds, sweeps_bias, title, path, level=None) -> None:
    mu = [p.mu * 100.0 for p in result.mu_data]
    values = [metric_value(p, metric, level) * 100.0 for p in result.mu_data]

    fig, ax = plt.subplots(figsize=(8, 5))
    if sweeps_bias:
        bias = [p.bias * 100.0 for p in result.mu_data]
        colors = [_band_color(v, thresholds) for v in values]
        ax.scatter(bias, mu, c=colors, s=30, alpha=0.7, edgecolors="black", linewidths=0.5)
        ax.set_xlabel("Bias (%)")
        ax.set_ylabel("Imprecision (%)")
    else:
        ax.plot(values, mu, color="#3B82F6", marker="o", markersize=2)
        for threshold in thresholds.as_tuple():
            ax.axvline(threshold, color="#888888", linestyle="--", linewidth=0.8)
        ax.set_xlim(0, 105)
        ax.set_xlabel(f"{metric.capitalize()} (%)")
        ax.set_ylabel("Relative standard measurement uncertainty (%)")
    ax.set_title(title)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)


def _plot_combined(result, level, thresholds, path) -> None:
    classes = combined_classes(result, level, thresholds.min)
    fig, ax = plt.subplots(figsize=(8, 5))
    for cls in COMBINED_CLASSES:
        idx = [i for i, c in enumerate(classes) if c == cls]
        if not idx:
            continue
        ax.scatter(
            [result.mu_data[i].bias * 100.0 for i in idx],
            [result.mu_data[i].mu * 100.0 for i in idx],
            color=COMBINED_COLORS[cls],
            s=30,
            alpha=0.7,
            edgecolors="black",
            linewidths=0.5,
            label=f"≥{thresholds.min:g}% ({cls})",
        )
    ax.set_xlabel("Bias (%)")
    ax.set_ylabel("Imprecision (%)")
    ax.set_title(f"{result.names[level]}: combined sensitivity & specificity")
    ax.legend(loc="upper right", fontsize=8)
    fig.tight_layout()
    fig.savefig(path, dpi=150)
    plt.close(fig)


def main() -> None:
    args = parse_args()
    if not args.input.exists():
        raise FileNotFoundError(f"Missing {args.input}. Run main.py first.")

    payload = json.loads(args.input.read_text(encoding="utf-8"))
    result = SimulationResult.from_dict(payload)
    thresholds = thresholds_from_value(payload["agreement_thresholds"])
    sweeps_bias = SimulationModel.from_label(payload["model"]).sweeps_bias

    args.output_dir.mkdir(parents=True, exist_ok=True)
    for metric in METRICS:
        _plot_metric(
            result,
            metric,
            thresholds,
            sweeps_bias,
            f"Overall {metric}",
            args.output_dir / f"overall_{metric}.png",
        )

    for level, name in enumerate(result.names):
        for metric in METRICS:
            _plot_metric(
                result,
                metric,
                thresholds,
                sweeps_bias,
                f"{name}: {metric}",
                args.output_dir / f"level_{level}_{_safe_name(name)}_{metric}.png",
                level=level,
            )
        if sweeps_bias:
            _plot_combined(
                result,
                level,
                thresholds,
                args.output_dir / f"level_{level}_{_safe_name(name)}_combined.png",
            )

    print(f"Charts written to {args.output_dir}")


if __name__ == "__main__":
    main()
