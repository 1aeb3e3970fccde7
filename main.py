import argparse
import json
import logging
from pathlib import Path
import sys

# Allow running without installing the package.
sys.path.insert(0, str(Path(__file__).resolve().parent / "src"))

import pandas as pd

from io_utils import config_from_dict, load_column, load_config
from report import aps_limits, results_frame
from simulator import run_simulation


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Simulate how measurement uncertainty affects clinical categorisation."
    )
    parser.add_argument(
        "--params",
        type=Path,
        default=Path("input_parameters") / "simulation_parameters.json",
        help="Path to simulation_parameters.json.",
    )
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=Path("outputs") / "simulation",
        help="Directory for the results CSV/JSON and APS limits.",
    )
    parser.add_argument(
        "--lenient-model",
        action="store_true",
        help="Fall back to the analytical MU model for unknown model names instead of failing.",
    )
    return parser.parse_args()


def _print_progress(pct: float) -> None:
    print(f"  progress: {pct:5.1f}%")


def main() -> None:
    args = parse_args()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    params = load_config(str(args.params))
    if "data_path" not in params or "column" not in params:
        raise ValueError("simulation_parameters.json must contain 'data_path' and 'column'.")

    data_path = Path(params["data_path"])
    if not data_path.is_absolute():
        data_path = args.params.resolve().parent / data_path
    data = load_column(str(data_path), params["column"])
    print(f"Loaded {len(data)} values of '{params['column']}' from {data_path.name}")

    config = config_from_dict(params, data=data, strict_model=not args.lenient_model)
    result = run_simulation(config, progress=_print_progress)

    args.output_dir.mkdir(parents=True, exist_ok=True)
    results_frame(result).to_csv(args.output_dir / "simulation_results.csv", index=False)

    payload = {
        "model": config.model.value,
        "column": params["column"],
        "n_values": len(data),
        "agreement_thresholds": {
            "min": config.agreement_thresholds.min,
            "des": config.agreement_thresholds.des,
            "opt": config.agreement_thresholds.opt,
        },
        **result.to_dict(),
    }
    (args.output_dir / "simulation_result.json").write_text(
        json.dumps(payload, indent=2, ensure_ascii=False) + "\n", encoding="utf-8"
    )

    limits = pd.DataFrame(aps_limits(result, config.agreement_thresholds))
    limits.to_csv(args.output_dir / "aps_limits.csv", index=False)

    print("\nAPS limits (overall agreement):")
    print(limits.to_string(index=False))


if __name__ == "__main__":
    main()
