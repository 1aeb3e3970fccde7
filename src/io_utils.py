import json
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from config import SimulationConfig, SimulationModel, thresholds_from_value

SPREADSHEET_SUFFIXES = {".xlsx", ".xls"}
CSV_SUFFIXES = {".csv"}

_OPTIONAL_FLOATS = ("cv_i", "max_mu", "step_size_mu", "max_imprecision", "max_bias", "step_size_imp_bias")
_OPTIONAL_INTS = ("sample_size", "max_workers")


def _existing_path(path: str) -> Path:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Data file not found: {p.resolve()}")
    return p


def _file_kind(p: Path) -> str:
    suffix = p.suffix.lower()
    if suffix in CSV_SUFFIXES:
        return "csv"
    if suffix in SPREADSHEET_SUFFIXES:
        return "spreadsheet"
    raise ValueError(f"Unsupported file format '{p.suffix}'. Expected .csv, .xlsx or .xls.")


def _read_frame(p: Path) -> pd.DataFrame:
    if _file_kind(p) == "csv":
        return pd.read_csv(p)
    # First worksheet only; every cell as object so text numbers survive.
    return pd.read_excel(p, sheet_name=0, dtype=object)


def list_columns(path: str) -> List[str]:
    p = _existing_path(path)
    if _file_kind(p) == "csv":
        df = pd.read_csv(p, nrows=0)
    else:
        df = pd.read_excel(p, sheet_name=0, nrows=0)
    return [str(c) for c in df.columns]


def load_column(path: str, column: str) -> np.ndarray:
    """
    Numeric values of one named column as float64.

    Spreadsheets are lenient: text cells holding numbers are parsed and any
    other cell is skipped. CSV files are strict: the column must exist and be
    numeric; only empty cells are dropped.
    """
    p = _existing_path(path)
    df = _read_frame(p)
    df.columns = [str(c) for c in df.columns]
    if column not in df.columns:
        available = ", ".join(df.columns)
        raise KeyError(f"Column '{column}' not found in {p.name}. Available columns: {available}")

    series = df[column]
    if _file_kind(p) == "spreadsheet":
        values = pd.to_numeric(series, errors="coerce").dropna()
        return values.to_numpy(dtype=np.float64)

    if not pd.api.types.is_numeric_dtype(series) or pd.api.types.is_bool_dtype(series):
        raise ValueError(f"Column '{column}' in {p.name} is not numeric (dtype {series.dtype}).")
    return series.dropna().to_numpy(dtype=np.float64)


def load_config(path: str) -> Dict[str, Any]:
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Simulation parameters file not found: {p.resolve()}")
    with p.open("r", encoding="utf-8") as f:
        return json.load(f)


def config_from_dict(
    payload: Dict[str, Any],
    data: Optional[Sequence[float]] = None,
    strict_model: bool = True,
) -> SimulationConfig:
    """
    Build a validated SimulationConfig from a JSON-style payload.

    Accepted keys: model, data (unless passed explicitly), cdls or
    category_boundaries, decimal_places, agreement_thresholds ({min, des, opt}
    or [min, des, opt]), and the optional cv_i, sample_size, max_mu,
    step_size_mu, max_imprecision, max_bias, step_size_imp_bias, max_workers.
    Null optionals mean "use the default".
    """
    if "model" not in payload:
        raise ValueError("Simulation parameters must contain 'model'.")
    model = SimulationModel.from_label(payload["model"], strict=strict_model)

    if data is None:
        if "data" not in payload:
            raise ValueError("Simulation parameters must contain 'data' when no data is supplied.")
        data = payload["data"]

    if "category_boundaries" in payload:
        boundaries = payload["category_boundaries"]
    elif "cdls" in payload:
        boundaries = payload["cdls"]
    else:
        raise ValueError("Simulation parameters must contain 'cdls' (clinical decision limits).")
    if not isinstance(boundaries, list) or len(boundaries) == 0:
        raise ValueError("'cdls' must be a non-empty list of numbers.")

    try:
        boundaries = [float(b) for b in boundaries]
        decimal_places = int(payload.get("decimal_places", 0))
        kwargs: Dict[str, Any] = {}
        for key in _OPTIONAL_FLOATS:
            if payload.get(key) is not None:
                kwargs[key] = float(payload[key])
        for key in _OPTIONAL_INTS:
            if payload.get(key) is not None:
                kwargs[key] = int(payload[key])
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Invalid simulation parameter: {exc}") from exc

    thresholds = thresholds_from_value(payload.get("agreement_thresholds", {"min": 90, "des": 95, "opt": 99}))

    return SimulationConfig(
        model=model,
        data=tuple(float(v) for v in data),
        category_boundaries=tuple(boundaries),
        decimal_places=decimal_places,
        agreement_thresholds=thresholds,
        **kwargs,
    )
