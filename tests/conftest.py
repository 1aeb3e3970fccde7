import importlib.util
import json
import sys
from pathlib import Path
from uuid import uuid4

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

MU_ANALYTICAL = "Setting APS for measurement uncertainty - Analytical rerun simulation"
MU_RESAMPLING = "Setting APS for measurement uncertainty - Resampling simulation"
IMP_BIAS_ANALYTICAL = "Setting APS for imprecision and bias - Analytical rerun simulation"
IMP_BIAS_RESAMPLING = "Setting APS for imprecision and bias - Resampling simulation"


def load_module(module_path: Path):
    spec = importlib.util.spec_from_file_location(f"testmod_{uuid4().hex}", module_path)
    module = importlib.util.module_from_spec(spec)
    assert spec and spec.loader
    sys.modules[spec.name] = module
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def five_values() -> list:
    return [100.0, 102.0, 98.0, 101.0, 99.0]


@pytest.fixture
def glucose_values() -> np.ndarray:
    rng = np.random.default_rng(7)
    return np.round(rng.normal(6.0, 1.2, size=150), 1)


@pytest.fixture
def mini_params() -> dict:
    return {
        "model": MU_ANALYTICAL,
        "cdls": [5.6, 7.0],
        "decimal_places": 1,
        "agreement_thresholds": {"min": 90.0, "des": 95.0, "opt": 99.0},
        "cv_i": None,
        "sample_size": None,
        "max_mu": 1.0,
        "step_size_mu": 0.1,
        "max_imprecision": 2.0,
        "max_bias": 2.0,
        "step_size_imp_bias": 1.0,
        "max_workers": 2,
    }


@pytest.fixture
def glucose_csv(tmp_path: Path, glucose_values: np.ndarray) -> Path:
    path = tmp_path / "glucose.csv"
    pd.DataFrame(
        {
            "sample_id": [f"S{i:03d}" for i in range(len(glucose_values))],
            "glucose": glucose_values,
        }
    ).to_csv(path, index=False)
    return path


@pytest.fixture
def project_root() -> Path:
    return Path(__file__).resolve().parents[1]


@pytest.fixture
def write_json():
    def _write(path: Path, payload: dict) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")

    return _write
