import json
import logging
import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1] / "src"))

from config import AgreementThresholds, SimulationConfig, SimulationModel, thresholds_from_value
from io_utils import config_from_dict, list_columns, load_column, load_config

from conftest import IMP_BIAS_RESAMPLING, MU_ANALYTICAL


def test_load_config_raises_for_missing_file(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        load_config(str(tmp_path / "missing.json"))


def test_load_config_reads_json(tmp_path: Path, mini_params: dict, write_json):
    path = tmp_path / "params.json"
    write_json(path, mini_params)
    assert load_config(str(path)) == json.loads(path.read_text(encoding="utf-8"))


def test_config_from_dict_accepts_valid_payload(mini_params: dict):
    config = config_from_dict(mini_params, data=[5.0, 6.0, 7.5])
    assert config.model is SimulationModel.MU_ANALYTICAL
    assert config.category_boundaries == (5.6, 7.0)
    assert config.data == (5.0, 6.0, 7.5)
    assert config.agreement_thresholds == AgreementThresholds(90.0, 95.0, 99.0)
    assert config.cv_i is None
    assert config.max_mu == 1.0
    assert config.max_workers == 2


def test_config_from_dict_accepts_threshold_list_and_boundary_alias():
    payload = {
        "model": IMP_BIAS_RESAMPLING,
        "data": [1, 2, 3],
        "category_boundaries": [2],
        "agreement_thresholds": [80, 90, 95],
        "cv_i": 3,
    }
    config = config_from_dict(payload)
    assert config.model is SimulationModel.IMP_BIAS_RESAMPLING
    assert config.agreement_thresholds.as_tuple() == (80.0, 90.0, 95.0)
    assert config.cv_i_fraction == pytest.approx(0.03)


def test_unknown_model_fails_fast(mini_params: dict):
    mini_params["model"] = "Setting APS for something else"
    with pytest.raises(ValueError, match="Unknown simulation model"):
        config_from_dict(mini_params, data=[1.0])


def test_unknown_model_can_fall_back(mini_params: dict, caplog):
    mini_params["model"] = "typo"
    with caplog.at_level(logging.WARNING):
        config = config_from_dict(mini_params, data=[1.0], strict_model=False)
    assert config.model is SimulationModel.MU_ANALYTICAL
    assert "falling back" in caplog.text


def test_model_label_resolution_is_exact():
    assert SimulationModel.from_label(MU_ANALYTICAL) is SimulationModel.MU_ANALYTICAL
    with pytest.raises(ValueError):
        SimulationModel.from_label(MU_ANALYTICAL.lower())
    assert SimulationModel.IMP_BIAS_RESAMPLING.sweeps_bias
    assert SimulationModel.IMP_BIAS_RESAMPLING.uses_inherent_cv
    assert not SimulationModel.MU_ANALYTICAL.sweeps_bias
    assert not SimulationModel.MU_ANALYTICAL.uses_inherent_cv


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"cdls": []}, "non-empty"),
        ({"cdls": [7.0, 5.6]}, "strictly increasing"),
        ({"cdls": [5.6, 5.6]}, "strictly increasing"),
        ({"decimal_places": -1}, "decimal_places"),
        ({"agreement_thresholds": {"min": 95, "des": 90, "opt": 99}}, "ascending"),
        ({"agreement_thresholds": [90, 95]}, "exactly three"),
        ({"agreement_thresholds": {"min": 90, "des": 95}}, "missing keys"),
        ({"step_size_mu": 0}, "step_size_mu"),
        ({"max_bias": -1}, "max_bias"),
        ({"cv_i": -2}, "cv_i"),
        ({"sample_size": "many"}, "Invalid simulation parameter"),
    ],
)
def test_config_from_dict_rejects_bad_values(mini_params: dict, overrides: dict, message: str):
    mini_params.update(overrides)
    with pytest.raises(ValueError, match=message):
        config_from_dict(mini_params, data=[1.0, 2.0])


def test_config_from_dict_requires_model_and_limits(mini_params: dict):
    without_model = {k: v for k, v in mini_params.items() if k != "model"}
    with pytest.raises(ValueError, match="'model'"):
        config_from_dict(without_model, data=[1.0])
    without_cdls = {k: v for k, v in mini_params.items() if k != "cdls"}
    with pytest.raises(ValueError, match="cdls"):
        config_from_dict(without_cdls, data=[1.0])
    with pytest.raises(ValueError, match="'data'"):
        config_from_dict(mini_params)


def test_simulation_config_is_immutable():
    config = SimulationConfig(model=MU_ANALYTICAL, data=[1.0], category_boundaries=[0.5])
    assert config.model is SimulationModel.MU_ANALYTICAL
    with pytest.raises(Exception):
        config.decimal_places = 3


def test_thresholds_from_value_passthrough():
    t = AgreementThresholds(1.0, 2.0, 3.0)
    assert thresholds_from_value(t) is t


def test_list_columns_and_load_csv_column(glucose_csv: Path, glucose_values: np.ndarray):
    assert list_columns(str(glucose_csv)) == ["sample_id", "glucose"]
    values = load_column(str(glucose_csv), "glucose")
    assert values.dtype == np.float64
    assert np.allclose(values, glucose_values)


def test_csv_column_drops_empty_cells(tmp_path: Path):
    path = tmp_path / "gaps.csv"
    path.write_text("value,note\n1.5,a\n,b\n2,c\n3.25,d\n", encoding="utf-8")
    assert load_column(str(path), "value").tolist() == [1.5, 2.0, 3.25]


def test_csv_missing_column_is_a_hard_failure(glucose_csv: Path):
    with pytest.raises(KeyError, match="Column 'hba1c' not found"):
        load_column(str(glucose_csv), "hba1c")


def test_csv_non_numeric_column_is_a_hard_failure(glucose_csv: Path):
    with pytest.raises(ValueError, match="not numeric"):
        load_column(str(glucose_csv), "sample_id")


def test_spreadsheet_column_skips_unparseable_cells(tmp_path: Path):
    path = tmp_path / "results.xlsx"
    pd.DataFrame({"analyte": [1, "2.5", "n/a", None, 4.0], "other": list("abcde")}).to_excel(path, index=False)

    assert list_columns(str(path)) == ["analyte", "other"]
    assert load_column(str(path), "analyte").tolist() == [1.0, 2.5, 4.0]
    with pytest.raises(KeyError, match="not found"):
        load_column(str(path), "missing")


def test_missing_file_and_unsupported_format(tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        list_columns(str(tmp_path / "nope.csv"))
    txt = tmp_path / "values.txt"
    txt.write_text("1\n2\n", encoding="utf-8")
    with pytest.raises(ValueError, match="Unsupported file format"):
        load_column(str(txt), "1")
