from __future__ import annotations

import sys
import threading
import uuid
from copy import deepcopy
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Union

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel, ConfigDict, Field, model_validator

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from config import SimulationModel  # noqa: E402
from io_utils import config_from_dict, list_columns, load_column  # noqa: E402
from report import aps_limits  # noqa: E402
from simulator import run_simulation  # noqa: E402


class Thresholds(BaseModel):
    min: float = 90.0
    des: float = 95.0
    opt: float = 99.0


class SimulationRequest(BaseModel):
    model_config = ConfigDict(extra="forbid")

    model: str = SimulationModel.MU_ANALYTICAL.value
    data: Optional[list[float]] = None
    data_path: Optional[str] = None
    column: Optional[str] = None
    cdls: list[float] = Field(min_length=1)
    decimal_places: int = Field(default=0, ge=0)
    agreement_thresholds: Union[Thresholds, list[float]] = Field(default_factory=Thresholds)
    cv_i: Optional[float] = None
    sample_size: Optional[int] = None
    max_mu: Optional[float] = None
    step_size_mu: Optional[float] = None
    max_imprecision: Optional[float] = None
    max_bias: Optional[float] = None
    step_size_imp_bias: Optional[float] = None
    max_workers: Optional[int] = None
    strict_model: bool = True

    @model_validator(mode="after")
    def _check_data_source(self) -> "SimulationRequest":
        if self.data is None and (self.data_path is None or self.column is None):
            raise ValueError("Provide either 'data' or both 'data_path' and 'column'.")
        return self


app = FastAPI(title="APS Simulator")

_job_store: dict[str, dict[str, Any]] = {}
_job_lock = threading.Lock()


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _append_job_log(job_id: str, message: str) -> None:
    with _job_lock:
        job = _job_store.get(job_id)
        if not job:
            return
        job["logs"].append(message.rstrip())
        if len(job["logs"]) > 2000:
            job["logs"] = job["logs"][-2000:]


def _set_job_state(job_id: str, **fields: Any) -> None:
    with _job_lock:
        job = _job_store.get(job_id)
        if not job:
            return
        job.update(fields)


def _load_data(payload: SimulationRequest) -> list[float]:
    if payload.data is not None:
        return payload.data
    return load_column(payload.data_path, payload.column).tolist()


def _request_params(payload: SimulationRequest) -> dict[str, Any]:
    return payload.model_dump(exclude={"data", "data_path", "column", "strict_model"})


def _run_job(job_id: str, payload: SimulationRequest) -> None:
    _set_job_state(job_id, status="running", started_at=_utc_now())
    _append_job_log(job_id, f"Starting '{payload.model}' simulation...")

    try:
        data = _load_data(payload)
        _append_job_log(job_id, f"Loaded {len(data)} values.")
        config = config_from_dict(_request_params(payload), data=data, strict_model=payload.strict_model)
        result = run_simulation(config, progress=lambda pct: _set_job_state(job_id, progress=pct))
        limits = aps_limits(result, config.agreement_thresholds)
        _set_job_state(
            job_id,
            status="completed",
            completed_at=_utc_now(),
            progress=100.0,
            result=result.to_dict(),
            limits=limits,
        )
        _append_job_log(job_id, f"Simulation completed: {len(result.mu_data)} grid points.")
    except Exception as exc:  # surfaced through the job record
        _set_job_state(job_id, status="failed", completed_at=_utc_now(), error=str(exc))
        _append_job_log(job_id, f"Execution error: {exc}")


@app.get("/api/files/columns")
def get_file_columns(path: str) -> dict[str, Any]:
    try:
        return {"columns": list_columns(path)}
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


@app.get("/api/files/column")
def load_column_data(path: str, column: str) -> dict[str, Any]:
    try:
        values = load_column(path, column)
    except FileNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except KeyError as exc:
        raise HTTPException(status_code=400, detail=exc.args[0]) from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"name": column, "values": values.tolist()}


@app.get("/api/models")
def list_models() -> list[str]:
    return [member.value for member in SimulationModel]


@app.post("/api/simulation/jobs")
def start_simulation(payload: SimulationRequest) -> dict[str, Any]:
    if payload.strict_model:
        try:
            SimulationModel.from_label(payload.model)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc

    job_id = uuid.uuid4().hex[:12]
    job_record: dict[str, Any] = {
        "id": job_id,
        "model": payload.model,
        "status": "queued",
        "progress": 0.0,
        "created_at": _utc_now(),
        "started_at": None,
        "completed_at": None,
        "error": None,
        "result": None,
        "limits": None,
        "logs": [],
    }

    with _job_lock:
        _job_store[job_id] = job_record

    thread = threading.Thread(target=_run_job, args=(job_id, payload), daemon=True)
    thread.start()
    return {"job_id": job_id, "status": "queued"}


@app.get("/api/simulation/jobs")
def list_jobs() -> list[dict[str, Any]]:
    with _job_lock:
        jobs = [
            {key: deepcopy(value) for key, value in record.items() if key != "result"}
            for record in _job_store.values()
        ]
    jobs.sort(key=lambda j: j["created_at"], reverse=True)
    return jobs


@app.get("/api/simulation/jobs/{job_id}")
def get_job(job_id: str) -> dict[str, Any]:
    with _job_lock:
        job = _job_store.get(job_id)
        if not job:
            raise HTTPException(status_code=404, detail=f"Job not found: {job_id}")
        return deepcopy(job)
