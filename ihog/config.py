from __future__ import annotations
from pathlib import Path
from typing import Optional, Union

import numpy as np
import yaml
from pydantic import BaseModel, Field, PositiveInt, field_validator


class InversionConfig(BaseModel):
    """Tunable constants of the inversion pipeline.

    The defaults reproduce the published inversion: a five cell zero margin
    around the grid, 32 channels per cell (31 HOG bins plus the occlusion
    bin, taken from the dictionary) and a sigma 9 taper on every rendered patch.
    """
    pad: PositiveInt = 5
    eps: float = Field(float(np.finfo(float).eps), gt=0.0)
    filter_sigma: float = Field(9.0, gt=0.0)
    solver: str = Field("fista", pattern="^(fista|lasso)$")
    max_iter: PositiveInt = 500
    tol: float = Field(1e-6, gt=0.0)
    n_jobs: int = 1
    chunk_size: PositiveInt = 64

    @field_validator("n_jobs")
    @classmethod
    def _joblib_worker_count(cls, v: int) -> int:
        # joblib: positive counts workers, negative counts back from all cores
        if v == 0:
            raise ValueError("n_jobs must be non-zero")
        return v


def load_config(path: Optional[Union[str, Path]] = None) -> InversionConfig:
    if not path:
        return InversionConfig()
    with open(path, "r", encoding="utf-8") as fh:
        raw = yaml.safe_load(fh) or {}
    return InversionConfig(**raw)
