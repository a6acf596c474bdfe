"""Run configuration loaded from YAML."""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, field_validator, model_validator

from enmeval.evaluation.nulls import NULL_STATS
from enmeval.evaluation.partitions import PartitionMethod
from enmeval.models.algorithms import TUNE_ARGS, Algorithm
from enmeval.utils.io import default_config_path, load_yaml

logger = logging.getLogger(__name__)


class EvaluateConfig(BaseModel):
    algorithm: Algorithm = Algorithm.MAXNET
    tune_args: Dict[str, Any] = {"fc": ["L", "LQ"], "rm": [1, 2]}
    partitions: PartitionMethod = PartitionMethod.BLOCK
    partition_settings: Dict[str, Any] = {}
    taxon_name: Optional[str] = None
    predictors: Optional[List[str]] = None
    clamp: bool = True
    abs_auc_diff: bool = True
    n_jobs: int = 1
    random_state: Optional[int] = None
    x_col: str = "longitude"
    y_col: str = "latitude"
    crs: str = "EPSG:4326"

    @model_validator(mode="after")
    def check_tune_args(self) -> "EvaluateConfig":
        expected = TUNE_ARGS[self.algorithm]
        if sorted(self.tune_args) != sorted(expected):
            raise ValueError(
                f"tune_args for {self.algorithm.value} must have keys {expected}; got {list(self.tune_args)}"
            )
        return self


class NullConfig(BaseModel):
    mod_settings: Dict[str, Any] = {}
    no_iter: int = 100
    eval_stats: List[str] = list(NULL_STATS)
    n_jobs: int = 1
    random_state: Optional[int] = None

    @field_validator("no_iter")
    @classmethod
    def check_no_iter(cls, v: int) -> int:
        if v < 1:
            raise ValueError("no_iter must be >= 1")
        return v

    @field_validator("eval_stats")
    @classmethod
    def check_eval_stats(cls, v: List[str]) -> List[str]:
        unknown = [s for s in v if s not in NULL_STATS]
        if unknown:
            raise ValueError(f"Unknown statistics {unknown}; use any of {NULL_STATS}")
        return v


class TrackingConfig(BaseModel):
    enabled: bool = False
    tracking_uri: str = "mlruns"
    experiment_name: str = "enmeval"


class RunConfig(BaseModel):
    evaluate: EvaluateConfig = EvaluateConfig()
    nulls: NullConfig = NullConfig()
    tracking: TrackingConfig = TrackingConfig()


def load_config(config_path: Optional[Union[str, Path]] = None) -> RunConfig:
    """Loads a run configuration, defaulting to config/default.yaml in the project root."""
    config_path = Path(config_path) if config_path is not None else default_config_path()
    config = RunConfig(**load_yaml(config_path))
    logger.debug(f"Loaded run configuration from {config_path}")
    return config
