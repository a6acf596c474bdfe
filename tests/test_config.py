from pathlib import Path

import pytest
import yaml

from enmeval.config import EvaluateConfig, NullConfig, RunConfig, load_config
from enmeval.evaluation.partitions import PartitionMethod
from enmeval.models.algorithms import Algorithm

DEFAULT_CONFIG = Path(__file__).parents[1] / "config" / "default.yaml"


def test_load_default_config():
    config = load_config(DEFAULT_CONFIG)
    assert isinstance(config, RunConfig)
    assert config.evaluate.algorithm == Algorithm.MAXNET
    assert config.evaluate.partitions == PartitionMethod.BLOCK
    assert config.nulls.mod_settings == {"fc": "LQ", "rm": 1}
    assert not config.tracking.enabled


def test_load_partial_config(tmp_path):
    path = tmp_path / "config.yaml"
    with open(path, "w") as f:
        yaml.safe_dump({"nulls": {"no_iter": 5}}, f)
    config = load_config(path)
    assert config.nulls.no_iter == 5
    assert config.evaluate == EvaluateConfig()


def test_missing_config_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "missing.yaml")


def test_tune_args_must_match_algorithm():
    with pytest.raises(ValueError):
        EvaluateConfig(algorithm="randomForest", tune_args={"fc": ["L"], "rm": [1]})
    config = EvaluateConfig(algorithm="randomForest", tune_args={"ntree": [500], "mtry": [1, 2]})
    assert config.algorithm == Algorithm.RANDOM_FOREST


def test_invalid_null_config():
    with pytest.raises(ValueError):
        NullConfig(no_iter=0)
    with pytest.raises(ValueError):
        NullConfig(eval_stats=["aicc"])
