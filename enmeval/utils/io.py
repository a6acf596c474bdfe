import json
import logging
import pickle
from pathlib import Path
from typing import Any, Dict, Union

import numpy as np
import pandas as pd
import yaml
from pyhere import here

logger = logging.getLogger(__name__)


def default_config_path() -> Path:
    """Path to the project's default run configuration."""
    return Path(here(".")) / "config" / "default.yaml"


def load_yaml(config_path: Union[str, Path]) -> Dict:
    """Loads a YAML file into a dictionary."""
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found at {config_path}")
    with open(config_path, "r") as f:
        config = yaml.safe_load(f)
    return config or {}


def save_pickle(obj: Any, output_path: Union[str, Path]) -> Path:
    """Pickles an object, creating the parent directory if needed."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "wb") as f:
        pickle.dump(obj, f)
    logger.info(f"Saved object to: {output_path}")
    return output_path


def load_pickle(path: Union[str, Path]) -> Any:
    """Loads a pickled object from a given path."""
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Pickle file not found: {path}")
    try:
        with open(path, "rb") as f:
            return pickle.load(f)
    except Exception as e:
        raise IOError(f"Error loading object from {path}: {e}")


def _to_serializable(value: Any) -> Any:
    if isinstance(value, dict):
        return {str(k): _to_serializable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_serializable(v) for v in value]
    if isinstance(value, pd.DataFrame):
        return [_to_serializable(r) for r in value.to_dict(orient="records")]
    if isinstance(value, (pd.Series, np.ndarray)):
        return [_to_serializable(v) for v in value.tolist()]
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and np.isnan(value):
        return None
    return value


def write_json(data: Any, output_path: Union[str, Path]) -> Path:
    """Writes nested dicts/lists (numpy and pandas values included) as JSON."""
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        json.dump(_to_serializable(data), f, indent=2, ensure_ascii=False)
    logger.info(f"Wrote JSON to: {output_path}")
    return output_path
