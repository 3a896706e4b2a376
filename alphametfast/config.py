"""Parameter files and logging setup for applications.

Pipeline parameters can be kept in a YAML file with one section per stage.
Only the values that differ from the defaults need to be given:

    detection:
      ppm: 5
      peakwidth: [5, 40]
    correspondence:
      bandwidth: 15
      dedup_policy: max_intensity
    reduction:
      consensus:
        min_prop: 0.6
    n_workers: 4
"""

import logging
from dataclasses import asdict
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Union

import yaml

from alphametfast.features import GapFillParams, PeakDensityParams
from alphametfast.ms2 import AssociationParams, ReductionParams
from alphametfast.peaks import CentWaveParams
from alphametfast.pipeline import PipelineParams

logger = logging.getLogger(__name__)

_SECTIONS = {
    "detection": CentWaveParams,
    "correspondence": PeakDensityParams,
    "gap_filling": GapFillParams,
    "association": AssociationParams,
    "reduction": ReductionParams,
}


def setup_logging(verbose: bool = False) -> None:
    """Configure root logging for command-line use."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    )


def _to_plain(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_to_plain(v) for v in value]
    return value


def params_to_dict(params: PipelineParams) -> dict:
    """Plain (YAML-serializable) nested dict of pipeline parameters."""
    return _to_plain(asdict(params))


def _deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override dict into base dict."""
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def params_from_dict(config: dict) -> PipelineParams:
    """Build ``PipelineParams`` from a nested dict.

    Raises:
        ValueError: on unknown sections or keys, or invalid values
    """
    unknown = set(config) - set(_SECTIONS) - {"n_workers"}
    if unknown:
        raise ValueError(f"Unknown parameter sections: {sorted(unknown)}")

    kwargs = {}
    for name, params_cls in _SECTIONS.items():
        section = config.get(name) or {}
        try:
            kwargs[name] = params_cls(**section)
        except TypeError as e:
            raise ValueError(f"Invalid '{name}' parameters: {e}") from e
    if config.get("n_workers") is not None:
        kwargs["n_workers"] = int(config["n_workers"])
    return PipelineParams(**kwargs)


def load_params(config_path: Optional[Union[str, Path]] = None) -> PipelineParams:
    """Load pipeline parameters from a YAML file, or return the defaults.

    Args:
        config_path: YAML file; values override the defaults section by section

    Raises:
        FileNotFoundError: if ``config_path`` is given but does not exist
        ValueError: on unknown keys or invalid values
    """
    defaults = params_to_dict(PipelineParams())
    if config_path is None:
        return params_from_dict(defaults)

    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Parameter file not found: {config_path}")

    with open(config_path) as f:
        user_config = yaml.safe_load(f) or {}
    if not isinstance(user_config, dict):
        raise ValueError(f"{config_path}: expected a mapping at the top level")

    logger.info(f"Loaded parameters from {config_path}")
    return params_from_dict(_deep_merge(defaults, user_config))
