"""Complete runtime initialization for a pixtrain session.

This module handles ALL initialization responsibilities:
- Configuration resolution (CLI > User > Param)
- Output directory setup
- Configuration persistence with run ID
- Returns fully ready InternalConfig plus output directories
"""

import importlib.util
import json
import uuid
from pathlib import Path
from typing import Dict, Tuple
from datetime import datetime, timezone

from pixtrain.schemas.resolve import resolve_config
from pixtrain.schemas.param import ParamConfig
from pixtrain.schemas.user import UserConfig
from pixtrain.schemas.cli import CLIConfig
from pixtrain.schemas.internal import InternalConfig
from pixtrain.setup_directories import setup_output_directories


def load_user_config_dict(config_path: str) -> dict:
    """Load user config dict from Python file."""
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    spec = importlib.util.spec_from_file_location("config_module", path)
    if spec is None or spec.loader is None:
        raise ImportError(f"Could not load config module from {path}")

    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    # Find CONFIG dict
    for name in dir(module):
        if name.startswith('CONFIG'):
            obj = getattr(module, name)
            if isinstance(obj, dict):
                return obj

    raise ValueError(f"No CONFIG dict found in {path}")


def generate_run_id() -> str:
    """Short, sortable identifier for one session run."""
    stamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%S")
    return f"{stamp}_{uuid.uuid4().hex[:6]}"


def persist_runtime_config(config: InternalConfig, run_id: str, output_dirs: Dict[str, Path]) -> Path:
    """Persist final runtime configuration to output directory with run ID.

    Saves the complete resolved configuration for reproducibility and debugging.
    """
    config_output_dir = Path(output_dirs["base"])
    config_output_dir.mkdir(parents=True, exist_ok=True)

    config_file = config_output_dir / f"runtime_config_{run_id}.json"

    config_dict = config.model_dump()
    config_dict["run_id"] = run_id
    config_dict["created_at"] = datetime.now(timezone.utc).isoformat()

    with open(config_file, 'w') as f:
        json.dump(config_dict, f, indent=2, default=str)

    return config_file


def init_runtime_config(args) -> Tuple[InternalConfig, Dict[str, Path], str]:
    """Complete runtime initialization - single entry point for a session.

    Handles ALL initialization responsibilities:
    1. Configuration resolution (CLI > User > Param)
    2. Output directory setup
    3. Configuration persistence with run ID

    Parameters
    ----------
    args : argparse.Namespace
        Command line arguments with config path and all overrides.
        ``args.config`` may be None, in which case only defaults and
        CLI overrides are used.

    Returns
    -------
    tuple
        (InternalConfig, output directories dict, run ID)

    Examples
    --------
    >>> args = parser.parse_args()
    >>> config, output_dirs, run_id = init_runtime_config(args)
    """
    config_path = getattr(args, 'config', None)

    param_cfg = ParamConfig()
    user_cfg = UserConfig.model_validate(load_user_config_dict(config_path)) if config_path else UserConfig()

    cli_args = {
        k: v
        for k, v in {
            "base_dir": getattr(args, 'base_dir', None),
            "classifier": getattr(args, 'classifier', None),
            "resolution": getattr(args, 'resolution', None),
            "downsample": getattr(args, 'downsample', None),
            "max_samples": getattr(args, 'max_samples', None),
            "rng_seed": getattr(args, 'rng_seed', None),
            "log_level": "DEBUG" if getattr(args, 'verbose', False) else None,
        }.items()
        if v is not None
    }
    cli_cfg = CLIConfig.model_validate(cli_args)

    config = resolve_config(param_cfg, user_cfg, cli_cfg)

    output_dirs = setup_output_directories(config.output.base_dir)
    run_id = generate_run_id()
    persist_runtime_config(config, run_id, output_dirs)

    return config, output_dirs, run_id
