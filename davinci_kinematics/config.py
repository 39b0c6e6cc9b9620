"""
Configuration management for the da Vinci kinematics solver.

Defaults live in DEFAULT_CONFIG. A YAML file is merged on top, then the
`environments.<name>` section of that file, then DAVINCI_* environment
variables (e.g. DAVINCI_SOLVER_LIMIT_TOLERANCE=1e-8).
"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .dh_definitions import DHParameterSet, GRIPPER_JAW_LENGTH
from .error_handling import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "DAVINCI_"


def _default_config() -> Dict[str, Any]:
    return {
        "robot": {
            "dh_parameters": DHParameterSet.default().to_rows(),
            "gripper_jaw_length": GRIPPER_JAW_LENGTH,
        },
        "solver": {
            "limit_tolerance": 1e-9,
            "verification_tolerance": 1e-6,
            "pose_tolerance": 1e-6,
            "jaw_opening": 0.0,
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        },
    }


DEFAULT_CONFIG = _default_config()

# (min, max) accepted for each solver parameter
SOLVER_PARAM_RANGES = {
    "limit_tolerance": (0.0, 1e-3),
    "verification_tolerance": (1e-12, 1e-2),
    "pose_tolerance": (1e-12, 1e-2),
    "jaw_opening": (-3.2, 3.2),
}


class KinematicsConfig:
    """Solver configuration with validation and environment support."""

    def __init__(self, config_path: Optional[str] = None, environment: str = "production"):
        """
        Args:
            config_path: Path to YAML configuration file (defaults only if None)
            environment: Environment name used to pick `environments.<name>` overrides
        """
        self.config_path = Path(config_path) if config_path is not None else None
        self.environment = environment
        self.config = copy.deepcopy(DEFAULT_CONFIG)

        if self.config_path is not None:
            self._load_file(self.config_path)
            self._load_environment_config()

        self._apply_env_overrides()
        self._validate_config()
        logger.debug(f"Configuration ready ({self})")

    def _load_file(self, path: Path):
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {path}")
        try:
            with open(path, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse YAML configuration: {e}")
        if not isinstance(user_config, dict):
            raise ConfigurationError(f"Top level of {path} must be a mapping")
        self._deep_update(self.config, user_config)
        logger.info(f"Configuration loaded from {path}")

    def _load_environment_config(self):
        env_config = self.config.get("environments", {}).get(self.environment, {})
        if env_config:
            logger.info(f"Applying {self.environment} environment overrides")
            self._deep_update(self.config, env_config)

    def _apply_env_overrides(self):
        """Apply DAVINCI_<SECTION>_<KEY> environment variables."""
        for env_key, env_value in os.environ.items():
            if not env_key.startswith(ENV_PREFIX):
                continue
            parts = env_key[len(ENV_PREFIX):].lower().split("_", 1)
            if len(parts) != 2 or parts[0] not in ("solver", "logging"):
                continue
            section, key = parts
            value = self._parse_env_value(env_value)
            self.config.setdefault(section, {})[key] = value
            logger.debug(f"Override {section}.{key} = {value!r} from {env_key}")

    @staticmethod
    def _parse_env_value(raw: str):
        if raw.lower() in ("true", "false"):
            return raw.lower() == "true"
        try:
            return int(raw)
        except ValueError:
            pass
        try:
            return float(raw)
        except ValueError:
            return raw

    def _deep_update(self, base_dict: Dict, update_dict: Dict):
        """Recursively update nested dictionary."""
        for key, value in update_dict.items():
            if key in base_dict and isinstance(base_dict[key], dict) and isinstance(value, dict):
                self._deep_update(base_dict[key], value)
            else:
                base_dict[key] = value

    def _validate_config(self):
        for section in ("robot", "solver", "logging"):
            if not isinstance(self.config.get(section), dict):
                raise ConfigurationError(f"Missing required configuration section: {section}")

        for param, (min_val, max_val) in SOLVER_PARAM_RANGES.items():
            value = self.config["solver"].get(param)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not (min_val <= value <= max_val):
                raise ConfigurationError(
                    f"Invalid solver.{param}: {value!r}. Must be between {min_val} and {max_val}")

        level = self.config["logging"].get("level", "INFO")
        if not isinstance(logging.getLevelName(str(level).upper()), int):
            raise ConfigurationError(f"Invalid logging level: {level!r}")

        # building the table runs the DHLink / DHParameterSet checks
        self.dh_parameters()

    def dh_parameters(self) -> DHParameterSet:
        robot = self.config["robot"]
        rows = robot.get("dh_parameters")
        if not isinstance(rows, list):
            raise ConfigurationError("robot.dh_parameters must be a list of 7 mappings")
        return DHParameterSet.from_rows(rows, robot.get("gripper_jaw_length", GRIPPER_JAW_LENGTH))

    def get_solver_params(self) -> Dict[str, float]:
        """Keyword arguments for DavinciInverseKinematics."""
        solver = self.config["solver"]
        return {param: float(solver[param]) for param in SOLVER_PARAM_RANGES}

    def get_logging_config(self) -> Dict[str, Any]:
        return self.config.get("logging", {})

    def update_config(self, updates: Dict[str, Any]):
        """Update configuration with new values."""
        self._deep_update(self.config, updates)
        self._validate_config()
        logger.info("Configuration updated and validated")

    def save_config(self, output_path: Optional[str] = None):
        """Save current configuration to a YAML file."""
        if output_path is None:
            output_path = self.config_path
        if output_path is None:
            raise ConfigurationError("No output path given and no configuration file loaded")
        with open(output_path, "w") as f:
            yaml.safe_dump(self.config, f, default_flow_style=False, indent=2, sort_keys=False)
        logger.info(f"Configuration saved to {output_path}")

    def __str__(self) -> str:
        return f"KinematicsConfig(path={self.config_path}, env={self.environment})"

    def __repr__(self) -> str:
        return self.__str__()


def create_default_config(output_path: str = "davinci_config.yaml") -> str:
    """Write the default configuration to a YAML file."""
    with open(output_path, "w") as f:
        yaml.safe_dump(copy.deepcopy(DEFAULT_CONFIG), f, default_flow_style=False, indent=2, sort_keys=False)
    logger.info(f"Default configuration written to {output_path}")
    return output_path
