"""
Pendant Configuration Management for SmartGCode

Handles loading and managing machine-specific settings from a YAML config
file. Falls back to the built-in defaults if the config is missing or
incomplete.
"""

import os
import yaml
from typing import Optional, Dict, Any


# =============================================================================
# DEFAULTS
# These are used as fallbacks when config values are missing
# =============================================================================

PENDANT_DEFAULTS = {
    'machine': {
        'name': 'Generic CNC Router',
        'controller': 'Generic',
        'min_z': -102.0,             # Lowest reachable Z (machine coords), null disables the check
    },
    'optimizer': {
        'spindle_start_delay': 3,    # Seconds to dwell after M3, 0 disables
        'dwell_command': 'G4',
        'block_start_marker': '(When using Fusion 360 for Personal Use',
        'done_tag': 'OPTIMIZED: ',
    },
}

_MISSING = object()


def _lookup(data: Any, keys) -> Any:
    """Walk nested dicts, returning _MISSING if any key is absent"""
    value = data
    for key in keys:
        if not isinstance(value, dict) or key not in value:
            return _MISSING
        value = value[key]
    return value


class PendantConfig:
    """
    Manages machine configuration for SmartGCode.

    Config is loaded from a YAML file (see CONFIG_TEMPLATE). Falls back to
    PENDANT_DEFAULTS for any missing values.
    """

    def __init__(self, config_data: Optional[Dict[str, Any]] = None):
        """
        Initialize config from YAML data.

        Args:
            config_data: Parsed YAML config dict, or None for defaults
        """
        if config_data is None:
            config_data = {}
        if not isinstance(config_data, dict):
            raise ValueError(f"Config must be a mapping, got {type(config_data).__name__}")

        # Normalize to v2 structure internally for consistent API
        self._data = self._normalize_to_v2(config_data)

    def _normalize_to_v2(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Convert any config version to v2 structure internally.

        v1: Top-level machine/optimizer
        v2: machines -> machine_id -> machine/optimizer

        Args:
            data: Raw config data

        Returns:
            Normalized v2 structure
        """
        version = data.get('version', 1)

        if version == 1:
            # Wrap v1 config as single machine named 'default'
            machine_config = {key: value for key, value in data.items() if key != 'version'}
            return {
                'version': 2,
                'default_machine': 'default',
                'machines': {'default': machine_config},
            }

        elif version == 2:
            return data

        else:
            raise ValueError(f"Unsupported config version: {version}")

    def _get(self, *keys, default=None):
        """
        Get nested config value with fallback to PENDANT_DEFAULTS.

        An explicit null in the config is returned as None (it does not fall
        back), so YAML can switch optional checks off.

        Args:
            *keys: Path to nested value (e.g., 'machine', 'min_z')
            default: Value to use when neither config nor defaults have it

        Returns:
            Value from config, or from PENDANT_DEFAULTS, or provided default
        """
        value = _lookup(self.get_machine_config(None), keys)
        if value is not _MISSING:
            return value

        value = _lookup(PENDANT_DEFAULTS, keys)
        return default if value is _MISSING else value

    # ========================================================================
    # Machine Management (v2 Config Support)
    # ========================================================================

    def get_available_machines(self) -> Dict[str, Dict[str, Any]]:
        """Machine id -> machine config for every configured machine"""
        return self._data.get('machines', {})

    @property
    def default_machine_id(self) -> str:
        return self._data.get('default_machine', 'default')

    def get_machine_config(self, machine_id: Optional[str] = None) -> Dict[str, Any]:
        """
        Get config for a specific machine.

        Args:
            machine_id: Machine ID, or None for default machine

        Returns:
            Machine configuration dict
        """
        if machine_id is None:
            machine_id = self.default_machine_id

        machines = self._data.get('machines', {})
        return machines.get(machine_id, machines.get(self.default_machine_id, {}))

    # ========================================================================
    # Machine Configuration
    # ========================================================================

    @property
    def machine_name(self) -> str:
        return self._get('machine', 'name')

    @property
    def machine_controller(self) -> str:
        """Controller type (grbl, Carvera, Mach4, ...)"""
        return self._get('machine', 'controller')

    @property
    def machine_min_z(self) -> Optional[float]:
        """Lowest Z the machine can reach, or None when the check is disabled"""
        value = self._get('machine', 'min_z')
        return None if value is None else float(value)

    # ========================================================================
    # Optimizer Settings
    # ========================================================================

    @property
    def spindle_start_delay(self) -> int:
        """Seconds to dwell after a spindle start (0 disables)"""
        value = self._get('optimizer', 'spindle_start_delay')
        return int(value or 0)

    @property
    def dwell_command(self) -> str:
        return self._get('optimizer', 'dwell_command')

    @property
    def block_start_marker(self) -> str:
        """Comment prefix the CAM generator writes at the start of each operation"""
        return self._get('optimizer', 'block_start_marker')

    @property
    def done_tag(self) -> str:
        """Tag inserted after '(' of the first block marker once optimized"""
        return self._get('optimizer', 'done_tag')

    def to_dict(self) -> Dict[str, Any]:
        """Effective settings (config values merged over defaults)"""
        return {
            'machine_name': self.machine_name,
            'machine_controller': self.machine_controller,
            'machine_min_z': self.machine_min_z,
            'spindle_start_delay': self.spindle_start_delay,
            'dwell_command': self.dwell_command,
            'block_start_marker': self.block_start_marker,
            'done_tag': self.done_tag,
        }

    @classmethod
    def from_yaml(cls, yaml_content: str) -> 'PendantConfig':
        """
        Create PendantConfig from YAML string.

        Args:
            yaml_content: YAML content as string

        Returns:
            PendantConfig instance (falls back to defaults on parse error)
        """
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            print(f"⚠️  Error parsing pendant config YAML: {e}")
            print("   Using default settings")
            return cls()
        return cls(data)

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> 'PendantConfig':
        return cls(config_dict)

    def __repr__(self):
        return f"PendantConfig(machine='{self.machine_name}', min_z={self.machine_min_z})"


def load_pendant_config(path: Optional[str] = None) -> PendantConfig:
    """
    Load config from a YAML file.

    Args:
        path: Path to the YAML file, or None/missing file for defaults

    Returns:
        PendantConfig instance
    """
    if not path or not os.path.exists(path):
        return PendantConfig()

    with open(path, 'r') as f:
        return PendantConfig.from_yaml(f.read())


# =============================================================================
# YAML TEMPLATE
# =============================================================================

CONFIG_TEMPLATE = """# SmartGCode Pendant Configuration
#
# All values are optional - any missing values use the built-in defaults.
# You only need to specify values you want to override.

# =============================================================================
# MACHINE
# =============================================================================
machine:
  name: "Carvera"
  controller: "Carvera"

  # Lowest Z the spindle can reach (machine coordinates).
  # Programs whose ZMIN plus the work offset go below this raise a warning.
  # Set to null to disable the check.
  min_z: -102

# =============================================================================
# OPTIMIZER
# =============================================================================
optimizer:
  spindle_start_delay: 3            # Dwell (seconds) after each M3, 0 disables
  dwell_command: "G4"

  # First comment line of every operation written by the CAM generator
  block_start_marker: "(When using Fusion 360 for Personal Use"
  done_tag: "OPTIMIZED: "
"""
