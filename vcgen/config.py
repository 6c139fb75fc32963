"""vcgen Configuration — project-level .vcgenrc.yml support.

Loads configuration from .vcgenrc.yml (or .vcgenrc.yaml, .vcgenrc.json)
found by walking up from the working directory. Allows teams to configure:
  - Which simplification rules run, and for how many rounds
  - Whether generation stops at the first error
  - The solver timeout used by ``vcgen gen --discharge``
  - Output format and log level for the CLI

Example .vcgenrc.yml:
    simplify: true
    simplify_rules:
      - cursor
      - sequence
      - arithmetic
    max_simplify_rounds: 8
    collect_all_errors: true
    solver_timeout_ms: 5000
    format: table            # "table" or "json"
    log_level: warning
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import yaml

from vcgen.simplify import RULE_NAMES

logger = logging.getLogger(__name__)


@dataclass
class VCGenConfig:
    """Per-call generation settings."""
    # Leave step
    simplify: bool = True
    simplify_rules: Tuple[str, ...] = RULE_NAMES
    max_simplify_rounds: int = 8
    # Errors: False stops at the first one
    collect_all_errors: bool = True
    # Dispatch
    solver_timeout_ms: int = 5000
    # CLI output
    format: str = "table"  # "table", "json"
    log_level: str = "warning"


# ---------------------------------------------------------------------------
# Config file names (in priority order)
# ---------------------------------------------------------------------------

_CONFIG_FILES = [
    ".vcgenrc.yml",
    ".vcgenrc.yaml",
    ".vcgenrc.json",
]

_FORMATS = ("table", "json")


def find_config(start_dir: str = ".") -> Optional[str]:
    """Find the nearest config file by walking up from start_dir."""
    current = os.path.abspath(start_dir)
    while True:
        for name in _CONFIG_FILES:
            path = os.path.join(current, name)
            if os.path.isfile(path):
                return path
        parent = os.path.dirname(current)
        if parent == current:
            break
        current = parent
    return None


def load_config(path: Optional[str] = None, start_dir: str = ".") -> VCGenConfig:
    """Load configuration from a file.

    If no path is given, searches for a config file starting from start_dir.
    If no config file is found, or it cannot be read, returns defaults.
    """
    if path is None:
        path = find_config(start_dir)

    if path is None:
        return VCGenConfig()

    try:
        with open(path, "r") as f:
            content = f.read()
    except OSError as exc:
        logger.warning("cannot read %s: %s", path, exc)
        return VCGenConfig()

    try:
        if path.endswith(".json"):
            data = json.loads(content)
        else:
            data = yaml.safe_load(content)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        logger.warning("cannot parse %s: %s", path, exc)
        return VCGenConfig()

    if not isinstance(data, dict):
        return VCGenConfig()
    logger.debug("loaded configuration from %s", path)
    return _dict_to_config(data)


def _int_setting(data: Dict[str, Any], key: str, default: int) -> int:
    try:
        return int(data[key])
    except (TypeError, ValueError):
        logger.warning("ignoring non-integer %s %r", key, data[key])
        return default


def _dict_to_config(data: Dict[str, Any]) -> VCGenConfig:
    """Convert a parsed dict to VCGenConfig."""
    config = VCGenConfig()

    if "simplify" in data:
        config.simplify = bool(data["simplify"])
    if "simplify_rules" in data and isinstance(data["simplify_rules"], list):
        rules = []
        for name in data["simplify_rules"]:
            if name in RULE_NAMES:
                rules.append(str(name))
            else:
                logger.warning("ignoring unknown simplification rule %r", name)
        config.simplify_rules = tuple(rules)
    if "max_simplify_rounds" in data:
        config.max_simplify_rounds = max(1, _int_setting(data, "max_simplify_rounds", config.max_simplify_rounds))
    if "collect_all_errors" in data:
        config.collect_all_errors = bool(data["collect_all_errors"])
    if "solver_timeout_ms" in data:
        config.solver_timeout_ms = _int_setting(data, "solver_timeout_ms", config.solver_timeout_ms)
    if "format" in data:
        if data["format"] in _FORMATS:
            config.format = str(data["format"])
        else:
            logger.warning("ignoring unknown output format %r", data["format"])
    if "log_level" in data:
        config.log_level = str(data["log_level"]).lower()

    return config
