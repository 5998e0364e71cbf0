"""
PostScript Cross-Compiler Configuration
Optimization/instrumentation switches and the discovery-pass environment
"""

import os
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Optional

from psc.errors import ConfigError
from psc.typetags import TypeTag, tag_from_name

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "psc.json"


def default_environment() -> Dict[str, TypeTag]:
    """Symbols the runtime provides before any procedure runs."""
    return {
        '$error': TypeTag.DICT,
        'opt': TypeTag.DICT,
        'pixx': TypeTag.INTVAL,
        'pixy': TypeTag.INTVAL,
        'pixs': TypeTag.ARRAY,
        'bwipjs_dontdraw': TypeTag.BOOLEAN,
    }


@dataclass
class CompilerConfig:
    devar: bool = True
    coverage: bool = False
    coverage_dir: str = "coverage"
    environment: Dict[str, TypeTag] = field(default_factory=default_environment)

    @classmethod
    def from_flags(cls, flags: Iterable[str], base: Optional['CompilerConfig'] = None) -> 'CompilerConfig':
        """Apply command-line style flags such as '--no-devar'."""
        config = base or cls()
        for flag in flags:
            if flag == '--no-devar':
                config.devar = False
            elif flag == '--with-devar':
                config.devar = True
            elif flag == '--no-coverage':
                config.coverage = False
            elif flag == '--with-coverage':
                config.coverage = True
            elif flag:
                logger.warning('Unknown flag "%s" ignored.', flag)
        return config

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'CompilerConfig':
        config = cls()
        for key, value in data.items():
            if key in ('devar', 'coverage'):
                if not isinstance(value, bool):
                    raise ConfigError(f"'{key}' must be true or false")
                setattr(config, key, value)
            elif key == 'coverage_dir':
                if not isinstance(value, str) or not value:
                    raise ConfigError("'coverage_dir' must be a non-empty string")
                config.coverage_dir = value
            elif key == 'environment':
                if not isinstance(value, dict):
                    raise ConfigError("'environment' must map names to type names")
                env = default_environment()
                for name, type_name in value.items():
                    try:
                        env[name] = tag_from_name(str(type_name))
                    except ValueError as e:
                        raise ConfigError(str(e)) from None
                config.environment = env
            else:
                raise ConfigError(f"Unknown configuration key '{key}'")
        return config


def load_config(config_path: Optional[str] = None) -> CompilerConfig:
    """Load a JSON config file; psc.json in the working directory is used when present."""
    if not config_path:
        if os.path.isfile(DEFAULT_CONFIG_FILE):
            config_path = DEFAULT_CONFIG_FILE
        else:
            return CompilerConfig()
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read config {config_path}: {e.strerror}") from None
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON in {config_path}: {e.msg}", e.lineno) from None
    if not isinstance(data, dict):
        raise ConfigError(f"Config {config_path} must hold a JSON object")
    logger.debug("loaded config %s", config_path)
    return CompilerConfig.from_dict(data)
