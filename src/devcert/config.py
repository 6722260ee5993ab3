# ----------------------------------------------------------------------------------------------- #
#                 $$$$$$\   $$$$$$\ $$$$$$$$\ $$\   $$\ $$\   $$\ $$$$$$\ $$\   $$\               #
#                $$  __$$\ $$  __$$\\__$$  __|$$ |  $$ |$$$\  $$ |\_$$  _|$$ |  $$ |              #
#                $$ /  \__|$$ /  $$ |  $$ |   $$ |  $$ |$$$$\ $$ |  $$ |  \$$\ $$  |              #
#                $$ |$$$$\ $$ |  $$ |  $$ |   $$ |  $$ |$$ $$\$$ |  $$ |   \$$$$  /               #
#                $$ |\_$$ |$$ |  $$ |  $$ |   $$ |  $$ |$$ \$$$$ |  $$ |   $$  $$<                #
#                $$ |  $$ |$$ |  $$ |  $$ |   $$ |  $$ |$$ |\$$$ |  $$ |  $$  /\$$\               #
#                \$$$$$$  | $$$$$$  |  $$ |   \$$$$$$  |$$ | \$$ |$$$$$$\ $$ /  $$ |              #
#                 \______/  \______/   \__|    \______/ \__|  \__|\______|\__|  \__|              #
# ----------------------------------------------------------------------------------------------- #
# Copyright (C) GOTUNIX Networks                                                                  #
# Copyright (C) Justin Ovens                                                                      #
# LICENSE: SPDX - AGPL-3.0-or-later                                                               #
# ----------------------------------------------------------------------------------------------- #
# This program is free software: you can redistribute it and/or modify                            #
# it under the terms of the GNU Affero General Public License as                                  #
# published by the Free Software Foundation, either version 3 of the                              #
# License, or (at your option) any later version.                                                 #
#                                                                                                 #
# This program is distributed in the hope that it will be useful,                                 #
# but WITHOUT ANY WARRANTY; without even the implied warranty of                                  #
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the                                   #
# GNU Affero General Public License for more details.                                             #
#                                                                                                 #
# You should have received a copy of the GNU Affero General Public License                        #
# along with this program.  If not, see <https://www.gnu.org/licenses/>.                          #
# ----------------------------------------------------------------------------------------------- #
"""
Options accepted by devcert operations and the optional YAML config file.

Example devcert.yaml:
    options:
      skip_certutil_install: true
      skip_hosts_file: false
      renewal_buffer_in_business_days: 5
    cert_options:
      ca_cert_expiry: 180
      domain_cert_expiry: 30
    remote_port: 2702
"""

import dataclasses
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .constants import (
    DEFAULT_CA_CERT_EXPIRY,
    DEFAULT_DOMAIN_CERT_EXPIRY,
    DEFAULT_REMOTE_PORT,
    DEFAULT_RENEWAL_BUFFER,
)
from .errors import ConfigError
from .user_interface import UserInterface

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "devcert.yaml"


@dataclass
class CertOptions:
    """Validity periods, in days, for newly issued certificates."""

    ca_cert_expiry: int = DEFAULT_CA_CERT_EXPIRY
    domain_cert_expiry: int = DEFAULT_DOMAIN_CERT_EXPIRY


@dataclass
class Options:
    """Behaviour switches for certificate_for and the platform trust agent."""

    get_ca_buffer: bool = False
    get_ca_path: bool = False
    skip_certutil_install: bool = False
    skip_hosts_file: bool = False
    ui: Optional[UserInterface] = None
    renewal_buffer_in_business_days: int = DEFAULT_RENEWAL_BUFFER


@dataclass
class FileConfig:
    """Settings read from a devcert.yaml file."""

    options: Options = field(default_factory=Options)
    cert_options: CertOptions = field(default_factory=CertOptions)
    remote_port: int = DEFAULT_REMOTE_PORT


def _build(cls, section: str, values: Any, excluded=()):
    if values is None:
        return cls()
    if not isinstance(values, dict):
        raise ConfigError(f"'{section}' must be a mapping")

    allowed = {f.name for f in dataclasses.fields(cls)} - set(excluded)
    unknown = sorted(set(values) - allowed)
    if unknown:
        raise ConfigError(f"Unknown keys in '{section}': {', '.join(unknown)}")
    return cls(**values)


def resolve_config_path(config_file: Union[str, Path], config_dir: Path) -> Path:
    """
    Resolve a config file path.

    Checks the devcert config directory for relative paths.

    Args:
        config_file: Config file path (absolute or relative)
        config_dir: devcert config directory

    Returns:
        Resolved Path object
    """
    config_path = Path(config_file)

    if not config_path.is_absolute() and not config_path.exists():
        alternative_path = config_dir / config_path
        if alternative_path.exists():
            return alternative_path

    return config_path


def load_config_file(config_file: Optional[Union[str, Path]], config_dir: Path) -> FileConfig:
    """
    Load settings from a YAML config file.

    Without an explicit file, <config dir>/devcert.yaml is used when present.

    Args:
        config_file: Path to a YAML config file, or None
        config_dir: devcert config directory

    Returns:
        Parsed settings, defaults for anything not set

    Raises:
        ConfigError: If the file is missing, malformed or has unknown keys
    """
    if config_file is None:
        config_path = config_dir / CONFIG_FILE_NAME
        if not config_path.exists():
            return FileConfig()
    else:
        config_path = resolve_config_path(config_file, config_dir)
        if not config_path.exists():
            raise ConfigError(f"Config file not found: {config_file}")

    import yaml

    try:
        with open(config_path, "r") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Error loading config file {config_path}: {e}") from e

    logger.debug("loaded config file %s", config_path)

    if data is None:
        return FileConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {config_path} must contain a mapping")

    unknown = sorted(set(data) - {"options", "cert_options", "remote_port"})
    if unknown:
        raise ConfigError(f"Unknown keys in {config_path}: {', '.join(unknown)}")

    remote_port = data.get("remote_port", DEFAULT_REMOTE_PORT)
    if not isinstance(remote_port, int):
        raise ConfigError("'remote_port' must be an integer")

    return FileConfig(
        options=_build(Options, "options", data.get("options"), excluded=("ui",)),
        cert_options=_build(CertOptions, "cert_options", data.get("cert_options")),
        remote_port=remote_port,
    )


def merge_cert_options(partial: Optional[Dict[str, int]] = None) -> CertOptions:
    """Build CertOptions from defaults overlaid with a partial mapping."""
    return _build(CertOptions, "cert_options", dict(partial or {}))
