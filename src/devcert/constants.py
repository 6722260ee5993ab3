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
Paths and defaults for devcert's configuration directory.

Directory Structure:
    <config dir>/
    ├── devcert-ca-version               # CA setup version marker
    ├── .rnd                             # OpenSSL random seed
    ├── certificate-authority/
    │   ├── private-key.key              # Root CA private key (protected)
    │   ├── certificate.cert             # Root CA certificate
    │   ├── index.txt                    # OpenSSL CA database
    │   └── serial                       # OpenSSL serial counter
    └── domains/
        └── <common name>/
            ├── private-key.key
            ├── certificate.crt
            └── certificate-signing-request.csr
"""

import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

DEFAULT_REMOTE_PORT = 2702
DEFAULT_RENEWAL_BUFFER = 5
DEFAULT_CA_CERT_EXPIRY = 180
DEFAULT_DOMAIN_CERT_EXPIRY = 30

# Version of the on-disk certificate authority layout
CA_VERSION = "2"

# Name the root CA is registered under in trust stores
TRUST_STORE_NICKNAME = "devcert"

# Lines printed by `devcert remote` to report its state over ssh
REMOTE_READY_MARKER = "STATE: READY_FOR_CONNECTION"
REMOTE_CLOSED_MARKER = "STATE: REMOTE_CONNECTION_CLOSED"

IS_MAC = sys.platform == "darwin"
IS_LINUX = sys.platform.startswith("linux")
IS_WINDOWS = sys.platform == "win32"


def application_config_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """Return the per-user application config directory for devcert."""
    env = os.environ if env is None else env

    if IS_MAC:
        return Path.home() / "Library" / "Application Support" / "devcert"
    if IS_WINDOWS:
        local_app_data = env.get("LOCALAPPDATA") or str(Path.home() / "AppData" / "Local")
        return Path(local_app_data) / "devcert"
    xdg_config_home = env.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(xdg_config_home) / "devcert"


def default_config_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """
    Resolve the devcert configuration directory.

    Args:
        env: Environment mapping to read DEVCERT_CONFIG_DIR from (default: os.environ)

    Returns:
        Configuration directory path
    """
    env = os.environ if env is None else env
    override = env.get("DEVCERT_CONFIG_DIR")
    if override:
        return Path(os.path.expanduser(override))
    return application_config_dir(env)


def legacy_config_dir(env: Optional[Mapping[str, str]] = None) -> Path:
    """Config directory used by early devcert releases, removed on uninstall."""
    env = os.environ if env is None else env

    if IS_WINDOWS and env.get("LOCALAPPDATA"):
        return Path(env["LOCALAPPDATA"]) / "devcert" / "config"

    if IS_LINUX and hasattr(os, "getuid") and os.getuid() == 0:
        user_home = Path("/usr/local/share")
    else:
        user_home = Path.home()
    return user_home / ".config" / "devcert"


def is_valid_common_name(common_name: str) -> bool:
    """Check that a common name can be used as a directory name under domains/."""
    return (
        isinstance(common_name, str)
        and bool(common_name)
        and "/" not in common_name
        and "\\" not in common_name
        and common_name not in (".", "..")
    )


def _check_common_name(common_name: str):
    assert is_valid_common_name(common_name), f"invalid common name: {common_name!r}"


@dataclass(frozen=True)
class ConfigPaths:
    """Every on-disk location devcert reads or writes under one config directory."""

    config_dir: Path

    @classmethod
    def from_env(cls, env: Optional[Mapping[str, str]] = None) -> "ConfigPaths":
        return cls(default_config_dir(env))

    @property
    def domains_dir(self) -> Path:
        return self.config_dir / "domains"

    @property
    def root_ca_dir(self) -> Path:
        return self.config_dir / "certificate-authority"

    @property
    def root_ca_key_path(self) -> Path:
        return self.root_ca_dir / "private-key.key"

    @property
    def root_ca_cert_path(self) -> Path:
        return self.root_ca_dir / "certificate.cert"

    @property
    def openssl_serial_file(self) -> Path:
        return self.root_ca_dir / "serial"

    @property
    def openssl_database_file(self) -> Path:
        return self.root_ca_dir / "index.txt"

    @property
    def ca_version_file(self) -> Path:
        return self.config_dir / "devcert-ca-version"

    @property
    def rand_file(self) -> Path:
        return self.config_dir / ".rnd"

    def path_for_domain(self, common_name: str, *segments: str) -> Path:
        """
        Return the directory for a domain, or a file inside it.

        Args:
            common_name: Domain common name
            segments: Optional path segments below the domain directory

        Returns:
            Path under the domains directory
        """
        _check_common_name(common_name)
        return self.domains_dir.joinpath(common_name, *segments)

    def domain_key_path(self, common_name: str) -> Path:
        return self.path_for_domain(common_name, "private-key.key")

    def domain_cert_path(self, common_name: str) -> Path:
        return self.path_for_domain(common_name, "certificate.crt")

    def domain_csr_path(self, common_name: str) -> Path:
        return self.path_for_domain(common_name, "certificate-signing-request.csr")

    def ensure_dirs(self):
        """Create the config, domains and CA directories."""
        for directory in (self.config_dir, self.domains_dir, self.root_ca_dir):
            directory.mkdir(parents=True, exist_ok=True)
