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
"""Per-operation state shared by the certificate authority, domain engine and platform agent."""

import logging
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from dotenv import dotenv_values, find_dotenv

from .config import Options
from .constants import ConfigPaths, application_config_dir, default_config_dir, legacy_config_dir
from .platforms import PlatformTrustAgent, get_platform
from .user_interface import DefaultUI, UserInterface

logger = logging.getLogger(__name__)

DEFAULT_REMOTE_COMMAND = "devcert"


def load_env(env_file: Optional[Union[str, Path]] = None) -> Dict[str, str]:
    """
    Read settings from a .env file overlaid with the process environment.

    The process environment is never modified.

    Args:
        env_file: .env file to read (default: nearest .env from the working directory)

    Returns:
        Merged settings, process environment taking precedence
    """
    path = str(env_file) if env_file else find_dotenv(usecwd=True)
    values = {k: v for k, v in dotenv_values(path).items() if v is not None} if path else {}
    return {**values, **os.environ}


@dataclass
class Session:
    """
    Context for one top-level devcert operation.

    Holds the config paths, caller options, environment settings, the Windows
    encryption password once entered, and the platform trust agent.
    """

    paths: ConfigPaths
    options: Options = field(default_factory=Options)
    env: Dict[str, str] = field(default_factory=dict)
    encryption_password: Optional[str] = None
    platform_agent: Optional[PlatformTrustAgent] = None
    _default_ui: Optional[UserInterface] = field(default=None, init=False, repr=False)

    @classmethod
    def create(
        cls,
        options: Optional[Options] = None,
        config_dir: Optional[Union[str, Path]] = None,
        env_file: Optional[Union[str, Path]] = None,
    ) -> "Session":
        """
        Build a session from the environment.

        Args:
            options: Caller options (default: Options())
            config_dir: Config directory (default: $DEVCERT_CONFIG_DIR or the OS config path)
            env_file: Optional .env file

        Returns:
            New session
        """
        env = load_env(env_file)
        directory = Path(config_dir).expanduser() if config_dir else default_config_dir(env)
        logger.debug("using config directory %s", directory)
        return cls(paths=ConfigPaths(directory), options=options or Options(), env=env)

    @property
    def platform(self) -> PlatformTrustAgent:
        if self.platform_agent is None:
            self.platform_agent = get_platform(self)
        return self.platform_agent

    @property
    def ui(self) -> UserInterface:
        if self.options.ui is not None:
            return self.options.ui
        if self._default_ui is None:
            self._default_ui = DefaultUI()
        return self._default_ui

    @property
    def legacy_config_dir(self) -> Path:
        return legacy_config_dir(self.env or None)

    def stale_legacy_config_dir(self) -> Optional[Path]:
        """
        Return the legacy config directory if uninstall should remove it.

        It is kept when the config directory was overridden, and when it is
        the config directory itself or one of its parents.
        """
        config_dir = self.paths.config_dir.resolve()
        if config_dir != application_config_dir(self.env or None).resolve():
            return None
        legacy = self.legacy_config_dir.resolve()
        if config_dir.is_relative_to(legacy):
            return None
        return legacy

    def remote_command(self) -> List[str]:
        """Command that runs devcert on a remote machine, as a list of words."""
        return shlex.split(self.env.get("DEVCERT_REMOTE_COMMAND") or DEFAULT_REMOTE_COMMAND)

