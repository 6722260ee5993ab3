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
Platform trust agents.

Each supported OS provides a class that satisfies PlatformTrustAgent. The
agent for the running OS is chosen once per session by sys.platform.
"""

import sys
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

from ..errors import PlatformNotSupportedError

if TYPE_CHECKING:
    from ..config import Options
    from ..session import Session


@runtime_checkable
class PlatformTrustAgent(Protocol):
    """Operations devcert needs from the operating system."""

    async def add_to_trust_stores(
        self, certificate_path: Path, options: Optional["Options"] = None
    ) -> None: ...

    async def remove_from_trust_stores(self, certificate_path: Path) -> None: ...

    async def add_domain_to_host_file_if_missing(self, domain: str) -> None: ...

    async def delete_protected_files(self, path: Path) -> None: ...

    async def read_protected_file(self, path: Path) -> str: ...

    async def write_protected_file(self, path: Path, contents: str) -> None: ...


def is_supported_platform(platform: Optional[str] = None) -> bool:
    platform = platform or sys.platform
    return platform in ("darwin", "win32") or platform.startswith("linux")


def get_platform(session: "Session", platform: Optional[str] = None) -> PlatformTrustAgent:
    """
    Build the trust agent for the running OS.

    Args:
        session: Session the agent operates on
        platform: Platform name (default: sys.platform)

    Returns:
        Platform trust agent

    Raises:
        PlatformNotSupportedError: If the OS is not macOS, Linux or Windows
    """
    platform = platform or sys.platform

    if platform == "darwin":
        from .darwin import MacOSPlatform

        return MacOSPlatform(session)
    if platform == "win32":
        from .win32 import WindowsPlatform

        return WindowsPlatform(session)
    if platform.startswith("linux"):
        from .linux import LinuxPlatform

        return LinuxPlatform(session)

    raise PlatformNotSupportedError(platform)
