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
Linux trust agent.

The root CA is copied into the distribution's CA anchor folders and the
system bundle is rebuilt. Firefox and Chrome keep their own NSS databases,
updated with certutil from libnss3-tools.
"""

import logging
import platform
from dataclasses import dataclass
from enum import IntEnum
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Tuple

from ..errors import CommandError, UnreachableError
from ..utils import command_exists, run
from .shared import (
    PosixPlatform,
    add_certificate_to_nss_cert_db,
    close_firefox,
    open_certificate_in_firefox,
    remove_certificate_from_nss_cert_db,
    trust_store_name,
)

if TYPE_CHECKING:
    from ..config import Options
    from ..session import Session

logger = logging.getLogger(__name__)


class LinuxFlavor(IntEnum):
    UNKNOWN = 0
    UBUNTU = 1
    RHEL7 = 2
    FEDORA = 3


DISTRO_FLAVORS = {
    "Red Hat Enterprise Linux Workstation": LinuxFlavor.RHEL7,
    "Ubuntu": LinuxFlavor.UBUNTU,
    "Fedora": LinuxFlavor.FEDORA,
    "Fedora Linux": LinuxFlavor.FEDORA,
}


@dataclass(frozen=True)
class Cmd:
    command: str
    args: Tuple[str, ...] = ()

    def argv(self) -> List[str]:
        return [self.command, *self.args]


@dataclass
class LinuxFlavorDetails:
    ca_folders: List[str]
    post_ca_placement_commands: List[Cmd]
    post_ca_removal_commands: List[Cmd]


@dataclass
class LinuxFlavorOverrides:
    """Replace parts of a flavor's defaults, e.g. for containers without update-ca-*."""

    custom_ca_roots: Optional[List[str]] = None
    omit_post_ca_placement_commands: bool = False
    omit_post_ca_removal_commands: bool = False


def current_distro() -> str:
    """Return the NAME field of /etc/os-release, or an empty string."""
    try:
        return platform.freedesktop_os_release().get("NAME", "")
    except OSError:
        return ""


def determine_linux_flavor(distro: Optional[str] = None) -> Tuple[LinuxFlavor, Optional[str]]:
    """
    Map a distribution name to a Linux flavor.

    Args:
        distro: Distribution name (default: read from /etc/os-release)

    Returns:
        Tuple of (flavor, message); message explains an UNKNOWN result
    """
    distro = current_distro() if distro is None else distro
    flavor = DISTRO_FLAVORS.get(distro, LinuxFlavor.UNKNOWN)
    if flavor == LinuxFlavor.UNKNOWN:
        return flavor, f"Unknown linux distro: {distro}"
    return flavor, None


def linux_flavor_details(
    flavor: LinuxFlavor, overrides: Optional[LinuxFlavorOverrides] = None
) -> LinuxFlavorDetails:
    """
    Return CA folders and update commands for a Linux flavor.

    Args:
        flavor: Detected flavor
        overrides: Optional replacements for the flavor defaults

    Returns:
        Flavor details

    Raises:
        UnreachableError: If the flavor is UNKNOWN
    """
    if flavor in (LinuxFlavor.RHEL7, LinuxFlavor.FEDORA):
        details = LinuxFlavorDetails(
            ca_folders=["/etc/pki/ca-trust/source/anchors", "/usr/share/pki/ca-trust-source"],
            post_ca_placement_commands=[Cmd("sudo", ("update-ca-trust",))],
            post_ca_removal_commands=[Cmd("sudo", ("update-ca-trust",))],
        )
    elif flavor == LinuxFlavor.UBUNTU:
        details = LinuxFlavorDetails(
            ca_folders=["/etc/pki/ca-trust/source/anchors", "/usr/local/share/ca-certificates"],
            post_ca_placement_commands=[Cmd("sudo", ("update-ca-certificates",))],
            post_ca_removal_commands=[Cmd("sudo", ("update-ca-certificates",))],
        )
    else:
        raise UnreachableError(flavor, "Unable to detect linux flavor")

    if overrides:
        if overrides.custom_ca_roots is not None:
            details.ca_folders = list(overrides.custom_ca_roots)
        if overrides.omit_post_ca_placement_commands:
            details.post_ca_placement_commands = []
        if overrides.omit_post_ca_removal_commands:
            details.post_ca_removal_commands = []
    return details


def current_linux_flavor_details(
    overrides: Optional[LinuxFlavorOverrides] = None,
) -> LinuxFlavorDetails:
    flavor, message = determine_linux_flavor()
    if message:
        logger.warning(message)
    return linux_flavor_details(flavor, overrides)


@dataclass
class LinuxPaths:
    firefox_nss_dir: str = str(Path.home() / ".mozilla" / "firefox" / "*")
    chrome_nss_dir: str = str(Path.home() / ".pki" / "nssdb")
    firefox_bin_path: Path = Path("/usr/bin/firefox")
    chrome_bin_path: Path = Path("/usr/bin/google-chrome")


class LinuxPlatform(PosixPlatform):
    """Trust agent for Ubuntu, Fedora and RHEL."""

    def __init__(
        self,
        session: "Session",
        overrides: Optional[LinuxFlavorOverrides] = None,
        paths: Optional[LinuxPaths] = None,
    ):
        super().__init__(session)
        self.overrides = overrides
        self.paths = paths or LinuxPaths()
        self._details: Optional[LinuxFlavorDetails] = None

    @property
    def flavor_details(self) -> LinuxFlavorDetails:
        if self._details is None:
            self._details = current_linux_flavor_details(self.overrides)
        return self._details

    async def add_to_trust_stores(
        self, certificate_path: Path, options: Optional["Options"] = None
    ) -> None:
        """
        Add a certificate to the system store and the browser NSS databases.

        Args:
            certificate_path: CA certificate to trust
            options: Options controlling certutil installation
        """
        options = options or self.session.options
        details = self.flavor_details
        nickname = trust_store_name(self.session, certificate_path)
        name = f"{nickname}.crt"

        logger.debug("adding %s to Linux system-wide trust stores", certificate_path)
        placed = False
        for folder in details.ca_folders:
            if not Path(folder).is_dir():
                logger.debug("CA folder %s does not exist, skipping", folder)
                continue
            run(["sudo", "cp", str(certificate_path), str(Path(folder) / name)])
            placed = True

        if placed:
            for cmd in details.post_ca_placement_commands:
                run(cmd.argv())
        else:
            logger.warning("No CA folder found; %s was not added to the system store", name)

        if self.is_firefox_installed():
            logger.debug("Firefox install detected: adding certificate to Firefox trust stores")
            if not command_exists("certutil"):
                if options.skip_certutil_install:
                    logger.debug(
                        "NSS tooling is not installed and skip_certutil_install is set, "
                        "falling back to manual certificate install for Firefox"
                    )
                    await open_certificate_in_firefox(
                        [str(self.paths.firefox_bin_path)], certificate_path, self.ui
                    )
                else:
                    logger.debug("NSS tooling is not installed, installing it with apt")
                    run(["sudo", "apt", "install", "-y", "libnss3-tools"])
            if command_exists("certutil"):
                await close_firefox(self.ui)
                add_certificate_to_nss_cert_db(
                    self.paths.firefox_nss_dir, certificate_path, "certutil", nickname=nickname
                )
        else:
            logger.debug("Firefox does not appear to be installed, skipping Firefox steps")

        await self._add_to_chrome(certificate_path, nickname)

    async def _add_to_chrome(self, certificate_path: Path, nickname: str):
        if not self.is_chrome_installed():
            logger.debug("Chrome does not appear to be installed, skipping Chrome steps")
            return
        logger.debug("Chrome install detected: adding certificate to Chrome trust store")
        if not command_exists("certutil"):
            await self.ui.warn_chrome_on_linux_without_certutil()
            return
        await close_firefox(self.ui)
        add_certificate_to_nss_cert_db(
            self.paths.chrome_nss_dir, certificate_path, "certutil", nickname=nickname
        )

    async def remove_from_trust_stores(self, certificate_path: Path) -> None:
        details = self.flavor_details
        nickname = trust_store_name(self.session, certificate_path)

        for folder in details.ca_folders:
            placed_path = Path(folder) / f"{nickname}.crt"
            if not placed_path.exists():
                logger.debug("cert at location %s was not found. Skipping...", placed_path)
                continue
            try:
                run(["sudo", "rm", str(placed_path)])
                for cmd in details.post_ca_removal_commands:
                    run(cmd.argv())
            except CommandError as e:
                logger.debug("failed to remove %s, continuing. %s", placed_path, e)

        if command_exists("certutil"):
            if self.is_firefox_installed():
                remove_certificate_from_nss_cert_db(
                    self.paths.firefox_nss_dir, "certutil", nickname=nickname
                )
            if self.is_chrome_installed():
                remove_certificate_from_nss_cert_db(
                    self.paths.chrome_nss_dir, "certutil", nickname=nickname
                )

    def is_firefox_installed(self) -> bool:
        return self.paths.firefox_bin_path.exists()

    def is_chrome_installed(self) -> bool:
        return self.paths.chrome_bin_path.exists()
