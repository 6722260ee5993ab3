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
macOS trust agent.

Chrome and Safari use the System keychain. Firefox keeps its own NSS
databases, updated with certutil from the Homebrew `nss` formula.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from ..errors import CommandError
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

logger = logging.getLogger(__name__)

SYSTEM_KEYCHAIN = "/Library/Keychains/System.keychain"


def certutil_path() -> str:
    prefix = run(["brew", "--prefix", "nss"]).strip()
    return str(Path(prefix) / "bin" / "certutil")


class MacOSPlatform(PosixPlatform):
    """Trust agent for macOS."""

    FIREFOX_BUNDLE_PATH = Path("/Applications/Firefox.app")
    FIREFOX_BIN_PATH = FIREFOX_BUNDLE_PATH / "Contents" / "MacOS" / "firefox"
    FIREFOX_NSS_DIR = str(
        Path.home() / "Library" / "Application Support" / "Firefox" / "Profiles" / "*"
    )
    HOST_ENTRY_TEMPLATE = "\n127.0.0.1 {domain}\n"

    async def add_to_trust_stores(
        self, certificate_path: Path, options: Optional["Options"] = None
    ) -> None:
        """
        Add a certificate to the System keychain and Firefox.

        Args:
            certificate_path: CA certificate to trust
            options: Options controlling certutil installation
        """
        options = options or self.session.options

        logger.debug("adding %s to the macOS system keychain", certificate_path)
        run(
            [
                "sudo",
                "security",
                "add-trusted-cert",
                "-d",
                "-r",
                "trustRoot",
                "-k",
                SYSTEM_KEYCHAIN,
                "-p",
                "ssl",
                "-p",
                "basic",
                str(certificate_path),
            ]
        )

        if not self.is_firefox_installed():
            logger.debug("Firefox does not appear to be installed, skipping Firefox steps")
            return

        logger.debug("Firefox install detected, adding certificate to Firefox trust store")
        if not self.is_nss_installed():
            if options.skip_certutil_install:
                logger.debug(
                    "certutil is not installed and skip_certutil_install is set, "
                    "falling back to a manual install"
                )
                return await open_certificate_in_firefox(
                    [str(self.FIREFOX_BIN_PATH)], certificate_path, self.ui
                )
            if not command_exists("brew"):
                logger.debug("Homebrew is not installed, falling back to a manual install")
                return await open_certificate_in_firefox(
                    [str(self.FIREFOX_BIN_PATH)], certificate_path, self.ui
                )
            logger.debug("certutil is not installed, installing it with Homebrew")
            run(["brew", "install", "nss"])

        await close_firefox(self.ui)
        add_certificate_to_nss_cert_db(
            self.FIREFOX_NSS_DIR,
            certificate_path,
            certutil_path(),
            nickname=trust_store_name(self.session, certificate_path),
        )

    async def remove_from_trust_stores(self, certificate_path: Path) -> None:
        logger.debug("removing %s from the macOS system keychain", certificate_path)
        if Path(certificate_path).exists():
            try:
                run(["sudo", "security", "remove-trusted-cert", "-d", str(certificate_path)])
            except CommandError as e:
                logger.debug(
                    "failed to remove %s from macOS cert store, continuing. %s",
                    certificate_path,
                    e,
                )

        if self.is_firefox_installed() and self.is_nss_installed():
            logger.debug("removing certificate from Firefox NSS databases")
            remove_certificate_from_nss_cert_db(
                self.FIREFOX_NSS_DIR,
                certutil_path(),
                nickname=trust_store_name(self.session, certificate_path),
            )

    def is_firefox_installed(self) -> bool:
        return self.FIREFOX_BUNDLE_PATH.exists()

    def is_nss_installed(self) -> bool:
        try:
            return "nss" in run(["brew", "list", "-1"]).split()
        except (CommandError, FileNotFoundError):
            return False
