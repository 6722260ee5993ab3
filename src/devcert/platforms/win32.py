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
Windows trust agent.

The root CA goes into the current user's root store with certutil.exe.
Firefox is configured through its manual import wizard. Protected files
are encrypted with a key derived from a user-supplied password.
"""

import base64
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING, Optional

from cryptography.fernet import Fernet, InvalidToken
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from ..constants import TRUST_STORE_NICKNAME
from ..errors import CommandError, ProtectedFileError
from ..utils import remove_tree, run
from .shared import assert_not_touching_files, hosts_file_has_domain, open_certificate_in_firefox

if TYPE_CHECKING:
    from ..config import Options
    from ..session import Session
    from ..user_interface import UserInterface

logger = logging.getLogger(__name__)

SALT_SIZE = 16
KDF_ITERATIONS = 390_000
MAX_PASSWORD_ATTEMPTS = 3


def derive_key(password: str, salt: bytes) -> bytes:
    """Derive a Fernet key from a password."""
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=KDF_ITERATIONS)
    return base64.urlsafe_b64encode(kdf.derive(password.encode("utf-8")))


def encrypt(text: str, password: str) -> bytes:
    salt = os.urandom(SALT_SIZE)
    return salt + Fernet(derive_key(password, salt)).encrypt(text.encode("utf-8"))


def decrypt(blob: bytes, password: str) -> str:
    salt, token = blob[:SALT_SIZE], blob[SALT_SIZE:]
    return Fernet(derive_key(password, salt)).decrypt(token).decode("utf-8")


class WindowsPlatform:
    """Trust agent for Windows."""

    HOST_FILE_PATH = Path(r"C:\Windows\System32\Drivers\etc\hosts")
    FIREFOX_CMD = ["cmd", "/c", "start", "firefox"]

    def __init__(self, session: "Session"):
        self.session = session

    @property
    def ui(self) -> "UserInterface":
        return self.session.ui

    async def add_to_trust_stores(
        self, certificate_path: Path, options: Optional["Options"] = None
    ) -> None:
        logger.debug("adding %s to the Windows OS trust store", certificate_path)
        try:
            run(["certutil", "-addstore", "-user", "root", str(certificate_path)])
        except CommandError as e:
            logger.warning("certutil failed to add %s: %s", certificate_path, e)

        # No NSS certutil on Windows, Firefox goes through its import wizard
        logger.debug("adding %s to the Firefox trust store", certificate_path)
        try:
            await open_certificate_in_firefox(self.FIREFOX_CMD, certificate_path, self.ui)
        except OSError as e:
            logger.debug("Error opening Firefox, most likely Firefox is not installed: %s", e)

    async def remove_from_trust_stores(self, certificate_path: Path) -> None:
        logger.warning(
            "Removing old certificates from trust stores. You may be prompted to grant "
            "permission for this. It's safe to delete old devcert certificates."
        )
        try:
            run(["certutil", "-delstore", "-user", "root", TRUST_STORE_NICKNAME])
        except CommandError as e:
            logger.debug(
                "failed to remove %s from Windows OS trust store, continuing. %s",
                certificate_path,
                e,
            )

    async def add_domain_to_host_file_if_missing(self, domain: str) -> None:
        contents = self.HOST_FILE_PATH.read_text()
        if hosts_file_has_domain(contents, domain):
            return
        # Appending to the hosts file needs an elevated shell
        command = f"/c echo 127.0.0.1  {domain}>> {self.HOST_FILE_PATH}"
        run(
            [
                "powershell",
                "-NoProfile",
                "-Command",
                f"Start-Process -FilePath cmd -ArgumentList '{command}' -Verb RunAs -Wait",
            ]
        )

    async def delete_protected_files(self, path: Path) -> None:
        assert_not_touching_files(self.session, path, "delete")
        path = Path(path)
        if path.is_dir():
            remove_tree(path)
        elif path.exists():
            path.unlink()

    async def read_protected_file(self, path: Path) -> str:
        """
        Decrypt a protected file.

        A wrong password clears the cached one and prompts again.

        Raises:
            ProtectedFileError: If no valid password is given
        """
        assert_not_touching_files(self.session, path, "read")
        blob = Path(path).read_bytes()
        for _attempt in range(MAX_PASSWORD_ATTEMPTS):
            password = await self._encryption_password()
            try:
                return decrypt(blob, password)
            except InvalidToken:
                logger.debug("bad decrypt for %s, asking for the password again", path)
                self.session.encryption_password = None
        raise ProtectedFileError(f"Unable to decrypt {path}: wrong devcert password")

    async def write_protected_file(self, path: Path, contents: str) -> None:
        assert_not_touching_files(self.session, path, "write")
        password = await self._encryption_password()
        Path(path).write_bytes(encrypt(contents, password))

    async def _encryption_password(self) -> str:
        if not self.session.encryption_password:
            self.session.encryption_password = await self.ui.get_windows_encryption_password()
        return self.session.encryption_password
