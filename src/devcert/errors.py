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
"""Exceptions raised by devcert."""

from typing import List, Optional


class DevcertError(Exception):
    """Base class for every error raised by devcert."""


class CommandError(DevcertError):
    """An external command exited with a non-zero status."""

    def __init__(self, cmd: List[str], returncode: int, stderr: Optional[str] = None):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = (stderr or "").strip()
        message = f"Command {' '.join(cmd)!r} failed with exit code {returncode}"
        if self.stderr:
            message += f"\n{self.stderr}"
        super().__init__(message)


class OpenSSLError(DevcertError):
    """OpenSSL failed while performing one of devcert's operations."""

    def __init__(self, description: str, stderr: str = ""):
        self.description = description
        self.stderr = stderr
        super().__init__(f"OpenSSL errored while performing: {description}\n{stderr}")


class OpenSSLNotFoundError(DevcertError):
    def __init__(self):
        super().__init__(
            "OpenSSL not found: OpenSSL is required to generate SSL certificates - "
            "make sure it is installed and available in your PATH"
        )


class PlatformNotSupportedError(DevcertError):
    def __init__(self, platform: str):
        self.platform = platform
        super().__init__(f'Platform not supported: "{platform}"')


class UnreachableError(DevcertError):
    """A value reached a branch that should be impossible."""

    def __init__(self, value, message: str):
        self.value = value
        super().__init__(f"{message}: {value!r}")


class CertificateRevocationError(DevcertError):
    pass


class PemFormatError(DevcertError, ValueError):
    pass


class ProtectedFileError(DevcertError):
    """A protected file could not be read, written or deleted."""


class RemoteTrustError(DevcertError):
    """Trusting the certificate authority of a remote machine failed."""


class ConfigError(DevcertError):
    pass


class CertificateNotFoundError(DevcertError):
    pass
