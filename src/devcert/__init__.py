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
"""Locally trusted development certificates."""

from .api import (
    DomainData,
    certificate_for,
    configured_domains,
    get_cert_expiration_info,
    has_certificate_for,
    remove_and_revoke_domain_cert,
    remove_domain,
    uninstall,
    untrust_machine_by_certificate,
)
from .config import CertOptions, Options
from .errors import (
    CertificateNotFoundError,
    CertificateRevocationError,
    CommandError,
    ConfigError,
    DevcertError,
    OpenSSLError,
    OpenSSLNotFoundError,
    PemFormatError,
    PlatformNotSupportedError,
    ProtectedFileError,
    RemoteTrustError,
    UnreachableError,
)
from .expiry import ExpirationInfo
from .remote import RemoteTrustResult, trust_remote_machine
from .session import Session
from .user_interface import UserInterface

__version__ = "1.0.0"

__all__ = [
    "CertOptions",
    "CertificateNotFoundError",
    "CertificateRevocationError",
    "CommandError",
    "ConfigError",
    "DevcertError",
    "DomainData",
    "ExpirationInfo",
    "OpenSSLError",
    "OpenSSLNotFoundError",
    "Options",
    "PemFormatError",
    "PlatformNotSupportedError",
    "ProtectedFileError",
    "RemoteTrustError",
    "RemoteTrustResult",
    "Session",
    "UnreachableError",
    "UserInterface",
    "certificate_for",
    "configured_domains",
    "get_cert_expiration_info",
    "has_certificate_for",
    "remove_and_revoke_domain_cert",
    "remove_domain",
    "trust_remote_machine",
    "uninstall",
    "untrust_machine_by_certificate",
]
