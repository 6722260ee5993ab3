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
Domain certificates signed by the devcert root CA.

Each common name gets its own directory under <config dir>/domains, reused on
later requests until it is close to expiring.
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, List

from .config import CertOptions
from .configs import domain_certificate_config, domain_signing_request_config
from .errors import CertificateRevocationError, DevcertError
from .utils import PathLike, openssl

if TYPE_CHECKING:
    from .certificate_authority import CertificateAuthority
    from .session import Session

logger = logging.getLogger(__name__)

KEY_SIZE = 2048


def generate_key(path: PathLike, rand_file: PathLike):
    """Generate an RSA private key readable only by its owner."""
    logger.debug("generate_key: %s", path)
    path = Path(path)
    if path.exists():
        path.chmod(0o600)
        path.unlink()
    openssl(["genrsa", "-out", path, str(KEY_SIZE)], "generating RSA key", rand_file)
    path.chmod(0o400)


class DomainCertificates:
    """Generate and revoke per-domain certificates."""

    def __init__(self, session: "Session", authority: "CertificateAuthority"):
        self.session = session
        self.paths = session.paths
        self.authority = authority

    async def generate(
        self, common_name: str, alternative_names: List[str], cert_options: CertOptions
    ):
        """
        Generate a certificate for a domain, signed by the root CA.

        Args:
            common_name: Domain common name
            alternative_names: Extra subject alternative names
            cert_options: Certificate validity settings
        """
        rand_file = self.paths.rand_file
        self.paths.path_for_domain(common_name).mkdir(parents=True, exist_ok=True)

        logger.debug("Generating private key for %s", common_name)
        key_path = self.paths.domain_key_path(common_name)
        generate_key(key_path, rand_file)

        logger.debug("Generating certificate signing request for %s", common_name)
        csr_path = self.paths.domain_csr_path(common_name)
        with domain_signing_request_config(common_name, alternative_names) as config_path:
            openssl(
                ["req", "-new", "-config", config_path, "-key", key_path, "-out", csr_path],
                f"generating CSR for {common_name}",
                rand_file,
            )

        logger.debug(
            "Generating certificate for %s from signing request and signing with root CA",
            common_name,
        )
        cert_path = self.paths.domain_cert_path(common_name)
        async with self.authority.credentials() as credentials:
            with domain_certificate_config(
                self.paths, common_name, alternative_names
            ) as config_path:
                openssl(
                    [
                        "ca",
                        "-config",
                        config_path,
                        "-in",
                        csr_path,
                        "-out",
                        cert_path,
                        "-keyfile",
                        credentials.key_path,
                        "-cert",
                        credentials.cert_path,
                        "-days",
                        str(cert_options.domain_cert_expiry),
                        "-batch",
                    ],
                    f"signing cert for {common_name} with root ca",
                    rand_file,
                )

    async def revoke(self, common_name: str):
        """
        Revoke a domain certificate in the CA database.

        Args:
            common_name: Domain common name

        Raises:
            CertificateRevocationError: If OpenSSL or the platform agent fails
        """
        logger.debug("Revoking certificate for %s", common_name)
        cert_path = self.paths.domain_cert_path(common_name)
        assert cert_path.exists(), "domain certificate must exist"
        assert cert_path.is_file(), "domain certificate must be a file"
        assert cert_path.stat().st_size > 0, "domain certificate must be non-empty"

        try:
            async with self.authority.credentials() as credentials:
                assert credentials.cert_path.is_file(), "ca cert must be a file"
                assert credentials.key_path.is_file(), "ca key must be a file"
                with domain_certificate_config(self.paths, common_name, []) as config_path:
                    openssl(
                        [
                            "ca",
                            "-config",
                            config_path,
                            "-revoke",
                            cert_path,
                            "-keyfile",
                            credentials.key_path,
                            "-cert",
                            credentials.cert_path,
                        ],
                        f"revoking domain certificate for {common_name}",
                        self.paths.rand_file,
                    )
        except DevcertError as e:
            raise CertificateRevocationError(f"Problem revoking certificate\n{e}") from e
