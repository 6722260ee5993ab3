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
The devcert root certificate authority.

One root CA exists per config directory. Its private key is stored as a
protected file; its certificate is added to the OS and browser trust stores
so that every domain certificate it signs is trusted.
"""

import contextlib
import logging
from pathlib import Path
from typing import AsyncIterator, NamedTuple, Optional

from .certificates import generate_key
from .config import CertOptions, Options
from .configs import ca_self_signing_config
from .constants import CA_VERSION
from .errors import DevcertError, OpenSSLError
from .session import Session
from .utils import openssl, tmp_dir

logger = logging.getLogger(__name__)


class CACredentials(NamedTuple):
    key_path: Path
    cert_path: Path


class CertificateAuthority:
    """Root CA lifecycle: install, borrow credentials, repair and uninstall."""

    def __init__(self, session: Session):
        """
        Initialize the certificate authority manager.

        Args:
            session: Session providing config paths and the platform agent
        """
        self.session = session
        self.paths = session.paths

    def is_installed(self) -> bool:
        return self.paths.root_ca_key_path.exists()

    async def install(
        self, options: Optional[Options] = None, cert_options: Optional[CertOptions] = None
    ):
        """
        Install the once-per-machine trusted root CA.

        Any previous CA and the domain certificates it signed are removed first.

        Args:
            options: Options passed to the platform agent (default: session options)
            cert_options: Certificate validity settings
        """
        options = options or self.session.options
        cert_options = cert_options or CertOptions()
        platform = self.session.platform

        logger.debug(
            "Uninstalling existing certificates, which will be void once any existing CA is gone"
        )
        await self.uninstall()
        self.paths.ensure_dirs()

        logger.debug("Seeding the OpenSSL certificate authority files")
        self._seed_config_files()

        with tmp_dir() as directory:
            root_key_path = directory / "ca.key"

            logger.debug("Generating a private key")
            generate_key(root_key_path, self.paths.rand_file)

            logger.debug("Generating a CA certificate")
            with ca_self_signing_config() as config_path:
                openssl(
                    [
                        "req",
                        "-new",
                        "-x509",
                        "-config",
                        config_path,
                        "-key",
                        root_key_path,
                        "-out",
                        self.paths.root_ca_cert_path,
                        "-days",
                        str(cert_options.ca_cert_expiry),
                    ],
                    "generating CA CSR",
                    self.paths.rand_file,
                )

            logger.debug("Saving certificate authority credentials")
            await platform.write_protected_file(
                self.paths.root_ca_key_path, root_key_path.read_text()
            )

        logger.debug("Adding the root certificate authority to trust stores")
        await platform.add_to_trust_stores(self.paths.root_ca_cert_path, options)

    def _seed_config_files(self):
        self.paths.ca_version_file.write_text(CA_VERSION)
        self.paths.openssl_database_file.write_text("")
        self.paths.openssl_serial_file.write_text("01")

    @contextlib.asynccontextmanager
    async def credentials(self) -> AsyncIterator[CACredentials]:
        """
        Borrow the CA key and certificate as plain temporary files.

        The temporary copies are deleted on exit, whether or not the body raised.

        Yields:
            Paths to the temporary key and certificate
        """
        logger.debug("Retrieving devcert's certificate authority credentials")
        platform = self.session.platform
        ca_key = await platform.read_protected_file(self.paths.root_ca_key_path)
        # Only the key is protected
        ca_cert = self.paths.root_ca_cert_path.read_text()

        with tmp_dir() as directory:
            credentials = CACredentials(directory / "ca.key", directory / "ca.crt")
            credentials.key_path.write_text(ca_key)
            credentials.cert_path.write_text(ca_cert)
            yield credentials

    def cert_errors(self) -> str:
        """Return OpenSSL's complaint about the CA certificate, or an empty string."""
        try:
            openssl(
                ["x509", "-in", self.paths.root_ca_cert_path, "-noout"],
                "checking for certificate errors",
                self.paths.rand_file,
            )
        except OpenSSLError as e:
            return str(e)
        return ""

    async def ensure_readable(
        self, options: Optional[Options] = None, cert_options: Optional[CertOptions] = None
    ):
        """
        Make sure the CA certificate can be read without privileges.

        Early devcert releases stored the certificate as a protected file. It is
        rewritten as a plain file once; if that fails the CA is reinstalled.

        Args:
            options: Options used if a reinstall is needed
            cert_options: Certificate validity settings used if a reinstall is needed
        """
        if not self.cert_errors():
            return

        logger.debug("Root CA certificate is not readable, trying to fix it")
        platform = self.session.platform
        cert_path = self.paths.root_ca_cert_path
        try:
            contents = await platform.read_protected_file(cert_path)
            await platform.delete_protected_files(cert_path)
            cert_path.write_text(contents)
        except (DevcertError, OSError) as e:
            logger.debug("Could not rewrite the CA certificate (%s), reinstalling", e)
            return await self.install(options, cert_options)

        if self.cert_errors():
            logger.debug("CA certificate still has errors, reinstalling")
            return await self.install(options, cert_options)

    async def uninstall(self):
        """
        Remove as much of devcert's state as possible.

        Trust store removal is best effort. The CA and domain certificates are
        deleted, and so is a stale legacy config directory. Other files in the
        config directory, such as devcert.yaml, are kept.
        """
        platform = self.session.platform
        try:
            await platform.remove_from_trust_stores(self.paths.root_ca_cert_path)
        except DevcertError as e:
            logger.warning("Failed to remove the root CA from trust stores: %s", e)

        await platform.delete_protected_files(self.paths.domains_dir)
        await platform.delete_protected_files(self.paths.root_ca_dir)
        legacy_dir = self.session.stale_legacy_config_dir()
        if legacy_dir is not None:
            logger.debug("Removing legacy config directory %s", legacy_dir)
            await platform.delete_protected_files(legacy_dir)
