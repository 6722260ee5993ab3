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
Public devcert API.

Usage:
    import asyncio
    import devcert

    ssl = asyncio.run(devcert.certificate_for("my-app.test"))
    # ssl.key and ssl.cert hold PEM bytes trusted by this machine
"""

import logging
import sys
import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Union

from .certificate_authority import CertificateAuthority
from .certificates import DomainCertificates
from .config import CertOptions, Options, merge_cert_options
from .constants import DEFAULT_RENEWAL_BUFFER
from .errors import CertificateNotFoundError, OpenSSLNotFoundError, PlatformNotSupportedError
from .expiry import ExpirationInfo, expiration_info, extract_cert_block, extract_expiry, should_renew
from .platforms import is_supported_platform
from .session import Session
from .utils import PathLike, command_exists, remove_tree

logger = logging.getLogger(__name__)


@dataclass
class DomainData:
    key: bytes
    cert: bytes
    ca: Optional[bytes] = None
    ca_path: Optional[Path] = None


def _session(session: Optional[Session], options: Optional[Options] = None) -> Session:
    return session if session is not None else Session.create(options)


def _cert_options(cert_options: Union[CertOptions, Dict[str, int], None]) -> CertOptions:
    if isinstance(cert_options, CertOptions):
        return cert_options
    return merge_cert_options(cert_options)


async def certificate_for(
    common_name: str,
    alternative_names: Optional[List[str]] = None,
    options: Optional[Options] = None,
    cert_options: Union[CertOptions, Dict[str, int], None] = None,
    session: Optional[Session] = None,
) -> DomainData:
    """
    Return a trusted key and certificate for a domain.

    On first use the root CA is installed and trusted. Domain certificates are
    cached and reissued once they come within the renewal window.

    Args:
        common_name: Domain to issue the certificate for
        alternative_names: Extra subject alternative names
        options: Behaviour switches (default: the session's options)
        cert_options: Certificate validity settings, or a partial mapping of them
        session: Session to run in (default: built from the environment)

    Returns:
        Key and certificate PEM bytes, plus the CA when requested

    Raises:
        PlatformNotSupportedError: If the OS is not supported
        OpenSSLNotFoundError: If openssl is not on PATH
    """
    session = _session(session, options)
    options = options or session.options
    cert_options = _cert_options(cert_options)
    alternative_names = list(alternative_names or [])
    paths = session.paths

    logger.debug(
        "Certificate requested for %s. Skipping certutil install: %s. Skipping hosts file: %s",
        common_name,
        options.skip_certutil_install,
        options.skip_hosts_file,
    )

    if not is_supported_platform():
        raise PlatformNotSupportedError(sys.platform)

    if not command_exists("openssl"):
        raise OpenSSLNotFoundError()

    paths.ensure_dirs()
    authority = CertificateAuthority(session)
    domains = DomainCertificates(session, authority)
    key_path = paths.domain_key_path(common_name)
    cert_path = paths.domain_cert_path(common_name)

    if not authority.is_installed():
        logger.debug("Root CA is not installed yet, so it must be our first run. Installing root CA")
        await authority.install(options, cert_options)
    elif options.get_ca_buffer or options.get_ca_path:
        logger.debug("Making sure the root CA certificate is readable")
        await authority.ensure_readable(options, cert_options)

    if not cert_path.exists():
        logger.debug(
            "Can't find certificate file for %s, so it must be the first request for it. "
            "Generating and caching ...",
            common_name,
        )
        await domains.generate(common_name, alternative_names, cert_options)
    else:
        contents = extract_cert_block(cert_path.read_text())
        expire_at = extract_expiry(contents)
        if should_renew(contents, options.renewal_buffer_in_business_days):
            logger.debug(
                "Certificate for %s was close to expiring (on %s). A fresh certificate will be "
                "generated for you",
                common_name,
                expire_at.date(),
            )
            await _remove_and_revoke(session, domains, common_name)
            await domains.generate(common_name, alternative_names, cert_options)
        else:
            logger.debug(
                "Certificate for %s was not close to expiring (on %s).",
                common_name,
                expire_at.date(),
            )

    if not options.skip_hosts_file:
        await session.platform.add_domain_to_host_file_if_missing(common_name)

    logger.debug("Returning domain certificate")
    data = DomainData(key=key_path.read_bytes(), cert=cert_path.read_bytes())
    if options.get_ca_buffer:
        data.ca = paths.root_ca_cert_path.read_bytes()
    if options.get_ca_path:
        data.ca_path = paths.root_ca_cert_path
    return data


def get_cert_expiration_info(
    common_name: str,
    renewal_buffer_in_business_days: int = DEFAULT_RENEWAL_BUFFER,
    session: Optional[Session] = None,
) -> ExpirationInfo:
    """
    Report when a domain certificate expires and when it should be renewed.

    Raises:
        CertificateNotFoundError: If no certificate exists for the domain
    """
    session = _session(session)
    cert_path = session.paths.domain_cert_path(common_name)
    if not cert_path.exists():
        raise CertificateNotFoundError(f"cert for {common_name} was not found")
    contents = cert_path.read_text()
    if not contents:
        raise CertificateNotFoundError(f"No certificate for {common_name} exists")
    return expiration_info(extract_cert_block(contents), renewal_buffer_in_business_days)


def has_certificate_for(common_name: str, session: Optional[Session] = None) -> bool:
    return _session(session).paths.domain_cert_path(common_name).exists()


def configured_domains(session: Optional[Session] = None) -> List[str]:
    """Return the common names that have a certificate directory."""
    domains_dir = _session(session).paths.domains_dir
    if not domains_dir.is_dir():
        return []
    return sorted(entry.name for entry in domains_dir.iterdir() if entry.is_dir())


def remove_domain(common_name: str, session: Optional[Session] = None):
    """Delete a domain's certificate directory without revoking it."""
    warnings.warn(
        "remove_domain() leaves the certificate valid in the CA database; "
        "use remove_and_revoke_domain_cert() instead",
        DeprecationWarning,
        stacklevel=2,
    )
    remove_tree(_session(session).paths.path_for_domain(common_name))


async def _remove_and_revoke(session: Session, domains: DomainCertificates, common_name: str):
    domain_dir = session.paths.path_for_domain(common_name)
    if not domain_dir.exists():
        logger.debug("cert not found on disk for %s", common_name)
        return

    logger.debug("revoking cert %s", common_name)
    await domains.revoke(common_name)
    logger.debug("deleting cert on disk for %s", common_name)
    remove_tree(domain_dir)
    logger.debug("completed removing domain certificate for %s", common_name)


async def remove_and_revoke_domain_cert(common_name: str, session: Optional[Session] = None):
    """
    Revoke a domain certificate and delete its directory.

    Does nothing if no certificate directory exists for the domain.
    """
    session = _session(session)
    authority = CertificateAuthority(session)
    await _remove_and_revoke(session, DomainCertificates(session, authority), common_name)


async def untrust_machine_by_certificate(cert_path: PathLike, session: Optional[Session] = None):
    """Remove a certificate, such as a remote machine's CA, from the local trust stores."""
    await _session(session).platform.remove_from_trust_stores(Path(cert_path))


async def uninstall(session: Optional[Session] = None):
    """Untrust the root CA and delete every certificate devcert created."""
    await CertificateAuthority(_session(session)).uninstall()
