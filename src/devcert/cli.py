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
devcert command line interface

This script provides locally trusted development certificates:
- Installing a local root certificate authority into the OS and browser trust stores
- Issuing, caching and renewing per-domain certificates
- Revoking and removing domain certificates
- Trusting the root CA of a remote development machine over ssh

Directory Structure:
    <config dir>/
    ├── certificate-authority/      # Root CA key, certificate and OpenSSL database
    ├── domains/<domain>/           # Per-domain key, certificate and CSR
    └── devcert.yaml                # Optional settings

Usage:
    # Issue (or reuse) a certificate for a domain
    devcert certificate my-app.test

    # Issue a certificate with extra names and copy it somewhere
    devcert certificate my-app.test --alt api.my-app.test --out-dir ./certs

    # List issued certificates
    devcert list

    # Revoke and delete a certificate
    devcert remove my-app.test

    # Trust the root CA of a remote machine
    devcert trust-remote devbox.example.com --cert-path ~/devbox-ca.crt

    # Remove a previously trusted certificate from the trust stores
    devcert untrust ~/devbox-ca.crt

    # Remove the root CA and every certificate
    devcert uninstall

    # Show CA information
    devcert info

Environment Variables:
    DEVCERT_CONFIG_DIR      Config directory (default: OS application config path)
    DEVCERT_REMOTE_COMMAND  Command that runs devcert on remote machines (default: devcert)
"""

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

from . import api
from .config import CertOptions, FileConfig, load_config_file
from .constants import default_config_dir, is_valid_common_name
from .errors import DevcertError
from .expiry import expiration_info, extract_cert_block
from .remote import trust_remote_machine
from .remote_server import decode_pem_argument, serve
from .session import Session, load_env

logger = logging.getLogger(__name__)


def _check_domain(domain: str) -> bool:
    """Print an error and return False if domain cannot name a certificate."""
    if is_valid_common_name(domain):
        return True
    print(f"Error: Invalid domain name: {domain!r}", file=sys.stderr)
    return False


class Devcert:
    """Command line front end for the devcert API."""

    def __init__(self, session: Session, file_config: Optional[FileConfig] = None):
        """
        Initialize the command line front end.

        Args:
            session: Session every command runs in
            file_config: Settings loaded from devcert.yaml
        """
        self.session = session
        self.file_config = file_config or FileConfig()
        self.paths = session.paths

    def certificate(
        self,
        domain: str,
        alternative_names: Optional[List[str]] = None,
        out_dir: Optional[str] = None,
        skip_hosts_file: bool = False,
        skip_certutil_install: bool = False,
        ca_cert_expiry: Optional[int] = None,
        domain_cert_expiry: Optional[int] = None,
    ) -> bool:
        """
        Issue or reuse a certificate for a domain.

        Args:
            domain: Domain common name
            alternative_names: Extra subject alternative names
            out_dir: Directory to copy the key and certificate into
            skip_hosts_file: Do not add the domain to the hosts file
            skip_certutil_install: Do not install NSS certutil
            ca_cert_expiry: Root CA validity in days, used if the CA is created
            domain_cert_expiry: Domain certificate validity in days

        Returns:
            True if successful
        """
        if not _check_domain(domain):
            return False

        current = self.session.options
        options = replace(
            current,
            skip_hosts_file=current.skip_hosts_file or skip_hosts_file,
            skip_certutil_install=current.skip_certutil_install or skip_certutil_install,
            get_ca_path=True,
        )

        defaults = self.file_config.cert_options
        cert_options = CertOptions(
            ca_cert_expiry=ca_cert_expiry or defaults.ca_cert_expiry,
            domain_cert_expiry=domain_cert_expiry or defaults.domain_cert_expiry,
        )

        print("=" * 70)
        print("ISSUING DEVELOPMENT CERTIFICATE")
        print("=" * 70)
        print(f"Domain: {domain}")
        if alternative_names:
            print(f"Alternative Names: {', '.join(alternative_names)}")
        print(f"Config Directory: {self.paths.config_dir}")
        print()

        try:
            data = asyncio.run(
                api.certificate_for(
                    domain,
                    alternative_names,
                    options=options,
                    cert_options=cert_options,
                    session=self.session,
                )
            )
        except DevcertError as e:
            print(f"Error issuing certificate: {e}", file=sys.stderr)
            return False

        print("✓ Certificate ready")
        print(f"  Private key: {self.paths.domain_key_path(domain)}")
        print(f"  Certificate: {self.paths.domain_cert_path(domain)}")
        print(f"  Root CA: {data.ca_path}")

        if out_dir:
            target = Path(out_dir)
            target.mkdir(parents=True, exist_ok=True)
            key_file = target / f"{domain}.key"
            cert_file = target / f"{domain}.crt"
            key_file.touch(mode=0o600)
            key_file.write_bytes(data.key)
            cert_file.write_bytes(data.cert)
            print(f"✓ Copied to {target}")
            print(f"  {key_file}")
            print(f"  {cert_file}")

        print()
        return True

    def list_certificates(self) -> bool:
        """List issued domain certificates."""
        domains = api.configured_domains(session=self.session)
        buffer = self.session.options.renewal_buffer_in_business_days

        print("=" * 70)
        print("DEVCERT DOMAIN CERTIFICATES")
        print("=" * 70)
        print(f"Config Directory: {self.paths.config_dir}")
        print(f"Total Certificates: {len(domains)}")
        print()

        if not domains:
            print("No certificates issued yet.")
            return True

        print(f"{'Domain':<36} {'Expires':<12} {'Renew By':<12} {'Status':<12}")
        print("-" * 75)

        now = datetime.now(timezone.utc)
        for domain in domains:
            cert_path = self.paths.domain_cert_path(domain)
            if not cert_path.exists():
                print(f"{domain:<36} {'-':<12} {'-':<12} {'INCOMPLETE':<12}")
                continue
            try:
                info = expiration_info(extract_cert_block(cert_path.read_text()), buffer, now)
            except ValueError:
                print(f"{domain:<36} {'-':<12} {'-':<12} {'UNREADABLE':<12}")
                continue

            if info.expire_at <= now:
                status = "EXPIRED"
            elif info.must_renew:
                status = "RENEW"
            else:
                status = "ACTIVE"
            print(
                f"{domain:<36} {info.expire_at.date().isoformat():<12} "
                f"{info.renew_by.date().isoformat():<12} {status:<12}"
            )
        return True

    def show_info(self) -> bool:
        """Show root CA information."""
        ca_cert = self.paths.root_ca_cert_path

        print("=" * 70)
        print("DEVCERT CERTIFICATE AUTHORITY INFORMATION")
        print("=" * 70)
        print(f"Config Directory: {self.paths.config_dir}")

        if not self.paths.root_ca_key_path.exists():
            print("Root CA: not installed")
            print("=" * 70)
            return True

        version = (
            self.paths.ca_version_file.read_text().strip()
            if self.paths.ca_version_file.exists()
            else "unknown"
        )
        print(f"CA Version: {version}")
        try:
            info = expiration_info(extract_cert_block(ca_cert.read_text()))
            print(f"Expires: {info.expire_at.isoformat()}")
            print(f"Renew By: {info.renew_by.isoformat()}")
        except (OSError, ValueError) as e:
            print(f"Error reading root CA certificate: {e}", file=sys.stderr)

        print(f"Domain Certificates: {len(api.configured_domains(session=self.session))}")
        print()
        print("Files:")
        print(f"  CA Private Key: {self.paths.root_ca_key_path}")
        print(f"  CA Certificate: {ca_cert}")
        print(f"  OpenSSL Database: {self.paths.openssl_database_file}")
        print(f"  Serial File: {self.paths.openssl_serial_file}")
        print("=" * 70)
        return True

    def remove(self, domain: str) -> bool:
        """Revoke and delete a domain certificate."""
        if not _check_domain(domain):
            return False

        if not api.has_certificate_for(domain, session=self.session):
            print(f"Error: No certificate for {domain}", file=sys.stderr)
            return False

        try:
            asyncio.run(api.remove_and_revoke_domain_cert(domain, session=self.session))
        except DevcertError as e:
            print(f"Error removing certificate: {e}", file=sys.stderr)
            return False

        print(f"✓ Certificate for {domain} revoked and removed")
        return True

    def trust_remote(
        self,
        hostname: str,
        cert_path: str,
        port: Optional[int] = None,
        renewal_buffer: Optional[int] = None,
    ) -> bool:
        """
        Trust the root CA of a remote machine.

        Args:
            hostname: Remote host, reachable with `ssh <hostname>`
            cert_path: Where to save the remote root CA certificate
            port: Port for the transient HTTPS server on the remote machine
            renewal_buffer: Renewal window in business days

        Returns:
            True if successful
        """
        if not _check_domain(hostname):
            return False

        port = port or self.file_config.remote_port
        buffer = renewal_buffer or self.session.options.renewal_buffer_in_business_days

        print("=" * 70)
        print("TRUSTING REMOTE CERTIFICATE AUTHORITY")
        print("=" * 70)
        print(f"Remote Host: {hostname}")
        print(f"Port: {port}")
        print(f"Certificate Path: {cert_path}")
        print()

        progress = logging.getLogger("devcert.trust-remote")
        try:
            result = asyncio.run(
                trust_remote_machine(
                    hostname,
                    cert_path,
                    port=port,
                    renewal_buffer_in_business_days=buffer,
                    logger=progress,
                    session=self.session,
                )
            )
        except DevcertError as e:
            print(f"Error trusting {hostname}: {e}", file=sys.stderr)
            return False

        print(f"✓ Root CA of {hostname} trusted")
        if result.must_renew:
            print(f"  ⚠ The remote CA is due for renewal; run `devcert uninstall` on {hostname}")
        print()
        return True

    def untrust(self, cert_path: str) -> bool:
        """Remove a certificate from the local trust stores."""
        if not Path(cert_path).exists():
            print(f"Error: Certificate not found: {cert_path}", file=sys.stderr)
            return False
        try:
            asyncio.run(api.untrust_machine_by_certificate(cert_path, session=self.session))
        except DevcertError as e:
            print(f"Error removing certificate from trust stores: {e}", file=sys.stderr)
            return False
        print(f"✓ {cert_path} removed from trust stores")
        return True

    def uninstall(self) -> bool:
        """Untrust the root CA and delete every devcert certificate."""
        try:
            asyncio.run(api.uninstall(session=self.session))
        except DevcertError as e:
            print(f"Error uninstalling: {e}", file=sys.stderr)
            return False
        print("✓ devcert root CA and domain certificates removed")
        return True

    def remote(self, port: int, cert: str, key: str) -> bool:
        """Serve this machine's root CA for one remote-trust handshake."""
        try:
            cert_pem = decode_pem_argument(cert, "cert")
            key_pem = decode_pem_argument(key, "key")
            asyncio.run(serve(cert_pem, key_pem, self.paths.root_ca_cert_path, port=port))
        except (DevcertError, OSError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return False
        return True


class _ArgumentParser(argparse.ArgumentParser):
    """ArgumentParser that exits with status 1 on usage errors."""

    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def _create_argument_parser():
    """Create and configure the argument parser."""
    default_dir = default_config_dir()

    parser = _ArgumentParser(
        prog="devcert",
        description="Locally trusted development certificates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Environment Variables:
  DEVCERT_CONFIG_DIR      Config directory
  DEVCERT_REMOTE_COMMAND  Command that runs devcert on remote machines (default: devcert)
        """,
    )

    parser.add_argument(
        "--config-dir",
        help=f"Config directory (default: $DEVCERT_CONFIG_DIR, currently: {default_dir})",
    )
    parser.add_argument(
        "--config", help="YAML settings file (default: <config dir>/devcert.yaml if present)"
    )
    parser.add_argument("--env-file", help=".env file to read settings from")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    # Remote command
    remote_parser = subparsers.add_parser(
        "remote", help="Serve this machine's root CA for a remote-trust handshake"
    )
    remote_parser.add_argument("--port", type=int, default=None, help="Port to listen on")
    remote_parser.add_argument("--cert", required=True, help="JSON encoded server certificate")
    remote_parser.add_argument("--key", required=True, help="JSON encoded server private key")

    # Certificate command
    cert_parser = subparsers.add_parser("certificate", help="Issue or reuse a domain certificate")
    cert_parser.add_argument("domain", help="Domain common name")
    cert_parser.add_argument(
        "--alt", action="append", default=[], help="Alternative name (repeatable)"
    )
    cert_parser.add_argument("--out-dir", help="Copy the key and certificate into this directory")
    cert_parser.add_argument(
        "--skip-hosts-file", action="store_true", help="Do not add the domain to the hosts file"
    )
    cert_parser.add_argument(
        "--skip-certutil-install",
        action="store_true",
        help="Do not install NSS certutil, configure Firefox manually instead",
    )
    cert_parser.add_argument("--ca-cert-expiry", type=int, help="Root CA validity in days")
    cert_parser.add_argument(
        "--domain-cert-expiry", type=int, help="Domain certificate validity in days"
    )

    # List command
    subparsers.add_parser("list", help="List domain certificates")

    # Info command
    subparsers.add_parser("info", help="Show root CA information")

    # Remove command
    remove_parser = subparsers.add_parser("remove", help="Revoke and delete a domain certificate")
    remove_parser.add_argument("domain", help="Domain common name")

    # Trust remote command
    trust_parser = subparsers.add_parser(
        "trust-remote", help="Trust the root CA of a remote machine over ssh"
    )
    trust_parser.add_argument("hostname", help="Remote host")
    trust_parser.add_argument(
        "--cert-path", required=True, help="Where to save the remote root CA certificate"
    )
    trust_parser.add_argument("--port", type=int, help="Remote server port")
    trust_parser.add_argument(
        "--renewal-buffer", type=int, help="Renewal window in business days (default: 5)"
    )

    # Untrust command
    untrust_parser = subparsers.add_parser(
        "untrust", help="Remove a certificate from the local trust stores"
    )
    untrust_parser.add_argument("cert_path", help="Certificate file")

    # Uninstall command
    subparsers.add_parser("uninstall", help="Remove the root CA and every certificate")

    return parser


def _execute_command(args, devcert: Devcert) -> int:
    """Execute the command."""
    if args.command == "remote":
        port = args.port or devcert.file_config.remote_port
        success = devcert.remote(port, args.cert, args.key)
        return 0 if success else 1

    elif args.command == "certificate":
        success = devcert.certificate(
            args.domain,
            args.alt,
            args.out_dir,
            args.skip_hosts_file,
            args.skip_certutil_install,
            args.ca_cert_expiry,
            args.domain_cert_expiry,
        )
        return 0 if success else 1

    elif args.command == "list":
        devcert.list_certificates()
        return 0

    elif args.command == "info":
        devcert.show_info()
        return 0

    elif args.command == "remove":
        success = devcert.remove(args.domain)
        return 0 if success else 1

    elif args.command == "trust-remote":
        success = devcert.trust_remote(args.hostname, args.cert_path, args.port, args.renewal_buffer)
        return 0 if success else 1

    elif args.command == "untrust":
        success = devcert.untrust(args.cert_path)
        return 0 if success else 1

    elif args.command == "uninstall":
        success = devcert.uninstall()
        return 0 if success else 1

    return 1


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = _create_argument_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s" if not args.verbose else "%(levelname)s %(name)s: %(message)s",
    )

    try:
        env = load_env(args.env_file)
        config_dir = Path(args.config_dir).expanduser() if args.config_dir else default_config_dir(env)
        file_config = load_config_file(args.config, config_dir)
    except DevcertError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    session = Session.create(file_config.options, config_dir=config_dir, env_file=args.env_file)
    devcert = Devcert(session, file_config)
    return _execute_command(args, devcert)


if __name__ == "__main__":
    sys.exit(main())
