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
"""Helpers shared by the platform trust agents: NSS databases, Firefox and file guards."""

import asyncio
import glob
import logging
import socket
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, List, Tuple

import psutil
from aiohttp import web

from ..constants import TRUST_STORE_NICKNAME
from ..errors import CommandError, ProtectedFileError
from ..utils import run

if TYPE_CHECKING:
    from ..session import Session
    from ..user_interface import UserInterface

logger = logging.getLogger(__name__)

FIREFOX_POLL_INTERVAL = 0.05


def nss_databases(nss_dir_glob: str) -> List[Tuple[Path, str]]:
    """
    Find NSS certificate databases.

    Args:
        nss_dir_glob: Glob matching candidate profile directories

    Returns:
        (directory, certutil -d argument) pairs, one per database found
    """
    databases = []
    for candidate in sorted(glob.glob(nss_dir_glob)):
        directory = Path(candidate)
        logger.debug("checking to see if %s is a valid NSS database directory", directory)
        if (directory / "cert8.db").exists():
            logger.debug("found legacy NSS database in %s", directory)
            databases.append((directory, str(directory)))
        if (directory / "cert9.db").exists():
            logger.debug("found modern NSS database in %s", directory)
            databases.append((directory, f"sql:{directory}"))
    return databases


def add_certificate_to_nss_cert_db(
    nss_dir_glob: str,
    certificate_path: Path,
    certutil_path: str,
    nickname: str = TRUST_STORE_NICKNAME,
):
    """Install a certificate as a trusted CA in every NSS database matching the glob."""
    logger.debug("trying to install certificate into NSS databases in %s", nss_dir_glob)
    for _directory, dir_arg in nss_databases(nss_dir_glob):
        run(
            [
                certutil_path,
                "-A",
                "-d",
                dir_arg,
                "-t",
                "C,,",
                "-i",
                str(certificate_path),
                "-n",
                nickname,
            ]
        )
    logger.debug("finished installing certificate in NSS databases in %s", nss_dir_glob)


def remove_certificate_from_nss_cert_db(
    nss_dir_glob: str,
    certutil_path: str,
    nickname: str = TRUST_STORE_NICKNAME,
):
    """Delete a certificate by nickname from every NSS database matching the glob."""
    logger.debug("trying to remove certificates from NSS databases in %s", nss_dir_glob)
    for directory, dir_arg in nss_databases(nss_dir_glob):
        try:
            run([certutil_path, "-D", "-d", dir_arg, "-n", nickname])
        except CommandError as e:
            logger.debug("failed to remove %s from %s, continuing. %s", nickname, directory, e)
    logger.debug("finished removing certificate from NSS databases in %s", nss_dir_glob)


def is_firefox_open() -> bool:
    for process in psutil.process_iter(attrs=["name"]):
        name = (process.info.get("name") or "").lower()
        if "firefox" in name:
            return True
    return False


async def close_firefox(ui: "UserInterface"):
    """Ask the user to close Firefox and wait until it has exited."""
    if is_firefox_open():
        await ui.close_firefox_before_continuing()
        while is_firefox_open():
            await asyncio.sleep(FIREFOX_POLL_INTERVAL)


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("localhost", 0))
        return sock.getsockname()[1]


def certificate_wizard_app(certificate_path: Path, certificate_url: str, ui: "UserInterface"):
    """Build the app serving a certificate to Firefox's manual import wizard."""
    app = web.Application()

    async def handle_certificate(_request: web.Request) -> web.Response:
        return web.Response(
            body=Path(certificate_path).read_bytes(),
            content_type="application/x-x509-ca-cert",
        )

    async def handle_prompt(_request: web.Request) -> web.Response:
        page = await ui.firefox_wizard_prompt_page(certificate_url)
        return web.Response(text=page, content_type="text/html")

    app.router.add_get("/certificate", handle_certificate)
    app.router.add_get("/{tail:.*}", handle_prompt)
    return app


async def open_certificate_in_firefox(
    firefox_cmd: List[str], certificate_path: Path, ui: "UserInterface"
):
    """
    Walk the user through trusting a certificate in Firefox by hand.

    A temporary local web server hosts the certificate while Firefox's import
    wizard runs.

    Args:
        firefox_cmd: Command that launches Firefox, the URL is appended
        certificate_path: Certificate to trust
        ui: User interface hooks
    """
    logger.debug(
        "adding devcert to Firefox trust stores manually. "
        "Launching a webserver to host our certificate temporarily ..."
    )
    port = _free_port()
    host_url = f"http://localhost:{port}"
    app = certificate_wizard_app(certificate_path, f"{host_url}/certificate", ui)

    runner = web.AppRunner(app, access_log=None)
    await runner.setup()
    site = web.TCPSite(runner, host="localhost", port=port)
    await site.start()

    try:
        logger.debug("certificate server is up, launching Firefox with %s", host_url)
        await ui.start_firefox_wizard(host_url)
        await asyncio.create_subprocess_exec(
            *firefox_cmd,
            host_url,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
        await ui.wait_for_firefox_wizard()
    finally:
        await runner.cleanup()


def assert_not_touching_files(session: "Session", filepath: Path, operation: str):
    """
    Refuse protected operations outside devcert's config directories.

    Raises:
        ProtectedFileError: If filepath is outside the config and legacy config dirs
    """
    target = Path(filepath).resolve()
    allowed = [session.paths.config_dir.resolve(), session.legacy_config_dir.resolve()]
    if not any(target.is_relative_to(root) for root in allowed):
        raise ProtectedFileError(
            f"Devcert cannot {operation} {filepath}; "
            "it is outside known devcert config directories!"
        )


def trust_store_name(session: "Session", certificate_path: Path) -> str:
    """
    Name a certificate is registered under in trust stores.

    The local root CA is always "devcert"; other certificates (such as a CA
    fetched from a remote machine) get their own name so they do not replace it.
    """
    if Path(certificate_path).resolve() == session.paths.root_ca_cert_path.resolve():
        return TRUST_STORE_NICKNAME
    return f"{TRUST_STORE_NICKNAME}-{Path(certificate_path).stem}"


def hosts_file_has_domain(contents: str, domain: str) -> bool:
    for line in contents.splitlines():
        fields = line.split("#", 1)[0].split()
        if domain in fields[1:]:
            return True
    return False


class PosixPlatform:
    """Protected files and hosts file handling shared by macOS and Linux."""

    HOST_FILE_PATH = Path("/etc/hosts")
    HOST_ENTRY_TEMPLATE = "127.0.0.1  {domain}\n"

    def __init__(self, session: "Session"):
        self.session = session

    @property
    def ui(self) -> "UserInterface":
        return self.session.ui

    async def add_domain_to_host_file_if_missing(self, domain: str) -> None:
        contents = self.HOST_FILE_PATH.read_text()
        if hosts_file_has_domain(contents, domain):
            return
        logger.debug("adding %s to %s", domain, self.HOST_FILE_PATH)
        run(
            ["sudo", "tee", "-a", str(self.HOST_FILE_PATH)],
            input=self.HOST_ENTRY_TEMPLATE.format(domain=domain),
        )

    async def delete_protected_files(self, path: Path) -> None:
        assert_not_touching_files(self.session, path, "delete")
        run(["sudo", "rm", "-rf", str(path)])

    async def read_protected_file(self, path: Path) -> str:
        assert_not_touching_files(self.session, path, "read")
        return run(["sudo", "cat", str(path)])

    async def write_protected_file(self, path: Path, contents: str) -> None:
        assert_not_touching_files(self.session, path, "write")
        path = Path(path)
        if path.exists():
            run(["sudo", "rm", str(path)])
        path.write_text(contents)
        run(["sudo", "chown", "0", str(path)])
        run(["sudo", "chmod", "600", str(path)])
