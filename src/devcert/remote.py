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
Trust the root CA of a remote development machine.

Flow:
    1. Issue a local certificate for the remote hostname.
    2. Start `devcert remote` on the remote machine over ssh, handing it that
       certificate and key so it can serve HTTPS.
    3. Once it reports READY, fetch the remote root CA over HTTPS, save it and
       add it to the local trust stores.
    4. Ask the remote server to close, then stop the ssh process.

The HTTPS fetch verifies the remote server against the local root CA: the
server certificate was minted locally and delivered over the authenticated
ssh channel, so no separate trust bootstrap is needed.
"""

import asyncio
import contextlib
import enum
import functools
import json
import logging
import shlex
import ssl
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import aiohttp

from .api import certificate_for
from .constants import (
    DEFAULT_REMOTE_PORT,
    DEFAULT_RENEWAL_BUFFER,
    REMOTE_CLOSED_MARKER,
    REMOTE_READY_MARKER,
)
from .errors import RemoteTrustError
from .expiry import extract_cert_block, should_renew
from .session import Session
from .utils import PathLike

logger = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 30.0
DEFAULT_CLOSE_TIMEOUT = 10.0

FetchFunc = Callable[[str, int], Awaitable[str]]
CloseFunc = Callable[[str, int], Awaitable[str]]
TrustFunc = Callable[[Path], Awaitable[None]]
SpawnFunc = Callable[[List[str]], Awaitable[asyncio.subprocess.Process]]


@dataclass
class RemoteTrustResult:
    must_renew: bool


class RemoteState(enum.Enum):
    CONNECTING = "connecting"
    READY = "ready"
    TRUSTING = "trusting"
    CLOSING = "closing"
    CLOSED = "closed"
    FAILED = "failed"


def _log_or_debug(log: Optional[logging.Logger], message: str):
    if log is not None:
        log.info(message)
    else:
        logger.debug(message)


def _ssl_context(ca_cert_path: PathLike) -> ssl.SSLContext:
    return ssl.create_default_context(cafile=str(ca_cert_path))


async def get_remote_certificate(
    hostname: str,
    port: int,
    ca_cert_path: PathLike,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> str:
    """
    Fetch the remote machine's root CA certificate.

    Args:
        hostname: Remote host
        port: Port `devcert remote` listens on
        ca_cert_path: Local root CA, which signed the remote server's certificate
        timeout: Total request timeout in seconds

    Returns:
        PEM encoded certificate
    """
    url = f"https://{hostname}:{port}/get_remote_certificate"
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    async with aiohttp.ClientSession(timeout=client_timeout) as client:
        async with client.get(url, ssl=_ssl_context(ca_cert_path)) as response:
            response.raise_for_status()
            return await response.text()


async def close_remote_server(
    hostname: str,
    port: int,
    ca_cert_path: PathLike,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
) -> str:
    """
    Ask `devcert remote` to shut down.

    Returns:
        The server's reply, or the error message if the request failed
    """
    url = f"https://{hostname}:{port}/close_remote_server"
    client_timeout = aiohttp.ClientTimeout(total=timeout)
    try:
        async with aiohttp.ClientSession(timeout=client_timeout) as client:
            async with client.get(url, ssl=_ssl_context(ca_cert_path)) as response:
                return await response.text()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        logger.warning("Failed to close remote server on %s:%s: %s", hostname, port, e)
        return str(e)


async def trust_certs_on_remote(
    hostname: str,
    port: int,
    cert_path: PathLike,
    renewal_buffer_in_business_days: int,
    fetch: FetchFunc,
    trust: TrustFunc,
) -> RemoteTrustResult:
    """
    Fetch the remote root CA, save it to cert_path and trust it locally.

    Returns:
        Whether the remote CA is within its renewal window
    """
    certificate = await fetch(hostname, port)
    must_renew = should_renew(extract_cert_block(certificate), renewal_buffer_in_business_days)
    cert_path = Path(cert_path)
    cert_path.parent.mkdir(parents=True, exist_ok=True)
    cert_path.write_text(certificate)
    await trust(cert_path)
    return RemoteTrustResult(must_renew=must_renew)


async def _trust_remote_machine(
    hostname: str,
    port: int,
    cert_path: PathLike,
    renewal_buffer_in_business_days: int,
    log: Optional[logging.Logger],
    trust_certs_func: Callable[[str, int, PathLike, int], Awaitable[RemoteTrustResult]],
    close_remote_func: CloseFunc,
) -> RemoteTrustResult:
    """Trust the remote CA, always asking the remote server to close afterwards."""
    try:
        _log_or_debug(log, "Attempting to trust the remote certificate on this machine")
        result = await trust_certs_func(hostname, port, cert_path, renewal_buffer_in_business_days)
        _log_or_debug(log, "Certificate trusted successfully")
        return result
    finally:
        _log_or_debug(log, "Attempting to close the remote server")
        response = await close_remote_func(hostname, port)
        logger.debug("close_remote_server: %s", response)


def build_remote_command(
    hostname: str, port: int, cert_pem: str, key_pem: str, remote_cli: List[str]
) -> List[str]:
    """
    Build the ssh command that starts `devcert remote` on hostname.

    The certificate and key are passed JSON encoded on the remote command line.
    """
    remote = [
        *remote_cli,
        "remote",
        f"--port={port}",
        f"--cert={json.dumps(cert_pem)}",
        f"--key={json.dumps(key_pem)}",
    ]
    return ["ssh", hostname, shlex.join(remote)]


async def spawn_ssh(command: List[str]) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        *command,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


class RemoteTrustSession:
    """
    Drive one remote-trust handshake from the ssh child's output.

    stdout lines move the session from CONNECTING to READY, which starts the
    trust step; an stderr line mentioning "error" fails the session. The
    result future is resolved exactly once and the remote server is asked to
    close exactly once.
    """

    def __init__(
        self,
        hostname: str,
        port: int,
        cert_path: PathLike,
        renewal_buffer_in_business_days: int,
        command: List[str],
        fetch: FetchFunc,
        trust: TrustFunc,
        close: CloseFunc,
        spawn: SpawnFunc = spawn_ssh,
        log: Optional[logging.Logger] = None,
        close_timeout: float = DEFAULT_CLOSE_TIMEOUT,
    ):
        self.hostname = hostname
        self.port = port
        self.cert_path = cert_path
        self.renewal_buffer_in_business_days = renewal_buffer_in_business_days
        self.command = command
        self.fetch = fetch
        self.trust = trust
        self.close = close
        self.spawn = spawn
        self.log = log
        self.close_timeout = close_timeout

        self.state = RemoteState.CONNECTING
        self.process: Optional[asyncio.subprocess.Process] = None
        self._result: Optional[asyncio.Future] = None
        self._remote_closed: Optional[asyncio.Event] = None
        self._close_task: Optional[asyncio.Task] = None
        self._trust_task: Optional[asyncio.Task] = None

    async def run(self) -> RemoteTrustResult:
        """
        Run the handshake to completion.

        Returns:
            Result of trusting the remote CA

        Raises:
            RemoteTrustError: If the remote side reports an error or exits early
        """
        self._result = asyncio.get_running_loop().create_future()
        self._remote_closed = asyncio.Event()
        self.process = await self.spawn(self.command)

        readers = [
            asyncio.create_task(self._read_stdout()),
            asyncio.create_task(self._read_stderr()),
        ]
        try:
            return await self._result
        finally:
            await self._shutdown(readers)

    async def _read_stdout(self):
        async for raw in self.process.stdout:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if line:
                self._on_stdout(line)
        self._on_stdout_closed()

    async def _read_stderr(self):
        async for raw in self.process.stderr:
            line = raw.decode("utf-8", errors="replace").rstrip()
            if not line:
                continue
            logger.debug("remote stderr: %s", line)
            if "error" in line.lower():
                await self._fail(RemoteTrustError(line))

    def _on_stdout(self, line: str):
        logger.debug("remote stdout: %s", line)
        if REMOTE_READY_MARKER in line and self.state == RemoteState.CONNECTING:
            self.state = RemoteState.READY
            _log_or_debug(self.log, f"Connected to remote host {self.hostname} via ssh successfully")
            self._trust_task = asyncio.create_task(self._trust())
        elif REMOTE_CLOSED_MARKER in line:
            _log_or_debug(self.log, "Remote server closed successfully")
            if self.state != RemoteState.FAILED:
                self.state = RemoteState.CLOSED
            self._remote_closed.set()

    def _on_stdout_closed(self):
        self._remote_closed.set()
        if self.state == RemoteState.CONNECTING:
            returncode = self.process.returncode
            self._reject(
                RemoteTrustError(
                    f"ssh to {self.hostname} ended before the remote server was ready"
                    + (f" (exit code {returncode})" if returncode is not None else "")
                )
            )

    async def _trust(self):
        self.state = RemoteState.TRUSTING
        trust_certs = functools.partial(trust_certs_on_remote, fetch=self.fetch, trust=self.trust)
        try:
            result = await _trust_remote_machine(
                self.hostname,
                self.port,
                self.cert_path,
                self.renewal_buffer_in_business_days,
                self.log,
                trust_certs,
                self._close_once,
            )
        except Exception as e:
            self.state = RemoteState.FAILED
            self._reject(e)
            return
        self._resolve(result)

    async def _close_once(self, hostname: str, port: int) -> str:
        if self._close_task is None:
            if self.state != RemoteState.FAILED:
                self.state = RemoteState.CLOSING
            self._close_task = asyncio.ensure_future(self.close(hostname, port))
        return await asyncio.shield(self._close_task)

    async def _fail(self, error: Exception):
        self.state = RemoteState.FAILED
        try:
            await self._close_once(self.hostname, self.port)
        except Exception as e:
            logger.warning("Failed to close remote server on %s: %s", self.hostname, e)
        finally:
            self._reject(error)

    def _resolve(self, result: RemoteTrustResult):
        if not self._result.done():
            self._result.set_result(result)

    def _reject(self, error: Exception):
        if not self._result.done():
            if not isinstance(error, RemoteTrustError):
                error = RemoteTrustError(f"Failed to trust {self.hostname}: {error}")
            self._result.set_exception(error)

    async def _shutdown(self, readers: List[asyncio.Task]):
        if self._close_task is not None:
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._remote_closed.wait(), self.close_timeout)

        if self.process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self.process.kill()
            await self.process.wait()

        pending = [task for task in [*readers, self._trust_task] if task and not task.done()]
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)

        if self.state != RemoteState.FAILED:
            self.state = RemoteState.CLOSED


async def trust_remote_machine(
    hostname: str,
    cert_path: PathLike,
    port: int = DEFAULT_REMOTE_PORT,
    renewal_buffer_in_business_days: int = DEFAULT_RENEWAL_BUFFER,
    logger: Optional[logging.Logger] = None,
    session: Optional[Session] = None,
) -> RemoteTrustResult:
    """
    Trust the devcert root CA of a remote machine on this machine.

    Args:
        hostname: Remote host, reachable with `ssh <hostname>`
        cert_path: Where to save the remote root CA certificate
        port: Port for the transient HTTPS server on the remote machine
        renewal_buffer_in_business_days: Renewal window used for must_renew
        logger: Logger for progress messages (default: debug logging only)
        session: Session to run in (default: built from the environment)

    Returns:
        Whether the remote CA is due for renewal

    Raises:
        RemoteTrustError: If the handshake fails
    """
    session = session or Session.create()
    log = logger

    _log_or_debug(log, f"Connecting to remote host {hostname} via ssh")
    domain = await certificate_for(
        hostname, options=replace(session.options, skip_hosts_file=True), session=session
    )
    command = build_remote_command(
        hostname,
        port,
        domain.cert.decode("utf-8"),
        domain.key.decode("utf-8"),
        session.remote_command(),
    )

    ca_cert_path = session.paths.root_ca_cert_path
    remote = RemoteTrustSession(
        hostname,
        port,
        cert_path,
        renewal_buffer_in_business_days,
        command,
        fetch=functools.partial(get_remote_certificate, ca_cert_path=ca_cert_path),
        trust=session.platform.add_to_trust_stores,
        close=functools.partial(close_remote_server, ca_cert_path=ca_cert_path),
        log=log,
    )
    _log_or_debug(log, f"Attempting to start the server at port {port}. This may take a while...")
    return await remote.run()
