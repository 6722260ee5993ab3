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
The `devcert remote` server.

Runs on the remote machine for the length of one remote-trust handshake. It
serves this machine's root CA certificate over HTTPS, using a certificate and
key handed over by the machine that started it, and exits when asked to.
"""

import asyncio
import json
import logging
import ssl
import tempfile
from pathlib import Path

from aiohttp import web

from .constants import DEFAULT_REMOTE_PORT, REMOTE_CLOSED_MARKER, REMOTE_READY_MARKER
from .errors import ConfigError

logger = logging.getLogger(__name__)


def create_app(ca_cert_path: Path, shutdown: asyncio.Event) -> web.Application:
    """
    Build the remote server application.

    Args:
        ca_cert_path: Root CA certificate served to the caller
        shutdown: Event set once /close_remote_server has been answered

    Returns:
        aiohttp application
    """
    app = web.Application()

    async def handle_get_remote_certificate(_request: web.Request) -> web.Response:
        if not ca_cert_path.exists():
            raise web.HTTPNotFound(text="No devcert root certificate authority is installed")
        return web.Response(text=ca_cert_path.read_text())

    async def handle_close_remote_server(request: web.Request) -> web.StreamResponse:
        response = web.Response(text="Closing remote server")
        await response.prepare(request)
        await response.write_eof()
        shutdown.set()
        return response

    app.router.add_get("/get_remote_certificate", handle_get_remote_certificate)
    app.router.add_get("/close_remote_server", handle_close_remote_server)
    return app


def decode_pem_argument(value: str, name: str) -> str:
    """Decode a JSON encoded PEM passed on the command line."""
    try:
        pem = json.loads(value)
    except json.JSONDecodeError as e:
        raise ConfigError(f"--{name} must be a JSON encoded PEM string: {e}") from e
    if not isinstance(pem, str):
        raise ConfigError(f"--{name} must be a JSON encoded PEM string")
    return pem


def server_ssl_context(cert_pem: str, key_pem: str) -> ssl.SSLContext:
    context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    with tempfile.TemporaryDirectory(prefix="devcert-remote-") as directory:
        cert_file = Path(directory) / "server.crt"
        key_file = Path(directory) / "server.key"
        cert_file.write_text(cert_pem)
        key_file.touch(mode=0o600)
        key_file.write_text(key_pem)
        context.load_cert_chain(str(cert_file), str(key_file))
    return context


async def serve(
    cert_pem: str,
    key_pem: str,
    ca_cert_path: Path,
    port: int = DEFAULT_REMOTE_PORT,
    host: str = "0.0.0.0",
):
    """
    Serve the root CA until /close_remote_server is requested.

    The state markers are printed to stdout, which the caller reads over ssh.
    """
    shutdown = asyncio.Event()
    runner = web.AppRunner(create_app(ca_cert_path, shutdown), access_log=None)
    await runner.setup()
    site = web.TCPSite(
        runner, host=host, port=port, ssl_context=server_ssl_context(cert_pem, key_pem)
    )
    await site.start()

    print(f"Server started at port: {port}", flush=True)
    print(REMOTE_READY_MARKER, flush=True)
    try:
        await shutdown.wait()
    finally:
        await runner.cleanup()

    print("Remote server closed successfully", flush=True)
    print(REMOTE_CLOSED_MARKER, flush=True)
