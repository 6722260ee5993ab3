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
"""Process helpers shared by the certificate authority, domain certificates and platforms."""

import contextlib
import logging
import os
import shlex
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from .errors import CommandError, OpenSSLError, OpenSSLNotFoundError

logger = logging.getLogger(__name__)

PathLike = Union[str, Path]


def run(
    cmd: List[str],
    input: Optional[str] = None,
    env: Optional[Dict[str, str]] = None,
) -> str:
    """
    Run a command synchronously and return its stdout.

    Args:
        cmd: Command and arguments
        input: Optional text written to the command's stdin
        env: Optional environment for the child process

    Returns:
        Captured stdout

    Raises:
        CommandError: If the command exits with a non-zero status
    """
    logger.debug("exec: `%s`", shlex.join(cmd))
    try:
        result = subprocess.run(
            cmd, input=input, env=env, capture_output=True, text=True, check=True
        )
    except subprocess.CalledProcessError as e:
        raise CommandError(cmd, e.returncode, e.stderr) from e
    return result.stdout


def command_exists(name: str) -> bool:
    return shutil.which(name) is not None


def openssl(args: List[PathLike], description: str, rand_file: PathLike) -> str:
    """
    Invoke the openssl binary.

    Args:
        args: Arguments following `openssl`
        description: What the call does, used in error messages
        rand_file: Random seed file exposed to OpenSSL as RANDFILE

    Returns:
        Captured stdout

    Raises:
        OpenSSLNotFoundError: If openssl is not installed
        OpenSSLError: If openssl exits with a non-zero status
    """
    env = {"RANDFILE": str(rand_file), **os.environ}
    try:
        return run(["openssl", *[str(arg) for arg in args]], env=env)
    except FileNotFoundError as e:
        raise OpenSSLNotFoundError() from e
    except CommandError as e:
        raise OpenSSLError(description, e.stderr) from e


@contextlib.contextmanager
def tmp_dir() -> Iterator[Path]:
    """Yield a fresh temporary directory, removed on exit."""
    with tempfile.TemporaryDirectory(prefix="devcert-") as directory:
        yield Path(directory)


def remove_tree(path: PathLike):
    """Delete a directory tree, including read-only files such as private keys."""
    path = Path(path)
    if not path.exists():
        return
    for child in path.rglob("*"):
        if child.is_file() and not child.is_symlink():
            child.chmod(0o600)
    shutil.rmtree(path)
