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
"""Render the OpenSSL configuration templates shipped in devcert/templates."""

import contextlib
import logging
from pathlib import Path
from typing import Iterator, List

from jinja2 import Environment, FileSystemLoader, StrictUndefined

from .constants import ConfigPaths
from .utils import tmp_dir

logger = logging.getLogger(__name__)

TEMPLATE_DIR = Path(__file__).parent / "templates"

CA_SELF_SIGN_TEMPLATE = "certificate-authority-self-signing.conf.j2"
DOMAIN_CSR_TEMPLATE = "domain-certificate-signing-requests.conf.j2"
DOMAIN_CERT_TEMPLATE = "domain-certificates.conf.j2"


def _openssl_path(value) -> str:
    # OpenSSL treats backslashes in config values as escapes
    return str(value).replace("\\", "\\\\")


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATE_DIR)),
        undefined=StrictUndefined,
        autoescape=False,
    )
    env.filters["openssl_path"] = _openssl_path
    return env


def include_wildcards(names: List[str]) -> List[str]:
    """Expand every name into itself followed by its `*.` wildcard."""
    expanded = []
    for name in names:
        expanded.extend([name, f"*.{name}"])
    return expanded


def render(template_name: str, **context) -> str:
    return _environment().get_template(template_name).render(**context)


@contextlib.contextmanager
def _rendered_config(filename: str, template_name: str, **context) -> Iterator[Path]:
    with tmp_dir() as directory:
        config_path = directory / filename
        config_path.write_text(render(template_name, **context))
        logger.debug("rendered %s to %s", template_name, config_path)
        yield config_path


@contextlib.contextmanager
def ca_self_signing_config(common_name: str = "devcert") -> Iterator[Path]:
    """Yield the path of a rendered root CA self-signing config."""
    with _rendered_config(
        "certificate-authority-self-signing.conf",
        CA_SELF_SIGN_TEMPLATE,
        common_name=common_name,
    ) as config_path:
        yield config_path


@contextlib.contextmanager
def domain_signing_request_config(
    common_name: str, alternative_names: List[str]
) -> Iterator[Path]:
    """
    Yield the path of a rendered CSR config for a domain.

    Args:
        common_name: Domain common name
        alternative_names: Extra subject alternative names

    Yields:
        Path to a temporary config file, deleted on exit
    """
    with _rendered_config(
        "domain-certificate-signing-requests.conf",
        DOMAIN_CSR_TEMPLATE,
        common_name=common_name,
        alt_names=include_wildcards([common_name, *alternative_names]),
    ) as config_path:
        yield config_path


@contextlib.contextmanager
def domain_certificate_config(
    paths: ConfigPaths, common_name: str, alternative_names: List[str]
) -> Iterator[Path]:
    """
    Yield the path of a rendered `openssl ca` config for a domain.

    Args:
        paths: devcert config paths, for the OpenSSL database and serial files
        common_name: Domain common name
        alternative_names: Extra subject alternative names

    Yields:
        Path to a temporary config file, deleted on exit
    """
    with _rendered_config(
        "ca.cfg",
        DOMAIN_CERT_TEMPLATE,
        alt_names=include_wildcards([common_name, *alternative_names]),
        serial_file=paths.openssl_serial_file,
        database_file=paths.openssl_database_file,
        domain_dir=paths.path_for_domain(common_name),
    ) as config_path:
        yield config_path
