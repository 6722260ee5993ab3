import re
from pathlib import Path

import pytest

from devcert.configs import (
    DOMAIN_CERT_TEMPLATE,
    ca_self_signing_config,
    domain_certificate_config,
    domain_signing_request_config,
    include_wildcards,
    render,
)
from devcert.constants import ConfigPaths


def _dns_entries(config_text: str):
    return re.findall(r"^DNS\.(\d+) = (.+)$", config_text, flags=re.MULTILINE)


def test_include_wildcards():
    assert include_wildcards(["foo.test", "bar.test"]) == ["foo.test", "*.foo.test", "bar.test", "*.bar.test"]
    assert include_wildcards([]) == []


def test_ca_self_signing_config():
    with ca_self_signing_config() as config_path:
        text = config_path.read_text()
        assert "commonName          = devcert" in text
        assert "CA:true" in text

    assert not config_path.exists(), "rendered configs are removed on exit"


def test_domain_signing_request_config_alt_names():
    """The common name and its wildcard are the only subject alternative names"""
    with domain_signing_request_config("foo.test", []) as config_path:
        text = config_path.read_text()

    assert "commonName = foo.test" in text
    assert _dns_entries(text) == [("1", "foo.test"), ("2", "*.foo.test")]


def test_domain_signing_request_config_extra_names():
    with domain_signing_request_config("foo.test", ["api.foo.test"]) as config_path:
        text = config_path.read_text()

    assert _dns_entries(text) == [
        ("1", "foo.test"),
        ("2", "*.foo.test"),
        ("3", "api.foo.test"),
        ("4", "*.api.foo.test"),
    ]


def test_domain_certificate_config(tmp_path: Path):
    paths = ConfigPaths(tmp_path / "with space")

    with domain_certificate_config(paths, "foo.test", []) as config_path:
        assert config_path.name == "ca.cfg"
        text = config_path.read_text()

    assert f"database        = {paths.openssl_database_file}" in text
    assert f"serial          = {paths.openssl_serial_file}" in text
    assert f"new_certs_dir   = {paths.path_for_domain('foo.test')}" in text
    assert "extendedKeyUsage       = serverAuth" in text
    assert _dns_entries(text) == [("1", "foo.test"), ("2", "*.foo.test")]


def test_render_escapes_windows_paths():
    text = render(
        DOMAIN_CERT_TEMPLATE,
        alt_names=["foo.test"],
        serial_file=r"C:\Users\dev\devcert\serial",
        database_file=r"C:\Users\dev\devcert\index.txt",
        domain_dir=r"C:\Users\dev\devcert\domains\foo.test",
    )

    assert r"serial          = C:\\Users\\dev\\devcert\\serial" in text


def test_render_requires_every_variable():
    from jinja2 import UndefinedError

    with pytest.raises(UndefinedError):
        render(DOMAIN_CERT_TEMPLATE, alt_names=["foo.test"])
