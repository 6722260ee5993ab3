from pathlib import Path
from typing import List

import pytest
import pytest_mock

from devcert import cli
from devcert.api import DomainData
from devcert.config import Options
from devcert.constants import ConfigPaths
from devcert.errors import RemoteTrustError
from devcert.remote import RemoteTrustResult
from devcert.session import Session


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    return tmp_path / "devcert"


def test_main_without_command(capsys: pytest.CaptureFixture):
    assert cli.main([]) == 1
    assert "usage: devcert" in capsys.readouterr().out


def test_main_unknown_command():
    with pytest.raises(SystemExit) as exc:
        cli.main(["frobnicate"])
    assert exc.value.code == 1


def test_list_empty(config_dir: Path, capsys: pytest.CaptureFixture):
    assert cli.main(["--config-dir", str(config_dir), "list"]) == 0

    out = capsys.readouterr().out
    assert "Total Certificates: 0" in out
    assert "No certificates issued yet." in out


def test_info_not_installed(config_dir: Path, capsys: pytest.CaptureFixture):
    assert cli.main(["--config-dir", str(config_dir), "info"]) == 0
    assert "Root CA: not installed" in capsys.readouterr().out


def test_certificate_command(mocker: pytest_mock.MockerFixture, config_dir: Path, tmp_path: Path):
    # Arrange
    mock_certificate_for = mocker.patch(
        "devcert.cli.api.certificate_for",
        new=mocker.AsyncMock(return_value=DomainData(key=b"KEY", cert=b"CERT", ca_path=config_dir / "ca.cert")),
    )
    out_dir = tmp_path / "out"

    # Act
    result = cli.main(
        [
            "--config-dir",
            str(config_dir),
            "certificate",
            "foo.test",
            "--alt",
            "api.foo.test",
            "--skip-hosts-file",
            "--domain-cert-expiry",
            "7",
            "--out-dir",
            str(out_dir),
        ]
    )

    # Assert
    assert result == 0
    args, kwargs = mock_certificate_for.call_args
    assert args == ("foo.test", ["api.foo.test"])
    assert kwargs["options"].skip_hosts_file is True
    assert kwargs["options"].get_ca_path is True
    assert kwargs["cert_options"].domain_cert_expiry == 7
    assert kwargs["cert_options"].ca_cert_expiry == 180
    assert kwargs["session"].paths.config_dir == config_dir
    assert (out_dir / "foo.test.key").read_bytes() == b"KEY"
    assert (out_dir / "foo.test.crt").read_bytes() == b"CERT"


def test_certificate_command_uses_config_file(mocker: pytest_mock.MockerFixture, config_dir: Path):
    config_dir.mkdir()
    (config_dir / "devcert.yaml").write_text("cert_options:\n  domain_cert_expiry: 12\n")
    mock_certificate_for = mocker.patch(
        "devcert.cli.api.certificate_for", new=mocker.AsyncMock(return_value=DomainData(key=b"K", cert=b"C"))
    )

    assert cli.main(["--config-dir", str(config_dir), "certificate", "foo.test"]) == 0
    assert mock_certificate_for.call_args.kwargs["cert_options"].domain_cert_expiry == 12


def test_invalid_config_file(config_dir: Path, capsys: pytest.CaptureFixture):
    config_dir.mkdir()
    (config_dir / "devcert.yaml").write_text("bogus: true\n")

    assert cli.main(["--config-dir", str(config_dir), "list"]) == 1
    assert "Unknown keys" in capsys.readouterr().err


def test_remove_unknown_domain(config_dir: Path, capsys: pytest.CaptureFixture):
    assert cli.main(["--config-dir", str(config_dir), "remove", "foo.test"]) == 1
    assert "No certificate for foo.test" in capsys.readouterr().err


def test_certificate_does_not_change_session_options(mocker: pytest_mock.MockerFixture, config_dir: Path):
    # Arrange
    mock_certificate_for = mocker.patch(
        "devcert.cli.api.certificate_for", new=mocker.AsyncMock(return_value=DomainData(key=b"K", cert=b"C"))
    )
    session = Session(paths=ConfigPaths(config_dir), options=Options())
    devcert = cli.Devcert(session)

    # Act
    assert devcert.certificate("foo.test", skip_hosts_file=True)
    assert devcert.certificate("bar.test")

    # Assert
    first, second = [c.kwargs["options"] for c in mock_certificate_for.call_args_list]
    assert first.skip_hosts_file is True
    assert first.get_ca_path is True
    assert second.skip_hosts_file is False
    assert session.options.skip_hosts_file is False
    assert session.options.get_ca_path is False


@pytest.mark.parametrize("command", [["certificate"], ["remove"], ["trust-remote", "--cert-path", "ca.crt"]])
@pytest.mark.parametrize("domain", ["../escape", "a/b", ".."])
def test_invalid_domain_name(config_dir: Path, capsys: pytest.CaptureFixture, command: List[str], domain: str):
    assert cli.main(["--config-dir", str(config_dir), *command, domain]) == 1
    assert "Invalid domain name" in capsys.readouterr().err


def test_trust_remote_command(mocker: pytest_mock.MockerFixture, config_dir: Path, tmp_path: Path):
    mock_trust = mocker.patch(
        "devcert.cli.trust_remote_machine", new=mocker.AsyncMock(return_value=RemoteTrustResult(must_renew=False))
    )
    cert_path = str(tmp_path / "devbox.crt")

    result = cli.main(
        ["--config-dir", str(config_dir), "trust-remote", "devbox", "--cert-path", cert_path, "--port", "3333"]
    )

    assert result == 0
    args, kwargs = mock_trust.call_args
    assert args == ("devbox", cert_path)
    assert kwargs["port"] == 3333
    assert kwargs["renewal_buffer_in_business_days"] == 5


def test_trust_remote_failure(mocker: pytest_mock.MockerFixture, config_dir: Path, capsys: pytest.CaptureFixture):
    mocker.patch(
        "devcert.cli.trust_remote_machine", new=mocker.AsyncMock(side_effect=RemoteTrustError("Error: EADDRINUSE"))
    )

    result = cli.main(["--config-dir", str(config_dir), "trust-remote", "devbox", "--cert-path", "x.crt"])

    assert result == 1
    assert "EADDRINUSE" in capsys.readouterr().err


def test_remote_command(mocker: pytest_mock.MockerFixture, config_dir: Path):
    mock_serve = mocker.patch("devcert.cli.serve", new=mocker.AsyncMock())

    result = cli.main(
        ["--config-dir", str(config_dir), "remote", "--port=4444", '--cert="CERT\\n"', '--key="KEY\\n"']
    )

    assert result == 0
    mock_serve.assert_awaited_once_with(
        "CERT\n", "KEY\n", config_dir / "certificate-authority" / "certificate.cert", port=4444
    )


def test_remote_command_bad_pem(config_dir: Path, capsys: pytest.CaptureFixture):
    result = cli.main(["--config-dir", str(config_dir), "remote", "--cert=CERT", "--key=KEY"])

    assert result == 1
    assert "--cert must be a JSON encoded PEM string" in capsys.readouterr().err
