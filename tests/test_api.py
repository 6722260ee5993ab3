import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_mock
from cryptography import x509

from devcert import api
from devcert.config import Options
from devcert.constants import ConfigPaths, application_config_dir
from devcert.errors import CertificateNotFoundError, OpenSSLNotFoundError, PlatformNotSupportedError
from devcert.platforms.shared import PosixPlatform
from devcert.session import Session
from tests.conftest import FakePlatform, requires_openssl


def _sans(pem: bytes):
    cert = x509.load_pem_x509_certificate(pem)
    return cert.extensions.get_extension_for_class(x509.SubjectAlternativeName).value.get_values_for_type(
        x509.DNSName
    )


@pytest.mark.anyio
async def test_certificate_for_unsupported_platform(mocker: pytest_mock.MockerFixture, session: Session):
    mocker.patch("devcert.api.is_supported_platform", return_value=False)

    with pytest.raises(PlatformNotSupportedError):
        await api.certificate_for("foo.test", session=session)


@pytest.mark.anyio
async def test_certificate_for_without_openssl(mocker: pytest_mock.MockerFixture, session: Session):
    mocker.patch("devcert.api.command_exists", return_value=False)

    with pytest.raises(OpenSSLNotFoundError):
        await api.certificate_for("foo.test", session=session)

    assert not session.paths.root_ca_key_path.exists()


@requires_openssl
@pytest.mark.anyio
async def test_certificate_for_first_run(session: Session, fake_platform: FakePlatform):
    """The first request installs and trusts the root CA, then issues the domain certificate"""
    # Act
    data = await api.certificate_for("foo.test", session=session)

    # Assert
    assert data.key.startswith(b"-----BEGIN")
    assert data.cert == session.paths.domain_cert_path("foo.test").read_bytes()
    assert data.ca is None
    assert data.ca_path is None
    assert _sans(data.cert) == ["foo.test", "*.foo.test"]
    assert fake_platform.trusted == [session.paths.root_ca_cert_path]
    assert fake_platform.hosts == ["foo.test"]


@requires_openssl
@pytest.mark.anyio
async def test_certificate_for_reuses_certificate(session: Session, fake_platform: FakePlatform):
    first = await api.certificate_for("foo.test", session=session)

    second = await api.certificate_for("foo.test", session=session)

    assert second.cert == first.cert
    assert second.key == first.key
    assert len(fake_platform.trusted) == 1


@requires_openssl
@pytest.mark.anyio
async def test_certificate_for_returns_ca(session: Session):
    options = Options(get_ca_buffer=True, get_ca_path=True, skip_hosts_file=True)

    data = await api.certificate_for("foo.test", ["bar.test"], options=options, session=session)

    assert data.ca == session.paths.root_ca_cert_path.read_bytes()
    assert data.ca_path == session.paths.root_ca_cert_path
    assert _sans(data.cert) == ["foo.test", "*.foo.test", "bar.test", "*.bar.test"]


@requires_openssl
@pytest.mark.anyio
async def test_certificate_for_skips_hosts_file(session: Session, fake_platform: FakePlatform):
    await api.certificate_for("foo.test", options=Options(skip_hosts_file=True), session=session)

    assert fake_platform.hosts == []


@requires_openssl
@pytest.mark.anyio
async def test_certificate_for_renews_close_to_expiry(mocker: pytest_mock.MockerFixture, session: Session):
    """A certificate inside the renewal window is revoked and replaced"""
    # Arrange
    first = await api.certificate_for("foo.test", session=session)
    mocker.patch("devcert.api.should_renew", return_value=True)

    # Act
    second = await api.certificate_for("foo.test", session=session)

    # Assert
    assert second.cert != first.cert
    database = session.paths.openssl_database_file.read_text().splitlines()
    assert [line[0] for line in database] == ["R", "V"]


@requires_openssl
@pytest.mark.anyio
async def test_certificate_for_cert_options(session: Session):
    data = await api.certificate_for("foo.test", cert_options={"domain_cert_expiry": 3}, session=session)

    cert = x509.load_pem_x509_certificate(data.cert)
    assert (cert.not_valid_after_utc - cert.not_valid_before_utc).days == 3


@requires_openssl
@pytest.mark.anyio
async def test_remove_and_revoke_then_reissue(session: Session):
    # Arrange
    await api.certificate_for("foo.test", session=session)

    # Act
    await api.remove_and_revoke_domain_cert("foo.test", session=session)

    # Assert
    assert not api.has_certificate_for("foo.test", session=session)
    assert not session.paths.path_for_domain("foo.test").exists()

    data = await api.certificate_for("foo.test", session=session)
    assert data.cert == session.paths.domain_cert_path("foo.test").read_bytes()
    database = session.paths.openssl_database_file.read_text().splitlines()
    assert [line[0] for line in database] == ["R", "V"]


@pytest.mark.anyio
async def test_remove_and_revoke_unknown_domain(session: Session):
    await api.remove_and_revoke_domain_cert("unknown.test", session=session)


@requires_openssl
@pytest.mark.anyio
async def test_get_cert_expiration_info(session: Session):
    await api.certificate_for("foo.test", session=session)

    info = api.get_cert_expiration_info("foo.test", 5, session=session)

    assert info.must_renew is False
    assert abs(info.expire_at - (datetime.now(timezone.utc) + timedelta(days=30))) < timedelta(minutes=5)
    assert info.renew_by < info.expire_at


def test_get_cert_expiration_info_missing(session: Session):
    with pytest.raises(CertificateNotFoundError, match="cert for foo.test was not found"):
        api.get_cert_expiration_info("foo.test", session=session)


def test_get_cert_expiration_info_empty(session: Session):
    cert_path = session.paths.domain_cert_path("foo.test")
    cert_path.parent.mkdir(parents=True)
    cert_path.write_text("")

    with pytest.raises(CertificateNotFoundError, match="No certificate for foo.test exists"):
        api.get_cert_expiration_info("foo.test", session=session)


def test_configured_domains(session: Session):
    assert api.configured_domains(session=session) == []

    for domain in ["b.test", "a.test"]:
        session.paths.path_for_domain(domain).mkdir(parents=True)

    assert api.configured_domains(session=session) == ["a.test", "b.test"]


def test_remove_domain_is_deprecated(session: Session):
    session.paths.path_for_domain("foo.test").mkdir(parents=True)

    with pytest.warns(DeprecationWarning):
        api.remove_domain("foo.test", session=session)

    assert not session.paths.path_for_domain("foo.test").exists()


@pytest.mark.parametrize("common_name", ["../escape", "", "..", "a/b"])
def test_invalid_common_names(session: Session, common_name: str):
    with pytest.raises(AssertionError):
        api.has_certificate_for(common_name, session=session)


@requires_openssl
@pytest.mark.anyio
async def test_uninstall(session: Session, fake_platform: FakePlatform):
    await api.certificate_for("foo.test", session=session)

    await api.uninstall(session=session)

    assert not session.paths.root_ca_dir.exists()
    assert not session.paths.domains_dir.exists()
    assert fake_platform.untrusted[-1] == session.paths.root_ca_cert_path


def _posix_session(mocker: pytest_mock.MockerFixture, config_dir: Path) -> Session:
    session = Session(paths=ConfigPaths(config_dir), env={})
    agent = PosixPlatform(session)
    agent.remove_from_trust_stores = mocker.AsyncMock()
    session.platform_agent = agent
    return session


@pytest.fixture
def home(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> Path:
    home = tmp_path / "home"
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("XDG_CONFIG_HOME", raising=False)
    return home


posix_only = pytest.mark.skipif(sys.platform == "win32", reason="sudo based protected files")
linux_only = pytest.mark.skipif(not sys.platform.startswith("linux"), reason="root legacy directory is Linux only")


@posix_only
@pytest.mark.anyio
async def test_uninstall_with_custom_config_dir_keeps_legacy_dir(
    mocker: pytest_mock.MockerFixture, home: Path, tmp_path: Path
):
    # Arrange
    mock_run = mocker.patch("devcert.platforms.shared.run")
    session = _posix_session(mocker, tmp_path / "custom")

    # Act
    await api.uninstall(session=session)

    # Assert
    assert [c.args[0] for c in mock_run.call_args_list] == [
        ["sudo", "rm", "-rf", str(session.paths.domains_dir)],
        ["sudo", "rm", "-rf", str(session.paths.root_ca_dir)],
    ]


@linux_only
@pytest.mark.anyio
async def test_uninstall_keeps_config_dir_that_is_the_legacy_dir(mocker: pytest_mock.MockerFixture, home: Path):
    # Arrange
    mocker.patch("devcert.constants.os.getuid", return_value=1000)
    mock_run = mocker.patch("devcert.platforms.shared.run")
    config_dir = application_config_dir({})
    config_dir.mkdir(parents=True)
    (config_dir / "devcert.yaml").write_text("remote_port: 2702\n")
    session = _posix_session(mocker, config_dir)
    assert session.legacy_config_dir == config_dir

    # Act
    await api.uninstall(session=session)

    # Assert
    assert ["sudo", "rm", "-rf", str(config_dir)] not in [c.args[0] for c in mock_run.call_args_list]
    assert (config_dir / "devcert.yaml").exists()


@linux_only
@pytest.mark.anyio
async def test_uninstall_removes_root_legacy_dir(mocker: pytest_mock.MockerFixture, home: Path):
    # Arrange
    mocker.patch("devcert.constants.os.getuid", return_value=0)
    mock_run = mocker.patch("devcert.platforms.shared.run")
    session = _posix_session(mocker, application_config_dir({}))

    # Act
    await api.uninstall(session=session)

    # Assert
    assert mock_run.call_args_list[-1].args[0] == ["sudo", "rm", "-rf", "/usr/local/share/.config/devcert"]


@pytest.mark.anyio
async def test_untrust_machine_by_certificate(session: Session, fake_platform: FakePlatform, tmp_path):
    cert_path = tmp_path / "remote-ca.crt"

    await api.untrust_machine_by_certificate(str(cert_path), session=session)

    assert fake_platform.untrusted == [cert_path]
