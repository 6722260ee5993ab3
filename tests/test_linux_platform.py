from pathlib import Path

import pytest
import pytest_mock

from devcert.errors import UnreachableError
from devcert.platforms.linux import (
    Cmd,
    LinuxFlavor,
    LinuxFlavorOverrides,
    LinuxPaths,
    LinuxPlatform,
    determine_linux_flavor,
    linux_flavor_details,
)
from devcert.session import Session


@pytest.mark.parametrize(
    "distro, expected",
    [
        ("Ubuntu", LinuxFlavor.UBUNTU),
        ("Fedora", LinuxFlavor.FEDORA),
        ("Fedora Linux", LinuxFlavor.FEDORA),
        ("Red Hat Enterprise Linux Workstation", LinuxFlavor.RHEL7),
    ],
)
def test_determine_linux_flavor(distro: str, expected: LinuxFlavor):
    assert determine_linux_flavor(distro) == (expected, None)


def test_determine_linux_flavor_unknown():
    flavor, message = determine_linux_flavor("Gentoo")
    assert flavor == LinuxFlavor.UNKNOWN
    assert message == "Unknown linux distro: Gentoo"


def test_linux_flavor_details_ubuntu():
    details = linux_flavor_details(LinuxFlavor.UBUNTU)

    assert details.ca_folders == ["/etc/pki/ca-trust/source/anchors", "/usr/local/share/ca-certificates"]
    assert details.post_ca_placement_commands == [Cmd("sudo", ("update-ca-certificates",))]
    assert details.post_ca_removal_commands == [Cmd("sudo", ("update-ca-certificates",))]


@pytest.mark.parametrize("flavor", [LinuxFlavor.RHEL7, LinuxFlavor.FEDORA])
def test_linux_flavor_details_red_hat_family(flavor: LinuxFlavor):
    details = linux_flavor_details(flavor)

    assert details.ca_folders == ["/etc/pki/ca-trust/source/anchors", "/usr/share/pki/ca-trust-source"]
    assert [c.argv() for c in details.post_ca_placement_commands] == [["sudo", "update-ca-trust"]]


def test_linux_flavor_details_unknown_raises():
    with pytest.raises(UnreachableError, match="Unable to detect linux flavor"):
        linux_flavor_details(LinuxFlavor.UNKNOWN)


def test_linux_flavor_details_overrides():
    overrides = LinuxFlavorOverrides(
        custom_ca_roots=["/opt/ca"], omit_post_ca_placement_commands=True, omit_post_ca_removal_commands=True
    )

    details = linux_flavor_details(LinuxFlavor.UBUNTU, overrides)

    assert details.ca_folders == ["/opt/ca"]
    assert details.post_ca_placement_commands == []
    assert details.post_ca_removal_commands == []


@pytest.fixture
def no_browsers(tmp_path: Path) -> LinuxPaths:
    return LinuxPaths(
        firefox_nss_dir=str(tmp_path / "firefox" / "*"),
        chrome_nss_dir=str(tmp_path / "nssdb"),
        firefox_bin_path=tmp_path / "bin" / "firefox",
        chrome_bin_path=tmp_path / "bin" / "google-chrome",
    )


@pytest.mark.anyio
async def test_add_to_trust_stores_copies_into_existing_folders(
    mocker: pytest_mock.MockerFixture, session: Session, tmp_path: Path, no_browsers: LinuxPaths
):
    """The CA is copied into each existing CA folder, then the system bundle is rebuilt"""
    # Arrange
    mocker.patch("devcert.platforms.linux.determine_linux_flavor", return_value=(LinuxFlavor.UBUNTU, None))
    mock_run = mocker.patch("devcert.platforms.linux.run")
    existing = tmp_path / "anchors"
    existing.mkdir()
    missing = tmp_path / "does-not-exist"
    agent = LinuxPlatform(
        session, overrides=LinuxFlavorOverrides(custom_ca_roots=[str(existing), str(missing)]), paths=no_browsers
    )
    cert_path = session.paths.root_ca_cert_path

    # Act
    await agent.add_to_trust_stores(cert_path)

    # Assert
    assert [c.args[0] for c in mock_run.call_args_list] == [
        ["sudo", "cp", str(cert_path), str(existing / "devcert.crt")],
        ["sudo", "update-ca-certificates"],
    ]


@pytest.mark.anyio
async def test_add_to_trust_stores_without_ca_folders(
    mocker: pytest_mock.MockerFixture, session: Session, tmp_path: Path, no_browsers: LinuxPaths
):
    mocker.patch("devcert.platforms.linux.determine_linux_flavor", return_value=(LinuxFlavor.FEDORA, None))
    mock_run = mocker.patch("devcert.platforms.linux.run")
    agent = LinuxPlatform(
        session, overrides=LinuxFlavorOverrides(custom_ca_roots=[str(tmp_path / "missing")]), paths=no_browsers
    )

    await agent.add_to_trust_stores(session.paths.root_ca_cert_path)

    mock_run.assert_not_called()


@pytest.mark.anyio
async def test_add_to_trust_stores_firefox_with_certutil(
    mocker: pytest_mock.MockerFixture, session: Session, tmp_path: Path, no_browsers: LinuxPaths
):
    """Firefox is closed and its NSS databases updated when certutil is available"""
    # Arrange
    mocker.patch("devcert.platforms.linux.determine_linux_flavor", return_value=(LinuxFlavor.UBUNTU, None))
    mocker.patch("devcert.platforms.linux.run")
    mocker.patch("devcert.platforms.linux.command_exists", return_value=True)
    mock_close = mocker.patch("devcert.platforms.linux.close_firefox", new=mocker.AsyncMock())
    mock_add_nss = mocker.patch("devcert.platforms.linux.add_certificate_to_nss_cert_db")
    mock_wizard = mocker.patch("devcert.platforms.linux.open_certificate_in_firefox", new=mocker.AsyncMock())
    no_browsers.firefox_bin_path.parent.mkdir(parents=True)
    no_browsers.firefox_bin_path.touch()
    agent = LinuxPlatform(session, overrides=LinuxFlavorOverrides(custom_ca_roots=[]), paths=no_browsers)
    cert_path = tmp_path / "remote-ca.crt"

    # Act
    await agent.add_to_trust_stores(cert_path)

    # Assert
    mock_close.assert_awaited_once()
    mock_add_nss.assert_called_once_with(no_browsers.firefox_nss_dir, cert_path, "certutil", nickname="devcert-remote-ca")
    mock_wizard.assert_not_called()


@pytest.mark.anyio
async def test_add_to_trust_stores_firefox_wizard_without_certutil(
    mocker: pytest_mock.MockerFixture, session: Session, tmp_path: Path, no_browsers: LinuxPaths
):
    mocker.patch("devcert.platforms.linux.determine_linux_flavor", return_value=(LinuxFlavor.UBUNTU, None))
    mock_run = mocker.patch("devcert.platforms.linux.run")
    mocker.patch("devcert.platforms.linux.command_exists", return_value=False)
    mock_wizard = mocker.patch("devcert.platforms.linux.open_certificate_in_firefox", new=mocker.AsyncMock())
    no_browsers.firefox_bin_path.parent.mkdir(parents=True)
    no_browsers.firefox_bin_path.touch()
    agent = LinuxPlatform(session, overrides=LinuxFlavorOverrides(custom_ca_roots=[]), paths=no_browsers)
    cert_path = session.paths.root_ca_cert_path

    await agent.add_to_trust_stores(cert_path)

    mock_wizard.assert_awaited_once_with([str(no_browsers.firefox_bin_path)], cert_path, session.ui)
    mock_run.assert_not_called()


@pytest.mark.anyio
async def test_remove_from_trust_stores(
    mocker: pytest_mock.MockerFixture, session: Session, tmp_path: Path, no_browsers: LinuxPaths
):
    # Arrange
    mocker.patch("devcert.platforms.linux.determine_linux_flavor", return_value=(LinuxFlavor.UBUNTU, None))
    mock_run = mocker.patch("devcert.platforms.linux.run")
    mocker.patch("devcert.platforms.linux.command_exists", return_value=False)
    with_cert = tmp_path / "with-cert"
    with_cert.mkdir()
    (with_cert / "devcert.crt").write_text("pem")
    without_cert = tmp_path / "without-cert"
    without_cert.mkdir()
    agent = LinuxPlatform(
        session, overrides=LinuxFlavorOverrides(custom_ca_roots=[str(with_cert), str(without_cert)]), paths=no_browsers
    )

    # Act
    await agent.remove_from_trust_stores(session.paths.root_ca_cert_path)

    # Assert
    assert [c.args[0] for c in mock_run.call_args_list] == [
        ["sudo", "rm", str(with_cert / "devcert.crt")],
        ["sudo", "update-ca-certificates"],
    ]
