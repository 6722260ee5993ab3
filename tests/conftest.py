import shutil
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from devcert.config import Options
from devcert.constants import ConfigPaths
from devcert.errors import ProtectedFileError
from devcert.session import Session


@pytest.fixture
def anyio_backend():
    return "asyncio"


class FakePlatform:
    """Platform trust agent that keeps everything in plain files and records trust store calls"""

    def __init__(self, config_dir: Path):
        self.config_dir = config_dir
        self.trusted: List[Path] = []
        self.untrusted: List[Path] = []
        self.hosts: List[str] = []
        self.deleted: List[Path] = []

    async def add_to_trust_stores(self, certificate_path: Path, options: Optional[Options] = None) -> None:
        self.trusted.append(Path(certificate_path))

    async def remove_from_trust_stores(self, certificate_path: Path) -> None:
        self.untrusted.append(Path(certificate_path))

    async def add_domain_to_host_file_if_missing(self, domain: str) -> None:
        if domain not in self.hosts:
            self.hosts.append(domain)

    async def delete_protected_files(self, path: Path) -> None:
        path = Path(path)
        self.deleted.append(path)
        if not path.resolve().is_relative_to(self.config_dir.resolve()):
            raise ProtectedFileError(f"refusing to delete {path} outside {self.config_dir}")
        if path.is_dir():
            for child in path.rglob("*"):
                if child.is_file():
                    child.chmod(0o600)
            shutil.rmtree(path)
        elif path.exists():
            path.unlink()

    async def read_protected_file(self, path: Path) -> str:
        return Path(path).read_text()

    async def write_protected_file(self, path: Path, contents: str) -> None:
        path = Path(path)
        if path.exists():
            path.unlink()
        path.write_text(contents)
        path.chmod(0o600)


@pytest.fixture
def config_dir(tmp_path: Path) -> Path:
    return tmp_path / "devcert"


@pytest.fixture
def fake_platform(config_dir: Path) -> FakePlatform:
    return FakePlatform(config_dir)


@pytest.fixture
def session(config_dir: Path, fake_platform: FakePlatform) -> Session:
    return Session(
        paths=ConfigPaths(config_dir),
        options=Options(skip_certutil_install=True),
        env={"DEVCERT_REMOTE_COMMAND": "devcert"},
        platform_agent=fake_platform,
    )


def generate_certificate(
    not_after: datetime, common_name: str = "devcert-test", not_before: Optional[datetime] = None
) -> Tuple[str, str]:
    """Generates a self signed (cert_pem, key_pem) pair valid until not_after"""
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
    not_before = not_before or min(not_after, datetime.now(timezone.utc)) - timedelta(days=1)
    cert = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before)
        .not_valid_after(not_after)
        .sign(key, hashes.SHA256())
    )
    cert_pem = cert.public_bytes(serialization.Encoding.PEM).decode("utf-8")
    key_pem = key.private_bytes(
        serialization.Encoding.PEM, serialization.PrivateFormat.PKCS8, serialization.NoEncryption()
    ).decode("utf-8")
    return cert_pem, key_pem


@pytest.fixture
def cert_factory() -> Callable[..., str]:
    def _factory(not_after: datetime, common_name: str = "devcert-test") -> str:
        return generate_certificate(not_after, common_name)[0]

    return _factory


requires_openssl = pytest.mark.skipif(shutil.which("openssl") is None, reason="openssl is not installed")
