from datetime import datetime, timedelta, timezone

import pytest

from devcert.errors import PemFormatError
from devcert.expiry import (
    PEM_BEGIN,
    PEM_END,
    add_business_days,
    compute_renewal_date,
    expiration_info,
    extract_cert_block,
    extract_expiry,
    should_renew,
    sub_business_days,
)

# Friday
EXPIRY = datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "moment, amount, expected",
    [
        (datetime(2024, 3, 8, 9, 30, tzinfo=timezone.utc), 1, datetime(2024, 3, 11, 9, 30, tzinfo=timezone.utc)),
        (datetime(2024, 3, 9, tzinfo=timezone.utc), 1, datetime(2024, 3, 11, tzinfo=timezone.utc)),
        (datetime(2024, 3, 10, tzinfo=timezone.utc), -1, datetime(2024, 3, 8, tzinfo=timezone.utc)),
        (datetime(2024, 3, 11, tzinfo=timezone.utc), 5, datetime(2024, 3, 18, tzinfo=timezone.utc)),
        (datetime(2024, 3, 11, tzinfo=timezone.utc), 0, datetime(2024, 3, 11, tzinfo=timezone.utc)),
        (EXPIRY, -5, datetime(2024, 3, 8, 12, 0, 0, tzinfo=timezone.utc)),
    ],
)
def test_add_business_days(moment: datetime, amount: int, expected: datetime):
    assert add_business_days(moment, amount) == expected


def test_sub_business_days_mirrors_add():
    moment = datetime(2024, 3, 13, 8, 0, tzinfo=timezone.utc)
    assert sub_business_days(moment, 7) == add_business_days(moment, -7)
    assert sub_business_days(moment, 7).weekday() < 5


def test_compute_renewal_date_skips_weekend():
    assert compute_renewal_date(EXPIRY, 5) == datetime(2024, 3, 8, 12, 0, 0, tzinfo=timezone.utc)


def test_extract_expiry_is_timezone_aware(cert_factory):
    pem = cert_factory(EXPIRY)

    expire_at = extract_expiry(pem)

    assert expire_at == EXPIRY
    assert expire_at.tzinfo is not None


def test_should_renew_not_due_ten_business_days_out(cert_factory):
    """A certificate 10 business days from expiry is kept with the default 5 day buffer"""
    # Arrange
    now = datetime.now(timezone.utc).replace(microsecond=0)
    pem = cert_factory(add_business_days(now, 10))

    # Act / Assert
    assert should_renew(pem, 5, now=now) is False


def test_should_renew_due_three_business_days_out(cert_factory):
    now = datetime.now(timezone.utc).replace(microsecond=0)
    pem = cert_factory(add_business_days(now, 3))

    assert should_renew(pem, 5, now=now) is True


def test_should_renew_boundary(cert_factory):
    """Renewal starts exactly at the renewal date"""
    pem = cert_factory(EXPIRY)
    renew_by = datetime(2024, 3, 8, 12, 0, 0, tzinfo=timezone.utc)

    assert should_renew(pem, 5, now=renew_by) is True
    assert should_renew(pem, 5, now=renew_by - timedelta(seconds=1)) is False


def test_should_renew_expired_certificate(cert_factory):
    pem = cert_factory(EXPIRY)
    assert should_renew(pem, 5, now=EXPIRY + timedelta(days=30)) is True


def test_should_renew_accepts_bytes(cert_factory):
    pem = cert_factory(EXPIRY).encode("utf-8")
    assert should_renew(pem, 0, now=EXPIRY - timedelta(hours=1)) is False


def test_expiration_info(cert_factory):
    pem = cert_factory(EXPIRY)

    info = expiration_info(pem, 5, now=datetime(2024, 3, 1, tzinfo=timezone.utc))

    assert info.must_renew is False
    assert info.expire_at == EXPIRY
    assert info.renew_by == datetime(2024, 3, 8, 12, 0, 0, tzinfo=timezone.utc)


def test_extract_cert_block_returns_first_certificate(cert_factory):
    first = cert_factory(EXPIRY, common_name="first")
    second = cert_factory(EXPIRY, common_name="second")
    bundle = f"subject=CN = first\n{first}\n{second}"

    block = extract_cert_block(bundle)

    assert block.startswith(PEM_BEGIN)
    assert block.endswith(PEM_END)
    assert block == first.strip()


@pytest.mark.parametrize(
    "text",
    [
        "",
        "not a certificate",
        f"{PEM_BEGIN}\nMIIB\n",
        f"MIIB\n{PEM_END}\n",
    ],
)
def test_extract_cert_block_missing_markers(text: str):
    with pytest.raises(PemFormatError, match="Improperly formatted PEM file"):
        extract_cert_block(text)


def test_pem_format_error_is_value_error():
    with pytest.raises(ValueError):
        extract_cert_block("garbage")
