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
Certificate expiry and renewal policy.

A certificate is due for renewal once fewer than a configured number of
business days (Monday to Friday) remain before its notAfter date.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional, Tuple, Union

from cryptography import x509

from .constants import DEFAULT_RENEWAL_BUFFER
from .errors import PemFormatError

logger = logging.getLogger(__name__)

PEM_BEGIN = "-----BEGIN CERTIFICATE-----"
PEM_END = "-----END CERTIFICATE-----"

Pem = Union[str, bytes]


@dataclass
class ExpirationInfo:
    must_renew: bool
    expire_at: datetime
    renew_by: datetime


def _as_text(pem: Pem) -> str:
    return pem.decode("utf-8") if isinstance(pem, bytes) else pem


def add_business_days(moment: datetime, amount: int) -> datetime:
    """
    Move a datetime by a number of business days.

    Weekend days are skipped; the time of day is kept.

    Args:
        moment: Starting point
        amount: Business days to move, negative to go back

    Returns:
        Shifted datetime
    """
    step = timedelta(days=1 if amount >= 0 else -1)
    remaining = abs(amount)
    result = moment
    while remaining:
        result += step
        if result.weekday() < 5:
            remaining -= 1
    return result


def sub_business_days(moment: datetime, amount: int) -> datetime:
    return add_business_days(moment, -amount)


def extract_cert_block(pem_bundle: Pem) -> str:
    """
    Return the first certificate block of a PEM string, markers included.

    Raises:
        PemFormatError: If either marker is missing
    """
    text = _as_text(pem_bundle)
    begin = text.find(PEM_BEGIN)
    end = text.find(PEM_END)
    if begin < 0 or end < 0:
        raise PemFormatError(
            f"Improperly formatted PEM file. Expected to find {PEM_BEGIN} and {PEM_END}\n"
            f'"{text}"'
        )
    return text[begin : end + len(PEM_END)]


def extract_expiry(pem: Pem) -> datetime:
    """Return the timezone-aware notAfter of a PEM certificate."""
    certificate = x509.load_pem_x509_certificate(_as_text(pem).encode("utf-8"))
    return certificate.not_valid_after_utc


def compute_renewal_date(expiry: datetime, buffer_business_days: int) -> datetime:
    return sub_business_days(expiry, buffer_business_days)


def expiration_dates(
    pem: Pem, buffer_business_days: int = DEFAULT_RENEWAL_BUFFER
) -> Tuple[datetime, datetime]:
    """Return (expire_at, renew_by) for a PEM certificate."""
    expire_at = extract_expiry(pem)
    return expire_at, compute_renewal_date(expire_at, buffer_business_days)


def should_renew(
    pem: Pem,
    buffer_business_days: int = DEFAULT_RENEWAL_BUFFER,
    now: Optional[datetime] = None,
) -> bool:
    """
    Decide whether a certificate is due for renewal.

    Args:
        pem: PEM encoded certificate
        buffer_business_days: Business days before expiry at which renewal starts
        now: Current time (default: datetime.now(timezone.utc))

    Returns:
        True once now has reached the renewal date
    """
    now = now or datetime.now(timezone.utc)
    expire_at, renew_by = expiration_dates(pem, buffer_business_days)
    logger.debug(
        "evaluating cert renewal: now=%s renew_by=%s expire_at=%s",
        now.isoformat(),
        renew_by.isoformat(),
        expire_at.isoformat(),
    )
    return now >= renew_by


def expiration_info(
    pem: Pem,
    buffer_business_days: int = DEFAULT_RENEWAL_BUFFER,
    now: Optional[datetime] = None,
) -> ExpirationInfo:
    expire_at, renew_by = expiration_dates(pem, buffer_business_days)
    now = now or datetime.now(timezone.utc)
    return ExpirationInfo(must_renew=now >= renew_by, expire_at=expire_at, renew_by=renew_by)
