"""Certificate parsing and template field computation."""

import time
from dataclasses import dataclass
from datetime import datetime, tzinfo
from typing import Any, Dict, Optional

from cryptography import x509
from cryptography.x509.oid import NameOID


@dataclass(frozen=True)
class CertificateInfo:
    not_after: datetime
    subject: Optional[str] = None
    serial_number: Optional[int] = None

    @property
    def not_after_unix(self) -> int:
        return int(self.not_after.timestamp())

    def ttl(self, now: Optional[float] = None) -> int:
        """Seconds until expiry; negative once the certificate has expired."""
        if now is None:
            now = time.time()
        return self.not_after_unix - int(now)


def get_subject_cn(cert: x509.Certificate) -> Optional[str]:
    attrs = cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)
    if not attrs:
        return None
    value = attrs[0].value
    return value.decode("utf-8", "replace") if isinstance(value, bytes) else value


def parse_der_cert(der: bytes) -> CertificateInfo:
    """
    Extract expiry details from a DER-encoded certificate.

    Raises:
        ValueError: if the data is not a valid X.509 certificate
    """
    cert = x509.load_der_x509_certificate(der)
    return CertificateInfo(
        not_after=cert.not_valid_after_utc,
        subject=get_subject_cn(cert),
        serial_number=cert.serial_number,
    )


def render_context(
    info: CertificateInfo,
    now: Optional[float] = None,
    tz: Optional[tzinfo] = None,
) -> Dict[str, Any]:
    """
    Build the template fields for a certificate.

    EOL_DATETIME is shown in ``tz`` (the local zone when omitted) and
    EOL_TTL is measured against ``now`` (the current time when omitted).
    """
    return {
        "EOL_DATETIME": info.not_after.astimezone(tz),
        "EOL_UNIXTIME": info.not_after_unix,
        "EOL_TTL": info.ttl(now),
    }
