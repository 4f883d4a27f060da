"""Course and program certificates."""

from .models import CERTIFICATES_TABLES_CQL, Certificate, CertificateStatus
from .service import CertificateExistsError, CertificateIssuer


__all__ = [
    "CERTIFICATES_TABLES_CQL",
    "Certificate",
    "CertificateExistsError",
    "CertificateIssuer",
    "CertificateStatus",
]
