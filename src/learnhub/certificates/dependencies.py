"""Dependencies for certificate routes."""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from learnhub.certificates.service import CertificateIssuer


def get_certificate_issuer(request: Request) -> CertificateIssuer:
    """Get CertificateIssuer from app state."""
    issuer = getattr(request.app.state, "certificate_issuer", None)
    if issuer is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Certificate service unavailable",
        )
    return issuer


CertificateIssuerDep = Annotated[CertificateIssuer, Depends(get_certificate_issuer)]
