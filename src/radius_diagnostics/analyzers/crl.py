"""
CRL attachment for presented and configured certificates.

Looks up the HTTP CRL distribution point of a certificate, downloads the
list through a ``CRLFetcher`` and attaches it to the certificate record in
PEM form so that path validation can run with revocation checking.
"""

import logging
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives.serialization import Encoding

from ..core.models import CertificateRecord, CertProblem
from ..core.tools import CRLFetcher

PEM_CRL_HEADER = b"-----BEGIN X509 CRL-----"


def http_distribution_point(crl_distribution_points) -> Optional[str]:
    """Return the first HTTP(S) URL among rendered ``URI:...`` entries."""
    for entry in crl_distribution_points:
        if entry.startswith("URI:http"):
            return entry[len("URI:"):].strip()
    return None


def normalize_crl(data: bytes) -> Optional[str]:
    """
    Return the CRL as PEM text.

    Distribution points usually serve DER; those are re-armored. Content
    that is not a CRL in either encoding yields None.
    """
    try:
        if PEM_CRL_HEADER in data:
            crl = x509.load_pem_x509_crl(data[data.index(PEM_CRL_HEADER):])
        else:
            crl = x509.load_der_x509_crl(data)
    except ValueError:
        return None
    return crl.public_bytes(Encoding.PEM).decode('ascii')


class CRLAttacher:
    """Fetches the CRL of a certificate and attaches it to the record."""

    def __init__(self, fetcher: CRLFetcher):
        self.fetcher = fetcher
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def attach(self, record: CertificateRecord) -> Optional[CertProblem]:
        """
        Attach the CRL named by the record's distribution point.

        Args:
            record: Certificate record to complete

        Returns:
            None on success, otherwise the problem that prevented attachment
            (NO_CDP, NO_CDP_HTTP or NO_CRL_AT_CDP_URL). Whether the problem
            counts against the deployment is up to the caller.
        """
        parsed = record.parsed
        if not parsed.has_extensions or not parsed.crl_distribution_points:
            return CertProblem.NO_CDP

        url = http_distribution_point(parsed.crl_distribution_points)
        if url is None:
            return CertProblem.NO_CDP_HTTP

        data = self.fetcher.fetch(url)
        if not data:
            return CertProblem.NO_CRL_AT_CDP_URL

        crl_pem = normalize_crl(data)
        if crl_pem is None:
            self.logger.warning(f"Content at {url} is not a CRL")
            return CertProblem.NO_CRL_AT_CDP_URL

        record.crl_pem = crl_pem
        self.logger.debug(f"Attached CRL from {url} to {parsed.subject}")
        return None
