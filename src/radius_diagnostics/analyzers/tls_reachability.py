"""
Direct TLS reachability checks for RADIUS/TLS endpoints.

Independent of any EAP conversation: connects to the server with
``openssl s_client`` (through a ``TLSConnector``), once without a client
certificate to see whether the server's CA is acceptable, and once per
configured test client certificate to see whether the server accepts
exactly the certificates it should.
"""

import logging
import re
from pathlib import Path
from typing import Dict, Optional

from ..core.config import DiagnosticsConfig, TLSClientCertificate, TLSClientCertSet
from ..core.models import (
    CertProblem,
    ReturnCode,
    TLSCACheckResult,
    TLSCertificateSummary,
    TLSClientCertOutcome,
    TLSClientCheckResult,
    TLSClientSetOutcome,
)
from ..core.tools import TLSConnectOutput, TLSConnector
from .x509_parser import parse_certificate

_PRESENTED_CERT = re.compile(
    r"-----BEGIN CERTIFICATE-----.*?-----END CERTIFICATE-----\n?",
    re.DOTALL,
)

# (output signature, comment, reason)
_FAILURE_SIGNATURES = [
    ("sslv3 alert certificate expired", "certificate expired", None),
    ("sslv3 alert certificate revoked", "certificate was revoked", None),
    ("SSL alert number 46", "bad policy", None),
    ("tlsv1 alert unknown ca", "unknown authority", CertProblem.UNKNOWN_CA),
]
_GENERIC_FAILURE = "unknown authority or no certificate policy or another problem"
_CONNECTION_REFUSED = "connect: Connection refused"


def summarize_certificate(pem: str, acceptable_oids: Dict[str, str]) -> Optional[TLSCertificateSummary]:
    """Extract the reported fields of a certificate presented in a TLS handshake."""
    parsed = parse_certificate(pem)
    if parsed is None:
        return None
    return TLSCertificateSummary(
        subject=parsed.subject,
        issuer=parsed.issuer,
        subject_alt_name=parsed.subject_alt_name,
        policy_oids=[
            f"{oid} ({name})" for name, oid in acceptable_oids.items()
            if oid in parsed.policy_oids
        ],
        crl_distribution_points=parsed.crl_distribution_points,
        authority_info_access=parsed.authority_info_access,
    )


class TLSReachabilityChecker:
    """Runs CA-path and client-certificate acceptance checks against TLS endpoints."""

    def __init__(self, connector: TLSConnector, config: DiagnosticsConfig):
        self.connector = connector
        self.config = config
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def ca_path_check(self, host: str) -> TLSCACheckResult:
        """
        Connect without a client certificate and evaluate the server's CA.

        Args:
            host: ``address:port`` of the server

        Returns:
            TLSCACheckResult; INVALID when the connection was refused or the
            server certificate was issued by an unknown CA
        """
        output = self.connector.connect(host)
        text = "".join(output.lines)
        result = TLSCACheckResult(
            host=host,
            return_code=ReturnCode.OK,
            time_millisec=output.time_millisec,
            process_returncode=output.returncode,
        )

        if _CONNECTION_REFUSED in text:
            result.status = ReturnCode.CONNECTION_REFUSED
            result.return_code = ReturnCode.INVALID
        if "verify error:num=19" in text:
            result.oddity = CertProblem.UNKNOWN_CA
            result.status = ReturnCode.INVALID
            result.return_code = ReturnCode.INVALID
        if "verify return:1" in text:
            result.status = ReturnCode.OK
            match = _PRESENTED_CERT.search("\n".join(output.lines))
            if match:
                result.certificate = summarize_certificate(
                    match.group(0), self.config.tls_acceptable_oids)
            if result.certificate is None:
                self.logger.warning(f"{host}: verified connection but no readable server certificate")

        self.logger.info(
            f"CA path check {host}: {result.return_code.value}"
            f" (status {result.status.value if result.status else 'n/a'})"
        )
        return result

    def _interpret(self, output: TLSConnectOutput,
                   certificate: TLSClientCertificate) -> TLSClientCertOutcome:
        outcome = TLSClientCertOutcome(
            status=certificate.status,
            expected=certificate.expected,
            connected=output.returncode == 0,
            process_returncode=output.returncode,
            time_millisec=output.time_millisec,
        )
        if outcome.connected:
            outcome.return_code = ReturnCode.OK
            return outcome

        text = "".join(output.lines)
        outcome.return_code = ReturnCode.INVALID
        if _CONNECTION_REFUSED in text:
            outcome.return_code = ReturnCode.CONNECTION_REFUSED
            outcome.comment = "No TLS connection established: Connection refused"
            return outcome

        outcome.comment = _GENERIC_FAILURE
        for signature, comment, reason in _FAILURE_SIGNATURES:
            if signature in text:
                outcome.comment = comment
                outcome.reason = reason
                break
        return outcome

    def _check_set(self, host: str, cert_set: TLSClientCertSet) -> TLSClientSetOutcome:
        set_outcome = TLSClientSetOutcome(
            name=cert_set.name, status=cert_set.status, issuer=cert_set.issuer_ca)
        cert_dir = Path(self.config.tls_client_cert_dir)

        for certificate in cert_set.certificates:
            extra_args = [
                "-cert", str(cert_dir / certificate.public),
                "-key", str(cert_dir / certificate.private),
            ]
            outcome = self._interpret(self.connector.connect(host, extra_args), certificate)
            set_outcome.certificates.append(outcome)
            decisive = cert_set.status == "ACCREDITED" and certificate.status == "CORRECT"

            if certificate.expected == "PASS":
                if not outcome.connected:
                    outcome.oddity = CertProblem.NOT_ACCEPTED
                    if decisive:
                        outcome.final_error = True
                        break
            else:
                if outcome.connected:
                    outcome.oddity = CertProblem.WRONGLY_ACCEPTED
                if outcome.reason is CertProblem.UNKNOWN_CA and decisive:
                    outcome.final_error = True
                    break

        self.logger.debug(
            f"{host} client set {cert_set.name}: "
            f"{[(c.status, c.expected, c.connected) for c in set_outcome.certificates]}"
        )
        return set_outcome

    def client_side_check(self, host: str) -> TLSClientCheckResult:
        """
        Present each configured test client certificate and compare the
        server's reaction with the expected outcome.

        Args:
            host: ``address:port`` of the server

        Returns:
            TLSClientCheckResult; SKIPPED without configured certificates,
            INVALID for IPv6 literal hosts
        """
        if not self.config.tls_client_certs:
            return TLSClientCheckResult(host=host, return_code=ReturnCode.SKIPPED)
        if "[" in host:
            return TLSClientCheckResult(host=host, return_code=ReturnCode.INVALID)

        result = TLSClientCheckResult(host=host, return_code=ReturnCode.OK)
        for cert_set in self.config.tls_client_certs:
            result.sets.append(self._check_set(host, cert_set))
        return result
