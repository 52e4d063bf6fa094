"""
Certificate property checks.

Rules that flag certificates known to upset client devices: weak
signature algorithms, short keys, missing extensions, names that are not
hostnames. CA-role rules apply to every certificate in the chain; the
server certificate gets additional checks on top.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional

from ..core.models import CertificateRecord, CertProblem, Oddity, ParsedCertificate
from .crl import CRLAttacher

MIN_RSA_KEY_BITS = 1024

_DOMAIN_LABEL = r"[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
# an unbracketed domain ends in a label starting with a letter
_TOP_LABEL = r"[A-Za-z](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?"
_EMAIL_DOMAIN = re.compile(rf"^{_DOMAIN_LABEL}(?:\.{_DOMAIN_LABEL})*\.{_TOP_LABEL}$")


def is_plausible_hostname(name: str) -> bool:
    """
    Check whether a certificate name could be a hostname.

    The name is IDNA-encoded and must then be usable as the domain part of
    an email address (dot-separated letter/digit/hyphen labels, the last
    one starting with a letter).
    """
    try:
        ascii_name = name.encode('idna').decode('ascii')
    except UnicodeError:
        return False
    return bool(_EMAIL_DOMAIN.match(ascii_name))


def check_ca_properties(parsed: ParsedCertificate,
                        now: Optional[datetime] = None) -> List[CertProblem]:
    """
    Checks shared by every certificate role.

    Args:
        parsed: Certificate fields
        now: Reference time for the validity check, defaults to now (UTC)

    Returns:
        List of problems found, in rule order
    """
    now = now or datetime.now(timezone.utc)
    problems = []

    algorithm = parsed.signature_algorithm.lower()
    if "md5" in algorithm:
        problems.append(CertProblem.MD5_SIGNATURE)
    if "sha1" in algorithm:
        problems.append(CertProblem.SHA1_SIGNATURE)

    if not parsed.basic_constraints_set:
        problems.append(CertProblem.NO_BASICCONSTRAINTS)

    if parsed.rsa_key_bits is not None and parsed.rsa_key_bits < MIN_RSA_KEY_BITS:
        problems.append(CertProblem.LOW_KEY_LENGTH)

    if (parsed.not_after is not None and parsed.not_after < now) or \
            (parsed.not_before is not None and parsed.not_before > now):
        problems.append(CertProblem.OUTSIDE_VALIDITY_PERIOD)

    return problems


def check_server_names(common_names: List[str], san_dns: List[str]) -> List[Oddity]:
    """Name rules for the server certificate; NOT_A_HOSTNAME carries the offending name."""
    oddities = []
    if len(common_names) > 1:
        oddities.append(Oddity(CertProblem.MULTIPLE_CN))

    for name in common_names + san_dns:
        if name == "":
            continue
        if "*" in name:
            oddities.append(Oddity(CertProblem.WILDCARD_IN_NAME))
        if not is_plausible_hostname(name):
            oddities.append(Oddity(CertProblem.NOT_A_HOSTNAME, name))
    return oddities


def _append(record: CertificateRecord, oddity: Oddity) -> None:
    if oddity not in record.oddities:
        record.oddities.append(oddity)


class CertificatePropertyChecker:
    """
    Applies the property rules to certificate records.

    CRLs are attached while checking; a missing or unreachable CRL only
    counts against the server certificate.
    """

    def __init__(self, crl_attacher: CRLAttacher, now: Optional[datetime] = None):
        self.crl_attacher = crl_attacher
        self.now = now
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def check_intermediate(self, record: CertificateRecord,
                           server_cert: bool = False) -> List[Oddity]:
        """
        Run the CA-role rules and attach the CRL.

        Args:
            record: Certificate to check; found oddities are appended to it
            server_cert: Escalate CRL attachment problems

        Returns:
            The oddities found by this call
        """
        found = [Oddity(p) for p in check_ca_properties(record.parsed, self.now)]

        crl_problem = self.crl_attacher.attach(record)
        if crl_problem is not None:
            if server_cert:
                found.append(Oddity(crl_problem))
            else:
                self.logger.debug(f"{record.parsed.subject}: {crl_problem.code} tolerated for CA")

        for oddity in found:
            _append(record, oddity)
        return found

    def check_server(self, record: CertificateRecord) -> List[Oddity]:
        """
        Run the CA-role rules plus the server-only rules.

        Also attaches the CN and SAN DNS name lists to the record.
        """
        found = self.check_intermediate(record, server_cert=True)
        parsed = record.parsed

        extra = []
        if parsed.has_extensions:
            if not parsed.tls_server_auth:
                extra.append(Oddity(CertProblem.NO_TLS_WEBSERVER_OID))
        else:
            # no extensions block: cannot tell a missing EKU from a missing CDP
            extra.append(Oddity(CertProblem.NO_TLS_WEBSERVER_OID))
            extra.append(Oddity(CertProblem.NO_CDP_HTTP))

        record.common_names = list(parsed.common_names)
        record.san_dns = list(parsed.san_dns)
        extra.extend(check_server_names(record.common_names, record.san_dns))

        for oddity in extra:
            _append(record, oddity)
            if oddity not in found:
                found.append(oddity)

        self.logger.debug(
            f"Server certificate {parsed.subject}: {[o.problem.code for o in found]}"
        )
        return found
