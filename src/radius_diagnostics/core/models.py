"""
Core data models for the RADIUS/EAP diagnostics framework.

This module defines the fundamental data structures used throughout
the diagnostics engine: return codes, certificate problem codes, probe
targets, packet traces, certificate records and per-probe results.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum, IntEnum
from typing import Dict, List, Any, Optional, Set, Tuple, Iterable, Iterator
import json


class Severity(Enum):
    """Severity levels for certificate and trust oddities."""
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    ERROR = "error"


class ReturnCode(Enum):
    """Stable outcome identifiers of a probe or TLS check."""
    OK = "OK"
    INVALID = "INVALID"
    NOT_CONFIGURED = "NOT_CONFIGURED"
    INCOMPLETE_DATA = "INCOMPLETE_DATA"
    NO_RESPONSE = "NO_RESPONSE"
    IMMEDIATE_REJECT = "IMMEDIATE_REJECT"
    CONVERSATION_REJECT = "CONVERSATION_REJECT"
    SERVER_UNFINISHED_COMM = "SERVER_UNFINISHED_COMM"
    CONNECTION_REFUSED = "CONNECTION_REFUSED"
    SKIPPED = "SKIPPED"


class RadiusMessageType(IntEnum):
    """RADIUS message types."""
    ACCESS_REQUEST = 1
    ACCESS_ACCEPT = 2
    ACCESS_REJECT = 3
    ACCOUNTING_REQUEST = 4
    ACCOUNTING_RESPONSE = 5
    ACCESS_CHALLENGE = 11
    STATUS_SERVER = 12
    STATUS_CLIENT = 13


class CertProblem(Enum):
    """Certificate, trust and EAP conversation oddities with their severity."""
    ROOT_INCLUDED = ("ROOT_INCLUDED", Severity.INFO,
                     "The chain includes a root CA; it serves no purpose and costs performance")
    TOO_MANY_SERVER_CERTS = ("TOO_MANY_SERVER_CERTS", Severity.WARNING,
                             "More than one server certificate was presented")
    NO_SERVER_CERT = ("NO_SERVER_CERT", Severity.CRITICAL,
                      "No server certificate was presented")
    MD5_SIGNATURE = ("MD5_SIGNATURE", Severity.WARNING,
                     "A certificate is signed with MD5")
    SHA1_SIGNATURE = ("SHA1_SIGNATURE", Severity.WARNING,
                      "A certificate is signed with SHA-1")
    NO_BASICCONSTRAINTS = ("NO_BASICCONSTRAINTS", Severity.INFO,
                           "A certificate has no basicConstraints extension")
    LOW_KEY_LENGTH = ("LOW_KEY_LENGTH", Severity.CRITICAL,
                      "An RSA key is shorter than 1024 bits")
    OUTSIDE_VALIDITY_PERIOD = ("OUTSIDE_VALIDITY_PERIOD", Severity.CRITICAL,
                               "A certificate is expired or not yet valid")
    OUTSIDE_VALIDITY_PERIOD_WARN = ("OUTSIDE_VALIDITY_PERIOD_WARN", Severity.INFO,
                                    "A configured certificate outside its validity period is not on the trust path")
    NO_CDP = ("NO_CDP", Severity.INFO,
              "The server certificate has no CRL distribution point")
    NO_CDP_HTTP = ("NO_CDP_HTTP", Severity.WARNING,
                   "The server certificate has no HTTP CRL distribution point")
    NO_CRL_AT_CDP_URL = ("NO_CRL_AT_CDP_URL", Severity.WARNING,
                         "No CRL could be downloaded from the CRL distribution point")
    NO_TLS_WEBSERVER_OID = ("NO_TLS_WEBSERVER_OID", Severity.WARNING,
                            "The server certificate lacks the TLS Web Server Authentication usage")
    WILDCARD_IN_NAME = ("WILDCARD_IN_NAME", Severity.WARNING,
                        "The server certificate contains a wildcard name")
    MULTIPLE_CN = ("MULTIPLE_CN", Severity.WARNING,
                   "The server certificate subject has more than one CN")
    NOT_A_HOSTNAME = ("NOT_A_HOSTNAME", Severity.WARNING,
                      "A server certificate name is not a plausible hostname")
    SERVER_CERT_REVOKED = ("SERVER_CERT_REVOKED", Severity.CRITICAL,
                           "The server certificate is revoked")
    UNABLE_TO_GET_CRL = ("UNABLE_TO_GET_CRL", Severity.WARNING,
                         "A CRL required for path validation is unavailable")
    TRUST_ROOT_NOT_REACHED = ("TRUST_ROOT_NOT_REACHED", Severity.CRITICAL,
                              "The server certificate does not chain to a configured root CA")
    TRUST_ROOT_REACHED_ONLY_WITH_OOB_INTERMEDIATES = (
        "TRUST_ROOT_REACHED_ONLY_WITH_OOB_INTERMEDIATES", Severity.INFO,
        "The root CA is reached only with intermediates not sent by the server")
    SERVER_NAME_MISMATCH = ("SERVER_NAME_MISMATCH", Severity.CRITICAL,
                            "None of the expected server names is in the certificate")
    SERVER_NAME_PARTIAL_MATCH = ("SERVER_NAME_PARTIAL_MATCH", Severity.WARNING,
                                 "An expected server name is only in the CN or only in the SAN")
    NO_COMMON_EAP_METHOD = ("NO_COMMON_EAP_METHOD", Severity.CRITICAL,
                            "Client and server never agreed on an EAP method")
    UNKNOWN_CA = ("UNKNOWN_CA", Severity.CRITICAL,
                  "The peer certificate was issued by an unknown CA")
    NOT_ACCEPTED = ("NOT_ACCEPTED", Severity.CRITICAL,
                    "A client certificate that should pass was not accepted")
    WRONGLY_ACCEPTED = ("WRONGLY_ACCEPTED", Severity.CRITICAL,
                        "A client certificate that should fail was accepted")

    def __init__(self, code: str, severity: Severity, description: str):
        self.code = code
        self.severity = severity
        self.description = description


TRUST_FAILURES = frozenset({
    CertProblem.TRUST_ROOT_NOT_REACHED,
    CertProblem.TRUST_ROOT_REACHED_ONLY_WITH_OOB_INTERMEDIATES,
})


class CertificateRole(Enum):
    """Role of a certificate within a presented chain."""
    SERVER = "server"
    SELF_SIGNED_SERVER = "totally_selfsigned"
    INTERMEDIATE = "intermediate"
    ROOT = "root"


class TrustVerdict(Enum):
    """Outcome of the two-tier path validation."""
    NOT_RUN = "not_run"
    ROOT_NOT_REACHED = "root_not_reached"
    OUT_OF_BAND_ONLY = "out_of_band_only"
    PASSED = "passed"


class NameMatch(Enum):
    """How well the expected server names match the presented certificate."""
    TOTAL = "TOTALLY"
    PARTIAL = "PARTIALLY"
    UNHAPPY = "UNHAPPY"


@dataclass(frozen=True)
class Oddity:
    """A single recorded problem, optionally tied to a subject (name, host...)."""
    problem: CertProblem
    subject: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'code': self.problem.code,
            'severity': self.problem.severity.value,
            'description': self.problem.description,
            'subject': self.subject,
        }


class OddityLog:
    """
    Append-only, de-duplicated collection of oddities for one probe.

    Entries keep insertion order for reporting. Suppression and downgrade
    never mutate a log; they return a new one.
    """

    def __init__(self, oddities: Optional[Iterable[Oddity]] = None):
        self._entries: List[Oddity] = []
        for oddity in oddities or []:
            self.add(oddity.problem, oddity.subject)

    def add(self, problem: CertProblem, subject: Optional[str] = None) -> None:
        entry = Oddity(problem, subject)
        if entry not in self._entries:
            self._entries.append(entry)

    def extend(self, other: Iterable[Any]) -> None:
        """Add oddities or bare problem codes."""
        for item in other:
            if isinstance(item, Oddity):
                self.add(item.problem, item.subject)
            else:
                self.add(item)

    def codes(self) -> Set[CertProblem]:
        return {entry.problem for entry in self._entries}

    def without(self, problems: Iterable[CertProblem]) -> "OddityLog":
        excluded = set(problems)
        return OddityLog(e for e in self._entries if e.problem not in excluded)

    def replaced(self, old: CertProblem, new: CertProblem) -> "OddityLog":
        return OddityLog(
            Oddity(new, e.subject) if e.problem is old else e
            for e in self._entries
        )

    def by_severity(self, severity: Severity) -> List[Oddity]:
        return [e for e in self._entries if e.problem.severity == severity]

    def __contains__(self, problem: object) -> bool:
        return any(e.problem is problem for e in self._entries)

    def __iter__(self) -> Iterator[Oddity]:
        return iter(list(self._entries))

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"OddityLog({[e.problem.code for e in self._entries]})"

    def to_list(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._entries]


@dataclass(frozen=True)
class ProbeTarget:
    """A RADIUS server the probes are sent to."""
    ip: str
    secret: str
    timeout: int = 10
    index: int = 0


@dataclass(frozen=True)
class PacketTrace:
    """Raw output lines of one handshake attempt."""
    lines: Tuple[str, ...]

    @classmethod
    def from_output(cls, output: str) -> "PacketTrace":
        return cls(tuple(output.splitlines()))

    def __len__(self) -> int:
        return len(self.lines)


@dataclass
class ParsedCertificate:
    """
    Fields extracted from one X.509 certificate.

    ``cert`` holds the underlying ``cryptography`` object when the record
    was parsed from PEM; the remaining fields are plain values so checks
    can be exercised without a real certificate.
    """
    pem: str
    subject: str = ""
    issuer: str = ""
    common_names: List[str] = field(default_factory=list)
    san_dns: List[str] = field(default_factory=list)
    subject_alt_name: str = ""
    signature_algorithm: str = ""
    is_ca: bool = False
    basic_constraints_set: bool = False
    is_self_signed: bool = False
    rsa_key_bits: Optional[int] = None
    public_key_bits: Optional[int] = None
    not_before: Optional[datetime] = None
    not_after: Optional[datetime] = None
    has_extensions: bool = True
    extended_key_usage: List[str] = field(default_factory=list)
    tls_server_auth: bool = False
    crl_distribution_points: List[str] = field(default_factory=list)
    policy_oids: List[str] = field(default_factory=list)
    authority_info_access: List[str] = field(default_factory=list)
    serial_number: str = ""
    fingerprint_sha256: str = ""
    cert: Any = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subject': self.subject,
            'issuer': self.issuer,
            'serial_number': self.serial_number,
            'fingerprint_sha256': self.fingerprint_sha256,
            'signature_algorithm': self.signature_algorithm,
            'is_ca': self.is_ca,
            'is_self_signed': self.is_self_signed,
            'public_key_bits': self.public_key_bits,
            'valid_from': self.not_before.isoformat() if self.not_before else None,
            'valid_to': self.not_after.isoformat() if self.not_after else None,
            'extended_key_usage': self.extended_key_usage,
            'subject_alt_name': self.subject_alt_name,
            'crl_distribution_points': self.crl_distribution_points,
            'policy_oids': self.policy_oids,
            'authority_info_access': self.authority_info_access,
        }


@dataclass
class CertificateRecord:
    """
    A presented or configured certificate and what was learned about it.

    Built once by the chain extractor; later stages only attach the
    computed name lists and the CRL, or append oddities.
    """
    parsed: ParsedCertificate
    role: CertificateRole
    oddities: List[Oddity] = field(default_factory=list)
    common_names: Optional[List[str]] = None
    san_dns: Optional[List[str]] = None
    crl_pem: Optional[str] = None

    @property
    def pem(self) -> str:
        return self.parsed.pem

    @property
    def problems(self) -> Set[CertProblem]:
        return {o.problem for o in self.oddities}

    @property
    def incoming_server_names(self) -> List[str]:
        names: List[str] = []
        for name in (self.common_names or []) + (self.san_dns or []):
            if name not in names:
                names.append(name)
        return names

    def to_dict(self) -> Dict[str, Any]:
        details = self.parsed.to_dict()
        details['type'] = self.role.value
        details['oddities'] = [o.problem.code for o in self.oddities]
        details['crl_attached'] = self.crl_pem is not None
        return details


@dataclass
class TestResult:
    """Everything one EAP login probe produced."""
    __test__ = False

    return_code: ReturnCode
    probe_index: Optional[int] = None
    time_millisec: float = 0.0
    packetflow: List[int] = field(default_factory=list)
    packet_count: Dict[int, int] = field(default_factory=dict)
    packetflow_sane: Optional[bool] = None
    eap_method_acknowledged: Optional[bool] = None
    oddities: OddityLog = field(default_factory=OddityLog)
    certificates: List[CertificateRecord] = field(default_factory=list)
    incoming_server_names: List[str] = field(default_factory=list)
    name_match: Optional[NameMatch] = None
    trust_verdict: TrustVerdict = TrustVerdict.NOT_RUN
    timestamp: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> Dict[str, Any]:
        """Convert result to dictionary for serialization."""
        return {
            'return_code': self.return_code.value,
            'probe_index': self.probe_index,
            'timestamp': self.timestamp.isoformat(),
            'time_millisec': round(self.time_millisec, 1),
            'packetflow': self.packetflow,
            'packet_count': {str(k): v for k, v in self.packet_count.items()},
            'packetflow_sane': self.packetflow_sane,
            'eap_method_acknowledged': self.eap_method_acknowledged,
            'cert_oddities': self.oddities.to_list(),
            'certdata': [c.to_dict() for c in self.certificates],
            'incoming_server_names': self.incoming_server_names,
            'name_match': self.name_match.value if self.name_match else None,
            'trust_verdict': self.trust_verdict.value,
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, default=str)


@dataclass
class TLSCertificateSummary:
    """Certificate details extracted from a direct TLS handshake."""
    subject: str = ""
    issuer: str = ""
    subject_alt_name: str = ""
    policy_oids: List[str] = field(default_factory=list)
    crl_distribution_points: List[str] = field(default_factory=list)
    authority_info_access: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'subject': self.subject,
            'issuer': self.issuer,
            'subjectaltname': self.subject_alt_name,
            'policyoid': self.policy_oids,
            'crlDistributionPoint': self.crl_distribution_points,
            'authorityInfoAccess': self.authority_info_access,
        }


@dataclass
class TLSCACheckResult:
    """Result of connecting to a TLS endpoint without a client certificate."""
    host: str
    return_code: ReturnCode
    status: Optional[ReturnCode] = None
    oddity: Optional[CertProblem] = None
    certificate: Optional[TLSCertificateSummary] = None
    time_millisec: float = 0.0
    process_returncode: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'host': self.host,
            'return_code': self.return_code.value,
            'status': self.status.value if self.status else None,
            'cert_oddity': self.oddity.code if self.oddity else None,
            'certdata': self.certificate.to_dict() if self.certificate else None,
            'time_millisec': self.time_millisec,
            'returncode': self.process_returncode,
        }


@dataclass
class TLSClientCertOutcome:
    """Result of presenting one test client certificate."""
    status: str
    expected: str
    connected: bool = False
    process_returncode: Optional[int] = None
    return_code: Optional[ReturnCode] = None
    oddity: Optional[CertProblem] = None
    reason: Optional[CertProblem] = None
    comment: str = ""
    final_error: bool = False
    time_millisec: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status': self.status,
            'expected': self.expected,
            'connected': self.connected,
            'returncode': self.process_returncode,
            'return_code': self.return_code.value if self.return_code else None,
            'oddity': self.oddity.code if self.oddity else None,
            'reason': self.reason.code if self.reason else None,
            'resultcomment': self.comment,
            'finalerror': self.final_error,
            'time_millisec': self.time_millisec,
        }


@dataclass
class TLSClientSetOutcome:
    """Results for one set of client certificates issued by the same CA."""
    name: str
    status: str
    issuer: str
    certificates: List[TLSClientCertOutcome] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'from': self.name,
            'status': self.status,
            'issuer': self.issuer,
            'certificate': [c.to_dict() for c in self.certificates],
        }


@dataclass
class TLSClientCheckResult:
    """Result of the client-certificate acceptance checks against one host."""
    host: str
    return_code: ReturnCode
    sets: List[TLSClientSetOutcome] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'host': self.host,
            'return_code': self.return_code.value,
            'ca': [s.to_dict() for s in self.sets],
        }


# Exception classes for the framework
class DiagnosticsError(Exception):
    """Base exception for diagnostics errors."""
    pass


class ToolingError(DiagnosticsError):
    """Exception raised when an external tool produced no usable output."""
    pass


class ConfigurationError(DiagnosticsError):
    """Exception raised for configuration issues."""
    pass


class CertificateParsingError(DiagnosticsError):
    """Exception raised when a certificate cannot be parsed."""
    pass
