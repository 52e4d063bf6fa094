"""
Shared fixtures: synthetic certificates and fake external tools.

No test starts a subprocess or touches the network; the capability
interfaces are replaced by the fakes below.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import Encoding
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from radius_diagnostics.core.models import ToolingError
from radius_diagnostics.core.tools import (
    ChainValidator,
    CRLFetcher,
    HandshakeOutput,
    HandshakeRunner,
    TLSConnectOutput,
    TLSConnector,
)

NOW = datetime.now(timezone.utc)


@pytest.fixture(scope="session")
def keys():
    """A few reusable RSA keys; generating one per certificate is slow."""
    return [rsa.generate_private_key(public_exponent=65537, key_size=2048) for _ in range(3)]


def make_cert(common_name, key, issuer=None, issuer_key=None, ca=False,
              basic_constraints=True, san_dns=None, extra_cns=(), server_auth=True,
              cdp=None, policies=None, not_before=None, not_after=None,
              no_extensions=False):
    """Build a certificate; without an issuer it is self-signed."""
    subject_attrs = [x509.NameAttribute(NameOID.COMMON_NAME, common_name)]
    subject_attrs += [x509.NameAttribute(NameOID.COMMON_NAME, cn) for cn in extra_cns]
    subject = x509.Name(subject_attrs)

    builder = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer.subject if issuer is not None else subject)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(not_before or NOW - timedelta(days=1))
        .not_valid_after(not_after or NOW + timedelta(days=365))
    )
    if not no_extensions:
        if basic_constraints:
            builder = builder.add_extension(x509.BasicConstraints(ca=ca, path_length=None), critical=True)
        if not ca and server_auth:
            builder = builder.add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.SERVER_AUTH]), critical=False)
        elif not ca:
            builder = builder.add_extension(
                x509.ExtendedKeyUsage([ExtendedKeyUsageOID.CLIENT_AUTH]), critical=False)
        if san_dns:
            builder = builder.add_extension(
                x509.SubjectAlternativeName([x509.DNSName(n) for n in san_dns]), critical=False)
        if cdp:
            builder = builder.add_extension(
                x509.CRLDistributionPoints([
                    x509.DistributionPoint(
                        full_name=[x509.UniformResourceIdentifier(url)],
                        relative_name=None, reasons=None, crl_issuer=None)
                    for url in cdp
                ]),
                critical=False)
        if policies:
            builder = builder.add_extension(
                x509.CertificatePolicies([
                    x509.PolicyInformation(x509.ObjectIdentifier(oid), None) for oid in policies
                ]),
                critical=False)
    return builder.sign(issuer_key or key, hashes.SHA256())


def to_pem(cert) -> str:
    return cert.public_bytes(Encoding.PEM).decode('ascii')


def make_crl(issuer_cert, issuer_key, revoked_serials=()):
    builder = (
        x509.CertificateRevocationListBuilder()
        .issuer_name(issuer_cert.subject)
        .last_update(NOW - timedelta(days=1))
        .next_update(NOW + timedelta(days=7))
    )
    for serial in revoked_serials:
        builder = builder.add_revoked_certificate(
            x509.RevokedCertificateBuilder()
            .serial_number(serial)
            .revocation_date(NOW - timedelta(hours=1))
            .build())
    return builder.sign(issuer_key, hashes.SHA256())


@pytest.fixture
def pki(keys):
    """Root -> intermediate -> server, all well-formed, no CDPs."""
    root_key, intermediate_key, server_key = keys
    root = make_cert("Test Root CA", root_key, ca=True)
    intermediate = make_cert("Test Issuing CA", intermediate_key, issuer=root,
                             issuer_key=root_key, ca=True)
    server = make_cert("radius.example.org", server_key, issuer=intermediate,
                       issuer_key=intermediate_key, san_dns=["radius.example.org"])
    return {
        'root': root, 'root_key': root_key,
        'intermediate': intermediate, 'intermediate_key': intermediate_key,
        'server': server, 'server_key': server_key,
    }


class FakeRunner(HandshakeRunner):
    """Replays a canned trace and drops a canned chain into the work directory."""

    def __init__(self, lines: Sequence[str], chain_pem: Optional[str] = None):
        self.lines = list(lines)
        self.chain_pem = chain_pem
        self.calls: List[Dict] = []

    def run(self, target, config_file, workdir, mac, attributes):
        self.calls.append({
            'target': target,
            'config': Path(config_file).read_text(),
            'files': sorted(p.name for p in Path(workdir).iterdir()),
            'mac': mac,
            'attributes': list(attributes),
        })
        if not self.lines:
            raise ToolingError("eapol_test produced no output at all")
        chain_file = None
        if self.chain_pem is not None:
            chain_file = Path(workdir) / "serverchain.pem"
            chain_file.write_text(self.chain_pem)
        return HandshakeOutput(lines=self.lines, chain_file=chain_file, returncode=0)


class FakeValidator(ChainValidator):
    """Returns canned verdict lines per trust store directory name."""

    def __init__(self, responses: Dict[str, List[str]]):
        self.responses = responses
        self.calls: List[Dict] = []

    def validate(self, cert_file, ca_dir, crl_check):
        self.calls.append({
            'store': Path(ca_dir).name,
            'crl_check': crl_check,
            'files': sorted(p.name for p in Path(ca_dir).iterdir()),
            'cert': Path(cert_file).read_text(),
        })
        return list(self.responses.get(Path(ca_dir).name, []))


class FakeConnector(TLSConnector):
    """Returns canned s_client outputs in order."""

    def __init__(self, outputs: Sequence[TLSConnectOutput]):
        self.outputs = list(outputs)
        self.calls: List[tuple] = []

    def connect(self, host, extra_args=()):
        self.calls.append((host, tuple(extra_args)))
        return self.outputs.pop(0)


class FakeFetcher(CRLFetcher):
    def __init__(self, content: Optional[Dict[str, bytes]] = None):
        self.content = content or {}
        self.requested: List[str] = []

    def fetch(self, url):
        self.requested.append(url)
        return self.content.get(url)


OK_VERDICT = ["incomingserver.pem: OK"]
NOT_REACHED_VERDICT = [
    "CN = radius.example.org",
    "error 20 at 0 depth lookup: unable to get local issuer certificate",
    "error incomingserver.pem: verification failed",
]
REVOKED_VERDICT = [
    "CN = radius.example.org",
    "error 23 at 0 depth lookup: certificate revoked",
    "error incomingserver.pem: verification failed",
]
