"""
X.509 parsing primitives built on ``cryptography``.

``split_chain`` cuts a PEM bundle into individual certificates and
``parse_certificate`` extracts the fields the checks need into a
``ParsedCertificate``.
"""

import logging
import re
from datetime import datetime, timezone
from typing import List, Optional, Union

from cryptography import x509
from cryptography.exceptions import InvalidSignature, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import ExtensionOID, ExtendedKeyUsageOID, NameOID

from ..core.models import ParsedCertificate, CertificateParsingError

logger = logging.getLogger(__name__)

_PEM_BLOCK = re.compile(
    r"-----BEGIN CERTIFICATE-----.+?-----END CERTIFICATE-----",
    re.DOTALL,
)


def split_chain(bundle: Union[str, bytes]) -> List[str]:
    """Split a PEM bundle into its certificate blocks, in order."""
    if isinstance(bundle, bytes):
        bundle = bundle.decode('ascii', errors='ignore')
    return [match.group(0) + "\n" for match in _PEM_BLOCK.finditer(bundle)]


def _name_to_string(name: x509.Name) -> str:
    return name.rfc4514_string()


def _signature_algorithm(cert: x509.Certificate) -> str:
    oid = cert.signature_algorithm_oid
    name = getattr(oid, '_name', None)
    if name and name != "Unknown OID":
        return name
    try:
        hash_algorithm = cert.signature_hash_algorithm
    except UnsupportedAlgorithm:
        hash_algorithm = None
    if hash_algorithm is not None:
        return f"{hash_algorithm.name}-{oid.dotted_string}"
    return oid.dotted_string


def _is_self_signed(cert: x509.Certificate) -> bool:
    if cert.subject != cert.issuer:
        return False
    try:
        cert.verify_directly_issued_by(cert)
    except (InvalidSignature, ValueError, TypeError, UnsupportedAlgorithm):
        return False
    return True


def _extension(cert: x509.Certificate, oid):
    try:
        return cert.extensions.get_extension_for_oid(oid).value
    except x509.ExtensionNotFound:
        return None


def _general_names(names) -> List[str]:
    rendered = []
    for name in names:
        if isinstance(name, x509.DNSName):
            rendered.append(f"DNS:{name.value}")
        elif isinstance(name, x509.UniformResourceIdentifier):
            rendered.append(f"URI:{name.value}")
        elif isinstance(name, x509.RFC822Name):
            rendered.append(f"email:{name.value}")
        elif isinstance(name, x509.IPAddress):
            rendered.append(f"IP Address:{name.value}")
        else:
            rendered.append(str(name.value))
    return rendered


def _aware(moment: datetime) -> datetime:
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


def load_certificate(pem: Union[str, bytes]) -> x509.Certificate:
    """Load a PEM certificate, raising CertificateParsingError on failure."""
    data = pem.encode('ascii') if isinstance(pem, str) else pem
    try:
        return x509.load_pem_x509_certificate(data)
    except ValueError as e:
        raise CertificateParsingError(f"Unparsable certificate: {e}") from e


def parse_certificate_strict(pem: Union[str, bytes]) -> ParsedCertificate:
    """
    Parse one PEM certificate.

    Args:
        pem: PEM text of a single certificate

    Returns:
        ParsedCertificate

    Raises:
        CertificateParsingError: If the data is not a readable certificate
    """
    cert = load_certificate(pem)
    try:
        return _extract_fields(cert, pem)
    except ValueError as e:
        raise CertificateParsingError(f"Malformed certificate extensions: {e}") from e


def _extract_fields(cert: x509.Certificate, pem: Union[str, bytes]) -> ParsedCertificate:
    pem_text = pem.decode('ascii', errors='ignore') if isinstance(pem, bytes) else pem

    basic_constraints = _extension(cert, ExtensionOID.BASIC_CONSTRAINTS)
    eku = _extension(cert, ExtensionOID.EXTENDED_KEY_USAGE)
    san = _extension(cert, ExtensionOID.SUBJECT_ALTERNATIVE_NAME)
    cdp = _extension(cert, ExtensionOID.CRL_DISTRIBUTION_POINTS)
    policies = _extension(cert, ExtensionOID.CERTIFICATE_POLICIES)
    aia = _extension(cert, ExtensionOID.AUTHORITY_INFORMATION_ACCESS)

    public_key = cert.public_key()
    rsa_bits = public_key.key_size if isinstance(public_key, rsa.RSAPublicKey) else None
    key_bits = getattr(public_key, 'key_size', None)
    if key_bits is None and hasattr(public_key, 'curve'):
        key_bits = public_key.curve.key_size

    cdp_uris = []
    if cdp is not None:
        for point in cdp:
            cdp_uris.extend(_general_names(point.full_name or []))

    san_entries = _general_names(san) if san is not None else []

    return ParsedCertificate(
        pem=pem_text,
        subject=_name_to_string(cert.subject),
        issuer=_name_to_string(cert.issuer),
        common_names=[a.value for a in cert.subject.get_attributes_for_oid(NameOID.COMMON_NAME)],
        san_dns=[n.value for n in san if isinstance(n, x509.DNSName)] if san is not None else [],
        subject_alt_name=", ".join(san_entries),
        signature_algorithm=_signature_algorithm(cert),
        is_ca=bool(basic_constraints.ca) if basic_constraints is not None else False,
        basic_constraints_set=basic_constraints is not None,
        is_self_signed=_is_self_signed(cert),
        rsa_key_bits=rsa_bits,
        public_key_bits=key_bits,
        not_before=_aware(cert.not_valid_before_utc),
        not_after=_aware(cert.not_valid_after_utc),
        has_extensions=len(cert.extensions) > 0,
        extended_key_usage=[getattr(u, '_name', u.dotted_string) for u in eku] if eku is not None else [],
        tls_server_auth=eku is not None and ExtendedKeyUsageOID.SERVER_AUTH in eku,
        crl_distribution_points=cdp_uris,
        policy_oids=[p.policy_identifier.dotted_string for p in policies] if policies is not None else [],
        authority_info_access=[
            f"{d.access_method._name} - {_general_names([d.access_location])[0]}" for d in aia
        ] if aia is not None else [],
        serial_number=format(cert.serial_number, 'X'),
        fingerprint_sha256=cert.fingerprint(hashes.SHA256()).hex(),
        cert=cert,
    )


def parse_certificate(pem: Union[str, bytes]) -> Optional[ParsedCertificate]:
    """Parse one PEM certificate, returning None when it is unreadable."""
    try:
        return parse_certificate_strict(pem)
    except CertificateParsingError as e:
        logger.debug(f"Skipping certificate: {e}")
        return None
