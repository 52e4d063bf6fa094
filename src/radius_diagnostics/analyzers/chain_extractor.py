"""
Certificate chain extraction and role classification.

Splits the chain a server presented during the EAP handshake into
certificate records, assigns each a role and runs the property checks
appropriate for that role.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Union

from ..core.models import CertificateRecord, CertificateRole, CertProblem, OddityLog
from .cert_properties import CertificatePropertyChecker
from .x509_parser import parse_certificate, split_chain


@dataclass
class ChainAnalysis:
    """Classified records of one presented chain and the chain-wide oddities."""
    records: List[CertificateRecord] = field(default_factory=list)
    oddities: OddityLog = field(default_factory=OddityLog)

    def _with_role(self, *roles: CertificateRole) -> List[CertificateRecord]:
        return [r for r in self.records if r.role in roles]

    @property
    def servers(self) -> List[CertificateRecord]:
        return self._with_role(CertificateRole.SERVER, CertificateRole.SELF_SIGNED_SERVER)

    @property
    def server(self) -> Optional[CertificateRecord]:
        servers = self.servers
        return servers[0] if servers else None

    @property
    def intermediates(self) -> List[CertificateRecord]:
        return self._with_role(CertificateRole.INTERMEDIATE)

    @property
    def roots(self) -> List[CertificateRecord]:
        return self._with_role(CertificateRole.ROOT)

    @property
    def totally_selfsigned(self) -> bool:
        return bool(self._with_role(CertificateRole.SELF_SIGNED_SERVER))


class CertificateChainExtractor:
    """Turns a PEM bundle into classified, property-checked certificate records."""

    def __init__(self, property_checker: CertificatePropertyChecker):
        self.property_checker = property_checker
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @staticmethod
    def classify(is_ca: bool, is_self_signed: bool, chain_length: int) -> CertificateRole:
        """
        Decide the role of one certificate.

        A self-signed CA that is the only certificate presented is the
        server certificate itself. Any other self-signed certificate is a
        root; a non-CA certificate is a server certificate; everything else
        is an intermediate.
        """
        if is_ca and is_self_signed and chain_length == 1:
            return CertificateRole.SELF_SIGNED_SERVER
        if not is_ca and not is_self_signed:
            return CertificateRole.SERVER
        if is_self_signed:
            return CertificateRole.ROOT
        return CertificateRole.INTERMEDIATE

    def extract(self, bundle: Union[str, bytes]) -> ChainAnalysis:
        """
        Extract and check a presented chain.

        Args:
            bundle: PEM bundle as captured from the handshake

        Returns:
            ChainAnalysis with one record per parsable certificate
        """
        pems = split_chain(bundle)
        analysis = ChainAnalysis()

        for pem in pems:
            parsed = parse_certificate(pem)
            if parsed is None:
                self.logger.warning("Skipping unparsable certificate in presented chain")
                continue

            role = self.classify(parsed.is_ca, parsed.is_self_signed, len(pems))
            record = CertificateRecord(parsed=parsed, role=role)
            analysis.records.append(record)

            if role is CertificateRole.INTERMEDIATE:
                analysis.oddities.extend(self.property_checker.check_intermediate(record))
            self.logger.debug(f"{role.value}: {parsed.subject}")

        servers = analysis.servers
        if len(servers) > 1:
            analysis.oddities.add(CertProblem.TOO_MANY_SERVER_CERTS)
        elif not servers:
            analysis.oddities.add(CertProblem.NO_SERVER_CERT)
        if servers:
            analysis.oddities.extend(self.property_checker.check_server(servers[0]))

        if analysis.roots and not analysis.totally_selfsigned:
            analysis.oddities.add(CertProblem.ROOT_INCLUDED)

        self.logger.info(
            f"Chain of {len(pems)} certificates: {len(servers)} server, "
            f"{len(analysis.intermediates)} intermediate, {len(analysis.roots)} root"
        )
        return analysis
