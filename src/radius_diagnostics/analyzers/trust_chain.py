"""
Two-tier trust chain verification.

The server certificate is validated twice: once against a trust store
holding only what the server sent plus the configured roots
("observed-only"), and once against a store that also holds the
configured intermediates ("observed+configured"). Comparing the two tells
a chain that is broken outright from one that only works when clients
already have the intermediates installed.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

from ..core.models import (
    CertificateRecord,
    CertificateRole,
    CertProblem,
    OddityLog,
    TRUST_FAILURES,
    TrustVerdict,
)
from ..core.tools import ChainValidator
from .cert_properties import CertificatePropertyChecker
from .chain_extractor import ChainAnalysis
from .x509_parser import parse_certificate


@dataclass
class TrustAnalysis:
    """Verdict of the path validation and the oddity log after suppression."""
    verdict: TrustVerdict = TrustVerdict.NOT_RUN
    oddities: OddityLog = field(default_factory=OddityLog)
    configured: List[CertificateRecord] = field(default_factory=list)


def verdict_passed(lines: Sequence[str]) -> bool:
    return any(line.rstrip().endswith("OK") for line in lines)


def classify_failure(lines: Sequence[str], otherwise: CertProblem) -> CertProblem:
    """Sub-classify a failed validation from its verdict text."""
    text = "\n".join(lines)
    if "certificate revoked" in text:
        return CertProblem.SERVER_CERT_REVOKED
    if "unable to get certificate CRL" in text:
        return CertProblem.UNABLE_TO_GET_CRL
    return otherwise


class TrustChainVerifier:
    """Builds the two trust stores in a probe's scratch directory and validates against them."""

    EAP_ONLY_DIR = "root-ca-eaponly"
    ALL_CERTS_DIR = "root-ca-allcerts"
    SERVER_FILE = "incomingserver.pem"

    def __init__(self, validator: ChainValidator, property_checker: CertificatePropertyChecker):
        self.validator = validator
        self.property_checker = property_checker
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @staticmethod
    def _write(directory: Path, name: str, content: str) -> None:
        (directory / name).write_text(content if content.endswith("\n") else content + "\n")

    def _stage_chain(self, chain: ChainAnalysis, eap_only: Path, all_certs: Path) -> None:
        for index, record in enumerate(chain.intermediates):
            for directory in (eap_only, all_certs):
                self._write(directory, f"incomingintermediate{index}.pem", record.pem)
                if record.crl_pem:
                    self._write(directory, f"crl{index}.pem", record.crl_pem)

    def _stage_configured(self, configured_cas: Sequence[str], eap_only: Path,
                          all_certs: Path) -> Tuple[List[CertificateRecord], OddityLog]:
        records = []
        oddities = OddityLog()
        roots = intermediates = 0
        for pem in configured_cas:
            parsed = parse_certificate(pem)
            if parsed is None:
                self.logger.warning("Skipping unparsable configured CA certificate")
                continue
            if not parsed.is_ca:
                self.logger.debug(f"Configured certificate {parsed.subject} is not a CA, ignored")
                continue

            if parsed.is_self_signed:
                record = CertificateRecord(parsed=parsed, role=CertificateRole.ROOT)
                for directory in (eap_only, all_certs):
                    self._write(directory, f"configuredroot{roots}.pem", parsed.pem)
                roots += 1
            else:
                record = CertificateRecord(parsed=parsed, role=CertificateRole.INTERMEDIATE)
                self._write(all_certs, f"configuredintermediate{intermediates}.pem", parsed.pem)
                oddities.extend(self.property_checker.check_intermediate(record))
                if record.crl_pem:
                    self._write(all_certs, f"crl-configured{intermediates}.pem", record.crl_pem)
                intermediates += 1
            records.append(record)

        self.logger.debug(f"Configured trust material: {roots} roots, {intermediates} intermediates")
        return records, oddities

    def _validate(self, server: CertificateRecord, eap_only: Path,
                  all_certs: Path, workdir: Path) -> Tuple[TrustVerdict, Optional[CertProblem]]:
        crl_check = server.crl_pem is not None
        if crl_check:
            for directory in (eap_only, all_certs):
                self._write(directory, "crl-server.pem", server.crl_pem)

        server_file = workdir / self.SERVER_FILE
        self._write(workdir, self.SERVER_FILE, server.pem)

        all_result = self.validator.validate(server_file, all_certs, crl_check)
        if not all_result:
            return TrustVerdict.NOT_RUN, None
        if not verdict_passed(all_result):
            return TrustVerdict.ROOT_NOT_REACHED, classify_failure(
                all_result, CertProblem.TRUST_ROOT_NOT_REACHED)

        eap_result = self.validator.validate(server_file, eap_only, crl_check)
        if not verdict_passed(eap_result):
            return TrustVerdict.OUT_OF_BAND_ONLY, classify_failure(
                eap_result, CertProblem.TRUST_ROOT_REACHED_ONLY_WITH_OOB_INTERMEDIATES)
        return TrustVerdict.PASSED, None

    def verify(self, chain: ChainAnalysis, configured_cas: Sequence[str],
               workdir: Path) -> TrustAnalysis:
        """
        Validate the presented server certificate against both trust stores.

        Args:
            chain: Extracted presented chain
            configured_cas: PEM certificates configured for the deployment
            workdir: Scratch directory owned by the probe

        Returns:
            TrustAnalysis whose oddity log merges the chain oddities, the
            configured-intermediate oddities and the trust finding, with
            validity-related suppression applied
        """
        eap_only = workdir / self.EAP_ONLY_DIR
        all_certs = workdir / self.ALL_CERTS_DIR
        eap_only.mkdir(mode=0o700, parents=True, exist_ok=True)
        all_certs.mkdir(mode=0o700, parents=True, exist_ok=True)

        self._stage_chain(chain, eap_only, all_certs)
        configured, configured_oddities = self._stage_configured(configured_cas, eap_only, all_certs)

        verdict, problem = TrustVerdict.NOT_RUN, None
        server = chain.server
        if server is not None:
            verdict, problem = self._validate(server, eap_only, all_certs, workdir)
        self.logger.info(f"Trust verdict: {verdict.value}" + (f" ({problem.code})" if problem else ""))

        # an expired configured intermediate that the passing path did not need
        if verdict is TrustVerdict.PASSED:
            configured_oddities = configured_oddities.replaced(
                CertProblem.OUTSIDE_VALIDITY_PERIOD, CertProblem.OUTSIDE_VALIDITY_PERIOD_WARN)

        oddities = OddityLog(chain.oddities)
        if problem is not None:
            oddities.add(problem)
        oddities.extend(configured_oddities)

        # expired certificates fail path validation trivially
        if CertProblem.OUTSIDE_VALIDITY_PERIOD in oddities:
            oddities = oddities.without(TRUST_FAILURES)

        return TrustAnalysis(verdict=verdict, oddities=oddities, configured=configured)
