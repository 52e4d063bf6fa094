"""
Main RADIUS/EAP diagnostics orchestrator.

Composes the identity resolver, supplicant config builder, probe driver,
packet-flow classifier and certificate stages into EAP login probes, runs
the direct TLS checks, and accumulates one result per probe for reporting.
"""

import logging
import tempfile
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Any, Optional, Iterable

from .analyzers.cert_properties import CertificatePropertyChecker
from .analyzers.chain_extractor import CertificateChainExtractor
from .analyzers.crl import CRLAttacher
from .analyzers.hostname import match_server_names
from .analyzers.identity import resolve_identities
from .analyzers.packet_flow import analyze_packet_flow
from .analyzers.probe_driver import ProtocolProbeDriver
from .analyzers.supplicant_config import build_supplicant_config
from .analyzers.tls_reachability import TLSReachabilityChecker
from .analyzers.trust_chain import TrustChainVerifier
from .core.config import DiagnosticsConfig, ProfileView
from .core.eap_types import EAPType
from .core.models import (
    CertProblem,
    ReturnCode,
    TestResult,
    TLSCACheckResult,
    TLSClientCheckResult,
)
from .core.tools import (
    ChainValidator,
    CRLFetcher,
    EapolTestRunner,
    HandshakeRunner,
    HTTPCRLFetcher,
    OpenSSLChainValidator,
    OpenSSLTLSConnector,
    TLSConnector,
)
from .reporting import generate_report


class RADIUSDiagnostics:
    """
    Diagnostics session for one realm.

    Each probe is independent and owns its scratch directory; results are
    accumulated per probe index (EAP probes) or per host (TLS checks).
    External tools are reached only through the capability objects given at
    construction, defaulting to eapol_test, openssl and HTTP.
    """

    def __init__(
        self,
        realm: str,
        config: Optional[DiagnosticsConfig] = None,
        profile: Optional[ProfileView] = None,
        runner: Optional[HandshakeRunner] = None,
        validator: Optional[ChainValidator] = None,
        connector: Optional[TLSConnector] = None,
        crl_fetcher: Optional[CRLFetcher] = None,
    ):
        """
        Initialize the diagnostics session.

        Args:
            realm: Realm under test
            config: Tool paths, probe targets and TLS test material
            profile: Profile attributes of the deployment, if known
            runner: EAP handshake capability
            validator: Path validation capability
            connector: Direct TLS capability
            crl_fetcher: CRL retrieval capability
        """
        self.realm = realm
        self.config = config or DiagnosticsConfig()
        self.profile = profile
        self.logger = logging.getLogger(__name__)

        runner = runner or EapolTestRunner(
            self.config.eapol_test_path, self.config.process_timeout_margin)
        validator = validator or OpenSSLChainValidator(
            self.config.openssl_path, self.config.c_rehash_path)
        connector = connector or OpenSSLTLSConnector(
            self.config.openssl_path, self.config.tls_ca_path, self.config.tls_version_flag)
        crl_fetcher = crl_fetcher or HTTPCRLFetcher(self.config.crl_timeout)

        # Initialize components
        self.probe_driver = ProtocolProbeDriver(runner, self.config)
        self.property_checker = CertificatePropertyChecker(CRLAttacher(crl_fetcher))
        self.chain_extractor = CertificateChainExtractor(self.property_checker)
        self.trust_verifier = TrustChainVerifier(validator, self.property_checker)
        self.tls_checker = TLSReachabilityChecker(connector, self.config)

        self._lock = threading.Lock()
        self.udp_results: Dict[int, TestResult] = {}
        self.tls_ca_results: Dict[str, TLSCACheckResult] = {}
        self.tls_client_results: Dict[str, TLSClientCheckResult] = {}

    def _record(self, probe_index: int, result: TestResult) -> TestResult:
        result.probe_index = probe_index
        with self._lock:
            self.udp_results[probe_index] = result
        return result

    def udp_login(
        self,
        probe_index: int,
        eap_type: EAPType,
        inner_user: str,
        password: str,
        outer_user: str = "",
        operator_name: bool = True,
        fragment: bool = True,
        client_cert: Optional[bytes] = None,
    ) -> TestResult:
        """
        Perform an EAP login against one probe target and diagnose the outcome.

        Args:
            probe_index: Index of the configured UDP host
            eap_type: EAP type to attempt
            inner_user: Inner identity
            password: Password (also the client key password)
            outer_user: Full outer identity, a realm fragment, or ""
            operator_name: Send Operator-Name
            fragment: Force UDP fragmentation
            client_cert: PKCS#12 client credential for certificate-using types

        Returns:
            TestResult; NOT_CONFIGURED and INCOMPLETE_DATA carry no details

        Raises:
            ToolingError: If the handshake produced no output at all
        """
        target = self.config.get_target(probe_index)
        if target is None:
            self.logger.warning(f"Probe {probe_index} is not configured")
            return self._record(probe_index, TestResult(ReturnCode.NOT_CONFIGURED))

        identity = resolve_identities(inner_user, outer_user, self.realm, self.profile)
        if identity is None:
            self.logger.warning(f"No outer realm derivable for {inner_user}")
            return self._record(probe_index, TestResult(ReturnCode.INCOMPLETE_DATA))

        if eap_type.client_certificate and client_cert is None:
            self.logger.warning(f"{eap_type.label} needs a client certificate")
            return self._record(probe_index, TestResult(ReturnCode.NOT_CONFIGURED))
        if eap_type.outer is None:
            self.logger.warning(f"{eap_type.label} cannot be tested with the supplicant")
            return self._record(probe_index, TestResult(ReturnCode.NOT_CONFIGURED))

        self.logger.info(
            f"Probe {probe_index}: {eap_type.label} login as {identity.inner} "
            f"(outer {identity.outer})"
        )
        supplicant = build_supplicant_config(
            eap_type, identity.inner, identity.outer, password, self.config.product_name)

        with tempfile.TemporaryDirectory(prefix="radius-diagnostics-") as tmp:
            workdir = Path(tmp)
            capture = self.probe_driver.run(
                target, supplicant, workdir,
                password=password,
                client_cert=client_cert,
                operator_name=operator_name,
                fragment=fragment,
            )
            flow = analyze_packet_flow(capture.trace.lines, self.config.relay_reject_marker)
            result = TestResult(
                return_code=flow.return_code,
                time_millisec=capture.time_millisec,
                packetflow=flow.packetflow,
                packet_count=flow.packet_count,
                packetflow_sane=flow.packetflow_sane,
                eap_method_acknowledged=flow.eap_method_acknowledged,
            )
            if flow.return_code is ReturnCode.CONVERSATION_REJECT and not flow.eap_method_acknowledged:
                result.oddities.add(CertProblem.NO_COMMON_EAP_METHOD)

            if self._should_analyze_certificates(eap_type, result):
                self._analyze_certificates(result, capture.chain_pem or "", workdir)

        self.logger.info(
            f"Probe {probe_index} finished: {result.return_code.value}, "
            f"{len(result.oddities)} oddities"
        )
        return self._record(probe_index, result)

    @staticmethod
    def _should_analyze_certificates(eap_type: EAPType, result: TestResult) -> bool:
        if not eap_type.has_server_certificate:
            return False
        if result.return_code is ReturnCode.OK:
            return True
        return result.return_code is ReturnCode.CONVERSATION_REJECT and bool(result.eap_method_acknowledged)

    def _analyze_certificates(self, result: TestResult, chain_pem: str, workdir: Path) -> None:
        chain = self.chain_extractor.extract(chain_pem)
        result.certificates = list(chain.records)
        server = chain.server
        if server is not None:
            result.incoming_server_names = server.incoming_server_names

        if self.profile is None:
            result.oddities.extend(chain.oddities)
            return

        trust = self.trust_verifier.verify(chain, self.profile.ca_certificates, workdir)
        result.trust_verdict = trust.verdict
        result.oddities.extend(trust.oddities)

        common_names, san_dns = [], []
        if server is not None:
            common_names, san_dns = server.common_names or [], server.san_dns or []
        verdict = match_server_names(self.profile.server_names, common_names, san_dns)
        result.name_match = verdict.match
        if verdict.oddity is not None:
            result.oddities.add(verdict.oddity)

    def udp_reachability(self, probe_index: int, operator_name: bool = True,
                         fragment: bool = True) -> TestResult:
        """
        Login with made-up credentials to see whether the realm is reachable at all.

        Uses EAP type ANY with the configured throwaway client certificate.
        """
        return self.udp_login(
            probe_index,
            EAPType.ANY,
            f"{self.config.reachability_username}@{self.realm}",
            self.config.reachability_password,
            operator_name=operator_name,
            fragment=fragment,
            client_cert=self.config.load_reachability_client_cert(),
        )

    def run_reachability_batch(self, probe_indices: Optional[Iterable[int]] = None,
                               max_workers: int = 4) -> Dict[int, TestResult]:
        """
        Run reachability probes against several targets concurrently.

        Args:
            probe_indices: Indices to probe (default: all configured targets)
            max_workers: Thread pool size

        Returns:
            Mapping of probe index to result; probes that failed with a
            tooling fault are absent and logged
        """
        indices = list(probe_indices) if probe_indices is not None \
            else list(range(len(self.config.udp_hosts)))
        results: Dict[int, TestResult] = {}

        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            future_to_index = {
                executor.submit(self.udp_reachability, index): index
                for index in indices
            }
            for future in as_completed(future_to_index):
                index = future_to_index[future]
                try:
                    results[index] = future.result()
                except Exception as e:
                    self.logger.error(f"Probe {index} failed: {e}")

        self.logger.info(f"Reachability batch complete: {len(results)}/{len(indices)} probes")
        return results

    def ca_path_check(self, host: str) -> TLSCACheckResult:
        """Check whether a TLS endpoint presents a certificate from an acceptable CA."""
        result = self.tls_checker.ca_path_check(host)
        with self._lock:
            self.tls_ca_results[host] = result
        return result

    def tls_clients_side_check(self, host: str) -> TLSClientCheckResult:
        """Check which test client certificates a TLS endpoint accepts."""
        result = self.tls_checker.client_side_check(host)
        with self._lock:
            self.tls_client_results[host] = result
        return result

    def list_errors(self) -> List[Dict[str, Any]]:
        """All oddities of all EAP probes run so far, tagged with the probe index."""
        errors = []
        for index, result in sorted(self.udp_results.items()):
            for entry in result.oddities.to_list():
                entry['probe_index'] = index
                errors.append(entry)
        return errors

    def collect_results(self) -> Dict[str, Any]:
        """Accumulated results of this session as plain data."""
        return {
            'realm': self.realm,
            'generated': datetime.now().isoformat(),
            'udp': {str(i): r.to_dict() for i, r in sorted(self.udp_results.items())},
            'tls_ca': {h: r.to_dict() for h, r in self.tls_ca_results.items()},
            'tls_clients': {h: r.to_dict() for h, r in self.tls_client_results.items()},
        }

    def generate_report(self, output_format: str = 'json') -> str:
        """
        Generate a formatted report of the accumulated results.

        Args:
            output_format: 'json', 'markdown' or 'text'

        Returns:
            Formatted report string
        """
        return generate_report(self.collect_results(), output_format)
