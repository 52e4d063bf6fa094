"""
Configuration objects for the diagnostics engine.

The engine never reads global state: tool locations, probe targets and
TLS test material are carried by a ``DiagnosticsConfig`` passed in at
construction. Profile attributes of the deployment under test are carried
by a ``ProfileView``.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Any, Optional

import yaml

from .models import ProbeTarget, ConfigurationError

logger = logging.getLogger(__name__)


@dataclass
class TLSClientCertificate:
    """One test client certificate and the outcome expected when presenting it."""
    status: str
    expected: str
    public: str
    private: str


@dataclass
class TLSClientCertSet:
    """Test client certificates issued by one CA."""
    name: str
    status: str
    issuer_ca: str = ""
    certificates: List[TLSClientCertificate] = field(default_factory=list)


@dataclass
class DiagnosticsConfig:
    """Explicit configuration of tool paths, targets and test material."""
    eapol_test_path: str = "eapol_test"
    openssl_path: str = "openssl"
    c_rehash_path: str = "c_rehash"

    udp_hosts: List[ProbeTarget] = field(default_factory=list)

    tls_ca_path: str = "/etc/ssl/certs"
    tls_client_cert_dir: str = "."
    tls_client_certs: List[TLSClientCertSet] = field(default_factory=list)
    tls_acceptable_oids: Dict[str, str] = field(default_factory=dict)
    tls_version_flag: str = "-tls1_2"

    product_name: str = "RADIUS Diagnostics"
    operator_name: str = "1cat.eduroam.org"
    relay_reject_marker: str = "Reject instead of Ignore at eduroam.org"

    crl_timeout: float = 10.0
    process_timeout_margin: float = 5.0

    reachability_client_cert: Optional[str] = None
    reachability_username: str = "cat-connectivity-test"
    reachability_password: str = "eaplab"

    def get_target(self, probe_index: int) -> Optional[ProbeTarget]:
        """Return the probe target for an index, or None when not configured."""
        if 0 <= probe_index < len(self.udp_hosts):
            return self.udp_hosts[probe_index]
        return None

    def load_reachability_client_cert(self) -> Optional[bytes]:
        if not self.reachability_client_cert:
            return None
        return Path(self.reachability_client_cert).read_bytes()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DiagnosticsConfig":
        """
        Build a configuration from a mapping.

        Args:
            data: Parsed configuration (JSON or YAML)

        Returns:
            DiagnosticsConfig instance

        Raises:
            ConfigurationError: If a probe target or client cert set is malformed
        """
        known = set(cls.__dataclass_fields__)
        kwargs = {k: v for k, v in data.items() if k in known}

        targets = []
        for index, host in enumerate(data.get('udp_hosts', [])):
            try:
                targets.append(ProbeTarget(
                    ip=str(host['ip']),
                    secret=str(host['secret']),
                    timeout=int(host.get('timeout', 10)),
                    index=index,
                ))
            except (KeyError, TypeError, ValueError) as e:
                raise ConfigurationError(f"Invalid UDP host #{index}: {e}") from e
        kwargs['udp_hosts'] = targets

        cert_sets = []
        for entry in data.get('tls_client_certs', []):
            try:
                cert_sets.append(TLSClientCertSet(
                    name=entry['name'],
                    status=entry['status'],
                    issuer_ca=entry.get('issuer_ca', ''),
                    certificates=[
                        TLSClientCertificate(
                            status=c['status'],
                            expected=c['expected'],
                            public=c['public'],
                            private=c['private'],
                        )
                        for c in entry.get('certificates', [])
                    ],
                ))
            except (KeyError, TypeError) as e:
                raise ConfigurationError(f"Invalid TLS client certificate set: {e}") from e
        kwargs['tls_client_certs'] = cert_sets

        return cls(**kwargs)


@dataclass
class ProfileView:
    """The profile attributes the probes consume."""
    realm: str = ""
    use_anon_outer: bool = False
    anon_local_value: str = ""
    checkuser_outer: bool = False
    checkuser_value: str = ""
    ca_certificates: List[str] = field(default_factory=list)
    server_names: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProfileView":
        known = set(cls.__dataclass_fields__)
        profile = cls(**{k: v for k, v in data.items() if k in known})
        for key in ('ca_certificates', 'server_names'):
            if not isinstance(getattr(profile, key), list):
                raise ConfigurationError(f"Profile attribute '{key}' must be a list")
        return profile


def _read_mapping(path: str) -> Dict[str, Any]:
    config_path = Path(path)
    try:
        text = config_path.read_text()
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    try:
        if config_path.suffix.lower() == '.json':
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot parse {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{path} does not contain a mapping")
    return data


def load_config(path: str) -> DiagnosticsConfig:
    """Load a DiagnosticsConfig from a JSON or YAML file."""
    logger.debug(f"Loading configuration from {path}")
    return DiagnosticsConfig.from_dict(_read_mapping(path))


def load_profile(path: str) -> ProfileView:
    """
    Load a ProfileView from a JSON or YAML file.

    CA certificates may be given inline as PEM text or as ``ca_files``,
    a list of paths relative to the profile file.
    """
    data = _read_mapping(path)
    ca_files = data.pop('ca_files', [])
    certificates = list(data.get('ca_certificates', []))
    for ca_file in ca_files:
        ca_path = Path(path).parent / ca_file
        try:
            certificates.append(ca_path.read_text())
        except OSError as e:
            raise ConfigurationError(f"Cannot read CA file {ca_path}: {e}") from e
    data['ca_certificates'] = certificates
    return ProfileView.from_dict(data)
