"""
Protocol probe driver.

Runs one simulated EAP authentication against a RADIUS server in a
scratch directory owned by the probe, and captures the raw trace, the
elapsed time and the certificate chain the server presented.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from ..core.config import DiagnosticsConfig
from ..core.models import PacketTrace, ProbeTarget
from ..core.tools import HandshakeRunner
from ..utils.radius_attributes import build_request_attributes
from ..utils.redaction import redact
from .supplicant_config import CLIENT_CERT_FILE, SupplicantConfig

CONFIG_FILE = "udp_login_test.conf"


@dataclass
class ProbeCapture:
    """What one handshake left behind."""
    trace: PacketTrace
    time_millisec: float
    chain_pem: Optional[str] = None
    returncode: Optional[int] = None


def calling_station_mac(probe_index: int) -> str:
    """Calling-Station MAC presented by the probe; the last octet is the probe index modulo 256."""
    return f"22:44:66:CA:20:{probe_index & 0xFF:02X}"


class ProtocolProbeDriver:
    """Prepares the scratch directory and runs one handshake through a HandshakeRunner."""

    def __init__(self, runner: HandshakeRunner, config: DiagnosticsConfig):
        self.runner = runner
        self.config = config
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def run(self, target: ProbeTarget, supplicant: SupplicantConfig, workdir: Path,
            password: str = "", client_cert: Optional[bytes] = None,
            operator_name: bool = True, fragment: bool = True) -> ProbeCapture:
        """
        Run one EAP handshake.

        Args:
            target: RADIUS server to probe
            supplicant: Rendered supplicant configuration
            workdir: Scratch directory owned by this probe
            password: Password to redact from the logged trace
            client_cert: PKCS#12 client credential, written as client.p12
            operator_name: Send an Operator-Name attribute
            fragment: Pad the request so that it needs UDP fragmentation

        Returns:
            ProbeCapture with trace, timing and presented chain

        Raises:
            ToolingError: If the handshake produced no output at all
        """
        if client_cert is not None:
            (workdir / CLIENT_CERT_FILE).write_bytes(client_cert)

        config_file = workdir / CONFIG_FILE
        config_file.write_text(supplicant.config)
        self.logger.debug(f"Supplicant config in {workdir}:\n{supplicant.log_config}")

        attributes = build_request_attributes(self.config.operator_name, operator_name, fragment)
        mac = calling_station_mac(target.index)

        time_start = time.monotonic()
        output = self.runner.run(target, config_file, workdir, mac, attributes)
        elapsed = (time.monotonic() - time_start) * 1000

        self.logger.debug("Trace:\n" + "\n".join(redact(password, output.lines)))

        chain_pem = None
        if output.chain_file is not None and output.chain_file.exists():
            chain_pem = output.chain_file.read_text(errors='ignore')

        self.logger.info(
            f"Probe {target.index} ({target.ip}): {len(output.lines)} trace lines "
            f"in {elapsed:.0f} ms, chain {'captured' if chain_pem else 'not captured'}"
        )
        return ProbeCapture(
            trace=PacketTrace(tuple(output.lines)),
            time_millisec=elapsed,
            chain_pem=chain_pem,
            returncode=output.returncode,
        )
