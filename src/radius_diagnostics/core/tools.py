"""
Capability interfaces for the external collaborators of the diagnostics engine.

The engine only ever asks four things of the outside world: run an EAP
handshake, validate a certificate path, open a direct TLS connection and
fetch a CRL. Each is an abstract base class here, with a default
implementation driving ``eapol_test``, ``openssl`` or HTTP. Tests replace
them with canned fakes.
"""

import logging
import subprocess
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

import requests

from .models import ProbeTarget, ToolingError

logger = logging.getLogger(__name__)


@dataclass
class HandshakeOutput:
    """Captured output of one EAP handshake."""
    lines: List[str]
    chain_file: Optional[Path] = None
    returncode: Optional[int] = None


@dataclass
class TLSConnectOutput:
    """Captured output of one direct TLS connection attempt."""
    lines: List[str]
    returncode: int
    time_millisec: float = 0.0


def _decode(output) -> str:
    if output is None:
        return ""
    if isinstance(output, bytes):
        return output.decode('utf-8', errors='replace')
    return output


def _run(cmd: Sequence[str], timeout: Optional[float] = None,
         cwd: Optional[Path] = None) -> subprocess.CompletedProcess:
    """Run a command with stderr folded into stdout; a timeout keeps partial output."""
    try:
        return subprocess.run(
            list(cmd),
            cwd=str(cwd) if cwd else None,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        logger.warning(f"{cmd[0]} did not finish within {timeout}s")
        return subprocess.CompletedProcess(list(cmd), -1, stdout=e.output)
    except OSError as e:
        raise ToolingError(f"Unable to execute {cmd[0]}: {e}") from e


class HandshakeRunner(ABC):
    """Runs one simulated EAP authentication against a RADIUS server."""

    @abstractmethod
    def run(self, target: ProbeTarget, config_file: Path, workdir: Path,
            mac: str, attributes: List[str]) -> HandshakeOutput:
        """
        Run the handshake.

        Args:
            target: RADIUS server to talk to
            config_file: Supplicant configuration file
            workdir: Scratch directory owned by this probe
            mac: Calling-Station MAC address to present
            attributes: Extra RADIUS attributes in ``type:x:hex`` form

        Returns:
            HandshakeOutput with the raw trace and the captured chain file

        Raises:
            ToolingError: If the tool produced no output at all
        """
        pass


class ChainValidator(ABC):
    """Validates a certificate against a directory of trust anchors."""

    @abstractmethod
    def validate(self, cert_file: Path, ca_dir: Path, crl_check: bool) -> List[str]:
        """Return the verdict lines of the path validation."""
        pass


class TLSConnector(ABC):
    """Opens a direct TLS connection to a server."""

    @abstractmethod
    def connect(self, host: str, extra_args: Sequence[str] = ()) -> TLSConnectOutput:
        pass


class CRLFetcher(ABC):
    """Retrieves CRL content from a distribution point."""

    @abstractmethod
    def fetch(self, url: str) -> Optional[bytes]:
        """Return the raw CRL bytes, or None when retrieval failed."""
        pass


class EapolTestRunner(HandshakeRunner):
    """HandshakeRunner driving wpa_supplicant's ``eapol_test``."""

    CHAIN_FILE = "serverchain.pem"

    def __init__(self, eapol_test_path: str = "eapol_test", timeout_margin: float = 5.0):
        self.eapol_test_path = eapol_test_path
        self.timeout_margin = timeout_margin
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def build_command(self, target: ProbeTarget, config_file: Path,
                      mac: str, attributes: List[str]) -> List[str]:
        cmd = [
            self.eapol_test_path,
            "-a", target.ip,
            "-s", target.secret,
            "-o", self.CHAIN_FILE,
            "-c", str(config_file),
            "-M", mac,
            "-t", str(target.timeout),
        ]
        cmd.extend(f"-N{attribute}" for attribute in attributes)
        return cmd

    def run(self, target: ProbeTarget, config_file: Path, workdir: Path,
            mac: str, attributes: List[str]) -> HandshakeOutput:
        cmd = self.build_command(target, config_file, mac, attributes)
        # the shared secret stays out of the log
        self.logger.debug(
            f"eapol_test against {target.ip} (timeout {target.timeout}s, "
            f"{len(attributes)} extra attributes)"
        )
        completed = _run(cmd, timeout=target.timeout + self.timeout_margin, cwd=workdir)
        output = _decode(completed.stdout)
        if not output:
            raise ToolingError(f"{self.eapol_test_path} produced no output at all")

        chain_file = workdir / self.CHAIN_FILE
        return HandshakeOutput(
            lines=output.splitlines(),
            chain_file=chain_file if chain_file.exists() else None,
            returncode=completed.returncode,
        )


class OpenSSLChainValidator(ChainValidator):
    """ChainValidator using ``c_rehash`` and ``openssl verify``."""

    def __init__(self, openssl_path: str = "openssl", c_rehash_path: str = "c_rehash"):
        self.openssl_path = openssl_path
        self.c_rehash_path = c_rehash_path
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def rehash(self, ca_dir: Path) -> None:
        completed = _run([self.c_rehash_path, str(ca_dir)])
        if completed.returncode != 0:
            self.logger.warning(f"c_rehash failed on {ca_dir}: {_decode(completed.stdout).strip()}")

    def validate(self, cert_file: Path, ca_dir: Path, crl_check: bool) -> List[str]:
        self.rehash(ca_dir)
        cmd = [self.openssl_path, "verify"]
        if crl_check:
            cmd.append("-crl_check_all")
        cmd.extend(["-CApath", str(ca_dir), "-purpose", "any", str(cert_file)])
        self.logger.debug(" ".join(cmd))
        completed = _run(cmd)
        lines = _decode(completed.stdout).splitlines()
        self.logger.debug(f"openssl verify against {ca_dir.name}: {lines}")
        return lines


class OpenSSLTLSConnector(TLSConnector):
    """TLSConnector using ``openssl s_client``."""

    def __init__(self, openssl_path: str = "openssl", ca_path: str = "/etc/ssl/certs",
                 version_flag: str = "-tls1_2", timeout: float = 30.0):
        self.openssl_path = openssl_path
        self.ca_path = ca_path
        self.version_flag = version_flag
        self.timeout = timeout
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def connect(self, host: str, extra_args: Sequence[str] = ()) -> TLSConnectOutput:
        cmd = [self.openssl_path, "s_client", "-connect", host]
        if self.version_flag:
            cmd.append(self.version_flag)
        cmd.extend(["-CApath", self.ca_path])
        cmd.extend(extra_args)
        self.logger.debug(" ".join(cmd))

        time_start = time.monotonic()
        completed = _run(cmd, timeout=self.timeout)
        elapsed = (time.monotonic() - time_start) * 1000

        output = _decode(completed.stdout)
        if not output:
            raise ToolingError(f"{self.openssl_path} s_client produced no output at all")
        return TLSConnectOutput(
            lines=output.splitlines(),
            returncode=completed.returncode,
            time_millisec=float(int(elapsed)),
        )


class HTTPCRLFetcher(CRLFetcher):
    """CRLFetcher downloading over HTTP(S) with ``requests``."""

    def __init__(self, timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    def fetch(self, url: str) -> Optional[bytes]:
        self.logger.debug(f"Downloading CRL from {url}")
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.RequestException as e:
            self.logger.warning(f"Failed to download CRL from {url}: {e}")
            return None
        self.logger.info(f"Downloaded CRL from {url} ({len(response.content)} bytes)")
        return response.content
