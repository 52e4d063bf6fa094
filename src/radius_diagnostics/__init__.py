"""
RADIUS/EAP authentication diagnostics.

Runs live EAP logins and direct TLS handshakes against RADIUS servers and
turns the observed conversation and certificate chain into concrete
findings.
"""

__version__ = "0.1.0"

from .main import RADIUSDiagnostics
from .core.config import DiagnosticsConfig, ProfileView
from .core.eap_types import EAPType
from .core.models import CertProblem, ReturnCode, TestResult

__all__ = [
    "RADIUSDiagnostics",
    "DiagnosticsConfig",
    "ProfileView",
    "EAPType",
    "CertProblem",
    "ReturnCode",
    "TestResult",
]
