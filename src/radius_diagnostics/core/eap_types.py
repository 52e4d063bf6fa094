"""
EAP types the probe driver can attempt, with their supplicant parameters.
"""

from enum import Enum
from typing import Optional


class EAPType(Enum):
    """EAP types with supplicant outer/inner method strings."""
    PEAP_MSCHAPV2 = ("PEAP-MSCHAPv2", "PEAP", "MSCHAPV2", False)
    TTLS_PAP = ("TTLS-PAP", "TTLS", "PAP", False)
    TTLS_MSCHAPV2 = ("TTLS-MSCHAPv2", "TTLS", "MSCHAPV2", False)
    TTLS_GTC = ("TTLS-GTC", "TTLS", "GTC", False)
    TLS = ("EAP-TLS", "TLS", None, True)
    FAST_GTC = ("EAP-FAST-GTC", "FAST", "GTC", False)
    PWD = ("EAP-pwd", "PWD", None, False)
    ANY = ("ANY", "PEAP TTLS TLS", "MSCHAPV2", True)
    # SIM-based methods need a SIM the probe cannot emulate
    SIM = ("EAP-SIM", None, None, False)
    AKA = ("EAP-AKA", None, None, False)

    def __init__(self, label: str, outer: Optional[str], inner: Optional[str],
                 client_certificate: bool):
        self.label = label
        self.outer = outer
        self.inner = inner
        self.client_certificate = client_certificate

    @property
    def certificate_only(self) -> bool:
        """True for methods that authenticate with the client certificate alone."""
        return self is EAPType.TLS

    @property
    def has_server_certificate(self) -> bool:
        return self is not EAPType.PWD

    @classmethod
    def from_label(cls, label: str) -> "EAPType":
        wanted = label.strip().lower()
        for eap_type in cls:
            if wanted in (eap_type.label.lower(), eap_type.name.lower()):
                return eap_type
        raise ValueError(f"Unknown EAP type: {label}")
