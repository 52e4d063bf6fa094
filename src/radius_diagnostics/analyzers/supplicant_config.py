"""
wpa_supplicant network block generation for EAP login probes.

Two renderings are produced from the same template: the real one written
to the probe's scratch directory and a redacted one that is safe to log.
The configuration deliberately performs no CA checking; the presented
chain is captured and analysed separately.
"""

from dataclasses import dataclass

from jinja2 import Environment, StrictUndefined

from ..core.eap_types import EAPType

CLIENT_CERT_FILE = "client.p12"
REDACTED = "not logged for security reasons"

_environment = Environment(
    trim_blocks=True,
    lstrip_blocks=True,
    keep_trailing_newline=False,
    undefined=StrictUndefined,
    autoescape=False,
)

_NETWORK_TEMPLATE = _environment.from_string('''
network={
  ssid="{{ ssid }}"
  key_mgmt=WPA-EAP
  proto=WPA2
  pairwise=CCMP
  group=CCMP
  eap={{ outer }}
{% if inner %}
  phase2="auth={{ inner }}"
{% endif %}
{% if password is not none %}
  password="{{ password }}"
{% endif %}
{% if private_key %}
  private_key="{{ private_key }}"
  private_key_passwd="{{ private_key_password }}"
{% endif %}
  identity="{{ identity }}"
  anonymous_identity="{{ anonymous_identity }}"
}''')


@dataclass(frozen=True)
class SupplicantConfig:
    """The real configuration and its loggable twin."""
    config: str
    log_config: str


def _render(eap_type: EAPType, inner: str, outer: str, secret: str, product_name: str) -> str:
    return _NETWORK_TEMPLATE.render(
        ssid=f"{product_name} testing",
        outer=eap_type.outer,
        inner=eap_type.inner,
        password=None if eap_type.certificate_only else secret,
        private_key=f"./{CLIENT_CERT_FILE}" if eap_type.client_certificate else None,
        private_key_password=secret,
        identity=inner,
        anonymous_identity=outer,
    )


def build_supplicant_config(eap_type: EAPType, inner: str, outer: str, password: str,
                            product_name: str = "RADIUS Diagnostics") -> SupplicantConfig:
    """
    Render the supplicant network block.

    Args:
        eap_type: EAP type to configure; must have an outer method
        inner: Inner identity
        outer: Outer (anonymous) identity
        password: Password, also used as the client key password
        product_name: Prefix of the dummy SSID

    Returns:
        SupplicantConfig with real and redacted text
    """
    if eap_type.outer is None:
        raise ValueError(f"{eap_type.label} has no supplicant method")
    return SupplicantConfig(
        config=_render(eap_type, inner, outer, password, product_name),
        log_config=_render(eap_type, inner, outer, REDACTED, product_name),
    )
