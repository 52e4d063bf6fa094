"""
Redaction of secrets from handshake traces before they are logged.
"""

from typing import Iterable, List

LINE_REDACTED = "LINE CONTAINING PASSWORD REDACTED"
HEX_REDACTED = " HEX ENCODED PASSWORD REDACTED "


def hex_spaced(secret: str) -> str:
    """The secret as the supplicant prints it in hexdumps: ``65 61 70``."""
    return " ".join(f"{byte:02x}" for byte in secret.encode('utf-8'))


def redact(secret: str, lines: Iterable[str]) -> List[str]:
    """
    Remove a password from trace lines.

    Any line containing the password is replaced entirely; hexdumps of the
    password are replaced in place.

    Args:
        secret: The password to hide; empty leaves the lines unchanged
        lines: Raw trace lines

    Returns:
        New list of redacted lines
    """
    lines = list(lines)
    if not secret:
        return lines

    spaced = hex_spaced(secret)
    redacted = []
    for line in lines:
        if secret in line:
            redacted.append(LINE_REDACTED)
        else:
            redacted.append(line.replace(spaced, HEX_REDACTED))
    return redacted
