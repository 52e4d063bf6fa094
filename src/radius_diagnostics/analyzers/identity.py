"""
Outer/inner identity resolution for EAP login probes.
"""

import re
from dataclasses import dataclass
from typing import Optional

from ..core.config import ProfileView

_LOCALPART = re.compile(r"(.*)@.*")
_REALM_SUFFIX = re.compile(r".*(@.*)")


@dataclass(frozen=True)
class ResolvedIdentity:
    inner: str
    outer: str


def best_outer_localpart(inner_user: str, tested_realm: str,
                         profile: Optional[ProfileView] = None) -> str:
    """
    Pick the local part of the outer identity.

    Precedence: the admin's dedicated realm-check outer ID, then the
    profile's anonymous outer ID (only when the profile realm is the realm
    under test), then the local part of the inner identity, then "".
    """
    if profile is not None:
        if profile.checkuser_outer:
            return profile.checkuser_value
        if profile.use_anon_outer and profile.realm == tested_realm:
            return profile.anon_local_value

    match = _LOCALPART.match(inner_user)
    if match:
        return match.group(1)
    return ""


def resolve_identities(inner_user: str, outer_user: str, tested_realm: str,
                       profile: Optional[ProfileView] = None) -> Optional[ResolvedIdentity]:
    """
    Work out the inner and outer identity for one login attempt.

    Args:
        inner_user: Inner username, with or without realm
        outer_user: Full outer identity, a bare realm fragment, or ""
        tested_realm: The realm the diagnostics run is about
        profile: Profile attributes, if the realm belongs to a known profile

    Returns:
        ResolvedIdentity, or None when no outer realm can be derived
    """
    if "@" in outer_user:
        return ResolvedIdentity(inner_user, outer_user)

    localpart = best_outer_localpart(inner_user, tested_realm, profile)
    if outer_user != "":
        return ResolvedIdentity(inner_user, localpart + outer_user)

    match = _REALM_SUFFIX.match(inner_user)
    if match:
        return ResolvedIdentity(inner_user, localpart + match.group(1))
    if profile is not None and profile.realm != "":
        return ResolvedIdentity(inner_user, f"{localpart}@{profile.realm}")
    return None
