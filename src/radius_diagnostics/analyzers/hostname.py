"""
Matching of expected server names against the presented server certificate.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from ..core.models import CertProblem, NameMatch

logger = logging.getLogger(__name__)

_MATCH_ODDITY = {
    NameMatch.TOTAL: None,
    NameMatch.PARTIAL: CertProblem.SERVER_NAME_PARTIAL_MATCH,
    NameMatch.UNHAPPY: CertProblem.SERVER_NAME_MISMATCH,
}


@dataclass(frozen=True)
class HostnameVerdict:
    match: NameMatch
    oddity: Optional[CertProblem] = None


def match_server_names(expected_names: Sequence[str], common_names: Sequence[str],
                       san_dns: Sequence[str]) -> HostnameVerdict:
    """
    Compare the configured server names with the certificate's CN and SAN DNS names.

    The best match over all expected names wins: a name in both CN and SAN
    is a total match, a name in only one of them a partial match.

    Args:
        expected_names: Names configured for the deployment
        common_names: Subject CN values of the server certificate
        san_dns: SAN DNS names of the server certificate

    Returns:
        HostnameVerdict with the oddity to record, if any
    """
    match = NameMatch.UNHAPPY
    for name in expected_names:
        in_cn = name in common_names
        in_san = name in san_dns
        logger.debug(f"Expected name {name}: in CN={in_cn}, in SAN={in_san}")
        if in_cn and in_san:
            match = NameMatch.TOTAL
            break
        if in_cn or in_san:
            match = NameMatch.PARTIAL
    return HostnameVerdict(match=match, oddity=_MATCH_ODDITY[match])
