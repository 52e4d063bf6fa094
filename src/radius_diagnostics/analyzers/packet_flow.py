"""
Packet-flow classification of eapol_test traces.

Turns the raw text output of one handshake into the sequence of RADIUS
message codes that were exchanged, corrects the sequence for known server
and relay quirks, and derives the outcome of the attempt from the counts of
each message type. Works purely on text, so it can be exercised against
canned traces.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Sequence, Optional

from ..core.models import RadiusMessageType, ReturnCode

logger = logging.getLogger(__name__)

DEFAULT_RELAY_REJECT_MARKER = "Reject instead of Ignore at eduroam.org"


class LineCheck(Enum):
    """Multi-line patterns searched for in a trace."""
    REJECT_INSTEAD_OF_IGNORE = "reject_instead_of_ignore"
    MSCHAP_691_RETRY = "mschap_691_retry"
    EAP_METHOD_ACKNOWLEDGED = "eap_method_acknowledged"


@dataclass
class PacketFlowAnalysis:
    """What the trace says about the RADIUS conversation."""
    packetflow: List[int] = field(default_factory=list)
    packet_count: Dict[int, int] = field(default_factory=dict)
    packetflow_sane: bool = True
    return_code: ReturnCode = ReturnCode.INVALID
    eap_method_acknowledged: Optional[bool] = None


def filter_packet_types(lines: Sequence[str]) -> List[int]:
    """
    Extract the RADIUS message codes from the trace, in order.

    eapol_test reports each exchange as
    ``RADIUS message: code=11 (Access-Challenge) identifier=0 length=...``.
    """
    packetflow = []
    for line in lines:
        if "RADIUS message:" not in line:
            continue
        components = line.split(" ")
        try:
            packetflow.append(int(components[2].split("=")[1]))
        except (IndexError, ValueError):
            logger.debug(f"Unparsable RADIUS message line: {line!r}")
    return packetflow


def check_lines(lines: Sequence[str], check: LineCheck,
                relay_marker: str = DEFAULT_RELAY_REJECT_MARKER) -> bool:
    """
    Look for a special condition that is only visible line by line.

    Args:
        lines: Raw trace lines
        check: Which pattern to look for
        relay_marker: Reply-Message text a relay uses when it rejects
            instead of ignoring an unanswered request

    Returns:
        True if the pattern occurs in the trace
    """
    for lineid, line in enumerate(lines):
        following = lines[lineid + 1] if lineid + 1 < len(lines) else ""
        if check is LineCheck.REJECT_INSTEAD_OF_IGNORE:
            if "Attribute 18 (Reply-Message)" in line and relay_marker in following:
                return True
        elif check is LineCheck.MSCHAP_691_RETRY:
            if "MSCHAPV2: error 691" in line and "MSCHAPV2: retry is allowed" in following:
                return True
        elif check is LineCheck.EAP_METHOD_ACKNOWLEDGED:
            if "CTRL-EVENT-EAP-PROPOSED-METHOD" in line and not re.search(r"NAK$", line):
                return True
    return False


def apply_quirk_corrections(packetflow: List[int], lines: Sequence[str],
                            relay_marker: str = DEFAULT_RELAY_REJECT_MARKER) -> List[int]:
    """
    Correct the tail of the flow for known server and relay behaviour.

    An MS-CHAPv2 "error 691, retry allowed" arrives in a Challenge but is a
    reject in effect. A relay that answers a downstream timeout with a
    Reject has altered the end-to-end result, so that Reject is dropped.
    """
    corrected = list(packetflow)
    if corrected and corrected[-1] == RadiusMessageType.ACCESS_CHALLENGE \
            and check_lines(lines, LineCheck.MSCHAP_691_RETRY):
        corrected[-1] = int(RadiusMessageType.ACCESS_REJECT)
    if corrected and corrected[-1] == RadiusMessageType.ACCESS_REJECT \
            and check_lines(lines, LineCheck.REJECT_INSTEAD_OF_IGNORE, relay_marker):
        corrected.pop()
    return corrected


def is_sane(reqs: int, accepts: int, rejects: int, challenges: int) -> bool:
    """Every request answered exactly once, at most one final answer of each kind."""
    return reqs - accepts - rejects - challenges == 0 and accepts <= 1 and rejects <= 1


def classify_counts(accepts: int, rejects: int, challenges: int) -> ReturnCode:
    """Derive the attempt outcome from the response counts."""
    if accepts + rejects == 0:
        if challenges > 0:
            return ReturnCode.SERVER_UNFINISHED_COMM
        return ReturnCode.NO_RESPONSE
    # rejection without EAP is fishy
    if rejects > 0:
        if challenges == 0:
            return ReturnCode.IMMEDIATE_REJECT
        return ReturnCode.CONVERSATION_REJECT
    if accepts > 0:
        return ReturnCode.OK
    return ReturnCode.INVALID


def analyze_packet_flow(lines: Sequence[str],
                        relay_marker: str = DEFAULT_RELAY_REJECT_MARKER) -> PacketFlowAnalysis:
    """
    Classify one handshake trace.

    Args:
        lines: Raw trace lines
        relay_marker: Reply-Message text of rejecting relays

    Returns:
        PacketFlowAnalysis with the corrected flow, counts and outcome
    """
    packetflow = apply_quirk_corrections(filter_packet_types(lines), lines, relay_marker)
    packet_count = dict(Counter(packetflow))

    reqs = packet_count.get(RadiusMessageType.ACCESS_REQUEST, 0)
    accepts = packet_count.get(RadiusMessageType.ACCESS_ACCEPT, 0)
    rejects = packet_count.get(RadiusMessageType.ACCESS_REJECT, 0)
    challenges = packet_count.get(RadiusMessageType.ACCESS_CHALLENGE, 0)

    analysis = PacketFlowAnalysis(
        packetflow=packetflow,
        packet_count=packet_count,
        packetflow_sane=is_sane(reqs, accepts, rejects, challenges),
        return_code=classify_counts(accepts, rejects, challenges),
    )
    if analysis.return_code is ReturnCode.CONVERSATION_REJECT:
        analysis.eap_method_acknowledged = check_lines(lines, LineCheck.EAP_METHOD_ACKNOWLEDGED)

    logger.debug(
        f"Packetflow {packetflow}: {reqs} requests, {accepts} accepts, {rejects} rejects, "
        f"{challenges} challenges -> {analysis.return_code.value}"
    )
    return analysis
