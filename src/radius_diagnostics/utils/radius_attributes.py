"""
Extra RADIUS attributes for eapol_test, encoded with scapy.

eapol_test takes additional request attributes as ``-N<type>:x:<hex>``;
the hex payload is the attribute value without the type/length header.
"""

from typing import List

from scapy.layers.radius import RadiusAttribute, RadiusAttr_Vendor_Specific

OPERATOR_NAME = 126

# vendor attribute used to pad requests beyond the path MTU
PADDING_VENDOR_ID = 25178
PADDING_VENDOR_TYPE = 11
PADDING_ATTRIBUTE_COUNT = 6
# fills the attribute to the 255 byte maximum
PADDING_VALUE_LENGTH = 247


def _eapol_test_argument(attribute) -> str:
    raw = bytes(attribute)
    return f"{attribute.type}:x:{raw[2:].hex()}"


def operator_name_attribute(operator_name: str) -> str:
    """Operator-Name (126) carrying the given operator identifier."""
    attribute = RadiusAttribute(type=OPERATOR_NAME, value=operator_name.encode('utf-8'))
    return _eapol_test_argument(attribute)


def fragmentation_attributes(count: int = PADDING_ATTRIBUTE_COUNT) -> List[str]:
    """Oversized Vendor-Specific attributes; six of them force UDP fragmentation."""
    attribute = RadiusAttr_Vendor_Specific(
        vendor_id=PADDING_VENDOR_ID,
        vendor_type=PADDING_VENDOR_TYPE,
        value=b"a" * PADDING_VALUE_LENGTH,
    )
    return [_eapol_test_argument(attribute)] * count


def build_request_attributes(operator_name: str, include_operator_name: bool = True,
                             fragment: bool = True) -> List[str]:
    attributes = []
    if include_operator_name:
        attributes.append(operator_name_attribute(operator_name))
    if fragment:
        attributes.extend(fragmentation_attributes())
    return attributes
