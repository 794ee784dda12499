"""Address range parsing for host discovery.

Supports:
- Single addresses: 10.0.0.5
- Full ranges: 10.0.0.1-10.0.0.20
- Final-octet ranges: 10.0.0.1-254

Both endpoints are inclusive. Malformed expressions raise AddressRangeError
before any network activity happens.
"""

import ipaddress

from .exceptions import AddressRangeError


def _parse_address(address: str, expression: str) -> ipaddress.IPv4Address:
    try:
        return ipaddress.IPv4Address(address.strip())
    except ValueError as e:
        raise AddressRangeError(
            f"Invalid address '{address.strip()}' in '{expression}': {e}",
            expression=expression,
        ) from e


def parse_range(expression: str) -> list[str]:
    """Expand an address or range expression into concrete addresses.

    Args:
        expression: "<addr>", "<start>-<end>" or "<start>-<last octet>"

    Returns:
        Ordered list of addresses, both endpoints included

    Raises:
        AddressRangeError: If the expression is malformed or the range is reversed

    Example:
        >>> parse_range("10.0.0.1-3")
        ['10.0.0.1', '10.0.0.2', '10.0.0.3']
        >>> parse_range("10.0.0.5")
        ['10.0.0.5']
    """
    if not expression or not expression.strip():
        raise AddressRangeError("Empty address expression", expression=expression)

    expression = expression.strip()
    pieces = expression.split("-")

    if len(pieces) == 1:
        return [str(_parse_address(pieces[0], expression))]

    if len(pieces) != 2:
        raise AddressRangeError(
            f"Invalid range '{expression}': expected <start>-<end>",
            expression=expression,
        )

    start_text, end_text = (piece.strip() for piece in pieces)
    start = _parse_address(start_text, expression)
    if "." not in end_text:
        # Bare final octet reuses the start's network part
        end_text = start_text.rsplit(".", 1)[0] + "." + end_text
    end = _parse_address(end_text, expression)

    if end < start:
        raise AddressRangeError(
            f"Invalid range '{expression}': end precedes start",
            expression=expression,
        )

    count = int(end) - int(start) + 1
    return [str(start + offset) for offset in range(count)]
