# Linkpeek
# Copyright (C) 2025 Phoenix Link (Pty) Ltd. All Rights Reserved.
#
# This file is part of Linkpeek.
#
# Linkpeek is dual-licensed:
#
# 1. Open Source: GNU Affero General Public License v3.0 (AGPL-3.0)
#    You may use, modify, and distribute this file under AGPL-3.0.
#    See LICENSE for the full text.
#
# 2. Commercial: Available from Phoenix Link (Pty) Ltd
#    For proprietary use, SaaS deployment, or enterprise licensing.
#    See LICENSE-ENTERPRISE.md or contact info@phoenixlink.co.za
#
# Contributions require a signed CLA. See COPYRIGHT.md and CLA.md.
"""Address classifier -- which IP ranges the fetcher may never contact.

Every address is mapped to exactly one AddressRange. The ranges are a
closed enumeration; DISALLOWED_RANGES lists the members that are
blocked. Public unicast space classifies as AddressRange.UNICAST.

IPv4-mapped IPv6 addresses (::ffff:a.b.c.d) are unwrapped first, so
re-encoding 127.0.0.1 as ::ffff:7f00:1 does not get past the IPv4
checks. Anything that does not parse as an IP literal is forbidden.
"""

from __future__ import annotations

import enum
from ipaddress import IPv4Address, IPv6Address, ip_address, ip_network


class AddressRange(enum.Enum):
    """Named address-range categories (IPv4 and IPv6 share names)."""

    UNICAST = "unicast"
    UNSPECIFIED = "unspecified"
    BROADCAST = "broadcast"
    MULTICAST = "multicast"
    LINK_LOCAL = "linkLocal"
    LOOPBACK = "loopback"
    CARRIER_GRADE_NAT = "carrierGradeNat"
    PRIVATE = "private"
    RESERVED = "reserved"
    AS112 = "as112"
    AMT = "amt"
    UNIQUE_LOCAL = "uniqueLocal"
    IPV4_MAPPED = "ipv4Mapped"
    IPV4_TRANSLATED = "rfc6145"
    NAT64 = "rfc6052"
    SIX_TO_FOUR = "6to4"
    TEREDO = "teredo"
    BENCHMARKING = "benchmarking"
    DEPRECATED = "deprecated"
    ORCHID2 = "orchid2"
    DRONE_REMOTE_ID = "droneRemoteIdProtocolEntityTags"
    DISCARD = "discard"


DISALLOWED_RANGES: frozenset[AddressRange] = frozenset(
    {
        # IPv4
        AddressRange.UNSPECIFIED,
        AddressRange.BROADCAST,
        AddressRange.MULTICAST,
        AddressRange.LINK_LOCAL,
        AddressRange.LOOPBACK,
        AddressRange.PRIVATE,
        AddressRange.RESERVED,
        AddressRange.CARRIER_GRADE_NAT,
        # IPv6
        AddressRange.UNIQUE_LOCAL,
        AddressRange.SIX_TO_FOUR,  # RFC 3056
        AddressRange.TEREDO,  # RFC 4380
        AddressRange.BENCHMARKING,  # RFC 5180
        AddressRange.DEPRECATED,  # RFC 3879
        AddressRange.DISCARD,  # RFC 6666
        # Translation prefixes embed an IPv4 target we would otherwise miss
        AddressRange.NAT64,  # RFC 6052
        AddressRange.IPV4_TRANSLATED,  # RFC 6145
    }
)


def _nets(*cidrs: str) -> tuple:
    return tuple(ip_network(c) for c in cidrs)


# First match wins, so order only matters where prefixes overlap.
_IPV4_RANGES: tuple[tuple[AddressRange, tuple], ...] = (
    (AddressRange.UNSPECIFIED, _nets("0.0.0.0/8")),
    (AddressRange.BROADCAST, _nets("255.255.255.255/32")),
    (AddressRange.MULTICAST, _nets("224.0.0.0/4")),
    (AddressRange.LINK_LOCAL, _nets("169.254.0.0/16")),
    (AddressRange.LOOPBACK, _nets("127.0.0.0/8")),
    (AddressRange.CARRIER_GRADE_NAT, _nets("100.64.0.0/10")),
    (AddressRange.PRIVATE, _nets("10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16")),
    (
        AddressRange.RESERVED,
        _nets(
            "192.0.0.0/24",
            "192.0.2.0/24",
            "192.88.99.0/24",
            "198.18.0.0/15",
            "198.51.100.0/24",
            "203.0.113.0/24",
            "240.0.0.0/4",
        ),
    ),
    (AddressRange.AS112, _nets("192.175.48.0/24", "192.31.196.0/24")),
    (AddressRange.AMT, _nets("192.52.193.0/24")),
)

_IPV6_RANGES: tuple[tuple[AddressRange, tuple], ...] = (
    (AddressRange.UNSPECIFIED, _nets("::/128")),
    (AddressRange.LINK_LOCAL, _nets("fe80::/10")),
    (AddressRange.MULTICAST, _nets("ff00::/8")),
    (AddressRange.LOOPBACK, _nets("::1/128")),
    (AddressRange.UNIQUE_LOCAL, _nets("fc00::/7")),
    (AddressRange.IPV4_MAPPED, _nets("::ffff:0:0/96")),
    (AddressRange.DISCARD, _nets("100::/64")),
    (AddressRange.IPV4_TRANSLATED, _nets("::ffff:0:0:0/96")),
    (AddressRange.NAT64, _nets("64:ff9b::/96")),
    (AddressRange.SIX_TO_FOUR, _nets("2002::/16")),
    (AddressRange.TEREDO, _nets("2001::/32")),
    (AddressRange.BENCHMARKING, _nets("2001:2::/48")),
    (AddressRange.AMT, _nets("2001:3::/32")),
    (AddressRange.AS112, _nets("2001:4:112::/48", "2620:4f:8000::/48")),
    (AddressRange.DEPRECATED, _nets("2001:10::/28")),
    (AddressRange.ORCHID2, _nets("2001:20::/28")),
    (AddressRange.DRONE_REMOTE_ID, _nets("2001:30::/28")),
    (AddressRange.RESERVED, _nets("2001::/23", "2001:db8::/32")),
)


def _match(addr: IPv4Address | IPv6Address) -> AddressRange:
    table = _IPV4_RANGES if isinstance(addr, IPv4Address) else _IPV6_RANGES
    for category, networks in table:
        if any(addr in net for net in networks):
            return category
    return AddressRange.UNICAST


def parse_address(value: str) -> IPv4Address | IPv6Address | None:
    """Parse an IP literal, returning None when it is not one.

    Accepts the bracketed IPv6 form used in URLs and drops any zone id
    (fe80::1%eth0) since it does not change the address range.
    """
    text = value.strip()
    if text.startswith("[") and text.endswith("]"):
        text = text[1:-1]
    text = text.split("%", 1)[0]
    try:
        return ip_address(text)
    except ValueError:
        return None


def is_ip_literal(value: str) -> bool:
    return parse_address(value) is not None


def classify(value: str) -> AddressRange | None:
    """Return the range category of an IP literal, or None if unparsable."""
    addr = parse_address(value)
    if addr is None:
        return None
    if isinstance(addr, IPv6Address) and addr.ipv4_mapped is not None:
        return _match(addr.ipv4_mapped)
    return _match(addr)


def is_forbidden(value: str) -> bool:
    """True when the address must not be contacted (fails closed)."""
    category = classify(value)
    if category is None:
        return True
    return category in DISALLOWED_RANGES
