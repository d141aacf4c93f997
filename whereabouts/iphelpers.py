"""Arithmetic and range helpers for IPv4 and IPv6 addresses and subnets."""

from __future__ import annotations

from ipaddress import (
    IPv4Address,
    IPv4Network,
    IPv6Address,
    IPv6Network,
    ip_address,
    ip_interface,
    ip_network,
)
from typing import Union

Address = Union[IPv4Address, IPv6Address]
Network = Union[IPv4Network, IPv6Network]

_V4_MAPPED_PREFIX = 0xFFFF << 32
_UINT64_MASK = (1 << 64) - 1
_UINT32_MAX = 0xFFFFFFFF


def _ip(value) -> Address:
    """Coerce to an address; IPv4-mapped IPv6 addresses become IPv4."""
    if not isinstance(value, (IPv4Address, IPv6Address)):
        value = ip_address(value)
    if isinstance(value, IPv6Address) and value.ipv4_mapped is not None:
        return value.ipv4_mapped
    return value


def _net(value) -> Network:
    if isinstance(value, (IPv4Network, IPv6Network)):
        return value
    return ip_network(value, strict=False)


def _to16(value) -> int:
    """The address as a 128-bit integer, IPv4 in its mapped form."""
    addr = _ip(value)
    if addr.version == 4:
        return _V4_MAPPED_PREFIX | int(addr)
    return int(addr)


def _from16(number: int) -> Address:
    if number >> 32 == 0xFFFF:
        return IPv4Address(number & _UINT32_MAX)
    return IPv6Address(number)


def compare_ips(ip_x, ip_y) -> int:
    """Return -1, 0 or 1 as ``ip_x`` is smaller than, equal to or larger than ``ip_y``."""
    x, y = _to16(ip_x), _to16(ip_y)
    return (x > y) - (x < y)


def divide_range_by_size(input_network: str, slice_size: str) -> list[str]:
    """Split an IPv4 network such as ``10.0.0.0/8`` into subnets of ``slice_size`` (``/24`` or ``24``)."""
    size_text = slice_size[1:] if slice_size.startswith("/") else slice_size
    try:
        size = int(size_text)
    except ValueError as exc:
        raise ValueError(f"invalid slice size {slice_size!r}") from exc
    if "/" not in input_network:
        raise ValueError(f"error parsing CIDR {input_network}: missing prefix length")
    try:
        iface = ip_interface(input_network)
    except ValueError as exc:
        raise ValueError(f"error parsing CIDR {input_network}: {exc}") from exc
    network = iface.network
    if iface.ip != network.network_address:
        raise ValueError("netCIDR is not a valid network address")
    if network.version != 4:
        raise ValueError(f"cannot divide non-IPv4 range {input_network}")
    if network.prefixlen > size:
        raise ValueError("subnetMaskSize must be greater or equal than netMaskSize")
    if size > network.max_prefixlen:
        raise ValueError(f"slice size /{size} is longer than an IPv4 address")
    return [str(subnet) for subnet in network.subnets(new_prefix=size)]


def is_ip_in_range(ip, start, end) -> bool:
    """Report whether ``ip`` lies between ``start`` and ``end``, both inclusive."""
    if ip is None or start is None or end is None:
        raise ValueError(
            "cannot determine if IP is in range, either of the values is '<nil>', "
            f"in: {ip}, start: {start}, end: {end}"
        )
    return compare_ips(ip, start) >= 0 and compare_ips(ip, end) <= 0


def network_ip(network) -> Address:
    """Return the network address of a subnet."""
    return _net(network).network_address


def subnet_broadcast_ip(network) -> Address:
    """Return the broadcast (last) address of a subnet."""
    return _net(network).broadcast_address


def _too_small(net: Network) -> ValueError:
    return ValueError(
        f"net mask is too short, subnet {net} has no usable IP addresses, it is too small"
    )


def first_usable_ip(network) -> Address:
    """Return the address just after the network address."""
    net = _net(network)
    if not has_usable_ips(net):
        raise _too_small(net)
    return inc_ip(net.network_address)


def last_usable_ip(network) -> Address:
    """Return the address just before the broadcast address."""
    net = _net(network)
    if not has_usable_ips(net):
        raise _too_small(net)
    return dec_ip(net.broadcast_address)


def has_usable_ips(network) -> bool:
    """Report whether a subnet has addresses besides its network and broadcast ones."""
    net = _net(network)
    return net.max_prefixlen - net.prefixlen > 1


def inc_ip(ip) -> Address:
    """Return the next address, wrapping around within the address family."""
    addr = _ip(ip)
    return type(addr)((int(addr) + 1) % (1 << addr.max_prefixlen))


def dec_ip(ip) -> Address:
    """Return the previous address, wrapping around within the address family."""
    addr = _ip(ip)
    return type(addr)((int(addr) - 1) % (1 << addr.max_prefixlen))


def ip_get_offset(ip1, ip2) -> int:
    """Return the absolute distance between two addresses of the same family."""
    a, b = _ip(ip1), _ip(ip2)
    if a.version == 4 and b.version == 6:
        raise ValueError(f"cannot calculate offset between IPv4 ({a}) and IPv6 address ({b})")
    if a.version == 6 and b.version == 4:
        raise ValueError(f"cannot calculate offset between IPv6 ({a}) and IPv4 address ({b})")
    return abs(_to16(a) - _to16(b)) & _UINT64_MASK


def ip_add_offset(ip, offset: int) -> Address | None:
    """Return ``ip`` plus ``offset``, or None for an IPv4 offset of 2**32 - 1 or more."""
    if offset < 0 or offset > _UINT64_MASK:
        raise ValueError(f"offset {offset} is not an unsigned 64-bit integer")
    addr = _ip(ip)
    if addr.version == 4 and offset >= _UINT32_MAX:
        return None
    return _from16((_to16(addr) + offset) % (1 << 128))


def is_ipv4(ip) -> bool:
    """Report whether an address is IPv4."""
    return _ip(ip).version == 4


def get_ip_range(network, range_start=None, range_end=None) -> tuple[Address, Address]:
    """Return the first and last assignable addresses of a subnet.

    ``range_start`` and ``range_end`` narrow the range when they lie within the
    usable addresses; otherwise they are silently ignored. An end that falls
    before a valid start is ignored too.
    """
    first = first_usable_ip(network)
    last = last_usable_ip(network)
    if range_start is not None:
        start = _ip(range_start)
        if is_ip_in_range(start, first, last):
            first = start
    if range_end is not None:
        end = _ip(range_end)
        if is_ip_in_range(end, first, last):
            last = end
    return first, last