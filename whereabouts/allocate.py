"""Picking free addresses from a range and tracking who holds them."""

from __future__ import annotations

from dataclasses import dataclass, field
from ipaddress import (
    IPv4Address,
    IPv4Interface,
    IPv4Network,
    IPv6Address,
    IPv6Interface,
    IPv6Network,
    ip_address,
    ip_interface,
    ip_network,
)
from typing import Iterable, Optional, Sequence, Union

from whereabouts import iphelpers, log

Address = Union[IPv4Address, IPv6Address]
Network = Union[IPv4Network, IPv6Network]
Interface = Union[IPv4Interface, IPv6Interface]


def _address(value) -> Address:
    """Coerce to an address, turning IPv4-mapped IPv6 addresses into IPv4."""
    if not isinstance(value, (IPv4Address, IPv6Address)):
        value = ip_address(value)
    if isinstance(value, IPv6Address) and value.ipv4_mapped is not None:
        return value.ipv4_mapped
    return value


def _network(value) -> Network:
    if isinstance(value, (IPv4Network, IPv6Network)):
        return value
    return ip_network(value, strict=False)


def _optional_address(value) -> Optional[Address]:
    return None if value is None else _address(value)


@dataclass
class IPReservation:
    """An address held by a container interface of a pod."""

    ip: Address
    container_id: str = ""
    pod_ref: str = ""
    if_name: str = ""

    def __post_init__(self) -> None:
        self.ip = _address(self.ip)


@dataclass
class RangeConfiguration:
    """A CIDR range, optionally narrowed by a start and end, with ranges to omit."""

    range: str
    range_start: Optional[Address] = None
    range_end: Optional[Address] = None
    omit_ranges: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.range_start = _optional_address(self.range_start)
        self.range_end = _optional_address(self.range_end)


class AssignmentError(Exception):
    """Raised when no free address is left in a range."""

    def __init__(self, first_ip, last_ip, network, exclude_ranges: Sequence[str]):
        self.first_ip = first_ip
        self.last_ip = last_ip
        self.network = network
        self.exclude_ranges = list(exclude_ranges or [])
        super().__init__(
            "Could not allocate IP in range: ip: %s / - %s / range: %s / excludeRanges: [%s]"
            % (first_ip, last_ip, network, " ".join(self.exclude_ranges))
        )


def assign_ip(
    range_config: RangeConfiguration,
    reserve_list: Optional[list[IPReservation]],
    container_id: str,
    pod_ref: str,
    if_name: str,
) -> tuple[Interface, list[IPReservation]]:
    """Return the address for a pod interface and the updated reserve list.

    A pod interface that already holds an address keeps it; its container id
    is updated if it changed.
    """
    network = _network(range_config.range)
    reservations = list(reserve_list or [])

    for reservation in reservations:
        if reservation.pod_ref == pod_ref and reservation.if_name == if_name:
            log.debug(
                "IP already allocated for podRef: %r - ifName:%r - IP: %s",
                pod_ref, if_name, reservation.ip,
            )
            if reservation.container_id != container_id:
                log.debug("updating container ID: %r", container_id)
                reservation.container_id = container_id
            return ip_interface(f"{reservation.ip}/{network.prefixlen}"), reservations

    new_ip, updated = iterate_for_assignment(
        network,
        range_config.range_start,
        range_config.range_end,
        reservations,
        range_config.omit_ranges,
        container_id,
        pod_ref,
        if_name,
    )
    return ip_interface(f"{new_ip}/{network.prefixlen}"), updated


def deallocate_ip(
    reserve_list: list[IPReservation], container_id: str, if_name: str
) -> tuple[list[IPReservation], Optional[Address]]:
    """Drop the reservation of a container interface.

    Returns the updated list and the released address, or the list unchanged
    and None when nothing matched. The last reservation takes the place of the
    removed one.
    """
    reservations = list(reserve_list)
    index = next(
        (
            idx
            for idx, reservation in enumerate(reservations)
            if reservation.container_id == container_id and reservation.if_name == if_name
        ),
        None,
    )
    if index is None:
        return reservations, None

    released = reservations[index].ip
    log.debug("Deallocating given previously used IP: %s", released)
    reservations[index] = reservations[-1]
    reservations.pop()
    return reservations, released


def _parse_excluded_range(text: str) -> Network:
    """Parse a CIDR, or a single address as a /32 or /128 network."""
    if "/" in text:
        return ip_network(text, strict=False)
    return ip_network(ip_address(text))


def _skip_excluded(ip: Address, excluded: Iterable[Network]) -> Optional[Address]:
    """Return the broadcast address of the first excluded subnet holding ``ip``."""
    for subnet in excluded:
        if ip in subnet:
            broadcast = subnet.broadcast_address
            log.debug(
                "excluding %s and moving to the end of the excluded range: %s",
                subnet, broadcast,
            )
            return broadcast
    return None


def iterate_for_assignment(
    network,
    range_start,
    range_end,
    reserve_list: Optional[list[IPReservation]],
    exclude_ranges: Optional[Sequence[str]],
    container_id: str,
    pod_ref: str,
    if_name: str,
) -> tuple[Address, list[IPReservation]]:
    """Reserve the lowest free address of ``network`` and return it with the new list.

    Network and broadcast addresses are never handed out. ``range_start`` and
    ``range_end`` narrow the range when they lie within the usable addresses.
    Every address of each excluded subnet is skipped.
    """
    net = _network(network)
    reservations = list(reserve_list or [])
    try:
        first_ip, last_ip = iphelpers.get_ip_range(
            net, _optional_address(range_start), _optional_address(range_end)
        )
    except ValueError as exc:
        log.error("GetIPRange request failed with: %s", exc)
        raise
    log.debug(
        "IterateForAssignment input >> range_start: %s | range_end: %s | ipnet: %s "
        "| first IP: %s | last IP: %s",
        range_start, range_end, net, first_ip, last_ip,
    )

    reserved = {reservation.ip for reservation in reservations}

    excluded = []
    for text in exclude_ranges or []:
        try:
            excluded.append(_parse_excluded_range(text))
        except ValueError as exc:
            raise ValueError(f'could not parse exclude range, err: "{exc}"') from exc

    ip = first_ip
    while ip in net and iphelpers.compare_ips(ip, last_ip) <= 0:
        if ip in reserved:
            ip = iphelpers.inc_ip(ip)
            continue
        skip_to = _skip_excluded(ip, excluded)
        if skip_to is not None:
            ip = iphelpers.inc_ip(skip_to)
            continue
        log.debug(
            "Reserving IP: %r - container ID %r - podRef: %r - ifName: %r",
            str(ip), container_id, pod_ref, if_name,
        )
        reservations.append(
            IPReservation(ip=ip, container_id=container_id, pod_ref=pod_ref, if_name=if_name)
        )
        return ip, reservations

    raise AssignmentError(first_ip, last_ip, net, list(exclude_ranges or []))