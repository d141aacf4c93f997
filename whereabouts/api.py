"""Custom resource types of the whereabouts.cni.cncf.io API group, version v1alpha1."""

from __future__ import annotations

from dataclasses import dataclass, field
from ipaddress import IPv4Address, IPv4Network, IPv6Address, IPv6Network, ip_interface
from typing import Any, Optional, Union

GROUP_NAME = "whereabouts.cni.cncf.io"
VERSION = "v1alpha1"
API_VERSION = f"{GROUP_NAME}/{VERSION}"

KNOWN_KINDS = (
    "IPPool",
    "IPPoolList",
    "OverlappingRangeIPReservation",
    "OverlappingRangeIPReservationList",
    "NodeSlicePool",
    "NodeSlicePoolList",
)

Address = Union[IPv4Address, IPv6Address]
Network = Union[IPv4Network, IPv6Network]


def kind(name: str) -> str:
    """Return the group-qualified kind, written ``Kind.group``."""
    return f"{name}.{GROUP_NAME}"


def resource(name: str) -> str:
    """Return the group-qualified resource, written ``resource.group``."""
    return f"{name}.{GROUP_NAME}"


def _parse_cidr(text: str) -> tuple[Address, Network]:
    """Split CIDR notation into the address as written and its network."""
    if "/" not in text:
        raise ValueError(f"invalid CIDR address: {text}")
    try:
        iface = ip_interface(text)
    except ValueError as exc:
        raise ValueError(f"invalid CIDR address: {text}") from exc
    return iface.ip, iface.network


@dataclass
class ObjectMeta:
    """The subset of object metadata these resources carry."""

    name: str = ""
    namespace: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    resource_version: str = ""


def _meta_from_dict(data: Optional[dict[str, Any]]) -> ObjectMeta:
    data = data or {}
    return ObjectMeta(
        name=data.get("name", ""),
        namespace=data.get("namespace", ""),
        labels=dict(data.get("labels") or {}),
        annotations=dict(data.get("annotations") or {}),
        resource_version=data.get("resourceVersion", ""),
    )


def _meta_to_dict(meta: ObjectMeta) -> dict[str, Any]:
    pairs = {
        "name": meta.name,
        "namespace": meta.namespace,
        "labels": dict(meta.labels),
        "annotations": dict(meta.annotations),
        "resourceVersion": meta.resource_version,
    }
    return {key: value for key, value in pairs.items() if value}


def _check_kind(data: dict[str, Any], expected: str) -> None:
    found = data.get("kind")
    if found is not None and found != expected:
        raise ValueError(f"expected kind {expected}, got {found}")


@dataclass
class IPAllocation:
    """The pod and container that own one address of a pool."""

    container_id: str = ""
    pod_ref: str = ""
    if_name: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IPAllocation":
        return cls(
            container_id=data.get("id", ""),
            pod_ref=data.get("podref", ""),
            if_name=data.get("ifname", ""),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {"id": self.container_id, "podref": self.pod_ref}
        if self.if_name:
            out["ifname"] = self.if_name
        return out


@dataclass
class IPPoolSpec:
    """A CIDR range and its allocations, keyed by the offset of each address in the range."""

    range: str = ""
    allocations: dict[str, IPAllocation] = field(default_factory=dict)


@dataclass
class IPPool:
    """The allocations of one address range."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: IPPoolSpec = field(default_factory=IPPoolSpec)

    def parse_cidr(self) -> tuple[Address, Network]:
        """Return the address and network of the pool's range."""
        return _parse_cidr(self.spec.range)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "IPPool":
        _check_kind(data, "IPPool")
        spec = data.get("spec") or {}
        allocations = {
            key: IPAllocation.from_dict(value)
            for key, value in (spec.get("allocations") or {}).items()
        }
        return cls(
            metadata=_meta_from_dict(data.get("metadata")),
            spec=IPPoolSpec(range=spec.get("range", ""), allocations=allocations),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": API_VERSION,
            "kind": "IPPool",
            "metadata": _meta_to_dict(self.metadata),
            "spec": {
                "range": self.spec.range,
                "allocations": {
                    key: value.to_dict() for key, value in self.spec.allocations.items()
                },
            },
        }


@dataclass
class NodeSliceAllocation:
    """A slice of a range and the node it is given to; no node means the slice is free."""

    node_name: str = ""
    slice_range: str = ""


@dataclass
class NodeSlicePoolSpec:
    """The whole range and the size of the slices handed to nodes."""

    range: str = ""
    slice_size: str = ""


@dataclass
class NodeSlicePoolStatus:
    """The slices assigned to nodes."""

    allocations: list[NodeSliceAllocation] = field(default_factory=list)


@dataclass
class NodeSlicePool:
    """A range divided into per-node slices."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: NodeSlicePoolSpec = field(default_factory=NodeSlicePoolSpec)
    status: NodeSlicePoolStatus = field(default_factory=NodeSlicePoolStatus)

    def parse_cidr(self) -> tuple[Address, Network]:
        """Return the address and network of the pool's range."""
        return _parse_cidr(self.spec.range)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "NodeSlicePool":
        _check_kind(data, "NodeSlicePool")
        spec = data.get("spec") or {}
        status = data.get("status") or {}
        return cls(
            metadata=_meta_from_dict(data.get("metadata")),
            spec=NodeSlicePoolSpec(
                range=spec.get("range", ""), slice_size=spec.get("sliceSize", "")
            ),
            status=NodeSlicePoolStatus(
                allocations=[
                    NodeSliceAllocation(
                        node_name=item.get("nodeName", ""),
                        slice_range=item.get("sliceRange", ""),
                    )
                    for item in status.get("allocations") or []
                ]
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "apiVersion": API_VERSION,
            "kind": "NodeSlicePool",
            "metadata": _meta_to_dict(self.metadata),
            "spec": {"range": self.spec.range, "sliceSize": self.spec.slice_size},
            "status": {
                "allocations": [
                    {"nodeName": item.node_name, "sliceRange": item.slice_range}
                    for item in self.status.allocations
                ]
            },
        }


@dataclass
class OverlappingRangeIPReservationSpec:
    """The owner of an address reserved across overlapping ranges."""

    container_id: str = ""
    pod_ref: str = ""
    if_name: str = ""


@dataclass
class OverlappingRangeIPReservation:
    """A cluster-wide reservation of one address."""

    metadata: ObjectMeta = field(default_factory=ObjectMeta)
    spec: OverlappingRangeIPReservationSpec = field(
        default_factory=OverlappingRangeIPReservationSpec
    )

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "OverlappingRangeIPReservation":
        _check_kind(data, "OverlappingRangeIPReservation")
        spec = data.get("spec") or {}
        return cls(
            metadata=_meta_from_dict(data.get("metadata")),
            spec=OverlappingRangeIPReservationSpec(
                container_id=spec.get("containerid", ""),
                pod_ref=spec.get("podref", ""),
                if_name=spec.get("ifname", ""),
            ),
        )

    def to_dict(self) -> dict[str, Any]:
        spec: dict[str, Any] = {}
        if self.spec.container_id:
            spec["containerid"] = self.spec.container_id
        spec["podref"] = self.spec.pod_ref
        if self.spec.if_name:
            spec["ifname"] = self.spec.if_name
        return {
            "apiVersion": API_VERSION,
            "kind": "OverlappingRangeIPReservation",
            "metadata": _meta_to_dict(self.metadata),
            "spec": spec,
        }