"""Loading and validating the IPAM section of a network configuration."""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, fields, is_dataclass
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
from typing import Any, Optional, Union

from whereabouts import log
from whereabouts.allocate import RangeConfiguration

Address = Union[IPv4Address, IPv6Address]
Network = Union[IPv4Network, IPv6Network]
Interface = Union[IPv4Interface, IPv6Interface]

DEFAULT_LEADER_LEASE_DURATION = 1500
DEFAULT_LEADER_RENEW_DEADLINE = 1000
DEFAULT_LEADER_RETRY_PERIOD = 500

RELEVANT_IPAM_TYPE = "whereabouts"

DEFAULT_CONFIG_PATHS = (
    "/etc/kubernetes/cni/net.d/whereabouts.d/whereabouts.conf",
    "/etc/cni/net.d/whereabouts.d/whereabouts.conf",
    "/host/etc/cni/net.d/whereabouts.d/whereabouts.conf",
)

_KNOWN_ENV_ARGS = frozenset(
    {
        "IgnoreUnknown",
        "IP",
        "GATEWAY",
        "K8S_POD_NAME",
        "K8S_POD_NAMESPACE",
        "K8S_POD_INFRA_CONTAINER_ID",
        "K8S_POD_UID",
    }
)


class ConfigError(ValueError):
    """Raised when a configuration cannot be loaded or is invalid."""


class InvalidPluginError(ConfigError):
    """Raised when the IPAM section belongs to another plugin."""

    def __init__(self, ipam_type: str):
        self.ipam_type = ipam_type
        super().__init__(
            "only interested in networks whose IPAM type is 'whereabouts'. "
            f"This one was: {ipam_type}"
        )


class ConfigFileNotFoundError(ConfigError):
    """Raised when no flat configuration file exists in any searched location."""

    def __init__(self) -> None:
        super().__init__("config file not found")


@dataclass
class Address:
    """A statically configured address with its optional gateway."""

    address_str: str = ""
    address: Optional[Interface] = None
    gateway: Optional[Address] = None
    version: str = ""


@dataclass
class KubernetesConfig:
    """Where to find the credentials of the storage back end."""

    kubeconfig_path: str = ""


@dataclass
class IPAMConfig:
    """The IPAM section of a network configuration."""

    name: str = ""
    type: str = ""
    pod_name: str = ""
    pod_namespace: str = ""
    network_name: str = ""
    datastore: str = ""
    range: str = ""
    range_start: Optional[Address] = None
    range_end: Optional[Address] = None
    omit_ranges: list[str] = field(default_factory=list)
    ip_ranges: list[RangeConfiguration] = field(default_factory=list)
    gateway_str: str = ""
    gateway: Optional[Address] = None
    addresses: list[Address] = field(default_factory=list)
    kubernetes: KubernetesConfig = field(default_factory=KubernetesConfig)
    configuration_path: str = ""
    log_file: str = ""
    log_level: str = ""
    overlapping_ranges: bool = False
    reconciler_cron_expression: str = ""
    leader_lease_duration: int = 0
    leader_renew_deadline: int = 0
    leader_retry_period: int = 0

    def pod_ref(self) -> str:
        """Return the pod reference, written ``namespace/name``."""
        return f"{self.pod_namespace}/{self.pod_name}"


# --- lenient address parsing -------------------------------------------------


def _parse_ip_sloppy(text: str) -> Optional[Address]:
    """Parse an address, allowing leading zeros in IPv4 octets; None if invalid."""
    if not isinstance(text, str) or not text or "%" in text:
        return None
    if ":" in text:
        try:
            addr = ip_address(text)
        except ValueError:
            return None
        if isinstance(addr, IPv6Address) and addr.ipv4_mapped is not None:
            return addr.ipv4_mapped
        return addr
    parts = text.split(".")
    if len(parts) != 4:
        return None
    if not all(part.isascii() and part.isdigit() for part in parts):
        return None
    octets = [int(part) for part in parts]
    if any(octet > 255 for octet in octets):
        return None
    return IPv4Address(".".join(str(octet) for octet in octets))


def _parse_cidr_sloppy(text: str) -> tuple[Address, Network]:
    """Parse CIDR notation leniently; return the address as written and its network."""
    if not isinstance(text, str) or "/" not in text:
        raise ValueError(f"invalid CIDR address: {text}")
    addr_text, _, prefix_text = text.partition("/")
    addr = _parse_ip_sloppy(addr_text)
    if addr is None or not (prefix_text.isascii() and prefix_text.isdigit()):
        raise ValueError(f"invalid CIDR address: {text}")
    prefix = int(prefix_text)
    if prefix > addr.max_prefixlen:
        raise ValueError(f"invalid CIDR address: {text}")
    return addr, ip_network((addr, prefix), strict=False)


# --- reading the IPAM section ------------------------------------------------


def _get(data: dict[str, Any], key: str, kind: type, default: Any) -> Any:
    value = data.get(key)
    if value is None:
        return default
    if kind is int and isinstance(value, bool):
        raise ValueError(f"cannot unmarshal {value!r} into field {key}")
    if not isinstance(value, kind):
        raise ValueError(f"cannot unmarshal {value!r} into field {key}")
    return value


def _get_ip(data: dict[str, Any], key: str) -> Optional[Address]:
    text = _get(data, key, str, "")
    if not text:
        return None
    addr = _parse_ip_sloppy(text)
    if addr is None:
        raise ValueError(f"invalid IP address in field {key}: {text}")
    return addr


def _get_str_list(data: dict[str, Any], key: str) -> list[str]:
    items = _get(data, key, list, [])
    if not all(isinstance(item, str) for item in items):
        raise ValueError(f"field {key} must be a list of strings")
    return list(items)


def _range_from_dict(data: Any) -> RangeConfiguration:
    if not isinstance(data, dict):
        raise ValueError(f"cannot unmarshal {data!r} into a range")
    return RangeConfiguration(
        range=_get(data, "range", str, ""),
        range_start=_get_ip(data, "range_start"),
        range_end=_get_ip(data, "range_end"),
        omit_ranges=_get_str_list(data, "exclude"),
    )


def _address_from_dict(data: Any) -> Address:
    if not isinstance(data, dict):
        raise ValueError(f"cannot unmarshal {data!r} into an address")
    return Address(
        address_str=_get(data, "address", str, ""),
        gateway=_get_ip(data, "gateway"),
    )


def _ipam_from_dict(data: Any) -> IPAMConfig:
    if not isinstance(data, dict):
        raise ValueError(f"cannot unmarshal {data!r} into the IPAM configuration")
    kubernetes = _get(data, "kubernetes", dict, {})
    return IPAMConfig(
        type=_get(data, "type", str, ""),
        network_name=_get(data, "network_name", str, ""),
        datastore=_get(data, "datastore", str, ""),
        range=_get(data, "range", str, ""),
        range_start=_get_ip(data, "range_start"),
        range_end=_get_ip(data, "range_end"),
        omit_ranges=_get_str_list(data, "exclude"),
        ip_ranges=[_range_from_dict(item) for item in _get(data, "ipRanges", list, [])],
        gateway_str=_get(data, "gateway", str, ""),
        addresses=[_address_from_dict(item) for item in _get(data, "addresses", list, [])],
        kubernetes=KubernetesConfig(
            kubeconfig_path=_get(kubernetes, "kubeconfig", str, "")
        ),
        configuration_path=_get(data, "configuration_path", str, ""),
        log_file=_get(data, "log_file", str, ""),
        log_level=_get(data, "log_level", str, ""),
        overlapping_ranges=_get(data, "enable_overlapping_ranges", bool, False),
        reconciler_cron_expression=_get(data, "reconciler_cron_expression", str, ""),
        leader_lease_duration=_get(data, "leader_lease_duration", int, 0),
        leader_renew_deadline=_get(data, "leader_renew_deadline", int, 0),
        leader_retry_period=_get(data, "leader_retry_period", int, 0),
    )


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, int, list, dict)):
        return not value
    return False


def _merge(dst: Any, src: Any) -> None:
    """Fill the empty fields of ``dst`` with the values of ``src``, recursively."""
    for item in fields(dst):
        own = getattr(dst, item.name)
        other = getattr(src, item.name)
        if is_dataclass(own) and is_dataclass(other):
            _merge(own, other)
        elif _is_empty(own) and not _is_empty(other):
            setattr(dst, item.name, other)


def _to_text(data: Union[bytes, str]) -> str:
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


# --- environment arguments ---------------------------------------------------


def _load_env_args(text: str) -> dict[str, str]:
    if not text:
        return {}
    pairs = []
    for pair in text.split(";"):
        parts = pair.split("=")
        if len(parts) != 2:
            raise ValueError(f'ARGS: invalid pair "{pair}"')
        pairs.append((parts[0], parts[1]))
    ignore_unknown = any(
        key == "IgnoreUnknown" and value.lower() in ("1", "true") for key, value in pairs
    )
    args: dict[str, str] = {}
    for key, value in pairs:
        if key not in _KNOWN_ENV_ARGS:
            if ignore_unknown:
                continue
            raise ValueError(f'ARGS: can not set unknown field "{key}"')
        args[key] = value
    return args


def _handle_env_args(ipam: IPAMConfig, args: dict[str, str]) -> tuple[int, int]:
    """Add addresses and gateways from the arguments; return the new (v4, v6) counts."""
    added_v4 = added_v6 = 0
    ip_arg = args.get("IP", "")
    if ip_arg:
        for item in ip_arg.split(","):
            text = item.strip()
            try:
                ip, subnet = _parse_cidr_sloppy(text)
            except ValueError as exc:
                raise ConfigError(f"invalid CIDR {text}: {exc}") from exc
            version = "4" if ip.version == 4 else "6"
            if version == "4":
                added_v4 += 1
            else:
                added_v6 += 1
            ipam.addresses.append(
                Address(
                    address_str=text,
                    address=ip_interface(f"{ip}/{subnet.prefixlen}"),
                    version=version,
                )
            )

    gateway_arg = args.get("GATEWAY", "")
    if gateway_arg:
        for item in gateway_arg.split(","):
            gateway = _parse_ip_sloppy(item.strip())
            if gateway is None:
                raise ConfigError(f"invalid gateway address: {item}")
            for address in ipam.addresses:
                if address.address is not None and gateway in address.address.network:
                    address.gateway = gateway
    return added_v4, added_v6


def _configure_static(ipam: IPAMConfig, cni_version: str, args: dict[str, str]) -> None:
    num_v4 = num_v6 = 0
    for index, address in enumerate(ipam.addresses):
        try:
            ip, subnet = _parse_cidr_sloppy(address.address_str)
        except ValueError as exc:
            raise ConfigError(
                f"invalid CIDR in addresses {address.address_str}: {exc}"
            ) from exc
        if ip.version not in (4, 6):
            raise ConfigError(f"invalid address {index}: IP {ip} not v4 nor v6")
        address.address = ip_interface(f"{ip}/{subnet.prefixlen}")
        if ip.version == 4:
            address.version = "4"
            num_v4 += 1
        else:
            address.version = "6"
            num_v6 += 1

    added_v4, added_v6 = _handle_env_args(ipam, args)
    num_v4 += added_v4
    num_v6 += added_v6

    if (num_v4 > 1 or num_v6 > 1) and cni_version in ("", "0.1.0", "0.2.0"):
        raise ConfigError(
            f"CNI version {cni_version} does not support more than 1 address per family"
        )


# --- flat file ---------------------------------------------------------------


def _path_exists(path: str) -> bool:
    try:
        os.stat(path)
    except FileNotFoundError:
        return False
    except OSError:
        return True
    return True


def get_flat_ipam(
    is_control_loop: bool, ipam: Optional[IPAMConfig], *args: str
) -> tuple[IPAMConfig, str]:
    """Read the first flat configuration file found; return it and its path.

    The IPAM's own ``configuration_path`` is searched first unless running in
    the control loop, then the standard locations, then ``args``.
    """
    candidates = [*DEFAULT_CONFIG_PATHS, *args]
    if not is_control_loop and ipam is not None and ipam.configuration_path:
        candidates.insert(0, ipam.configuration_path)

    for path in candidates:
        if not _path_exists(path):
            continue
        try:
            with open(path, "rb") as handle:
                raw = handle.read()
        except OSError as exc:
            raise ConfigError(
                f"error opening flat configuration file @ {path} with: {exc}"
            ) from exc
        text = _to_text(raw)
        try:
            flat = _ipam_from_dict(json.loads(text))
        except ValueError as exc:
            raise ConfigError(
                f"LoadIPAMConfig Flatfile ({path}) - JSON Parsing Error: {exc} / bytes: {text}"
            ) from exc
        return flat, path

    raise ConfigFileNotFoundError()


# --- loading -----------------------------------------------------------------


def _normalize_ranges(ipam: IPAMConfig) -> None:
    if ipam.range:
        ipam.ip_ranges.insert(
            0,
            RangeConfiguration(
                range=ipam.range,
                range_start=ipam.range_start,
                range_end=ipam.range_end,
                omit_ranges=list(ipam.omit_ranges),
            ),
        )

    for config in ipam.ip_ranges:
        parts = config.range.split("-", 1)
        if len(parts) == 2:
            first = _parse_ip_sloppy(parts[0])
            if first is None:
                raise ConfigError(f"invalid range start IP: {parts[0]}")
            try:
                last, network = _parse_cidr_sloppy(parts[1])
            except ValueError as exc:
                raise ConfigError(
                    "invalid CIDR (do you have the 'range' parameter set for Whereabouts?) "
                    f"'{parts[1]}': {exc}"
                ) from exc
            if first.version != network.version or first not in network:
                raise ConfigError(f"invalid range start for CIDR {network}: {first}")
            config.range = str(network)
            config.range_start = first
            config.range_end = last
        else:
            try:
                _, network = _parse_cidr_sloppy(config.range)
            except ValueError as exc:
                log.debug(
                    "invalid cidr error on range %s, within ranges %s",
                    config.range, ipam.ip_ranges,
                )
                raise ConfigError(f"invalid CIDR {config.range}: {exc}") from exc
            config.range = str(network)
            if config.range_start is None:
                config.range_start = network.network_address

    ipam.omit_ranges = []
    ipam.range = ""
    ipam.range_start = None
    ipam.range_end = None


def load_ipam_config(
    data: Union[bytes, str], env_args: str, *args: str
) -> tuple[IPAMConfig, str]:
    """Build the IPAM configuration from a network configuration.

    Empty fields are filled from the flat configuration file. Returns the
    configuration and the CNI version.
    """
    text = _to_text(data)
    try:
        document = json.loads(text)
        if not isinstance(document, dict):
            raise ValueError(f"cannot unmarshal {document!r} into a network configuration")
        cni_version = _get(document, "cniVersion", str, "")
        name = _get(document, "name", str, "")
        raw_ipam = document.get("ipam")
        ipam = None if raw_ipam is None else _ipam_from_dict(raw_ipam)
    except ValueError as exc:
        raise ConfigError(
            f"LoadIPAMConfig - JSON Parsing Error: {exc} / bytes: {text}"
        ) from exc

    if ipam is None:
        raise ConfigError("IPAM config missing 'ipam' key")
    if ipam.type != RELEVANT_IPAM_TYPE:
        raise InvalidPluginError(ipam.type)

    try:
        env = _load_env_args(env_args)
    except ValueError as exc:
        raise ConfigError(f"LoadArgs - CNI Args Parsing Error: {exc}") from exc
    ipam.pod_name = env.get("K8S_POD_NAME", "")
    ipam.pod_namespace = env.get("K8S_POD_NAMESPACE", "")

    flat, found = get_flat_ipam(False, ipam, *args)

    overlapping = ipam.overlapping_ranges
    _merge(ipam, flat)
    ipam.overlapping_ranges = overlapping

    if ipam.log_file:
        log.set_log_file(ipam.log_file)
    if ipam.log_level:
        log.set_log_level(ipam.log_level)
    if found:
        log.debug("Used defaults from parsed flat file config @ %s", found)

    _normalize_ranges(ipam)

    if not ipam.kubernetes.kubeconfig_path:
        raise ConfigError(
            "you have not configured the storage engine (looks like you're using an "
            "invalid `kubernetes.kubeconfig` parameter in your config)"
        )

    if ipam.gateway_str:
        gateway = _parse_ip_sloppy(ipam.gateway_str)
        if gateway is None:
            raise ConfigError(f"couldn't parse gateway IP: {ipam.gateway_str}")
        ipam.gateway = gateway

    _configure_static(ipam, cni_version, env)

    if ipam.leader_lease_duration == 0:
        ipam.leader_lease_duration = DEFAULT_LEADER_LEASE_DURATION
    if ipam.leader_renew_deadline == 0:
        ipam.leader_renew_deadline = DEFAULT_LEADER_RENEW_DEADLINE
    if ipam.leader_retry_period == 0:
        ipam.leader_retry_period = DEFAULT_LEADER_RETRY_PERIOD

    ipam.name = name
    return ipam, cni_version


def load_ipam_configuration(data: Union[bytes, str], env_args: str, *args: str) -> IPAMConfig:
    """Load the IPAM configuration from a single plugin or a plugin list.

    For a list, the first plugin is used, with the list's CNI version.
    """
    text = _to_text(data)
    try:
        document = json.loads(text)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    if not isinstance(document, dict):
        raise ConfigError(f"cannot unmarshal {document!r} into a network configuration")

    if not document.get("type"):
        plugins = document.get("plugins")
        if not isinstance(plugins, list) or not plugins or not isinstance(plugins[0], dict):
            raise ConfigError("configuration list holds no plugins")
        first = dict(plugins[0])
        first["cniVersion"] = document.get("cniVersion", "")
        ipam, _ = load_ipam_config(json.dumps(first), env_args, *args)
        return ipam

    ipam, _ = load_ipam_config(text, env_args, *args)
    return ipam