# whereabouts

IP address management helpers for container networks. The package hands out
addresses from a range and keeps track of who holds them. It also reads the
IPAM section of a network configuration.

## Modules

- `whereabouts.iphelpers` does address arithmetic on `ipaddress` objects.
  - `network_ip`, `subnet_broadcast_ip`, `first_usable_ip`, `last_usable_ip`
    and `has_usable_ips` return the edges of a subnet. A /31, /32, /127 or
    /128 has no usable addresses, and the first and last usable functions
    raise `ValueError` for it.
  - `inc_ip` and `dec_ip` move an address up or down by one. They wrap around
    at the ends of the address family.
  - `compare_ips`, `is_ip_in_range`, `ip_get_offset`, `ip_add_offset` and
    `is_ipv4` compare addresses and compute offsets between them.
  - `get_ip_range` returns the first and last assignable addresses of a
    subnet. An optional start or end narrows the range only when it lies
    within the usable addresses.
  - `divide_range_by_size` splits an IPv4 network into equal slices.
- `whereabouts.allocate` manages a list of `IPReservation` entries.
  - `iterate_for_assignment` reserves the lowest free address. It skips
    reserved addresses and every address of each excluded subnet; a single
    address is taken as a /32 or /128.
  - `assign_ip` takes a `RangeConfiguration`. If the pod interface already
    holds an address, it returns that same address and updates the container
    id when it changed.
  - `deallocate_ip` removes the reservation of a container interface and
    returns the address it held.
- `whereabouts.config` reads a network configuration from JSON bytes or text
  and returns an `IPAMConfig`.
  - `load_ipam_config` takes a single plugin configuration.
  - `load_ipam_configuration` takes either a single plugin or a plugin list;
    for a list it uses the first plugin.
  - Empty fields are filled from a flat configuration file. `get_flat_ipam`
    looks for that file first at the IPAM's `configuration_path`, then at the
    paths in `DEFAULT_CONFIG_PATHS`, then at any extra paths you pass.
  - Ranges written as `start-end/prefix` are split into `range`,
    `range_start` and `range_end`.
  - Leading zeros in IPv4 octets are accepted.
  - The leader-election timings default to 1500, 1000 and 500.
- `whereabouts.api` holds the resource types `IPPool`, `NodeSlicePool` and
  `OverlappingRangeIPReservation`, together with their spec classes.
  - Each resource has `from_dict` and `to_dict`, which convert it to and from
    plain dictionaries.
  - The pool types have `parse_cidr`.
  - `kind` and `resource` qualify a name with the API group.
- `whereabouts.log` writes levelled messages to stderr, and to a file as well
  if you set one with `set_log_file`.
  - The levels are `panic`, `error`, `verbose` and `debug`, in the `Level`
    enum.
  - Set the level with `set_log_level` and turn stderr output on or off with
    `set_log_stderr`.

## Installing

```
pip install .
```

Python 3.10 or later is required. The package depends only on the standard
library.

## Example

```python
import ipaddress

from whereabouts.allocate import iterate_for_assignment

network = ipaddress.ip_network("192.168.0.0/28")
ip, reservations = iterate_for_assignment(
    network, None, None, [], ["192.168.0.0/30"], "container-1", "default/pod-a", "eth0"
)
print(ip)  # 192.168.0.4
```

```python
from whereabouts.iphelpers import divide_range_by_size

print(divide_range_by_size("10.0.0.0/8", "/10"))
# ['10.0.0.0/10', '10.64.0.0/10', '10.128.0.0/10', '10.192.0.0/10']
```

## Errors

- An allocation raises `AssignmentError` when no free address is left in the
  range.
- An exclude range that cannot be parsed, or a subnet too small to have usable
  addresses, raises `ValueError`.
- Configuration problems raise `ConfigError`, which is a `ValueError`, or one of
  its subclasses:
  - `InvalidPluginError` when the IPAM type is not `whereabouts`;
  - `ConfigFileNotFoundError` when no flat configuration file was found.

## What the package does not do

The package is a library of building blocks. It has no command-line plugin
entry point and does not talk to a Kubernetes cluster. It has no storage back
end that persists `IPPool` objects and no controller that cleans up addresses
of deleted pods.

A configuration must name a `kubernetes.kubeconfig` path, or loading fails,
but the package only records that path and never uses it. Reservation lists
and pool objects live in memory; storing them is up to the caller.

## Running the tests

```
pip install -e ".[test]"
pytest
```