import re
from ipaddress import IPv6Address, ip_address, ip_network

import pytest

from whereabouts.iphelpers import (
    compare_ips,
    dec_ip,
    divide_range_by_size,
    first_usable_ip,
    get_ip_range,
    has_usable_ips,
    inc_ip,
    ip_add_offset,
    ip_get_offset,
    is_ip_in_range,
    is_ipv4,
    last_usable_ip,
    network_ip,
    subnet_broadcast_ip,
)


def mapped(text):
    return IPv6Address("::ffff:" + text)


# compare_ips

def test_compare_ipv4_smaller():
    assert compare_ips(ip_address("192.168.0.0"), ip_address("192.169.0.0")) == -1


def test_compare_ipv4_mapped_larger():
    assert compare_ips(mapped("192.169.0.0"), mapped("192.168.0.0")) == 1


def test_compare_ipv4_mixed_equal():
    assert compare_ips(mapped("192.168.0.0"), ip_address("192.168.0.0")) == 0


@pytest.mark.parametrize(
    "left, right, expected",
    [("2000::", "2000::1", -1), ("2000::1", "2000::", 1), ("2000::1", "2000::1", 0)],
)
def test_compare_ipv6(left, right, expected):
    assert compare_ips(left, right) == expected


# is_ip_in_range

@pytest.mark.parametrize("start, end", [("192.168.0.0", "192.169.0.0"), ("2000::", "2000:1::")])
def test_in_range_with_missing_value(start, end):
    with pytest.raises(ValueError, match="cannot determine if IP is in range"):
        is_ip_in_range(None, start, end)


@pytest.mark.parametrize(
    "ip, start, end",
    [
        ("192.168.255.100", "192.168.0.0", "192.169.0.0"),
        ("192.169.0.0", "192.168.0.0", "192.169.0.0"),
        ("192.168.0.0", "192.168.0.0", "192.169.0.0"),
        ("2000::ffff:ffcc", "2000::", "2000:1::"),
        ("2001:db8:480:603d:304:403::", "2001:db8:480:603d::1", "2001:db8:480:603e::4"),
        ("2000:1::", "2000::", "2000:1::"),
        ("2000::", "2000::", "2000:1::"),
    ],
)
def test_in_range(ip, start, end):
    assert is_ip_in_range(ip, start, end) is True


@pytest.mark.parametrize(
    "ip, start, end",
    [
        ("192.169.255.100", "192.168.0.0", "192.169.0.0"),
        ("192.169.0.1", "192.168.0.0", "192.169.0.0"),
        ("192.167.255.255", "192.168.0.0", "192.169.0.0"),
        ("2000:1::ffff:ffcc", "2000::", "2000:1::"),
        ("2000:1::1", "2000::", "2000:1::"),
        ("2000::", "2000::1", "2000:1::"),
    ],
)
def test_not_in_range(ip, start, end):
    assert is_ip_in_range(ip, start, end) is False


# network and broadcast

@pytest.mark.parametrize(
    "cidr, expected",
    [
        ("192.168.0.0/32", "192.168.0.0"),
        ("192.168.0.0/31", "192.168.0.0"),
        ("192.168.0.0/30", "192.168.0.0"),
        ("192.168.0.0/23", "192.168.0.0"),
        ("2000::/128", "2000::"),
        ("2000::/127", "2000::"),
        ("2000::/126", "2000::"),
        ("2000::/64", "2000::"),
    ],
)
def test_network_ip(cidr, expected):
    assert network_ip(ip_network(cidr)) == ip_address(expected)


@pytest.mark.parametrize(
    "cidr, expected",
    [
        ("192.168.0.0/32", "192.168.0.0"),
        ("192.168.0.0/31", "192.168.0.1"),
        ("192.168.0.0/30", "192.168.0.3"),
        ("192.168.0.0/23", "192.168.1.255"),
        ("2000::/128", "2000::0"),
        ("2000::/127", "2000::1"),
        ("2000::/126", "2000::3"),
        ("2000::/64", "2000::ffff:ffff:ffff:ffff"),
    ],
)
def test_subnet_broadcast_ip(cidr, expected):
    assert subnet_broadcast_ip(cidr) == ip_address(expected)


# first and last usable

@pytest.mark.parametrize("cidr", ["192.168.0.0/32", "192.168.0.0/31", "2000::/128", "2000::/127"])
def test_first_usable_too_small(cidr):
    with pytest.raises(ValueError, match="^net mask is too short"):
        first_usable_ip(cidr)


@pytest.mark.parametrize("cidr", ["192.168.0.0/32", "192.168.0.0/31", "2000::/128", "2000::/127"])
def test_last_usable_too_small(cidr):
    with pytest.raises(ValueError, match="^net mask is too short"):
        last_usable_ip(cidr)


@pytest.mark.parametrize(
    "cidr, expected",
    [
        ("192.168.0.0/30", "192.168.0.1"),
        ("192.168.0.0/23", "192.168.0.1"),
        ("2000::/126", "2000::1"),
        ("2000::/64", "2000::1"),
    ],
)
def test_first_usable(cidr, expected):
    assert first_usable_ip(cidr) == ip_address(expected)


@pytest.mark.parametrize(
    "cidr, expected",
    [
        ("192.168.0.0/30", "192.168.0.2"),
        ("192.168.0.0/23", "192.168.1.254"),
        ("2000::/126", "2000::2"),
        ("2000::/64", "2000::ffff:ffff:ffff:fffe"),
    ],
)
def test_last_usable(cidr, expected):
    assert last_usable_ip(cidr) == ip_address(expected)


@pytest.mark.parametrize(
    "cidr, expected",
    [
        ("192.168.0.0/32", False),
        ("192.168.0.0/31", False),
        ("2000::/128", False),
        ("2000::/127", False),
        ("192.168.0.0/30", True),
        ("2000::/126", True),
    ],
)
def test_has_usable_ips(cidr, expected):
    assert has_usable_ips(cidr) is expected


# inc and dec

@pytest.mark.parametrize(
    "before, after",
    [
        ("192.168.2.23", "192.168.2.24"),
        ("ff02::1", "ff02::2"),
        ("ff02::ff", "ff02::0:100"),
        ("192.168.2.255", "192.168.3.0"),
        ("192.168.255.255", "192.169.0.0"),
        ("ff02::ffff", "ff02::1:0"),
        ("ff02::ffff:ffff", "ff02::1:0:0"),
        ("255.255.255.255", "0.0.0.0"),
        ("ffff:ffff:ffff:ffff:ffff:ffff:ffff:ffff", "::"),
    ],
)
def test_inc_ip(before, after):
    assert inc_ip(before) == ip_address(after)


@pytest.mark.parametrize(
    "before, after",
    [
        ("192.168.2.23", "192.168.2.22"),
        ("ff02::2", "ff02::1"),
        ("ff02::100", "ff02::0:ff"),
        ("192.168.3.0", "192.168.2.255"),
        ("192.169.0.0", "192.168.255.255"),
        ("ff02::1:0", "ff02::ffff"),
        ("ff02::1:0:0", "ff02::ffff:ffff"),
        ("0.0.0.0", "255.255.255.255"),
        ("::", "ffff:ffff:ffff:ffff:ffff:ffff:ffff:ffff"),
    ],
)
def test_dec_ip(before, after):
    assert dec_ip(before) == ip_address(after)


def test_inc_dec_round_trip():
    for text in ["10.0.0.255", "2001:db8::ffff", "0.0.0.0"]:
        assert dec_ip(inc_ip(text)) == ip_address(text)


# get_ip_range

@pytest.mark.parametrize(
    "cidr, start, end, first, last",
    [
        ("192.168.21.100/30", None, None, "192.168.21.101", "192.168.21.102"),
        ("192.168.2.200/24", "192.168.2.23", None, "192.168.2.23", "192.168.2.254"),
        ("192.168.2.200/27", None, None, "192.168.2.193", "192.168.2.222"),
        ("192.168.2.200/24", None, None, "192.168.2.1", "192.168.2.254"),
        ("192.168.2.200/24", None, "192.168.2.100", "192.168.2.1", "192.168.2.100"),
        ("192.168.2.200/24", "192.168.2.50", "192.168.2.100", "192.168.2.50", "192.168.2.100"),
        ("192.168.2.200/24", "192.168.1.150", "192.168.3.100", "192.168.2.1", "192.168.2.254"),
        ("192.168.2.200/24", "192.168.2.100", "192.168.2.50", "192.168.2.100", "192.168.2.254"),
        ("192.168.2.200/24", "192.168.2.50", "192.168.2.50", "192.168.2.50", "192.168.2.50"),
        ("2001::0/116", None, None, "2001::1", "2001::ffe"),
        ("fd:db8:abcd:0012::0/96", None, None, "fd:db8:abcd:12::1", "fd:db8:abcd:12::ffff:fffe"),
        ("2001:db8:abcd:0012::0/96", None, None, "2001:db8:abcd:12::1", "2001:db8:abcd:12::ffff:fffe"),
        (
            "2001:db8:abcd:0012::0/64", None, None,
            "2001:db8:abcd:12::1", "2001:db8:abcd:12:ffff:ffff:ffff:fffe",
        ),
        (
            "2001:db8:abcd:0012::0/64", None, "2001:db8:abcd:0012::100",
            "2001:db8:abcd:12::1", "2001:db8:abcd:12::100",
        ),
        (
            "2001:db8:abcd:0012::0/64", "2001:db8:abcd:0012::50", "2001:db8:abcd:0012::100",
            "2001:db8:abcd:12::50", "2001:db8:abcd:12::100",
        ),
        (
            "2001:db8:abcd:0012::0/64", "2000:db8:abcd:0012::50", "2003:db8:abcd:0012::100",
            "2001:db8:abcd:12::1", "2001:db8:abcd:12:ffff:ffff:ffff:fffe",
        ),
        (
            "2001:db8:abcd:0012::0/64", "2001:db8:abcd:0012::100", "2001:db8:abcd:0012::50",
            "2001:db8:abcd:12::100", "2001:db8:abcd:12:ffff:ffff:ffff:fffe",
        ),
        (
            "2001:db8:abcd:0012::0/64", "2001:db8:abcd:0012::100", "2001:db8:abcd:0012::100",
            "2001:db8:abcd:12::100", "2001:db8:abcd:12::100",
        ),
        (
            "2001:db8:480:603d::/64", "2001:db8:480:603d:304:403::", "2001:db8:480:603d:304:403:0:4",
            "2001:db8:480:603d:304:403::", "2001:db8:480:603d:304:403:0:4",
        ),
    ],
)
def test_get_ip_range(cidr, start, end, first, last):
    got_first, got_last = get_ip_range(cidr, start, end)
    assert str(got_first) == first
    assert str(got_last) == last


def test_get_ip_range_minimum_mask():
    first, last = get_ip_range(ip_network("192.168.21.100/30", strict=False), None, None)
    assert compare_ips(first, last) == -1


def test_get_ip_range_mask_too_short():
    with pytest.raises(ValueError, match="^net mask is too short"):
        get_ip_range("192.168.21.100/31", None, None)


# offsets

def test_offset_ipv4():
    assert ip_get_offset("192.168.1.1", "192.168.1.0") == 1


def test_offset_mixed_notation_first_v4():
    assert ip_get_offset(ip_address("192.168.1.1"), mapped("192.168.1.0")) == 1
    assert ip_get_offset(ip_address("192.168.4.0"), mapped("192.168.3.0")) == 256


def test_offset_mixed_notation_second_v4():
    assert ip_get_offset(mapped("192.168.1.1"), ip_address("192.168.1.0")) == 1


def test_offset_inverted():
    assert ip_get_offset(mapped("192.168.1.0"), ip_address("192.168.1.1")) == 1
    assert ip_get_offset(mapped("192.168.1.0"), ip_address("192.168.2.255")) == 511


def test_offset_normal_case():
    assert ip_get_offset("192.168.2.255", "192.168.2.1") == 254
    assert ip_get_offset("ff02::ff", "ff02::1") == 254


def test_offset_carry_case():
    assert ip_get_offset("192.168.3.0", "192.168.2.1") == 255
    assert ip_get_offset("ff02::100", "ff02::1") == 255
    assert ip_get_offset("ff02::1:0", "ff02::1") == 0xFFFF


def test_offset_multi_byte_value():
    assert ip_get_offset("::1:ffff", "::") == 0x1FFFF


def test_offset_family_mismatch():
    with pytest.raises(
        ValueError,
        match=re.escape("cannot calculate offset between IPv4 (192.168.3.0) and IPv6 address (ff02::1)"),
    ):
        ip_get_offset("192.168.3.0", "ff02::1")
    with pytest.raises(
        ValueError,
        match=re.escape("cannot calculate offset between IPv6 (ff02::1) and IPv4 address (192.168.3.0)"),
    ):
        ip_get_offset("ff02::1", "192.168.3.0")


def test_add_offset_ipv4():
    assert str(ip_add_offset("192.168.1.1", 256)) == "192.168.2.1"


def test_add_offset_ipv6():
    assert str(ip_add_offset("2000::1", 65535)) == "2000::1:0"


def test_add_offset_ipv4_too_large():
    assert ip_add_offset("10.0.0.1", 0xFFFFFFFF) is None


def test_add_offset_negative():
    with pytest.raises(ValueError):
        ip_add_offset("10.0.0.1", -1)


def test_add_then_get_offset_round_trip():
    base = ip_address("2001:db8::10")
    moved = ip_add_offset(base, 12345)
    assert ip_get_offset(moved, base) == 12345


def test_is_ipv4():
    assert is_ipv4("10.1.2.3") is True
    assert is_ipv4(mapped("10.1.2.3")) is True
    assert is_ipv4("2001:db8::1") is False


# divide_range_by_size

@pytest.mark.parametrize(
    "net_range, slice_size, expected",
    [
        ("10.0.0.0/8", "/8", ["10.0.0.0/8"]),
        ("10.0.0.0/8", "/10", ["10.0.0.0/10", "10.64.0.0/10", "10.128.0.0/10", "10.192.0.0/10"]),
        (
            "10.0.0.0/8", "/11",
            [
                "10.0.0.0/11", "10.32.0.0/11", "10.64.0.0/11", "10.96.0.0/11",
                "10.128.0.0/11", "10.160.0.0/11", "10.192.0.0/11", "10.224.0.0/11",
            ],
        ),
        ("10.0.0.0/10", "/12", ["10.0.0.0/12", "10.16.0.0/12", "10.32.0.0/12", "10.48.0.0/12"]),
        ("10.0.0.0/8", "10", ["10.0.0.0/10", "10.64.0.0/10", "10.128.0.0/10", "10.192.0.0/10"]),
    ],
)
def test_divide_range_by_size(net_range, slice_size, expected):
    assert divide_range_by_size(net_range, slice_size) == expected


def test_divide_range_slice_larger_than_network():
    with pytest.raises(ValueError, match="subnetMaskSize must be greater or equal"):
        divide_range_by_size("10.0.0.0/10", "/8")


def test_divide_range_not_network_address():
    with pytest.raises(ValueError, match="not a valid network address"):
        divide_range_by_size("10.0.0.1/8", "/10")


def test_divide_range_bad_slice_size():
    with pytest.raises(ValueError, match="invalid slice size"):
        divide_range_by_size("10.0.0.0/8", "/abc")


def test_divide_range_bad_cidr():
    with pytest.raises(ValueError, match="error parsing CIDR"):
        divide_range_by_size("10.0.0.0", "/10")