"""Proxy and no-proxy validation for the local node.

Intra-cluster traffic must never go through the outbound proxy, so when a
proxy is configured the node's own address has to be covered by the
no-proxy list. ``check_local_reachability`` answers that question and the
callers abort on a negative answer; it is a configuration defect, not a
transient condition.
"""

import ipaddress
import logging
import socket
from typing import List, Optional, Tuple

import psutil

from embedctl.config import Config
from .errors import ProxyConfigError, ResolutionError
from .models import ProxySpec

logger = logging.getLogger("embedctl.k0s.proxy")

# Address used only to pick the default-route source address; nothing is sent.
_ROUTE_PROBE = ("8.8.8.8", 80)


def _default_route_ip() -> str:
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(_ROUTE_PROBE)
        return s.getsockname()[0]
    except OSError as e:
        raise ResolutionError(f"unable to determine the default route address: {e}") from e
    finally:
        s.close()


def get_local_ip(interface: Optional[str] = None) -> str:
    """Return the IPv4 address of ``interface``, or of the default route.

    Raises:
        ResolutionError: If the interface is unknown or has no usable IPv4 address
    """
    if not interface:
        ip = _default_route_ip()
        logger.debug(f"Using default route address {ip}")
        return ip

    addrs = psutil.net_if_addrs()
    if interface not in addrs:
        raise ResolutionError(f"network interface {interface!r} not found")
    for addr in addrs[interface]:
        if addr.family != socket.AF_INET:
            continue
        ip = ipaddress.ip_address(addr.address)
        if ip.is_loopback or ip.is_link_local:
            continue
        logger.debug(f"Using address {ip} of interface {interface}")
        return str(ip)
    raise ResolutionError(f"network interface {interface!r} has no usable IPv4 address")


def _local_hostnames() -> List[str]:
    names = {socket.gethostname().lower()}
    try:
        names.add(socket.getfqdn().lower())
    except OSError:
        pass
    return sorted(n for n in names if n)


def is_exempted(address: str, no_proxy: List[str], hostnames: Optional[List[str]] = None) -> bool:
    """True when ``address`` matches a no-proxy entry.

    An entry matches on exact IP equality, on CIDR containment, or when it
    names this host (``.domain`` entries match as suffixes).
    """
    ip = ipaddress.ip_address(address)
    hostnames = _local_hostnames() if hostnames is None else [h.lower() for h in hostnames]
    for entry in no_proxy:
        entry = entry.strip()
        if not entry:
            continue
        if '/' in entry:
            try:
                if ip in ipaddress.ip_network(entry, strict=False):
                    return True
            except ValueError:
                pass
            continue
        try:
            if ipaddress.ip_address(entry) == ip:
                return True
            continue
        except ValueError:
            pass
        name = entry.lower()
        for host in hostnames:
            if host == name.lstrip('.') or (name.startswith('.') and host.endswith(name)):
                return True
    return False


def check_local_reachability(proxy: Optional[ProxySpec], interface: Optional[str] = None) -> Tuple[bool, str]:
    """Check that this node would not reach itself through the proxy.

    Args:
        proxy: Proxy settings in effect, or None
        interface: Network interface to take the node address from

    Returns:
        tuple: (ok, local_ip). ``ok`` is False when the address is not exempted.
        Without a proxy the check passes and no address is resolved.

    Raises:
        ResolutionError: If the local address cannot be determined
    """
    if proxy is None or not proxy.enabled:
        return True, ""
    local_ip = get_local_ip(interface)
    ok = is_exempted(local_ip, proxy.no_proxy_entries())
    if not ok:
        logger.debug(f"Local address {local_ip} is not covered by no-proxy {proxy.no_proxy!r}")
    return ok, local_ip


def validate_proxy(proxy: Optional[ProxySpec], interface: Optional[str] = None) -> None:
    """Raise ProxyConfigError when the node address is not exempted from the proxy."""
    ok, local_ip = check_local_reachability(proxy, interface)
    if not ok:
        raise ProxyConfigError(proxy.no_proxy, local_ip)


def include_local_ip_in_no_proxy(proxy: ProxySpec, interface: Optional[str] = None) -> ProxySpec:
    """Return a copy of ``proxy`` whose no-proxy list covers this node and the cluster networks.

    Without a proxy the settings are returned unchanged.
    """
    if not proxy.enabled:
        return proxy
    entries = proxy.no_proxy_entries()
    for extra in (get_local_ip(interface), Config.POD_CIDR, Config.SERVICE_CIDR):
        if extra and extra not in entries:
            entries.append(extra)
    return proxy.model_copy(update={'no_proxy': ','.join(entries)})
