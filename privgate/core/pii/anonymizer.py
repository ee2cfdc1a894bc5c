from __future__ import annotations

import ipaddress


def anonymize_ip(ip: str) -> str:
    """
    Truncate an IP address before storage:
    - IPv4: last octet zeroed (192.168.1.42 -> 192.168.1.0)
    - IPv6: only the /64 network prefix kept
    Raises ValueError on anything that is not an IP address.
    """
    addr = ipaddress.ip_address(str(ip or "").strip())
    if addr.version == 4:
        net = ipaddress.ip_network(f"{addr}/24", strict=False)
    else:
        net = ipaddress.ip_network(f"{addr}/64", strict=False)
    return str(net.network_address)
