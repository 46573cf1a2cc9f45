"""Host port allocation for BoxLite sandboxes.

Every box publishes its guest ports on localhost, so concurrent boxes must
not share host ports. Ports stay reserved for the life of the box and are
returned by ``release_host_ports`` when it is killed.
"""

import socket

# Highest usable TCP port
MAX_PORT = 65535

_reserved: set[int] = set()


def _port_is_free(port: int) -> bool:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        try:
            sock.bind(("127.0.0.1", port))
        except OSError:
            return False
    return True


def reserve_host_ports(count: int, start: int) -> list[int]:
    """Reserve ``count`` host ports at or above ``start``.

    Skips ports held by another box in this process and ports something
    else is already listening on.

    Raises:
        RuntimeError: If the port range is exhausted
    """
    allocated: list[int] = []
    candidate = start
    while len(allocated) < count:
        if candidate > MAX_PORT:
            _reserved.difference_update(allocated)
            raise RuntimeError(f"No free host ports left at or above {start}")
        if candidate not in _reserved and _port_is_free(candidate):
            _reserved.add(candidate)
            allocated.append(candidate)
        candidate += 1
    return allocated


def release_host_ports(ports: list[int]) -> None:
    """Return ports reserved by ``reserve_host_ports``."""
    _reserved.difference_update(ports)
