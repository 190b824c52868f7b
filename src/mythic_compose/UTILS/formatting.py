"""
Formatting helpers for the status and volume listings.
"""
from typing import List, Optional, Sequence

from ..MODELS.container_info import ContainerInfo, PortBinding


def byte_count_si(size: Optional[int]) -> str:
    """
    Formats a byte count with SI units, e.g. 1500 -> '1.5 kB'.
    """
    if size is None or size < 0:
        return "unknown"
    unit = 1000
    if size < unit:
        return f"{size} B"
    div, exp = unit, 0
    n = size // unit
    while n >= unit:
        div *= unit
        exp += 1
        n //= unit
    return f"{size / div:.1f} {'kMGTPE'[exp]}B"


def format_ports(ports: Sequence[PortBinding]) -> str:
    """
    Renders published ports.

    Identity mappings are listed first as bare ports in ascending order, followed
    by the explicit ``internal/proto -> ip:external`` mappings.
    """
    published = sorted((p for p in ports if p.is_published), key=lambda p: p.public_port)
    bare = sorted(p.private_port for p in published if p.is_identity)
    mapped = [f"{p.private_port}/{p.protocol} -> {p.ip}:{p.public_port}" for p in published if not p.is_identity]
    return ", ".join([str(port) for port in bare] + mapped)


def format_mounts(container: ContainerInfo) -> str:
    """
    Lists the service's own ``<name>_volume...`` mounts, or 'local' when it has none.
    """
    names = [m.name for m in container.mounts if m.name.startswith(f"{container.name}_volume")]
    return ", ".join(names) if names else "local"


def format_table(headers: Sequence[str], rows: Sequence[Sequence[str]], padding: int = 2) -> List[str]:
    """
    Lays out rows in left-aligned columns.
    """
    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            if i < len(widths):
                widths[i] = max(widths[i], len(str(cell)))
            else:
                widths.append(len(str(cell)))
    lines = []
    for row in [list(headers)] + [list(r) for r in rows]:
        cells = [str(cell).ljust(widths[i]) for i, cell in enumerate(row)]
        lines.append((" " * padding).join(cells).rstrip())
    return lines
