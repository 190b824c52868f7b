"""
Utilities for checking that first-party service ports are free before a start.
"""
import logging
import socket
from typing import Iterable, List, Optional

import psutil
from pydantic import BaseModel

from ..errors import PortConflict
from ..MODELS.settings import LOOPBACK_ADDRESS, PORT_BINDINGS, PortBindingVariables

logger = logging.getLogger(__name__)


def is_port_free(port: int) -> bool:
    """
    Checks if a port can be bound on all interfaces.
    """
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind(('', port))
            return True
        except OSError:
            return False


def find_port_owner(port: int) -> Optional[str]:
    """
    Names the local process listening on a port, when the OS lets us see it.
    """
    try:
        connections = psutil.net_connections(kind="tcp")
    except (psutil.AccessDenied, OSError):
        return None
    for conn in connections:
        if conn.status != psutil.CONN_LISTEN or not conn.laddr or conn.laddr.port != port:
            continue
        if conn.pid is None:
            return None
        try:
            return f"{psutil.Process(conn.pid).name()} (pid {conn.pid})"
        except psutil.Error:
            return f"pid {conn.pid}"
    return None


class PortCheckResult(BaseModel):
    """
    Services whose port was verified free, and services skipped because they
    are bound to a host this registry does not manage.
    """
    checked: List[str] = []
    skipped: List[str] = []


class PortPrechecker:
    """
    Verifies that locally bound first-party services can claim their ports.
    """
    def __init__(self, environment, bindings: Optional[Iterable[PortBindingVariables]] = None):
        """
        :param environment: An EnvironmentManager (anything with get_str/get_int).
        :param bindings: Host/port variable pairs to consider. Defaults to PORT_BINDINGS.
        """
        self.environment = environment
        self.bindings = list(PORT_BINDINGS if bindings is None else bindings)

    def is_local(self, binding: PortBindingVariables) -> bool:
        host = self.environment.get_str(binding.host_variable)
        return host == binding.service or host == LOOPBACK_ADDRESS

    def check(self, services: Iterable[str]) -> PortCheckResult:
        """
        Binds and releases the port of every locally hosted service about to start.

        :param services: Names of the services about to be started.
        :return: Which services were checked and which were skipped.
        :raises PortConflict: On the first port that is already in use.
        """
        starting = {name.lower() for name in services}
        result = PortCheckResult()
        for binding in self.bindings:
            if binding.service not in starting:
                continue
            if not self.is_local(binding):
                result.skipped.append(binding.service)
                continue
            port = self.environment.get_int(binding.port_variable)
            if not is_port_free(port):
                raise PortConflict(port, binding.port_variable, owner=find_port_owner(port))
            logger.debug(f"[*] Port {port} for {binding.service} is free")
            result.checked.append(binding.service)
        return result
