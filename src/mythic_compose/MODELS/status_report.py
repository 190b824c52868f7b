"""
Models for the reports produced by reconciliation.
"""
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel

from .container_info import ContainerInfo


class ServiceLifecycle(str, Enum):
    """
    Where a single service name sits between disk, document and engine.
    """
    UNKNOWN = "unknown"
    ON_DISK_ONLY = "on_disk_only"
    DECLARED = "declared"
    BUILT = "built"
    NOT_BUILT = "not_built"
    RUNNING = "running"
    STOPPED = "stopped"
    REMOVED = "removed"


class StatusReport(BaseModel):
    """
    Result of comparing running containers with declared and installed services.
    """
    core: List[ContainerInfo] = []
    installed: List[ContainerInfo] = []
    declared_not_running: List[str] = []
    on_disk_not_declared: List[str] = []


class InventoryRow(BaseModel):
    """
    One third-party service in the installed services listing.
    """
    name: str
    container_status: str = "N/A"
    image_built: bool = False
    declared: bool = False


class VolumeDiff(BaseModel):
    """
    Declared volumes compared with the volumes the engine knows about.
    """
    declared_only: List[str] = []
    engine_only: List[str] = []
    both: List[str] = []


class VolumeRow(BaseModel):
    """
    One line of the volume listing.
    """
    name: str
    size: str = "unknown"
    container: str = "unused (0)"
    container_status: str = "offline"
    location: str = ""
    owner: Optional[str] = None
