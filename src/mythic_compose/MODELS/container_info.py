"""
Models for the engine-side view of containers and volumes.
"""
from typing import List, Optional
from pydantic import BaseModel


class PortBinding(BaseModel):
    """
    A container port, optionally published on the host.
    """
    private_port: int
    public_port: int = 0
    ip: str = ""
    protocol: str = "tcp"

    @property
    def is_published(self) -> bool:
        return self.public_port > 0

    @property
    def is_identity(self) -> bool:
        """
        True when the port is published unchanged on all interfaces.
        """
        return self.private_port == self.public_port and self.ip == "0.0.0.0"


class MountInfo(BaseModel):
    """
    A mount attached to a container.
    """
    name: str = ""
    source: str = ""
    destination: str = ""


class ContainerInfo(BaseModel):
    """
    A container known to the engine, keyed by its ``name`` label.
    """
    id: str = ""
    name: str = ""
    image: str = ""
    state: str = ""
    status: str = ""
    ports: List[PortBinding] = []
    mounts: List[MountInfo] = []

    def mounts_with_source(self, path: str) -> List[MountInfo]:
        return [m for m in self.mounts if path and path in m.source]

    def mounts_named(self, volume: str) -> List[MountInfo]:
        return [m for m in self.mounts if m.name == volume]


class VolumeUsage(BaseModel):
    """
    Disk usage information the engine reports for one volume.
    """
    name: str
    size: Optional[int] = None
    ref_count: int = 0
    mountpoint: str = ""
