"""
Pydantic models for controller requests, responses and array records.
"""

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


class AccessType(str, Enum):
    """Volume access types a capability can request."""

    MOUNT = "mount"
    BLOCK = "block"


class ProvisionType(str, Enum):
    """Filesystem provisioning types."""

    THIN = "THIN"
    THICK = "THICK"


# Controller request / response models


class CapacityRange(BaseModel):
    """Requested capacity bounds in bytes."""

    required_bytes: int = Field(0, ge=0)
    limit_bytes: int = Field(0, ge=0)


class VolumeCapability(BaseModel):
    """A single access capability requested for a volume."""

    access_type: AccessType = AccessType.MOUNT
    access_mode: Optional[str] = None


class CreateVolumeRequest(BaseModel):
    """CreateVolume request."""

    name: str = Field(..., min_length=1)
    capacity_range: Optional[CapacityRange] = None
    parameters: Dict[str, str] = Field(default_factory=dict)
    volume_capabilities: List[VolumeCapability] = Field(default_factory=list)
    volume_content_source: Optional[Dict[str, Any]] = None

    @property
    def required_bytes(self) -> int:
        if self.capacity_range is None:
            return 0
        return self.capacity_range.required_bytes

    def access_types(self) -> Dict[str, bool]:
        """Return which of mount/block access was requested."""
        requested = {cap.access_type for cap in self.volume_capabilities}
        return {
            "mount": AccessType.MOUNT in requested,
            "block": AccessType.BLOCK in requested,
        }


class DeleteVolumeRequest(BaseModel):
    """DeleteVolume request."""

    volume_id: str = ""


class ControllerExpandVolumeRequest(BaseModel):
    """ControllerExpandVolume request."""

    volume_id: str = ""
    capacity_range: Optional[CapacityRange] = None


class Volume(BaseModel):
    """Volume description returned to the orchestrator."""

    volume_id: str
    capacity_bytes: int
    volume_context: Dict[str, str] = Field(default_factory=dict)
    content_source: Optional[Dict[str, Any]] = None


class CreateVolumeResponse(BaseModel):
    volume: Volume


class DeleteVolumeResponse(BaseModel):
    pass


class ControllerExpandVolumeResponse(BaseModel):
    capacity_bytes: int
    node_expansion_required: bool = False


class ControllerPublishVolumeResponse(BaseModel):
    publish_context: Dict[str, str] = Field(default_factory=dict)


class ControllerUnpublishVolumeResponse(BaseModel):
    pass


# Array records


class FilesystemRecord(BaseModel):
    """Filesystem as reported by the array."""

    id: int
    name: str = ""
    size: int = 0
    pool_id: Optional[int] = None
    ssd_enabled: bool = False
    provtype: Optional[str] = None


class ExportPermission(BaseModel):
    """A single export access rule."""

    access: str = "RW"
    client: str = "*"
    no_root_squash: bool = True

    @field_validator("access")
    def validate_access(cls, v: str) -> str:
        v = v.upper()
        if v not in ("RW", "RO"):
            raise ValueError("Export access must be RW or RO")
        return v


class ExportRecord(BaseModel):
    """NFS export as reported by the array."""

    id: int
    filesystem_id: Optional[int] = None
    export_path: str = ""
    permissions: List[ExportPermission] = Field(default_factory=list)


class ExportRequest(BaseModel):
    """Request body for creating an export."""

    filesystem_id: int
    export_path: str
    permissions: List[ExportPermission] = Field(default_factory=list)
    transport_protocols: str = "TCP"
    privileged_port: bool = True


class TreeqRecord(BaseModel):
    """Treeq (quota-bounded subtree) as reported by the array."""

    id: int
    filesystem_id: Optional[int] = None
    name: str = ""
    path: str = ""
    hard_capacity: int = 0


class NetworkSpaceIP(BaseModel):
    ip_address: str
    enabled: bool = True


class NetworkSpace(BaseModel):
    """Network space used to reach NAS services."""

    id: int
    name: str
    service: str = ""
    ips: List[NetworkSpaceIP] = Field(default_factory=list)

    def enabled_ips(self) -> List[str]:
        return [ip.ip_address for ip in self.ips if ip.enabled]
