"""Base class for provisioning controllers."""

from abc import ABC, abstractmethod
from typing import Optional

from oslo_log import log as logging

from .configuration import ProvisionerConfig
from .exceptions import InvalidArgument
from .models import (
    ControllerExpandVolumeRequest,
    ControllerExpandVolumeResponse,
    ControllerPublishVolumeResponse,
    ControllerUnpublishVolumeResponse,
    CreateVolumeRequest,
    CreateVolumeResponse,
    DeleteVolumeRequest,
    DeleteVolumeResponse,
)
from .utils import normalize_capacity

LOG = logging.getLogger(__name__)


class ControllerService(ABC):
    """Abstract base class for provisioning strategies.

    Every strategy implements the same volume lifecycle contract over a
    different backing layout. Controllers hold no state between calls; each
    call rebuilds its context from the volume id and live array queries.
    """

    protocol: str = ""

    def __init__(self, client, config: Optional[ProvisionerConfig] = None):
        """Initialize the controller.

        Args:
            client: Backend gateway (IboxClient or compatible)
            config: Injected thresholds and defaults
        """
        self.client = client
        self.config = config or ProvisionerConfig()

    @abstractmethod
    def create_volume(self, request: CreateVolumeRequest) -> CreateVolumeResponse:
        """Provision a volume.

        Raises:
            InvalidArgument: Missing or invalid storage class parameters
            IboxCSIException: Array operation failed
        """
        pass

    @abstractmethod
    def delete_volume(self, request: DeleteVolumeRequest) -> DeleteVolumeResponse:
        """Delete a volume. Already-absent volumes are not an error."""
        pass

    @abstractmethod
    def controller_expand_volume(
        self, request: ControllerExpandVolumeRequest
    ) -> ControllerExpandVolumeResponse:
        """Resize a volume."""
        pass

    # Helpers shared by the strategies

    def normalize_capacity(self, capacity: int) -> int:
        return normalize_capacity(capacity, self.config.min_capacity_bytes)

    @staticmethod
    def require_volume_id(volume_id: str) -> str:
        if not volume_id:
            raise InvalidArgument(details="Volume ID missing in request")
        return volume_id

    @staticmethod
    def require_capacity_range(request: ControllerExpandVolumeRequest) -> int:
        if request.capacity_range is None:
            raise InvalidArgument(details="CapacityRange cannot be empty")
        return request.capacity_range.required_bytes

    # Methods the controllers do not implement. They answer with empty
    # responses so the full controller surface stays callable.

    def controller_publish_volume(self, request=None) -> ControllerPublishVolumeResponse:
        return ControllerPublishVolumeResponse()

    def controller_unpublish_volume(self, request=None) -> ControllerUnpublishVolumeResponse:
        return ControllerUnpublishVolumeResponse()

    def validate_volume_capabilities(self, request=None):
        return None

    def list_volumes(self, request=None):
        return None

    def list_snapshots(self, request=None):
        return None

    def get_capacity(self, request=None):
        return None

    def controller_get_capabilities(self, request=None):
        return None

    def create_snapshot(self, request=None):
        return None

    def delete_snapshot(self, request=None):
        return None
