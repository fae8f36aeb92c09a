"""Shared filesystem treeq controller.

Volumes are treeqs (quota-bounded subtrees) inside shared filesystems. The
controller owns treeq creation, resize and deletion only; shared filesystem
placement is delegated to TreeqService.

Volume id format: {filesystem_id}#{treeq_id}#{max_filesystem_size}
"""

from typing import Optional

from oslo_log import log as logging

from .base import ControllerService
from .configuration import ProvisionerConfig
from .exceptions import (
    BackendFailure,
    IboxCSIException,
    IboxFilesystemNotFound,
    IboxTreeqNotFound,
    InvalidArgument,
    UnimplementedOperation,
)
from .models import (
    ControllerExpandVolumeRequest,
    ControllerExpandVolumeResponse,
    CreateVolumeRequest,
    CreateVolumeResponse,
    DeleteVolumeRequest,
    DeleteVolumeResponse,
    Volume,
)
from .treeq_service import MAX_FILESYSTEM_SIZE, TreeqService
from .utils import parse_size
from .volume_id import decode_treeq_id, encode_treeq_id

LOG = logging.getLogger(__name__)


class TreeqController(ControllerService):
    """Controller multiplexing volumes as treeqs on shared filesystems."""

    protocol = "nfs_treeq"

    def __init__(self, client, config: Optional[ProvisionerConfig] = None, treeq_service=None):
        super(TreeqController, self).__init__(client, config)
        self.treeq_service = treeq_service or TreeqService(client, self.config)

    def create_volume(self, request: CreateVolumeRequest) -> CreateVolumeResponse:
        """Create a treeq, or reuse an existing treeq with the same name.

        Raises:
            InvalidArgument: Missing or malformed treeq parameters
            IboxCSIException: Array operation failed
        """
        config = dict(request.parameters)
        pv_name = request.name
        LOG.debug("Creating filesystem %s of nfs_treeq protocol", pv_name)

        valid, errors = self.treeq_service.validate_treeq_parameters(config)
        if not valid:
            LOG.error("Failed to validate parameters for nfs_treeq protocol: %s", errors)
            raise InvalidArgument(
                details=f"invalid nfs_treeq storage class parameters: {', '.join(sorted(errors))}"
            )
        max_size = parse_size(config[MAX_FILESYSTEM_SIZE])

        capacity = self.normalize_capacity(request.required_bytes)
        try:
            volume_map = self.treeq_service.is_treeq_already_exist(
                config["pool_name"], config["network_space"].strip(), pv_name
            )
            if not volume_map:
                volume_map = self.treeq_service.create_treeq_volume(config, capacity, pv_name)
        except IboxCSIException:
            LOG.error("Failed to create treeq volume %s", pv_name)
            raise
        except Exception as e:
            LOG.exception("Failed to create treeq volume %s", pv_name)
            raise BackendFailure(details=f"error while creating treeq {pv_name}: {e}") from e

        volume_id = encode_treeq_id(int(volume_map["ID"]), int(volume_map["TREEQID"]), max_size)
        LOG.info("Treeq volume %s ready as %s", pv_name, volume_id)
        return CreateVolumeResponse(
            volume=Volume(
                volume_id=volume_id,
                capacity_bytes=capacity,
                volume_context=volume_map,
                content_source=request.volume_content_source,
            )
        )

    def delete_volume(self, request: DeleteVolumeRequest) -> DeleteVolumeResponse:
        """Delete the treeq of a volume.

        Unlike the nfs controller a malformed id is an error here. A parent
        filesystem or treeq that is already gone counts as deleted.
        """
        volume_id = self.require_volume_id(request.volume_id)
        ids = decode_treeq_id(volume_id)

        try:
            self.treeq_service.delete_treeq_volume(ids.filesystem_id, ids.treeq_id)
        except IboxFilesystemNotFound:
            LOG.warning("Filesystem %s already deleted, treeq %s is gone", ids.filesystem_id, ids.treeq_id)
            return DeleteVolumeResponse()
        except IboxTreeqNotFound:
            LOG.warning("Treeq %s already deleted from filesystem %s", ids.treeq_id, ids.filesystem_id)
            return DeleteVolumeResponse()
        except IboxCSIException:
            LOG.error("Failed to delete treeq volume %s", volume_id)
            raise
        except Exception as e:
            LOG.exception("Failed to delete treeq volume %s", volume_id)
            raise BackendFailure(details=f"error while deleting treeq {volume_id}: {e}") from e

        LOG.info("Treeq volume %s successfully deleted", volume_id)
        return DeleteVolumeResponse()

    def controller_expand_volume(
        self, request: ControllerExpandVolumeRequest
    ) -> ControllerExpandVolumeResponse:
        """Resize a treeq within the ceiling carried by its volume id.

        A treeq or parent filesystem that is already gone counts as expanded.
        """
        volume_id = self.require_volume_id(request.volume_id)
        required_bytes = self.require_capacity_range(request)
        ids = decode_treeq_id(volume_id)

        capacity = self.normalize_capacity(required_bytes)
        LOG.info("Expanding treeq volume %s to %d bytes", volume_id, capacity)
        try:
            self.treeq_service.update_treeq_volume(
                ids.filesystem_id, ids.treeq_id, capacity, ids.max_filesystem_size
            )
        except (IboxFilesystemNotFound, IboxTreeqNotFound) as e:
            LOG.warning("Treeq volume %s not found, nothing to expand: %s", volume_id, e)
            return ControllerExpandVolumeResponse(capacity_bytes=capacity, node_expansion_required=False)
        except IboxCSIException:
            LOG.error("Failed to expand treeq volume %s", volume_id)
            raise
        except Exception as e:
            LOG.exception("Failed to expand treeq volume %s", volume_id)
            raise BackendFailure(details=f"error while expanding treeq {volume_id}: {e}") from e

        return ControllerExpandVolumeResponse(capacity_bytes=capacity, node_expansion_required=False)

    def create_snapshot(self, request=None):
        raise UnimplementedOperation(operation="CreateSnapshot", protocol=self.protocol)

    def delete_snapshot(self, request=None):
        raise UnimplementedOperation(operation="DeleteSnapshot", protocol=self.protocol)
