"""Exclusive filesystem NFS controller.

Each volume is backed by its own filesystem with a single NFS export:

    - Volume id: the filesystem id
    - Export path: {data_root}/{pv_name}
    - Metadata: the orchestrator volume name is attached to the filesystem

Creation is a CompensationChain. With the default depth of 1 a failed step
reverses only the immediately preceding resource: a failed export deletes
the filesystem, a failed IP lookup or metadata attach deletes the export.
"""

import posixpath
from typing import Any, Dict

from oslo_log import log as logging

from .base import ControllerService
from .compensation import CompensationChain
from .exceptions import (
    BackendFailure,
    IboxCSIException,
    IboxExportNotFound,
    IboxFilesystemLimitExceeded,
    IboxFilesystemNotFound,
    IboxResourceNotFound,
    InvalidArgument,
)
from .models import (
    ControllerExpandVolumeRequest,
    ControllerExpandVolumeResponse,
    CreateVolumeRequest,
    CreateVolumeResponse,
    DeleteVolumeRequest,
    DeleteVolumeResponse,
    ExportRequest,
    Volume,
)
from .utils import (
    build_export_permissions,
    get_pv_name,
    parse_bool,
    parse_provision_type,
    require_parameters,
)
from .volume_id import decode_filesystem_id, encode_filesystem_id

LOG = logging.getLogger(__name__)

NFS_REQUIRED_PARAMETERS = ("pool_name", "nfs_networkspace")
PV_NAME_METADATA_KEY = "host.k8s.pvname"


class NfsController(ControllerService):
    """Controller provisioning one filesystem and export per volume."""

    protocol = "nfs"

    def create_volume(self, request: CreateVolumeRequest) -> CreateVolumeResponse:
        """Create a filesystem, export it and tag it with the volume name.

        Args:
            request: CreateVolume request

        Returns:
            CreateVolumeResponse whose volume id is the filesystem id

        Raises:
            InvalidArgument: Missing pool_name or nfs_networkspace, or a bad
                provision_type
            IboxCSIException: The first failing step's error
        """
        config = dict(request.parameters)
        pv_name = get_pv_name(request.name, config.get("vol_prefix", ""))
        LOG.info("Creating nfs volume %s, parameters %s", pv_name, config)

        require_parameters(config, NFS_REQUIRED_PARAMETERS, self.protocol)
        provtype = parse_provision_type(config.get("provision_type"))

        capacity = self.normalize_capacity(request.required_bytes)
        LOG.info("Volume %s capacity %d bytes, access types %s", pv_name, capacity, request.access_types())

        state = {
            "pv_name": pv_name,
            "config": config,
            "capacity": capacity,
            "provtype": provtype,
            "export_path": posixpath.join(self.config.data_root, pv_name),
        }
        chain = (
            CompensationChain(f"create nfs volume {pv_name}", depth=self.config.compensation_depth)
            .add_step("validate_network_space", self._validate_network_space)
            .add_step("create_filesystem", self._create_filesystem, self._delete_created_filesystem)
            .add_step("create_export", self._create_export, self._delete_created_export)
            .add_step("get_network_space_ip", self._get_network_space_ip)
            .add_step("attach_metadata", self._attach_metadata)
        )
        result = chain.run(state)
        if not result.ok:
            LOG.error("Failed to create nfs volume %s at step %s", pv_name, result.failed_step)
            result.raise_for_error()

        filesystem = state["create_filesystem"]
        export = state["create_export"]
        volume_id = encode_filesystem_id(filesystem.id)

        config.update(
            {
                "ipAddress": state["get_network_space_ip"],
                "volPath": state["export_path"],
                "volID": volume_id,
                "volSize": str(capacity),
                "exportID": str(export.id),
                "fileSystemID": str(filesystem.id),
                "exportBlock": export.export_path,
            }
        )
        LOG.info("Created nfs volume %s with filesystem %s", pv_name, filesystem.id)
        return CreateVolumeResponse(
            volume=Volume(
                volume_id=volume_id,
                capacity_bytes=capacity,
                volume_context=config,
                content_source=request.volume_content_source,
            )
        )

    # Create steps

    def _validate_network_space(self, state: Dict[str, Any]) -> str:
        config = state["config"]
        network_space = self.client.one_time_validation(config["pool_name"], config["nfs_networkspace"])
        config["nfs_networkspace"] = network_space
        LOG.debug("Network space validation succeeded: %s", network_space)
        return network_space

    def _create_filesystem(self, state: Dict[str, Any]):
        config = state["config"]
        count = self.client.get_filesystem_count()
        LOG.debug("Filesystems on array: %d of %d allowed", count, self.config.max_filesystems)
        if count >= self.config.max_filesystems:
            raise IboxFilesystemLimitExceeded(count=count, limit=self.config.max_filesystems)

        pool_id = self.client.get_storage_pool_id_by_name(config["pool_name"])
        return self.client.create_filesystem(
            name=state["pv_name"],
            pool_id=pool_id,
            size=state["capacity"],
            ssd_enabled=parse_bool(config.get("ssd_enabled"), False),
            provtype=state["provtype"],
        )

    def _delete_created_filesystem(self, state: Dict[str, Any]) -> None:
        filesystem = state["create_filesystem"]
        LOG.info("Reverting filesystem %s", filesystem.id)
        self.client.delete_filesystem(filesystem.id)

    def _create_export(self, state: Dict[str, Any]):
        export = ExportRequest(
            filesystem_id=state["create_filesystem"].id,
            export_path=state["export_path"],
            permissions=build_export_permissions(state["config"], self.config),
            transport_protocols=self.config.transport_protocols,
            privileged_port=self.config.privileged_port,
        )
        return self.client.export_filesystem(export)

    def _delete_created_export(self, state: Dict[str, Any]) -> None:
        export = state["create_export"]
        LOG.info("Reverting export %s", export.id)
        self.client.delete_export_path(export.id)

    def _get_network_space_ip(self, state: Dict[str, Any]) -> str:
        return self.client.get_network_space_ip(state["config"]["nfs_networkspace"])

    def _attach_metadata(self, state: Dict[str, Any]):
        metadata = {PV_NAME_METADATA_KEY: state["pv_name"], "filesystem_type": ""}
        return self.client.attach_metadata_to_object(state["create_filesystem"].id, metadata)

    # Delete / expand

    def delete_volume(self, request: DeleteVolumeRequest) -> DeleteVolumeResponse:
        """Delete the exports, metadata and filesystem of a volume.

        A volume id that is not a filesystem id is treated as nothing to
        delete. Steps stop at the first failure; there is nothing to
        compensate on the delete path.
        """
        volume_id = self.require_volume_id(request.volume_id)
        try:
            filesystem_id = decode_filesystem_id(volume_id)
        except InvalidArgument as e:
            LOG.warning("Invalid volume id %s, nothing to delete: %s", volume_id, e)
            return DeleteVolumeResponse()

        try:
            self._delete_nfs_volume(filesystem_id)
        except IboxFilesystemNotFound:
            LOG.warning("Filesystem %s not found, already deleted", filesystem_id)
        except IboxCSIException:
            LOG.error("Failed to delete nfs volume %s", volume_id)
            raise
        except Exception as e:
            LOG.exception("Failed to delete nfs volume %s", volume_id)
            raise BackendFailure(details=f"error while deleting filesystem {filesystem_id}: {e}") from e

        LOG.info("Volume %s successfully deleted", volume_id)
        return DeleteVolumeResponse()

    def _delete_nfs_volume(self, filesystem_id: int) -> None:
        for export in self.client.get_exports_by_filesystem(filesystem_id):
            try:
                self.client.delete_export_path(export.id)
            except IboxExportNotFound:
                LOG.warning("Export %s not found, already deleted", export.id)
        LOG.debug("Exports of filesystem %s deleted", filesystem_id)

        try:
            self.client.detach_metadata_from_object(filesystem_id)
        except IboxFilesystemNotFound:
            raise
        except IboxResourceNotFound:
            LOG.warning("No metadata attached to filesystem %s", filesystem_id)

        LOG.info("Deleting filesystem %s", filesystem_id)
        self.client.delete_filesystem(filesystem_id)

    def controller_expand_volume(
        self, request: ControllerExpandVolumeRequest
    ) -> ControllerExpandVolumeResponse:
        """Resize the filesystem backing a volume in a single array call.

        A filesystem that is already gone counts as expanded.
        """
        volume_id = self.require_volume_id(request.volume_id)
        required_bytes = self.require_capacity_range(request)
        filesystem_id = decode_filesystem_id(volume_id)

        capacity = self.normalize_capacity(required_bytes)
        LOG.info("Expanding nfs volume %s to %d bytes", volume_id, capacity)
        try:
            self.client.update_filesystem(filesystem_id, capacity)
        except IboxFilesystemNotFound:
            LOG.warning("Filesystem %s not found, nothing to expand", filesystem_id)
            return ControllerExpandVolumeResponse(capacity_bytes=capacity, node_expansion_required=False)
        except IboxCSIException:
            LOG.error("Failed to update filesystem %s", filesystem_id)
            raise
        except Exception as e:
            LOG.exception("Failed to update filesystem %s", filesystem_id)
            raise BackendFailure(details=f"error while expanding filesystem {filesystem_id}: {e}") from e

        LOG.info("Filesystem %s updated successfully", filesystem_id)
        return ControllerExpandVolumeResponse(capacity_bytes=capacity, node_expansion_required=False)
