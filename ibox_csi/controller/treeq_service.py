"""Treeq placement on shared filesystems.

Treeq volumes live inside shared filesystems named with the configured
prefix. A new treeq goes into the first shared filesystem of the pool that
has room for it (treeq count below max_treeqs_per_filesystem, size after
growth within max_filesystem_size). When none has room a new shared
filesystem is created and exported, as long as fewer than max_filesystems
exist.
"""

import posixpath
import uuid
from typing import Any, Dict, Mapping, Optional, Tuple

from oslo_log import log as logging

from .compensation import CompensationChain
from .configuration import ProvisionerConfig
from .exceptions import (
    IboxCapacityExceeded,
    IboxFilesystemLimitExceeded,
    InvalidArgument,
)
from .models import ExportRequest, FilesystemRecord, TreeqRecord
from .utils import (
    build_export_permissions,
    parse_bool,
    parse_int,
    parse_provision_type,
    parse_size,
    validate_parameters,
)

LOG = logging.getLogger(__name__)

MAX_FILESYSTEMS = "max_filesystems"
MAX_TREEQS_PER_FILESYSTEM = "max_treeqs_per_filesystem"
MAX_FILESYSTEM_SIZE = "max_filesystem_size"

TREEQ_REQUIRED_PARAMETERS = (
    "pool_name",
    "network_space",
    MAX_FILESYSTEMS,
    MAX_TREEQS_PER_FILESYSTEM,
    MAX_FILESYSTEM_SIZE,
)
TREEQ_FILESYSTEM_METADATA_KEY = "host.k8s.treeq_filesystem"


class TreeqService:
    """Creates, resizes and deletes treeqs on behalf of the treeq controller."""

    def __init__(self, client, config: Optional[ProvisionerConfig] = None):
        self.client = client
        self.config = config or ProvisionerConfig()

    def validate_treeq_parameters(self, config: Mapping[str, str]) -> Tuple[bool, Dict[str, str]]:
        """Check required treeq parameters are present and well formed.

        Returns:
            Tuple of (valid, {parameter: reason})
        """
        valid, errors = validate_parameters(config, TREEQ_REQUIRED_PARAMETERS)
        for key in (MAX_FILESYSTEMS, MAX_TREEQS_PER_FILESYSTEM):
            if key not in errors:
                try:
                    parse_int(config, key)
                except InvalidArgument as e:
                    errors[key] = str(e)
        if MAX_FILESYSTEM_SIZE not in errors:
            try:
                parse_size(config[MAX_FILESYSTEM_SIZE])
            except InvalidArgument as e:
                errors[MAX_FILESYSTEM_SIZE] = str(e)
        try:
            parse_provision_type(config.get("provision_type"))
        except InvalidArgument as e:
            errors["provision_type"] = str(e)
        return not errors, errors

    def _shared_filesystems(self, pool_id: int):
        return self.client.list_filesystems(pool_id=pool_id, name_prefix=self.config.treeq_filesystem_prefix)

    def _volume_map(self, filesystem: FilesystemRecord, treeq: TreeqRecord, network_space: str) -> Dict[str, str]:
        exports = self.client.get_exports_by_filesystem(filesystem.id)
        export_path = exports[0].export_path if exports else ""
        return {
            "ID": str(filesystem.id),
            "TREEQID": str(treeq.id),
            "treeqName": treeq.name,
            "ipAddress": self.client.get_network_space_ip(network_space),
            "volumePath": posixpath.join(export_path, treeq.path.lstrip("/")) if export_path else treeq.path,
            "exportPath": export_path,
        }

    def is_treeq_already_exist(self, pool_name: str, network_space: str, name: str) -> Dict[str, str]:
        """Look up a treeq by name in the shared filesystems of a pool.

        Returns:
            Volume map of the existing treeq, or an empty dict
        """
        pool_id = self.client.get_storage_pool_id_by_name(pool_name)
        for filesystem in self._shared_filesystems(pool_id):
            treeq = self.client.get_treeq_by_name(filesystem.id, name)
            if treeq is not None:
                LOG.info("Treeq %s already exists in filesystem %s", name, filesystem.id)
                return self._volume_map(filesystem, treeq, network_space)
        return {}

    def create_treeq_volume(self, config: Mapping[str, str], capacity: int, name: str) -> Dict[str, str]:
        """Create a treeq, growing or creating a shared filesystem for it.

        Args:
            config: Validated treeq storage class parameters
            capacity: Normalized treeq capacity in bytes
            name: Treeq name

        Returns:
            Volume map of the new treeq

        Raises:
            IboxCapacityExceeded: capacity exceeds max_filesystem_size
            IboxFilesystemLimitExceeded: No room and max_filesystems reached
        """
        max_filesystems = parse_int(config, MAX_FILESYSTEMS)
        max_treeqs = parse_int(config, MAX_TREEQS_PER_FILESYSTEM)
        max_size = parse_size(config[MAX_FILESYSTEM_SIZE])
        if capacity > max_size:
            raise IboxCapacityExceeded(requested=capacity, maximum=max_size)

        network_space = self.client.one_time_validation(config["pool_name"], config["network_space"])
        pool_id = self.client.get_storage_pool_id_by_name(config["pool_name"])

        filesystems = self._shared_filesystems(pool_id)
        for filesystem in filesystems:
            if filesystem.size + capacity > max_size:
                continue
            if self.client.get_treeq_count(filesystem.id) >= max_treeqs:
                continue
            LOG.debug("Placing treeq %s in shared filesystem %s", name, filesystem.id)
            treeq = self._create_in_existing_filesystem(filesystem, capacity, name)
            return self._volume_map(filesystem, treeq, network_space)

        if len(filesystems) >= max_filesystems:
            raise IboxFilesystemLimitExceeded(count=len(filesystems), limit=max_filesystems)
        count = self.client.get_filesystem_count()
        if count >= self.config.max_filesystems:
            raise IboxFilesystemLimitExceeded(count=count, limit=self.config.max_filesystems)

        filesystem, treeq = self._create_in_new_filesystem(config, pool_id, capacity, name)
        return self._volume_map(filesystem, treeq, network_space)

    def _create_in_existing_filesystem(self, filesystem: FilesystemRecord, capacity: int, name: str) -> TreeqRecord:
        chain = (
            CompensationChain(f"create treeq {name}", depth=None)
            .add_step(
                "grow_filesystem",
                lambda state: self.client.update_filesystem(filesystem.id, filesystem.size + capacity),
                lambda state: self.client.update_filesystem(filesystem.id, filesystem.size),
            )
            .add_step(
                "create_treeq",
                lambda state: self.client.create_treeq(filesystem.id, name, f"/{name}", capacity),
            )
        )
        result = chain.run()
        result.raise_for_error()
        return result.state["create_treeq"]

    def _create_in_new_filesystem(
        self, config: Mapping[str, str], pool_id: int, capacity: int, name: str
    ) -> Tuple[FilesystemRecord, TreeqRecord]:
        fs_name = f"{self.config.treeq_filesystem_prefix}{uuid.uuid4().hex[:12]}"
        LOG.info("Creating shared filesystem %s for treeq %s", fs_name, name)

        def create_filesystem(state: Dict[str, Any]) -> FilesystemRecord:
            return self.client.create_filesystem(
                name=fs_name,
                pool_id=pool_id,
                size=capacity,
                ssd_enabled=parse_bool(config.get("ssd_enabled"), False),
                provtype=parse_provision_type(config.get("provision_type")),
            )

        def create_export(state: Dict[str, Any]):
            return self.client.export_filesystem(
                ExportRequest(
                    filesystem_id=state["create_filesystem"].id,
                    export_path=posixpath.join(self.config.data_root, fs_name),
                    permissions=build_export_permissions(config, self.config),
                    transport_protocols=self.config.transport_protocols,
                    privileged_port=self.config.privileged_port,
                )
            )

        chain = (
            CompensationChain(f"create shared filesystem {fs_name}", depth=None)
            .add_step(
                "create_filesystem",
                create_filesystem,
                lambda state: self.client.delete_filesystem(state["create_filesystem"].id),
            )
            .add_step(
                "create_export",
                create_export,
                lambda state: self.client.delete_export_path(state["create_export"].id),
            )
            .add_step(
                "attach_metadata",
                lambda state: self.client.attach_metadata_to_object(
                    state["create_filesystem"].id, {TREEQ_FILESYSTEM_METADATA_KEY: "true"}
                ),
                lambda state: self.client.detach_metadata_from_object(state["create_filesystem"].id),
            )
            .add_step(
                "create_treeq",
                lambda state: self.client.create_treeq(state["create_filesystem"].id, name, f"/{name}", capacity),
            )
        )
        result = chain.run()
        result.raise_for_error()
        return result.state["create_filesystem"], result.state["create_treeq"]

    def delete_treeq_volume(self, filesystem_id: int, treeq_id: int) -> None:
        """Delete a treeq and give its capacity back to the shared filesystem.

        The parent filesystem itself is never deleted here.

        Raises:
            IboxFilesystemNotFound: Parent filesystem already gone
            IboxTreeqNotFound: Treeq already gone
        """
        treeq = self.client.get_treeq(filesystem_id, treeq_id)
        self.client.delete_treeq(filesystem_id, treeq_id)

        try:
            filesystem = self.client.get_filesystem(filesystem_id)
            new_size = max(filesystem.size - treeq.hard_capacity, self.config.min_capacity_bytes)
            if new_size < filesystem.size:
                self.client.update_filesystem(filesystem_id, new_size)
        except Exception as e:
            # The treeq is gone; an oversized parent filesystem is harmless.
            LOG.warning("Failed to shrink filesystem %s after deleting treeq %s: %s", filesystem_id, treeq_id, e)

    def update_treeq_volume(self, filesystem_id: int, treeq_id: int, capacity: int, max_size: int) -> None:
        """Resize a treeq, growing its shared filesystem when needed.

        Raises:
            IboxCapacityExceeded: The parent filesystem would exceed max_size
        """
        treeq = self.client.get_treeq(filesystem_id, treeq_id)
        filesystem = self.client.get_filesystem(filesystem_id)

        required = filesystem.size - treeq.hard_capacity + capacity
        if required > max_size:
            raise IboxCapacityExceeded(requested=required, maximum=max_size)
        if required > filesystem.size:
            self.client.update_filesystem(filesystem_id, required)

        self.client.update_treeq(filesystem_id, treeq_id, capacity)
        LOG.info("Treeq %s in filesystem %s resized to %d bytes", treeq_id, filesystem_id, capacity)
