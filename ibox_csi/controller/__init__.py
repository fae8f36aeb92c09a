"""Provisioning controllers for the Ibox CSI driver.

This package provides one controller per storage class protocol:
- NfsController: one filesystem and export per volume ("nfs")
- TreeqController: treeqs on shared filesystems ("nfs_treeq")
"""

from typing import Optional

from .base import ControllerService
from .client import IboxClient
from .configuration import CONF_GROUP, ProvisionerConfig
from .exceptions import InvalidArgument
from .nfs import NfsController
from .treeq import TreeqController

CONTROLLERS = {
    NfsController.protocol: NfsController,
    TreeqController.protocol: TreeqController,
}


def get_controller(
    storage_protocol: str, client, config: Optional[ProvisionerConfig] = None
) -> ControllerService:
    """Return the controller for a storage class protocol.

    Raises:
        InvalidArgument: Unknown storage protocol
    """
    controller_class = CONTROLLERS.get((storage_protocol or "").strip().lower())
    if controller_class is None:
        raise InvalidArgument(
            details=f"unsupported storage_protocol {storage_protocol!r}, "
            f"valid options: {', '.join(sorted(CONTROLLERS))}"
        )
    return controller_class(client, config)


def build_client(conf, group: str = CONF_GROUP) -> IboxClient:
    """Create the array API client from registered oslo options."""
    opts = getattr(conf, group)
    return IboxClient(
        api_endpoint=opts.api_endpoint,
        timeout=opts.api_timeout,
        retry_count=opts.api_retry_count,
    )


__all__ = [
    "ControllerService",
    "IboxClient",
    "NfsController",
    "ProvisionerConfig",
    "TreeqController",
    "build_client",
    "get_controller",
]
