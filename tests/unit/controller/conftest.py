"""Pytest configuration and fixtures for controller unit tests."""

from unittest.mock import Mock

import pytest

from ibox_csi.controller.configuration import ProvisionerConfig
from ibox_csi.controller.models import (
    ExportPermission,
    ExportRecord,
    FilesystemRecord,
    TreeqRecord,
)

GIB = 1024 ** 3


@pytest.fixture
def provisioner_config():
    """Default thresholds injected into the controllers."""
    return ProvisionerConfig()


@pytest.fixture
def mock_ibox_client():
    """Create a mock array API client."""
    client = Mock()

    # Pool / network space
    client.one_time_validation.return_value = "ns1"
    client.get_storage_pool_id_by_name.return_value = 3
    client.get_network_space_ip.return_value = "172.16.0.10"

    # Filesystems
    client.get_filesystem_count.return_value = 10
    client.create_filesystem.return_value = FilesystemRecord(id=100, name="pvc-1", size=GIB, pool_id=3)
    client.get_filesystem.return_value = FilesystemRecord(id=100, name="csit_abc", size=10 * GIB, pool_id=3)
    client.get_filesystem_by_name.return_value = None
    client.list_filesystems.return_value = []
    client.update_filesystem.return_value = FilesystemRecord(id=100, size=2 * GIB)
    client.delete_filesystem.return_value = None

    # Exports
    client.export_filesystem.return_value = ExportRecord(
        id=200,
        filesystem_id=100,
        export_path="/fs/pvc-1",
        permissions=[ExportPermission(access="RW", client="*", no_root_squash=True)],
    )
    client.get_exports_by_filesystem.return_value = []
    client.delete_export_path.return_value = None

    # Metadata
    client.attach_metadata_to_object.return_value = []
    client.detach_metadata_from_object.return_value = None

    # Treeqs
    client.get_treeq_by_name.return_value = None
    client.get_treeq_count.return_value = 0
    client.create_treeq.return_value = TreeqRecord(
        id=7, filesystem_id=100, name="pvc-1", path="/pvc-1", hard_capacity=GIB
    )
    client.get_treeq.return_value = TreeqRecord(
        id=7, filesystem_id=100, name="pvc-1", path="/pvc-1", hard_capacity=GIB
    )
    client.update_treeq.return_value = TreeqRecord(id=7, filesystem_id=100, hard_capacity=2 * GIB)
    client.delete_treeq.return_value = None

    return client


@pytest.fixture
def nfs_parameters():
    return {"pool_name": "p1", "nfs_networkspace": "ns1"}


@pytest.fixture
def treeq_parameters():
    return {
        "pool_name": "p1",
        "network_space": "ns1",
        "max_filesystems": "10",
        "max_treeqs_per_filesystem": "100",
        "max_filesystem_size": "2147483648",
    }
