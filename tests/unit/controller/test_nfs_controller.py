"""Unit tests for the exclusive filesystem nfs controller."""

from unittest.mock import Mock

import pytest

from ibox_csi.controller import exceptions
from ibox_csi.controller.configuration import ProvisionerConfig
from ibox_csi.controller.models import (
    CapacityRange,
    ControllerExpandVolumeRequest,
    CreateVolumeRequest,
    DeleteVolumeRequest,
    ExportRecord,
    VolumeCapability,
)
from ibox_csi.controller.nfs import NfsController

GIB = 1024 ** 3
MIB = 1024 ** 2


@pytest.fixture
def controller(mock_ibox_client, provisioner_config):
    return NfsController(mock_ibox_client, provisioner_config)


def _create_request(parameters, capacity=500 * MIB, name="pvc-1"):
    return CreateVolumeRequest(
        name=name,
        capacity_range=CapacityRange(required_bytes=capacity),
        parameters=parameters,
        volume_capabilities=[VolumeCapability(access_type="mount")],
    )


class TestCreateVolume:
    def test_create_volume_small_capacity(self, controller, mock_ibox_client, nfs_parameters):
        """500MiB is raised to 1GiB and the id is the filesystem id."""
        response = controller.create_volume(_create_request(nfs_parameters))

        assert response.volume.capacity_bytes == 1073741824
        assert response.volume.volume_id == "100"

        mock_ibox_client.one_time_validation.assert_called_once_with("p1", "ns1")
        create_kwargs = mock_ibox_client.create_filesystem.call_args.kwargs
        assert create_kwargs["name"] == "pvc-1"
        assert create_kwargs["pool_id"] == 3
        assert create_kwargs["size"] == 1073741824
        assert create_kwargs["ssd_enabled"] is False

        export = mock_ibox_client.export_filesystem.call_args.args[0]
        assert export.filesystem_id == 100
        assert export.export_path == "/fs/pvc-1"
        assert export.permissions[0].access == "RW"
        assert export.permissions[0].client == "*"
        assert export.permissions[0].no_root_squash is True

        mock_ibox_client.attach_metadata_to_object.assert_called_once_with(
            100, {"host.k8s.pvname": "pvc-1", "filesystem_type": ""}
        )
        mock_ibox_client.delete_filesystem.assert_not_called()
        mock_ibox_client.delete_export_path.assert_not_called()

    def test_create_volume_context(self, controller, nfs_parameters):
        response = controller.create_volume(_create_request(nfs_parameters, capacity=5 * GIB))
        context = response.volume.volume_context

        assert context["pool_name"] == "p1"
        assert context["ipAddress"] == "172.16.0.10"
        assert context["volPath"] == "/fs/pvc-1"
        assert context["volID"] == "100"
        assert context["volSize"] == str(5 * GIB)
        assert context["exportID"] == "200"
        assert context["fileSystemID"] == "100"
        assert context["exportBlock"] == "/fs/pvc-1"
        assert response.volume.capacity_bytes == 5 * GIB

    def test_create_volume_without_capacity_range(self, controller, nfs_parameters):
        request = CreateVolumeRequest(name="pvc-1", parameters=nfs_parameters)
        response = controller.create_volume(request)
        assert response.volume.capacity_bytes == GIB

    def test_create_volume_normalizes_network_space(self, controller, mock_ibox_client):
        mock_ibox_client.one_time_validation.return_value = "ns1,ns2"
        response = controller.create_volume(
            _create_request({"pool_name": "p1", "nfs_networkspace": " ns1, ns2,ns1"})
        )
        assert response.volume.volume_context["nfs_networkspace"] == "ns1,ns2"
        mock_ibox_client.get_network_space_ip.assert_called_once_with("ns1,ns2")

    def test_create_volume_applies_prefix_and_options(self, controller, mock_ibox_client):
        parameters = {
            "pool_name": "p1",
            "nfs_networkspace": "ns1",
            "vol_prefix": "csi-",
            "ssd_enabled": "true",
            "provision_type": "thin",
            "nfs_export_permissions": "RO",
            "no_root_squash": "false",
        }
        controller.create_volume(_create_request(parameters, name="pvc-abc"))

        create_kwargs = mock_ibox_client.create_filesystem.call_args.kwargs
        assert create_kwargs["name"] == "csi-abc"
        assert create_kwargs["ssd_enabled"] is True
        assert create_kwargs["provtype"] == "THIN"
        export = mock_ibox_client.export_filesystem.call_args.args[0]
        assert export.export_path == "/fs/csi-abc"
        assert export.permissions[0].access == "RO"
        assert export.permissions[0].no_root_squash is False

    @pytest.mark.parametrize(
        "parameters,missing",
        [
            ({}, "nfs_networkspace, pool_name"),
            ({"pool_name": "p1"}, "nfs_networkspace"),
            ({"nfs_networkspace": "ns1"}, "pool_name"),
        ],
    )
    def test_create_volume_missing_parameters(self, controller, mock_ibox_client, parameters, missing):
        with pytest.raises(exceptions.InvalidArgument, match=missing):
            controller.create_volume(_create_request(parameters))
        mock_ibox_client.one_time_validation.assert_not_called()
        mock_ibox_client.create_filesystem.assert_not_called()

    def test_create_volume_invalid_provision_type(self, controller, mock_ibox_client, nfs_parameters):
        nfs_parameters["provision_type"] = "sparse"

        with pytest.raises(exceptions.InvalidArgument, match="provision_type"):
            controller.create_volume(_create_request(nfs_parameters))
        mock_ibox_client.one_time_validation.assert_not_called()
        mock_ibox_client.create_filesystem.assert_not_called()

    def test_network_space_validation_failure(self, controller, mock_ibox_client, nfs_parameters):
        mock_ibox_client.one_time_validation.side_effect = exceptions.IboxNetworkSpaceNotFound(network_space="ns1")

        with pytest.raises(exceptions.IboxNetworkSpaceNotFound):
            controller.create_volume(_create_request(nfs_parameters))
        mock_ibox_client.create_filesystem.assert_not_called()

    def test_filesystem_limit_reached(self, controller, mock_ibox_client, nfs_parameters):
        mock_ibox_client.get_filesystem_count.return_value = 4000

        with pytest.raises(exceptions.IboxFilesystemLimitExceeded):
            controller.create_volume(_create_request(nfs_parameters))
        mock_ibox_client.create_filesystem.assert_not_called()

    def test_filesystem_limit_is_injected(self, mock_ibox_client, nfs_parameters):
        controller = NfsController(mock_ibox_client, ProvisionerConfig(max_filesystems=10))

        with pytest.raises(exceptions.IboxFilesystemLimitExceeded, match="10 of 10"):
            controller.create_volume(_create_request(nfs_parameters))

    def test_capacity_floor_is_injected(self, mock_ibox_client, nfs_parameters):
        controller = NfsController(mock_ibox_client, ProvisionerConfig(min_capacity_bytes=2 * GIB))
        response = controller.create_volume(_create_request(nfs_parameters))
        assert response.volume.capacity_bytes == 2 * GIB

    def test_filesystem_creation_failure(self, controller, mock_ibox_client, nfs_parameters):
        mock_ibox_client.create_filesystem.side_effect = exceptions.IboxAPIError(details="pool full")

        with pytest.raises(exceptions.IboxAPIError, match="pool full"):
            controller.create_volume(_create_request(nfs_parameters))
        mock_ibox_client.delete_filesystem.assert_not_called()


class TestCreateVolumeCompensation:
    def test_export_failure_deletes_filesystem_once(self, controller, mock_ibox_client, nfs_parameters):
        export_error = exceptions.IboxAPIError(details="export failed")
        mock_ibox_client.export_filesystem.side_effect = export_error

        with pytest.raises(exceptions.IboxAPIError) as exc_info:
            controller.create_volume(_create_request(nfs_parameters))

        assert exc_info.value is export_error
        mock_ibox_client.delete_filesystem.assert_called_once_with(100)
        mock_ibox_client.delete_export_path.assert_not_called()

    def test_export_failure_surfaces_original_error_when_revert_fails(
        self, controller, mock_ibox_client, nfs_parameters
    ):
        mock_ibox_client.export_filesystem.side_effect = exceptions.IboxAPIError(details="export failed")
        mock_ibox_client.delete_filesystem.side_effect = exceptions.IboxAPIError(details="delete failed")

        with pytest.raises(exceptions.IboxAPIError, match="export failed"):
            controller.create_volume(_create_request(nfs_parameters))
        mock_ibox_client.delete_filesystem.assert_called_once_with(100)

    def test_unexpected_export_fault_becomes_backend_failure(self, controller, mock_ibox_client, nfs_parameters):
        mock_ibox_client.export_filesystem.side_effect = RuntimeError("bad response")

        with pytest.raises(exceptions.BackendFailure, match="bad response"):
            controller.create_volume(_create_request(nfs_parameters))
        mock_ibox_client.delete_filesystem.assert_called_once_with(100)

    def test_ip_lookup_failure_deletes_export_only(self, controller, mock_ibox_client, nfs_parameters):
        mock_ibox_client.get_network_space_ip.side_effect = exceptions.IboxAPIError(details="no ip")

        with pytest.raises(exceptions.IboxAPIError, match="no ip"):
            controller.create_volume(_create_request(nfs_parameters))

        mock_ibox_client.delete_export_path.assert_called_once_with(200)
        mock_ibox_client.delete_filesystem.assert_not_called()

    def test_metadata_failure_deletes_export_only(self, controller, mock_ibox_client, nfs_parameters):
        mock_ibox_client.attach_metadata_to_object.side_effect = exceptions.IboxAPIError(details="metadata")

        with pytest.raises(exceptions.IboxAPIError, match="metadata"):
            controller.create_volume(_create_request(nfs_parameters))

        mock_ibox_client.delete_export_path.assert_called_once_with(200)
        mock_ibox_client.delete_filesystem.assert_not_called()

    def test_full_unwind_when_depth_is_zero(self, mock_ibox_client, nfs_parameters):
        controller = NfsController(mock_ibox_client, ProvisionerConfig(compensation_depth=0))
        mock_ibox_client.attach_metadata_to_object.side_effect = exceptions.IboxAPIError(details="metadata")

        with pytest.raises(exceptions.IboxAPIError):
            controller.create_volume(_create_request(nfs_parameters))

        mock_ibox_client.delete_export_path.assert_called_once_with(200)
        mock_ibox_client.delete_filesystem.assert_called_once_with(100)


class TestDeleteVolume:
    def test_delete_volume(self, controller, mock_ibox_client):
        mock_ibox_client.get_exports_by_filesystem.return_value = [
            ExportRecord(id=200, filesystem_id=100, export_path="/fs/pvc-1"),
            ExportRecord(id=201, filesystem_id=100, export_path="/fs/pvc-1-b"),
        ]
        order = Mock()
        order.attach_mock(mock_ibox_client.delete_export_path, "delete_export_path")
        order.attach_mock(mock_ibox_client.detach_metadata_from_object, "detach_metadata_from_object")
        order.attach_mock(mock_ibox_client.delete_filesystem, "delete_filesystem")

        controller.delete_volume(DeleteVolumeRequest(volume_id="100"))

        mock_ibox_client.get_exports_by_filesystem.assert_called_once_with(100)
        assert [c[0] for c in order.mock_calls] == [
            "delete_export_path",
            "delete_export_path",
            "detach_metadata_from_object",
            "delete_filesystem",
        ]
        mock_ibox_client.delete_filesystem.assert_called_once_with(100)

    def test_delete_volume_empty_id(self, controller):
        with pytest.raises(exceptions.InvalidArgument, match="Volume ID missing"):
            controller.delete_volume(DeleteVolumeRequest(volume_id=""))

    def test_delete_volume_malformed_id_is_noop(self, controller, mock_ibox_client):
        controller.delete_volume(DeleteVolumeRequest(volume_id="42#7#1"))
        mock_ibox_client.get_exports_by_filesystem.assert_not_called()
        mock_ibox_client.delete_filesystem.assert_not_called()

    def test_delete_volume_filesystem_already_absent(self, controller, mock_ibox_client):
        mock_ibox_client.delete_filesystem.side_effect = exceptions.IboxFilesystemNotFound(filesystem_id="100")
        mock_ibox_client.detach_metadata_from_object.side_effect = exceptions.IboxResourceNotFound(resource_id="100")

        controller.delete_volume(DeleteVolumeRequest(volume_id="100"))
        mock_ibox_client.delete_filesystem.assert_called_once_with(100)

    def test_delete_volume_export_already_absent(self, controller, mock_ibox_client):
        mock_ibox_client.get_exports_by_filesystem.return_value = [ExportRecord(id=200, filesystem_id=100)]
        mock_ibox_client.delete_export_path.side_effect = exceptions.IboxExportNotFound(export_id="200")

        controller.delete_volume(DeleteVolumeRequest(volume_id="100"))
        mock_ibox_client.delete_filesystem.assert_called_once_with(100)

    def test_delete_volume_stops_at_first_failure(self, controller, mock_ibox_client):
        mock_ibox_client.get_exports_by_filesystem.return_value = [ExportRecord(id=200, filesystem_id=100)]
        mock_ibox_client.delete_export_path.side_effect = exceptions.IboxAPIError(details="busy")

        with pytest.raises(exceptions.IboxAPIError, match="busy"):
            controller.delete_volume(DeleteVolumeRequest(volume_id="100"))
        mock_ibox_client.detach_metadata_from_object.assert_not_called()
        mock_ibox_client.delete_filesystem.assert_not_called()

    def test_delete_volume_unexpected_fault(self, controller, mock_ibox_client):
        mock_ibox_client.get_exports_by_filesystem.side_effect = TypeError("bad payload")

        with pytest.raises(exceptions.BackendFailure, match="bad payload"):
            controller.delete_volume(DeleteVolumeRequest(volume_id="100"))


class TestExpandVolume:
    def test_expand_volume(self, controller, mock_ibox_client):
        response = controller.controller_expand_volume(
            ControllerExpandVolumeRequest(volume_id="100", capacity_range=CapacityRange(required_bytes=3 * GIB))
        )
        mock_ibox_client.update_filesystem.assert_called_once_with(100, 3 * GIB)
        assert response.capacity_bytes == 3 * GIB
        assert response.node_expansion_required is False

    def test_expand_volume_below_floor(self, controller, mock_ibox_client):
        response = controller.controller_expand_volume(
            ControllerExpandVolumeRequest(volume_id="100", capacity_range=CapacityRange(required_bytes=MIB))
        )
        mock_ibox_client.update_filesystem.assert_called_once_with(100, GIB)
        assert response.capacity_bytes == GIB

    def test_expand_volume_missing_capacity_range(self, controller, mock_ibox_client):
        with pytest.raises(exceptions.InvalidArgument, match="CapacityRange"):
            controller.controller_expand_volume(ControllerExpandVolumeRequest(volume_id="100"))
        mock_ibox_client.update_filesystem.assert_not_called()

    def test_expand_volume_malformed_id(self, controller, mock_ibox_client):
        with pytest.raises(exceptions.InvalidArgument):
            controller.controller_expand_volume(
                ControllerExpandVolumeRequest(volume_id="abc", capacity_range=CapacityRange(required_bytes=GIB))
            )
        mock_ibox_client.update_filesystem.assert_not_called()

    def test_expand_volume_filesystem_already_absent(self, controller, mock_ibox_client):
        mock_ibox_client.update_filesystem.side_effect = exceptions.IboxFilesystemNotFound(filesystem_id="100")

        response = controller.controller_expand_volume(
            ControllerExpandVolumeRequest(volume_id="100", capacity_range=CapacityRange(required_bytes=GIB))
        )

        mock_ibox_client.update_filesystem.assert_called_once_with(100, GIB)
        assert response.capacity_bytes == GIB
        assert response.node_expansion_required is False

    def test_expand_volume_backend_error(self, controller, mock_ibox_client):
        mock_ibox_client.update_filesystem.side_effect = exceptions.IboxAPIError(details="resize failed")
        with pytest.raises(exceptions.IboxAPIError, match="resize failed"):
            controller.controller_expand_volume(
                ControllerExpandVolumeRequest(volume_id="100", capacity_range=CapacityRange(required_bytes=GIB))
            )


class TestUnimplementedSurface:
    def test_publish_and_unpublish_return_empty_responses(self, controller):
        assert controller.controller_publish_volume().publish_context == {}
        assert controller.controller_unpublish_volume() is not None

    @pytest.mark.parametrize(
        "method",
        [
            "validate_volume_capabilities",
            "list_volumes",
            "list_snapshots",
            "get_capacity",
            "controller_get_capabilities",
            "create_snapshot",
            "delete_snapshot",
        ],
    )
    def test_empty_responses(self, controller, method):
        assert getattr(controller, method)(None) is None
