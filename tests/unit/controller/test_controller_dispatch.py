"""Unit tests for storage protocol dispatch."""

from unittest.mock import Mock, patch

import pytest

from ibox_csi.controller import NfsController, TreeqController, build_client, get_controller
from ibox_csi.controller.configuration import ProvisionerConfig
from ibox_csi.controller.exceptions import InvalidArgument


class TestGetController:
    @pytest.mark.parametrize(
        "protocol,expected",
        [("nfs", NfsController), ("nfs_treeq", TreeqController), (" NFS_TREEQ ", TreeqController)],
    )
    def test_known_protocols(self, mock_ibox_client, protocol, expected):
        controller = get_controller(protocol, mock_ibox_client)
        assert isinstance(controller, expected)
        assert controller.client is mock_ibox_client
        assert controller.config == ProvisionerConfig()

    def test_config_is_injected(self, mock_ibox_client):
        config = ProvisionerConfig(max_filesystems=5)
        assert get_controller("nfs", mock_ibox_client, config).config is config

    @pytest.mark.parametrize("protocol", ["iscsi", "", None])
    def test_unknown_protocol(self, mock_ibox_client, protocol):
        with pytest.raises(InvalidArgument, match="nfs, nfs_treeq"):
            get_controller(protocol, mock_ibox_client)


class TestBuildClient:
    def test_build_client(self):
        with patch("ibox_csi.controller.IboxClient") as mock_client_class:
            conf = Mock()
            conf.ibox_csi.api_endpoint = "https://ibox01"
            conf.ibox_csi.api_timeout = 5
            conf.ibox_csi.api_retry_count = 1

            build_client(conf)

            mock_client_class.assert_called_once_with(api_endpoint="https://ibox01", timeout=5, retry_count=1)
