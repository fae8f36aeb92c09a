"""Configuration options for the Ibox CSI controller."""

from dataclasses import dataclass
from typing import List, Optional

from oslo_config import cfg
from oslo_log import log as logging

# Configuration group name
CONF_GROUP = "ibox_csi"

GIB = 1024 ** 3


def _get_ibox_csi_opts():
    """Get Ibox CSI controller configuration options.

    Returns:
        List of oslo_config options
    """
    return [
        # API Configuration
        cfg.StrOpt(
            "api_endpoint",
            default=None,
            help="Array management REST API endpoint URL (e.g., https://ibox01.example.com)",
        ),
        cfg.IntOpt(
            "api_timeout",
            default=30,
            min=1,
            max=300,
            help="API request timeout in seconds",
        ),
        cfg.IntOpt(
            "api_retry_count",
            default=0,
            min=0,
            max=10,
            help=(
                "Number of retries for transient failures of read-only API "
                "requests. Mutating requests are never retried."
            ),
        ),
        # Provisioning thresholds
        cfg.IntOpt(
            "min_capacity_bytes",
            default=GIB,
            min=1,
            help=(
                "Capacity floor in bytes. Smaller requests are raised to this "
                "value before being sent to the array."
            ),
        ),
        cfg.IntOpt(
            "max_filesystems",
            default=4000,
            min=1,
            help="Maximum number of filesystems the array allows",
        ),
        # Export defaults
        cfg.StrOpt(
            "nfs_export_permissions",
            default="RW",
            choices=["RW", "RO"],
            help="Default export access level, overridable per storage class",
        ),
        cfg.BoolOpt(
            "no_root_squash",
            default=True,
            help="Default export root squash policy, overridable per storage class",
        ),
        cfg.StrOpt(
            "export_client",
            default="*",
            help="Client filter of the default export permission",
        ),
        cfg.StrOpt(
            "data_root",
            default="/fs",
            help="Prefix of export paths created for exclusive filesystems",
        ),
        cfg.StrOpt(
            "transport_protocols",
            default="TCP",
            help="Export transport protocols",
        ),
        cfg.BoolOpt(
            "privileged_port",
            default=True,
            help="Require clients to connect from a privileged port",
        ),
        # Treeq configuration
        cfg.StrOpt(
            "treeq_filesystem_prefix",
            default="csit_",
            help="Name prefix of shared filesystems that hold treeq volumes",
        ),
        # Rollback policy
        cfg.IntOpt(
            "compensation_depth",
            default=1,
            min=0,
            help=(
                "Number of completed steps unwound when a multi-step create "
                "fails. 1 reverses only the immediately preceding resource; "
                "0 unwinds every completed step."
            ),
        ),
    ]


def register_opts(conf, group=None):
    """Register Ibox CSI configuration options.

    Args:
        conf: oslo_config.cfg.ConfigOpts instance
        group: Configuration group name (default: CONF_GROUP)
    """
    if group is None:
        group = CONF_GROUP
    conf.register_opts(_get_ibox_csi_opts(), group=group)


def list_opts():
    """Return a list of Ibox CSI options for oslo-config-generator.

    Returns:
        List of (group_name, options) tuples
    """
    return [
        (CONF_GROUP, _get_ibox_csi_opts()),
    ]


def get_ibox_csi_opts():
    """Get Ibox CSI configuration options (public API)."""
    return _get_ibox_csi_opts()


def load_config(config_file: Optional[str] = None, args: Optional[List[str]] = None):
    """Build a private ConfigOpts with the controller and logging options registered.

    Args:
        config_file: Optional path to an ini file holding an [ibox_csi] group
        args: Command line arguments to parse (default: none)

    Returns:
        Parsed oslo_config.cfg.ConfigOpts instance
    """
    conf = cfg.ConfigOpts()
    logging.register_options(conf)
    register_opts(conf)
    default_config_files = [config_file] if config_file else []
    conf(args=args or [], project="ibox-csi", default_config_files=default_config_files)
    return conf


@dataclass(frozen=True)
class ProvisionerConfig:
    """Thresholds and defaults injected into each controller.

    Attributes:
        min_capacity_bytes: Capacity floor applied to every request
        max_filesystems: Filesystem-count ceiling of the array
        nfs_export_permissions: Default export access level
        no_root_squash: Default export root squash policy
        export_client: Default export client filter
        data_root: Prefix of exclusive filesystem export paths
        transport_protocols: Export transport protocols
        privileged_port: Require privileged client ports
        treeq_filesystem_prefix: Name prefix of shared treeq filesystems
        compensation_depth: Completed steps to unwind on failure (0 = all)
    """

    min_capacity_bytes: int = GIB
    max_filesystems: int = 4000
    nfs_export_permissions: str = "RW"
    no_root_squash: bool = True
    export_client: str = "*"
    data_root: str = "/fs"
    transport_protocols: str = "TCP"
    privileged_port: bool = True
    treeq_filesystem_prefix: str = "csit_"
    compensation_depth: int = 1

    @classmethod
    def from_conf(cls, conf, group: str = CONF_GROUP) -> "ProvisionerConfig":
        """Build the injected configuration from registered oslo options."""
        opts = getattr(conf, group)
        return cls(
            min_capacity_bytes=opts.min_capacity_bytes,
            max_filesystems=opts.max_filesystems,
            nfs_export_permissions=opts.nfs_export_permissions,
            no_root_squash=opts.no_root_squash,
            export_client=opts.export_client,
            data_root=opts.data_root,
            transport_protocols=opts.transport_protocols,
            privileged_port=opts.privileged_port,
            treeq_filesystem_prefix=opts.treeq_filesystem_prefix,
            compensation_depth=opts.compensation_depth,
        )
