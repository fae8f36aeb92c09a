"""
Ibox CSI - volume provisioning controller for NFS-backed storage arrays.

This package translates container orchestrator volume lifecycle calls into
operations against the storage array management REST API, for both the
filesystem-per-volume (nfs) and the shared-filesystem treeq (nfs_treeq)
provisioning strategies.
"""

__version__ = "0.1.0"
__all__ = ["cli", "controller"]
