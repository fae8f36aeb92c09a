"""Validation and capacity helpers shared by the controllers."""

import re
from typing import Dict, Iterable, List, Mapping, Optional, Tuple

from oslo_log import log as logging

from .exceptions import InvalidArgument
from .models import ExportPermission, ProvisionType

LOG = logging.getLogger(__name__)

KIB = 1024
MIB = KIB * 1024
GIB = MIB * 1024
TIB = GIB * 1024

_SIZE_UNITS = {
    "": 1,
    "B": 1,
    "K": KIB,
    "KB": 1000,
    "KIB": KIB,
    "M": MIB,
    "MB": 1000 ** 2,
    "MIB": MIB,
    "G": GIB,
    "GB": 1000 ** 3,
    "GIB": GIB,
    "T": TIB,
    "TB": 1000 ** 4,
    "TIB": TIB,
}

_SIZE_RE = re.compile(r"^\s*(\d+)\s*([A-Za-z]*)\s*$")

_TRUE_STRINGS = ("1", "t", "true", "y", "yes", "on")
_FALSE_STRINGS = ("0", "f", "false", "n", "no", "off")


def normalize_capacity(capacity: int, floor: int = GIB) -> int:
    """Raise a capacity request to the floor.

    Requests below the floor are never rejected, only raised.

    Args:
        capacity: Requested capacity in bytes
        floor: Minimum capacity in bytes

    Returns:
        Capacity in bytes, at least ``floor``
    """
    if capacity < floor:
        LOG.warning(
            "Requested capacity %d is below the minimum of %d bytes, using the minimum",
            capacity,
            floor,
        )
        return floor
    return capacity


def validate_parameters(
    config: Mapping[str, str], required: Iterable[str]
) -> Tuple[bool, Dict[str, str]]:
    """Check that all required storage class parameters are present.

    Returns:
        Tuple of (valid, {missing_key: reason})
    """
    missing = {}
    for param in required:
        if not str(config.get(param) or "").strip():
            missing[param] = f"{param} value missing"
    LOG.debug("Parameter validation completed, missing: %s", list(missing))
    return not missing, missing


def require_parameters(config: Mapping[str, str], required: Iterable[str], protocol: str) -> None:
    """Fail fast with InvalidArgument naming every missing parameter."""
    valid, missing = validate_parameters(config, required)
    if not valid:
        LOG.error("Failed to validate %s storage class parameters: %s", protocol, missing)
        raise InvalidArgument(
            details=f"missing {protocol} storage class parameters: {', '.join(sorted(missing))}"
        )


def get_pv_name(pv_name: str, pv_prefix: str = "") -> str:
    """Apply the configured volume name prefix.

    ``pvc-<uuid>`` becomes ``<prefix><uuid>`` unless the name already starts
    with the prefix or carries no ``-`` separated suffix.
    """
    if pv_prefix and not pv_name.startswith(pv_prefix):
        parts = pv_name.split("-", 1)
        if len(parts) > 1:
            return pv_prefix + parts[1]
    return pv_name


def parse_bool(value, default: bool = False) -> bool:
    """Parse a storage class boolean, falling back to the default."""
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    lowered = str(value).strip().lower()
    if lowered in _TRUE_STRINGS:
        return True
    if lowered in _FALSE_STRINGS:
        return False
    return default


def parse_int(config: Mapping[str, str], key: str) -> int:
    """Parse a required positive integer parameter."""
    raw = config.get(key)
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        raise InvalidArgument(details=f"{key} must be an integer, got {raw!r}")
    if value < 1:
        raise InvalidArgument(details=f"{key} must be positive, got {value}")
    return value


def parse_size(value) -> int:
    """Parse a size in bytes, optionally suffixed with a unit.

    Examples:
        "2147483648" -> 2147483648
        "4TiB" -> 4398046511104
        "100GB" -> 100000000000

    Raises:
        InvalidArgument: If the value is not a valid size
    """
    if isinstance(value, int):
        return value
    match = _SIZE_RE.match(str(value or ""))
    if not match:
        raise InvalidArgument(details=f"invalid size {value!r}")
    number, unit = match.groups()
    multiplier = _SIZE_UNITS.get(unit.upper())
    if multiplier is None:
        raise InvalidArgument(details=f"invalid size unit {unit!r} in {value!r}")
    return int(number) * multiplier


def build_export_permissions(config: Mapping[str, str], provisioner_config) -> List[ExportPermission]:
    """Derive the export permission list from storage class parameters.

    Defaults come from the injected ProvisionerConfig: read-write, no root
    squash and a wildcard client. The client filter is narrowed later when
    the volume is published.
    """
    access = config.get("nfs_export_permissions") or provisioner_config.nfs_export_permissions
    no_root_squash = parse_bool(config.get("no_root_squash"), provisioner_config.no_root_squash)
    try:
        permission = ExportPermission(
            access=access,
            client=provisioner_config.export_client,
            no_root_squash=no_root_squash,
        )
    except ValueError as e:
        raise InvalidArgument(details=f"invalid nfs_export_permissions {access!r}: {e}")
    return [permission]


def parse_provision_type(value) -> Optional[str]:
    """Parse an optional provision_type parameter.

    Returns:
        THIN or THICK, or None to use the array default

    Raises:
        InvalidArgument: If the value is neither THIN nor THICK
    """
    if value is None or not str(value).strip():
        return None
    try:
        return ProvisionType(str(value).strip().upper()).value
    except ValueError:
        valid = ", ".join(t.value for t in ProvisionType)
        raise InvalidArgument(details=f"invalid provision_type {value!r}, valid options: {valid}")
