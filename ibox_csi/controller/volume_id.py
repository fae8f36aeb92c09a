"""Encoding and decoding of the opaque volume identifier.

The identifier handed to the orchestrator is the only persisted state of a
volume, so it must carry every backend id later calls need:

    nfs:        "<filesystem_id>"
    nfs_treeq:  "<filesystem_id>#<treeq_id>#<max_filesystem_size>"

The treeq form also carries the size ceiling of the shared filesystem, which
the array cannot report back later.
"""

from typing import NamedTuple

from .exceptions import InvalidArgument
from .utils import parse_size

TREEQ_DELIMITER = "#"
TREEQ_FIELD_COUNT = 3


class TreeqVolumeID(NamedTuple):
    filesystem_id: int
    treeq_id: int
    max_filesystem_size: int


def _parse_id(value: str, field: str, volume_id: str) -> int:
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(details=f"{field} {value!r} in volume id {volume_id!r} is not an integer")
    if parsed < 0:
        raise InvalidArgument(details=f"{field} in volume id {volume_id!r} is negative")
    return parsed


def _parse_size_field(value: str, volume_id: str) -> int:
    # Older ids carry the storage class value verbatim, e.g. "4TiB".
    try:
        return parse_size(value)
    except InvalidArgument:
        raise InvalidArgument(details=f"max filesystem size {value!r} in volume id {volume_id!r} is not a size")


def encode_filesystem_id(filesystem_id: int) -> str:
    """Encode an exclusive filesystem volume id."""
    return str(int(filesystem_id))


def decode_filesystem_id(volume_id: str) -> int:
    """Decode an exclusive filesystem volume id.

    Raises:
        InvalidArgument: If the id is not a non-negative integer
    """
    return _parse_id((volume_id or "").strip(), "filesystem id", volume_id)


def encode_treeq_id(filesystem_id: int, treeq_id: int, max_filesystem_size: int) -> str:
    """Encode a treeq volume id."""
    return TREEQ_DELIMITER.join(
        str(int(field)) for field in (filesystem_id, treeq_id, max_filesystem_size)
    )


def decode_treeq_id(volume_id: str) -> TreeqVolumeID:
    """Decode a treeq volume id.

    All three fields are mandatory; a wrong field count is a hard failure
    rather than a partial parse. The size ceiling is a byte count, or a size
    with a unit suffix such as "4TiB".

    Raises:
        InvalidArgument: If the id is malformed
    """
    fields = (volume_id or "").split(TREEQ_DELIMITER)
    if len(fields) != TREEQ_FIELD_COUNT:
        raise InvalidArgument(
            details=f"volume id {volume_id!r} must have {TREEQ_FIELD_COUNT} "
            f"{TREEQ_DELIMITER!r}-separated fields, got {len(fields)}"
        )
    return TreeqVolumeID(
        filesystem_id=_parse_id(fields[0], "filesystem id", volume_id),
        treeq_id=_parse_id(fields[1], "treeq id", volume_id),
        max_filesystem_size=_parse_size_field(fields[2], volume_id),
    )
