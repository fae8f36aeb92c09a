"""REST API client for the storage array management API.

This is the backend gateway the controllers call: filesystem, export,
metadata, pool, network space and treeq operations.
"""

from typing import Any, Dict, List, Optional

import requests
from oslo_log import log as logging
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .exceptions import (
    IboxAPIConnectionError,
    IboxAPIError,
    IboxAPITimeout,
    IboxExportNotFound,
    IboxFilesystemNotFound,
    IboxNetworkSpaceNotFound,
    IboxPoolNotFound,
    IboxResourceNotFound,
    IboxTreeqNotFound,
)
from .models import (
    ExportRecord,
    ExportRequest,
    FilesystemRecord,
    NetworkSpace,
    TreeqRecord,
)

LOG = logging.getLogger(__name__)

API_PREFIX = "/api/rest"
NAS_SERVICE = "NAS_SERVICE"
DEFAULT_PAGE_SIZE = 1000

# Array error codes mapped to specific "not found" exceptions
_NOT_FOUND_ERRORS = {
    "EXPORT_NOT_FOUND": (IboxExportNotFound, "export_id"),
    "TREEQ_NOT_FOUND": (IboxTreeqNotFound, "treeq_id"),
    "POOL_NOT_FOUND": (IboxPoolNotFound, "pool_name"),
    "NETWORK_SPACE_NOT_FOUND": (IboxNetworkSpaceNotFound, "network_space"),
}


class IboxClient:
    """REST API client for the storage array.

    Each method is a single request (or a paginated read) against the array;
    the controllers compose them into multi-step workflows.
    """

    def __init__(
        self,
        api_endpoint: str,
        timeout: int = 30,
        retry_count: int = 0,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the array API client.

        Args:
            api_endpoint: Array management URL (e.g., https://ibox01.example.com)
            timeout: HTTP request timeout in seconds
            retry_count: Retries for failed read-only requests
            session: Optional pre-configured requests session

        Raises:
            ValueError: If api_endpoint is empty
        """
        if not api_endpoint:
            raise ValueError("api_endpoint is required")

        self.base_url = api_endpoint.rstrip("/")
        self.timeout = timeout
        self.retry_count = retry_count

        # Create session with connection pooling
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})

        # Only retry safe methods (GET) to avoid duplicate operations
        if retry_count:
            retry_strategy = Retry(
                total=retry_count,
                backoff_factor=1,
                status_forcelist=[429, 500, 502, 503, 504],
                allowed_methods=["GET"],
            )
            adapter = HTTPAdapter(max_retries=retry_strategy)
            self.session.mount("http://", adapter)
            self.session.mount("https://", adapter)

    @staticmethod
    def _extract_resource_id(path: str, collection: Optional[str] = None) -> str:
        """Extract a resource id from a path.

        Examples:
            /api/rest/filesystems/42 -> 42
            /api/rest/filesystems/42/treeqs/7 -> 7
            /api/rest/filesystems/42/treeqs/7 (collection="filesystems") -> 42
        """
        parts = [p for p in path.split("/") if p]
        if collection in parts:
            idx = parts.index(collection)
            if idx + 1 < len(parts):
                return parts[idx + 1]
        for part in reversed(parts):
            if part.isdigit():
                return part
        return parts[-1] if parts else "unknown"

    def _raise_not_found(self, path: str, error_code: Optional[str]):
        if error_code == "FILESYSTEM_NOT_FOUND":
            raise IboxFilesystemNotFound(filesystem_id=self._extract_resource_id(path, "filesystems"))
        if error_code in _NOT_FOUND_ERRORS:
            exc_class, key = _NOT_FOUND_ERRORS[error_code]
            raise exc_class(**{key: self._extract_resource_id(path)})

        resource_id = self._extract_resource_id(path)
        if "/treeqs/" in path:
            raise IboxTreeqNotFound(treeq_id=resource_id)
        elif "/filesystems/" in path:
            raise IboxFilesystemNotFound(filesystem_id=resource_id)
        elif "/exports/" in path:
            raise IboxExportNotFound(export_id=resource_id)
        raise IboxResourceNotFound(resource_id=resource_id)

    def _make_request(
        self,
        method: str,
        path: str,
        json_data: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Make HTTP request to the array API.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE)
            path: API path below the REST prefix (e.g., /filesystems)
            json_data: Request body as JSON
            params: Query parameters

        Returns:
            Response envelope ({"result": ..., "metadata": ...}); empty dict
            for 204 No Content

        Raises:
            IboxAPIConnectionError: Connection failed
            IboxAPITimeout: Request timed out
            IboxResourceNotFound: Resource not found (or a subclass)
            IboxAPIError: API returned any other error
        """
        path = API_PREFIX + (path if path.startswith("/") else f"/{path}")
        url = self.base_url + path

        LOG.debug("Making %s request to %s with params=%s, json_data=%s", method, path, params, json_data)

        try:
            response = self.session.request(
                method=method,
                url=url,
                json=json_data,
                params=params,
                timeout=self.timeout,
            )
        except requests.exceptions.Timeout:
            LOG.error("Request timeout after %ss: %s", self.timeout, path)
            raise IboxAPITimeout(timeout=self.timeout)
        except requests.exceptions.ConnectionError as e:
            LOG.error("Connection error: %s, %s", path, e)
            raise IboxAPIConnectionError(details=str(e))
        except requests.exceptions.RequestException as e:
            LOG.error("Request exception: %s, %s", path, e)
            raise IboxAPIError(details=str(e))

        LOG.debug("Response status: %s", response.status_code)

        if response.status_code >= 400:
            error_code = None
            try:
                error = response.json().get("error") or {}
                error_code = error.get("code")
                error_msg = error.get("message") or response.text
            except (ValueError, AttributeError):
                # Non-JSON error response
                error_msg = response.text

            if response.status_code == 404 or (error_code or "").endswith("_NOT_FOUND"):
                LOG.warning("Resource not found: %s, error: %s", path, error_msg)
                self._raise_not_found(path, error_code)

            LOG.error("API error: HTTP %s, %s %s", response.status_code, error_code, error_msg)
            raise IboxAPIError(
                details=f"HTTP {response.status_code}: {error_code or ''} {error_msg}".strip(),
                error_code=error_code,
                status_code=response.status_code,
            )

        if response.status_code == 204:
            return {}

        return response.json()

    def _get_all(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Read every page of a collection."""
        params = dict(params or {})
        params.setdefault("page_size", DEFAULT_PAGE_SIZE)
        page = 1
        items: List[Dict[str, Any]] = []
        while True:
            params["page"] = page
            response = self._make_request("GET", path, params=params)
            items.extend(response.get("result") or [])
            pages_total = (response.get("metadata") or {}).get("pages_total") or 1
            if page >= pages_total:
                return items
            page += 1

    # Pool and network space operations

    def get_storage_pool_id_by_name(self, name: str) -> int:
        """Resolve a storage pool id by name.

        Raises:
            IboxPoolNotFound: Pool does not exist
        """
        response = self._make_request("GET", "/pools", params={"name": name, "fields": "id"})
        items = response.get("result") or []
        if not items:
            raise IboxPoolNotFound(pool_name=name)
        return items[0]["id"]

    def get_network_space(self, name: str) -> NetworkSpace:
        """Get a network space by name.

        Raises:
            IboxNetworkSpaceNotFound: Network space does not exist
        """
        response = self._make_request("GET", "/network/spaces", params={"name": name})
        items = response.get("result") or []
        if not items:
            raise IboxNetworkSpaceNotFound(network_space=name)
        return NetworkSpace.model_validate(items[0])

    def one_time_validation(self, pool_name: str, network_space: str) -> str:
        """Validate the pool and network spaces named by a storage class.

        Args:
            pool_name: Storage pool name
            network_space: Comma separated network space names

        Returns:
            The normalized network space list (trimmed, de-duplicated,
            comma separated)

        Raises:
            IboxPoolNotFound: Pool does not exist
            IboxNetworkSpaceNotFound: A network space does not exist
            IboxAPIError: A network space does not provide NAS service
        """
        self.get_storage_pool_id_by_name(pool_name)

        names: List[str] = []
        for name in network_space.split(","):
            name = name.strip()
            if name and name not in names:
                names.append(name)
        if not names:
            raise IboxNetworkSpaceNotFound(network_space=network_space)

        for name in names:
            space = self.get_network_space(name)
            if space.service != NAS_SERVICE:
                raise IboxAPIError(
                    details=f"network space {name} provides {space.service}, not {NAS_SERVICE}"
                )
        return ",".join(names)

    def get_network_space_ip(self, network_space: str) -> str:
        """Return an enabled IP address of the first listed network space.

        Raises:
            IboxNetworkSpaceNotFound: Network space does not exist
            IboxAPIError: Network space has no enabled IP address
        """
        name = network_space.split(",")[0].strip()
        space = self.get_network_space(name)
        ips = space.enabled_ips()
        if not ips:
            raise IboxAPIError(details=f"network space {name} has no enabled IP address")
        return ips[0]

    # Filesystem operations

    def get_filesystem_count(self) -> int:
        """Return the number of filesystems on the array."""
        response = self._make_request("GET", "/filesystems", params={"page_size": 1, "fields": "id"})
        return int((response.get("metadata") or {}).get("number_of_objects", 0))

    def create_filesystem(
        self,
        name: str,
        pool_id: int,
        size: int,
        ssd_enabled: bool = False,
        provtype: Optional[str] = None,
    ) -> FilesystemRecord:
        """Create a filesystem.

        Args:
            name: Filesystem name
            pool_id: Storage pool id
            size: Size in bytes
            ssd_enabled: Enable the SSD cache tier
            provtype: THIN or THICK (array default when None)

        Returns:
            Created filesystem record

        Raises:
            IboxAPIError: API error
        """
        data = {"name": name, "pool_id": pool_id, "size": size, "ssd_enabled": ssd_enabled}
        if provtype:
            data["provtype"] = provtype
        try:
            response = self._make_request("POST", "/filesystems", json_data=data)
        except IboxAPITimeout as timeout_exc:
            # Timeout occurred - check if filesystem was actually created
            LOG.warning("Timeout creating filesystem %s, checking actual state...", name)
            existing = self.get_filesystem_by_name(name)
            if existing is None:
                LOG.error("Filesystem %s was not created after timeout", name)
                raise timeout_exc
            LOG.info("Filesystem %s was created despite timeout", name)
            return existing
        filesystem = FilesystemRecord.model_validate(response.get("result") or {})
        LOG.info("Created filesystem %s (id %s) in pool %s", name, filesystem.id, pool_id)
        return filesystem

    def get_filesystem(self, filesystem_id: int) -> FilesystemRecord:
        response = self._make_request("GET", f"/filesystems/{filesystem_id}")
        return FilesystemRecord.model_validate(response.get("result") or {})

    def get_filesystem_by_name(self, name: str) -> Optional[FilesystemRecord]:
        response = self._make_request("GET", "/filesystems", params={"name": name})
        items = response.get("result") or []
        if not items:
            return None
        return FilesystemRecord.model_validate(items[0])

    def list_filesystems(
        self, pool_id: Optional[int] = None, name_prefix: Optional[str] = None
    ) -> List[FilesystemRecord]:
        """List filesystems, optionally filtered by pool and name prefix."""
        params: Dict[str, Any] = {}
        if pool_id is not None:
            params["pool_id"] = pool_id
        if name_prefix:
            params["name"] = f"like:{name_prefix}"
        filesystems = [FilesystemRecord.model_validate(item) for item in self._get_all("/filesystems", params)]
        if name_prefix:
            filesystems = [fs for fs in filesystems if fs.name.startswith(name_prefix)]
        return filesystems

    def update_filesystem(self, filesystem_id: int, size: int) -> FilesystemRecord:
        """Resize a filesystem.

        Raises:
            IboxFilesystemNotFound: Filesystem not found
            IboxAPIError: API error
        """
        response = self._make_request("PUT", f"/filesystems/{filesystem_id}", json_data={"size": size})
        LOG.info("Resized filesystem %s to %d bytes", filesystem_id, size)
        return FilesystemRecord.model_validate(response.get("result") or {"id": filesystem_id, "size": size})

    def delete_filesystem(self, filesystem_id: int) -> None:
        """Delete a filesystem.

        Raises:
            IboxFilesystemNotFound: Filesystem not found
            IboxAPIError: API error
        """
        self._make_request("DELETE", f"/filesystems/{filesystem_id}", params={"approved": "true"})
        LOG.info("Deleted filesystem %s", filesystem_id)

    # Export operations

    def export_filesystem(self, export: ExportRequest) -> ExportRecord:
        """Create an NFS export of a filesystem.

        Raises:
            IboxAPIError: API error
        """
        response = self._make_request("POST", "/exports", json_data=export.model_dump())
        record = ExportRecord.model_validate(response.get("result") or {})
        LOG.info("Created export %s (id %s) for filesystem %s", record.export_path, record.id, export.filesystem_id)
        return record

    def get_exports_by_filesystem(self, filesystem_id: int) -> List[ExportRecord]:
        """List the exports of a filesystem."""
        items = self._get_all("/exports", params={"filesystem_id": filesystem_id})
        return [ExportRecord.model_validate(item) for item in items]

    def delete_export_path(self, export_id: int) -> None:
        """Delete an export.

        Raises:
            IboxExportNotFound: Export not found
            IboxAPIError: API error
        """
        self._make_request("DELETE", f"/exports/{export_id}", params={"approved": "true"})
        LOG.info("Deleted export %s", export_id)

    # Metadata operations

    def attach_metadata_to_object(self, object_id: int, metadata: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Attach key/value metadata to an array object."""
        response = self._make_request("PUT", f"/metadata/{object_id}", json_data=metadata)
        return response.get("result") or []

    def detach_metadata_from_object(self, object_id: int) -> None:
        """Remove all metadata of an array object."""
        self._make_request("DELETE", f"/metadata/{object_id}", params={"approved": "true"})

    # Treeq operations

    def list_treeqs(self, filesystem_id: int, name: Optional[str] = None) -> List[TreeqRecord]:
        params = {"name": name} if name else None
        items = self._get_all(f"/filesystems/{filesystem_id}/treeqs", params)
        return [
            TreeqRecord.model_validate({**item, "filesystem_id": filesystem_id}) for item in items
        ]

    def get_treeq_by_name(self, filesystem_id: int, name: str) -> Optional[TreeqRecord]:
        for treeq in self.list_treeqs(filesystem_id, name=name):
            if treeq.name == name:
                return treeq
        return None

    def get_treeq_count(self, filesystem_id: int) -> int:
        response = self._make_request(
            "GET", f"/filesystems/{filesystem_id}/treeqs", params={"page_size": 1, "fields": "id"}
        )
        return int((response.get("metadata") or {}).get("number_of_objects", 0))

    def get_treeq(self, filesystem_id: int, treeq_id: int) -> TreeqRecord:
        response = self._make_request("GET", f"/filesystems/{filesystem_id}/treeqs/{treeq_id}")
        return TreeqRecord.model_validate({**(response.get("result") or {}), "filesystem_id": filesystem_id})

    def create_treeq(self, filesystem_id: int, name: str, path: str, hard_capacity: int) -> TreeqRecord:
        """Create a treeq inside a filesystem.

        Raises:
            IboxFilesystemNotFound: Parent filesystem not found
            IboxAPIError: API error
        """
        data = {"name": name, "path": path, "hard_capacity": hard_capacity}
        response = self._make_request("POST", f"/filesystems/{filesystem_id}/treeqs", json_data=data)
        treeq = TreeqRecord.model_validate({**(response.get("result") or {}), "filesystem_id": filesystem_id})
        LOG.info("Created treeq %s (id %s) in filesystem %s", name, treeq.id, filesystem_id)
        return treeq

    def update_treeq(self, filesystem_id: int, treeq_id: int, hard_capacity: int) -> TreeqRecord:
        response = self._make_request(
            "PUT",
            f"/filesystems/{filesystem_id}/treeqs/{treeq_id}",
            json_data={"hard_capacity": hard_capacity},
        )
        LOG.info("Resized treeq %s in filesystem %s to %d bytes", treeq_id, filesystem_id, hard_capacity)
        return TreeqRecord.model_validate(
            {**(response.get("result") or {"id": treeq_id}), "filesystem_id": filesystem_id}
        )

    def delete_treeq(self, filesystem_id: int, treeq_id: int) -> None:
        """Delete a treeq.

        Raises:
            IboxFilesystemNotFound: Parent filesystem not found
            IboxTreeqNotFound: Treeq not found
            IboxAPIError: API error
        """
        self._make_request("DELETE", f"/filesystems/{filesystem_id}/treeqs/{treeq_id}", params={"approved": "true"})
        LOG.info("Deleted treeq %s from filesystem %s", treeq_id, filesystem_id)
