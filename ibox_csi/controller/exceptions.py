"""Ibox CSI controller exceptions."""


class IboxCSIException(Exception):
    """Base exception for controller errors."""

    message = "An unknown exception occurred."
    code = "INTERNAL"

    def __init__(self, message=None, **kwargs):
        """Initialize exception with optional custom message."""
        self.kwargs = kwargs
        if message:
            self.message = message
        super(IboxCSIException, self).__init__(self.message % kwargs)


class InvalidArgument(IboxCSIException):
    """Missing or malformed request argument."""

    message = "Invalid argument: %(details)s"
    code = "INVALID_ARGUMENT"


class BackendFailure(IboxCSIException):
    """A multi-step operation against the array failed."""

    message = "Backend operation failed: %(details)s"


class UnimplementedOperation(IboxCSIException):
    """Controller method not supported by this provisioning strategy."""

    message = "Unsupported operation %(operation)s for %(protocol)s"
    code = "UNIMPLEMENTED"


# Backend gateway errors


class IboxAPIError(IboxCSIException):
    """API returned an error response."""

    message = "API error occurred: %(details)s"

    def __init__(self, message=None, error_code=None, status_code=None, **kwargs):
        self.error_code = error_code
        self.status_code = status_code
        super(IboxAPIError, self).__init__(message, **kwargs)


class IboxAPIConnectionError(IboxCSIException):
    """API connection error."""

    message = "Failed to connect to array API: %(details)s"


class IboxAPITimeout(IboxCSIException):
    """API timeout error."""

    message = "Array API request timed out after %(timeout)s seconds"


class IboxResourceNotFound(IboxCSIException):
    """Generic resource not found error.

    Base class for the resource specific "not found" exceptions raised by
    the client. Callers that only care that something is already gone catch
    this class.
    """

    message = "Resource %(resource_id)s not found"
    code = "NOT_FOUND"


class IboxFilesystemNotFound(IboxResourceNotFound):
    """Filesystem not found."""

    message = "Filesystem %(filesystem_id)s not found"


class IboxExportNotFound(IboxResourceNotFound):
    """Export not found."""

    message = "Export %(export_id)s not found"


class IboxTreeqNotFound(IboxResourceNotFound):
    """Treeq not found."""

    message = "Treeq %(treeq_id)s not found"


class IboxPoolNotFound(IboxResourceNotFound):
    """Storage pool not found."""

    message = "Pool %(pool_name)s not found"


class IboxNetworkSpaceNotFound(IboxResourceNotFound):
    """Network space not found."""

    message = "Network space %(network_space)s not found"


class IboxFilesystemLimitExceeded(IboxCSIException):
    """The array cannot hold any more filesystems.

    This is a non-retryable error: an operator must delete filesystems or
    raise the configured ceiling.
    """

    message = "Filesystem limit reached: %(count)s of %(limit)s filesystems in use"
    code = "RESOURCE_EXHAUSTED"


class IboxCapacityExceeded(IboxCSIException):
    """Requested capacity does not fit under the shared filesystem ceiling."""

    message = "Capacity %(requested)s exceeds maximum filesystem size %(maximum)s"
    code = "RESOURCE_EXHAUSTED"
