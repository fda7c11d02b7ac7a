"""Asset domain exceptions."""

from src.core.domain.exceptions import DomainException, EntityNotFoundError


class AssetNotFoundError(EntityNotFoundError):
    """Raised when neither the cache nor any configured source yields content."""

    error_code = "E_NOTFOUND"

    def __init__(self, asset_key: str):
        super().__init__("Asset", asset_key)
        self.asset_key = asset_key


class AssetNetworkError(DomainException):
    """Raised on transport failure or inactivity-timeout abort."""

    error_code = "E_NETWORK"

    def __init__(self, url: str, reason: str, status_code: int | None = None):
        super().__init__(f"Cannot fetch {url}: {reason}")
        self.url = url
        self.reason = reason
        self.status_code = status_code


class InvalidAssetContentError(DomainException):
    """Raised when a response body is empty or looks like an HTML page."""

    error_code = "E_INVALID_CONTENT"

    def __init__(self, url: str, reason: str):
        super().__init__(f"Invalid content from {url}: {reason}")
        self.url = url
        self.reason = reason


class ManifestParseError(DomainException):
    """Raised when an asset manifest is not a JSON object."""

    error_code = "E_MANIFEST"

    def __init__(self, message: str):
        super().__init__(f"Invalid asset manifest: {message}")
