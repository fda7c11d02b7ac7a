"""Asset domain entities."""

from enum import StrEnum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from src.modules.assets.domain.exceptions import AssetNotFoundError
from src.modules.assets.domain.urls import is_external_url

DAY_MS = 86_400_000


class ContentKind(StrEnum):
    """How an asset's content must be retrieved."""

    GENERIC = "generic"
    FILTER_LIST = "filters"


def _parse_content_kind(value: Any) -> ContentKind:
    if isinstance(value, ContentKind):
        return value
    if value in ("filters", "filter-list"):
        return ContentKind.FILTER_LIST
    return ContentKind.GENERIC


class SourceError(BaseModel):
    """Last failure recorded against an asset source."""

    time: int = Field(..., description="失败时间（epoch ms）")
    message: str = Field(..., description="错误信息")


class AssetSource(BaseModel):
    """Source registry entry - where and how often to fetch an asset.

    Unknown manifest fields (title, group, supportURL, ...) are kept as extra
    attributes so that they survive a persistence round trip.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    content_url: list[str] = Field(default_factory=list, alias="contentURL")
    has_local_url: bool = Field(default=False, alias="hasLocalURL")
    has_remote_url: bool = Field(default=False, alias="hasRemoteURL")
    update_after: float = Field(default=5, ge=0, alias="updateAfter")
    content: Annotated[ContentKind, BeforeValidator(_parse_content_kind)] = (
        ContentKind.GENERIC
    )
    submitter: str | None = Field(default=None)
    submit_time: int | None = Field(default=None, alias="submitTime")
    last_error: SourceError | None = Field(default=None, alias="lastError")

    @property
    def is_user_contributed(self) -> bool:
        return bool(self.submitter)

    @property
    def remote_urls(self) -> list[str]:
        return [url for url in self.content_url if is_external_url(url)]

    def to_record(self) -> dict[str, Any]:
        """Serialize using the persisted (manifest) field names."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class AssetCacheEntry(BaseModel):
    """Cache registry entry - the last successful local snapshot of an asset."""

    model_config = ConfigDict(populate_by_name=True)

    write_time: int = Field(default=0, alias="writeTime")
    read_time: int = Field(default=0, alias="readTime")
    remote_url: str | None = Field(default=None, alias="remoteURL")

    def is_obsolete(self, update_after_days: float, now_ms: int) -> bool:
        return now_ms - self.write_time > update_after_days * DAY_MS

    def to_record(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class AssetMetadata(BaseModel):
    """Combined source + cache view of one asset, as returned by metadata()."""

    asset_key: str
    source: AssetSource
    cached: bool = False
    obsolete: bool = False
    write_time: int = 0
    remote_url: str | None = None

    @property
    def last_error(self) -> SourceError | None:
        return self.source.last_error


class AssetContent(BaseModel):
    """Outcome of an asset read: content on success, an error code otherwise."""

    asset_key: str
    content: str = ""
    url: str | None = None
    error: str | None = None

    @property
    def found(self) -> bool:
        return self.error is None and self.content != ""

    @classmethod
    def not_found(cls, asset_key: str) -> "AssetContent":
        return cls(asset_key=asset_key, error=AssetNotFoundError.error_code)
