"""Asset domain events."""

from typing import Any, ClassVar

from pydantic import Field

from src.core.domain.events import DomainEvent
from src.modules.assets.domain.entities import ContentKind


class SourceAddedEvent(DomainEvent):
    """Event raised when a manifest introduces a new asset source."""

    topic: ClassVar[str] = "source-added"

    asset_key: str = Field(..., description="资源键")
    record: dict[str, Any] = Field(default_factory=dict, description="清单中的源记录")


class AssetUpdatedEvent(DomainEvent):
    """Event raised after cached content was written or removed."""

    topic: ClassVar[str] = "asset-updated"

    asset_key: str = Field(..., description="资源键")
    content: str | None = Field(default=None, description="新内容，删除时为空")


class UpdateCycleStartedEvent(DomainEvent):
    """Event raised when an update cycle begins."""

    topic: ClassVar[str] = "cycle-started"


class BeforeAssetUpdateEvent(DomainEvent):
    """Vetoable event raised before an asset is refreshed.

    A truthy observer result skips the asset for the current cycle.
    """

    topic: ClassVar[str] = "before-update"

    asset_key: str = Field(..., description="资源键")
    content_kind: ContentKind = Field(..., description="内容类型")


class AssetUpdateFailedEvent(DomainEvent):
    """Event raised when refreshing an asset failed."""

    topic: ClassVar[str] = "update-failed"

    asset_key: str = Field(..., description="资源键")


class UpdateCycleFinishedEvent(DomainEvent):
    """Event raised when an update cycle ends."""

    topic: ClassVar[str] = "cycle-finished"

    updated_keys: list[str] = Field(default_factory=list, description="本周期更新成功的资源")
