"""Domain events and the synchronous observer bus."""

from abc import ABC
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, ClassVar
from uuid import uuid4

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field


class DomainEvent(BaseModel, ABC):
    """Base class for all domain events.

    每个子类通过 topic 类属性声明自己在观察者总线上的主题名。
    """

    topic: ClassVar[str] = ""

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    event_version: int = Field(default=1)

    model_config = ConfigDict(frozen=True)


Observer = Callable[[str, Any], Any]


class ObserverBus:
    """Synchronous publish/subscribe bus.

    Observers are called in subscription order. The last non-None value any
    observer returns is handed back to the publisher, which uses it as an
    override (veto) signal.
    """

    def __init__(self) -> None:
        self._observers: list[Observer] = []

    def subscribe(self, observer: Observer) -> None:
        if any(existing is observer for existing in self._observers):
            return
        self._observers.append(observer)
        logger.debug(f"Subscribed observer {_observer_name(observer)}")

    def unsubscribe(self, observer: Observer) -> None:
        self._observers = [
            existing for existing in self._observers if existing is not observer
        ]

    def notify(self, topic: str, payload: Any = None) -> Any:
        result: Any = None
        for observer in list(self._observers):
            try:
                value = observer(topic, payload)
            except Exception as e:
                logger.error(
                    f"Error notifying {_observer_name(observer)} of {topic}: {e}"
                )
                continue
            if value is not None:
                result = value
        return result

    def publish(self, event: DomainEvent) -> Any:
        """Notify observers of a domain event under its declared topic."""
        return self.notify(event.topic, event)

    def __len__(self) -> int:
        return len(self._observers)


def _observer_name(observer: Observer) -> str:
    return getattr(observer, "__qualname__", observer.__class__.__name__)
