"""Logging configuration with structlog integration.

提供两种日志记录方式：
1. loguru: 用于一般调试日志
2. structlog: 用于关键业务事件的结构化日志
"""

import sys
from typing import Any

import structlog
from loguru import logger

from src.core.config import Settings, settings


def setup_logging(config: Settings | None = None) -> None:
    """Configure application logging with structlog and loguru."""
    config = config or settings

    # 配置 structlog
    _configure_structlog(config)

    # 配置 loguru
    _configure_loguru(config)

    logger.info(f"Logging configured with level: {config.LOG_LEVEL}")


def _configure_structlog(config: Settings) -> None:
    """配置 structlog 处理器链。"""
    # 根据环境选择渲染器
    if config.ENVIRONMENT == "local":
        # 本地开发使用人类可读格式
        renderer = structlog.dev.ConsoleRenderer(colors=True)
    else:
        # 生产环境使用 JSON 格式
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.CallsiteParameterAdder(
                [
                    structlog.processors.CallsiteParameter.MODULE,
                    structlog.processors.CallsiteParameter.FUNC_NAME,
                    structlog.processors.CallsiteParameter.LINENO,
                ]
            ),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            _get_log_level_number(config.LOG_LEVEL)
        ),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def _configure_loguru(config: Settings) -> None:
    """配置 loguru。"""
    logger.remove()

    logger.add(
        sys.stderr,
        level=config.LOG_LEVEL,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
            "<level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        colorize=True,
    )

    if config.ENVIRONMENT != "local":
        logger.add(
            "logs/assetkeeper_{time:YYYY-MM-DD}.log",
            rotation="00:00",
            retention="30 days",
            level="INFO",
            format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {name}:{function}:{line} - {message}",
        )


def _get_log_level_number(level: str) -> int:
    """将日志级别字符串转换为数字。"""
    levels = {
        "DEBUG": 10,
        "INFO": 20,
        "WARNING": 30,
        "ERROR": 40,
        "CRITICAL": 50,
    }
    return levels.get(level.upper(), 20)


# ============================================================================
# 业务事件日志记录器
# ============================================================================


def get_business_logger() -> structlog.BoundLogger:
    """获取业务事件日志记录器。

    Usage:
        from src.core.infrastructure.logging import get_business_logger

        log = get_business_logger()
        log.info("asset_cached", asset_key="easylist", size=1024)
    """
    return structlog.get_logger("business")


class BusinessEvents:
    """业务事件日志助手类。

    Usage:
        from src.core.infrastructure.logging import BusinessEvents

        BusinessEvents.asset_updated(asset_key="easylist", remote_url="https://...")
    """

    _log = structlog.get_logger("business.events")

    @classmethod
    def asset_updated(
        cls,
        asset_key: str,
        remote_url: str | None,
        size: int,
        **extra: Any,
    ) -> None:
        """记录资源写入缓存事件。"""
        cls._log.info(
            "asset_updated",
            event_type="cache",
            asset_key=asset_key,
            remote_url=remote_url,
            size=size,
            **extra,
        )

    @classmethod
    def asset_fetch_failed(
        cls,
        asset_key: str,
        url: str | None,
        error: str,
        **extra: Any,
    ) -> None:
        """记录资源抓取失败事件。"""
        cls._log.warning(
            "asset_fetch_failed",
            event_type="fetch_error",
            asset_key=asset_key,
            url=url,
            error=error,
            **extra,
        )

    @classmethod
    def update_cycle_finished(
        cls,
        updated_keys: list[str],
        attempted: int,
        **extra: Any,
    ) -> None:
        """记录一次更新周期结束事件。"""
        cls._log.info(
            "update_cycle_finished",
            event_type="update",
            updated_count=len(updated_keys),
            updated_keys=updated_keys,
            attempted=attempted,
            **extra,
        )

    @classmethod
    def source_registry_reconciled(
        cls,
        added: int,
        removed: int,
        total: int,
        **extra: Any,
    ) -> None:
        """记录资源源注册表与清单同步事件。"""
        cls._log.info(
            "source_registry_reconciled",
            event_type="registry",
            added=added,
            removed=removed,
            total=total,
            **extra,
        )

    @classmethod
    def feature_degraded(
        cls,
        feature: str,
        reason: str,
        **extra: Any,
    ) -> None:
        """记录功能降级事件。"""
        cls._log.warning(
            "feature_degraded",
            event_type="degradation",
            feature=feature,
            reason=reason,
            **extra,
        )
