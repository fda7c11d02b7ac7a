"""Redis Key 命名规范。

键值存储中的所有键都放在同一个命名空间下，避免与同一 Redis 实例中的
其他应用冲突。
"""


class RedisKeys:
    """Redis Key 命名空间管理。"""

    # 键值存储
    # kv:{namespace}:{key}
    STORE_PREFIX = "kv"

    @classmethod
    def store(cls, namespace: str, key: str) -> str:
        """生成键值存储 key。

        Args:
            namespace: 存储命名空间（如项目名或配置档名）
            key: 存储层的原始 key（如 cache/easylist）

        Returns:
            格式化的 Redis key
        """
        return f"{cls.STORE_PREFIX}:{namespace}:{key}"
