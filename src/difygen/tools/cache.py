import os
import time
from collections import OrderedDict
from typing import Any, Callable, Generic, Hashable, Optional, TypeVar
from pydantic import BaseModel, Field
from difygen.log_output.log import log
from dotenv import load_dotenv
load_dotenv()

"""
テンプレートマッチング結果などを保持する汎用LRUキャッシュ。
ttlは秒単位で、Noneなら期限なし。
"""

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class CacheStats(BaseModel):
    hits: int = Field(0, description="ヒット数")
    misses: int = Field(0, description="ミス数")
    size: int = Field(0, description="現在のエントリ数")
    max_size: int = Field(0, description="最大エントリ数")
    hit_rate: float = Field(0.0, description="ヒット率(0〜1)")


class CacheConfig(BaseModel):
    enabled: bool = Field(True, description="キャッシュを有効にするか")
    max_size: int = Field(100, description="最大エントリ数")
    ttl: Optional[float] = Field(None, description="有効期限(秒)。Noneなら無期限")
    enable_stats: bool = Field(False, description="統計情報を記録するか")


class _Entry(Generic[V]):
    __slots__ = ("value", "expires_at", "access_count")

    def __init__(self, value: V, expires_at: Optional[float]):
        self.value = value
        self.expires_at = expires_at
        self.access_count = 0

    def expired(self, now: float) -> bool:
        return self.expires_at is not None and now > self.expires_at


class LRUCache(Generic[K, V]):
    """
    最大サイズとTTLを持つLRUキャッシュ
    最も長く参照されていないエントリから追い出す
    """

    def __init__(self, max_size: int = 100, ttl: Optional[float] = None, enable_stats: bool = False):
        if max_size < 1:
            raise ValueError("max_sizeは1以上を指定してください")
        self.max_size = max_size
        self.ttl = ttl
        self.enable_stats = enable_stats
        self._cache: "OrderedDict[K, _Entry[V]]" = OrderedDict()
        self._hits = 0
        self._misses = 0

    def get(self, key: K) -> Optional[V]:
        entry = self._cache.get(key)
        if entry is None:
            self._record(hit=False)
            return None
        if entry.expired(time.monotonic()):
            del self._cache[key]
            self._record(hit=False)
            return None
        # 最近使ったものとして末尾へ
        self._cache.move_to_end(key)
        entry.access_count += 1
        self._record(hit=True)
        return entry.value

    def set(self, key: K, value: V, ttl: Optional[float] = None) -> None:
        if key in self._cache:
            del self._cache[key]
        while len(self._cache) >= self.max_size:
            self._cache.popitem(last=False)
        effective_ttl = ttl if ttl is not None else self.ttl
        expires_at = time.monotonic() + effective_ttl if effective_ttl is not None else None
        self._cache[key] = _Entry(value, expires_at)

    def has(self, key: K) -> bool:
        entry = self._cache.get(key)
        if entry is None:
            return False
        if entry.expired(time.monotonic()):
            del self._cache[key]
            return False
        return True

    def delete(self, key: K) -> bool:
        return self._cache.pop(key, None) is not None

    def clear(self) -> None:
        self._cache.clear()

    def size(self) -> int:
        self._purge_expired()
        return len(self._cache)

    def keys(self) -> list[K]:
        self._purge_expired()
        return list(self._cache.keys())

    def values(self) -> list[V]:
        self._purge_expired()
        return [entry.value for entry in self._cache.values()]

    def entries(self) -> list[tuple[K, V]]:
        self._purge_expired()
        return [(key, entry.value) for key, entry in self._cache.items()]

    def stats(self) -> CacheStats:
        total = self._hits + self._misses
        return CacheStats(
            hits=self._hits,
            misses=self._misses,
            size=len(self._cache),
            max_size=self.max_size,
            hit_rate=self._hits / total if total > 0 else 0.0,
        )

    def reset_stats(self) -> None:
        self._hits = 0
        self._misses = 0

    def get_or_set(self, key: K, factory: Callable[[], V], ttl: Optional[float] = None) -> V:
        cached = self.get(key)
        if cached is not None:
            return cached
        value = factory()
        self.set(key, value, ttl)
        return value

    def __len__(self) -> int:
        return self.size()

    def __contains__(self, key: Any) -> bool:
        return self.has(key)

    def _record(self, hit: bool) -> None:
        if not self.enable_stats:
            return
        if hit:
            self._hits += 1
        else:
            self._misses += 1

    def _purge_expired(self) -> None:
        now = time.monotonic()
        for key in [k for k, entry in self._cache.items() if entry.expired(now)]:
            del self._cache[key]


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def get_cache_config(prefix: str = "") -> CacheConfig:
    """
    環境変数からキャッシュ設定を読み込む
    例: prefix="TEMPLATE" なら TEMPLATE_CACHE_ENABLED, TEMPLATE_CACHE_MAX_SIZE, TEMPLATE_CACHE_TTL, TEMPLATE_CACHE_STATS
    """
    key_prefix = f"{prefix}_" if prefix else ""
    config = CacheConfig(
        enabled=_env_bool(f"{key_prefix}CACHE_ENABLED", True),
        enable_stats=_env_bool(f"{key_prefix}CACHE_STATS", False),
    )
    max_size = os.getenv(f"{key_prefix}CACHE_MAX_SIZE")
    ttl = os.getenv(f"{key_prefix}CACHE_TTL")
    try:
        if max_size:
            config.max_size = int(max_size)
        if ttl:
            config.ttl = float(ttl)
    except ValueError:
        log("warning", f"キャッシュ設定の環境変数が不正なため既定値を使用します: max_size={max_size}, ttl={ttl}")
    return config


def create_cache(config: Optional[CacheConfig] = None) -> Optional[LRUCache]:
    """設定からキャッシュを作成する。無効ならNoneを返す"""
    config = config or CacheConfig()
    if not config.enabled:
        return None
    return LRUCache(max_size=config.max_size, ttl=config.ttl, enable_stats=config.enable_stats)
