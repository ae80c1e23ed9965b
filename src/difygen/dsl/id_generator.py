import time
from typing import Optional


class IdGenerator:
    """
    ノードIDの発行器。ビルドや正規化の呼び出しごとにインスタンスを渡して使う。
    プレフィックスを渡すと "llm-1" のような読みやすいIDを返し、
    渡さないとDifyと同じタイムスタンプ由来の数値文字列を返す。
    """

    def __init__(self, base: Optional[int] = None):
        self._fixed_base = base
        self._base = base if base is not None else time.time_ns() // 1000
        self._count = 0

    def next(self, prefix: Optional[str] = None) -> str:
        self._count += 1
        if prefix:
            return f"{prefix}-{self._count}"
        return str(self._base + self._count)

    def reset(self) -> None:
        """カウンタを初期化する（テストで決定的なIDを得るため）"""
        self._count = 0
        if self._fixed_base is None:
            self._base = time.time_ns() // 1000

    @property
    def count(self) -> int:
        return self._count
