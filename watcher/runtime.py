"""
Compile Runtime Module.

Provides async execution of blocking template loads using a thread pool.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, TypeVar

T = TypeVar("T")


@dataclass
class CompileRuntime:
    """テンプレート読み込み（ブロッキング）専用のスレッドプール"""

    max_workers: int = 2
    executor: ThreadPoolExecutor = field(init=False)

    def __post_init__(self) -> None:
        self.executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="template-compile"
        )

    async def run(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """ファイルI/O・コンパイル等のブロッキング処理をスレッドプールで実行"""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self.executor, lambda: fn(*args, **kwargs))

    def shutdown(self) -> None:
        self.executor.shutdown(wait=False)
