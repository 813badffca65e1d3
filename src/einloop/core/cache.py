from __future__ import annotations

from collections import OrderedDict
from typing import Dict, Optional, Tuple

from .exceptions import CacheError
from .ir import NormalizedSpec
from .kernel import CompiledKernel, compile_kernel

CacheKey = Tuple[NormalizedSpec, str]


class KernelCache:
    """Per-process memo table of compiled kernels.

    Keys are ``(normalized spec, planner)``; label spelling is not part of a
    normalized spec's identity, so ``"ij,jk->ik"`` and ``"ab,bc->ac"`` share an
    entry. ``maxsize=None`` never evicts.
    """

    def __init__(self, maxsize: Optional[int] = 256):
        if maxsize is not None and maxsize <= 0:
            raise CacheError(f"Kernel cache size must be positive, got {maxsize}")
        self.maxsize = maxsize
        self._entries: "OrderedDict[CacheKey, CompiledKernel]" = OrderedDict()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: CacheKey) -> bool:
        return key in self._entries

    def lookup(self, spec: NormalizedSpec, planner: str) -> Tuple[CompiledKernel, bool]:
        """Return the kernel for ``spec`` and whether it was already cached."""
        key = (spec, planner)
        kernel = self._entries.get(key)
        if kernel is not None:
            self.hits += 1
            self._entries.move_to_end(key)
            return kernel, True
        self.misses += 1
        kernel = compile_kernel(spec, planner=planner)
        self._entries[key] = kernel
        if self.maxsize is not None and len(self._entries) > self.maxsize:
            self._entries.popitem(last=False)
        return kernel, False

    def get(self, spec: NormalizedSpec, planner: str = "locality") -> CompiledKernel:
        return self.lookup(spec, planner)[0]

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def info(self) -> Dict[str, Optional[int]]:
        return {
            "hits": self.hits,
            "misses": self.misses,
            "size": len(self._entries),
            "maxsize": self.maxsize,
        }
