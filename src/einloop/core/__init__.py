"""Core compiler modules for einloop."""

__all__ = [
    "cache",
    "chain",
    "engine",
    "exceptions",
    "ir",
    "kernel",
    "normalizer",
    "parser",
    "planner",
    "stats",
    "tensor",
]
