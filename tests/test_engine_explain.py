import numpy as np
import pytest

from einloop import Engine, EngineConfig, KernelCache, default_engine, einsum, engine_for
from einloop.core.cache import CacheError
from einloop.core.normalizer import normalize
from einloop.core.stats import compute_einsum_stats


def test_explain_json_includes_stats_and_cache_hits():
    engine = Engine(cache=KernelCache())
    a = np.ones((2, 3))
    b = np.ones((3, 4))
    engine.einsum("ij,jk->ik", a, b)
    engine.einsum("xy,yz->xz", a, b)
    payload = engine.explain(json=True)
    entries = [entry for entry in payload["logs"] if entry["kind"] == "einsum"]
    assert len(entries) == 2
    first, second = (entry["einsum"] for entry in entries)
    assert first["cache_hit"] is False
    assert second["cache_hit"] is True
    assert first["loop_order"] == ["i", "j", "k"]
    assert second["loop_order"] == ["x", "y", "z"]
    assert first["contracted"] == ["j"]
    assert first["iterations"] == 24
    assert payload["totals"]["calls"] == 2
    assert payload["totals"]["cache_hits"] == 1
    assert payload["cache"]["size"] == 1


def test_explain_text_summarises_calls():
    engine = Engine(cache=KernelCache())
    engine.einsum("ij->", np.ones((2, 2)))
    text = engine.explain()
    assert "ij->" in text
    assert "loops[i j]" in text
    assert "Total: calls=1 hits=0" in text


def test_logs_are_bounded():
    engine = Engine(EngineConfig(max_logs=2), cache=KernelCache())
    for _ in range(5):
        engine.einsum("i->", np.ones(3))
    assert len(engine.logs) == 2
    engine.reset_logs()
    assert engine.logs == []


def test_logging_can_be_disabled():
    engine = Engine(EngineConfig(record_logs=False), cache=KernelCache())
    engine.einsum("i->", np.ones(3))
    assert engine.logs == []


def test_describe_shows_generated_source():
    info = Engine().describe("ij,jk->ik")
    assert info["spec"] == "ij,jk->ik"
    assert info["loop_order"] == ["i", "j", "k"]
    assert info["planner"] == "locality"
    assert "for i2 in range(d2):" in info["source"]


def test_compute_einsum_stats_for_matrix_product():
    spec = normalize("ij,jk->ik")
    stats = compute_einsum_stats(spec, {0: 2, 1: 3, 2: 4}, [8, 8], 8)
    assert stats["iterations"] == 24
    assert stats["flops"] == 48.0
    assert stats["contracted"] == ["j"]
    assert stats["output_indices"] == ["i", "k"]
    assert stats["reductions"] == 16
    assert stats["bytes_in"] == 144
    assert stats["bytes_out"] == 64
    assert stats["bytes_total"] == 208


def test_config_normalization():
    cfg = EngineConfig(planner="LOCALITY", cache_kernels=0, cache_size="8").normalized()
    assert cfg.planner == "locality"
    assert cfg.cache_kernels is False
    assert cfg.cache_size == 8


@pytest.mark.parametrize(
    "kwargs, message",
    [
        ({"planner": "greedy"}, "Unsupported loop planner"),
        ({"cache_size": 0}, "cache_size must be positive"),
        ({"max_logs": 0}, "max_logs must be positive"),
    ],
)
def test_config_rejects_bad_values(kwargs, message):
    with pytest.raises(ValueError, match=message):
        Engine(EngineConfig(**kwargs))


def test_cache_evicts_least_recently_used():
    cache = KernelCache(maxsize=2)
    first = normalize("i->i")
    second = normalize("ij->i")
    third = normalize("ij->j")
    cache.get(first)
    cache.get(second)
    cache.get(first)
    cache.get(third)
    assert (first, "locality") in cache
    assert (second, "locality") not in cache
    assert cache.info() == {"hits": 1, "misses": 3, "size": 2, "maxsize": 2}
    cache.clear()
    assert len(cache) == 0


def test_cache_size_must_be_positive():
    with pytest.raises(CacheError):
        KernelCache(maxsize=0)


def test_module_einsum_keeps_one_engine_per_config():
    cfg = EngineConfig(planner="declared", max_logs=17)
    engine = engine_for(cfg)
    before = len(engine.logs)
    einsum("i->", np.ones(3), config=cfg)
    einsum("i->", np.ones(4), config=EngineConfig(planner="DECLARED", max_logs=17))
    assert engine_for(cfg) is engine
    assert len(engine.logs) == before + 2
    assert engine.cache is default_engine().cache
    assert engine_for(None) is default_engine()
