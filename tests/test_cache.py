from __future__ import annotations

import asyncio

import pytest

from cvscan.cache import SQLiteResponseCache
from cvscan.errors import CacheError
from cvscan.pipeline import CachedModel, ModelRequest

from .conftest import ScriptedModel


def test_sqlite_cache_persists_across_reopen(tmp_path) -> None:
    path = tmp_path / "nested" / "cache.sqlite"
    cache = SQLiteResponseCache(str(path))
    assert cache.get("fp") is None
    cache.set("fp", '{"text": "one"}')
    cache.set("fp", '{"text": "two"}')
    assert len(cache) == 1
    cache.close()

    reopened = SQLiteResponseCache(str(path))
    try:
        assert reopened.get("fp") == '{"text": "two"}'
    finally:
        reopened.close()


def test_sqlite_cache_rejects_use_after_close(tmp_path) -> None:
    cache = SQLiteResponseCache(str(tmp_path / "cache.sqlite"))
    cache.close()
    cache.close()
    with pytest.raises(RuntimeError):
        cache.get("fp")


def test_cached_model_survives_restart(tmp_path) -> None:
    path = str(tmp_path / "cache.sqlite")
    request = ModelRequest(messages=[{"role": "user", "content": "q"}], variant=0)

    first_base = ScriptedModel(lambda req, n: "answer")
    cache = SQLiteResponseCache(path)
    asyncio.run(CachedModel(first_base, cache, "ns").respond(request))
    cache.close()

    second_base = ScriptedModel(lambda req, n: "different")
    cache = SQLiteResponseCache(path)
    try:
        response = asyncio.run(CachedModel(second_base, cache, "ns").respond(request))
    finally:
        cache.close()

    assert response.text == "answer"
    assert response.cached
    assert response.usage == {"prompt_tokens": 10, "completion_tokens": 5, "total_tokens": 15}
    assert second_base.calls == 0


def test_sqlite_cache_reports_unopenable_path(tmp_path) -> None:
    with pytest.raises(CacheError, match="failed to open response cache") as exc_info:
        SQLiteResponseCache(str(tmp_path))
    assert str(tmp_path) in str(exc_info.value)
