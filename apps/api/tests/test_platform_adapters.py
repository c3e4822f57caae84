from __future__ import annotations

from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import pytest

from leadflow.platform.cache.backend import InMemoryCacheBackend, RedisCacheBackend
from leadflow.platform.cache.service import get_or_compute
from leadflow.platform.storage.object_store import (
    LocalObjectStore,
    S3ObjectStore,
    build_object_key,
    sanitize_filename,
)


class FailingBackend:
    def get(self, key: str) -> Any:
        raise ConnectionError("redis unavailable")

    def set(self, key: str, value: Any, ttl_seconds: int) -> None:
        raise ConnectionError("redis unavailable")

    def delete(self, key: str) -> None:
        raise ConnectionError("redis unavailable")


def test_get_or_compute_caches_until_ttl() -> None:
    ticks = {"now": 100.0}
    backend = InMemoryCacheBackend(clock=lambda: ticks["now"])
    calls: list[int] = []

    def compute() -> dict[str, int]:
        calls.append(1)
        return {"value": len(calls)}

    assert get_or_compute(backend, "k", 60, compute) == {"value": 1}
    assert get_or_compute(backend, "k", 60, compute) == {"value": 1}
    assert len(calls) == 1

    ticks["now"] = 160.0
    assert get_or_compute(backend, "k", 60, compute) == {"value": 2}
    assert len(calls) == 2


def test_get_or_compute_treats_backend_failure_as_miss(caplog: pytest.LogCaptureFixture) -> None:
    result = get_or_compute(FailingBackend(), "dashboard:tasks:1:2", 60, lambda: {"today": 3}, aggregate="task_stats")

    assert result == {"today": 3}
    messages = [record.getMessage() for record in caplog.records if record.name == "leadflow.cache"]
    assert messages == ["cache.get_failed", "cache.set_failed"]


def test_in_memory_backend_delete_and_clear() -> None:
    backend = InMemoryCacheBackend()
    backend.set("a", [1, 2], 10)
    backend.set("b", {"x": 1}, 10)

    backend.delete("a")
    assert backend.get("a") is None
    assert backend.get("b") == {"x": 1}
    backend.clear()
    assert backend.get("b") is None


def test_redis_backend_round_trips_json() -> None:
    client = MagicMock()
    client.get.return_value = '{"today": 1}'
    backend = RedisCacheBackend(client)

    assert backend.get("key") == {"today": 1}
    backend.set("key", {"today": 2}, 300)
    client.set.assert_called_once_with("key", '{"today": 2}', ex=300)
    client.get.return_value = None
    assert backend.get("missing") is None


def test_sanitize_filename_and_object_key() -> None:
    assert sanitize_filename("my file (1).pdf") == "my_file__1_.pdf"
    assert sanitize_filename("") == "file.bin"
    assert build_object_key("booking-documents", 1, 7, "a b.pdf", now_ms=1729240000000) == (
        "booking-documents/1/7/1729240000000-a_b.pdf"
    )


def test_local_object_store_put_get_and_sign(tmp_path: Path) -> None:
    store = LocalObjectStore(tmp_path)
    key = "final-handover/1/9/1-qc.pdf"

    store.put(key, b"qc", "application/pdf")

    assert store.get(key) == b"qc"
    assert store.content_types[key] == "application/pdf"
    url = store.sign(key, 600, "attachment")
    assert url.startswith("file://")
    assert "disposition=attachment" in url
    with pytest.raises(FileNotFoundError):
        store.get("final-handover/1/9/missing.pdf")


def test_s3_object_store_delegates_to_client() -> None:
    client = MagicMock()
    client.generate_presigned_url.return_value = "https://signed.example/obj"
    store = S3ObjectStore("leadflow-documents", client)

    store.put("booking-documents/1/2/3-plan.pdf", b"pdf", "application/pdf")
    url = store.sign("booking-documents/1/2/3-plan.pdf", 3600, "inline")

    client.put_object.assert_called_once_with(
        Bucket="leadflow-documents",
        Key="booking-documents/1/2/3-plan.pdf",
        Body=b"pdf",
        ContentType="application/pdf",
    )
    assert url == "https://signed.example/obj"
    _, kwargs = client.generate_presigned_url.call_args
    assert kwargs["ExpiresIn"] == 3600
    assert kwargs["Params"]["ResponseContentDisposition"] == 'inline; filename="3-plan.pdf"'
