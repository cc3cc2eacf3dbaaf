"""Tests for webhook work dispatch (ARQ queue with in-process fallback)."""

import asyncio

from fastapi import BackgroundTasks
from redis.exceptions import ConnectionError as RedisConnectionError

from oce_app.workers import arq_enqueue
from oce_app.workers.arq_enqueue import enqueue_or_run, get_redis_settings


async def _noop(*args):
    return args


class TestEnqueueOrRun:
    def test_inline_mode_uses_background_tasks(self, test_settings, monkeypatch):
        calls = []

        async def fake_enqueue(*args):
            calls.append(args)

        monkeypatch.setattr(arq_enqueue, "enqueue_job", fake_enqueue)
        tasks = BackgroundTasks()

        mode = asyncio.run(enqueue_or_run(test_settings, tasks, "process_order_created", ("s", {}), _noop, "s"))

        assert mode == "background"
        assert calls == []
        assert len(tasks.tasks) == 1

    def test_queue_mode_enqueues(self, test_settings, monkeypatch):
        calls = []

        async def fake_enqueue(redis_url, job_name, *args):
            calls.append((redis_url, job_name, args))
            return {"job_id": "j1", "status": "enqueued"}

        monkeypatch.setattr(arq_enqueue, "enqueue_job", fake_enqueue)
        test_settings.WEBHOOK_PROCESSING = "queue"
        tasks = BackgroundTasks()

        mode = asyncio.run(enqueue_or_run(test_settings, tasks, "forward_inbound_reply", ("c-1",), _noop, "c-1"))

        assert mode == "queued"
        assert calls == [(test_settings.REDIS_URL, "forward_inbound_reply", ("c-1",))]
        assert tasks.tasks == []

    def test_redis_outage_falls_back_to_background(self, test_settings, monkeypatch):
        """WHY: losing Redis must never fail a webhook acknowledgement."""

        async def broken_enqueue(*args):
            raise RedisConnectionError("Connection refused")

        monkeypatch.setattr(arq_enqueue, "enqueue_job", broken_enqueue)
        test_settings.WEBHOOK_PROCESSING = "queue"
        tasks = BackgroundTasks()

        mode = asyncio.run(enqueue_or_run(test_settings, tasks, "process_order_created", ("s", {}), _noop, "s"))

        assert mode == "background"
        assert len(tasks.tasks) == 1

    def test_pool_close_failure_still_falls_back(self, test_settings, monkeypatch):
        """WHAT: a dead pool that also fails to close is dropped, not re-raised."""

        class DeadPool:
            async def enqueue_job(self, *args, **kwargs):
                raise RedisConnectionError("Connection reset")

            async def close(self):
                raise RedisConnectionError("Connection reset")

        monkeypatch.setattr(arq_enqueue, "_arq_pool", DeadPool())
        test_settings.WEBHOOK_PROCESSING = "queue"
        tasks = BackgroundTasks()

        mode = asyncio.run(enqueue_or_run(test_settings, tasks, "forward_inbound_reply", ("c-1",), _noop, "c-1"))

        assert mode == "background"
        assert len(tasks.tasks) == 1
        assert arq_enqueue._arq_pool is None


class TestRedisSettings:
    def test_plain_url(self):
        settings = get_redis_settings("redis://:pw@cache.internal:6380/2")

        assert settings.host == "cache.internal"
        assert settings.port == 6380
        assert settings.password == "pw"
        assert settings.database == 2
        assert settings.ssl is False

    def test_tls_url_defaults(self):
        settings = get_redis_settings("rediss://cache.example.com")

        assert settings.ssl is True
        assert settings.port == 6379
        assert settings.database == 0
