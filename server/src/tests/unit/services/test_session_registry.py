"""
Unit tests for the session table and idle eviction.
"""

import asyncio

import pytest

from server.src.models.session import BootstrapStage
from server.src.services.session_registry import SessionRegistry


class TestSessionRegistry:
    @pytest.mark.asyncio
    async def test_get_or_create_starts_bootstrap_once(self, seeded_store):
        registry = SessionRegistry(seeded_store)

        session, created = registry.get_or_create("key-alice")
        again, created_again = registry.get_or_create("key-alice")

        assert created is True
        assert created_again is False
        assert again is session
        assert await registry.get_bootstrap(session).task is BootstrapStage.READY
        await registry.close()

    @pytest.mark.asyncio
    async def test_get_unknown_key(self, store):
        registry = SessionRegistry(store)

        assert registry.get("missing") is None
        assert registry.get(None) is None

    @pytest.mark.asyncio
    async def test_attach_and_detach_track_connections(self, store):
        registry = SessionRegistry(store)
        session, _ = registry.get_or_create("k")

        registry.attach(session)
        registry.attach(session)
        registry.detach(session)

        assert session.connection_count == 1
        registry.detach(session)
        registry.detach(session)
        assert session.connection_count == 0
        await registry.close()

    @pytest.mark.asyncio
    async def test_evict_idle_removes_only_unbound_expired_sessions(self, store):
        registry = SessionRegistry(store, idle_timeout=10)
        idle, _ = registry.get_or_create("idle")
        bound, _ = registry.get_or_create("bound")
        fresh, _ = registry.get_or_create("fresh")
        registry.attach(bound)

        now = idle.last_seen + 11
        fresh.last_seen = now - 1
        bound.last_seen = idle.last_seen

        evicted = registry.evict_idle(now=now)

        assert evicted == ["idle"]
        assert "idle" not in registry
        assert "bound" in registry
        assert "fresh" in registry
        await registry.close()

    @pytest.mark.asyncio
    async def test_remove_cancels_a_running_bootstrap(self, store):
        registry = SessionRegistry(store)
        session, _ = registry.get_or_create("k")
        task = registry.get_bootstrap(session).task

        registry.remove("k")
        await asyncio.gather(task, return_exceptions=True)

        assert len(registry) == 0
        assert task.done()

    @pytest.mark.asyncio
    async def test_sweeper_evicts_in_background(self, store):
        registry = SessionRegistry(store, idle_timeout=0)
        registry.get_or_create("k")

        registry.start_sweeper(0.01)
        for _ in range(50):
            if len(registry) == 0:
                break
            await asyncio.sleep(0.01)

        assert len(registry) == 0
        await registry.close()
