"""
Unit tests for the session bootstrap pipeline.
"""

from unittest.mock import AsyncMock

import pytest

from server.src.core.errors import InvalidTransitionError, StorageFaultError
from server.src.models.session import BootstrapSignal, BootstrapStage, Session
from server.src.services.session_bootstrap import SessionBootstrap, advance


class TestAdvance:
    """Tests for the pure transition function."""

    def test_happy_path_without_migration(self):
        stage = BootstrapStage.START
        for signal in (
            BootstrapSignal.LOAD_STARTED,
            BootstrapSignal.IDENTITY_READY,
            BootstrapSignal.PROTOTYPE_SET,
            BootstrapSignal.CHARACTERS_SET,
            BootstrapSignal.MIGRATION_SKIPPED,
        ):
            stage = advance(stage, signal)

        assert stage is BootstrapStage.READY

    def test_migration_passes_through_migrating(self):
        stage = advance(BootstrapStage.CHARACTERS_READY, BootstrapSignal.MIGRATION_STARTED)
        assert stage is BootstrapStage.TEMPLATE_MIGRATING

        stage = advance(stage, BootstrapSignal.MIGRATION_FINISHED)
        assert stage is BootstrapStage.READY

    def test_out_of_order_signal_is_rejected(self):
        with pytest.raises(InvalidTransitionError):
            advance(BootstrapStage.IDENTITY_LOADING, BootstrapSignal.CHARACTERS_SET)

    def test_ready_accepts_nothing(self):
        with pytest.raises(InvalidTransitionError):
            advance(BootstrapStage.READY, BootstrapSignal.LOAD_STARTED)


class TestSessionBootstrap:
    """Tests for SessionBootstrap against an in-memory store."""

    @pytest.mark.asyncio
    async def test_signals_arrive_in_order(self, seeded_store):
        session = Session(session_key="key-alice")

        stage = await SessionBootstrap(session, seeded_store).run()

        assert stage is BootstrapStage.READY
        assert session.signals == [
            BootstrapSignal.LOAD_STARTED,
            BootstrapSignal.IDENTITY_READY,
            BootstrapSignal.PROTOTYPE_SET,
            BootstrapSignal.CHARACTERS_SET,
            BootstrapSignal.MIGRATION_SKIPPED,
        ]
        assert session.ready.is_set()

    @pytest.mark.asyncio
    async def test_characters_are_reconciled(self, seeded_store, reference_template):
        session = Session(session_key="key-alice")

        await SessionBootstrap(session, seeded_store).run()

        assert session.identity == "alice"
        assert session.capability_template["type"] == "character"
        brute, scout = session.characters
        assert brute["template"]["name"] == "Brute"
        assert brute["template"]["maxHealth"] == 350
        assert scout["template"]["maxHealth"] == reference_template["template"]["maxHealth"]
        assert set(reference_template["template"]["attackData"]) <= set(
            scout["template"]["attackData"]
        )

    @pytest.mark.asyncio
    async def test_unknown_session_key_stays_in_identity_loading(self, seeded_store):
        session = Session(session_key="not-a-key")

        stage = await SessionBootstrap(session, seeded_store).run()

        assert stage is BootstrapStage.IDENTITY_LOADING
        assert session.identity is None
        assert session.characters is None
        assert not session.ready.is_set()

    @pytest.mark.asyncio
    async def test_missing_prototype_leaves_characters_untouched(self, store):
        await store.insert("users", {"username": "bob", "sessionKey": "key-bob"})
        await store.insert("characters", {"owner": "bob", "template": {"name": "Lone"}})
        session = Session(session_key="key-bob")

        stage = await SessionBootstrap(session, store).run()

        assert stage is BootstrapStage.READY
        assert session.capability_template is None
        assert session.characters[0]["template"] == {"name": "Lone"}

    @pytest.mark.asyncio
    async def test_template_migration_writes_reference(self, seeded_store, reference_template):
        reference = dict(reference_template)
        reference["template"] = dict(reference["template"], maxHealth=999)
        session = Session(session_key="key-alice")

        await SessionBootstrap(
            session, seeded_store, reference_template=reference, update_template=True
        ).run()

        assert BootstrapSignal.MIGRATION_STARTED in session.signals
        assert session.signals[-1] is BootstrapSignal.MIGRATION_FINISHED
        stored = await seeded_store.find("prototypes", {"type": "character"})
        assert stored[0]["template"]["maxHealth"] == 999

    @pytest.mark.asyncio
    async def test_storage_fault_halts_at_current_stage(self):
        store = AsyncMock()
        store.find.side_effect = StorageFaultError("find", "users")
        session = Session(session_key="key-alice")

        stage = await SessionBootstrap(session, store).run()

        assert stage is BootstrapStage.IDENTITY_LOADING
        assert "find on 'users' failed" in session.bootstrap_error

    @pytest.mark.asyncio
    async def test_unexpected_error_is_recorded(self, seeded_store):
        session = Session(session_key="key-alice")
        seeded_store.find = AsyncMock(
            side_effect=[[{"username": "alice"}], RuntimeError("cursor exploded")]
        )

        stage = await SessionBootstrap(session, seeded_store).run()

        assert stage is BootstrapStage.IDENTITY_READY
        assert session.bootstrap_error == "RuntimeError: cursor exploded"
        assert not session.ready.is_set()

    @pytest.mark.asyncio
    async def test_reload_characters_picks_up_new_documents(self, seeded_store):
        session = Session(session_key="key-alice")
        bootstrap = SessionBootstrap(session, seeded_store)
        await bootstrap.run()

        await seeded_store.insert("characters", {"owner": "alice", "template": {"name": "Mage"}})
        await bootstrap.reload_characters()

        assert [c["template"]["name"] for c in session.characters] == ["Brute", "Scout", "Mage"]
        assert session.characters[2]["template"]["maxHealth"] == 200
        assert session.stage is BootstrapStage.READY

    @pytest.mark.asyncio
    async def test_start_returns_the_running_task(self, seeded_store):
        session = Session(session_key="key-alice")
        bootstrap = SessionBootstrap(session, seeded_store)

        task = bootstrap.start()

        assert bootstrap.start() is task
        assert await task is BootstrapStage.READY
