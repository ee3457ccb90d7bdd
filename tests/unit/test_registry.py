"""Tests for topic registration and lookup."""

import pytest

from voting_api.errors import InvalidInput, NotFound
from voting_api.registry import TopicRegistry
from voting_api.store import MemoryStore


@pytest.mark.asyncio
class TestRegister:
    """Tests for TopicRegistry.register."""

    async def test_register_writes_topic_and_empty_ledger(self, registry, memory_store):
        created = await registry.register("pizza", "Is pizza a vegetable?")

        assert created.name == "pizza"
        assert memory_store.maps["topics"]["pizza"] == "Is pizza a vegetable?"
        assert memory_store.maps["votes"]["pizza"] == "[]"

    async def test_voting_url_points_at_topic(self, registry):
        created = await registry.register("pizza", "Is pizza a vegetable?")

        assert created.voting_url == "http://localhost:3001/vote/pizza"

    async def test_voting_url_quotes_topic_name(self, registry):
        created = await registry.register("tabs vs spaces?", "Which one?")

        assert created.voting_url == "http://localhost:3001/vote/tabs%20vs%20spaces%3F"

    @pytest.mark.parametrize("name", ["tabs/spaces", "/pizza", "pizza/"])
    async def test_slash_in_name_rejected_without_writes(self, registry, memory_store, name):
        with pytest.raises(InvalidInput, match="must not contain"):
            await registry.register(name, "Which one?")

        assert memory_store.maps == {}

    @pytest.mark.parametrize("name,description", [
        ("", "desc"),
        ("pizza", ""),
        (None, "desc"),
        ("pizza", None),
        ("   ", "desc"),
        ("pizza", "  "),
    ])
    async def test_missing_field_rejected_without_writes(self, registry, memory_store, name, description):
        with pytest.raises(InvalidInput):
            await registry.register(name, description)

        assert memory_store.maps == {}

    async def test_reregistering_resets_ledger(self, registry, ledger, memory_store):
        await registry.register("pizza", "first")
        await ledger.append_ballot("pizza", "Alice", "agree")

        await registry.register("pizza", "second")

        assert await registry.describe("pizza") == "second"
        assert memory_store.maps["votes"]["pizza"] == "[]"

    async def test_registration_is_instrumented(self, registry, instrumentation):
        await registry.register("pizza", "desc")
        with pytest.raises(InvalidInput):
            await registry.register("", "desc")

        assert instrumentation.started == ["create-topic", "create-topic"]
        assert instrumentation.ended == [
            ("create-topic", "ok"),
            ("create-topic", "InvalidInput"),
        ]


@pytest.mark.asyncio
class TestDescribe:
    """Tests for TopicRegistry.describe and exists."""

    async def test_describe_returns_submitted_description(self, registry):
        await registry.register("pizza", "Is pizza a vegetable?")

        assert await registry.describe("pizza") == "Is pizza a vegetable?"

    async def test_describe_is_repeatable(self, registry):
        await registry.register("pizza", "Is pizza a vegetable?")

        first = await registry.describe("pizza")
        second = await registry.describe("pizza")

        assert first == second

    async def test_describe_unknown_topic(self, registry):
        with pytest.raises(NotFound):
            await registry.describe("unknown")

    async def test_describe_is_case_sensitive(self, registry):
        await registry.register("pizza", "desc")

        with pytest.raises(NotFound):
            await registry.describe("Pizza")

    async def test_exists(self, registry):
        await registry.register("pizza", "desc")

        assert await registry.exists("pizza") is True
        assert await registry.exists("sushi") is False


@pytest.mark.asyncio
class TestNonAtomicRegistration:
    """A store without atomic batches can fail between the two writes."""

    async def test_failed_ledger_write_leaves_topic_behind(self):
        class FailingVotesStore(MemoryStore):
            async def set(self, map_name, key, value):
                if map_name == "votes":
                    raise RuntimeError("crash between writes")
                await super().set(map_name, key, value)

        store = FailingVotesStore(atomic_batches=False)
        registry = TopicRegistry(store, voting_base_url="http://localhost:3001/vote")

        with pytest.raises(RuntimeError):
            await registry.register("pizza", "desc")

        assert await store.get("topics", "pizza") == "desc"
        assert await store.get("votes", "pizza") is None
