"""
Provider 注册中心与内置 echo provider 测试
"""

import asyncio

import pytest

from llmgate.gateway.backends.echo import EchoProvider
from llmgate.gateway.backends.interface import StreamContext
from llmgate.gateway.backends.registry import ProviderRegistry
from llmgate.gateway.errors import NotFoundError

from fake_providers import ScriptedProvider, make_request


async def never_asked(request_id: str) -> bool:
    raise AssertionError(f"unexpected permission request: {request_id}")


class TestProviderRegistry:

    def test_register_replaces_same_id(self):
        registry = ProviderRegistry()
        registry.register(ScriptedProvider("acme", name="Old"))
        registry.register(ScriptedProvider("acme", name="New"))
        assert [p.info.name for p in registry.get_all()] == ["New"]

    def test_get_enabled(self):
        registry = ProviderRegistry()
        registry.register(ScriptedProvider("on"))
        registry.register(ScriptedProvider("off", enabled=False))
        assert [p.info.id for p in registry.get_enabled()] == ["on"]

    def test_unregister(self):
        registry = ProviderRegistry()
        registry.register(ScriptedProvider("acme"))
        registry.register(ScriptedProvider("other"))

        registry.unregister("acme")

        assert registry.get("acme") is None
        assert [p.info.id for p in registry.get_all()] == ["other"]

    def test_unregister_resets_current(self):
        registry = ProviderRegistry()
        registry.register(ScriptedProvider("acme"))
        registry.register(ScriptedProvider("other"))
        registry.select_current("acme")

        registry.unregister("other")
        assert registry.current_id == "acme"

        registry.unregister("acme")
        assert registry.current_id is None

    def test_unregister_unknown_is_noop(self):
        registry = ProviderRegistry()
        registry.register(ScriptedProvider("acme"))
        registry.unregister("ghost")
        assert registry.get("acme") is not None

    def test_select_unknown(self):
        with pytest.raises(NotFoundError, match="Provider not found: ghost"):
            ProviderRegistry().select_current("ghost")


class TestEchoProvider:

    @pytest.mark.asyncio
    async def test_echoes_last_user_message(self):
        provider = EchoProvider(chunk_size=4)
        context = StreamContext("evt-1", asyncio.Event(), never_asked)

        events = [event async for event in provider.stream_completion(make_request("evt-1", "hello echo"), context)]

        assert "".join(e.content for e in events if e.content) == "hello echo"
        assert events[-1].stop_reason == "complete"
        assert events[-1].total_usage.completion_tokens == 2

    @pytest.mark.asyncio
    async def test_cancel_interrupts_delay(self):
        """停止请求在分块间隔内立即生效"""
        provider = EchoProvider(chunk_size=1, delay=30.0)
        cancel_event = asyncio.Event()
        context = StreamContext("evt-1", cancel_event, never_asked)

        async def drain():
            return [event async for event in provider.stream_completion(make_request("evt-1", "abc"), context)]

        task = asyncio.ensure_future(drain())
        await asyncio.sleep(0.01)
        assert not task.done()

        cancel_event.set()
        assert await asyncio.wait_for(task, 1.0) == []

    @pytest.mark.asyncio
    async def test_cancelled_before_start_yields_nothing(self):
        cancel_event = asyncio.Event()
        cancel_event.set()
        context = StreamContext("evt-1", cancel_event, never_asked)

        events = [event async for event in EchoProvider().stream_completion(make_request("evt-1"), context)]

        assert events == []
