"""
测试公共 fixture
"""

import pytest
from fastapi.testclient import TestClient

from llmgate.gateway.backends.registry import ProviderRegistry
from llmgate.gateway.config import GatewayConfig
from llmgate.gateway.context import GatewayContext
from llmgate.gateway.events import TOOL_CALL_START, TOOL_CALL_UPDATE, ResponseEvent, Usage
from llmgate.gateway.streams import StreamLifecycleManager

from fake_providers import ScriptedProvider


@pytest.fixture
def manager():
    return StreamLifecycleManager(max_concurrent_streams=2)


@pytest.fixture
def text_events():
    return [
        ResponseEvent(content="Hello"),
        ResponseEvent(content=", world"),
        ResponseEvent(total_usage=Usage(prompt_tokens=12, completion_tokens=3, total_tokens=15),
                      stop_reason="complete"),
    ]


@pytest.fixture
def tool_events():
    return [
        ResponseEvent(content="Let me check."),
        ResponseEvent(tool_call=TOOL_CALL_START, tool_call_id="call-1", tool_call_name="get_weather"),
        ResponseEvent(tool_call=TOOL_CALL_UPDATE, tool_call_id="call-1", tool_call_params='{"city":'),
        ResponseEvent(tool_call=TOOL_CALL_UPDATE, tool_call_id="call-1", tool_call_params='"Paris"}'),
    ]


@pytest.fixture
def registry():
    return ProviderRegistry()


@pytest.fixture
def gateway(registry, text_events):
    registry.register(ScriptedProvider("mock", events=text_events, name="Mock Provider"))
    return GatewayContext(GatewayConfig(max_concurrent_streams=2), registry)


@pytest.fixture
def client(gateway):
    from web import create_app

    with TestClient(create_app(gateway)) as test_client:
        yield test_client
