"""
模型路由测试

覆盖 resolve_model 的解析优先级与 build_model_table 的别名合并。
"""

import pytest

from llmgate.gateway.routing import (
    KNOWN_MODEL_MAPPINGS,
    ModelRoute,
    build_model_table,
    resolve_model,
    unmapped_model_message,
)


class TestResolveModel:
    """resolve_model 解析优先级"""

    def test_configured_defaults_win(self):
        """同时配置默认 provider 和模型时无条件使用默认值"""
        route = resolve_model("acme/gpt-x", "fallback", "base-model")
        assert route == ModelRoute("fallback", "base-model")

    def test_slash_split(self):
        assert resolve_model("acme/gpt-x") == ModelRoute("acme", "gpt-x")

    def test_slash_splits_on_first_only(self):
        """模型 id 本身可以含 /"""
        assert resolve_model("hf/org/model") == ModelRoute("hf", "org/model")

    def test_comma_split_strips_whitespace(self):
        assert resolve_model(" acme , gpt-x ") == ModelRoute("acme", "gpt-x")

    def test_known_model(self):
        route = resolve_model("claude-sonnet-4-20250514")
        assert route == ModelRoute("anthropic", "claude-sonnet-4-20250514")

    def test_default_provider_pairs_raw_model(self):
        assert resolve_model("mystery-model", default_provider_id="acme") == ModelRoute("acme", "mystery-model")

    def test_default_model_alone_is_ignored(self):
        """只配置默认模型不构成默认路由"""
        assert resolve_model("mystery-model", default_model_id="base-model") is None

    def test_unmapped(self):
        assert resolve_model("mystery-model") is None

    def test_empty_half_falls_through(self):
        """"/gpt" 两段不完整，继续走后续规则"""
        assert resolve_model("/gpt") is None
        assert resolve_model("/gpt", default_provider_id="acme") == ModelRoute("acme", "/gpt")

    def test_failed_slash_split_tries_comma(self):
        assert resolve_model("/acme,gpt") == ModelRoute("/acme", "gpt")

    def test_custom_table(self):
        table = {"fast": ModelRoute("acme", "gpt-mini")}
        assert resolve_model("fast", model_table=table) == ModelRoute("acme", "gpt-mini")
        # 自定义表替换内置表
        assert resolve_model("claude-opus-4-20250514", model_table=table) is None

    def test_route_str(self):
        assert str(ModelRoute("acme", "gpt-x")) == "acme/gpt-x"


class TestModelTable:
    """build_model_table 别名合并"""

    def test_aliases_merged_over_known(self):
        table = build_model_table({"echo": "echo/echo", "claude-opus-4-20250514": "proxy/opus"})
        assert table["echo"] == ModelRoute("echo", "echo")
        assert table["claude-opus-4-20250514"] == ModelRoute("proxy", "opus")
        assert len(table) == len(KNOWN_MODEL_MAPPINGS) + 1

    def test_invalid_alias_target(self):
        with pytest.raises(ValueError):
            build_model_table({"broken": "no-slash"})

    def test_known_table_untouched(self):
        build_model_table({"claude-opus-4-20250514": "proxy/opus"})
        assert KNOWN_MODEL_MAPPINGS["claude-opus-4-20250514"].provider_id == "anthropic"


def test_unmapped_model_message():
    message = unmapped_model_message("mystery-model")
    assert message.startswith("Unable to map model: mystery-model.")
    assert "providerId/modelId" in message
