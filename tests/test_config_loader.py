"""
配置测试

- config_loader: 环境变量展开与 YAML 加载
- 根目录 config: 环境变量 > 配置文件 > 默认值
- GatewayConfig / GatewayContext 的运行时修改
"""

import pytest

import config as settings
from llmgate.gateway.config import GatewayConfig
from llmgate.gateway.config_loader import expand_env_vars, load_config_file
from llmgate.gateway.context import GatewayContext
from llmgate.gateway.routing import ModelRoute


class TestExpandEnvVars:

    @pytest.fixture(autouse=True)
    def env(self, monkeypatch):
        monkeypatch.setenv("TEST_STRING", "hello")
        monkeypatch.setenv("TEST_BOOL", "true")
        monkeypatch.setenv("TEST_INT", "42")
        monkeypatch.setenv("TEST_FLOAT", "3.14")
        monkeypatch.delenv("MISSING", raising=False)

    @pytest.mark.parametrize("value,expected", [
        ("${TEST_STRING:world}", "hello"),
        ("${MISSING:world}", "world"),
        ("${TEST_BOOL:false}", True),
        ("${TEST_INT:0}", 42),
        ("${TEST_FLOAT:0.0}", 3.14),
        ("${MISSING:false}", False),
        ("${MISSING:[]}", []),
        ("${MISSING:}", ""),
        ("prefix-${TEST_STRING}", "prefix-hello"),
    ])
    def test_expansion(self, value, expected):
        assert expand_env_vars(value) == expected

    def test_literals_untouched(self):
        """没有占位符的字符串不做类型转换"""
        assert expand_env_vars("true") == "true"
        assert expand_env_vars("10") == "10"

    def test_nested(self):
        assert expand_env_vars({"a": ["${TEST_INT:0}", {"b": "${TEST_STRING}"}], "c": 5}) == {
            "a": [42, {"b": "hello"}],
            "c": 5,
        }


class TestLoadConfigFile:

    def test_missing_file(self, tmp_path):
        assert load_config_file(tmp_path / "absent.yaml") == {}

    def test_empty_file(self, tmp_path):
        path = tmp_path / "gateway.yaml"
        path.write_text("", encoding="utf-8")
        assert load_config_file(path) == {}

    def test_non_mapping(self, tmp_path):
        path = tmp_path / "gateway.yaml"
        path.write_text("- a\n- b\n", encoding="utf-8")
        with pytest.raises(ValueError):
            load_config_file(path)

    def test_expands_values(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GW_TEST_PORT", "9000")
        path = tmp_path / "gateway.yaml"
        path.write_text("port: ${GW_TEST_PORT:3456}\nmodel_aliases:\n  fast: acme/gpt-mini\n", encoding="utf-8")
        assert load_config_file(path) == {"port": 9000, "model_aliases": {"fast": "acme/gpt-mini"}}


class TestSettings:

    @pytest.fixture
    def config_file(self, tmp_path, monkeypatch):
        path = tmp_path / "gateway.yaml"
        path.write_text(
            "port: 4000\n"
            "max_concurrent_streams: 3\n"
            "default_provider_id: acme\n"
            "echo_provider_enabled: true\n"
            "model_aliases:\n"
            "  fast: acme/gpt-mini\n",
            encoding="utf-8",
        )
        for name in ("PORT", "HOST", "GATEWAY_API_KEY", "DEFAULT_PROVIDER_ID", "DEFAULT_MODEL_ID",
                     "MAX_CONCURRENT_STREAMS", "ECHO_PROVIDER_ENABLED"):
            monkeypatch.delenv(name, raising=False)
        monkeypatch.setenv("GATEWAY_CONFIG_FILE", str(path))
        settings.reload_config()
        yield path
        monkeypatch.delenv("GATEWAY_CONFIG_FILE")
        settings.reload_config()

    def test_file_values(self, config_file):
        assert settings.get_server_port() == 4000
        assert settings.get_max_concurrent_streams() == 3
        assert settings.get_default_provider_id() == "acme"
        assert settings.get_echo_provider_enabled() is True
        assert settings.get_model_aliases() == {"fast": "acme/gpt-mini"}

    def test_defaults(self, config_file):
        assert settings.get_server_host() == "0.0.0.0"
        assert settings.get_api_key() is None
        assert settings.get_default_model_id() is None

    def test_env_overrides_file(self, config_file, monkeypatch):
        monkeypatch.setenv("PORT", "5000")
        monkeypatch.setenv("MAX_CONCURRENT_STREAMS", "7")
        monkeypatch.setenv("ECHO_PROVIDER_ENABLED", "no")
        monkeypatch.setenv("GATEWAY_API_KEY", "s3cret")
        assert settings.get_server_port() == 5000
        assert settings.get_max_concurrent_streams() == 7
        assert settings.get_echo_provider_enabled() is False
        assert settings.get_api_key() == "s3cret"

    def test_gateway_config_from_settings(self, config_file):
        config = GatewayConfig.from_settings()
        assert config.port == 4000
        assert config.max_concurrent_streams == 3
        assert config.model_aliases == {"fast": "acme/gpt-mini"}


class TestRuntimeConfig:

    def test_update_unknown_field(self):
        with pytest.raises(ValueError):
            GatewayConfig().update(colour="blue")

    def test_public_view_hides_key(self):
        view = GatewayConfig(api_key="s3cret").public_view()
        assert view["apiKeyConfigured"] is True
        assert "s3cret" not in view.values()

    def test_context_update_config(self):
        gateway = GatewayContext(GatewayConfig())
        gateway.update_config(model_aliases={"fast": "acme/gpt-mini"}, max_concurrent_streams=4)
        assert gateway.resolve_route("fast") == ModelRoute("acme", "gpt-mini")
        assert gateway.streams.max_concurrent_streams == 4

    def test_context_default_route(self):
        gateway = GatewayContext(GatewayConfig(default_provider_id="acme", default_model_id="base"))
        assert gateway.resolve_route("anything") == ModelRoute("acme", "base")

    def test_echo_registered(self):
        gateway = GatewayContext(GatewayConfig(echo_provider_enabled=True))
        assert gateway.providers.get("echo") is not None
        assert gateway.resolve_route("echo/echo") == ModelRoute("echo", "echo")
