import pytest

from agent_auth.app_config import AppConfig, Config, ModuleLoader
from agent_auth.configs import AA_FLOW_STATE_TTL, AA_REDIRECT_URI, AA_SCOPES


@pytest.fixture
def isolated_configs(monkeypatch):
    monkeypatch.setattr(AppConfig, "configs", list(AppConfig.configs))


def test_defaults_apply(monkeypatch):
    monkeypatch.delenv(AA_SCOPES.env_name, raising=False)
    monkeypatch.delenv(AA_FLOW_STATE_TTL.env_name, raising=False)

    config = AppConfig()

    assert config.get(AA_SCOPES.env_name) == "openid"
    assert config.get(AA_FLOW_STATE_TTL.env_name) == "300"


def test_environment_overrides_default(monkeypatch):
    monkeypatch.setenv(AA_REDIRECT_URI.env_name, "https://agent.example.com/cb")

    assert AppConfig().get(AA_REDIRECT_URI.env_name) == "https://agent.example.com/cb"


def test_undeclared_key_raises():
    with pytest.raises(KeyError):
        AppConfig().get("AA_NOT_DECLARED")


def test_missing_required_value(monkeypatch, isolated_configs):
    AppConfig.add_config(Config(env_name="AA_TEST_REQUIRED", is_required=True, default_value=None))
    monkeypatch.delenv("AA_TEST_REQUIRED", raising=False)

    with pytest.raises(ValueError, match="AA_TEST_REQUIRED"):
        AppConfig()


def test_add_config_ignores_duplicates(isolated_configs):
    before = len(AppConfig.configs)
    AppConfig.add_configs([AA_SCOPES, AA_SCOPES])
    assert len(AppConfig.configs) == before


def test_module_loader_dotted_name():
    module = ModuleLoader.load_module("agent_auth.credential_store.in_memory_credential_store")
    assert hasattr(module, "InMemoryCredentialStore")


def test_module_loader_file_path(tmp_path):
    module_file = tmp_path / "custom_store_module.py"
    module_file.write_text("VALUE = 42\n")

    module = ModuleLoader.load_module(str(module_file))

    assert module.VALUE == 42


def test_module_loader_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        ModuleLoader.load_module(str(tmp_path / "missing.py"))
