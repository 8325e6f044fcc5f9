import pytest
from pydantic import ValidationError

from agent_auth.exceptions import MissingAuthorizationCode
from agent_auth.models import (
    AgentConfig,
    AuthClientConfig,
    AuthCodeResponse,
    EmbeddedSignInResult,
    TokenResponse,
)


def test_agent_secret_not_in_repr():
    config = AgentConfig(agent_id="agent-a", agent_secret="hunter2")
    assert "hunter2" not in repr(config)


def test_agent_id_required():
    with pytest.raises(ValidationError):
        AgentConfig(agent_id="", agent_secret="p")


def test_auth_code_response_requires_code():
    with pytest.raises(ValidationError, match="No authorization code found"):
        AuthCodeResponse(code="", state="s")


def test_auth_code_response_from_query_params():
    response = AuthCodeResponse.from_query_params({"code": "c", "state": None})
    assert response.state == ""

    with pytest.raises(MissingAuthorizationCode):
        AuthCodeResponse.from_query_params({"state": "s"})


def test_token_response_keeps_provider_fields():
    token = TokenResponse.model_validate({"access_token": "t", "custom_claim": "x"})
    assert token.token_type == "Bearer"
    assert token.model_extra == {"custom_claim": "x"}


def test_embedded_result_parses_camel_case():
    result = EmbeddedSignInResult.model_validate(
        {"flowStatus": "SUCCESS_COMPLETED", "authData": {"code": "c1", "session_state": "ss1"}}
    )
    assert result.succeeded
    assert result.auth_data.session_state == "ss1"


def test_client_secret_not_in_repr():
    config = AuthClientConfig(
        base_url="https://idp.example.com/",
        client_id="c",
        client_secret="top-secret",
        redirect_uri="http://localhost/cb",
    )
    assert config.base_url == "https://idp.example.com"
    assert "top-secret" not in repr(config)
