"""Tests for the refresh-token grant client (mocked)."""

from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import requests

from orgscope.msal_util.config import EntraConfig
from orgscope.msal_util.token_client import EntraTokenClient, TokenEndpointUnavailable, TokenGrantRejected


def _client() -> EntraTokenClient:
    config = EntraConfig(
        tenant_id="t",
        client_id="c",
        audience=None,
        clock_skew_seconds=60,
        jwks_cache_ttl_seconds=3600,
        client_secret="secret",
    )
    return EntraTokenClient(config)


@patch("orgscope.msal_util.token_client.requests.post")
def test_refresh_posts_refresh_token_grant(mock_post):
    mock_post.return_value.status_code = 200
    mock_post.return_value.json.return_value = {
        "access_token": "new-access",
        "expires_in": 3600,
        "refresh_token": "rotated",
    }

    before = datetime.now(timezone.utc)
    tokens = _client().refresh("old-refresh")

    args, kwargs = mock_post.call_args
    assert args[0] == "https://login.microsoftonline.com/t/oauth2/v2.0/token"
    assert kwargs["data"]["grant_type"] == "refresh_token"
    assert kwargs["data"]["refresh_token"] == "old-refresh"
    assert kwargs["data"]["client_secret"] == "secret"
    assert tokens.access_token == "new-access"
    assert tokens.refresh_token == "rotated"
    assert (tokens.expires_at - before).total_seconds() >= 3599


@patch("orgscope.msal_util.token_client.requests.post")
def test_refresh_keeps_refresh_token_when_not_rotated(mock_post):
    mock_post.return_value.status_code = 200
    mock_post.return_value.json.return_value = {"access_token": "new-access", "expires_in": 600}
    assert _client().refresh("old-refresh").refresh_token == "old-refresh"


@pytest.mark.parametrize("status_code", [429, 500, 503])
@patch("orgscope.msal_util.token_client.requests.post")
def test_refresh_transient_statuses(mock_post, status_code):
    mock_post.return_value.status_code = status_code
    with pytest.raises(TokenEndpointUnavailable):
        _client().refresh("r")


@patch("orgscope.msal_util.token_client.requests.post")
def test_refresh_network_error_is_transient(mock_post):
    mock_post.side_effect = requests.ConnectionError("down")
    with pytest.raises(TokenEndpointUnavailable):
        _client().refresh("r")


@pytest.mark.parametrize("status_code", [400, 401])
@patch("orgscope.msal_util.token_client.requests.post")
def test_refresh_rejected_grant(mock_post, status_code):
    mock_post.return_value.status_code = status_code
    with pytest.raises(TokenGrantRejected):
        _client().refresh("revoked")
