from unittest import mock
from urllib.parse import parse_qs, urlparse

import pytest
import requests
from google.auth.exceptions import RefreshError

from photomemory.clients.google import (
    PICKER_API_BASE,
    TOKEN_URL,
    USERINFO_URL,
    GoogleOAuthClient,
    PhotosPickerClient,
    build_authorization_url,
)
from photomemory.errors import (
    ExchangeFailed,
    IdentityFetchFailed,
    PickerApiError,
    RefreshFailed,
)


def _response(status=200, payload=None, text="", content=b"{}"):
    response = mock.Mock()
    response.ok = 200 <= status < 300
    response.status_code = status
    response.text = text
    response.content = content
    response.json.return_value = payload
    return response


def test_authorization_url_requests_offline_consent():
    url = build_authorization_url(
        client_id="client",
        redirect_uri="https://api.example.com/auth-callback",
        scope="openid email",
        state="state-1",
        code_challenge="challenge",
    )
    parsed = urlparse(url)
    query = {key: values[0] for key, values in parse_qs(parsed.query).items()}
    assert parsed.netloc == "accounts.google.com"
    assert query["access_type"] == "offline"
    assert query["prompt"] == "consent"
    assert query["code_challenge_method"] == "S256"
    assert query["state"] == "state-1"
    assert query["scope"] == "openid email"


def test_exchange_code_posts_verifier_and_parses_grant():
    session = mock.Mock()
    session.post.return_value = _response(
        payload={"access_token": "a", "expires_in": 3599, "refresh_token": "r"}
    )
    client = GoogleOAuthClient("client", "secret", session=session)

    grant = client.exchange_code("code-1", "verifier-1", "https://cb")

    assert grant.access_token == "a"
    assert grant.expires_in == 3599
    assert grant.refresh_token == "r"
    args, kwargs = session.post.call_args
    assert args[0] == TOKEN_URL
    assert kwargs["data"]["code_verifier"] == "verifier-1"
    assert kwargs["data"]["grant_type"] == "authorization_code"
    assert kwargs["data"]["client_secret"] == "secret"


def test_exchange_code_failure_keeps_detail_server_side():
    session = mock.Mock()
    session.post.return_value = _response(status=400, text='{"error": "invalid_grant"}')
    client = GoogleOAuthClient("client", "secret", session=session)

    with pytest.raises(ExchangeFailed) as excinfo:
        client.exchange_code("code", "verifier", "https://cb")
    assert excinfo.value.detail == '{"error": "invalid_grant"}'
    assert "invalid_grant" not in excinfo.value.message


def test_refresh_defaults_expiry_and_omits_refresh_token():
    session = mock.Mock()
    session.post.return_value = _response(payload={"access_token": "fresh"})
    client = GoogleOAuthClient("client", "secret", session=session)

    grant = client.refresh_access_token("refresh-1")

    assert grant.expires_in == 3600
    assert grant.refresh_token is None
    assert session.post.call_args.kwargs["data"]["grant_type"] == "refresh_token"


def test_refresh_transport_error_raises_refresh_failed():
    session = mock.Mock()
    session.post.side_effect = requests.Timeout("slow")
    client = GoogleOAuthClient("client", "secret", session=session)
    with pytest.raises(RefreshFailed):
        client.refresh_access_token("refresh-1")


def test_fetch_identity_requires_subject():
    session = mock.Mock()
    session.get.return_value = _response(payload={"sub": "user-1", "email": "a@example.com"})
    client = GoogleOAuthClient("client", "secret", session=session)

    identity = client.fetch_identity("access")

    assert identity.subject_id == "user-1"
    assert identity.email == "a@example.com"
    assert session.get.call_args.args[0] == USERINFO_URL
    assert session.get.call_args.kwargs["headers"]["Authorization"] == "Bearer access"

    session.get.return_value = _response(payload={"email": "a@example.com"})
    with pytest.raises(IdentityFetchFailed):
        client.fetch_identity("access")


def test_picker_client_creates_session_with_item_limit():
    session = mock.Mock()
    session.request.return_value = _response(payload={"id": "s1", "pickerUri": "https://p"})
    client = PhotosPickerClient("access", api_key="key", session=session)

    payload = client.create_session(25)

    assert payload["id"] == "s1"
    args, kwargs = session.request.call_args
    assert args == ("POST", f"{PICKER_API_BASE}/sessions")
    assert kwargs["json"] == {"pickingConfig": {"maxItemCount": 25}}
    assert kwargs["params"] == {"key": "key"}


def test_picker_client_lists_media_items_with_page_token():
    session = mock.Mock()
    session.request.return_value = _response(payload={"mediaItems": []})
    client = PhotosPickerClient("access", session=session)

    client.list_media_items("s1", page_token="next", page_size=10)

    kwargs = session.request.call_args.kwargs
    assert kwargs["params"] == {"sessionId": "s1", "pageSize": 10, "pageToken": "next"}


def test_picker_client_delete_accepts_empty_body():
    session = mock.Mock()
    session.request.return_value = _response(content=b"")
    client = PhotosPickerClient("access", session=session)
    client.delete_session("s1")
    assert session.request.call_args.args == ("DELETE", f"{PICKER_API_BASE}/sessions/s1")


def test_picker_client_errors_carry_status():
    session = mock.Mock()
    session.request.return_value = _response(status=403, text="PERMISSION_DENIED")
    client = PhotosPickerClient("access", session=session)

    with pytest.raises(PickerApiError) as excinfo:
        client.get_session("s1")
    assert excinfo.value.status == 403
    assert "PERMISSION_DENIED" in str(excinfo.value)

    session.request.side_effect = RefreshError("expired")
    with pytest.raises(PickerApiError) as excinfo:
        client.get_session("s1")
    assert excinfo.value.status == 401


def test_null_expiry_falls_back_to_one_hour():
    session = mock.Mock()
    session.post.return_value = _response(payload={"access_token": "a", "expires_in": None})
    client = GoogleOAuthClient("client", "secret", session=session)
    assert client.refresh_access_token("refresh-1").expires_in == 3600


@pytest.mark.parametrize(
    "payload",
    [
        {"access_token": "a", "expires_in": {"seconds": 10}},
        {"access_token": "a", "expires_in": "soon"},
        ["not", "an", "object"],
    ],
)
def test_malformed_token_response_is_exchange_failure(payload):
    session = mock.Mock()
    session.post.return_value = _response(payload=payload)
    client = GoogleOAuthClient("client", "secret", session=session)
    with pytest.raises(ExchangeFailed):
        client.exchange_code("code", "verifier", "https://cb")
