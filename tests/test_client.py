# tests/test_client.py
from __future__ import annotations

import pytest
import requests

from scimload.client import (
    ROLE_SERVICE_PATH,
    SCIM_USERS_PATH,
    IdentityClient,
    OperationError,
    build_add_role_envelope,
    build_scim_user,
)
from scimload.config import HarnessConfig
from scimload.engine.types import ROLE, USER, Operation


class FakeResponse:
    def __init__(self, status_code: int, body=None, text: str = ""):
        self.status_code = status_code
        self._body = body
        self.text = text

    def json(self):
        if self._body is None:
            raise ValueError("no json")
        return self._body


class FakeSession:
    def __init__(self, response=None, error: Exception | None = None):
        self.response = response
        self.error = error
        self.posts: list[tuple[str, dict]] = []
        self.verify = True
        self.closed = False

    def post(self, url, **kwargs):
        self.posts.append((url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    def close(self):
        self.closed = True


def _client(session, sleeps=None):
    return IdentityClient(
        HarnessConfig(),
        session=session,
        sleep=(sleeps.append if sleeps is not None else lambda s: None),
    )


def test_create_user_posts_scim_payload_as_tenant_admin():
    session = FakeSession(FakeResponse(201, {"id": "abc", "userName": "isTestUser_4"}))

    created = _client(session).create_user(3, "isTestUser_4")

    assert created.id == "abc"
    url, kwargs = session.posts[0]
    assert url == f"https://localhost:9443{SCIM_USERS_PATH}"
    assert kwargs["auth"].username == "admin@wso2.com@tenant3.com"
    assert kwargs["auth"].password == "tpass"
    assert kwargs["timeout"] == 30.0
    assert kwargs["json"]["userName"] == "isTestUser_4"
    assert kwargs["json"]["roles"] == [{"type": "default", "value": "isTestUserRole"}]
    assert session.verify is False


def test_create_user_rejects_bad_status():
    session = FakeSession(FakeResponse(409, text="conflict"))
    with pytest.raises(OperationError, match="status 409: conflict"):
        _client(session).create_user(1, "u_1")


def test_create_user_rejects_username_mismatch():
    session = FakeSession(FakeResponse(200, {"id": "x", "userName": "other"}))
    with pytest.raises(OperationError, match="username mismatch"):
        _client(session).create_user(1, "u_1")


def test_create_user_rejects_non_json_body():
    session = FakeSession(FakeResponse(201, None, text="<html/>"))
    with pytest.raises(OperationError, match="decode"):
        _client(session).create_user(1, "u_1")


def test_timeout_is_an_operation_error():
    session = FakeSession(error=requests.Timeout("slow"))
    with pytest.raises(OperationError, match="timed out after 30.0s"):
        _client(session).create_user(1, "u_1")


def test_connection_error_is_an_operation_error():
    session = FakeSession(error=requests.ConnectionError("refused"))
    with pytest.raises(OperationError, match="refused"):
        _client(session).create_user(1, "u_1")


def test_create_role_posts_soap_and_pauses():
    sleeps: list[float] = []
    session = FakeSession(FakeResponse(202))

    _client(session, sleeps).create_role(5)

    url, kwargs = session.posts[0]
    assert url.endswith(ROLE_SERVICE_PATH)
    assert kwargs["headers"]["SOAPAction"] == "urn:addRole"
    assert b"<ser:roleName>isTestUserRole</ser:roleName>" in kwargs["data"]
    assert kwargs["auth"].username == "admin@wso2.com@tenant5.com"
    assert sleeps == [5.0]


def test_create_role_failure_does_not_pause():
    sleeps: list[float] = []
    session = FakeSession(FakeResponse(500, text="fault"))

    with pytest.raises(OperationError, match="role creation failed with status 500"):
        _client(session, sleeps).create_role(1)
    assert sleeps == []


def test_perform_dispatches_on_kind():
    session = FakeSession(FakeResponse(201, {"id": "id-9", "userName": "isTestUser_9"}))
    client = _client(session)

    assert client.perform(Operation(kind=USER, tenant_index=1, user_index=9)) == "id-9"
    assert session.posts[-1][1]["json"]["userName"] == "isTestUser_9"

    session.response = FakeResponse(200)
    assert client.perform(Operation(kind=ROLE, tenant_index=1)) is None

    with pytest.raises(OperationError):
        client.perform(Operation(kind="group", tenant_index=1))


def test_close_closes_session():
    session = FakeSession()
    _client(session).close()
    assert session.closed


def test_envelope_lists_all_permissions():
    envelope = build_add_role_envelope("r")
    assert envelope.count("<ser:permissions>") == 3
    assert "/permission/admin/manage/" in envelope


def test_scim_user_names_follow_prefix():
    body = build_scim_user(HarnessConfig(), "isTestUser_1")
    assert body["name"] == {"familyName": "isTestUser_Family", "givenName": "isTestUser_givenName"}
    assert body["password"] == "Password_1"
