from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

import requests
import urllib3
from requests.auth import HTTPBasicAuth
from urllib3.exceptions import InsecureRequestWarning

from .config import HarnessConfig
from .engine.types import ROLE, USER, Operation

LOGGER = logging.getLogger("scimload.client")

ROLE_SERVICE_PATH = "/services/RemoteUserStoreManagerService"
SCIM_USERS_PATH = "/wso2/scim/Users"

ROLE_PERMISSIONS: tuple[str, ...] = (
    "/permission/admin/login",
    "/permission/admin/configure/",
    "/permission/admin/manage/",
)

ADD_ROLE_ENVELOPE = """<soapenv:Envelope xmlns:soapenv="http://schemas.xmlsoap.org/soap/envelope/" xmlns:ser="http://service.ws.um.carbon.wso2.org" xmlns:xsd="http://dao.service.ws.um.carbon.wso2.org/xsd">
   <soapenv:Header/>
   <soapenv:Body>
      <ser:addRole>
         <ser:roleName>{role_name}</ser:roleName>
{permissions}
      </ser:addRole>
   </soapenv:Body>
</soapenv:Envelope>"""

PERMISSION_ELEMENT = """         <ser:permissions>
            <xsd:action>ui.execute</xsd:action>
            <xsd:resourceId>{resource}</xsd:resourceId>
         </ser:permissions>"""


class OperationError(Exception):
    """Raised when a remote role or user creation does not succeed."""


@dataclass(frozen=True)
class CreatedUser:
    id: str
    username: str


def build_add_role_envelope(role_name: str) -> str:
    permissions = "\n".join(PERMISSION_ELEMENT.format(resource=r) for r in ROLE_PERMISSIONS)
    return ADD_ROLE_ENVELOPE.format(role_name=role_name, permissions=permissions)


def build_scim_user(config: HarnessConfig, username: str) -> dict[str, object]:
    payload = config.payload
    return {
        "schemas": [],
        "userName": username,
        "password": payload.user_password,
        "name": {
            "familyName": f"{payload.username_prefix}Family",
            "givenName": f"{payload.username_prefix}givenName",
        },
        "wso2Extension": {"accountLocked": "false"},
        "emails": [
            {"primary": True, "value": "mail_home.com", "type": "home"},
            {"value": "mail_work.com", "type": "work"},
        ],
        "roles": [{"type": "default", "value": payload.role_name}],
    }


class IdentityClient:
    """Blocking client for the role (SOAP) and user (SCIM2) endpoints.

    Each worker owns one instance and therefore one ``requests.Session``.
    Credentials switch to the tenant admin on every call.
    """

    def __init__(
        self,
        config: HarnessConfig,
        session: requests.Session | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._config = config
        self._session = session or requests.Session()
        self._session.verify = config.server.verify_tls
        self._timeout = config.execution.request_timeout_s
        self._sleep = sleep
        if not config.server.verify_tls:
            urllib3.disable_warnings(InsecureRequestWarning)

    def _auth(self, tenant_index: int) -> HTTPBasicAuth:
        return HTTPBasicAuth(
            self._config.tenant_admin_username(tenant_index),
            self._config.server.password,
        )

    def _post(self, tenant_index: int, path: str, **kwargs) -> requests.Response:
        url = f"{self._config.server_url}{path}"
        try:
            return self._session.post(
                url,
                auth=self._auth(tenant_index),
                timeout=self._timeout,
                **kwargs,
            )
        except requests.Timeout as exc:
            raise OperationError(f"request to {url} timed out after {self._timeout}s") from exc
        except requests.RequestException as exc:
            raise OperationError(f"request to {url} failed: {exc}") from exc

    def create_role(self, tenant_index: int) -> None:
        role_name = self._config.payload.role_name
        response = self._post(
            tenant_index,
            ROLE_SERVICE_PATH,
            data=build_add_role_envelope(role_name).encode("utf-8"),
            headers={"Content-Type": "text/xml", "SOAPAction": "urn:addRole"},
        )
        if response.status_code not in (200, 202):
            raise OperationError(
                f"role creation failed with status {response.status_code}: {response.text}"
            )
        LOGGER.info("role %r created for tenant %d", role_name, tenant_index)

        delay = self._config.execution.role_creation_delay_s
        if delay > 0:
            self._sleep(delay)

    def create_user(self, tenant_index: int, username: str) -> CreatedUser:
        response = self._post(
            tenant_index,
            SCIM_USERS_PATH,
            json=build_scim_user(self._config, username),
        )
        if response.status_code not in (200, 201):
            raise OperationError(
                f"user creation failed with status {response.status_code}: {response.text}"
            )
        try:
            body = response.json()
        except ValueError as exc:
            raise OperationError(f"failed to decode user response: {exc}") from exc
        if not isinstance(body, dict):
            raise OperationError(f"unexpected user response: {body!r}")

        returned = body.get("userName")
        if returned != username:
            raise OperationError(
                f"username mismatch in response: expected {username}, got {returned}"
            )
        return CreatedUser(id=str(body.get("id", "")), username=returned)

    def perform(self, operation: Operation) -> str | None:
        if operation.kind == ROLE:
            self.create_role(operation.tenant_index)
            return None
        if operation.kind == USER:
            username = operation.username
            if username is None:
                username = self._config.test_username(operation.user_index)
            return self.create_user(operation.tenant_index, username).id
        raise OperationError(f"unsupported operation kind {operation.kind!r}")

    def close(self) -> None:
        self._session.close()


def client_factory(config: HarnessConfig) -> Callable[[], IdentityClient]:
    def create() -> IdentityClient:
        return IdentityClient(config)

    return create


__all__ = [
    "OperationError",
    "CreatedUser",
    "IdentityClient",
    "build_add_role_envelope",
    "build_scim_user",
    "client_factory",
]
