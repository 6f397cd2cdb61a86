"""Auvo API connector - login, then one retrieve/create/upsert/delete call per invocation."""

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable
from urllib.parse import quote

import httpx

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.auvo.com.br/v2"
REQUEST_TIMEOUT = 30.0

# Remote collections exposed by the API: value -> (display name, description)
ENTITIES = {
    "customerGroups": ("Customer Groups", "Groups of customers"),
    "customers": ("Customers", "Customers served by the account"),
    "gps": ("GPS", "GPS positions reported by users"),
    "products": ("Products", "Products and their stock"),
    "taskTypes": ("Task Types", "Task type definitions"),
    "tasks": ("Tasks", "Must set startDate and endDate"),
    "teams": ("Teams", "Teams of users"),
    "users": ("Users", "Users of the account"),
    "webHooks": ("WebHooks", "Webhook subscriptions"),
}
DEFAULT_ENTITY = "customers"


class Operation(str, Enum):
    """Operations the connector can dispatch after login."""

    RETRIEVE = "retrieve"
    CREATE = "create"
    UPSERT = "upsert"
    DELETE = "delete"


# ============================================================================
# ERRORS
# ============================================================================

class AuvoError(Exception):
    """Base exception for connector errors."""

    pass


class AuthenticationError(AuvoError):
    """Raised when the login call does not yield an access token."""

    def __init__(self, message: str, status_code: int | None = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class ValidationError(AuvoError, ValueError):
    """Raised for malformed input: bad JSON, unknown operation or entity, missing field."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


# Network-layer failures (connect errors, DNS, timeouts) propagate unchanged
TransportError = httpx.TransportError


# ============================================================================
# DATA MODEL
# ============================================================================

@dataclass(frozen=True)
class Credentials:
    api_key: str
    api_token: str
    base_url: str = DEFAULT_BASE_URL

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}/{path}"


@dataclass
class OperationRequest:
    """One call against one entity.

    Only the field relevant to ``operation`` is used when dispatching:
    ``filter`` for retrieve, ``attributes`` for create and upsert, ``id`` for
    delete. ``filter`` and ``attributes`` may be JSON strings.
    """

    operation: str = Operation.RETRIEVE.value
    entity: str = DEFAULT_ENTITY
    filter: Any = None
    attributes: Any = None
    id: str | None = None
    page: int = 1
    page_size: int = 10
    order: str = "asc"


@dataclass
class ResponseEnvelope:
    status: int
    data: Any

    def to_dict(self) -> dict[str, Any]:
        return {"status": self.status, "data": self.data}


@dataclass
class PreparedRequest:
    method: str
    path: str
    params: dict[str, Any] | None = None
    json_body: Any = None


# ============================================================================
# HELPERS
# ============================================================================

def parse_json_field(value: Any, field: str) -> Any:
    """Return ``value`` as structured JSON.

    Strings are parsed; dicts and lists pass through unchanged. ``None`` and
    blank strings mean the field was not supplied.

    Raises:
        ValidationError: If a string value is not valid JSON
    """
    if value is None:
        return None
    if not isinstance(value, str):
        return value
    if not value.strip():
        return None
    try:
        return json.loads(value)
    except json.JSONDecodeError as e:
        raise ValidationError(f"{field} is not valid JSON: {e}", field=field) from e


def get_auth_header(access_token: str) -> dict[str, str]:
    """Create Bearer Auth header for Auvo API."""
    return {
        "Authorization": f"Bearer {access_token}",
        "Content-Type": "application/json",
        "Accept": "application/json",
    }


def _response_data(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


# ============================================================================
# LOGIN
# ============================================================================

async def login(client: httpx.AsyncClient, credentials: Credentials) -> str:
    """Exchange the API key and token for a bearer access token.

    Raises:
        AuthenticationError: If the response carries no ``result.accessToken``
        httpx.TransportError: If the request fails at the network layer
    """
    response = await client.get(
        credentials.url("login/"),
        params={"apiKey": credentials.api_key, "apiToken": credentials.api_token},
        headers={"Content-Type": "application/json"},
        timeout=REQUEST_TIMEOUT,
    )
    try:
        payload = response.json()
    except ValueError:
        payload = None

    result = payload.get("result") if isinstance(payload, dict) else None
    access_token = result.get("accessToken") if isinstance(result, dict) else None
    if not access_token:
        logger.warning("Auvo login failed with status %s", response.status_code)
        raise AuthenticationError(
            f"Failed to retrieve accessToken from Auvo (HTTP {response.status_code}). {response.text}",
            status_code=response.status_code,
            body=response.text,
        )

    logger.debug("Auvo login succeeded")
    return access_token


async def check_credentials(credentials: Credentials) -> bool:
    """Check whether the credentials can log in. Performs only the login call."""
    async with httpx.AsyncClient() as client:
        try:
            await login(client, credentials)
        except AuthenticationError:
            return False
    return True


# ============================================================================
# REQUEST BUILDERS (one per operation)
# ============================================================================

def _build_retrieve(request: OperationRequest, filter_: Any, attributes: Any) -> PreparedRequest:
    param_filter = json.dumps(filter_ if filter_ is not None else {}, separators=(",", ":"))
    return PreparedRequest(
        method="GET",
        path=f"{request.entity}/",
        params={
            "paramFilter": param_filter,
            "page": request.page,
            "pageSize": request.page_size,
            "order": request.order,
        },
    )


def _require_attributes(request: OperationRequest, attributes: Any) -> Any:
    if attributes is None:
        raise ValidationError(f"attributes is required for {request.operation}", field="attributes")
    return attributes


def _build_create(request: OperationRequest, filter_: Any, attributes: Any) -> PreparedRequest:
    return PreparedRequest(
        method="POST",
        path=f"{request.entity}/",
        json_body=_require_attributes(request, attributes),
    )


def _build_upsert(request: OperationRequest, filter_: Any, attributes: Any) -> PreparedRequest:
    return PreparedRequest(
        method="PUT",
        path=f"{request.entity}/",
        json_body=_require_attributes(request, attributes),
    )


def _build_delete(request: OperationRequest, filter_: Any, attributes: Any) -> PreparedRequest:
    entity_id = str(request.id).strip() if request.id is not None else ""
    if not entity_id:
        raise ValidationError("id is required for delete", field="id")
    return PreparedRequest(method="DELETE", path=f"{request.entity}/{quote(entity_id, safe='')}")


REQUEST_BUILDERS: dict[Operation, Callable[[OperationRequest, Any, Any], PreparedRequest]] = {
    Operation.RETRIEVE: _build_retrieve,
    Operation.CREATE: _build_create,
    Operation.UPSERT: _build_upsert,
    Operation.DELETE: _build_delete,
}


def prepare_request(request: OperationRequest) -> PreparedRequest:
    """Validate ``request`` and build the downstream call it describes.

    Raises:
        ValidationError: On malformed JSON, an unknown entity or operation,
            or a missing attributes/id
    """
    filter_ = parse_json_field(request.filter, "filter")
    attributes = parse_json_field(request.attributes, "attributes")

    if not isinstance(request.entity, str) or request.entity not in ENTITIES:
        raise ValidationError(
            f"Invalid entity: '{request.entity}'. Must be one of: {', '.join(ENTITIES)}",
            field="entity",
        )

    try:
        operation = Operation(request.operation)
    except ValueError:
        raise ValidationError("Invalid operation.", field="operation") from None

    return REQUEST_BUILDERS[operation](request, filter_, attributes)


# ============================================================================
# EXECUTE
# ============================================================================

async def execute(credentials: Credentials, request: OperationRequest) -> ResponseEnvelope:
    """Log in, then issue the single call described by ``request``.

    Login is unconditional and happens before input validation, so every
    invocation costs at least one login call. Downstream HTTP errors are
    returned in the envelope rather than raised.

    Raises:
        AuthenticationError: If login yields no access token
        ValidationError: If the request is malformed
        httpx.TransportError: If a call fails at the network layer
    """
    async with httpx.AsyncClient() as client:
        access_token = await login(client, credentials)
        prepared = prepare_request(request)

        logger.info("Auvo %s %s", prepared.method, prepared.path)
        response = await client.request(
            method=prepared.method,
            url=credentials.url(prepared.path),
            headers=get_auth_header(access_token),
            params=prepared.params,
            json=prepared.json_body,
            timeout=REQUEST_TIMEOUT,
        )

    if response.is_error:
        logger.info("Auvo %s %s returned %s", prepared.method, prepared.path, response.status_code)
    return ResponseEnvelope(status=response.status_code, data=_response_data(response))
