"""HTTP plumbing for talking to remote inference servers.

Provides the AsyncClient factory used by RemoteLLM and small request helpers
that turn transport failures, non-success statuses and non-JSON bodies into
the typed errors from qmd_remote.errors.
"""

from contextlib import AbstractAsyncContextManager, asynccontextmanager
from typing import Any, AsyncIterator, Callable, Optional

from httpx import AsyncClient, HTTPError, InvalidURL, Response, Timeout
from loguru import logger

from qmd_remote.errors import EndpointRequestError, RemoteProtocolError

ClientFactory = Callable[[], AbstractAsyncContextManager[AsyncClient]]


def build_timeout(connect: float = 10.0, request: float = 30.0) -> Timeout:
    """Build the transport timeout; httpx's 5 second default is too short for generation."""
    return Timeout(connect=connect, read=request, write=request, pool=request)


def create_client_factory(timeout: Optional[Timeout] = None) -> ClientFactory:
    """Return a factory that yields a fresh AsyncClient per call.

    Args:
        timeout: Transport timeout, defaults to build_timeout()

    Returns:
        Async context manager factory yielding an AsyncClient
    """
    timeout = timeout or build_timeout()

    @asynccontextmanager
    async def _client_factory() -> AsyncIterator[AsyncClient]:
        async with AsyncClient(timeout=timeout) as client:
            yield client

    return _client_factory


def _check_status(response: Response, method: str, url: str) -> None:
    if response.is_success:
        return
    message = f"{method} {url} failed: {response.status_code} {response.reason_phrase}"
    raise EndpointRequestError(message, status_code=response.status_code)


def _decode_json(response: Response, url: str) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError as exc:
        raise RemoteProtocolError(f"Response from {url} is not valid JSON") from exc
    if not isinstance(data, dict):
        raise RemoteProtocolError(f"Response from {url} is not a JSON object")
    return data


async def post_json(client: AsyncClient, url: str, payload: dict[str, Any]) -> dict[str, Any]:
    """POST a JSON body and return the decoded JSON object.

    Raises:
        EndpointRequestError: On transport failure, an unencodable payload or
            non-success status
        RemoteProtocolError: If the body is not a JSON object
    """
    logger.debug(f"Calling POST '{url}'")
    try:
        response = await client.post(url, json=payload)
    except (HTTPError, InvalidURL) as exc:
        raise EndpointRequestError(f"POST {url} failed: {exc!r}") from exc
    except ValueError as exc:
        # body could not be encoded, e.g. lone surrogates or NaN
        raise EndpointRequestError(f"POST {url} payload not encodable: {exc!r}") from exc

    _check_status(response, "POST", url)
    return _decode_json(response, url)


async def probe(client: AsyncClient, url: str) -> bool:
    """GET url and report whether it answered with a success status. Never raises."""
    try:
        response = await client.get(url)
    except (HTTPError, InvalidURL) as exc:
        logger.debug(f"Health probe {url} failed: {exc!r}")
        return False
    return response.is_success
