# codehub_scheduler/core/scheduler/executor.py
"""Executor for downstream Codehub engine calls.

Resolves a task's endpoint template and parameters into a single HTTP
request against the execution engine and performs it. There is no
retry: one firing is exactly one round trip.
"""

import json
import logging
import mimetypes
import posixpath
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import httpx

from codehub_scheduler.core.scheduler.errors import DownstreamCallError

logger = logging.getLogger(__name__)

# Fixed routing table of the execution engine
ENDPOINT_METHODS = {
    "/execute_codebase": "POST",
    "/code_server": "POST",
    "/rollback_server": "POST",
    "/logs/{dir_name}": "GET",
    "/containers": "GET",
    "/stop_process": "POST",
    "/upload_image": "POST",
}

UPLOAD_ENDPOINT = "/upload_image"
PLACEHOLDER_PATTERN = re.compile(r"\{(\w+)\}")
MISSING_PATH_VALUE = "default"


@dataclass
class PreparedRequest:
    """A resolved downstream request.

    Attributes:
        method: "GET" or "POST".
        url: Absolute URL with the path placeholder substituted.
        params: Query parameters (GET).
        data: Form fields (POST).
        json: JSON body (file upload descriptor).
        warnings: Non-fatal problems found while resolving.
    """

    method: str
    url: str
    params: dict[str, str] | None = None
    data: dict[str, str] | None = None
    json: dict[str, Any] | None = None
    warnings: list[str] = field(default_factory=list)


def resolve_method(endpoint: str) -> str:
    """Look up the HTTP method for an endpoint.

    Read-style endpoints (log retrieval, container listing) are GET,
    everything else is POST.
    """
    method = ENDPOINT_METHODS.get(endpoint)
    if method:
        return method
    if endpoint.startswith("/logs/"):
        return "GET"
    return "POST"


def upload_descriptor(file_ref: str) -> dict[str, Any]:
    """Describe a file reference for the upload endpoint.

    Only the reference itself is described; no file is read.
    """
    name = posixpath.basename(file_ref.replace("\\", "/")) or file_ref
    content_type, _ = mimetypes.guess_type(name)
    return {
        "name": name,
        "size": len(file_ref.encode("utf-8")),
        "content_type": content_type or "application/octet-stream",
    }


def prepare_request(
    base_url: str,
    endpoint: str,
    parameters: Mapping[str, str],
) -> PreparedRequest:
    """Resolve an endpoint template and parameters into a request.

    Args:
        base_url: Execution engine base URL.
        endpoint: Endpoint template, e.g. "/logs/{dir_name}".
        parameters: Task parameters.

    Returns:
        PreparedRequest ready to send.
    """
    remaining = dict(parameters)
    warnings: list[str] = []
    path = endpoint

    match = PLACEHOLDER_PATTERN.search(endpoint)
    if match:
        name = match.group(1)
        value = remaining.pop(name, None)
        if not value:
            warning = (
                f"Missing path parameter '{name}' for endpoint '{endpoint}', "
                f"using '{MISSING_PATH_VALUE}'"
            )
            logger.warning("%s", warning)
            warnings.append(warning)
            value = MISSING_PATH_VALUE
        path = endpoint.replace(match.group(0), str(value), 1)

    url = f"{base_url.rstrip('/')}{path}"
    method = resolve_method(endpoint)

    if method == "GET":
        return PreparedRequest(
            method, url, params=remaining or None, warnings=warnings
        )

    if endpoint == UPLOAD_ENDPOINT:
        file_ref = remaining.get("file")
        descriptor = upload_descriptor(file_ref) if file_ref else None
        return PreparedRequest(
            method, url, json={"file": descriptor}, warnings=warnings
        )

    return PreparedRequest(method, url, data=remaining, warnings=warnings)


def _format_body(response: httpx.Response) -> str:
    """Pretty-print a JSON body, or return the raw text."""
    try:
        return json.dumps(response.json(), indent=2)
    except ValueError:
        return response.text


class DownstreamExecutor:
    """Performs downstream calls against the execution engine.

    Attributes:
        base_url: Execution engine base URL.
        timeout: Request timeout in seconds.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the executor.

        Args:
            base_url: Execution engine base URL.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (used in tests).
        """
        self.base_url = base_url
        self.timeout = timeout
        self._transport = transport

    async def execute(self, request: PreparedRequest) -> str:
        """Send one prepared request.

        Returns:
            The response body, pretty-printed when it is JSON.

        Raises:
            DownstreamCallError: On transport failure, timeout or non-2xx status.
        """
        logger.info("Calling downstream %s %s", request.method, request.url)

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, transport=self._transport
            ) as client:
                response = await client.request(
                    request.method,
                    request.url,
                    params=request.params,
                    data=request.data,
                    json=request.json,
                )
                response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise DownstreamCallError(
                str(e),
                status_code=e.response.status_code,
                response_body=_format_body(e.response),
            ) from e
        except httpx.TimeoutException as e:
            raise DownstreamCallError(
                f"Request to {request.url} timed out after {self.timeout}s"
            ) from e
        except httpx.HTTPError as e:
            raise DownstreamCallError(
                f"Request to {request.url} failed: {e}"
            ) from e

        return _format_body(response)

    async def call(self, endpoint: str, parameters: Mapping[str, str]) -> str:
        """Prepare and send a request for an endpoint template."""
        return await self.execute(prepare_request(self.base_url, endpoint, parameters))
