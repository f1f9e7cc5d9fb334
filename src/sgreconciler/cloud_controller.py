"""Cloud Controller client for security groups, service instances and orgs.

The reconciler depends only on the CloudController protocol. CloudControllerClient
is the production implementation over the Cloud Controller v2 REST API, built on
the azure-core HTTP pipeline.

ERROR MODEL:
- HTTP 404 raises azure.core.exceptions.ResourceNotFoundError
- A name lookup with no match raises SecurityGroupNotFound (a ResourceNotFoundError)
- Any other HTTP error raises HttpResponseError carrying the response

SECURITY: Every request is bounded by the configured timeout to prevent
indefinite hangs. Authentication is not performed here; callers inject a
TokenCredential if the API requires one.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Sequence
from typing import Any, Protocol

from azure.core import PipelineClient
from azure.core.credentials import TokenCredential
from azure.core.exceptions import HttpResponseError, ResourceNotFoundError
from azure.core.pipeline.policies import (
    BearerTokenCredentialPolicy,
    HeadersPolicy,
    NetworkTraceLoggingPolicy,
    UserAgentPolicy,
)
from azure.core.rest import HttpRequest

from .config import DEFAULT_REQUEST_TIMEOUT_SECONDS, Config
from .models import Organization, SecurityGroup, SecurityGroupRule, ServiceInstance

logger = logging.getLogger(__name__)

USER_AGENT = "cf-security-group-reconciler"
CLOUD_CONTROLLER_SCOPE = "cloud_controller.admin"

SECURITY_GROUPS_PATH = "/v2/security_groups"
SERVICE_INSTANCES_PATH = "/v2/service_instances"
ORGANIZATIONS_PATH = "/v2/organizations"


class SecurityGroupNotFound(ResourceNotFoundError):
    """Raised when no security group with the requested name exists."""

    def __init__(self, name: str) -> None:
        super().__init__(message=f"Security group '{name}' not found")
        self.name = name


class CloudController(Protocol):
    """Remote operations the reconciler needs from the Cloud Controller."""

    async def create_security_group(
        self,
        name: str,
        rules: Sequence[SecurityGroupRule],
        space_guids: Sequence[str],
    ) -> SecurityGroup: ...

    async def find_security_group_by_name(self, name: str) -> SecurityGroup: ...

    async def delete_security_group(self, guid: str) -> None: ...

    async def get_service_instance(self, guid: str) -> ServiceInstance: ...

    async def get_organization(self, guid: str) -> Organization: ...


class CloudControllerClient:
    """Cloud Controller v2 client.

    The azure-core pipeline is synchronous; each request runs in the default
    executor and is awaited with a timeout so callers stay non-blocking.
    """

    def __init__(
        self,
        base_url: str,
        *,
        credential: TokenCredential | None = None,
        timeout_seconds: int = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        pipeline_client: PipelineClient | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            base_url: Cloud Controller API URL.
            credential: Optional token credential for bearer authentication.
            timeout_seconds: Per-request timeout.
            pipeline_client: Pre-built pipeline client (tests inject one).
        """
        if not base_url and pipeline_client is None:
            raise ValueError("base_url is required")

        self._timeout_seconds = timeout_seconds
        self._client = pipeline_client or PipelineClient(
            base_url=base_url,
            policies=self._build_policies(credential),
        )

    @classmethod
    def from_config(
        cls, config: Config, credential: TokenCredential | None = None
    ) -> CloudControllerClient:
        """Create a client from reconciler configuration."""
        return cls(
            config.cloud_controller_url,
            credential=credential,
            timeout_seconds=config.request_timeout_seconds,
        )

    @staticmethod
    def _build_policies(credential: TokenCredential | None) -> list[Any]:
        policies: list[Any] = [
            HeadersPolicy({"Accept": "application/json"}),
            UserAgentPolicy(base_user_agent=USER_AGENT),
        ]
        if credential is not None:
            policies.append(BearerTokenCredentialPolicy(credential, CLOUD_CONTROLLER_SCOPE))
        policies.append(NetworkTraceLoggingPolicy())
        return policies

    async def create_security_group(
        self,
        name: str,
        rules: Sequence[SecurityGroupRule],
        space_guids: Sequence[str],
    ) -> SecurityGroup:
        body = {
            "name": name,
            "rules": [rule.to_payload() for rule in rules],
            "space_guids": list(space_guids),
        }
        resource = await self._request("POST", SECURITY_GROUPS_PATH, json=body)
        security_group = SecurityGroup.from_resource(resource or {})
        if not security_group.guid:
            raise HttpResponseError(
                message=f"POST {SECURITY_GROUPS_PATH} returned no security group guid"
            )
        return security_group

    async def find_security_group_by_name(self, name: str) -> SecurityGroup:
        """Find a security group by its exact name.

        Raises:
            SecurityGroupNotFound: If no group has this name.
        """
        page = await self._request("GET", SECURITY_GROUPS_PATH, params={"q": f"name:{name}"})
        resources = (page or {}).get("resources") or []
        if not resources:
            raise SecurityGroupNotFound(name)
        return SecurityGroup.from_resource(resources[0])

    async def delete_security_group(self, guid: str) -> None:
        await self._request(
            "DELETE", f"{SECURITY_GROUPS_PATH}/{guid}", params={"async": "false"}
        )

    async def get_service_instance(self, guid: str) -> ServiceInstance:
        resource = await self._request("GET", f"{SERVICE_INSTANCES_PATH}/{guid}")
        return ServiceInstance.from_resource(resource or {})

    async def get_organization(self, guid: str) -> Organization:
        resource = await self._request("GET", f"{ORGANIZATIONS_PATH}/{guid}")
        return Organization.from_resource(resource or {})

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> dict[str, Any] | None:
        """Send one request and decode the JSON body.

        Returns:
            Decoded body, or None for empty (204) responses.

        Raises:
            ResourceNotFoundError: On HTTP 404.
            HttpResponseError: On any other HTTP error status.
            TimeoutError: If the request exceeds the timeout.
        """
        request = HttpRequest(method, self._client.format_url(path), params=params, json=json)
        send = functools.partial(
            self._client.send_request,
            request,
            connection_timeout=self._timeout_seconds,
            read_timeout=self._timeout_seconds,
        )

        loop = asyncio.get_running_loop()
        try:
            response = await asyncio.wait_for(
                loop.run_in_executor(None, send),
                timeout=self._timeout_seconds,
            )
        except TimeoutError:
            logger.error(
                f"Cloud Controller request timed out: {method} {path}",
                extra={"timeout_seconds": self._timeout_seconds},
            )
            raise

        if response.status_code == 404:
            raise ResourceNotFoundError(
                message=f"{method} {path} returned 404", response=response
            )
        if response.status_code >= 400:
            logger.debug(
                "Cloud Controller error response",
                extra={"method": method, "path": path, "status_code": response.status_code},
            )
            raise HttpResponseError(
                message=f"{method} {path} returned {response.status_code}",
                response=response,
            )
        if response.status_code == 204:
            return None
        return response.json()
