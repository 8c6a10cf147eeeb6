# Copyright 2025 iGenius S.p.A
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Custom exceptions.

The CLI is the only layer that turns these into human-facing output; core
modules raise them and never print.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from sol_cloud.platform.protocols import Deployment

STAGE_OUTPUT_LINES = 40


def last_n_lines(text: str, n: int = STAGE_OUTPUT_LINES) -> str:
    """Return the last ``n`` lines of ``text`` (CRLF normalized)."""
    if n <= 0:
        return ""
    lines = text.replace("\r\n", "\n").split("\n")
    if len(lines) <= n:
        return text
    return "\n".join(lines[-n:])


class SolCloudError(Exception):
    """Base class for all custom exceptions.

    Useful to catch all of them.
    """


class ConfigError(SolCloudError):
    """Invalid or missing configuration, detected before any remote call."""

    def __init__(self, field: str, message: str):
        """Raise the ConfigError.

        Args:
            field (str): Name of the offending configuration field.
            message (str): What is wrong with it.
        """
        self.field = field
        self.message = message
        super().__init__(f"{field}: {message}")


class AuthError(SolCloudError):
    """Missing or rejected credentials for a provider."""

    def __init__(self, provider: str, message: str):
        """Raise the AuthError.

        Args:
            provider (str): Provider the credentials belong to (``fly``, ``railway``).
            message (str): Reason. The remedial command is appended automatically.
        """
        self.provider = provider
        self.message = message
        super().__init__(f"{message} (run `sol-cloud auth {provider}`)")


class RemoteAPIError(SolCloudError):
    """Base for failures talking to a provider API."""


class TransportError(RemoteAPIError):
    """Network, DNS or timeout failure: no HTTP response was received."""

    def __init__(self, method: str, url: str, cause: BaseException):
        self.method = method
        self.url = url
        self.cause = cause
        super().__init__(f"request failed {method} {url}: {cause}")


class HTTPStatusError(RemoteAPIError):
    """Non-2xx HTTP status. Keeps the body verbatim for pattern matching."""

    def __init__(self, status: int, body: str, *, context: str = ""):
        self.status = status
        self.body = body
        self.context = context
        prefix = f"{context} " if context else ""
        super().__init__(f"{prefix}failed ({status}): {body.strip()}")


class GraphQLError(RemoteAPIError):
    """2xx GraphQL reply carrying a non-empty ``errors`` array or no usable envelope."""

    def __init__(self, messages: list[str], *, data: dict[str, Any] | None = None):
        self.messages = list(messages)
        self.data = data or {}
        super().__init__("graphql error: " + "; ".join(self.messages))

    @property
    def first_message(self) -> str:
        return self.messages[0] if self.messages else ""


class RPCError(SolCloudError):
    """Base for validator JSON-RPC failures."""


class RPCStatusError(RPCError):
    def __init__(self, status: int, body: str):
        self.status = status
        self.body = body
        super().__init__(f"rpc status {status}: {body.strip()}")


class RPCResponseError(RPCError):
    """The JSON-RPC envelope carried a non-null ``error`` object."""

    def __init__(self, code: int, message: str):
        self.code = code
        self.message = message
        super().__init__(f"rpc error {code}: {message}")


class RPCResultError(RPCError):
    """The ``result`` value was missing or not what the method promises."""


class StageError(SolCloudError):
    """A provisioning stage failed outright.

    The message is ``"<stage> failed: <cause>"`` followed by at most the last
    40 lines of captured command output, if any.
    """

    def __init__(self, stage: str, cause: BaseException | str, output: str = ""):
        self.stage = stage
        self.cause = cause
        self.output = output.strip()
        msg = f"{stage} failed: {cause}"
        if self.output:
            msg = f"{msg}\n{last_n_lines(self.output)}"
        super().__init__(msg)


class HealthCheckTimeoutError(SolCloudError):
    """The RPC endpoint never reported healthy within the timeout."""

    def __init__(self, url: str, last_error: BaseException | None):
        self.url = url
        self.last_error = last_error
        reason = last_error if last_error is not None else "timed out"
        super().__init__(f"rpc endpoint {url} did not become healthy: {reason}")


class DeployedButUnhealthyError(SolCloudError):
    """Remote resources exist but the post-deploy health check failed.

    Nothing is rolled back; ``deployment`` is the structurally complete result
    so the caller can still record it.
    """

    def __init__(self, deployment: Deployment, cause: BaseException):
        self.deployment = deployment
        self.cause = cause
        super().__init__(f"deployment completed but RPC health check failed: {cause}")


class DeploymentNotFoundError(SolCloudError):
    """Deployment name not found in the local state."""

    def __init__(self, deployment_name: str):
        """Raise the DeploymentNotFoundError.

        Args:
            deployment_name (str): Name of the deployment not found in the DB.
        """
        self.deployment_name = deployment_name
        super().__init__(f"Deployment '{deployment_name}' not found in local state.")


class NoDeploymentsError(SolCloudError):
    """The local state holds no deployments at all."""

    def __init__(self, message: str = "no deployments found in local state"):
        super().__init__(message)
