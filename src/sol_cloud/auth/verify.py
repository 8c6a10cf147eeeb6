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

"""Token verification before a token is persisted.

Provider tokens are often scoped (org tokens, deploy tokens, project tokens),
so a single probe gives false negatives. Each verifier runs a cheap primary
probe and falls back to a different API surface when the primary answer is
not conclusive.
"""

from dataclasses import dataclass
import secrets

from sol_cloud.backends.http import APIClient
from sol_cloud.exceptions import AuthError, GraphQLError, HTTPStatusError, TransportError
from sol_cloud.helpers.logger import setup_logger

logger = setup_logger(__name__)

# Bodies of a 404 that come from an authenticated app lookup, as opposed to
# a generic routing 404 from an edge proxy.
FLY_APP_NOT_FOUND_MARKERS = ("app not found", "could not find app", "app_not_found")

FLY_VIEWER_QUERY = "query { viewer { id } }"
RAILWAY_ME_QUERY = "query { me { id } }"
RAILWAY_PROJECTS_QUERY = "query { projects { edges { node { id } } } }"


@dataclass(frozen=True)
class Verification:
    provider: str
    via: str


def _probe_app_name() -> str:
    return f"sol-cloud-token-probe-{secrets.token_hex(4)}"


def is_authenticated_not_found(body: str) -> bool:
    lower = body.lower()
    return any(m in lower for m in FLY_APP_NOT_FOUND_MARKERS)


def verify_fly_token(machines: APIClient, graphql: APIClient) -> Verification:
    """Check a Fly token against the Machines API, then GraphQL.

    1. ``GET /apps/<random-probe-name>``: 2xx or an app-not-found 404 means the
       token was accepted. 401 is final.
    2. Anything else (403, routing 404, 5xx) gets exactly one fallback:
       ``viewer { id }`` on the GraphQL API.
    """
    resp = machines.request("GET", f"/apps/{_probe_app_name()}")
    if resp.ok:
        return Verification("fly", "machines")
    if resp.status == 401:
        raise AuthError("fly", f"fly token rejected (401): {resp.text.strip()}")
    if resp.status == 404 and is_authenticated_not_found(resp.text):
        return Verification("fly", "machines")

    logger.debug(f"Machines API probe inconclusive ({resp.status}); trying GraphQL viewer")
    try:
        data = graphql.graphql(FLY_VIEWER_QUERY)
    except GraphQLError as e:
        raise AuthError("fly", f"fly token rejected: {e.first_message}") from e
    except HTTPStatusError as e:
        raise AuthError("fly", f"fly token rejected ({e.status}): {e.body.strip()}") from e

    if not (data.get("viewer") or {}).get("id"):
        raise AuthError("fly", "fly token rejected: viewer lookup returned no identity")
    return Verification("fly", "graphql")


def verify_railway_token(client: APIClient) -> Verification:
    """Check a Railway token with ``me { id }``, falling back to ``projects``.

    Project and team tokens cannot read ``me``; any valid token can list
    projects. When the fallback itself cannot be reached, the first ``me``
    error is reported because it is the more informative one.
    """
    try:
        client.graphql(RAILWAY_ME_QUERY)
        return Verification("railway", "me")
    except HTTPStatusError as e:
        if e.status in (401, 403):
            raise AuthError("railway", f"railway token rejected ({e.status})") from e
        raise
    except GraphQLError as me_err:
        try:
            client.graphql(RAILWAY_PROJECTS_QUERY)
        except GraphQLError as e:
            raise AuthError("railway", f"railway token rejected: {e.first_message}") from e
        except (HTTPStatusError, TransportError) as e:
            raise AuthError("railway", f"railway token rejected: {me_err.first_message}") from e
        return Verification("railway", "projects")
