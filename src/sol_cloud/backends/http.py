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

"""Authenticated HTTP/GraphQL plumbing shared by the provider backends.

The client never retries. It reports three failure kinds separately so that
callers can tell an idempotent "already exists" from a hard failure:

- ``TransportError``: no response at all (DNS, connect, timeout, read).
- ``HTTPStatusError``: non-2xx status, body kept verbatim.
- ``GraphQLError``: 2xx envelope with a non-empty ``errors`` array, or a 2xx
  body that is not a GraphQL envelope at all.
"""

from dataclasses import dataclass
import json as jsonlib
from typing import Any

import requests

from sol_cloud.exceptions import GraphQLError, HTTPStatusError, TransportError
from sol_cloud.helpers.logger import setup_logger

logger = setup_logger(__name__)

REST_MAX_BODY = 8 * 1024 * 1024
GRAPHQL_MAX_BODY = 4 * 1024 * 1024
_CHUNK = 64 * 1024


@dataclass
class APIResponse:
    status: int
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return jsonlib.loads(self.body) if self.body else None


class APIClient:
    """Bearer-token client for one provider API surface."""

    def __init__(
        self,
        token: str,
        *,
        base_url: str = "",
        graphql_url: str = "",
        timeout: float = 30.0,
        session: requests.Session | None = None,
    ):
        self.token = token.strip()
        self.base_url = base_url.rstrip("/")
        self.graphql_url = graphql_url
        self.timeout = timeout
        self.session = session or requests.Session()

    def _headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}", "Accept": "application/json"}

    def _url(self, path: str) -> str:
        if path.startswith(("http://", "https://")):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        max_body: int = REST_MAX_BODY,
        timeout: float | None = None,
    ) -> APIResponse:
        """Issue one request and return status plus (size-capped) body.

        Only transport failures raise; any HTTP status is returned as-is.
        """
        url = self._url(path)
        try:
            resp = self.session.request(
                method,
                url,
                headers=self._headers(),
                json=json,
                params=params,
                timeout=timeout or self.timeout,
                stream=True,
            )
        except requests.RequestException as e:
            raise TransportError(method, url, e) from e

        try:
            body = _read_capped(resp, max_body)
        except requests.RequestException as e:
            raise TransportError(method, url, e) from e
        finally:
            resp.close()

        logger.debug(f"{method} {url} -> {resp.status_code} ({len(body)} bytes)")
        return APIResponse(status=resp.status_code, body=body)

    def request_ok(self, method: str, path: str, *, context: str = "", **kwargs: Any) -> APIResponse:
        """Like ``request`` but raise ``HTTPStatusError`` on non-2xx."""
        resp = self.request(method, path, **kwargs)
        if not resp.ok:
            raise HTTPStatusError(resp.status, resp.text, context=context or f"{method} {path}")
        return resp

    def graphql(
        self,
        query: str,
        variables: dict[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> dict[str, Any]:
        """Run a GraphQL operation and return its ``data`` mapping."""
        payload: dict[str, Any] = {"query": query}
        if variables is not None:
            payload["variables"] = variables
        resp = self.request(
            "POST", self.graphql_url, json=payload, max_body=GRAPHQL_MAX_BODY, timeout=timeout
        )
        if not resp.ok:
            raise HTTPStatusError(resp.status, resp.text, context="graphql")
        try:
            decoded = resp.json()
        except ValueError as e:
            raise GraphQLError([f"undecodable graphql response: {e}"]) from e
        if not isinstance(decoded, dict):
            raise GraphQLError(["graphql response is not a JSON object"])

        data = decoded.get("data") or {}
        errors = decoded.get("errors") or []
        if errors:
            if not isinstance(errors, list):
                errors = [errors]
            messages = [str(err.get("message", "")).strip() for err in errors if isinstance(err, dict)]
            raise GraphQLError(
                messages or ["unknown graphql error"], data=data if isinstance(data, dict) else None
            )
        if not isinstance(data, dict):
            raise GraphQLError(["graphql data is not a JSON object"])
        return data


def _read_capped(resp: requests.Response, max_body: int) -> bytes:
    buf = bytearray()
    for chunk in resp.iter_content(chunk_size=_CHUNK):
        if not chunk:
            continue
        remaining = max_body - len(buf)
        buf.extend(chunk[:remaining])
        if len(buf) >= max_body:
            break
    return bytes(buf)
