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

"""Minimal Solana JSON-RPC client for liveness checks and metrics."""

from typing import Any

import requests

from sol_cloud.exceptions import (
    RPCResponseError,
    RPCResultError,
    RPCStatusError,
    TransportError,
)
from sol_cloud.platform.protocols import RPCMetrics

_ERROR_BODY_LIMIT = 2048


class SolanaRPC:
    def __init__(
        self,
        url: str,
        *,
        timeout: float = 10.0,
        session: requests.Session | None = None,
    ):
        if not url or not url.strip():
            raise ValueError("rpc url is required")
        self.url = url.strip()
        self.timeout = timeout
        self.session = session or requests.Session()

    def call(self, method: str, params: list[Any] | None = None) -> Any:
        """POST one JSON-RPC request and return ``result``.

        Raises:
            TransportError: no HTTP response.
            RPCStatusError: non-2xx HTTP status.
            RPCResponseError: non-null ``error`` in the envelope.
            RPCResultError: undecodable body or missing ``result``.
        """
        payload = {"jsonrpc": "2.0", "id": 1, "method": method, "params": params or []}
        try:
            resp = self.session.post(self.url, json=payload, timeout=self.timeout)
        except requests.RequestException as e:
            raise TransportError("POST", self.url, e) from e

        if not 200 <= resp.status_code < 300:
            raise RPCStatusError(resp.status_code, resp.text[:_ERROR_BODY_LIMIT])
        try:
            decoded = resp.json()
        except ValueError as e:
            raise RPCResultError(f"decode {method} response: {e}") from e
        if not isinstance(decoded, dict):
            raise RPCResultError(f"{method}: response is not a JSON object")

        err = decoded.get("error")
        if err is not None:
            if isinstance(err, dict):
                code = err.get("code")
                if isinstance(code, bool) or not isinstance(code, int):
                    code = 0
                raise RPCResponseError(code, str(err.get("message", "")))
            raise RPCResponseError(0, str(err))
        if "result" not in decoded:
            raise RPCResultError(f"{method}: response has no result")
        return decoded["result"]

    def get_health(self) -> None:
        result = self.call("getHealth")
        if result != "ok":
            raise RPCResultError(f"unexpected health result: {result!r}")

    def get_slot(self) -> int:
        result = self.call("getSlot")
        if isinstance(result, bool) or not isinstance(result, int) or result < 0:
            raise RPCResultError(f"unexpected slot result: {result!r}")
        return result

    def get_tps(self) -> float:
        samples = self.call("getRecentPerformanceSamples", [1])
        if not isinstance(samples, list) or not samples or not isinstance(samples[0], dict):
            raise RPCResultError("missing performance samples")
        period = samples[0].get("samplePeriodSecs")
        count = samples[0].get("numTransactions")
        if not _is_number(period) or period <= 0:
            raise RPCResultError(f"unexpected samplePeriodSecs: {period!r}")
        if not _is_number(count) or count < 0:
            raise RPCResultError(f"unexpected numTransactions: {count!r}")
        return float(count) / float(period)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def fetch_metrics(rpc_url: str, *, timeout: float = 20.0, session: requests.Session | None = None) -> RPCMetrics:
    """Health, then slot, then TPS. The first failure is raised unchanged."""
    rpc = SolanaRPC(rpc_url, timeout=timeout, session=session)
    rpc.get_health()
    return RPCMetrics(slot=rpc.get_slot(), tps=rpc.get_tps())
