"""
HTTP JSON-RPC 2.0 client (async) built on httpx.

- Retries transient transport failures and 429/502/503/504 responses with
  exponential backoff and jitter (see :mod:`veil_sdk.utils.retry`).
- Application errors (a JSON-RPC `error` object) are never retried.
- Callers that must not retry (transaction submission) pass `retry=False`.

Example:
    from veil_sdk.rpc.http import AsyncRpcClient

    async with AsyncRpcClient("http://localhost:57291") as rpc:
        head = await rpc.request("ledger.syncState", {"accounts": []})
        print(head["block_num"])
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from itertools import count
from typing import Any, Dict, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

import httpx

from ..errors import JsonRpcCode, RpcError, from_jsonrpc_error
from ..utils.retry import RetryError, aretry_call
from ..version import __version__ as SDK_VERSION

JSON = Union[dict, list, str, int, float, bool, None]
Params = Union[Sequence[Any], Mapping[str, Any], None]

_log = logging.getLogger("veil_sdk.rpc")


def _now_ms() -> int:
    return int(time.time() * 1000)


def _is_retriable_http(status: int) -> bool:
    # Typical transient HTTP statuses: 429/502/503/504
    return status in (429, 502, 503, 504)


def _is_transport(exc: BaseException) -> bool:
    return isinstance(exc, RpcError) and exc.is_transport


@dataclass
class AsyncRpcClient:
    """Asynchronous JSON-RPC 2.0 client over HTTP."""

    url: str
    timeout: float = 10.0
    max_retries: int = 3
    backoff_base: float = 0.25
    backoff_max: float = 4.0
    headers: Optional[Mapping[str, str]] = None
    http: Optional[httpx.AsyncClient] = None
    _id_counter: Iterator[int] = field(default_factory=lambda: count(start=_now_ms()))
    _owns_http: bool = field(init=False, default=False)

    def __post_init__(self) -> None:
        merged_headers: Dict[str, str] = {
            "Content-Type": "application/json",
            "Accept": "application/json",
            "User-Agent": f"veil-sdk-py/{SDK_VERSION}",
        }
        if self.headers:
            merged_headers.update(dict(self.headers))
        if self.http is None:
            self.http = httpx.AsyncClient(timeout=self.timeout, headers=merged_headers)
            self._owns_http = True

    # --- context manager -------------------------------------------------

    async def __aenter__(self) -> "AsyncRpcClient":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.aclose()

    async def aclose(self) -> None:
        if self.http is not None and self._owns_http:
            await self.http.aclose()

    # --- public API ------------------------------------------------------

    async def request(
        self,
        method: str,
        params: Params = None,
        *,
        retry: bool = True,
    ) -> JSON:
        """Perform a single JSON-RPC request and return `result` or raise RpcError."""
        payload = self._make_payload(method, params)
        resp = await self._send(payload, method=method, retry=retry)
        if not isinstance(resp, dict):
            raise RpcError(method=method, code=JsonRpcCode.INTERNAL_ERROR, message="Invalid JSON-RPC response type", data=type(resp).__name__)
        return self._unwrap(resp, method=method)

    async def batch(self, calls: Sequence[Tuple[str, Params]]) -> List[JSON]:
        """Perform a JSON-RPC batch; returns results in the same order as `calls`."""
        batch_payload: List[Dict[str, Any]] = []
        id_list: List[int] = []
        for method, params in calls:
            p = self._make_payload(method, params)
            batch_payload.append(p)
            id_list.append(p["id"])
        resp = await self._send(batch_payload, method="batch", retry=True)
        if not isinstance(resp, list):
            raise RpcError(method="batch", code=JsonRpcCode.INTERNAL_ERROR, message="Invalid batch response (not a list)", data=resp)

        by_id: Dict[int, JSON] = {}
        for item in resp:
            if not isinstance(item, dict) or "id" not in item:
                raise RpcError(method="batch", code=JsonRpcCode.INTERNAL_ERROR, message="Malformed item in batch response", data=item)
            by_id[int(item["id"])] = self._unwrap(item, method="batch")

        ordered: List[JSON] = []
        for rid in id_list:
            if rid not in by_id:
                raise RpcError(method="batch", code=JsonRpcCode.INTERNAL_ERROR, message=f"Missing result for id {rid}", data=resp)
            ordered.append(by_id[rid])
        return ordered

    # --- internals -------------------------------------------------------

    def _make_payload(self, method: str, params: Params) -> Dict[str, Any]:
        if params is None:
            params = []
        elif isinstance(params, Mapping):
            params = dict(params)
        elif isinstance(params, Sequence) and not isinstance(params, (str, bytes, bytearray)):
            params = list(params)
        else:
            params = [params]
        return {"jsonrpc": "2.0", "id": next(self._id_counter), "method": method, "params": params}

    @staticmethod
    def _unwrap(resp: Mapping[str, Any], *, method: str) -> JSON:
        if resp.get("error") is not None:
            raise from_jsonrpc_error(resp["error"], method=method, request_id=resp.get("id"))
        if "result" not in resp:
            raise RpcError(method=method, code=JsonRpcCode.INTERNAL_ERROR, message="Malformed JSON-RPC response", data=resp)
        return resp["result"]

    async def _send(self, payload: Any, *, method: str, retry: bool) -> JSON:
        if not retry:
            return await self._send_once(payload, method=method)

        def _on_retry(attempt: int, exc: BaseException, delay: float) -> None:
            _log.debug("rpc retry", extra={"method": method, "attempt": attempt, "delay": round(delay, 3), "error": str(exc)})

        try:
            return await aretry_call(
                self._send_once,
                payload,
                method=method,
                retries=self.max_retries,
                base=self.backoff_base,
                max_delay=self.backoff_max,
                exceptions=RpcError,
                retry_if=_is_transport,
                on_retry=_on_retry,
            )
        except RetryError as e:
            last = e.last_exception
            raise RpcError(
                method=method,
                code=JsonRpcCode.TRANSPORT_ERROR,
                message=f"RPC transport failed after {e.attempts} attempts",
                data=str(last),
                http_status=getattr(last, "http_status", None),
            ) from last

    async def _send_once(self, payload: Any, *, method: str) -> JSON:
        if self.http is None:
            raise RuntimeError("AsyncRpcClient has no HTTP client")
        try:
            r = await self.http.post(self.url, json=payload)
        except httpx.TransportError as e:
            raise RpcError(method=method, code=JsonRpcCode.TRANSPORT_ERROR, message="Network error", data=str(e)) from e
        if _is_retriable_http(r.status_code):
            raise RpcError(method=method, code=JsonRpcCode.TRANSPORT_ERROR, message=f"HTTP {r.status_code}", http_status=r.status_code)
        try:
            return r.json()
        except ValueError as e:
            raise RpcError(
                method=method,
                code=JsonRpcCode.INTERNAL_ERROR,
                message="Non-JSON response from RPC",
                data=f"HTTP {r.status_code}: {r.text[:256]}",
                http_status=r.status_code,
            ) from e


__all__ = ["AsyncRpcClient"]
