"""
Typed error classes for the veil SDK.

These are raised by the RPC transport, the ledger client, the foreign-account
resolver, the script template helpers, the consumability poller and the
note-chain orchestrator, so callers can catch specific failure modes while
still being able to catch the base `VeilSdkError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional, Sequence, Tuple

__all__ = [
    "VeilSdkError",
    "RpcError",
    "JsonRpcCode",
    "CodecError",
    "DependencyDecodeError",
    "MissingBinding",
    "SubmissionFailure",
    "UnmetPrecondition",
    "PollTimeout",
    "PollCancelled",
    "NoteTransportError",
    "ChainAborted",
    "from_jsonrpc_error",
]


class VeilSdkError(Exception):
    """Base class for all SDK errors."""


class JsonRpcCode(IntEnum):
    # JSON-RPC 2.0 reserved codes
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server errors (implementation-defined range: -32099 to -32000)
    SERVER_ERROR = -32000
    TRANSPORT_ERROR = -32098

    # Ledger extensions
    RATE_LIMITED = -32001
    ACCOUNT_NOT_FOUND = -32020
    NOTE_ALREADY_CONSUMED = -32021
    TX_REJECTED = -32011
    COMPILE_FAILED = -32030


@dataclass(slots=True)
class RpcError(VeilSdkError):
    """Raised when a JSON-RPC call returns an error object or the transport fails."""

    method: Optional[str]
    code: int
    message: str
    data: Optional[Any] = None
    request_id: Optional[Any] = None
    http_status: Optional[int] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        parts = [f"RPC[{self.method or '-'}] code={self.code} msg={self.message!r}"]
        if self.request_id is not None:
            parts.append(f"id={self.request_id}")
        if self.http_status is not None:
            parts.append(f"http={self.http_status}")
        if self.data is not None:
            parts.append(f"data={self.data!r}")
        return " ".join(parts)

    @property
    def code_enum(self) -> Optional[JsonRpcCode]:
        try:
            return JsonRpcCode(self.code)
        except ValueError:
            return None

    @property
    def is_transport(self) -> bool:
        return self.code == JsonRpcCode.TRANSPORT_ERROR


@dataclass(slots=True)
class CodecError(VeilSdkError):
    """Raised when a note, account or request cannot be encoded or decoded."""

    message: str
    kind: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        where = f" [{self.kind}]" if self.kind else ""
        return f"CodecError{where}: {self.message}"


@dataclass(slots=True)
class DependencyDecodeError(VeilSdkError):
    """
    A foreign-account directory entry could not be decoded.

    Fatal for resolution: an incomplete dependency list makes proving fail
    silently downstream, so malformed entries are never skipped.
    """

    message: str
    account_id: Optional[str] = None
    slot: Optional[int] = None
    word: Optional[Tuple[Any, ...]] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        bits = [self.message]
        if self.account_id:
            bits.append(f"account={self.account_id}")
        if self.slot is not None:
            bits.append(f"slot={self.slot}")
        if self.word is not None:
            bits.append(f"word={list(self.word)!r}")
        return "DependencyDecodeError: " + " ".join(bits)


@dataclass(slots=True)
class MissingBinding(VeilSdkError):
    """One or more script template placeholders have no value."""

    names: Tuple[str, ...]
    template: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        where = f" in {self.template}" if self.template else ""
        return f"MissingBinding{where}: unbound {', '.join(self.names)}"


@dataclass(slots=True)
class SubmissionFailure(VeilSdkError):
    """
    A transaction was rejected during local execution, proving or broadcast.

    Fields:
      - account_id: executing account (hex)
      - note_ids: input notes the request tried to consume
      - code: JSON-RPC error code, when the rejection came from the node
      - stage: "execute" | "submit" | "guard"
    """

    message: str
    account_id: Optional[str] = None
    note_ids: Tuple[str, ...] = ()
    code: Optional[int] = None
    stage: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        bits = [self.message]
        if self.stage:
            bits.append(f"stage={self.stage}")
        if self.account_id:
            bits.append(f"account={self.account_id}")
        if self.code is not None:
            bits.append(f"code={self.code}")
        if self.note_ids:
            bits.append(f"notes={','.join(self.note_ids)}")
        return "SubmissionFailure: " + " ".join(bits)


@dataclass(slots=True)
class UnmetPrecondition(VeilSdkError):
    """An account's observed consumable-note count is still below the expectation."""

    account_id: str
    expected: int
    observed: int
    block_num: Optional[int] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        at = f" at block {self.block_num}" if self.block_num is not None else ""
        return (
            f"account {self.account_id} has {self.observed} consumable notes, "
            f"expected {self.expected}{at}"
        )


@dataclass(slots=True)
class PollTimeout(UnmetPrecondition):
    """The poller ran out of attempts or time before the precondition held."""

    attempts: int = 0
    elapsed_s: float = 0.0

    def __str__(self) -> str:  # pragma: no cover - trivial
        return (
            f"PollTimeout after {self.attempts} attempts ({self.elapsed_s:.2f}s): "
            f"account {self.account_id} has {self.observed}/{self.expected} consumable notes"
        )


@dataclass(slots=True)
class PollCancelled(UnmetPrecondition):
    """The caller's cancellation event was set while polling."""

    attempts: int = 0


@dataclass(slots=True)
class NoteTransportError(VeilSdkError):
    """A note did not survive a serialize/deserialize cycle with the same identity."""

    expected_id: str
    got_id: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"note identity changed in transport: {self.expected_id} -> {self.got_id}"


@dataclass(slots=True)
class ChainAborted(VeilSdkError):
    """
    A note chain stopped at `hop_index`. `report` holds the per-hop checkpoints
    and can be passed back to the orchestrator to resume.
    """

    message: str
    hop_index: int
    report: Any = None
    cause: Optional[BaseException] = field(default=None, repr=False)

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"ChainAborted at hop {self.hop_index}: {self.message}"


def from_jsonrpc_error(
    err_obj: Dict[str, Any],
    *,
    method: Optional[str] = None,
    request_id: Optional[Any] = None,
    http_status: Optional[int] = None,
) -> RpcError:
    """
    Convert a JSON-RPC error object into RpcError.

    `err_obj` should resemble: {"code": int, "message": str, "data": any?}
    """
    code = int(err_obj.get("code", JsonRpcCode.SERVER_ERROR))
    message = str(err_obj.get("message", "Unknown JSON-RPC error"))
    return RpcError(
        method=method,
        code=code,
        message=message,
        data=err_obj.get("data"),
        request_id=request_id,
        http_status=http_status,
    )


def note_ids_tuple(ids: Sequence[Any]) -> Tuple[str, ...]:
    return tuple(str(i) for i in ids)
