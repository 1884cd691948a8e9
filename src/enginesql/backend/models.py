"""
Models for the engine's statement protocol.

Every answer to a statement submission or continuation poll is a JSON status
envelope. These models decode that envelope into typed structures; they hold
no session state and are discarded once merged into the query session.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from enginesql.types import ExecutionState, Row


@dataclass
class QueryError:
    """Failure information returned by the engine for a failed query."""

    message: str
    error_code: Optional[int] = None
    error_name: Optional[str] = None
    error_type: Optional[str] = None
    sql_state: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryError":
        return cls(
            message=data.get("message", ""),
            error_code=data.get("errorCode"),
            error_name=data.get("errorName"),
            error_type=data.get("errorType"),
            sql_state=data.get("sqlState"),
        )


@dataclass
class QueryStats:
    """Execution statistics for a query. Only a present `state` drives the session."""

    state: Optional[str] = None
    queued: bool = False
    scheduled: bool = False
    nodes: int = 0
    total_splits: int = 0
    queued_splits: int = 0
    running_splits: int = 0
    completed_splits: int = 0
    processed_rows: int = 0
    processed_bytes: int = 0
    elapsed_time_millis: int = 0

    @property
    def execution_state(self) -> Optional[ExecutionState]:
        if self.state is None:
            return None
        return ExecutionState.from_server_state(self.state)

    @property
    def progress_percentage(self) -> Optional[float]:
        if not self.total_splits:
            return None
        return 100.0 * self.completed_splits / self.total_splits

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "QueryStats":
        state = data.get("state")
        if state is not None and not isinstance(state, str):
            raise ValueError(f"Invalid query state: {state!r}")

        return cls(
            state=state,
            queued=data.get("queued", False),
            scheduled=data.get("scheduled", False),
            nodes=data.get("nodes", 0),
            total_splits=data.get("totalSplits", 0),
            queued_splits=data.get("queuedSplits", 0),
            running_splits=data.get("runningSplits", 0),
            completed_splits=data.get("completedSplits", 0),
            processed_rows=data.get("processedRows", 0),
            processed_bytes=data.get("processedBytes", 0),
            elapsed_time_millis=data.get("elapsedTimeMillis", 0),
        )


@dataclass
class Column:
    """A result column as described by the engine."""

    name: str
    type: str

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Column":
        return cls(name=data.get("name", ""), type=data.get("type", ""))


@dataclass
class StatusEnvelope:
    """One decoded answer from the engine."""

    id: Optional[str] = None
    next_uri: Optional[str] = None
    info_uri: Optional[str] = None
    partial_cancel_uri: Optional[str] = None
    columns: Optional[List[Column]] = None
    data: Optional[List[Row]] = None
    stats: Optional[QueryStats] = None
    error: Optional[QueryError] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "StatusEnvelope":
        stats = None
        if data.get("stats") is not None:
            stats = QueryStats.from_dict(data["stats"])

        error = None
        if data.get("error") is not None:
            error = QueryError.from_dict(data["error"])

        columns = None
        if data.get("columns") is not None:
            columns = [Column.from_dict(column) for column in data["columns"]]

        rows = data.get("data")
        if rows is not None and not isinstance(rows, list):
            raise ValueError(f"Invalid data batch: {rows!r}")

        return cls(
            id=data.get("id"),
            next_uri=data.get("nextUri"),
            info_uri=data.get("infoUri"),
            # older coordinators spell it partialcancelUri
            partial_cancel_uri=data.get("partialCancelUri")
            or data.get("partialcancelUri"),
            columns=columns,
            data=rows,
            stats=stats,
            error=error,
        )


def decode_envelope(body: Union[bytes, str]) -> StatusEnvelope:
    """
    Decode a response body into a StatusEnvelope.

    Raises:
        ValueError: If the body is not a JSON object or a field has the wrong shape
    """
    if isinstance(body, bytes):
        body = body.decode("utf-8")

    # json.JSONDecodeError is a ValueError
    data = json.loads(body)
    if not isinstance(data, dict):
        raise ValueError(f"Expected a JSON object, got {type(data).__name__}")

    try:
        return StatusEnvelope.from_dict(data)
    except (AttributeError, TypeError) as e:
        raise ValueError(f"Malformed status envelope: {e}") from e
