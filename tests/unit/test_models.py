import json

import pytest

from enginesql.backend.models import (
    Column,
    QueryError,
    QueryStats,
    StatusEnvelope,
    decode_envelope,
)
from enginesql.types import ExecutionState


class TestStatusEnvelope:
    def test_decode_full_envelope(self):
        body = json.dumps(
            {
                "id": "20240101_000000_00001_abcde",
                "infoUri": "http://coordinator:8080/ui/query.html?20240101_000000_00001_abcde",
                "partialCancelUri": "http://coordinator:8080/v1/stage/20240101_000000_00001_abcde.0",
                "nextUri": "http://coordinator:8080/v1/statement/executing/20240101_000000_00001_abcde/y1/1",
                "columns": [
                    {"name": "_col0", "type": "integer"},
                    {"name": "name", "type": "varchar"},
                ],
                "data": [[1, "a"], [2, "b"]],
                "stats": {
                    "state": "RUNNING",
                    "queued": False,
                    "scheduled": True,
                    "nodes": 3,
                    "totalSplits": 10,
                    "completedSplits": 5,
                    "processedRows": 1000,
                },
            }
        ).encode("utf-8")

        envelope = decode_envelope(body)

        assert envelope.id == "20240101_000000_00001_abcde"
        assert envelope.next_uri.endswith("/y1/1")
        assert envelope.info_uri.startswith("http://coordinator:8080/ui/")
        assert envelope.partial_cancel_uri.endswith(".0")
        assert envelope.columns == [
            Column(name="_col0", type="integer"),
            Column(name="name", type="varchar"),
        ]
        assert envelope.data == [[1, "a"], [2, "b"]]
        assert envelope.stats.state == "RUNNING"
        assert envelope.stats.execution_state == ExecutionState.RUNNING
        assert envelope.stats.nodes == 3
        assert envelope.stats.progress_percentage == 50.0
        assert envelope.error is None

    def test_decode_minimal_envelope(self):
        envelope = decode_envelope(b"{}")

        assert envelope == StatusEnvelope()
        assert envelope.next_uri is None
        assert envelope.data is None
        assert envelope.stats is None

    def test_decode_accepts_text(self):
        envelope = decode_envelope('{"nextUri": "u1"}')
        assert envelope.next_uri == "u1"

    def test_legacy_cancel_uri_spelling(self):
        envelope = decode_envelope(b'{"partialcancelUri": "http://c/cancel"}')
        assert envelope.partial_cancel_uri == "http://c/cancel"

    def test_empty_data_batch_is_kept(self):
        envelope = decode_envelope(b'{"data": []}')
        assert envelope.data == []

    def test_decode_error(self):
        envelope = decode_envelope(
            json.dumps(
                {
                    "stats": {"state": "FAILED"},
                    "error": {
                        "message": "Table tpch.tiny.nope does not exist",
                        "errorCode": 46,
                        "errorName": "TABLE_NOT_FOUND",
                        "errorType": "USER_ERROR",
                        "sqlState": "42S02",
                    },
                }
            )
        )

        assert envelope.stats.execution_state == ExecutionState.FAILED
        assert envelope.error == QueryError(
            message="Table tpch.tiny.nope does not exist",
            error_code=46,
            error_name="TABLE_NOT_FOUND",
            error_type="USER_ERROR",
            sql_state="42S02",
        )

    @pytest.mark.parametrize(
        "body",
        [
            b"not json",
            b"[1, 2, 3]",
            b'"just a string"',
            b'{"data": "not rows"}',
            b'{"stats": "RUNNING"}',
            b'{"columns": ["a"]}',
            b"\xff\xfe",
        ],
    )
    def test_invalid_bodies_raise_value_error(self, body):
        with pytest.raises(ValueError):
            decode_envelope(body)


class TestQueryStats:
    def test_progress_without_splits(self):
        assert QueryStats(state="QUEUED").progress_percentage is None

    def test_stats_without_state(self):
        stats = QueryStats.from_dict({"queued": False, "nodes": 2})
        assert stats.state is None
        assert stats.execution_state is None

    def test_non_string_state_is_invalid(self):
        with pytest.raises(ValueError):
            decode_envelope(b'{"stats": {"state": 3}}')

    def test_defaults(self):
        stats = QueryStats.from_dict({"state": "FINISHED"})
        assert stats.execution_state == ExecutionState.FINISHED
        assert stats.total_splits == 0
        assert stats.elapsed_time_millis == 0


class TestExecutionState:
    @pytest.mark.parametrize(
        "server_state,expected",
        [
            ("QUEUED", ExecutionState.RUNNING),
            ("WAITING_FOR_RESOURCES", ExecutionState.RUNNING),
            ("PLANNING", ExecutionState.RUNNING),
            ("STARTING", ExecutionState.RUNNING),
            ("RUNNING", ExecutionState.RUNNING),
            ("BLOCKED", ExecutionState.RUNNING),
            ("FINISHING", ExecutionState.RUNNING),
            ("FINISHED", ExecutionState.FINISHED),
            ("finished", ExecutionState.FINISHED),
            ("FAILED", ExecutionState.FAILED),
            ("CANCELED", ExecutionState.FAILED),
            ("ABORTED", ExecutionState.FAILED),
            ("SOMETHING_NEW", ExecutionState.FAILED),
            ("", ExecutionState.FAILED),
        ],
    )
    def test_from_server_state(self, server_state, expected):
        assert ExecutionState.from_server_state(server_state) == expected

    def test_terminal_states(self):
        assert ExecutionState.FINISHED.is_terminal
        assert ExecutionState.FAILED.is_terminal
        assert not ExecutionState.RUNNING.is_terminal
        assert not ExecutionState.NOT_STARTED.is_terminal

    def test_ranks_are_ordered(self):
        assert (
            ExecutionState.NOT_STARTED.rank
            < ExecutionState.RUNNING.rank
            < ExecutionState.FINISHED.rank
            == ExecutionState.FAILED.rank
        )
