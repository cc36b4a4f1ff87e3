"""Tests for push-channel message decoding."""

import pytest

from attribution_engine.realtime.messages import parse_message, parse_results


class TestParseMessage:
    def test_decodes_object_with_type(self):
        assert parse_message('{"type": "heartbeat"}') == {"type": "heartbeat"}

    def test_accepts_bytes(self):
        assert parse_message(b'{"type": "attribution_update"}')["type"] == (
            "attribution_update"
        )

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            "[1, 2, 3]",
            '"heartbeat"',
            '{"payload": {}}',
            '{"type": 7}',
            b"\xff\xfe",
        ],
    )
    def test_rejects_malformed_frames(self, raw):
        assert parse_message(raw) is None


class TestParseResults:
    def test_parses_wire_results(self):
        message = {
            "type": "attribution_update",
            "results": [
                {
                    "sequenceId": "journey-1",
                    "configId": "cfg-1",
                    "model": "linear",
                    "touchpointWeights": {"tp-1": 1.0},
                }
            ],
        }

        results = parse_results(message)

        assert len(results) == 1
        assert results[0].sequence_id == "journey-1"
        assert results[0].weights == [1.0]

    def test_missing_results_list(self):
        assert parse_results({"type": "attribution_update"}) == []
        assert parse_results({"type": "attribution_update", "results": {}}) == []
