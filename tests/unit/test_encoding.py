"""Tests for batch wire encoding."""

from __future__ import annotations

import base64
import json
from urllib.parse import parse_qs

import pytest

from batch_ingest.encoding import FORM_FIELD, decode, encode, form_body, json_body


class TestEncode:
    """Test cases for encode() and decode()."""

    def test_encode_is_base64_of_compact_json(self) -> None:
        """Encoded text should be base64 of JSON without extra whitespace."""
        batch = [{"event": "signup", "properties": {"distinct_id": "42"}}]
        raw = base64.b64decode(encode(batch)).decode("utf-8")
        assert raw == '[{"event":"signup","properties":{"distinct_id":"42"}}]'

    def test_decode_restores_batch(self) -> None:
        """Decoding should return the original records in order."""
        batch = [{"event": "a"}, {"event": "b", "properties": {"n": 1.5, "ok": True}}]
        assert decode(encode(batch)) == batch

    def test_empty_batch_round_trips(self) -> None:
        """An empty batch should encode to an empty JSON array and decode back."""
        assert base64.b64decode(encode([])) == b"[]"
        assert decode(encode([])) == []

    def test_unicode_survives_encoding(self) -> None:
        """Non-ASCII values should be preserved."""
        batch = [{"event": "café", "properties": {"city": "Zürich"}}]
        assert decode(encode(batch)) == batch

    def test_encode_output_is_ascii(self) -> None:
        """Encoded text should be plain ASCII."""
        assert encode([{"event": "ü"}]).isascii()

    def test_decode_rejects_non_array(self) -> None:
        """A payload that is not a JSON array should raise ValueError."""
        payload = base64.b64encode(json.dumps({"event": "x"}).encode()).decode()
        with pytest.raises(ValueError):
            decode(payload)

    def test_decode_rejects_invalid_base64(self) -> None:
        """Invalid base64 should raise ValueError."""
        with pytest.raises(ValueError):
            decode("not base64!!")


class TestBodies:
    """Test cases for form_body() and json_body()."""

    def test_form_body_holds_data_field(self) -> None:
        """Form body should carry the encoded batch under 'data'."""
        batch = [{"event": "signup"}]
        fields = parse_qs(form_body(batch))
        assert fields[FORM_FIELD] == [encode(batch)]

    def test_json_body_is_plain_array(self) -> None:
        """JSON body should be the batch as a JSON array."""
        batch = [{"event": "signup"}, {"event": "login"}]
        assert json.loads(json_body(batch)) == batch
