"""Payload summarizer: raw tag data to a short display string.

Only one heuristic is applied: the first record of a cached NDEF message is
read as a short text record. Anything else falls back to listing the tag
technologies the radio reported.

Tag data layout (as reported by the radio driver):
- top-level keys are technology names ("nfca", "ndef", "mifareultralight", ...)
- ndef.cachedMessage.records[] holds the NDEF records
- each record has typeNameFormat, type, identifier and payload (byte values)
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping, Sequence
from datetime import datetime
from typing import Any

from nfc_reader.domain.models import LogEntry, TagData

logger = logging.getLogger(__name__)

NDEF_TEXT_PREFIX = "NDEF text: "
TECHNOLOGIES_PREFIX = "Tag technologies: "
DEFAULT_SUMMARY = "Tag detected"


def _first_record(tag_data: Mapping[str, Any]) -> Mapping[str, Any] | None:
    ndef = tag_data.get("ndef")
    if not isinstance(ndef, Mapping):
        return None
    message = ndef.get("cachedMessage")
    if not isinstance(message, Mapping):
        return None
    records = message.get("records")
    if not isinstance(records, Sequence) or isinstance(records, (str, bytes)) or not records:
        return None
    record = records[0]
    return record if isinstance(record, Mapping) else None


def _payload_bytes(record: Mapping[str, Any]) -> bytes | None:
    """Return the record payload as bytes, or None if it isn't a byte sequence."""
    payload = record.get("payload")
    if isinstance(payload, (bytes, bytearray)):
        return bytes(payload)
    if not isinstance(payload, Sequence) or isinstance(payload, str):
        return None
    if not all(isinstance(b, int) and 0 <= b <= 255 for b in payload):
        return None
    return bytes(payload)


def _decode_text(payload: bytes) -> str:
    # Skip the language-code-length prefix byte, unless it is all there is.
    text_bytes = payload[1:] if len(payload) > 1 else payload
    return text_bytes.decode("utf-8", errors="replace").strip()


def summarize(tag_data: Any) -> str:
    """Return a human-readable summary of raw tag data. Never raises."""
    if not isinstance(tag_data, Mapping):
        return DEFAULT_SUMMARY

    record = _first_record(tag_data)
    if record is not None:
        payload = _payload_bytes(record)
        if payload:
            text = _decode_text(payload)
            if text:
                return NDEF_TEXT_PREFIX + text

    technologies = ", ".join(str(key) for key in tag_data)
    return TECHNOLOGIES_PREFIX + technologies if technologies else DEFAULT_SUMMARY


def _json_default(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return list(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=repr)
    return str(value)


def encode_raw_payload(tag_data: TagData) -> str:
    """Serialize raw tag data to compact JSON. Never raises."""
    try:
        return json.dumps(
            tag_data, default=_json_default, ensure_ascii=False, separators=(",", ":")
        )
    except (TypeError, ValueError) as err:
        logger.warning("Raw tag data is not JSON-serializable (%s); storing its repr", err)
        return json.dumps(repr(tag_data), ensure_ascii=False)


def build_log_entry(tag_data: TagData, timestamp: datetime) -> LogEntry:
    """Create the history entry for a discovered tag."""
    return LogEntry(
        timestamp=timestamp,
        summary=summarize(tag_data),
        raw_payload=encode_raw_payload(tag_data),
    )
