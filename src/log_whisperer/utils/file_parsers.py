from __future__ import annotations

import re
from functools import lru_cache
from pathlib import Path
from typing import Pattern

from log_whisperer.errors import FileReadError

MAX_INPUT_CHARS = 50000
BINARY_SCAN_BYTES = 50000
MIN_STRING_LENGTH = 5

_BINARY_SUFFIXES = (".pcap", ".pcapng")


@lru_cache(maxsize=8)
def _printable_run_re(min_length: int) -> Pattern[bytes]:
    return re.compile(rb"[\x20-\x7e]{%d,}" % max(1, min_length))


def extract_strings_from_binary(
    data: bytes,
    scan_bytes: int = BINARY_SCAN_BYTES,
    min_length: int = MIN_STRING_LENGTH,
) -> str:
    """Reduce binary data to its printable-ASCII runs, like ``strings(1)``.

    Only the first ``scan_bytes`` bytes are examined. Each run of at least
    ``min_length`` printable characters is emitted on its own line.
    """
    window = bytes(data[:scan_bytes])
    return "".join(
        match.group(0).decode("ascii") + "\n"
        for match in _printable_run_re(min_length).finditer(window)
    )


def is_binary_capture(filename: str) -> bool:
    return (filename or "").lower().endswith(_BINARY_SUFFIXES)


def detect_file_type(filename: str) -> str:
    name = (filename or "").lower()
    if name.endswith(_BINARY_SUFFIXES):
        return "PCAP (Packet Capture)"
    if name.endswith(".log"):
        return "Log File"
    if name.endswith(".csv"):
        return "CSV Data"
    if name.endswith(".json"):
        return "JSON Data"
    return "Text File"


def decode_upload(
    filename: str,
    data: bytes,
    scan_bytes: int = BINARY_SCAN_BYTES,
    min_length: int = MIN_STRING_LENGTH,
) -> str:
    """Turn uploaded file bytes into analysis text.

    Packet captures go through printable-string extraction; anything else is
    read as UTF-8 with undecodable bytes replaced.
    """
    if data is None:
        raise FileReadError(f"No content received for {filename or 'upload'}")
    if is_binary_capture(filename):
        return extract_strings_from_binary(data, scan_bytes=scan_bytes, min_length=min_length)
    return bytes(data).decode("utf-8", errors="replace")


def read_file_content(
    path: str | Path,
    scan_bytes: int = BINARY_SCAN_BYTES,
    min_length: int = MIN_STRING_LENGTH,
) -> str:
    path = Path(path)
    try:
        data = path.read_bytes()
    except OSError as exc:
        raise FileReadError(f"Failed to read file {path}: {exc.strerror or exc}") from exc
    return decode_upload(path.name, data, scan_bytes=scan_bytes, min_length=min_length)


def truncate_input(text: str, limit: int = MAX_INPUT_CHARS) -> str:
    if not text:
        return ""
    return text[:limit]
