#!/usr/bin/env python3
"""
Message Record Loader

Reads a Discord data package message export and normalizes it into records
of (message ID, ordered attachment URLs).

This module is used by download_attachments.py and provides:
- load_messages(): Multi-format loader (json, csv)
- parse_messages(): JSON text to records, keeping large IDs lossless
- split_attachments(): Attachment field to ordered URL tokens
"""

import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Optional, Tuple

import polars as pl

from attachment_errors import FatalSetupError, ParseError


DEFAULT_ID_FIELD = "ID"
DEFAULT_ATTACHMENTS_FIELD = "Attachments"

_SEPARATORS = re.compile(r"[\s,]+")


@dataclass(frozen=True)
class Record:
    """One exported message and the attachment URLs it references."""
    identifier: str
    attachments: Tuple[str, ...] = ()


def quote_numeric_ids(raw: str, id_field: str = DEFAULT_ID_FIELD) -> str:
    """
    Rewrite unquoted integer values of the ID field into JSON strings.

    Discord snowflakes are wider than 53 bits, so they must never be decoded
    into a float by any consumer of the data. The rewrite runs on the raw
    text before deserialization so the ID only ever exists as a string.

    Args:
        raw: Raw JSON text
        id_field: Name of the identifier key

    Returns:
        JSON text with every `"<id_field>": <digits>` turned into
        `"<id_field>": "<digits>"`
    """
    pattern = re.compile(r'("%s"\s*:\s*)(-?\d+)(?=\s*[,}\]]|\s*$)' % re.escape(id_field))
    return pattern.sub(r'\1"\2"', raw)


def split_attachments(field: Any) -> Tuple[str, ...]:
    """
    Split a raw attachments field into URL tokens.

    Tokens are separated by whitespace and/or commas; empty tokens from
    repeated separators are dropped and the original order is kept.

    Args:
        field: Attachments value (string, list of strings, or None)

    Returns:
        Tuple of URL strings, empty if the field is missing or blank

    Raises:
        ParseError: If the field is neither a string nor a list of strings
    """
    if field is None:
        return ()
    if isinstance(field, str):
        return tuple(tok for tok in _SEPARATORS.split(field) if tok)
    if isinstance(field, list):
        tokens: List[str] = []
        for item in field:
            if not isinstance(item, str):
                raise ParseError(f"Unsupported attachment entry: {item!r}")
            tokens.extend(split_attachments(item))
        return tuple(tokens)
    raise ParseError(f"Unsupported attachments field type: {type(field).__name__}")


def _to_record(entry: Any, index: int, id_field: str, attachments_field: str) -> Record:
    if not isinstance(entry, dict):
        raise ParseError(f"Entry {index} is not an object: {entry!r}")
    if entry.get(id_field) is None:
        raise ParseError(f"Entry {index} has no '{id_field}' field")

    identifier = str(entry[id_field]).strip()
    if not identifier:
        raise ParseError(f"Entry {index} has an empty '{id_field}' field")

    return Record(identifier=identifier, attachments=split_attachments(entry.get(attachments_field)))


def parse_messages(
    raw: str,
    id_field: str = DEFAULT_ID_FIELD,
    attachments_field: str = DEFAULT_ATTACHMENTS_FIELD,
) -> List[Record]:
    """
    Parse JSON message export text into records.

    Raises:
        ParseError: If the text is not valid JSON or not a list of objects
    """
    try:
        data = json.loads(quote_numeric_ids(raw, id_field))
    except json.JSONDecodeError as e:
        raise ParseError(f"Invalid JSON: {e}") from e

    if not isinstance(data, list):
        raise ParseError(f"Expected a list of messages, got {type(data).__name__}")

    return [_to_record(entry, i, id_field, attachments_field) for i, entry in enumerate(data)]


def read_messages_csv(
    file_path: str,
    id_field: str = DEFAULT_ID_FIELD,
    attachments_field: str = DEFAULT_ATTACHMENTS_FIELD,
) -> List[Record]:
    """
    Read a messages.csv export with Polars.

    Schema inference is disabled so every column, the ID included, is read
    as a string.
    """
    try:
        df = pl.read_csv(file_path, infer_schema_length=0)
    except pl.exceptions.NoDataError:
        return []
    except pl.exceptions.PolarsError as e:
        raise ParseError(f"Invalid CSV {file_path}: {e}") from e
    except OSError as e:
        raise FatalSetupError(f"Failed to read input file {file_path}: {e}") from e

    missing = [c for c in (id_field, attachments_field) if c not in df.columns]
    if missing:
        raise ParseError(f"Column(s) {', '.join(missing)} not found in {file_path}")

    rows = df.select(id_field, attachments_field).iter_rows(named=True)
    return [_to_record(row, i, id_field, attachments_field) for i, row in enumerate(rows)]


def load_messages(
    file_path: str,
    input_format: Optional[str] = None,
    id_field: str = DEFAULT_ID_FIELD,
    attachments_field: str = DEFAULT_ATTACHMENTS_FIELD,
) -> List[Record]:
    """
    Load message records from a JSON or CSV export.

    Args:
        file_path: Path to input file
        input_format: Optional format hint ('json', 'csv')
                      If None, inferred from file extension
        id_field: Name of the message ID field
        attachments_field: Name of the attachments field

    Returns:
        Records in file order

    Raises:
        FatalSetupError: If the file doesn't exist or can't be read
        ParseError: If the format is unsupported or the content is invalid
    """
    if not os.path.isfile(file_path):
        raise FatalSetupError(f"Input file not found: {file_path}")

    if input_format is None:
        suffix = Path(file_path).suffix.lower()
        if suffix == ".json":
            input_format = "json"
        elif suffix == ".csv":
            input_format = "csv"
        else:
            raise ParseError(f"Could not determine file format from extension: {file_path}")

    if input_format == "csv":
        return read_messages_csv(file_path, id_field, attachments_field)
    if input_format != "json":
        raise ParseError(f"Unsupported file format: {input_format}")

    try:
        raw = Path(file_path).read_text(encoding="utf-8-sig")
    except UnicodeDecodeError as e:
        raise ParseError(f"Input file {file_path} is not UTF-8 text: {e}") from e
    except OSError as e:
        raise FatalSetupError(f"Failed to read input file {file_path}: {e}") from e

    return parse_messages(raw, id_field, attachments_field)
