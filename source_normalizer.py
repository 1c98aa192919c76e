#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Normalize the `SourceCode` field of an explorer `getsourcecode` response into
a {relative_path: {"content": str}} source tree.

Explorers hand back verified sources in a handful of shapes depending on how
the contract was verified:
  - plain Solidity text (single-file verification)
  - Standard-JSON input: {"language": ..., "sources": {...}, "settings": ...}
  - the same Standard-JSON wrapped in an extra pair of braces: {{...}}
  - {"content": "..."} for a single file
  - a bare {"A.sol": {"content": ...}, ...} mapping (legacy multi-file)

Everything here is pure: no network, no disk, no environment.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional

SUCCESS_STATUS = "1"

SourceTree = Dict[str, Dict[str, Any]]


# ────────────────────────────────────────────────────────────────────────────────
# Errors
# ────────────────────────────────────────────────────────────────────────────────
class NormalizationError(ValueError):
    """Base class for every failure raised while normalizing a response."""


class InvalidResponse(NormalizationError):
    """Explorer reported failure or returned no result for the address."""


class MalformedSourceJson(NormalizationError):
    """SourceCode looked like JSON but could not be decoded as an object."""

    def __init__(self, message: str, cause: Optional[Exception] = None):
        super().__init__(message)
        self.cause = cause


class InvalidFileContent(NormalizationError):
    """A tree entry is not an object with string `content`."""

    def __init__(self, filename: str):
        super().__init__(f"Invalid content for file {filename}")
        self.filename = filename


# ────────────────────────────────────────────────────────────────────────────────
# Data model
# ────────────────────────────────────────────────────────────────────────────────
@dataclass(frozen=True)
class ExplorerRecord:
    status: str
    contract_name: str
    source_code: str


@dataclass(frozen=True)
class NormalizationResult:
    contract_name: str
    file_names: List[str] = field(default_factory=list)

    def as_dict(self) -> Dict[str, Any]:
        return {"name": self.contract_name, "files": list(self.file_names)}


class BlobKind(Enum):
    DOUBLE_WRAPPED = "double_wrapped"
    PLAIN_TEXT = "plain_text"
    JSON = "json"


class ClassifiedBlob(NamedTuple):
    kind: BlobKind
    text: str
    parsed: Optional[Dict[str, Any]] = None


class PayloadShape(Enum):
    STANDARD_JSON = "sources"
    SINGLE_FILE = "content"
    DIRECT_MAPPING = "mapping"


# ────────────────────────────────────────────────────────────────────────────────
# Response parsing
# ────────────────────────────────────────────────────────────────────────────────
def parse_explorer_response(response: Any) -> ExplorerRecord:
    """Pull the first result out of a raw `getsourcecode` JSON response.

    Only `status`, `result[0].ContractName` and `result[0].SourceCode` are read.
    When status is not "1" the explorer puts an error string in `result`
    (e.g. "Invalid API Key"); that text ends up in the error message.
    """
    if not isinstance(response, dict):
        raise InvalidResponse("Invalid explorer response: expected a JSON object")

    status = str(response.get("status", "") or "")
    result = response.get("result")
    if status != SUCCESS_STATUS or not isinstance(result, list) or not result:
        detail = response.get("result") if isinstance(result, str) else response.get("message")
        raise InvalidResponse(f"Invalid explorer response (status={status!r}): {detail or 'no result'}")

    it = result[0]
    if not isinstance(it, dict):
        raise InvalidResponse("Invalid explorer response: result[0] is not an object")

    return ExplorerRecord(
        status=status,
        contract_name=str(it.get("ContractName", "") or ""),
        source_code=str(it.get("SourceCode", "") or ""),
    )


# ────────────────────────────────────────────────────────────────────────────────
# Classification
# ────────────────────────────────────────────────────────────────────────────────
def _clean(s: str) -> str:
    return (s or "").strip().replace("\r", "")


def _load_object(text: str) -> Dict[str, Any]:
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError as e:
        raise MalformedSourceJson(f"Failed to parse source code JSON: {e}", cause=e) from e
    if not isinstance(parsed, dict):
        raise MalformedSourceJson(f"Source code JSON is a {type(parsed).__name__}, expected an object")
    return parsed


def classify_blob(source_code: str) -> ClassifiedBlob:
    """Decide which encoding the raw SourceCode blob uses.

    Order matters: the {{...}} check runs before the leading-brace check, and
    plain text is never fed to the JSON parser.
    """
    t = _clean(source_code)
    if not t:
        raise InvalidResponse("Empty SourceCode: contract source is not verified")

    if t.startswith("{{") and t.endswith("}}"):
        inner = _clean(t[1:-1])
        return ClassifiedBlob(BlobKind.DOUBLE_WRAPPED, inner, _load_object(inner))

    if not t.startswith("{"):
        return ClassifiedBlob(BlobKind.PLAIN_TEXT, t)

    return ClassifiedBlob(BlobKind.JSON, t, _load_object(t))


def classify_payload(parsed: Dict[str, Any]) -> PayloadShape:
    if "sources" in parsed:
        return PayloadShape.STANDARD_JSON
    content = parsed.get("content")
    if isinstance(content, str) and content:
        return PayloadShape.SINGLE_FILE
    return PayloadShape.DIRECT_MAPPING


def _single_file_name(contract_name: str) -> str:
    return f"{contract_name}.sol"


def build_source_tree(blob: ClassifiedBlob, contract_name: str) -> SourceTree:
    if blob.kind is BlobKind.PLAIN_TEXT:
        return {_single_file_name(contract_name): {"content": blob.text}}

    parsed = blob.parsed
    assert parsed is not None, f"{blob.kind} blob carries no parsed JSON"
    shape = classify_payload(parsed)

    if shape is PayloadShape.STANDARD_JSON:
        sources = parsed["sources"]
        if not isinstance(sources, dict):
            raise MalformedSourceJson(
                f"'sources' is a {type(sources).__name__}, expected an object of files"
            )
        return sources

    if shape is PayloadShape.SINGLE_FILE:
        return {_single_file_name(contract_name): {"content": parsed["content"]}}

    return parsed


# ────────────────────────────────────────────────────────────────────────────────
# Validation + entry points
# ────────────────────────────────────────────────────────────────────────────────
def validate_source_tree(tree: SourceTree) -> SourceTree:
    """Every entry must be an object with string `content`; one bad entry fails all."""
    for filename, file_data in tree.items():
        if not isinstance(file_data, dict) or not isinstance(file_data.get("content"), str):
            raise InvalidFileContent(filename)
    return tree


def normalize_source(source_code: str, contract_name: str) -> SourceTree:
    blob = classify_blob(source_code)
    tree = validate_source_tree(build_source_tree(blob, contract_name))
    logging.debug(f"Source files structure ({blob.kind.value}): {list(tree.keys())}")
    return tree


def normalize(record: ExplorerRecord) -> SourceTree:
    if record.status != SUCCESS_STATUS:
        raise InvalidResponse(f"Invalid explorer response (status={record.status!r})")
    return normalize_source(record.source_code, record.contract_name)


def summarize(record: ExplorerRecord, tree: SourceTree) -> NormalizationResult:
    return NormalizationResult(contract_name=record.contract_name, file_names=list(tree.keys()))
