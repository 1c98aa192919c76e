#!/usr/bin/env python3
# -*- coding: utf-8 -*-
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Tuple


class UnsafeSourcePath(ValueError):
    def __init__(self, filename: str, base_dir: Path):
        super().__init__(f"Refusing to write {filename!r}: resolves outside {base_dir}")
        self.filename = filename


def _relpath(filename: str) -> str:
    return str(filename).replace("\\", "/").lstrip("/")


def resolve_target(base_dir: Path, filename: str) -> Path:
    """Map a tree key onto base_dir, rejecting anything that lands outside it (../, symlinks)."""
    base = Path(base_dir).resolve()
    target = (base / _relpath(filename)).resolve()
    if target == base or base not in target.parents:
        raise UnsafeSourcePath(filename, base)
    return target


def write_source_tree(tree: Dict[str, Dict[str, Any]], base_dir: Path) -> List[Path]:
    """Write every entry of a normalized source tree under base_dir.

    All target paths are resolved before the first write, so a tree with one
    escaping key writes nothing. Empty content is skipped with a warning.
    Returns the files actually written.
    """
    base_dir = Path(base_dir)
    base_dir.mkdir(parents=True, exist_ok=True)

    plan: List[Tuple[str, Path, str]] = [
        (filename, resolve_target(base_dir, filename), file_data.get("content") or "")
        for filename, file_data in tree.items()
    ]

    written: List[Path] = []
    for filename, p, content in plan:
        p.parent.mkdir(parents=True, exist_ok=True)
        if not content:
            logging.warning(f"⚠️ No content found for file {filename}, skipping...")
            continue
        with p.open("w", encoding="utf-8", newline="") as f:
            f.write(content)
        written.append(p)

    return written
