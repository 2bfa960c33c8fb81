"""Zip bundling of already-published artifacts."""

import os
import zipfile
from dataclasses import dataclass
from typing import Iterable, Set


@dataclass
class ArchiveEntry:
    path: str
    name: str


def _unique_name(name: str, used: Set[str]) -> str:
    if name not in used:
        return name
    stem, ext = os.path.splitext(name)
    n = 2
    while f"{stem}-{n}{ext}" in used:
        n += 1
    return f"{stem}-{n}{ext}"


def write_zip(entries: Iterable[ArchiveEntry], output_path: str) -> int:
    """Write entries into a deflate zip at output_path. Returns entry count."""
    used: Set[str] = set()
    count = 0
    with zipfile.ZipFile(output_path, "w", compression=zipfile.ZIP_DEFLATED, compresslevel=9) as zf:
        for entry in entries:
            arcname = _unique_name(entry.name, used)
            used.add(arcname)
            zf.write(entry.path, arcname=arcname)
            count += 1
    return count
