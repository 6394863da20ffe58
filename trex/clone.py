"""Copy the project tree into a new, renamed service."""

from __future__ import annotations

import logging
import os
import stat
from collections.abc import Iterator

_LOG = logging.getLogger(__name__)

DEFAULT_NAME = "maestro"
DEFAULT_DESTINATION = "/tmp/clone-test"

_MODE = 0o777


def _replacements(name: str) -> tuple[tuple[str, str], ...]:
    lower = name.lower()
    return (
        ("RHTrex", name),
        ("rh-trex", lower),
        ("rhtrex", lower),
        ("trex", lower),
        ("TRex", name),
    )


def replace_names(content: str, name: str) -> str:
    """Replace every spelling of the template's name in ``content`` with ``name``."""
    for old, new in _replacements(name):
        content = content.replace(old, new)
    return content


def destination_path(path: str, destination: str, name: str) -> str:
    """Where the source entry ``path`` goes below ``destination`` once renamed."""
    return f"{destination}/{path}".replace("trex", name.lower())


def _ignored(path: str) -> bool:
    return path == ".git" or ".git/" in path


def _walk(root: str, rel: str = ".") -> Iterator[tuple[str, bool]]:
    """Yield ``(relative path, is directory)`` for the tree, parents first, in name order."""
    full = root if rel == "." else os.path.join(root, rel)
    is_dir = stat.S_ISDIR(os.lstat(full).st_mode)
    yield rel, is_dir
    if is_dir and ".git/" not in rel + "/":
        for entry in sorted(os.listdir(full)):
            yield from _walk(root, entry if rel == "." else f"{rel}/{entry}")


def _open_with_mode(path: str, flags: int) -> int:
    return os.open(path, flags, _MODE)


def clone_tree(source: str, destination: str, name: str) -> list[str]:
    """Copy ``source`` to ``destination`` renaming paths and contents; return the files written.

    Files are appended to, as the destination is expected to start empty.
    Git metadata is left behind. The first filesystem error is raised.
    """
    _LOG.info("creating new TRex instance as %s in directory %s", name, destination)
    written: list[str] = []
    for rel, is_dir in _walk(source):
        if _ignored(rel):
            continue
        dest = destination_path(rel, destination, name)
        if is_dir:
            if not os.path.exists(dest):
                _LOG.info("Directory does not exist, creating: %s", dest)
            os.makedirs(dest, mode=_MODE, exist_ok=True)
            continue

        full = source if rel == "." else os.path.join(source, rel)
        with open(full, encoding="utf-8", errors="surrogateescape", newline="") as handle:
            content = handle.read()
        replaced = replace_names(content, name)
        if replaced != content:
            _LOG.info("find/replace required for file: %s", rel)

        with open(
            dest,
            "a",
            encoding="utf-8",
            errors="surrogateescape",
            newline="",
            opener=_open_with_mode,
        ) as handle:
            count = handle.write(replaced)
            handle.flush()
            os.fsync(handle.fileno())
        _LOG.info("wrote %d bytes for file %s", count, dest)
        written.append(dest)
    return written