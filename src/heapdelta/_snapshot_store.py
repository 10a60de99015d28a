"""Persistence of ProfileSnapshot as stable, diffable JSON.

Snapshots from different sessions are never merged, only diffed.
"""

import json
from pathlib import Path
from typing import Any

from beartype import beartype
from loguru import logger

from heapdelta._errors import MalformedInputError
from heapdelta._model import AggregateEntry, CallStackSignature, Frame, ProfileSnapshot

FORMAT_NAME = "heapdelta-profile"
FORMAT_VERSION = 1

_COUNTER_FIELDS = ("alloc_objects", "alloc_bytes", "live_objects", "live_bytes")


def _entry_to_dict(entry: AggregateEntry) -> dict[str, Any]:
    record: dict[str, Any] = {
        "signature": [[f.function, f.filename, f.lineno] for f in entry.signature.frames],
    }
    for name in _COUNTER_FIELDS:
        record[name] = getattr(entry, name)
    return record


@beartype
def dumps_snapshot(snapshot: ProfileSnapshot) -> str:
    """Serialize a snapshot to JSON text (sorted keys, entries in signature order)."""
    document = {
        "format": FORMAT_NAME,
        "version": FORMAT_VERSION,
        "taken_at": snapshot.taken_at,
        "sampling_rate": snapshot.sampling_rate,
        "process_rss_bytes": snapshot.process_rss_bytes,
        "entries": [_entry_to_dict(entry) for entry in snapshot.entries],
    }
    return json.dumps(document, indent=2, sort_keys=True) + "\n"


def _require(
    mapping: dict[str, Any],
    name: str,
    kind: type | tuple[type, ...],
    source: str | None,
) -> Any:
    if name not in mapping:
        raise MalformedInputError(f"missing field {name!r}", source)
    value = mapping[name]
    # bool is an int subclass; never accept it as a counter
    if isinstance(value, bool) or not isinstance(value, kind):
        raise MalformedInputError(
            f"field {name!r} has type {type(value).__name__}", source
        )
    return value


def _parse_signature(raw: Any, source: str | None) -> CallStackSignature:
    if not isinstance(raw, list):
        raise MalformedInputError("signature must be a list of frames", source)
    frames = []
    for item in raw:
        if (
            not isinstance(item, list)
            or len(item) != 3
            or not isinstance(item[0], str)
            or not isinstance(item[1], str)
            or isinstance(item[2], bool)
            or not isinstance(item[2], int)
        ):
            raise MalformedInputError(f"bad frame {item!r}", source)
        frames.append(Frame(item[0], item[1], item[2]))
    return CallStackSignature(tuple(frames))


def _parse_entry(raw: Any, source: str | None) -> AggregateEntry:
    if not isinstance(raw, dict):
        raise MalformedInputError("entry must be an object", source)
    signature = _parse_signature(raw.get("signature"), source)
    counters = [_require(raw, name, int, source) for name in _COUNTER_FIELDS]
    alloc_objects, alloc_bytes, live_objects, live_bytes = counters
    if min(counters) < 0:
        raise MalformedInputError(f"negative counter for {signature.key}", source)
    if live_objects > alloc_objects or live_bytes > alloc_bytes:
        raise MalformedInputError(f"live exceeds alloc for {signature.key}", source)
    return AggregateEntry(signature, alloc_objects, alloc_bytes, live_objects, live_bytes)


@beartype
def loads_snapshot(text: str, source: str | None = None) -> ProfileSnapshot:
    """Parse JSON text produced by dumps_snapshot.

    Raises:
        MalformedInputError: on any structural problem; nothing is returned partially.
    """
    try:
        document = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedInputError(f"invalid JSON: {exc}", source) from exc

    if not isinstance(document, dict):
        raise MalformedInputError("top level must be an object", source)
    if document.get("format") != FORMAT_NAME:
        raise MalformedInputError(f"not a {FORMAT_NAME} document", source)
    if document.get("version") != FORMAT_VERSION:
        raise MalformedInputError(f"unsupported version {document.get('version')!r}", source)

    taken_at = _require(document, "taken_at", (int, float), source)
    sampling_rate = _require(document, "sampling_rate", int, source)
    process_rss_bytes = _require(document, "process_rss_bytes", int, source)
    raw_entries = _require(document, "entries", list, source)
    if sampling_rate < 0 or process_rss_bytes < 0:
        raise MalformedInputError("negative session metadata", source)

    entries = [_parse_entry(raw, source) for raw in raw_entries]
    if len({entry.signature for entry in entries}) != len(entries):
        raise MalformedInputError("duplicate signatures", source)

    return ProfileSnapshot(
        taken_at=float(taken_at),
        sampling_rate=sampling_rate,
        process_rss_bytes=process_rss_bytes,
        entries=tuple(entries),
    )


@beartype
def save_snapshot(snapshot: ProfileSnapshot, path: Path) -> None:
    """Write a snapshot to path, creating parent directories.

    OSError propagates to the caller.
    """
    text = dumps_snapshot(snapshot)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.info(f"Saved profile snapshot ({len(snapshot)} signatures) to {path}")


@beartype
def load_snapshot(path: Path) -> ProfileSnapshot:
    """Read a snapshot written by save_snapshot.

    Raises:
        MalformedInputError: unparseable content
        OSError: the file could not be read
    """
    try:
        text = path.read_text(encoding="utf-8")
    except UnicodeDecodeError as exc:
        raise MalformedInputError(f"not valid UTF-8: {exc}", str(path)) from exc
    snapshot = loads_snapshot(text, source=str(path))
    logger.debug(f"Loaded profile snapshot ({len(snapshot)} signatures) from {path}")
    return snapshot
