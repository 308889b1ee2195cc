"""
Change lists built from rsync's per-entry output.

rsync is run with ``--out-format=changed-file:%o;%n`` so every transferred or
deleted entry produces one line such as::

    changed-file:send;docs/readme.md
    changed-file:del.;old/

rsync logs transfers as ``send`` when pushing and as ``recv`` when pulling
from a remote source. A trailing ``/`` marks a folder. All knowledge of that
line grammar lives in this module.
"""
import json
import logging
import os
import posixpath
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Tuple

from .exceptions import AuditRecordError

logger = logging.getLogger(__name__)

OUTPUT_TAG = "changed-file"
OUT_FORMAT = f"{OUTPUT_TAG}:%o;%n"
DELETE_PREFIX = f"{OUTPUT_TAG}:del.;"
SEND_PREFIX = f"{OUTPUT_TAG}:send;"
RECV_PREFIX = f"{OUTPUT_TAG}:recv;"
TRANSFER_PREFIXES = (SEND_PREFIX, RECV_PREFIX)

# rsync reports the transfer root itself as "./"
TRANSFER_ROOT = "./"

CHANGES_SUFFIX = ".changes"


class EntityKind(str, Enum):
    FOLDER = "folder"
    FILE = "file"


@dataclass(frozen=True)
class FsEntity:
    """A file or folder, addressed relative to the synchronized tree."""
    kind: EntityKind
    path: str

    @classmethod
    def file(cls, path):
        return cls(EntityKind.FILE, str(path))

    @classmethod
    def folder(cls, path):
        return cls(EntityKind.FOLDER, str(path))

    @property
    def is_file(self):
        return self.kind is EntityKind.FILE

    @property
    def name(self):
        """Final path component."""
        return posixpath.basename(self.path)

    def to_dict(self):
        return {"type": self.kind.value, "path": self.path}

    @classmethod
    def from_dict(cls, data):
        return cls(EntityKind(data["type"]), data["path"])

    def __str__(self):
        return self.path + "/" if self.kind is EntityKind.FOLDER else self.path


@dataclass
class ChangeRecord:
    """
    Deleted, changed and moved entities between a snapshot and the working tree.

    After ``extract_moves`` no entity in ``moved`` is still listed in
    ``deleted``. A move destination may also appear in ``changed``.
    """
    deleted: List[FsEntity] = field(default_factory=list)
    changed: List[FsEntity] = field(default_factory=list)
    moved: List[Tuple[FsEntity, str]] = field(default_factory=list)

    @classmethod
    def parse(cls, output: str) -> Optional["ChangeRecord"]:
        """
        Builds a change list from rsync output.

        Lines without a recognized prefix are ignored. Returns None when the
        output lists no deleted and no changed entities.
        """
        deleted = []
        changed = []
        for line in output.splitlines():
            if line.startswith(DELETE_PREFIX):
                path, target = line[len(DELETE_PREFIX):], deleted
            elif line.startswith(TRANSFER_PREFIXES):
                path, target = line.split(";", 1)[1], changed
            else:
                continue

            if not path or path == TRANSFER_ROOT:
                continue
            if path.endswith("/"):
                target.append(FsEntity.folder(path.rstrip("/")))
            else:
                target.append(FsEntity.file(path))

        if not deleted and not changed:
            return None
        return cls(deleted=deleted, changed=changed)

    def extract_moves(self, archived_dir, working_dir, log=None) -> List[Tuple[FsEntity, str]]:
        """
        Reinterprets deletions as moves where possible.

        A deleted file counts as moved when a changed file with the same name
        has the same size in ``working_dir`` as the deleted one had in
        ``archived_dir``. The first such candidate, in rsync output order,
        wins. Only sizes are compared, so same-named files of equal size but
        different content are reported as moves too.

        The matched candidate stays in ``changed``.

        Returns:
            list: The moves found by this call.
        """
        log = log or logger
        archived_dir = Path(archived_dir)
        working_dir = Path(working_dir)

        found = []
        kept = []
        for deleted in self.deleted:
            destination = self._find_move(deleted, archived_dir, working_dir)
            if destination is None:
                kept.append(deleted)
                continue
            log.debug(f"Found a move for {deleted.path}: {destination}")
            found.append((deleted, destination))

        self.deleted = kept
        self.moved.extend(found)
        return found

    def _find_move(self, deleted, archived_dir, working_dir):
        if not deleted.is_file or not deleted.name:
            return None
        try:
            deleted_size = os.stat(archived_dir / deleted.path).st_size
        except OSError:
            return None

        for candidate in self.changed:
            if not candidate.is_file or candidate.name != deleted.name:
                continue
            try:
                candidate_size = os.stat(working_dir / candidate.path).st_size
            except OSError:
                continue
            if candidate_size == deleted_size:
                return candidate.path
        return None

    def to_dict(self):
        return {
            "deleted": [entity.to_dict() for entity in self.deleted],
            "changed": [entity.to_dict() for entity in self.changed],
            "moved": [{"from": entity.to_dict(), "to": destination} for entity, destination in self.moved],
        }

    @classmethod
    def from_dict(cls, data):
        return cls(
            deleted=[FsEntity.from_dict(item) for item in data.get("deleted", [])],
            changed=[FsEntity.from_dict(item) for item in data.get("changed", [])],
            moved=[(FsEntity.from_dict(item["from"]), item["to"]) for item in data.get("moved", [])],
        )

    def summary(self):
        return {
            "deleted": len(self.deleted),
            "changed": len(self.changed),
            "moved": len(self.moved),
        }


def changes_path(archive_dir, run_name):
    """Location of the change list for a run."""
    return Path(archive_dir) / f"{run_name}{CHANGES_SUFFIX}"


def save_change_record(record: ChangeRecord, path) -> Path:
    """
    Writes a change list as JSON.

    Non-ASCII characters are written as ``\\u`` escapes, so names rsync could
    not decode (kept as surrogates) survive a save/load round trip.
    """
    path = Path(path)
    try:
        payload = json.dumps(record.to_dict(), indent=2)
    except (TypeError, ValueError) as e:
        raise AuditRecordError(f"serializing change list: {e}", operation="save change list", path=path) from e
    try:
        path.write_text(payload + "\n", encoding="utf-8")
    except (OSError, ValueError) as e:
        raise AuditRecordError(f"writing change list: {e}", operation="save change list", path=path) from e
    return path


def load_change_record(path) -> ChangeRecord:
    """Reads a change list written by ``save_change_record``."""
    path = Path(path)
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        return ChangeRecord.from_dict(data)
    except OSError as e:
        raise AuditRecordError(f"reading change list: {e}", operation="load change list", path=path) from e
    except (ValueError, KeyError, TypeError) as e:
        raise AuditRecordError(f"malformed change list: {e}", operation="load change list", path=path) from e
