"""Persistent storage for the single :class:`~flowctl.models.CredentialRecord`.

The record lives in ``<config_dir>/cli-token.json`` (see
:func:`flowctl.config.token_path`). Writes are atomic: content goes to a
temporary file in the same directory with ``0o600`` permissions, is
fsynced, then renamed over the target with :func:`os.replace`, so readers
see either the previous record or the new one and never a torn file.

Concurrent ``flowctl`` processes (two terminals refreshing at once)
serialise their writes through an exclusive lock on ``cli-token.json.lock``.
The last writer still wins.
"""

from __future__ import annotations

import json
import os
import sys
import tempfile
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from flowctl.config import token_path
from flowctl.models import CredentialRecord
from flowctl.output import debug

if sys.platform == "win32":
    import msvcrt
else:
    import fcntl


@contextmanager
def _exclusive_lock(lock_path: Path) -> Iterator[None]:
    """Hold an exclusive advisory lock on *lock_path* for the duration of the block."""
    with open(lock_path, "a+b") as handle:
        if sys.platform == "win32":
            handle.seek(0)
            msvcrt.locking(handle.fileno(), msvcrt.LK_LOCK, 1)
            try:
                yield
            finally:
                handle.seek(0)
                msvcrt.locking(handle.fileno(), msvcrt.LK_UNLCK, 1)
        else:
            fcntl.flock(handle.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(handle.fileno(), fcntl.LOCK_UN)


class TokenStore:
    """Read, write, and delete the stored credential record.

    Args:
        path: Location of the credential file. Defaults to
            :func:`flowctl.config.token_path`.

    Example::

        store = TokenStore()
        record = store.read()
        if record is None:
            ...  # not logged in
    """

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = Path(path) if path is not None else token_path()

    @property
    def path(self) -> Path:
        """The filesystem path to the credential file."""
        return self._path

    @property
    def lock_path(self) -> Path:
        return self._path.with_name(self._path.name + ".lock")

    def read(self) -> Optional[CredentialRecord]:
        """Load the stored record.

        Returns:
            The record, or ``None`` when no credential is stored. A file
            that cannot be read or parsed is treated as absent so that the
            next login replaces it.
        """
        try:
            text = self._path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except OSError as exc:
            debug(f"Ignoring unreadable credential file {self._path}: {exc}")
            return None
        try:
            return CredentialRecord.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as exc:
            debug(f"Ignoring corrupt credential file {self._path}: {exc}")
            return None

    def write(self, record: CredentialRecord) -> None:
        """Persist *record* atomically with ``0o600`` permissions.

        Creates the containing directory when needed.

        Raises:
            OSError: If the file cannot be written (permissions, disk full, etc.).
        """
        text = json.dumps(record.model_dump(mode="json"), indent=2) + "\n"
        self._path.parent.mkdir(parents=True, exist_ok=True)

        with _exclusive_lock(self.lock_path):
            fd = None
            tmp_path: Optional[str] = None
            try:
                fd = tempfile.NamedTemporaryFile(
                    mode="w",
                    dir=self._path.parent,
                    prefix=f".{self._path.name}.",
                    suffix=".tmp",
                    delete=False,
                    encoding="utf-8",
                )
                tmp_path = fd.name
                # Restrict permissions before any secret is written
                os.chmod(tmp_path, 0o600)
                fd.write(text)
                fd.flush()
                os.fsync(fd.fileno())
                fd.close()
                fd = None
                os.replace(tmp_path, self._path)
            except BaseException:
                if fd is not None:
                    fd.close()
                if tmp_path is not None:
                    try:
                        os.unlink(tmp_path)
                    except OSError:
                        pass
                raise
        debug(f"Stored credential at {self._path}")

    def delete(self) -> bool:
        """Remove the stored record.

        Returns:
            ``True`` if a record was removed, ``False`` if there was
            nothing to remove.

        Raises:
            OSError: For any failure other than the file being absent.
        """
        if not self._path.parent.is_dir():
            return False
        with _exclusive_lock(self.lock_path):
            try:
                self._path.unlink()
            except FileNotFoundError:
                return False
        debug(f"Removed credential at {self._path}")
        return True
