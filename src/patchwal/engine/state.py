"""Write-ahead log of transactions stored as YAML files.

Layout under ``<project>/.relay/transactions``::

    <uuid>.pending.yml     in flight
    <uuid>.yml             committed
    undone/<uuid>.yml      undone

A record lives in exactly one of these locations; its ``status`` is derived
from the location when it is read back.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import ValidationError as PydanticValidationError

from ..context import EngineContext
from ..errors import StateIOError
from ..schema import StateFile, TransactionStatus, ensure_record_id
from ..tools.fs import safe_rename

LOGGER = logging.getLogger(__name__)

TRANSACTIONS_DIRECTORY = "transactions"
UNDONE_DIRECTORY = "undone"
STATE_EXTENSION = ".yml"
PENDING_SUFFIX = ".pending" + STATE_EXTENSION

_INDEX_RE = re.compile(r"^-?\d+$")


class StateStore:
    """Persistence for pending, committed and undone transaction records."""

    def __init__(self, ctx: EngineContext) -> None:
        self.ctx = ctx
        self.transactions_dir = ctx.state_dir / TRANSACTIONS_DIRECTORY
        self.undone_dir = self.transactions_dir / UNDONE_DIRECTORY

    # ------------------------------------------------------------------ paths
    @staticmethod
    def _record_path(directory: Path, uuid: str, suffix: str) -> Path:
        name = f"{uuid}{suffix}"
        path = directory / name
        if path.name != name or path.parent.resolve() != directory.resolve():
            raise StateIOError(
                f"Transaction id {uuid!r} does not name a record inside {directory}",
                details={"uuid": uuid},
            )
        return path

    def pending_path(self, uuid: str) -> Path:
        return self._record_path(self.transactions_dir, uuid, PENDING_SUFFIX)

    def committed_path(self, uuid: str) -> Path:
        return self._record_path(self.transactions_dir, uuid, STATE_EXTENSION)

    def undone_path(self, uuid: str) -> Path:
        return self._record_path(self.undone_dir, uuid, STATE_EXTENSION)

    def ensure_directories(self) -> None:
        if self.ctx.state_dir_ensured:
            return
        self.undone_dir.mkdir(parents=True, exist_ok=True)
        self.ctx.state_dir_ensured = True

    # --------------------------------------------------------------- file IO
    def _dump(self, state: StateFile, target: Path) -> None:
        self.ensure_directories()
        payload = yaml.safe_dump(state.to_record(), sort_keys=False, allow_unicode=True)
        handle, temp_name = tempfile.mkstemp(dir=target.parent, prefix=".tmp-", suffix=STATE_EXTENSION)
        try:
            with os.fdopen(handle, "w", encoding="utf-8") as stream:
                stream.write(payload)
            os.replace(temp_name, target)
        except OSError:
            Path(temp_name).unlink(missing_ok=True)
            raise

    def _load(self, path: Path, status: TransactionStatus) -> Optional[StateFile]:
        try:
            with path.open("r", encoding="utf-8") as handle:
                data = yaml.safe_load(handle)
        except FileNotFoundError:
            return None
        except (OSError, yaml.YAMLError) as error:
            LOGGER.warning("Could not read transaction record %s: %s", path.name, error)
            return None
        if not isinstance(data, dict):
            LOGGER.warning("Transaction record %s is not a mapping; ignoring it.", path.name)
            return None
        data["status"] = status.value
        try:
            return StateFile.model_validate(data)
        except PydanticValidationError as error:
            LOGGER.warning("Transaction record %s is invalid: %s", path.name, error)
            return None

    @staticmethod
    def _move(source: Path, destination: Path) -> None:
        safe_rename(source, destination)

    # ------------------------------------------------------------- lifecycle
    def write_pending(self, state: StateFile) -> Path:
        """Write (or overwrite) the pending record for ``state``."""
        target = self.pending_path(state.uuid)
        record = state.model_copy(update={"status": TransactionStatus.PENDING})
        try:
            self._dump(record, target)
        except OSError as error:
            raise StateIOError(f"Could not write pending record for {state.uuid}: {error}") from error
        self.ctx.debug("Wrote pending record %s", target.name)
        return target

    def commit(self, uuid: str) -> Path:
        """Promote the pending record of ``uuid`` to committed."""
        source = self.pending_path(uuid)
        destination = self.committed_path(uuid)
        try:
            self._move(source, destination)
        except OSError as error:
            raise StateIOError(
                f"Could not commit transaction {uuid}: {error}",
                details={"pending": str(source)},
            ) from error
        self.ctx.debug("Committed record %s", destination.name)
        return destination

    def delete_pending(self, uuid: str) -> None:
        try:
            self.pending_path(uuid).unlink()
        except FileNotFoundError:
            return

    def mark_undone(self, uuid: str) -> Path:
        """Move the committed record of ``uuid`` into the undone set."""
        self.ensure_directories()
        source = self.committed_path(uuid)
        destination = self.undone_path(uuid)
        try:
            self._move(source, destination)
        except OSError as error:
            raise StateIOError(f"Could not move transaction {uuid} to undone: {error}") from error
        return destination

    def has_been_processed(self, uuid: str) -> bool:
        """True when ``uuid`` is committed or undone; pending records do not count."""
        return self.committed_path(uuid).exists() or self.undone_path(uuid).exists()

    # --------------------------------------------------------------- queries
    def read(self, uuid: str) -> Optional[StateFile]:
        """Return the committed record for ``uuid``."""
        return self._load(self.committed_path(uuid), TransactionStatus.COMMITTED)

    def read_pending(self, uuid: str) -> Optional[StateFile]:
        return self._load(self.pending_path(uuid), TransactionStatus.PENDING)

    def read_all(self, *, skip_reverts: bool = False) -> List[StateFile]:
        """Return every committed record, most recent first.

        With ``skip_reverts`` both revert transactions and the transactions
        they reverted are left out.
        """
        if not self.transactions_dir.is_dir():
            return []
        records: List[StateFile] = []
        for path in self.transactions_dir.glob(f"*{STATE_EXTENSION}"):
            if path.name.endswith(PENDING_SUFFIX) or path.name.startswith("."):
                continue
            record = self._load(path, TransactionStatus.COMMITTED)
            if record is not None:
                records.append(record)

        if skip_reverts:
            reverted = {record.reverts_uuid for record in records if record.is_revert}
            records = [
                record for record in records if not record.is_revert and record.uuid not in reverted
            ]

        records.sort(key=lambda record: record.created_at, reverse=True)
        return records

    def find_latest(self, *, skip_reverts: bool = False) -> Optional[StateFile]:
        records = self.read_all(skip_reverts=skip_reverts)
        return records[0] if records else None

    def find_by_identifier(self, identifier: str, *, skip_reverts: bool = False) -> Optional[StateFile]:
        """Look up a record by uuid or by 1-based index into the descending history.

        A uuid lookup ignores ``skip_reverts``. Negative indexes count the same
        way as positive ones; zero never matches.
        """
        value = identifier.strip()
        if not value:
            return None
        if _INDEX_RE.match(value):
            index = abs(int(value))
            if index == 0:
                return None
            records = self.read_all(skip_reverts=skip_reverts)
            return records[index - 1] if len(records) >= index else None
        try:
            ensure_record_id(value)
        except ValueError:
            return None
        return self.read(value)

    def list_pending(self) -> List[str]:
        """Return uuids of pending records left behind by interrupted runs."""
        if not self.transactions_dir.is_dir():
            return []
        return sorted(
            path.name[: -len(PENDING_SUFFIX)] for path in self.transactions_dir.glob(f"*{PENDING_SUFFIX}")
        )


__all__ = [
    "PENDING_SUFFIX",
    "STATE_EXTENSION",
    "StateStore",
    "TRANSACTIONS_DIRECTORY",
    "UNDONE_DIRECTORY",
]
