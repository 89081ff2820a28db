from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Iterable
from pathlib import Path
from typing import Any

from .errors import SnapshotDecodeError
from .models import Activity


class SnapshotStore:
    """A single JSON file holding every activity from one fetch run.

    Each ``write`` replaces the file wholesale; there is no merge with what
    was there before.
    """

    def __init__(self, path: Path | str):
        self.path = Path(path)

    def write(self, records: Iterable[dict[str, Any] | Activity]) -> int:
        payload = [
            record.to_record() if isinstance(record, Activity) else record
            for record in records
        ]
        self.path.parent.mkdir(parents=True, exist_ok=True)

        fd, tmp_name = tempfile.mkstemp(
            prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
        )
        tmp_path = Path(tmp_name)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(payload, handle, indent=2, sort_keys=True)
                handle.write("\n")
            os.replace(tmp_path, self.path)
        except BaseException:
            tmp_path.unlink(missing_ok=True)
            raise
        return len(payload)

    def read_raw(self) -> list[Any]:
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except OSError as exc:
            raise SnapshotDecodeError(f"cannot read snapshot {self.path}: {exc}") from exc
        except json.JSONDecodeError as exc:
            raise SnapshotDecodeError(f"snapshot {self.path} is not valid JSON: {exc}") from exc

        if not isinstance(payload, list):
            raise SnapshotDecodeError(
                f"snapshot {self.path} must hold a JSON array, got {type(payload).__name__}"
            )
        return payload

    def read(self) -> list[Activity]:
        activities: list[Activity] = []
        for index, record in enumerate(self.read_raw()):
            try:
                activities.append(Activity.from_record(record))
            except SnapshotDecodeError as exc:
                raise SnapshotDecodeError(f"snapshot {self.path}, record {index}: {exc}") from exc
        return activities
