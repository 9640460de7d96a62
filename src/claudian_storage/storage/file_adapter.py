"""Thin filesystem wrapper rooted at the vault directory."""

from __future__ import annotations

import json
import os
import stat
import tempfile
from pathlib import Path
from typing import Any, Dict, List


class FileAdapter:
    """Existence/read/write/list/remove over paths relative to ``root``.

    Paths use forward slashes regardless of platform, matching the layout
    shared with the Claude CLI.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root).expanduser().resolve()

    @property
    def root(self) -> Path:
        return self._root

    def resolve(self, rel_path: str) -> Path:
        return self._root.joinpath(*[part for part in str(rel_path).split("/") if part])

    def exists(self, rel_path: str) -> bool:
        return self.resolve(rel_path).exists()

    def is_file(self, rel_path: str) -> bool:
        return self.resolve(rel_path).is_file()

    def read(self, rel_path: str) -> str:
        return self.resolve(rel_path).read_text(encoding="utf-8")

    def write(self, rel_path: str, content: str) -> None:
        target = self.resolve(rel_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".{0}.".format(target.name), dir=str(target.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8", newline="") as fp:
                fp.write(content)
            # mkstemp creates 0600; files shared with the CLI keep their mode.
            if target.exists():
                os.chmod(tmp_name, stat.S_IMODE(target.stat().st_mode))
            os.replace(tmp_name, str(target))
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def remove(self, rel_path: str) -> bool:
        target = self.resolve(rel_path)
        if not target.is_file():
            return False
        target.unlink()
        return True

    def rename(self, old_path: str, new_path: str) -> None:
        target = self.resolve(new_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        self.resolve(old_path).replace(target)

    def ensure_folder(self, rel_path: str) -> None:
        self.resolve(rel_path).mkdir(parents=True, exist_ok=True)

    def list_files(self, rel_dir: str, suffix: str = "", recursive: bool = False) -> List[str]:
        """Return root-relative file paths under ``rel_dir``, sorted."""

        directory = self.resolve(rel_dir)
        if not directory.is_dir():
            return []
        pattern = "*{0}".format(suffix)
        candidates = directory.rglob(pattern) if recursive else directory.glob(pattern)
        rows: List[str] = []
        for path in candidates:
            if not path.is_file() or path.name.startswith("."):
                continue
            rows.append(path.relative_to(self._root).as_posix())
        return sorted(rows)


def dumps_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, indent=2) + "\n"


def parse_json_object(raw: str, source: str) -> Dict[str, Any]:
    """Parse ``raw`` as a JSON object; ``ValueError`` names ``source`` otherwise."""

    if not raw.strip():
        return {}
    payload = json.loads(raw)
    if not isinstance(payload, dict):
        raise ValueError("json root must be an object: {0}".format(source))
    return payload
