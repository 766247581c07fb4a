"""Asset store boundary: the filesystem and process primitives tasks run against.

All paths crossing this boundary are project-relative POSIX strings such as
`Assets/Textures/a.png`. Each call is a single, non-transactional primitive;
batching, history and undo live in the task layer.
"""

from __future__ import annotations

import logging
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, Sequence

logger = logging.getLogger(__name__)


class AssetStoreError(RuntimeError):
    """Raised when a store primitive cannot be carried out."""


@dataclass(frozen=True)
class CommandResult:
    stdout: str
    stderr: str
    returncode: int

    @property
    def ok(self) -> bool:
        return self.returncode == 0


class AssetStore(Protocol):
    def move_or_rename(self, source: str, destination: str) -> str | None:
        """Move `source` to `destination`; return an error message, or None on success."""
        ...

    def directory_exists(self, path: str) -> bool: ...

    def create_directory(self, path: str) -> None: ...

    def delete_if_empty(self, path: str) -> bool: ...

    def run_external_command(self, args: Sequence[str]) -> CommandResult: ...


class LocalAssetStore:
    """Asset store over a project directory on the local filesystem.

    Sidecar files (for example `a.png.meta`) travel with the asset they
    describe, so moving or renaming an asset keeps its metadata attached.
    """

    def __init__(
        self,
        root: Path | str,
        *,
        sidecar_suffixes: Sequence[str] = (".meta",),
        command_timeout_s: float = 30.0,
    ) -> None:
        self.root = Path(root).resolve()
        self.sidecar_suffixes = tuple(sidecar_suffixes)
        self.command_timeout_s = command_timeout_s

    def _safe_abs(self, rel: str) -> Path:
        """Resolve a project-relative path and reject escapes outside the root."""
        abs_path = (self.root / rel).resolve()
        try:
            abs_path.relative_to(self.root)
        except ValueError:
            raise AssetStoreError(f"Path escapes project root: {rel}") from None
        return abs_path

    def move_or_rename(self, source: str, destination: str) -> str | None:
        try:
            src = self._safe_abs(source)
            dst = self._safe_abs(destination)
        except AssetStoreError as exc:
            return str(exc)
        if not src.exists():
            return f"Source does not exist: {source}"
        if dst.exists() and not _same_file(src, dst):
            return f"Destination already exists: {destination}"
        if not dst.parent.is_dir():
            return f"Destination folder does not exist: {Path(destination).parent.as_posix()}"
        try:
            src.rename(dst)
        except OSError as exc:
            return f"Move failed for {source}: {exc.strerror or exc}"
        for suffix in self.sidecar_suffixes:
            sidecar = src.with_name(src.name + suffix)
            if sidecar.exists():
                try:
                    sidecar.rename(dst.with_name(dst.name + suffix))
                except OSError as exc:
                    logger.warning(
                        "asset_store event=sidecar_move_failed path=%s reason=%s", sidecar, exc
                    )
        logger.debug("asset_store event=moved source=%s destination=%s", source, destination)
        return None

    def directory_exists(self, path: str) -> bool:
        try:
            return self._safe_abs(path).is_dir()
        except AssetStoreError:
            return False

    def create_directory(self, path: str) -> None:
        target = self._safe_abs(path)
        try:
            target.mkdir()
        except FileExistsError:
            if not target.is_dir():
                raise AssetStoreError(f"Path exists and is not a folder: {path}") from None
        except OSError as exc:
            raise AssetStoreError(f"Could not create folder {path}: {exc.strerror or exc}") from exc
        logger.debug("asset_store event=folder_created path=%s", path)

    def delete_if_empty(self, path: str) -> bool:
        try:
            target = self._safe_abs(path)
        except AssetStoreError:
            return False
        if target == self.root or not target.is_dir() or any(target.iterdir()):
            return False
        try:
            target.rmdir()
        except OSError as exc:
            logger.warning("asset_store event=folder_delete_failed path=%s reason=%s", path, exc)
            return False
        return True

    def run_external_command(self, args: Sequence[str]) -> CommandResult:
        """Run a process in the project root without a shell and capture its output."""
        try:
            proc = subprocess.run(
                list(args),
                cwd=str(self.root),
                capture_output=True,
                text=True,
                timeout=self.command_timeout_s,
                check=False,
            )
        except subprocess.TimeoutExpired as exc:
            raise AssetStoreError(
                f"Command timed out after {self.command_timeout_s}s: {' '.join(args)}"
            ) from exc
        except OSError as exc:
            raise AssetStoreError(f"Could not start {args[0] if args else '<empty>'}: {exc}") from exc
        return CommandResult(stdout=proc.stdout, stderr=proc.stderr, returncode=proc.returncode)


def _same_file(a: Path, b: Path) -> bool:
    try:
        return a.samefile(b)
    except OSError:
        return False
