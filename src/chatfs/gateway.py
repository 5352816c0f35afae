# chatfs: Capability-scoped filesystem access. Callers pass absolute locations produced by the
# sandbox; every operation returns either its data or a GatewayError, never a raw OSError.
# When bound to a root, locations are re-checked after symlink resolution so a link inside the
# tree cannot reach outside it.

import os
import pathlib
import shutil
import tempfile
from typing import List, Optional, Union

from .context import Context
from .models import DirEntry, EntryKind, EntryStat, GatewayError, GatewayErrorKind


def _not_found(path: str) -> GatewayError:
    return GatewayError(kind=GatewayErrorKind.not_found, message=f"No such file or directory: {path}")


def _io_error(action: str, path: str, e: Exception) -> GatewayError:
    return GatewayError(kind=GatewayErrorKind.io_error, message=f"Error {action} {path}: {e}")


class FileGateway:
    """
    Interface consumed by the orchestrator. Implementations must only be handed locations
    that PathSandbox produced.
    """

    def read(self, absolute_path: str) -> Union[bytes, GatewayError]:
        raise NotImplementedError

    def write(self, absolute_path: str, data: bytes) -> Optional[GatewayError]:
        raise NotImplementedError

    def list(self, absolute_path: str) -> Union[List[DirEntry], GatewayError]:
        raise NotImplementedError

    def stat(self, absolute_path: str) -> Union[EntryStat, GatewayError]:
        raise NotImplementedError

    def delete(self, absolute_path: str) -> Optional[GatewayError]:
        raise NotImplementedError


class LocalFileGateway(FileGateway):
    """FileGateway over the local disk using pathlib."""

    def __init__(self, root: Optional[str] = None, ctx: Optional[Context] = None) -> None:
        self.root = pathlib.Path(root).resolve() if root else None
        self.ctx = ctx

    def _log(self, message: str) -> None:
        if self.ctx is not None:
            self.ctx.log(message)

    def _contained(self, absolute_path: str) -> Union[pathlib.Path, GatewayError]:
        """
        Resolve symlinks (for a missing target, those of its existing ancestors) and require the
        real location to stay under root. Unbound gateways skip the check.
        """
        p = pathlib.Path(absolute_path)
        if self.root is None:
            return p
        try:
            real = p.resolve()
        except (OSError, RuntimeError) as e:
            return _io_error("resolving", absolute_path, e)
        try:
            real.relative_to(self.root)
        except ValueError:
            self._log(f"blocked access to {absolute_path}: resolves to {real}")
            return GatewayError(kind=GatewayErrorKind.outside_root, message=f"Path resolves outside the workspace: {absolute_path}")
        return p

    def read(self, absolute_path: str) -> Union[bytes, GatewayError]:
        p = self._contained(absolute_path)
        if isinstance(p, GatewayError):
            return p
        try:
            return p.read_bytes()
        except FileNotFoundError:
            return _not_found(absolute_path)
        except OSError as e:
            self._log(f"read failed for {absolute_path}: {e}")
            return _io_error("reading", absolute_path, e)

    def write(self, absolute_path: str, data: bytes) -> Optional[GatewayError]:
        p = self._contained(absolute_path)
        if isinstance(p, GatewayError):
            return p
        tmp_name: Optional[str] = None
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            # chatfs: Write through a uniquely named sibling so a failed write leaves the old content intact.
            with tempfile.NamedTemporaryFile(dir=p.parent, prefix=f".{p.name}.", suffix=".chatfs-tmp", delete=False) as tmp:
                tmp_name = tmp.name
                tmp.write(data)
            os.replace(tmp_name, p)
        except OSError as e:
            self._log(f"write failed for {absolute_path}: {e}")
            if tmp_name is not None:
                self._discard_temp(tmp_name)
            return _io_error("writing", absolute_path, e)
        return None

    def _discard_temp(self, tmp_name: str) -> None:
        try:
            pathlib.Path(tmp_name).unlink(missing_ok=True)
        except OSError as e:
            self._log(f"could not remove temporary file {tmp_name}: {e}")

    def list(self, absolute_path: str) -> Union[List[DirEntry], GatewayError]:
        p = self._contained(absolute_path)
        if isinstance(p, GatewayError):
            return p
        entries: List[DirEntry] = []
        try:
            with os.scandir(p) as it:
                for entry in it:
                    if entry.is_dir():
                        kind = EntryKind.directory
                    elif entry.is_file():
                        kind = EntryKind.file
                    else:
                        kind = EntryKind.other
                    entries.append(DirEntry(name=entry.name, kind=kind))
        except FileNotFoundError:
            return _not_found(absolute_path)
        except NotADirectoryError:
            return GatewayError(kind=GatewayErrorKind.not_a_directory, message=f"Not a directory: {absolute_path}")
        except OSError as e:
            self._log(f"list failed for {absolute_path}: {e}")
            return _io_error("listing", absolute_path, e)
        return entries

    def stat(self, absolute_path: str) -> Union[EntryStat, GatewayError]:
        p = self._contained(absolute_path)
        if isinstance(p, GatewayError):
            return p
        try:
            st = p.stat()
        except FileNotFoundError:
            return _not_found(absolute_path)
        except OSError as e:
            return _io_error("accessing", absolute_path, e)
        if p.is_dir():
            kind = EntryKind.directory
        elif p.is_file():
            kind = EntryKind.file
        else:
            kind = EntryKind.other
        return EntryStat(kind=kind, size=st.st_size, mtime_ns=st.st_mtime_ns)

    def delete(self, absolute_path: str) -> Optional[GatewayError]:
        p = self._contained(absolute_path)
        if isinstance(p, GatewayError):
            return p
        try:
            if p.is_dir() and not p.is_symlink():
                shutil.rmtree(p)
            else:
                p.unlink()
        except FileNotFoundError:
            return _not_found(absolute_path)
        except OSError as e:
            self._log(f"delete failed for {absolute_path}: {e}")
            return _io_error("deleting", absolute_path, e)
        return None
