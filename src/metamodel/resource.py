"""Resources: named binary blobs that file-based adapters read from and write to."""

from __future__ import annotations

import io
import os
import shutil
import tempfile
import time
import urllib.error
import urllib.parse
import urllib.request
from abc import ABC, abstractmethod
from contextlib import contextmanager
from typing import IO, Any, Callable, Iterator

from metamodel.errors import MetaModelException, ResourceException, UnsupportedOperationError


def _current_millis() -> int:
    return int(time.time() * 1000)


def _last_path_part(path: str) -> str:
    stripped = path.rstrip("/\\")
    index = max(stripped.rfind("/"), stripped.rfind("\\"))
    part = stripped[index + 1 :] if index != -1 else stripped
    return part or path


class Resource(ABC):
    """A named binary resource.

    ``read()`` returns a stream the caller closes; ``read(callback)`` opens a
    stream, passes it to the callback and returns the callback's result.
    ``open_write()`` and ``open_append()`` are context managers yielding a
    writable stream; the contents change only when the block exits normally.
    """

    def __init__(self, path: str) -> None:
        self.path = path

    @property
    def name(self) -> str:
        return _last_path_part(self.path)

    def is_read_only(self) -> bool:
        return False

    @abstractmethod
    def is_exists(self) -> bool: ...

    @property
    @abstractmethod
    def size(self) -> int:
        """Size in bytes, or -1 when unknown."""

    @property
    @abstractmethod
    def last_modified(self) -> int:
        """Epoch milliseconds of the last write, or -1 when unknown."""

    @abstractmethod
    def _open_read(self) -> IO[bytes]: ...

    def read(self, callback: Callable[[IO[bytes]], Any] | None = None) -> Any:
        if callback is None:
            try:
                return self._open_read()
            except MetaModelException:
                raise
            except Exception as e:
                raise ResourceException(self, str(e)) from e
        with self.read() as stream:
            try:
                return callback(stream)
            except MetaModelException:
                raise
            except Exception as e:
                raise ResourceException(self, str(e)) from e

    def open_write(self) -> Any:
        raise UnsupportedOperationError(f"{self} is read-only")

    def open_append(self) -> Any:
        raise UnsupportedOperationError(f"{self} is read-only")

    def write(self, callback: Callable[[IO[bytes]], Any]) -> None:
        self._run_sink(self.open_write(), callback)

    def append(self, callback: Callable[[IO[bytes]], Any]) -> None:
        self._run_sink(self.open_append(), callback)

    def _run_sink(self, sink: Any, callback: Callable[[IO[bytes]], Any]) -> None:
        with sink as stream:
            try:
                callback(stream)
            except MetaModelException:
                raise
            except Exception as e:
                raise ResourceException(self, str(e)) from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}[{self.path}]"


class InMemoryResource(Resource):
    """A resource held in memory; handy for tests and transient documents."""

    def __init__(self, path: str, contents: bytes = b"", last_modified: int = -1) -> None:
        super().__init__(path)
        self._contents = contents
        self._last_modified = last_modified

    def is_exists(self) -> bool:
        return True

    @property
    def size(self) -> int:
        return len(self._contents)

    @property
    def last_modified(self) -> int:
        return self._last_modified

    @property
    def contents(self) -> bytes:
        return self._contents

    def _open_read(self) -> IO[bytes]:
        return io.BytesIO(self._contents)

    @contextmanager
    def open_write(self) -> Iterator[IO[bytes]]:
        buffer = io.BytesIO()
        yield buffer
        self._contents = buffer.getvalue()
        self._last_modified = _current_millis()

    @contextmanager
    def open_append(self) -> Iterator[IO[bytes]]:
        buffer = io.BytesIO()
        buffer.write(self._contents)
        yield buffer
        self._contents = buffer.getvalue()
        self._last_modified = _current_millis()


class FileResource(Resource):
    """A resource backed by a local file.

    Writes go to a temporary file in the same directory that replaces the
    target atomically once the write succeeds.
    """

    def __init__(self, path: str | os.PathLike[str]) -> None:
        super().__init__(os.fspath(path))

    def is_read_only(self) -> bool:
        if os.path.exists(self.path):
            return not os.access(self.path, os.W_OK)
        directory = os.path.dirname(os.path.abspath(self.path))
        return not os.access(directory, os.W_OK)

    def is_exists(self) -> bool:
        return os.path.isfile(self.path)

    @property
    def size(self) -> int:
        try:
            return os.path.getsize(self.path)
        except OSError:
            return -1

    @property
    def last_modified(self) -> int:
        try:
            return int(os.path.getmtime(self.path) * 1000)
        except OSError:
            return -1

    def _open_read(self) -> IO[bytes]:
        try:
            return open(self.path, "rb")
        except OSError as e:
            raise ResourceException(self, str(e)) from e

    @contextmanager
    def _replace_on_success(self, copy_existing: bool) -> Iterator[IO[bytes]]:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            fd, temp_path = tempfile.mkstemp(prefix=".metamodel-", dir=directory)
        except OSError as e:
            raise ResourceException(self, str(e)) from e
        try:
            with os.fdopen(fd, "wb") as stream:
                if copy_existing and os.path.exists(self.path):
                    with open(self.path, "rb") as existing:
                        shutil.copyfileobj(existing, stream)
                yield stream
            self._apply_mode(temp_path)
            os.replace(temp_path, self.path)
        except BaseException:
            if os.path.exists(temp_path):
                os.remove(temp_path)
            raise

    def _apply_mode(self, temp_path: str) -> None:
        if os.path.exists(self.path):
            shutil.copymode(self.path, temp_path)
            return
        umask = os.umask(0)
        os.umask(umask)
        os.chmod(temp_path, 0o666 & ~umask)

    def open_write(self) -> Any:
        return self._replace_on_success(copy_existing=False)

    def open_append(self) -> Any:
        return self._replace_on_success(copy_existing=True)


class UrlResource(Resource):
    """A read-only resource fetched over HTTP(S) or any scheme urllib supports."""

    def __init__(self, url: str, timeout: float = 30.0) -> None:
        super().__init__(url)
        self.timeout = timeout

    @property
    def name(self) -> str:
        return _last_path_part(urllib.parse.urlparse(self.path).path or self.path)

    def is_read_only(self) -> bool:
        return True

    def is_exists(self) -> bool:
        try:
            request = urllib.request.Request(self.path, method="HEAD")
            with urllib.request.urlopen(request, timeout=self.timeout):
                return True
        except (urllib.error.URLError, ValueError):
            return False

    @property
    def size(self) -> int:
        return -1

    @property
    def last_modified(self) -> int:
        return -1

    def _open_read(self) -> IO[bytes]:
        try:
            return urllib.request.urlopen(self.path, timeout=self.timeout)
        except (urllib.error.URLError, ValueError) as e:
            raise ResourceException(self, str(e)) from e
