"""Session file writer that rotates files on a fixed interval."""

import logging
import os
import threading
import time
from datetime import datetime

logger = logging.getLogger(__name__)


class WriterError(Exception):
    """Raised when a session file cannot be created or written."""


class RotWriter:
    """Append JSON lines to files whose names follow a strftime pattern."""

    def __init__(self, file_name_fmt, rot_int=0, rot_offset=0, tz=None):
        self.file_name_fmt = file_name_fmt
        self.rot_int = int(rot_int)
        self.rot_offset = int(rot_offset)
        self.tz = tz
        self._file = None
        self._last_rot_time = 0
        self._num_sessions = 0
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread = None
        self._error = None

    @property
    def closed(self):
        return self._stop.is_set()

    @property
    def num_sessions(self):
        with self._lock:
            return self._num_sessions

    @property
    def current_file_name(self):
        with self._lock:
            return self._file.name if self._file else None

    def find_file_name(self, ts):
        """Return the file name for a Unix timestamp."""
        moment = datetime.fromtimestamp(ts, self.tz)
        if self.tz is None:
            moment = moment.astimezone()
        return moment.strftime(self.file_name_fmt)

    def update(self, now=None):
        """Rotate the file if due, and open one if none is open."""
        with self._lock:
            self._update(int(time.time()) if now is None else now)

    def _update(self, now):
        if (self._file and now > self._last_rot_time and self.rot_int > 0
                and now % self.rot_int == self.rot_offset):
            self._file.close()
            self._file = None
            logger.info("Wrote %d session data.", self._num_sessions)
        if self._file is not None:
            return
        file_name = self.find_file_name(now)
        dir_name = os.path.dirname(file_name)
        try:
            if dir_name and not os.path.exists(dir_name):
                os.makedirs(dir_name, 0o755, exist_ok=True)
                logger.info("Create directories: %s", dir_name)
        except OSError as exc:
            raise WriterError(f"Failed to create directories: {dir_name} ({exc})") from exc
        try:
            self._file = open(file_name, "ab", opener=lambda p, f: os.open(p, f, 0o644))
        except OSError as exc:
            raise WriterError(f"Failed to create a session file: {file_name} ({exc})") from exc
        logger.info("Created a session file: %s", file_name)
        self._last_rot_time = now
        self._num_sessions = 0

    def _run(self):
        while not self._stop.is_set():
            try:
                self.update()
            except WriterError as exc:
                logger.critical("%s", exc)
                self._error = exc
                return
            self._stop.wait(0.1)

    def start(self):
        """Start the background thread that rotates files."""
        if self.closed:
            raise WriterError("writer is closed")
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._run, daemon=True)
            self._thread.start()
        return self

    def write(self, data):
        """Append ``data`` and a newline; return the number of bytes written."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._lock:
            if self._error is not None:
                raise self._error
            if self.closed:
                raise WriterError("writer is closed")
            if self._file is None:
                self._update(int(time.time()))
            self._num_sessions += 1
            written = self._file.write(bytes(data) + b"\n")
            self._file.flush()
            return written

    def close(self):
        """Stop rotating and close the current file."""
        self._stop.set()
        if self._thread and self._thread is not threading.current_thread():
            self._thread.join()
        with self._lock:
            if self._file is not None:
                self._file.close()
                self._file = None

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.close()