"""Incremental JSONL file tailing with resumable byte offsets.

A FileTailer remembers, per path, how many bytes have already been consumed
and hands back only the complete lines appended since the previous call.
"""

import json
import os
import threading
from collections import deque


SEEK_BLOCK_SIZE = 4096


class FileTailer:
    """Track one byte offset per file and return newly appended complete lines.

    Each path has its own lock, so a slow read of one file never holds up
    another poller tailing a different file.
    """

    def __init__(self):
        self._offsets = {}
        self._pending = set()
        self._path_locks = {}
        self._lock = threading.Lock()

    def _path_lock(self, path):
        with self._lock:
            lock = self._path_locks.get(path)
            if lock is None:
                lock = self._path_locks[path] = threading.Lock()
            return lock

    def _store(self, path, offset, pending):
        with self._lock:
            self._offsets[path] = offset
            if pending:
                self._pending.add(path)
            else:
                self._pending.discard(path)

    def offset(self, path):
        """Return the stored offset for path, or None if it was never tailed."""
        with self._lock:
            return self._offsets.get(path)

    def has_pending(self, path):
        """True when the last read of path stopped before an unterminated line."""
        with self._lock:
            return path in self._pending

    def seek_to_end(self, path):
        """Baseline path at its last complete line so existing content is not replayed.

        Returns the new offset, or None when the file cannot be read.
        """
        with self._path_lock(path):
            try:
                with open(path, 'rb') as fh:
                    size = os.fstat(fh.fileno()).st_size
                    offset = last_line_boundary(fh, size)
            except OSError:
                return None
            self._store(path, offset, size > offset)
            return offset

    def baseline_with_rows(self, path, max_lines):
        """Baseline path like seek_to_end and return the last max_lines complete lines before it.

        Both come from one read, so every complete line is either returned here
        or delivered by a later tail(), never both.
        """
        with self._path_lock(path):
            try:
                with open(path, 'rb') as fh:
                    size = os.fstat(fh.fileno()).st_size
                    offset = last_line_boundary(fh, size)
                    fh.seek(0)
                    tail_lines = deque(maxlen=max(0, max_lines))
                    consumed = 0
                    while consumed < offset:
                        raw = fh.readline()
                        if not raw:
                            break
                        consumed += len(raw)
                        text = raw.decode('utf-8', errors='replace').strip()
                        if text and max_lines > 0:
                            tail_lines.append(text)
            except OSError:
                return []
            self._store(path, offset, size > offset)
            return list(tail_lines)

    def tail(self, path):
        """Return new complete lines appended to path since the last call.

        A trailing line without a terminator is left unconsumed until a later
        append completes it. Missing or unreadable files yield [] and leave the
        offset untouched.
        """
        with self._path_lock(path):
            offset = self.offset(path) or 0
            try:
                with open(path, 'rb') as fh:
                    size = os.fstat(fh.fileno()).st_size
                    if size < offset:
                        print(f'[TAIL] {path} shrank ({size} < {offset}), restarting from 0')
                        offset = 0
                    if size == offset:
                        self._store(path, offset, False)
                        return []
                    fh.seek(offset)
                    chunk = fh.read(size - offset)
            except OSError:
                return []

            end = chunk.rfind(b'\n')
            if end < 0:
                # Nothing terminated yet; keep waiting for the writer.
                self._store(path, offset, True)
                return []
            self._store(path, offset + end + 1, end + 1 < len(chunk))

        lines = []
        for raw in chunk[:end].split(b'\n'):
            text = raw.decode('utf-8', errors='replace').strip()
            if text:
                lines.append(text)
        return lines


def last_line_boundary(fh, size):
    """Return the offset just past the last newline in an open binary file (0 if none)."""
    pos = size
    while pos > 0:
        start = max(0, pos - SEEK_BLOCK_SIZE)
        fh.seek(start)
        block = fh.read(pos - start)
        idx = block.rfind(b'\n')
        if idx >= 0:
            return start + idx + 1
        pos = start
    return 0


def parse_json_lines(lines):
    """Decode JSON object lines, skipping anything malformed or not an object."""
    rows = []
    for line in lines:
        try:
            row = json.loads(line)
        except ValueError:
            continue
        if isinstance(row, dict):
            rows.append(row)
    return rows

