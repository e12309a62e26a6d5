#!/usr/bin/env python3
"""
Last-reading files - one file per port holding the last cumulative counter
"""
import os

from iptables_driver import MAX_COUNTER

FILE_MODE = 0o644


class CounterFileError(Exception):
    pass


class CounterStore:
    def __init__(self, tempdir):
        # joined by plain concatenation, tempdir carries its own separator
        self.tempdir = tempdir

    def path(self, port):
        return f"{self.tempdir}{port}"

    def read(self, port):
        """Previous reading for port, None if there is none yet"""
        path = self.path(port)
        try:
            fd = os.open(path, os.O_RDWR | os.O_CREAT, FILE_MODE)
            with os.fdopen(fd, 'rb') as f:
                content = f.read()
        except OSError as e:
            raise CounterFileError(f"read last traffic file {path} failed: {e}")

        last = content.decode('ascii', errors='replace').strip()
        if not last:
            return None
        if not last.isdigit() or int(last) > MAX_COUNTER:
            raise CounterFileError(f"last traffic file {path} holds {last!r}, not a counter")
        return int(last)

    def write(self, port, value):
        """Replace the stored reading for port"""
        path = self.path(port)
        tmp = f"{path}.tmp"
        try:
            with open(tmp, 'w') as f:
                f.write(str(value))
            os.chmod(tmp, FILE_MODE)
            os.replace(tmp, path)
        except OSError as e:
            raise CounterFileError(f"write last traffic file {path} failed: {e}")
