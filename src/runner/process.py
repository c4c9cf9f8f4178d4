"""External program execution for the calculation engine.

The engine talks to a :class:`ProcessRunner`; it never blocks on a process.
A launch returns a :class:`ProcessHandle` immediately and results come back
through the ``on_line`` and ``on_exit`` callbacks on the runner's event loop.
"""

from __future__ import annotations

import logging
from typing import Callable, Protocol

from PySide6 import QtCore

logger = logging.getLogger(__name__)

LineCallback = Callable[[str], None]
ExitCallback = Callable[[bool], None]


class ProcessHandle(Protocol):
    def is_running(self) -> bool: ...
    def request_termination(self) -> None: ...
    def kill(self) -> None: ...
    @property
    def normal_exit(self) -> bool: ...


class ProcessRunner(Protocol):
    """Launches at most one program at a time and owns the event loop timers.

    ``on_exit`` is never invoked from inside ``launch``, not even for a
    program that fails to start, so the caller can store the returned handle
    before any exit is delivered.
    """

    def launch(
        self,
        executable: str,
        working_dir: str,
        stdin: str,
        *,
        on_line: LineCallback,
        on_exit: ExitCallback,
    ) -> ProcessHandle: ...

    def call_later(self, delay: float, callback: Callable[[], None]) -> None: ...


class QtProcessHandle:
    """A single ``QProcess`` run, line-buffered on stdout."""

    def __init__(
        self,
        process: QtCore.QProcess,
        on_line: LineCallback,
        on_exit: ExitCallback,
        on_closed: Callable[["QtProcessHandle"], None],
    ) -> None:
        self._process = process
        self._on_line = on_line
        self._on_exit = on_exit
        self._on_closed = on_closed
        self._normal_exit = False
        self._exited = False
        process.readyReadStandardOutput.connect(self._read_stdout)
        process.finished.connect(self._finished)
        process.errorOccurred.connect(self._error)

    @property
    def normal_exit(self) -> bool:
        return self._normal_exit

    def is_running(self) -> bool:
        return self._process.state() != QtCore.QProcess.ProcessState.NotRunning

    def request_termination(self) -> None:
        if self.is_running():
            self._process.terminate()

    def kill(self) -> None:
        if self.is_running():
            self._process.kill()

    def _read_stdout(self) -> None:
        while self._process.canReadLine():
            raw = bytes(self._process.readLine().data())
            self._on_line(raw.decode("utf-8", errors="replace").rstrip("\r\n"))

    def _finished(self, exit_code: int, exit_status: QtCore.QProcess.ExitStatus) -> None:
        self._read_stdout()
        remainder = bytes(self._process.readAllStandardOutput().data())
        if remainder:
            self._on_line(remainder.decode("utf-8", errors="replace").rstrip("\r\n"))
        normal = exit_status == QtCore.QProcess.ExitStatus.NormalExit and exit_code == 0
        self._deliver_exit(normal)

    def _error(self, error: QtCore.QProcess.ProcessError) -> None:
        if error == QtCore.QProcess.ProcessError.FailedToStart:
            logger.error(
                "Failed to start %s: %s", self._process.program(), self._process.errorString()
            )
            # start() reports this synchronously; the exit goes out on the next loop turn
            QtCore.QTimer.singleShot(0, lambda: self._deliver_exit(False))

    def _deliver_exit(self, normal: bool) -> None:
        if self._exited:
            return
        self._exited = True
        self._normal_exit = normal
        self._on_closed(self)
        self._on_exit(normal)


class QtProcessRunner:
    """:class:`ProcessRunner` backed by ``QProcess`` and ``QTimer``.

    Needs a running Qt event loop (``QCoreApplication.exec``) to deliver
    callbacks.
    """

    def __init__(self, parent: QtCore.QObject | None = None) -> None:
        self._parent = parent
        self._active: QtProcessHandle | None = None

    @property
    def busy(self) -> bool:
        return self._active is not None

    def launch(
        self,
        executable: str,
        working_dir: str,
        stdin: str,
        *,
        on_line: LineCallback,
        on_exit: ExitCallback,
    ) -> QtProcessHandle:
        if self._active is not None:
            raise RuntimeError("A program is already running on this runner")
        process = QtCore.QProcess(self._parent)
        process.setWorkingDirectory(working_dir)
        process.setProgram(executable)
        process.setProcessChannelMode(QtCore.QProcess.ProcessChannelMode.SeparateChannels)
        handle = QtProcessHandle(process, on_line, on_exit, self._release)
        self._active = handle
        logger.debug("Launching %s in %s", executable, working_dir)
        process.start()
        if stdin:
            process.write(stdin.encode("utf-8"))
        process.closeWriteChannel()
        return handle

    def call_later(self, delay: float, callback: Callable[[], None]) -> None:
        QtCore.QTimer.singleShot(max(0, int(delay * 1000)), callback)

    def _release(self, handle: QtProcessHandle) -> None:
        if self._active is handle:
            self._active = None
