import json
import logging
import sys
from contextlib import contextmanager
from datetime import datetime

LOG_FORMAT = "%(asctime)s [%(levelname)s] [%(run_id)s] %(message)s"


class RunIdFilter(logging.Filter):
    def __init__(self, run_id):
        super().__init__()
        self._run_id = run_id or "-"

    def filter(self, record):
        record.run_id = self._run_id
        return True


class JsonLineHandler(logging.Handler):
    def __init__(self, path, run_id=None):
        super().__init__()
        self._path = path
        self._run_id = run_id
        self._stream = open(path, "a", encoding="utf-8")
        self._exception_formatter = logging.Formatter()

    def emit(self, record):
        payload = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "run_id": self._run_id,
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            payload["exception"] = self._exception_formatter.formatException(record.exc_info)
        if record.stack_info:
            payload["stack_info"] = record.stack_info
        try:
            self._stream.write(json.dumps(payload, ensure_ascii=False) + "\n")
            self._stream.flush()
        except (OSError, ValueError):
            self.handleError(record)

    def close(self):
        try:
            if self._stream:
                self._stream.close()
        finally:
            self._stream = None
            super().close()


def setup_logging(log_path, verbose, run_id=None, event_log_path=None):
    """Route all records to ``log_path`` and stderr, tagged with ``run_id``.

    With ``event_log_path`` every record is also written there as one JSON
    object per line.
    """
    log_level = logging.DEBUG if verbose else logging.INFO
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()
    run_id_filter = RunIdFilter(run_id)
    handlers = []
    if log_path:
        file_handler = logging.FileHandler(log_path, encoding="utf-8")
        file_handler.addFilter(run_id_filter)
        handlers.append(file_handler)
    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.addFilter(run_id_filter)
    handlers.append(stream_handler)
    if event_log_path:
        event_handler = JsonLineHandler(event_log_path, run_id=run_id)
        event_handler.addFilter(run_id_filter)
        handlers.append(event_handler)
    logging.basicConfig(level=log_level, format=LOG_FORMAT, handlers=handlers, force=True)
    return handlers


@contextmanager
def setup_logging_context(log_path, verbose, run_id=None, event_log_path=None):
    root_logger = logging.getLogger()
    previous_handlers = root_logger.handlers[:]
    previous_level = root_logger.level
    for handler in previous_handlers:
        root_logger.removeHandler(handler)
    installed = setup_logging(
        log_path,
        verbose,
        run_id=run_id,
        event_log_path=event_log_path,
    )
    try:
        yield
    finally:
        for handler in installed:
            root_logger.removeHandler(handler)
            handler.close()
        for handler in previous_handlers:
            root_logger.addHandler(handler)
        root_logger.setLevel(previous_level)
