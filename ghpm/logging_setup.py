import logging
import sys


class _ConsoleNoiseFilter(logging.Filter):
    """
    Keep the console readable:
    - all ghpm logs at the handler level
    - third-party libraries (transitions logs every callback) only at WARNING+
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "ghpm" or record.name.startswith("ghpm."):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(*, verbose: bool = False) -> None:
    """
    Configure one console handler on stderr: INFO (DEBUG with verbose),
    filtered by _ConsoleNoiseFilter.

    Call this ONCE, before the first command runs.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)

    for h in list(root.handlers):
        root.removeHandler(h)

    ch = logging.StreamHandler(sys.stderr)
    ch.setLevel(logging.DEBUG if verbose else logging.INFO)
    ch.setFormatter(logging.Formatter(fmt="%(levelname)s %(message)s"))
    ch.addFilter(_ConsoleNoiseFilter())
    root.addHandler(ch)
