# reports.py
import logging
import os
import re
from datetime import datetime
from typing import Iterable, Optional

log = logging.getLogger(__name__)


def calendar_time(now: Optional[datetime] = None) -> str:
    now = now or datetime.now()
    return now.strftime("%Y-%m-%d %H:%M:%S.") + f"{now.microsecond // 1000:03d} "


def bugreport_name(prefix: str, now: Optional[datetime] = None) -> str:
    return re.sub(r"[ ,:]", "_", prefix + calendar_time(now)) + ".txt"


class ReportSink:
    """Writes diagnostic text to `directory/<name>`.

    Without a directory, lines only go to the log. A write error never
    escapes: the partial file is removed and the error logged.
    """

    def __init__(self, directory=None):
        self.directory = os.fspath(directory) if directory is not None else None
        self.written = []
        self.failed = []

    def write(self, name: str, lines: Iterable[str]) -> bool:
        log.info("%s:", name)
        if self.directory is None:
            for line in lines:
                log.info("%s", line)
            return True

        path = os.path.join(self.directory, name)
        partial = path + ".partial"
        try:
            os.makedirs(self.directory, exist_ok=True)
            with open(partial, "w") as f:
                for line in lines:
                    f.write(line)
                    f.write("\n")
            os.replace(partial, path)
        except OSError as e:
            log.error("// Exception from %s: %s", name, e)
            self.failed.append(name)
            try:
                os.remove(partial)
            except OSError:
                pass
            return False
        self.written.append(path)
        log.info("// %s written to %s", name, path)
        return True
