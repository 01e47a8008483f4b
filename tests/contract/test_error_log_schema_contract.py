from __future__ import annotations

import json
import re
from pathlib import Path

from hrsync.logging.error_log import ErrorLogBuffer, ErrorRecord

REQUIRED_KEYS = ["timestamp", "sheet", "row", "external_id", "error_type", "http_code", "message"]
TS_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}(\.\d+)?Z$")


def test_error_log_line_schema(temp_workdir: Path):
    buf = ErrorLogBuffer()
    buf.append(ErrorRecord.create("Bulk Upload", 4, "E4", "UnexpectedResponseError", "HTTP 400: bad", 400))
    buf.append(ErrorRecord.create("Bulk Upload", -1, "", "ConfigurationError", "sheet missing"))
    path = buf.flush()
    assert re.match(r"^errors-\d{8}-\d{6}\.log$", path.name)

    rows = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    for obj in rows:
        assert list(obj) == REQUIRED_KEYS
        assert TS_RE.match(obj["timestamp"])
        assert isinstance(obj["row"], int)
        assert obj["http_code"] is None or isinstance(obj["http_code"], int)
    assert rows[1]["row"] == -1
    assert rows[1]["http_code"] is None
