import logging
import json
import time
from flask import has_request_context, request

class JsonRequestFormatter(logging.Formatter):
    def format(self, record):
        # health probes are noise
        if has_request_context() and request.path == "/healthz":
            return ""

        data = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(record.created)),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }

        if has_request_context():
            data.update({
                "method": request.method,
                "path": request.path,
                "remote_addr": request.headers.get("X-Forwarded-For", request.remote_addr),
                "request_id": request.headers.get("X-Request-ID"),
            })

        # audit context passed through `extra=`
        for key in ("session_id", "status", "attempt"):
            if hasattr(record, key):
                data[key] = getattr(record, key)

        if record.exc_info:
            data["exc_info"] = self.formatException(record.exc_info)

        return json.dumps(data, ensure_ascii=False, default=str)

def setup_logging(app=None, level=logging.INFO):
    root = logging.getLogger()
    root.setLevel(level)

    # drop handlers left over from a reload
    for h in list(root.handlers):
        root.removeHandler(h)

    h = logging.StreamHandler()
    h.setFormatter(JsonRequestFormatter())
    root.addHandler(h)

    if app:
        # the app logger ("smartaudit") reaches the root handler by propagation
        app.logger.handlers = []
        app.logger.setLevel(level)
