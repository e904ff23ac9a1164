# lance_node/logging_setup.py
from __future__ import annotations

"""
Process-wide logging setup.

Modules only ever do ``log = logging.getLogger(__name__)``; this module is
called once by the API app factory and by the CLI to attach a single stream
handler to the ``lance_node`` logger.

Never log private keys, decrypted votes or seeds. Addresses, dispute ids,
tx hashes and aggregate tallies are fine.
"""

import json
import logging
import time
from typing import Optional

from .settings import LoggingConf

PLAIN_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_HANDLER_FLAG = "_lance_handler"


class JsonLineFormatter(logging.Formatter):
    """One JSON object per line (ts, level, logger, msg, exc)."""

    def format(self, record: logging.LogRecord) -> str:
        out = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created)) + "Z",
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            out["exc"] = self.formatException(record.exc_info)
        return json.dumps(out, ensure_ascii=False, separators=(",", ":"))


def configure_logging(conf: Optional[LoggingConf] = None) -> logging.Logger:
    conf = conf or LoggingConf()
    root = logging.getLogger("lance_node")
    root.setLevel(getattr(logging, conf.level, logging.INFO))

    # idempotent: replace our own handler, leave foreign ones alone
    for h in list(root.handlers):
        if getattr(h, _HANDLER_FLAG, False):
            root.removeHandler(h)

    handler = logging.StreamHandler()
    setattr(handler, _HANDLER_FLAG, True)
    if conf.json_lines:
        handler.setFormatter(JsonLineFormatter())
    else:
        handler.setFormatter(logging.Formatter(PLAIN_FORMAT))
    root.addHandler(handler)
    return root
