"""
Outcome of a best-effort side effect (notification insert, reputation strike).
Callers log it; it is never raised.
"""

import logging
from dataclasses import dataclass
from typing import Optional

OK = "ok"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass(frozen=True)
class Outcome:
    status: str
    action: str
    detail: Optional[str] = None

    @classmethod
    def ok(cls, action, detail=None):
        return cls(OK, action, detail)

    @classmethod
    def skipped(cls, action, detail=None):
        return cls(SKIPPED, action, detail)

    @classmethod
    def failed(cls, action, detail):
        return cls(FAILED, action, detail)

    @property
    def succeeded(self):
        return self.status == OK

    def log(self, logger, context=""):
        prefix = f"[{context}] " if context else ""
        if self.status == FAILED:
            logger.warning(f"{prefix}{self.action} failed: {self.detail}")
        elif self.status == SKIPPED:
            logger.info(f"{prefix}{self.action} skipped: {self.detail}")
        else:
            logger.debug(f"{prefix}{self.action} ok")
        return self
