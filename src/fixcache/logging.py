from __future__ import annotations

import json
import sys
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Iterator, TextIO


class FixCacheLogger:
    """Structured JSON logger bound to a single webhook delivery."""

    def __init__(
        self,
        delivery_id: str,
        stream: TextIO | None = None,
        context: Dict[str, Any] | None = None,
    ):
        self.delivery_id = delivery_id
        self._stream = stream
        self._context = dict(context or {})

    def bind(self, **fields: Any) -> "FixCacheLogger":
        """Child logger that adds `fields` to every line it writes."""
        return FixCacheLogger(self.delivery_id, stream=self._stream, context={**self._context, **fields})

    def info(self, message: str, **kwargs: Any) -> None:
        self._emit("info", message, **kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self._emit("warning", message, **kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self._emit("error", message, **kwargs)

    @contextmanager
    def stage(self, name: str, **fields: Any) -> Iterator[None]:
        """Context manager that tracks stage timing."""
        start = datetime.now(timezone.utc)
        self.info("stage_start", stage=name, **fields)
        status = "ok"
        try:
            yield
        except Exception as exc:
            status = "error"
            self.error(
                "stage_error",
                stage=name,
                error=str(exc),
                error_code=getattr(exc, "code", type(exc).__name__),
                **fields,
            )
            raise
        finally:
            end = datetime.now(timezone.utc)
            duration_ms = int((end - start).total_seconds() * 1000)
            self.info("stage_end", stage=name, duration_ms=duration_ms, status=status, **fields)

    def _emit(self, level: str, message: str, **kwargs: Any) -> None:
        payload: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "delivery_id": self.delivery_id,
            "message": message,
        }
        payload.update(self._sanitize({**self._context, **kwargs}))

        stream = self._stream or sys.stderr
        stream.write(json.dumps(payload, ensure_ascii=False, default=str) + "\n")
        stream.flush()

    @staticmethod
    def _sanitize(fields: Dict[str, Any]) -> Dict[str, Any]:
        redacted: Dict[str, Any] = {}
        for key, value in fields.items():
            if FixCacheLogger._is_sensitive_key(key):
                redacted[key] = "***"
            else:
                redacted[key] = value
        return redacted

    @staticmethod
    def _is_sensitive_key(key: str) -> bool:
        lowered = key.lower()
        return any(
            token in lowered
            for token in ("token", "secret", "password", "private_key", "api_key", "signature")
        )
