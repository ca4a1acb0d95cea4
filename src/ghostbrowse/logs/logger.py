from __future__ import annotations

import json
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ghostbrowse.research.models import ResearchSession


@dataclass
class JsonlLogger:
    path: str

    def log(self, event: str, payload: dict[str, Any], **fields: Any) -> None:
        record: dict[str, Any] = {
            "ts": time.strftime("%Y-%m-%dT%H:%M:%S%z"),
            "event": event,
            **payload,
        }
        if fields:
            record.update(fields)

        p = Path(self.path).expanduser()
        p.parent.mkdir(parents=True, exist_ok=True)
        with p.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, ensure_ascii=False) + "\n")

    def log_session(self, session: "ResearchSession", **extra_fields: Any) -> None:
        """One summary line per finished research session."""
        errors = {
            r.source: r.error for r in session.source_results if r.error is not None
        }
        payload: dict[str, Any] = {
            "topic": session.topic,
            "sources": [r.source for r in session.source_results],
            "confidence": session.confidence.level.value,
            "counts": dict(session.confidence.per_source_counts),
            "pages_read": len(session.page_results),
            "pages_failed": sum(1 for p in session.page_results if p.error),
            "cross_refs": len(session.cross_refs),
            "elapsed_seconds": round(session.elapsed_seconds, 2),
        }
        if errors:
            payload["errors"] = errors
        self.log("research_session", payload, **extra_fields)

    def tail(self, n: int = 20) -> list[dict[str, Any]]:
        p = Path(self.path).expanduser()
        if not p.exists():
            return []
        lines = p.read_text(encoding="utf-8").splitlines()
        out: list[dict[str, Any]] = []
        for line in lines[-max(1, n):]:
            try:
                out.append(json.loads(line))
            except json.JSONDecodeError:
                continue
        return out
