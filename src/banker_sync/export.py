from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Union

from .models import TransactionRecord


logger = logging.getLogger(__name__)


def export_payload(records: Iterable[TransactionRecord], source: str, *, exported_at: Optional[datetime] = None) -> dict:
    items = [r.model_dump(mode="json") for r in records]
    return {
        "source": source,
        "exportedAt": (exported_at or datetime.now()).isoformat(timespec="seconds"),
        "records": items,
        "count": len(items),
    }


def default_export_path(export_dir: Union[str, Path], source: str, *, now: Optional[datetime] = None) -> Path:
    stamp = (now or datetime.now()).strftime("%Y%m%d_%H%M%S")
    return Path(export_dir) / f"{source}-transactions-{stamp}.json"


def export_records(records: Iterable[TransactionRecord], source: str, path: Union[str, Path]) -> Path:
    """
    Write `{source, exportedAt, records, count}` as JSON. Parent directories are created.
    """
    payload = export_payload(records, source)
    out = Path(path)
    out.parent.mkdir(parents=True, exist_ok=True)
    tmp = out.with_suffix(out.suffix + ".tmp")
    tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
    tmp.replace(out)
    logger.info("Exported %d %s record(s) to %s", payload["count"], source, out)
    return out
