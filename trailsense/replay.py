"""
Replay stored relay stream records against the webhook.

Input is either a JSON array or JSON lines, each record shaped like
{"time": ..., "deviceId": ..., "data": {"did": ..., "ts": ..., "det"|"health": {...}}}.
"""

import json
import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

import requests

from .ingest.normalizer import ROUTE_DETECTION, ROUTE_HEARTBEAT

logger = logging.getLogger("trailsense.replay")


@dataclass
class ReplayStats:
    sent: int = 0
    failed: int = 0
    skipped: int = 0


def load_records(path) -> List[dict]:
    text = Path(path).read_text()
    stripped = text.lstrip()
    if stripped.startswith("["):
        records = json.loads(stripped)
    else:
        records = [json.loads(line) for line in text.splitlines() if line.strip()]
    return [r for r in records if isinstance(r, dict)]


def to_envelope(record: dict) -> Optional[dict]:
    """Wrap one stream record as a {path, data} webhook envelope; None if it carries neither det nor health."""
    data = record.get("data")
    if not isinstance(data, dict):
        return None
    if isinstance(data.get("det"), dict):
        path = ROUTE_DETECTION
    elif isinstance(data.get("health"), dict):
        path = ROUTE_HEARTBEAT
    else:
        return None
    envelope = {"path": f"/{path}", "data": data}
    if record.get("deviceId"):
        envelope["deviceId"] = record["deviceId"]
    return envelope


def iter_envelopes(records: Iterable[dict], stats: ReplayStats) -> Iterator[dict]:
    for record in records:
        envelope = to_envelope(record)
        if envelope is None:
            stats.skipped += 1
            continue
        yield envelope


def replay(
    records: Iterable[dict],
    url: str,
    secret: str = "",
    header: str = "x-api-key",
    delay_ms: int = 100,
    dry_run: bool = False,
    session: Optional[requests.Session] = None,
) -> ReplayStats:
    stats = ReplayStats()
    http = session or requests.Session()
    headers = {"Content-Type": "application/json"}
    if secret:
        headers[header] = secret

    for envelope in iter_envelopes(records, stats):
        if dry_run:
            logger.info("[dry-run] %s %s", envelope["path"], json.dumps(envelope["data"]))
            stats.sent += 1
            continue
        try:
            res = http.post(url, json=envelope, headers=headers, timeout=10)
        except requests.RequestException as e:
            logger.error("replay request failed: %s", e)
            stats.failed += 1
            continue
        if res.ok:
            stats.sent += 1
        else:
            logger.warning("webhook answered %s: %s", res.status_code, res.text[:200])
            stats.failed += 1
        if delay_ms:
            time.sleep(delay_ms / 1000.0)

    logger.info("replay done: sent=%d failed=%d skipped=%d", stats.sent, stats.failed, stats.skipped)
    return stats
