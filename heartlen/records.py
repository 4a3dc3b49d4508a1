"""
Analysis records.

After every analysis pass the pipeline publishes an :class:`AnalysisRecord`:
a plain snapshot of the window and the latest estimates.  The pipeline never
talks to storage itself; callers may serialise records with
:meth:`AnalysisRecord.to_dict` (the document layout the storage service
expects) or append them to a JSON-lines file with :class:`RecordWriter`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional, Tuple

from heartlen.heart_rate import HeartRateResult
from heartlen.hrv import HRVResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisRecord:
    ppg_window: Tuple[float, ...]
    heart_rate: HeartRateResult
    hrv: HRVResult
    timestamp: datetime = field(default_factory=datetime.now)
    subject_id: Optional[str] = None

    def to_dict(self) -> dict:
        doc = {
            "ppgData": list(self.ppg_window),
            "heartRate": {
                "bpm": self.heart_rate.bpm,
                "confidence": self.heart_rate.confidence,
            },
            "hrv": {
                "sdnn": self.hrv.sdnn,
                "confidence": self.hrv.confidence,
            },
            "timestamp": self.timestamp.isoformat(),
        }
        if self.subject_id:
            doc["subjectId"] = self.subject_id
        return doc

    @classmethod
    def from_dict(cls, doc: dict) -> "AnalysisRecord":
        hr = doc.get("heartRate") or {}
        hrv = doc.get("hrv") or {}
        return cls(
            ppg_window=tuple(float(v) for v in doc.get("ppgData", ())),
            heart_rate=HeartRateResult(
                bpm=int(hr.get("bpm", 0)),
                confidence=float(hr.get("confidence", 0.0)),
            ),
            hrv=HRVResult(
                sdnn=int(hrv.get("sdnn", 0)),
                confidence=int(hrv.get("confidence", 0)),
            ),
            timestamp=datetime.fromisoformat(doc["timestamp"]),
            subject_id=doc.get("subjectId"),
        )

    def with_subject(self, subject_id: Optional[str]) -> "AnalysisRecord":
        return AnalysisRecord(
            self.ppg_window, self.heart_rate, self.hrv, self.timestamp, subject_id
        )


@dataclass(frozen=True)
class HistorySummary:
    avg_heart_rate: Optional[float]   # BPM, None without any determined value
    avg_hrv: Optional[float]          # SDNN ms, None without any determined value
    last_access: Optional[datetime]
    count: int


def summarize_records(records: Iterable[AnalysisRecord]) -> HistorySummary:
    """
    Summarise a subject's stored records.

    Undetermined values (0) are left out of the averages.
    """
    bpms = []
    sdnns = []
    last: Optional[datetime] = None
    count = 0
    for rec in records:
        count += 1
        if rec.heart_rate.bpm > 0:
            bpms.append(rec.heart_rate.bpm)
        if rec.hrv.sdnn > 0:
            sdnns.append(rec.hrv.sdnn)
        if last is None or rec.timestamp > last:
            last = rec.timestamp
    return HistorySummary(
        avg_heart_rate=sum(bpms) / len(bpms) if bpms else None,
        avg_hrv=sum(sdnns) / len(sdnns) if sdnns else None,
        last_access=last,
        count=count,
    )


class RecordWriter:
    """
    Appends records to a JSON-lines file, one document per line.

    Write errors are logged and reported through the return value of
    :meth:`write`; they never propagate into the frame loop.
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)

    def write(self, record: AnalysisRecord) -> bool:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as fh:
                fh.write(json.dumps(record.to_dict()) + "\n")
        except OSError as exc:
            logger.warning("Could not save record to %s: %s", self.path, exc)
            return False
        logger.info(
            "Saved record: bpm=%d sdnn=%d samples=%d",
            record.heart_rate.bpm, record.hrv.sdnn, len(record.ppg_window),
        )
        return True

    def read_all(self) -> list[AnalysisRecord]:
        """Load every record in the file (empty if it does not exist yet)."""
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as fh:
            return [AnalysisRecord.from_dict(json.loads(line)) for line in fh if line.strip()]
