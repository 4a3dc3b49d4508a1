"""
Unit tests for analysis records and the JSON-lines writer.
"""

from __future__ import annotations

import json
from datetime import datetime, timedelta

from heartlen.heart_rate import HeartRateResult
from heartlen.hrv import HRVResult
from heartlen.records import AnalysisRecord, RecordWriter, summarize_records

T0 = datetime(2024, 3, 1, 12, 0, 0)


def record(bpm=72, sdnn=45, ts=T0, subject=None) -> AnalysisRecord:
    return AnalysisRecord(
        ppg_window=(1.0, 2.0, 3.0),
        heart_rate=HeartRateResult(bpm=bpm, confidence=91.5),
        hrv=HRVResult(sdnn=sdnn, confidence=60),
        timestamp=ts,
        subject_id=subject,
    )


class TestAnalysisRecord:

    def test_document_layout(self):
        doc = record(subject="S01").to_dict()
        assert doc == {
            "ppgData": [1.0, 2.0, 3.0],
            "heartRate": {"bpm": 72, "confidence": 91.5},
            "hrv": {"sdnn": 45, "confidence": 60},
            "timestamp": "2024-03-01T12:00:00",
            "subjectId": "S01",
        }
        json.dumps(doc)

    def test_subject_omitted_when_unset(self):
        assert "subjectId" not in record().to_dict()

    def test_from_dict_restores_record(self):
        original = record(subject="S02")
        assert AnalysisRecord.from_dict(original.to_dict()) == original

    def test_with_subject(self):
        assert record().with_subject("S03").subject_id == "S03"


class TestSummarizeRecords:

    def test_averages_skip_undetermined(self):
        summary = summarize_records([
            record(bpm=60, sdnn=40, ts=T0),
            record(bpm=80, sdnn=0, ts=T0 + timedelta(minutes=5)),
            record(bpm=0, sdnn=60, ts=T0 + timedelta(minutes=1)),
        ])
        assert summary.count == 3
        assert summary.avg_heart_rate == 70.0
        assert summary.avg_hrv == 50.0
        assert summary.last_access == T0 + timedelta(minutes=5)

    def test_empty_history(self):
        summary = summarize_records([])
        assert summary.count == 0
        assert summary.avg_heart_rate is None
        assert summary.avg_hrv is None
        assert summary.last_access is None


class TestRecordWriter:

    def test_appends_json_lines(self, tmp_path):
        path = tmp_path / "records" / "s01.jsonl"
        writer = RecordWriter(path)
        assert writer.write(record(bpm=60))
        assert writer.write(record(bpm=65))
        lines = path.read_text(encoding="utf-8").splitlines()
        assert len(lines) == 2
        assert [r.heart_rate.bpm for r in writer.read_all()] == [60, 65]

    def test_read_missing_file(self, tmp_path):
        assert RecordWriter(tmp_path / "none.jsonl").read_all() == []

    def test_write_failure_is_reported(self, tmp_path):
        writer = RecordWriter(tmp_path)      # a directory, not a file
        assert writer.write(record()) is False
