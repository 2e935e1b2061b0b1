"""Tests for check-in intake."""

from __future__ import annotations

from tipscompass.domains.tips.intake import (
    checkin_document_id,
    record_checkin,
    remove_checkin,
    replay_checkin,
)


class TestCheckinDocumentId:
    def test_patient_and_date(self, checkin_record):
        assert checkin_document_id(checkin_record()) == "patient_001_2026-02-01"

    def test_unknown_patient(self):
        assert checkin_document_id({"date": "2026-02-01"}) == "unknown_2026-02-01"

    def test_legacy_alias(self):
        assert checkin_document_id({"patientID": "p9", "date": "2026-02-01"}) == "p9_2026-02-01"


class TestRecordCheckin:
    def test_creates_document_and_event(self, compass_repository, checkin_record):
        record = checkin_record(fever=True)
        event = record_checkin(compass_repository, record)

        assert event.checkin_id == "patient_001_2026-02-01"
        assert event.data == record
        assert not event.is_deletion

        stored = compass_repository.get_checkin(event.checkin_id)
        assert stored.patient_id == "patient_001"
        assert stored.date == "2026-02-01"
        assert stored.payload == record

    def test_correction_merges_into_existing(self, compass_repository, checkin_record):
        first = record_checkin(compass_repository, checkin_record(weightKg=75.0))
        created_at = compass_repository.get_checkin(first.checkin_id).created_at

        second = record_checkin(
            compass_repository,
            {"patientId": "patient_001", "date": "2026-02-01", "fever": True},
        )

        stored = compass_repository.get_checkin(second.checkin_id)
        assert stored.payload["fever"] is True
        assert stored.payload["weightKg"] == 75.0
        assert stored.created_at == created_at
        assert second.data["weightKg"] == 75.0

    def test_explicit_id(self, compass_repository, checkin_record):
        event = record_checkin(compass_repository, checkin_record(), checkin_id="custom-1")
        assert event.checkin_id == "custom-1"
        assert compass_repository.get_checkin("custom-1") is not None

    def test_invalid_date_is_stored_unindexed(self, compass_repository, checkin_record):
        event = record_checkin(compass_repository, checkin_record(date="not-a-date"))
        stored = compass_repository.get_checkin(event.checkin_id)
        assert stored.date == ""
        assert stored.payload["date"] == "not-a-date"


class TestRemoveAndReplay:
    def test_remove(self, compass_repository, checkin_record):
        event = record_checkin(compass_repository, checkin_record())
        deletion = remove_checkin(compass_repository, event.checkin_id)

        assert deletion.is_deletion
        assert deletion.data is None
        assert remove_checkin(compass_repository, event.checkin_id) is None

    def test_replay(self, compass_repository, checkin_record):
        event = record_checkin(compass_repository, checkin_record(tremor=True))
        replayed = replay_checkin(compass_repository, event.checkin_id)
        assert replayed == event
        assert replay_checkin(compass_repository, "missing") is None
