"""Tests for the visibility projector and QR record summaries."""
from datetime import date, datetime, timedelta

import pytest

from lamr.core.exceptions import AccessDenied
from lamr.core.permissions import DenyReason
from lamr.core.visibility import (
    UnknownViewError,
    View,
    calculate_age,
    project,
    summarize_records,
)


def patient_document(**overrides):
    doc = {
        "id": "p-1",
        "patient_id": "PA000001",
        "qr_code": "LAMR-PA000001-1700000000000-deadbeef",
        "biodata": {
            "first_name": "Amaka",
            "middle_name": "Ify",
            "last_name": "Okoro",
            "date_of_birth": date(1990, 5, 17),
            "age": 99,
            "gender": "female",
            "occupation": "Engineer",
            "address": {"street": "1 Marina", "city": "Lagos", "state": "Lagos"},
            "contact": {
                "phone": "+2348011111111",
                "email": "amaka@example.com",
                "emergency_contact": {
                    "name": "Emeka Okoro",
                    "relationship": "brother",
                    "phone": "+2348030000000",
                    "address": "12 Allen Ave",
                },
            },
        },
        "medical_history": {
            "blood_group": "O+",
            "genotype": "AS",
            "allergies": [{"allergen": "Penicillin", "reaction": "Hives", "severity": "severe", "notes": "private"}],
            "surgical_history": [{"procedure": "Appendectomy"}],
            "chronic_illnesses": [
                {"condition": "Asthma", "severity": "moderate", "is_active": True, "medications": ["Salbutamol"]},
                {"condition": "Malaria", "severity": "mild", "is_active": False},
            ],
        },
        "emergency_subscription": {
            "is_active": True,
            "subscription_type": "premium",
            "start_date": "2024-01-01",
            "coverage": {"emergency": True, "ambulance": True, "surgery": False, "medication": True, "dental": True},
        },
        "hmo_provider": {"name": "Secret HMO", "policy_number": "HMO-123"},
        "access_level": "limited",
        "notes": "Confidential note",
        "internal_flag": "do-not-leak",
    }
    doc.update(overrides)
    return doc


def record_document(visit_date, status="active", **overrides):
    doc = {
        "id": f"r-{visit_date.isoformat()}",
        "patient_id": "p-1",
        "hospital_id": "h-a",
        "visit_info": {
            "visit_date": visit_date,
            "visit_type": "routine",
            "department": "General",
            "chief_complaint": "Cough",
            "visit_number": "V-1",
        },
        "vital_signs": {
            "blood_pressure": {"systolic": 120, "diastolic": 80, "unit": "mmHg", "position": "sitting"},
            "heart_rate": {"value": 72, "unit": "bpm"},
            "weight": {"value": 70, "unit": "kg"},
        },
        "assessment": {
            "primary_diagnosis": "Bronchitis",
            "secondary_diagnoses": ["Rhinitis"],
            "icd10_codes": ["J20"],
            "severity": "mild",
        },
        "treatment": {
            "medications": [{"name": "Amoxicillin", "dosage": "500mg", "frequency": "tds", "instructions": "with food"}],
            "procedures": [{"name": "Nebulization"}],
        },
        "laboratory_results": [{"test_name": "FBC"}],
        "nursing_notes": [{"note": "Comfortable"}],
        "discharge": {"discharge_date": "2024-01-11", "condition": "stable", "signed_by": "Dr X"},
        "confidentiality": {"is_confidential": True},
        "notes": "Doctor's private note",
        "status": status,
    }
    doc.update(overrides)
    return doc


def leaf_values(obj):
    if isinstance(obj, dict):
        for value in obj.values():
            yield from leaf_values(value)
    elif isinstance(obj, list):
        for value in obj:
            yield from leaf_values(value)
    else:
        yield obj


class TestFullView:
    def test_full_view_is_an_independent_copy(self):
        doc = patient_document()
        projected = project(doc, View.FULL)
        assert projected == doc
        projected["biodata"]["first_name"] = "Changed"
        assert doc["biodata"]["first_name"] == "Amaka"

    def test_view_accepts_plain_string(self):
        assert project(patient_document(), "full")["patient_id"] == "PA000001"

    def test_unknown_view_raises(self):
        with pytest.raises(UnknownViewError):
            project(patient_document(), "everything")


class TestEmergencySnapshot:
    def test_exact_field_set(self):
        snapshot = project(patient_document(), View.EMERGENCY_SNAPSHOT, as_of=date(2024, 5, 16))
        assert set(snapshot) == {
            "patient_id", "full_name", "age", "gender", "blood_group", "genotype",
            "allergies", "chronic_illnesses", "emergency_subscription", "emergency_contact",
        }
        assert snapshot["full_name"] == "Amaka Ify Okoro"
        assert snapshot["blood_group"] == "O+"

    def test_sensitive_values_never_appear(self):
        snapshot = project(patient_document(), View.EMERGENCY_SNAPSHOT)
        leaked = {"Secret HMO", "HMO-123", "Confidential note", "do-not-leak", "private",
                  "+2348011111111", "amaka@example.com", "1 Marina", "Appendectomy",
                  "12 Allen Ave", "Engineer"}
        assert leaked.isdisjoint(set(leaf_values(snapshot)))

    def test_age_computed_from_date_of_birth(self):
        assert project(patient_document(), View.EMERGENCY_SNAPSHOT, as_of=date(2024, 5, 16))["age"] == 33
        assert project(patient_document(), View.EMERGENCY_SNAPSHOT, as_of=date(2024, 5, 17))["age"] == 34

    def test_age_falls_back_to_stored_age(self):
        doc = patient_document()
        doc["biodata"]["date_of_birth"] = None
        assert project(doc, View.EMERGENCY_SNAPSHOT)["age"] == 99

    def test_only_active_chronic_illnesses(self):
        snapshot = project(patient_document(), View.EMERGENCY_SNAPSHOT)
        assert snapshot["chronic_illnesses"] == [
            {"condition": "Asthma", "severity": "moderate", "is_active": True},
        ]

    def test_allergy_and_contact_fields_are_trimmed(self):
        snapshot = project(patient_document(), View.EMERGENCY_SNAPSHOT)
        assert snapshot["allergies"] == [{"allergen": "Penicillin", "reaction": "Hives", "severity": "severe"}]
        assert snapshot["emergency_contact"] == {
            "name": "Emeka Okoro", "relationship": "brother", "phone": "+2348030000000",
        }

    def test_subscription_coverage_is_allow_listed(self):
        subscription = project(patient_document(), View.EMERGENCY_SNAPSHOT)["emergency_subscription"]
        assert subscription == {
            "is_active": True,
            "subscription_type": "premium",
            "coverage": {"emergency": True, "ambulance": True, "surgery": False, "medication": True},
        }

    def test_sparse_document_does_not_fail(self):
        snapshot = project({"patient_id": "PA000009"}, View.EMERGENCY_SNAPSHOT)
        assert snapshot["patient_id"] == "PA000009"
        assert snapshot["allergies"] == []
        assert snapshot["emergency_subscription"]["is_active"] is False

    def test_projection_is_pure(self):
        doc = patient_document()
        first = project(doc, View.EMERGENCY_SNAPSHOT, as_of=date(2024, 1, 1))
        second = project(doc, View.EMERGENCY_SNAPSHOT, as_of=date(2024, 1, 1))
        assert first == second
        assert doc == patient_document()


class TestRecordSummary:
    def test_exact_field_set(self):
        summary = project(record_document(datetime(2024, 1, 10)), View.RECORD_SUMMARY)
        assert set(summary) == {
            "record_id", "visit_date", "visit_type", "chief_complaint", "primary_diagnosis",
            "secondary_diagnoses", "severity", "vitals", "medications", "discharge",
        }
        assert summary["primary_diagnosis"] == "Bronchitis"
        assert summary["secondary_diagnoses"] == ["Rhinitis"]

    def test_clinical_detail_stays_out(self):
        summary = project(record_document(datetime(2024, 1, 10)), View.RECORD_SUMMARY)
        leaked = {"FBC", "Comfortable", "Doctor's private note", "J20", "Nebulization",
                  "with food", "Dr X", "sitting", "kg"}
        assert leaked.isdisjoint(set(leaf_values(summary)))

    def test_vitals_and_medications_shape(self):
        summary = project(record_document(datetime(2024, 1, 10)), View.RECORD_SUMMARY)
        assert summary["vitals"]["blood_pressure"] == {"systolic": 120, "diastolic": 80, "unit": "mmHg"}
        assert summary["vitals"]["heart_rate"] == {"value": 72, "unit": "bpm"}
        assert set(summary["vitals"]) == {
            "blood_pressure", "heart_rate", "temperature", "respiratory_rate", "oxygen_saturation",
        }
        assert summary["medications"] == [{"name": "Amoxicillin", "dosage": "500mg", "frequency": "tds"}]


class TestSummarizeRecords:
    def test_emergency_only_patient_is_refused(self):
        with pytest.raises(AccessDenied) as exc_info:
            summarize_records(patient_document(access_level="emergency_only"), [])
        assert exc_info.value.reason == DenyReason.RESTRICTED_ACCESS_LEVEL

    def test_archived_records_dropped_and_newest_first(self):
        start = datetime(2024, 1, 1)
        records = [
            record_document(start),
            record_document(start + timedelta(days=2), status="archived"),
            record_document(start + timedelta(days=1)),
        ]
        summaries = summarize_records(patient_document(), records)
        assert [s["visit_date"] for s in summaries] == [start + timedelta(days=1), start]

    def test_capped_at_five(self):
        start = datetime(2024, 1, 1)
        records = [record_document(start + timedelta(days=i)) for i in range(8)]
        summaries = summarize_records(patient_document(), records)
        assert len(summaries) == 5
        assert summaries[0]["visit_date"] == start + timedelta(days=7)

    def test_full_access_patient_allowed(self):
        summaries = summarize_records(patient_document(access_level="full"), [record_document(datetime(2024, 3, 1))])
        assert len(summaries) == 1


def test_calculate_age_accepts_iso_strings():
    assert calculate_age("2000-02-29", as_of=date(2024, 2, 28)) == 23
    assert calculate_age("not a date") is None
