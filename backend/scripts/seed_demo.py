#!/usr/bin/env python3
"""
DEMO SEED SCRIPT
================

Creates a predictable demo environment with:
- the bootstrap administrator plus one approved user per clinical role
- pharmacies and known medication interaction pairs
- demo patients, each with an intake referral and active medications

RE-RUN ANYTIME: python scripts/seed_demo.py

Existing demo rows (matched by username / external patient id / pharmacy
name) are left in place; only missing rows are created.
"""

import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from isynera.db.postgres import get_db_session, init_db
from isynera.errors import ValidationError
from isynera.models import AppUser, Patient, Pharmacy, MedicationInteraction
from isynera.services.auth_service import AuthService
from isynera.services.patient_service import PatientService
from isynera.services.prescription_service import PrescriptionService
from isynera.services.referral_service import ReferralService

# =============================================================================
# CONFIGURATION
# =============================================================================

DEMO_PASSWORD = "demo12345"

DEMO_USERS = [
    {"username": "dr.casey", "email": "casey@isynera.demo", "role": "doctor",
     "first_name": "Casey", "last_name": "Clinical", "license_number": "MD-100200"},
    {"username": "nina.nurse", "email": "nina@isynera.demo", "role": "nurse",
     "first_name": "Nina", "last_name": "Nurse"},
    {"username": "ivy.intake", "email": "ivy@isynera.demo", "role": "intake_coordinator",
     "first_name": "Ivy", "last_name": "Intake"},
    {"username": "bill.billing", "email": "bill@isynera.demo", "role": "billing",
     "first_name": "Bill", "last_name": "Billing"},
    {"username": "sam.scheduler", "email": "sam@isynera.demo", "role": "scheduler",
     "first_name": "Sam", "last_name": "Scheduler"},
]

DEMO_PHARMACIES = [
    {"name": "Main Street Pharmacy", "address": "12 Main St", "city": "Springfield",
     "state": "IL", "zip_code": "62701", "fax_number": "2175550100", "chain_type": "independent"},
    {"name": "CarePlus Drugs #44", "address": "900 Oak Ave", "city": "Springfield",
     "state": "IL", "zip_code": "62704", "fax_number": "2175550144", "chain_type": "chain"},
]

DEMO_INTERACTIONS = [
    ("warfarin", "aspirin", "high", "Increased bleeding risk", "Monitor INR closely or choose an alternative"),
    ("lisinopril", "spironolactone", "medium", "Risk of hyperkalemia", "Check potassium within one week"),
    ("sertraline", "tramadol", "critical", "Serotonin syndrome risk", "Avoid combination"),
]

DEMO_PATIENTS = [
    {
        "patient": {
            "patient_name": "Demo - Margaret Hill", "date_of_birth": "1941-03-14", "patient_id": "DEMO-0001",
            "diagnosis": "CHF with reduced ejection fraction", "physician": "Dr. Casey Clinical",
            "insurance_info": {"provider": "Medicare", "policy_number": "1EG4-TE5-MK72"},
        },
        "medications": [("warfarin", "5 mg"), ("lisinopril", "10 mg")],
        "referral": {"referring_provider": "Springfield General", "status": "pending"},
    },
    {
        "patient": {
            "patient_name": "Demo - Robert Young", "date_of_birth": "1950-11-02", "patient_id": "DEMO-0002",
            "diagnosis": "COPD exacerbation", "physician": "Dr. Casey Clinical",
            "insurance_info": {"provider": "Medicaid", "policy_number": "MCD-883412"},
        },
        "medications": [("sertraline", "50 mg")],
        "referral": {"referring_provider": "Lakeside Clinic", "status": "missing_info",
                     "missing_fields": ["face_to_face_date", "physician_signature"]},
    },
    {
        "patient": {
            "patient_name": "Demo - Alice Moreno", "date_of_birth": "1938-07-21", "patient_id": "DEMO-0003",
            "diagnosis": "Post-operative hip replacement", "physician": "Dr. Casey Clinical",
            "insurance_info": {"provider": "Humana MCO", "policy_number": "HUM-22019"},
        },
        "medications": [],
        "referral": {"referring_provider": "Ortho Partners", "status": "complete"},
    },
]


# =============================================================================
# SEEDERS
# =============================================================================

def seed_users(auth: AuthService) -> dict:
    admin = auth.create_default_admin()
    users = {"administrator": admin}

    for entry in DEMO_USERS:
        with get_db_session() as session:
            existing = session.query(AppUser).filter(AppUser.username == entry["username"]).first()
            existing = existing.to_dict() if existing else None
        if existing:
            users[entry["role"]] = existing
            continue

        user, error = auth.register_user(password=DEMO_PASSWORD, **entry)
        if error:
            raise RuntimeError(f"Could not create {entry['username']}: {error}")
        user, error = auth.approve_user(user["id"], admin["id"])
        if error:
            raise RuntimeError(f"Could not approve {entry['username']}: {error}")
        users[entry["role"]] = user
        print(f"  + {entry['username']} ({entry['role']})")

    return users


def seed_pharmacies(prescriptions: PrescriptionService) -> list:
    pharmacies = []
    for entry in DEMO_PHARMACIES:
        with get_db_session() as session:
            existing = session.query(Pharmacy).filter(Pharmacy.name == entry["name"]).first()
            existing = existing.to_dict() if existing else None
        if existing:
            pharmacies.append(existing)
            continue
        pharmacies.append(prescriptions.create_pharmacy(entry))
        print(f"  + pharmacy {entry['name']}")
    return pharmacies


def seed_interactions():
    with get_db_session() as session:
        for drug_a, drug_b, severity, description, recommendation in DEMO_INTERACTIONS:
            exists = session.query(MedicationInteraction).filter(
                MedicationInteraction.drug_a == drug_a,
                MedicationInteraction.drug_b == drug_b,
            ).first()
            if exists:
                continue
            session.add(MedicationInteraction(
                drug_a=drug_a,
                drug_b=drug_b,
                severity=severity,
                description=description,
                recommendation=recommendation,
            ))
        session.commit()


def seed_patients(users: dict, pharmacies: list):
    patients = PatientService()
    referrals = ReferralService()
    intake_user = users["intake_coordinator"]["id"]
    doctor_id = users["doctor"]["id"]

    for index, entry in enumerate(DEMO_PATIENTS):
        with get_db_session() as session:
            exists = session.query(Patient.id).filter(Patient.patient_id == entry["patient"]["patient_id"]).first()
        if exists:
            continue

        try:
            patient = patients.create_patient(
                {**entry["patient"], "preferred_pharmacy_id": pharmacies[index % len(pharmacies)]["id"]},
                user_id=intake_user,
            )
        except ValidationError as e:
            print(f"  ! skipped {entry['patient']['patient_name']}: {e.message}")
            continue

        for name, dosage in entry["medications"]:
            patients.add_medication(patient["id"], {
                "medication_name": name,
                "dosage": dosage,
                "frequency": "daily",
                "prescribed_by": "Dr. Casey Clinical",
            }, user_id=doctor_id)

        referrals.create_referral({**entry["referral"], "patient_id": patient["id"]}, user_id=intake_user)
        print(f"  + {patient['patient_name']} ({len(entry['medications'])} medications)")


# =============================================================================
# MAIN
# =============================================================================

def main():
    print("=" * 60)
    print("ISYNERA - DEMO DATA SEED")
    print("=" * 60)

    # Initialize DB
    init_db()

    print("\nUsers")
    users = seed_users(AuthService())
    print("\nPharmacies / interactions")
    pharmacies = seed_pharmacies(PrescriptionService())
    seed_interactions()
    print("\nPatients")
    seed_patients(users, pharmacies)

    print(f"\nDemo password for seeded staff accounts: {DEMO_PASSWORD}")
    print("Demo seed complete.\n")


if __name__ == "__main__":
    main()
