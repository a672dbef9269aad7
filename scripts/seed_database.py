#!/usr/bin/env python3
"""
Database seeding script for a demo clinic

Creates one clinic with a doctor, a patient, an appointment carrying vitals,
a prescription, conditions, an allergy, and an access token, so every FHIR
endpoint has something to return.

Usage:
    python scripts/seed_database.py
"""
import sys
from datetime import date, datetime, timezone
from pathlib import Path

# Add parent directory to path to import clinic_fhir modules
sys.path.append(str(Path(__file__).parent.parent))

from clinic_fhir.database import SessionLocal, engine
from clinic_fhir import models

DEMO_CLINIC_NAME = "Demo Family Clinic"
DEMO_TOKEN = "demo-clinic-token"

# Create all tables
models.Base.metadata.create_all(bind=engine)

def seed_demo_clinic():
    """Insert the demo clinic and its records (skipped if it already exists)"""
    db = SessionLocal()

    existing = db.query(models.Clinic).filter(models.Clinic.name == DEMO_CLINIC_NAME).first()
    if existing:
        print(f"⊘ Skipped (exists): {DEMO_CLINIC_NAME}")
        db.close()
        return

    clinic = models.Clinic(name=DEMO_CLINIC_NAME)
    db.add(clinic)
    db.flush()
    doctor = models.Doctor(clinic_id=clinic.id, name="Dr. Asha Rao")
    db.add(doctor)

    patient = models.Patient(
        clinic_id=clinic.id,
        first_name="Maria",
        last_name="Lopez",
        date_of_birth=date(1980, 5, 15),
        gender="FEMALE",
        phone_number="+1-555-0100",
        email="maria.lopez@example.com",
        address="12 Elm Street, Springfield",
        mrn="MRN-0001",
        preferred_language="es",
        emergency_contact_name="Jose Lopez",
        emergency_contact_phone="+1-555-0101",
        emergency_contact_relation="Spouse",
    )
    db.add(patient)
    db.flush()

    appointment = models.Appointment(
        clinic_id=clinic.id,
        patient_id=patient.id,
        doctor_id=doctor.id,
        start_time=datetime(2024, 3, 15, 9, 30, tzinfo=timezone.utc),
    )
    db.add(appointment)
    db.flush()

    db.add(models.VitalSign(
        appointment_id=appointment.id,
        systolic_bp=134,
        diastolic_bp=84,
        pulse=78,
        temperature=36.8,
        weight=87.1,
    ))

    prescription = models.Prescription(
        patient_id=patient.id,
        appointment_id=appointment.id,
        doctor_id=doctor.id,
    )
    db.add(prescription)
    db.flush()
    db.add(models.Medication(
        prescription_id=prescription.id,
        name="Atorvastatin 20 mg tablet",
        dosage="20mg",
        route="PO",
        frequency="once daily",
        duration="90 days",
        rxnorm_cui="617310",
        quantity=90,
        refills_allowed=3,
    ))

    db.add(models.PatientMedicalCondition(
        patient_id=patient.id,
        condition_name="Hyperlipidemia",
        condition_type="CHRONIC",
        status="ACTIVE",
        icd_code="E78.5",
        severity="MODERATE",
    ))

    icd = db.query(models.IcdCode).filter(models.IcdCode.code == "E66.3").first()
    if icd is None:
        icd = models.IcdCode(code="E66.3", description="Overweight")
        db.add(icd)
        db.flush()
    db.add(models.Diagnosis(appointment_id=appointment.id, icd_code_id=icd.id, is_primary=False))

    db.add(models.PatientAllergy(
        patient_id=patient.id,
        allergen="Penicillin",
        allergy_type="DRUG",
        severity="SEVERE",
        reaction="Hives",
        is_verified=True,
    ))

    db.add(models.AccessToken(
        token_hash=models.AccessToken.hash_token(DEMO_TOKEN),
        user_id="demo-doctor",
        clinic_id=clinic.id,
        role="DOCTOR",
    ))

    patient_id = patient.id
    db.commit()
    db.close()

    print(f"✓ Added: {DEMO_CLINIC_NAME}")
    print(f"\n✅ Database seeding complete!")
    print(f"   Patient ID: {patient_id}")
    print(f"   Bearer token: {DEMO_TOKEN}")

if __name__ == "__main__":
    print("📋 Seeding database with demo clinic...\n")
    try:
        seed_demo_clinic()
    except Exception as e:
        print(f"\n❌ Error seeding database: {e}")
        import traceback
        traceback.print_exc()
        sys.exit(1)
