# db_operations.py
# CRUD operations for patients, clinical records, treatment plans and the audit log
import json
import logging
from contextlib import closing
from typing import List, Optional

from core.database import DatabaseConnection
from core.errors import PlanNotFoundError, StalePlanError
from core.models import (
    AuditEvent,
    LabValue,
    Patient,
    PlanStatus,
    ProductType,
    RespiratorySupport,
    Transfusion,
    TransfusionStats,
    TreatmentPlan,
)

logger = logging.getLogger("mila.db")

# ========================================
# Patient Operations
# ========================================

def create_patient(patient: Patient) -> str:
    """Create a new patient in the database"""
    with closing(DatabaseConnection.get_connection()) as conn:
        conn.execute("""
            INSERT INTO patients (id, display_name, birth_date, gestational_age_weeks,
                                  birth_weight_grams, respiratory_support)
            VALUES (?, ?, ?, ?, ?, ?)
        """, (patient.id, patient.display_name, patient.birth_date, patient.gestational_age_weeks,
              patient.birth_weight_grams, RespiratorySupport(patient.respiratory_support).value))
        conn.commit()
    return patient.id

def get_patient(patient_id: str) -> Optional[Patient]:
    """Retrieve a single patient by ID"""
    with closing(DatabaseConnection.get_connection()) as conn:
        row = conn.execute("SELECT * FROM patients WHERE id = ?", (patient_id,)).fetchone()

    if row:
        data = dict(row)
        data["respiratory_support"] = RespiratorySupport(data["respiratory_support"] or "room_air")
        return Patient(**data)
    return None

def update_respiratory_support(patient_id: str, support: RespiratorySupport) -> bool:
    """Record the patient's current respiratory support mode"""
    with closing(DatabaseConnection.get_connection()) as conn:
        cursor = conn.execute(
            "UPDATE patients SET respiratory_support = ? WHERE id = ?",
            (RespiratorySupport(support).value, patient_id),
        )
        conn.commit()
        return cursor.rowcount > 0

# ========================================
# Lab Value Operations
# ========================================

def add_lab_value(lab: LabValue) -> str:
    with closing(DatabaseConnection.get_connection()) as conn:
        conn.execute("""
            INSERT INTO lab_values (id, patient_id, lab_type_id, occurred_at, value, unit,
                                    ref_range_low, ref_range_high)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (lab.id, lab.patient_id, lab.lab_type_id, lab.occurred_at, lab.value, lab.unit,
              lab.ref_range_low, lab.ref_range_high))
        conn.commit()
    return lab.id

def list_lab_values(patient_id: str, lab_type_id: Optional[str] = None) -> List[LabValue]:
    """Lab values for a patient, newest first"""
    sql = "SELECT * FROM lab_values WHERE patient_id = ?"
    params = [patient_id]
    if lab_type_id:
        sql += " AND lab_type_id = ?"
        params.append(lab_type_id)
    sql += " ORDER BY occurred_at DESC"

    with closing(DatabaseConnection.get_connection()) as conn:
        rows = conn.execute(sql, params).fetchall()
    return [LabValue(**dict(row)) for row in rows]

# ========================================
# Transfusion Operations
# ========================================

def add_transfusion(transfusion: Transfusion) -> str:
    if transfusion.volume_ml < 0:
        raise ValueError(f"volume_ml must not be negative, got {transfusion.volume_ml}")

    with closing(DatabaseConnection.get_connection()) as conn:
        conn.execute("""
            INSERT INTO transfusions (id, patient_id, occurred_at, product_type, volume_ml, donor_id,
                                      is_emergency, parent_consent_obtained, parent_consent_at,
                                      clinical_justification, notes)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (transfusion.id, transfusion.patient_id, transfusion.occurred_at,
              ProductType(transfusion.product_type).value, transfusion.volume_ml, transfusion.donor_id,
              1 if transfusion.is_emergency else 0, 1 if transfusion.parent_consent_obtained else 0,
              transfusion.parent_consent_at, transfusion.clinical_justification, transfusion.notes))
        conn.commit()
    return transfusion.id

def list_transfusions(patient_id: str) -> List[Transfusion]:
    """Transfusions for a patient, newest first"""
    with closing(DatabaseConnection.get_connection()) as conn:
        rows = conn.execute(
            "SELECT * FROM transfusions WHERE patient_id = ? ORDER BY occurred_at DESC",
            (patient_id,),
        ).fetchall()

    transfusions = []
    for row in rows:
        data = dict(row)
        data["product_type"] = ProductType(data["product_type"])
        data["is_emergency"] = bool(data["is_emergency"])
        data["parent_consent_obtained"] = bool(data["parent_consent_obtained"])
        transfusions.append(Transfusion(**data))
    return transfusions

def get_transfusion_stats(patient_id: str) -> TransfusionStats:
    """Counts, volumes by product and unique donors across a patient's transfusions"""
    with closing(DatabaseConnection.get_connection()) as conn:
        totals = conn.execute("""
            SELECT COUNT(*) AS total_count,
                   COALESCE(SUM(volume_ml), 0) AS total_volume,
                   COUNT(DISTINCT donor_id) AS unique_donors
            FROM transfusions WHERE patient_id = ?
        """, (patient_id,)).fetchone()
        by_type = conn.execute("""
            SELECT product_type, SUM(volume_ml) AS volume
            FROM transfusions WHERE patient_id = ?
            GROUP BY product_type
        """, (patient_id,)).fetchall()

    volume_by_type = {product: 0.0 for product in ProductType}
    for row in by_type:
        volume_by_type[ProductType(row["product_type"])] = float(row["volume"])

    return TransfusionStats(
        total_count=totals["total_count"],
        total_volume=float(totals["total_volume"]),
        volume_by_type=volume_by_type,
        unique_donors=totals["unique_donors"],
    )

# ========================================
# Treatment Plan Operations
# ========================================

def _plan_from_row(row) -> TreatmentPlan:
    plan = TreatmentPlan.from_dict(json.loads(row["payload"]))
    plan.version = row["version"]
    return plan

def create_plan(plan: TreatmentPlan, audit: Optional[AuditEvent] = None) -> str:
    """Insert a new plan at version 1, with its audit entry in the same transaction"""
    plan.version = 1
    with closing(DatabaseConnection.get_connection()) as conn:
        conn.execute("""
            INSERT INTO treatment_plans (id, patient_id, category, status, occurred_at, payload, version)
            VALUES (?, ?, ?, ?, ?, ?, ?)
        """, (plan.id, plan.patient_id, plan.category.value, plan.status.value, plan.occurred_at,
              json.dumps(plan.to_dict()), plan.version))
        if audit is not None:
            _insert_event(conn, audit)
        conn.commit()
    return plan.id

def get_plan(plan_id: str) -> Optional[TreatmentPlan]:
    with closing(DatabaseConnection.get_connection()) as conn:
        row = conn.execute(
            "SELECT payload, version FROM treatment_plans WHERE id = ?", (plan_id,)
        ).fetchone()
    return _plan_from_row(row) if row else None

def list_plans(patient_id: str, status: Optional[PlanStatus] = None) -> List[TreatmentPlan]:
    """Plans for a patient, most recent first, optionally filtered by status"""
    sql = "SELECT payload, version FROM treatment_plans WHERE patient_id = ?"
    params = [patient_id]
    if status is not None:
        sql += " AND status = ?"
        params.append(PlanStatus(status).value)
    sql += " ORDER BY occurred_at DESC"

    with closing(DatabaseConnection.get_connection()) as conn:
        rows = conn.execute(sql, params).fetchall()
    return [_plan_from_row(row) for row in rows]

def save_plan(plan: TreatmentPlan, expected_version: int, audit: Optional[AuditEvent] = None) -> int:
    """
    Compare-and-swap save: writes only if the stored version still equals
    expected_version. Returns the new version and updates plan.version.
    The audit entry, when given, commits or rolls back together with the plan.
    """
    new_version = expected_version + 1
    payload = plan.to_dict()
    payload["version"] = new_version

    with closing(DatabaseConnection.get_connection()) as conn:
        cursor = conn.execute("""
            UPDATE treatment_plans
            SET payload = ?, status = ?, category = ?, version = ?, updated_at = CURRENT_TIMESTAMP
            WHERE id = ? AND version = ?
        """, (json.dumps(payload), plan.status.value, plan.category.value, new_version,
              plan.id, expected_version))
        if cursor.rowcount == 0:
            conn.rollback()
            exists = conn.execute("SELECT 1 FROM treatment_plans WHERE id = ?", (plan.id,)).fetchone()
            if not exists:
                raise PlanNotFoundError(plan.id)
            logger.warning("Stale save rejected for plan %s (expected version %d)", plan.id, expected_version)
            raise StalePlanError(plan.id, expected_version)
        if audit is not None:
            _insert_event(conn, audit)
        conn.commit()

    plan.version = new_version
    return new_version

def delete_plan(plan_id: str, audit: Optional[AuditEvent] = None) -> bool:
    """Delete a plan; the audit entry is written only when a row was removed"""
    with closing(DatabaseConnection.get_connection()) as conn:
        cursor = conn.execute("DELETE FROM treatment_plans WHERE id = ?", (plan_id,))
        deleted = cursor.rowcount > 0
        if deleted and audit is not None:
            _insert_event(conn, audit)
        conn.commit()
        return deleted

# ========================================
# Audit Log Operations
# ========================================

def _insert_event(conn, event: AuditEvent) -> int:
    """Write an audit entry inside the caller's transaction; the caller commits"""
    cursor = conn.execute("""
        INSERT INTO audit_log (patient_id, plan_id, actor, message)
        VALUES (?, ?, ?, ?)
    """, (event.patient_id, event.plan_id, event.actor, event.message))
    return cursor.lastrowid

def log_event(message: str, patient_id: Optional[str] = None,
              plan_id: Optional[str] = None, actor: Optional[str] = None) -> int:
    """Log an audit event"""
    with closing(DatabaseConnection.get_connection()) as conn:
        event_id = _insert_event(conn, AuditEvent(message, patient_id=patient_id, plan_id=plan_id, actor=actor))
        conn.commit()
        return event_id

def get_audit_log(patient_id: Optional[str] = None, plan_id: Optional[str] = None,
                  limit: int = 50) -> List[AuditEvent]:
    """Get audit log entries, newest first, optionally filtered by patient or plan"""
    sql = "SELECT id, patient_id, plan_id, actor, timestamp, message FROM audit_log WHERE 1=1"
    params = []
    if patient_id:
        sql += " AND patient_id = ?"
        params.append(patient_id)
    if plan_id:
        sql += " AND plan_id = ?"
        params.append(plan_id)
    sql += " ORDER BY id DESC LIMIT ?"
    params.append(limit)

    with closing(DatabaseConnection.get_connection()) as conn:
        rows = conn.execute(sql, params).fetchall()
    return [AuditEvent(**dict(row)) for row in rows]
