# database.py
# Database initialization and connection management
import logging
import sqlite3
from datetime import datetime, timedelta, timezone

from .config import DB_PATH

logger = logging.getLogger("mila.database")

# SQL schema definitions
CREATE_PATIENTS_TABLE = """
CREATE TABLE IF NOT EXISTS patients (
    id TEXT PRIMARY KEY,
    display_name TEXT NOT NULL,
    birth_date TEXT NOT NULL,
    gestational_age_weeks REAL NOT NULL,
    birth_weight_grams REAL NOT NULL,
    respiratory_support TEXT DEFAULT 'room_air',
    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

CREATE_LAB_VALUES_TABLE = """
CREATE TABLE IF NOT EXISTS lab_values (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    lab_type_id TEXT NOT NULL,
    occurred_at TEXT NOT NULL,
    value REAL NOT NULL,
    unit TEXT DEFAULT '',
    ref_range_low REAL,
    ref_range_high REAL,
    FOREIGN KEY (patient_id) REFERENCES patients(id) ON DELETE CASCADE
);
"""

CREATE_TRANSFUSIONS_TABLE = """
CREATE TABLE IF NOT EXISTS transfusions (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    occurred_at TEXT NOT NULL,
    product_type TEXT NOT NULL,
    volume_ml REAL NOT NULL CHECK (volume_ml >= 0),
    donor_id TEXT NOT NULL,
    is_emergency BOOLEAN DEFAULT 0,
    parent_consent_obtained BOOLEAN DEFAULT 0,
    parent_consent_at TEXT,
    clinical_justification TEXT,
    notes TEXT DEFAULT '',
    FOREIGN KEY (patient_id) REFERENCES patients(id) ON DELETE CASCADE
);
"""

# Plans are stored whole as JSON; version backs compare-and-swap saves
CREATE_TREATMENT_PLANS_TABLE = """
CREATE TABLE IF NOT EXISTS treatment_plans (
    id TEXT PRIMARY KEY,
    patient_id TEXT NOT NULL,
    category TEXT NOT NULL,
    status TEXT NOT NULL,
    occurred_at TEXT NOT NULL,
    payload TEXT NOT NULL,
    version INTEGER NOT NULL DEFAULT 1,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    FOREIGN KEY (patient_id) REFERENCES patients(id) ON DELETE CASCADE
);
"""

# No foreign key on plan_id: entries outlive deleted plans
CREATE_AUDIT_LOG_TABLE = """
CREATE TABLE IF NOT EXISTS audit_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    patient_id TEXT,
    plan_id TEXT,
    actor TEXT,
    timestamp TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    message TEXT NOT NULL,
    FOREIGN KEY (patient_id) REFERENCES patients(id) ON DELETE SET NULL
);
"""

CREATE_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_lab_values_patient ON lab_values (patient_id, lab_type_id, occurred_at)",
    "CREATE INDEX IF NOT EXISTS idx_transfusions_patient ON transfusions (patient_id, occurred_at)",
    "CREATE INDEX IF NOT EXISTS idx_treatment_plans_patient ON treatment_plans (patient_id, occurred_at)",
]


class DatabaseConnection:
    """Database connection manager; one fresh connection per operation"""

    @classmethod
    def get_connection(cls) -> sqlite3.Connection:
        conn = sqlite3.connect(
            str(DB_PATH),
            timeout=30.0,  # Wait up to 30 seconds for locks
            check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        conn.execute("PRAGMA journal_mode=WAL")
        return conn


def init_database(seed: bool = False):
    """Create the schema; with seed=True, add the demo patient to an empty database"""
    conn = DatabaseConnection.get_connection()
    try:
        cursor = conn.cursor()
        for statement in (
            CREATE_PATIENTS_TABLE,
            CREATE_LAB_VALUES_TABLE,
            CREATE_TRANSFUSIONS_TABLE,
            CREATE_TREATMENT_PLANS_TABLE,
            CREATE_AUDIT_LOG_TABLE,
        ):
            cursor.execute(statement)
        for statement in CREATE_INDEXES:
            cursor.execute(statement)
        conn.commit()

        if seed:
            cursor.execute("SELECT COUNT(*) FROM patients")
            if cursor.fetchone()[0] == 0:
                seed_demo_data(conn)
    finally:
        conn.close()
    logger.debug("Database ready at %s", DB_PATH)


# ========================================
# Demo data
# ========================================

DEMO_PATIENT_ID = "demo-mila"

# (day of stay, product, volume ml, donor, emergency, notes)
_DEMO_TRANSFUSIONS = [
    (3, "rbc", 20, "D-1001", False, "Packed RBCs - low initial hematocrit (35%)"),
    (5, "platelet", 15, "D-1002", False, "Platelets for thrombocytopenia (18,000)"),
    (10, "rbc", 20, "D-1001", False, "RBC transfusion - Hgb 8.2 g/dL with rising O2 requirement"),
    (12, "plasma", 12, "D-1003", True, "FFP for coagulopathy during late-onset sepsis"),
    (18, "rbc", 20, "D-1002", False, "Anemia of prematurity - Hgb 7.5 g/dL, symptomatic"),
    (25, "rbc", 20, "D-1001", False, "RBC transfusion - Hgb 7.0 g/dL, poor weight gain"),
]

# (day of stay, lab type, value, unit)
_DEMO_LABS = [
    (1, "hgb", 15.2, "g/dL"),
    (3, "hgb", 10.8, "g/dL"),
    (5, "plt", 18000, "/μL"),
    (10, "hgb", 8.2, "g/dL"),
    (12, "inr", 2.3, ""),
    (18, "hgb", 7.5, "g/dL"),
    (24, "retic", 4.5, "%"),
    (25, "hgb", 7.0, "g/dL"),
    (28, "tbili", 6.2, "mg/dL"),
    (28, "dbili", 0.8, "mg/dL"),
    (30, "hgb", 9.6, "g/dL"),
]


def seed_demo_data(conn: sqlite3.Connection):
    """Seed a 32-week, 1850 g preterm one month into their NICU stay"""
    born = datetime.now(timezone.utc).replace(hour=6, minute=0, second=0, microsecond=0) - timedelta(days=30)

    def at(day):
        return (born + timedelta(days=day, hours=2)).isoformat()

    cursor = conn.cursor()
    cursor.execute("""
        INSERT INTO patients (id, display_name, birth_date, gestational_age_weeks,
                              birth_weight_grams, respiratory_support)
        VALUES (?, ?, ?, ?, ?, ?)
    """, (DEMO_PATIENT_ID, "Mila Restrepo", born.date().isoformat(), 32, 1850, "low_flow_nc"))

    cursor.executemany("""
        INSERT INTO transfusions (id, patient_id, occurred_at, product_type, volume_ml, donor_id,
                                  is_emergency, parent_consent_obtained, notes)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
    """, [
        (f"demo-tx-{i}", DEMO_PATIENT_ID, at(day), product, volume, donor, emergency, not emergency, notes)
        for i, (day, product, volume, donor, emergency, notes) in enumerate(_DEMO_TRANSFUSIONS)
    ])

    cursor.executemany("""
        INSERT INTO lab_values (id, patient_id, lab_type_id, occurred_at, value, unit)
        VALUES (?, ?, ?, ?, ?, ?)
    """, [
        (f"demo-lab-{i}", DEMO_PATIENT_ID, lab_type, at(day), value, unit)
        for i, (day, lab_type, value, unit) in enumerate(_DEMO_LABS)
    ])

    cursor.execute(
        "INSERT INTO audit_log (patient_id, actor, message) VALUES (?, ?, ?)",
        (DEMO_PATIENT_ID, "system", "Database initialized with demo data"),
    )
    conn.commit()
    logger.info("Seeded database with demo patient %s", DEMO_PATIENT_ID)
