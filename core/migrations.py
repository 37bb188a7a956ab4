"""
Schema migrations, applied in id order by core.database.init_db().
Each entry is (id, name, up_sql, down_sql). Never edit an applied migration;
append a new one instead.
"""

INITIAL_SCHEMA_UP = """
CREATE TABLE IF NOT EXISTS settings (
    id TEXT PRIMARY KEY CHECK (id = '1'),
    gym_name TEXT NOT NULL DEFAULT 'FitDesk Gym',
    language TEXT NOT NULL DEFAULT 'en' CHECK (language IN ('ar', 'en')),
    currency TEXT NOT NULL DEFAULT 'EGP',
    date_format TEXT NOT NULL DEFAULT 'DD/MM/YYYY'
        CHECK (date_format IN ('DD/MM/YYYY', 'MM/DD/YYYY', 'YYYY-MM-DD')),
    allowed_genders TEXT NOT NULL DEFAULT 'both'
        CHECK (allowed_genders IN ('male', 'female', 'both')),
    default_payment_method TEXT NOT NULL DEFAULT 'cash'
        CHECK (default_payment_method IN ('cash', 'card', 'transfer', 'e-wallet')),
    auto_backup INTEGER NOT NULL DEFAULT 1 CHECK (auto_backup IN (0, 1)),
    backup_frequency TEXT NOT NULL DEFAULT 'daily'
        CHECK (backup_frequency IN ('daily', 'weekly', 'monthly')),
    backup_folder_path TEXT,
    last_backup_date TEXT,
    created_at TEXT DEFAULT (datetime('now', 'localtime')),
    updated_at TEXT DEFAULT (datetime('now', 'localtime'))
);

INSERT OR IGNORE INTO settings (id) VALUES ('1');

CREATE TABLE IF NOT EXISTS members (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT,
    country_code TEXT NOT NULL DEFAULT '+20',
    phone TEXT NOT NULL UNIQUE,
    gender TEXT NOT NULL CHECK (gender IN ('male', 'female')),
    address TEXT,
    join_date TEXT NOT NULL,
    notes TEXT,
    created_at TEXT DEFAULT (datetime('now', 'localtime'))
);

CREATE TABLE IF NOT EXISTS membership_plans (
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    description TEXT,
    price REAL NOT NULL CHECK (price >= 0),
    duration_days INTEGER,
    is_offer INTEGER NOT NULL DEFAULT 0 CHECK (is_offer IN (0, 1)),
    plan_type TEXT NOT NULL DEFAULT 'duration' CHECK (plan_type IN ('duration', 'checkin')),
    check_in_limit INTEGER,
    created_at TEXT DEFAULT (datetime('now', 'localtime'))
);

CREATE TABLE IF NOT EXISTS memberships (
    id TEXT PRIMARY KEY,
    member_id TEXT NOT NULL,
    plan_id TEXT NOT NULL,
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    total_price REAL NOT NULL DEFAULT 0,
    amount_paid REAL NOT NULL DEFAULT 0,
    remaining_balance REAL NOT NULL DEFAULT 0,
    payment_status TEXT NOT NULL DEFAULT 'unpaid'
        CHECK (payment_status IN ('unpaid', 'partial', 'paid')),
    payment_method TEXT NOT NULL DEFAULT 'cash',
    payment_date TEXT,
    remaining_check_ins INTEGER,
    is_custom INTEGER NOT NULL DEFAULT 0,
    price_modifier_type TEXT,
    price_modifier_value REAL,
    custom_price_name TEXT,
    notes TEXT,
    created_at TEXT DEFAULT (datetime('now', 'localtime')),
    FOREIGN KEY (member_id) REFERENCES members(id) ON DELETE CASCADE,
    FOREIGN KEY (plan_id) REFERENCES membership_plans(id) ON DELETE RESTRICT
);

CREATE INDEX IF NOT EXISTS idx_memberships_member ON memberships(member_id, end_date);

CREATE TABLE IF NOT EXISTS membership_payments (
    id TEXT PRIMARY KEY,
    membership_id TEXT NOT NULL,
    amount REAL NOT NULL CHECK (amount > 0),
    payment_method TEXT NOT NULL DEFAULT 'cash',
    payment_date TEXT NOT NULL,
    payment_status TEXT NOT NULL DEFAULT 'completed'
        CHECK (payment_status IN ('completed', 'scheduled', 'pending')),
    notes TEXT,
    created_at TEXT DEFAULT (datetime('now', 'localtime')),
    FOREIGN KEY (membership_id) REFERENCES memberships(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_payments_membership ON membership_payments(membership_id);

CREATE TABLE IF NOT EXISTS check_ins (
    id TEXT PRIMARY KEY,
    member_id TEXT NOT NULL,
    membership_id TEXT,
    check_in_time TEXT NOT NULL,
    check_in_date TEXT NOT NULL,
    created_at TEXT DEFAULT (datetime('now', 'localtime')),
    UNIQUE (member_id, check_in_date),
    FOREIGN KEY (member_id) REFERENCES members(id) ON DELETE CASCADE,
    FOREIGN KEY (membership_id) REFERENCES memberships(id) ON DELETE SET NULL
);

CREATE TABLE IF NOT EXISTS users (
    id TEXT PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    full_name TEXT NOT NULL,
    email TEXT,
    is_admin INTEGER NOT NULL DEFAULT 0,
    is_active INTEGER NOT NULL DEFAULT 1,
    permissions TEXT NOT NULL DEFAULT '{}',
    last_login TEXT,
    created_at TEXT DEFAULT (datetime('now', 'localtime')),
    updated_at TEXT DEFAULT (datetime('now', 'localtime'))
);

CREATE TABLE IF NOT EXISTS reports (
    id TEXT PRIMARY KEY,
    report_type TEXT NOT NULL CHECK (report_type IN ('week', 'month', 'year', 'custom')),
    start_date TEXT NOT NULL,
    end_date TEXT NOT NULL,
    total_revenue REAL NOT NULL DEFAULT 0,
    total_members INTEGER NOT NULL DEFAULT 0,
    new_members INTEGER NOT NULL DEFAULT 0,
    total_memberships INTEGER NOT NULL DEFAULT 0,
    new_memberships INTEGER NOT NULL DEFAULT 0,
    total_check_ins INTEGER NOT NULL DEFAULT 0,
    generated_by TEXT NOT NULL DEFAULT 'System',
    created_at TEXT DEFAULT (datetime('now', 'localtime'))
);
"""

INITIAL_SCHEMA_DOWN = """
DROP TABLE IF EXISTS reports;
DROP TABLE IF EXISTS users;
DROP TABLE IF EXISTS check_ins;
DROP TABLE IF EXISTS membership_payments;
DROP TABLE IF EXISTS memberships;
DROP TABLE IF EXISTS membership_plans;
DROP TABLE IF EXISTS members;
DROP TABLE IF EXISTS settings;
"""

NOTIFICATION_LOG_UP = """
CREATE TABLE IF NOT EXISTS notification_log (
    id TEXT PRIMARY KEY,
    membership_id TEXT NOT NULL,
    member_id TEXT NOT NULL,
    expiry_date TEXT NOT NULL,
    days_before_expiry INTEGER NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('sent', 'failed')),
    error_message TEXT,
    sent_at TEXT NOT NULL,
    FOREIGN KEY (membership_id) REFERENCES memberships(id) ON DELETE CASCADE
);

CREATE INDEX IF NOT EXISTS idx_notification_membership ON notification_log(membership_id, sent_at);
"""

NOTIFICATION_LOG_DOWN = """
DROP TABLE IF EXISTS notification_log;
"""

MIGRATIONS = [
    (1, "initial schema", INITIAL_SCHEMA_UP, INITIAL_SCHEMA_DOWN),
    (2, "notification log", NOTIFICATION_LOG_UP, NOTIFICATION_LOG_DOWN),
]
