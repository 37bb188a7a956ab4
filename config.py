from pathlib import Path

# Global Config (set by services.file_manager.init_paths)
BASE_FOLDER = None
DB_FILE = None
LOG_FILE = None
CONFIG_FILE = Path.home() / ".fitdesk_config"

APP_NAME = "FitDesk"
DATA_DIR_ENV = "FITDESK_DATA_DIR"

# Membership lifecycle
EXPIRING_WINDOW_DAYS = 7
LOW_CHECK_INS_THRESHOLD = 3
CHECKIN_PLAN_DEFAULT_VALIDITY_DAYS = 365

# Dashboard / reports
REVENUE_WINDOW_DAYS = 30
NOTIFICATION_COOLDOWN_HOURS = 24

PAGE_SIZES = {
    "members": 10,
    "memberships": 10,
    "plans": 6,
    "check_ins": 10,
    "dashboard": 5,
    "reports": 10,
    "accounts": 10,
    "payments": 10,
}

# First-run admin account (setup flow)
DEFAULT_ADMIN_USERNAME = "admin"
DEFAULT_ADMIN_PASSWORD = "admin123"
DEFAULT_ADMIN_FULL_NAME = "Administrator"

PAYMENT_METHODS = ("cash", "card", "transfer", "e-wallet")
GENDERS = ("male", "female")
