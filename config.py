from pathlib import Path

# Base directory (where this file lives)
BASE_DIR = Path(__file__).parent

# User profile used for BMI until one is saved from the dashboard
PROFILE = {
    "name": "Me",
    "height_cm": 175,
    "target_weight_kg": None,
}

# BLE settings
HCI_DEVICE = 0
SCAN_SECONDS = 8

# Measurement settings
WEIGH_TIMEOUT_SECONDS = 60

# Database (stored alongside code)
DATABASE_PATH = BASE_DIR / "measurements.db"

# Dashboard
DASHBOARD_HOST = "0.0.0.0"
DASHBOARD_PORT = 5000

# Export
EXPORT_FILENAME_PREFIX = "weights"
