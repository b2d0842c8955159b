from pathlib import Path

# Base directory (where this file lives)
BASE_DIR = Path(__file__).parent

# User profile used for BMI until one is saved from the dashboard
# Copy this file to config.py and update with your values
PROFILE = {
    "name": "Me",            # Display name
    "height_cm": 175,        # Your height in centimeters
    "target_weight_kg": None,  # Optional goal weight
}

# BLE settings
HCI_DEVICE = 0               # hci0
SCAN_SECONDS = 8             # How long the device chooser listens for scales

# Measurement settings
WEIGH_TIMEOUT_SECONDS = 60   # Deadline for connect + first reading

# Database (stored alongside code)
DATABASE_PATH = BASE_DIR / "measurements.db"

# Dashboard
DASHBOARD_HOST = "0.0.0.0"
DASHBOARD_PORT = 5000

# Export
EXPORT_FILENAME_PREFIX = "weights"
