# config.py
import os

# Store (MongoDB)
MONGO_URI = os.getenv("MONGO_URL", "mongodb://localhost:27017/")
DB_NAME = os.getenv("STAMPEDE_DB_NAME", "stampede_guard")
STORE_COLLECTION = "kv_store"

# Storage keys shared by the user and admin views
USER_ID_KEY = "stampede_user_id"
USER_NAME_KEY = "stampede_user_name"
USER_STATE_KEY = "stampede_user_state"
ALERTS_KEY = "stampede_alerts"
ADMIN_SETTINGS_KEY = "stampede_admin_settings"
PANIC_THRESHOLD_KEY = "stampede_panic_threshold"
SHAKE_THRESHOLD_KEY = "stampede_shake_threshold"

# Thresholds
DEFAULT_PANIC_THRESHOLD = 85  # sound level, percent
DEFAULT_SHAKE_THRESHOLD = 15  # acceleration magnitude incl. gravity
PANIC_THRESHOLD_RANGE = (10, 100)
SHAKE_THRESHOLD_RANGE = (5, 30)
ELEVATED_SOUND_RATIO = 0.6

# Shake detection
SHAKE_DEBOUNCE_MS = 500
SHAKE_DECAY_MS = 5000
SHAKES_FOR_EMERGENCY = 3

# Sound sampling
FFT_SIZE = 256  # analyser window, gives FFT_SIZE // 2 byte bins
SOUND_BIN_REFERENCE = 128
SOUND_SAMPLE_INTERVAL_MS = 100

# Admin gate
ADMIN_PASSWORDS = ("Demon@Slayer", "1234567")

# Insights (Gemini with Google Maps grounding)
GEMINI_MODEL = "gemini-2.5-flash"
GEMINI_API_KEY_ENV_VARS = ("GEMINI_API_KEY", "API_KEY")

# API Configuration
API_HOST = "0.0.0.0"
API_PORT = 8000

# Logging (optional)
DEBUG_MODE = os.getenv("STAMPEDE_DEBUG", "0") == "1"
