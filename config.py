# config.py
import os
from dotenv import load_dotenv

load_dotenv()

# --- Simulation Configuration ---
ECONOMY_CONFIG_DIR = os.environ.get(
    "ECONOMY_CONFIG_DIR",
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "game_config")
)
AUTO_REGISTER_PLANETS = os.getenv("AUTO_REGISTER_PLANETS", "true").lower() in ("1", "true", "yes")

# --- Clock Driver Configuration ---
CLOCK_DRIVER_INTERVAL_SECONDS = float(os.getenv("CLOCK_DRIVER_INTERVAL_SECONDS", 1.0))

# --- Service Configuration ---
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
RELOAD_DEDUPE_SECONDS = int(os.getenv("RELOAD_DEDUPE_SECONDS", 60))
