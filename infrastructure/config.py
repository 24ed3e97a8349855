"""Runtime configuration, read from the environment (and an optional .env file)"""
import os

from dotenv import load_dotenv

load_dotenv()

# Auth
SECRET_KEY = os.getenv("SECRET_KEY", "change-me-in-production")
ALGORITHM = os.getenv("ALGORITHM", "HS256")
ACCESS_TOKEN_EXPIRE_MINUTES = int(os.getenv("ACCESS_TOKEN_EXPIRE_MINUTES", "30"))
ADMIN_USERNAME = os.getenv("ADMIN_USERNAME", "admin")
ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "admin123")

# Logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FORMAT = os.getenv("LOG_FORMAT", "%(asctime)s %(levelname)s %(name)s: %(message)s")

# Inventory
DEFAULT_CURRENCY = os.getenv("DEFAULT_CURRENCY", "IDR")
MAX_UNITS_PER_ROOM_TYPE = int(os.getenv("MAX_UNITS_PER_ROOM_TYPE", "99"))
COMMIT_RETRY_ATTEMPTS = int(os.getenv("COMMIT_RETRY_ATTEMPTS", "3"))
