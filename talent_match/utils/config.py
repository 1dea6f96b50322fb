"""
Runtime configuration for the Talent Match API, read from the environment (.env supported)
"""
import os
from dotenv import load_dotenv

load_dotenv()

# Database
MONGO_DETAILS = os.getenv("MONGO_DETAILS", "mongodb://localhost:27017")
DB_NAME = os.getenv("DB_NAME", "talent_match_db")

# Generative AI (Gemini generateContent)
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
GEMINI_BASE_URL = os.getenv("GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", "120"))

# Identity provider
AUTH_URL = os.getenv("AUTH_URL")
AUTH_API_KEY = os.getenv("AUTH_API_KEY")

PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "http://localhost:8000").rstrip("/")

# Match flow tuning
MATCH_GROUP_SIZE = int(os.getenv("MATCH_GROUP_SIZE", "5"))
MATCH_PARALLEL_GROUPS = int(os.getenv("MATCH_PARALLEL_GROUPS", "3"))
MATCH_MAX_ATTEMPTS = int(os.getenv("MATCH_MAX_ATTEMPTS", "3"))
MATCH_SOURCE_LIMIT = int(os.getenv("MATCH_SOURCE_LIMIT", "100"))
SNIPPET_CHARS = int(os.getenv("SNIPPET_CHARS", "1000"))
RETRY_BASE_DELAY_MS = int(os.getenv("RETRY_BASE_DELAY_MS", "1000"))
RETRY_MAX_DELAY_MS = int(os.getenv("RETRY_MAX_DELAY_MS", "30000"))

# Extraction flow tuning
EXTRACT_MAX_ATTEMPTS = int(os.getenv("EXTRACT_MAX_ATTEMPTS", "4"))
MAX_UPLOAD_MB = float(os.getenv("MAX_UPLOAD_MB", "20"))
EXTRACTION_MODE = os.getenv("EXTRACTION_MODE", "structured").lower()  # structured | ocr
