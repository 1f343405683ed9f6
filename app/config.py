# app/config.py
import os
from dotenv import load_dotenv

load_dotenv()

# ================= STORAGE =================
MONGO_URL = os.getenv("MONGO_URL", "mongodb://localhost:27017")
MONGO_DB_NAME = os.getenv("MONGO_DB_NAME", "group_discussion")
STORAGE_BACKEND = os.getenv("STORAGE_BACKEND", "mongo")  # mongo | memory

# ================= LLM =================
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_REPLY_MODEL = os.getenv("GROQ_REPLY_MODEL", "llama-3.1-8b-instant")
GROQ_FEEDBACK_MODEL = os.getenv("GROQ_FEEDBACK_MODEL", "llama-3.3-70b-versatile")

# ================= HTTP =================
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL")  # falls back to the request base url
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "http://localhost:3000").split(",") if o.strip()]

# ================= TURN TAKING =================
REPLY_DELAY_MIN_SECONDS = float(os.getenv("REPLY_DELAY_MIN_SECONDS", "1.0"))
REPLY_DELAY_MAX_SECONDS = float(os.getenv("REPLY_DELAY_MAX_SECONDS", "4.0"))
WATCHDOG_INTERVAL_SECONDS = float(os.getenv("WATCHDOG_INTERVAL_SECONDS", "20"))
IDLE_THRESHOLD_SECONDS = float(os.getenv("IDLE_THRESHOLD_SECONDS", "15"))
CONTEXT_WINDOW = int(os.getenv("CONTEXT_WINDOW", "10"))

# ================= AUDIO =================
WHISPER_MODEL = os.getenv("WHISPER_MODEL", "base")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
