import os

# --- Config ---
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(20 * 1024 * 1024)))  # 20MB default
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
