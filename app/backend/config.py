"""
Environment configuration for the prompt service.

Values are read once at import time from the process environment (a local
.env file is loaded first when present).
"""

import os

from dotenv import load_dotenv

load_dotenv()

# Supabase (service key: the backend reads prompt tables and writes analytics)
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "")

# Prompt resolution
LATEST_VERSION = "latest"
IELTS_EXAM_NAME = "IELTS"

# Usage analytics: optimistic-concurrency attempts before an update is dropped
USAGE_TRACKING_MAX_RETRIES = int(os.getenv("USAGE_TRACKING_MAX_RETRIES", "5"))
# Upper bound (seconds) of the randomized backoff between conflicting attempts
USAGE_TRACKING_MAX_WAIT = float(os.getenv("USAGE_TRACKING_MAX_WAIT", "0.5"))

# Feedback generation
FEEDBACK_TEMPERATURE = float(os.getenv("FEEDBACK_TEMPERATURE", "0.3"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
