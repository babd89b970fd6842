import os
import sys
from pathlib import Path


BACKEND_PATH = Path(__file__).resolve().parents[1] / "backend"
if str(BACKEND_PATH) not in sys.path:
    sys.path.insert(0, str(BACKEND_PATH))

# Settings are read at import time; keep tests off real credentials
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("GROQ_API_KEY", "test-groq-key")
os.environ.setdefault("NARRATIVE_DELIVERY_MODE", "stream")
os.environ.setdefault("NARRATIVE_PROMPT_STYLE", "concise")
