from __future__ import annotations
import os

WORKERS = int(os.environ["CHECKRUN_WORKERS"]) if os.environ.get("CHECKRUN_WORKERS") else None
STEP_TIMEOUT = float(os.environ.get("CHECKRUN_STEP_TIMEOUT", "3600"))
WORK_DIR = os.environ.get("CHECKRUN_WORK_DIR") or None
MAX_OUTPUT_BYTES = int(os.environ.get("CHECKRUN_MAX_OUTPUT", str(1024 * 1024)))
