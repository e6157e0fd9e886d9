import os
import tempfile

# Scripts resolve their log path at import time.
os.environ.setdefault("SFB_LOG_DIR", tempfile.mkdtemp(prefix="sfb_logs_"))
