import os
import tempfile

# Keep the module-level engine away from the working tree's ./data directory.
os.environ.setdefault("FINANCE_DATA_DIR", tempfile.mkdtemp(prefix="finance-tests-"))
