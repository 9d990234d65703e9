import os
import sys
import tempfile
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

# Keep the app's data directory out of the working tree.
os.environ.setdefault("SHELF_SCANNER_DATA_DIR", tempfile.mkdtemp(prefix="shelf-scanner-"))
