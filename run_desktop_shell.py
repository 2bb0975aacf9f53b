"""
Standalone entry point that *always* launches a native window.
Run via:  python run_desktop_shell.py [path/to/settings.json]
"""

import sys
from pathlib import Path

from desktop_shell.main import run_desktop

settings_file = Path(sys.argv[1]) if len(sys.argv) > 1 else None
sys.exit(run_desktop(settings_file))
