#!/usr/bin/env python3
import os
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))

print(
    f"[deck] mode={os.environ.get('DECK_BROWSER_MODE', 'attach')} | "
    f"binary={os.environ.get('DECK_BROWSER_BINARY', 'auto')} | "
    f"port={os.environ.get('DECK_BROWSER_PORT', '9222')} | "
    f"profile={os.environ.get('DECK_POLICY_PROFILE', 'default')}",
    file=sys.stderr,
)

from deck_capture.main import main  # noqa: E402

if __name__ == "__main__":
    sys.exit(main())
