"""Run the stashbox CLI from a source checkout: ``python main.py <command>``."""

from __future__ import annotations

import sys
from pathlib import Path

# make `import stashbox` work without installing the package
SRC = Path(__file__).resolve().parent / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from stashbox.cli.app import main


if __name__ == "__main__":
    sys.exit(main())
