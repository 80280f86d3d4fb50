"""
Run a retiling job from a source checkout.

Usage:
    python scripts/run_retile.py data/synthetic/inputs data/synthetic/tiles 100
    python scripts/run_retile.py IN OUT 500 --config config/profiles/large_scale.yaml
"""

import sys
from pathlib import Path

# Add the src to the path to import modules
sys.path.append(str(Path(__file__).parent.parent / "src"))

from las_retile.cli import main


if __name__ == "__main__":
    sys.exit(main())
