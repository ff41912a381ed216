"""Entry point for ``python -m device_dna``."""

from __future__ import annotations

import sys

from device_dna import main

if __name__ == "__main__":
    sys.exit(main())
