#!/usr/bin/env python3
"""pixtrain pixel classifier runner.

Usage:
    python scripts/run_pixel_classifier.py image.png annotations.geojson --config scripts/user_config.py
    python scripts/run_pixel_classifier.py image.png annotations.geojson --classifier knearest
    python scripts/run_pixel_classifier.py image.png annotations.geojson --resolution High -v

Note: User config in scripts/user_config.py, expert defaults in pixtrain.schemas.param
"""

import sys
from pathlib import Path

# Add src to path
project_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(project_root / "src"))

from pixtrain.cli.run_session import main


if __name__ == "__main__":
    main()
