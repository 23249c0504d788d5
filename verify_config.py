#!/usr/bin/env python3
"""Validate a configuration file (default: config.example.yaml) without touching the database."""

import sys
from pathlib import Path

from nudge_engine.config import validate_config_file


if __name__ == "__main__":
    path = Path(sys.argv[1]) if len(sys.argv) > 1 else Path("config.example.yaml")
    sys.exit(0 if validate_config_file(path) else 1)
