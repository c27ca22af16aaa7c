#!/usr/bin/env python3
"""
APIScout - API Endpoint Discovery

Main entry point for running the CLI from a source checkout.

Usage:
    python main.py scan example.com
    python main.py scan example.com --max-pages 200 --no-javascript --output result.json
"""

import sys
from pathlib import Path

# Allow running from a source checkout without installing
sys.path.insert(0, str(Path(__file__).parent / "src"))

from apiscout.cli import cli


if __name__ == '__main__':
    cli()
