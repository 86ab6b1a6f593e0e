#!/usr/bin/env python3
"""
HAR Replay - serve a recorded HAR session back to a live client

This is a convenience wrapper that calls the modular implementation.
The actual implementation is in src/harreplay/cli.py

Usage:
    python har-replay.py session.har --port 8080

For more options, run with --help
"""

import sys
from pathlib import Path

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent / "src"))

from harreplay.cli import main

if __name__ == '__main__':
    main()
