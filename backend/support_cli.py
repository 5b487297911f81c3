#!/usr/bin/env python3
"""
Support Chat CLI

Usage:
    python support_cli.py [--api-url URL] [--stream-url WS_URL] [--no-speech]

Options:
    --api-url       Backend API base URL (default: API_URL from .env)
    --stream-url    WebSocket URL for continuous speech recognition
    --no-speech     Disable the microphone commands

Examples:
    python support_cli.py
    python support_cli.py --api-url http://localhost:8000/api --no-speech
"""

import sys
from pathlib import Path

# Add package root to path
sys.path.insert(0, str(Path(__file__).parent))

from supportchat.cli.app import main


if __name__ == "__main__":
    main()
