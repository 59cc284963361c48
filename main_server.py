#!/usr/bin/env python3
"""
Chat Relay Server - Main Entry Point

Usage:
    python main_server.py

Optional arguments:
    --host HOST           Bind address (default: 0.0.0.0)
    --port PORT           TCP port (default: 9001)
    --logs-dir DIR        Chat history log directory (default: logs)
    --idle-timeout SECS   Disconnect silent clients (default: never)
    --echo-addressed      Also show addressed messages to their sender
    --debug               Verbose logging
"""

from relay_server.main_server import main

if __name__ == "__main__":
    main()
