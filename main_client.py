#!/usr/bin/env python3
"""
Chat Relay Client - Main Entry Point

Usage:
    python main_client.py [--host HOST] [--port PORT] [--username NAME] [--gui | --cli]

Modes:
    --gui        Launch with PyQt6 GUI (default)
    --cli        Launch in the terminal
"""

from relay_client.main_client import main

if __name__ == "__main__":
    main()
