#!/usr/bin/env python3
"""
Newsleak - RSS/Atom News Ingestion
==================================

Main application entry point.

Usage:
    python main.py --help                    # Show all commands
    python main.py check-config              # Validate configuration
    python main.py init-db                   # Initialize database
    python main.py refresh                   # Run one ingestion pass
    python main.py schedule                  # Refresh periodically
"""

from newsleak.cli import cli


if __name__ == '__main__':
    cli()
