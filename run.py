#!/usr/bin/env python3
"""
Convenience wrapper to run EchoBench.

Usage: python3 run.py ws://127.0.0.1:8080

Or use the module directly:
    python3 -m echobench ws://127.0.0.1:8080
"""

from echobench.__main__ import main

if __name__ == "__main__":
    main()
