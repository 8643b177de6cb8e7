#!/usr/bin/env python3
"""
Convenience shim to run Cratedig from a source checkout.
Usage: python cratedig.py [--verify|--help|--config PATH] [ARTIST]
"""

from cratedig.cli import main


if __name__ == "__main__":
    main()
