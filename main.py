#!/usr/bin/env python3
"""
Product Studio — Rich CLI entry point.

Usage:
    python main.py                                  # Show help
    python main.py product add P1 --image https://cdn/p1.jpg
    python main.py generate P1 -a front -a back     # Two anchored angles
    python main.py crop https://cdn/p1.jpg --x 0 --y 0 -W 800 -H 1000 --aspect 4:5
    python main.py bulk products.csv --resume
    python main.py ledger P1
    python main.py capabilities
"""

from cli.app import app

if __name__ == "__main__":
    app()
