"""
Entry point for running dnsstress as a module.

Usage: python -m dnsstress [OPTIONS] DOMAINS...
"""

from .cli import main

if __name__ == "__main__":
    main()
