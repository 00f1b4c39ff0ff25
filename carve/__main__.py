"""
Carve Module Entry Point
=========================

Allows running the Carve CLI via: python -m carve
"""

from carve.cli import main

if __name__ == "__main__":
    main()
