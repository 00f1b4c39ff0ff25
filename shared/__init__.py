"""
Carve Shared Module
===================

Configuration, logging and console helpers used by the Carve core and
its command-line front end.
"""

from shared.config import CarveConfig

__all__ = ["CarveConfig"]
