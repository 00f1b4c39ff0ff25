"""
Carve Output Module
====================

Console display and report generation for Carve analysis results.
"""

from carve.output.console import CarveConsoleOutput
from carve.output.report import CarveReportGenerator

__all__ = [
    "CarveConsoleOutput",
    "CarveReportGenerator",
]
