"""
Carve Report Generator
=======================

Serialises an :class:`~carve.core.models.AnalysisResult` into a
structured JSON document for machine consumption and downstream tooling.
Addresses are written both as integers and as ``0x`` hex strings.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from carve import __version__
from carve.core.models import AnalysisResult


class CarveReportGenerator:
    """Build and write JSON reports.

    Usage::

        reporter = CarveReportGenerator()
        reporter.generate_json(result, "out/report.json")
    """

    def to_dict(self, result: AnalysisResult) -> dict[str, Any]:
        """Return the report document for *result*."""
        info = result.info
        return {
            "report_type": "carve_function_recovery",
            "version": __version__,
            "generated_at": datetime.now(timezone.utc).isoformat(),
            "binary_info": {
                "path": info.path,
                "size": info.size,
                "format": info.format.value,
                "arch": info.arch,
                "machine": info.machine,
                "bits": info.bits,
                "entry_point": info.entry_point,
                "entry_point_hex": f"0x{info.entry_point:x}",
                "is_executable": info.is_executable,
                "is_stripped": info.is_stripped,
                "sha256": info.sha256,
            },
            "regions": [
                {
                    "name": r.name,
                    "kind": r.kind.value,
                    "virtual_address": r.virtual_address,
                    "virtual_address_hex": f"0x{r.virtual_address:x}",
                    "size": r.size,
                    "file_offset": r.file_offset,
                    "flags": r.flags,
                }
                for r in result.regions
            ],
            "functions": {
                "total_count": result.function_count,
                "by_source_region": dict(result.source_counts),
                "items": [
                    {
                        "identifier": f.identifier,
                        "start": f.start,
                        "start_hex": f"0x{f.start:x}",
                        "end": f.end,
                        "end_hex": f"0x{f.end:x}",
                        "size": f.size,
                    }
                    for f in result.functions
                ],
            },
            "warnings": list(result.warnings),
        }

    def generate_json(self, result: AnalysisResult, output_path: str | Path) -> str:
        """Write the JSON report to *output_path*.

        Returns:
            The absolute path of the generated report.
        """
        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(result), f, indent=2, ensure_ascii=False, default=str)

        return str(path.resolve())
