"""
Carve Analysis Engine
======================

Runs a complete function-recovery pass over one binary and packages the
outcome as an :class:`~carve.core.models.AnalysisResult`.

Pipeline:
    1. Read the file (size-checked against the configured limit) and hash it
    2. Open it: format detection, header decoding, region extraction
    3. Run each configured scanner in order, merging as it goes
    4. Identify the entry point and sort the merged function list

Open failures abort the run.  A scanner failure is logged, recorded in
:attr:`AnalysisResult.warnings`, and the remaining scanners still run.
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Optional, Sequence

from shared.config import CarveConfig
from shared.logger import CarveLogger

from carve.core.binary import Binary
from carve.core.errors import ScannerError
from carve.core.models import AnalysisResult, BinaryInfo, FrameKind


class CarveEngine:
    """Orchestrates open, scan, merge and finalize for one binary.

    Usage::

        engine = CarveEngine()
        result = engine.analyze("/path/to/binary")
        print(f"{result.function_count} functions")
    """

    def __init__(
        self,
        config: CarveConfig | None = None,
        logger: CarveLogger | None = None,
    ) -> None:
        """Initialise the engine.

        Args:
            config: Carve configuration.  Defaults are used if not provided.
            logger: Logger instance.  A quiet one is created if not provided.
        """
        self._config: CarveConfig = config or CarveConfig()
        self._logger: CarveLogger = logger or CarveLogger.quiet("engine")

    @property
    def config(self) -> CarveConfig:
        return self._config

    # ------------------------------------------------------------------ #
    #  Entry points
    # ------------------------------------------------------------------ #

    def analyze(
        self,
        file_path: str | Path,
        sources: Optional[Sequence[FrameKind | str]] = None,
    ) -> AnalysisResult:
        """Analyse the file at *file_path*.

        Args:
            file_path: Binary to analyse.
            sources: Frame kinds to scan, in merge order.  Defaults to
                ``config.analysis.sources``.

        Raises:
            FileNotFoundError: *file_path* does not exist.
            ValueError: The file exceeds ``max_file_size`` or a source
                name is unknown.
            ContainerError: The binary could not be opened.
        """
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")

        file_size = path.stat().st_size
        max_size = self._config.analysis.max_file_size
        if file_size > max_size:
            raise ValueError(
                f"File too large: {file_size:,} bytes (max: {max_size:,} bytes)"
            )

        self._logger.info(f"Starting analysis of {path}")
        data = path.read_bytes()
        return self.analyze_data(data, path=str(path.resolve()), sources=sources)

    def analyze_data(
        self,
        data: bytes,
        path: str = "<memory>",
        sources: Optional[Sequence[FrameKind | str]] = None,
    ) -> AnalysisResult:
        """Analyse an in-memory image.  See :meth:`analyze`."""
        kinds = self._resolve_sources(sources)

        with self._logger.timed(f"analysis of {path}"):
            binary = Binary.from_bytes(data, path=path, logger=self._logger)
            header = binary.header

            result = AnalysisResult(
                info=BinaryInfo(
                    path=path,
                    size=len(data),
                    format=binary.format,
                    arch=header.arch,
                    machine=header.machine,
                    bits=64 if header.is_64bit else 32,
                    entry_point=binary.entry_point,
                    is_executable=header.is_executable,
                    is_stripped=binary.is_stripped,
                    sha256=hashlib.sha256(data).hexdigest(),
                ),
                regions=[region.to_info() for region in binary.regions],
            )

            for kind in kinds:
                try:
                    result.source_counts[kind.value] = binary.scan(kind)
                except ScannerError as exc:
                    message = f"{kind.value}: {exc}"
                    self._logger.warning(message)
                    result.warnings.append(message)

            result.functions = binary.finalize()

        self._logger.info(
            f"Recovered {result.function_count} function(s) from {path}"
        )
        return result

    def _resolve_sources(
        self,
        sources: Optional[Sequence[FrameKind | str]],
    ) -> list[FrameKind]:
        names = sources if sources is not None else self._config.analysis.sources
        return [
            name if isinstance(name, FrameKind) else FrameKind.parse(name)
            for name in names
        ]
