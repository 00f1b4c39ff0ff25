"""
Carve Configuration Management
===============================

Centralized configuration for Carve using Python dataclasses and
TOML-based persistence.

A ``config.toml`` at the project root (or any file passed explicitly)
may contain two tables::

    [global]
    log_level = "DEBUG"
    log_file = "carve.log"

    [analysis]
    sources = [".eh_frame", ".symtab"]
    max_file_size = 104857600

References:
    - TOML v1.0.0 Specification. https://toml.io/en/v1.0.0
"""

from __future__ import annotations

import sys
from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Any

if sys.version_info >= (3, 11):
    import tomllib
else:
    import tomli as tomllib  # type: ignore[no-redef]


# ---------------------------------------------------------------------------
# Default configuration file path relative to the project root
# ---------------------------------------------------------------------------
_DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "config.toml"

# Unwind data first so FDE-derived sizes win ties inside the lowest tier;
# symbol tables outrank it regardless of order.
DEFAULT_SOURCES: tuple[str, ...] = (
    ".eh_frame",
    ".eh_frame_hdr",
    ".dynsym",
    ".symtab",
)


# ========================== Tool-Specific Config ===========================


@dataclass(frozen=False, slots=True)
class AnalysisConfig:
    """Configuration for the function-recovery pipeline.

    Attributes:
        max_file_size: Largest file (bytes) the engine will read.
        sources: Region names scanned by default, in merge order.
        hexdump_width: Bytes per line for ``carve dump``.
    """

    max_file_size: int = 104_857_600  # 100 MiB
    sources: list[str] = field(default_factory=lambda: list(DEFAULT_SOURCES))
    hexdump_width: int = 16


# =========================== Global Settings ===============================


@dataclass(frozen=False, slots=True)
class GlobalConfig:
    """Logging settings from the ``[global]`` table."""

    log_level: str = "INFO"
    log_file: str = ""
    log_json: bool = False
    debug: bool = False


# =========================== Master Config =================================


@dataclass(frozen=False, slots=True)
class CarveConfig:
    """Master configuration aggregating global and analysis settings.

    Usage:
        >>> config = CarveConfig.load()                  # from default path
        >>> config = CarveConfig.load("custom.toml")     # from custom path
        >>> config.analysis.sources[0]
        '.eh_frame'
    """

    global_settings: GlobalConfig = field(default_factory=GlobalConfig)
    analysis: AnalysisConfig = field(default_factory=AnalysisConfig)

    # ------------------------------------------------------------------ #
    #  TOML Loading
    # ------------------------------------------------------------------ #

    @classmethod
    def load(cls, path: str | Path | None = None) -> CarveConfig:
        """Load configuration from a TOML file.

        If *path* is ``None`` the loader looks for ``config.toml`` in the
        project root.  Missing keys fall back to dataclass defaults.

        Args:
            path: Filesystem path to a TOML configuration file.

        Returns:
            A fully-populated :class:`CarveConfig` instance.

        Raises:
            FileNotFoundError: If the specified path does not exist
                *and* was explicitly provided by the caller.
        """
        config_path = Path(path) if path is not None else _DEFAULT_CONFIG_PATH

        if not config_path.exists():
            if path is not None:
                raise FileNotFoundError(
                    f"Configuration file not found: {config_path}"
                )
            return cls()

        with open(config_path, "rb") as fh:
            raw: dict[str, Any] = tomllib.load(fh)

        return cls(
            global_settings=cls._build_section(GlobalConfig, raw.get("global", {})),
            analysis=cls._build_section(AnalysisConfig, raw.get("analysis", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Serialise the entire configuration tree to a plain dictionary."""
        return asdict(self)

    @staticmethod
    def _build_section(cls: type, data: dict[str, Any]) -> Any:
        """Instantiate a dataclass *cls* using only the keys it declares.

        Unknown keys in the TOML source are ignored so that
        forward-compatible config files do not break older code.
        """
        valid_keys = {f.name for f in cls.__dataclass_fields__.values()}  # type: ignore[attr-defined]
        filtered = {k: v for k, v in data.items() if k in valid_keys}
        return cls(**filtered)
