"""
Logging setup and run bookkeeping.

Library modules only call ``logging.getLogger(__name__)``; handlers are
installed once by the entry point through :func:`setup_logging`.
"""
from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple


def setup_logging(level: str = "INFO", log_file: Optional[str] = None,
                  format_style: str = "default") -> None:
    """
    Configure root logging for a run.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ...).
        log_file: Optional path of a file receiving the same records.
        format_style: "default" for timestamped records, "minimal" for compact.
    """
    if format_style == "minimal":
        fmt = "%(levelname)s | %(message)s"
    else:
        fmt = "%(asctime)s | %(name)s | %(levelname)s | %(message)s"

    handlers: List[logging.Handler] = [logging.StreamHandler()]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, mode="w"))

    logging.basicConfig(
        level=getattr(logging, level.upper()),
        format=fmt,
        datefmt="%Y-%m-%d %H:%M:%S",
        handlers=handlers,
        force=True,
    )


@dataclass
class RunReport:
    """Counts of processed, skipped and failed units for the final summary."""

    images_done: int = 0
    cells_emitted: int = 0
    skipped_images: List[Tuple[str, str]] = field(default_factory=list)
    skipped_cells: Counter = field(default_factory=Counter)

    def skip_image(self, name: str, reason: str) -> None:
        self.skipped_images.append((name, reason))

    def skip_cell(self, status: str, reason: str) -> None:
        self.skipped_cells[f"{status}: {reason}"] += 1

    def log_summary(self, logger: logging.Logger) -> None:
        n_cells = sum(self.skipped_cells.values())
        logger.info(
            "Done: %d image(s), %d cell(s) measured, %d cell(s) skipped, "
            "%d image(s) skipped",
            self.images_done, self.cells_emitted, n_cells, len(self.skipped_images),
        )
        for reason, count in self.skipped_cells.most_common():
            logger.info("  skipped cells  %5d  %s", count, reason)
        for name, reason in self.skipped_images:
            logger.info("  skipped image  %s  (%s)", name, reason)
