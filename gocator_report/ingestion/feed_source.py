"""
Feed source for locating the newest Gocator CSV export in a sensor folder.
"""

import os
import logging
from pathlib import Path
from typing import Optional
from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)


class FeedSource:
    """One sensor export folder (Top or Bottom)."""

    def __init__(self, name: str, folder: str, marker: str = None):
        self.name = name
        self.folder = Path(folder)
        self.marker = (marker or os.getenv('REPORT_FEED_MARKER', 'values')).lower()

    def latest_file(self) -> Optional[Path]:
        """Return the most recently modified *.csv whose name contains the marker."""
        if not self.folder.is_dir():
            logger.error(f"{self.name.title()} feed folder not found: {self.folder}")
            return None

        candidates = [
            path for path in self.folder.glob('*.csv')
            if path.is_file() and self.marker in path.name.lower()
        ]

        if not candidates:
            logger.warning(
                f"No CSV file containing '{self.marker}' found in {self.name} folder {self.folder}"
            )
            return None

        latest = max(candidates, key=lambda path: path.stat().st_mtime)
        logger.info(f"Using {self.name} feed file: {latest.name}")
        return latest

    def read_latest(self) -> Optional[tuple]:
        """Return ``(path, content)`` for the newest feed file, or None."""
        path = self.latest_file()
        if path is None:
            return None

        try:
            return path, path.read_bytes()
        except OSError as e:
            logger.error(f"Failed to read {self.name} feed file {path}: {e}")
            return None
