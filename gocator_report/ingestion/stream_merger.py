"""
Nearest-timestamp windowed join of the Top and Bottom measurement streams.
"""

import logging
from datetime import timedelta
from typing import List, Sequence

from pydantic import BaseModel

from gocator_report.ingestion.csv_processor import MeasurementRow

logger = logging.getLogger(__name__)

DEFAULT_MATCH_WINDOW = timedelta(seconds=1.5)


class MergedRow(BaseModel):
    """A Top row paired with the Bottom row measured alongside it."""

    top: MeasurementRow
    bottom: MeasurementRow
    assured_result: float

    def to_csv_row(self) -> List[str]:
        return (
            [self.top.date_text, self.top.time_text, self.top.shift or '']
            + [format_number(v) for v in self.top.values]
            + [format_number(v) for v in self.bottom.values]
            + [format_number(self.assured_result)]
        )


def format_number(value: float) -> str:
    """Render a float the way the sensors export it (no trailing .0)."""
    if value.is_integer():
        return str(int(value))
    return repr(value)


class StreamMerger:
    """Pairs rows from two ascending streams whose timestamps fall within a window."""

    def __init__(self, window: timedelta = DEFAULT_MATCH_WINDOW):
        if window <= timedelta(0):
            raise ValueError("Match window must be positive")
        self.window = window

    def merge(
        self,
        rows_a: Sequence[MeasurementRow],
        rows_b: Sequence[MeasurementRow]
    ) -> List[MergedRow]:
        """Two-pointer sweep over both sorted sequences.

        A pair is emitted when the timestamps differ by strictly less than the
        window, and both pointers advance. Otherwise the earlier row has no
        counterpart and is dropped. Trailing rows of the longer sequence are
        dropped as well.
        """
        merged = []
        i = j = 0

        while i < len(rows_a) and j < len(rows_b):
            top, bottom = rows_a[i], rows_b[j]

            if abs(top.timestamp - bottom.timestamp) < self.window:
                merged.append(MergedRow(
                    top=top,
                    bottom=bottom,
                    assured_result=top.pass_value * bottom.pass_value
                ))
                i += 1
                j += 1
            elif top.timestamp < bottom.timestamp:
                i += 1
            else:
                j += 1

        logger.info(
            f"Merged {len(merged)} rows "
            f"(top: {len(rows_a) - len(merged)} dropped, bottom: {len(rows_b) - len(merged)} dropped)"
        )
        return merged


def merge(
    rows_a: Sequence[MeasurementRow],
    rows_b: Sequence[MeasurementRow],
    window: timedelta = DEFAULT_MATCH_WINDOW
) -> List[MergedRow]:
    """Merge two sorted streams with the given match window."""
    return StreamMerger(window).merge(rows_a, rows_b)
