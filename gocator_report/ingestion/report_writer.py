"""
Writes merged rows to the shift report CSV and reads report labels back.
"""

import csv
import os
import re
import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

from pydantic import BaseModel
from dotenv import load_dotenv

from gocator_report.ingestion.csv_processor import FeedData, DATE_FORMAT, TIME_FORMAT
from gocator_report.ingestion.stream_merger import MergedRow

load_dotenv()

logger = logging.getLogger(__name__)

ASSURED_RESULT_HEADER = 'Assured_Result'

# Shift codes end up in the report file name
SHIFT_PATTERN = re.compile(r'^[\w-]+$')


class ReportLabel(BaseModel):
    """Shift and date a report covers, taken from its first data row."""

    date: str
    shift: str
    started_at: Optional[datetime] = None


def artifact_name_for(label: ReportLabel) -> str:
    return f"Gocator_Report_Shift_{label.shift}_{label.date}.csv"


def label_from_row(row: Sequence[str]) -> ReportLabel:
    """Build the label from a report row laid out as Date, Timestamp, Shift, ..."""
    if len(row) < 3:
        raise ValueError("Report row is missing date, timestamp or shift")

    date_text, time_text, shift = row[0].strip(), row[1].strip(), row[2].strip()
    if not SHIFT_PATTERN.match(shift):
        raise ValueError(f"Invalid shift in report row: '{shift}'")

    try:
        started_at = datetime.combine(
            datetime.strptime(date_text, DATE_FORMAT).date(),
            datetime.strptime(time_text, TIME_FORMAT).time()
        )
    except ValueError:
        raise ValueError(f"Invalid date or timestamp in report row: '{date_text} {time_text}'")

    return ReportLabel(date=date_text, shift=shift, started_at=started_at)


class ReportWriter:
    """Writes shift report artifacts into the combined output folder."""

    def __init__(self, output_folder: str = None):
        self.output_folder = Path(
            output_folder or os.getenv('REPORT_OUTPUT_FOLDER', 'data/combined')
        )

    def build_header(self, top: FeedData, bottom: FeedData) -> List[str]:
        return (
            [top.date_header, top.time_header, top.shift_header or 'Shift']
            + top.value_headers
            + bottom.value_headers
            + [ASSURED_RESULT_HEADER]
        )

    def write_report(
        self,
        merged: Sequence[MergedRow],
        top: FeedData,
        bottom: FeedData
    ) -> Path:
        """Write the merged rows and return the artifact path.

        The file is named from the shift and date of the first merged row, so
        re-running the same shift replaces its report.
        """
        if not merged:
            raise ValueError("Cannot write a report without merged rows")

        rows = [row.to_csv_row() for row in merged]
        label = label_from_row(rows[0])

        self.output_folder.mkdir(parents=True, exist_ok=True)
        report_path = self.output_folder / artifact_name_for(label)

        with open(report_path, 'w', newline='', encoding='utf-8') as csvfile:
            writer = csv.writer(csvfile)
            writer.writerow(self.build_header(top, bottom))
            writer.writerows(rows)

        logger.info(f"Combined CSV saved to: {report_path} ({len(rows)} rows)")
        return report_path

    def artifact_path(self, artifact_name: str) -> Path:
        if not artifact_name or Path(artifact_name).name != artifact_name or '\\' in artifact_name:
            raise ValueError(f"Report name must be a plain file name: '{artifact_name}'")
        return self.output_folder / artifact_name

    def read_label(self, artifact_name: str) -> ReportLabel:
        """Read shift/date from the first data row of an existing report."""
        report_path = self.artifact_path(artifact_name)

        with open(report_path, newline='', encoding='utf-8') as csvfile:
            reader = csv.reader(csvfile)
            next(reader, None)
            first_row = next(reader, None)

        if not first_row:
            raise ValueError(f"Report {artifact_name} has no data rows")

        return label_from_row(first_row)
