"""
CSV processor for parsing the Top and Bottom Gocator measurement feeds.
"""

import csv
import logging
from io import StringIO
from typing import List, Optional, Tuple
from datetime import datetime
from pydantic import BaseModel, field_validator

logger = logging.getLogger(__name__)

DATE_FORMAT = '%d-%b-%Y'
TIME_FORMAT = '%H:%M:%S.%f'


class FeedLayout(BaseModel):
    """Column positions for one sensor feed."""

    name: str
    date_column: int
    time_column: int
    shift_column: Optional[int] = None
    pass_column: int

    @property
    def label_columns(self) -> List[int]:
        columns = [self.date_column, self.time_column]
        if self.shift_column is not None:
            columns.append(self.shift_column)
        return columns

    @property
    def min_columns(self) -> int:
        return max(self.label_columns + [self.pass_column]) + 1

    def value_columns(self, width: int) -> List[int]:
        """Indexes of the numeric measurement columns for a row of `width` columns."""
        labels = set(self.label_columns)
        return [i for i in range(width) if i not in labels]


# Shift,Date,Timestamp,BoardCount,SquarenessDifference,OverallPass
TOP_LAYOUT = FeedLayout(name='top', shift_column=0, date_column=1, time_column=2, pass_column=5)

# Date,Timestamp, 13 measurements, Overall_Result
BOTTOM_LAYOUT = FeedLayout(name='bottom', date_column=0, time_column=1, pass_column=15)


class MeasurementRow(BaseModel):
    """One timestamped record from a sensor feed."""

    timestamp: datetime
    date_text: str
    time_text: str
    shift: Optional[str] = None
    values: List[float]
    pass_value: float

    @field_validator('date_text', 'time_text')
    @classmethod
    def validate_label(cls, v):
        if not v or not v.strip():
            raise ValueError('Date and timestamp are required')
        return v.strip()


class FeedData(BaseModel):
    """Parsed feed: measurement headers, sorted rows and per-row errors."""

    layout_name: str
    date_header: str
    time_header: str
    shift_header: Optional[str] = None
    value_headers: List[str]
    rows: List[MeasurementRow]
    errors: List[str] = []


class CSVProcessor:
    """Processes and validates Gocator feed CSV data."""

    def __init__(self, layout: FeedLayout):
        self.layout = layout
        self.validation_errors = []

    def parse_csv_content(self, csv_content: bytes, filename: str = None) -> FeedData:
        """Parse CSV content into rows sorted by timestamp.

        Rows with the wrong column count, an unparseable number or an
        unparseable date/timestamp are skipped and reported in ``errors``.
        A missing or too narrow header raises ``ValueError``.
        """
        self.validation_errors = []

        try:
            csv_text = csv_content.decode('utf-8-sig')
            reader = csv.reader(StringIO(csv_text))

            header = next(reader, None)
            if not header:
                raise ValueError("CSV has no headers")
            header = [column.strip() for column in header]

            if len(header) < self.layout.min_columns:
                raise ValueError(
                    f"{self.layout.name} feed needs at least {self.layout.min_columns} columns, "
                    f"found {len(header)}"
                )

            value_columns = self.layout.value_columns(len(header))
            rows = []
            row_number = 0

            for values in reader:
                row_number += 1
                if not values or not any(v.strip() for v in values):
                    continue

                try:
                    rows.append(self._parse_row(values, len(header), value_columns))
                except ValueError as e:
                    error_msg = f"Row {row_number}: {str(e)}"
                    self.validation_errors.append(error_msg)
                    logger.warning(f"Validation error in {filename}: {error_msg}")

            if self.validation_errors:
                logger.warning(f"CSV {filename} has {len(self.validation_errors)} validation errors")

            # Python's sort is stable, rows sharing a timestamp keep file order
            rows.sort(key=lambda row: row.timestamp)

            logger.info(f"Parsed {len(rows)} valid {self.layout.name} rows from {filename}")

            return FeedData(
                layout_name=self.layout.name,
                date_header=header[self.layout.date_column],
                time_header=header[self.layout.time_column],
                shift_header=(
                    header[self.layout.shift_column]
                    if self.layout.shift_column is not None else None
                ),
                value_headers=[header[i] for i in value_columns],
                rows=rows,
                errors=list(self.validation_errors)
            )

        except Exception as e:
            logger.error(f"Failed to parse CSV {filename}: {e}")
            raise

    def _parse_row(self, values: List[str], width: int, value_columns: List[int]) -> MeasurementRow:
        """Parse and validate a single CSV row."""
        if len(values) != width:
            raise ValueError(f"expected {width} columns, found {len(values)}")

        date_text = values[self.layout.date_column].strip()
        time_text = values[self.layout.time_column].strip()
        timestamp = self._parse_timestamp(date_text, time_text)

        shift = None
        if self.layout.shift_column is not None:
            shift = values[self.layout.shift_column].strip()

        numbers = {i: self._parse_float(values[i], i) for i in value_columns}

        return MeasurementRow(
            timestamp=timestamp,
            date_text=date_text,
            time_text=time_text,
            shift=shift,
            values=[numbers[i] for i in value_columns],
            pass_value=numbers[self.layout.pass_column]
        )

    def _parse_float(self, value: str, column: int) -> float:
        try:
            return float(value.strip())
        except (ValueError, TypeError):
            raise ValueError(f"Invalid number in column {column + 1}: '{value}'")

    def _parse_timestamp(self, date_text: str, time_text: str) -> datetime:
        """Combine a dd-MMM-yyyy date and HH:MM:SS.fff time."""
        try:
            date_part = datetime.strptime(date_text, DATE_FORMAT)
            time_part = datetime.strptime(time_text, TIME_FORMAT)
        except ValueError:
            raise ValueError(
                f"Invalid date/timestamp: '{date_text} {time_text}' - "
                f"expected format 'dd-MMM-yyyy HH:MM:SS.fff'"
            )

        return datetime.combine(date_part.date(), time_part.time())

    def validate_file_structure(self, csv_content: bytes, filename: str) -> Tuple[bool, List[str]]:
        """Validate basic CSV file structure."""
        errors = []

        try:
            csv_text = csv_content.decode('utf-8-sig')
            reader = csv.reader(StringIO(csv_text))

            header = next(reader, None)
            if not header:
                errors.append("CSV has no headers")
                return False, errors

            if len(header) < self.layout.min_columns:
                errors.append(
                    f"Expected at least {self.layout.min_columns} columns, found {len(header)}"
                )

            if next(reader, None) is None:
                errors.append("CSV has no data rows")

            return len(errors) == 0, errors

        except UnicodeDecodeError:
            errors.append("CSV file is not valid UTF-8")
            return False, errors
        except csv.Error as e:
            errors.append(f"CSV parsing error: {str(e)}")
            return False, errors
