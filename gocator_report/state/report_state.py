"""
File-backed report state with idempotent record updates.

Every operation reads the whole JSON file, changes it and writes it back, so
the file on disk is always the latest truth and a restarted process picks up
exactly where the previous one stopped.
"""

import os
import json
import shutil
import logging
import tempfile
from datetime import datetime
from typing import List, Optional, Dict
from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer, field_validator

load_dotenv()

logger = logging.getLogger(__name__)

SCHEDULED_TIME_FORMAT = '%Y-%m-%dT%H:%M:%S'


def normalize_scheduled_time(value: datetime) -> datetime:
    """Scheduled times are stored naive and to the second."""
    return value.replace(tzinfo=None, microsecond=0)


class ReportRecord(BaseModel):
    """One scheduled report and whether it has been delivered."""

    model_config = ConfigDict(populate_by_name=True)

    scheduled_time: datetime = Field(alias='scheduledTime')
    artifact_name: Optional[str] = Field(default=None, alias='artifactName')
    delivered: bool = False

    @field_validator('scheduled_time')
    @classmethod
    def validate_scheduled_time(cls, v):
        return normalize_scheduled_time(v)

    @field_serializer('scheduled_time')
    def serialize_scheduled_time(self, v: datetime) -> str:
        return v.strftime(SCHEDULED_TIME_FORMAT)

    def matches(self, scheduled_time: datetime, artifact_name: str) -> bool:
        return (
            self.scheduled_time == normalize_scheduled_time(scheduled_time)
            and self.artifact_name == artifact_name
        )


class ReportState(BaseModel):
    """Ordered collection of report records as persisted."""

    reports: List[ReportRecord] = []


class ReportStateStore:
    """JSON file store for report records."""

    def __init__(self, state_file: str = None):
        self.state_file = state_file or os.getenv('REPORT_STATE_FILE', 'data/report_state.json')

    def _ensure_state_directory(self):
        state_dir = os.path.dirname(self.state_file)
        if state_dir:
            os.makedirs(state_dir, exist_ok=True)

    def _read(self) -> ReportState:
        """Read the state file, creating it empty if missing. Raises on bad content."""
        if not os.path.exists(self.state_file):
            state = ReportState()
            self.save(state)
            return state

        with open(self.state_file, 'r', encoding='utf-8') as f:
            content = f.read()

        if not content.strip():
            return ReportState()

        return ReportState.model_validate_json(content)

    def load(self) -> ReportState:
        """Load the persisted state; any failure yields an empty state."""
        try:
            return self._read()
        except (OSError, ValidationError, ValueError) as e:
            logger.error(f"Error loading report state from {self.state_file}: {e}")
            return ReportState()

    def _load_for_update(self) -> Optional[ReportState]:
        """Load the state for a mutation.

        An unreadable file is copied aside and the mutation starts from an empty
        state. Returns None only when the damaged file could not be preserved.
        """
        try:
            return self._read()
        except (OSError, ValidationError, ValueError) as e:
            logger.error(f"Report state file {self.state_file} is unreadable, starting from empty: {e}")
            if self._preserve_damaged_file() is None:
                return None
            return ReportState()

    def _preserve_damaged_file(self) -> Optional[str]:
        backup_path = f"{self.state_file}.corrupt-{datetime.now():%Y%m%d%H%M%S}"
        try:
            shutil.copy2(self.state_file, backup_path)
        except OSError as e:
            logger.error(f"Could not copy damaged state file to {backup_path}, leaving it in place: {e}")
            return None

        logger.warning(f"Damaged report state file copied to {backup_path}")
        return backup_path

    def save(self, state: ReportState) -> bool:
        """Rewrite the whole state file through a temp file and an atomic replace."""
        tmp_path = None
        try:
            self._ensure_state_directory()
            payload = json.dumps(state.model_dump(by_alias=True), indent=2)

            fd, tmp_path = tempfile.mkstemp(
                dir=os.path.dirname(self.state_file) or '.',
                prefix='.report_state_',
                suffix='.tmp'
            )
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())

            os.replace(tmp_path, self.state_file)
            return True

        except OSError as e:
            logger.error(f"Error saving report state to {self.state_file}: {e}")
            if tmp_path and os.path.exists(tmp_path):
                try:
                    os.remove(tmp_path)
                except OSError as cleanup_error:
                    logger.error(f"Failed to remove temp state file {tmp_path}: {cleanup_error}")
            return False

    def pending_records(self, as_of: datetime) -> List[ReportRecord]:
        """Undelivered records scheduled at or before ``as_of``, in store order."""
        as_of = normalize_scheduled_time(as_of)
        state = self.load()
        return [
            record for record in state.reports
            if not record.delivered and record.scheduled_time <= as_of
        ]

    def ensure_record(self, scheduled_time: datetime, artifact_name: str) -> bool:
        """Add an undelivered record unless the (time, artifact) pair exists.

        Returns True when a new record was written.
        """
        state = self._load_for_update()
        if state is None:
            return False

        if any(record.matches(scheduled_time, artifact_name) for record in state.reports):
            return False

        state.reports.append(ReportRecord(
            scheduled_time=scheduled_time,
            artifact_name=artifact_name,
            delivered=False
        ))

        if self.save(state):
            logger.info(f"Recorded report {artifact_name} for {scheduled_time:%Y-%m-%d %H:%M:%S}")
            return True
        return False

    def mark_delivered(self, artifact_name: str, scheduled_time: datetime, success: bool) -> bool:
        """Set the delivered flag of the matching record.

        Unknown records are left alone and a delivered record stays delivered.
        Returns True when the record was written.
        """
        state = self._load_for_update()
        if state is None:
            return False

        record = next(
            (r for r in state.reports if r.matches(scheduled_time, artifact_name)),
            None
        )
        if record is None:
            logger.warning(
                f"No report record for {artifact_name} at {scheduled_time:%Y-%m-%d %H:%M:%S}"
            )
            return False

        if record.delivered and not success:
            # delivered is terminal, a later failed resend must not re-queue it
            logger.info(f"Report {artifact_name} already delivered, keeping delivered flag")
            return False

        record.delivered = success
        if self.save(state):
            logger.info(f"Report {artifact_name} delivered={success}")
            return True
        return False

    def summary(self) -> Dict[str, int]:
        """Record counts for dashboards and health checks."""
        state = self.load()
        delivered = sum(1 for record in state.reports if record.delivered)
        return {
            'total': len(state.reports),
            'delivered': delivered,
            'pending': len(state.reports) - delivered,
        }

    def health_check(self) -> bool:
        """Check the state file can be read and written, without repairing it."""
        try:
            state = self._read()
        except (OSError, ValidationError, ValueError) as e:
            logger.error(f"Report state health check failed for {self.state_file}: {e}")
            return False
        return self.save(state)
