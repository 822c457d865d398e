"""
Report worker that ties the schedule, the feeds, the state file and email together.
"""

import os
import uuid
import logging
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from gocator_report.ingestion.feed_source import FeedSource
from gocator_report.ingestion.csv_processor import CSVProcessor, FeedData, TOP_LAYOUT, BOTTOM_LAYOUT
from gocator_report.ingestion.stream_merger import StreamMerger
from gocator_report.ingestion.report_writer import ReportWriter, ReportLabel
from gocator_report.scheduling.scheduler import Scheduler
from gocator_report.state.report_state import ReportStateStore
from gocator_report.tools.email_sender import EmailSender, parse_recipients
from gocator_report.monitoring.logger_config import OperationLogger
from gocator_report.monitoring.health import HealthChecker

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_SUBJECT = "AMV Gocator Report {date} Shift {shift}"
BODY_TEMPLATE = "Please find attached the Gocator Report for {date} corresponding to Shift {shift}."


class ReportWorker:
    """Generates, records and delivers the shift reports."""

    def __init__(
        self,
        state_store: ReportStateStore = None,
        email_sender: EmailSender = None,
        scheduler: Scheduler = None,
        top_source: FeedSource = None,
        bottom_source: FeedSource = None,
        report_writer: ReportWriter = None,
        merger: StreamMerger = None,
        recipients: List[str] = None,
        subject_template: str = None
    ):
        self.state_store = state_store or ReportStateStore()
        self.email_sender = email_sender or EmailSender()
        self.scheduler = scheduler or Scheduler()
        self.top_source = top_source or FeedSource(
            'top', os.getenv('REPORT_TOP_FOLDER', 'data/feeds/top')
        )
        self.bottom_source = bottom_source or FeedSource(
            'bottom', os.getenv('REPORT_BOTTOM_FOLDER', 'data/feeds/bottom')
        )
        self.report_writer = report_writer or ReportWriter()
        self.merger = merger or StreamMerger(
            timedelta(seconds=float(os.getenv('REPORT_MATCH_WINDOW_SECONDS', '1.5')))
        )
        self.recipients = (
            recipients if recipients is not None
            else parse_recipients(os.getenv('REPORT_RECIPIENTS'))
        )
        self.subject_template = subject_template or os.getenv('REPORT_SUBJECT', DEFAULT_SUBJECT)

        logger.info("Report worker initialized")

    def on_safety_tick(self, now: datetime = None) -> int:
        """Retry every undelivered report that is due. Returns how many were delivered."""
        now = now or self.scheduler.clock()
        delivered = 0

        try:
            pending = self.state_store.pending_records(now)
            if not pending:
                return 0

            with OperationLogger(
                "safety_tick",
                correlation_id=str(uuid.uuid4()),
                pending=len(pending)
            ) as operation:
                for record in pending:
                    try:
                        if self._resend(operation, record.artifact_name, record.scheduled_time):
                            delivered += 1
                    except Exception as e:
                        operation.error(
                            f"Failed to resend report: {e}",
                            artifact=record.artifact_name,
                            scheduled_time=record.scheduled_time.isoformat()
                        )
                        continue

                operation.record(delivered=delivered, still_pending=len(pending) - delivered)

        except Exception as e:
            logger.error(f"Safety check failed: {e}")

        return delivered

    def _resend(self, operation: OperationLogger, artifact_name: Optional[str], scheduled_time: datetime) -> bool:
        context = {'artifact': artifact_name, 'scheduled_time': scheduled_time.isoformat()}

        if not artifact_name:
            operation.warning("Pending record has no report file name", **context)
            return False

        report_path = self.report_writer.artifact_path(artifact_name)
        if not report_path.is_file():
            operation.error(f"Report file not found for pending record: {report_path}", **context)
            return False

        label = self.report_writer.read_label(artifact_name)

        if not self._deliver(label, report_path):
            operation.warning("Resend failed, will retry on next check", **context)
            return False

        recorded = self.state_store.mark_delivered(artifact_name, scheduled_time, True)
        operation.info("Report resent", delivered=True, recorded=recorded, **context)
        return True

    def on_slot_fire(self, scheduled_time: datetime) -> Optional[Path]:
        """Generate, record and deliver the report for one scheduled slot.

        Returns the report path, or None when nothing was generated.
        """
        correlation_id = str(uuid.uuid4())

        try:
            with OperationLogger(
                "slot_fire",
                correlation_id=correlation_id,
                scheduled_time=scheduled_time.isoformat()
            ) as operation:
                report_path = self.generate_report()
                if report_path is None:
                    operation.record(generated=False)
                    return None

                operation.bind(artifact=report_path.name)
                label = self.report_writer.read_label(report_path.name)
                tracked = self._record(scheduled_time, report_path.name)

                success = self._deliver(label, report_path)
                self.state_store.mark_delivered(report_path.name, scheduled_time, success)
                operation.record(generated=True, delivered=success, recorded=tracked)

                if success:
                    operation.info("Report delivered", shift=label.shift, date=label.date)
                elif tracked:
                    operation.warning("Delivery failed, left for safety check")
                else:
                    operation.error("Delivery failed and the report is not in the state file, it will not be retried")

                return report_path

        except Exception as e:
            logger.error(f"Error generating report for {scheduled_time}: {e}")
            return None

    def _record(self, scheduled_time: datetime, artifact_name: str) -> bool:
        """Ensure a record exists for the slot. Returns whether one is on file."""
        if self.state_store.ensure_record(scheduled_time, artifact_name):
            return True
        return any(
            record.matches(scheduled_time, artifact_name)
            for record in self.state_store.load().reports
        )

    def generate_report(self) -> Optional[Path]:
        """Merge the newest Top and Bottom feeds into a report file."""
        top = self._load_feed(self.top_source, CSVProcessor(TOP_LAYOUT))
        if top is None:
            return None

        bottom = self._load_feed(self.bottom_source, CSVProcessor(BOTTOM_LAYOUT))
        if bottom is None:
            return None

        merged = self.merger.merge(top.rows, bottom.rows)
        if not merged:
            logger.warning("No Top and Bottom rows matched, report skipped")
            return None

        return self.report_writer.write_report(merged, top, bottom)

    def _load_feed(self, source: FeedSource, processor: CSVProcessor) -> Optional[FeedData]:
        latest = source.read_latest()
        if latest is None:
            return None

        path, content = latest

        is_valid, errors = processor.validate_file_structure(content, path.name)
        if not is_valid:
            logger.error(f"File validation failed for {path.name}: {'; '.join(errors)}")
            return None

        feed = processor.parse_csv_content(content, path.name)
        if not feed.rows:
            logger.error(f"No valid rows in {source.name} feed {path.name}")
            return None

        return feed

    def _deliver(self, label: ReportLabel, report_path: Path) -> bool:
        subject = self.subject_template.format(date=label.date, shift=label.shift)
        body = BODY_TEMPLATE.format(date=label.date, shift=label.shift)

        return self.email_sender.deliver(self.recipients, subject, body, str(report_path))

    def run_once(self) -> Optional[Path]:
        """Generate and deliver a report now, outside the schedule."""
        scheduled_time = self.scheduler.clock().replace(microsecond=0)
        logger.info(f"Running manual report for {scheduled_time}")
        return self.on_slot_fire(scheduled_time)

    def run_continuous(self) -> None:
        """Recover undelivered reports, then follow the schedule forever."""
        logger.info(f"Starting report worker (poll interval: {self.scheduler.poll_interval}s)")

        try:
            self.on_safety_tick()
            self.scheduler.run_forever(self.on_slot_fire, self.on_safety_tick)

        except KeyboardInterrupt:
            logger.info("Report worker stopped by user")

    def health_check(self) -> bool:
        """Perform health check of all components."""
        result = HealthChecker(self).comprehensive_health_check()
        healthy = result['overall_status'] == 'healthy'

        logger.info(f"Health check - Overall: {healthy}")
        return healthy


def main():
    """Main entry point for the report worker."""
    import argparse
    from gocator_report.monitoring.logger_config import ReportLogger

    parser = argparse.ArgumentParser(description='Run the Gocator report worker')
    parser.add_argument('--once', action='store_true', help='Generate and send a report now, then exit')
    parser.add_argument('--safety-check', action='store_true', help='Resend undelivered reports, then exit')
    parser.add_argument('--health-check', action='store_true', help='Perform health check')

    args = parser.parse_args()

    ReportLogger.setup_logging()

    try:
        worker = ReportWorker()
    except ValueError as e:
        print(f"❌ Configuration error: {e}")
        exit(1)

    if args.health_check:
        healthy = worker.health_check()
        exit(0 if healthy else 1)
    elif args.safety_check:
        delivered = worker.on_safety_tick()
        print(f"✅ Safety check completed, {delivered} reports delivered")
    elif args.once:
        report_path = worker.run_once()
        if report_path is None:
            print("❌ No report generated")
            exit(1)
        print(f"✅ Report generated: {report_path}")
    else:
        worker.run_continuous()


if __name__ == "__main__":
    main()
