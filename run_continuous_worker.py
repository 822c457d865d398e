#!/usr/bin/env python3

"""
Continuous report worker that generates and emails the Gocator shift reports.
"""

import os
from dotenv import load_dotenv

load_dotenv()

from gocator_report.monitoring.logger_config import ReportLogger
from gocator_report.ingestion.worker import ReportWorker


def run_continuous_worker():
    """Run the continuous report worker."""
    ReportLogger.setup_logging(log_file=os.getenv('LOG_FILE', 'logs/report_worker.log'))

    try:
        worker = ReportWorker()
    except ValueError as e:
        print(f"❌ Configuration error: {e}")
        exit(1)

    worker.run_continuous()


if __name__ == "__main__":
    run_continuous_worker()
