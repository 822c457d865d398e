"""
Health checks for the report pipeline components.
"""

import os
import logging
from pathlib import Path
from typing import Dict, Any
from datetime import datetime
from dotenv import load_dotenv

from gocator_report.ingestion.feed_source import FeedSource
from gocator_report.state.report_state import ReportStateStore
from gocator_report.tools.email_sender import parse_recipients

load_dotenv()

logger = logging.getLogger(__name__)


class HealthChecker:
    """Provides health checks for system components.

    ``components`` is any object exposing ``top_source``, ``bottom_source``,
    ``report_writer``, ``state_store`` and ``recipients`` (normally the
    ReportWorker). Without it the checks are built from the environment.
    """

    def __init__(self, components=None):
        if components is not None:
            self.top_source = components.top_source
            self.bottom_source = components.bottom_source
            self.output_folder = Path(components.report_writer.output_folder)
            self.state_store = components.state_store
            self.recipients = list(components.recipients)
        else:
            self.top_source = FeedSource('top', os.getenv('REPORT_TOP_FOLDER', 'data/feeds/top'))
            self.bottom_source = FeedSource('bottom', os.getenv('REPORT_BOTTOM_FOLDER', 'data/feeds/bottom'))
            self.output_folder = Path(os.getenv('REPORT_OUTPUT_FOLDER', 'data/combined'))
            self.state_store = ReportStateStore()
            self.recipients = parse_recipients(os.getenv('REPORT_RECIPIENTS'))

    def _result(self, healthy: bool, start_time: datetime, **details) -> Dict[str, Any]:
        return {
            'status': 'healthy' if healthy else 'unhealthy',
            'response_time_ms': int((datetime.now() - start_time).total_seconds() * 1000),
            'timestamp': datetime.now().isoformat(),
            **details
        }

    def check_feed_health(self, source: FeedSource) -> Dict[str, Any]:
        """Check a feed folder exists and holds a usable export."""
        start_time = datetime.now()

        if not source.folder.is_dir():
            return self._result(False, start_time, error=f"Folder not found: {source.folder}")

        latest = source.latest_file()
        if latest is None:
            return self._result(False, start_time, folder=str(source.folder),
                                error=f"No CSV containing '{source.marker}'")

        return self._result(
            True, start_time,
            folder=str(source.folder),
            latest_file=latest.name,
            modified_at=datetime.fromtimestamp(latest.stat().st_mtime).isoformat()
        )

    def check_output_health(self) -> Dict[str, Any]:
        """Check the report folder can be created and written."""
        start_time = datetime.now()

        try:
            self.output_folder.mkdir(parents=True, exist_ok=True)
            writable = os.access(self.output_folder, os.W_OK)
            if not writable:
                return self._result(False, start_time, error=f"Not writable: {self.output_folder}")
            return self._result(True, start_time, folder=str(self.output_folder))

        except OSError as e:
            logger.error(f"Output folder health check failed: {e}")
            return self._result(False, start_time, error=str(e))

    def check_state_health(self) -> Dict[str, Any]:
        """Check the report state file is readable and writable."""
        start_time = datetime.now()

        if not self.state_store.health_check():
            return self._result(False, start_time, error=f"State file unusable: {self.state_store.state_file}")

        return self._result(
            True, start_time,
            state_file=self.state_store.state_file,
            reports=self.state_store.summary()
        )

    def check_email_config(self) -> Dict[str, Any]:
        """Check SMTP credentials and recipients are configured."""
        start_time = datetime.now()
        missing = [
            var for var in ('SMTP_USERNAME', 'SMTP_PASSWORD')
            if not os.getenv(var)
        ]
        if not self.recipients:
            missing.append('REPORT_RECIPIENTS')

        if missing:
            return self._result(False, start_time, error=f"Missing configuration: {', '.join(missing)}")

        return self._result(
            True, start_time,
            server=os.getenv('SMTP_SERVER', 'smtp.gmail.com'),
            recipients=len(self.recipients)
        )

    def comprehensive_health_check(self) -> Dict[str, Any]:
        """Perform health check of all components."""
        start_time = datetime.now()

        components = {
            'top_feed': self.check_feed_health(self.top_source),
            'bottom_feed': self.check_feed_health(self.bottom_source),
            'output': self.check_output_health(),
            'state': self.check_state_health(),
            'email': self.check_email_config(),
        }

        overall_healthy = all(c['status'] == 'healthy' for c in components.values())

        return {
            'overall_status': 'healthy' if overall_healthy else 'unhealthy',
            'response_time_ms': int((datetime.now() - start_time).total_seconds() * 1000),
            'timestamp': datetime.now().isoformat(),
            'components': components
        }


def main():
    """CLI for health checks."""
    import argparse
    import json

    parser = argparse.ArgumentParser(description='Health check utility')
    parser.add_argument('--component', choices=['feeds', 'output', 'state', 'email', 'all'], default='all',
                        help='Component to check')
    parser.add_argument('--format', choices=['json', 'text'], default='text',
                        help='Output format')

    args = parser.parse_args()

    health_checker = HealthChecker()

    if args.component == 'feeds':
        result = {
            'components': {
                'top_feed': health_checker.check_feed_health(health_checker.top_source),
                'bottom_feed': health_checker.check_feed_health(health_checker.bottom_source),
            }
        }
    elif args.component == 'output':
        result = health_checker.check_output_health()
    elif args.component == 'state':
        result = health_checker.check_state_health()
    elif args.component == 'email':
        result = health_checker.check_email_config()
    else:
        result = health_checker.comprehensive_health_check()

    if args.format == 'json':
        print(json.dumps(result, indent=2, default=str))
    else:
        print(f"Health Status: {result.get('overall_status', result.get('status', 'unknown'))}")
        print(f"Timestamp: {result.get('timestamp', 'unknown')}")

        if 'error' in result:
            print(f"Error: {result['error']}")

        if 'components' in result:
            for component, health in result['components'].items():
                print(f"\n{component.replace('_', ' ').title()}:")
                print(f"  Status: {health.get('status', 'unknown')}")
                if 'error' in health:
                    print(f"  Error: {health['error']}")


if __name__ == "__main__":
    main()
