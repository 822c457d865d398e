#!/usr/bin/env python3

"""
Text dashboard showing scheduled reports and their delivery state.
"""

import time
import os
from dotenv import load_dotenv

load_dotenv()

from gocator_report.state.report_state import ReportStateStore
from gocator_report.scheduling.scheduler import next_slot, plant_now


def clear_screen():
    """Clear the terminal screen."""
    os.system('cls' if os.name == 'nt' else 'clear')


def display_dashboard(store: ReportStateStore):
    """Display report delivery status."""
    clear_screen()

    now = plant_now()

    print("GOCATOR SHIFT REPORTS - DELIVERY DASHBOARD")
    print("=" * 60)
    print(f"Plant Time: {now:%Y-%m-%d %H:%M:%S}")
    print(f"Next Report: {next_slot(now):%A %Y-%m-%d %H:%M}")
    print()

    summary = store.summary()
    print("SUMMARY")
    print("-" * 40)
    print(f"   Reports Recorded: {summary['total']}")
    print(f"   Delivered: {summary['delivered']}")
    print(f"   Awaiting Delivery: {summary['pending']}")
    print()

    print("RECENT REPORTS")
    print("-" * 40)
    records = store.load().reports[-10:]
    if records:
        for record in reversed(records):
            status_icon = "[SENT]" if record.delivered else "[PENDING]"
            name = record.artifact_name or "-"
            print(f"   {status_icon:9} {record.scheduled_time:%Y-%m-%d %H:%M} | {name}")
    else:
        print("   No reports recorded yet")
    print()

    print("Press Ctrl+C to stop monitoring")


def run_dashboard():
    """Refresh the dashboard every 10 seconds."""
    store = ReportStateStore()

    try:
        while True:
            display_dashboard(store)
            time.sleep(10)
    except KeyboardInterrupt:
        print("\n\nDashboard stopped. Worker continues running.")


if __name__ == "__main__":
    run_dashboard()
