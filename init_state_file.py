#!/usr/bin/env python3

"""
Initialize the report state file and output folders.
"""

import os
from dotenv import load_dotenv

# Load environment
load_dotenv()

from gocator_report.state.report_state import ReportStateStore

store = ReportStateStore()
summary = store.summary()

for folder in ('REPORT_TOP_FOLDER', 'REPORT_BOTTOM_FOLDER', 'REPORT_OUTPUT_FOLDER'):
    path = os.getenv(folder)
    if path:
        os.makedirs(path, exist_ok=True)

print(f"Report state ready at {store.state_file} ({summary['total']} records, {summary['pending']} pending)")
