"""
AMV Gocator Shift Report Pipeline

Merges the Top and Bottom Gocator sensor CSV feeds into a single shift
report on a fixed weekly schedule and emails it, keeping a durable record
of every scheduled report so undelivered ones are retried.
"""

__version__ = "0.1.0"
