"""Fetch Strava activities and compute de-duplicated mileage totals."""

__version__ = "0.1.0"
