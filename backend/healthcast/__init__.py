"""Demand forecasting service for municipal health-office subjects."""

__version__ = "1.0.0"
