"""Shooting incident and COVID-19 time-series reports."""

__version__ = "0.1.0"
