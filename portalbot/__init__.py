"""Portalbot: keeps a captive-portal session alive by rotating stored credentials."""

__version__ = "0.1.0"
