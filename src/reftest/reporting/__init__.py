"""Reporting exports."""
from .base import ReportManager, Reporter
from .json_reporter import JsonReporter, report_to_dict
from .terminal import TerminalReporter

__all__ = [
    "ReportManager",
    "Reporter",
    "JsonReporter",
    "TerminalReporter",
    "report_to_dict",
]
