"""Daysheet: turns a day of calendar, mail, chat and tooling activity into draft time-log entries."""

__version__ = "0.1.0"
