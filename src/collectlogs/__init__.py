"""
CollectLogs - module settings and log message convert rules

Stores the logging module's settings in the host configuration facility
and keeps a set of regular-expression convert rules in sync with a remote
server, applying them to messages before they are recorded or emailed.
"""

__version__ = "0.1.0"
