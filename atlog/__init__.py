"""AT-Log Viewer - live system-log client for the AT WebServer service."""

__version__ = "0.3.0"
