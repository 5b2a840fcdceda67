"""
logwatch - event-driven log observation and correlation.

This package contains:
- monitoring: stream tailing, pattern parsing, correlation and routing
- shared: Shared utilities and configuration
"""

__version__ = "0.1.0"
