"""Development settings for the Roomstay service.

This module extends the base settings with development specific
configuration, such as enabling debug, allowing all hosts and rendering
log lines for humans instead of as JSON. Do not use these settings in
production!
"""

import structlog

from .base import *  # noqa: F401,F403
from .base import LOGGING

# Enable debug mode for development
DEBUG = True

# Allow all hosts in development
ALLOWED_HOSTS = ['*']

# Human readable log lines in the terminal
LOGGING['formatters']['json']['processor'] = structlog.dev.ConsoleRenderer()
