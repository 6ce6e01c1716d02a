"""Shared constants for ghpm."""

import re

# Task ID validation
TASK_ID_PATTERN = re.compile(r'^[A-Za-z0-9][A-Za-z0-9_.-]{0,63}$')

# Issue numbers accepted by --issue
MIN_ISSUE_NUMBER = 1
MAX_ISSUE_NUMBER = 999999

# Free text limit for titles
MAX_TEXT_LENGTH = 1000

# Exit codes
EXIT_GENERAL = 1
EXIT_CONFIG = 2
EXIT_API = 4
EXIT_INVALID_INPUT = 5
EXIT_NOT_FOUND = 6
EXIT_CONFLICT = 7
EXIT_DEPENDENCY = 8
