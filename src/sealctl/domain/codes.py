"""Process exit codes.

Values are stable: scripts wrapping ``sealctl`` branch on them.
"""

from __future__ import annotations

from enum import IntEnum


class ExitCode(IntEnum):
    """Exit status reported by the CLI for each failure class."""

    ERROR_GENERIC = 1
    COULD_NOT_READ_INPUT_FILE = 2
    COULD_NOT_WRITE_OUTPUT_FILE = 3
    ERROR_DUMPING_TREE = 4
    ERROR_READING_CONFIG = 5
    ERROR_DECRYPTING_TREE = 25
    MAC_MISMATCH = 51
    MAC_NOT_FOUND = 52
    INVALID_TREE_PATH_FORMAT = 91
    COULD_NOT_RETRIEVE_KEY = 128
