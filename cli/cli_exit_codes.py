from enum import IntEnum


class ExitCode(IntEnum):
    SUCCESS = 0
    LOAD_ERROR = 1
    USAGE_ERROR = 2
    BELOW_THRESHOLD = 3
