"""Process exit codes for the dynashard CLI."""

USAGE_ERROR = 2
DATABASE_ERROR = 3
EXECUTION_FAILURE = 4
CONDITION_FAILED = 5
