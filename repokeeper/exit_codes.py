"""
Standard exit codes for repokeeper commands.

Following Unix/POSIX conventions for command-line tools. A git hook that
runs `repokeeper switch` or `repokeeper check` can tell a broken config
(PARSE_ERROR) apart from a config that parsed but did not fully converge
(PARTIAL_SUCCESS).
"""

# Standard POSIX exit codes
SUCCESS = 0              # Successful termination
GENERAL_ERROR = 1        # General errors
USAGE_ERROR = 2          # Misuse of shell command (wrong arguments, etc.)

# Application-specific exit codes (64-113 are typically available)
NO_REPOS_FOUND = 64      # No repositories found matching criteria
PARSE_ERROR = 65         # Fleet config failed to parse
SETTINGS_ERROR = 66      # Tool settings file error
SCAN_ERROR = 67          # Store or symlink root could not be observed
INIT_ERROR = 68          # Bootstrap failed
DATA_ERROR = 70          # Data format or validation error
PARTIAL_SUCCESS = 71     # Some repositories converged, some failed
INTERRUPTED = 130        # Terminated by Ctrl+C (SIGINT)

# Exit code mappings for common exceptions
EXCEPTION_EXIT_CODES = {
    'FileNotFoundError': GENERAL_ERROR,
    'PermissionError': GENERAL_ERROR,
    'ValueError': DATA_ERROR,
    'KeyError': DATA_ERROR,
    'JSONDecodeError': SETTINGS_ERROR,
    'YAMLError': SETTINGS_ERROR,
    'KeyboardInterrupt': INTERRUPTED,
}


def get_exit_code_for_exception(exc: BaseException) -> int:
    """
    Get the appropriate exit code for an exception.

    Args:
        exc: The exception that occurred

    Returns:
        Appropriate exit code
    """
    if isinstance(exc, CommandError):
        return exc.exit_code
    exc_name = exc.__class__.__name__
    return EXCEPTION_EXIT_CODES.get(exc_name, GENERAL_ERROR)


class CommandError(Exception):
    """
    Exception that commands can raise to indicate specific exit codes.
    """
    def __init__(self, message: str, exit_code: int = GENERAL_ERROR):
        super().__init__(message)
        self.exit_code = exit_code


class NoReposFoundError(CommandError):
    """Raised when no repositories match the given criteria."""
    def __init__(self, message: str = "No repositories found"):
        super().__init__(message, NO_REPOS_FOUND)


class SettingsError(CommandError):
    """Raised when the tool settings file cannot be used."""
    def __init__(self, message: str):
        super().__init__(message, SETTINGS_ERROR)


class ParseError(CommandError):
    """Raised when the fleet config cannot be resolved into a desired state."""
    def __init__(self, message: str):
        super().__init__(message, PARSE_ERROR)


class ScanError(CommandError):
    """Raised when the store or the symlink root cannot be observed."""
    def __init__(self, message: str):
        super().__init__(message, SCAN_ERROR)


class InitError(CommandError):
    """Raised when bootstrapping the server layout fails."""
    def __init__(self, message: str):
        super().__init__(message, INIT_ERROR)


class ReconcileError(CommandError):
    """Raised when some repositories failed to converge."""
    def __init__(self, message: str, report=None, succeeded: int = 0, failed: int = 0):
        super().__init__(message, PARTIAL_SUCCESS)
        self.report = report
        self.succeeded = succeeded
        self.failed = failed
