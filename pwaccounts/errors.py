"""Launcher exception hierarchy."""


class LauncherError(Exception):
    """Base error type for launcher and supervisor failures."""


class ConfigurationError(LauncherError):
    """User configuration prevents the requested operation."""


class InvalidRootDirectoryError(ConfigurationError):
    """Configured game root is missing or not a directory."""

    def __init__(self, root_dir: str):
        super().__init__(f"game folder does not exist or is not a directory: {root_dir}")
        self.root_dir = root_dir


class ExecutableNotFoundError(ConfigurationError):
    """No game client executable under the root or its element subfolder."""

    def __init__(self, root_dir: str):
        super().__init__(
            f"elementclient.exe not found in {root_dir} or its element subfolder"
        )
        self.root_dir = root_dir


class ProcessError(LauncherError):
    """OS-level process operation failed."""


class SpawnError(ProcessError):
    """Launcher script could not be started."""


class TerminationError(ProcessError):
    """Forced termination request was rejected by the OS."""

    def __init__(self, pid: int, detail: str):
        super().__init__(f"failed to terminate pid {pid}: {detail}")
        self.pid = pid


class UnknownAccountError(LauncherError):
    """Account identifier is not present in the account store."""

    def __init__(self, account_id: str):
        super().__init__(f"unknown account: {account_id}")
        self.account_id = account_id
