"""Exceptions raised by the installer."""


class SetupError(Exception):
    """Base exception for installer errors."""

    pass


class PrerequisiteError(SetupError):
    """Raised when required tooling is missing and cannot be installed."""

    pass


class TuningError(SetupError):
    """Raised when kernel tuning cannot be written or applied."""

    pass


class PortConflictError(SetupError):
    """Raised when a port is still held after a reclaim attempt."""

    def __init__(self, port: int) -> None:
        super().__init__(f"Port {port} is still in use after reclaim attempt")
        self.port = port


class NoInstallationError(SetupError):
    """Raised when a backup is requested but no node is installed."""

    pass


class ArchiveNotFoundError(SetupError):
    """Raised when the archive passed to restore does not exist."""

    def __init__(self, path: object) -> None:
        super().__init__(f"Backup file not found: {path}")
        self.path = path


class DeployError(SetupError):
    """Raised when building or running the container fails."""

    pass


class ArchiveInStateDirError(SetupError):
    """Raised when the archive to restore lives inside the directory restore wipes."""

    def __init__(self, path: object, state_dir: object) -> None:
        super().__init__(
            f"Backup file {path} is inside {state_dir}, which restore deletes; "
            "move it elsewhere first"
        )
        self.path = path
        self.state_dir = state_dir
