class ArtpackError(Exception):
    """Base class for artpack errors."""


class InvalidPatternError(ArtpackError, ValueError):
    def __init__(self, pattern: str, reason: str):
        super().__init__(f"invalid pattern {pattern!r}: {reason}")
        self.pattern = pattern
        self.reason = reason


class WalkError(ArtpackError):
    """Filesystem metadata could not be read while walking a root."""

    def __init__(self, path: str, cause: BaseException):
        super().__init__(f"cannot walk {path}: {cause}")
        self.path = path
        self.cause = cause


# Unreadable archives
class CorruptArchiveError(ArtpackError):
    pass


class CodecError(CorruptArchiveError):
    pass


class ContainerError(CorruptArchiveError):
    pass


class ArchiveIOError(ArtpackError):
    """Open/create/copy/chmod/utime failure on a concrete path."""

    def __init__(self, path: str, action: str, cause: OSError):
        super().__init__(f"failed {action} {path}: {cause}")
        self.path = path
        self.action = action
        self.cause = cause


class UnsafePathError(ArtpackError, ValueError):
    """Archive entry points outside the output directory (absolute or '..')."""

    def __init__(self, path: str):
        super().__init__(f"refusing to restore {path!r} outside the output directory")
        self.path = path
