"""Exception taxonomy shared by the solution, project and artifact models."""


class SlnKitError(Exception):
    """Base class for every error raised by slnkit."""


class NotFoundError(SlnKitError, FileNotFoundError):
    """A source file or path does not exist."""


class NoOutputDirectoriesError(NotFoundError):
    """A project has no existing candidate output directory."""


class NoMatchingArtifactError(NotFoundError):
    """No binary in the candidate directories survived the name filters."""


class FormatError(SlnKitError):
    """A file has the wrong extension or lacks the minimal expected shape."""


class ValidationError(SlnKitError, ValueError):
    """A mutator received a missing or inconsistent argument."""


class IOFailure(SlnKitError, OSError):
    """Reading, writing or linking a file failed."""


class LinkPermissionError(IOFailure):
    """The operating system refused to create a symbolic link."""
