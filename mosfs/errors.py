"""Error types raised by the file system and its server."""


class FsError(Exception):
    """Base class for every file system error; ``code`` is the numeric error code."""

    code: int = 0
    default_message = "file system error"

    def __init__(self, message=None):
        super().__init__(message if message is not None else self.default_message)


class UnspecifiedError(FsError):
    code = 1
    default_message = "unspecified or unknown problem"


class BadEnvError(FsError):
    code = 2
    default_message = "environment does not exist or cannot be used"


class InvalidError(FsError):
    code = 3
    default_message = "invalid parameter"


class OutOfMemory(FsError):
    code = 4
    default_message = "out of memory"


class NoSysError(FsError):
    code = 5
    default_message = "invalid syscall number"


class NoFreeEnvError(FsError):
    code = 6
    default_message = "no free environment"


class IpcNotRecvError(FsError):
    code = 7
    default_message = "target environment is not receiving"


class NoDiskError(FsError):
    code = 8
    default_message = "no free space left on disk"


class MaxOpenError(FsError):
    code = 9
    default_message = "too many files are open"


class NotFoundError(FsError):
    code = 10
    default_message = "file or block not found"


class BadPathError(FsError):
    code = 11
    default_message = "bad path"


class FileExists(FsError):
    code = 12
    default_message = "file already exists"


class NotExecError(FsError):
    code = 13
    default_message = "file is not a valid executable"


_BY_CODE = {
    cls.code: cls
    for cls in (
        UnspecifiedError,
        BadEnvError,
        InvalidError,
        OutOfMemory,
        NoSysError,
        NoFreeEnvError,
        IpcNotRecvError,
        NoDiskError,
        MaxOpenError,
        NotFoundError,
        BadPathError,
        FileExists,
        NotExecError,
    )
}


def error_for_code(code):
    """Return an exception instance for an error code; negative codes are accepted."""
    try:
        cls = _BY_CODE[abs(code)]
    except KeyError:
        raise ValueError(f"unknown error code {code}") from None
    return cls()