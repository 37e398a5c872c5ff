"""
Exceptions for Stashbox core module
Everything raised by the stash derives from StashError so the CLI has one catcher
"""


class StashError(Exception):
    # general container for errors
    exit_code = 1


class NotFoundError(StashError):
    # raised when a referenced file id is absent from the stash
    exit_code = 2


class SecretNotFoundError(NotFoundError):
    # raised when a secret is in neither the cache nor the store
    pass


class DuplicateSecretError(StashError):
    # raised when minting for a file id that already has a live secret
    exit_code = 3


class IntegrityError(StashError):
    # raised when AEAD verification fails (tamper, truncation, wrong key)
    exit_code = 4


class ModeError(StashError):
    # raised for an operation that is illegal in the current stash mode
    exit_code = 5


class ArchivedModeError(ModeError):
    # raised when the stash is archived and the operation needs normal mode
    pass


class NotArchivedError(ModeError):
    # raised when the stash is normal and the operation needs an archive
    pass


class StoreUnavailableError(StashError):
    # raised when the secret store cannot be opened, read or written
    exit_code = 6


class StashIOError(StashError):
    # raised on an underlying filesystem failure
    exit_code = 7

    def __init__(self, path, operation, reason=None):
        self.path = str(path)
        self.operation = operation
        self.reason = reason
        message = f"Failed to {operation} '{self.path}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class FileAlreadyExistsError(StashError):
    # raised when a destination file already exists
    exit_code = 8


class InvalidFileError(StashError):
    # raised for directories, reserved names or malformed archive members
    exit_code = 9


class SecretCacheError(StashError):
    # raised when the OS keyring refuses a cache operation
    exit_code = 10
