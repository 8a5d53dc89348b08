from fastapi import status


class RelayError(Exception):
    """Base error rendered to clients as ``{"success": false, "message": ...}``."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    message: str = "Internal error"

    def __init__(self, message: str | None = None) -> None:
        if message is not None:
            self.message = message
        super().__init__(self.message)


class UploadValidationError(RelayError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid upload"


class NoFilesError(UploadValidationError):
    message = "No files uploaded"


class TooManyFilesError(UploadValidationError):
    message = "Too many files"


class FileTooLargeError(UploadValidationError):
    status_code = 413
    message = "File too large"


class FileNotFoundOrExpiredError(RelayError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "File not found"


class StorageWriteError(RelayError):
    message = "Failed to store uploaded files"
