from filerelay.models.file_record import CancelToken, FileRecord

__all__ = [
    "CancelToken",
    "FileRecord",
]
