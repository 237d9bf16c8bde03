from typing import Optional


class StorageError(Exception):
    """
    Base error of the storage feature.
    Every error carries a stable machine-readable code, a human message and
    an HTTP-like status classification.
    """
    code: str = "E_STORAGE_ERROR"
    status_code: int = 500

    def __init__(self, message: str, code: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if code:
            self.code = code
        if status_code:
            self.status_code = status_code

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "status_code": self.status_code,
        }


# --- 404 ---

class NotFound(StorageError):
    code = "E_STORAGE_NOT_FOUND"
    status_code = 404


class FileNotFound(NotFound):
    code = "E_STORAGE_FILE_NOT_FOUND"

    def __init__(self, file_id):
        super().__init__(f"Could not find the requested file with ID \"{file_id}\"")
        self.file_id = file_id


class FolderNotFound(NotFound):
    code = "E_STORAGE_FOLDER_NOT_FOUND"

    def __init__(self, folder_id):
        super().__init__(f"Could not find the requested folder with ID \"{folder_id}\"")
        self.folder_id = folder_id


class NodeNotFound(NotFound):
    code = "E_STORAGE_FILE_OR_FOLDER_NOT_FOUND"

    def __init__(self, node_id):
        super().__init__(f"Could not find the requested file or folder with ID \"{node_id}\"")
        self.node_id = node_id


# --- 400 ---

class BadRequest(StorageError):
    code = "E_STORAGE_BAD_REQUEST"
    status_code = 400


class MissingFileName(BadRequest):
    code = "E_STORAGE_MISSING_FILE_NAME"

    def __init__(self):
        super().__init__("Could not determine the file name")


class MissingFileType(BadRequest):
    code = "E_STORAGE_MISSING_FILE_TYPE"

    def __init__(self):
        super().__init__("Could not determine the file type")


class MissingFileId(BadRequest):
    code = "E_STORAGE_MISSING_FILE_ID"

    def __init__(self):
        super().__init__("Could not determine the file ID")


class InvalidMove(BadRequest):
    code = "E_STORAGE_INVALID_MOVE"


# --- 403 ---

class Forbidden(StorageError):
    code = "E_STORAGE_FORBIDDEN"
    status_code = 403


# --- 409 ---

class Conflict(StorageError):
    """
    Uniqueness violation on commit (content hash or root folder).
    Recovered internally by the service; only escapes on a repeated conflict.
    """
    code = "E_STORAGE_CONFLICT"
    status_code = 409


# --- 5xx ---

class BackendFailure(StorageError):
    code = "E_STORAGE_BACKEND_FAILURE"
    status_code = 500


class RemoteDownloadFailed(StorageError):
    code = "E_STORAGE_REMOTE_DOWNLOAD_FAILED"
    status_code = 502

    def __init__(self, url: str, reason: str = ""):
        message = f"Could not download the file from the remote URL \"{url}\""
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.url = url
