from enum import Enum
from typing import Optional


class ErrorCode(Enum):
    """(http_status, biz_code, default message)"""

    INVALID_INPUT = (400, "COM_001", "Invalid input")
    UNAUTHORIZED = (401, "AUTH_001", "Please sign in again")
    TOKEN_EXPIRED = (401, "AUTH_002", "Token expired")
    FORBIDDEN = (403, "AUTH_003", "Not allowed")
    USER_NOT_FOUND = (401, "AUTH_004", "User not found")
    USER_INACTIVE = (401, "AUTH_005", "User inactive")
    PROJECT_NOT_FOUND = (404, "PRJ_404", "Project not found")
    TASK_NOT_FOUND = (404, "TSK_404", "Task not found")
    PERSISTENCE_FAILED = (500, "DB_001", "Could not save changes")
    INTERNAL_SERVER_ERROR = (500, "COM_500", "Internal server error")

    def __init__(self, http_status: int, biz_code: str, message: str):
        self.http_status = http_status
        self.biz_code = biz_code
        self.default_message = message


class BusinessException(Exception):
    def __init__(self, error_code: ErrorCode, message: Optional[str] = None):
        self.error_code = error_code
        self.message = message or error_code.default_message
        super().__init__(self.message)
