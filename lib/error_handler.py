from typing import Optional
import logging

logger = logging.getLogger(__name__)

class AppError(Exception):
    def __init__(self, message: str, status_code: int = 500, user_message: Optional[str] = None):
        self.message = message
        self.status_code = status_code
        self.user_message = user_message or "An error occurred. Please try again later."
        super().__init__(self.message)

class NotAuthenticated(AppError):
    def __init__(self, message: str = "Not authenticated"):
        super().__init__(message, status_code=401, user_message="Not authenticated")

class NotFound(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=404, user_message=message)

class ValidationFailed(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=400, user_message=message)

class ConfigurationError(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=500)

class CallPlacementError(AppError):
    def __init__(self, message: str, provider_status: Optional[int] = None):
        self.provider_status = provider_status
        super().__init__(message, status_code=502, user_message="Failed to initiate call")

class StoreError(AppError):
    def __init__(self, message: str):
        super().__init__(message, status_code=500)

class ErrorHandler:
    @staticmethod
    def handle_app_error(error: AppError) -> tuple:
        if error.status_code >= 500:
            logger.error(f"{type(error).__name__}: {error.message}")
        else:
            logger.warning(f"{type(error).__name__}: {error.message}")
        return {"error": error.user_message}, error.status_code

    @staticmethod
    def handle_ingestion_error(error: Exception) -> None:
        logger.error(f"Ingestion error: {str(error)}", exc_info=error)
