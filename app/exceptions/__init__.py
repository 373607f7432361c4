"""Custom exceptions for the quote management application."""

class SaasError(Exception):
    """Base exception for all application errors."""
    def __init__(self, message="An internal error occurred", status_code=500, payload=None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload

    def to_dict(self):
        rv = dict(self.payload or ())
        rv['message'] = self.message
        rv['status'] = 'error'
        return rv

class BusinessLogicError(SaasError):
    """Exception raised for business logic violations."""
    def __init__(self, message, status_code=400, payload=None):
        super().__init__(message, status_code, payload)

class NotFoundError(SaasError):
    """Exception raised when a resource is not found."""
    def __init__(self, message="Resource not found", payload=None):
        super().__init__(message, 404, payload)

class UnauthorizedError(SaasError):
    """Raised when a user lacks permission for an action."""
    def __init__(self, message="Unauthorized access"):
        super().__init__(message, 403)

class QuoteValidationError(BusinessLogicError):
    """Raised before any write when a submitted form has field errors.

    ``errors`` maps form field names (``customer_id``, ``items[0][quantity]``)
    to the message shown next to that field.
    """
    def __init__(self, errors, message='請修正表單中的錯誤'):
        self.errors = dict(errors)
        super().__init__(message, status_code=400, payload={'errors': self.errors})

class ReferenceInUseError(BusinessLogicError):
    """Raised when deleting a customer/staff/bank still referenced by a quote."""
    def __init__(self, entity_label):
        super().__init__(f'無法刪除：此{entity_label}仍被報價單使用中', status_code=409)

class ShareNotFoundError(NotFoundError):
    """Unknown, deactivated and expired share tokens all raise this, with one message."""
    def __init__(self):
        super().__init__('找不到分享的報價單或連結已失效')

class ExportError(SaasError):
    """Raised when rendering a PDF/HTML export fails."""
    def __init__(self, message):
        super().__init__(f'匯出失敗: {message}', 500)
