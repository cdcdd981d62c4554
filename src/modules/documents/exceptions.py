"""Errors raised by the signing services.

Each class carries the HTTP status the API layer answers with, so the
controllers never have to translate them one by one.
"""


class SigningError(Exception):
    """Base class for every signing-lifecycle error"""
    status_code = 400

    def __init__(self, message: str = ""):
        super().__init__(message or self.__doc__)
        self.message = message or self.__doc__


class ValidationError(SigningError):
    """Invalid input"""
    status_code = 400


class NotFoundError(SigningError):
    """Resource not found"""
    status_code = 404


class TokenNotFound(NotFoundError):
    """This signing link is not valid"""


class TokenExpired(SigningError):
    """This signing link has expired"""
    status_code = 410


class TokenAlreadyUsed(SigningError):
    """This document has already been signed with this link"""
    status_code = 409


class AlreadyConsumed(TokenAlreadyUsed):
    """Signing token already consumed"""


class AlreadySigned(SigningError):
    """You have already signed this document"""
    status_code = 409


class DocumentExpired(SigningError):
    """This document has expired and can no longer be signed"""
    status_code = 410


class DocumentStateError(SigningError):
    """Exception for document state transition errors"""
    status_code = 409


class AccessDenied(SigningError):
    """A valid password is required to access this document"""
    status_code = 403


class PersistenceError(SigningError):
    """The operation could not be saved, please try again"""
    status_code = 503
