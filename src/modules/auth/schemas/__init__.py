from .auth_schemas import (
    LoginRequest, TokenResponse, UserCreate, UserResponse
)

__all__ = [
    'LoginRequest', 'TokenResponse', 'UserCreate', 'UserResponse'
]
