from app.utils.security import create_access_token, decode_token

__all__ = [
    "create_access_token",
    "decode_token",
]
