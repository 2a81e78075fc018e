# socialbridge/__init__.py
from .adapter import SocialAdapter
from .core.errors import ErrorCode, SocialError
from .model import ContactRecord, Credentials, LoginOptions, Status

__version__ = "0.1.0"

__all__ = ["SocialAdapter", "ErrorCode", "SocialError", "ContactRecord", "Credentials", "LoginOptions", "Status"]
