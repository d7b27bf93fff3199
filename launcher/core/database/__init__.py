"""Database module for account storage"""
from .models import Base, OfflineUser, RemoteUser
from .connection import Database, default_database_url
from .encryption import TokenCipher, generate_encryption_key

__all__ = [
    'Base',
    'OfflineUser',
    'RemoteUser',
    'Database',
    'default_database_url',
    'TokenCipher',
    'generate_encryption_key',
]
