"""
SQLAlchemy Database Models for account storage

Stores:
- Offline identities (locally derived, no remote authentication)
- Remote service sessions

Each table is an independent namespace with its own single-active account.
Expiry is stored as unix seconds. Token columns hold ciphertext when
encryption is configured (see launcher/core/database/encryption.py).
"""
from sqlalchemy import Column, String, Integer, Boolean, Text, Index
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class OfflineUser(Base):
    """Offline identity keyed by its name-derived UUID."""
    __tablename__ = "offline_users"

    id = Column(String(36), primary_key=True)  # UUID string
    active = Column(Boolean, nullable=False, default=False)
    name = Column(String(255), nullable=False)
    access_token = Column(Text, nullable=False)
    refresh_token = Column(Text, nullable=False)
    expires = Column(Integer, nullable=False)  # unix seconds

    __table_args__ = (
        Index('ix_offline_users_active', 'active'),
    )


class RemoteUser(Base):
    """Remote service session keyed by the remote user id."""
    __tablename__ = "modrinth_users"

    id = Column(String(64), primary_key=True)
    active = Column(Boolean, nullable=False, default=False)
    session_id = Column(Text, nullable=False)
    expires = Column(Integer, nullable=False)  # unix seconds

    __table_args__ = (
        Index('ix_modrinth_users_active', 'active'),
    )
