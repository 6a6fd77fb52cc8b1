"""AppUser model - customers and staff authenticated by API bearer token."""
import hashlib
import secrets
import enum
from sqlalchemy import Column, String, Boolean, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from printshop.database import Base, new_id


class RoleName(enum.Enum):
    """Platform-wide roles."""
    ADMIN = 'admin'
    MODERATOR = 'moderator'
    CLIENT = 'client'


def hash_api_token(token: str) -> str:
    """Tokens are stored as SHA-256 hex digests, never in clear."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


class AppUser(Base):
    """AppUser model - shop customers and administrators."""

    __tablename__ = 'app_user'

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), nullable=False, unique=True)
    full_name = Column(String(200), nullable=True)
    preferred_language = Column(String(8), nullable=True)
    api_token_hash = Column(String(64), nullable=True, unique=True, index=True)
    active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())

    # Relationships
    roles = relationship('UserRole', back_populates='user', cascade='all, delete-orphan')

    def issue_api_token(self) -> str:
        """Generate a new bearer token; only its hash is kept."""
        token = secrets.token_urlsafe(32)
        self.api_token_hash = hash_api_token(token)
        return token

    def has_role(self, role: str) -> bool:
        return any(r.role == role for r in self.roles)

    @property
    def is_admin(self) -> bool:
        """Check if user holds the administrative role."""
        return self.has_role(RoleName.ADMIN.value)

    def __repr__(self):
        return f"<AppUser(id={self.id}, email='{self.email}')>"


class UserRole(Base):
    """UserRole model - links users to platform roles."""

    __tablename__ = 'user_role'
    __table_args__ = (
        UniqueConstraint('user_id', 'role', name='uq_user_role_user_id_role'),
    )

    id = Column(String(36), primary_key=True, default=new_id)
    user_id = Column(String(36), ForeignKey('app_user.id', ondelete='CASCADE'), nullable=False, index=True)
    role = Column(String(20), nullable=False, default=RoleName.CLIENT.value)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())

    # Relationships
    user = relationship('AppUser', back_populates='roles')

    def __repr__(self):
        return f"<UserRole(user_id={self.user_id}, role='{self.role}')>"
