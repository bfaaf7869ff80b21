"""SQLAlchemy table mappings for the embedded store."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    pass


class SecretRecord(Base):
    __tablename__ = "secrets"

    # nocase makes the key, lookups and upsert conflicts case-insensitive
    name: Mapped[str] = mapped_column(String(100, collation="nocase"), primary_key=True)
    value: Mapped[str] = mapped_column(Text, nullable=False)
    kind: Mapped[str] = mapped_column(String(50), nullable=False, default="SqlServer")
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    last_used: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_on: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class CredentialRecord(Base):
    __tablename__ = "credentials"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    secret_value: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    owner_id: Mapped[str] = mapped_column(String(200), nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expiration_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_used: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    state: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    kind: Mapped[str] = mapped_column(String(20), nullable=False, default="user")
    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")
    allowed_resource_names: Mapped[Optional[list]] = mapped_column(JSON, nullable=True)


class UsageLogRecord(Base):
    __tablename__ = "credential_usage_logs"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    credential_id: Mapped[str] = mapped_column(ForeignKey("credentials.id"), nullable=False)
    owner_id: Mapped[str] = mapped_column(String(200), nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    resource: Mapped[str] = mapped_column(String(2000), nullable=False)
    method: Mapped[str] = mapped_column(String(20), nullable=False)
    ip_address: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    user_agent: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)

    __table_args__ = (
        Index("idx_usage_logs_credential_id", "credential_id"),
        Index("idx_usage_logs_owner_id", "owner_id"),
        Index("idx_usage_logs_timestamp", "timestamp"),
    )
