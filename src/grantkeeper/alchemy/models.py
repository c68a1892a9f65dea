from __future__ import annotations

from datetime import datetime  # noqa: TC003

from sqlalchemy import Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from grantkeeper.alchemy.base import Base
from grantkeeper.alchemy.types import DateTimeUTC


class PersistedGrant(Base):
    __tablename__ = "persisted_grants"

    key: Mapped[str] = mapped_column(String(200), primary_key=True)
    type: Mapped[str] = mapped_column(String(50))
    client_id: Mapped[str] = mapped_column(String(200))
    creation_time: Mapped[datetime] = mapped_column(DateTimeUTC)
    data: Mapped[str] = mapped_column(Text)

    subject_id: Mapped[str | None] = mapped_column(String(200), default=None)
    session_id: Mapped[str | None] = mapped_column(String(100), default=None)
    description: Mapped[str | None] = mapped_column(String(200), default=None)
    expiration: Mapped[datetime | None] = mapped_column(DateTimeUTC, index=True, default=None)
    consumed_time: Mapped[datetime | None] = mapped_column(DateTimeUTC, default=None)

    __table_args__ = (Index("ix_persisted_grants_subject_id_client_id_type", "subject_id", "client_id", "type"),)


class DeviceFlowCode(Base):
    """Pending device authorization poll record.

    ``user_code`` is indexed but not unique; lookups resolve to the most
    recently created row.
    """

    __tablename__ = "device_codes"

    device_code: Mapped[str] = mapped_column(String(200), primary_key=True)
    user_code: Mapped[str] = mapped_column(String(200), index=True)
    client_id: Mapped[str] = mapped_column(String(200))
    creation_time: Mapped[datetime] = mapped_column(DateTimeUTC)
    data: Mapped[str] = mapped_column(Text)

    subject_id: Mapped[str | None] = mapped_column(String(200), default=None)
    session_id: Mapped[str | None] = mapped_column(String(100), default=None)
    description: Mapped[str | None] = mapped_column(String(200), default=None)
    expiration: Mapped[datetime | None] = mapped_column(DateTimeUTC, index=True, default=None)
