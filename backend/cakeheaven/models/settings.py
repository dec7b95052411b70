"""
Store-wide settings.

A single row holds five JSON sections (general, email, payment, shipping,
user). Defaults for each section live in cakeheaven.modules.admin.settings.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from cakeheaven.core.database import Base


class StoreSettings(Base):
    """Singleton store configuration."""

    __tablename__ = "store_settings"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    general: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    email: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    payment: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    shipping: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    user: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )

    def __repr__(self) -> str:
        return f"<StoreSettings {self.id}>"
