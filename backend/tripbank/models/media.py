import uuid
from datetime import datetime

from sqlalchemy import BigInteger, DateTime, ForeignKey, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from tripbank.database import Base, utcnow


class MediaItem(Base):
    __tablename__ = "media_items"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    trip_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True
    )
    # Uploader; storage usage is charged to this user
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    storage_id: Mapped[str | None] = mapped_column(String(64))
    thumbnail_storage_id: Mapped[str | None] = mapped_column(String(64))
    image_url: Mapped[str | None] = mapped_column(String(1024))
    video_url: Mapped[str | None] = mapped_column(String(1024))
    type: Mapped[str] = mapped_column(String(10), nullable=False)  # photo | video
    capture_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    note: Mapped[str | None] = mapped_column(Text)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Storage tracking
    file_size: Mapped[int | None] = mapped_column(BigInteger)
    thumbnail_size: Mapped[int | None] = mapped_column(BigInteger)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    @property
    def total_bytes(self) -> int:
        return (self.file_size or 0) + (self.thumbnail_size or 0)


class StoredFile(Base):
    """One uploaded blob in object storage; the id is the public storage id."""

    __tablename__ = "stored_files"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    # Uploader; only this user may attach the file to media or a trip
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    # Upload slot that produced the file; each slot is good for one upload
    upload_slot: Mapped[str] = mapped_column(String(32), nullable=False, unique=True)
    size: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
