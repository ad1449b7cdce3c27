import uuid
from datetime import datetime

from sqlalchemy import JSON, DateTime, Float, ForeignKey, Integer, String, Text, func
from sqlalchemy.orm import Mapped, mapped_column

from tripbank.database import Base, utcnow
from tripbank.services.grid_layout import GridPosition


class Moment(Base):
    __tablename__ = "moments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    trip_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("trips.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False)
    note: Mapped[str | None] = mapped_column(Text)
    media_item_ids: Mapped[list] = mapped_column(JSON, default=list)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Enhanced metadata
    date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    place_name: Mapped[str | None] = mapped_column(String(255))
    event_name: Mapped[str | None] = mapped_column(String(255))
    voice_note_url: Mapped[str | None] = mapped_column(String(1024))

    # Canvas placement: column 0|1, row in 0.5 steps, width 1|2, height in rows
    grid_column: Mapped[int] = mapped_column(Integer, default=0)
    grid_row: Mapped[float] = mapped_column(Float, default=0.0)
    grid_width: Mapped[int] = mapped_column(Integer, default=1)
    grid_height: Mapped[float] = mapped_column(Float, default=1.0)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    @property
    def grid_position(self) -> GridPosition:
        return GridPosition(
            column=self.grid_column,
            row=self.grid_row,
            width=self.grid_width,
            height=self.grid_height,
        )

    @grid_position.setter
    def grid_position(self, position: GridPosition) -> None:
        self.grid_column = position.column
        self.grid_row = position.row
        self.grid_width = position.width
        self.grid_height = position.height
