from pydantic import BaseModel, Field, model_validator

from tripbank.services.grid_layout import GridPosition, GridSize


class GridPositionModel(BaseModel):
    """Wire shape of a grid position; field names and numeric types are part of the stored format."""

    column: int = Field(ge=0, le=1)
    row: float = Field(ge=0)
    width: int = Field(ge=1, le=2)
    height: float = Field(gt=0)

    model_config = {"from_attributes": True}

    @model_validator(mode="after")
    def check_span(self) -> "GridPositionModel":
        if self.column + self.width > 2:
            raise ValueError("column + width must not exceed 2; full-width moments start at column 0")
        return self

    def to_position(self) -> GridPosition:
        return GridPosition(column=self.column, row=self.row, width=self.width, height=self.height)

    @classmethod
    def from_position(cls, position: GridPosition) -> "GridPositionModel":
        return cls(**position.to_dict())


class GridSizeModel(BaseModel):
    width: int = Field(1, ge=1, le=2)
    height: float = Field(1.0, gt=0)

    def to_size(self) -> GridSize:
        return GridSize(width=self.width, height=self.height)


class GridPositionUpdate(BaseModel):
    moment_id: str
    grid_position: GridPositionModel


class BatchGridUpdateRequest(BaseModel):
    updates: list[GridPositionUpdate]


class BatchGridUpdateResponse(BaseModel):
    success: bool = True
    updated: int
