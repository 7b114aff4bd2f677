from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from typing import Optional


class Record(BaseModel):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    id: int
    sentiment: int = Field(ge=1, le=5)
    video_uri: str = Field(
        validation_alias=AliasChoices("videoUri", "video_uri"), serialization_alias="videoUri"
    )
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timestamp: int


class Coordinate(BaseModel):
    latitude: float
    longitude: float


class RecordCount(BaseModel):
    count: int
    poll_seconds: float


class PurgeSummary(BaseModel):
    records_deleted: int
    files_deleted: int


class CsvExport(BaseModel):
    path: str
    shared: bool = True


class VideoExport(BaseModel):
    shared: list[str]
