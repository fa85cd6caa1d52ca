"""GenerationRecord entity - Durable record of one successfully produced image."""

from datetime import datetime
from uuid import UUID, uuid4

from sqlmodel import Field, SQLModel

from portraitly.core.timezone import utc_now
from portraitly.models.types import UTCDateTime


class GenerationRecord(SQLModel, table=True):
    """GenerationRecord references a published image, independent of the provider used.

    Written once per successful job and never updated.
    """

    __tablename__ = "generation_records"  # type: ignore[assignment]

    id: UUID = Field(default_factory=uuid4, primary_key=True)
    image_url: str
    style_id: str = Field(max_length=100)
    user_id: str = Field(max_length=255, index=True)
    created_at: datetime = Field(default_factory=utc_now, sa_type=UTCDateTime, index=True)
