# schemas.py

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

# Upstream field names in their fixed TSV column order
TSV_FIELDS: tuple[str, ...] = (
    "DateCreated",
    "UserId",
    "ItemId",
    "ItemType",
    "ItemName",
    "PlaybackMethod",
    "ClientName",
    "DeviceName",
    "PlayDuration",
)


def _scalar_text(v: Any) -> str | None:
    if isinstance(v, str):
        return v
    if isinstance(v, bool) or v is None:
        return None
    if isinstance(v, int | float):
        return str(v)
    return None


class ActivityRecord(BaseModel):
    """One row of a Playback Reporting export.

    Fields are loosely typed upstream; ids and dates given as numbers are
    stringified, everything else unusable becomes None. Duration is coerced
    later by the reconciler so a bad value never drops the row here.
    """

    date_created: str | None = Field(default=None, alias="DateCreated")
    user_id: str | None = Field(default=None, alias="UserId")
    item_id: str | None = Field(default=None, alias="ItemId")
    item_type: str | None = Field(default=None, alias="ItemType")
    item_name: str | None = Field(default=None, alias="ItemName")
    playback_method: str | None = Field(default=None, alias="PlaybackMethod")
    client_name: str | None = Field(default=None, alias="ClientName")
    device_name: str | None = Field(default=None, alias="DeviceName")
    play_duration: str | int | float | None = Field(default=None, alias="PlayDuration")

    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)

    @field_validator(
        "date_created", "user_id", "item_id", "item_type", "item_name",
        "client_name", "device_name",
        mode="before",
    )
    @classmethod
    def _stringify(cls, v: Any) -> str | None:
        return _scalar_text(v)

    @field_validator("playback_method", mode="before")
    @classmethod
    def _method_text(cls, v: Any) -> str | None:
        return v if isinstance(v, str) else None

    @field_validator("play_duration", mode="before")
    @classmethod
    def _duration_scalar(cls, v: Any) -> str | int | float | None:
        if isinstance(v, bool):
            return None
        return v if isinstance(v, str | int | float) else None

    def to_tsv_fields(self) -> list[str]:
        """Return the nine TSV columns in upstream order (None -> empty)."""
        values = self.model_dump(by_alias=True)
        return ["" if values[name] is None else str(values[name]) for name in TSV_FIELDS]
