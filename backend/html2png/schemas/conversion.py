from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field, field_validator

from html2png.core.config import get_settings
from html2png.services.renderer import RenderRequest


class ConvertRequest(BaseModel):
    html: str = Field(min_length=1)
    width: int | None = None
    height: int | None = None
    dpr: Literal[1, 2, 3] = 1
    full_page: bool = Field(default=False, alias="fullPage")

    class Config:
        populate_by_name = True

    @field_validator("width")
    @classmethod
    def _width_in_bounds(cls, v: int | None) -> int | None:
        settings = get_settings()
        if v is not None and not settings.RENDER_MIN_WIDTH <= v <= settings.RENDER_MAX_WIDTH:
            raise ValueError(f"width must be between {settings.RENDER_MIN_WIDTH} and {settings.RENDER_MAX_WIDTH}")
        return v

    @field_validator("height")
    @classmethod
    def _height_in_bounds(cls, v: int | None) -> int | None:
        settings = get_settings()
        if v is not None and not settings.RENDER_MIN_HEIGHT <= v <= settings.RENDER_MAX_HEIGHT:
            raise ValueError(f"height must be between {settings.RENDER_MIN_HEIGHT} and {settings.RENDER_MAX_HEIGHT}")
        return v

    def to_render_request(self) -> RenderRequest:
        return RenderRequest(
            html=self.html,
            width=self.width or get_settings().RENDER_DEFAULT_WIDTH,
            height=self.height,
            dpr=self.dpr,
            full_page=self.full_page,
        )


class ConversionItem(BaseModel):
    id: int
    html_preview: str
    html: str
    width: int
    height: int | None
    dpr: int
    full_page: bool
    byte_size: int
    created_at: datetime

    class Config:
        from_attributes = True


class ConversionListResponse(BaseModel):
    conversions: list[ConversionItem]
    total: int
    limit: int
    offset: int
