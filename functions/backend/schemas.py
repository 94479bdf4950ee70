"""
Pydantic schemas for the offer generator API.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import Annotated, List, Optional, Union

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, computed_field

from shared.formatting import format_price, parse_price
from shared.rich_text import sanitize_html, text_length

MIN_MODULE_CONTENT_LENGTH = 10


class _Input(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class _Output(BaseModel):
    model_config = ConfigDict(from_attributes=True)


def _normalize_price(value: Union[str, int]) -> int:
    try:
        amount = parse_price(value)
    except ValueError as e:
        raise ValueError("Invalid price format. Example: Rp 1.500.000") from e
    if amount <= 0:
        raise ValueError("Price must be greater than zero")
    return amount


def _unique_in_order(ids: List[str]) -> List[str]:
    return list(dict.fromkeys(ids))


def _clean_module_content(value: str) -> str:
    cleaned = sanitize_html(value)
    if text_length(cleaned) < MIN_MODULE_CONTENT_LENGTH:
        raise ValueError(
            f"Module content must have at least {MIN_MODULE_CONTENT_LENGTH} characters"
        )
    return cleaned


Price = Annotated[Union[int, str], AfterValidator(_normalize_price)]
ModuleIds = Annotated[List[str], AfterValidator(_unique_in_order)]
ModuleContent = Annotated[str, AfterValidator(_clean_module_content)]


# Schemes


class TrainingUnitIn(_Input):
    code: str = Field(..., min_length=2, max_length=64)
    name: str = Field(..., min_length=1, max_length=256)


class SchemeCreate(_Input):
    name: str = Field(..., min_length=3, max_length=256)
    units: List[TrainingUnitIn] = Field(..., min_length=1)
    price: Price


class SchemeUpdate(_Input):
    name: Optional[str] = Field(default=None, min_length=3, max_length=256)
    units: Optional[List[TrainingUnitIn]] = Field(default=None, min_length=1)
    price: Optional[Price] = None


class TrainingUnitOut(_Output):
    code: str
    name: str


class SchemeResponse(_Output):
    id: str
    name: str
    units: List[TrainingUnitOut]
    price: int
    created_at: datetime
    updated_at: datetime

    @computed_field
    @property
    def price_display(self) -> str:
        return format_price(self.price)

    @computed_field
    @property
    def unit_count(self) -> int:
        return len(self.units)


# Offers


class OfferDraftCreate(_Input):
    scheme_id: str = Field(..., min_length=1)
    customer_name: str = Field(..., min_length=3, max_length=256)
    offer_date: Optional[date] = None
    user_request: str = Field(..., min_length=10, max_length=4000)
    background_path: Optional[str] = None
    template_id: Optional[str] = None
    module_ids: ModuleIds = Field(default_factory=list)


class OfferUpdate(_Input):
    scheme_id: Optional[str] = Field(default=None, min_length=1)
    customer_name: Optional[str] = Field(default=None, min_length=3, max_length=256)
    offer_date: Optional[date] = None
    user_request: Optional[str] = Field(default=None, min_length=10, max_length=4000)
    background_path: Optional[str] = None
    template_id: Optional[str] = None
    module_ids: Optional[ModuleIds] = None


class OfferDraftResponse(_Output):
    draft_id: str
    scheme_id: str
    scheme_name: str
    customer_name: str
    offer_date: date
    user_request: str
    background_path: Optional[str] = None
    template_id: Optional[str] = None
    module_ids: List[str]
    created_at: datetime


class OfferResponse(_Output):
    id: str
    scheme_id: str
    scheme_name: str
    customer_name: str
    offer_date: date
    user_request: str
    background_path: Optional[str] = None
    template_id: Optional[str] = None
    module_ids: List[str]
    created_at: datetime
    updated_at: datetime


class OfferDetailResponse(BaseModel):
    offer: OfferResponse
    scheme: Optional[SchemeResponse] = None


# Modules


class ModuleCreate(_Input):
    title: str = Field(..., min_length=3, max_length=256)
    content: ModuleContent
    folder_id: Optional[str] = None


class ModuleUpdate(_Input):
    title: Optional[str] = Field(default=None, min_length=3, max_length=256)
    content: Optional[ModuleContent] = None
    folder_id: Optional[str] = None


class ModuleResponse(_Output):
    id: str
    title: str
    content: str
    folder_id: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class ModulePreviewResponse(BaseModel):
    id: str
    title: str
    html: str
    text_length: int


class FormattingStateRequest(BaseModel):
    html: str = Field(default="", max_length=200_000)


class FormattingStateResponse(_Output):
    bold: bool
    italic: bool
    underline: bool
    heading: str
    font_size: Optional[int] = None
    align: str


# Templates


class PositionModel(_Output):
    x: float
    y: float


class TemplateParameterModel(_Output):
    id: str = Field(..., min_length=1, max_length=64)
    label: str = Field(..., max_length=256)
    position: PositionModel
    key: str = Field(..., min_length=1, max_length=64)


class TemplateCreate(_Input):
    name: str = Field(..., min_length=3, max_length=256)
    background_path: str = Field(..., min_length=1)
    parameters: List[TemplateParameterModel] = Field(default_factory=list)


class TemplateUpdate(_Input):
    name: Optional[str] = Field(default=None, min_length=3, max_length=256)
    background_path: Optional[str] = Field(default=None, min_length=1)
    parameters: Optional[List[TemplateParameterModel]] = None


class TemplateResponse(_Output):
    id: str
    name: str
    background_path: str
    parameters: List[TemplateParameterModel]
    created_at: datetime

    @computed_field
    @property
    def parameter_count(self) -> int:
        return len(self.parameters)


class DragRequest(_Input):
    pointer_x: float
    pointer_y: float
    grab_offset_x: float = 0.0
    grab_offset_y: float = 0.0
    element_width: float = Field(default=0.0, ge=0)
    element_height: float = Field(default=0.0, ge=0)


class DragResponse(BaseModel):
    id: str
    position: PositionModel


# Storage / dashboard


class UploadResponse(BaseModel):
    path: str
    url: str
    width: int
    height: int


class SignUrlResponse(BaseModel):
    url: str


class DashboardResponse(BaseModel):
    schemes: int
    offers: int
    modules: int
    templates: int
    recent_offers: List[OfferResponse]
