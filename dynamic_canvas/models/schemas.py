"""
Pydantic Models and Schemas
===========================

Core data models for canvas templates, render results, persisted records,
and API requests/responses.
"""

from typing import Annotated, Optional, List, Dict, Any, Union, Literal
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


RuntimeParams = Dict[str, str]


# Enums
class ElementType(str, Enum):
    """Canvas element payload types."""
    TEXT = "text"
    IMAGE = "image"


class TextAlign(str, Enum):
    """Horizontal text anchor modes."""
    LEFT = "left"
    CENTER = "center"
    RIGHT = "right"


class ObjectFit(str, Enum):
    """Policies reconciling an image's aspect ratio with its target rect."""
    COVER = "cover"
    CONTAIN = "contain"
    FILL = "fill"


# Template Models
class TextData(BaseModel):
    """Text element payload."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: Literal["text"] = "text"
    content: Optional[str] = Field(None, description="Default text when no variable is bound")
    font_size: float = Field(16, gt=0, alias="fontSize")
    font_family: str = Field("Arial", alias="fontFamily")
    font_weight: Union[str, int] = Field("normal", alias="fontWeight")
    color: str = Field("#000000", description="Any Pillow-compatible color string")
    text_align: TextAlign = Field(TextAlign.LEFT, alias="textAlign")
    max_width: float = Field(400, gt=0, alias="maxWidth")
    letter_spacing: Optional[float] = Field(None, alias="letterSpacing")


class ImageData(BaseModel):
    """Image element payload."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: Literal["image"] = "image"
    src: Optional[str] = Field(None, description="Default image reference")
    width: Optional[float] = Field(None, gt=0)
    height: Optional[float] = Field(None, gt=0)
    # Kept as a plain string: unrecognized values render like "fill"
    object_fit: str = Field(ObjectFit.FILL.value, alias="objectFit")


ElementData = Annotated[Union[TextData, ImageData], Field(discriminator="type")]


class CanvasElement(BaseModel):
    """One positioned drawable unit bound to a variable name."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str = Field(..., description="Element identifier")
    variable_name: str = Field(..., alias="variableName")
    x: float = Field(0, description="Left edge of the layout box in pixels")
    y: float = Field(0, description="Top edge of the layout box in pixels")
    data: ElementData

    @property
    def element_type(self) -> ElementType:
        return ElementType(self.data.type)


class CanvasTemplate(BaseModel):
    """Fixed-size canvas description plus its ordered element sequence."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    # Non-positive sizes are rejected by the renderer, not here
    width: int = Field(800, description="Canvas width in pixels")
    height: int = Field(600, description="Canvas height in pixels")
    background_image: Optional[str] = Field(None, alias="backgroundImage")
    elements: List[CanvasElement] = Field(default_factory=list)


class TemplateVariable(BaseModel):
    """A variable exposed by a template and its default value."""
    variable_name: str
    element_id: str
    element_type: ElementType
    default_value: Optional[str] = None


# Parsing Results
class ParseResult(BaseModel):
    """Result of template document parsing."""
    success: bool = Field(..., description="Whether parsing succeeded")
    template: Optional[CanvasTemplate] = Field(None, description="Parsed template")
    name: Optional[str] = Field(None, description="Template name from the document")
    errors: List[str] = Field(default_factory=list, description="Parsing errors")
    warnings: List[str] = Field(default_factory=list, description="Parsing warnings")
    processing_time: Optional[float] = Field(None, description="Parsing time in seconds")


# Rendering Models
class RenderResult(BaseModel):
    """Result of rendering a template."""
    png_data: bytes = Field(..., description="Encoded image bytes", exclude=True)
    content_type: str = Field("image/png", description="MIME type of png_data")
    width: int = Field(..., description="Image width")
    height: int = Field(..., description="Image height")
    file_size: int = Field(..., description="File size in bytes")
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Render metadata")


# Persisted Records
class Category(BaseModel):
    """Template category."""
    id: str
    name: str
    color: str = "#3B82F6"
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TemplateRecord(BaseModel):
    """Stored template with its raw config and elements."""
    id: str
    name: str
    config: Dict[str, Any] = Field(default_factory=dict)
    elements: List[Dict[str, Any]] = Field(default_factory=list)
    category_id: Optional[str] = None
    category: Optional[Category] = None
    variables: Optional[List[TemplateVariable]] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class TemplateGroup(BaseModel):
    """Named set of templates that can be activated on a schedule."""
    id: str
    name: str
    description: str = ""
    is_active: bool = False
    template_ids: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class ActiveTemplate(BaseModel):
    """Template entry of the active group with its render URL."""
    template_id: str
    template_name: Optional[str] = None
    template_url: str


class ActiveGroup(BaseModel):
    """The currently active group and its render links."""
    id: str
    name: str
    description: str = ""
    is_active: bool = True
    template_ids: List[str] = Field(default_factory=list)
    templates: List[ActiveTemplate] = Field(default_factory=list)


class Schedule(BaseModel):
    """Wall-clock minute at which a group becomes active."""
    id: str
    group_id: str
    group_name: Optional[str] = None
    year: int
    month: int = Field(..., ge=1, le=12)
    day: int = Field(..., ge=1, le=31)
    hour: int = Field(..., ge=0, le=23)
    minute: int = Field(..., ge=0, le=59)
    is_executed: bool = False
    executed_at: Optional[datetime] = None


# API Request/Response Models
class CategoryRequest(BaseModel):
    """Request model for creating or updating a category."""
    name: str = Field(..., min_length=1)
    color: str = "#3B82F6"


class TemplateRequest(BaseModel):
    """Request model for saving a template."""
    model_config = ConfigDict(populate_by_name=True)

    name: str = Field(..., min_length=1)
    config: Dict[str, Any]
    elements: List[Dict[str, Any]]
    category_id: Optional[str] = Field(None, alias="categoryId")


class TemplateImportRequest(BaseModel):
    """Request model for importing a JSON or YAML template document."""
    content: str = Field(..., min_length=1, description="Template document")
    format: Optional[Literal["json", "yaml"]] = Field(None, description="Override detection")
    category_id: Optional[str] = Field(None, alias="categoryId")


class GroupRequest(BaseModel):
    """Request model for creating or updating a template group."""
    model_config = ConfigDict(populate_by_name=True)

    name: str
    description: str = ""
    template_ids: List[str] = Field(default_factory=list, alias="templateIds")


class ScheduleRequest(BaseModel):
    """Request model for creating a schedule."""
    model_config = ConfigDict(populate_by_name=True)

    group_id: str = Field(..., alias="groupId")
    year: int
    month: int
    day: int
    hour: int
    minute: int


class HealthStatus(BaseModel):
    """Health check status."""
    status: Literal["healthy", "unhealthy", "degraded"] = Field(..., description="Overall status")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    version: str = Field(..., description="Application version")
    database: bool = Field(..., description="Database connectivity")
    scheduler: bool = Field(..., description="Scheduler loop running")
    cached_fonts: int = Field(0, ge=0, description="Fonts available in the cache")


class ErrorResponse(BaseModel):
    """Standard error response model."""
    error: Any = Field(..., description="Error message")
    error_code: Optional[str] = Field(None, description="Error code")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    request_id: Optional[str] = Field(None, description="Request identifier for tracking")
