"""
Template Parser
===============

Parsing and validation of canvas template documents. Templates arrive as
stored ``config`` + ``elements`` payloads or as JSON/YAML documents for
import; both end up as a validated CanvasTemplate.
"""

from typing import Dict, List, Any, Optional, Tuple
import json
import yaml  # type: ignore[import-untyped]
import time
from abc import ABC, abstractmethod
from cerberus import Validator  # type: ignore[import-untyped]
from pydantic import ValidationError

from dynamic_canvas.config.logging import get_logger
from dynamic_canvas.models.schemas import (
    CanvasTemplate,
    ElementType,
    ImageData,
    ParseResult,
    TemplateVariable,
    TextData,
)

logger = get_logger(__name__)

LARGE_CANVAS_PIXELS = 4096 * 4096


class TemplateParseError(Exception):
    """Exception raised when a template payload cannot be converted."""

    pass


class TemplateValidator:
    """Template payload validation using Cerberus schemas."""

    def __init__(self) -> None:
        self.logger: Any = logger.bind(component="validator")
        self._setup_schemas()

    def _setup_schemas(self) -> None:
        self.data_schema = {
            "type": {"type": "string", "required": True, "allowed": [e.value for e in ElementType]},
            "content": {"type": "string", "nullable": True},
            "fontSize": {"type": "number", "min": 0.1},
            "fontFamily": {"type": "string"},
            "fontWeight": {"type": ["string", "integer"]},
            "color": {"type": "string"},
            "textAlign": {"type": "string", "allowed": ["left", "center", "right"]},
            "maxWidth": {"type": "number", "min": 0.1},
            "letterSpacing": {"type": "number", "nullable": True},
            "src": {"type": "string", "nullable": True},
            "width": {"type": "number", "min": 0.1, "nullable": True},
            "height": {"type": "number", "min": 0.1, "nullable": True},
            "objectFit": {"type": "string"},
        }

        self.element_schema = {
            "id": {"type": "string", "required": True, "empty": False},
            "variableName": {"type": "string", "required": True, "empty": False},
            "x": {"type": "number", "required": True},
            "y": {"type": "number", "required": True},
            "data": {"type": "dict", "required": True, "schema": self.data_schema},
        }

        self.document_schema: Dict[str, Any] = {
            "name": {"type": "string", "nullable": True},
            "width": {"type": "integer", "min": 1, "default": 800},
            "height": {"type": "integer", "min": 1, "default": 600},
            "backgroundImage": {"type": "string", "nullable": True},
            "elements": {
                "type": "list",
                "required": True,
                "schema": {"type": "dict", "schema": self.element_schema},
            },
        }

    def validate_document(self, data: Dict[str, Any]) -> Tuple[bool, List[str], List[str]]:
        """
        Validate a flat template document.

        Args:
            data: Document data with width, height, backgroundImage and elements

        Returns:
            Tuple of (is_valid, errors, warnings)
        """
        validator = Validator(self.document_schema)  # type: ignore[misc]
        validator.allow_unknown = True

        is_valid = validator.validate(data)
        errors: List[str] = []
        warnings: List[str] = []

        if not is_valid:
            errors.extend(self._format_validation_errors(validator.errors))

        warnings.extend(self._collect_warnings(data))
        return is_valid, errors, warnings

    def _format_validation_errors(self, errors: Any, path: str = "") -> List[str]:
        """Format Cerberus validation errors into readable messages."""
        formatted: List[str] = []

        for field, error_info in errors.items():
            current_path = f"{path}.{field}" if path else str(field)

            if isinstance(error_info, list):
                for error in error_info:
                    if isinstance(error, dict):
                        formatted.extend(self._format_validation_errors(error, current_path))
                    else:
                        formatted.append(f"{current_path}: {error}")
            elif isinstance(error_info, dict):
                formatted.extend(self._format_validation_errors(error_info, current_path))

        return formatted

    def _collect_warnings(self, data: Dict[str, Any]) -> List[str]:
        warnings: List[str] = []
        width = data.get("width", 800)
        height = data.get("height", 600)
        elements = data.get("elements") or []

        if isinstance(width, int) and isinstance(height, int) and width * height > LARGE_CANVAS_PIXELS:
            warnings.append(f"Large canvas size ({width}x{height}) may impact performance")

        seen: Dict[str, str] = {}
        for i, element in enumerate(elements):
            if not isinstance(element, dict):
                continue
            path = f"elements[{i}]"
            element_data = element.get("data") or {}
            element_type = element_data.get("type") if isinstance(element_data, dict) else None

            if element_type == ElementType.IMAGE.value and not element_data.get("src"):
                warnings.append(f"{path}: Image element has no default 'src'; a placeholder is drawn")
            if element_type == ElementType.TEXT.value and not element_data.get("content"):
                warnings.append(f"{path}: Text element has no default 'content'")

            name = element.get("variableName")
            if isinstance(name, str):
                if name in seen:
                    warnings.append(f"{path}: Variable '{name}' is also bound by element {seen[name]}")
                else:
                    seen[name] = str(element.get("id"))

            x, y = element.get("x"), element.get("y")
            if isinstance(x, (int, float)) and isinstance(y, (int, float)) and isinstance(width, int) and isinstance(height, int):
                if x < 0 or y < 0 or x >= width or y >= height:
                    warnings.append(f"{path}: Origin ({x}, {y}) lies outside the canvas")

        return warnings


def normalize_document(raw_data: Dict[str, Any]) -> Dict[str, Any]:
    """Flatten a stored-style document ({config, elements}) into one mapping."""
    config = raw_data.get("config")
    if not isinstance(config, dict):
        return raw_data
    flat = {key: value for key, value in raw_data.items() if key != "config"}
    for key in ("width", "height", "backgroundImage"):
        if key in config:
            flat[key] = config[key]
    return flat


def template_from_payload(config: Dict[str, Any], elements: List[Dict[str, Any]]) -> CanvasTemplate:
    """
    Build a CanvasTemplate from a stored config and elements payload.

    Raises:
        TemplateParseError: If the payload does not describe a valid template.
    """
    try:
        return CanvasTemplate.model_validate(
            {
                "width": config.get("width", 800),
                "height": config.get("height", 600),
                "backgroundImage": config.get("backgroundImage"),
                "elements": elements,
            }
        )
    except ValidationError as e:
        raise TemplateParseError(f"Invalid template payload: {e}")


def extract_variables(template: CanvasTemplate) -> List[TemplateVariable]:
    """Variables exposed by template, one per element, in element order."""
    variables: List[TemplateVariable] = []
    for element in template.elements:
        if isinstance(element.data, TextData):
            default = element.data.content
        elif isinstance(element.data, ImageData):
            default = element.data.src
        else:
            default = None
        variables.append(
            TemplateVariable(
                variable_name=element.variable_name,
                element_id=element.id,
                element_type=element.element_type,
                default_value=default,
            )
        )
    return variables


class BaseTemplateParser(ABC):
    """Abstract base class for template document parsers."""

    def __init__(self) -> None:
        self.validator = TemplateValidator()

    @abstractmethod
    def load(self, content: str) -> Any:
        """Deserialize document content."""
        pass

    async def parse(self, content: str) -> ParseResult:
        """Parse document content into a validated CanvasTemplate."""
        start_time = time.time()
        try:
            raw_data = self.load(content)
        except (json.JSONDecodeError, yaml.YAMLError) as e:
            error_msg = self.describe_syntax_error(e)
            self.logger.error("Template document syntax error", error=error_msg)
            return ParseResult(success=False, errors=[error_msg], processing_time=time.time() - start_time)

        if not isinstance(raw_data, dict):
            return ParseResult(
                success=False,
                errors=[f"Template document must be an object, got {type(raw_data).__name__}"],
                processing_time=time.time() - start_time,
            )

        data = normalize_document(raw_data)
        is_valid, errors, warnings = self.validator.validate_document(data)
        if not is_valid:
            return ParseResult(
                success=False, errors=errors, warnings=warnings, processing_time=time.time() - start_time
            )

        try:
            template = CanvasTemplate.model_validate(data)
        except ValidationError as e:
            return ParseResult(
                success=False,
                errors=[f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()],
                warnings=warnings,
                processing_time=time.time() - start_time,
            )

        return ParseResult(
            success=True,
            template=template,
            name=data.get("name"),
            warnings=warnings,
            processing_time=time.time() - start_time,
        )

    def describe_syntax_error(self, error: Exception) -> str:
        return f"Invalid syntax: {error}"


class JSONTemplateParser(BaseTemplateParser):
    """JSON template document parser."""

    def __init__(self) -> None:
        super().__init__()
        self.logger: Any = logger.bind(parser="json")

    def load(self, content: str) -> Any:
        return json.loads(content)

    def describe_syntax_error(self, error: Exception) -> str:
        if isinstance(error, json.JSONDecodeError):
            return f"Invalid JSON syntax at line {error.lineno}, column {error.colno}: {error.msg}"
        return super().describe_syntax_error(error)


class YAMLTemplateParser(BaseTemplateParser):
    """YAML template document parser."""

    def __init__(self) -> None:
        super().__init__()
        self.logger: Any = logger.bind(parser="yaml")

    def load(self, content: str) -> Any:
        return yaml.safe_load(content)

    def describe_syntax_error(self, error: Exception) -> str:
        return f"Invalid YAML syntax: {error}"


class TemplateParserFactory:
    """Factory for creating template parsers based on content type."""

    _parsers = {
        "json": JSONTemplateParser,
        "yaml": YAMLTemplateParser,
    }

    @classmethod
    def create_parser(cls, parser_type: str) -> BaseTemplateParser:
        """
        Create a parser instance.

        Raises:
            ValueError: If parser type is not supported
        """
        if parser_type not in cls._parsers:
            raise ValueError(f"Unsupported parser type: {parser_type}")
        return cls._parsers[parser_type]()

    @classmethod
    def detect_parser_type(cls, content: str) -> str:
        """Detect document format from content."""
        content = content.strip()
        if content.startswith(("{", "[")):
            return "json"
        if content.startswith("---"):
            return "yaml"
        try:
            json.loads(content)
            return "json"
        except json.JSONDecodeError:
            return "yaml"


async def parse_template(content: str, parser_type: Optional[str] = None) -> ParseResult:
    """
    Parse a template document.

    Args:
        content: Raw document content
        parser_type: Optional parser type override ("json" or "yaml")

    Returns:
        ParseResult containing the parsed template or errors
    """
    if not content or not content.strip():
        return ParseResult(success=False, errors=["Empty template document provided"], processing_time=0.0)

    if not parser_type:
        parser_type = TemplateParserFactory.detect_parser_type(content)

    try:
        parser = TemplateParserFactory.create_parser(parser_type)
    except ValueError as e:
        return ParseResult(success=False, errors=[str(e)], processing_time=0.0)
    return await parser.parse(content)
