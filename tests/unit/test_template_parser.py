"""
Unit Tests for Template Parser
==============================

Tests for document validation, JSON/YAML parsing, format detection and
stored payload conversion.
"""

import json

import pytest

from dynamic_canvas.core.template.parser import (
    JSONTemplateParser,
    TemplateParseError,
    TemplateParserFactory,
    TemplateValidator,
    YAMLTemplateParser,
    extract_variables,
    normalize_document,
    parse_template,
    template_from_payload,
)
from dynamic_canvas.models.schemas import ElementType, ImageData, TextData

from tests.utils.assertions import assert_failed_parse_result, assert_successful_parse_result

YAML_DOCUMENT = """\
---
name: Menu board
width: 320
height: 240
elements:
  - id: dish
    variableName: dish
    x: 10
    y: 10
    data:
      type: text
      content: Pasta
      fontSize: 24
  - id: photo
    variableName: photo
    x: 10
    y: 60
    data:
      type: image
      src: BASE_URL/uploads/pasta.png
      objectFit: cover
"""


class TestTemplateValidator:

    def setup_method(self):
        self.validator = TemplateValidator()

    def test_valid_document(self, sample_template_payload):
        is_valid, errors, warnings = self.validator.validate_document(normalize_document(sample_template_payload))
        assert is_valid
        assert errors == []
        assert warnings == []

    def test_missing_elements(self):
        is_valid, errors, _ = self.validator.validate_document({"width": 100, "height": 100})
        assert not is_valid
        assert any(error.startswith("elements") for error in errors)

    def test_unknown_element_type(self):
        document = {
            "elements": [{"id": "a", "variableName": "a", "x": 0, "y": 0, "data": {"type": "video"}}]
        }
        is_valid, errors, _ = self.validator.validate_document(document)
        assert not is_valid
        assert any("type" in error for error in errors)

    def test_non_positive_width(self):
        is_valid, errors, _ = self.validator.validate_document({"width": 0, "height": 10, "elements": []})
        assert not is_valid
        assert any(error.startswith("width") for error in errors)

    def test_warnings(self):
        document = {
            "width": 5000,
            "height": 5000,
            "elements": [
                {"id": "a", "variableName": "v", "x": 0, "y": 0, "data": {"type": "image"}},
                {"id": "b", "variableName": "v", "x": 6000, "y": 0, "data": {"type": "text"}},
            ],
        }
        is_valid, _, warnings = self.validator.validate_document(document)
        assert is_valid
        joined = "\n".join(warnings)
        assert "Large canvas" in joined
        assert "placeholder" in joined
        assert "no default 'content'" in joined
        assert "also bound by element a" in joined
        assert "outside the canvas" in joined


class TestParsers:

    @pytest.mark.asyncio
    async def test_json_stored_style_document(self, sample_template_payload):
        result = await JSONTemplateParser().parse(json.dumps({"name": "Sale", **sample_template_payload}))
        assert_successful_parse_result(result)
        assert result.name == "Sale"
        assert (result.template.width, result.template.height) == (600, 400)
        assert [e.id for e in result.template.elements] == ["title", "hero"]

    @pytest.mark.asyncio
    async def test_yaml_flat_document(self):
        result = await YAMLTemplateParser().parse(YAML_DOCUMENT)
        assert_successful_parse_result(result)
        assert result.name == "Menu board"
        photo = result.template.elements[1].data
        assert isinstance(photo, ImageData)
        assert photo.object_fit == "cover"

    @pytest.mark.asyncio
    async def test_json_syntax_error_reports_position(self):
        result = await JSONTemplateParser().parse('{"elements": [}')
        assert_failed_parse_result(result)
        assert "line 1" in result.errors[0]

    @pytest.mark.asyncio
    async def test_yaml_syntax_error(self):
        result = await YAMLTemplateParser().parse("elements: [unclosed")
        assert_failed_parse_result(result)
        assert result.errors[0].startswith("Invalid YAML syntax")

    @pytest.mark.asyncio
    async def test_non_object_document(self):
        result = await JSONTemplateParser().parse("[1, 2, 3]")
        assert_failed_parse_result(result)
        assert "must be an object" in result.errors[0]

    @pytest.mark.asyncio
    async def test_validation_errors_are_returned(self):
        result = await JSONTemplateParser().parse(json.dumps({"width": "wide", "elements": []}))
        assert_failed_parse_result(result)
        assert any(error.startswith("width") for error in result.errors)


class TestParserFactory:

    def test_create_parser(self):
        assert isinstance(TemplateParserFactory.create_parser("json"), JSONTemplateParser)
        assert isinstance(TemplateParserFactory.create_parser("yaml"), YAMLTemplateParser)

    def test_unsupported_parser(self):
        with pytest.raises(ValueError, match="Unsupported parser type"):
            TemplateParserFactory.create_parser("xml")

    @pytest.mark.parametrize(
        "content,expected",
        [('{"a": 1}', "json"), ("  [1]", "json"), ("---\na: 1", "yaml"), ("a: 1", "yaml"), ("42", "json")],
    )
    def test_detect_parser_type(self, content, expected):
        assert TemplateParserFactory.detect_parser_type(content) == expected


class TestParseTemplate:

    @pytest.mark.asyncio
    async def test_empty_content(self):
        result = await parse_template("   ")
        assert_failed_parse_result(result)

    @pytest.mark.asyncio
    async def test_detects_yaml(self):
        result = await parse_template(YAML_DOCUMENT)
        assert_successful_parse_result(result)

    @pytest.mark.asyncio
    async def test_unknown_parser_type(self):
        result = await parse_template("{}", parser_type="toml")
        assert_failed_parse_result(result)


class TestPayloadConversion:

    def test_template_from_payload(self, sample_template_payload):
        template = template_from_payload(sample_template_payload["config"], sample_template_payload["elements"])
        assert template.width == 600
        assert isinstance(template.elements[0].data, TextData)
        assert template.elements[0].data.font_family == "Montserrat, sans-serif"

    def test_template_from_payload_defaults(self):
        template = template_from_payload({}, [])
        assert (template.width, template.height) == (800, 600)
        assert template.elements == []

    def test_invalid_payload_raises(self):
        with pytest.raises(TemplateParseError):
            template_from_payload({"width": 10}, [{"id": "a", "data": {"type": "shape"}}])

    def test_extract_variables_in_element_order(self, sample_template_payload):
        template = template_from_payload(sample_template_payload["config"], sample_template_payload["elements"])
        variables = extract_variables(template)
        assert [(v.variable_name, v.element_type, v.default_value) for v in variables] == [
            ("title", ElementType.TEXT, "Summer Sale"),
            ("hero", ElementType.IMAGE, "https://example.com/hero.png"),
        ]

    def test_normalize_leaves_flat_documents_alone(self):
        flat = {"width": 1, "elements": []}
        assert normalize_document(flat) is flat
