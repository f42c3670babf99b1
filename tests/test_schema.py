"""Tests for schema translation."""

import json
from enum import Enum
from typing import Any

import pytest
from pydantic import BaseModel, Field, RootModel, create_model

from parsefy import ValidationError
from parsefy.schema import translate_schema


class SampleSchema(BaseModel):
    """Sample schema for testing."""

    name: str = Field(description="A name field")
    value: int = Field(description="A numeric value")


class SampleSchemaWithOptional(BaseModel):
    """Sample schema with optional field for testing."""

    name: str = Field(description="A name field")
    value: int = Field(description="A numeric value")
    notes: str | None = Field(default=None, description="Optional notes")


class Address(BaseModel):
    street: str = Field(description="Street and number")
    city: str | None = None


class Customer(BaseModel):
    address: Address = Field(description="Billing address")
    contacts: list[Address]


class Currency(str, Enum):
    EUR = "EUR"
    USD = "USD"


class TestRequiredFields:
    """Tests for required/optional field translation."""

    def test_required_fields_in_schema(self) -> None:
        """Test that all non-optional fields are marked as required."""
        schema = translate_schema(SampleSchema)

        assert schema["required"] == ["name", "value"]

    def test_optional_fields_not_required(self) -> None:
        """Test that optional fields are not in required array."""
        schema = translate_schema(SampleSchemaWithOptional)

        assert "name" in schema["required"]
        assert "value" in schema["required"]
        assert "notes" not in schema["required"]
        assert "notes" in schema["properties"]

    @pytest.mark.parametrize(
        "flags",
        [
            (True,),
            (False,),
            (True, False, True),
            (False, False, False),
            (True, True, False, False, True),
        ],
    )
    def test_required_matches_definition(self, flags: tuple[bool, ...]) -> None:
        """Test that a field is required exactly when it has no default."""
        fields: dict[str, Any] = {
            f"field_{i}": (str, ...) if required else (str | None, None)
            for i, required in enumerate(flags)
        }
        model = create_model("Dynamic", **fields)

        schema = translate_schema(model)

        expected = {f"field_{i}" for i, required in enumerate(flags) if required}
        assert set(schema.get("required", [])) == expected

    def test_nested_required_fields(self) -> None:
        """Test that nested models keep their own required lists."""
        schema = translate_schema(Customer)

        assert schema["required"] == ["address", "contacts"]
        assert schema["properties"]["contacts"]["items"]["required"] == ["street"]


class TestStripTitles:
    """Tests for title stripping optimization."""

    def test_titles_removed(self) -> None:
        """Test that title keywords are removed at every level."""
        schema = translate_schema(SampleSchema)

        assert "title" not in schema
        assert "title" not in schema["properties"]["name"]
        assert "title" not in schema["properties"]["value"]

    def test_titles_removed_from_nested_models(self) -> None:
        """Test that nested models are stripped as well."""
        schema = translate_schema(Customer)

        assert '"title"' not in json.dumps(schema)

    def test_field_named_title_is_kept(self) -> None:
        """Test that a property called 'title' survives stripping."""

        class Book(BaseModel):
            title: str = Field(description="Book title")
            isbn: str | None = None

        schema = translate_schema(Book)

        assert schema["properties"]["title"] == {"description": "Book title", "type": "string"}
        assert schema["required"] == ["title"]

    def test_default_values_are_not_stripped(self) -> None:
        """Test that instance data inside defaults is copied untouched."""

        class Labeled(BaseModel):
            labels: dict[str, str] = Field(default={"title": "kept"})

        schema = translate_schema(Labeled)

        assert schema["properties"]["labels"]["default"] == {"title": "kept"}


class TestReferences:
    """Tests for $ref inlining."""

    def test_refs_are_inlined(self) -> None:
        """Test that the result is self-contained."""
        schema = translate_schema(Customer)
        dumped = json.dumps(schema)

        assert "$defs" not in schema
        assert "$ref" not in dumped

    def test_descriptions_preserved(self) -> None:
        """Test that field descriptions survive inlining verbatim."""
        schema = translate_schema(Customer)

        assert schema["properties"]["address"]["description"] == "Billing address"
        assert "Street and number" in json.dumps(schema["properties"]["address"])

    def test_enum_fields(self) -> None:
        """Test that enum definitions are inlined."""

        class Payment(BaseModel):
            currency: Currency

        schema = translate_schema(Payment)

        assert schema["properties"]["currency"]["enum"] == ["EUR", "USD"]

    def test_recursive_model_rejected(self) -> None:
        """Test that self-referencing models fail before any request."""

        class Node(BaseModel):
            value: str
            children: list["Node"] = []

        Node.model_rebuild()

        with pytest.raises(ValidationError) as exc_info:
            translate_schema(Node)
        assert exc_info.value.code == "INVALID_SCHEMA"
        assert "Recursive" in str(exc_info.value)


class TestInvalidSchemas:
    """Tests for schemas that cannot be sent."""

    def test_not_a_model(self) -> None:
        """Test that non-model schemas are rejected."""
        with pytest.raises(ValidationError) as exc_info:
            translate_schema({"type": "object"})  # type: ignore[arg-type]
        assert exc_info.value.code == "INVALID_SCHEMA"

    def test_not_a_model_class(self) -> None:
        """Test that arbitrary classes are rejected."""
        with pytest.raises(ValidationError):
            translate_schema(dict)  # type: ignore[arg-type]

    def test_untyped_field_rejected(self) -> None:
        """Test that fields without a usable type are rejected."""

        class Loose(BaseModel):
            payload: Any

        with pytest.raises(ValidationError) as exc_info:
            translate_schema(Loose)
        assert "$.payload" in str(exc_info.value)

    def test_untyped_list_items_rejected(self) -> None:
        """Test that lists must declare their item type."""

        class Loose(BaseModel):
            items: list[Any]

        with pytest.raises(ValidationError) as exc_info:
            translate_schema(Loose)
        assert "$.items[*]" in str(exc_info.value)

    def test_root_must_be_object(self) -> None:
        """Test that non-object root models are rejected."""

        class Names(RootModel[list[str]]):
            pass

        with pytest.raises(ValidationError) as exc_info:
            translate_schema(Names)
        assert "must describe an object" in str(exc_info.value)


class TestPurity:
    """Tests that translation has no side effects."""

    def test_translation_is_repeatable(self) -> None:
        """Test that translating twice gives equal results."""
        assert translate_schema(Customer) == translate_schema(Customer)

    def test_result_is_json_serializable(self) -> None:
        """Test that the result can be sent as output_schema."""
        assert json.loads(json.dumps(translate_schema(Customer))) == translate_schema(Customer)
