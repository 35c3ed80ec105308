"""Tests for the mapping policy, parameter serializer and form field enumeration.

Tests cover:
- Serialization dispatch: date, datetime, bool, classification, enum, other
- SelectedMappingPolicy fluent configuration
- Boolean deserialization
- form_fields over models, dataclasses, mappings and explicit providers
"""

from __future__ import annotations

import dataclasses
from datetime import date, datetime
from enum import Enum

import pytest
from hypothesis import given
from hypothesis import strategies as st
from pydantic import BaseModel, Field

from remote_api.mapping import (
    ParameterSerializer,
    SelectedMappingPolicy,
    VacantMappingPolicy,
    boolean_value_of,
    form_fields,
    is_collection,
)
from tests.conftest import Flg, MemberStatus


class Color(Enum):
    RED = "red"


class TestSerializedParameterValue:
    """One dispatch table for every wire value."""

    def setup_method(self) -> None:
        self.serializer = ParameterSerializer()
        self.policy = VacantMappingPolicy()

    def test_none_stays_none(self) -> None:
        assert self.serializer.serialized_parameter_value(None, self.policy) is None

    def test_date_iso_default(self) -> None:
        assert self.serializer.serialized_parameter_value(date(2017, 10, 14), self.policy) == "2017-10-14"

    def test_datetime_iso_default(self) -> None:
        value = datetime(2017, 10, 14, 0, 31, 54)
        assert self.serializer.serialized_parameter_value(value, self.policy) == "2017-10-14T00:31:54"

    def test_boolean_default(self) -> None:
        assert self.serializer.serialized_parameter_value(True, self.policy) == "true"
        assert self.serializer.serialized_parameter_value(False, self.policy) == "false"

    def test_classification_code(self) -> None:
        assert self.serializer.serialized_parameter_value(MemberStatus.FORMALIZED, self.policy) == "FML"

    def test_classification_preferred_item(self) -> None:
        policy = SelectedMappingPolicy().with_cls_preferred_item("flag")
        assert self.serializer.serialized_parameter_value(Flg.TRUE, policy) == "true"

    def test_classification_preferred_item_missing_falls_back_to_code(self) -> None:
        policy = SelectedMappingPolicy().with_cls_preferred_item("flag")
        assert self.serializer.serialized_parameter_value(MemberStatus.PROVISIONAL, policy) == "PRV"

    def test_plain_enum_value(self) -> None:
        assert self.serializer.serialized_parameter_value(Color.RED, self.policy) == "red"

    def test_other_values_use_str(self) -> None:
        assert self.serializer.serialized_parameter_value(3, self.policy) == "3"
        assert self.serializer.serialized_parameter_value("", self.policy) == ""

    def test_name_is_kept(self) -> None:
        assert self.serializer.serialized_parameter_name("stage_list", self.policy) == "stage_list"


class TestSelectedMappingPolicy:
    """Fluent policy configuration."""

    def test_strftime_patterns(self) -> None:
        policy = SelectedMappingPolicy().with_date_formatter("%Y/%m/%d").with_datetime_formatter("%Y%m%d%H%M")
        serializer = ParameterSerializer()
        assert serializer.serialized_parameter_value(date(2017, 1, 2), policy) == "2017/01/02"
        assert serializer.serialized_parameter_value(datetime(2017, 1, 2, 3, 4), policy) == "201701020304"

    def test_callable_formatter(self) -> None:
        policy = SelectedMappingPolicy().with_date_formatter(lambda d: f"{d.year}")
        assert ParameterSerializer().serialized_parameter_value(date(2017, 1, 2), policy) == "2017"

    def test_strftime_patterns_read_back(self) -> None:
        policy = SelectedMappingPolicy().with_date_formatter("%Y/%m/%d").with_datetime_formatter("%Y%m%d%H%M")
        assert policy.date_parser()("2017/01/02") == date(2017, 1, 2)
        assert policy.datetime_parser()("201701020304") == datetime(2017, 1, 2, 3, 4)

    def test_callable_formatter_has_no_parser_unless_given(self) -> None:
        assert SelectedMappingPolicy().with_date_formatter(lambda d: f"{d.year}").date_parser() is None
        parser = lambda exp: date(int(exp), 1, 1)  # noqa: E731
        assert SelectedMappingPolicy().with_date_formatter(lambda d: f"{d.year}", parser=parser).date_parser() is parser

    def test_vacant_policy_reads_nothing(self) -> None:
        policy = VacantMappingPolicy()
        assert policy.date_parser() is None
        assert policy.datetime_parser() is None
        assert policy.boolean_deserializer() is None

    def test_boolean_serializer(self) -> None:
        policy = SelectedMappingPolicy().with_boolean_serializer(lambda b: "1" if b else "0")
        assert ParameterSerializer().serialized_parameter_value(True, policy) == "1"

    def test_boolean_deserializer(self) -> None:
        policy = SelectedMappingPolicy().with_boolean_deserializer(lambda exp: exp == "1")
        assert policy.deserialize_boolean("1") is True
        assert policy.deserialize_boolean("true") is False

    def test_empty_preferred_item_rejected(self) -> None:
        with pytest.raises(ValueError):
            SelectedMappingPolicy().with_cls_preferred_item("")

    def test_non_callable_formatter_rejected(self) -> None:
        with pytest.raises(TypeError):
            SelectedMappingPolicy().with_date_formatter(3)  # type: ignore[arg-type]


class TestBooleanValueOf:
    """Only "true" in any case reads as True."""

    @pytest.mark.parametrize("exp", ["true", "TRUE", "True"])
    def test_true_expressions(self, exp: str) -> None:
        assert boolean_value_of(exp) is True

    @pytest.mark.parametrize("exp", ["false", "1", "yes", ""])
    def test_false_expressions(self, exp: str) -> None:
        assert boolean_value_of(exp) is False

    def test_none(self) -> None:
        assert boolean_value_of(None) is None


class TestDefaultDateRoundTrip:
    """Default date formatting reads back to the same calendar date."""

    @given(st.dates())
    def test_iso_default_round_trip(self, value: date) -> None:
        exp = ParameterSerializer().serialized_parameter_value(value, VacantMappingPolicy())
        assert date.fromisoformat(exp) == value


class TestFormFields:
    """Field enumeration in declaration order."""

    def test_pydantic_model_uses_alias(self) -> None:
        class Query(BaseModel):
            sea_id: int = Field(alias="seaId")
            land: str | None = None

        assert form_fields(Query(seaId=3)) == [("seaId", 3), ("land", None)]

    def test_dataclass(self) -> None:
        @dataclasses.dataclass
        class Query:
            sea: str
            land: int = 1

        assert form_fields(Query("mystic")) == [("sea", "mystic"), ("land", 1)]

    def test_mapping(self) -> None:
        assert form_fields({"sea": "mystic", "land": None}) == [("sea", "mystic"), ("land", None)]

    def test_provider_wins(self) -> None:
        class Query:
            def to_form_fields(self) -> list[tuple[str, object]]:
                return [("z", 1), ("a", 2)]

        assert form_fields(Query()) == [("z", 1), ("a", 2)]

    def test_plain_object_public_attributes(self) -> None:
        class Query:
            def __init__(self) -> None:
                self.sea = "mystic"
                self._hidden = "x"

        assert form_fields(Query()) == [("sea", "mystic")]

    def test_no_fields_rejected(self) -> None:
        with pytest.raises(TypeError):
            form_fields(3)


class TestIsCollection:
    def test_collections(self) -> None:
        assert is_collection([1])
        assert is_collection((1,))
        assert is_collection({1})

    def test_strings_are_scalars(self) -> None:
        assert not is_collection("abc")
        assert not is_collection({"a": 1})
