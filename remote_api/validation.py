"""Bean validation of request parameters and response results.

Pydantic models and dataclasses carry their constraints in their type; the
bean validator re-runs that validation on an existing instance, so values
that bypassed validation (model_construct(), attribute assignment, a
dataclass built by hand) are checked before they are sent or returned.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Iterable, Mapping
from functools import lru_cache
from typing import Any

from pydantic import BaseModel, PydanticSchemaGenerationError, TypeAdapter


class SendReceiveValidatorOption:
    """How validation failures of one call are handled.

    Suppressed validation is skipped; "warn" validation is logged at WARNING
    and the call goes on; otherwise the failure raises.
    """

    def __init__(self) -> None:
        self.warn_param = False
        self.warn_return = False
        self.param_suppressed = False
        self.return_suppressed = False

    def handle_as_warn_param(self) -> SendReceiveValidatorOption:
        self.warn_param = True
        return self

    def handle_as_warn_return(self) -> SendReceiveValidatorOption:
        self.warn_return = True
        return self

    def suppress_param(self) -> SendReceiveValidatorOption:
        self.param_suppressed = True
        return self

    def suppress_return(self) -> SendReceiveValidatorOption:
        self.return_suppressed = True
        return self

    def __repr__(self) -> str:
        return (
            f"validator:{{warn:{{{self.warn_param}, {self.warn_return}}}, "
            f"suppress:{{{self.param_suppressed}, {self.return_suppressed}}}}}"
        )


class BeanValidator:
    """Re-validates pydantic models and dataclasses, recursing into nested values.

    Validation reads the instance's own field values, so computed fields and
    fields excluded from dumps take no part in it. Other values (strings,
    numbers) have no declared constraints and pass as-is, as do dataclasses
    with fields pydantic has no schema for.
    """

    def validate(self, bean: Any) -> None:
        """Validate the bean.

        Raises:
            pydantic.ValidationError: If the bean breaks its declared constraints.
        """
        if bean is None:
            return
        if isinstance(bean, BaseModel):
            values = _model_values(bean)
            type(bean).model_validate(values, by_name=True)
            self._validate_nested(values.values())
        elif dataclasses.is_dataclass(bean) and not isinstance(bean, type):
            try:
                adapter = _adapter(type(bean))
            except PydanticSchemaGenerationError:
                return
            values = {f.name: getattr(bean, f.name) for f in dataclasses.fields(bean) if f.init}
            adapter.validate_python(values)
            self._validate_nested(values.values())
        elif isinstance(bean, Mapping):
            self._validate_nested(bean.values())
        elif isinstance(bean, (list, tuple, set, frozenset)):
            self._validate_nested(bean)

    def _validate_nested(self, values: Iterable[Any]) -> None:
        # nested instances are accepted as-is by their parent's validation
        for value in values:
            self.validate(value)


def _model_values(bean: BaseModel) -> dict[str, Any]:
    """Field name -> value as held by the instance, extras included."""
    fields = type(bean).model_fields
    values = {name: value for name, value in bean.__dict__.items() if name in fields}
    values.update(bean.__pydantic_extra__ or {})
    return values


@lru_cache(maxsize=256)
def _adapter(tp: type) -> TypeAdapter:
    return TypeAdapter(tp)
