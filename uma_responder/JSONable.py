# Copyright ©, 2022-present, Lightspark Group, Inc. - All Rights Reserved

import json
from abc import ABC
from dataclasses import fields, is_dataclass
from enum import Enum
from typing import Any, Dict, Type, TypeVar, Union, get_args, get_origin, get_type_hints

T = TypeVar("T", bound="JSONable")


def _to_camel_case(name: str) -> str:
    first, *rest = name.split("_")
    return first + "".join(word.capitalize() for word in rest)


def _serialize(value: Any) -> Any:
    if isinstance(value, JSONable):
        return value.to_dict()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {key: _serialize(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [_serialize(item) for item in value]
    return value


def _deserialize(field_type: Any, value: Any) -> Any:
    if value is None:
        return None
    origin = get_origin(field_type)
    if origin is Union:
        candidates = [arg for arg in get_args(field_type) if arg is not type(None)]
        return _deserialize(candidates[0], value) if len(candidates) == 1 else value
    if origin in (list, tuple):
        (item_type, *_) = get_args(field_type) or (Any,)
        return [_deserialize(item_type, item) for item in value]
    if origin is dict:
        args = get_args(field_type)
        item_type = args[1] if len(args) == 2 else Any
        return {key: _deserialize(item_type, item) for key, item in value.items()}
    if isinstance(field_type, type):
        if issubclass(field_type, JSONable):
            # pylint: disable=protected-access
            return field_type(**field_type._from_dict(value))
        if issubclass(field_type, Enum):
            return field_type(value)
    return value


class JSONable(ABC):
    """
    Base class for the dataclasses exchanged over the wire. Fields are serialized in camelCase unless a
    subclass overrides the name through `_get_field_name_overrides`. Fields set to None are omitted.
    """

    @classmethod
    def _get_field_name_overrides(cls) -> Dict[str, str]:
        return {}

    @classmethod
    def _json_name(cls, field_name: str) -> str:
        return cls._get_field_name_overrides().get(
            field_name, _to_camel_case(field_name)
        )

    def to_dict(self) -> Dict[str, Any]:
        if not is_dataclass(self):
            raise TypeError(f"{type(self).__name__} must be a dataclass.")
        json_dict: Dict[str, Any] = {}
        for field in fields(self):
            value = getattr(self, field.name)
            if value is None:
                continue
            json_dict[self._json_name(field.name)] = _serialize(value)
        return json_dict

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def _from_dict(cls, json_dict: Dict[str, Any]) -> Dict[str, Any]:
        type_hints = get_type_hints(cls)
        data: Dict[str, Any] = {}
        for field in fields(cls):  # type: ignore[arg-type]
            json_name = cls._json_name(field.name)
            if json_name not in json_dict:
                continue
            data[field.name] = _deserialize(
                type_hints.get(field.name, Any), json_dict[json_name]
            )
        return data

    @classmethod
    def from_dict(cls: Type[T], json_dict: Dict[str, Any]) -> T:
        return cls(**cls._from_dict(json_dict))

    @classmethod
    def from_json(cls: Type[T], json_encoded: str) -> T:
        return cls.from_dict(json.loads(json_encoded))
