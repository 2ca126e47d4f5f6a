"""Typed (de)serialization of message bodies"""

import dataclasses
import types
from functools import lru_cache
from typing import Annotated, Any, Union, get_args, get_origin, get_type_hints, is_typeddict
from xml.parsers.expat import ExpatError

import orjson
import xmltodict
from loguru import logger
from pydantic import BaseModel, PydanticSchemaGenerationError, TypeAdapter, ValidationError
from pydantic_core import PydanticSerializationError

from queuewatch.codec.detect import detect_format
from queuewatch.codec.encoding import extract_text
from queuewatch.models.payload import BodyFormat, MessagePayload
from queuewatch.models.results import ErrorKind, OperationResult

BINARY_DESERIALIZE_REFUSED = (
    "Binary deserialization is not supported due to security concerns. Use JSON or XML formats instead."
)
BINARY_SERIALIZE_REFUSED = (
    "Binary serialization is not supported due to security concerns. Use JSON or XML formats instead."
)
LIST_ITEM_TAG = "item"
NIL_ATTRIBUTE = "@nil"
TEXT_KEY = "#text"

_SEQUENCE_TYPES = (list, set, frozenset, tuple)


@lru_cache(maxsize=256)
def _adapter(target: Any) -> TypeAdapter:
    return TypeAdapter(target)


def adapter_for(target: Any) -> TypeAdapter:
    try:
        return _adapter(target)
    except TypeError:
        # unhashable annotations bypass the cache
        return TypeAdapter(target)


def xml_root_name(target: Any) -> str:
    origin = get_origin(target) or target
    return getattr(origin, "__name__", "value")


def _is_sequence(annotation: Any) -> bool:
    return (get_origin(annotation) or annotation) in _SEQUENCE_TYPES


def _field_types(annotation: Any) -> dict[str, Any] | None:
    if isinstance(annotation, type) and issubclass(annotation, BaseModel):
        return {name: info.annotation for name, info in annotation.model_fields.items()}
    if dataclasses.is_dataclass(annotation) or is_typeddict(annotation):
        return get_type_hints(annotation)
    return None


def _is_layout(key: str, item: Any) -> bool:
    return key == TEXT_KEY and isinstance(item, str) and not item.strip()


def _children(value: dict) -> dict:
    """Element content without the indentation text between child elements."""
    return {key: item for key, item in value.items() if not _is_layout(key, item)}


def _is_nil(value: Any) -> bool:
    return isinstance(value, dict) and _children(value) == {NIL_ATTRIBUTE: "true"}


def _mark_nil(data: Any) -> Any:
    if data is None:
        return {NIL_ATTRIBUTE: "true"}
    if isinstance(data, dict):
        return {key: _mark_nil(item) for key, item in data.items()}
    if isinstance(data, list):
        return [_mark_nil(item) for item in data]
    return data


def _plain(value: Any) -> Any:
    if _is_nil(value):
        return None
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in _children(value).items()}
    if isinstance(value, list):
        return [_plain(item) for item in value]
    return value


def conform(value: Any, annotation: Any) -> Any:
    """
    Reshape an XML element tree into the shape ``annotation`` declares.

    XML cannot tell a one-item list from a single child, an empty element
    from a missing value, or an empty list from an absent element, so the
    target type decides: single values become one-item lists, empty elements
    become empty strings, mappings or lists, and absent list fields become
    empty lists. Elements flagged ``nil="true"`` are None. Values that do not
    have the declared shape are passed through for validation to reject.
    """
    if _is_nil(value):
        return None

    origin = get_origin(annotation)
    args = get_args(annotation)

    if annotation is Any:
        return _plain(value)
    if origin is Annotated:
        return conform(value, args[0])
    if origin is Union or origin is types.UnionType:
        members = [arg for arg in args if arg is not type(None)]
        if len(members) == 1:
            return conform(value, members[0])
        return _plain(value)

    if _is_sequence(annotation):
        if value is None:
            return []
        if not isinstance(value, list):
            value = [value]
        if origin is tuple and args and not (len(args) == 2 and args[1] is Ellipsis):
            return [conform(item, arg) for item, arg in zip(value, args)]
        item_type = args[0] if args else Any
        return [conform(item, item_type) for item in value]

    if (origin or annotation) is dict:
        if value is None:
            return {}
        if not isinstance(value, dict):
            return value
        value_type = args[1] if len(args) == 2 else Any
        return {key: conform(item, value_type) for key, item in _children(value).items()}

    if annotation is str:
        return "" if value is None else _plain(value)

    field_types = _field_types(annotation)
    if field_types is not None:
        if value is None:
            value = {}
        if not isinstance(value, dict):
            return value
        shaped = {}
        for name, field_type in field_types.items():
            if name in value:
                shaped[name] = conform(value[name], field_type)
            elif _is_sequence(field_type):
                shaped[name] = []
        return shaped

    return _plain(value)


def _to_xml(obj: Any, indent: bool) -> str:
    data = _mark_nil(adapter_for(type(obj)).dump_python(obj, mode="json"))
    if isinstance(data, list):
        data = {LIST_ITEM_TAG: data}
    return xmltodict.unparse(
        {xml_root_name(type(obj)): data},
        pretty=indent,
        indent="  ",
        newl="\n",
    )


def _from_xml(text: str, target: Any) -> Any:
    # whitespace inside text elements is content
    document = xmltodict.parse(text, disable_entities=True, strip_whitespace=False)
    root, value = next(iter(document.items()))
    if _is_sequence(target):
        if isinstance(value, dict):
            value = _children(value).get(LIST_ITEM_TAG)
        elif isinstance(value, str) and value.strip():
            raise ValueError(f"Expected <{LIST_ITEM_TAG}> elements inside <{root}>")
        else:
            value = None
    return adapter_for(target).validate_python(conform(value, target))


def _to_json(obj: Any, indent: bool) -> str:
    data = adapter_for(type(obj)).dump_python(obj, mode="json")
    option = orjson.OPT_INDENT_2 if indent else 0
    return orjson.dumps(data, option=option).decode("utf-8")


def _from_json(text: str, target: Any) -> Any:
    return adapter_for(target).validate_python(orjson.loads(text))


def deserialize(payload: MessagePayload, target: Any, fmt: BodyFormat | None = None) -> OperationResult[Any]:
    """
    Turn a payload into a value of ``target`` type.

    Args:
        payload: Message body to read
        target: Any type pydantic can validate (models, dataclasses, containers, scalars)
        fmt: Format to read the payload as; detected from content when omitted

    Returns:
        OperationResult: The value in ``data``, or the parse/validation error.
        Binary payloads are always refused.
    """
    fmt = fmt or detect_format(payload)
    if fmt == BodyFormat.BINARY:
        return OperationResult.fail(BINARY_DESERIALIZE_REFUSED, kind=ErrorKind.UNSUPPORTED)
    if fmt == BodyFormat.UNKNOWN:
        return OperationResult.fail("Cannot deserialize content of unknown format", kind=ErrorKind.UNSUPPORTED)

    text = extract_text(payload)
    if text is None:
        return OperationResult.fail(f"Content is not valid {payload.encoding} text", kind=ErrorKind.MALFORMED)

    try:
        match fmt:
            case BodyFormat.TEXT:
                if target is not str:
                    return OperationResult.fail(
                        "Text content can only be deserialized to str", kind=ErrorKind.UNSUPPORTED
                    )
                value = text
            case BodyFormat.XML:
                value = _from_xml(text, target)
            case BodyFormat.JSON:
                value = _from_json(text, target)
    except PydanticSchemaGenerationError as e:
        return OperationResult.fail(f"Unsupported target type {target!r}: {e}", kind=ErrorKind.UNSUPPORTED, exception=e)
    except (ValidationError, ExpatError, orjson.JSONDecodeError, ValueError) as e:
        logger.log("CODEC", f"Failed to deserialize {fmt.value} content: {e}")
        return OperationResult.fail(
            f"Failed to deserialize {fmt.value} content: {e}", kind=ErrorKind.MALFORMED, exception=e
        )
    return OperationResult.ok(value)


def serialize(obj: Any, fmt: BodyFormat, indent: bool = True) -> OperationResult[MessagePayload]:
    """Serialize ``obj`` into a payload of format ``fmt``; binary output is always refused."""
    if obj is None:
        raise ValueError("Cannot serialize None")

    try:
        match fmt:
            case BodyFormat.JSON:
                text = _to_json(obj, indent)
            case BodyFormat.XML:
                text = _to_xml(obj, indent)
            case BodyFormat.TEXT:
                text = str(obj)
            case BodyFormat.BINARY:
                return OperationResult.fail(BINARY_SERIALIZE_REFUSED, kind=ErrorKind.UNSUPPORTED)
            case _:
                return OperationResult.fail(f"Cannot serialize to format {fmt.value}", kind=ErrorKind.UNSUPPORTED)
    except (PydanticSchemaGenerationError, PydanticSerializationError, TypeError, ValueError) as e:
        return OperationResult.fail(
            f"Failed to serialize {type(obj).__name__} as {fmt.value}: {e}", kind=ErrorKind.UNSUPPORTED, exception=e
        )
    return OperationResult.ok(MessagePayload.from_text(text, format=fmt))
