import logging
from typing import TypeVar, Any, Type, Optional, Union, List

import cattrs

from fixwaf.types import Json, JsonElement

log = logging.getLogger("fix.waf")

AnyT = TypeVar("AnyT")

# attrs classes are structured via their init arguments: fields with init=False are not read from json
converter = cattrs.Converter()


def from_json(js: JsonElement, clazz: Type[AnyT]) -> AnyT:
    """
    Structure a json element into an instance of the given class.
    Errors are logged with the offending json and raised to the caller.
    """
    try:
        return converter.structure(js, clazz)
    except Exception as e:
        log.debug(f"Can not structure json into {clazz.__name__}: {js}. Error: {e}")
        raise


def value_in_path(element: JsonElement, path_or_name: Union[List[str], str]) -> Optional[Any]:
    """
    Select a nested value of a json object, e.g. the result of an api call.
    The path is a list of property names or a dotted string: "TagInfoForResource.TagList".
    """
    path = path_or_name if isinstance(path_or_name, list) else path_or_name.split(".")
    current: Any = element
    for name in path:
        if not isinstance(current, dict) or name not in current:
            return None
        current = current[name]
    return current


def strip_nones(js: Json) -> Json:
    """
    Remove all keys with a None value (not recursive).
    The wire format expects absent keys instead of null values.
    Empty lists are treated as absent as well.
    """
    return {k: v for k, v in js.items() if v is not None and v != []}
