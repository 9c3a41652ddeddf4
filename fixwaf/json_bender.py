from __future__ import annotations

import logging
from abc import ABC
from typing import Dict, Any, Union, Optional, Callable, List, Set, Type

from fixwaf.errors import DecodeError
from fixwaf.types import Json

log = logging.getLogger("fix." + __name__)


# General idea and basic implementation is taken from: https://github.com/Onyo/jsonbender
class Bender(ABC):
    """
    Base bending class.
    """

    def __call__(self, source: Any) -> Any:
        return self.raw_execute(source).value

    def raw_execute(self, source: Any) -> Transport:
        transport = Transport.from_source(source)
        return Transport(self.execute(transport.value), transport.context)

    def execute(self, source: Any) -> Any:
        return source

    def source_key(self) -> Optional[str]:
        """
        The top level key of the source this bender reads, if known.
        """
        return None

    def __rshift__(self, other: Any) -> Bender:
        return Compose(self, other)


class BendingError(DecodeError):
    """
    A value of the source could not be bent: e.g. a function lifted via F failed.
    """


Mapping = Union[Bender, Dict[str, Bender]]


class S(Bender):
    """
    Retrieve a value from a JSON object under given path.
    """

    def __init__(self, *path: Union[str, int], default: Optional[Any] = None):
        if not path:
            raise ValueError("No path given")
        self._path = path
        self._default = default

    def execute(self, source: Any) -> Any:
        try:
            for key in self._path:
                source = source[key]
            return source
        except (KeyError, TypeError, IndexError):
            return self._default

    def source_key(self) -> Optional[str]:
        first = self._path[0]
        return first if isinstance(first, str) else None


class F(Bender):
    """
    Lifts a python callable into a Bender, so it can be composed.
    The extra positional and named parameters are passed to the function at
    bending time after the given value.

    Example:
    ```
    f = F(sorted, key=lambda d: d['id'])
    bend(S('items') >> f, {'items': [{'id': 3}, {'id': 1}]})  #  -> [{'id': 1}, {'id': 3}]
    ```
    """

    def __init__(self, func: Callable[[Any], Any], *args: Any, **kwargs: Any):
        super().__init__()
        self._func = func
        self._args = args
        self._kwargs = kwargs

    def execute(self, value: Any) -> Any:
        # noinspection PyArgumentList
        return self._func(value, *self._args, **self._kwargs)


class Compose(Bender):
    """
    Compose two benders.
    Use `>>` instead of calling `Compose` directly.
    """

    def __init__(self, first: Bender, second: Bender):
        self._first = first
        self._second = second

    def raw_execute(self, source: Any) -> Transport:
        first = self._first.raw_execute(source)
        return self._second.raw_execute(first) if first.value is not None else first

    def source_key(self) -> Optional[str]:
        return self._first.source_key()


class Transport:
    def __init__(self, value: Any, context: Dict[str, Any]):
        self.value = value
        self.context = context

    @classmethod
    def from_source(cls, source: Any) -> Transport:
        if isinstance(source, cls):
            return source
        else:
            return cls(source, {})


NodeClass = Union[Type[Any], Callable[[], Type[Any]]]


def _resolve(clazz: NodeClass) -> Type[Any]:
    # a callable that is not a class allows to reference classes defined later (recursive models)
    return clazz if isinstance(clazz, type) else clazz()


class Node(Bender):
    """
    Decode the value with the from_api method of the given model class.
    Empty marker objects ({}) are decoded as well: the presence of a key is meaningful.
    """

    def __init__(self, clazz: NodeClass, **kwargs: Any):
        super().__init__(**kwargs)
        self._clazz = clazz

    def execute(self, value: Optional[Json]) -> Any:
        return None if value is None else _resolve(self._clazz).from_api(value)


class ForallNode(Bender):
    """
    Decode every element of a list with the from_api method of the given model class.
    """

    def __init__(self, clazz: NodeClass, **kwargs: Any):
        super().__init__(**kwargs)
        self._clazz = clazz

    def execute(self, values: Optional[List[Json]]) -> Any:
        if values is None:
            return None
        clazz = _resolve(self._clazz)
        result = []
        for idx, value in enumerate(values):
            try:
                result.append(clazz.from_api(value))
            except DecodeError as e:
                raise e.at(idx)
        return result


class MapDict(Bender):
    """
    If you have a dict and want to map either key or value.
    """

    def __init__(self, key_bender: Optional[Bender] = None, value_bender: Optional[Bender] = None, **kwargs: Any):
        super().__init__(**kwargs)
        self._key_bender = key_bender
        self._value_bender = value_bender

    def execute(self, value: Union[List[Any], Dict[Any, Any]]) -> Dict[Any, Any]:
        def do_bend(v: Any, bender: Optional[Bender]) -> Any:
            return bender.raw_execute(v).value if bender else v

        if isinstance(value, list):
            return {do_bend(v, self._key_bender): do_bend(v, self._value_bender) for v in value}
        elif isinstance(value, dict):
            return {do_bend(k, self._key_bender): do_bend(v, self._value_bender) for k, v in value.items()}
        else:
            raise ValueError(f"Expected a list or dict, got {type(value)}")


class ToDict(Bender):
    """
    Turn a list of key/value objects into a dict.
    """

    def __init__(self, key: str = "Key", value: str = "Value") -> None:
        self.key = key
        self.value = value

    def execute(self, source: List[Json]) -> Dict[str, str]:
        return {k.get(self.key, self.key): k.get(self.value, "") for k in source}


class Present(Bender):
    """
    True if the selected value exists, False otherwise.
    Used for marker objects, where the wire format signals a flag by the presence of an empty object.
    """

    def __init__(self, *path: str):
        self._select = S(*path)

    def execute(self, source: Any) -> Any:
        return self._select.execute(source) is not None

    def source_key(self) -> Optional[str]:
        return self._select.source_key()


def source_keys(mapping: Dict[str, Bender]) -> Set[str]:
    """
    All top level keys of the source that are read by the given mapping.
    """
    return {key for bender in mapping.values() if (key := bender.source_key()) is not None}


def bend(mapping: Mapping, source: Any, context: Optional[Dict[str, Any]] = None) -> Any:
    """
    The main bending function.

    mapping: the map of benders
    source: a dict to be bent

    returns a new dict according to the provided map.
    """

    def bend_with_context(inner: Mapping, transport: Transport) -> Any:
        if isinstance(inner, list):
            return [bend_with_context(v, transport) for v in inner]

        elif isinstance(inner, dict):
            res = {}
            for k, v in inner.items():
                try:
                    value = bend_with_context(v, transport)
                    res[k] = value
                except DecodeError as e:
                    # decoding errors carry the path of the failing element
                    raise e.at(k)
                except Exception as e:
                    log.debug(f"Can not bend key {k}: {e}")
                    raise BendingError(f"Can not decode {k}: {e}").at(k) from e
            return res

        elif isinstance(inner, Bender):
            return inner(transport)

        else:
            return inner

    context = {} if context is None else context
    return bend_with_context(mapping, Transport(source, context))
