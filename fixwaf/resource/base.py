from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import ClassVar, Dict, List, Optional, Type, TypeVar, Iterable, Sequence

from attrs import define, field, frozen
from jsons import snakecase

from fixwaf.errors import StatementDecodeError, UnknownVariantError, DecodeError
from fixwaf.json_bender import Bender, bend, source_keys
from fixwaf.types import Json
from fixwaf.utils import content_hash

log = logging.getLogger("fix.waf")

NodeT = TypeVar("NodeT", bound="WafNode")


@frozen
class ValidationIssue:
    path: str
    message: str

    def __str__(self) -> str:
        return f"{self.path}: {self.message}" if self.path else self.message


def child_path(path: str, name: str) -> str:
    if not path:
        return name
    return path + name if name.startswith("[") else f"{path}.{name}"


def check_value(path: str, name: str, value: Optional[str], valid: Iterable[str]) -> List[ValidationIssue]:
    valid = list(valid)
    if value is not None and value not in valid:
        return [ValidationIssue(child_path(path, name), f"'{value}' is not valid. Valid values are {valid}.")]
    return []


def check_required(path: str, name: str, value: object) -> List[ValidationIssue]:
    if value is None or value == "" or value == []:
        return [ValidationIssue(child_path(path, name), f"'{name}' is required.")]
    return []


def validate_all(path: str, name: str, nodes: Sequence[Optional[WafNode]]) -> List[ValidationIssue]:
    issues: List[ValidationIssue] = []
    for idx, node in enumerate(nodes):
        if node is not None:
            issues.extend(node.validate(child_path(child_path(path, name), f"[{idx}]")))
    return issues


@define(slots=False)
class WafNode(ABC):
    """
    Base class of all nodes of a rule statement tree.

    Every node can be decoded from the wire format via `from_api` and encoded again via `to_api`.
    Wire properties that are not part of the mapping are kept as they are and passed through on encoding,
    so a payload written by a newer api version survives a round trip unchanged.
    For the reconciliation of two trees, every node has a primary key and a list of children.
    Nodes without a natural key are identified by the content hash of their wire form.
    """

    kind: ClassVar[str] = "waf_node"
    mapping: ClassVar[Dict[str, Bender]] = {}
    # the content hash of the wire form, as it was loaded from the remote side
    hash_code: Optional[str] = field(default=None, eq=False, repr=False, kw_only=True)
    # wire properties not covered by the mapping
    unmapped: Json = field(factory=dict, repr=False, kw_only=True)
    # aggregates only send what they model: read only properties of the remote side are not written back
    pass_through: ClassVar[bool] = True

    @classmethod
    def from_api(cls: Type[NodeT], json: Json) -> NodeT:
        node = cls(**bend(cls.mapping, json))
        if cls.pass_through and isinstance(json, dict):
            node.unmapped = unmapped_properties(cls.mapping, json)
            if node.unmapped:
                log.debug(f"{cls.__name__}: pass through properties {list(node.unmapped)}")
        node.hash_code = content_hash(node.to_api())
        return node

    @abstractmethod
    def encode(self) -> Json:
        """
        The wire form of all modelled properties.
        """

    def to_api(self) -> Json:
        if not self.unmapped:
            return self.encode()
        return {**self.unmapped, **self.encode()}

    def content_hash(self) -> str:
        return content_hash(self.to_api())

    def primary_key(self) -> str:
        return self.hash_code or self.content_hash()

    def children(self) -> List[WafNode]:
        return []

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return []


def unmapped_properties(mapping: Dict[str, Bender], json: Json) -> Json:
    known = source_keys(mapping)
    return {k: v for k, v in json.items() if k not in known and v is not None}


def select_variant(json: Json, alternatives: List[str], owner: str) -> str:
    """
    Select the one populated alternative of a wire object.
    The wire format signals the alternative by the presence of a key.
    Alternatives are checked in the given order: if more than one is populated, the first one wins.
    """
    if not isinstance(json, dict):
        raise StatementDecodeError(f"{owner}: expected an object but got {type(json).__name__}")
    unknown = [k for k, v in json.items() if v is not None and k not in alternatives]
    if unknown:
        raise UnknownVariantError(f"{owner}: unknown alternative {unknown}. Known alternatives: {alternatives}")
    present = [name for name in alternatives if json.get(name) is not None]
    if not present:
        raise StatementDecodeError(f"{owner}: one and only one of {alternatives} is required, but none is set.")
    if len(present) > 1:
        log.warning(f"{owner}: more than one alternative is set {present}. Using {present[0]}.")
    return present[0]


def decode_variant(clazz: Type[NodeT], json: Json) -> NodeT:
    """
    Decode the wire value of an alternative and record the alternative in the path of a decoding error.
    """
    try:
        return clazz.from_api(json)
    except DecodeError as e:
        raise e.at(snakecase(getattr(clazz, "wire_name", clazz.__name__)))
