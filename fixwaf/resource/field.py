from __future__ import annotations

import logging
from collections import Counter
from typing import ClassVar, Dict, List, Optional, Type, Union

from attrs import define, field

from fixwaf.json import strip_nones
from fixwaf.json_bender import Bender, S, Present, ForallNode, Node
from fixwaf.resource.base import (
    WafNode,
    ValidationIssue,
    check_value,
    child_path,
    select_variant,
    decode_variant,
)
from fixwaf.types import Json

log = logging.getLogger("fix.waf")

OversizeHandlings = ["CONTINUE", "MATCH", "NO_MATCH"]
MatchScopes = ["ALL", "KEY", "VALUE"]
FallbackBehaviors = ["MATCH", "NO_MATCH"]


@define(slots=False)
class TextTransformation(WafNode):
    kind: ClassVar[str] = "waf_text_transformation"
    mapping: ClassVar[Dict[str, Bender]] = {"priority": S("Priority"), "type": S("Type")}
    priority: int = field(default=0, metadata={"description": "Sets the relative processing order for multiple transformations. WAF processes all transformations, from lowest priority to highest, before inspecting the transformed content."})  # fmt: skip
    type: str = field(default="NONE", metadata={"description": "For detailed descriptions of each of the transformation types, see Text transformations in the WAF Developer Guide."})  # fmt: skip

    def encode(self) -> Json:
        return {"Priority": self.priority, "Type": self.type}


def by_priority(transformations: Optional[List[TextTransformation]]) -> List[TextTransformation]:
    # transformations are applied in priority order, independent of the order they are defined in
    return sorted(transformations or [], key=lambda t: t.priority)


def text_transformations_field() -> List[TextTransformation]:
    return field(  # type: ignore
        factory=list,
        converter=by_priority,
        metadata={"description": "Text transformations eliminate some of the unusual formatting that attackers use in web requests in an effort to bypass detection."},  # fmt: skip
    )


def text_transformations_api(transformations: List[TextTransformation]) -> List[Json]:
    return [t.to_api() for t in by_priority(transformations)]


def validate_text_transformations(path: str, transformations: List[TextTransformation]) -> List[ValidationIssue]:
    duplicates = sorted(p for p, count in Counter(t.priority for t in transformations).items() if count > 1)
    if duplicates:
        return [
            ValidationIssue(
                child_path(path, "text_transformations"),
                f"The priority of a text transformation has to be unique. Duplicates: {duplicates}",
            )
        ]
    return []


@define(slots=False)
class FieldMatch(WafNode):
    """
    Base class of the parts of a web request a statement can inspect.
    """

    kind: ClassVar[str] = "waf_field_match"
    wire_name: ClassVar[str] = ""
    match_type: ClassVar[str] = ""

    def encode(self) -> Json:
        # no payload: the wire format uses an empty object as marker
        return {}


@define(slots=False)
class Body(FieldMatch):
    kind: ClassVar[str] = "waf_field_match_body"
    wire_name: ClassVar[str] = "Body"
    match_type: ClassVar[str] = "BODY"
    mapping: ClassVar[Dict[str, Bender]] = {"oversize_handling": S("OversizeHandling")}
    oversize_handling: Optional[str] = field(default=None, metadata={"description": "What WAF should do if the body is larger than WAF can inspect."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones({"OversizeHandling": self.oversize_handling})

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return check_value(path, "oversize_handling", self.oversize_handling, OversizeHandlings)


@define(slots=False)
class AllQueryArguments(FieldMatch):
    kind: ClassVar[str] = "waf_field_match_all_query_arguments"
    wire_name: ClassVar[str] = "AllQueryArguments"
    match_type: ClassVar[str] = "ALL_QUERY_ARGUMENTS"


@define(slots=False)
class QueryString(FieldMatch):
    kind: ClassVar[str] = "waf_field_match_query_string"
    wire_name: ClassVar[str] = "QueryString"
    match_type: ClassVar[str] = "QUERY_STRING"


@define(slots=False)
class Method(FieldMatch):
    kind: ClassVar[str] = "waf_field_match_method"
    wire_name: ClassVar[str] = "Method"
    match_type: ClassVar[str] = "METHOD"


@define(slots=False)
class UriPath(FieldMatch):
    kind: ClassVar[str] = "waf_field_match_uri_path"
    wire_name: ClassVar[str] = "UriPath"
    match_type: ClassVar[str] = "URI_PATH"


@define(slots=False)
class SingleHeader(FieldMatch):
    kind: ClassVar[str] = "waf_field_match_single_header"
    wire_name: ClassVar[str] = "SingleHeader"
    match_type: ClassVar[str] = "SINGLE_HEADER"
    mapping: ClassVar[Dict[str, Bender]] = {"name": S("Name")}
    name: str = field(metadata={"description": "The name of the header to inspect, for example, User-Agent or Referer. This setting isn't case sensitive."})  # fmt: skip

    def encode(self) -> Json:
        return {"Name": self.name}

    def validate(self, path: str = "") -> List[ValidationIssue]:
        if not self.name:
            return [ValidationIssue(child_path(path, "name"), f"'name' is required for {self.match_type}.")]
        return []


@define(slots=False)
class SingleQueryArgument(SingleHeader):
    kind: ClassVar[str] = "waf_field_match_single_query_argument"
    wire_name: ClassVar[str] = "SingleQueryArgument"
    match_type: ClassVar[str] = "SINGLE_QUERY_ARGUMENT"


@define(slots=False)
class HeaderOrder(Body):
    kind: ClassVar[str] = "waf_field_match_header_order"
    wire_name: ClassVar[str] = "HeaderOrder"
    match_type: ClassVar[str] = "HEADER_ORDER"


@define(slots=False)
class JA3Fingerprint(FieldMatch):
    kind: ClassVar[str] = "waf_field_match_ja3_fingerprint"
    wire_name: ClassVar[str] = "JA3Fingerprint"
    match_type: ClassVar[str] = "JA3_FINGERPRINT"
    mapping: ClassVar[Dict[str, Bender]] = {"fallback_behavior": S("FallbackBehavior")}
    fallback_behavior: Optional[str] = field(default=None, metadata={"description": "The match status to assign to the web request if the request doesn't have a JA3 fingerprint."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones({"FallbackBehavior": self.fallback_behavior})

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return check_value(path, "fallback_behavior", self.fallback_behavior, FallbackBehaviors)


@define(slots=False)
class MatchPattern(WafNode):
    """
    Selects the keys of a request component (cookies, headers, json) to inspect.
    Either all keys, or an explicit list of included (or excluded) keys.
    """

    kind: ClassVar[str] = "waf_match_pattern"
    included_name: ClassVar[str] = "IncludedPaths"
    excluded_name: ClassVar[Optional[str]] = None
    all: bool = field(default=False, metadata={"description": "Inspect all elements."})  # fmt: skip
    included: List[str] = field(factory=list, metadata={"description": "Inspect only the elements matching one of the strings specified here."})  # fmt: skip
    excluded: List[str] = field(factory=list, metadata={"description": "Inspect only the elements not matching any of the strings specified here."})  # fmt: skip

    def encode(self) -> Json:
        result: Json = {"All": {}} if self.all else {}
        result[self.included_name] = self.included
        if self.excluded_name:
            result[self.excluded_name] = self.excluded
        return strip_nones(result)

    def validate(self, path: str = "") -> List[ValidationIssue]:
        defined = [name for name, value in [("all", self.all), ("included", self.included), ("excluded", self.excluded)] if value]  # fmt: skip  # noqa: E501
        if len(defined) != 1:
            return [ValidationIssue(path, f"One and only one of ['all', 'included', 'excluded'] is required, got {defined}.")]  # fmt: skip  # noqa: E501
        return []


@define(slots=False)
class JsonMatchPattern(MatchPattern):
    kind: ClassVar[str] = "waf_json_match_pattern"
    included_name: ClassVar[str] = "IncludedPaths"
    mapping: ClassVar[Dict[str, Bender]] = {"all": Present("All"), "included": S("IncludedPaths", default=[])}


@define(slots=False)
class HeaderMatchPattern(MatchPattern):
    kind: ClassVar[str] = "waf_header_match_pattern"
    included_name: ClassVar[str] = "IncludedHeaders"
    excluded_name: ClassVar[Optional[str]] = "ExcludedHeaders"
    mapping: ClassVar[Dict[str, Bender]] = {
        "all": Present("All"),
        "included": S("IncludedHeaders", default=[]),
        "excluded": S("ExcludedHeaders", default=[]),
    }


@define(slots=False)
class CookieMatchPattern(MatchPattern):
    kind: ClassVar[str] = "waf_cookie_match_pattern"
    included_name: ClassVar[str] = "IncludedCookies"
    excluded_name: ClassVar[Optional[str]] = "ExcludedCookies"
    mapping: ClassVar[Dict[str, Bender]] = {
        "all": Present("All"),
        "included": S("IncludedCookies", default=[]),
        "excluded": S("ExcludedCookies", default=[]),
    }


@define(slots=False)
class Headers(FieldMatch):
    kind: ClassVar[str] = "waf_field_match_headers"
    wire_name: ClassVar[str] = "Headers"
    match_type: ClassVar[str] = "HEADERS"
    mapping: ClassVar[Dict[str, Bender]] = {
        "match_pattern": S("MatchPattern") >> Node(HeaderMatchPattern),
        "match_scope": S("MatchScope"),
        "oversize_handling": S("OversizeHandling"),
    }
    match_pattern: Optional[MatchPattern] = field(default=None, metadata={"description": "The filter to use to identify the subset of headers to inspect in a web request."})  # fmt: skip
    match_scope: Optional[str] = field(default=None, metadata={"description": "The parts of the headers to match with the rule inspection criteria. If you specify ALL, WAF inspects both keys and values."})  # fmt: skip
    oversize_handling: Optional[str] = field(default=None, metadata={"description": "What WAF should do if the headers of the request are more numerous or larger than WAF can inspect."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones(
            {
                "MatchPattern": self.match_pattern.to_api() if self.match_pattern else None,
                "MatchScope": self.match_scope,
                "OversizeHandling": self.oversize_handling,
            }
        )

    def children(self) -> List[WafNode]:
        return [self.match_pattern] if self.match_pattern else []

    def validate(self, path: str = "") -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        if self.match_pattern is None:
            issues.append(ValidationIssue(child_path(path, "match_pattern"), "'match_pattern' is required."))
        else:
            issues.extend(self.match_pattern.validate(child_path(path, "match_pattern")))
        issues.extend(check_value(path, "match_scope", self.match_scope, MatchScopes))
        issues.extend(check_value(path, "oversize_handling", self.oversize_handling, OversizeHandlings))
        return issues


@define(slots=False)
class Cookies(Headers):
    kind: ClassVar[str] = "waf_field_match_cookies"
    wire_name: ClassVar[str] = "Cookies"
    match_type: ClassVar[str] = "COOKIES"
    mapping: ClassVar[Dict[str, Bender]] = {
        "match_pattern": S("MatchPattern") >> Node(CookieMatchPattern),
        "match_scope": S("MatchScope"),
        "oversize_handling": S("OversizeHandling"),
    }


@define(slots=False)
class JsonBody(Headers):
    kind: ClassVar[str] = "waf_field_match_json_body"
    wire_name: ClassVar[str] = "JsonBody"
    match_type: ClassVar[str] = "JSON_BODY"
    mapping: ClassVar[Dict[str, Bender]] = {
        "match_pattern": S("MatchPattern") >> Node(JsonMatchPattern),
        "match_scope": S("MatchScope"),
        "invalid_fallback_behavior": S("InvalidFallbackBehavior"),
        "oversize_handling": S("OversizeHandling"),
    }
    invalid_fallback_behavior: Optional[str] = field(default=None, metadata={"description": "What WAF should do if it fails to completely parse the JSON body."})  # fmt: skip

    def encode(self) -> Json:
        result = super().encode()
        if self.invalid_fallback_behavior is not None:
            result["InvalidFallbackBehavior"] = self.invalid_fallback_behavior
        return result

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return super().validate(path) + check_value(
            path, "invalid_fallback_behavior", self.invalid_fallback_behavior, ["MATCH", "NO_MATCH", "EVALUATE_AS_STRING"]
        )


FieldMatches: List[Type[FieldMatch]] = [
    SingleHeader,
    SingleQueryArgument,
    AllQueryArguments,
    UriPath,
    QueryString,
    Body,
    Method,
    JsonBody,
    Headers,
    Cookies,
    HeaderOrder,
    JA3Fingerprint,
]
FieldMatchByWireName: Dict[str, Type[FieldMatch]] = {fm.wire_name: fm for fm in FieldMatches}
AnyFieldMatch = Union[
    SingleHeader,
    SingleQueryArgument,
    AllQueryArguments,
    UriPath,
    QueryString,
    Body,
    Method,
    JsonBody,
    Headers,
    Cookies,
    HeaderOrder,
    JA3Fingerprint,
]


@define(slots=False)
class FieldToMatch(WafNode):
    """
    The part of a web request a statement inspects.
    Exactly one part is selected: the wire format signals it by the presence of the related key.
    """

    kind: ClassVar[str] = "waf_field_to_match"
    match: AnyFieldMatch = field(metadata={"description": "The part of the web request that you want WAF to inspect."})  # fmt: skip

    @property
    def match_type(self) -> str:
        return self.match.match_type

    @property
    def name(self) -> Optional[str]:
        return self.match.name if isinstance(self.match, SingleHeader) else None

    @classmethod
    def from_api(cls: Type[FieldToMatch], json: Json) -> FieldToMatch:  # type: ignore
        wire_name = select_variant(json, list(FieldMatchByWireName), "FieldToMatch")
        node = cls(decode_variant(FieldMatchByWireName[wire_name], json[wire_name]))  # type: ignore
        node.hash_code = node.content_hash()
        return node

    def encode(self) -> Json:
        return {self.match.wire_name: self.match.to_api()}

    def primary_key(self) -> str:
        # only one field to match exists per statement: the selected part is a natural key
        name = f", field: '{self.name}'" if self.name is not None else ""
        return f"match type: '{self.match_type}'{name}"

    def children(self) -> List[WafNode]:
        return [self.match]

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return self.match.validate(child_path(path, self.match.kind.replace("waf_field_match_", "")))


def field_to_match_validation(path: str, fm: Optional[FieldToMatch]) -> List[ValidationIssue]:
    if fm is None:
        return [ValidationIssue(child_path(path, "field_to_match"), "'field_to_match' is required.")]
    return fm.validate(child_path(path, "field_to_match"))


def text_transformations_node() -> Bender:
    return S("TextTransformations", default=[]) >> ForallNode(TextTransformation)

