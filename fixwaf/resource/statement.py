from __future__ import annotations

import logging
from typing import ClassVar, Dict, List, Optional, Type, TypeVar, Union

from attrs import define, field

from fixwaf.errors import StatementDecodeError, UnknownVariantError
from fixwaf.json import strip_nones
from fixwaf.json_bender import Bender, S, F, Node, ForallNode, Present
from fixwaf.resource.action import RuleActionOverride, rule_action_overrides_validation
from fixwaf.resource.base import (
    WafNode,
    ValidationIssue,
    check_value,
    check_required,
    child_path,
    select_variant,
    decode_variant,
    validate_all,
)
from fixwaf.resource.field import (
    FieldToMatch,
    TextTransformation,
    FallbackBehaviors,
    text_transformations_field,
    text_transformations_api,
    text_transformations_node,
    validate_text_transformations,
    field_to_match_validation,
)
from fixwaf.types import Json

log = logging.getLogger("fix.waf")

# The smallest limit accepted for a rate based statement
MinRateLimit = 100


def waf_statement() -> Bender:
    # Statement is defined at the end of this module: resolve it lazily to allow recursive statements
    return Node(lambda: Statement)


@define(slots=False)
class StatementNode(WafNode):
    """
    Base class of all alternatives of a statement.
    The wire name is the key of the alternative in the wire format of a statement.
    """

    kind: ClassVar[str] = "waf_statement_node"
    wire_name: ClassVar[str] = ""
    # human-readable name used in primary keys
    label: ClassVar[str] = ""

    def primary_key(self) -> str:
        return f"'{self.label}' containing [{super().primary_key()}]"


@define(slots=False)
class ForwardedIPConfig(WafNode):
    kind: ClassVar[str] = "waf_forwarded_ip_config"
    mapping: ClassVar[Dict[str, Bender]] = {"header_name": S("HeaderName"), "fallback_behavior": S("FallbackBehavior")}
    header_name: Optional[str] = field(default=None, metadata={"description": "The name of the HTTP header to use for the IP address. For example, to use the X-Forwarded-For (XFF) header, set this to X-Forwarded-For."})  # fmt: skip
    fallback_behavior: Optional[str] = field(default=None, metadata={"description": "The match status to assign to the web request if the request doesn't have a valid IP address in the specified position."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones({"HeaderName": self.header_name, "FallbackBehavior": self.fallback_behavior})

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return check_required(path, "header_name", self.header_name) + check_value(
            path, "fallback_behavior", self.fallback_behavior, FallbackBehaviors
        )


@define(slots=False)
class IPSetForwardedIPConfig(ForwardedIPConfig):
    kind: ClassVar[str] = "waf_ip_set_forwarded_ip_config"
    mapping: ClassVar[Dict[str, Bender]] = {
        "header_name": S("HeaderName"),
        "fallback_behavior": S("FallbackBehavior"),
        "position": S("Position"),
    }
    position: Optional[str] = field(default=None, metadata={"description": "The position in the header to search for the IP address."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones({**super().encode(), "Position": self.position})

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return super().validate(path) + check_value(path, "position", self.position, ["FIRST", "LAST", "ANY"])


# ------------------------------------------------------------------------------------------------
# Predicates
# ------------------------------------------------------------------------------------------------


@define(slots=False)
class ByteMatchStatement(StatementNode):
    kind: ClassVar[str] = "waf_byte_match_statement"
    wire_name: ClassVar[str] = "ByteMatchStatement"
    label: ClassVar[str] = "byte match"
    mapping: ClassVar[Dict[str, Bender]] = {
        "search_string": S("SearchString"),
        "field_to_match": S("FieldToMatch") >> Node(FieldToMatch),
        "text_transformations": text_transformations_node(),
        "positional_constraint": S("PositionalConstraint"),
    }
    search_string: Optional[str] = field(default=None, metadata={"description": "A string value that you want WAF to search for. WAF searches only in the part of web requests that you designate for inspection in FieldToMatch."})  # fmt: skip
    field_to_match: Optional[FieldToMatch] = field(default=None, metadata={"description": "The part of the web request that you want WAF to inspect."})  # fmt: skip
    text_transformations: List[TextTransformation] = text_transformations_field()
    positional_constraint: Optional[str] = field(default=None, metadata={"description": "The area within the portion of the web request that you want WAF to search for SearchString."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones(
            {
                "SearchString": self.search_string,
                "FieldToMatch": self.field_to_match.to_api() if self.field_to_match else None,
                "TextTransformations": text_transformations_api(self.text_transformations),
                "PositionalConstraint": self.positional_constraint,
            }
        )

    def children(self) -> List[WafNode]:
        fm: List[WafNode] = [self.field_to_match] if self.field_to_match else []
        return fm + list(self.text_transformations)

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return (
            check_required(path, "search_string", self.search_string)
            + check_required(path, "positional_constraint", self.positional_constraint)
            + check_value(
                path,
                "positional_constraint",
                self.positional_constraint,
                ["EXACTLY", "STARTS_WITH", "ENDS_WITH", "CONTAINS", "CONTAINS_WORD"],
            )
            + field_to_match_validation(path, self.field_to_match)
            + validate_text_transformations(path, self.text_transformations)
        )


@define(slots=False)
class RegexMatchStatement(StatementNode):
    kind: ClassVar[str] = "waf_regex_match_statement"
    wire_name: ClassVar[str] = "RegexMatchStatement"
    label: ClassVar[str] = "regex match"
    mapping: ClassVar[Dict[str, Bender]] = {
        "regex_string": S("RegexString"),
        "field_to_match": S("FieldToMatch") >> Node(FieldToMatch),
        "text_transformations": text_transformations_node(),
    }
    regex_string: Optional[str] = field(default=None, metadata={"description": "The string representing the regular expression."})  # fmt: skip
    field_to_match: Optional[FieldToMatch] = field(default=None, metadata={"description": "The part of the web request that you want WAF to inspect."})  # fmt: skip
    text_transformations: List[TextTransformation] = text_transformations_field()

    def encode(self) -> Json:
        return strip_nones(
            {
                "RegexString": self.regex_string,
                "FieldToMatch": self.field_to_match.to_api() if self.field_to_match else None,
                "TextTransformations": text_transformations_api(self.text_transformations),
            }
        )

    def children(self) -> List[WafNode]:
        fm: List[WafNode] = [self.field_to_match] if self.field_to_match else []
        return fm + list(self.text_transformations)

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return (
            check_required(path, "regex_string", self.regex_string)
            + field_to_match_validation(path, self.field_to_match)
            + validate_text_transformations(path, self.text_transformations)
        )


@define(slots=False)
class SizeConstraintStatement(StatementNode):
    kind: ClassVar[str] = "waf_size_constraint_statement"
    wire_name: ClassVar[str] = "SizeConstraintStatement"
    label: ClassVar[str] = "size constraint"
    mapping: ClassVar[Dict[str, Bender]] = {
        "field_to_match": S("FieldToMatch") >> Node(FieldToMatch),
        "comparison_operator": S("ComparisonOperator"),
        "size": S("Size") >> F(int),
        "text_transformations": text_transformations_node(),
    }
    field_to_match: Optional[FieldToMatch] = field(default=None, metadata={"description": "The part of the web request that you want WAF to inspect."})  # fmt: skip
    comparison_operator: Optional[str] = field(default=None, metadata={"description": "The operator to use to compare the request part to the size setting."})  # fmt: skip
    size: Optional[int] = field(default=None, metadata={"description": "The size, in byte, to compare to the request part, after any transformations."})  # fmt: skip
    text_transformations: List[TextTransformation] = text_transformations_field()

    def encode(self) -> Json:
        return strip_nones(
            {
                "FieldToMatch": self.field_to_match.to_api() if self.field_to_match else None,
                "ComparisonOperator": self.comparison_operator,
                "Size": self.size,
                "TextTransformations": text_transformations_api(self.text_transformations),
            }
        )

    def children(self) -> List[WafNode]:
        fm: List[WafNode] = [self.field_to_match] if self.field_to_match else []
        return fm + list(self.text_transformations)

    def validate(self, path: str = "") -> List[ValidationIssue]:
        issues = check_required(path, "comparison_operator", self.comparison_operator) + check_value(
            path, "comparison_operator", self.comparison_operator, ["EQ", "NE", "LE", "LT", "GE", "GT"]
        )
        if self.size is None or self.size < 0:
            issues.append(ValidationIssue(child_path(path, "size"), "'size' is required and has to be positive."))
        return (
            issues
            + field_to_match_validation(path, self.field_to_match)
            + validate_text_transformations(path, self.text_transformations)
        )


@define(slots=False)
class SqliMatchStatement(StatementNode):
    kind: ClassVar[str] = "waf_sqli_match_statement"
    wire_name: ClassVar[str] = "SqliMatchStatement"
    label: ClassVar[str] = "sql injection match"
    mapping: ClassVar[Dict[str, Bender]] = {
        "field_to_match": S("FieldToMatch") >> Node(FieldToMatch),
        "text_transformations": text_transformations_node(),
        "sensitivity_level": S("SensitivityLevel"),
    }
    field_to_match: Optional[FieldToMatch] = field(default=None, metadata={"description": "The part of the web request that you want WAF to inspect."})  # fmt: skip
    text_transformations: List[TextTransformation] = text_transformations_field()
    sensitivity_level: Optional[str] = field(default=None, metadata={"description": "The sensitivity that you want WAF to use to inspect for SQL injection attacks."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones(
            {
                "FieldToMatch": self.field_to_match.to_api() if self.field_to_match else None,
                "TextTransformations": text_transformations_api(self.text_transformations),
                "SensitivityLevel": self.sensitivity_level,
            }
        )

    def children(self) -> List[WafNode]:
        fm: List[WafNode] = [self.field_to_match] if self.field_to_match else []
        return fm + list(self.text_transformations)

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return (
            check_value(path, "sensitivity_level", self.sensitivity_level, ["LOW", "HIGH"])
            + field_to_match_validation(path, self.field_to_match)
            + validate_text_transformations(path, self.text_transformations)
        )


@define(slots=False)
class XssMatchStatement(StatementNode):
    kind: ClassVar[str] = "waf_xss_match_statement"
    wire_name: ClassVar[str] = "XssMatchStatement"
    label: ClassVar[str] = "xss match"
    mapping: ClassVar[Dict[str, Bender]] = {
        "field_to_match": S("FieldToMatch") >> Node(FieldToMatch),
        "text_transformations": text_transformations_node(),
    }
    field_to_match: Optional[FieldToMatch] = field(default=None, metadata={"description": "The part of the web request that you want WAF to inspect."})  # fmt: skip
    text_transformations: List[TextTransformation] = text_transformations_field()

    def encode(self) -> Json:
        return strip_nones(
            {
                "FieldToMatch": self.field_to_match.to_api() if self.field_to_match else None,
                "TextTransformations": text_transformations_api(self.text_transformations),
            }
        )

    def children(self) -> List[WafNode]:
        fm: List[WafNode] = [self.field_to_match] if self.field_to_match else []
        return fm + list(self.text_transformations)

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return field_to_match_validation(path, self.field_to_match) + validate_text_transformations(
            path, self.text_transformations
        )


@define(slots=False)
class GeoMatchStatement(StatementNode):
    kind: ClassVar[str] = "waf_geo_match_statement"
    wire_name: ClassVar[str] = "GeoMatchStatement"
    label: ClassVar[str] = "geo match"
    mapping: ClassVar[Dict[str, Bender]] = {
        "country_codes": S("CountryCodes", default=[]),
        "forwarded_ip_config": S("ForwardedIPConfig") >> Node(ForwardedIPConfig),
    }
    country_codes: List[str] = field(factory=list, metadata={"description": "An array of two-character country codes that you want to match against, for example, [ US, CN ], from the alpha-2 country ISO codes of the ISO 3166 international standard."})  # fmt: skip
    forwarded_ip_config: Optional[ForwardedIPConfig] = field(default=None, metadata={"description": "The configuration for inspecting IP addresses in an HTTP header that you specify, instead of using the IP address that's reported by the web request origin."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones(
            {
                "CountryCodes": self.country_codes,
                "ForwardedIPConfig": self.forwarded_ip_config.to_api() if self.forwarded_ip_config else None,
            }
        )

    def children(self) -> List[WafNode]:
        return [self.forwarded_ip_config] if self.forwarded_ip_config else []

    def validate(self, path: str = "") -> List[ValidationIssue]:
        issues = check_required(path, "country_codes", self.country_codes)
        if self.forwarded_ip_config:
            issues.extend(self.forwarded_ip_config.validate(child_path(path, "forwarded_ip_config")))
        return issues


@define(slots=False)
class IPSetReferenceStatement(StatementNode):
    kind: ClassVar[str] = "waf_ip_set_reference_statement"
    wire_name: ClassVar[str] = "IPSetReferenceStatement"
    label: ClassVar[str] = "ip set reference"
    mapping: ClassVar[Dict[str, Bender]] = {
        "arn": S("ARN"),
        "ip_set_forwarded_ip_config": S("IPSetForwardedIPConfig") >> Node(IPSetForwardedIPConfig),
    }
    arn: Optional[str] = field(default=None, metadata={"description": "The Amazon Resource Name (ARN) of the IPSet that this statement references."})  # fmt: skip
    ip_set_forwarded_ip_config: Optional[IPSetForwardedIPConfig] = field(default=None, metadata={"description": "The configuration for inspecting IP addresses in an HTTP header that you specify, instead of using the IP address that's reported by the web request origin."})  # fmt: skip

    def encode(self) -> Json:
        config = self.ip_set_forwarded_ip_config
        return strip_nones({"ARN": self.arn, "IPSetForwardedIPConfig": config.to_api() if config else None})

    def children(self) -> List[WafNode]:
        return [self.ip_set_forwarded_ip_config] if self.ip_set_forwarded_ip_config else []

    def validate(self, path: str = "") -> List[ValidationIssue]:
        issues = check_required(path, "arn", self.arn)
        if self.ip_set_forwarded_ip_config:
            issues.extend(self.ip_set_forwarded_ip_config.validate(child_path(path, "ip_set_forwarded_ip_config")))
        return issues


@define(slots=False)
class RegexPatternSetReferenceStatement(StatementNode):
    kind: ClassVar[str] = "waf_regex_pattern_set_reference_statement"
    wire_name: ClassVar[str] = "RegexPatternSetReferenceStatement"
    label: ClassVar[str] = "regex pattern reference"
    mapping: ClassVar[Dict[str, Bender]] = {
        "arn": S("ARN"),
        "field_to_match": S("FieldToMatch") >> Node(FieldToMatch),
        "text_transformations": text_transformations_node(),
    }
    arn: Optional[str] = field(default=None, metadata={"description": "The Amazon Resource Name (ARN) of the RegexPatternSet that this statement references."})  # fmt: skip
    field_to_match: Optional[FieldToMatch] = field(default=None, metadata={"description": "The part of the web request that you want WAF to inspect."})  # fmt: skip
    text_transformations: List[TextTransformation] = text_transformations_field()

    def encode(self) -> Json:
        return strip_nones(
            {
                "ARN": self.arn,
                "FieldToMatch": self.field_to_match.to_api() if self.field_to_match else None,
                "TextTransformations": text_transformations_api(self.text_transformations),
            }
        )

    def children(self) -> List[WafNode]:
        fm: List[WafNode] = [self.field_to_match] if self.field_to_match else []
        return fm + list(self.text_transformations)

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return (
            check_required(path, "arn", self.arn)
            + field_to_match_validation(path, self.field_to_match)
            + validate_text_transformations(path, self.text_transformations)
        )


@define(slots=False)
class LabelMatchStatement(StatementNode):
    kind: ClassVar[str] = "waf_label_match_statement"
    wire_name: ClassVar[str] = "LabelMatchStatement"
    label: ClassVar[str] = "label match"
    mapping: ClassVar[Dict[str, Bender]] = {"scope": S("Scope"), "key": S("Key")}
    scope: Optional[str] = field(default=None, metadata={"description": "Specify whether you want to match using the label name or just the namespace."})  # fmt: skip
    key: Optional[str] = field(default=None, metadata={"description": "The string to match against."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones({"Scope": self.scope, "Key": self.key})

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return (
            check_required(path, "scope", self.scope)
            + check_value(path, "scope", self.scope, ["LABEL", "NAMESPACE"])
            + check_required(path, "key", self.key)
        )


# ------------------------------------------------------------------------------------------------
# Rate based statement
# ------------------------------------------------------------------------------------------------


@define(slots=False)
class RateLimitPart(WafNode):
    """
    A request component used as aggregation key: optionally named and transformed before aggregation.
    """

    kind: ClassVar[str] = "waf_rate_limit_part"
    mapping: ClassVar[Dict[str, Bender]] = {
        "name": S("Name"),
        "text_transformations": text_transformations_node(),
    }
    name: Optional[str] = field(default=None, metadata={"description": "The name of the header, cookie or query argument to use."})  # fmt: skip
    text_transformations: List[TextTransformation] = text_transformations_field()

    def encode(self) -> Json:
        return strip_nones(
            {"Name": self.name, "TextTransformations": text_transformations_api(self.text_transformations)}
        )

    def children(self) -> List[WafNode]:
        return list(self.text_transformations)

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return validate_text_transformations(path, self.text_transformations)


CustomKeyAlternatives = {
    "header": "Header",
    "cookie": "Cookie",
    "query_argument": "QueryArgument",
    "query_string": "QueryString",
    "http_method": "HTTPMethod",
    "forwarded_ip": "ForwardedIP",
    "ip": "IP",
    "label_namespace": "LabelNamespace",
    "uri_path": "UriPath",
}
NamedCustomKeys = ["header", "cookie", "query_argument"]


@define(slots=False)
class RateBasedStatementCustomKey(WafNode):
    """
    One aggregation key of a rate based statement.
    The wire format allows any combination of alternatives, so the model does as well:
    `validate` reports every key that does not define exactly one alternative.
    """

    kind: ClassVar[str] = "waf_rate_based_statement_custom_key"
    mapping: ClassVar[Dict[str, Bender]] = {
        "header": S("Header") >> Node(RateLimitPart),
        "cookie": S("Cookie") >> Node(RateLimitPart),
        "query_argument": S("QueryArgument") >> Node(RateLimitPart),
        "query_string": S("QueryString") >> Node(RateLimitPart),
        "http_method": Present("HTTPMethod"),
        "forwarded_ip": Present("ForwardedIP"),
        "ip": Present("IP"),
        "label_namespace": S("LabelNamespace", "Namespace"),
        "uri_path": S("UriPath") >> Node(RateLimitPart),
    }
    header: Optional[RateLimitPart] = field(default=None, metadata={"description": "Use the value of a header in the request as an aggregate key. Each distinct value in the header contributes to the aggregation instance."})  # fmt: skip
    cookie: Optional[RateLimitPart] = field(default=None, metadata={"description": "Use the value of a cookie in the request as an aggregate key. Each distinct value in the cookie contributes to the aggregation instance."})  # fmt: skip
    query_argument: Optional[RateLimitPart] = field(default=None, metadata={"description": "Use the specified query argument as an aggregate key. Each distinct value for the named query argument contributes to the aggregation instance."})  # fmt: skip
    query_string: Optional[RateLimitPart] = field(default=None, metadata={"description": "Use the request's query string as an aggregate key. Each distinct string contributes to the aggregation instance."})  # fmt: skip
    http_method: bool = field(default=False, metadata={"description": "Use the request's HTTP method as an aggregate key. Each distinct HTTP method contributes to the aggregation instance."})  # fmt: skip
    forwarded_ip: bool = field(default=False, metadata={"description": "Use the first IP address in an HTTP header as an aggregate key. Each distinct forwarded IP address contributes to the aggregation instance."})  # fmt: skip
    ip: bool = field(default=False, metadata={"description": "Use the request's originating IP address as an aggregate key. Each distinct IP address contributes to the aggregation instance."})  # fmt: skip
    label_namespace: Optional[str] = field(default=None, metadata={"description": "Use the specified label namespace as an aggregate key. Each distinct fully qualified label name that has the specified label namespace contributes to the aggregation instance."})  # fmt: skip
    uri_path: Optional[RateLimitPart] = field(default=None, metadata={"description": "Use the request's URI path as an aggregate key. Each distinct URI path contributes to the aggregation instance."})  # fmt: skip

    @classmethod
    def from_api(cls: Type[RateBasedStatementCustomKey], json: Json) -> RateBasedStatementCustomKey:  # type: ignore
        if not isinstance(json, dict):
            raise StatementDecodeError(f"{cls.__name__}: expected an object but got {type(json).__name__}")
        known = list(CustomKeyAlternatives.values())
        unknown = [k for k, v in json.items() if v is not None and k not in known]
        if unknown:
            raise UnknownVariantError(f"{cls.__name__}: unknown alternative {unknown}. Known alternatives: {known}")
        return super().from_api(json)  # type: ignore

    def defined_alternatives(self) -> List[str]:
        return [name for name in CustomKeyAlternatives if getattr(self, name) not in (None, False)]

    def encode(self) -> Json:
        result: Json = {}
        for name, wire_name in CustomKeyAlternatives.items():
            value = getattr(self, name)
            if isinstance(value, WafNode):
                result[wire_name] = value.to_api()
            elif value is True:
                result[wire_name] = {}
            elif isinstance(value, str):
                result[wire_name] = {"Namespace": value}
        return result

    def children(self) -> List[WafNode]:
        return [v for v in (self.header, self.cookie, self.query_argument, self.query_string, self.uri_path) if v]

    def validate(self, path: str = "") -> List[ValidationIssue]:
        defined = self.defined_alternatives()
        if len(defined) != 1:
            return [
                ValidationIssue(
                    path,
                    f"One and only one of {list(CustomKeyAlternatives)} is required for a custom key, "
                    f"but {len(defined)} are set: {defined}.",
                )
            ]
        name = defined[0]
        part = getattr(self, name)
        if name in NamedCustomKeys and not part.name:
            return [ValidationIssue(child_path(child_path(path, name), "name"), "'name' is required.")]
        return part.validate(child_path(path, name)) if isinstance(part, WafNode) else []


@define(slots=False)
class RateBasedStatement(StatementNode):
    kind: ClassVar[str] = "waf_rate_based_statement"
    wire_name: ClassVar[str] = "RateBasedStatement"
    label: ClassVar[str] = "rate based"
    mapping: ClassVar[Dict[str, Bender]] = {
        "limit": S("Limit") >> F(int),
        "aggregate_key_type": S("AggregateKeyType"),
        "scope_down_statement": S("ScopeDownStatement") >> waf_statement(),
        "forwarded_ip_config": S("ForwardedIPConfig") >> Node(ForwardedIPConfig),
        "custom_keys": S("CustomKeys", default=[]) >> ForallNode(RateBasedStatementCustomKey),
    }
    limit: Optional[int] = field(default=None, metadata={"description": "The limit on requests per 5-minute period for a single aggregation instance for the rate-based rule."})  # fmt: skip
    aggregate_key_type: str = field(default="IP", metadata={"description": "Setting that indicates how to aggregate the request counts."})  # fmt: skip
    scope_down_statement: Optional[Statement] = field(default=None, metadata={"description": "An optional nested statement that narrows the scope of the web requests that are evaluated and managed by the rate-based statement."})  # fmt: skip
    forwarded_ip_config: Optional[ForwardedIPConfig] = field(default=None, metadata={"description": "The configuration for inspecting IP addresses in an HTTP header that you specify, instead of using the IP address that's reported by the web request origin."})  # fmt: skip
    custom_keys: List[RateBasedStatementCustomKey] = field(factory=list, metadata={"description": "Specifies the aggregate keys to use in a rate-base rule."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones(
            {
                "Limit": self.limit,
                "AggregateKeyType": self.aggregate_key_type,
                "ScopeDownStatement": self.scope_down_statement.to_api() if self.scope_down_statement else None,
                "ForwardedIPConfig": self.forwarded_ip_config.to_api() if self.forwarded_ip_config else None,
                "CustomKeys": [k.to_api() for k in self.custom_keys],
            }
        )

    def primary_key(self) -> str:
        return f"'{self.label}' with limit - {self.limit} containing [{WafNode.primary_key(self)}]"

    def children(self) -> List[WafNode]:
        result: List[WafNode] = list(self.custom_keys)
        if self.scope_down_statement:
            result.append(self.scope_down_statement)
        if self.forwarded_ip_config:
            result.append(self.forwarded_ip_config)
        return result

    def uses_forwarded_ip_key(self) -> bool:
        return any(k.forwarded_ip for k in self.custom_keys)

    def validate(self, path: str = "", *, min_limit: int = MinRateLimit) -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        key_type = self.aggregate_key_type
        if self.limit is None or self.limit < min_limit:
            issues.append(ValidationIssue(child_path(path, "limit"), f"'limit' is required and has to be at least {min_limit}."))  # fmt: skip  # noqa: E501
        issues.extend(check_value(path, "aggregate_key_type", key_type, ["IP", "FORWARDED_IP", "CONSTANT", "CUSTOM_KEYS"]))  # fmt: skip  # noqa: E501

        if key_type == "CUSTOM_KEYS" and not self.custom_keys:
            issues.append(ValidationIssue(child_path(path, "custom_keys"), "'custom_keys' is required when 'aggregate_key_type' is set to 'CUSTOM_KEYS'."))  # fmt: skip  # noqa: E501
        elif key_type != "CUSTOM_KEYS" and self.custom_keys:
            issues.append(ValidationIssue(child_path(path, "custom_keys"), "'custom_keys' is not allowed when 'aggregate_key_type' is not set to 'CUSTOM_KEYS'."))  # fmt: skip  # noqa: E501

        forwarded_ip_required = key_type == "FORWARDED_IP" or (key_type == "CUSTOM_KEYS" and self.uses_forwarded_ip_key())  # fmt: skip  # noqa: E501
        if self.forwarded_ip_config is None and forwarded_ip_required:
            issues.append(ValidationIssue(child_path(path, "forwarded_ip_config"), "'forwarded_ip_config' is required when 'aggregate_key_type' is set to 'FORWARDED_IP' or a custom key uses 'forwarded_ip'."))  # fmt: skip  # noqa: E501
        elif self.forwarded_ip_config is not None and not forwarded_ip_required:
            issues.append(ValidationIssue(child_path(path, "forwarded_ip_config"), "'forwarded_ip_config' is only allowed when 'aggregate_key_type' is set to 'FORWARDED_IP' or a custom key uses 'forwarded_ip'."))  # fmt: skip  # noqa: E501

        if key_type == "CONSTANT" and self.scope_down_statement is None:
            issues.append(ValidationIssue(child_path(path, "scope_down_statement"), "'scope_down_statement' is required when 'aggregate_key_type' is set to 'CONSTANT'."))  # fmt: skip  # noqa: E501

        issues.extend(validate_all(path, "custom_keys", self.custom_keys))
        if self.forwarded_ip_config:
            issues.extend(self.forwarded_ip_config.validate(child_path(path, "forwarded_ip_config")))
        if self.scope_down_statement:
            issues.extend(self.scope_down_statement.validate(child_path(path, "scope_down_statement")))
        return issues


# ------------------------------------------------------------------------------------------------
# References to rule groups
# ------------------------------------------------------------------------------------------------


def excluded_rules_node() -> Bender:
    return S("ExcludedRules", default=[]) >> F(lambda rules: [r["Name"] for r in rules])


@define(slots=False)
class ManagedRuleGroupStatement(StatementNode):
    kind: ClassVar[str] = "waf_managed_rule_group_statement"
    wire_name: ClassVar[str] = "ManagedRuleGroupStatement"
    label: ClassVar[str] = "managed rule group"
    mapping: ClassVar[Dict[str, Bender]] = {
        "vendor_name": S("VendorName"),
        "name": S("Name"),
        "version": S("Version"),
        "excluded_rules": excluded_rules_node(),
        "scope_down_statement": S("ScopeDownStatement") >> waf_statement(),
        "managed_rule_group_configs": S("ManagedRuleGroupConfigs", default=[]),
        "rule_action_overrides": S("RuleActionOverrides", default=[]) >> ForallNode(RuleActionOverride),
    }
    vendor_name: Optional[str] = field(default=None, metadata={"description": "The name of the managed rule group vendor. You use this, along with the rule group name, to identify a rule group."})  # fmt: skip
    name: Optional[str] = field(default=None, metadata={"description": "The name of the managed rule group. You use this, along with the vendor name, to identify the rule group."})  # fmt: skip
    version: Optional[str] = field(default=None, metadata={"description": "The version of the managed rule group to use. If you specify this, the version setting is fixed until you change it."})  # fmt: skip
    excluded_rules: List[str] = field(factory=list, metadata={"description": "Rules in the referenced rule group whose actions are set to Count."})  # fmt: skip
    scope_down_statement: Optional[Statement] = field(default=None, metadata={"description": "An optional nested statement that narrows the scope of the web requests that are evaluated by the managed rule group."})  # fmt: skip
    managed_rule_group_configs: List[Json] = field(factory=list, metadata={"description": "Additional information that's used by a managed rule group. Passed to the API as defined."})  # fmt: skip
    rule_action_overrides: List[RuleActionOverride] = field(factory=list, metadata={"description": "Action settings to use in the place of the rule actions that are configured inside the rule group."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones(
            {
                "VendorName": self.vendor_name,
                "Name": self.name,
                "Version": self.version,
                "ExcludedRules": [{"Name": r} for r in self.excluded_rules],
                "ScopeDownStatement": self.scope_down_statement.to_api() if self.scope_down_statement else None,
                "ManagedRuleGroupConfigs": self.managed_rule_group_configs,
                "RuleActionOverrides": [o.to_api() for o in self.rule_action_overrides],
            }
        )

    def primary_key(self) -> str:
        return f"'{self.label}' with name - '{self.name}' and vendor - '{self.vendor_name}' [{WafNode.primary_key(self)}]"  # noqa: E501

    def children(self) -> List[WafNode]:
        result: List[WafNode] = list(self.rule_action_overrides)
        if self.scope_down_statement:
            result.append(self.scope_down_statement)
        return result

    def validate(self, path: str = "") -> List[ValidationIssue]:
        issues = check_required(path, "vendor_name", self.vendor_name) + check_required(path, "name", self.name)
        issues.extend(rule_action_overrides_validation(path, self.rule_action_overrides))
        if self.scope_down_statement:
            issues.extend(self.scope_down_statement.validate(child_path(path, "scope_down_statement")))
        return issues


@define(slots=False)
class RuleGroupReferenceStatement(StatementNode):
    kind: ClassVar[str] = "waf_rule_group_reference_statement"
    wire_name: ClassVar[str] = "RuleGroupReferenceStatement"
    label: ClassVar[str] = "rule group reference"
    mapping: ClassVar[Dict[str, Bender]] = {
        "arn": S("ARN"),
        "excluded_rules": excluded_rules_node(),
        "rule_action_overrides": S("RuleActionOverrides", default=[]) >> ForallNode(RuleActionOverride),
    }
    arn: Optional[str] = field(default=None, metadata={"description": "The Amazon Resource Name (ARN) of the entity."})  # fmt: skip
    excluded_rules: List[str] = field(factory=list, metadata={"description": "Rules in the referenced rule group whose actions are set to Count."})  # fmt: skip
    rule_action_overrides: List[RuleActionOverride] = field(factory=list, metadata={"description": "Action settings to use in the place of the rule actions that are configured inside the rule group."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones(
            {
                "ARN": self.arn,
                "ExcludedRules": [{"Name": r} for r in self.excluded_rules],
                "RuleActionOverrides": [o.to_api() for o in self.rule_action_overrides],
            }
        )

    def children(self) -> List[WafNode]:
        return list(self.rule_action_overrides)

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return check_required(path, "arn", self.arn) + rule_action_overrides_validation(
            path, self.rule_action_overrides
        )


# ------------------------------------------------------------------------------------------------
# Combinators
# ------------------------------------------------------------------------------------------------


@define(slots=False)
class CombinatorStatement(StatementNode):
    """
    Combines a list of nested statements: base of And and Or.
    """

    kind: ClassVar[str] = "waf_combinator_statement"
    mapping: ClassVar[Dict[str, Bender]] = {
        "statements": S("Statements", default=[]) >> ForallNode(lambda: Statement)
    }
    statements: List[Statement] = field(factory=list, metadata={"description": "The statements to combine. You can use any statements that can be nested."})  # fmt: skip

    @classmethod
    def from_api(cls: Type[CombinatorT], json: Json) -> CombinatorT:  # type: ignore
        if not isinstance(json, dict) or not json.get("Statements"):
            raise StatementDecodeError(f"{cls.wire_name}: at least one statement is required.").at("statements")
        return super().from_api(json)  # type: ignore

    def encode(self) -> Json:
        return {"Statements": [s.to_api() for s in self.statements]}

    def children(self) -> List[WafNode]:
        return list(self.statements)

    def validate(self, path: str = "") -> List[ValidationIssue]:
        # the lower bound of 2 statements is enforced by the remote side
        issues = check_required(path, "statements", self.statements)
        return issues + validate_all(path, "statements", self.statements)


CombinatorT = TypeVar("CombinatorT", bound=CombinatorStatement)


@define(slots=False)
class AndStatement(CombinatorStatement):
    kind: ClassVar[str] = "waf_and_statement"
    wire_name: ClassVar[str] = "AndStatement"
    label: ClassVar[str] = "and"


@define(slots=False)
class OrStatement(CombinatorStatement):
    kind: ClassVar[str] = "waf_or_statement"
    wire_name: ClassVar[str] = "OrStatement"
    label: ClassVar[str] = "or"


@define(slots=False)
class NotStatement(StatementNode):
    kind: ClassVar[str] = "waf_not_statement"
    wire_name: ClassVar[str] = "NotStatement"
    label: ClassVar[str] = "not"
    mapping: ClassVar[Dict[str, Bender]] = {"statement": S("Statement") >> waf_statement()}
    statement: Optional[Statement] = field(default=None, metadata={"description": "The statement to negate. You can use any statement that can be nested."})  # fmt: skip

    @classmethod
    def from_api(cls: Type[NotStatement], json: Json) -> NotStatement:  # type: ignore
        if not isinstance(json, dict) or json.get("Statement") is None:
            raise StatementDecodeError("NotStatement: the statement to negate is required.").at("statement")
        return super().from_api(json)  # type: ignore

    def encode(self) -> Json:
        return strip_nones({"Statement": self.statement.to_api() if self.statement else None})

    def children(self) -> List[WafNode]:
        return [self.statement] if self.statement else []

    def validate(self, path: str = "") -> List[ValidationIssue]:
        if self.statement is None:
            return [ValidationIssue(child_path(path, "statement"), "'statement' is required.")]
        return self.statement.validate(child_path(path, "statement"))


# ------------------------------------------------------------------------------------------------
# Statement
# ------------------------------------------------------------------------------------------------

# Order matters: if a wire payload defines more than one alternative, the first one wins.
StatementAlternatives: List[Type[StatementNode]] = [
    AndStatement,
    OrStatement,
    NotStatement,
    ByteMatchStatement,
    GeoMatchStatement,
    IPSetReferenceStatement,
    RegexPatternSetReferenceStatement,
    RegexMatchStatement,
    SizeConstraintStatement,
    SqliMatchStatement,
    XssMatchStatement,
    LabelMatchStatement,
    RateBasedStatement,
    ManagedRuleGroupStatement,
    RuleGroupReferenceStatement,
]
StatementByWireName: Dict[str, Type[StatementNode]] = {s.wire_name: s for s in StatementAlternatives}
AnyStatement = Union[
    AndStatement,
    OrStatement,
    NotStatement,
    ByteMatchStatement,
    GeoMatchStatement,
    IPSetReferenceStatement,
    RegexPatternSetReferenceStatement,
    RegexMatchStatement,
    SizeConstraintStatement,
    SqliMatchStatement,
    XssMatchStatement,
    LabelMatchStatement,
    RateBasedStatement,
    ManagedRuleGroupStatement,
    RuleGroupReferenceStatement,
]


@define(slots=False)
class Statement(WafNode):
    """
    A node in the match condition tree.
    A statement holds exactly one alternative (the payload).
    The alternative defines the wire key: {"<wire name of payload>": <payload>}.
    """

    kind: ClassVar[str] = "waf_statement"
    payload: AnyStatement = field(metadata={"description": "The alternative of this statement."})  # fmt: skip

    @property
    def wire_name(self) -> str:
        return self.payload.wire_name

    @property
    def is_rule_group_reference(self) -> bool:
        return isinstance(self.payload, (RuleGroupReferenceStatement, ManagedRuleGroupStatement))

    @classmethod
    def from_api(cls: Type[Statement], json: Json) -> Statement:  # type: ignore
        wire_name = select_variant(json, list(StatementByWireName), "Statement")
        node = cls(decode_variant(StatementByWireName[wire_name], json[wire_name]))  # type: ignore
        node.hash_code = node.content_hash()
        return node

    def encode(self) -> Json:
        return {self.payload.wire_name: self.payload.to_api()}

    def primary_key(self) -> str:
        return self.payload.primary_key()

    def children(self) -> List[WafNode]:
        return [self.payload]

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return self.payload.validate(child_path(path, self.payload.kind[len("waf_") :]))

    def walk(self) -> List[Statement]:
        """
        This statement and all nested statements, depth first.
        """
        result = [self]
        payload = self.payload
        if isinstance(payload, CombinatorStatement):
            for s in payload.statements:
                result.extend(s.walk())
        elif isinstance(payload, NotStatement) and payload.statement:
            result.extend(payload.statement.walk())
        elif isinstance(payload, (RateBasedStatement, ManagedRuleGroupStatement)) and payload.scope_down_statement:
            result.extend(payload.scope_down_statement.walk())
        return result

    def find(self, clazz: Type[StatementNode]) -> List[StatementNode]:
        return [s.payload for s in self.walk() if isinstance(s.payload, clazz)]


def parse(json: Json) -> Statement:
    return Statement.from_api(json)


def serialize(statement: Statement) -> Json:
    return statement.to_api()
