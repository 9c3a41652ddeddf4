from __future__ import annotations

from typing import ClassVar, Dict, List, Optional, Type

from attrs import define, field

from fixwaf.json import strip_nones
from fixwaf.json_bender import Bender, S, ForallNode, Node, F, bend
from fixwaf.resource.base import WafNode, ValidationIssue, check_value, child_path, select_variant, validate_all
from fixwaf.types import Json


@define(slots=False)
class CustomHTTPHeader(WafNode):
    kind: ClassVar[str] = "waf_custom_http_header"
    mapping: ClassVar[Dict[str, Bender]] = {"name": S("Name"), "value": S("Value")}
    name: Optional[str] = field(default=None, metadata={"description": "The name of the custom header."})  # fmt: skip
    value: Optional[str] = field(default=None, metadata={"description": "The value of the custom header."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones({"Name": self.name, "Value": self.value})

    def primary_key(self) -> str:
        return self.name or ""


@define(slots=False)
class CustomResponse(WafNode):
    kind: ClassVar[str] = "waf_custom_response"
    mapping: ClassVar[Dict[str, Bender]] = {
        "response_code": S("ResponseCode"),
        "custom_response_body_key": S("CustomResponseBodyKey"),
        "response_headers": S("ResponseHeaders", default=[]) >> ForallNode(CustomHTTPHeader),
    }
    response_code: Optional[int] = field(default=None, metadata={"description": "The HTTP status code to return to the client."})  # fmt: skip
    custom_response_body_key: Optional[str] = field(default=None, metadata={"description": "References the response body that you want WAF to return to the web request client."})  # fmt: skip
    response_headers: List[CustomHTTPHeader] = field(factory=list, metadata={"description": "The HTTP headers to use in the response."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones(
            {
                "ResponseCode": self.response_code,
                "CustomResponseBodyKey": self.custom_response_body_key,
                "ResponseHeaders": [h.to_api() for h in self.response_headers],
            }
        )

    def children(self) -> List[WafNode]:
        return list(self.response_headers)

    def validate(self, path: str = "") -> List[ValidationIssue]:
        if self.response_code is None or not 200 <= self.response_code <= 599:
            return [ValidationIssue(child_path(path, "response_code"), "'response_code' has to be between 200 and 599.")]  # fmt: skip  # noqa: E501
        return []


RuleActions = ["ALLOW", "BLOCK", "COUNT", "CAPTCHA", "CHALLENGE"]
OverrideActions = ["COUNT", "NONE"]


def wire_name_of(action: str) -> str:
    return action.capitalize()


@define(slots=False)
class RuleAction(WafNode):
    """
    The action WAF applies to a request matching a rule.
    BLOCK can define a custom response, all other actions can insert custom headers into the request.
    """

    kind: ClassVar[str] = "waf_rule_action"
    allowed: ClassVar[List[str]] = RuleActions
    mapping: ClassVar[Dict[str, Bender]] = {
        "insert_headers": S("CustomRequestHandling", "InsertHeaders", default=[]) >> ForallNode(CustomHTTPHeader),
        "custom_response": S("CustomResponse") >> Node(CustomResponse),
    }
    action: str = field(default="BLOCK", metadata={"description": "One of ALLOW, BLOCK, COUNT, CAPTCHA, CHALLENGE."})  # fmt: skip
    insert_headers: List[CustomHTTPHeader] = field(factory=list, metadata={"description": "Custom headers inserted into the web request."})  # fmt: skip
    custom_response: Optional[CustomResponse] = field(default=None, metadata={"description": "The custom response WAF sends for a blocked request."})  # fmt: skip

    @classmethod
    def from_api(cls: Type[RuleAction], json: Json) -> RuleAction:  # type: ignore
        wire_name = select_variant(json, [wire_name_of(a) for a in cls.allowed], cls.__name__)
        node = cls(action=wire_name.upper(), **bend(cls.mapping, json[wire_name]))
        node.hash_code = node.content_hash()
        return node

    def encode(self) -> Json:
        payload: Json = {}
        if self.insert_headers:
            payload["CustomRequestHandling"] = {"InsertHeaders": [h.to_api() for h in self.insert_headers]}
        if self.custom_response is not None:
            payload["CustomResponse"] = self.custom_response.to_api()
        return {wire_name_of(self.action): payload}

    @property
    def custom_request_handling(self) -> bool:
        return bool(self.insert_headers)

    def children(self) -> List[WafNode]:
        result: List[WafNode] = list(self.insert_headers)
        if self.custom_response:
            result.append(self.custom_response)
        return result

    def validate(self, path: str = "") -> List[ValidationIssue]:
        issues = check_value(path, "action", self.action, self.allowed)
        if self.insert_headers and self.action == "BLOCK":
            issues.append(
                ValidationIssue(
                    child_path(path, "insert_headers"),
                    "'custom-request-handling' can only be set when 'action' is set to 'CAPTCHA', 'CHALLENGE', 'COUNT' or 'ALLOW'.",  # noqa: E501
                )
            )
        if self.custom_response is not None:
            if self.action != "BLOCK":
                issues.append(
                    ValidationIssue(
                        child_path(path, "custom_response"),
                        "'custom-response' can only be set when 'action' is set to 'BLOCK'.",
                    )
                )
            issues.extend(self.custom_response.validate(child_path(path, "custom_response")))
        return issues


@define(slots=False)
class DefaultAction(RuleAction):
    kind: ClassVar[str] = "waf_default_action"
    allowed: ClassVar[List[str]] = ["ALLOW", "BLOCK"]
    action: str = field(default="ALLOW", metadata={"description": "One of ALLOW, BLOCK."})  # fmt: skip


@define(slots=False)
class OverrideAction(WafNode):
    """
    Overrides the actions of a referenced rule group: COUNT all matches or NONE (keep the actions of the group).
    """

    kind: ClassVar[str] = "waf_override_action"
    action: str = field(default="NONE", metadata={"description": "One of COUNT, NONE."})  # fmt: skip

    @classmethod
    def from_api(cls: Type[OverrideAction], json: Json) -> OverrideAction:  # type: ignore
        wire_name = select_variant(json, [wire_name_of(a) for a in OverrideActions], cls.__name__)
        node = cls(action=wire_name.upper())
        node.hash_code = node.content_hash()
        return node

    def encode(self) -> Json:
        return {wire_name_of(self.action): {}}

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return check_value(path, "action", self.action, OverrideActions)


@define(slots=False)
class RuleActionOverride(WafNode):
    kind: ClassVar[str] = "waf_rule_action_override"
    mapping: ClassVar[Dict[str, Bender]] = {
        "name": S("Name"),
        "action_to_use": S("ActionToUse") >> Node(RuleAction),
    }
    name: str = field(default="", metadata={"description": "The name of the rule to override."})  # fmt: skip
    action_to_use: Optional[RuleAction] = field(default=None, metadata={"description": "The override action to use, in place of the configured action of the rule in the rule group."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones(
            {"Name": self.name, "ActionToUse": self.action_to_use.to_api() if self.action_to_use else None}
        )

    def primary_key(self) -> str:
        action = self.action_to_use.action if self.action_to_use else None
        return f"Rule '{self.name}', Action: '{action}'"

    def children(self) -> List[WafNode]:
        return [self.action_to_use] if self.action_to_use else []

    def validate(self, path: str = "") -> List[ValidationIssue]:
        issues: List[ValidationIssue] = []
        if not self.name:
            issues.append(ValidationIssue(child_path(path, "name"), "'name' is required."))
        if self.action_to_use is None:
            issues.append(ValidationIssue(child_path(path, "action_to_use"), "'action_to_use' is required."))
        else:
            issues.extend(self.action_to_use.validate(child_path(path, "action_to_use")))
        return issues


def rule_action_overrides_validation(path: str, overrides: List[RuleActionOverride]) -> List[ValidationIssue]:
    return validate_all(path, "rule_action_overrides", overrides)


@define(slots=False)
class ImmunityTimeConfig(WafNode):
    """
    Immunity time of CAPTCHA and challenge tokens.
    """

    kind: ClassVar[str] = "waf_immunity_time_config"
    mapping: ClassVar[Dict[str, Bender]] = {"immunity_time": S("ImmunityTimeProperty", "ImmunityTime") >> F(int)}
    immunity_time: Optional[int] = field(default=None, metadata={"description": "The amount of time, in seconds, that a token is valid."})  # fmt: skip

    def encode(self) -> Json:
        if self.immunity_time is None:
            return {}
        return {"ImmunityTimeProperty": {"ImmunityTime": self.immunity_time}}

    def validate(self, path: str = "") -> List[ValidationIssue]:
        if self.immunity_time is not None and not 60 <= self.immunity_time <= 259200:
            return [ValidationIssue(child_path(path, "immunity_time"), "'immunity_time' has to be between 60 and 259200.")]  # fmt: skip  # noqa: E501
        return []
