from __future__ import annotations

import logging
from collections import Counter
from typing import ClassVar, Dict, List, Optional, Type

from attrs import define, field

from fixwaf.errors import DecodeError
from fixwaf.json import strip_nones
from fixwaf.json_bender import Bender, S, F, Node, ForallNode
from fixwaf.resource.action import RuleAction, OverrideAction, ImmunityTimeConfig
from fixwaf.resource.base import WafNode, ValidationIssue, check_required, child_path
from fixwaf.resource.statement import Statement, RateBasedStatement, MinRateLimit
from fixwaf.types import Json

log = logging.getLogger("fix.waf")


@define(slots=False)
class VisibilityConfig(WafNode):
    kind: ClassVar[str] = "waf_visibility_config"
    mapping: ClassVar[Dict[str, Bender]] = {
        "sampled_requests_enabled": S("SampledRequestsEnabled"),
        "cloud_watch_metrics_enabled": S("CloudWatchMetricsEnabled"),
        "metric_name": S("MetricName"),
    }
    sampled_requests_enabled: bool = field(default=False, metadata={"description": "Indicates whether WAF should store a sampling of the web requests that match the rules."})  # fmt: skip
    cloud_watch_metrics_enabled: bool = field(default=False, metadata={"description": "Indicates whether the associated resource sends metrics to Amazon CloudWatch."})  # fmt: skip
    metric_name: Optional[str] = field(default=None, metadata={"description": "A name of the Amazon CloudWatch metric dimension."})  # fmt: skip

    def encode(self) -> Json:
        return strip_nones(
            {
                "SampledRequestsEnabled": self.sampled_requests_enabled,
                "CloudWatchMetricsEnabled": self.cloud_watch_metrics_enabled,
                "MetricName": self.metric_name,
            }
        )

    def validate(self, path: str = "") -> List[ValidationIssue]:
        return check_required(path, "metric_name", self.metric_name)


@define(slots=False)
class Rule(WafNode):
    """
    A single rule of a rule group or web ACL.
    The rule name is the natural key of the rule within its collection.
    """

    kind: ClassVar[str] = "waf_rule"
    mapping: ClassVar[Dict[str, Bender]] = {
        "name": S("Name"),
        "priority": S("Priority"),
        "statement": S("Statement") >> Node(Statement),
        "action": S("Action") >> Node(RuleAction),
        "override_action": S("OverrideAction") >> Node(OverrideAction),
        "visibility_config": S("VisibilityConfig") >> Node(VisibilityConfig),
        "rule_labels": S("RuleLabels", default=[]) >> F(lambda labels: [label["Name"] for label in labels]),
        "captcha_config": S("CaptchaConfig") >> Node(ImmunityTimeConfig),
        "challenge_config": S("ChallengeConfig") >> Node(ImmunityTimeConfig),
    }
    name: str = field(metadata={"description": "The name of the rule."})  # fmt: skip
    priority: int = field(metadata={"description": "If you define more than one rule, WAF evaluates each request against the rules in order based on the value of priority."})  # fmt: skip
    statement: Optional[Statement] = field(default=None, metadata={"description": "The WAF processing statement for the rule."})  # fmt: skip
    action: Optional[RuleAction] = field(default=None, metadata={"description": "The action that WAF should take on a web request when it matches the rule statement."})  # fmt: skip
    override_action: Optional[OverrideAction] = field(default=None, metadata={"description": "The action to use in the place of the action that results from the rule group evaluation."})  # fmt: skip
    visibility_config: Optional[VisibilityConfig] = field(default=None, metadata={"description": "Defines and enables Amazon CloudWatch metrics and web request sample collection."})  # fmt: skip
    rule_labels: List[str] = field(factory=list, metadata={"description": "Labels to apply to web requests that match the rule match statement."})  # fmt: skip
    captcha_config: Optional[ImmunityTimeConfig] = field(default=None, metadata={"description": "Specifies how WAF should handle CAPTCHA evaluations."})  # fmt: skip
    challenge_config: Optional[ImmunityTimeConfig] = field(default=None, metadata={"description": "Specifies how WAF should handle Challenge evaluations."})  # fmt: skip

    @classmethod
    def from_api(cls: Type[Rule], json: Json) -> Rule:  # type: ignore
        try:
            return super().from_api(json)  # type: ignore
        except DecodeError as e:
            if e.rule is None and isinstance(json, dict):
                e.rule = json.get("Name")
            raise e

    def encode(self) -> Json:
        return strip_nones(
            {
                "Name": self.name,
                "Priority": self.priority,
                "Statement": self.statement.to_api() if self.statement else None,
                "Action": self.action.to_api() if self.action else None,
                "OverrideAction": self.override_action.to_api() if self.override_action else None,
                "VisibilityConfig": self.visibility_config.to_api() if self.visibility_config else None,
                "RuleLabels": [{"Name": label} for label in self.rule_labels],
                "CaptchaConfig": self.captcha_config.to_api() if self.captcha_config else None,
                "ChallengeConfig": self.challenge_config.to_api() if self.challenge_config else None,
            }
        )

    def primary_key(self) -> str:
        return self.name

    def children(self) -> List[WafNode]:
        nodes = [
            self.statement,
            self.action,
            self.override_action,
            self.visibility_config,
            self.captcha_config,
            self.challenge_config,
        ]
        return [n for n in nodes if n is not None]

    @property
    def is_rate_based(self) -> bool:
        return self.statement is not None and isinstance(self.statement.payload, RateBasedStatement)

    @property
    def references_rule_group(self) -> bool:
        return self.statement is not None and self.statement.is_rule_group_reference

    def validate(self, path: str = "", *, min_rate_limit: int = MinRateLimit) -> List[ValidationIssue]:
        issues = check_required(path, "name", self.name)
        if self.priority is None or self.priority < 0:
            issues.append(ValidationIssue(child_path(path, "priority"), "'priority' is required and can not be negative."))  # fmt: skip  # noqa: E501

        if self.statement is None:
            issues.append(ValidationIssue(child_path(path, "statement"), "'statement' is required."))
        elif isinstance(self.statement.payload, RateBasedStatement):
            # the smallest rate limit is configurable: pass it down explicitly
            statement_path = child_path(child_path(path, "statement"), "rate_based_statement")
            issues.extend(self.statement.payload.validate(statement_path, min_limit=min_rate_limit))
        else:
            issues.extend(self.statement.validate(child_path(path, "statement")))

        if self.references_rule_group:
            if self.override_action is None:
                issues.append(ValidationIssue(child_path(path, "override_action"), "rule group reference statements requires the 'override-action' to be set for the rule."))  # fmt: skip  # noqa: E501
            if self.action is not None:
                issues.append(ValidationIssue(child_path(path, "action"), "'action' can not be set for rule group reference statements. Use 'override-action' instead."))  # fmt: skip  # noqa: E501
        elif self.statement is not None:
            if self.action is None:
                issues.append(ValidationIssue(child_path(path, "action"), "non rule group reference statements requires the 'action' to be set for the rule."))  # fmt: skip  # noqa: E501
            if self.override_action is not None:
                issues.append(ValidationIssue(child_path(path, "override_action"), "'override-action' can only be set for rule group reference statements."))  # fmt: skip  # noqa: E501

        if self.action is not None:
            issues.extend(self.action.validate(child_path(path, "action")))
        if self.override_action is not None:
            issues.extend(self.override_action.validate(child_path(path, "override_action")))

        action = self.action.action if self.action else None
        if self.captcha_config is not None:
            if action != "CAPTCHA":
                issues.append(ValidationIssue(child_path(path, "captcha_config"), "'captcha-config' can only be set when 'action' is set to 'CAPTCHA'."))  # fmt: skip  # noqa: E501
            issues.extend(self.captcha_config.validate(child_path(path, "captcha_config")))
        if self.challenge_config is not None:
            if action != "CHALLENGE":
                issues.append(ValidationIssue(child_path(path, "challenge_config"), "'challenge-config' can only be set when 'action' is set to 'CHALLENGE'."))  # fmt: skip  # noqa: E501
            issues.extend(self.challenge_config.validate(child_path(path, "challenge_config")))

        if self.visibility_config is None:
            issues.append(ValidationIssue(child_path(path, "visibility_config"), "'visibility_config' is required."))
        else:
            issues.extend(self.visibility_config.validate(child_path(path, "visibility_config")))

        if any(not label for label in self.rule_labels):
            issues.append(ValidationIssue(child_path(path, "rule_labels"), "A rule label can not be empty."))
        return issues


def validate_priorities(rules: List[Rule]) -> bool:
    """
    Priorities of a collection of rules have to be dense: 0, 1, .., n-1 without gaps or duplicates.
    The order of the rules in the collection is not relevant.
    """
    priorities = [rule.priority for rule in rules]
    if any(p is None for p in priorities):
        return False
    return sorted(priorities) == list(range(len(rules)))


def rules_validation(path: str, rules: List[Rule], *, min_rate_limit: int = MinRateLimit) -> List[ValidationIssue]:
    """
    Validate all rules of a collection.
    Priority and name issues are reported once for the whole collection.
    """
    issues: List[ValidationIssue] = []
    rules_path = child_path(path, "rules")
    if not validate_priorities(rules):
        issues.append(ValidationIssue(rules_path, "'priority' exception. 'priority' value starts from 0 without skipping any number"))  # fmt: skip  # noqa: E501
    duplicates = sorted(name for name, count in Counter(rule.name for rule in rules).items() if count > 1)
    if duplicates:
        issues.append(ValidationIssue(rules_path, f"The name of a rule has to be unique. Duplicates: {duplicates}"))
    for idx, rule in enumerate(rules):
        issues.extend(rule.validate(child_path(rules_path, f"[{idx}]"), min_rate_limit=min_rate_limit))
    return issues


def rules_node() -> Bender:
    return S("Rules", default=[]) >> ForallNode(Rule)
