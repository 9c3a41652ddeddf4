from typing import List

import pytest

from fixwaf.errors import DecodeError
from fixwaf.resource.action import (
    RuleAction,
    OverrideAction,
    CustomHTTPHeader,
    CustomResponse,
    ImmunityTimeConfig,
    DefaultAction,
)
from fixwaf.resource.rule import Rule, VisibilityConfig, validate_priorities, rules_validation
from fixwaf.resource.statement import (
    Statement,
    GeoMatchStatement,
    RateBasedStatement,
    RuleGroupReferenceStatement,
)

visibility = VisibilityConfig(sampled_requests_enabled=True, cloud_watch_metrics_enabled=True, metric_name="m")


def geo_rule(name: str, priority: int, action: str = "BLOCK") -> Rule:
    return Rule(
        name=name,
        priority=priority,
        statement=Statement(GeoMatchStatement(country_codes=["CN"])),
        action=RuleAction(action=action),
        visibility_config=visibility,
    )


def rules_with_priorities(*priorities: int) -> List[Rule]:
    return [geo_rule(f"rule-{p}-{idx}", p) for idx, p in enumerate(priorities)]


def test_validate_priorities() -> None:
    assert validate_priorities(rules_with_priorities(0, 1, 2))
    assert validate_priorities(rules_with_priorities(2, 0, 1))
    assert validate_priorities([])
    assert not validate_priorities(rules_with_priorities(0, 1, 3))
    assert not validate_priorities(rules_with_priorities(0, 0, 1))
    assert not validate_priorities(rules_with_priorities(1, 2, 3))


def test_priority_issue_reported_once() -> None:
    issues = rules_validation("", rules_with_priorities(0, 2, 3))
    assert len(issues) == 1
    assert issues[0].path == "rules"
    assert "'priority' value starts from 0" in issues[0].message


def test_duplicate_rule_names() -> None:
    issues = rules_validation("", [geo_rule("a", 0), geo_rule("a", 1)])
    assert len(issues) == 1
    assert "Duplicates: ['a']" in issues[0].message


def test_rule_round_trip() -> None:
    wire = {
        "Name": "geo",
        "Priority": 0,
        "Statement": {"GeoMatchStatement": {"CountryCodes": ["CN"]}},
        "Action": {"Block": {"CustomResponse": {"ResponseCode": 403, "CustomResponseBodyKey": "blocked"}}},
        "VisibilityConfig": {"SampledRequestsEnabled": True, "CloudWatchMetricsEnabled": False, "MetricName": "geo"},
        "RuleLabels": [{"Name": "geo:blocked"}],
    }
    rule = Rule.from_api(wire)
    assert rule.primary_key() == "geo"
    assert rule.action == RuleAction(action="BLOCK", custom_response=CustomResponse(response_code=403, custom_response_body_key="blocked"))  # fmt: skip  # noqa: E501
    assert rule.rule_labels == ["geo:blocked"]
    assert rule.to_api() == wire
    assert rule.validate() == []
    assert rule.hash_code is not None


def test_rule_decode_error_names_rule() -> None:
    wire = {"Name": "broken", "Priority": 0, "Statement": {"NotStatement": {"Statement": {}}}}
    with pytest.raises(DecodeError) as ex:
        Rule.from_api(wire)
    assert ex.value.rule == "broken"
    assert ex.value.path_str == "statement.not_statement.statement"
    assert "rule=broken" in str(ex.value)


def test_malformed_value_names_rule() -> None:
    wire = {
        "Name": "legacy-group",
        "Priority": 1,
        "Statement": {"RuleGroupReferenceStatement": {"ARN": "arn", "ExcludedRules": [{}]}},
        "OverrideAction": {"None": {}},
    }
    with pytest.raises(DecodeError) as ex:
        Rule.from_api(wire)
    assert ex.value.rule == "legacy-group"
    assert ex.value.path_str == "statement.rule_group_reference_statement.excluded_rules"
    assert str(ex.value).startswith("Can not decode excluded_rules:")


def test_action_or_override_action() -> None:
    missing_action = geo_rule("a", 0)
    missing_action.action = None
    assert [i.message for i in missing_action.validate()] == [
        "non rule group reference statements requires the 'action' to be set for the rule."
    ]

    reference = Rule(
        name="ref",
        priority=0,
        statement=Statement(RuleGroupReferenceStatement(arn="arn:aws:wafv2:us-east-1:1:regional/rulegroup/a/b")),
        visibility_config=visibility,
    )
    assert [i.path for i in reference.validate()] == ["override_action"]
    reference.override_action = OverrideAction(action="COUNT")
    assert reference.validate() == []
    reference.action = RuleAction(action="BLOCK")
    assert [i.path for i in reference.validate()] == ["action"]


def test_custom_request_handling_and_response() -> None:
    rule = geo_rule("a", 0, "BLOCK")
    rule.action = RuleAction(action="BLOCK", insert_headers=[CustomHTTPHeader(name="x", value="y")])
    assert [i.path for i in rule.validate()] == ["action.insert_headers"]

    rule.action = RuleAction(action="COUNT", custom_response=CustomResponse(response_code=403))
    assert [i.path for i in rule.validate()] == ["action.custom_response"]

    rule.action = RuleAction(action="BLOCK", custom_response=CustomResponse(response_code=100))
    assert [i.path for i in rule.validate()] == ["action.custom_response.response_code"]


def test_captcha_and_challenge_config() -> None:
    rule = geo_rule("a", 0, "CAPTCHA")
    rule.captcha_config = ImmunityTimeConfig(immunity_time=300)
    assert rule.validate() == []
    assert rule.to_api()["CaptchaConfig"] == {"ImmunityTimeProperty": {"ImmunityTime": 300}}

    rule.challenge_config = ImmunityTimeConfig(immunity_time=10)
    messages = [i.message for i in rule.validate()]
    assert "'challenge-config' can only be set when 'action' is set to 'CHALLENGE'." in messages
    assert len(messages) == 2


def test_rate_limit_is_configurable() -> None:
    rule = Rule(
        name="rate",
        priority=0,
        statement=Statement(RateBasedStatement(limit=50)),
        action=RuleAction(action="BLOCK"),
        visibility_config=visibility,
    )
    assert [i.path for i in rule.validate()] == ["statement.rate_based_statement.limit"]
    assert rule.validate(min_rate_limit=10) == []
    assert rule.is_rate_based


def test_default_action() -> None:
    action = DefaultAction.from_api({"Allow": {"CustomRequestHandling": {"InsertHeaders": [{"Name": "a", "Value": "b"}]}}})  # fmt: skip  # noqa: E501
    assert action.action == "ALLOW"
    assert action.insert_headers == [CustomHTTPHeader(name="a", value="b")]
    assert action.validate() == []
    assert DefaultAction(action="COUNT").validate() != []


def test_override_action() -> None:
    assert OverrideAction.from_api({"None": {}}).action == "NONE"
    assert OverrideAction(action="COUNT").to_api() == {"Count": {}}
