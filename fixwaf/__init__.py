"""
Fix WAF
~~~~~~~
WAFv2 rule statement trees, their wire format and the lifecycle
of the rule groups and web ACLs that own them.
:copyright: © 2024 Some Engineering Inc.
:license: Apache 2.0, see LICENSE for more details.
"""

__title__ = "fixwaf"
__description__ = "WAFv2 rule statement model and lifecycle."
__author__ = "Some Engineering Inc."
__license__ = "Apache 2.0"
__copyright__ = "Copyright © 2024 Some Engineering Inc."
__version__ = "4.0.0"
