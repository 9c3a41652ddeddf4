from __future__ import annotations

from typing import List, Optional, Union, TYPE_CHECKING

if TYPE_CHECKING:
    from fixwaf.resource.base import ValidationIssue


class WafError(Exception):
    pass


class DecodeError(WafError):
    """
    A wire payload could not be turned into a model node.
    The path is collected while the error travels up the tree:
    every enclosing node prepends the attribute (or list index) it was decoding.
    """

    def __init__(self, message: str, path: Optional[List[str]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.path: List[str] = path or []
        self.rule: Optional[str] = None
        self.aggregate: Optional[str] = None

    def at(self, segment: Union[str, int]) -> DecodeError:
        self.path.insert(0, f"[{segment}]" if isinstance(segment, int) else segment)
        return self

    @property
    def path_str(self) -> str:
        result = ""
        for segment in self.path:
            result += segment if segment.startswith("[") or not result else "." + segment
        return result

    def __str__(self) -> str:
        where = []
        if self.aggregate:
            where.append(f"aggregate={self.aggregate}")
        if self.rule:
            where.append(f"rule={self.rule}")
        if self.path:
            where.append(f"path={self.path_str}")
        return f"{self.message} ({', '.join(where)})" if where else self.message


class StatementDecodeError(DecodeError):
    pass


class UnknownVariantError(DecodeError):
    pass


class ValidationError(WafError):
    def __init__(self, owner: str, issues: List[ValidationIssue]) -> None:
        self.owner = owner
        self.issues = issues
        lines = "\n".join(f"  {issue}" for issue in issues)
        super().__init__(f"{owner} is not valid:\n{lines}")


class ConcurrencyConflict(WafError):
    """
    The lock token used for a mutating call is stale.
    """

    def __init__(self, action: str, message: str) -> None:
        super().__init__(f"Lock token conflict while calling {action}: {message}")
        self.action = action
