"""Turn Kubernetes "forbidden" messages into RBAC hints."""

from __future__ import annotations

import re
from dataclasses import dataclass

_FORBIDDEN_RE = re.compile(
    r'User\s+"(?P<user>[^"]+)"\s+cannot\s+(?P<verb>[a-z]+)\s+resource\s+"(?P<resource>[^"]+)"\s+'
    r'in\s+API\s+group\s+"(?P<api_group>[^"]*)"'
    r'(?:\s+in\s+the\s+namespace\s+"(?P<namespace>[^"]+)"|\s+at\s+the\s+cluster\s+scope)?',
    re.IGNORECASE,
)
_OBJECT_NAME_RE = re.compile(r'"(?P<name>[^"]+)"\s+is forbidden:', re.IGNORECASE)


@dataclass(frozen=True)
class RBACDenial:
    user: str
    verb: str
    resource: str
    api_group: str
    namespace: str | None
    name: str | None

    @property
    def scope(self) -> str:
        return "namespaced" if self.namespace else "cluster"

    def suggested_rule(self) -> dict:
        rule = {"apiGroups": [self.api_group], "resources": [self.resource], "verbs": [self.verb]}
        if self.name:
            rule["resourceNames"] = [self.name]
        return rule

    def hint(self) -> str:
        if self.namespace:
            where, binding = f'a Role in namespace "{self.namespace}"', "RoleBinding"
        else:
            where, binding = "a ClusterRole", "ClusterRoleBinding"
        return (
            f'grant {where} allowing {self.verb} on {self.resource} '
            f'(apiGroup "{self.api_group}") and bind it to "{self.user}" with a {binding}'
        )


def parse_k8s_forbidden(text: str) -> RBACDenial | None:
    if not isinstance(text, str) or "forbidden" not in text.lower():
        return None
    match = _FORBIDDEN_RE.search(text)
    if not match:
        return None
    name_match = _OBJECT_NAME_RE.search(text)
    return RBACDenial(
        user=match.group("user"),
        verb=match.group("verb").lower(),
        resource=match.group("resource"),
        api_group=match.group("api_group"),
        namespace=match.group("namespace"),
        name=name_match.group("name") if name_match else None,
    )
