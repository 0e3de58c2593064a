"""Kubernetes Event upserts."""

from __future__ import annotations

import copy
from datetime import datetime, timezone
from typing import Callable

from license_verifier.errors import KubeAPIError

_MAX_NAME_LEN = 63


def now_rfc3339() -> str:
    return datetime.now(timezone.utc).replace(microsecond=0).strftime("%Y-%m-%dT%H:%M:%SZ")


def name_with_suffix(name: str, suffix: str) -> str:
    keep = _MAX_NAME_LEN - len(suffix) - 1
    return f"{name[:keep].rstrip('-.')}-{suffix}"


def object_reference(obj: dict) -> dict:
    meta = obj.get("metadata") or {}
    ref = {
        "apiVersion": obj.get("apiVersion"),
        "kind": obj.get("kind"),
        "namespace": meta.get("namespace"),
        "name": meta.get("name"),
        "uid": meta.get("uid"),
        "resourceVersion": meta.get("resourceVersion"),
    }
    return {key: value for key, value in ref.items() if value}


def merge_patch(original: dict, modified: dict) -> dict:
    """RFC 7386 patch that turns ``original`` into ``modified``."""
    patch: dict = {}
    for key in original.keys() - modified.keys():
        patch[key] = None
    for key, value in modified.items():
        before = original.get(key)
        if isinstance(before, dict) and isinstance(value, dict):
            nested = merge_patch(before, value)
            if nested:
                patch[key] = nested
        elif key not in original or before != value:
            patch[key] = value
    return patch


def create_or_patch_event(
    client,
    namespace: str,
    name: str,
    transform: Callable[[dict], dict],
) -> tuple[dict, str]:
    """Create the named event or merge-patch the existing one.

    Returns the server's object and ``"created"``, ``"patched"`` or
    ``"unchanged"``.
    """
    try:
        current = client.get_event(namespace, name)
    except KubeAPIError as exc:
        if not exc.is_not_found:
            raise
        event = transform({"apiVersion": "v1", "kind": "Event", "metadata": {"name": name, "namespace": namespace}})
        return client.create_event(namespace, event), "created"

    modified = transform(copy.deepcopy(current))
    patch = merge_patch(current, modified)
    if not patch:
        return current, "unchanged"
    return client.patch_event(namespace, name, patch), "patched"
