"""Owner-chain discovery for the running workload."""

from __future__ import annotations

from license_verifier.errors import KubeAPIError, WorkloadDetectionError

MAX_OWNER_DEPTH = 10


def _metadata(obj: dict) -> dict:
    meta = obj.get("metadata")
    return meta if isinstance(meta, dict) else {}


def _next_owner(obj: dict) -> dict | None:
    owners = [ref for ref in _metadata(obj).get("ownerReferences") or [] if isinstance(ref, dict)]
    if not owners:
        return None
    for ref in owners:
        if ref.get("controller") is True:
            return ref
    return owners[0]


def detect_workload(
    client,
    namespace: str,
    pod_name: str,
    *,
    max_depth: int = MAX_OWNER_DEPTH,
) -> tuple[dict, list[dict]]:
    """Walk ``ownerReferences`` from a pod up to the object that owns it.

    Returns the root object and the chain visited, pod first. Owner lookups
    stay in the pod's namespace. Chains longer than ``max_depth`` hops or
    that revisit an object are rejected.
    """
    try:
        obj = client.get_object("v1", "Pod", namespace, pod_name)
    except KubeAPIError as exc:
        raise WorkloadDetectionError(f"failed to get pod {namespace}/{pod_name}: {exc}") from exc
    obj.setdefault("apiVersion", "v1")
    obj.setdefault("kind", "Pod")

    chain = [obj]
    seen = {_metadata(obj).get("uid") or f"Pod/{pod_name}"}
    for _ in range(max_depth):
        ref = _next_owner(obj)
        if ref is None:
            return obj, chain
        api_version = ref.get("apiVersion")
        kind = ref.get("kind")
        name = ref.get("name")
        if not (isinstance(api_version, str) and isinstance(kind, str) and isinstance(name, str)):
            raise WorkloadDetectionError(f"malformed owner reference on {_metadata(obj).get('name')}: {ref}")
        key = ref.get("uid") or f"{kind}/{name}"
        if key in seen:
            raise WorkloadDetectionError(f"owner chain of {namespace}/{pod_name} loops at {kind}/{name}")
        seen.add(key)
        try:
            obj = client.get_object(api_version, kind, namespace, name)
        except KubeAPIError as exc:
            raise WorkloadDetectionError(f"failed to get {kind} {namespace}/{name}: {exc}") from exc
        obj.setdefault("apiVersion", api_version)
        obj.setdefault("kind", kind)
        chain.append(obj)

    if _next_owner(obj) is None:
        return obj, chain
    raise WorkloadDetectionError(
        f"owner chain of {namespace}/{pod_name} exceeds {max_depth} levels"
    )
