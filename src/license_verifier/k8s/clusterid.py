from __future__ import annotations

from license_verifier.errors import KubeAPIError

CLUSTER_ID_NAMESPACE = "kube-system"


def cluster_uid(client) -> str:
    """UID of the kube-system namespace, stable for the cluster's lifetime."""
    ns = client.get_namespace(CLUSTER_ID_NAMESPACE)
    uid = (ns.get("metadata") or {}).get("uid")
    if not isinstance(uid, str) or not uid.strip():
        raise KubeAPIError(0, "", f"namespace {CLUSTER_ID_NAMESPACE} has no uid")
    return uid.strip()
