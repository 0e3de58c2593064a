"""Minimal in-cluster Kubernetes API client."""

from __future__ import annotations

import http.client
import json
import os
import socket
import ssl
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path

from license_verifier.errors import KubeAPIError, KubeConfigError

DEFAULT_SA_DIR = "/var/run/secrets/kubernetes.io/serviceaccount"
_DEFAULT_TIMEOUT_S = 10.0

_KIND_TO_RESOURCE = {
    "Pod": "pods",
    "ReplicaSet": "replicasets",
    "ReplicationController": "replicationcontrollers",
    "Deployment": "deployments",
    "StatefulSet": "statefulsets",
    "DaemonSet": "daemonsets",
    "Job": "jobs",
    "CronJob": "cronjobs",
    "Namespace": "namespaces",
    "Event": "events",
}


def _sa_path(name: str) -> Path:
    return Path(os.environ.get("LICENSE_VERIFIER_SA_DIR", DEFAULT_SA_DIR)) / name


def _read_text(path: Path) -> str:
    with open(path, "r", encoding="utf-8") as handle:
        return handle.read().strip()


def possibly_in_cluster() -> bool:
    return bool(
        os.environ.get("KUBERNETES_SERVICE_HOST")
        and os.environ.get("KUBERNETES_SERVICE_PORT")
        and _sa_path("token").is_file()
    )


def current_namespace() -> str:
    namespace = (os.environ.get("POD_NAMESPACE") or "").strip()
    if namespace:
        return namespace
    try:
        namespace = _read_text(_sa_path("namespace"))
    except OSError:
        namespace = ""
    return namespace or "default"


def current_pod_name() -> str:
    return socket.gethostname()


def resource_for_kind(kind: str) -> str:
    known = _KIND_TO_RESOURCE.get(kind)
    if known:
        return known
    lower = kind.lower()
    if lower.endswith("y"):
        return f"{lower[:-1]}ies"
    if lower.endswith("s"):
        return f"{lower}es"
    return f"{lower}s"


def api_path(api_version: str, kind: str, namespace: str | None, name: str | None = None) -> str:
    prefix = f"/api/{api_version}" if "/" not in api_version else f"/apis/{api_version}"
    parts = [prefix]
    if namespace:
        parts.append(f"namespaces/{urllib.parse.quote(namespace, safe='')}")
    parts.append(resource_for_kind(kind))
    if name:
        parts.append(urllib.parse.quote(name, safe=""))
    return "/".join(parts)


def _error_message(body: str) -> str:
    try:
        status = json.loads(body)
    except json.JSONDecodeError:
        status = None
    if isinstance(status, dict) and isinstance(status.get("message"), str):
        return status["message"]
    message = body.strip().replace("\n", " ")
    if len(message) > 240:
        message = f"{message[:240]}..."
    return message


class KubeClient:
    def __init__(
        self,
        host: str,
        token: str,
        ca_file: str | None = None,
        *,
        timeout_s: float = _DEFAULT_TIMEOUT_S,
    ) -> None:
        self.host = host.rstrip("/")
        self.token = token
        self.timeout_s = timeout_s
        self._context = ssl.create_default_context(cafile=ca_file) if ca_file else None

    @classmethod
    def in_cluster(cls, *, timeout_s: float = _DEFAULT_TIMEOUT_S) -> "KubeClient":
        host = (os.environ.get("KUBERNETES_SERVICE_HOST") or "").strip()
        port = (
            os.environ.get("KUBERNETES_SERVICE_PORT_HTTPS")
            or os.environ.get("KUBERNETES_SERVICE_PORT")
            or ""
        ).strip()
        if not host or not port:
            raise KubeConfigError(
                "unable to load in-cluster configuration, KUBERNETES_SERVICE_HOST and "
                "KUBERNETES_SERVICE_PORT must be defined"
            )
        token_path = _sa_path("token")
        ca_path = _sa_path("ca.crt")
        try:
            token = _read_text(token_path)
        except OSError as exc:
            raise KubeConfigError(f"serviceaccount token is unreadable ({token_path}): {exc}") from exc
        if not token:
            raise KubeConfigError(f"serviceaccount token is empty ({token_path})")
        if not ca_path.is_file():
            raise KubeConfigError(f"serviceaccount CA bundle is missing ({ca_path})")
        if ":" in host and not host.startswith("["):
            host = f"[{host}]"
        try:
            return cls(f"https://{host}:{port}", token, str(ca_path), timeout_s=timeout_s)
        except (OSError, ssl.SSLError) as exc:
            raise KubeConfigError(f"failed to load serviceaccount CA bundle: {exc}") from exc

    def request(
        self,
        method: str,
        path: str,
        body: dict | None = None,
        *,
        content_type: str = "application/json",
    ) -> dict:
        data = None if body is None else json.dumps(body).encode("utf-8")
        headers = {"Authorization": f"Bearer {self.token}", "Accept": "application/json"}
        if data is not None:
            headers["Content-Type"] = content_type
        request = urllib.request.Request(f"{self.host}{path}", data=data, headers=headers, method=method)
        try:
            with urllib.request.urlopen(request, context=self._context, timeout=self.timeout_s) as response:
                payload = response.read().decode("utf-8")
        except urllib.error.HTTPError as exc:
            try:
                raw = exc.read().decode("utf-8", errors="replace")
            except OSError:
                raw = ""
            raise KubeAPIError(exc.code, str(exc.reason), _error_message(raw), raw) from exc
        except urllib.error.URLError as exc:
            raise KubeAPIError(0, "", f"url error: {exc.reason}") from exc
        except (http.client.HTTPException, UnicodeDecodeError) as exc:
            raise KubeAPIError(0, "", f"protocol error: {exc!r}") from exc
        except OSError as exc:
            raise KubeAPIError(0, "", f"connection error: {exc}") from exc

        try:
            data = json.loads(payload) if payload.strip() else {}
        except json.JSONDecodeError as exc:
            raise KubeAPIError(0, "", f"invalid json from {path}: {exc}") from exc
        if not isinstance(data, dict):
            raise KubeAPIError(0, "", f"invalid json payload shape from {path}")
        return data

    def get_namespace(self, name: str) -> dict:
        return self.request("GET", api_path("v1", "Namespace", None, name))

    def get_object(self, api_version: str, kind: str, namespace: str, name: str) -> dict:
        return self.request("GET", api_path(api_version, kind, namespace, name))

    def get_event(self, namespace: str, name: str) -> dict:
        return self.request("GET", api_path("v1", "Event", namespace, name))

    def create_event(self, namespace: str, event: dict) -> dict:
        return self.request("POST", api_path("v1", "Event", namespace), event)

    def patch_event(self, namespace: str, name: str, patch: dict) -> dict:
        return self.request(
            "PATCH",
            api_path("v1", "Event", namespace, name),
            patch,
            content_type="application/merge-patch+json",
        )
