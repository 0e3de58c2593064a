"""Kubernetes collaborators: API access, cluster identity, owners, events."""
