"""Resource aggregation package.

Turns raw Kubernetes, metrics-server and kubelet data into the denormalized
views served to the dashboard. Each module exposes plain functions that take
an injected KubeApiClient (or already-fetched data) and return response
models from :mod:`.types`.
"""
