"""kubeadjust backend.

Read-only aggregation backend that queries the Kubernetes API, metrics-server,
kubelet stats and an optional Prometheus, and reshapes the results into a
denormalized view of cluster resource usage for the kubeadjust dashboard.
"""

__version__ = "0.1.0"
