"""Provision Kubernetes clusters with hosted control planes and SSH-bootstrapped nodes."""

__version__ = "0.1.0"
