# src/meshlab/helm/errors.py
from meshlab.utils.shell import CommandError


class HelmError(CommandError):
    """Base class for Helm-related failures."""


class HelmPullError(HelmError):
    """Raised when a chart cannot be vendored into the local charts dir."""
