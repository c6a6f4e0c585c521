# src/meshlab/reconcile/versions.py

from __future__ import annotations

import re
from typing import NamedTuple, Optional

# <chartName>-<semver>, e.g. istiod-1.28.2, istio-cni-1.29.0-beta.1
_CHART_ID = re.compile(
    r"^(?P<name>[A-Za-z0-9][A-Za-z0-9._-]*?)-"
    r"(?P<version>v?\d+\.\d+\.\d+(?:-[0-9A-Za-z.-]+)?(?:\+[0-9A-Za-z.-]+)?)$"
)


class ChartIdentifier(NamedTuple):
    name: str
    version: str


def parse_chart_identifier(value: Optional[str]) -> Optional[ChartIdentifier]:
    """
    Split a Helm chart identifier as printed by `helm list` into name and
    version. Returns None when there is no trailing semantic version.
    """
    if not value:
        return None
    m = _CHART_ID.match(value.strip())
    if not m:
        return None
    return ChartIdentifier(m.group("name"), m.group("version"))


def normalize_version(version: Optional[str]) -> Optional[str]:
    if not version:
        return None
    return version.strip().lstrip("v") or None
