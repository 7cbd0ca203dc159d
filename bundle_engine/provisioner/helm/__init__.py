"""Provisioner for chart bundles."""

from .chart import Chart, Metadata
from .helm import (
    CHART_BASE_DIR,
    PROVISIONER_ID,
    Config,
    HelmProvisioner,
    RenderedDeployment,
    deploy_namespace,
    get_chart,
    parse_config,
)

__all__ = [
    "CHART_BASE_DIR",
    "Chart",
    "Config",
    "HelmProvisioner",
    "Metadata",
    "PROVISIONER_ID",
    "RenderedDeployment",
    "deploy_namespace",
    "get_chart",
    "parse_config",
]
