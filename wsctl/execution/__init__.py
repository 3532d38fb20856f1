"""Execution module - Run external tools under the workspace's identity and environment."""

from wsctl.execution.invocation import ToolInvocation
from wsctl.execution.runner import ToolRunner
from wsctl.execution.local import LocalRunner, gcloud_project
from wsctl.execution.container import ContainerRunner
from wsctl.execution.bridge import ExecutionBridge, Phase, make_runner

__all__ = [
    "ToolInvocation",
    "ToolRunner",
    "LocalRunner",
    "gcloud_project",
    "ContainerRunner",
    "ExecutionBridge",
    "Phase",
    "make_runner",
]
