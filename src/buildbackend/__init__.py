"""Conda build backend: recipe synthesis and the build negotiation protocol."""

from .backend import BuildBackend
from .channels import ChannelConfig
from .config import BackendConfig, ToolConfiguration
from .engines import ExecutionEngine, InProcessEngine, ScriptEngine
from .errors import BuildBackendError, ErrorCode
from .manifest import Manifest
from .metadata import BuildConfiguration, Output
from .observability import StructuredLogger
from .orchestrator import BuildOrchestrator, TemporaryRenderedRecipe
from .platforms import Platform, PlatformAndVirtualPackages, VirtualPackage
from .policies import CMakePolicy, PythonPolicy, get_policy
from .protocol import BackendProtocol, ProtocolState
from .recipe import NoArchType, Recipe
from .requirements import Requirements
from .solver import DependencySolver, InProcessSolver
from .specs import MatchSpec, PackageName

__all__ = [
    "BackendConfig",
    "BackendProtocol",
    "BuildBackend",
    "BuildBackendError",
    "BuildConfiguration",
    "BuildOrchestrator",
    "ChannelConfig",
    "CMakePolicy",
    "DependencySolver",
    "ErrorCode",
    "ExecutionEngine",
    "InProcessEngine",
    "InProcessSolver",
    "Manifest",
    "MatchSpec",
    "NoArchType",
    "Output",
    "PackageName",
    "Platform",
    "PlatformAndVirtualPackages",
    "ProtocolState",
    "PythonPolicy",
    "Recipe",
    "Requirements",
    "ScriptEngine",
    "StructuredLogger",
    "TemporaryRenderedRecipe",
    "ToolConfiguration",
    "VirtualPackage",
    "get_policy",
]

__version__ = "0.1.0"
