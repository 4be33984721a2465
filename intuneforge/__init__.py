"""IntuneForge: build .intunewin packages and deploy them to Microsoft Intune."""

from .common.types import ContainerMetadata, EncryptionInfo, PackageInfo, PackageResult
from .deploy import DeploymentStage, DeployRequest, IntuneDeployer, deploy_to_intune
from .packager import build_package, create_package, read_package, verify_package

__version__ = "0.1.0"

__all__ = [
    "ContainerMetadata",
    "EncryptionInfo",
    "PackageInfo",
    "PackageResult",
    "DeploymentStage",
    "DeployRequest",
    "IntuneDeployer",
    "deploy_to_intune",
    "build_package",
    "create_package",
    "read_package",
    "verify_package",
]
