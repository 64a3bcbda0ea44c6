"""Backup-and-swap deployment of an IIS application."""

from iisdeploy.deploy.backup import backup_if_exists, list_backups, prune_backups
from iisdeploy.deploy.builder import DotnetBuilder
from iisdeploy.deploy.copier import MirrorCopier, RobocopyCopier, create_copier
from iisdeploy.deploy.iis import AppPoolController
from iisdeploy.deploy.swap import DeploymentSwapEngine
from iisdeploy.deploy.verify import VerificationReporter

__all__ = [
    "AppPoolController",
    "DeploymentSwapEngine",
    "DotnetBuilder",
    "MirrorCopier",
    "RobocopyCopier",
    "VerificationReporter",
    "backup_if_exists",
    "create_copier",
    "list_backups",
    "prune_backups",
]
