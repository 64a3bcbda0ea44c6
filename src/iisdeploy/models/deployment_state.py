"""Deployment history models persisted next to the backup archives."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class DeploymentRecord(BaseModel):
    """Persisted outcome of the last deploy of one app pool."""

    model_config = ConfigDict(extra="forbid")

    app_pool: str = Field(..., description="IIS app pool name")
    deploy_path: str = Field(..., description="Live application directory")
    status: str = Field(..., description="SUCCEEDED or FAILED")
    failed_step: str | None = Field(
        default=None, description="Step that failed, if any"
    )
    message: str | None = Field(default=None, description="Failure message")
    backup_path: str | None = Field(
        default=None, description="Archive taken before the swap"
    )
    copy_exit_code: int | None = Field(
        default=None, description="Exit code of the copy engine"
    )
    runner_label: str | None = Field(
        default=None, description="Label of the runner that deployed"
    )
    created_at: datetime | None = Field(
        default=None, description="First deploy timestamp"
    )
    updated_at: datetime | None = Field(
        default=None, description="Last deploy timestamp"
    )


class DeploymentState(BaseModel):
    """Top-level deployment history stored on disk."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="1.0", description="State file version")
    deployments: dict[str, DeploymentRecord] = Field(
        default_factory=dict, description="Deployments keyed by app pool name"
    )
