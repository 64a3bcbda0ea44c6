"""Deployment history stored next to the backup archives."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError

from iisdeploy.lib.errors import DeploymentError
from iisdeploy.models.deployment import DeployReport
from iisdeploy.models.deployment_state import DeploymentRecord, DeploymentState

STATE_VERSION = "1.0"
STATUS_SUCCEEDED = "SUCCEEDED"
STATUS_FAILED = "FAILED"


def get_state_path(backup_dir: Path) -> Path:
    """Return the deployment history file for a backup directory."""
    return backup_dir / ".iisdeploy" / "deployments.json"


def load_state(state_path: Path) -> DeploymentState:
    """Load deployment history from disk; a missing file is an empty history."""
    if not state_path.exists():
        return DeploymentState(version=STATE_VERSION)

    try:
        content = state_path.read_text(encoding="utf-8")
        if not content.strip():
            return DeploymentState(version=STATE_VERSION)
    except OSError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Failed to read deployment state at {state_path}: {exc}",
        ) from exc

    try:
        return DeploymentState.model_validate_json(content)
    except ValidationError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Invalid deployment state format in {state_path}: {exc}",
            remediation=f"Delete or repair {state_path}.",
        ) from exc


def save_state(state_path: Path, state: DeploymentState) -> None:
    """Persist deployment history to disk."""
    try:
        state_path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(state.model_dump(mode="json"), indent=2, sort_keys=True)
        state_path.write_text(payload, encoding="utf-8")
    except OSError as exc:
        raise DeploymentError(
            operation="state",
            message=f"Failed to write deployment state to {state_path}: {exc}",
        ) from exc


def get_deployment_record(state_path: Path, app_pool: str) -> DeploymentRecord | None:
    """Return the last deployment record of an app pool."""
    return load_state(state_path).deployments.get(app_pool)


def update_deployment_record(
    state_path: Path, app_pool: str, record: DeploymentRecord
) -> DeploymentRecord:
    """Replace the app pool's record, keeping its first-deploy timestamp."""
    state = load_state(state_path)
    existing = state.deployments.get(app_pool)
    now = datetime.now(timezone.utc)

    created_at = record.created_at or (existing.created_at if existing else None) or now
    updated_record = record.model_copy(
        update={"created_at": created_at, "updated_at": now}
    )

    state.deployments[app_pool] = updated_record
    save_state(state_path, state)
    return updated_record


def build_record(
    report: DeployReport | None,
    app_pool: str,
    deploy_path: Path,
    runner_label: str | None = None,
    error: DeploymentError | None = None,
) -> DeploymentRecord:
    """Describe a deploy run (finished or failed) as a history record."""
    backup = report.backup if report else None
    return DeploymentRecord(
        app_pool=app_pool,
        deploy_path=str(deploy_path),
        status=STATUS_FAILED if error else STATUS_SUCCEEDED,
        failed_step=error.operation if error else None,
        message=error.message if error else None,
        backup_path=str(backup.path) if backup else None,
        copy_exit_code=report.copy_exit_code if report else None,
        runner_label=runner_label,
    )
