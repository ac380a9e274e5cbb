"""
Admin API endpoints for CollectLogs.

Settings management, forced rule synchronization and rule inspection.
"""

import asyncio
from typing import Any, Dict, List

import structlog
from fastapi import APIRouter, Depends, Request

from ..core.auth import authenticate_admin_token
from ..core.settings_store import SettingsStore, get_settings_store
from ..core.transformer import MessageTransformer, get_message_transformer
from ..models import (
    ConvertRuleResponse,
    SettingsResponse,
    SettingsUpdateRequest,
    TransformRequest,
    TransformResponse,
)

logger = structlog.get_logger(__name__)

router = APIRouter()


def _transformer(request: Request) -> MessageTransformer:
    return getattr(request.app.state, "transformer", None) or get_message_transformer()


def _settings_response(store: SettingsStore) -> SettingsResponse:
    return SettingsResponse(
        log_to_file=store.get_log_to_file(),
        log_to_file_new_only=store.get_log_to_file_new_only(),
        log_to_file_min_severity=store.get_log_to_file_min_severity(),
        send_new_errors_email=store.get_send_new_errors_email(),
        email_addresses=store.get_email_addresses(),
        cron_last_exec=store.get_cron_last_exec(),
        last_sync=store.get_last_sync(),
    )


@router.get("/v1/admin/settings", response_model=SettingsResponse)
def get_module_settings(admin_token: str = Depends(authenticate_admin_token)) -> SettingsResponse:
    """Current settings; missing values are initialized to their defaults."""
    return _settings_response(get_settings_store())


@router.put("/v1/admin/settings", response_model=SettingsResponse)
def update_module_settings(
    request_data: SettingsUpdateRequest,
    admin_token: str = Depends(authenticate_admin_token),
) -> SettingsResponse:
    """
    Update settings.

    Only fields present in the request are written. An invalid severity is
    stored as deprecation.
    """
    store = get_settings_store()
    changes = request_data.model_dump(exclude_unset=True)

    if changes.get("log_to_file") is not None:
        store.set_log_to_file(changes["log_to_file"])
    if changes.get("log_to_file_new_only") is not None:
        store.set_log_to_file_new_only(changes["log_to_file_new_only"])
    if changes.get("log_to_file_min_severity") is not None:
        store.set_log_to_file_min_severity(changes["log_to_file_min_severity"])
    if changes.get("send_new_errors_email") is not None:
        store.set_send_new_errors_email(changes["send_new_errors_email"])
    if changes.get("email_addresses") is not None:
        store.set_email_addresses([address.strip() for address in changes["email_addresses"] if address.strip()])

    logger.info("Settings updated", fields=sorted(changes), admin_token=admin_token[:8] + "...")
    return _settings_response(store)


@router.delete("/v1/admin/settings")
def cleanup_module_settings(admin_token: str = Depends(authenticate_admin_token)) -> Dict[str, Any]:
    """Remove every setting owned by the module."""
    logger.info("Settings cleanup requested", admin_token=admin_token[:8] + "...")
    return {"success": get_settings_store().cleanup()}


@router.post("/v1/admin/synchronize")
async def force_synchronize(
    request: Request,
    admin_token: str = Depends(authenticate_admin_token),
) -> Dict[str, Any]:
    """
    Synchronize convert rules now, ignoring the sync interval.

    Failures are reported through the error reporter, not returned; the
    response carries the resulting rule count.
    """
    logger.info("Forced synchronization requested", admin_token=admin_token[:8] + "...")

    transformer = _transformer(request)
    await transformer.synchronize(force=True)

    rules = await asyncio.to_thread(transformer.get_rules)
    last_sync = await asyncio.to_thread(get_settings_store().get_last_sync)

    return {
        "message": "Synchronization finished",
        "rules": len(rules),
        "last_sync": last_sync,
    }


@router.get("/v1/admin/rules", response_model=List[ConvertRuleResponse])
def list_rules(
    request: Request,
    admin_token: str = Depends(authenticate_admin_token),
) -> List[ConvertRuleResponse]:
    """Locally stored convert rules in application order."""
    return [
        ConvertRuleResponse(
            local_id=rule.local_id,
            remote_id=rule.remote_id,
            search=rule.search,
            replace=rule.replace,
        )
        for rule in _transformer(request).get_rules()
    ]


@router.post("/v1/admin/transform", response_model=TransformResponse)
def preview_transform(
    request: Request,
    request_data: TransformRequest,
    admin_token: str = Depends(authenticate_admin_token),
) -> TransformResponse:
    """Show what the convert rules make of a message."""
    transformed = _transformer(request).transform(request_data.message)
    return TransformResponse(message=request_data.message, transformed=transformed)
