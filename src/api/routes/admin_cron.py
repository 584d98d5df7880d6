from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from src.api.dependencies import cron_service, require_admin
from src.config.logging import get_logger
from src.maintenance.cron_service import MaintenanceCronService
from src.maintenance.errors import InvalidScheduleError
from src.maintenance.types import Skipped

router = APIRouter(prefix="/admin/cronjobs/maintenance-alarms", tags=["maintenance-cron"])
logger = get_logger(__name__)


@router.post("/trigger")
async def trigger_maintenance_job(service: MaintenanceCronService = Depends(cron_service), current_user=Depends(require_admin)):
    """Ручной запуск прохода без ожидания расписания.

    409 – проход уже выполняется (второй не запускается).
    """
    logger.info(f"Manual maintenance pass requested by {current_user}")
    outcome = await service.trigger()
    if isinstance(outcome, Skipped):
        return JSONResponse(status_code=409, content={
            'success': False,
            'status': outcome.status,
            'reason': outcome.reason,
            'at': outcome.at.isoformat(),
        })
    summary = outcome.result.summary()
    return {
        'success': outcome.status == 'success',
        'status': outcome.status,
        'data': {
            'machines_processed': summary['machines_processed'],
            'alarms_evaluated': summary['alarms_evaluated'],
            'alarms_triggered': summary['alarms_triggered'],
            'execution_time_ms': int((outcome.result.duration_seconds or 0.0) * 1000),
            'executed_at': summary['finished_at'],
            'run': summary,
        },
    }


@router.get("/status")
async def get_maintenance_job_status(service: MaintenanceCronService = Depends(cron_service), current_user=Depends(require_admin)):
    return {'success': True, 'data': service.get_status().to_dict()}


@router.post("/start")
async def start_maintenance_job(service: MaintenanceCronService = Depends(cron_service), current_user=Depends(require_admin)):
    """Взвести расписание (идемпотентно)."""
    try:
        service.start()
    except InvalidScheduleError as e:
        logger.error(str(e))
        raise HTTPException(status_code=400, detail=str(e))
    return {'success': True, 'data': service.get_status().to_dict()}


@router.post("/stop")
async def stop_maintenance_job(service: MaintenanceCronService = Depends(cron_service), current_user=Depends(require_admin)):
    """Снять расписание после завершения текущего прохода."""
    drained = await service.stop()
    return {'success': True, 'drained': drained, 'data': service.get_status().to_dict()}


@router.post("/alarms/{alarm_id}/clear")
async def clear_maintenance_alarm(alarm_id: str, service: MaintenanceCronService = Depends(cron_service), current_user=Depends(require_admin)):
    """Отметить обслуживание выполненным: счётчик в 0, маркер срабатывания снят."""
    clear = getattr(service.repository, 'clear_alarm', None)
    if clear is None:
        raise HTTPException(status_code=501, detail="clear_not_supported")
    try:
        ok = await clear(alarm_id)
    except ValueError:
        raise HTTPException(status_code=400, detail="invalid_alarm_id")
    if not ok:
        raise HTTPException(status_code=404, detail="alarm_not_found")
    logger.info(f"Alarm {alarm_id} cleared by {current_user}")
    return {'success': True, 'alarm_id': alarm_id}
