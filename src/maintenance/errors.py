"""Исключения движка алармов обслуживания."""


class MaintenanceError(Exception):
    """Базовое исключение движка."""


class ConfigurationError(MaintenanceError):
    """Ошибка конфигурации (расписание, параметры аларма)."""


class InvalidScheduleError(ConfigurationError):
    def __init__(self, expression: str, reason: str):
        self.expression = expression
        super().__init__(f"Invalid maintenance schedule '{expression}': {reason}")


class InvalidAlarmConfiguration(ConfigurationError):
    def __init__(self, alarm_id: str, reason: str):
        self.alarm_id = alarm_id
        super().__init__(f"Alarm {alarm_id} misconfigured: {reason}")


class RepositoryError(MaintenanceError):
    """Транзиентная ошибка хранилища; состояние аларма не изменено."""


class AccumulationConflict(RepositoryError):
    """Compare-and-set по чекпоинту не прошёл: аларм изменён параллельно."""

    def __init__(self, machine_id: str, alarm_id: str):
        self.machine_id = machine_id
        self.alarm_id = alarm_id
        super().__init__(f"Accumulation checkpoint of alarm {alarm_id} (machine {machine_id}) changed concurrently")


class EventRecordingError(MaintenanceError):
    """Событие обслуживания не записано – срабатывание не фиксируется."""


class TriggerBookkeepingError(RepositoryError):
    """Событие записано, но учёт срабатывания в аларме не сохранён."""


__all__ = [
    "MaintenanceError",
    "ConfigurationError",
    "InvalidScheduleError",
    "InvalidAlarmConfiguration",
    "RepositoryError",
    "AccumulationConflict",
    "EventRecordingError",
    "TriggerBookkeepingError",
]
