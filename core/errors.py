from dataclasses import dataclass


class ConsoleError(Exception):
    """Базовая ошибка админ-консоли"""


class ConfigError(ConsoleError):
    """Некорректное значение в настройках"""


class FetchFailure(ConsoleError):
    """Загрузка коллекции с бэкенда не удалась (сеть, не-2xx, битый конверт)"""

    def __init__(self, kind: str, message: str):
        super().__init__(f"{kind}: {message}")
        self.kind = kind
        self.message = message


class MutationFailure(ConsoleError):
    """Бэкенд отклонил изменение статуса одной записи"""

    def __init__(self, record_id: str, message: str):
        super().__init__(f"{record_id}: {message}")
        self.record_id = record_id
        self.message = message


class ExportFailure(ConsoleError):
    """Сериализация выгрузки не удалась"""


class InvalidFilterError(ConsoleError, ValueError):
    """Спецификация фильтра содержит недопустимое значение"""


class InvalidTransitionError(ConsoleError, ValueError):
    """Целевой статус не входит в словарь статусов записи"""


class EmptySelectionError(ConsoleError, ValueError):
    """Массовое действие вызвано без выбранных записей"""


@dataclass(frozen=True)
class NormalizationWarning:
    """
    Запись из пачки не удалось нормализовать, она пропущена.
    Не исключение: собирается и показывается, остальная пачка обрабатывается.
    """

    kind: str
    index: int
    reason: str
