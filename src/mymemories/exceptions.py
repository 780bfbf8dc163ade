"""
Модуль exceptions.py
Иерархия исключений приложения и типизированные результаты операций хранилища.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional


class ErrorKind(Enum):
    """Классификация ошибок для журнала и результатов операций."""

    CRYPTO = "crypto"
    IO = "io"
    SCHEMA = "schema"
    NETWORK = "network"
    CONCURRENCY = "concurrency"
    CONFIGURATION = "configuration"


class MyMemoriesError(Exception):
    """
    Базовое исключение приложения.

    Аргументы:
        message: Сообщение об ошибке (без паролей и ключей)
        kind: Классификация ошибки
        details: Дополнительный контекст
    """

    default_kind = ErrorKind.IO

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.kind = kind or self.default_kind
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": type(self).__name__,
            "kind": self.kind.value,
            "message": self.message,
            "details": self.details,
        }


class AuthenticationFailure(MyMemoriesError):
    """Неверный пароль, поврежденные или подмененные зашифрованные данные."""

    default_kind = ErrorKind.CRYPTO


class PasswordUnavailableError(MyMemoriesError):
    """Для защищенной категории нет пароля в кэше."""

    default_kind = ErrorKind.CRYPTO


class RecordIOError(MyMemoriesError):
    default_kind = ErrorKind.IO


class RecordSchemaError(MyMemoriesError):
    """Запись не является корректным документом категории."""

    default_kind = ErrorKind.SCHEMA


class ConfigurationError(MyMemoriesError):
    default_kind = ErrorKind.CONFIGURATION


class StaleNodeError(MyMemoriesError):
    """Идентификатор узла дерева устарел после обновления или удаления."""

    default_kind = ErrorKind.CONCURRENCY


@dataclass
class RecordFailure:
    """Сведения о записи, которую не удалось загрузить."""

    record: str
    kind: ErrorKind
    message: str


@dataclass
class OperationResult:
    """
    Результат операции хранилища (сохранение, удаление).

    Ожидаемые сбои не выбрасываются наружу, а возвращаются здесь.
    """

    success: bool
    kind: Optional[ErrorKind] = None
    message: str = ""

    @classmethod
    def ok(cls, message: str = "") -> 'OperationResult':
        return cls(success=True, message=message)

    @classmethod
    def failed(cls, error: MyMemoriesError) -> 'OperationResult':
        return cls(success=False, kind=error.kind, message=error.message)

    def __bool__(self) -> bool:
        return self.success


@dataclass
class LoadResult:
    """Результат полной загрузки хранилища: категории и список сбоев."""

    categories: List[Any] = field(default_factory=list)
    failures: List[RecordFailure] = field(default_factory=list)
