"""
Модуль crypto.py
Шифрование записей категорий паролем пользователя.

Ключ выводится из пароля через Argon2id (argon2-cffi), данные шифруются
AES-256-GCM (cryptography). Соль и nonce новые при каждом шифровании,
параметры KDF хранятся вместе с шифртекстом.
"""
import base64
import binascii
import secrets
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from argon2 import PasswordHasher
from argon2.exceptions import HashingError, InvalidHashError, VerificationError, VerifyMismatchError
from argon2.low_level import Type, hash_secret_raw
from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .exceptions import AuthenticationFailure
from .logger import get_logger

logger = get_logger(__name__)

SALT_SIZE = 16
NONCE_SIZE = 12
TAG_SIZE = 16
KEY_SIZE = 32

# Связывает шифртекст с форматом записи
_ASSOCIATED_DATA = b"mymemories-record-v1"

# Верхние границы параметров KDF, принимаемых из записи (memory_cost в КБ)
MAX_TIME_COST = 16
MAX_MEMORY_COST = 1024 * 1024
MAX_PARALLELISM = 16


@dataclass(frozen=True)
class KdfParams:
    """
    Параметры Argon2id.

    Атрибуты:
        time_cost: Количество итераций
        memory_cost: Объем памяти в КБ
        parallelism: Степень параллелизма
    """
    time_cost: int = 3
    memory_cost: int = 65536
    parallelism: int = 4

    def to_dict(self) -> Dict[str, Any]:
        return {
            "algorithm": "argon2id",
            "time_cost": self.time_cost,
            "memory_cost": self.memory_cost,
            "parallelism": self.parallelism,
        }

    def check_bounds(self) -> None:
        """
        Проверяет, что параметры допустимы для argon2 и не превышают лимиты.

        Raises:
            ValueError: Параметр вне допустимого диапазона
        """
        if not 1 <= self.time_cost <= MAX_TIME_COST:
            raise ValueError(f"time_cost вне диапазона 1..{MAX_TIME_COST}: {self.time_cost}")
        if not 1 <= self.parallelism <= MAX_PARALLELISM:
            raise ValueError(f"parallelism вне диапазона 1..{MAX_PARALLELISM}: {self.parallelism}")
        if not 8 * self.parallelism <= self.memory_cost <= MAX_MEMORY_COST:
            raise ValueError(
                f"memory_cost вне диапазона {8 * self.parallelism}..{MAX_MEMORY_COST}: {self.memory_cost}"
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'KdfParams':
        """
        Читает параметры из конверта записи.

        Raises:
            ValueError: Неизвестный алгоритм или параметры вне лимитов
        """
        if data.get("algorithm", "argon2id") != "argon2id":
            raise ValueError(f"Неподдерживаемый алгоритм KDF: {data.get('algorithm')}")
        values = [data["time_cost"], data["memory_cost"], data["parallelism"]]
        if not all(isinstance(v, int) and not isinstance(v, bool) for v in values):
            raise ValueError("Параметры KDF должны быть целыми числами")
        params = cls(time_cost=values[0], memory_cost=values[1], parallelism=values[2])
        params.check_bounds()
        return params


@dataclass
class EncryptedPayload:
    """
    Зашифрованное содержимое записи.

    Атрибуты:
        ciphertext: Шифртекст без тега аутентификации
        salt: Соль для вывода ключа
        nonce: Nonce AES-GCM
        tag: Тег аутентификации GCM
        kdf_params: Параметры KDF, с которыми выведен ключ
    """
    ciphertext: bytes
    salt: bytes
    nonce: bytes
    tag: bytes
    kdf_params: KdfParams = field(default_factory=KdfParams)

    def to_dict(self) -> Dict[str, Any]:
        """Кодирует поля в base64 для JSON-конверта."""
        return {
            "kdf": self.kdf_params.to_dict(),
            "salt": base64.b64encode(self.salt).decode("ascii"),
            "nonce": base64.b64encode(self.nonce).decode("ascii"),
            "tag": base64.b64encode(self.tag).decode("ascii"),
            "ciphertext": base64.b64encode(self.ciphertext).decode("ascii"),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EncryptedPayload':
        """
        Восстанавливает payload из JSON-конверта.

        Raises:
            AuthenticationFailure: Если поля отсутствуют или повреждены
        """
        try:
            return cls(
                ciphertext=base64.b64decode(data["ciphertext"], validate=True),
                salt=base64.b64decode(data["salt"], validate=True),
                nonce=base64.b64decode(data["nonce"], validate=True),
                tag=base64.b64decode(data["tag"], validate=True),
                kdf_params=KdfParams.from_dict(data["kdf"]),
            )
        except (KeyError, TypeError, ValueError, binascii.Error) as e:
            raise AuthenticationFailure(
                "Поврежденный зашифрованный конверт", details={"reason": type(e).__name__}
            ) from e


class KeyDeriver:
    """Вывод 256-битного ключа из пароля через Argon2id."""

    def __init__(self, params: Optional[KdfParams] = None):
        self.params = params or KdfParams()

    def derive(self, password: str, salt: bytes, params: Optional[KdfParams] = None) -> bytes:
        """
        Выводит ключ из пароля и соли.

        Результат детерминирован для одинаковых пароля, соли и параметров.

        Аргументы:
            password: Пароль пользователя
            salt: Соль (16 байт)
            params: Параметры KDF (по умолчанию параметры экземпляра)

        Возвращает:
            bytes: Ключ длиной 32 байта
        """
        p = params or self.params
        return hash_secret_raw(
            secret=password.encode("utf-8"),
            salt=salt,
            time_cost=p.time_cost,
            memory_cost=p.memory_cost,
            parallelism=p.parallelism,
            hash_len=KEY_SIZE,
            type=Type.ID,
        )


class RecordCipher:
    """
    Шифрование и расшифровка записей.

    Не возвращает частично расшифрованные данные: при любой ошибке
    аутентификации выбрасывается AuthenticationFailure.
    """

    def __init__(self, key_deriver: Optional[KeyDeriver] = None):
        self.key_deriver = key_deriver or KeyDeriver()

    def encrypt(self, plaintext: bytes, password: str) -> EncryptedPayload:
        """
        Шифрует данные паролем.

        Аргументы:
            plaintext: Открытые данные
            password: Пароль

        Возвращает:
            EncryptedPayload: Шифртекст, соль, nonce, тег и параметры KDF
        """
        salt = secrets.token_bytes(SALT_SIZE)
        nonce = secrets.token_bytes(NONCE_SIZE)
        params = self.key_deriver.params
        key = self.key_deriver.derive(password, salt, params)

        sealed = AESGCM(key).encrypt(nonce, plaintext, _ASSOCIATED_DATA)
        logger.debug(f"Данные зашифрованы: {len(plaintext)} байт")

        return EncryptedPayload(
            ciphertext=sealed[:-TAG_SIZE],
            salt=salt,
            nonce=nonce,
            tag=sealed[-TAG_SIZE:],
            kdf_params=params,
        )

    def decrypt(self, payload: EncryptedPayload, password: str) -> bytes:
        """
        Расшифровывает данные паролем.

        Аргументы:
            payload: Зашифрованные данные
            password: Пароль

        Возвращает:
            bytes: Открытые данные

        Raises:
            AuthenticationFailure: Неверный пароль, подмена или повреждение данных
        """
        if len(payload.nonce) != NONCE_SIZE or len(payload.tag) != TAG_SIZE:
            raise AuthenticationFailure("Некорректный размер nonce или тега")
        if len(payload.salt) < 8:
            raise AuthenticationFailure("Некорректный размер соли")
        try:
            payload.kdf_params.check_bounds()
        except ValueError as e:
            raise AuthenticationFailure("Параметры KDF в записи вне допустимых пределов") from e

        try:
            key = self.key_deriver.derive(password, payload.salt, payload.kdf_params)
        except HashingError as e:
            raise AuthenticationFailure("Некорректные параметры KDF в записи") from e
        try:
            return AESGCM(key).decrypt(payload.nonce, payload.ciphertext + payload.tag, _ASSOCIATED_DATA)
        except InvalidTag as e:
            raise AuthenticationFailure("Неверный пароль или данные повреждены") from e


_password_hasher = PasswordHasher()


def hash_password(password: str) -> str:
    """
    Создает argon2-хэш пароля для проверки собственного пароля категории.

    Аргументы:
        password: Пароль

    Возвращает:
        str: Строка хэша в формате PHC
    """
    if not password:
        raise ValueError("Пароль не может быть пустым")
    return _password_hasher.hash(password)


def verify_password(password_hash: str, password: str) -> bool:
    """Проверяет пароль по сохраненному хэшу."""
    try:
        return _password_hasher.verify(password_hash, password)
    except (VerifyMismatchError, VerificationError, InvalidHashError):
        return False
