"""
Модуль checker.py
Проверка доступности веб-ссылок категории.

Ссылки поддерева проверяются параллельно пулом потоков с ограничением на
количество одновременных запросов. Результаты передаются через очередь в
вызывающий поток, который обновляет статусы ссылок, считает статистику и
вызывает обратный вызов прогресса. Проверку можно отменить.
"""
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional, Tuple

import httpx

from .config import DEFAULT_USER_AGENT, Config
from .logger import get_logger, log_error_with_context, log_function_call, log_performance
from .models import LinkItem, UrlStatus
from .tree import CategoryTree, NodeId

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]

# Интервал, с которым вызывающий поток проверяет флаг отмены
_POLL_INTERVAL = 0.05


class CheckState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class CheckOutcome(Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ALREADY_RUNNING = "already_running"


@dataclass
class CheckStatistics:
    """
    Итоги проверки.

    Атрибуты:
        total_urls: Количество веб-ссылок в поддереве
        accessible_count: Доступные ссылки
        error_count: Ссылки с ошибкой
        not_found_count: Ненайденные ссылки
    """
    total_urls: int = 0
    accessible_count: int = 0
    error_count: int = 0
    not_found_count: int = 0

    @property
    def checked_count(self) -> int:
        return self.accessible_count + self.error_count + self.not_found_count

    def record(self, status: UrlStatus) -> None:
        if status == UrlStatus.ACCESSIBLE:
            self.accessible_count += 1
        elif status == UrlStatus.NOT_FOUND:
            self.not_found_count += 1
        else:
            self.error_count += 1


@dataclass
class CheckResult:
    outcome: CheckOutcome
    statistics: CheckStatistics


@dataclass
class _UrlResult:
    link: LinkItem
    status: UrlStatus
    message: str
    checked_at: datetime


class UrlHealthChecker:
    """
    Движок проверки доступности URL.

    Состояния: IDLE -> RUNNING -> COMPLETED | CANCELLED. Повторный запуск во
    время выполнения немедленно возвращает ALREADY_RUNNING.

    Аргументы:
        timeout: Таймаут одного запроса в секундах
        max_concurrent: Максимальное количество одновременных запросов
        user_agent: Заголовок User-Agent
        transport: HTTP-транспорт httpx (для тестов)
    """

    def __init__(
        self,
        timeout: float = 10.0,
        max_concurrent: int = 8,
        user_agent: str = DEFAULT_USER_AGENT,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if max_concurrent <= 0:
            raise ValueError("max_concurrent должен быть положительным числом")

        self.timeout = httpx.Timeout(timeout)
        self.max_concurrent = max_concurrent
        self.user_agent = user_agent
        self._transport = transport

        self._state = CheckState.IDLE
        self._state_lock = threading.Lock()
        self._cancel_event: Optional[threading.Event] = None

        logger.info(
            f"UrlHealthChecker инициализирован: timeout={timeout}s, max_concurrent={max_concurrent}"
        )

    @classmethod
    def from_config(
        cls, config: Config, transport: Optional[httpx.BaseTransport] = None
    ) -> 'UrlHealthChecker':
        return cls(
            timeout=config.check_timeout,
            max_concurrent=config.check_max_concurrent,
            user_agent=config.check_user_agent,
            transport=transport,
        )

    @property
    def state(self) -> CheckState:
        with self._state_lock:
            return self._state

    def _create_client(self) -> httpx.Client:
        limits = httpx.Limits(
            max_connections=self.max_concurrent,
            max_keepalive_connections=self.max_concurrent,
        )
        return httpx.Client(
            timeout=self.timeout,
            limits=limits,
            follow_redirects=True,
            headers={"User-Agent": self.user_agent},
            transport=self._transport,
        )

    # ------------------------------------------------------------------
    # Один запрос

    @staticmethod
    def _request_status(client: httpx.Client, url: str) -> Tuple[UrlStatus, str]:
        """
        Выполняет HEAD-запрос и классифицирует результат.

        Ошибки сети не выбрасываются, а превращаются в статус.

        Аргументы:
            client: HTTP-клиент
            url: Проверяемый URL

        Возвращает:
            Tuple[UrlStatus, str]: Статус и сообщение
        """
        try:
            response = client.head(url)
        except httpx.TimeoutException:
            return UrlStatus.ERROR, "Request timed out"
        except httpx.ConnectError as e:
            # Ошибка DNS или отказ в соединении
            return UrlStatus.NOT_FOUND, f"Connection failed: {e}"
        except httpx.HTTPError as e:
            return UrlStatus.ERROR, f"Request failed: {type(e).__name__}: {e}"
        except Exception as e:
            log_error_with_context(e, {"operation": "check_url", "url": url})
            return UrlStatus.ERROR, f"Unexpected error: {type(e).__name__}"

        message = f"HTTP {response.status_code} {response.reason_phrase}".rstrip()
        if response.status_code < 400:
            return UrlStatus.ACCESSIBLE, message
        if response.status_code in (404, 410):
            return UrlStatus.NOT_FOUND, message
        return UrlStatus.ERROR, message

    def check_single_url(self, url: str) -> Tuple[UrlStatus, str]:
        """
        Проверяет один URL вне пакетной проверки.

        Аргументы:
            url: URL для проверки

        Возвращает:
            Tuple[UrlStatus, str]: Статус и сообщение
        """
        log_function_call("UrlHealthChecker.check_single_url", (url,))
        with self._create_client() as client:
            status, message = self._request_status(client, url)
        logger.info(f"Проверка {url}: {status.value} ({message})")
        return status, message

    # ------------------------------------------------------------------
    # Пакетная проверка

    def cancel(self) -> None:
        """Запрашивает отмену текущей проверки. Без активной проверки ничего не делает."""
        with self._state_lock:
            if self._state == CheckState.RUNNING and self._cancel_event is not None:
                self._cancel_event.set()
                logger.info("Запрошена отмена проверки URL")

    def _worker(
        self,
        client: httpx.Client,
        link: LinkItem,
        results: 'queue.Queue[_UrlResult]',
        cancel: threading.Event,
    ) -> None:
        # После отмены запросы из очереди пула не выполняются
        if cancel.is_set():
            return
        status, message = self._request_status(client, link.target)
        results.put(_UrlResult(link, status, message, datetime.now()))

    def check_category(
        self,
        tree: CategoryTree,
        category_id: NodeId,
        on_progress: Optional[ProgressCallback] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> CheckResult:
        """
        Проверяет все веб-ссылки категории и ее подкатегорий.

        Статусы ссылок обновляются в вызывающем потоке. on_progress(current,
        total) вызывается ровно один раз на каждую обработанную ссылку.
        После отмены новые запросы не запускаются, результаты уже
        выполняющихся запросов отбрасываются.

        Аргументы:
            tree: Дерево категорий
            category_id: Идентификатор проверяемой категории
            on_progress: Обратный вызов прогресса
            cancel_event: Внешний флаг отмены

        Возвращает:
            CheckResult: Итог проверки и статистика
        """
        with self._state_lock:
            if self._state == CheckState.RUNNING:
                logger.warning("Проверка URL уже выполняется, повторный запуск отклонен")
                return CheckResult(CheckOutcome.ALREADY_RUNNING, CheckStatistics())
            self._state = CheckState.RUNNING
            self._cancel_event = cancel_event or threading.Event()
            cancel = self._cancel_event

        start_time = time.time()
        path = "?"
        statistics = CheckStatistics()
        cancelled = False
        try:
            path = tree.get_category_path(category_id)
            links = [
                payload
                for _, payload in tree.get_subtree(category_id)
                if isinstance(payload, LinkItem) and payload.is_web_url
            ]
            statistics.total_urls = len(links)
            logger.info(f"Начата проверка URL категории {path}: {len(links)} ссылок")

            cancelled = self._run(links, statistics, on_progress, cancel)
        finally:
            with self._state_lock:
                self._state = CheckState.CANCELLED if cancelled else CheckState.COMPLETED
                self._cancel_event = None

        outcome = CheckOutcome.CANCELLED if cancelled else CheckOutcome.COMPLETED
        duration = time.time() - start_time
        log_performance(
            "UrlHealthChecker.check_category",
            duration,
            f"checked={statistics.checked_count}/{statistics.total_urls}, outcome={outcome.value}",
        )
        logger.info(
            f"Проверка URL категории {path} завершена ({outcome.value}): "
            f"доступно {statistics.accessible_count}, ошибок {statistics.error_count}, "
            f"не найдено {statistics.not_found_count}"
        )
        return CheckResult(outcome, statistics)

    def _run(
        self,
        links: List[LinkItem],
        statistics: CheckStatistics,
        on_progress: Optional[ProgressCallback],
        cancel: threading.Event,
    ) -> bool:
        """
        Выполняет проверку ссылок.

        Все ссылки сразу ставятся в пул; число одновременных запросов
        ограничено числом потоков пула, поэтому медленный обратный вызов
        прогресса не задерживает запуск новых запросов.

        Возвращает:
            bool: True, если проверка отменена до обработки всех ссылок
        """
        if cancel.is_set():
            return True
        if not links:
            return False

        total = len(links)
        results: 'queue.Queue[_UrlResult]' = queue.Queue()
        current = 0

        with self._create_client() as client, ThreadPoolExecutor(
            max_workers=self.max_concurrent, thread_name_prefix="url-check"
        ) as executor:
            for link in links:
                executor.submit(self._worker, client, link, results, cancel)

            while current < total:
                if cancel.is_set():
                    break
                try:
                    result = results.get(timeout=_POLL_INTERVAL)
                except queue.Empty:
                    continue
                if cancel.is_set():
                    break

                link = result.link
                link.url_status = result.status
                link.url_status_message = result.message
                link.url_last_checked = result.checked_at
                statistics.record(result.status)
                current += 1
                logger.debug(f"[{current}/{total}] {link.target}: {result.status.value} ({result.message})")

                if on_progress is not None:
                    on_progress(current, total)

            if cancel.is_set():
                executor.shutdown(wait=False, cancel_futures=True)
            # Выход из пула ждет выполняющиеся запросы; их ограничивает таймаут
        return current < total
