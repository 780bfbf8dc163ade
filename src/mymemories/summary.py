"""
Модуль summary.py
Сводка по веб-странице ссылки: заголовок, описание, ключевые слова и
фрагмент основного текста.
Загрузка выполняется асинхронно через httpx, разбор HTML - через BeautifulSoup.
"""
import re
import time
from dataclasses import dataclass, field
from typing import List, Optional

import httpx
from bs4 import BeautifulSoup

from .config import DEFAULT_USER_AGENT, Config
from .logger import get_logger, log_error_with_context, log_function_call, log_performance
from .utils import TextUtils, ValidationUtils

logger = get_logger(__name__)

MAX_SUMMARY_LENGTH = 1000
MAX_KEYWORDS = 10


@dataclass
class WebPageSummary:
    """
    Результат разбора веб-страницы.

    Атрибуты:
        url: Адрес страницы
        success: Страница загружена и разобрана
        error_message: Описание ошибки при неуспехе
        status_code: HTTP-статус ответа (0, если ответа не было)
        title: Заголовок страницы
        description: Описание из мета-тегов
        keywords: Ключевые слова
        content_summary: Начало основного текста
    """
    url: str
    success: bool = False
    error_message: Optional[str] = None
    status_code: int = 0
    title: str = ""
    description: str = ""
    keywords: List[str] = field(default_factory=list)
    content_summary: str = ""


class PageSummarizer:
    """
    Класс для получения сводки по веб-странице.

    Аргументы:
        config: Объект конфигурации приложения
        transport: Асинхронный транспорт httpx (для тестов)
    """

    def __init__(self, config: Optional[Config] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or Config()
        self.timeout = httpx.Timeout(timeout=self.config.summary_timeout)
        self.max_size_bytes = self.config.summary_max_size_mb * 1024 * 1024
        self._transport = transport

    async def summarize(self, url: str) -> WebPageSummary:
        """
        Загружает страницу и извлекает сводку.

        Ошибки загрузки не выбрасываются, а возвращаются в поле error_message.

        Аргументы:
            url: Адрес страницы

        Возвращает:
            WebPageSummary: Сводка по странице
        """
        start_time = time.time()
        log_function_call("PageSummarizer.summarize", (url,))
        summary = WebPageSummary(url=url)

        if not ValidationUtils.is_valid_url(url):
            summary.error_message = "Некорректный URL"
            logger.warning(f"Некорректный URL: {url}")
            return summary

        try:
            async with httpx.AsyncClient(
                timeout=self.timeout,
                follow_redirects=True,
                headers={"User-Agent": self.config.check_user_agent or DEFAULT_USER_AGENT},
                transport=self._transport,
            ) as client:
                response = await client.get(url)
        except httpx.TimeoutException:
            summary.error_message = "Превышено время ожидания"
            logger.warning(f"Таймаут загрузки страницы: {url}")
            return summary
        except httpx.HTTPError as e:
            summary.error_message = f"Ошибка запроса: {e}"
            log_error_with_context(e, {"url": url, "operation": "summarize"})
            return summary

        summary.status_code = response.status_code
        if response.status_code >= 400:
            summary.error_message = f"HTTP {response.status_code} {response.reason_phrase}".rstrip()
            logger.warning(f"Страница недоступна ({response.status_code}): {url}")
            return summary

        if len(response.content) > self.max_size_bytes:
            summary.error_message = f"Размер страницы превышает лимит {self.config.summary_max_size_mb}MB"
            logger.warning(f"Размер контента превышает лимит: {url}")
            return summary

        self.parse_html(response.text, summary)
        summary.success = True

        duration = time.time() - start_time
        log_performance("PageSummarizer.summarize", duration, f"url={url}")
        return summary

    def parse_html(self, html: str, summary: WebPageSummary) -> WebPageSummary:
        """
        Заполняет сводку данными из HTML.

        Аргументы:
            html: HTML-контент
            summary: Заполняемая сводка

        Возвращает:
            WebPageSummary: Та же сводка
        """
        soup = BeautifulSoup(html, "html.parser")

        summary.title = self._meta_content(soup, property_name="og:title") or TextUtils.clean_text(
            soup.title.string if soup.title and soup.title.string else ""
        )
        summary.description = (
            self._meta_content(soup, name="description")
            or self._meta_content(soup, property_name="og:description")
        )

        keywords = self._meta_content(soup, name="keywords")
        if keywords:
            seen = []
            for keyword in (k.strip() for k in keywords.split(",")):
                if keyword and keyword.lower() not in (s.lower() for s in seen):
                    seen.append(keyword)
            summary.keywords = seen[:MAX_KEYWORDS]

        summary.content_summary = TextUtils.truncate_text(self.extract_text(soup), MAX_SUMMARY_LENGTH)
        logger.debug(f"Страница разобрана: title={summary.title!r}, keywords={len(summary.keywords)}")
        return summary

    @staticmethod
    def _meta_content(
        soup: BeautifulSoup, name: Optional[str] = None, property_name: Optional[str] = None
    ) -> str:
        attrs = {"name": re.compile(f"^{name}$", re.I)} if name else {"property": property_name}
        tag = soup.find("meta", attrs=attrs)
        if tag and tag.get("content"):
            return TextUtils.clean_text(tag["content"])
        return ""

    @staticmethod
    def extract_text(soup: BeautifulSoup) -> str:
        """
        Извлекает основной текст страницы.

        Аргументы:
            soup: Разобранный HTML

        Возвращает:
            str: Текст без скриптов, стилей и навигации
        """
        for tag in ("script", "style", "nav", "footer", "header", "noscript"):
            for element in soup.find_all(tag):
                element.decompose()

        main_content = (
            soup.find("main")
            or soup.find("article")
            or soup.find("div", class_=re.compile(r"main|content|article"))
        )
        text = (main_content or soup).get_text(" ")
        return TextUtils.clean_text(text)
