"""DJEN (Diário de Justiça Eletrônico Nacional) API client with retry/backoff"""
import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from tenacity import AsyncRetrying, stop_after_attempt, wait_exponential, retry_if_exception_type

from gazette_sync.core.config import settings
from gazette_sync.services.gazette_records import (
    DisclosureRecord, InvalidDisclosureError, parse_disclosure
)

logger = logging.getLogger(__name__)


class GazetteError(Exception):
    """Base error for DJEN API failures"""
    pass


class GazetteTransientError(GazetteError):
    """Timeout, network failure, 5xx or malformed body - worth retrying"""
    pass


class GazetteRejectedError(GazetteError):
    """4xx response - retrying will not help"""

    def __init__(self, status_code: int, detail: str = ""):
        self.status_code = status_code
        super().__init__(f"DJEN rejected request with HTTP {status_code}: {detail[:200]}")


@dataclass
class GazettePage:
    count: int
    items: List[Dict[str, Any]]


@dataclass
class AttorneyFetchResult:
    """Everything fetched for one attorney in one run"""
    attorney_name: str
    records: List[DisclosureRecord] = field(default_factory=list)
    pages_fetched: int = 0
    invalid_items: int = 0
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class GazetteClient:
    """
    Async client for the DJEN public communications API.

    Usage:
        async with GazetteClient(timeout=30, max_retries=3) as client:
            result = await client.fetch_disclosures("PEDRO ...", start, end)
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        page_size: Optional[int] = None,
        max_pages: Optional[int] = None,
        backoff_base: Optional[float] = None,
        backoff_max: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self.base_url = (base_url or settings.gazette_base_url).rstrip("/")
        self.timeout = timeout
        self.max_retries = max(0, max_retries)
        self.page_size = page_size or settings.gazette_page_size
        self.max_pages = max_pages or settings.gazette_max_pages
        self.backoff_base = settings.gazette_backoff_base_seconds if backoff_base is None else backoff_base
        self.backoff_max = settings.gazette_backoff_max_seconds if backoff_max is None else backoff_max
        self._transport = transport
        self._sleep = sleep
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Accept": "application/json"},
        )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with GazetteClient(...) as client:'")
        return self._client

    async def _request_page(self, params: Dict[str, Any]) -> GazettePage:
        """Single GET /comunicacao, classified into transient vs rejected errors"""
        try:
            response = await self.client.get("/comunicacao", params=params)
        except httpx.TimeoutException as e:
            raise GazetteTransientError(f"timeout after {self.timeout}s") from e
        except httpx.TransportError as e:
            raise GazetteTransientError(f"network error: {e}") from e

        if response.status_code >= 500:
            raise GazetteTransientError(f"DJEN returned HTTP {response.status_code}")
        if response.status_code >= 400:
            raise GazetteRejectedError(response.status_code, response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise GazetteTransientError("malformed JSON body") from e

        if not isinstance(payload, dict) or not isinstance(payload.get("items", []), list):
            raise GazetteTransientError("unexpected response shape")

        items = payload.get("items") or []
        return GazettePage(count=int(payload.get("count") or 0), items=items)

    async def get_page(self, params: Dict[str, Any]) -> GazettePage:
        """Fetch one page, retrying transient failures with exponential backoff"""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(GazetteTransientError),
            stop=stop_after_attempt(self.max_retries + 1),
            wait=wait_exponential(multiplier=self.backoff_base, max=self.backoff_max),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        return await retrying(self._request_page, params)

    @staticmethod
    def _log_retry(retry_state) -> None:
        logger.warning(
            "DJEN request failed (attempt %s), retrying: %s",
            retry_state.attempt_number,
            retry_state.outcome.exception(),
        )

    async def fetch_disclosures(
        self,
        attorney_name: str,
        start_date: date,
        end_date: date,
        channel: Optional[str] = None,
        court: Optional[str] = None,
        oab_number: Optional[str] = None,
        oab_uf: Optional[str] = None,
    ) -> AttorneyFetchResult:
        """
        Fetch every page of communications for one attorney and window.

        Pages are requested strictly in order and pagination stops at the
        first short page or at max_pages. Failures never raise: they are
        recorded on the result, keeping records from pages already fetched.
        """
        result = AttorneyFetchResult(attorney_name=attorney_name)
        params: Dict[str, Any] = {
            "nomeAdvogado": attorney_name,
            "dataDisponibilizacaoInicio": start_date.isoformat(),
            "dataDisponibilizacaoFim": end_date.isoformat(),
            "meio": channel or settings.gazette_channel,
            "itensPorPagina": self.page_size,
        }
        if court and court.lower() != "all":
            params["siglaTribunal"] = court
        if oab_number:
            params["numeroOab"] = oab_number
        if oab_uf:
            params["ufOab"] = oab_uf

        for page in range(1, self.max_pages + 1):
            try:
                response = await self.get_page({**params, "pagina": page})
            except GazetteError as e:
                logger.error(f"DJEN fetch failed for {attorney_name} on page {page}: {e}")
                result.error = f"{attorney_name}: page {page}: {e}"
                return result

            result.pages_fetched = page
            for item in response.items:
                try:
                    result.records.append(parse_disclosure(item, page=page))
                except InvalidDisclosureError as e:
                    logger.warning(f"Skipping invalid DJEN item for {attorney_name} on page {page}: {e}")
                    result.invalid_items += 1

            if len(response.items) < self.page_size:
                break
        else:
            logger.warning(f"Stopped paging {attorney_name} at safety cap of {self.max_pages} pages")

        logger.info(
            f"Fetched {len(result.records)} communications for {attorney_name} "
            f"in {result.pages_fetched} page(s)"
        )
        return result
