"""Test DJEN API client: pagination, retries, error classification and parsing"""
from datetime import date

import httpx
import pytest

from gazette_sync.services.gazette_client import GazetteClient
from gazette_sync.services.gazette_records import (
    InvalidDisclosureError, Recipient, RecipientAttorney, normalize_attorney_name, parse_disclosure
)

ATTORNEY = "PEDRO RODRIGUES MONTALVAO NETO"
START = date(2026, 9, 19)
END = date(2026, 10, 19)


class SleepRecorder:
    """Stands in for asyncio.sleep so backoff never waits"""

    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


def make_client(handler, **kwargs):
    kwargs.setdefault("sleep", SleepRecorder())
    return GazetteClient(transport=httpx.MockTransport(handler), **kwargs)


def page_response(items):
    return httpx.Response(200, json={"status": "success", "count": len(items), "items": items})


@pytest.mark.asyncio
async def test_paginates_until_short_page(djen_item):
    """Test pages are requested in order and stop at the first short page"""
    pages = {
        1: [djen_item(hash_="h1"), djen_item(hash_="h2")],
        2: [djen_item(hash_="h3")],
    }
    seen = []

    def handler(request):
        page = int(request.url.params["pagina"])
        seen.append(page)
        return page_response(pages.get(page, []))

    async with make_client(handler, page_size=2) as client:
        result = await client.fetch_disclosures(ATTORNEY, START, END)

    assert seen == [1, 2]
    assert result.pages_fetched == 2
    assert [r.external_id for r in result.records] == ["h1", "h2", "h3"]
    assert [r.page for r in result.records] == [1, 1, 2]
    assert not result.failed


@pytest.mark.asyncio
async def test_empty_first_page_makes_single_request():
    """Test a page-1 empty response does not trigger a page-2 request"""
    calls = []

    def handler(request):
        calls.append(request)
        return page_response([])

    async with make_client(handler, page_size=2) as client:
        result = await client.fetch_disclosures(ATTORNEY, START, END)

    assert len(calls) == 1
    assert result.records == []
    assert not result.failed


@pytest.mark.asyncio
async def test_full_pages_stop_at_safety_cap(djen_item):
    """Test paging never goes past max_pages"""
    calls = []

    def handler(request):
        calls.append(request)
        return page_response([djen_item(hash_=f"h{len(calls)}")])

    async with make_client(handler, page_size=1, max_pages=3) as client:
        result = await client.fetch_disclosures(ATTORNEY, START, END)

    assert len(calls) == 3
    assert len(result.records) == 3


@pytest.mark.asyncio
async def test_request_parameters():
    """Test query parameters sent to /comunicacao"""
    captured = []

    def handler(request):
        captured.append(request)
        return page_response([])

    async with make_client(handler, page_size=100) as client:
        await client.fetch_disclosures(ATTORNEY, START, END, court="TJSP")
        await client.fetch_disclosures(ATTORNEY, START, END, court="all")

    first, second = captured
    assert first.url.path == "/api/v1/comunicacao"
    assert first.url.params["nomeAdvogado"] == ATTORNEY
    assert first.url.params["dataDisponibilizacaoInicio"] == "2026-09-19"
    assert first.url.params["dataDisponibilizacaoFim"] == "2026-10-19"
    assert first.url.params["meio"] == "D"
    assert first.url.params["itensPorPagina"] == "100"
    assert first.url.params["pagina"] == "1"
    assert first.url.params["siglaTribunal"] == "TJSP"
    assert "siglaTribunal" not in second.url.params
    assert "numeroOab" not in first.url.params
    assert "ufOab" not in first.url.params


@pytest.mark.asyncio
async def test_oab_registration_is_forwarded():
    """Test numeroOab and ufOab are sent when the attorney has an OAB registration"""
    captured = []

    def handler(request):
        captured.append(request)
        return page_response([])

    async with make_client(handler) as client:
        await client.fetch_disclosures(ATTORNEY, START, END, oab_number="123456", oab_uf="SP")
        await client.fetch_disclosures(ATTORNEY, START, END, oab_number="123456")

    with_uf, without_uf = captured
    assert with_uf.url.params["numeroOab"] == "123456"
    assert with_uf.url.params["ufOab"] == "SP"
    assert with_uf.url.params["nomeAdvogado"] == ATTORNEY
    assert without_uf.url.params["numeroOab"] == "123456"
    assert "ufOab" not in without_uf.url.params


@pytest.mark.asyncio
async def test_always_503_retries_exactly_max_retries():
    """Test max_retries=2 against a failing endpoint makes exactly 3 attempts"""
    calls = []
    sleeper = SleepRecorder()

    def handler(request):
        calls.append(request)
        return httpx.Response(503, text="Service Unavailable")

    async with make_client(handler, max_retries=2, sleep=sleeper) as client:
        result = await client.fetch_disclosures(ATTORNEY, START, END)

    assert len(calls) == 3
    assert len(sleeper.calls) == 2
    assert result.failed
    assert "503" in result.error
    assert result.records == []


@pytest.mark.asyncio
async def test_backoff_grows_between_attempts():
    """Test the wait between retries increases"""
    sleeper = SleepRecorder()

    def handler(request):
        return httpx.Response(502)

    async with make_client(handler, max_retries=3, backoff_base=1.0, backoff_max=60.0, sleep=sleeper) as client:
        await client.fetch_disclosures(ATTORNEY, START, END)

    assert len(sleeper.calls) == 3
    assert sleeper.calls == sorted(sleeper.calls)
    assert sleeper.calls[0] < sleeper.calls[-1]


@pytest.mark.asyncio
@pytest.mark.parametrize("status_code", [400, 404, 429])
async def test_client_errors_are_not_retried(status_code):
    """Test 4xx responses fail immediately"""
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(status_code, text="nope")

    async with make_client(handler, max_retries=3) as client:
        result = await client.fetch_disclosures(ATTORNEY, START, END)

    assert len(calls) == 1
    assert result.failed
    assert str(status_code) in result.error


@pytest.mark.asyncio
async def test_malformed_json_is_retried(djen_item):
    """Test a garbled body counts as transient"""
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) == 1:
            return httpx.Response(200, content=b"<html>gateway</html>")
        return page_response([djen_item()])

    async with make_client(handler, max_retries=1, page_size=100) as client:
        result = await client.fetch_disclosures(ATTORNEY, START, END)

    assert len(calls) == 2
    assert not result.failed
    assert len(result.records) == 1


@pytest.mark.asyncio
async def test_timeout_is_retried_then_reported():
    """Test timeouts are retried and surface as a failed fetch"""
    calls = []

    def handler(request):
        calls.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    async with make_client(handler, max_retries=1, timeout=5.0) as client:
        result = await client.fetch_disclosures(ATTORNEY, START, END)

    assert len(calls) == 2
    assert result.failed
    assert "timeout" in result.error


@pytest.mark.asyncio
async def test_failure_mid_pagination_keeps_earlier_pages(djen_item):
    """Test records from pages fetched before a failure are kept"""
    def handler(request):
        if request.url.params["pagina"] == "1":
            return page_response([djen_item(hash_="h1"), djen_item(hash_="h2")])
        return httpx.Response(500)

    async with make_client(handler, page_size=2, max_retries=0) as client:
        result = await client.fetch_disclosures(ATTORNEY, START, END)

    assert result.failed
    assert "page 2" in result.error
    assert [r.external_id for r in result.records] == ["h1", "h2"]


@pytest.mark.asyncio
async def test_invalid_items_are_counted_and_skipped(djen_item):
    """Test items without a process number are skipped"""
    broken = djen_item(hash_="bad", texto="sem número")
    del broken["numeroprocessocommascara"]

    def handler(request):
        return page_response([djen_item(hash_="good"), broken])

    async with make_client(handler, page_size=100) as client:
        result = await client.fetch_disclosures(ATTORNEY, START, END)

    assert result.invalid_items == 1
    assert [r.external_id for r in result.records] == ["good"]
    assert not result.failed


@pytest.mark.asyncio
async def test_fetch_outside_context_manager_raises():
    """Test the client must be used as an async context manager"""
    client = GazetteClient()
    with pytest.raises(RuntimeError):
        await client.get_page({"pagina": 1})


def test_masked_and_unmasked_numbers_normalize_alike(djen_item):
    """Test both process number field variants produce the same digits"""
    masked = parse_disclosure(djen_item(masked=True))
    unmasked = parse_disclosure(djen_item(masked=False))

    assert masked.process_number.kind == "masked"
    assert unmasked.process_number.kind == "unmasked"
    assert masked.process_number.digits == unmasked.process_number.digits == "00012345620268260100"
    assert unmasked.process_number.masked == "0001234-56.2026.8.26.0100"


def test_alternate_date_format(djen_item):
    """Test dd/mm/yyyy disclosure dates"""
    item = djen_item()
    del item["data_disponibilizacao"]
    item["datadisponibilizacao"] = "10/10/2026"

    assert parse_disclosure(item).disclosure_date == date(2026, 10, 10)


def test_process_number_from_text(djen_item):
    """Test the CNJ number is recovered from the text as a last resort"""
    item = djen_item(texto="Processo 1234567-89.2025.8.26.0001 - intimação")
    del item["numeroprocessocommascara"]

    record = parse_disclosure(item)
    assert record.process_number.value == "1234567-89.2025.8.26.0001"


def test_missing_date_is_invalid(djen_item):
    item = djen_item()
    del item["data_disponibilizacao"]

    with pytest.raises(InvalidDisclosureError):
        parse_disclosure(item)


def test_normalize_attorney_name():
    """Test trimming, whitespace collapsing and upper-casing"""
    assert normalize_attorney_name("  pedro   rodrigues\tmontalvão neto ") == "PEDRO RODRIGUES MONTALVÃO NETO"
    assert normalize_attorney_name("") == ""


def test_optional_fields_are_carried(djen_item):
    record = parse_disclosure(djen_item(numeroComunicacao=42, tipoDocumento="Despacho", nomeClasse="PROCEDIMENTO COMUM CÍVEL"))

    assert record.communication_number == "42"
    assert record.document_type == "Despacho"
    assert record.class_name == "PROCEDIMENTO COMUM CÍVEL"
    assert record.organ_name == "1ª Vara Cível"


def test_recipients_are_parsed(djen_item):
    """Test party and attorney recipient lists are kept on the record"""
    record = parse_disclosure(djen_item(
        destinatarios=[
            {"nome": "MARIA DA SILVA", "polo": "A"},
            {"nome": "BANCO EXEMPLO S.A.", "polo": "P"},
            {"polo": "P"},
        ],
        destinatarioadvogados=[
            {"advogado": {"nome": "PEDRO RODRIGUES MONTALVAO NETO", "numero_oab": 123456, "uf_oab": "SP"}},
            {"advogado": None},
        ],
    ))

    assert record.recipients == (
        Recipient(name="MARIA DA SILVA", pole="A"),
        Recipient(name="BANCO EXEMPLO S.A.", pole="P"),
    )
    assert record.attorney_recipients == (
        RecipientAttorney(name="PEDRO RODRIGUES MONTALVAO NETO", oab_number="123456", oab_uf="SP"),
    )


def test_missing_recipients_are_empty(djen_item):
    record = parse_disclosure(djen_item())

    assert record.recipients == ()
    assert record.attorney_recipients == ()
