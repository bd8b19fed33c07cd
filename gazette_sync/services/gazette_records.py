"""Typed views over raw DJEN payloads.

The DJEN API is loosely shaped: the same process number arrives either as
``numero_processo`` (digits only) or ``numeroprocessocommascara`` (CNJ mask),
and the disclosure date as ``data_disponibilizacao`` (ISO) or
``datadisponibilizacao`` (dd/mm/yyyy). Everything is normalized here, once,
so the rest of the sync engine only ever sees ``DisclosureRecord``.
"""
import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Dict, List, Literal, Optional, Tuple


CNJ_PATTERN = re.compile(r"(\d{7}-\d{2}\.\d{4}\.\d\.\d{2}\.\d{4})")


class InvalidDisclosureError(ValueError):
    """Raised when a DJEN item lacks a process number or disclosure date"""
    pass


def normalize_attorney_name(name: str) -> str:
    """Trim, collapse whitespace and upper-case an attorney name.

    Accents are kept: DJEN matches ``nomeAdvogado`` literally.
    """
    if not name:
        return ""
    normalized = unicodedata.normalize("NFC", name)
    return " ".join(normalized.split()).upper()


@dataclass(frozen=True)
class MonitoredAttorney:
    """An attorney polled on every run"""
    name: str
    oab_number: Optional[str] = None
    oab_uf: Optional[str] = None

    @classmethod
    def from_config(cls, value: Any) -> "MonitoredAttorney":
        """Build from a plain name or a {name, oab_number, oab_uf} mapping"""
        if isinstance(value, MonitoredAttorney):
            return value
        if isinstance(value, str):
            return cls(name=normalize_attorney_name(value))
        if isinstance(value, dict):
            return cls(
                name=normalize_attorney_name(value.get("name", "")),
                oab_number=value.get("oab_number") or None,
                oab_uf=(value.get("oab_uf") or "").upper() or None,
            )
        raise TypeError(f"Unsupported attorney entry: {value!r}")


@dataclass(frozen=True)
class ProcessNumber:
    """Process number tagged with the field variant it came from"""
    kind: Literal["masked", "unmasked"]
    value: str

    @property
    def digits(self) -> str:
        return re.sub(r"\D", "", self.value)

    @property
    def masked(self) -> Optional[str]:
        """CNJ-formatted number, derived from the digits when needed"""
        if self.kind == "masked":
            return self.value
        d = self.digits
        if len(d) != 20:
            return None
        return f"{d[0:7]}-{d[7:9]}.{d[9:13]}.{d[13]}.{d[14:16]}.{d[16:20]}"


@dataclass(frozen=True)
class Recipient:
    """A party the communication is addressed to"""
    name: str
    pole: Optional[str] = None  # e.g. "A" (ativo) or "P" (passivo)

    def as_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "pole": self.pole}


@dataclass(frozen=True)
class RecipientAttorney:
    """An attorney the communication is addressed to"""
    name: str
    oab_number: Optional[str] = None
    oab_uf: Optional[str] = None

    def as_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "oab_number": self.oab_number, "oab_uf": self.oab_uf}


@dataclass(frozen=True)
class DisclosureRecord:
    """One communication returned by the DJEN API, normalized"""
    process_number: ProcessNumber
    court: Optional[str]
    disclosure_date: date
    channel: Optional[str]
    communication_type: Optional[str]
    text: str
    external_id: Optional[str] = None
    organ_name: Optional[str] = None
    link: Optional[str] = None
    communication_number: Optional[str] = None
    document_type: Optional[str] = None
    class_name: Optional[str] = None
    recipients: Tuple[Recipient, ...] = ()
    attorney_recipients: Tuple[RecipientAttorney, ...] = ()
    page: int = 1


def _first(item: Dict[str, Any], *keys: str) -> Any:
    for key in keys:
        value = item.get(key)
        if value not in (None, ""):
            return value
    return None


def _optional_str(value: Any) -> Optional[str]:
    return str(value) if value is not None else None


def _parse_recipients(item: Dict[str, Any]) -> Tuple[Recipient, ...]:
    recipients: List[Recipient] = []
    for entry in item.get("destinatarios") or []:
        if isinstance(entry, dict) and entry.get("nome"):
            recipients.append(Recipient(name=str(entry["nome"]).strip(), pole=entry.get("polo") or None))
    return tuple(recipients)


def _parse_attorney_recipients(item: Dict[str, Any]) -> Tuple[RecipientAttorney, ...]:
    attorneys: List[RecipientAttorney] = []
    for entry in item.get("destinatarioadvogados") or []:
        # Each entry wraps the attorney: {"advogado": {"nome": ..., "numero_oab": ..., "uf_oab": ...}}
        advogado = entry.get("advogado") if isinstance(entry, dict) else None
        if not isinstance(advogado, dict) or not advogado.get("nome"):
            continue
        attorneys.append(RecipientAttorney(
            name=str(advogado["nome"]).strip(),
            oab_number=_optional_str(advogado.get("numero_oab") or None),
            oab_uf=advogado.get("uf_oab") or None,
        ))
    return tuple(attorneys)


def _parse_process_number(item: Dict[str, Any]) -> ProcessNumber:
    masked = _first(item, "numeroprocessocommascara", "numeroProcessoMascara")
    if masked:
        return ProcessNumber(kind="masked", value=str(masked).strip())

    unmasked = _first(item, "numero_processo", "numeroProcesso")
    if unmasked:
        return ProcessNumber(kind="unmasked", value=str(unmasked).strip())

    # Last resort: the CNJ number quoted in the body
    match = CNJ_PATTERN.search(item.get("texto") or "")
    if match:
        return ProcessNumber(kind="masked", value=match.group(1))

    raise InvalidDisclosureError("item has no process number")


def parse_disclosure_date(value: Any) -> date:
    """Accept YYYY-MM-DD, ISO datetimes and dd/mm/yyyy"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not value:
        raise InvalidDisclosureError("item has no disclosure date")

    raw = str(value).strip()
    for fmt in ("%Y-%m-%d", "%d/%m/%Y"):
        try:
            return datetime.strptime(raw[:10], fmt).date()
        except ValueError:
            continue
    raise InvalidDisclosureError(f"unparseable disclosure date: {raw!r}")


def parse_disclosure(item: Dict[str, Any], page: int = 1) -> DisclosureRecord:
    """Normalize a raw DJEN item into a DisclosureRecord"""
    if not isinstance(item, dict):
        raise InvalidDisclosureError(f"item is not an object: {type(item).__name__}")

    external_id = _first(item, "hash", "hashComunicacao", "hash_comunicacao")

    return DisclosureRecord(
        process_number=_parse_process_number(item),
        court=_first(item, "siglaTribunal", "sigla_tribunal"),
        disclosure_date=parse_disclosure_date(
            _first(item, "data_disponibilizacao", "dataDisponibilizacao", "datadisponibilizacao")
        ),
        channel=_first(item, "meio"),
        communication_type=_first(item, "tipoComunicacao", "tipo_comunicacao"),
        text=item.get("texto") or "",
        external_id=str(external_id).strip() if external_id else None,
        organ_name=_first(item, "nomeOrgao", "nome_orgao"),
        link=_first(item, "link"),
        communication_number=_optional_str(_first(item, "numeroComunicacao", "numero_comunicacao")),
        document_type=_first(item, "tipoDocumento", "tipo_documento"),
        class_name=_first(item, "nomeClasse", "nome_classe"),
        recipients=_parse_recipients(item),
        attorney_recipients=_parse_attorney_recipients(item),
        page=page,
    )
