"""
Stockist directory built from the public company, medicine and stockist lists.

Each stockist becomes one entry listing the companies and medicines it is
associated with, found by scanning every medicine's stockist entries. The
scan is done in memory on every load.
"""
import logging
from typing import Any, Dict, Iterable, List, Literal, Optional

import httpx
from pydantic import BaseModel, Field

from client import ApiError, MedTrapClient

logger = logging.getLogger(__name__)

Kind = Literal["company", "medicine", "stockist"]


class DirectoryEntry(BaseModel):
    id: str
    title: str
    phone: Optional[str] = None
    address: str = ""
    companies: List[str] = Field(default_factory=list)
    medicines: List[str] = Field(default_factory=list)


class Directory(BaseModel):
    entries: List[DirectoryEntry] = Field(default_factory=list)
    failed: List[str] = Field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.failed


def _ref_id(value: Any) -> Optional[str]:
    if isinstance(value, dict):
        value = value.get("_id") or value.get("id")
    return str(value) if value else None


def _distinct(values: Iterable[Optional[str]]) -> List[str]:
    seen: Dict[str, None] = {}
    for v in values:
        if v:
            seen.setdefault(v, None)
    return list(seen)


def _company_name(company: Any, by_id: Dict[str, dict]) -> Optional[str]:
    if isinstance(company, str):
        found = by_id.get(company)
        return (found.get("name") or found.get("shortName")) if found else company
    if isinstance(company, dict):
        return company.get("name") or company.get("shortName")
    return None


def _medicine_name(medicine: Any, by_id: Dict[str, dict]) -> Optional[str]:
    if isinstance(medicine, str):
        medicine = by_id.get(medicine, medicine)
        if isinstance(medicine, str):
            return medicine
    if isinstance(medicine, dict):
        return medicine.get("name") or medicine.get("brandName")
    return None


def _stocked_by(medicine: dict, stockist_id: str) -> bool:
    for entry in medicine.get("stockists") or []:
        ref = entry.get("stockist") if isinstance(entry, dict) and "stockist" in entry else entry
        if _ref_id(ref) == stockist_id:
            return True
    return False


def _derived_company_names(carried: List[dict], by_id: Dict[str, dict]) -> List[Optional[str]]:
    """Names of the companies behind ``carried``. Ids that resolve to nothing are left out."""
    names = []
    for m in carried:
        ref = m.get("company")
        found = by_id.get(_ref_id(ref))
        if found is None and isinstance(ref, dict):
            found = ref
        if found:
            names.append(found.get("name") or found.get("shortName"))
    return names


def build_directory(stockists: List[dict], medicines: List[dict], companies: List[dict]) -> List[DirectoryEntry]:
    companies_by_id = {_ref_id(c): c for c in companies if _ref_id(c)}
    medicines_by_id = {_ref_id(m): m for m in medicines if _ref_id(m)}
    entries = []
    for s in stockists:
        sid = _ref_id(s)
        if not sid:
            continue
        carried = [m for m in medicines if _stocked_by(m, sid)]

        # a stockist that lists its own companies/medicines wins over the derived ones
        if s.get("companies"):
            company_names = [_company_name(c, companies_by_id) for c in s["companies"]]
        else:
            company_names = _derived_company_names(carried, companies_by_id)
        medicine_refs = s.get("medicines") or carried

        address = s.get("address") or {}
        entries.append(DirectoryEntry(
            id=sid,
            title=s.get("name") or "",
            phone=s.get("phone"),
            address=f"{address.get('street') or ''}, {address.get('city') or ''}" if address else "",
            companies=_distinct(company_names),
            medicines=_distinct(_medicine_name(m, medicines_by_id) for m in medicine_refs),
        ))
    return entries


def _field(kind: Kind) -> str:
    return {"company": "companies", "medicine": "medicines"}[kind]


def all_items(entries: List[DirectoryEntry], kind: Kind) -> List[str]:
    if kind == "stockist":
        return _distinct(e.title for e in entries)
    return _distinct(item for e in entries for item in getattr(e, _field(kind)))


def suggestions(entries: List[DirectoryEntry], kind: Kind, query: str) -> List[str]:
    needle = (query or "").strip().lower()
    if not needle:
        return []
    return [item for item in all_items(entries, kind) if needle in item.lower()]


def stockists_for(entries: List[DirectoryEntry], kind: Kind, value: str) -> List[DirectoryEntry]:
    if kind == "stockist":
        return [e for e in entries if e.title == value]
    return [e for e in entries if value in getattr(e, _field(kind))]


def browse(entries: List[DirectoryEntry], kind: Kind) -> List[DirectoryEntry]:
    """Every entry reachable through any item of ``kind``, first occurrence kept."""
    if kind == "stockist":
        return list(entries)
    seen = set()
    out = []
    for item in all_items(entries, kind):
        for entry in stockists_for(entries, kind, item):
            if entry.id not in seen:
                seen.add(entry.id)
                out.append(entry)
    return out


class DirectoryClient:
    RESOURCES = ("stockist", "medicine", "company")

    def __init__(self, client: Optional[MedTrapClient] = None):
        self.client = client or MedTrapClient()

    def _fetch(self, resource: str, failed: List[str]) -> List[dict]:
        try:
            return self.client.list_all(resource)
        except (ApiError, httpx.HTTPError) as e:
            logger.warning("Failed to load %s list: %s", resource, e)
            failed.append(resource)
            return []

    def load(self) -> Directory:
        failed: List[str] = []
        stockists, medicines, companies = (self._fetch(r, failed) for r in self.RESOURCES)
        entries = build_directory(stockists, medicines, companies)
        logger.debug("Loaded %d directory entries", len(entries))
        return Directory(entries=entries, failed=failed)
