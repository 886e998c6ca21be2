"""
Vendor bulletin lookup (Microsoft Security Response Center CVRF API).

The MSRC strategy only needs two read operations: list the monthly update
documents of a year, and fetch one document. MsrcBulletinClient implements
both against the public CVRF v3 REST API and normalizes the CVRF JSON into
BulletinDocument objects, so the strategy never sees raw CVRF.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from .errors import BulletinLookupError

logger = logging.getLogger(__name__)

MSRC_API_BASE = "https://api.msrc.microsoft.com/cvrf/v3.0"


@dataclass(frozen=True)
class BulletinUpdate:
    id: str
    title: str = ""


@dataclass(frozen=True)
class Remediation:
    url: str
    description: str
    identifier: Optional[str] = None


@dataclass(frozen=True)
class AffectedProduct:
    id: str
    name: str
    identifier: Optional[str] = None


@dataclass(frozen=True)
class BulletinDocument:
    id: str
    identifiers: List[str] = field(default_factory=list)
    remediations: List[Remediation] = field(default_factory=list)
    affected_products: List[AffectedProduct] = field(default_factory=list)

    def remediations_for(self, identifier: str) -> List[Remediation]:
        return [r for r in self.remediations if r.identifier in (None, identifier)]

    def products_for(self, identifier: str) -> List[AffectedProduct]:
        return [p for p in self.affected_products if p.identifier in (None, identifier)]


class MsrcBulletinClient:
    """Read-only client for the MSRC security update guide API."""

    def __init__(self, base_url: str = MSRC_API_BASE, timeout: float = 30, session: Optional[requests.Session] = None):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json", "User-Agent": "advisory-scraper/1.0"})

    def list_updates(self, year: int) -> List[BulletinUpdate]:
        """Monthly update documents filed under ``year``; empty if there are none."""
        data = self._get_json(f"{self.base_url}/updates('{year}')", missing_ok=True)
        if data is None:
            return []
        updates = []
        for item in data.get("value", []):
            update_id = item.get("ID") or item.get("Alias")
            if update_id:
                updates.append(BulletinUpdate(id=update_id, title=item.get("DocumentTitle") or ""))
        return updates

    def get_document(self, update_id: str) -> BulletinDocument:
        data = self._get_json(f"{self.base_url}/cvrf/{update_id}")
        return parse_cvrf_document(update_id, data or {})

    def _get_json(self, url: str, missing_ok: bool = False) -> Optional[Dict[str, Any]]:
        try:
            response = self.session.get(url, timeout=self.timeout)
            if missing_ok and response.status_code == 404:
                return None
            response.raise_for_status()
            return response.json()
        except requests.RequestException as e:
            raise BulletinLookupError(f"MSRC request failed: {e}", url) from e
        except ValueError as e:
            raise BulletinLookupError(f"MSRC returned invalid JSON: {e}", url) from e


def parse_cvrf_document(update_id: str, data: Dict[str, Any]) -> BulletinDocument:
    """Normalize a CVRF JSON document."""
    product_names: Dict[str, str] = {}
    for product in (data.get("ProductTree") or {}).get("FullProductName", []) or []:
        product_id = str(product.get("ProductID", ""))
        if product_id:
            product_names[product_id] = product.get("Value", "")

    identifiers: List[str] = []
    remediations: List[Remediation] = []
    products: List[AffectedProduct] = []

    for vuln in data.get("Vulnerability", []) or []:
        cve = (vuln.get("CVE") or "").upper()
        if not cve:
            continue
        if cve not in identifiers:
            identifiers.append(cve)

        for rem in vuln.get("Remediations", []) or []:
            description = (rem.get("Description") or {}).get("Value", "") or ""
            remediations.append(Remediation(url=rem.get("URL", "") or "", description=description, identifier=cve))

        seen = set()
        for status in vuln.get("ProductStatuses", []) or []:
            for product_id in status.get("ProductID", []) or []:
                product_id = str(product_id)
                if product_id in seen:
                    continue
                seen.add(product_id)
                products.append(
                    AffectedProduct(id=product_id, name=product_names.get(product_id, product_id), identifier=cve)
                )

    return BulletinDocument(
        id=update_id, identifiers=identifiers, remediations=remediations, affected_products=products
    )
