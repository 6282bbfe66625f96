"""PDOK Locatieserver client: postal address -> CBS neighbourhood code.

Resolution order:
  1. suggest + lookup for a handful of spellings of the street address
  2. free-text queries, from strict (address + postcode) to generic, each
     tried against the current PDOK platform and the legacy NGR endpoint
"""

import logging
import re

import httpx

from buurtinfo.config import settings
from buurtinfo.data.fallback import QueryTemplate, candidate_pairs, first_success
from buurtinfo.data.http import get_json, locatieserver_docs
from buurtinfo.models.diagnostics import Diagnostics
from buurtinfo.models.neighbourhood import Centroid, NeighbourhoodIdentity, ResolutionError

logger = logging.getLogger(__name__)

FREE_QUERY_FIELDS = "id,buurtcode,buurtnaam,gemeentenaam,weergavenaam,type,postcode"

CODE_FIELDS = ("buurtcode", "buurt_code", "BU_CODE")
NAME_FIELDS = ("buurtnaam", "buurt_naam", "BU_NAAM", "buurtnaam_nn")
MUNICIPALITY_FIELDS = ("gemeentenaam", "GM_NAAM", "gemeente", "gemeente_naam", "woonplaatsnaam")

_WKT_POINT = re.compile(r"POINT\s*\(([-0-9.]+)\s+([-0-9.]+)\)")


def _first_field(doc: dict, names: tuple[str, ...]) -> str | None:
    for name in names:
        value = doc.get(name)
        if value:
            return value
    return None


def identity_from_doc(doc: dict | None) -> NeighbourhoodIdentity | None:
    """Neighbourhood identity carried by a Locatieserver doc, if it has a code."""
    if not doc:
        return None
    code = _first_field(doc, CODE_FIELDS)
    if not code:
        return None
    return NeighbourhoodIdentity(
        code=code,
        name=_first_field(doc, NAME_FIELDS),
        municipality_name=_first_field(doc, MUNICIPALITY_FIELDS),
    )


def normalize_zip_code(zip_code: str) -> str:
    return re.sub(r"\s+", "", zip_code or "").upper()


def make_address_variants(address_query: str, zip_code: str) -> list[str]:
    """Spellings of an address to feed to ``suggest``, de-duplicated in order.

    >>> make_address_variants("Nieuwmarkt 4 - A 1011AB", "1011AB")
    ['Nieuwmarkt 4-A 1011AB', 'Nieuwmarkt 4 A 1011AB', 'Nieuwmarkt 4-A', '1011AB Nieuwmarkt 4-A']
    """
    base = (address_query or "").strip()
    normalized = re.sub(r"\s+", " ", re.sub(r"\s*-\s*", "-", base))
    removed_dash = re.sub(r"(\d+)-([A-Za-z])\b", r"\1 \2", normalized, count=1)
    without_zip = re.sub(re.escape(zip_code) + "$", "", normalized).strip() if zip_code else normalized
    front_zip = f"{zip_code} {without_zip}".strip()

    variants: list[str] = []
    for v in (normalized, removed_dash, without_zip, front_zip):
        if v and v not in variants:
            variants.append(v)
    return variants


def query_templates(zip_code: str, address_query: str | None = None) -> list[QueryTemplate]:
    templates = []
    if address_query:
        templates.append(QueryTemplate(q=address_query, fq="type:adres", rows=10, note="address+postcode"))
    templates += [
        QueryTemplate(q=zip_code, fq=f"type:adres AND postcode:{zip_code}", rows=5, note="adres+postcode"),
        QueryTemplate(q=zip_code, fq=f"postcode:{zip_code}", rows=5, note="postcode-only"),
        QueryTemplate(q=zip_code, fq="type:adres", rows=5, note="adres-generic"),
    ]
    return templates


def parse_wkt_point(wkt: str | None) -> Centroid | None:
    """Parse ``POINT(lon lat)``."""
    if not wkt or not isinstance(wkt, str):
        return None
    m = _WKT_POINT.search(wkt)
    if not m:
        return None
    try:
        lon, lat = float(m.group(1)), float(m.group(2))
    except ValueError:
        return None
    return Centroid(lat=lat, lon=lon)


class LocatieserverClient:
    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str | None = None,
        legacy_base_url: str | None = None,
        timeout: float | None = None,
    ):
        self.client = client
        self.base_url = (base_url or settings.locatieserver_url).rstrip("/")
        self.legacy_base_url = (legacy_base_url or settings.locatieserver_legacy_url).rstrip("/")
        self.timeout = timeout or settings.request_timeout

    @property
    def free_urls(self) -> list[str]:
        return [f"{self.base_url}/free", f"{self.legacy_base_url}/free"]

    async def suggest(self, q: str, diag: Diagnostics) -> list[dict]:
        url = f"{self.base_url}/suggest"
        try:
            payload = await get_json(self.client, url, params={"q": q}, timeout=self.timeout)
        except (httpx.HTTPError, ValueError) as e:
            diag.add(f"[PDOK] suggest error {e}")
            logger.warning("Locatieserver suggest failed for %r: %s", q, e)
            return []
        docs = locatieserver_docs(payload)
        diag.add(f"[PDOK] suggest {q!r} docs {len(docs)}")
        return docs

    async def lookup(self, doc_id: str, diag: Diagnostics, lookup_url: str | None = None) -> dict | None:
        url = lookup_url or f"{self.base_url}/lookup"
        try:
            payload = await get_json(self.client, url, params={"id": doc_id}, timeout=self.timeout)
        except (httpx.HTTPError, ValueError) as e:
            diag.add(f"[PDOK] lookup error {e}")
            logger.warning("Locatieserver lookup failed for %s: %s", doc_id, e)
            return None
        docs = locatieserver_docs(payload)
        return docs[0] if docs else None

    async def resolve_neighbourhood(
        self,
        zip_code: str,
        address_query: str | None = None,
        diag: Diagnostics | None = None,
    ) -> NeighbourhoodIdentity | ResolutionError:
        """Resolve a postal code (and optional street address) to a neighbourhood.

        Never raises: every terminal failure comes back as a ResolutionError.
        """
        diag = diag if diag is not None else Diagnostics()
        zip_code = normalize_zip_code(zip_code)
        try:
            if address_query:
                identity = await self._resolve_via_suggest(zip_code, address_query, diag)
                if identity:
                    return identity

            pairs = candidate_pairs(query_templates(zip_code, address_query), self.free_urls)
            identity = await first_success(pairs, lambda pair: self._try_free_query(*pair, diag))
            if identity:
                return identity
        except Exception as e:
            msg = f"Failed to fetch neighbourhood meta for zipCode {zip_code}. Additional info: {e}"
            diag.add(msg)
            logger.error(msg)
            return ResolutionError(error=msg)

        msg = f"No buurtcode found for zipCode {zip_code} in Locatieserver response"
        diag.add(msg)
        logger.warning(msg)
        return ResolutionError(error=msg)

    async def _resolve_via_suggest(
        self, zip_code: str, address_query: str, diag: Diagnostics
    ) -> NeighbourhoodIdentity | None:
        for variant in make_address_variants(address_query, zip_code):
            candidates = [d for d in await self.suggest(variant, diag) if d.get("type") == "adres"]
            diag.add(f"[PDOK] suggest candidates {len(candidates)} for {variant!r}")
            for cand in candidates:
                if not cand.get("id"):
                    continue
                postcode = cand.get("postcode")
                if postcode and normalize_zip_code(postcode) != zip_code:
                    continue
                identity = identity_from_doc(await self.lookup(cand["id"], diag))
                if identity:
                    logger.info("Resolved %s via suggest: %s", zip_code, identity.code)
                    return identity
        return None

    async def _try_free_query(
        self, template: QueryTemplate, base: str, diag: Diagnostics
    ) -> NeighbourhoodIdentity | None:
        try:
            resp = await self.client.get(base, params=template.params(FREE_QUERY_FIELDS), timeout=self.timeout)
        except httpx.RequestError as e:
            diag.add(f"[PDOK] free {template.note} network error at {base}: {e}")
            return None

        if not resp.is_success:
            diag.add(f"[PDOK] free {template.note} status {resp.status_code} at {base}")
            return None

        # A body that is not JSON here is a broken upstream, not a miss
        docs = locatieserver_docs(resp.json())
        selected = next((d for d in docs if d.get("type") == "adres"), docs[0] if docs else None)
        if selected is None:
            diag.add(f"[PDOK] free {template.note}: no docs at {base}")
            return None

        code = _first_field(selected, CODE_FIELDS)
        name = _first_field(selected, NAME_FIELDS)
        municipality = _first_field(selected, MUNICIPALITY_FIELDS)

        if not (code and name and municipality) and selected.get("id"):
            lookup_url = base.rsplit("/", 1)[0] + "/lookup"
            full = await self.lookup(selected["id"], diag, lookup_url=lookup_url)
            if full:
                code = code or _first_field(full, CODE_FIELDS)
                name = name or _first_field(full, NAME_FIELDS)
                municipality = municipality or _first_field(full, MUNICIPALITY_FIELDS)

        diag.add(f"[PDOK] free {template.note} selected code={code} name={name} municipality={municipality}")
        if not code:
            return None
        logger.info("Resolved %s via %s (%s): %s", template.q, base, template.note, code)
        return NeighbourhoodIdentity(code=code, name=name, municipality_name=municipality)

    async def geocode_point(self, address_query: str, diag: Diagnostics) -> Centroid | None:
        """Point location of an address: suggest -> first ``adres`` doc -> lookup -> WKT."""
        doc = next((d for d in await self.suggest(address_query, diag) if d.get("type") == "adres"), None)
        if not doc or not doc.get("id"):
            diag.add("[Geo] suggest no adres doc")
            return None
        full = await self.lookup(doc["id"], diag)
        if not full:
            diag.add("[Geo] lookup returned nothing")
            return None
        point = parse_wkt_point(full.get("centroide_ll") or full.get("geometrie_ll"))
        if point is None:
            diag.add("[Geo] no usable centroide_ll")
            return None
        diag.add(f"[Geo] centroid from address {point.lat},{point.lon}")
        return point
