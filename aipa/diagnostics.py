"""Which compliant access method each listing source currently allows."""
import logging
from typing import List, Literal, Optional, Sequence

import httpx
from pydantic import BaseModel

from aipa import config
from aipa.schemas import BlockedSite

log = logging.getLogger(__name__)

AccessMethod = Literal["API", "SITEMAP", "PUBLIC_HTML", "BYOC", "NONE"]

PROBE_TIMEOUT_S = 3.5


class SitePolicy(BaseModel):
    id: str
    name: str
    base_url: str
    allowed: List[AccessMethod]
    order: List[AccessMethod]
    api_probe_url: Optional[str] = None


class SiteDiagnosis(BaseModel):
    site_id: str
    site_name: str
    access_method: AccessMethod
    requires_user_session: bool = False
    reason: str


SITE_POLICIES: List[SitePolicy] = [
    SitePolicy(
        id="olx",
        name="OLX Portugal",
        base_url="https://www.olx.pt",
        allowed=["API"],
        order=["API"],
        api_probe_url="https://www.olx.pt/api/v1/offers?limit=1",
    ),
]


class SiteDiagnostics:
    def __init__(self, policies: Sequence[SitePolicy] = SITE_POLICIES, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.policies = list(policies)
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        kwargs = {"transport": self._transport} if self._transport is not None else {}
        return httpx.AsyncClient(
            timeout=PROBE_TIMEOUT_S,
            follow_redirects=True,
            headers={"User-Agent": config.USER_AGENT},
            **kwargs,
        )

    async def _probe_api(self, client: httpx.AsyncClient, policy: SitePolicy) -> bool:
        if not policy.api_probe_url:
            return False
        try:
            r = await client.get(policy.api_probe_url)
            return r.is_success and isinstance(r.json().get("data"), list)
        except (httpx.HTTPError, ValueError, AttributeError):
            return False

    async def _probe_sitemap(self, client: httpx.AsyncClient, policy: SitePolicy) -> bool:
        try:
            r = await client.get(f"{policy.base_url}/sitemap.xml")
            return r.is_success
        except httpx.HTTPError:
            return False

    async def _robots_allow(self, client: httpx.AsyncClient, policy: SitePolicy) -> bool:
        try:
            r = await client.get(f"{policy.base_url}/robots.txt")
        except httpx.HTTPError:
            return False
        if not r.is_success:
            return False
        return not any(line.strip().lower() == "disallow: /" for line in r.text.splitlines())

    async def _probe_public_html(self, client: httpx.AsyncClient, policy: SitePolicy) -> bool:
        if not await self._robots_allow(client, policy):
            return False
        try:
            r = await client.get(policy.base_url)
            return r.is_success
        except httpx.HTTPError:
            return False

    async def diagnose_site(self, policy: SitePolicy) -> SiteDiagnosis:
        async with self._client() as client:
            for method in policy.order:
                if method not in policy.allowed:
                    continue
                if method == "API" and await self._probe_api(client, policy):
                    return SiteDiagnosis(site_id=policy.id, site_name=policy.name, access_method="API", reason="API access available")
                if method == "SITEMAP" and await self._probe_sitemap(client, policy):
                    return SiteDiagnosis(site_id=policy.id, site_name=policy.name, access_method="SITEMAP", reason="Sitemap accessible")
                if method == "PUBLIC_HTML" and await self._probe_public_html(client, policy):
                    return SiteDiagnosis(site_id=policy.id, site_name=policy.name, access_method="PUBLIC_HTML", reason="Public HTML allowed")
                if method == "BYOC":
                    return SiteDiagnosis(
                        site_id=policy.id,
                        site_name=policy.name,
                        access_method="BYOC",
                        requires_user_session=True,
                        reason="Requires user-authenticated browsing",
                    )
        return SiteDiagnosis(site_id=policy.id, site_name=policy.name, access_method="NONE", reason="No compliant access method found")

    async def blocked_sites(self) -> List[BlockedSite]:
        blocked = []
        for policy in self.policies:
            diagnosis = await self.diagnose_site(policy)
            log.info("[Diagnostics] %s -> %s", policy.id, diagnosis.access_method)
            if diagnosis.access_method in ("BYOC", "NONE"):
                blocked.append(
                    BlockedSite(
                        site_id=diagnosis.site_id,
                        site_name=diagnosis.site_name,
                        required_method=diagnosis.access_method,
                        reason=diagnosis.reason,
                    )
                )
        return blocked
