"""Site access diagnostics, probed through httpx.MockTransport."""
import httpx
import pytest

from aipa.diagnostics import SiteDiagnostics, SitePolicy

pytestmark = pytest.mark.asyncio


def _policy(**overrides) -> SitePolicy:
    data = dict(
        id="site",
        name="Some Site",
        base_url="https://site.test",
        allowed=["API"],
        order=["API"],
        api_probe_url="https://site.test/api/v1/offers?limit=1",
    )
    data.update(overrides)
    return SitePolicy(**data)


def _diagnostics(policies, handler) -> SiteDiagnostics:
    return SiteDiagnostics(policies, transport=httpx.MockTransport(handler))


async def test_working_api_is_not_blocked():
    diag = _diagnostics([_policy()], lambda r: httpx.Response(200, json={"data": []}))
    diagnosis = await diag.diagnose_site(_policy())
    assert diagnosis.access_method == "API"
    assert await diag.blocked_sites() == []


async def test_broken_api_is_blocked():
    diag = _diagnostics([_policy()], lambda r: httpx.Response(500))
    [blocked] = await diag.blocked_sites()
    assert blocked.site_id == "site"
    assert blocked.required_method == "NONE"


async def test_api_without_data_list_is_blocked():
    diag = _diagnostics([_policy()], lambda r: httpx.Response(200, json={"error": "nope"}))
    assert (await diag.diagnose_site(_policy())).access_method == "NONE"


async def test_falls_through_to_sitemap():
    policy = _policy(allowed=["API", "SITEMAP"], order=["API", "SITEMAP"])

    def handler(request):
        if request.url.path == "/sitemap.xml":
            return httpx.Response(200, text="<urlset/>")
        return httpx.Response(403)

    diagnosis = await _diagnostics([policy], handler).diagnose_site(policy)
    assert diagnosis.access_method == "SITEMAP"


async def test_public_html_respects_robots():
    policy = _policy(allowed=["PUBLIC_HTML"], order=["PUBLIC_HTML"], api_probe_url=None)

    def handler(request):
        if request.url.path == "/robots.txt":
            return httpx.Response(200, text="User-agent: *\nDisallow: /\n")
        return httpx.Response(200, text="<html></html>")

    assert (await _diagnostics([policy], handler).diagnose_site(policy)).access_method == "NONE"


async def test_byoc_requires_user_session():
    policy = _policy(allowed=["BYOC"], order=["BYOC"], api_probe_url=None)
    diag = _diagnostics([policy], lambda r: httpx.Response(200))
    diagnosis = await diag.diagnose_site(policy)
    assert diagnosis.access_method == "BYOC"
    assert diagnosis.requires_user_session is True
    [blocked] = await diag.blocked_sites()
    assert blocked.required_method == "BYOC"


async def test_unreachable_site():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    assert (await _diagnostics([_policy()], handler).diagnose_site(_policy())).access_method == "NONE"


async def test_no_policies():
    assert await _diagnostics([], lambda r: httpx.Response(200)).blocked_sites() == []
