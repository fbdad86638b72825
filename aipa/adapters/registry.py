from typing import List, Optional

from aipa import config
from aipa.adapters.base import SiteAdapter
from aipa.adapters.mock import MockAdapter
from aipa.adapters.olx import OlxAdapter
from aipa.adapters.portals import PortalSearchAdapter
from aipa.utils.http import Http


def default_adapters(http: Optional[Http] = None) -> List[SiteAdapter]:
    if config.MOCK_DATA:
        return [MockAdapter()]
    adapters: List[SiteAdapter] = [OlxAdapter(http)]
    if config.PORTAL_SEARCH_ENABLED:
        adapters.append(PortalSearchAdapter(http))
    return adapters
