"""Fixed, realistic Portuguese listings for offline development (``MOCK_DATA=true``)."""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

from aipa.adapters.base import SearchContext, SiteAdapter, price_in_context
from aipa.schemas import Listing

log = logging.getLogger(__name__)

_PHOTO = "https://images.unsplash.com/photo-{}?w=800"

MOCK_LISTINGS: List[Dict[str, Any]] = [
    dict(id="mock-idealista-001", source_site="idealista", source_url="https://www.idealista.pt/imovel/mock-001",
         title="Rustic land plot with views near Sintra", price_eur=18500, area_sqm=1200,
         address="Sintra, Lisbon District", city="Sintra", lat=38.8029, lng=-9.3817, property_type="land",
         description="Quiet plot with access road and utilities nearby. Suits small farming or a weekend retreat.",
         photos=[_PHOTO.format("1469474968028-56623f02e42e")]),
    dict(id="mock-kyero-002", source_site="kyero", source_url="https://www.kyero.com/en/property/mock-002",
         title="Agricultural land in Loures", price_eur=22000, area_sqm=2500,
         address="Loures, Lisbon District", city="Loures", lat=38.8309, lng=-9.1685, property_type="land",
         description="Flat agricultural land with water access, 30 min from Lisbon centre.",
         photos=[_PHOTO.format("1500530855697-b586d89ba3ee")]),
    dict(id="mock-supercasa-003", source_site="supercasa", source_url="https://supercasa.pt/mock-003",
         title="Building plot in Torres Vedras", price_eur=35000, area_sqm=800,
         address="Torres Vedras, Lisbon District", city="Torres Vedras", lat=39.0914, lng=-9.2586, property_type="land",
         description="Urban land with approved building permit. All utilities connected.",
         photos=[_PHOTO.format("1628744448840-55bdb2497bd4")]),
    dict(id="mock-idealista-004", source_site="idealista", source_url="https://www.idealista.pt/imovel/mock-004",
         title="Vineyard land in Alentejo", price_eur=45000, area_sqm=15000,
         address="Évora, Alentejo", city="Évora", lat=38.5667, lng=-7.9, property_type="land",
         description="Large plot with an existing vineyard, ideal for wine production or agritourism.",
         photos=[_PHOTO.format("1506377247377-2a5b3b417ebb")]),
    dict(id="mock-kyero-005", source_site="kyero", source_url="https://www.kyero.com/en/property/mock-005",
         title="Coastal plot near Setúbal", price_eur=48000, area_sqm=3200,
         address="Setúbal, Setúbal District", city="Setúbal", lat=38.5244, lng=-8.8926, property_type="land",
         description="Sea views, 10 min from the beach. Electricity at the boundary.",
         photos=[_PHOTO.format("1507525428034-b723cf961d3e")]),
    dict(id="mock-supercasa-006", source_site="supercasa", source_url="https://supercasa.pt/mock-006",
         title="Traditional stone house to renovate in Mafra", price_eur=55000, beds=2, baths=1, area_sqm=120,
         address="Mafra, Lisbon District", city="Mafra", lat=38.9369, lng=-9.3309, property_type="house",
         description="Stone cottage needing renovation. Large garden with fruit trees, 40 min from Lisbon.",
         photos=[_PHOTO.format("1518780664697-55e3ad937233")]),
    dict(id="mock-idealista-007", source_site="idealista", source_url="https://www.idealista.pt/imovel/mock-007",
         title="Rural house with land in Alenquer", price_eur=72000, beds=3, baths=1, area_sqm=150,
         address="Alenquer, Lisbon District", city="Alenquer", lat=39.0536, lng=-9.0094, property_type="house",
         description="Detached farmhouse on 5000 m2 of land with a well and olive trees.",
         photos=[_PHOTO.format("1564013799919-ab600027ffc6")]),
    dict(id="mock-imovirtual-008", source_site="imovirtual", source_url="https://www.imovirtual.com/pt/anuncio/mock-008",
         title="Studio apartment in Porto center", price_eur=89000, beds=0, baths=1, area_sqm=35,
         address="Cedofeita, Porto", city="Porto", lat=41.1579, lng=-8.6291, property_type="apartment",
         description="Renovated studio close to the metro, fully furnished with a balcony.",
         photos=[_PHOTO.format("1502672260266-1c1ef2d93688")]),
    dict(id="mock-olx-009", source_site="olx", source_url="https://www.olx.pt/d/anuncio/mock-009",
         title="1-bed apartment in Coimbra", price_eur=65000, beds=1, baths=1, area_sqm=55,
         address="Santa Clara, Coimbra", city="Coimbra", lat=40.2033, lng=-8.4103, property_type="apartment",
         description="Bright apartment near the university with river views.",
         photos=[_PHOTO.format("1522708323590-d24dbb6b0267")]),
    dict(id="mock-idealista-010", source_site="idealista", source_url="https://www.idealista.pt/imovel/mock-010",
         title="Small plot in interior Portugal", price_eur=8500, area_sqm=2000,
         address="Guarda District", city="Guarda", lat=40.5373, lng=-7.2676, property_type="land",
         description="Rustic land with chestnut trees. No building rights.",
         photos=[_PHOTO.format("1441974231531-c6227db76b6e")]),
    dict(id="mock-kyero-011", source_site="kyero", source_url="https://www.kyero.com/en/property/mock-011",
         title="Rustic land in Trás-os-Montes", price_eur=12000, area_sqm=6000,
         address="Bragança District", city="Bragança", lat=41.8061, lng=-6.7567, property_type="land",
         description="Rural plot with a spring, suited to grazing or forestry.",
         photos=[_PHOTO.format("1472214103451-9374bd1c798e")]),
    dict(id="mock-supercasa-012", source_site="supercasa", source_url="https://supercasa.pt/mock-012",
         title="Olive grove land in Algarve", price_eur=29000, area_sqm=4000,
         address="Tavira, Faro District", city="Tavira", lat=37.1275, lng=-7.6506, property_type="land",
         description="Established olive grove 15 min from Tavira with a ruin that may be restored.",
         photos=[_PHOTO.format("1445282768818-728615cc910a")]),
    dict(id="mock-olx-013", source_site="olx", source_url="https://www.olx.pt/d/anuncio/mock-013",
         title="T2 apartment for rent in Lisbon", price_eur=1200, beds=2, baths=1, area_sqm=70,
         address="Arroios, Lisboa", city="Lisboa", lat=38.7296, lng=-9.1369, property_type="apartment",
         listing_type="rent", description="Arrendamento mensal, furnished apartment with balcony near the metro.",
         photos=[_PHOTO.format("1493809842364-78817add7ffb")]),
]

_TYPES = ("land", "house", "apartment", "room")


def _wanted_type(ctx: SearchContext) -> str:
    kind = (ctx.property_type or "").lower()
    for t in _TYPES:
        if t in kind:
            return t
    return ""


class MockAdapter(SiteAdapter):
    site_id = "mock"
    site_name = "Mock listings"

    def __init__(self, listings: List[Dict[str, Any]] = None):
        self._raw = listings if listings is not None else MOCK_LISTINGS

    async def _search(self, ctx: SearchContext) -> List[Listing]:
        now = datetime.now(timezone.utc).isoformat()
        wanted = _wanted_type(ctx)
        out = []
        for raw in self._raw:
            listing = Listing(last_seen_at=now, **raw)
            if wanted and (listing.property_type or "") != wanted:
                continue
            if not price_in_context(listing.price_eur, ctx):
                continue
            out.append(listing)
        log.info("[Mock] %d matching listings", len(out))
        return out
