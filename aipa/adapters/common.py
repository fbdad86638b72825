import json
import logging
import re
from typing import Dict, Any, Optional, List
from bs4 import BeautifulSoup

log = logging.getLogger(__name__)

JSONLD_TYPE_CANDIDATES = {
    "RealEstateListing", "Residence", "Apartment", "House", "SingleFamilyResidence",
    "Accommodation", "Product", "Offer", "Place", "LandForm",
}


def _parse_jsonld_blocks(html: str) -> List[Dict[str, Any]]:
    soup = BeautifulSoup(html, "lxml")
    out = []
    for s in soup.find_all("script"):
        t = (s.get("type") or "").lower()
        if "ld+json" in t:
            raw = s.string or s.text
            if not raw:
                continue
            try:
                data = json.loads(raw)
            except ValueError:
                # Portals often ship trailing commas
                fixed = re.sub(r",\s*([}\]])", r"\1", raw)
                try:
                    data = json.loads(fixed)
                except ValueError:
                    log.debug("[JSONLD] unparsable block skipped")
                    continue
            if isinstance(data, dict) and isinstance(data.get("@graph"), list):
                data = data["@graph"]
            if isinstance(data, list):
                out.extend([x for x in data if isinstance(x, dict)])
            elif isinstance(data, dict):
                out.append(data)
    return out


def _types(block: Dict[str, Any]) -> set:
    t = block.get("@type")
    if isinstance(t, list):
        return {str(x) for x in t}
    return {str(t)} if t else set()


def to_float(value: Any) -> Optional[float]:
    """Best-effort number from JSON-LD values such as ``150000``, ``"150 000"`` or ``"1.234,5"``."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    m = re.search(r"(-?)(\d[\d\s.,]*)", str(value))
    if not m:
        return None
    sign = -1.0 if m.group(1) else 1.0
    s = re.sub(r"\s", "", m.group(2)).rstrip(".,")
    if "," in s and "." in s:
        s = s.replace(".", "").replace(",", ".") if s.rfind(",") > s.rfind(".") else s.replace(",", "")
    elif "," in s:
        s = s.replace(",", "") if re.fullmatch(r"\d{1,3}(?:,\d{3})+", s) else s.replace(",", ".")
    elif re.fullmatch(r"\d{1,3}(?:\.\d{3})+", s):
        s = s.replace(".", "")
    try:
        return sign * float(s)
    except ValueError:
        return None


def extract_from_jsonld(html: str) -> Dict[str, Any]:
    blocks = _parse_jsonld_blocks(html)
    best = None
    for b in blocks:
        if _types(b) & JSONLD_TYPE_CANDIDATES:
            best = b
            break
    if not best and blocks:
        best = blocks[0]

    result: Dict[str, Any] = {"raw": best or {}, "images": []}
    if not best:
        return result

    # Some portals nest the property under mainEntity / itemOffered
    subject = best
    for key in ("mainEntity", "itemOffered"):
        if isinstance(best.get(key), dict):
            subject = {**best[key], **{k: v for k, v in best.items() if k != key}}
            break

    addr = subject.get("address") or {}
    if isinstance(addr, dict):
        parts = [addr.get("streetAddress"), addr.get("addressLocality"), addr.get("addressRegion"), addr.get("postalCode")]
        result["address"] = ", ".join([p for p in parts if p]) or None
        result["city"] = addr.get("addressLocality") or addr.get("addressRegion")
    elif isinstance(addr, str):
        result["address"] = addr

    geo = subject.get("geo") or {}
    if isinstance(geo, dict):
        result["latitude"] = to_float(geo.get("latitude"))
        result["longitude"] = to_float(geo.get("longitude"))

    result["title"] = subject.get("name") or subject.get("headline")
    result["description"] = subject.get("description")

    offers = subject.get("offers") or {}
    if isinstance(offers, list) and offers:
        offers = offers[0]
    if isinstance(offers, dict):
        result["price"] = to_float(offers.get("price") or offers.get("lowPrice"))
        result["currency"] = offers.get("priceCurrency")

    for k in ["numberOfBedrooms", "numberOfRooms", "bedrooms"]:
        if k in subject:
            v = subject[k]
            result["bedrooms"] = to_float(v.get("value") if isinstance(v, dict) else v)
            break
    for k in ["numberOfBathroomsTotal", "numberOfBathrooms", "bathrooms"]:
        if k in subject:
            result["bathrooms"] = to_float(subject[k])
            break

    floor = subject.get("floorSize")
    if isinstance(floor, dict):
        result["area"] = to_float(floor.get("value"))
    elif floor is not None:
        result["area"] = to_float(floor)

    imgs: List[str] = []
    for key in ("image", "images", "photo"):
        if key in subject:
            v = subject[key]
            if isinstance(v, list):
                for x in v:
                    if isinstance(x, str):
                        imgs.append(x)
                    elif isinstance(x, dict) and x.get("url"):
                        imgs.append(str(x["url"]))
            elif isinstance(v, str):
                imgs.append(v)
            elif isinstance(v, dict) and v.get("url"):
                imgs.append(str(v["url"]))
    result["images"] = list(dict.fromkeys(imgs))[:20]

    return result
