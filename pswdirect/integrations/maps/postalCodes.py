"""
Canadian postal code utilities and the local FSA lookup table.

Postal code format: ``A1A 1A1`` (also accepted without the space).  The
first three characters are the Forward Sortation Area (FSA).

The lookup table gives neighbourhood-level coordinates for the FSAs the
service operates in, plus one regional centroid per leading letter as a
coarse fallback.  The longest matching prefix wins.  Results are
deterministic; the same postal code always yields the same coordinate.
"""

from __future__ import annotations

import re
from typing import Final, Optional

from pswdirect.schemas.geo import Coordinate

CANADIAN_POSTAL_CODE_REGEX: Final = re.compile(r"^[A-Za-z]\d[A-Za-z]\s?\d[A-Za-z]\d$")
FSA_REGEX: Final = re.compile(r"^[A-Za-z]\d[A-Za-z]$")

# (lat, lng, label)
_FSA_COORDINATES: Final[dict[str, tuple[float, float, str]]] = {
    # Quinte / Belleville
    "K8N": (44.1628, -77.3832, "Belleville"),
    "K8P": (44.1700, -77.4100, "Belleville West"),
    "K8R": (44.1900, -77.3800, "Belleville North"),
    "K8V": (44.1000, -77.5800, "Trenton"),
    "K8": (44.1628, -77.3832, "Belleville Area"),
    "K0K": (44.0000, -77.1400, "Prince Edward County"),
    "K0L": (44.4500, -77.8000, "Hastings County"),
    "K7N": (44.2500, -76.9500, "Napanee Area"),
    "K7R": (44.2500, -76.9600, "Napanee"),
    # Kingston
    "K7K": (44.2400, -76.4600, "Kingston East"),
    "K7L": (44.2312, -76.4860, "Kingston"),
    "K7M": (44.2300, -76.5500, "Kingston West"),
    "K7P": (44.2600, -76.5800, "Kingston North"),
    # Peterborough / Cobourg
    "K9H": (44.3091, -78.3197, "Peterborough"),
    "K9J": (44.2900, -78.3400, "Peterborough West"),
    "K9A": (43.9593, -78.1677, "Cobourg"),
    # Ottawa
    "K1A": (45.4200, -75.7000, "Ottawa Government"),
    "K1P": (45.4215, -75.6972, "Ottawa Downtown"),
    "K2P": (45.4100, -75.6900, "Ottawa Centretown"),
    # Durham
    "L1C": (43.9100, -78.6900, "Bowmanville"),
    "L1G": (43.8971, -78.8658, "Oshawa"),
    "L1H": (43.8900, -78.8600, "Oshawa South"),
    # Toronto
    "M1B": (43.8066, -79.1944, "Scarborough"),
    "M4W": (43.6797, -79.3775, "Rosedale"),
    "M5H": (43.6503, -79.3840, "Toronto Financial District"),
    "M5V": (43.6426, -79.3871, "Toronto Waterfront"),
    # Provincial / regional centroids
    "M": (43.6532, -79.3832, "Toronto"),
    "L": (43.5890, -79.6441, "Mississauga/Peel"),
    "K": (45.4215, -75.6972, "Ottawa/Eastern Ontario"),
    "N": (43.0096, -81.2737, "London/Southwestern Ontario"),
    "P": (46.4917, -80.9930, "Northern Ontario"),
    "H": (45.5017, -73.5673, "Montreal"),
    "G": (46.8139, -71.2080, "Quebec City"),
    "J": (45.5000, -73.0000, "Quebec Rural"),
    "V": (49.2827, -123.1207, "Vancouver/BC"),
    "T": (51.0447, -114.0719, "Calgary/Alberta"),
    "R": (49.8951, -97.1384, "Winnipeg/Manitoba"),
    "S": (52.1332, -106.6700, "Saskatchewan"),
    "B": (44.6488, -63.5752, "Nova Scotia"),
    "E": (45.9636, -66.6431, "New Brunswick"),
    "A": (47.5615, -52.7126, "Newfoundland"),
    "C": (46.2382, -63.1311, "PEI"),
}


def is_valid_canadian_postal_code(postal_code: str) -> bool:
    """Accept both ``A1A 1A1`` and ``A1A1A1``."""
    return bool(CANADIAN_POSTAL_CODE_REGEX.match(postal_code.strip()))


def format_postal_code(postal_code: str) -> str:
    """Normalise to ``A1A 1A1``; partial input is just upper-cased."""
    cleaned = re.sub(r"\s", "", postal_code).upper()
    if len(cleaned) == 6:
        return f"{cleaned[:3]} {cleaned[3:]}"
    return postal_code.strip().upper()[:7]


def extract_fsa(postal_code: str | None) -> Optional[str]:
    """The upper-cased FSA of a full postal code or bare FSA, else None."""
    if not postal_code:
        return None
    cleaned = re.sub(r"\s", "", postal_code).upper()
    fsa = cleaned[:3]
    if FSA_REGEX.match(fsa) and (len(cleaned) == 3 or is_valid_canadian_postal_code(cleaned)):
        return fsa
    return None


def lookup_fsa(postal_code: str | None) -> Optional[tuple[Coordinate, str]]:
    """Local-table coordinate and label for a postal code or FSA.

    Returns None when the input is not a postal code/FSA or no prefix of it
    is in the table.
    """
    fsa = extract_fsa(postal_code)
    if fsa is None:
        return None

    for prefix in (fsa, fsa[:2], fsa[:1]):
        entry = _FSA_COORDINATES.get(prefix)
        if entry is not None:
            lat, lng, label = entry
            return Coordinate(latitude=lat, longitude=lng), label
    return None
