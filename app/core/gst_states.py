"""GST state reference data and supply-type resolution."""
import logging
import re
from typing import Optional

logger = logging.getLogger(__name__)


# GST State Code mapping
GST_STATE_CODES = {
    "01": "Jammu & Kashmir", "02": "Himachal Pradesh", "03": "Punjab",
    "04": "Chandigarh", "05": "Uttarakhand", "06": "Haryana",
    "07": "Delhi", "08": "Rajasthan", "09": "Uttar Pradesh",
    "10": "Bihar", "11": "Sikkim", "12": "Arunachal Pradesh",
    "13": "Nagaland", "14": "Manipur", "15": "Mizoram",
    "16": "Tripura", "17": "Meghalaya", "18": "Assam",
    "19": "West Bengal", "20": "Jharkhand", "21": "Odisha",
    "22": "Chhattisgarh", "23": "Madhya Pradesh", "24": "Gujarat",
    "26": "Dadra & Nagar Haveli and Daman & Diu", "27": "Maharashtra",
    "28": "Andhra Pradesh (Old)", "29": "Karnataka", "30": "Goa",
    "31": "Lakshadweep", "32": "Kerala", "33": "Tamil Nadu",
    "34": "Puducherry", "35": "Andaman & Nicobar Islands",
    "36": "Telangana", "37": "Andhra Pradesh",
    "38": "Ladakh", "97": "Other Territory"
}

# Reverse mapping: State name to code
STATE_TO_CODE = {v.upper(): k for k, v in GST_STATE_CODES.items()}

# 2-digit state code, PAN, entity number, 'Z', checksum
GSTIN_PATTERN = re.compile(r"^[0-9]{2}[A-Z]{5}[0-9]{4}[A-Z][1-9A-Z]Z[0-9A-Z]$")


def normalize_state_code(code: Optional[str]) -> Optional[str]:
    """'7' -> '07'; blanks -> None."""
    if code is None:
        return None
    code = str(code).strip()
    if not code:
        return None
    if code.isdigit() and len(code) == 1:
        code = f"0{code}"
    return code


def get_state_name(code: Optional[str]) -> Optional[str]:
    """Get state name from GST state code."""
    code = normalize_state_code(code)
    if code is None:
        return None
    return GST_STATE_CODES.get(code)


def get_state_code(state_name: Optional[str]) -> Optional[str]:
    """
    Get GST state code from state name, exact match first then partial.

    A partial match prefers current codes over the retired "(Old)" ones and
    returns None when it still names more than one state.
    """
    if not state_name:
        return None

    state_upper = state_name.upper().strip()
    if not state_upper:
        return None

    if state_upper in STATE_TO_CODE:
        return STATE_TO_CODE[state_upper]

    matches = {
        name: code for name, code in STATE_TO_CODE.items()
        if state_upper in name or name in state_upper
    }
    current = {name: code for name, code in matches.items() if not name.endswith("(OLD)")}
    candidates = set((current or matches).values())
    if len(candidates) == 1:
        return candidates.pop()
    if len(candidates) > 1:
        logger.warning(f"Ambiguous GST state name '{state_name}': {sorted(candidates)}")
        return None

    logger.warning(f"Could not find GST state code for '{state_name}'")
    return None


def is_valid_gstin(gstin: str) -> bool:
    return bool(GSTIN_PATTERN.match(gstin.strip().upper()))


def state_code_from_gstin(gstin: Optional[str]) -> Optional[str]:
    """The first two digits of a GSTIN are the registering state's code."""
    if not gstin or len(gstin.strip()) < 2:
        return None
    prefix = gstin.strip()[:2]
    return prefix if prefix in GST_STATE_CODES else None


def determine_inter_state(
    place_of_supply_code: Optional[str],
    company_state_code: Optional[str],
) -> Optional[bool]:
    """
    Inter-state when the place of supply differs from the company's GST
    state. Returns None when either side is unknown.
    """
    pos = normalize_state_code(place_of_supply_code)
    company = normalize_state_code(company_state_code)
    if not pos or not company:
        return None
    return pos != company
