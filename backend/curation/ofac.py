"""
OFAC SDN list parser.

Reads the Treasury's legacy CSV distribution (sdn.csv + alt.csv), keeps the
entries designated under Venezuela-related programs, and turns them into
watchlist import records.

sdn.csv has no header row. Columns:
    ent_num, SDN_Name, SDN_Type, Program, Title, Call_Sign, Vess_type,
    Tonnage, GRT, Vess_flag, Vess_owner, Remarks
alt.csv columns:
    ent_num, alt_num, alt_type, alt_name, alt_remarks

"-0-" marks an empty field. Multiple programs are joined as "A] [B".
"""
import csv
import io
import re
from datetime import datetime
from typing import Optional

import httpx
import structlog

logger = structlog.get_logger("memoria.curation.ofac")

OFAC_SDN_CSV_URL = "https://www.treasury.gov/ofac/downloads/sdn.csv"
OFAC_ALT_CSV_URL = "https://www.treasury.gov/ofac/downloads/alt.csv"

SOURCE = "OFAC"
VENEZUELA_PROGRAM_PREFIX = "VENEZUELA"
NULL_FIELD = "-0-"

# Vessels and aircraft are never matched against article entities
_SDN_TYPES = {
    "individual": "PERSON",
    "": "ORGANIZATION",
}

_NATIONALITIES = {
    "venezuela": "VE",
    "colombia": "CO",
    "cuba": "CU",
    "panama": "PA",
    "spain": "ES",
    "united states": "US",
}

_DOB_PATTERN = re.compile(r"DOB (\d{1,2} [A-Za-z]{3} \d{4})")
_NATIONALITY_PATTERN = re.compile(r"nationality ([A-Za-z ]+?)[;.]", re.IGNORECASE)


def _clean(value: Optional[str]) -> Optional[str]:
    """Strip a field, mapping the OFAC null marker to None."""
    if value is None:
        return None
    value = value.strip()
    if not value or value == NULL_FIELD:
        return None
    return value


def split_programs(value: Optional[str]) -> list[str]:
    """'SDNTK] [VENEZUELA-EO13850' → ['SDNTK', 'VENEZUELA-EO13850']"""
    value = _clean(value)
    if not value:
        return []
    return [p.strip(" []") for p in value.split("] [") if p.strip(" []")]


def display_name(name: str, individual: bool) -> str:
    """
    Individuals are listed as 'LAST, First'; return 'First LAST'.

    Entity names keep their commas ('PETROLEOS DE VENEZUELA, S.A.').
    """
    name = name.strip()
    if individual and "," in name:
        last, first = name.split(",", 1)
        return f"{first.strip()} {last.strip()}".strip()
    return name


def parse_remarks(remarks: Optional[str]) -> dict:
    """Pull date of birth and nationality out of the free-text remarks."""
    result = {"dateOfBirth": None, "nationality": None}
    if not remarks:
        return result

    dob = _DOB_PATTERN.search(remarks)
    if dob:
        try:
            result["dateOfBirth"] = datetime.strptime(dob.group(1), "%d %b %Y").date().isoformat()
        except ValueError:
            pass

    nationality = _NATIONALITY_PATTERN.search(remarks)
    if nationality:
        result["nationality"] = _NATIONALITIES.get(nationality.group(1).strip().lower())
    return result


def parse_alt_csv(content: str) -> dict[str, list[str]]:
    """Map ent_num → list of raw alternate names."""
    aliases: dict[str, list[str]] = {}
    for row in csv.reader(io.StringIO(content)):
        if len(row) < 4:
            continue
        ent_num = _clean(row[0])
        alt_name = _clean(row[3])
        if ent_num and alt_name:
            aliases.setdefault(ent_num, []).append(alt_name)
    return aliases


def parse_sdn_csv(
    sdn_content: str,
    alt_content: Optional[str] = None,
    program_prefix: str = VENEZUELA_PROGRAM_PREFIX,
) -> list[dict]:
    """
    Parse sdn.csv (and optionally alt.csv) into watchlist import records.

    Only individuals and entities with at least one program starting with
    `program_prefix` are returned.
    """
    aliases_by_ent = parse_alt_csv(alt_content) if alt_content else {}
    records = []

    for row in csv.reader(io.StringIO(sdn_content)):
        # Trailing EOF marker and blank lines
        if len(row) < 4:
            continue

        ent_num = _clean(row[0])
        name = _clean(row[1])
        if not ent_num or not name:
            continue

        sdn_type = (_clean(row[2]) or "").lower()
        entity_type = _SDN_TYPES.get(sdn_type)
        if entity_type is None:
            continue

        programs = split_programs(row[3])
        if not any(p.upper().startswith(program_prefix) for p in programs):
            continue

        individual = entity_type == "PERSON"
        remarks = _clean(row[11]) if len(row) > 11 else None
        title = _clean(row[4]) if len(row) > 4 else None

        full_name = display_name(name, individual)
        aliases = [display_name(a, individual) for a in aliases_by_ent.get(ent_num, [])]
        aliases = [a for a in dict.fromkeys(aliases) if a != full_name]

        notes = "; ".join(part for part in (title, remarks) if part) or None

        records.append({
            "externalId": f"ofac-sdn-{ent_num}",
            "fullName": full_name,
            "entityType": entity_type,
            "aliases": aliases,
            "sanctionsPrograms": programs,
            "source": SOURCE,
            "tier": 1,
            "confidenceLevel": 5,
            "notes": notes,
            **parse_remarks(remarks),
        })

    logger.info("ofac_sdn_parsed", records=len(records), program_prefix=program_prefix)
    return records


def fetch_sdn_records(
    sdn_url: str = OFAC_SDN_CSV_URL,
    alt_url: Optional[str] = OFAC_ALT_CSV_URL,
    timeout: float = 60.0,
    client: Optional[httpx.Client] = None,
) -> list[dict]:
    """
    Download the SDN files and parse them.

    Raises:
        httpx.HTTPError: download failed
    """
    owns_client = client is None
    client = client or httpx.Client(timeout=timeout, follow_redirects=True)
    try:
        logger.info("ofac_sdn_download", url=sdn_url)
        resp = client.get(sdn_url)
        resp.raise_for_status()
        sdn_content = resp.text

        alt_content = None
        if alt_url:
            resp = client.get(alt_url)
            resp.raise_for_status()
            alt_content = resp.text
    finally:
        if owns_client:
            client.close()

    return parse_sdn_csv(sdn_content, alt_content)
