"""Field mapping from legacy OpenSID rows to the new schema.

Every function here is pure and total: unknown codes resolve to the code
table's default and unparsable values fall back instead of raising. Anything
that still cannot satisfy the target schema is left for the record validator.
"""

import json
import re
import logging
from dataclasses import dataclass
from datetime import date, datetime
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, Optional

from dateutil import parser as date_parser

from ..models.record import (
    RoleSourceRecord,
    UserSourceRecord,
    FamilySourceRecord,
    CitizenSourceRecord,
    SettingSourceRecord,
    RoleMappedRecord,
    UserMappedRecord,
    FamilyMappedRecord,
    CitizenMappedRecord,
    SettingMappedRecord,
)

logger = logging.getLogger(__name__)

CODE_TABLES_PATH = Path(__file__).resolve().parent.parent / "data" / "code_tables.json"

NIK_LENGTH = 16
HEAD_OF_FAMILY_LEVEL = 1
ACTIVE_STATUS = 1


@dataclass(frozen=True)
class CodeTable:
    """A legacy code -> new enum label table with an explicit default."""
    name: str
    codes: Dict[str, str]
    default: str

    def get(self, code: Any) -> Optional[str]:
        """Label for a code, or None when the code is unknown."""
        key = _normalize_code(code)
        if key is None:
            return None
        return self.codes.get(key)

    def lookup(self, code: Any) -> str:
        """Label for a code, falling back to the table default."""
        label = self.get(code)
        return label if label is not None else self.default


def _normalize_code(code: Any) -> Optional[str]:
    if code is None or isinstance(code, bool):
        return None
    if isinstance(code, int):
        return str(code)
    if isinstance(code, float):
        return str(int(code)) if code.is_integer() else None
    text = str(code).strip()
    if not text:
        return None
    if re.fullmatch(r"\d+(\.0+)?", text):
        return str(int(float(text)))
    return text.lower()


@lru_cache(maxsize=None)
def load_code_tables(path: str = str(CODE_TABLES_PATH)) -> Dict[str, CodeTable]:
    """Load all code tables once per process."""
    with open(path) as f:
        raw = json.load(f)
    tables = {
        name: CodeTable(name=name, codes=dict(spec["codes"]), default=spec["default"])
        for name, spec in raw.items()
    }
    logger.debug(f"Loaded {len(tables)} code tables from {path}")
    return tables


def code_table(name: str) -> CodeTable:
    return load_code_tables()[name]


# Enum mappers

def map_gender(code: Any) -> str:
    return code_table("gender").lookup(code)


def map_religion(code: Any) -> str:
    return code_table("religion").lookup(code)


def map_education(code: Any) -> str:
    return code_table("education").lookup(code)


def map_marital_status(code: Any) -> str:
    return code_table("marital_status").lookup(code)


def map_blood_type(code: Any) -> str:
    return code_table("blood_type").lookup(code)


def map_nationality(code: Any) -> str:
    return code_table("nationality").lookup(code)


def map_family_role(code: Any) -> str:
    return code_table("family_role").lookup(code)


def map_occupation(code: Any) -> str:
    return code_table("occupation").lookup(code)


def map_social_status(code: Any) -> str:
    return code_table("social_status").lookup(code)


def map_user_role(code: Any) -> str:
    return code_table("user_role").lookup(code)


def map_setting_type(code: Any) -> str:
    return code_table("setting_type").lookup(code)


# Value coercion

def _clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, bytes):
        value = value.decode("utf-8", errors="replace")
    text = str(value).strip()
    return text or None


def _to_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(str(value).strip()))
        except (TypeError, ValueError):
            return None


def _parse_datetime(value: Any) -> Optional[datetime]:
    """Parse MySQL date/datetime values; zero dates and garbage become None."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    text = _clean_str(value)
    if not text or text.startswith("0000-00-00"):
        return None
    try:
        return date_parser.parse(text)
    except (ValueError, OverflowError):
        return None


def to_date(value: Any) -> Optional[date]:
    parsed = _parse_datetime(value)
    return parsed.date() if parsed else None


def to_timestamp(value: Any, default: Optional[datetime] = None) -> datetime:
    """Parse a timestamp column, falling back to ``default`` or now."""
    parsed = _parse_datetime(value)
    if parsed is not None:
        return parsed
    return default or datetime.utcnow()


def normalize_nik(value: Any) -> str:
    """Left-pad a national ID with zeros; empty values stay empty."""
    text = _clean_str(value)
    if text is None:
        return ""
    if re.fullmatch(r"\d+\.0+", text):
        text = text.split(".")[0]
    return text.rjust(NIK_LENGTH, "0")


def slugify(value: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")
    return slug


# Entity mappers

def map_role(source: RoleSourceRecord) -> RoleMappedRecord:
    """Legacy user group -> role. Known group ids keep their canonical slug."""
    legacy_id = _to_int(source.id)
    name = _clean_str(source.nama)
    slug = code_table("user_role").get(legacy_id)
    if slug is None:
        slug = slugify(name or "") or f"role-{source.record_id}"
    return RoleMappedRecord(
        legacy_id=legacy_id,
        slug=slug,
        name=name or slug,
    )


def map_user(source: UserSourceRecord) -> UserMappedRecord:
    username = _clean_str(source.username) or ""
    now = datetime.utcnow()
    return UserMappedRecord(
        legacy_id=_to_int(source.id),
        username=username,
        email=_clean_str(source.email) or f"{username}@example.com",
        name=_clean_str(source.nama) or username,
        password=_clean_str(source.password) or "",
        role_slug=map_user_role(source.id_grup),
        is_active=_to_int(source.active) == 1,
        last_login=_parse_datetime(source.last_login),
        created_at=to_timestamp(source.created_at, now),
        updated_at=to_timestamp(source.updated_at, now),
    )


def map_family(source: FamilySourceRecord) -> FamilyMappedRecord:
    head_nik = normalize_nik(source.nik_kepala)
    now = datetime.utcnow()
    return FamilyMappedRecord(
        legacy_id=_to_int(source.id),
        family_number=_clean_str(source.no_kk) or "",
        head_nik=head_nik or None,
        social_status=map_social_status(source.kelas_sosial),
        address=_clean_str(source.alamat),
        registration_date=to_date(source.tgl_daftar),
        print_date=to_date(source.tgl_cetak_kk),
        is_active=True,
        created_at=to_timestamp(source.created_at, now),
        updated_at=to_timestamp(source.updated_at, now),
    )


def map_citizen(source: CitizenSourceRecord) -> CitizenMappedRecord:
    family_level = _to_int(source.kk_level)
    status = _to_int(source.status_dasar)
    now = datetime.utcnow()
    return CitizenMappedRecord(
        legacy_id=_to_int(source.id),
        nik=normalize_nik(source.nik),
        name=_clean_str(source.nama) or "",
        gender=map_gender(source.sex),
        birth_place=_clean_str(source.tempatlahir),
        birth_date=to_date(source.tanggallahir),
        religion=map_religion(source.agama_id),
        education=map_education(source.pendidikan_kk_id),
        occupation=map_occupation(source.pekerjaan_id),
        marital_status=map_marital_status(source.status_kawin),
        nationality=map_nationality(source.warganegara_id),
        father_name=_clean_str(source.nama_ayah),
        mother_name=_clean_str(source.nama_ibu),
        blood_type=map_blood_type(source.golongan_darah_id),
        address=_clean_str(source.alamat_sekarang),
        family_legacy_id=_to_int(source.id_kk) or None,
        family_role=map_family_role(family_level),
        is_head_of_family=family_level == HEAD_OF_FAMILY_LEVEL,
        phone=_clean_str(source.telepon),
        email=_clean_str(source.email),
        photo=_clean_str(source.foto),
        is_active=status is None or status == ACTIVE_STATUS,
        created_at=to_timestamp(source.created_at, now),
        updated_at=to_timestamp(source.updated_at, now),
    )


def map_setting(source: SettingSourceRecord) -> SettingMappedRecord:
    value = source.value
    if value is not None and not isinstance(value, str):
        value = str(value)
    return SettingMappedRecord(
        legacy_id=_to_int(source.id),
        key=_clean_str(source.key) or "",
        value=value,
        description=_clean_str(source.keterangan),
        type=map_setting_type(source.jenis),
        category=_clean_str(source.kategori),
        is_public=False,
    )
