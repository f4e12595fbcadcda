"""Record models for legacy rows and their new-schema counterparts."""

from dataclasses import dataclass, field, fields, asdict
from typing import Any, ClassVar, Dict, Optional, Tuple
from enum import Enum
from datetime import date, datetime


def _pick(row: Dict[str, Any], cls) -> Dict[str, Any]:
    """Take the dataclass fields out of a raw row; absent columns become None."""
    return {f.name: row.get(f.name) for f in fields(cls)}


@dataclass
class SourceRecord:
    """A row read from a legacy OpenSID table."""
    id: Any

    table: ClassVar[str] = ""

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SourceRecord":
        return cls(**_pick(row, cls))

    @property
    def record_id(self) -> str:
        return str(self.id) if self.id is not None else "?"


@dataclass
class RoleSourceRecord(SourceRecord):
    nama: Optional[str] = None

    table: ClassVar[str] = "user_grup"


@dataclass
class UserSourceRecord(SourceRecord):
    username: Optional[str] = None
    password: Optional[str] = None
    nama: Optional[str] = None
    email: Optional[str] = None
    id_grup: Optional[int] = None
    active: Optional[int] = None
    last_login: Optional[Any] = None
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None

    table: ClassVar[str] = "user"


@dataclass
class FamilySourceRecord(SourceRecord):
    no_kk: Optional[str] = None
    nik_kepala: Optional[str] = None
    tgl_daftar: Optional[Any] = None
    tgl_cetak_kk: Optional[Any] = None
    kelas_sosial: Optional[int] = None
    alamat: Optional[str] = None
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None

    table: ClassVar[str] = "tweb_keluarga"


@dataclass
class CitizenSourceRecord(SourceRecord):
    nik: Optional[str] = None
    nama: Optional[str] = None
    id_kk: Optional[int] = None
    kk_level: Optional[int] = None
    sex: Optional[int] = None
    tempatlahir: Optional[str] = None
    tanggallahir: Optional[Any] = None
    agama_id: Optional[int] = None
    pendidikan_kk_id: Optional[int] = None
    pekerjaan_id: Optional[int] = None
    status_kawin: Optional[int] = None
    warganegara_id: Optional[int] = None
    nama_ayah: Optional[str] = None
    nama_ibu: Optional[str] = None
    golongan_darah_id: Optional[int] = None
    alamat_sekarang: Optional[str] = None
    status_dasar: Optional[int] = None
    telepon: Optional[str] = None
    email: Optional[str] = None
    foto: Optional[str] = None
    created_at: Optional[Any] = None
    updated_at: Optional[Any] = None

    table: ClassVar[str] = "tweb_penduduk"


@dataclass
class SettingSourceRecord(SourceRecord):
    key: Optional[str] = None
    value: Optional[str] = None
    keterangan: Optional[str] = None
    jenis: Optional[str] = None
    kategori: Optional[str] = None

    table: ClassVar[str] = "setting_aplikasi"


@dataclass
class MappedRecord:
    """A record shaped for the new schema, keyed by its natural key."""
    legacy_id: Optional[int]

    entity: ClassVar[str] = ""
    key_field: ClassVar[str] = ""
    # Fields resolved to foreign keys by the repository, not stored as-is
    relation_fields: ClassVar[Tuple[str, ...]] = ()

    @property
    def natural_key(self) -> Any:
        return getattr(self, self.key_field)

    def to_row(self) -> Dict[str, Any]:
        """Column values for the target table, minus unresolved relations."""
        row = asdict(self)
        for name in self.relation_fields:
            row.pop(name, None)
        return row

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for name, value in data.items():
            if isinstance(value, (date, datetime)):
                data[name] = value.isoformat()
        return data


@dataclass
class RoleMappedRecord(MappedRecord):
    slug: str = ""
    name: str = ""

    entity: ClassVar[str] = "roles"
    key_field: ClassVar[str] = "slug"


@dataclass
class UserMappedRecord(MappedRecord):
    username: str = ""
    email: str = ""
    name: str = ""
    password: str = ""
    role_slug: str = "viewer"
    is_active: bool = True
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    entity: ClassVar[str] = "users"
    key_field: ClassVar[str] = "username"
    relation_fields: ClassVar[Tuple[str, ...]] = ("role_slug",)


@dataclass
class FamilyMappedRecord(MappedRecord):
    family_number: str = ""
    head_nik: Optional[str] = None
    social_status: str = "MAMPU"
    address: Optional[str] = None
    registration_date: Optional[date] = None
    print_date: Optional[date] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    entity: ClassVar[str] = "families"
    key_field: ClassVar[str] = "family_number"


@dataclass
class CitizenMappedRecord(MappedRecord):
    nik: str = ""
    name: str = ""
    gender: str = "P"
    birth_place: Optional[str] = None
    birth_date: Optional[date] = None
    religion: str = "ISLAM"
    education: str = "SD"
    occupation: str = "Lainnya"
    marital_status: str = "BELUM_KAWIN"
    nationality: str = "WNA"
    father_name: Optional[str] = None
    mother_name: Optional[str] = None
    blood_type: str = "O"
    address: Optional[str] = None
    family_legacy_id: Optional[int] = None
    family_role: str = "LAINNYA"
    is_head_of_family: bool = False
    phone: Optional[str] = None
    email: Optional[str] = None
    photo: Optional[str] = None
    is_active: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    entity: ClassVar[str] = "citizens"
    key_field: ClassVar[str] = "nik"
    relation_fields: ClassVar[Tuple[str, ...]] = ("family_legacy_id",)


@dataclass
class SettingMappedRecord(MappedRecord):
    key: str = ""
    value: Optional[str] = None
    description: Optional[str] = None
    type: str = "STRING"
    category: Optional[str] = None
    is_public: bool = False

    entity: ClassVar[str] = "settings"
    key_field: ClassVar[str] = "key"


class UpsertOutcome(str, Enum):
    """What an upsert did to the target row."""
    CREATED = "created"
    UPDATED = "updated"
    FAILED = "failed"


@dataclass
class UpsertResult:
    outcome: UpsertOutcome
    target_id: Optional[Any] = None
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.outcome != UpsertOutcome.FAILED

    @classmethod
    def failed(cls, error: str) -> "UpsertResult":
        return cls(outcome=UpsertOutcome.FAILED, error=error)
