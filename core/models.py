from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional

from core.errors import ValidationError

# Product type tags
TYPE_SIMPLE = "simple"
TYPE_VARIABLE = "variable"
TYPE_VARIATION = "variation"

# Skip reasons
SKIP_NO_GTIN = "no_gtin"
SKIP_NO_PRICE = "no_price"
SKIP_PRODUCT_NOT_FOUND = "product_not_found"

# Progress statuses
STATUS_INIT = "init"
STATUS_RUNNING = "running"
STATUS_COMPLETE = "complete"
STATUS_ERROR = "error"
ACTIVE_STATUSES = (STATUS_INIT, STATUS_RUNNING)

CONDITIONS = ("new", "used", "refurbished")

PROTOCOL_FTP = "ftp"
PROTOCOL_SFTP = "sftp"

_TRUTHY = {"yes", "y", "true", "t", "1", "on"}


def parse_flag(value: Any, default: bool = False) -> bool:
    """Settings store booleans as 'yes'/'no' strings; accept the usual spellings."""
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in _TRUTHY


@dataclass
class CategoryTerm:
    """A product category; `parent` is None for a root term."""

    term_id: int
    name: str
    parent: Optional["CategoryTerm"] = None


@dataclass
class Product:
    """
    Read-only snapshot of one catalog entity (simple, variable or variation).

    For variations `attributes` holds the selected value per variation
    attribute; for other products it holds the display value of each
    product attribute (comma-joined options).
    """

    product_id: int
    name: str
    product_type: str = TYPE_SIMPLE
    price: Optional[str] = None
    stock_quantity: Optional[int] = None
    in_stock: bool = True
    length: Optional[str] = None
    width: Optional[str] = None
    height: Optional[str] = None
    dimension_unit: str = "cm"
    weight: Optional[str] = None
    weight_unit: str = "kg"
    image: Optional[str] = None  # primary image URL
    gallery: List[str] = field(default_factory=list)
    description: str = ""
    short_description: str = ""
    meta: Dict[str, Any] = field(default_factory=dict)
    categories: List[CategoryTerm] = field(default_factory=list)
    taxonomies: Dict[str, List[str]] = field(default_factory=dict)  # taxonomy -> term names
    attributes: Dict[str, str] = field(default_factory=dict)
    sku: str = ""
    parent_id: Optional[int] = None
    variation_ids: List[int] = field(default_factory=list)

    @property
    def is_variation(self) -> bool:
        return self.product_type == TYPE_VARIATION

    @property
    def is_variable(self) -> bool:
        return self.product_type == TYPE_VARIABLE


@dataclass(frozen=True)
class ExportSettings:
    """Immutable snapshot of the marketplace settings, taken once per run."""

    country: str = "CH"
    currency: str = "CHF"
    tax_rate: str = "8.1"
    return_days: str = "14"
    delivery_days: str = "1"
    condition: str = "new"
    default_brand: str = ""
    require_gtin: bool = True
    language: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "ExportSettings":
        defaults = cls()
        condition = str(data.get("condition") or defaults.condition).strip().lower()
        if condition not in CONDITIONS:
            raise ValidationError(
                f"Invalid condition {condition!r}; expected one of {', '.join(CONDITIONS)}"
            )

        def text(key: str, default: str) -> str:
            value = data.get(key)
            return default if value is None else str(value).strip()

        return cls(
            country=text("country", defaults.country),
            currency=text("currency", defaults.currency),
            tax_rate=text("tax_rate", defaults.tax_rate),
            return_days=text("return_days", defaults.return_days),
            delivery_days=text("delivery_days", defaults.delivery_days),
            condition=condition,
            default_brand=text("default_brand", defaults.default_brand),
            require_gtin=parse_flag(data.get("require_gtin"), defaults.require_gtin),
            language=text("language", defaults.language),
        )


@dataclass(frozen=True)
class UploadCredentials:
    """FTP/SFTP endpoint for pushing the finished feed."""

    enabled: bool = False
    protocol: str = PROTOCOL_FTP
    host: str = ""
    port: int = 21
    username: str = ""
    password: str = ""
    remote_path: str = "/"
    use_tls: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "UploadCredentials":
        protocol = str(data.get("ftp_type") or data.get("protocol") or PROTOCOL_FTP).strip().lower()
        if protocol not in (PROTOCOL_FTP, PROTOCOL_SFTP):
            raise ValidationError(f"Unsupported upload protocol {protocol!r}; use ftp or sftp")
        default_port = 22 if protocol == PROTOCOL_SFTP else 21
        raw_port = data.get("ftp_port") or data.get("port")
        try:
            port = int(raw_port) if raw_port not in (None, "") else default_port
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid port {raw_port!r}")
        return cls(
            enabled=parse_flag(data.get("ftp_enabled", data.get("enabled"))),
            protocol=protocol,
            host=str(data.get("ftp_server") or data.get("host") or "").strip(),
            port=port,
            username=str(data.get("ftp_username") or data.get("username") or "").strip(),
            password=str(data.get("ftp_password") or data.get("password") or ""),
            remote_path=str(data.get("ftp_path") or data.get("remote_path") or "/").strip(),
            use_tls=parse_flag(data.get("ftp_ssl", data.get("use_tls"))),
        )

    def validate(self) -> None:
        if not (self.host and self.username and self.password):
            raise ValidationError("Server, username, and password are required.")

    @property
    def label(self) -> str:
        if self.protocol == PROTOCOL_SFTP:
            return "SFTP"
        return "FTPS" if self.use_tls else "FTP"

    def __repr__(self) -> str:
        return (
            f"UploadCredentials(enabled={self.enabled}, protocol={self.protocol!r}, "
            f"host={self.host!r}, port={self.port}, username={self.username!r}, "
            f"remote_path={self.remote_path!r}, use_tls={self.use_tls})"
        )


@dataclass
class Skip:
    """A sellable unit that did not make it into the feed."""

    reason: str
    detail: str = ""


@dataclass
class UploadOutcome:
    attempted: bool = False
    success: bool = False
    error: Optional[str] = None


@dataclass
class TestOutcome:
    success: bool
    message: str

    __test__ = False  # not a pytest class


@dataclass
class ExportResult:
    """Outcome of one export run; appended to the export log."""

    success: bool
    message: str
    exported: int = 0
    skipped: int = 0
    skip_reasons: Dict[str, int] = field(default_factory=dict)
    upload: Optional[UploadOutcome] = None
    errors: List[str] = field(default_factory=list)
    timestamp: str = field(default_factory=lambda: datetime.now().isoformat(timespec="seconds"))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class ProgressRecord:
    """Polled state of a progressive run; merged in place by the run's worker."""

    status: str = STATUS_INIT
    step: str = "init"
    percent: int = 0
    message: str = ""
    exported: int = 0
    skipped: int = 0
    total: int = 0

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
