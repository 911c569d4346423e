"""Typed records for aggregator payloads.

Plaid responses are deeply nested JSON with many optional fields.  Each
record below names the fields this service reads and is built once via
``from_payload``; nothing downstream indexes into raw dicts.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Mapping, Protocol

from integrations.parsing_utils import optional_str, parse_date, to_decimal, to_float


def _mapping(value: Any) -> Mapping[str, Any]:
    """Return ``value`` if it is a mapping, else an empty dict."""
    if isinstance(value, Mapping):
        return value
    return {}


@dataclass(frozen=True)
class TransactionLocation:
    """Where a card transaction happened, when Plaid knows."""

    address: str | None = None
    city: str | None = None
    region: str | None = None
    postal_code: str | None = None
    country: str | None = None
    lat: float | None = None
    lon: float | None = None
    store_number: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "TransactionLocation":
        data = _mapping(payload)
        return cls(
            address=optional_str(data.get("address")),
            city=optional_str(data.get("city")),
            region=optional_str(data.get("region")),
            postal_code=optional_str(data.get("postal_code")),
            country=optional_str(data.get("country")),
            lat=to_float(data.get("lat")),
            lon=to_float(data.get("lon")),
            store_number=optional_str(data.get("store_number")),
        )


@dataclass(frozen=True)
class PersonalFinanceCategory:
    """Plaid's personal finance category taxonomy (e.g. FOOD_AND_DRINK)."""

    primary: str | None = None
    detailed: str | None = None
    confidence_level: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "PersonalFinanceCategory":
        data = _mapping(payload)
        return cls(
            primary=optional_str(data.get("primary")),
            detailed=optional_str(data.get("detailed")),
            confidence_level=optional_str(data.get("confidence_level")),
        )


@dataclass(frozen=True)
class PaymentMeta:
    """Transfer metadata attached to ACH, wire and similar transactions."""

    payment_method: str | None = None
    payment_processor: str | None = None
    reference_number: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "PaymentMeta":
        data = _mapping(payload)
        return cls(
            payment_method=optional_str(data.get("payment_method")),
            payment_processor=optional_str(data.get("payment_processor")),
            reference_number=optional_str(data.get("reference_number")),
        )


@dataclass(frozen=True)
class AggregatorTransaction:
    """One entry from ``/transactions/get``.

    ``amount`` keeps Plaid's sign convention: positive means money left the
    account.
    """

    transaction_id: str
    account_id: str
    amount: Decimal
    transaction_date: date
    name: str | None = None
    iso_currency_code: str | None = None
    pending: bool = False
    authorized_date: date | None = None
    merchant_name: str | None = None
    logo_url: str | None = None
    website: str | None = None
    merchant_entity_id: str | None = None
    payment_channel: str | None = None
    transaction_code: str | None = None
    category: tuple[str, ...] = ()
    location: TransactionLocation = field(default_factory=TransactionLocation)
    personal_finance_category: PersonalFinanceCategory = field(
        default_factory=PersonalFinanceCategory
    )
    payment_meta: PaymentMeta = field(default_factory=PaymentMeta)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AggregatorTransaction":
        """Build a transaction from a Plaid transaction object.

        Raises:
            ValueError: If the id, account id, amount or date is missing.
        """
        transaction_id = optional_str(payload.get("transaction_id"))
        account_id = optional_str(payload.get("account_id"))
        amount = to_decimal(payload.get("amount"))
        txn_date = parse_date(payload.get("date"))
        if not transaction_id or not account_id or amount is None or txn_date is None:
            raise ValueError(
                f"Incomplete transaction payload: transaction_id={transaction_id!r}"
            )

        category = payload.get("category") or ()
        return cls(
            transaction_id=transaction_id,
            account_id=account_id,
            amount=amount,
            transaction_date=txn_date,
            name=optional_str(payload.get("name")),
            iso_currency_code=optional_str(payload.get("iso_currency_code")),
            pending=bool(payload.get("pending")),
            authorized_date=parse_date(payload.get("authorized_date")),
            merchant_name=optional_str(payload.get("merchant_name")),
            logo_url=optional_str(payload.get("logo_url")),
            website=optional_str(payload.get("website")),
            merchant_entity_id=optional_str(payload.get("merchant_entity_id")),
            payment_channel=optional_str(payload.get("payment_channel")),
            transaction_code=optional_str(payload.get("transaction_code")),
            category=tuple(str(c) for c in category),
            location=TransactionLocation.from_payload(payload.get("location")),
            personal_finance_category=PersonalFinanceCategory.from_payload(
                payload.get("personal_finance_category")
            ),
            payment_meta=PaymentMeta.from_payload(payload.get("payment_meta")),
        )

    @property
    def category_primary(self) -> str | None:
        return self.category[0] if self.category else None

    @property
    def category_detailed(self) -> str | None:
        return self.category[1] if len(self.category) > 1 else None


@dataclass(frozen=True)
class AccountBalances:
    """Balances in major currency units, exactly as Plaid reports them."""

    current: Decimal | None = None
    available: Decimal | None = None
    iso_currency_code: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "AccountBalances":
        data = _mapping(payload)
        return cls(
            current=to_decimal(data.get("current")),
            available=to_decimal(data.get("available")),
            iso_currency_code=optional_str(data.get("iso_currency_code")),
        )


@dataclass(frozen=True)
class AggregatorAccount:
    """One entry from ``/accounts/get``."""

    account_id: str
    name: str | None = None
    mask: str | None = None
    type: str | None = None
    subtype: str | None = None
    balances: AccountBalances = field(default_factory=AccountBalances)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AggregatorAccount":
        account_id = optional_str(payload.get("account_id"))
        if not account_id:
            raise ValueError("Account payload has no account_id")
        return cls(
            account_id=account_id,
            name=optional_str(payload.get("name")) or optional_str(payload.get("official_name")),
            mask=optional_str(payload.get("mask")),
            type=optional_str(payload.get("type")),
            subtype=optional_str(payload.get("subtype")),
            balances=AccountBalances.from_payload(payload.get("balances")),
        )


@dataclass(frozen=True)
class AggregatorInstitution:
    """Institution metadata from ``/institutions/get_by_id``."""

    institution_id: str
    name: str | None = None
    logo: str | None = None
    primary_color: str | None = None
    url: str | None = None

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "AggregatorInstitution":
        institution_id = optional_str(payload.get("institution_id"))
        if not institution_id:
            raise ValueError("Institution payload has no institution_id")
        return cls(
            institution_id=institution_id,
            name=optional_str(payload.get("name")),
            logo=optional_str(payload.get("logo")),
            primary_color=optional_str(payload.get("primary_color")),
            url=optional_str(payload.get("url")),
        )


class AggregatorClient(Protocol):
    """The calls the sync pipeline makes against the aggregator.

    Each method is a single request/response with no internal retry.
    Failures raise :class:`~integrations.exceptions.AggregatorError`
    subclasses carrying the aggregator's own error code.
    """

    def is_configured(self) -> bool:
        """Return True if client credentials are present."""
        ...

    def refresh_transactions(self, access_token: str) -> str | None:
        """Ask the aggregator to pull fresh transactions from the bank."""
        ...

    def get_transactions(
        self, access_token: str, start_date: date, end_date: date
    ) -> list[AggregatorTransaction]:
        """Fetch transactions dated within ``[start_date, end_date]``."""
        ...

    def get_accounts(self, access_token: str) -> list[AggregatorAccount]:
        """Fetch accounts with their current balances."""
        ...

    def get_institution_metadata(self, institution_id: str) -> AggregatorInstitution:
        """Fetch display metadata for an institution."""
        ...
