"""Plaid API client.

Thin wrapper over the plaid-python SDK for the calls the ingestion
pipeline makes: on-demand transaction refresh, transaction and balance
fetches, and institution metadata.  Each method issues its request(s) and
maps the response into the typed records in
:mod:`integrations.aggregator_protocol`; there is no retry here, retry
policy belongs to the caller.

Plaid errors are re-raised as :class:`AggregatorAPIError` with Plaid's
``error_type`` / ``error_code`` / ``error_message`` preserved so the sync
orchestrator can branch on them.
"""

import json
import logging
from datetime import date
from typing import Any, Mapping

import urllib3
from plaid import ApiException, Environment
from plaid.api.plaid_api import PlaidApi
from plaid.api_client import ApiClient
from plaid.configuration import Configuration
from plaid.model.accounts_get_request import AccountsGetRequest
from plaid.model.country_code import CountryCode
from plaid.model.institutions_get_by_id_request import InstitutionsGetByIdRequest
from plaid.model.institutions_get_by_id_request_options import InstitutionsGetByIdRequestOptions
from plaid.model.transactions_get_request import TransactionsGetRequest
from plaid.model.transactions_get_request_options import TransactionsGetRequestOptions
from plaid.model.transactions_refresh_request import TransactionsRefreshRequest

from config import settings
from integrations.aggregator_protocol import (
    AggregatorAccount,
    AggregatorInstitution,
    AggregatorTransaction,
)
from integrations.exceptions import (
    AggregatorAPIError,
    AggregatorAuthError,
    AggregatorConnectionError,
    AggregatorDataError,
)

logger = logging.getLogger(__name__)

# Map PLAID_ENVIRONMENT setting to API hosts.  The SDK no longer ships a
# constant for the Development environment, so its host is spelled out.
_ENVIRONMENT_MAP: dict[str, str] = {
    "sandbox": Environment.Sandbox,
    "development": "https://development.plaid.com",
    "production": Environment.Production,
}

# Plaid error codes that mean the stored access token is unusable until the
# user re-links the institution.
AUTH_ERROR_CODES = frozenset(
    {
        "INVALID_ACCESS_TOKEN",
        "ITEM_LOGIN_REQUIRED",
        "ACCESS_NOT_GRANTED",
        "ITEM_NOT_FOUND",
    }
)

# Max page size accepted by /transactions/get.
TRANSACTIONS_PAGE_SIZE = 500

REQUEST_TIMEOUT_SECONDS = 30


def _to_mapping(response: Any) -> Mapping[str, Any]:
    """Return an SDK response model (or a plain dict) as a dict."""
    if hasattr(response, "to_dict"):
        return response.to_dict()
    return response


class PlaidClient:
    """Wrapper around the Plaid API.

    Implements the AggregatorClient protocol.
    """

    def __init__(
        self,
        client_id: str | None = None,
        secret: str | None = None,
        environment: str | None = None,
    ):
        self._client_id = client_id or settings.PLAID_CLIENT_ID
        self._secret = secret or settings.PLAID_SECRET
        self._environment = environment or settings.PLAID_ENVIRONMENT

        # Lazily created on first use
        self._api: PlaidApi | None = None

    @property
    def host(self) -> str:
        """API host for the configured environment (sandbox if unknown)."""
        env_key = (self._environment or "").lower()
        host = _ENVIRONMENT_MAP.get(env_key)
        if host is None:
            logger.warning(
                "Unknown PLAID_ENVIRONMENT=%r, falling back to sandbox. "
                "Valid values: sandbox, development, production",
                self._environment,
            )
            host = Environment.Sandbox
        return host

    def _get_api(self) -> PlaidApi:
        """Return (and cache) a PlaidApi instance."""
        if self._api is None:
            host = self.host
            logger.info(
                "Plaid API client: environment=%s, host=%s, client_id=<configured>",
                self._environment,
                host,
            )
            configuration = Configuration(
                host=host,
                api_key={
                    "clientId": self._client_id,
                    "secret": self._secret,
                },
            )
            self._api = PlaidApi(ApiClient(configuration))
        return self._api

    def is_configured(self) -> bool:
        """Check if Plaid credentials are configured."""
        return bool(self._client_id) and bool(self._secret)

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    def refresh_transactions(self, access_token: str) -> str | None:
        """Ask Plaid to pull new transactions from the bank now.

        Plaid processes the refresh asynchronously; results show up in later
        ``/transactions/get`` calls.

        Returns:
            Plaid's request_id for the refresh call.
        """
        api = self._get_api()
        request = TransactionsRefreshRequest(access_token=access_token)
        response = self._call(api.transactions_refresh, request)
        return _to_mapping(response).get("request_id")

    def get_transactions(
        self,
        access_token: str,
        start_date: date,
        end_date: date,
    ) -> list[AggregatorTransaction]:
        """Fetch every transaction dated within ``[start_date, end_date]``.

        Follows ``total_transactions`` with offset paging.  Malformed entries
        are logged and dropped rather than failing the whole fetch.
        """
        api = self._get_api()
        transactions: list[AggregatorTransaction] = []
        offset = 0
        total: int | None = None

        while True:
            request = TransactionsGetRequest(
                access_token=access_token,
                start_date=start_date,
                end_date=end_date,
                options=TransactionsGetRequestOptions(
                    count=TRANSACTIONS_PAGE_SIZE,
                    offset=offset,
                ),
            )
            data = _to_mapping(self._call(api.transactions_get, request))
            if total is None:
                total = int(data.get("total_transactions") or 0)

            page = data.get("transactions") or []
            for raw in page:
                try:
                    transactions.append(AggregatorTransaction.from_payload(raw))
                except ValueError as e:
                    logger.warning("Dropping malformed Plaid transaction: %s", e)

            offset += len(page)
            if not page or offset >= total:
                break

        logger.debug(
            "Plaid /transactions/get returned %d transactions (%s to %s)",
            len(transactions), start_date, end_date,
        )
        return transactions

    # ------------------------------------------------------------------
    # Accounts & institutions
    # ------------------------------------------------------------------

    def get_accounts(self, access_token: str) -> list[AggregatorAccount]:
        """Fetch the Item's accounts with cached balances."""
        api = self._get_api()
        request = AccountsGetRequest(access_token=access_token)
        data = _to_mapping(self._call(api.accounts_get, request))

        accounts: list[AggregatorAccount] = []
        for raw in data.get("accounts") or []:
            try:
                accounts.append(AggregatorAccount.from_payload(raw))
            except ValueError as e:
                logger.warning("Dropping malformed Plaid account: %s", e)
        return accounts

    def get_institution_metadata(self, institution_id: str) -> AggregatorInstitution:
        """Fetch name, logo, brand colour and website for an institution."""
        api = self._get_api()
        request = InstitutionsGetByIdRequest(
            institution_id=institution_id,
            country_codes=[CountryCode("US")],
            options=InstitutionsGetByIdRequestOptions(include_optional_metadata=True),
        )
        data = _to_mapping(self._call(api.institutions_get_by_id, request))
        try:
            return AggregatorInstitution.from_payload(data.get("institution") or {})
        except ValueError as e:
            raise AggregatorDataError(
                f"Plaid returned no institution for {institution_id}: {e}"
            ) from e

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @staticmethod
    def _call(method, request):
        """Invoke an SDK endpoint, translating transport and API errors."""
        try:
            return method(request, _request_timeout=REQUEST_TIMEOUT_SECONDS)
        except ApiException as e:
            raise PlaidClient._map_plaid_error(e) from e
        except urllib3.exceptions.HTTPError as e:
            raise AggregatorConnectionError(f"Plaid request failed: {e}") from e

    @staticmethod
    def _map_plaid_error(exc: ApiException) -> AggregatorAPIError:
        """Map a Plaid ApiException to an AggregatorAPIError.

        The body of a Plaid error response is a JSON object with
        ``error_type``, ``error_code``, ``error_message`` and
        ``request_id``; those fields are copied verbatim.
        """
        status = exc.status or None
        body: dict = {}
        if exc.body:
            try:
                parsed = json.loads(exc.body)
            except (TypeError, ValueError):
                parsed = None
            if isinstance(parsed, dict):
                body = parsed

        error_code = body.get("error_code")
        error_type = body.get("error_type")
        error_message = body.get("error_message")
        if error_code:
            message = f"Plaid error ({error_code}): {error_message or exc.reason}"
        else:
            message = f"Plaid error (HTTP {status}): {exc.reason or exc}"

        is_auth = status in (401, 403) or error_code in AUTH_ERROR_CODES
        error_cls = AggregatorAuthError if is_auth else AggregatorAPIError
        return error_cls(
            message,
            status_code=status,
            error_type=error_type,
            error_code=error_code,
            error_message=error_message,
            request_id=body.get("request_id"),
        )
