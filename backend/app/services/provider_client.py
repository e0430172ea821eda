"""
Aggregation provider (Plaid) client used by the sync service.
"""

import logging
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Dict, List, Optional

import plaid
from plaid.api import plaid_api
from plaid.exceptions import ApiException
from plaid.model.transactions_get_request import TransactionsGetRequest
from plaid.model.transactions_get_request_options import TransactionsGetRequestOptions
from plaid.model.transactions_recurring_get_request import TransactionsRecurringGetRequest
from urllib3.exceptions import HTTPError

from app.config import Settings
from app.exceptions import ProviderUnavailableError

logger = logging.getLogger(__name__)

PAGE_SIZE = 500


class ProviderClient(ABC):
    """Operations the sync service needs from the aggregation provider."""

    @abstractmethod
    def get_transactions(self, access_token: str, start_date: date, end_date: date) -> List[Dict[str, Any]]:
        """Return raw transaction dicts posted between start_date and end_date."""
        pass

    @abstractmethod
    def get_recurring_streams(self, access_token: str, account_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        """Return {"inflow_streams": [...], "outflow_streams": [...]} raw stream dicts."""
        pass


class PlaidProviderClient(ProviderClient):
    """Plaid implementation; every API or transport failure becomes ProviderUnavailableError."""

    def __init__(self, api: plaid_api.PlaidApi, timeout: Optional[float] = None):
        self.api = api
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings: Settings) -> "PlaidProviderClient":
        if not settings.plaid_client_id or not settings.plaid_secret:
            raise ProviderUnavailableError("Plaid credentials are not configured")

        host = plaid.Environment.Sandbox
        if settings.plaid_env == "production":
            host = plaid.Environment.Production

        configuration = plaid.Configuration(
            host=host,
            api_key={
                "clientId": settings.plaid_client_id,
                "secret": settings.plaid_secret,
            },
        )
        api = plaid_api.PlaidApi(plaid.ApiClient(configuration))
        return cls(api, timeout=settings.provider_timeout_seconds)

    def get_transactions(self, access_token: str, start_date: date, end_date: date) -> List[Dict[str, Any]]:
        transactions: List[Dict[str, Any]] = []
        try:
            while True:
                request = TransactionsGetRequest(
                    access_token=access_token,
                    start_date=start_date,
                    end_date=end_date,
                    options=TransactionsGetRequestOptions(count=PAGE_SIZE, offset=len(transactions)),
                )
                response = self.api.transactions_get(request, _request_timeout=self.timeout).to_dict()
                page = response.get("transactions", [])
                transactions.extend(page)
                if not page or len(transactions) >= response.get("total_transactions", 0):
                    break
        except ApiException as e:
            raise ProviderUnavailableError(f"Plaid transactions request failed: {e.status} {e.reason}") from e
        except (OSError, HTTPError) as e:
            raise ProviderUnavailableError(f"Plaid transactions request failed: {e}") from e

        return transactions

    def get_recurring_streams(self, access_token: str, account_ids: List[str]) -> Dict[str, List[Dict[str, Any]]]:
        kwargs: Dict[str, Any] = {"access_token": access_token}
        if account_ids:
            kwargs["account_ids"] = list(account_ids)

        try:
            response = self.api.transactions_recurring_get(
                TransactionsRecurringGetRequest(**kwargs),
                _request_timeout=self.timeout,
            ).to_dict()
        except ApiException as e:
            raise ProviderUnavailableError(f"Plaid recurring request failed: {e.status} {e.reason}") from e
        except (OSError, HTTPError) as e:
            raise ProviderUnavailableError(f"Plaid recurring request failed: {e}") from e

        return {
            "inflow_streams": response.get("inflow_streams", []),
            "outflow_streams": response.get("outflow_streams", []),
        }
