"""Source type -> connector mapping, built once at process start."""

from __future__ import annotations

import httpx
from pydantic import SecretStr

from leadsignals.config import Settings, settings as default_settings
from leadsignals.sources.adzuna import AdzunaConnector
from leadsignals.sources.base import SourceConnector
from leadsignals.sources.companies_house import CompaniesHouseConnector
from leadsignals.sources.contracts_finder import ContractsFinderConnector
from leadsignals.sources.find_a_tender import FindATenderConnector
from leadsignals.sources.planning_data import PlanningDataConnector


def _secret(value: SecretStr | None) -> str | None:
    return value.get_secret_value() if value else None


def build_registry(
    config: Settings | None = None,
    *,
    transport: httpx.BaseTransport | None = None,
) -> dict[str, SourceConnector]:
    config = config or default_settings
    common = {
        "timeout_seconds": config.http_timeout_seconds,
        "page_size": config.connector_page_size,
        "transport": transport,
    }

    connectors: list[SourceConnector] = [
        ContractsFinderConnector(config.contracts_finder_base_url, **common),
        FindATenderConnector(config.find_a_tender_base_url, api_key=_secret(config.find_a_tender_api_key), **common),
        PlanningDataConnector(config.planning_data_base_url, **common),
        AdzunaConnector(
            config.adzuna_base_url, app_id=config.adzuna_app_id, app_key=_secret(config.adzuna_api_key), **common
        ),
        CompaniesHouseConnector(
            config.companies_house_base_url,
            api_key=_secret(config.companies_house_api_key),
            max_companies=config.companies_house_max_companies,
            **common,
        ),
    ]
    return {connector.source_type: connector for connector in connectors}
