"""Dashboard session: current selection plus the latest applied read model."""

from collections.abc import Awaitable, Callable

from loguru import logger

from vaultrisk.config import settings
from vaultrisk.exceptions import VaultRiskError
from vaultrisk.fetch.pagination import GraphQLExecutor
from vaultrisk.models import TimeRangeConfig, TimeRangeKey, VaultReadModel
from vaultrisk.readmodel import build_vault_read_model
from vaultrisk.time_range import get_time_range_config

FALLBACK_ERROR_MESSAGE = "Failed to fetch vault data"

ReadModelBuilder = Callable[[GraphQLExecutor, str, int, TimeRangeConfig], Awaitable[VaultReadModel]]


class VaultDashboardSession:
    """
    Caller-owned dashboard state.

    Every refresh takes a new request id. Only the outcome of the latest
    request is applied, in request order rather than completion order, so a
    slow superseded build never overwrites a newer result.
    """

    def __init__(
        self,
        client: GraphQLExecutor,
        vault_address: str | None = None,
        chain_id: int | None = None,
        range_key: TimeRangeKey = "30D",
        builder: ReadModelBuilder = build_vault_read_model,
    ):
        self.client = client
        self.vault_address = vault_address or settings.default_vault_address
        self.chain_id = chain_id or settings.default_chain_id
        self.range_key = range_key
        self._builder = builder
        self._request_id = 0

        self.data: VaultReadModel | None = None
        self.error: str | None = None
        self.loading = False

    @property
    def request_id(self) -> int:
        return self._request_id

    def _is_current(self, request_id: int) -> bool:
        return request_id == self._request_id

    def _fail(self, request_id: int, vault_address: str, error: Exception, message: str) -> None:
        if not self._is_current(request_id):
            logger.debug(f"Discarding error from superseded request {request_id}: {error!r}")
            return
        logger.error(f"Read model build failed for {vault_address}: {error!r}")
        self.error = message

    async def refresh(self) -> VaultReadModel | None:
        """
        Build a read model for the current selection.

        Returns:
            The read model if this request was still the latest when it
            completed, otherwise None. Build errors are stored in `error`;
            errors outside the package taxonomy get a generic message.
        """
        self._request_id += 1
        request_id = self._request_id
        vault_address, chain_id = self.vault_address, self.chain_id
        time_range = get_time_range_config(self.range_key)

        self.loading = True
        self.error = None

        try:
            read_model = await self._builder(self.client, vault_address, chain_id, time_range)
        except VaultRiskError as e:
            self._fail(request_id, vault_address, e, str(e) or FALLBACK_ERROR_MESSAGE)
            return None
        except Exception as e:
            self._fail(request_id, vault_address, e, FALLBACK_ERROR_MESSAGE)
            return None
        finally:
            if self._is_current(request_id):
                self.loading = False

        if not self._is_current(request_id):
            logger.debug(f"Discarding superseded read model (request {request_id}, latest {self._request_id})")
            return None

        self.data = read_model
        return read_model

    async def set_range(self, range_key: TimeRangeKey) -> VaultReadModel | None:
        """Change the display range and refresh."""
        self.range_key = range_key
        return await self.refresh()

    async def set_vault_address(self, vault_address: str) -> VaultReadModel | None:
        """Change the vault and refresh."""
        self.vault_address = vault_address
        return await self.refresh()
