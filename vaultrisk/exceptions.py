"""Error taxonomy for read-model builds."""


class VaultRiskError(Exception):
    """Base class for errors that fail a read-model build."""


class MorphoAPIError(VaultRiskError):
    """Transport or protocol failure talking to the Morpho GraphQL API."""


class VaultNotFoundError(VaultRiskError):
    """The requested vault does not exist at the data source."""

    def __init__(self, address: str, chain_id: int):
        self.address = address
        self.chain_id = chain_id
        super().__init__(f"Vault not found: {address} on chain {chain_id}")
