"""ContractUtility: AsyncWeb3 initialization and contract ABI loading."""

import json
import os
from pathlib import Path

from eth_account import Account
from eth_account.signers.local import LocalAccount
from web3 import AsyncWeb3
from web3.middleware import SignAndSendRawMiddlewareBuilder

# Well-known first account of a local anvil/hardhat node.
LOCAL_TEST_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"


class ContractUtility:
    """Utility for Web3 connection and contract ABI loading.

    :ivar network: Network RPC URL.
    :ivar w3: Configured AsyncWeb3 instance.
    :ivar account: Signing account, or None for read-only use.
    """

    def __init__(
        self,
        network_name: str,
        private_key: str | None = None,
        rpc_url: str | None = None,
    ) -> None:
        """Initialize the contract utility.

        :param network_name: Name of the network to connect to (mainnet,
            holesky, local) or an RPC URL.
        :param private_key: Key of the account sending ledger updates.
            Defaults to the PRIVATE_KEY env var, then to the well-known test
            key on the local network.
        :param rpc_url: Explicit RPC URL, overriding the RPC_URL env var.
        """
        networks = {
            "mainnet": "https://ethereum-rpc.publicnode.com",
            "holesky": "https://ethereum-holesky-rpc.publicnode.com",
            "local": "http://localhost:8545",
        }
        # An explicit URL, then RPC_URL, override the default for the network
        self.network = (
            rpc_url or os.environ.get("RPC_URL") or networks.get(network_name, network_name)
        )

        self.w3 = AsyncWeb3(AsyncWeb3.AsyncHTTPProvider(self.network))

        key = private_key or os.environ.get("PRIVATE_KEY")
        if not key and network_name == "local":
            key = LOCAL_TEST_KEY

        self.account: LocalAccount | None = None
        if key:
            self.account = Account.from_key(key)
            self.w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(self.account))
            self.w3.eth.default_account = self.account.address

    @staticmethod
    def get_abi(contract_name: str) -> list:
        """Load the ABI of a contract from the package's abis folder.

        :param contract_name: Name of the contract (e.g., "LiquidTokenManager").
        :returns: ABI as a list of entries.
        """
        abi_path = (Path(__file__).parent.parent / "abis" / f"{contract_name}.json").resolve()

        with open(abi_path, "r") as file:
            contract_data = json.load(file)

        return contract_data["abi"]
