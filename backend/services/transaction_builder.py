"""
Unsigned transaction assembly.

Encodes the call, asks the chain for a gas estimate from the *caller's*
address, and checks the caller can afford gas + value. Estimation is
advisory: if the node can't estimate we fall back to a per-operation default
because the wallet re-estimates at signing time anyway.
"""

import logging
from typing import Any, Dict, Optional

from eth_abi.exceptions import EncodingError

from config import NetworkConfig
from integrations.story_abi import encode_call
from schemas.domain import PreparedTransaction
from services.parameter_assembler import ProtocolCall
from utils.errors import ChainRPCError, InsufficientFundsError, ParameterError

logger = logging.getLogger(__name__)

GAS_BUFFER_PERCENT = 20
FALLBACK_GAS_PRICE_WEI = 20 * 10 ** 9  # 20 gwei

DEFAULT_GAS_LIMITS = {
    "register": 800_000,
    "cli_mint": 500_000,
    "derivative": 600_000,
    "license": 300_000,
    "royalty": 400_000,
    "collection": 600_000,
    "dispute": 400_000,
}
DEFAULT_GAS_LIMIT = 500_000


def apply_gas_buffer(estimate: int) -> int:
    return estimate * (100 + GAS_BUFFER_PERCENT) // 100


class TransactionBuilder:
    """Turns a ProtocolCall into a PreparedTransaction"""

    def __init__(self, chain_client, network: NetworkConfig, balance_preflight: bool = True):
        self.chain = chain_client
        self.network = network
        self.balance_preflight = balance_preflight

    async def estimate_gas(self, call: ProtocolCall, data: str, signer: str, default_gas: int) -> int:
        """Buffered live estimate, or the default when the node can't give one"""
        try:
            raw = await self.chain.estimate_gas(to=call.to, data=data, sender=signer, value=call.value)
        except Exception as e:
            logger.warning(
                f"⛽ Gas estimation failed for {call.function['name']} ({type(e).__name__}: {e}); "
                f"using default {default_gas}"
            )
            return default_gas
        buffered = apply_gas_buffer(raw)
        logger.info(f"⛽ Estimated {raw} gas for {call.function['name']}, using {buffered} with buffer")
        return buffered

    async def check_balance(self, signer: str, gas_limit: int, value: int) -> Optional[Dict[str, Any]]:
        """
        Compare balance with gas_limit * gas_price + value.

        Returns a summary dict when the check ran, None when it was skipped.
        Raises InsufficientFundsError when the signer clearly can't pay.
        """
        if not self.balance_preflight:
            return None

        try:
            balance = await self.chain.get_balance(signer)
        except ChainRPCError as e:
            logger.warning(f"⚠️  Skipping balance pre-flight for {signer}: {e.detail}")
            return None

        try:
            gas_price = await self.chain.get_gas_price()
        except ChainRPCError:
            gas_price = FALLBACK_GAS_PRICE_WEI

        required = gas_limit * gas_price + value
        summary = {
            "balance": str(balance),
            "gasPrice": str(gas_price),
            "required": str(required),
        }
        if balance < required:
            logger.warning(f"💸 {signer} has {balance} wei, needs {required} wei")
            raise InsufficientFundsError(required, balance, self.remediation(signer))
        return summary

    def remediation(self, signer: str) -> Dict[str, Any]:
        details: Dict[str, Any] = {
            "network": self.network.name,
            "explorerUrl": self.network.explorer_address_url(signer),
        }
        if self.network.faucet_urls:
            details["faucetUrls"] = list(self.network.faucet_urls)
        return details

    async def build(self, call: ProtocolCall, signer: str, default_gas: int = DEFAULT_GAS_LIMIT) -> PreparedTransaction:
        """
        Args:
            call: assembled protocol call
            signer: the caller's address, used only for estimation and the balance check
            default_gas: gas limit when estimation fails
        """
        if not call.to:
            raise ParameterError("Transaction target address could not be resolved")

        try:
            data = encode_call(call.function, call.args)
        except (EncodingError, TypeError, ValueError) as e:
            raise ParameterError(f"Could not encode {call.function['name']} call: {e}")

        gas_limit = await self.estimate_gas(call, data, signer, default_gas)
        await self.check_balance(signer, gas_limit, call.value)

        return PreparedTransaction(
            to=call.to,
            data=data,
            value=str(call.value),
            gas_estimate=str(gas_limit),
        )
