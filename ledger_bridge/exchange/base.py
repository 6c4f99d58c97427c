"""
Base exchange API client interface.

Defines the raw upstream transaction shapes and the contract that every
exchange client must implement.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class RawP2POrder(BaseModel):
    """P2P (C2C) trade as returned by the exchange trade-history endpoint."""

    model_config = ConfigDict(
        extra="allow", populate_by_name=True, coerce_numbers_to_str=True
    )

    order_number: str = Field(..., alias="orderNumber")
    trade_type: str = Field(..., alias="tradeType")
    asset: str
    fiat: str
    amount: str
    total_price: Optional[str] = Field(
        default=None, validation_alias=AliasChoices("totalPrice", "fiatAmount")
    )
    create_time: int = Field(..., alias="createTime")
    order_status: Optional[str] = Field(default=None, alias="orderStatus")
    advertisement_role: Optional[str] = Field(default=None, alias="advertisementRole")
    counter_part_nick_name: Optional[str] = Field(default=None, alias="counterPartNickName")


class PayParty(BaseModel):
    """Payer or receiver identity attached to a pay transaction."""

    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    email: Optional[str] = None
    type: Optional[str] = None


class RawPayTransaction(BaseModel):
    """Pay transfer as returned by the pay transaction-history endpoint."""

    model_config = ConfigDict(
        extra="allow", populate_by_name=True, coerce_numbers_to_str=True
    )

    transaction_id: str = Field(..., alias="transactionId")
    transaction_time: int = Field(..., alias="transactionTime")
    amount: str
    currency: str
    order_type: Optional[str] = Field(default=None, alias="orderType")
    payer_info: Optional[PayParty] = Field(default=None, alias="payerInfo")
    receiver_info: Optional[PayParty] = Field(default=None, alias="receiverInfo")


class RawDeposit(BaseModel):
    """Deposit as returned by the deposit-history endpoint."""

    model_config = ConfigDict(
        extra="allow", populate_by_name=True, coerce_numbers_to_str=True
    )

    tx_id: str = Field(..., alias="txId")
    coin: str
    amount: str
    insert_time: int = Field(..., alias="insertTime")
    network: Optional[str] = None
    status: Optional[int] = None


class BaseExchangeClient(ABC):
    """
    Abstract base class for exchange API clients.

    Every method returns the upstream JSON objects untouched; parsing and
    normalization happen per transaction in the normalizers so that one
    malformed item never fails a whole batch. Signing and authentication
    are internal to each implementation.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
    ):
        """
        Initialize the client.

        Args:
            api_key: API authentication key
            api_secret: Secret used to sign requests
            base_url: Base URL for the API
            timeout: Request timeout in seconds
        """
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = base_url
        self.timeout = timeout

    @abstractmethod
    async def list_p2p_orders(
        self, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Fetch P2P trade history.

        Args:
            since: Inclusive lower bound; None fetches the full history

        Returns:
            List of raw order objects, in upstream order

        Raises:
            APIConnectionError: If connection to API fails
            APIAuthenticationError: If authentication fails
            APIRateLimitError: If rate limit exceeded
            APIValidationError: If the response is malformed
        """
        pass

    @abstractmethod
    async def list_deposits(
        self, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Fetch deposit history. Same contract as list_p2p_orders."""
        pass

    @abstractmethod
    async def list_pay_transactions(
        self, since: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """Fetch pay transaction history. Same contract as list_p2p_orders."""
        pass

    @abstractmethod
    async def validate_credentials(self) -> bool:
        """
        Validate API credentials.

        Returns:
            True if credentials are valid, False otherwise
        """
        pass

    @abstractmethod
    def get_source_name(self) -> str:
        """
        Get the name of this transaction source.

        Returns:
            Source identifier (e.g., 'binance', 'mock')
        """
        pass

    async def close(self) -> None:
        """Release any network resources held by the client."""
        return None


class APIError(Exception):
    """Base exception for API client errors."""

    pass


class APIConnectionError(APIError):
    """Raised when connection to API fails."""

    pass


class APIAuthenticationError(APIError):
    """Raised when API authentication fails."""

    pass


class APIRateLimitError(APIError):
    """Raised when API rate limit is exceeded."""

    pass


class APIValidationError(APIError):
    """Raised when API returns invalid data."""

    pass
