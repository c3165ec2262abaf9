"""Token balance queries and transfers on ICRC-1 ledgers, exposed as agent tools."""

from __future__ import annotations

import base64
import binascii
import logging
import math
import zlib
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Protocol

from .model import FunctionDefinition

logger = logging.getLogger(__name__)

MAX_PRINCIPAL_LENGTH = 29
SUBACCOUNT_LENGTH = 32
DEFAULT_EXPLORER_URL = "https://explorer.example.com/token/details/"

_U64_MAX = 2**64 - 1
_I8_MAX = 127


@dataclass(frozen=True, order=True)
class Principal:
    """An identifier for a user or canister, ordered by its raw bytes."""

    raw: bytes

    def __post_init__(self) -> None:
        if len(self.raw) > MAX_PRINCIPAL_LENGTH:
            raise ValueError(
                f"principal is longer than {MAX_PRINCIPAL_LENGTH} bytes: {len(self.raw)}"
            )

    @classmethod
    def from_text(cls, text: str) -> Principal:
        """Parse the dash-grouped, checksummed base32 text form."""
        compact = text.replace("-", "")
        padding = "=" * (-len(compact) % 8)
        try:
            decoded = base64.b32decode(compact.upper() + padding)
        except (binascii.Error, ValueError) as err:
            raise ValueError(f"invalid principal text {text!r}: {err}") from err
        if len(decoded) < 4:
            raise ValueError(f"invalid principal text {text!r}: too short")
        principal = cls(decoded[4:])
        if principal.to_text() != text:
            raise ValueError(f"invalid principal text {text!r}")
        return principal

    def to_text(self) -> str:
        """Return the dash-grouped, checksummed base32 text form."""
        checksum = zlib.crc32(self.raw).to_bytes(4, "big")
        encoded = base64.b32encode(checksum + self.raw).decode("ascii")
        encoded = encoded.rstrip("=").lower()
        return "-".join(encoded[i : i + 5] for i in range(0, len(encoded), 5))

    @classmethod
    def anonymous(cls) -> Principal:
        """The principal of an unauthenticated caller."""
        return cls(b"\x04")

    def __str__(self) -> str:
        return self.to_text()


def principal_to_subaccount(principal: Principal) -> bytes:
    """Derive a 32-byte subaccount: length byte followed by the principal's bytes."""
    raw = principal.raw
    return bytes([len(raw)]) + raw + bytes(SUBACCOUNT_LENGTH - 1 - len(raw))


@dataclass(frozen=True)
class Account:
    """An ICRC-1 account: an owner and an optional 32-byte subaccount."""

    owner: Principal
    subaccount: bytes | None = None


@dataclass(frozen=True)
class TransferArg:
    """Arguments of an ``icrc1_transfer`` call."""

    to: Account
    amount: int
    from_subaccount: bytes | None = None
    fee: int | None = None
    memo: bytes | None = None
    created_at_time: int | None = None


@dataclass(frozen=True)
class TransferError:
    """A rejection reported by a ledger for a transfer, e.g. ``InsufficientFunds``."""

    kind: str
    details: Mapping[str, Any] = field(default_factory=dict)


class _CanisterCaller(Protocol):
    async def canister_query(self, canister: Principal, method: str, args: tuple) -> Any: ...

    async def canister_update(self, canister: Principal, method: str, args: tuple) -> Any: ...


class _ToolContext(_CanisterCaller, Protocol):
    def id(self) -> Principal: ...


def _f64_to_u64(value: float) -> int:
    """Truncate toward zero, saturating at the bounds of an unsigned 64-bit integer."""
    if math.isnan(value) or value <= 0:
        return 0
    if value >= 2**64:
        return _U64_MAX
    return int(value)


def _nat_to_f64(value: int) -> float:
    try:
        return float(value)
    except OverflowError:
        return math.inf


@dataclass(frozen=True)
class BalanceOfArgs:
    """Arguments for querying the balance of an account for a token."""

    account: str
    symbol: str

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> BalanceOfArgs:
        return cls(account=str(data["account"]), symbol=str(data["symbol"]))


@dataclass(frozen=True)
class TransferToArgs:
    """Arguments for transferring tokens to an account."""

    account: str
    symbol: str
    amount: float

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> TransferToArgs:
        return cls(
            account=str(data["account"]),
            symbol=str(data["symbol"]),
            amount=float(data["amount"]),
        )


@dataclass
class ICPLedgers:
    """Token symbols mapped to their ledger canister and number of decimals."""

    ledgers: dict[str, tuple[Principal, int]]
    from_user_subaccount: bool = False

    def __post_init__(self) -> None:
        self.ledgers = dict(sorted(self.ledgers.items()))

    def symbols(self) -> list[str]:
        return list(self.ledgers)

    @classmethod
    async def load(
        cls,
        ctx: _CanisterCaller,
        ledger_canisters: Iterable[Principal],
        from_user_subaccount: bool,
    ) -> ICPLedgers:
        """Read each ledger's symbol and decimals from its ``icrc1_metadata``.

        Ledgers that report no usable decimals are left out.
        """
        canisters = sorted(set(ledger_canisters))
        if not canisters:
            raise ValueError("No ledger canister specified")
        ledgers: dict[str, tuple[Principal, int]] = {}
        for canister in canisters:
            metadata = await ctx.canister_query(canister, "icrc1_metadata", ())
            symbol = "ICP"
            decimals = -1
            for key, value in metadata:
                if key == "icrc1:symbol" and isinstance(value, str):
                    symbol = value
                elif (
                    key == "icrc1:decimals"
                    and isinstance(value, int)
                    and not isinstance(value, bool)
                    and value >= 0
                ):
                    decimals = value if value <= _I8_MAX else -1
            if decimals > -1:
                ledgers[symbol] = (canister, decimals)
        return cls(ledgers=ledgers, from_user_subaccount=from_user_subaccount)

    def _ledger(self, symbol: str) -> tuple[Principal, int]:
        try:
            return self.ledgers[symbol]
        except KeyError:
            raise ValueError(f"Token {symbol} is not supported") from None

    async def transfer(
        self, ctx: _CanisterCaller, me: Principal, args: TransferToArgs
    ) -> tuple[Principal, int]:
        """Transfer tokens from ``me`` to ``args.account``.

        Returns the ledger canister and the transaction id.
        """
        owner = Principal.from_text(args.account)
        from_subaccount = (
            principal_to_subaccount(owner) if self.from_user_subaccount else None
        )
        canister, decimals = self._ledger(args.symbol)
        amount = _f64_to_u64(args.amount * float(10**decimals))

        balance = await ctx.canister_query(
            canister,
            "icrc1_balance_of",
            (Account(owner=me, subaccount=from_subaccount),),
        )
        if balance < amount:
            raise ValueError("insufficient balance")

        transfer_arg = TransferArg(
            to=Account(owner=owner),
            amount=amount,
            from_subaccount=from_subaccount,
        )
        try:
            result = await ctx.canister_update(canister, "icrc1_transfer", (transfer_arg,))
        except TransferError as err:  # pragma: no cover - defensive
            result = err
        succeeded = not isinstance(result, TransferError)
        logger.info(
            "icrc1_transfer account=%s symbol=%s amount=%s result=%s",
            args.account,
            args.symbol,
            args.amount,
            succeeded,
        )
        if not succeeded:
            raise RuntimeError(f"failed to transfer tokens, error: {result!r}")
        return canister, result

    async def balance_of(
        self, ctx: _CanisterCaller, args: BalanceOfArgs
    ) -> tuple[Principal, float]:
        """Return the ledger canister and the account's balance in whole tokens."""
        owner = Principal.from_text(args.account)
        canister, decimals = self._ledger(args.symbol)
        res = await ctx.canister_query(
            canister, "icrc1_balance_of", (Account(owner=owner),)
        )
        amount = _nat_to_f64(res) / float(10**decimals)
        logger.info(
            "balance_of account=%s symbol=%s balance=%s",
            args.account,
            args.symbol,
            amount,
        )
        return canister, amount


_BALANCE_OF_SCHEMA: dict[str, Any] = {
    "additionalProperties": False,
    "description": "Arguments for the balance of an account for a token",
    "properties": {
        "account": {
            "description": 'ICP account address (principal) to query, e.g. "77ibd-jp5kr-moeco-kgoar-rro5v-5tng4-krif5-5h2i6-osf2f-2sjtv-kqe"',
            "type": "string",
        },
        "symbol": {
            "description": 'Token symbol, e.g. "ICP"',
            "type": "string",
        },
    },
    "required": ["account", "symbol"],
    "title": "BalanceOfArgs",
    "type": "object",
}

_TRANSFER_TO_SCHEMA: dict[str, Any] = {
    "additionalProperties": False,
    "description": "Arguments for transferring tokens to an account",
    "properties": {
        "account": {
            "description": 'ICP account address (principal) to receive token, e.g. "77ibd-jp5kr-moeco-kgoar-rro5v-5tng4-krif5-5h2i6-osf2f-2sjtv-kqe"',
            "type": "string",
        },
        "amount": {
            "description": "Token amount, e.g. 1.1 ICP",
            "type": "number",
        },
        "symbol": {
            "description": 'Token symbol, e.g. "ICP"',
            "type": "string",
        },
    },
    "required": ["account", "amount", "symbol"],
    "title": "TransferToArgs",
    "type": "object",
}


def _deep_copy_schema(schema: dict[str, Any]) -> dict[str, Any]:
    return {
        key: _deep_copy_schema(value) if isinstance(value, dict) else
        (list(value) if isinstance(value, list) else value)
        for key, value in schema.items()
    }


class BalanceOfTool:
    """Tool that lets an agent query an account's token balance."""

    NAME = "icp_ledger_balance_of"
    CONTINUE = True

    def __init__(self, ledgers: ICPLedgers) -> None:
        self.ledgers = ledgers
        self.schema = _deep_copy_schema(_BALANCE_OF_SCHEMA)

    def name(self) -> str:
        return self.NAME

    def description(self) -> str:
        tokens = ", ".join(self.ledgers.symbols())
        return (
            "Query the balance of the specified account on ICP blockchain "
            f"for the following tokens: {tokens}"
        )

    def definition(self) -> FunctionDefinition:
        return FunctionDefinition(
            name=self.name(),
            description=self.description(),
            parameters=_deep_copy_schema(self.schema),
            strict=True,
        )

    async def call(
        self, ctx: _CanisterCaller, data: BalanceOfArgs | Mapping[str, Any]
    ) -> float:
        """Return the balance in whole tokens."""
        if not isinstance(data, BalanceOfArgs):
            data = BalanceOfArgs.from_dict(data)
        _, amount = await self.ledgers.balance_of(ctx, data)
        return amount


class TransferTool:
    """Tool that lets an agent transfer tokens from its own account."""

    NAME = "icp_ledger_transfer"
    CONTINUE = True

    def __init__(
        self, ledgers: ICPLedgers, explorer_url: str = DEFAULT_EXPLORER_URL
    ) -> None:
        self.ledgers = ledgers
        self.explorer_url = explorer_url
        self.schema = _deep_copy_schema(_TRANSFER_TO_SCHEMA)

    def name(self) -> str:
        return self.NAME

    def description(self) -> str:
        tokens = self.ledgers.symbols()
        if len(tokens) > 1:
            return (
                f"Transfer {', '.join(tokens)} tokens to the specified account "
                "on ICP blockchain."
            )
        return f"Transfer {tokens[0]} token to the specified account on ICP blockchain."

    def definition(self) -> FunctionDefinition:
        return FunctionDefinition(
            name=self.name(),
            description=self.description(),
            parameters=_deep_copy_schema(self.schema),
            strict=True,
        )

    async def call(
        self, ctx: _ToolContext, data: TransferToArgs | Mapping[str, Any]
    ) -> str:
        """Transfer from the context's own principal and describe the result."""
        if not isinstance(data, TransferToArgs):
            data = TransferToArgs.from_dict(data)
        ledger, tx = await self.ledgers.transfer(ctx, ctx.id(), data)
        tx_id = tx if 0 <= tx <= _U64_MAX else 0
        return (
            f"Successful, transaction ID: {tx_id}, "
            f"detail: {self.explorer_url}{ledger.to_text()}"
        )