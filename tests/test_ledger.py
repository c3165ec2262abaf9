import math

import pytest

from andaengine.ledger import (
    Account,
    BalanceOfArgs,
    BalanceOfTool,
    ICPLedgers,
    Principal,
    TransferArg,
    TransferError,
    TransferToArgs,
    TransferTool,
    principal_to_subaccount,
)

ICP_LEDGER = "ryjl3-tyaaa-aaaaa-aaaba-cai"
PANDA_LEDGER = "druyg-tyaaa-aaaaq-aactq-cai"


class MockCaller:
    def __init__(self, handler, me=None):
        self.handler = handler
        self.me = me if me is not None else Principal.anonymous()
        self.calls = []

    async def canister_query(self, canister, method, args):
        self.calls.append(("query", canister, method, args))
        return self.handler(canister, method, args)

    async def canister_update(self, canister, method, args):
        self.calls.append(("update", canister, method, args))
        return self.handler(canister, method, args)

    def id(self):
        return self.me


def make_ledgers(from_user_subaccount=True):
    return ICPLedgers(
        ledgers={
            "PANDA": (Principal.from_text(PANDA_LEDGER), 8),
            "ICP": (Principal.from_text(ICP_LEDGER), 8),
        },
        from_user_subaccount=from_user_subaccount,
    )


def test_principal_known_texts():
    assert Principal.anonymous().to_text() == "2vxsx-fae"
    assert Principal(b"").to_text() == "aaaaa-aa"
    assert Principal.from_text("2vxsx-fae") == Principal.anonymous()


@pytest.mark.parametrize("text", [ICP_LEDGER, PANDA_LEDGER, "aaaaa-aa", "2vxsx-fae"])
def test_principal_round_trip(text):
    assert Principal.from_text(text).to_text() == text
    assert str(Principal.from_text(text)) == text


@pytest.mark.parametrize("text", ["not a principal", "2vxsx-fad", "2VXSX-FAE", "2vxsxfae", ""])
def test_principal_invalid_text(text):
    with pytest.raises(ValueError):
        Principal.from_text(text)


def test_principal_too_long():
    with pytest.raises(ValueError):
        Principal(bytes(30))


def test_principal_to_subaccount():
    sub = principal_to_subaccount(Principal.anonymous())
    assert len(sub) == 32
    assert sub[0] == 1
    assert sub[1] == 4
    assert sub[2:] == bytes(30)


def test_balance_of_tool_definition():
    tool = BalanceOfTool(make_ledgers())
    definition = tool.definition()
    assert definition.name == "icp_ledger_balance_of"
    assert definition.description == (
        "Query the balance of the specified account on ICP blockchain "
        "for the following tokens: ICP, PANDA"
    )
    assert definition.strict is True
    assert definition.parameters == {
        "additionalProperties": False,
        "description": "Arguments for the balance of an account for a token",
        "properties": {
            "account": {
                "description": 'ICP account address (principal) to query, e.g. "77ibd-jp5kr-moeco-kgoar-rro5v-5tng4-krif5-5h2i6-osf2f-2sjtv-kqe"',
                "type": "string",
            },
            "symbol": {"description": 'Token symbol, e.g. "ICP"', "type": "string"},
        },
        "required": ["account", "symbol"],
        "title": "BalanceOfArgs",
        "type": "object",
    }


def test_transfer_tool_definition():
    tool = TransferTool(make_ledgers())
    definition = tool.definition()
    assert definition.name == "icp_ledger_transfer"
    assert definition.description == (
        "Transfer ICP, PANDA tokens to the specified account on ICP blockchain."
    )
    assert definition.strict is True
    assert definition.parameters["required"] == ["account", "amount", "symbol"]
    assert definition.parameters["title"] == "TransferToArgs"
    assert definition.parameters["properties"]["amount"] == {
        "description": "Token amount, e.g. 1.1 ICP",
        "type": "number",
    }


def test_transfer_tool_description_single_token():
    ledgers = ICPLedgers(ledgers={"ICP": (Principal.from_text(ICP_LEDGER), 8)})
    assert TransferTool(ledgers).description() == (
        "Transfer ICP token to the specified account on ICP blockchain."
    )


@pytest.mark.asyncio
async def test_icp_ledger_transfer():
    panda_ledger = Principal.from_text(PANDA_LEDGER)
    ledgers = make_ledgers()
    seen = []

    def handler(canister, method, args):
        if method == "icrc1_balance_of":
            return 999900001234
        assert canister == panda_ledger
        assert method == "icrc1_transfer"
        (arg,) = args
        seen.append(arg)
        return 321

    mocker = MockCaller(handler)
    args = TransferToArgs(
        account=Principal.anonymous().to_text(),
        symbol="PANDA",
        amount=9999.000012345678,
    )
    ledger, res = await ledgers.transfer(mocker, Principal.anonymous(), args)
    assert res == 321
    assert ledger == panda_ledger
    assert len(seen) == 1
    arg = seen[0]
    assert isinstance(arg, TransferArg)
    assert arg.from_subaccount == principal_to_subaccount(Principal.anonymous())
    assert arg.to.owner == Principal.anonymous()
    assert arg.to.subaccount is None
    assert arg.amount == 999900001234


@pytest.mark.asyncio
async def test_transfer_insufficient_balance():
    mocker = MockCaller(lambda c, m, a: 100 if m == "icrc1_balance_of" else 1)
    args = TransferToArgs(account="2vxsx-fae", symbol="ICP", amount=1.0)
    with pytest.raises(ValueError, match="insufficient balance"):
        await make_ledgers().transfer(mocker, Principal.anonymous(), args)
    assert [call[2] for call in mocker.calls] == ["icrc1_balance_of"]


@pytest.mark.asyncio
async def test_transfer_unsupported_token():
    mocker = MockCaller(lambda c, m, a: 0)
    args = TransferToArgs(account="2vxsx-fae", symbol="BTC", amount=1.0)
    with pytest.raises(ValueError, match="Token BTC is not supported"):
        await make_ledgers().transfer(mocker, Principal.anonymous(), args)


@pytest.mark.asyncio
async def test_transfer_ledger_error():
    def handler(canister, method, args):
        if method == "icrc1_balance_of":
            return 10**12
        return TransferError("InsufficientFunds", {"balance": 0})

    args = TransferToArgs(account="2vxsx-fae", symbol="ICP", amount=1.0)
    with pytest.raises(RuntimeError, match="failed to transfer tokens"):
        await make_ledgers().transfer(MockCaller(handler), Principal.anonymous(), args)


@pytest.mark.asyncio
async def test_transfer_without_user_subaccount_uses_main_account():
    def handler(canister, method, args):
        if method == "icrc1_balance_of":
            (account,) = args
            assert account == Account(owner=Principal.anonymous())
            return 10**12
        return 7

    mocker = MockCaller(handler)
    args = TransferToArgs(account="2vxsx-fae", symbol="ICP", amount=1.5)
    _, tx = await make_ledgers(False).transfer(mocker, Principal.anonymous(), args)
    assert tx == 7
    update_arg = mocker.calls[-1][3][0]
    assert update_arg.from_subaccount is None
    assert update_arg.amount == 150000000


@pytest.mark.asyncio
async def test_balance_of():
    def handler(canister, method, args):
        assert method == "icrc1_balance_of"
        (account,) = args
        assert account.subaccount is None
        return 250000000

    ledger, amount = await make_ledgers().balance_of(
        MockCaller(handler), BalanceOfArgs(account="2vxsx-fae", symbol="ICP")
    )
    assert ledger == Principal.from_text(ICP_LEDGER)
    assert math.isclose(amount, 2.5)


@pytest.mark.asyncio
async def test_balance_of_tool_call_accepts_mapping():
    tool = BalanceOfTool(make_ledgers())
    amount = await tool.call(
        MockCaller(lambda c, m, a: 123000000), {"account": "2vxsx-fae", "symbol": "PANDA"}
    )
    assert math.isclose(amount, 1.23)


@pytest.mark.asyncio
async def test_transfer_tool_call_output():
    tool = TransferTool(make_ledgers(), explorer_url="https://explorer.example.com/t/")
    mocker = MockCaller(lambda c, m, a: 10**12 if m == "icrc1_balance_of" else 42)
    out = await tool.call(
        mocker, TransferToArgs(account="2vxsx-fae", symbol="ICP", amount=1.0)
    )
    assert out == (
        "Successful, transaction ID: 42, "
        f"detail: https://explorer.example.com/t/{ICP_LEDGER}"
    )


@pytest.mark.asyncio
async def test_load_reads_metadata():
    icp = Principal.from_text(ICP_LEDGER)
    panda = Principal.from_text(PANDA_LEDGER)
    other = Principal.anonymous()

    def handler(canister, method, args):
        assert method == "icrc1_metadata"
        if canister == icp:
            return [("icrc1:symbol", "ICP"), ("icrc1:decimals", 8)]
        if canister == panda:
            return [("icrc1:symbol", "PANDA"), ("icrc1:decimals", 6), ("icrc1:fee", 10000)]
        return [("icrc1:symbol", "NODEC")]

    ledgers = await ICPLedgers.load(MockCaller(handler), [panda, icp, other], True)
    assert ledgers.ledgers == {"ICP": (icp, 8), "PANDA": (panda, 6)}
    assert ledgers.from_user_subaccount is True


@pytest.mark.asyncio
async def test_load_rejects_empty():
    with pytest.raises(ValueError, match="No ledger canister specified"):
        await ICPLedgers.load(MockCaller(lambda c, m, a: []), [], False)


@pytest.mark.asyncio
async def test_load_ignores_out_of_range_decimals():
    icp = Principal.from_text(ICP_LEDGER)
    mocker = MockCaller(lambda c, m, a: [("icrc1:decimals", 300)])
    ledgers = await ICPLedgers.load(mocker, [icp], False)
    assert ledgers.ledgers == {}