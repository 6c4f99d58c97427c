"""Tests for the canonical record model and the three normalizers."""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from pydantic import ValidationError

from ledger_bridge.records.models import CanonicalRecord, RecordType, TransactionKind
from ledger_bridge.records.normalizer import (
    NormalizationError,
    normalize,
    normalize_deposit,
    normalize_p2p_order,
    normalize_pay_transaction,
    to_minor_units,
)
from tests.fixtures.sample_transactions import deposit, p2p_order, pay_transaction


class TestMinorUnits:
    """Test amount scaling and rounding."""

    def test_rounds_half_away_from_zero(self):
        assert to_minor_units("12.345") == 1235
        assert to_minor_units("-12.345") == -1235
        assert to_minor_units("0.005") == 1

    def test_plain_values(self):
        assert to_minor_units("50.00") == 5000
        assert to_minor_units("100") == 10000
        assert to_minor_units(Decimal("1.1")) == 110

    def test_float_input_goes_through_str(self):
        assert to_minor_units(0.1) == 10
        assert to_minor_units(46.0) == 4600

    def test_invalid_values(self):
        for value in (None, "", "abc", "NaN", True):
            with pytest.raises(ValueError):
                to_minor_units(value)

    def test_out_of_range_amount(self):
        with pytest.raises(ValueError, match="out of range"):
            to_minor_units("1e40")


class TestCanonicalRecord:
    """Test validation at the record construction boundary."""

    def _fields(self, **overrides):
        fields = {
            "amount": 5000,
            "type": "in",
            "currency": "usdt",
            "description": "P2P BUY USDT for EUR",
            "date": 1700000000000,
        }
        fields.update(overrides)
        return fields

    def test_coerces_currency_and_amount(self):
        record = CanonicalRecord(**self._fields(amount="5000", secondaryCurrency="eur", secondaryAmount="4600"))
        assert record.currency == "USDT"
        assert record.secondary_currency == "EUR"
        assert record.amount == 5000
        assert record.secondary_amount == 4600
        assert record.type is RecordType.IN
        assert record.tag is None

    def test_fractional_minor_units_are_rounded(self):
        assert CanonicalRecord(**self._fields(amount=Decimal("1234.5"))).amount == 1235

    @pytest.mark.parametrize("missing", ["amount", "type", "currency", "description", "date"])
    def test_required_fields(self, missing):
        fields = self._fields()
        del fields[missing]
        with pytest.raises(ValidationError):
            CanonicalRecord(**fields)

    def test_rejects_malformed_values(self):
        with pytest.raises(ValidationError):
            CanonicalRecord(**self._fields(amount="twelve"))
        with pytest.raises(ValidationError):
            CanonicalRecord(**self._fields(amount=-1))
        with pytest.raises(ValidationError):
            CanonicalRecord(**self._fields(type="sideways"))
        with pytest.raises(ValidationError):
            CanonicalRecord(**self._fields(date="not a date"))

    def test_rejects_out_of_range_values(self):
        with pytest.raises(ValidationError):
            CanonicalRecord(**self._fields(amount="1e40"))
        with pytest.raises(ValidationError):
            CanonicalRecord(**self._fields(date=10**20))
        with pytest.raises(ValidationError):
            CanonicalRecord(**self._fields(date=str(10**20)))

    def test_records_are_immutable(self):
        record = CanonicalRecord(**self._fields())
        with pytest.raises(ValidationError):
            record.amount = 1

    def test_date_accepts_iso_and_naive_values(self):
        iso = CanonicalRecord(**self._fields(date="2023-11-14T22:13:20Z"))
        naive = CanonicalRecord(**self._fields(date=datetime(2023, 11, 14, 22, 13, 20)))
        assert iso.date == naive.date == datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)

    def test_payload_uses_wire_names(self):
        payload = CanonicalRecord(**self._fields(externalId="BN-1")).to_payload()
        assert payload == {
            "amount": "5000",
            "type": "in",
            "currency": "USDT",
            "description": "P2P BUY USDT for EUR",
            "date": "2023-11-14T22:13:20.000Z",
            "tag": None,
            "externalId": "BN-1",
        }


class TestP2PNormalization:
    """Test P2P order normalization."""

    def test_reference_order(self):
        raw = {
            "tradeType": "BUY",
            "asset": "USDT",
            "fiat": "EUR",
            "orderNumber": "987",
            "createTime": 1700000000000,
            "amount": "50.00",
            "fiatAmount": "46.00",
        }
        record = normalize_p2p_order(raw)

        assert record.to_payload() == {
            "type": "in",
            "currency": "USDT",
            "externalId": "BN-987",
            "amount": "5000",
            "secondaryAmount": "4600",
            "secondaryCurrency": "EUR",
            "date": "2023-11-14T22:13:20.000Z",
            "description": "P2P BUY USDT for EUR",
            "tag": None,
        }

    def test_buy_is_in_and_sell_is_out(self):
        assert normalize_p2p_order(p2p_order(trade_type="BUY")).type is RecordType.IN
        assert normalize_p2p_order(p2p_order(trade_type="SELL")).type is RecordType.OUT

    def test_sell_description_and_total_price(self):
        record = normalize_p2p_order(p2p_order(trade_type="SELL", totalPrice="45.555"))
        assert record.description == "P2P SELL USDT for EUR"
        assert record.secondary_amount == 4556

    def test_numeric_upstream_values(self):
        record = normalize_p2p_order(p2p_order(order_number=123, amount=12.345))
        assert record.external_id == "BN-123"
        assert record.amount == 1235

    def test_unparsable_amount(self):
        with pytest.raises(NormalizationError) as exc:
            normalize_p2p_order(p2p_order(order_number="555", amount="n/a"))
        assert exc.value.upstream_id == "555"
        assert exc.value.kind is TransactionKind.P2P

    @pytest.mark.parametrize(
        "overrides", [{"amount": "1e40"}, {"totalPrice": "1e40"}, {"create_time": 10**20}]
    )
    def test_out_of_range_values(self, overrides):
        with pytest.raises(NormalizationError) as exc:
            normalize_p2p_order(p2p_order(order_number="556", **overrides))
        assert exc.value.upstream_id == "556"

    def test_missing_order_number(self):
        raw = p2p_order()
        del raw["orderNumber"]
        with pytest.raises(NormalizationError):
            normalize_p2p_order(raw)


class TestPayNormalization:
    """Test pay transfer normalization."""

    def test_negative_amount_is_out_to_receiver(self):
        record = normalize_pay_transaction(pay_transaction(amount="-12.345"))
        assert record.type is RecordType.OUT
        assert record.amount == 1235
        assert record.currency == "USDT"
        assert record.external_id == "PAY-P1"
        assert record.description == "Binance Pay to Bob"
        assert record.secondary_amount is None

    def test_positive_amount_is_in_from_payer(self):
        record = normalize_pay_transaction(pay_transaction(amount="20"))
        assert record.type is RecordType.IN
        assert record.amount == 2000
        assert record.description == "Binance Pay from Payroll Ltd"

    def test_counterparty_falls_back_to_email_then_unknown(self):
        out_email = normalize_pay_transaction(
            pay_transaction(amount="-1", receiverInfo={"email": "bob@example.com"})
        )
        assert out_email.description == "Binance Pay to bob@example.com"

        in_unknown = normalize_pay_transaction(pay_transaction(amount="1", payerInfo={"name": " "}))
        assert in_unknown.description == "Binance Pay from Unknown"

        no_info = pay_transaction(amount="1")
        del no_info["payerInfo"]
        assert normalize_pay_transaction(no_info).description == "Binance Pay from Unknown"

    @pytest.mark.parametrize("amount", ["0", "-0.00", "abc", ""])
    def test_zero_or_unparsable_amount_fails(self, amount):
        with pytest.raises(NormalizationError):
            normalize_pay_transaction(pay_transaction(amount=amount))


class TestDepositNormalization:
    """Test deposit normalization."""

    def test_deposit_is_always_in(self):
        record = normalize_deposit(deposit(tx_id="0xfeed", amount="12.345"))
        assert record.type is RecordType.IN
        assert record.amount == 1235
        assert record.currency == "USDT"
        assert record.external_id == "BN-0xfeed"
        assert record.description == "Deposit USDT to Binance"
        assert record.date == datetime(2023, 11, 14, 22, 16, 40, tzinfo=timezone.utc)

    def test_bad_insert_time(self):
        with pytest.raises(NormalizationError):
            normalize_deposit(deposit(insert_time="yesterday"))


class TestDispatch:
    def test_normalize_by_kind(self):
        assert normalize("deposit", deposit()).external_id == "BN-0xabc"
        assert normalize(TransactionKind.PAY, pay_transaction()).external_id == "PAY-P1"
        assert normalize(TransactionKind.P2P, p2p_order()).external_id == "BN-987"
