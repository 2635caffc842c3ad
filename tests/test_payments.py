import hashlib
import hmac
import json

import pytest

from storefront.core.errors import ValidationFailed
from storefront.services.payments import PaymentGateways, PaymentRequest, PaymentStatus
from storefront.services.payments.ipaymu import encode_body, sign_body
from storefront.services.payments.tokopay import create_signature, status_signature

IPAYMU = "https://my.ipaymu.com/api/v2"
PAKASIR = "https://app.pakasir.com/api"
TOKOPAY = "https://api.tokopay.id/v1"
PAYPAL = "https://api-m.sandbox.paypal.com"


@pytest.fixture
def gateways(store, settings, http_client):
    return PaymentGateways(store, settings, http_client)


def payment_request(**overrides):
    fields = dict(order_id="JMB20240115ABCDEFGHIJ", amount=50000, customer_name="Budi")
    fields.update(overrides)
    return PaymentRequest(**fields)


# ============================================================
# iPaymu
# ============================================================

def test_ipaymu_signature_covers_va_and_body():
    body = encode_body({"transactionId": "123"})
    assert body == '{"transactionId":"123"}'
    expected = hmac.new(b"key", b"VA1" + body.encode(), hashlib.sha256).hexdigest()
    assert sign_body("key", "VA1", body) == expected


async def test_ipaymu_create_sends_signed_body(gateways, upstream, settings):
    upstream.on("POST", f"{IPAYMU}/payment/direct", {
        "Status": 200,
        "Data": {"SessionID": "S1", "TransactionId": 777, "QrString": "000201", "Url": "https://pay"},
    })

    result = await gateways.get("ipaymu").create_payment(payment_request())

    assert result.success
    assert result.transaction_id == "777"
    assert result.qr_string == "000201"

    sent = upstream.calls_to(f"{IPAYMU}/payment/direct")[0]
    body = sent.content.decode()
    assert sent.headers["va"] == settings.IPAYMU_VA
    assert sent.headers["signature"] == sign_body(settings.IPAYMU_API_KEY, settings.IPAYMU_VA, body)
    assert json.loads(body)["referenceId"] == "JMB20240115ABCDEFGHIJ"
    assert json.loads(body)["paymentMethod"] == "qris"


async def test_ipaymu_create_failure_is_a_result(gateways, upstream):
    upstream.on("POST", f"{IPAYMU}/payment/direct", {"Status": 401, "Message": "unauthorized"})

    result = await gateways.get("ipaymu").create_payment(payment_request())

    assert not result.success
    assert result.message == "unauthorized"


@pytest.mark.parametrize("code, expected, received", [
    (1, PaymentStatus.PAID, 50000),
    (-1, PaymentStatus.EXPIRED, 0),
    (0, PaymentStatus.UNPAID, 0),
])
async def test_ipaymu_status_mapping(gateways, upstream, code, expected, received):
    upstream.on("POST", f"{IPAYMU}/transaction", {
        "Status": 200,
        "Data": {"Status": code, "Total": 50000, "TransactionId": 777},
    })

    result = await gateways.get("ipaymu").check_status("777")

    assert result.status == expected
    assert result.amount_received == received


async def test_ipaymu_unknown_transaction_is_unpaid(gateways, upstream):
    upstream.on("POST", f"{IPAYMU}/transaction", {"Status": 404, "Message": "not found"})

    result = await gateways.get("ipaymu").check_status("999")

    assert result.status == PaymentStatus.UNPAID
    assert result.amount_received == 0


# ============================================================
# Pakasir
# ============================================================

async def test_pakasir_create_renders_qr(gateways, upstream):
    upstream.on("POST", f"{PAKASIR}/transactioncreate/qris", {
        "payment": {
            "order_id": "JMB20240115ABCDEFGHIJ",
            "amount": 50000,
            "fee": 350,
            "total_payment": 50350,
            "payment_number": "00020101021126",
            "expired_at": "2024-01-16T10:00:00Z",
        }
    })

    result = await gateways.get("pakasir").create_payment(payment_request())

    assert result.success
    assert result.qr_string == "00020101021126"
    assert result.qr_url.startswith("data:image/png;base64,")
    assert result.total_payment == 50350
    assert result.expiry_time is not None

    sent = upstream.json_sent_to(f"{PAKASIR}/transactioncreate/qris")[0]
    assert sent["api_key"] == "pakasir-key"
    assert sent["project"] == "jambitopup-website"


async def test_pakasir_status_paid(gateways, upstream):
    upstream.on("GET", f"{PAKASIR}/transactiondetail", {
        "transaction": {"order_id": "JMB1", "amount": 50000, "status": "completed"}
    })

    result = await gateways.get("pakasir").check_status("JMB1", amount=50000)

    assert result.status == PaymentStatus.PAID
    assert result.amount_received == 50000
    params = upstream.calls_to(f"{PAKASIR}/transactiondetail")[0].url.params
    assert params["order_id"] == "JMB1"
    assert params["amount"] == "50000"


async def test_pakasir_status_not_found_is_unpaid(gateways, upstream):
    upstream.on("GET", f"{PAKASIR}/transactiondetail", {"message": "not found"})

    result = await gateways.get("pakasir").check_status("JMB1", amount=50000)

    assert result.status == PaymentStatus.UNPAID
    assert result.amount == 50000
    assert result.amount_received == 0


async def test_pakasir_status_requires_amount(gateways):
    with pytest.raises(ValidationFailed):
        await gateways.get("pakasir").check_status("JMB1")


async def test_settings_document_overrides_environment(gateways, upstream, store):
    await store.set("settings", "pakasir", {"apiKey": "from-store", "project": "store-project"})
    upstream.on("POST", f"{PAKASIR}/transactioncreate/qris", {"message": "nope"})

    await gateways.get("pakasir").create_payment(payment_request())

    sent = upstream.json_sent_to(f"{PAKASIR}/transactioncreate/qris")[0]
    assert sent["api_key"] == "from-store"
    assert sent["project"] == "store-project"


async def test_incomplete_settings_document_falls_back(gateways, upstream, store):
    await store.set("settings", "pakasir", {"apiKey": "from-store"})
    upstream.on("POST", f"{PAKASIR}/transactioncreate/qris", {"message": "nope"})

    await gateways.get("pakasir").create_payment(payment_request())

    sent = upstream.json_sent_to(f"{PAKASIR}/transactioncreate/qris")[0]
    assert sent["api_key"] == "pakasir-key"


# ============================================================
# Tokopay
# ============================================================

def test_tokopay_signatures():
    assert create_signature("M1", "R1", 5000, "S") == hashlib.md5(b"M1:R1:5000:S").hexdigest()
    assert status_signature("M1", "S", "R1") == hashlib.md5(b"M1SR1").hexdigest()


async def test_tokopay_create(gateways, upstream):
    upstream.on("POST", f"{TOKOPAY}/order", {
        "status": "Success",
        "data": {"no_pembayaran": "TP1", "total_bayar": 50500, "qr_link": "https://qr", "pay_url": "https://pay"},
    })

    result = await gateways.get("tokopay").create_payment(payment_request())

    assert result.success
    assert result.reference == "TP1"
    sent = upstream.json_sent_to(f"{TOKOPAY}/order")[0]
    assert sent["kode_channel"] == "QRGOPAY"
    assert sent["signature"] == create_signature("M123", "JMB20240115ABCDEFGHIJ", 50000, "toko-secret")


@pytest.mark.parametrize("vendor_status, expected", [
    ("Paid", PaymentStatus.PAID),
    ("Expired", PaymentStatus.EXPIRED),
    ("Unpaid", PaymentStatus.UNPAID),
])
async def test_tokopay_status_mapping(gateways, upstream, vendor_status, expected):
    upstream.on("GET", f"{TOKOPAY}/order", {
        "status": "Success",
        "data": {"status": vendor_status, "total_bayar": "50500", "trx_id": "T1"},
    })

    result = await gateways.get("tokopay").check_status("JMB1")

    assert result.status == expected
    assert result.amount == 50500.0
    params = upstream.calls_to(f"{TOKOPAY}/order")[0].url.params
    assert params["signature"] == status_signature("M123", "toko-secret", "JMB1")


# ============================================================
# Registry and fallback
# ============================================================

def test_unsupported_gateway_lists_supported(gateways):
    with pytest.raises(ValidationFailed) as exc:
        gateways.get("stripe")
    assert "pakasir" in exc.value.message
    assert gateways.get("PAKASIR").name == "pakasir"


async def test_fallback_uses_backup_once(gateways, upstream):
    upstream.on("POST", f"{PAKASIR}/transactioncreate/qris", {"message": "down"}, status=500)
    upstream.on("POST", f"{TOKOPAY}/order", {"status": "Success", "data": {"no_pembayaran": "TP1"}})

    result = await gateways.create_with_fallback("pakasir", "tokopay", payment_request())

    assert result.success
    assert result.provider == "tokopay"
    assert len(upstream.calls_to(f"{PAKASIR}/transactioncreate/qris")) == 1


async def test_fallback_reports_both_failures(gateways, upstream):
    upstream.on("POST", f"{PAKASIR}/transactioncreate/qris", {"message": "down"})
    upstream.on("POST", f"{TOKOPAY}/order", {"status": "Failed", "message": "bad merchant"})

    result = await gateways.create_with_fallback("pakasir", "tokopay", payment_request())

    assert not result.success
    assert result.message == "Both pakasir and tokopay failed: bad merchant"


async def test_unsupported_primary_falls_through_to_backup(gateways, upstream):
    upstream.on("POST", f"{TOKOPAY}/order", {"status": "Success", "data": {"no_pembayaran": "TP2"}})

    result = await gateways.create_with_fallback("stripe", "tokopay", payment_request())

    assert result.success
    assert result.reference == "TP2"


async def test_unsupported_primary_without_backup_raises(gateways):
    with pytest.raises(ValidationFailed):
        await gateways.create_with_fallback("stripe", None, payment_request())


# ============================================================
# PayPal
# ============================================================

async def test_paypal_create_returns_approve_link(gateways, upstream):
    upstream.on("POST", f"{PAYPAL}/v1/oauth2/token", {"access_token": "tok"})
    upstream.on("POST", f"{PAYPAL}/v2/checkout/orders", {
        "id": "PP-1",
        "status": "CREATED",
        "links": [{"rel": "self", "href": "x"}, {"rel": "approve", "href": "https://paypal.test/approve"}],
    })

    result = await gateways.get("paypal").create_payment(payment_request(amount=9.5))

    assert result.success
    assert result.reference == "PP-1"
    assert result.checkout_url == "https://paypal.test/approve"
    order = upstream.json_sent_to(f"{PAYPAL}/v2/checkout/orders")[0]
    assert order["purchase_units"][0]["amount"] == {"currency_code": "USD", "value": "9.50"}
    sent = upstream.calls_to(f"{PAYPAL}/v2/checkout/orders")[0]
    assert sent.headers["Authorization"] == "Bearer tok"


async def test_paypal_auth_failure(gateways, upstream):
    upstream.on("POST", f"{PAYPAL}/v1/oauth2/token", {"error": "invalid_client"}, status=401)

    result = await gateways.get("paypal").create_payment(payment_request(amount=9.5))

    assert not result.success
    assert "authentication failed" in result.message


@pytest.mark.parametrize("vendor_status,expected", [
    ("COMPLETED", PaymentStatus.PAID),
    ("VOIDED", PaymentStatus.EXPIRED),
    ("APPROVED", PaymentStatus.UNPAID),
])
async def test_paypal_status_mapping(gateways, upstream, vendor_status, expected):
    upstream.on("POST", f"{PAYPAL}/v1/oauth2/token", {"access_token": "tok"})
    upstream.on("GET", f"{PAYPAL}/v2/checkout/orders/PP-1", {
        "id": "PP-1",
        "status": vendor_status,
        "purchase_units": [{"amount": {"currency_code": "USD", "value": "9.50"}}],
    })

    result = await gateways.get("paypal").check_status("PP-1")

    assert result.status == expected
    assert result.amount == 9.5
    assert result.amount_received == (9.5 if expected == PaymentStatus.PAID else 0)
