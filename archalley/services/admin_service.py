"""Admin reporting — registration listing and payment environment classification.

PayHere sandbox and live payments land in the same tables. classify_payment()
tells them apart from fields the payment already carries (merchant id,
order id, gateway payment id, metadata and raw gateway response) so reports
can exclude test money without a schema change.
"""

import logging

from archalley.models.payment import CompetitionPayment
from archalley.models.registration import CompetitionRegistration

logger = logging.getLogger(__name__)

SANDBOX_MERCHANT_IDS = ("1232882", "1224208")

ENVIRONMENTS = ("production", "sandbox", "test")


def classify_payment(payment):
    """Classify a payment as production, sandbox or test.

    Returns a dict with environment, is_sandbox, is_test_data and the list of
    indicators that matched.
    """
    indicators = []
    is_sandbox = False
    is_test = False

    metadata = payment.metadata_ if isinstance(payment.metadata_, dict) else {}
    if metadata.get("testPayment") is True:
        indicators.append("metadata.testPayment=true")
        is_test = True
    if metadata.get("sandbox") is True:
        indicators.append("metadata.sandbox=true")
        is_sandbox = True
    if metadata.get("environment") in ("sandbox", "test"):
        indicators.append(f"metadata.environment={metadata['environment']}")
        is_sandbox = True

    merchant_id = (payment.merchant_id or "").upper()
    if "TEST" in merchant_id:
        indicators.append("merchantId contains TEST")
        is_test = True
    if "SANDBOX" in merchant_id:
        indicators.append("merchantId contains SANDBOX")
        is_sandbox = True
    if merchant_id in SANDBOX_MERCHANT_IDS:
        indicators.append(f"Sandbox merchant ID: {merchant_id}")
        is_sandbox = True

    order_id = (payment.order_id or "").upper()
    for marker in ("TEST", "DEMO"):
        if marker in order_id:
            indicators.append(f"orderId contains {marker}")
            is_test = True
    if "SANDBOX" in order_id:
        indicators.append("orderId contains SANDBOX")
        is_sandbox = True

    gateway_id = (payment.gateway_payment_id or "").upper()
    if gateway_id.startswith("PH-TEST-"):
        indicators.append("paymentId starts with PH-TEST-")
        is_test = True
    elif "TEST" in gateway_id:
        indicators.append("paymentId contains TEST")
        is_test = True

    response = payment.response_data if isinstance(payment.response_data, dict) else {}
    if "TEST" in (response.get("merchant_id") or "").upper():
        indicators.append("responseData.merchant_id contains TEST")
        is_test = True
    if response.get("sandbox") is True or response.get("mode") == "sandbox":
        indicators.append("responseData indicates sandbox mode")
        is_sandbox = True

    if is_test:
        environment = "test"
    elif is_sandbox:
        environment = "sandbox"
    else:
        environment = "production"

    return {
        "environment": environment,
        "is_sandbox": is_sandbox,
        "is_test_data": is_test,
        "indicators": indicators,
    }


def list_registrations(status=None, environment=None):
    """Registrations newest first, each with its payment and environment.

    Args:
        status: Optional registration status filter.
        environment: Optional production | sandbox | test filter. Registrations
            without a payment count as production.

    Raises:
        ValueError: Unknown status or environment.
    """
    if status and status not in CompetitionRegistration.STATUSES:
        raise ValueError(f"Unknown status: {status}")
    if environment and environment not in ENVIRONMENTS:
        raise ValueError(f"Unknown environment: {environment}")

    query = CompetitionRegistration.query
    if status:
        query = query.filter_by(status=status)
    registrations = query.order_by(CompetitionRegistration.created_at.desc()).all()

    results = []
    for registration in registrations:
        payment = registration.payment
        classification = (
            classify_payment(payment) if payment else {"environment": "production"}
        )
        if environment and classification["environment"] != environment:
            continue
        entry = registration.to_dict()
        entry["payment"] = _payment_summary(payment)
        entry["environment"] = classification["environment"]
        results.append(entry)

    return results


def _payment_summary(payment):
    if payment is None:
        return None
    metadata = payment.metadata_ or {}
    return {
        "id": payment.id,
        "orderId": payment.order_id,
        "status": payment.status,
        "amount": payment.amount,
        "currency": payment.currency,
        "paymentMethod": payment.payment_method,
        "bankSlipUrl": metadata.get("bankSlipUrl"),
        "completedAt": payment.completed_at.isoformat() if payment.completed_at else None,
    }


def payment_environment_stats():
    """Count and revenue of COMPLETED payments per environment."""
    stats = {env: {"count": 0, "revenue": 0.0} for env in ENVIRONMENTS}
    for payment in CompetitionPayment.query.filter_by(status="COMPLETED").all():
        bucket = stats[classify_payment(payment)["environment"]]
        bucket["count"] += 1
        bucket["revenue"] += payment.amount or 0
    return stats
