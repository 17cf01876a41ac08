# backend/conftest.py
from datetime import timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

BUYER_ID = 100
SELLER_ID = 200
ARBITRATOR_ID = 300
OUTSIDER_ID = 999


def _user(pk, email, **extra):
    from accounts.models import User
    return User.objects.create_user(email, "not-a-real-password", id=pk, **extra)


@pytest.fixture(autouse=True)
def notifications(settings):
    """Record notifications instead of queueing e-mail/SMS."""
    from disputes.tests.fakes import RecordingDispatcher

    settings.DISPUTE_NOTIFICATION_DISPATCHER = "disputes.tests.fakes.RecordingDispatcher"
    RecordingDispatcher.sent.clear()
    yield RecordingDispatcher.sent
    RecordingDispatcher.sent.clear()


@pytest.fixture
def buyer(db):
    return _user(BUYER_ID, "buyer@example.com", first_name="Bea", last_name="Buyer", phone_number="+15550000100")


@pytest.fixture
def seller(db):
    return _user(SELLER_ID, "seller@example.com", first_name="Sam", last_name="Seller")


@pytest.fixture
def arbitrator(db):
    return _user(ARBITRATOR_ID, "arbitrator@example.com", first_name="Ari", is_arbitrator=True)


@pytest.fixture
def outsider(db):
    return _user(OUTSIDER_ID, "outsider@example.com")


@pytest.fixture
def staff_user(db):
    return _user(400, "support@example.com", is_staff=True)


@pytest.fixture
def make_order(buyer, seller):
    from orders.models import Order, OrderStatus

    def _make(status=OrderStatus.COMPLETED, amount="100.00", **kwargs):
        kwargs.setdefault("buyer", buyer)
        kwargs.setdefault("seller", seller)
        return Order.objects.create(title="Vintage desk lamp", amount=Decimal(amount), status=status, **kwargs)

    return _make


@pytest.fixture
def order(make_order):
    return make_order()


@pytest.fixture
def dispute(order, buyer, seller):
    from disputes.models import DisputeType
    from disputes.services.cases import submit_dispute

    return submit_dispute(order.pk, buyer.pk, DisputeType.QUALITY_ISSUE, "The lamp arrived with a cracked base.")


@pytest.fixture
def negotiating_dispute(dispute, buyer):
    from disputes.services.cases import begin_negotiation

    begin_negotiation(dispute.pk, buyer.pk)
    dispute.refresh_from_db()
    return dispute


@pytest.fixture
def pending_arbitration_dispute(negotiating_dispute, buyer):
    from disputes.services.cases import escalate_to_arbitration

    escalate_to_arbitration(negotiating_dispute.pk, buyer.pk)
    negotiating_dispute.refresh_from_db()
    return negotiating_dispute


@pytest.fixture
def arbitrating_dispute(pending_arbitration_dispute, arbitrator):
    from disputes.services.arbitration import assign_arbitrator

    return assign_arbitrator(pending_arbitration_dispute.pk, arbitrator.pk)


@pytest.fixture
def past():
    return timezone.now() - timedelta(hours=1)
