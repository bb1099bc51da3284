import pytest

from plantops.models import CustomerOrder
from plantops.services import customer_order_service, settings_service
from plantops.services.scenario_resolver import Scenario
from plantops.validation import ValidationError


def test_lot_size_falls_back_to_config(db_session):
    assert settings_service.get_setting(settings_service.LOT_SIZE_THRESHOLD) is None
    assert settings_service.get_lot_size_threshold() == 3


def test_ensure_defaults_is_idempotent(db_session):
    settings_service.ensure_defaults()
    settings_service.set_lot_size_threshold(8)
    settings_service.ensure_defaults()
    assert settings_service.get_lot_size_threshold() == 8
    assert len(settings_service.list_settings()) == 1


@pytest.mark.parametrize("value", [0, -2, "abc", "2.5", True])
def test_lot_size_must_be_positive_integer(db_session, value):
    with pytest.raises(ValidationError):
        settings_service.set_lot_size_threshold(value)


def test_lot_size_change_applies_to_next_classification_only(factory):
    settings_service.set_lot_size_threshold(10)
    first = customer_order_service.create_customer_order(lines=[{"item_id": 1, "quantity": 4}])
    first = customer_order_service.confirm(first.id)
    assert first.scenario == Scenario.DIRECT_FULFILLMENT.value

    settings_service.set_lot_size_threshold(2)

    second = customer_order_service.create_customer_order(lines=[{"item_id": 1, "quantity": 4}])
    second = customer_order_service.confirm(second.id)
    assert second.scenario == Scenario.DIRECT_PRODUCTION.value
    # no retroactive reclassification
    assert factory.get(CustomerOrder, first.id).scenario == Scenario.DIRECT_FULFILLMENT.value
    # but a live re-evaluation sees the new value
    assert customer_order_service.current_scenario(first.id) == Scenario.DIRECT_PRODUCTION
