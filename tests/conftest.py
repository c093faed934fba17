# tests/conftest.py
import pytest

from printbridge.services.fulfillment_protocol import FulfillmentFailed
from printbridge.services.product_mapping import ProductMapping, ProductMappingEntry
from tests.factories import RecordingReporter, make_settings


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def reporter():
    return RecordingReporter()


@pytest.fixture
def mapping():
    return ProductMapping({
        "TEE-M": ProductMappingEntry(product_id=101, variant_id=1001),
        "Mug / 11oz": ProductMappingEntry(product_id=202, variant_id=2002),
    })


@pytest.fixture
def invalid_handler_result():
    return FulfillmentFailed(
        message="The fulfillment handler is invalid",
        error_code="INVALID_FULFILLMENT_HANDLER_ERROR",
        typename="InvalidFulfillmentHandlerError",
    )
