# tests/test_paypal_carrier_mapper.py
import logging
import os

import pytest

from storefront.services.paypal_carrier_mapper import PaypalCarrierMapper
from storefront.utils.settings import PAYPAL_CARRIERS_PATH


@pytest.fixture
def mapper():
    return PaypalCarrierMapper()


def test_bundled_config_exists():
    assert os.path.exists(PAYPAL_CARRIERS_PATH)


def test_exact_match(mapper):
    assert mapper.lookup("UPS") == "UPS"
    assert mapper.lookup("USPS") == "USPS"
    assert mapper.lookup("DHL") == "DHL"


def test_case_insensitive_match(mapper):
    assert mapper.lookup("ups") == "UPS"
    assert mapper.lookup("fedex") == "FEDEX"
    assert mapper.lookup("FEDEX") == "FEDEX"


def test_names_with_spaces_and_whitespace(mapper):
    assert mapper.lookup("Royal Mail") == "ROYAL_MAIL"
    assert mapper.lookup("  UPS  ") == "UPS"
    assert mapper.lookup("\tCanada Post\n") == "CA_CANADA_POST"


def test_full_names_and_regional_variants(mapper):
    assert mapper.lookup("United Parcel Service") == "UPS"
    assert mapper.lookup("Federal Express") == "FEDEX"
    assert mapper.lookup("UPS UK") == "UK_UPS"
    assert mapper.lookup("FedEx Germany") == "DE_FEDEX"
    assert mapper.lookup("FedEx France") == "FR_FEDEX"
    assert mapper.lookup("OnTrac") == "ONTRAC"


def test_unknown_blank_and_non_string(mapper):
    assert mapper.lookup("My Custom Carrier") is None
    assert mapper.lookup("Pošta") is None
    assert mapper.lookup(None) is None
    assert mapper.lookup("") is None
    assert mapper.lookup("   ") is None
    assert mapper.lookup(123) is None


def test_missing_config_logs_error(tmp_path, caplog):
    with caplog.at_level(logging.ERROR):
        mapper = PaypalCarrierMapper(path=str(tmp_path / "missing.json"))

    assert mapper.lookup("UPS") is None
    assert "config not found" in caplog.text


def test_invalid_format_logs_error(tmp_path, caplog):
    path = tmp_path / "carriers.json"
    path.write_text('"invalid"')

    with caplog.at_level(logging.ERROR):
        mapper = PaypalCarrierMapper(path=str(path))

    assert mapper.lookup("UPS") is None
    assert "Invalid PayPal carriers config format" in caplog.text


def test_unparseable_config_logs_error(tmp_path, caplog):
    path = tmp_path / "carriers.json"
    path.write_text("{not json")

    with caplog.at_level(logging.ERROR):
        mapper = PaypalCarrierMapper(path=str(path))

    assert mapper.carrier_mapping == {}
    assert "Failed to load PayPal carriers config" in caplog.text
