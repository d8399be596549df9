# tests/test_offer_session_store.py
from unittest.mock import MagicMock

from storefront.services.offer_session_store import OfferSessionStore


def test_completed_offer_ids_reads_set():
    client = MagicMock()
    client.smembers.return_value = {"cs-1", "up-1"}
    store = OfferSessionStore(client=client)

    assert store.completed_offer_ids("guest:abc") == {"cs-1", "up-1"}
    client.smembers.assert_called_once_with("checkout:guest:abc:completed_offers")


def test_mark_completed_adds_and_refreshes_ttl():
    client = MagicMock()
    pipe = client.pipeline.return_value
    store = OfferSessionStore(client=client, ttl=120)

    store.mark_completed("user:7", "cs-1")

    pipe.sadd.assert_called_once_with("checkout:user:7:completed_offers", "cs-1")
    pipe.expire.assert_called_once_with("checkout:user:7:completed_offers", 120)
    pipe.execute.assert_called_once()
