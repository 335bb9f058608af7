import asyncio

import pytest

from conftest import FakeExtractor, FakeNotifier, scraped, seed_product
from price_tracker.orchestrator import RefreshCoordinator, RefreshError
from price_tracker.orchestrator.coordinator import ProductStatus, chunked
from price_tracker.scoring import NotificationType
from price_tracker.storage import Database

A = "https://www.amazon.com/dp/A"
B = "https://www.amazon.com/dp/B"
C = "https://www.amazon.com/dp/C"


def run(coordinator):
    return asyncio.run(coordinator.run())


def test_price_rise_updates_history_without_notification(db):
    seed_product(db, A, [100, 90], emails=["a@example.com"])
    notifier = FakeNotifier()
    coordinator = RefreshCoordinator(db, FakeExtractor({A: scraped(A, 95)}), notifier)

    summary = run(coordinator)

    product = db.get_product(A)
    assert [p.price for p in product.price_history] == [100, 90, 95]
    assert product.lowest_price == 90
    assert product.highest_price == 100
    assert product.average_price == 95
    assert product.current_price == 95
    assert summary.outcomes[0].notification == NotificationType.NONE
    assert notifier.sent == []
    assert summary.succeeded == 1
    assert summary.failed == 0


def test_new_lowest_price_notifies_subscriber_once(db):
    seed_product(db, A, [100], emails=["alice@example.com"])
    notifier = FakeNotifier()
    coordinator = RefreshCoordinator(db, FakeExtractor({A: scraped(A, 80)}), notifier)

    summary = run(coordinator)

    assert summary.outcomes[0].notification == NotificationType.LOWEST_EVER
    assert len(notifier.sent) == 1
    subject, recipients = notifier.sent[0]
    assert subject.startswith("Lowest Price Alert")
    assert recipients == ["alice@example.com"]
    assert summary.notifications_sent == 1


def test_all_subscribers_receive_one_batched_send(db):
    seed_product(db, A, [100], emails=["a@example.com", "b@example.com", "c@example.com"])
    notifier = FakeNotifier()
    coordinator = RefreshCoordinator(db, FakeExtractor({A: scraped(A, 80)}), notifier)

    run(coordinator)

    assert notifier.sent == [(notifier.sent[0][0], ["a@example.com", "b@example.com", "c@example.com"])]


def test_extraction_failure_leaves_product_untouched(db):
    before = seed_product(db, A, [100], emails=["a@example.com"])
    notifier = FakeNotifier()
    coordinator = RefreshCoordinator(db, FakeExtractor({A: None}), notifier)

    summary = run(coordinator)

    assert db.get_product(A) == before
    assert notifier.sent == []
    assert summary.processed == 1
    assert summary.failed == 1
    assert summary.outcomes[0].status == ProductStatus.EXTRACT_FAILED


def test_failure_is_isolated_within_group(db):
    for url in (A, B, C):
        seed_product(db, url, [100], emails=[f"{url[-1].lower()}@example.com"])
    extractor = FakeExtractor(
        {A: scraped(A, 50), B: RuntimeError("connection reset"), C: scraped(C, 60)}
    )
    notifier = FakeNotifier()

    summary = run(RefreshCoordinator(db, extractor, notifier, chunk_size=3))

    assert db.get_product(A).current_price == 50
    assert db.get_product(B).current_price == 100
    assert db.get_product(C).current_price == 60
    assert sorted(r for _, recipients in notifier.sent for r in recipients) == [
        "a@example.com",
        "c@example.com",
    ]
    assert summary.succeeded == 2
    assert summary.failed == 1
    assert {o.url: o.status for o in summary.outcomes}[B] == ProductStatus.EXTRACT_FAILED


def test_unchanged_price_is_idempotent(db):
    seed_product(db, A, [100], emails=["a@example.com"])
    notifier = FakeNotifier()
    coordinator = RefreshCoordinator(db, FakeExtractor({A: scraped(A, 80)}), notifier)

    run(coordinator)
    first = db.get_product(A)
    second_summary = run(coordinator)
    second = db.get_product(A)

    assert second_summary.outcomes[0].notification == NotificationType.NONE
    assert len(notifier.sent) == 1
    assert len(second.price_history) == len(first.price_history) + 1
    assert second.lowest_price == first.lowest_price == 80
    assert second.highest_price == first.highest_price == 100
    assert second.average_price == pytest.approx(86.67)


def _final_state(chunk_size):
    db = Database("sqlite:///:memory:")
    urls = [f"https://www.amazon.com/dp/P{i}" for i in range(7)]
    results = {}
    for i, url in enumerate(urls):
        seed_product(db, url, [100, 90 + i], emails=[f"user{i}@example.com"])
        results[url] = scraped(url, 85 + 2 * i) if i != 3 else None
    notifier = FakeNotifier()

    run(RefreshCoordinator(db, FakeExtractor(results), notifier, chunk_size=chunk_size))

    state = {
        p.url: (
            [h.price for h in p.price_history],
            p.lowest_price,
            p.highest_price,
            p.average_price,
        )
        for p in db.get_all_products()
    }
    sends = sorted((subject, tuple(recipients)) for subject, recipients in notifier.sent)
    db.close()
    return state, sends


def test_chunk_size_does_not_change_outcome():
    assert _final_state(chunk_size=3) == _final_state(chunk_size=7)
    assert _final_state(chunk_size=1) == _final_state(chunk_size=7)


def test_concurrency_is_bounded_by_chunk_size(db):
    urls = [f"https://www.amazon.com/dp/P{i}" for i in range(7)]
    for url in urls:
        seed_product(db, url, [100])
    extractor = FakeExtractor({url: scraped(url, 99) for url in urls}, delay=0.01)

    summary = run(RefreshCoordinator(db, extractor, FakeNotifier(), chunk_size=3))

    assert extractor.max_in_flight == 3
    assert extractor.calls == urls
    assert summary.processed == 7
    assert [o.url for o in summary.outcomes] == urls


def test_load_failure_aborts_run():
    class BrokenStore(Database):
        def get_all_products(self):
            raise ConnectionError("database unreachable")

    coordinator = RefreshCoordinator(
        BrokenStore("sqlite:///:memory:"), FakeExtractor({}), FakeNotifier()
    )

    with pytest.raises(RefreshError, match="Failed to get all products: database unreachable"):
        run(coordinator)


def test_missing_product_list_aborts_run():
    class EmptyStore(Database):
        def get_all_products(self):
            return None

    coordinator = RefreshCoordinator(
        EmptyStore("sqlite:///:memory:"), FakeExtractor({}), FakeNotifier()
    )

    with pytest.raises(RefreshError, match="Failed to get all products"):
        run(coordinator)


@pytest.mark.parametrize("result", [42, {"https://www.amazon.com/dp/A": 1}, "ab", [A]])
def test_malformed_product_list_aborts_run(result):
    class MalformedStore(Database):
        def get_all_products(self):
            return result

    coordinator = RefreshCoordinator(
        MalformedStore("sqlite:///:memory:"), FakeExtractor({}), FakeNotifier()
    )

    with pytest.raises(RefreshError, match="Failed to get all products"):
        run(coordinator)


def test_error_after_persist_is_not_reported_as_extract_failure(db):
    seed_product(db, A, [100], emails=["a@example.com"])
    coordinator = RefreshCoordinator(db, FakeExtractor({A: scraped(A, 80)}), FakeNotifier())

    def broken_classify(previous, current):
        raise RuntimeError("classifier exploded")

    coordinator.classifier.classify = broken_classify

    summary = run(coordinator)

    assert summary.outcomes[0].status == ProductStatus.UNEXPECTED_ERROR
    assert summary.outcomes[0].error == "classifier exploded"
    assert summary.failed == 1
    assert db.get_product(A).current_price == 80


def test_summary_reports_status_per_url(db):
    seed_product(db, A, [100], emails=["a@example.com"])
    seed_product(db, B, [100])

    summary = run(
        RefreshCoordinator(db, FakeExtractor({A: scraped(A, 80), B: None}), FakeNotifier())
    )

    assert summary.statuses == {
        A: ProductStatus.NOTIFIED,
        B: ProductStatus.EXTRACT_FAILED,
    }
    outcomes = summary.to_dict()["outcomes"]
    assert outcomes[A] == {"status": "notified", "notification": "lowest_ever", "error": None}
    assert outcomes[B]["status"] == "extract_failed"
    assert outcomes[B]["notification"] == "none"


def test_empty_store_is_a_successful_run(db):
    summary = run(RefreshCoordinator(db, FakeExtractor({}), FakeNotifier()))

    assert summary.processed == 0
    assert summary.to_dict()["failed"] == 0


def test_upsert_failure_is_recorded_and_skips_notification():
    class FlakyStore(Database):
        def upsert_product(self, url, record):
            if url == B:
                raise RuntimeError("disk full")
            return super().upsert_product(url, record)

    store = FlakyStore("sqlite:///:memory:")
    seed_product(store, A, [100], emails=["a@example.com"])
    # Seed B through the base implementation
    Database.upsert_product(store, B, store.get_product(A).model_copy(update={"url": B}))
    store.add_subscriber(B, "b@example.com")
    notifier = FakeNotifier()

    summary = run(
        RefreshCoordinator(store, FakeExtractor({A: scraped(A, 70), B: scraped(B, 70)}), notifier)
    )

    statuses = {o.url: o.status for o in summary.outcomes}
    assert statuses[A] == ProductStatus.NOTIFIED
    assert statuses[B] == ProductStatus.PERSIST_FAILED
    assert [recipients for _, recipients in notifier.sent] == [["a@example.com"]]


def test_send_failure_keeps_store_update(db):
    seed_product(db, A, [100], emails=["a@example.com"])

    summary = run(
        RefreshCoordinator(db, FakeExtractor({A: scraped(A, 80)}), FakeNotifier(succeed=False))
    )

    assert summary.outcomes[0].status == ProductStatus.NOTIFY_FAILED
    assert summary.failed == 1
    assert summary.notifications_sent == 0
    assert db.get_product(A).current_price == 80


def test_classifies_but_skips_dispatch_without_subscribers(db):
    seed_product(db, A, [100])
    notifier = FakeNotifier()

    summary = run(RefreshCoordinator(db, FakeExtractor({A: scraped(A, 80)}), notifier))

    assert summary.outcomes[0].notification == NotificationType.LOWEST_EVER
    assert summary.outcomes[0].status == ProductStatus.SKIPPED_NOTIFY
    assert notifier.sent == []


def test_refresh_preserves_subscribers_and_identity(db):
    seed_product(db, A, [100], emails=["a@example.com"])
    moved = scraped(A, 90).model_copy(update={"url": "https://www.amazon.com/other"})

    run(RefreshCoordinator(db, FakeExtractor({A: moved}), FakeNotifier()))

    products = db.get_all_products()
    assert [p.url for p in products] == [A]
    assert products[0].subscriber_emails == ["a@example.com"]


def test_invalid_chunk_size(db):
    with pytest.raises(ValueError):
        RefreshCoordinator(db, FakeExtractor({}), FakeNotifier(), chunk_size=0)


def test_chunked_preserves_order():
    assert chunked([1, 2, 3, 4, 5], 2) == [[1, 2], [3, 4], [5]]
    assert chunked([], 3) == []


def test_track_new_product_sends_welcome(db):
    notifier = FakeNotifier()
    coordinator = RefreshCoordinator(db, FakeExtractor({A: scraped(A, 25)}), notifier)

    product = asyncio.run(coordinator.track(A, "new@example.com", target_price=20))

    assert [p.price for p in product.price_history] == [25]
    assert product.lowest_price == product.highest_price == product.average_price == 25
    assert product.users[0].target_price == 20
    assert len(notifier.sent) == 1
    assert notifier.sent[0][0].startswith("Welcome to Price Tracking")

    asyncio.run(coordinator.track(A, "new@example.com"))
    assert len(notifier.sent) == 1


def test_track_unreachable_product(db):
    coordinator = RefreshCoordinator(db, FakeExtractor({A: None}), FakeNotifier())

    with pytest.raises(ValueError):
        asyncio.run(coordinator.track(A, "new@example.com"))
    assert db.get_product(A) is None
