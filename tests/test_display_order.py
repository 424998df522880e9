import threading

from sqlalchemy import create_engine
from sqlalchemy import event as sqla_event
from sqlalchemy.orm import sessionmaker

from app.models import Base
from app.models.event import EventImage
from app.services.content_store import ContentStore


def test_sequential_allocation_starts_at_zero(store, event):
    orders = [store.next_image_display_order(event.EventID) for _ in range(5)]
    assert orders == [0, 1, 2, 3, 4]


def test_counters_are_per_event(store, event):
    other = store.create_event("Other", "other-event")
    assert store.next_image_display_order(event.EventID) == 0
    assert store.next_image_display_order(other.EventID) == 0
    assert store.next_image_display_order(event.EventID) == 1


def test_first_allocation_skips_existing_images(store, event, db_session):
    for order in (0, 4):
        db_session.add(
            EventImage(
                EventID=event.EventID,
                ImageUrlSmall="s",
                ImageUrlMedium="m",
                ImageUrlLarge="l",
                DisplayOrder=order,
            )
        )
    db_session.commit()
    assert store.next_image_display_order(event.EventID) == 5
    assert store.next_image_display_order(event.EventID) == 6


def test_concurrent_allocations_never_collide(tmp_path):
    # File-backed so each thread gets its own connection
    engine = create_engine(
        f"sqlite:///{tmp_path / 'orders.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
    )

    # Writers queue on the busy timeout instead of failing a lock upgrade
    @sqla_event.listens_for(engine, "connect")
    def _no_implicit_begin(dbapi_conn, _record):
        dbapi_conn.isolation_level = None

    @sqla_event.listens_for(engine, "begin")
    def _begin_immediate(conn):
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    Base.metadata.create_all(bind=engine)
    Session = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = Session()
    try:
        seed = ContentStore(setup)
        event_id = seed.create_event("Busy", "busy-event").EventID
        assert seed.next_image_display_order(event_id) == 0
    finally:
        setup.close()

    allocated = []
    failures = []
    lock = threading.Lock()

    def worker():
        session = Session()
        try:
            store = ContentStore(session)
            for _ in range(10):
                value = store.next_image_display_order(event_id)
                with lock:
                    allocated.append(value)
        except Exception as exc:  # surfaced by the assertion below
            failures.append(exc)
        finally:
            session.close()

    threads = [threading.Thread(target=worker) for _ in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    engine.dispose()

    assert failures == []
    assert sorted(allocated) == list(range(1, 41))
