"""Tests for AppointmentStore, KeyValueStore and SelectionStore."""

from datetime import date, timedelta

from models.entities import (
    BlockMeta,
    BlockScope,
    RecurrenceFrequency,
    RecurrencePattern,
    ScheduleEventType,
    TimeSlotSelection,
)
from services.appointment_store import AppointmentStore


class TestStoreEvents:
    """Tests for mutation events."""

    def test_add_publishes_created(self, store, make_appointment):
        events = []
        store.subscribe(events.append)
        first, second = make_appointment(), make_appointment(start_hour=11)
        store.add([first, second])

        assert len(events) == 1
        assert events[0].type == ScheduleEventType.CREATED
        assert events[0].appointment_ids == [first.id, second.id]

    def test_set_publishes_updated_for_known_id(self, store, make_appointment):
        appointment = make_appointment()
        store.add([appointment])
        events = []
        store.subscribe(events.append)
        store.set(appointment)
        assert events[0].type == ScheduleEventType.UPDATED

    def test_remove_reports_only_present_ids(self, store, make_appointment):
        appointment = make_appointment()
        store.add([appointment])
        events = []
        store.subscribe(events.append)

        assert store.remove([appointment.id, "apt-missing"]) == [appointment.id]
        assert events[0].type == ScheduleEventType.DELETED
        assert events[0].appointment_ids == [appointment.id]
        assert store.remove(["apt-missing"]) == []
        assert len(events) == 1

    def test_unsubscribe(self, store, make_appointment):
        events = []
        unsubscribe = store.subscribe(events.append)
        unsubscribe()
        store.add([make_appointment()])
        assert events == []

    def test_failing_subscriber_does_not_stop_others(self, store, make_appointment):
        def broken(event):
            raise RuntimeError("listener crashed")

        events = []
        store.subscribe(broken)
        store.subscribe(events.append)
        store.add([make_appointment()])
        assert len(events) == 1


class TestStoreQueries:
    """Tests for lookups."""

    def test_in_series_sorted_by_start(self, store, make_appointment):
        late = make_appointment(start_hour=15, series_id="series-a")
        early = make_appointment(start_hour=9, series_id="series-a")
        store.add([late, early, make_appointment(start_hour=11)])
        assert [a.id for a in store.in_series("series-a")] == [early.id, late.id]

    def test_between(self, store, make_appointment, at):
        inside = make_appointment(start_hour=10)
        outside = make_appointment(start_hour=10, start=at(10, on=date(2025, 3, 11)))
        store.add([inside, outside])
        assert store.between(at(0), at(23, 59)) == [inside]


class TestStorePersistence:
    """Tests for write-through storage."""

    def test_reload_preserves_appointments(self, store, storage, make_appointment, make_block, client_ana):
        booking = make_appointment(
            client=client_ana,
            client_ref="cust_1",
            service_names=["Cut"],
            series_id="series-a",
            recurrence=RecurrencePattern(
                frequency=RecurrenceFrequency.MONTHLY,
                end_date=date(2025, 12, 1)
            )
        )
        block = make_block(reason="Training")
        block.block_meta = BlockMeta(reason="Training", scope=BlockScope.FULL_DAY)
        store.add([booking, block])

        reloaded = AppointmentStore(storage)
        assert reloaded.load() == 2
        assert reloaded.get(booking.id) == booking
        assert reloaded.get(block.id).block_meta.scope == BlockScope.FULL_DAY

    def test_corrupt_record_skipped(self, storage):
        storage.set(AppointmentStore.STORAGE_KEY, [{"id": "apt-bad", "start": "not a date"}])
        assert AppointmentStore(storage).load() == 0


class TestSelectionStore:
    """Tests for the pending time-slot selection."""

    def selection(self, at):
        return TimeSlotSelection(
            start=at(13), end=at(13, 15), resource_id="staff_001",
            date_key="2025-03-10", time_display="1:00 PM"
        )

    def test_restore_same_date(self, selection_store, at):
        selection_store.save(self.selection(at))
        restored = selection_store.restore("2025-03-10")
        assert restored.start == at(13)
        assert restored.resource_id == "staff_001"
        assert restored.time_display == "1:00 PM"

    def test_other_date_discarded(self, selection_store, storage, at):
        selection_store.save(self.selection(at))
        assert selection_store.restore("2025-03-11") is None
        assert selection_store.STORAGE_KEY not in storage

    def test_expires_after_ttl(self, selection_store, clock, at):
        selection_store.save(self.selection(at))
        clock.advance(14)
        assert selection_store.restore("2025-03-10") is not None
        clock.advance(2)
        assert selection_store.restore("2025-03-10") is None

    def test_clear(self, selection_store, at):
        selection_store.save(self.selection(at))
        selection_store.clear()
        assert selection_store.restore("2025-03-10") is None

    def test_persisted_at_stamped(self, selection_store, clock, at):
        saved = selection_store.save(self.selection(at))
        assert saved.persisted_at == clock.now
        assert (saved.end - saved.start) == timedelta(minutes=15)
