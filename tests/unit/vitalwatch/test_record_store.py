"""
Tests for the concurrent patient record store.

Covers:
- Append validation and implicit patient creation
- Inclusive, timestamp-ordered range queries (property-based)
- Snapshot semantics of get_patient / all_patients
- Concurrent appends to the same and to different subjects
"""

import threading

import pytest
from hypothesis import given
from hypothesis import strategies as st

from vitalwatch.domain.errors import InvalidCategory
from vitalwatch.domain.models import MAX_TIMESTAMP, MIN_TIMESTAMP, VitalCategory
from vitalwatch.services.record_store import Patient, PatientRecordStore

BASE_TS = 1624376789050


@pytest.fixture
def store() -> PatientRecordStore:
    return PatientRecordStore()


class TestAppend:
    def test_creates_patient_on_first_observation(self, store: PatientRecordStore) -> None:
        assert 3 not in store

        store.append(3, "HeartRate", 150.0, BASE_TS)

        assert 3 in store
        assert len(store) == 1

    def test_adds_to_existing_patient(self, store: PatientRecordStore) -> None:
        store.append(4, "HeartRate", 120.0, BASE_TS)
        store.append(4, "HeartRate", 130.0, BASE_TS + 1)

        assert len(store) == 1
        assert len(store.query(4, BASE_TS - 10, BASE_TS + 10)) == 2

    def test_returns_the_stored_observation(self, store: PatientRecordStore) -> None:
        observation = store.append(1, VitalCategory.ECG, 0.4, BASE_TS)

        assert observation.category is VitalCategory.ECG
        assert observation.value == 0.4
        assert store.query(1, BASE_TS, BASE_TS) == [observation]

    @pytest.mark.parametrize("category", ["", None, "Pulse", "heartrate", " HeartRate"])
    def test_rejects_unrecognized_category(
        self, store: PatientRecordStore, category: str | None
    ) -> None:
        with pytest.raises(InvalidCategory):
            store.append(20, category, 310.0, BASE_TS)  # type: ignore[arg-type]

        assert 20 not in store

    def test_store_usable_after_rejection(self, store: PatientRecordStore) -> None:
        with pytest.raises(InvalidCategory):
            store.append(1, "Bogus", 1.0, BASE_TS)

        store.append(1, "HeartRate", 72.0, BASE_TS)
        assert store.observation_count() == 1

    def test_registers_patient_under_validated_subject_id(
        self, store: PatientRecordStore
    ) -> None:
        observation = store.append("1", "HeartRate", 80.0, BASE_TS)  # type: ignore[arg-type]

        assert observation.subject_id == 1
        assert store.subject_ids() == [1]
        assert store.history(1) == [observation]

    def test_failed_validation_leaves_store_unchanged(self, store: PatientRecordStore) -> None:
        with pytest.raises(ValueError):
            store.append(7, "HeartRate", 80.0, MAX_TIMESTAMP + 1)

        assert store.subject_ids() == []
        assert store.observation_count() == 0

    def test_accepts_negative_values(self, store: PatientRecordStore) -> None:
        store.append(17, "HeartRate", -270.0, BASE_TS)
        store.append(17, "BloodPressure", -280.0, BASE_TS + 1)

        values = [o.value for o in store.query(17, BASE_TS, BASE_TS + 10)]
        assert values == [-270.0, -280.0]

    def test_keeps_duplicates(self, store: PatientRecordStore) -> None:
        store.append(19, "HeartRate", 300.0, BASE_TS)
        store.append(19, "HeartRate", 300.0, BASE_TS)

        assert len(store.query(19, BASE_TS, BASE_TS + 10)) == 2

    def test_accepts_boundary_timestamps(self, store: PatientRecordStore) -> None:
        store.append(22, "HeartRate", 340.0, MIN_TIMESTAMP)
        store.append(22, "BloodPressure", 350.0, MAX_TIMESTAMP)

        records = store.query(22, MIN_TIMESTAMP, MAX_TIMESTAMP)
        assert [o.timestamp for o in records] == [MIN_TIMESTAMP, MAX_TIMESTAMP]

    def test_rejects_timestamp_beyond_int64(self, store: PatientRecordStore) -> None:
        with pytest.raises(ValueError):
            store.append(1, "HeartRate", 60.0, MAX_TIMESTAMP + 1)


class TestQuery:
    def test_unknown_subject_returns_empty(self, store: PatientRecordStore) -> None:
        store.append(21, "HeartRate", 320.0, BASE_TS)
        assert store.query(999, BASE_TS - 10, BASE_TS + 10) == []

    def test_bounds_are_inclusive(self, store: PatientRecordStore) -> None:
        store.append(8, "HeartRate", 150.0, BASE_TS)
        store.append(8, "BloodPressure", 160.0, BASE_TS + 5)
        store.append(8, "HeartRate", 170.0, BASE_TS + 10)

        assert len(store.query(8, BASE_TS, BASE_TS + 10)) == 3
        assert [o.value for o in store.query(8, BASE_TS, BASE_TS + 4)] == [150.0]
        assert [o.value for o in store.query(8, BASE_TS + 6, BASE_TS + 10)] == [170.0]

    def test_range_outside_data_is_empty(self, store: PatientRecordStore) -> None:
        store.append(14, "HeartRate", 240.0, BASE_TS)

        assert store.query(14, BASE_TS + 10, BASE_TS + 20) == []
        assert store.query(14, BASE_TS - 10, BASE_TS - 1) == []

    def test_inverted_range_is_empty(self, store: PatientRecordStore) -> None:
        store.append(1, "HeartRate", 80.0, BASE_TS)
        assert store.query(1, BASE_TS + 1, BASE_TS - 1) == []

    def test_zero_timestamp(self, store: PatientRecordStore) -> None:
        store.append(18, "HeartRate", 290.0, 0)

        records = store.query(18, 0, 1)
        assert len(records) == 1
        assert records[0].value == 290.0

    def test_out_of_order_ingestion_is_sorted(self, store: PatientRecordStore) -> None:
        for ts in (30, 10, 20, 0):
            store.append(1, "HeartRate", float(ts), ts)

        assert [o.timestamp for o in store.query(1, 0, 30)] == [0, 10, 20, 30]

    def test_equal_timestamps_keep_arrival_order(self, store: PatientRecordStore) -> None:
        store.append(1, "Systolic", 185.0, BASE_TS)
        store.append(1, "Diastolic", 125.0, BASE_TS)

        categories = [o.category for o in store.query(1, BASE_TS, BASE_TS)]
        assert categories == [VitalCategory.SYSTOLIC, VitalCategory.DIASTOLIC]

    @given(
        timestamps=st.lists(st.integers(min_value=-1000, max_value=1000), max_size=40),
        start=st.integers(min_value=-1100, max_value=1100),
        end=st.integers(min_value=-1100, max_value=1100),
    )
    def test_query_returns_exactly_the_range_in_order(
        self, timestamps: list[int], start: int, end: int
    ) -> None:
        store = PatientRecordStore()
        for ts in timestamps:
            store.append(7, "Temperature", 36.6, ts)

        result = [o.timestamp for o in store.query(7, start, end)]

        assert result == sorted(ts for ts in timestamps if start <= ts <= end)

    @given(timestamps=st.lists(st.integers(min_value=MIN_TIMESTAMP, max_value=MAX_TIMESTAMP)))
    def test_point_query_finds_every_observation(self, timestamps: list[int]) -> None:
        store = PatientRecordStore()
        appended = [store.append(1, "ECG", 0.5, ts) for ts in timestamps]

        for observation in appended:
            assert observation in store.query(1, observation.timestamp, observation.timestamp)


class TestPatients:
    def test_get_patient_unknown_is_none(self, store: PatientRecordStore) -> None:
        assert store.get_patient(42) is None

    def test_get_patient_is_a_snapshot(self, store: PatientRecordStore) -> None:
        store.append(1, "HeartRate", 70.0, BASE_TS)
        patient = store.get_patient(1)
        store.append(1, "HeartRate", 75.0, BASE_TS + 1)

        assert patient is not None
        assert len(patient) == 1
        assert len(store.history(1)) == 2

    def test_all_patients_snapshot(self, store: PatientRecordStore) -> None:
        store.append(2, "HeartRate", 140.0, BASE_TS)
        store.append(1, "HeartRate", 110.0, BASE_TS)

        patients = store.all_patients()
        store.append(3, "HeartRate", 90.0, BASE_TS)

        assert [p.subject_id for p in patients] == [1, 2]
        assert len(store) == 3

    def test_add_patient_is_put_if_absent(self, store: PatientRecordStore) -> None:
        store.append(5, "HeartRate", 60.0, BASE_TS)

        assert store.add_patient(Patient(5)) is False
        assert store.add_patient(Patient(6)) is True
        assert len(store.history(5)) == 1
        assert store.subject_ids() == [5, 6]

    def test_patient_latest_by_category(self) -> None:
        patient = Patient(1)
        store = PatientRecordStore()
        for ts, value in enumerate([110.0, 122.0, 135.0, 141.0]):
            patient.add_observation(store.append(1, "Systolic", value, ts))
        patient.add_observation(store.append(1, "Diastolic", 80.0, 10))

        latest = patient.latest(VitalCategory.SYSTOLIC, 3)
        assert [o.value for o in latest] == [122.0, 135.0, 141.0]
        assert patient.latest(VitalCategory.ECG, 3) == []

    def test_patient_rejects_foreign_observation(self, store: PatientRecordStore) -> None:
        observation = store.append(1, "HeartRate", 60.0, BASE_TS)
        with pytest.raises(ValueError, match="added to patient 2"):
            Patient(2).add_observation(observation)

    def test_observation_count_and_clear(self, store: PatientRecordStore) -> None:
        for subject_id in range(3):
            store.append(subject_id, "HeartRate", 80.0, BASE_TS)
            store.append(subject_id, "HeartRate", 81.0, BASE_TS + 1)

        assert store.observation_count() == 6

        store.clear()
        assert len(store) == 0
        assert store.observation_count() == 0


class TestConcurrency:
    def test_concurrent_appends_same_subject_lose_nothing(
        self, store: PatientRecordStore
    ) -> None:
        barrier = threading.Barrier(2)

        def add(count: int, offset: int) -> None:
            barrier.wait()
            for i in range(count):
                store.append(16, "HeartRate", 260.0 + i, BASE_TS + offset + i)

        threads = [
            threading.Thread(target=add, args=(300, 0)),
            threading.Thread(target=add, args=(200, 1000)),
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        records = store.history(16)
        assert len(records) == 500
        assert [o.timestamp for o in records] == sorted(o.timestamp for o in records)

    def test_concurrent_appends_many_subjects(self, store: PatientRecordStore) -> None:
        def add(subject_id: int) -> None:
            for i in range(50):
                store.append(subject_id, "Saturation", 97.0, BASE_TS + i)

        threads = [threading.Thread(target=add, args=(sid,)) for sid in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store) == 8
        assert store.observation_count() == 400

    def test_reads_interleaved_with_writes(self, store: PatientRecordStore) -> None:
        stop = threading.Event()
        seen: list[int] = []

        def reader() -> None:
            while not stop.is_set():
                seen.append(len(store.history(1)))

        thread = threading.Thread(target=reader)
        thread.start()
        for i in range(200):
            store.append(1, "HeartRate", 70.0, i)
        stop.set()
        thread.join()

        assert seen == sorted(seen)
        assert len(store.history(1)) == 200

    def test_many_patients_heavy_load(self, store: PatientRecordStore) -> None:
        for i in range(2000):
            store.append(i, "HeartRate", 330.0 + i, BASE_TS + i)

        for i in range(2000):
            assert len(store.query(i, BASE_TS - 10, BASE_TS + 2010)) == 1
