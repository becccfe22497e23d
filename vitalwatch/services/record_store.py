"""
Concurrent patient record store.

Key properties:
- Explicitly constructed instance, passed to whoever needs it (no singleton)
- Per-subject locking: a write to one patient never blocks readers of another
- Timestamp-ordered storage with inclusive range queries via bisect
- Read-path "not found" is absorbed into empty results
"""

import threading
from bisect import bisect_left, bisect_right
from collections.abc import Iterable

import structlog

from vitalwatch.domain.errors import InvalidCategory
from vitalwatch.domain.models import (
    MAX_TIMESTAMP,
    MIN_TIMESTAMP,
    Observation,
    VitalCategory,
)

logger = structlog.get_logger(__name__)


class Patient:
    """
    Ordered observation history for one subject.

    Observations are kept sorted by timestamp; equal timestamps keep their
    insertion order. The lock guards the history and is owned by the store,
    which holds it for every read and write touching this subject.
    """

    def __init__(self, subject_id: int, observations: Iterable[Observation] = ()) -> None:
        self.subject_id = subject_id
        self.lock = threading.RLock()
        self._observations: list[Observation] = []
        self._timestamps: list[int] = []
        for observation in observations:
            self.add_observation(observation)

    def __repr__(self) -> str:
        return f"Patient(subject_id={self.subject_id}, observations={len(self)})"

    def __len__(self) -> int:
        return len(self._observations)

    def add_observation(self, observation: Observation) -> None:
        if observation.subject_id != self.subject_id:
            raise ValueError(
                f"Observation for subject {observation.subject_id} "
                f"added to patient {self.subject_id}"
            )
        with self.lock:
            # bisect_right keeps ties in arrival order
            index = bisect_right(self._timestamps, observation.timestamp)
            self._timestamps.insert(index, observation.timestamp)
            self._observations.insert(index, observation)

    def observations(
        self, start: int = MIN_TIMESTAMP, end: int = MAX_TIMESTAMP
    ) -> list[Observation]:
        """Observations with start <= timestamp <= end, oldest first."""
        if start > end:
            return []
        with self.lock:
            lo = bisect_left(self._timestamps, start)
            hi = bisect_right(self._timestamps, end)
            return self._observations[lo:hi]

    def latest(self, category: VitalCategory, n: int) -> list[Observation]:
        """The last ``n`` readings of one category, oldest first."""
        if n <= 0:
            return []
        with self.lock:
            found: list[Observation] = []
            for observation in reversed(self._observations):
                if observation.category is category:
                    found.append(observation)
                    if len(found) == n:
                        break
        found.reverse()
        return found

    def snapshot(self) -> "Patient":
        """Independent copy; later appends to this patient are not reflected."""
        with self.lock:
            return Patient(self.subject_id, self._observations)


class PatientRecordStore:
    """
    Owns every Patient and serializes access per subject.

    The registry lock is only held while looking up or creating a Patient,
    so operations on different subjects proceed concurrently.
    """

    def __init__(self) -> None:
        self._patients: dict[int, Patient] = {}
        self._registry_lock = threading.Lock()
        self.logger = logger.bind(component="record_store")

    def __len__(self) -> int:
        with self._registry_lock:
            return len(self._patients)

    def __contains__(self, subject_id: object) -> bool:
        with self._registry_lock:
            return subject_id in self._patients

    def _get_or_create(self, subject_id: int) -> Patient:
        with self._registry_lock:
            patient = self._patients.get(subject_id)
            if patient is None:
                patient = Patient(subject_id)
                self._patients[subject_id] = patient
                self.logger.debug("patient_created", subject_id=subject_id)
            return patient

    def _lookup(self, subject_id: int) -> Patient | None:
        with self._registry_lock:
            return self._patients.get(subject_id)

    def append(
        self,
        subject_id: int,
        category: str | VitalCategory,
        value: float,
        timestamp: int,
    ) -> Observation:
        """
        Record one observation, creating the patient on first sight.

        Raises:
            InvalidCategory: category is empty or not a recognized vital sign.
        """
        try:
            resolved = VitalCategory.parse(category)
        except InvalidCategory:
            self.logger.warning(
                "observation_rejected", subject_id=subject_id, category=category
            )
            raise

        observation = Observation(
            subject_id=subject_id, category=resolved, value=value, timestamp=timestamp
        )
        patient = self._get_or_create(observation.subject_id)
        patient.add_observation(observation)
        return observation

    def add_patient(self, patient: Patient) -> bool:
        """Register a pre-built patient unless the subject is already known."""
        with self._registry_lock:
            if patient.subject_id in self._patients:
                return False
            self._patients[patient.subject_id] = patient
            return True

    def query(self, subject_id: int, start: int, end: int) -> list[Observation]:
        """Observations for a subject within [start, end], timestamp ordered."""
        patient = self._lookup(subject_id)
        if patient is None:
            return []
        return patient.observations(start, end)

    def history(self, subject_id: int) -> list[Observation]:
        """Every stored observation for a subject."""
        return self.query(subject_id, MIN_TIMESTAMP, MAX_TIMESTAMP)

    def get_patient(self, subject_id: int) -> Patient | None:
        """Snapshot of one patient, or None if the subject is unknown."""
        patient = self._lookup(subject_id)
        return patient.snapshot() if patient is not None else None

    def all_patients(self) -> list[Patient]:
        """Snapshot copies of every patient, ordered by subject id."""
        with self._registry_lock:
            patients = sorted(self._patients.values(), key=lambda p: p.subject_id)
        return [patient.snapshot() for patient in patients]

    def subject_ids(self) -> list[int]:
        with self._registry_lock:
            return sorted(self._patients)

    def observation_count(self) -> int:
        """Total number of stored observations across all subjects."""
        with self._registry_lock:
            patients = list(self._patients.values())
        total = 0
        for patient in patients:
            with patient.lock:
                total += len(patient)
        return total

    def clear(self) -> None:
        with self._registry_lock:
            self._patients.clear()
        self.logger.info("record_store_cleared")
