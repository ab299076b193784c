from __future__ import annotations

from typing import List, Optional
from uuid import UUID

from src.physio.domain.models.exercise import (
    DosageUpdate,
    Exercise,
    ExerciseCreate,
    ExercisePrescription,
    Frequency,
)
from src.physio.services.exercises.library import ExerciseLibrary, ExerciseValidationError, exercise_library


DEFAULT_SETS = 3
DEFAULT_REPS = 10


class ExercisePlanBuilder:
    """Ordered, duplicate-free list of prescribed exercises.

    The list lives in memory for the Exercises and Configure steps; list
    position is the order index written when the plan is finalized. Duplicate
    adds and out-of-range moves are silent no-ops.
    """

    def __init__(
        self,
        selected: Optional[List[ExercisePrescription]] = None,
        *,
        library: Optional[ExerciseLibrary] = None,
    ) -> None:
        self._items: List[ExercisePrescription] = []
        self._library = library or exercise_library
        # Repeats keep the first occurrence and its dosage.
        for item in selected or []:
            if not self.contains(item.exercise_id):
                self._items.append(item)

    @property
    def items(self) -> List[ExercisePrescription]:
        return list(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def contains(self, exercise_id: UUID) -> bool:
        return any(item.exercise_id == exercise_id for item in self._items)

    def add(self, exercise: Exercise) -> bool:
        if self.contains(exercise.id):
            return False
        self._items.append(
            ExercisePrescription(
                exercise=exercise,
                sets=DEFAULT_SETS,
                reps=DEFAULT_REPS,
                frequency=Frequency.DAILY,
            )
        )
        return True

    def remove(self, exercise_id: UUID) -> bool:
        before = len(self._items)
        self._items = [item for item in self._items if item.exercise_id != exercise_id]
        return len(self._items) != before

    def reorder(self, from_index: int, to_index: int) -> bool:
        size = len(self._items)
        if not (0 <= to_index < size) or not (0 <= from_index < size):
            return False
        moved = self._items.pop(from_index)
        self._items.insert(to_index, moved)
        return True

    def update_parameters(self, index: int, changes: DosageUpdate) -> ExercisePrescription:
        if not 0 <= index < len(self._items):
            raise ExerciseValidationError(f"No selected exercise at position {index}")
        update = changes.model_dump(exclude_unset=True)
        # Frequency is required; an explicit null leaves it unchanged.
        if update.get("frequency") is None:
            update.pop("frequency", None)
        updated = self._items[index].model_copy(update=update)
        self._items[index] = updated
        return updated

    def create_custom(self, fields: ExerciseCreate) -> Exercise:
        exercise = self._library.create(fields)
        self.add(exercise)
        return exercise
