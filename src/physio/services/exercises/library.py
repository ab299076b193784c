from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID, uuid4

from src.physio.domain.models.exercise import Exercise, ExerciseCreate
from src.physio.infra.db import inmemory as repos
from src.physio.infra.db.repositories import ExerciseRepository
from src.physio.services.audit.service import audit_service


class ExerciseValidationError(ValueError):
    pass


# Body areas that condition-based suggestions look for, in priority order.
_SUGGESTION_AREAS = ("back", "knee", "shoulder")

DEFAULT_EXERCISES = [
    ExerciseCreate(name="Cat-Camel Stretch", body_area="back", goal="mobility", difficulty="easy",
                   description="Gentle spinal flexion and extension on hands and knees."),
    ExerciseCreate(name="Bird Dog", body_area="back", goal="strength", difficulty="medium",
                   description="Opposite arm and leg reach from four-point kneeling."),
    ExerciseCreate(name="Knee to Chest Stretch", body_area="back", goal="flexibility", difficulty="easy",
                   description="Lying on the back, draw one knee towards the chest."),
    ExerciseCreate(name="Pelvic Tilt", body_area="back", goal="mobility", difficulty="easy",
                   description="Flatten the lower back into the floor by tilting the pelvis."),
    ExerciseCreate(name="Quad Sets", body_area="knee", goal="strength", difficulty="easy",
                   description="Tighten the thigh muscle to press the back of the knee down."),
    ExerciseCreate(name="Straight Leg Raise", body_area="knee", goal="strength", difficulty="medium",
                   description="Lift the straightened leg to the height of the opposite knee."),
    ExerciseCreate(name="Heel Slides", body_area="knee", goal="mobility", difficulty="easy",
                   description="Slide the heel towards the buttock to bend the knee."),
    ExerciseCreate(name="Pendulum Swings", body_area="shoulder", goal="mobility", difficulty="easy",
                   description="Let the arm hang and swing in small circles."),
    ExerciseCreate(name="Wall Slides", body_area="shoulder", goal="mobility", difficulty="medium",
                   description="Slide the forearms up a wall keeping contact throughout."),
    ExerciseCreate(name="Chin Tucks", body_area="neck", goal="strength", difficulty="easy",
                   description="Draw the chin straight back to lengthen the back of the neck."),
]


class ExerciseLibrary:
    """Read/search access to the clinic's exercise library plus custom creation."""

    def __init__(self, *, repository: Optional[ExerciseRepository] = None) -> None:
        self._repository = repository

    @property
    def repository(self) -> ExerciseRepository:
        return self._repository or repos.exercise_repository

    def get(self, exercise_id: UUID) -> Optional[Exercise]:
        return self.repository.get(exercise_id)

    def search(
        self,
        query: str = "",
        *,
        body_area: str = "all",
        goal: str = "all",
        difficulty: str = "all",
    ) -> List[Exercise]:
        """Filter the library the way the exercise picker does.

        ``query`` matches name or description case-insensitively; a filter
        value of "all" disables that filter.
        """

        needle = query.strip().lower()
        results = []
        for exercise in self.repository.list_all():
            if needle and needle not in exercise.name.lower() and needle not in (exercise.description or "").lower():
                continue
            if body_area != "all" and exercise.body_area != body_area:
                continue
            if goal != "all" and exercise.goal != goal:
                continue
            if difficulty != "all" and exercise.difficulty != difficulty:
                continue
            results.append(exercise)
        return results

    def suggest_for_condition(self, condition: Optional[str], *, limit: int = 4) -> List[Exercise]:
        library = self.repository.list_all()
        lowered = (condition or "").lower()
        for area in _SUGGESTION_AREAS:
            if area in lowered:
                return [e for e in library if e.body_area == area][:limit]
        return library[:limit]

    def create(self, fields: ExerciseCreate) -> Exercise:
        name = fields.name.strip()
        if not name:
            raise ExerciseValidationError("Exercise name is required")
        exercise = Exercise(
            id=uuid4(),
            created_at=datetime.utcnow(),
            name=name,
            description=fields.description,
            body_area=fields.body_area,
            goal=fields.goal,
            difficulty=fields.difficulty,
            instructions=fields.instructions,
        )
        self.repository.save(exercise)
        audit_service.log_event(action="create_exercise", resource_type="exercise", resource_id=str(exercise.id))
        return exercise

    def seed_defaults(self) -> int:
        """Populate an empty library with a starter set; returns rows added."""

        if self.repository.list_all():
            return 0
        for fields in DEFAULT_EXERCISES:
            self.create(fields)
        return len(DEFAULT_EXERCISES)


exercise_library = ExerciseLibrary()
