"""Local storage key schema.

All keys share a configurable prefix and end with the sanitised user key so
two users on one device never read each other's answers.
"""

from __future__ import annotations

from dataclasses import dataclass

from assessment_sync.logic.session import Session


@dataclass(frozen=True)
class StorageKeys:
    session: Session
    prefix: str = "assessment"

    @property
    def user(self) -> str:
        return self.session.user_key

    def page_answers(self, questionnaire_id: str, page_index: int) -> str:
        return f"{self.prefix}_page_answers_{questionnaire_id}_{int(page_index)}_{self.user}"

    def page_pointer(self) -> str:
        return f"{self.prefix}_page_{self.user}"

    def answers_snapshot(self) -> str:
        return f"{self.prefix}_answers_{self.user}"

    def cycle_submitted(self, cycle_id: str) -> str:
        return f"{self.prefix}_submitted_{cycle_id}_{self.user}"

    def cycle_started(self, cycle_id: str) -> str:
        return f"{self.prefix}_started_{cycle_id}_{self.user}"


__all__ = ["StorageKeys"]
