from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Protocol

from kudiguard.services.common import iso_utc


class StoreError(RuntimeError):
    pass


class StaleDialogueError(StoreError):
    """Raised when a dialogue save loses the version compare-and-swap."""


class DecisionRepository(Protocol):
    def create_decision(
        self, *, user_id: str, question: str, intent: str, inputs: Dict[str, Any]
    ) -> Dict[str, Any]: ...

    def update_decision(
        self, decision_id: str, *, status: str, inputs: Dict[str, Any] | None = None
    ) -> None: ...

    def get_decision(self, decision_id: str) -> Dict[str, Any] | None: ...

    def insert_recommendation(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    def find_recommendation_for_decision(self, decision_id: str) -> Dict[str, Any] | None: ...

    def get_recommendation(self, recommendation_id: str) -> Dict[str, Any] | None: ...

    def delete_recommendation(self, recommendation_id: str) -> None: ...

    def add_feedback(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    def add_financial_entry(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...

    def latest_financial_entry(self, user_id: str) -> Dict[str, Any] | None: ...

    def load_dialogue(self, session_key: str) -> Dict[str, Any] | None: ...

    def save_dialogue(self, session_key: str, state: Dict[str, Any], *, expected_version: int) -> int: ...

    def add_audit(self, payload: Dict[str, Any]) -> Dict[str, Any]: ...


@dataclass
class InMemoryRepository:
    decisions: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    recommendations: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    feedback: List[Dict[str, Any]] = field(default_factory=list)
    financial_entries: List[Dict[str, Any]] = field(default_factory=list)
    dialogues: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    audit_events: List[Dict[str, Any]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    _recommendation_seq: int = field(default=0, repr=False)

    def create_decision(
        self, *, user_id: str, question: str, intent: str, inputs: Dict[str, Any]
    ) -> Dict[str, Any]:
        with self._lock:
            now = iso_utc()
            record = {
                "id": f"dec_{len(self.decisions)+1}",
                "user_id": user_id,
                "question": question,
                "intent": intent,
                "inputs": dict(inputs),
                "status": "pending",
                "created_at": now,
                "updated_at": now,
            }
            self.decisions[record["id"]] = record
            return dict(record)

    def update_decision(
        self, decision_id: str, *, status: str, inputs: Dict[str, Any] | None = None
    ) -> None:
        with self._lock:
            record = self.decisions.get(decision_id)
            if record is None:
                raise StoreError(f"decision {decision_id} not found")
            record["status"] = status
            if inputs is not None:
                record["inputs"] = dict(inputs)
            record["updated_at"] = iso_utc()

    def get_decision(self, decision_id: str) -> Dict[str, Any] | None:
        record = self.decisions.get(decision_id)
        return dict(record) if record else None

    def insert_recommendation(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            decision_id = payload.get("decision_id")
            if any(item["decision_id"] == decision_id for item in self.recommendations.values()):
                raise StoreError(f"decision {decision_id} already has a recommendation")
            self._recommendation_seq += 1
            record = {
                **payload,
                "id": f"rec_{self._recommendation_seq}",
                "created_at": iso_utc(),
            }
            self.recommendations[record["id"]] = record
            return dict(record)

    def find_recommendation_for_decision(self, decision_id: str) -> Dict[str, Any] | None:
        for record in self.recommendations.values():
            if record["decision_id"] == decision_id:
                return dict(record)
        return None

    def get_recommendation(self, recommendation_id: str) -> Dict[str, Any] | None:
        record = self.recommendations.get(recommendation_id)
        return dict(record) if record else None

    def delete_recommendation(self, recommendation_id: str) -> None:
        with self._lock:
            self.recommendations.pop(recommendation_id, None)

    def add_feedback(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            record = {
                **payload,
                "id": f"fb_{len(self.feedback)+1}",
                "created_at": iso_utc(),
            }
            self.feedback.append(record)
            return dict(record)

    def add_financial_entry(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            record = {
                **payload,
                "id": f"fin_{len(self.financial_entries)+1}",
                "created_at": iso_utc(),
            }
            self.financial_entries.append(record)
            return dict(record)

    def latest_financial_entry(self, user_id: str) -> Dict[str, Any] | None:
        for record in reversed(self.financial_entries):
            if record.get("user_id") == user_id:
                return dict(record)
        return None

    def load_dialogue(self, session_key: str) -> Dict[str, Any] | None:
        record = self.dialogues.get(session_key)
        return dict(record) if record else None

    def save_dialogue(self, session_key: str, state: Dict[str, Any], *, expected_version: int) -> int:
        with self._lock:
            current = self.dialogues.get(session_key)
            current_version = int(current["version"]) if current else 0
            if current_version != expected_version:
                raise StaleDialogueError(
                    f"dialogue {session_key} is at version {current_version}, expected {expected_version}"
                )
            new_version = expected_version + 1
            self.dialogues[session_key] = {**state, "version": new_version, "updated_at": iso_utc()}
            return new_version

    def add_audit(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            record = {
                **payload,
                "id": f"audit_{len(self.audit_events)+1}",
                "created_at": iso_utc(),
            }
            self.audit_events.append(record)
            return record
