from __future__ import annotations

import json
import logging
import os
from typing import Any, Dict, List

import requests

from kudiguard import config
from kudiguard.services.common import iso_utc
from kudiguard.services.store import StaleDialogueError, StoreError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 20


class SupabaseRestError(StoreError):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SupabaseRestClient:
    def __init__(
        self,
        *,
        supabase_url: str | None = None,
        service_key: str | None = None,
        timeout: int = DEFAULT_TIMEOUT,
    ) -> None:
        url = (supabase_url or os.getenv("SUPABASE_URL", "")).strip().rstrip("/")
        key = (service_key or os.getenv("SUPABASE_SERVICE_KEY", "")).strip()
        self.base_url = f"{url}/rest/v1" if url else ""
        self.timeout = timeout
        self._configured = bool(url and key)
        self.common_headers = {
            "apikey": key,
            "Authorization": f"Bearer {key}",
            "Content-Type": "application/json",
        }

    @property
    def configured(self) -> bool:
        return self._configured

    def _ensure_configured(self) -> None:
        if not self.configured:
            raise SupabaseRestError("Supabase is not configured. Set SUPABASE_URL and SUPABASE_SERVICE_KEY.")

    def _request(
        self,
        method: str,
        path: str,
        *,
        params: Dict[str, Any] | None = None,
        payload: Any = None,
        headers: Dict[str, str] | None = None,
    ) -> Any:
        self._ensure_configured()
        merged_headers = dict(self.common_headers)
        if headers:
            merged_headers.update(headers)
        try:
            response = requests.request(
                method=method,
                url=f"{self.base_url}{path}",
                params=params,
                json=payload,
                headers=merged_headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise SupabaseRestError(f"Supabase {method} {path} failed: {exc}") from exc
        if response.status_code >= 400:
            snippet = response.text[:1200]
            raise SupabaseRestError(
                f"Supabase {method} {path} failed ({response.status_code}): {snippet}",
                status_code=response.status_code,
            )
        content_type = response.headers.get("content-type", "")
        if response.text and "application/json" in content_type:
            return response.json()
        return None

    def fetch_rows(
        self,
        table: str,
        *,
        select: str = "*",
        filters: Dict[str, str] | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"select": select}
        if order:
            params["order"] = order
        if limit is not None:
            params["limit"] = limit
        params.update(filters or {})
        rows = self._request("GET", f"/{table}", params=params)
        if not isinstance(rows, list):
            raise SupabaseRestError(f"Unexpected response type for table {table}")
        return rows

    def insert_rows(self, table: str, rows: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        if not rows:
            return []
        created = self._request(
            "POST",
            f"/{table}",
            payload=rows,
            headers={"Prefer": "return=representation"},
        )
        return created if isinstance(created, list) else []

    def update_rows(self, table: str, *, filters: Dict[str, str], values: Dict[str, Any]) -> List[Dict[str, Any]]:
        updated = self._request(
            "PATCH",
            f"/{table}",
            params=filters,
            payload=values,
            headers={"Prefer": "return=representation"},
        )
        return updated if isinstance(updated, list) else []

    def delete_rows(self, table: str, *, filters: Dict[str, str]) -> None:
        self._request("DELETE", f"/{table}", params=filters)


def _first(rows: List[Dict[str, Any]], table: str) -> Dict[str, Any]:
    if not rows:
        raise SupabaseRestError(f"Supabase insert into {table} returned no row")
    return rows[0]


class SupabaseRepository:
    """DecisionRepository backed by the Supabase REST API."""

    def __init__(self, client: SupabaseRestClient) -> None:
        self.client = client

    def create_decision(
        self, *, user_id: str, question: str, intent: str, inputs: Dict[str, Any]
    ) -> Dict[str, Any]:
        rows = self.client.insert_rows(
            "decisions",
            [{"user_id": user_id, "question": question, "intent": intent, "inputs": inputs, "status": "pending"}],
        )
        return _first(rows, "decisions")

    def update_decision(
        self, decision_id: str, *, status: str, inputs: Dict[str, Any] | None = None
    ) -> None:
        values: Dict[str, Any] = {"status": status, "updated_at": iso_utc()}
        if inputs is not None:
            values["inputs"] = inputs
        rows = self.client.update_rows("decisions", filters={"id": f"eq.{decision_id}"}, values=values)
        if not rows:
            raise SupabaseRestError(f"decision {decision_id} not found")

    def get_decision(self, decision_id: str) -> Dict[str, Any] | None:
        rows = self.client.fetch_rows("decisions", filters={"id": f"eq.{decision_id}"}, limit=1)
        return rows[0] if rows else None

    def insert_recommendation(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return _first(self.client.insert_rows("recommendations", [payload]), "recommendations")

    def find_recommendation_for_decision(self, decision_id: str) -> Dict[str, Any] | None:
        rows = self.client.fetch_rows("recommendations", filters={"decision_id": f"eq.{decision_id}"}, limit=1)
        return rows[0] if rows else None

    def get_recommendation(self, recommendation_id: str) -> Dict[str, Any] | None:
        rows = self.client.fetch_rows("recommendations", filters={"id": f"eq.{recommendation_id}"}, limit=1)
        return rows[0] if rows else None

    def delete_recommendation(self, recommendation_id: str) -> None:
        self.client.delete_rows("recommendations", filters={"id": f"eq.{recommendation_id}"})

    def add_feedback(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return _first(self.client.insert_rows("feedback", [payload]), "feedback")

    def add_financial_entry(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return _first(self.client.insert_rows("financial_entries", [payload]), "financial_entries")

    def latest_financial_entry(self, user_id: str) -> Dict[str, Any] | None:
        rows = self.client.fetch_rows(
            "financial_entries",
            filters={"user_id": f"eq.{user_id}"},
            order="created_at.desc",
            limit=1,
        )
        return rows[0] if rows else None

    def load_dialogue(self, session_key: str) -> Dict[str, Any] | None:
        rows = self.client.fetch_rows("dialogue_sessions", filters={"session_key": f"eq.{session_key}"}, limit=1)
        if not rows:
            return None
        row = rows[0]
        state = row.get("state")
        if isinstance(state, str):
            state = json.loads(state)
        return {**(state or {}), "session_key": session_key, "version": int(row.get("version") or 0)}

    def save_dialogue(self, session_key: str, state: Dict[str, Any], *, expected_version: int) -> int:
        new_version = expected_version + 1
        body = {key: value for key, value in state.items() if key not in {"session_key", "version"}}
        if expected_version == 0:
            try:
                self.client.insert_rows(
                    "dialogue_sessions",
                    [{"session_key": session_key, "state": body, "version": new_version, "updated_at": iso_utc()}],
                )
            except SupabaseRestError as exc:
                if exc.status_code == 409:
                    raise StaleDialogueError(f"dialogue {session_key} was created concurrently") from exc
                raise
            return new_version
        rows = self.client.update_rows(
            "dialogue_sessions",
            filters={"session_key": f"eq.{session_key}", "version": f"eq.{expected_version}"},
            values={"state": body, "version": new_version, "updated_at": iso_utc()},
        )
        if not rows:
            raise StaleDialogueError(f"dialogue {session_key} changed since version {expected_version}")
        return new_version

    def add_audit(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return _first(self.client.insert_rows("decision_audit", [payload]), "decision_audit")


_client: SupabaseRestClient | None = None


def get_supabase_client() -> SupabaseRestClient:
    global _client
    if _client is None:
        _client = SupabaseRestClient(timeout=config.SUPABASE_TIMEOUT_SEC)
        logger.info("supabase_client_ready configured=%s", _client.configured)
    return _client
