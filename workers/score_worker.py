import json
import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
BACKEND_DIR = ROOT / "backend"
if str(BACKEND_DIR) not in sys.path:
    sys.path.append(str(BACKEND_DIR))

from kudiguard.engine.score import compute_health_score  # noqa: E402
from kudiguard.errors import NoFinancialDataError  # noqa: E402
from kudiguard.services.common import iso_utc  # noqa: E402
from kudiguard.services.orchestrator import baseline_payload, build_repository  # noqa: E402

logger = logging.getLogger(__name__)


def recompute_scores(repository, user_ids):
    scores = []
    missing = []
    for user_id in user_ids:
        entry = repository.latest_financial_entry(user_id)
        if entry is None:
            missing.append(user_id)
            continue
        health = compute_health_score(baseline_payload(entry))
        scores.append(
            {
                "user_id": user_id,
                "financial_health_score": health.score,
                "band": health.band,
                "score_interpretation": health.interpretation,
            }
        )
    return scores, missing


def handler(event, context=None, repository=None):
    logger.info("score_worker_invoked event=%s", json.dumps(event, default=str))
    detail = event.get("detail", {}) if isinstance(event, dict) else {}
    user_ids = [str(item) for item in detail.get("user_ids", []) if str(item).strip()]
    scores, missing = recompute_scores(repository or build_repository(), user_ids)
    for user_id in missing:
        logger.info("score_skipped user_id=%s reason=%s", user_id, NoFinancialDataError.code)
    return {
        "status": "ok",
        "processed_at": iso_utc(),
        "scores": scores,
        "skipped": missing,
    }


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    sample = {"detail-type": "FinancialEntryCreated", "detail": {"user_ids": ["demo-user"]}}
    print(json.dumps(handler(sample), indent=2))
